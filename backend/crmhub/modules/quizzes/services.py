# crmhub/modules/quizzes/services.py

from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from loguru import logger

from crmhub.core.database import get_database
from crmhub.core.repository import utcnow
from crmhub.core.security import CurrentPrincipal, Principal
from crmhub.modules.leads.services import LeadService
from .models import (
    LeadCaptureData,
    QuizAnswer,
    QuizCreateAPI,
    QuizInDB,
    QuizSessionAPI,
    QuizSessionInDB,
    QuizStartAPI,
    QuizStep,
)
from .navigation import can_proceed, resolve_next_step, score_for
from .repository import QuizEventRepository, QuizRepository, QuizSessionRepository


class QuizService:
    """Navegação pública dos quizzes (sessões, respostas, captura de lead)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.quizzes = QuizRepository(db)

    async def _event(self, quiz: QuizInDB, session_id: str, event_type: str, step_id: Optional[str] = None, **metadata: Any) -> None:
        events = QuizEventRepository(self.db, quiz.organization_id)
        await events.create({
            "quiz_id": str(quiz.id),
            "session_id": session_id,
            "step_id": step_id,
            "event_type": event_type,
            "metadata": metadata,
        })

    @staticmethod
    def _to_api(session: QuizSessionInDB, steps: List[QuizStep]) -> QuizSessionAPI:
        current = next((s for s in steps if s.id == session.current_step_id), None)
        return QuizSessionAPI(
            session_id=str(session.id),
            quiz_id=session.quiz_id,
            current_step=current,
            total_score=session.total_score,
            is_completed=session.is_completed,
            lead_id=session.lead_id,
        )

    async def start_session(self, slug: str, utm: QuizStartAPI) -> QuizSessionAPI:
        quiz = await self.quizzes.get_active_by_slug(slug)
        if quiz is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quiz not found")
        steps = quiz.ordered_steps
        if not steps:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Quiz has no steps")

        sessions = QuizSessionRepository(self.db, quiz.organization_id)
        session = await sessions.create({
            "quiz_id": str(quiz.id),
            "current_step_id": steps[0].id,
            "utm": utm.model_dump(),
            "answers": {},
            "total_score": 0,
        })
        await self._event(quiz, str(session.id), "quiz_view")
        logger.bind(quiz_id=str(quiz.id), session_id=str(session.id)).info("Quiz session started.")
        return self._to_api(session, steps)

    async def _load(self, session_id: str) -> Tuple[QuizInDB, QuizSessionInDB]:
        session = await QuizSessionRepository(self.db).get_by_id(session_id)
        if session is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quiz session not found")
        quiz = await self.quizzes.get_by_id(session.quiz_id)
        if quiz is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quiz not found")
        return quiz, session

    async def answer(self, session_id: str, step_id: str, answer: QuizAnswer) -> QuizSessionAPI:
        quiz, session = await self._load(session_id)
        log = logger.bind(quiz_id=str(quiz.id), session_id=session_id, step_id=step_id)
        if session.is_completed:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Quiz session already completed")

        steps = quiz.ordered_steps
        step = next((s for s in steps if s.id == step_id), None)
        if step is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Step not found")
        if not can_proceed(step, answer):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Answer required for this step")

        changes: Dict[str, Any] = {}
        if step.step_type == "lead_capture" and answer.lead is not None:
            captured = self._merge_capture(session.captured, answer.lead)
            changes["captured"] = captured.model_dump()
            lead_id = await self._capture_lead(quiz, captured)
            if lead_id:
                changes["lead_id"] = lead_id
                await self._event(quiz, session_id, "lead_captured", step_id, lead_id=lead_id)

        next_step = resolve_next_step(steps, step, answer.selected_option_ids)
        changes["current_step_id"] = next_step.id if next_step else None
        if next_step is None:
            changes["is_completed"] = True
            changes["completed_at"] = utcnow()

        score = score_for(step, answer.selected_option_ids)
        sessions = QuizSessionRepository(self.db, quiz.organization_id)
        updated = await sessions.record_answer(session_id, step_id, answer.model_dump(), score, changes)
        await self._event(quiz, session_id, "step_complete", step_id, score=score)
        if next_step is None:
            await self._event(quiz, session_id, "quiz_complete", step_id, total_score=updated.total_score)
            log.success(f"Quiz completed with score {updated.total_score}.")
        return self._to_api(updated, steps)

    @staticmethod
    def _merge_capture(current: LeadCaptureData, incoming: LeadCaptureData) -> LeadCaptureData:
        merged = current.model_dump()
        merged.update({k: v for k, v in incoming.model_dump().items() if v})
        return LeadCaptureData(**merged)

    async def _capture_lead(self, quiz: QuizInDB, captured: LeadCaptureData) -> Optional[str]:
        if not captured.whatsapp:
            return None
        lead_service = LeadService(self.db, quiz.organization_id)
        lead = await lead_service.upsert_by_whatsapp({
            "name": captured.name or captured.whatsapp,
            "whatsapp": captured.whatsapp,
            "email": captured.email,
            "cpf": captured.cpf,
            "funnel_stage_id": quiz.default_funnel_stage_id,
            "assigned_to": quiz.default_seller_id,
            "source": f"quiz:{quiz.slug}",
        })
        return str(lead.id)


class QuizAdminService:
    def __init__(self, db: AsyncIOMotorDatabase, organization_id: str):
        self.quizzes = QuizRepository(db, organization_id)

    async def create(self, principal: Principal, payload: QuizCreateAPI) -> QuizInDB:
        if await QuizRepository(self.quizzes.db).get_by({"slug": payload.slug}):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Slug '{payload.slug}' already in use")
        quiz = await self.quizzes.create(payload)
        logger.bind(organization_id=principal.organization_id, quiz_id=str(quiz.id)).info("Quiz created.")
        return quiz

    async def list_quizzes(self) -> List[QuizInDB]:
        return await self.quizzes.list_by({}, limit=0, sort=[("created_at", -1)])


async def get_quiz_service(db: AsyncIOMotorDatabase = Depends(get_database)) -> QuizService:
    return QuizService(db)


async def get_quiz_admin_service(
    principal: CurrentPrincipal,
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> QuizAdminService:
    return QuizAdminService(db, principal.organization_id)
