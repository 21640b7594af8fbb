# crmhub/modules/quizzes/routers.py
from typing import List

from fastapi import APIRouter, Depends, Path, status

from crmhub.core.security import AdminPrincipal, CurrentPrincipal
from .models import QuizAnswer, QuizCreateAPI, QuizInDB, QuizSessionAPI, QuizStartAPI
from .services import QuizAdminService, QuizService, get_quiz_admin_service, get_quiz_service

public_quiz_router = APIRouter()
quizzes_router = APIRouter()


# --- Público (sem autenticação) ---
@public_quiz_router.post("/{slug}/sessions", response_model=QuizSessionAPI, status_code=status.HTTP_201_CREATED, summary="Start a quiz session")
async def start_session_endpoint(
    utm: QuizStartAPI,
    slug: str = Path(...),
    quiz_service: QuizService = Depends(get_quiz_service),
):
    return await quiz_service.start_session(slug, utm)


@public_quiz_router.post("/sessions/{session_id}/steps/{step_id}", response_model=QuizSessionAPI, summary="Answer a quiz step")
async def answer_step_endpoint(
    answer: QuizAnswer,
    session_id: str = Path(...),
    step_id: str = Path(...),
    quiz_service: QuizService = Depends(get_quiz_service),
):
    return await quiz_service.answer(session_id, step_id, answer)


# --- Administração ---
@quizzes_router.post("", response_model=QuizInDB, status_code=status.HTTP_201_CREATED, summary="Create quiz")
async def create_quiz_endpoint(
    payload: QuizCreateAPI,
    principal: AdminPrincipal,
    admin_service: QuizAdminService = Depends(get_quiz_admin_service),
):
    return await admin_service.create(principal, payload)


@quizzes_router.get("", response_model=List[QuizInDB], summary="List quizzes")
async def list_quizzes_endpoint(
    principal: CurrentPrincipal,
    admin_service: QuizAdminService = Depends(get_quiz_admin_service),
):
    return await admin_service.list_quizzes()
