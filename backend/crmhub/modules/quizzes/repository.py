# crmhub/modules/quizzes/repository.py

from typing import Any, Dict, Optional

from pymongo import ASCENDING

from crmhub.core.repository import BaseRepository, utcnow
from .models import QuizEventInDB, QuizInDB, QuizSessionInDB


class QuizRepository(BaseRepository[QuizInDB]):
    model = QuizInDB
    collection_name = "quizzes"

    async def create_indexes(self):
        # slug é público (URL do quiz), único entre todas as organizações
        await self.collection.create_index("slug", unique=True)

    async def get_active_by_slug(self, slug: str) -> Optional[QuizInDB]:
        return await self.get_by({"slug": slug, "is_active": True})


class QuizSessionRepository(BaseRepository[QuizSessionInDB]):
    model = QuizSessionInDB
    collection_name = "quiz_sessions"

    async def record_answer(
        self, session_id: str, step_id: str, answer: Dict[str, Any], score: int, changes: Dict[str, Any]
    ) -> Optional[QuizSessionInDB]:
        """Grava a resposta do passo, soma o score e aplica os demais campos numa única operação."""
        obj_id = self._to_objectid(session_id)
        if not obj_id:
            return None
        try:
            await self.collection.update_one(
                self._scoped({"_id": obj_id}),
                {
                    "$set": dict(changes, **{f"answers.{step_id}": answer, "updated_at": utcnow()}),
                    "$inc": {"total_score": score},
                },
            )
        except Exception as e:
            self._handle_db_exception(e, "record_answer", obj_id)
        return await self.get_by_id(obj_id)


class QuizEventRepository(BaseRepository[QuizEventInDB]):
    model = QuizEventInDB
    collection_name = "quiz_events"

    async def create_indexes(self):
        await self.collection.create_index([("organization_id", ASCENDING), ("quiz_id", ASCENDING), ("event_type", ASCENDING)])
