# crmhub/modules/members/repository.py

from typing import Dict, Iterable, List, Optional

from pymongo import ASCENDING
from loguru import logger

from crmhub.core.repository import BaseRepository
from .models import MemberInDB, UserInDB

USERS_COLLECTION = "users"
MEMBERS_COLLECTION = "organization_members"


class UserRepository(BaseRepository[UserInDB]):
    """Usuários são globais (um login pode pertencer a várias organizações)."""
    model = UserInDB
    collection_name = USERS_COLLECTION

    async def create_indexes(self):
        await self.collection.create_index("email", unique=True)

    async def get_by_email(self, email: str) -> Optional[UserInDB]:
        if not email:
            return None
        return await self.get_by({"email": email.lower()})

    async def names_by_ids(self, user_ids: Iterable[str]) -> Dict[str, str]:
        object_ids = [oid for oid in (self._to_objectid(uid) for uid in set(user_ids)) if oid]
        if not object_ids:
            return {}
        users = await self.list_by({"_id": {"$in": object_ids}}, limit=0)
        return {str(user.id): user.full_name or user.email for user in users}


class MemberRepository(BaseRepository[MemberInDB]):
    model = MemberInDB
    collection_name = MEMBERS_COLLECTION

    async def create_indexes(self):
        await self.collection.create_index([("organization_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
        await self.collection.create_index([("organization_id", ASCENDING), ("role", ASCENDING), ("created_at", ASCENDING)])

    async def get_membership(self, user_id: str) -> Optional[MemberInDB]:
        return await self.get_by({"user_id": user_id})

    async def list_for_user(self, user_id: str) -> List[MemberInDB]:
        """Vínculos do usuário em todas as organizações (repositório sem escopo)."""
        return await self.list_by({"user_id": user_id}, limit=0, sort=[("created_at", ASCENDING)])

    async def first_with_role(self, role: Optional[str] = None) -> Optional[MemberInDB]:
        """Membro mais antigo com o papel informado (ou qualquer um se role=None)."""
        query = {"role": role} if role else {}
        members = await self.list_by(query, limit=1, sort=[("created_at", ASCENDING)])
        if not members:
            logger.bind(organization_id=self.organization_id).debug(f"No member found with role={role}")
        return members[0] if members else None
