# crmhub/modules/members/services.py

from typing import List, Optional, Tuple

from fastapi import Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from loguru import logger

from crmhub.core import security
from crmhub.core.database import get_database
from crmhub.core.security import Principal
from .models import MemberAPI, MemberCreateAPI, MemberInDB, UserInDB
from .repository import MemberRepository, UserRepository


class MemberService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.users = UserRepository(db)

    def members_of(self, organization_id: str) -> MemberRepository:
        return MemberRepository(self.db, organization_id)

    async def authenticate(
        self, email: str, password: str, organization_id: Optional[str] = None
    ) -> Optional[Tuple[UserInDB, MemberInDB]]:
        """Valida credenciais e escolhe o vínculo (organização pedida ou o mais antigo)."""
        log = logger.bind(service="MemberService", email=email)
        user = await self.users.get_by_email(email)
        if user is None or not security.verify_password(password, user.hashed_password):
            log.warning("Authentication failed: invalid email or password.")
            return None
        if not user.is_active:
            log.warning(f"Authentication refused: user {user.id} is inactive.")
            return None

        memberships = await MemberRepository(self.db).list_for_user(str(user.id))
        if organization_id:
            memberships = [m for m in memberships if m.organization_id == organization_id]
        if not memberships:
            log.warning(f"User {user.id} has no membership for the requested organization.")
            return None
        return user, memberships[0]

    def issue_token(self, user: UserInDB, membership: MemberInDB) -> str:
        return security.create_access_token({
            "sub": str(user.id),
            "org": membership.organization_id,
            "roles": [membership.role] + (["super_admin"] if user.is_super_admin else []),
            "email": user.email,
        })

    async def add_member(self, principal: Principal, payload: MemberCreateAPI) -> MemberAPI:
        log = logger.bind(organization_id=principal.organization_id, email=payload.email)
        if payload.role == "owner" and "owner" not in principal.roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only owners can add owners")

        user = await self.users.get_by_email(payload.email)
        if user is None:
            user = await self.users.create({
                "email": payload.email.lower(),
                "hashed_password": security.get_password_hash(payload.password),
                "first_name": payload.first_name,
                "last_name": payload.last_name,
                "is_active": True,
            })
            log.info(f"User {user.id} created.")

        members = self.members_of(principal.organization_id)
        if await members.get_membership(str(user.id)):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User is already a member of this organization")
        member = await members.create({"user_id": str(user.id), "role": payload.role})
        log.success(f"Member {user.id} added with role {member.role}.")
        return MemberAPI(
            user_id=str(user.id), organization_id=member.organization_id,
            email=user.email, name=user.full_name or user.email, role=member.role,
        )

    async def list_members(self, principal: Principal) -> List[MemberAPI]:
        members = await self.members_of(principal.organization_id).list_by({}, limit=0, sort=[("created_at", 1)])
        users = {str(u.id): u for u in await self.users.list_by(
            {"_id": {"$in": [self.users._to_objectid(m.user_id) for m in members]}}, limit=0
        )}
        result = []
        for member in members:
            user = users.get(member.user_id)
            if user is None:
                continue
            result.append(MemberAPI(
                user_id=member.user_id, organization_id=member.organization_id,
                email=user.email, name=user.full_name or user.email, role=member.role,
            ))
        return result


async def get_member_service(db: AsyncIOMotorDatabase = Depends(get_database)) -> MemberService:
    return MemberService(db)
