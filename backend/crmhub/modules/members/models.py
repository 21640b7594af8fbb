# crmhub/modules/members/models.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from crmhub.models.api_common import PyObjectId

MEMBER_ROLES = Literal["owner", "admin", "manager", "seller", "delivery", "member"]


class UserInDB(BaseModel):
    id: PyObjectId = Field(alias="_id")
    email: EmailStr
    hashed_password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool = True
    # operador da plataforma (planos, assinaturas, overrides de qualquer tenant)
    is_super_admin: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class MemberInDB(BaseModel):
    """Vínculo usuário <-> organização com o papel do usuário no tenant."""
    id: PyObjectId = Field(alias="_id")
    organization_id: str
    user_id: str
    role: MEMBER_ROLES = "member"
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True)


# --- API ---
class Token(BaseModel):
    access_token: str = Field(..., description="O token JWT de acesso.")
    token_type: str = Field(default="bearer")


class MemberCreateAPI(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: MEMBER_ROLES = "seller"


class MemberAPI(BaseModel):
    user_id: str
    organization_id: str
    email: EmailStr
    name: str
    role: MEMBER_ROLES
