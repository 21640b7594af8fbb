# crmhub/core/security.py

from datetime import datetime, timedelta, timezone
from typing import Annotated, List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field, ValidationError
from loguru import logger

from crmhub.core.config import settings

# Hash de senha dos membros (bcrypt)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")

CredentialsException = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)
PermissionException = HTTPException(
    status_code=status.HTTP_403_FORBIDDEN,
    detail="Operation not permitted",
)


class Principal(BaseModel):
    """Usuário autenticado e o tenant (organização) ao qual o token pertence."""
    user_id: str
    organization_id: str
    roles: List[str] = Field(default_factory=list)
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return any(role in ("owner", "admin") for role in self.roles)

    @property
    def is_super_admin(self) -> bool:
        return "super_admin" in self.roles


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.error(f"Error verifying password (hash might be invalid): {e}")
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Cria um token JWT. `data` precisa trazer 'sub' (user id) e 'org'."""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "iat": now, "nbf": now})

    subject = to_encode.get("sub")
    if not subject:
        logger.critical("FATAL: Attempted to create JWT token without 'sub' (subject) claim.")
        raise ValueError("Missing 'sub' claim in token data for JWT creation")
    if not to_encode.get("org"):
        raise ValueError("Missing 'org' claim in token data for JWT creation")

    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    logger.info(f"Access token created for subject: {subject}")
    return encoded_jwt


async def get_current_principal(token: Annotated[str, Depends(oauth2_scheme)]) -> Principal:
    """
    Dependência FastAPI: decodifica o JWT e devolve o Principal.
    Levanta 401 se o token for inválido, expirado ou sem organização.
    """
    log = logger.bind(service="AuthTokenValidation")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id = payload.get("sub")
        organization_id = payload.get("org")
        if not user_id or not organization_id:
            log.warning("Token validation failed: 'sub' or 'org' claim missing.")
            raise CredentialsException
        return Principal(
            user_id=user_id,
            organization_id=organization_id,
            roles=payload.get("roles") or [],
            email=payload.get("email"),
        )
    except ExpiredSignatureError:
        log.warning("Token validation failed: Signature has expired.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": 'Bearer error="invalid_token"'},
        )
    except JWTError as e:
        log.warning(f"Invalid JWT token format or signature: {e}")
        raise CredentialsException from e
    except ValidationError as e:
        log.warning(f"Token data validation error: {e}")
        raise CredentialsException from e


async def require_admin(principal: Annotated[Principal, Depends(get_current_principal)]) -> Principal:
    if not principal.is_admin:
        raise PermissionException
    return principal


async def require_super_admin(principal: Annotated[Principal, Depends(get_current_principal)]) -> Principal:
    """Papel de plataforma: vale para qualquer organização, não só a do token."""
    if not principal.is_super_admin:
        logger.bind(user_id=principal.user_id).warning("Platform operation refused: not a super admin.")
        raise PermissionException
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
AdminPrincipal = Annotated[Principal, Depends(require_admin)]
SuperAdminPrincipal = Annotated[Principal, Depends(require_super_admin)]
