# crmhub/modules/members/routers.py
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.security import OAuth2PasswordRequestForm
from loguru import logger

from crmhub.core import security
from crmhub.core.security import AdminPrincipal, CurrentPrincipal
from .models import MemberAPI, MemberCreateAPI, Token
from .services import MemberService, get_member_service

auth_router = APIRouter()
members_router = APIRouter()


@auth_router.post("/login", response_model=Token, summary="Login with email and password")
async def login_for_access_token(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    member_service: MemberService = Depends(get_member_service),
    organization_id: Optional[str] = Query(None, description="Organização desejada (default: a mais antiga)"),
):
    log = logger.bind(api_endpoint="/auth/login", username=form_data.username)
    log.info("Login attempt received.")
    result = await member_service.authenticate(form_data.username, form_data.password, organization_id)
    if result is None:
        raise security.CredentialsException
    user, membership = result
    log.success(f"Authentication successful for user {user.id} in organization {membership.organization_id}")
    return Token(access_token=member_service.issue_token(user, membership))


@members_router.post("", response_model=MemberAPI, status_code=status.HTTP_201_CREATED, summary="Add a member to the organization")
async def add_member_endpoint(
    payload: MemberCreateAPI,
    principal: AdminPrincipal,
    member_service: MemberService = Depends(get_member_service),
):
    return await member_service.add_member(principal, payload)


@members_router.get("", response_model=List[MemberAPI], summary="List organization members")
async def list_members_endpoint(
    principal: CurrentPrincipal,
    member_service: MemberService = Depends(get_member_service),
):
    return await member_service.list_members(principal)
