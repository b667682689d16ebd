# File: app/api/v1/endpoints/connect.py

from fastapi import APIRouter, Depends
from supabase import Client

from app.api.deps import get_db, get_origin, get_stripe_api
from app.auth.supabase_auth import AuthUser, get_current_user
from app.models.schemas import ConnectRequest, ConnectStatusResponse, UrlResponse
from app.services import connect_service

router = APIRouter()


@router.post("/account", response_model=UrlResponse)
def create_account(
    request: ConnectRequest,
    user: AuthUser = Depends(get_current_user),
    db: Client = Depends(get_db),
    stripe_api=Depends(get_stripe_api),
    origin: str = Depends(get_origin),
):
    """
    Creates (or reuses) the caller's Express account and returns an onboarding link.
    """
    url = connect_service.create_connect_account(db, stripe_api, user.id, user.email, request.account_type, origin)
    return UrlResponse(url=url)


@router.post("/status", response_model=ConnectStatusResponse)
def account_status(
    request: ConnectRequest,
    user: AuthUser = Depends(get_current_user),
    db: Client = Depends(get_db),
    stripe_api=Depends(get_stripe_api),
):
    return connect_service.check_connect_status(db, stripe_api, user.id, request.account_type)


@router.post("/login-link", response_model=UrlResponse)
def login_link(
    request: ConnectRequest,
    user: AuthUser = Depends(get_current_user),
    db: Client = Depends(get_db),
    stripe_api=Depends(get_stripe_api),
):
    url = connect_service.create_login_link(db, stripe_api, user.id, request.account_type)
    return UrlResponse(url=url)
