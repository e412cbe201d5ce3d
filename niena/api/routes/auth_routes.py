"""
Authentication Routes

POST /auth/register - Register new user (FREE plan)
POST /auth/login - Login and get JWT token
GET /auth/me - Current user, plan and balances
GET /auth/dashboard - Plan, balances and activity counts
"""

from fastapi import APIRouter, HTTPException, Depends

from niena.core.auth import hash_password, verify_password, create_access_token, get_current_user
from niena.services import account_service
from niena.schemas.schemas import (
    RegisterRequest, LoginRequest, TokenResponse, UserResponse, DashboardResponse, MessageResponse
)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=MessageResponse, status_code=201)
async def register(request: RegisterRequest):
    user_id = account_service.create_user(request.email, hash_password(request.password))
    if user_id is None:
        raise HTTPException(status_code=400, detail="Email already registered")
    return MessageResponse(message="Registered successfully. Please login.")


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest):
    """
    Login and receive JWT access token.

    Include token in requests: Authorization: Bearer <token>
    """
    user = account_service.get_user_by_email(request.email)
    if not user or not verify_password(request.password, user["password_hash"]):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not user["is_active"]:
        raise HTTPException(status_code=403, detail="Account deactivated")
    account_service.ensure_not_suspended(user)

    token = create_access_token(data={"sub": str(user["user_id"]), "role": user["role"]})
    return TokenResponse(access_token=token, user_id=user["user_id"], role=user["role"])


@router.get("/me", response_model=UserResponse)
async def get_me(user: dict = Depends(get_current_user)):
    return UserResponse(**user)


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(user: dict = Depends(get_current_user)):
    return DashboardResponse(**account_service.get_dashboard(user["user_id"]))
