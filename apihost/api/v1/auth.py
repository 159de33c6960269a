"""Identity endpoints: signup, login, current user, password change."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel, EmailStr

from apihost.api.dependencies import CurrentUser, UserServiceDep
from apihost.models.user import User, UserRole
from apihost.services.tokens import create_access_token

router = APIRouter()


# Request/Response Models


class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    name: str
    role: str = UserRole.DEVELOPER.value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    created_at: datetime


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse


def _user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role.value,
        created_at=user.created_at,
    )


@router.post("/signup", response_model=TokenResponse, status_code=201)
async def signup(request: SignupRequest, users: UserServiceDep) -> TokenResponse:
    user = await users.signup(
        email=request.email,
        password=request.password,
        name=request.name,
        role=request.role,
    )
    return TokenResponse(token=create_access_token(user.id), user=_user_to_response(user))


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, users: UserServiceDep) -> TokenResponse:
    user = await users.authenticate(email=request.email, password=request.password)
    return TokenResponse(token=create_access_token(user.id), user=_user_to_response(user))


@router.get("/me", response_model=UserResponse)
async def me(user: CurrentUser) -> UserResponse:
    return _user_to_response(user)


@router.post("/change-password", response_model=UserResponse)
async def change_password(
    request: ChangePasswordRequest, users: UserServiceDep, user: CurrentUser
) -> UserResponse:
    updated = await users.change_password(
        user.id,
        current_password=request.current_password,
        new_password=request.new_password,
    )
    return _user_to_response(updated)
