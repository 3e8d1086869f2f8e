from fastapi import APIRouter, status

from adstudio.api.dependencies import CurrentUser, DatabaseSession
from adstudio.api.schemas import RefreshTokenRequest, TokenResponse, UserCreate, UserLogin, UserResponse
from adstudio.core.config import settings
from adstudio.core.errors import Forbidden, Unauthorized, ValidationFailed
from adstudio.core.security import (
    REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    get_password_hash,
    verify_password,
    verify_token,
)
from adstudio.models import TransactionType, User
from adstudio.services import CreditLedger

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _tokens(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(data={"sub": str(user.id), "email": user.email}),
        refresh_token=create_refresh_token(data={"sub": str(user.id)}),
        expires_in=settings.jwt_access_token_expire_minutes * 60,
    )


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description=f"""
Creates an account and grants the signup bonus ({settings.signup_bonus_credits} credits).

**Password:** at least 8 characters, with letters and numbers.
    """,
)
async def register(user_data: UserCreate, db: DatabaseSession) -> User:
    if db.query(User).filter(User.email == user_data.email).first():
        raise ValidationFailed("Email already registered")

    user = User(
        email=user_data.email,
        password_hash=get_password_hash(user_data.password),
        name=user_data.name,
        credits=0,
    )
    db.add(user)
    db.flush()

    if settings.signup_bonus_credits > 0:
        CreditLedger(db).grant(
            user.id,
            settings.signup_bonus_credits,
            TransactionType.SIGNUP,
            description="Signup bonus",
            reference=f"signup:{user.id}",
        )
    db.commit()
    db.refresh(user)
    return user


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login",
    description="""
Authenticates the user and returns JWT tokens.

```
Authorization: Bearer {access_token}
```
    """,
)
async def login(credentials: UserLogin, db: DatabaseSession) -> TokenResponse:
    user = db.query(User).filter(User.email == credentials.email).first()

    if not user or not verify_password(credentials.password, user.password_hash):
        raise Unauthorized("Invalid email or password")

    if not user.is_active:
        raise Forbidden("User account is inactive")

    return _tokens(user)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh token",
    description="Exchanges a refresh_token for a new token pair.",
)
async def refresh_token(request: RefreshTokenRequest, db: DatabaseSession) -> TokenResponse:
    payload = verify_token(request.refresh_token, token_type=REFRESH_TOKEN)
    if payload is None:
        raise Unauthorized("Invalid refresh token")

    user = db.query(User).filter(User.id == payload.get("sub")).first()
    if not user or not user.is_active:
        raise Unauthorized("User not found")

    return _tokens(user)


@router.get("/me", response_model=UserResponse, summary="Current user")
async def get_current_user_info(current_user: CurrentUser) -> User:
    return current_user
