"""Auth routes: login, refresh, current session, logout.

Route overview:
  POST /login     Email + password login
  POST /refresh   Exchange a refresh token for new access + refresh tokens
  GET  /me        The current user profile + permissions
  POST /logout    Revoke the presented access token
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.auth.deps import get_current_user
from nutaria.auth.jwt import create_access_token, create_refresh_token, decode_token
from nutaria.auth.password import verify_password
from nutaria.auth.permissions import resolve_permissions
from nutaria.auth.revocation import TokenRevocation
from nutaria.database import get_db
from nutaria.models.user import UserProfile
from nutaria.schemas.auth import LoginRequest, RefreshRequest, TokenResponse, UserOut
from nutaria.schemas.common import MessageResponse

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

def _build_user_out(user: UserProfile, permissions: list[str]) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=user.role.value,
        is_active=user.is_active,
        permissions=permissions,
    )


def _build_token_response(user: UserProfile, permissions: list[str]) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(
            user_id=user.id,
            role=user.role.value,
            permissions=permissions,
        ),
        refresh_token=create_refresh_token(user_id=user.id, role=user.role.value),
        user=_build_user_out(user, permissions),
    )


# ── POST /login ──────────────────────────────────────────────

@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Email + password login. Returns JWTs carrying role and permissions."""
    result = await db.execute(select(UserProfile).where(UserProfile.email == body.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account deactivated")

    permissions = resolve_permissions(user.role.value, user.custom_permissions)
    return _build_token_response(user, permissions)


# ── POST /refresh ────────────────────────────────────────────

@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    payload = decode_token(body.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    result = await db.execute(select(UserProfile).where(UserProfile.id == payload.get("sub")))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    # Re-resolve permissions (may have changed since last token)
    permissions = resolve_permissions(user.role.value, user.custom_permissions)
    return _build_token_response(user, permissions)


# ── GET /me ──────────────────────────────────────────────────

@router.get("/me", response_model=UserOut)
async def me(user: UserProfile = Depends(get_current_user)):
    permissions = resolve_permissions(user.role.value, user.custom_permissions)
    return _build_user_out(user, permissions)


# ── POST /logout ─────────────────────────────────────────────

@router.post("/logout", response_model=MessageResponse)
async def logout(user: UserProfile = Depends(get_current_user)):
    """Blacklist the current access token until it expires."""
    payload: dict = getattr(user, "_token_payload", {})
    token: str = getattr(user, "_token", "")
    if not await TokenRevocation.revoke_token(token, float(payload.get("exp", 0))):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not revoke token",
        )
    return MessageResponse(detail="Logged out")
