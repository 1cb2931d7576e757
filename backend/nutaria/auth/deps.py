"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user        → decode JWT, load the profile, return UserProfile
  require_role(...)       → restrict to specific roles
  require_permission(...) → restrict to specific granular permissions
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.auth.jwt import decode_token
from nutaria.auth.permissions import has_permission
from nutaria.auth.revocation import TokenRevocation
from nutaria.database import get_db
from nutaria.models.user import UserProfile, UserRole

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


# ── Core user dependency ────────────────────────────────────

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> UserProfile:
    """Decode the JWT and load the user's profile.

    The decoded payload is stashed on the profile as `_token_payload`
    so `require_permission` can read claims without decoding again.
    """
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if await TokenRevocation.is_revoked(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(UserProfile).where(UserProfile.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    user._token_payload = payload  # type: ignore[attr-defined]
    user._token = token  # type: ignore[attr-defined]
    return user


# ── Role-based access control ───────────────────────────────

def require_role(*roles: UserRole):
    """Dependency factory: restrict to one or more roles.

    Usage:
        @router.get("/admin-only")
        async def admin_view(user: UserProfile = Depends(require_role(UserRole.ADMIN))):
            ...
    """
    async def _check(user: UserProfile = Depends(get_current_user)) -> UserProfile:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(r.value for r in roles)}",
            )
        return user

    return _check


# ── Permission-based access control ─────────────────────────

def require_permission(*perms: str):
    """Dependency factory: restrict to users who hold ALL listed permissions.

    Reads permissions from the token claims embedded at login.

    Usage:
        @router.post("/lot-runs")
        async def create(user: UserProfile = Depends(require_permission("process.manage"))):
            ...
    """
    async def _check(user: UserProfile = Depends(get_current_user)) -> UserProfile:
        payload: dict = getattr(user, "_token_payload", {})
        user_perms: list[str] = payload.get("permissions", [])

        missing = [p for p in perms if not has_permission(user_perms, p)]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(missing)}",
            )
        return user

    return _check
