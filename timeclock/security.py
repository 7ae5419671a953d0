from __future__ import annotations

from typing import Any, Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from timeclock.errors import ApiError
from timeclock.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)

ROLE_SUPERADMIN = "superadmin"
ROLE_ADMIN = "admin"
ROLE_HR_MANAGER = "hr_manager"
ROLE_TERMINAL = "terminal"

KNOWN_ROLES: tuple[str, ...] = (ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_HR_MANAGER, ROLE_TERMINAL)
REPORT_ROLES: tuple[str, ...] = (ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_HR_MANAGER)
MANAGEMENT_ROLES: tuple[str, ...] = (ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_HR_MANAGER)


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    if not settings.jwt_secret:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token verification is not configured.")
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.")

    if payload.get("role") not in KNOWN_ROLES:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")

    return payload


def require_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    payload = decode_token(credentials.credentials)

    request.state.actor = str(payload.get("role"))
    request.state.actor_id = str(payload.get("username") or payload.get("sub"))
    return payload


def require_roles(*roles: str) -> Callable[..., dict[str, Any]]:
    unknown = [role for role in roles if role not in KNOWN_ROLES]
    if unknown:
        raise ValueError(f"Unknown roles: {', '.join(unknown)}")
    allowed = frozenset(roles)

    def _dependency(claims: dict[str, Any] = Depends(require_user)) -> dict[str, Any]:
        if claims.get("role") not in allowed:
            raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
        return claims

    return _dependency


require_reports = require_roles(*REPORT_ROLES)
require_management = require_roles(*MANAGEMENT_ROLES)
require_superadmin = require_roles(ROLE_SUPERADMIN)
