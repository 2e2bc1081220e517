from __future__ import annotations

import secrets
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from affiliate_ledger.core.config import get_settings
from affiliate_ledger.core.enums import Role


security = HTTPBasic(auto_error=False)


@dataclass(frozen=True)
class Principal:
    username: str
    role: Role


def _matches(credentials: HTTPBasicCredentials, username: str, password: str) -> bool:
    valid_user = secrets.compare_digest(credentials.username, username)
    valid_pass = secrets.compare_digest(credentials.password, password)
    return valid_user and valid_pass


def require_principal(credentials: HTTPBasicCredentials | None = Depends(security)) -> Principal:
    settings = get_settings()
    if credentials is None:
        raise HTTPException(status_code=401, detail="Authentication required", headers={"WWW-Authenticate": "Basic"})

    if _matches(credentials, settings.basic_auth_username, settings.basic_auth_password):
        return Principal(username=credentials.username, role=Role.ADMIN)
    if settings.reviewer_enabled and _matches(
        credentials,
        settings.payout_reviewer_username or "",
        settings.payout_reviewer_password or "",
    ):
        return Principal(username=credentials.username, role=Role.REVIEWER)
    raise HTTPException(status_code=401, detail="Invalid credentials", headers={"WWW-Authenticate": "Basic"})


def require_basic_auth(principal: Principal = Depends(require_principal)) -> str:
    return principal.username


def require_role(*roles: Role) -> Callable[..., str]:
    allowed = frozenset(roles)

    def _dependency(principal: Principal = Depends(require_principal)) -> str:
        if principal.role not in allowed:
            raise HTTPException(status_code=403, detail=f"Role {principal.role} may not perform this action")
        return principal.username

    return _dependency


require_admin = require_role(Role.ADMIN)
require_reviewer = require_role(Role.ADMIN, Role.REVIEWER)
