from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status


class Role(str, Enum):
    ADMIN = "ADMIN"
    RECEPTION = "RECEPTION"
    GRADING = "GRADING"
    SECRETARY = "SECRETARY"


class SessionState(str, Enum):
    ANONYMOUS = "ANONYMOUS"
    AUTHENTICATED = "AUTHENTICATED"
    SIGNED_OUT = "SIGNED_OUT"


@dataclass
class Principal:
    id: int
    username: str
    role: Role
    active: bool


@dataclass
class AuthSession:
    """Per-request view of who is signed in; set by the session middleware."""

    state: SessionState = SessionState.ANONYMOUS
    principal: Principal | None = None

    @classmethod
    def authenticated(cls, principal: Principal) -> "AuthSession":
        return cls(state=SessionState.AUTHENTICATED, principal=principal)

    @classmethod
    def signed_out(cls) -> "AuthSession":
        return cls(state=SessionState.SIGNED_OUT)

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED and self.principal is not None


ROLE_HOME_PATHS = {
    Role.RECEPTION: "/intake",
    Role.GRADING: "/grading",
    Role.SECRETARY: "/sales",
    Role.ADMIN: "/admin",
}

ROLE_NAV_LINKS = {
    Role.RECEPTION: [("/intake", "Recepción")],
    Role.GRADING: [("/grading", "Clasificación")],
    Role.SECRETARY: [("/sales", "Ventas"), ("/admin/sales-history", "Notas"), ("/admin", "Secretaría")],
    Role.ADMIN: [
        ("/intake", "Recepción"),
        ("/grading", "Clasificación"),
        ("/sales", "Ventas"),
        ("/admin/sales-history", "Notas"),
        ("/admin", "Secretaría"),
    ],
}


def home_path_for(role: Role) -> str:
    return ROLE_HOME_PATHS.get(role, "/login")


def get_auth_session(request: Request) -> AuthSession:
    return getattr(request.state, "auth_session", None) or AuthSession()


def get_current_principal(request: Request) -> Principal:
    auth_session = get_auth_session(request)
    if not auth_session.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    principal = auth_session.principal
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        # ADMIN reaches every screen.
        if principal.role != Role.ADMIN and principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep
