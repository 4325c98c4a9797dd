from dataclasses import dataclass, field

from jose import jwt, JWTError
from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .config import JWT_SECRET, JWT_ALGORITHM

bearer_scheme = HTTPBearer(auto_error=False)

_ALLOWED_ROLES = {"customer", "mechanic", "admin"}


@dataclass
class Principal:
    user_id: int
    roles: list[str] = field(default_factory=list)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return self.has_role("admin")


def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
):
    token = None
    if creds and creds.scheme.lower() == "bearer":
        token = creds.credentials

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Bearer token",
        )

    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    request.state.user_sub = payload.get("sub")
    request.state.user_roles = payload.get("roles")
    return payload


def principal_from_claims(payload: dict) -> Principal:
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token subject is not a user id",
        )

    roles = []
    for r in payload.get("roles") or []:
        rr = str(r).strip().lower()
        if rr in _ALLOWED_ROLES and rr not in roles:
            roles.append(rr)

    return Principal(user_id=user_id, roles=roles)


def get_principal(payload: dict = Depends(get_current_user)) -> Principal:
    return principal_from_claims(payload)


def create_access_token(user_id: int, roles: list[str], extra: dict | None = None) -> str:
    """Mint a token the way the identity provider does; used by tooling and tests."""
    claims = {"sub": str(user_id), "roles": roles}
    if extra:
        claims.update(extra)
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)
