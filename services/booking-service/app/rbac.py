from fastapi import Depends

from .errors import ForbiddenError
from .security import Principal, get_principal


def require_role(principal: Principal, allowed_roles: list[str]):
    if not principal.roles:
        raise ForbiddenError("Roles missing in token")

    allowed = {r.lower() for r in allowed_roles}
    if allowed.isdisjoint(principal.roles):
        raise ForbiddenError("Access forbidden for this role")


def role_required(*allowed_roles: str):
    """Dependency form of require_role for routes restricted to a role."""

    def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        require_role(principal, list(allowed_roles))
        return principal

    return dependency
