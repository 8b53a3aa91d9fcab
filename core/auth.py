"""
Authenticated principal and the authorization matrix for CV operations.

The principal is issued by the identity service and arrives pre-validated;
this module only decides whether it may act on a tenant/employee pair.
"""
import logging
import uuid
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from core.exceptions import NotAuthorizedError

logger = logging.getLogger(__name__)


class Role(IntEnum):
    """Roles ordered by privilege so they can be compared with >=."""
    EMPLOYEE = 10
    HR = 20
    HR_MANAGER = 30
    ADMIN = 40
    SUPER_ADMIN = 50

    @classmethod
    def parse(cls, value) -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise NotAuthorizedError(f"Unknown role: {value!r}")


@dataclass(frozen=True)
class Principal:
    user_id: uuid.UUID
    tenant_id: uuid.UUID
    role: Role
    employee_id: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "role", Role.parse(self.role))


def require_role(principal: Principal, minimum: Role) -> None:
    if principal.role < minimum:
        logger.warning(
            f"User {principal.user_id} with role {principal.role.name} "
            f"denied, {minimum.name} required"
        )
        raise NotAuthorizedError(f"Role {minimum.name} or higher required")


def authorize_employee_access(principal: Principal, tenant_id: uuid.UUID, employee_id: int) -> None:
    """Raise NotAuthorizedError unless the principal may act on the employee.

    EMPLOYEE may only act on its own employee_id. HR and above may act on
    any employee of their own tenant. Cross-tenant access is never granted
    here, even for SUPER_ADMIN.
    """
    if principal.tenant_id != tenant_id:
        logger.warning(f"User {principal.user_id} denied: tenant mismatch ({tenant_id})")
        raise NotAuthorizedError("Tenant mismatch")

    if principal.role >= Role.HR:
        return

    if principal.employee_id is None or principal.employee_id != employee_id:
        logger.warning(
            f"User {principal.user_id} denied: employee {principal.employee_id} "
            f"cannot act on employee {employee_id}"
        )
        raise NotAuthorizedError("Employees may only access their own CV")
