from dataclasses import dataclass
from enum import Enum

from jobhub.core.errors import PermissionDeniedError


class Role(str, Enum):
    APPLICANT = "applicant"
    RECRUITER = "recruiter"
    ADMIN_COMPANY = "admin_company"
    HR_MANAGER = "hr_manager"
    ADMIN = "admin"


@dataclass(slots=True)
class Principal:
    """Identity asserted by the upstream gateway; never verified here."""

    user_id: str
    role: str
    company_id: str | None = None

    def has_role(self, *roles: Role) -> bool:
        return self.role in {role.value for role in roles}

    def require_role(self, *roles: Role, message: str | None = None) -> None:
        if not self.has_role(*roles):
            allowed = ", ".join(sorted(role.value for role in roles))
            raise PermissionDeniedError(message or f"role must be one of: {allowed}")

    def is_company_admin_of(self, company_id: str) -> bool:
        return self.has_role(Role.ADMIN_COMPANY) and self.company_id is not None and self.company_id == company_id
