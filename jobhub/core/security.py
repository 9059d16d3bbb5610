from fastapi import Header, HTTPException, status

from jobhub.core.auth import Principal, Role

KNOWN_ROLES = {role.value for role in Role}


async def get_principal(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_role: str | None = Header(default=None, alias="X-User-Role"),
    x_company_id: str | None = Header(default=None, alias="X-Company-Id"),
) -> Principal:
    """Identity asserted by the gateway in front of this service."""
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication requires X-User-Id and X-User-Role",
        )

    role = x_user_role.strip().lower()
    if role not in KNOWN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"unknown role: {role}")

    company_id = x_company_id.strip() if x_company_id else None
    return Principal(user_id=x_user_id.strip(), role=role, company_id=company_id or None)
