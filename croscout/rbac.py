from fastapi import HTTPException, status


def require_role(payload: dict, allowed_roles: list[str]):
    role = payload.get("role")

    if not isinstance(role, str) or not role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Role missing in token",
        )

    if role.lower() not in {r.lower() for r in allowed_roles}:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access forbidden for this role",
        )
