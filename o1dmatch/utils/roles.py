from fastapi import Depends, HTTPException

from .dependencies import get_current_user


def _roles_required(*roles: str, label: str):
    def check_role(user=Depends(get_current_user)):
        if user.get("role") not in roles:
            raise HTTPException(status_code=403, detail=f"{label} access only")
        return user
    return check_role


admin_only = _roles_required("admin", label="Admin")
talent_only = _roles_required("talent", label="Talent")
# Agencies create and own letters on behalf of their client employer.
employer_only = _roles_required("employer", "agency", label="Employer")
