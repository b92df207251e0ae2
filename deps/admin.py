

# deps/admin.py
from fastapi import Depends, HTTPException, status

from deps.auth import get_current_user, CurrentUser
from deps.services import get_store
from settings import settings


def require_admin(
    user: CurrentUser = Depends(get_current_user),
    store=Depends(get_store),
) -> CurrentUser:
    record = store.get_user(user.user_id)
    allowed = settings.admin_emails()

    if record is None or (record.email or "").strip().lower() not in allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="ADMIN_REQUIRED",
        )
    return user
