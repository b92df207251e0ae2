from __future__ import annotations

from typing import Any, Dict

from jose import jwt, JWTError

from settings import settings


# -----------------------
# Access tokens (JWT)
# Issued by the auth service; this service only needs to read them.
# -----------------------
def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        return {}
