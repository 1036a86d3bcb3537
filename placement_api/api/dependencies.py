"""
Shared request dependencies
"""
from typing import Optional

from fastapi import Header, HTTPException


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Learner identity, as forwarded by the authenticating gateway in X-User-Id
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id
