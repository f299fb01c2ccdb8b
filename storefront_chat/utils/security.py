from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from storefront_chat.config import settings


ALGORITHM = "HS256"


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {"id": user_id, "iat": now, "exp": now + timedelta(minutes=minutes)}
    return jwt.encode(payload, settings.ACCESS_TOKEN_SECRET, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    # raises jwt.InvalidTokenError (incl. ExpiredSignatureError)
    return jwt.decode(token, settings.ACCESS_TOKEN_SECRET, algorithms=[ALGORITHM])
