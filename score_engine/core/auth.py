import logging
from datetime import datetime, timedelta, timezone
from typing import List
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from score_engine.core.config import APP_SECRET

logger = logging.getLogger(__name__)

STUDENT = "student"
ADMIN = "admin"
ALGORITHM = "HS256"

class TokenData(BaseModel):
    sub: str
    roles: List[str]

bearer = HTTPBearer()

def create_token(user_id: str, roles: List[str], ttl_minutes: int = 120) -> str:
    """Issue a bearer token. Identity is issued elsewhere; used by tests and operators."""
    now = datetime.now(timezone.utc)
    return jwt.encode({"sub": user_id, "roles": roles, "iat": now, "exp": now + timedelta(minutes=ttl_minutes)},
                      APP_SECRET, algorithm=ALGORITHM)

def decode_token(token: str) -> TokenData:
    try:
        payload = jwt.decode(token, APP_SECRET, algorithms=[ALGORITHM], options={"require": ["sub", "exp"]})
    except jwt.PyJWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token") from e
    return TokenData(sub=str(payload["sub"]), roles=list(payload.get("roles") or []))

def get_current_user(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> TokenData:
    return decode_token(creds.credentials)

def require_roles(*required: str):
    def checker(user: TokenData = Depends(get_current_user)):
        if not set(user.roles).intersection(required):
            logger.info("User %s with roles %s denied; needs one of %s", user.sub, user.roles, required)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return user
    return checker
