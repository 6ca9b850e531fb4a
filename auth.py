"""
Bearer-token identity for the API.

Token issuance belongs to the login service; here a token only needs a
``sub`` (user id) and a ``role``. Parent and student accounts are looked up
to find the student records linked to them.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from access import Requester
from config import JWT_ALGORITHM, JWT_SECRET
from database import get_repository

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _secret() -> str:
    if not JWT_SECRET:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    return JWT_SECRET


def create_access_token(data: Dict[str, Any], expires_minutes: int = 60 * 24) -> str:
    to_encode = data.copy()
    to_encode.update({"exp": datetime.utcnow() + timedelta(minutes=expires_minutes)})
    return jwt.encode(to_encode, _secret(), algorithm=JWT_ALGORITHM)


def _requester_from_token(token: str, repo) -> Requester:
    try:
        payload = jwt.decode(token, _secret(), algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or not role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    linked = ()
    if role in ("parent", "student"):
        user = repo.find_user(user_id)
        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
        if role == "parent":
            linked = tuple(user.get("linked_student_ids") or ())
        elif user.get("student_id"):
            linked = (user["student_id"],)
    return Requester(user_id=user_id, role=role, linked_student_ids=linked)


def get_optional_requester(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    repo=Depends(get_repository),
) -> Optional[Requester]:
    if not credentials:
        return None
    return _requester_from_token(credentials.credentials, repo)


def get_requester(requester: Optional[Requester] = Depends(get_optional_requester)) -> Requester:
    if requester is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
    return requester


def require_role(*roles: str):
    def dependency(requester: Requester = Depends(get_requester)) -> Requester:
        if requester.role not in roles:
            logger.info("Role %s refused (needs one of %s)", requester.role, ", ".join(roles))
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed for this role")
        return requester
    return dependency
