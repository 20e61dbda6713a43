from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from sqlalchemy.orm import Session

from freshsoda.db import get_db
from freshsoda.services.data import DataServiceError, open_data_service
from freshsoda.util.security import decode_token

auth_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def require_auth(creds: HTTPAuthorizationCredentials | None = Depends(auth_scheme)) -> Actor:
    if not creds:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        data = decode_token(creds.credentials)
        return Actor(id=data["sub"], role=data.get("role") or "driver")
    except (jwt.PyJWTError, KeyError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def require_role(*roles: str):
    def _dep(actor: Actor = Depends(require_auth)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(status_code=403, detail=f"Requires role: {' or '.join(roles)}")
        return actor
    return _dep


async def get_data_service(db: Session = Depends(get_db)):
    try:
        async with open_data_service(db) as data:
            yield data
    except DataServiceError as e:
        raise HTTPException(status_code=502, detail=e.message)
