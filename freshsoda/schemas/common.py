from pydantic import BaseModel
from typing import Literal

RoleLiteral = Literal["admin", "driver"]

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: RoleLiteral | None = None

class ActorOut(BaseModel):
    id: str
    role: RoleLiteral
