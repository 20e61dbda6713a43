from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from freshsoda.schemas.common import Token, ActorOut
from freshsoda.util.security import create_token, verify_pw
from freshsoda.models.core import User
from freshsoda.db import get_db
from freshsoda.deps import Actor, require_auth

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/login", response_model=Token)
def login(phone: str, password: str, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.phone == phone).first()
    if not user or not user.is_active or not verify_pw(user.pass_hash, password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return Token(access_token=create_token(user.id, user.role.value), role=user.role.value)

@router.get("/me", response_model=ActorOut)
def me(actor: Actor = Depends(require_auth)):
    return ActorOut(id=actor.id, role=actor.role)
