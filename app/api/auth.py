import logging
from fastapi import APIRouter, HTTPException, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import Session
from uuid import UUID
from app.models.user import User
from app.schemas.user import UserCreate, UserRead
from app.core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
    get_current_user,
)
from app.database import engine
from app.realtime.change_feed import PROFILES, change_feed
from app.utils.ledger_helpers import commit_or_raise
from app.utils.user_helpers import get_user_by_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

# Registro
@router.post("/register", response_model=UserRead)
def register(user_create: UserCreate):
    with Session(engine) as session:
        if get_user_by_email(session, user_create.email):
            raise HTTPException(status_code=400, detail="Email ya registrado")

        hashed_pwd = get_password_hash(user_create.password)
        user = User(
            email=user_create.email.strip().lower(),
            display_name=user_create.display_name,
            hashed_password=hashed_pwd,
        )
        session.add(user)
        commit_or_raise(session)
        session.refresh(user)

        change_feed.publish(PROFILES, "created", str(user.id))
        logger.info("Usuario registrado: %s", user.id)
        return UserRead(id=user.id, email=user.email, display_name=user.display_name)

# Login
@router.post("/login")
def login(form_data: OAuth2PasswordRequestForm = Depends()):
    with Session(engine) as session:
        user = get_user_by_email(session, form_data.username)
        if not user or not verify_password(form_data.password, user.hashed_password):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciales incorrectas")

        access_token = create_access_token(data={"sub": str(user.id)})
        return {"access_token": access_token, "token_type": "bearer"}

# Ruta protegida
@router.get("/me", response_model=UserRead)
def read_users_me(user_id: UUID = Depends(get_current_user)):
    with Session(engine) as session:
        user = session.get(User, user_id)
        if not user:
            raise HTTPException(status_code=404, detail="Usuario no encontrado")
        return UserRead(id=user.id, email=user.email, display_name=user.display_name)
