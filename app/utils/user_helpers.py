from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlmodel import Session, select

from app.models.user import User
from app.schemas.transaction import ProfileRead


def get_user_by_email(session: Session, email: str) -> Optional[User]:
    return session.exec(select(User).where(User.email == email.strip().lower())).first()


def resolve_profiles(session: Session, user_ids: Iterable[UUID]) -> Dict[UUID, ProfileRead]:
    """Resuelve id -> {email, display_name}; los ids desconocidos se omiten."""
    ids = list(set(user_ids))
    if not ids:
        return {}
    users = session.exec(select(User).where(User.id.in_(ids))).all()
    return {
        user.id: ProfileRead(id=user.id, email=user.email, display_name=user.name)
        for user in users
    }


def unknown_user_ids(session: Session, user_ids: Iterable[UUID]) -> List[UUID]:
    ids = set(user_ids)
    known = set(resolve_profiles(session, ids))
    return sorted(ids - known, key=str)
