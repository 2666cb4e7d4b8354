from sqlmodel import SQLModel, Session, create_engine

from app.core.config import DATABASE_URL, SQL_ECHO


def _connect_args() -> dict:
    if DATABASE_URL.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(DATABASE_URL, echo=SQL_ECHO, connect_args=_connect_args())

def create_db_and_tables():
    import app.models  # noqa: F401  registra las tablas en el metadata
    SQLModel.metadata.create_all(engine)

def drop_db_and_tables():
    import app.models  # noqa: F401
    SQLModel.metadata.drop_all(engine)

def get_session():
    with Session(engine) as session:
        yield session
