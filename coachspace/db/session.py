from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from ..config import get_settings

settings = get_settings()


def _connect_args(database_url: str, statement_timeout_ms: int) -> dict:
    backend = make_url(database_url).get_backend_name()
    if backend == "postgresql":
        return {"options": f"-c statement_timeout={statement_timeout_ms}"}
    if backend == "sqlite":
        return {"timeout": statement_timeout_ms / 1000, "check_same_thread": False}
    return {}


engine = create_engine(
    settings.database_url,
    future=True,
    echo=False,
    connect_args=_connect_args(settings.database_url, settings.db_statement_timeout_ms),
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
Base = declarative_base()


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
