from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool
from freshsoda.config import settings


class Base(DeclarativeBase):
    pass


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    kw: dict = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in url or url.rstrip("/").endswith("sqlite:"):
        # one shared connection, otherwise every session sees an empty db
        kw["poolclass"] = StaticPool
    return kw


engine = create_engine(settings.DB_URL, **_engine_kwargs(settings.DB_URL))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
