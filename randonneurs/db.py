from __future__ import annotations

from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session, DeclarativeBase

from .settings import settings

class Base(DeclarativeBase):
    pass

_engine = None
_SessionLocal = None

def init_db(db_url: Optional[str] = None) -> None:
    """Create the engine and tables. Passing a url rebinds to that database."""
    global _engine, _SessionLocal
    if _engine is not None and db_url is None:
        return
    if _engine is not None:
        _engine.dispose()
    url = db_url or settings.RO_DB_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    _engine = create_engine(url, future=True, echo=False, connect_args=connect_args)
    _SessionLocal = sessionmaker(bind=_engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)
    from . import models  # noqa
    Base.metadata.create_all(bind=_engine)

def new_session() -> Session:
    if _SessionLocal is None:
        init_db()
    return _SessionLocal()

def get_session() -> Iterator[Session]:
    db = new_session()
    try:
        yield db
    finally:
        db.close()
