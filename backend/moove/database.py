from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from moove.config import settings

_connect_args = (
    {"check_same_thread": False}
    if settings.DATABASE_URL.startswith("sqlite")
    else {}
)

engine = create_engine(settings.DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency yielding a session that is closed after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables registered on ``Base``."""
    from moove import models  # noqa: F401  (registers the tables)

    Base.metadata.create_all(bind=engine)
