from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from hkdesk.config import settings

engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create missing tables. Existing tables are left untouched."""
    import hkdesk.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
