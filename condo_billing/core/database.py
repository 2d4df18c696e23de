"""
Database initialization with SQLAlchemy.
Creates the engine, sessions and the transaction helper used by services.
"""

from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from condo_billing.config import settings


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}  # Required for SQLite with FastAPI
    return {}


# Database engine
engine = create_engine(
    settings.database_url,
    connect_args=_connect_args(settings.database_url)
)

# Database session
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base for ORM models
Base = declarative_base()


def get_db():
    """
    FastAPI dependency - returns a database session.
    Closes the session automatically after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """
    Runs a block as one atomic unit of work.
    Commits on success, rolls back and re-raises on any error.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def init_db(bind=None):
    """
    Initializes the database - creates all tables.
    """
    from condo_billing.models import (  # noqa: F401
        Unit,
        TenantSettings,
        MeterReading,
        BillingAdjustment,
        Bill,
        Payment,
        BillPayment,
        UnitAdvanceBalance,
    )

    Base.metadata.create_all(bind=bind or engine, checkfirst=True)
    print("[OK] Database initialized")


if __name__ == "__main__":
    init_db()
