from datetime import datetime, timezone
from functools import wraps

from sqlalchemy import create_engine, event
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from loguru import logger

from app.core.config import DATABASE_URL
from app.core.errors import StoreUnavailableError

# --- Base (single source of truth) ---
Base = declarative_base()


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}

    kwargs = {"connect_args": {"check_same_thread": False}}
    # in-memory sqlite: every session must share the one connection
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return kwargs


# --- Engine ---
engine = create_engine(
    DATABASE_URL,
    echo=False,
    future=True,
    **_engine_kwargs(DATABASE_URL),
)

# --- Session factory ---
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)

# --- SQL query logging ---
@event.listens_for(engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    logger.debug(f"SQL: {statement} | params={parameters}")

# --- FastAPI dependency ---
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def store_call(fn):
    """
    Wrap a service operation so that transport/transaction failures of the
    underlying store surface as StoreUnavailableError.

    Integrity violations are left alone: the services map those onto
    domain errors themselves. The wrapped function must take the session
    as its first argument.
    """

    @wraps(fn)
    def wrapper(db: Session, *args, **kwargs):
        try:
            return fn(db, *args, **kwargs)
        except IntegrityError:
            db.rollback()
            raise
        except (OperationalError, DBAPIError) as exc:
            db.rollback()
            logger.error(f"Store failure in {fn.__name__}: {exc}")
            raise StoreUnavailableError(
                "store_unavailable",
                "The data store is unavailable, retry later",
                operation=fn.__name__,
            ) from exc

    return wrapper


def utcnow() -> datetime:
    # naive UTC, matching the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)
