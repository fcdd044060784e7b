import logging
from contextlib import contextmanager
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlmodel import SQLModel, Session, create_engine

from .errors import StoreUnavailable
from .settings import settings

logger = logging.getLogger(__name__)


def build_engine(url: str, echo: bool = False) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # Handlers and scheduler jobs share the engine across threads
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, echo=echo, connect_args=connect_args)


engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)


def init_db(bind: Engine = None):
    SQLModel.metadata.create_all(bind or engine)


@contextmanager
def get_session(bind: Engine = None):
    with Session(bind or engine, expire_on_commit=False) as session:
        yield session


@contextmanager
def store_session(bind: Engine = None):
    """Session whose connection-level failures surface as a retryable StoreUnavailable."""
    try:
        with get_session(bind) as session:
            yield session
    except OperationalError as exc:
        logger.warning(f"Storage operation failed: {exc.orig or exc}")
        raise StoreUnavailable("storage temporarily unavailable") from exc
