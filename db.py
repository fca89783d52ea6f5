from contextlib import contextmanager
from sqlalchemy.exc import OperationalError
from sqlmodel import create_engine, Session
from sqlmodel import SQLModel
from errors import StoreUnavailable
import logging
import threading
import weakref
import os

logger = logging.getLogger(__name__)

DB_FILE = os.path.join(os.path.dirname(__file__), "ridedispatch.db")
_default_url = f"sqlite:///{DB_FILE}"
DATABASE_URL = os.environ.get("DATABASE_URL", _default_url)

# SQLite needs check_same_thread=False and a generous busy timeout; Postgres does not
_connect_args = {"check_same_thread": False, "timeout": 30} if DATABASE_URL.startswith("sqlite") else {}

# Application-level locks keyed by name (e.g. "driver:<id>"). An entry lives
# only while some caller holds a reference to its lock.
locks = weakref.WeakValueDictionary()
locks_lock = threading.Lock()


def get_lock(name: str):
    with locks_lock:
        lock = locks.get(name)
        if lock is None:
            lock = locks[name] = threading.Lock()
        return lock


def driver_lock(driver_id: str):
    return get_lock(f"driver:{driver_id}")


engine = create_engine(DATABASE_URL, echo=False, connect_args=_connect_args)


def init_db():
    # models must be imported so their tables are registered on the metadata
    import models  # noqa: F401
    SQLModel.metadata.create_all(engine)


def get_session():
    return Session(engine, expire_on_commit=False)


@contextmanager
def transaction():
    """Session scope that commits on success and rolls back on any error.

    Connection level failures surface as StoreUnavailable so callers can
    decide whether to retry.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except OperationalError as exc:
        session.rollback()
        logger.warning("store unavailable: %s", exc)
        raise StoreUnavailable("Ride store is temporarily unavailable.") from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
