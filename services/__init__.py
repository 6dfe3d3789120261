import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from models import db
from services.errors import PersistenceError, ServiceError

logger = logging.getLogger(__name__)

_UNIT_OF_WORK_KEY = "sav_unit_of_work"


@contextmanager
def transaction():
    """
    One unit of work: commit on success, roll everything back otherwise.

    Nested calls join the outermost unit, so composed operations (accept a
    request = reserve slot + create intervention) are all-or-nothing.
    Business errors are re-raised untouched; storage errors become
    PersistenceError so they never look like a rule violation.
    """
    info = db.session.info
    if info.get(_UNIT_OF_WORK_KEY):
        yield db.session
        return

    info[_UNIT_OF_WORK_KEY] = True
    try:
        yield db.session
        db.session.commit()
    except ServiceError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Persistence failure, transaction rolled back")
        raise PersistenceError() from exc
    except Exception:
        db.session.rollback()
        raise
    finally:
        info.pop(_UNIT_OF_WORK_KEY, None)
