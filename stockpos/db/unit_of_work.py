"""
One database transaction per logical operation.

Services open exactly one ``unit_of_work`` per public operation. Nested use
(a service calling a helper that also opens one) joins the outer unit: only
the outermost block commits, and any exception rolls the whole unit back.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stockpos.core.errors import ConflictError, StorageError

_DEPTH_KEY = "stockpos.uow_depth"


def in_unit_of_work(db: Session) -> bool:
    return db.info.get(_DEPTH_KEY, 0) > 0


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    depth = db.info.get(_DEPTH_KEY, 0)
    db.info[_DEPTH_KEY] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except BaseException as exc:
        if depth == 0:
            db.rollback()
            if isinstance(exc, IntegrityError):
                raise ConflictError("Record conflicts with existing data") from exc
            if isinstance(exc, SQLAlchemyError):
                raise StorageError("Storage failure, no changes were applied") from exc
        raise
    finally:
        db.info[_DEPTH_KEY] = depth
