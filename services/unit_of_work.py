"""Transaction scope for multi-entity writes."""
from contextlib import contextmanager

from extensions import db

_DEPTH_KEY = 'atomic_depth'


@contextmanager
def atomic():
    """Run the enclosed writes as one unit of work.

    The outermost scope commits on success and rolls back on any exception;
    nested scopes join the outer transaction, so services can compose each
    other's atomic operations.
    """
    session = db.session()
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        yield session
        if depth == 0:
            session.commit()
    except Exception:
        if depth == 0:
            session.rollback()
        raise
    finally:
        session.info[_DEPTH_KEY] = depth


def lock(model, ident):
    """Load a row for update inside the current unit of work.

    Row locks apply on databases that support SELECT ... FOR UPDATE; models
    with a version column additionally fail on a concurrent write at flush.
    """
    return db.session.execute(
        db.select(model)
        .where(model.id == ident)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
