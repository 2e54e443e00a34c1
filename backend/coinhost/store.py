from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from coinhost.errors import StorageError


class LedgerStore:
    """Explicit handle on the relational store shared by every service.

    ``atomic()`` units nest: only the outermost one commits, and any
    exception escaping any level rolls the whole unit back.
    """

    def __init__(self, db, logger=None):
        self.db = db
        self.logger = logger

    @property
    def session(self):
        return self.db.session

    @contextmanager
    def atomic(self):
        session = self.db.session()
        depth = session.info.get('atomic_depth', 0)
        session.info['atomic_depth'] = depth + 1
        try:
            yield session
            if depth == 0:
                session.commit()
        except SQLAlchemyError as exc:
            if depth == 0:
                session.rollback()
                if self.logger is not None:
                    self.logger.warning(f"[store-rollback] {exc.__class__.__name__}: {exc}")
            raise StorageError(str(exc)) from exc
        except Exception:
            if depth == 0:
                session.rollback()
            raise
        finally:
            session.info['atomic_depth'] = depth
