import threading
import time
from datetime import timedelta

from coinhost.models import Server, SERVER_ACTIVE, SERVER_EXPIRED


class ExpirationSweeper:
    """Expires servers past their deadline and purges long-expired ones.

    Both passes are idempotent and safe to run while owners stop servers:
    the expire transition only lands on rows that are still active.
    """

    def __init__(self, store, lifecycle, retention_days=7, logger=None):
        self.store = store
        self.lifecycle = lifecycle
        self.retention = timedelta(days=retention_days)
        self.logger = logger
        self._stop_event = threading.Event()
        self._thread = None

    def sweep_expired(self, now=None):
        """Expire every active server whose deadline has passed.

        Returns the ids this pass actually transitioned. Stop calls for their
        sessions are issued after the commit, one by one; a failed call is
        logged and the rest of the batch carries on.
        """
        now = now or self.lifecycle.clock()
        candidate_ids = [
            row.id for row in
            Server.query.with_entities(Server.id)
            .filter(Server.status == SERVER_ACTIVE, Server.expires_at.isnot(None), Server.expires_at <= now)
            .all()
        ]
        expired = []
        with self.store.atomic():
            for server_id in candidate_ids:
                won, session_ref = self.lifecycle.expire_server(server_id, now=now)
                if won:
                    expired.append((server_id, session_ref))

        stopped = 0
        for server_id, session_ref in expired:
            if self.lifecycle.release_session(server_id, session_ref):
                stopped += 1
        self._log('info', f"[sweep] expired={len(expired)} sessions_stopped={stopped} candidates={len(candidate_ids)}")
        return [server_id for server_id, _ in expired]

    def purge_expired(self, now=None):
        """Delete servers that have sat in ``expired`` longer than the retention window."""
        now = now or self.lifecycle.clock()
        cutoff = now - self.retention
        with self.store.atomic() as session:
            count = (
                session.query(Server)
                .filter(Server.status == SERVER_EXPIRED, Server.updated_at <= cutoff)
                .delete(synchronize_session=False)
            )
        self._log('info', f"[purge] removed={count} cutoff={cutoff.isoformat()}")
        return count

    def start(self, app):
        """Run both passes on their own cadences in a daemon worker.

        No-ops in TESTING mode or when ENABLE_SWEEPER is off.
        """
        if app.config.get('TESTING') or not app.config.get('ENABLE_SWEEPER', True):
            return None
        if self._thread is not None and self._thread.is_alive():
            return self._thread

        sweep_every = max(1, int(app.config.get('EXPIRE_SWEEP_INTERVAL_SEC', 300)))
        purge_every = max(1, int(app.config.get('PURGE_INTERVAL_SEC', 86400)))
        try:
            hb = int(app.config.get('SWEEPER_HEARTBEAT_SEC', 0))
        except (TypeError, ValueError):
            hb = 0

        def _worker():
            next_sweep = time.monotonic()
            next_purge = time.monotonic() + purge_every
            last_beat = time.monotonic()
            while not self._stop_event.is_set():
                current = time.monotonic()
                if current >= next_sweep:
                    self._run_pass(app, self.sweep_expired)
                    next_sweep = current + sweep_every
                if current >= next_purge:
                    self._run_pass(app, self.purge_expired)
                    next_purge = current + purge_every
                if hb > 0 and current - last_beat >= hb:
                    last_beat = current
                    app.logger.info(
                        f"[sweeper-heartbeat] next_sweep_in={max(0, int(next_sweep - current))}s "
                        f"next_purge_in={max(0, int(next_purge - current))}s"
                    )
                delay = max(0.0, min(next_sweep, next_purge) - time.monotonic())
                if hb > 0:
                    delay = min(delay, hb)
                self._stop_event.wait(delay)

        self._stop_event.clear()
        self._thread = threading.Thread(target=_worker, name='coinhost-sweeper', daemon=True)
        self._thread.start()
        app.logger.info(f"[sweeper-start] sweep_every={sweep_every}s purge_every={purge_every}s")
        return self._thread

    def stop(self, timeout=5):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run_pass(self, app, func):
        with app.app_context():
            try:
                func()
            except Exception:
                app.logger.exception(f"[sweeper-error] {func.__name__} failed")
            finally:
                self.store.db.session.remove()

    def _log(self, level, message):
        if self.logger is not None:
            getattr(self.logger, level)(message)
