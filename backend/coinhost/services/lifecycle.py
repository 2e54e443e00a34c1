import re

from sqlalchemy import update

from coinhost.errors import (
    ExternalServiceError,
    ResourceExpired,
    ResourceNotActive,
    ResourceNotFound,
    ValidationError,
)
from coinhost.models import (
    Server,
    SERVER_ACTIVE,
    SERVER_EXPIRED,
    SERVER_STOPPED,
    TX_ADMIN_RECHARGE,
    TX_RESOURCE_PURCHASE,
    utcnow,
)
from coinhost.plans import plan_expiry, plan_to_dict, select_plan


NAME_MIN_LEN = 3
NAME_MAX_LEN = 100
_DIGITS = re.compile(r'^\d+$')


class ServerLifecycle:
    """State machine for provisioned servers.

    active -> expired   (sweeper, admin force-expire, lazily on pairing)
    active -> stopped   (owner)

    Every transition is a conditional write on ``status = 'active'``; a write
    that matches no row lost a race and leaves the server untouched. External
    stop calls always run after the local commit and never undo it.
    """

    def __init__(self, store, ledger, plans, control, clock=utcnow, logger=None):
        self.store = store
        self.ledger = ledger
        self.plans = tuple(plans)
        self.control = control
        self.clock = clock
        self.logger = logger

    def plan_catalog(self):
        return [plan_to_dict(p, i) for i, p in enumerate(self.plans)]

    def create_server(self, account_id, name, plan_index) -> Server:
        if not isinstance(name, str) or not (NAME_MIN_LEN <= len(name.strip()) <= NAME_MAX_LEN):
            raise ValidationError('Server name must be between 3-100 characters', field='name')
        name = name.strip()
        plan = select_plan(self.plans, plan_index)
        now = self.clock()

        with self.store.atomic() as session:
            self.ledger.apply_transaction(account_id, -plan.price, TX_RESOURCE_PURCHASE, f"Purchased server: {name}")
            server = Server(
                account_id=account_id,
                name=name,
                coins_used=plan.price,
                status=SERVER_ACTIVE,
                expires_at=plan_expiry(plan, now),
                created_at=now,
                updated_at=now,
            )
            session.add(server)
            session.flush()
        self._log('info', f"[server-create] server={server.id} account={account_id} plan={plan.label} coins={plan.price}")
        return server

    def list_servers(self, account_id):
        return (
            Server.query.filter_by(account_id=account_id)
            .order_by(Server.created_at.desc(), Server.id.desc())
            .all()
        )

    def list_all_servers(self, page=1, limit=20):
        query = Server.query.order_by(Server.created_at.desc(), Server.id.desc())
        total = query.count()
        servers = query.offset((page - 1) * limit).limit(limit).all()
        return servers, total

    def get_server(self, server_id, account_id, is_admin=False) -> Server:
        server = self.store.session.get(Server, server_id)
        if server is None or (server.account_id != account_id and not is_admin):
            raise ResourceNotFound('Server not found')
        return server

    def stop_server(self, server_id, account_id) -> Server:
        server = self.get_server(server_id, account_id)
        with self.store.atomic() as session:
            won, session_ref = self._transition(server.id, SERVER_STOPPED)
            if not won:
                raise ResourceNotActive(f"Server is {self._current_status(server.id)}")
            # Pairing only records a session on active rows, so nothing can land after this
            session.execute(
                update(Server)
                .where(Server.id == server.id, Server.status == SERVER_STOPPED)
                .values(session_id=None)
                .execution_options(synchronize_session=False)
            )
        self._log('info', f"[server-stop] server={server.id} account={account_id}")
        self.release_session(server.id, session_ref)
        return self._reload(server)

    def expire_server(self, server_id, reset_deadline=False, now=None):
        """Move an active server to ``expired``; returns ``(won, session_ref)``.

        ``reset_deadline`` overwrites ``expires_at`` with the transition time,
        which is what an administrator's force-expire does. The caller owns the
        enclosing unit and the follow-up stop call.
        """
        now = now or self.clock()
        values = {'updated_at': now}
        if reset_deadline:
            values['expires_at'] = now
        return self._transition(server_id, SERVER_EXPIRED, **values)

    def force_expire(self, server_id):
        server = self.store.session.get(Server, server_id)
        if server is None:
            raise ResourceNotFound('Server not found')
        previous_status = server.status
        with self.store.atomic():
            won, session_ref = self.expire_server(server.id, reset_deadline=True)
            if not won:
                raise ResourceNotActive(f"Server is {self._current_status(server.id)}")
        self._log('info', f"[server-force-expire] server={server.id}")
        self.release_session(server.id, session_ref)
        return self._reload(server), previous_status

    def delete_server(self, server_id, refund=False) -> dict:
        server = self.store.session.get(Server, server_id)
        if server is None:
            raise ResourceNotFound('Server not found')
        snapshot = {'id': server.id, 'server_name': server.name}
        session_ref = server.session_id
        was_active = server.status == SERVER_ACTIVE
        with self.store.atomic() as session:
            if refund and server.coins_used > 0:
                self.ledger.apply_transaction(
                    server.account_id, server.coins_used, TX_ADMIN_RECHARGE,
                    f"Refund for deleted server: {server.name}",
                )
            session.delete(server)
        self._log('info', f"[server-delete] server={snapshot['id']} refund={bool(refund)}")
        if was_active:
            self.release_session(snapshot['id'], session_ref)
        return snapshot

    def request_pairing(self, server_id, account_id, phone_number) -> dict:
        server = self.get_server(server_id, account_id)
        if server.status != SERVER_ACTIVE:
            raise ResourceNotActive('Server not found or inactive')
        if not isinstance(phone_number, str) or not _DIGITS.match(phone_number):
            raise ValidationError('Valid phone number required', field='phone_number')

        now = self.clock()
        if server.expires_at is not None and server.expires_at < now:
            with self.store.atomic():
                won, session_ref = self.expire_server(server.id, now=now)
            if won:
                self._log('info', f"[server-expire-on-access] server={server.id}")
                self.release_session(server.id, session_ref)
            raise ResourceExpired('Server has expired')

        result = self.control.start(phone_number)
        if result.session_reference:
            with self.store.atomic():
                self._transition(server.id, SERVER_ACTIVE, session_id=result.session_reference)
        return {
            'pairingCode': result.pairing_code,
            'serverId': server.id,
            'phoneNumber': phone_number,
        }

    def release_session(self, server_id, session_ref) -> bool:
        """Best-effort stop on the control service; failures are only logged."""
        if not session_ref:
            return False
        try:
            self.control.stop(session_ref)
        except ExternalServiceError as exc:
            self._log('warning', f"[stop-failed] server={server_id} session={session_ref} error={exc}")
            return False
        except Exception:
            self._log('exception', f"[stop-failed] server={server_id} session={session_ref}")
            return False
        self._log('info', f"[stop-sent] server={server_id} session={session_ref}")
        return True

    def _transition(self, server_id, to_status, **values):
        """Conditional write out of ``active``; returns ``(won, session_ref)``.

        The session reference is read back by the same statement that moves
        the row, so a session recorded just before the write is never missed.
        """
        values.setdefault('updated_at', self.clock())
        row = self.store.session.execute(
            update(Server)
            .where(Server.id == server_id, Server.status == SERVER_ACTIVE)
            .values(status=to_status, **values)
            .returning(Server.session_id)
            .execution_options(synchronize_session=False)
        ).first()
        if row is None:
            return False, None
        return True, row.session_id

    def _current_status(self, server_id):
        server = self.store.session.get(Server, server_id, populate_existing=True)
        return server.status if server is not None else 'gone'

    def _reload(self, server):
        self.store.session.refresh(server)
        return server

    def _log(self, level, message):
        if self.logger is not None:
            getattr(self.logger, level)(message)
