from datetime import timedelta

from sqlalchemy import func

from coinhost.errors import AccountNotFound
from coinhost.models import Account, Referral, Server, ROLE_ADMIN, SERVER_ACTIVE, SERVER_EXPIRED, utcnow


class AdminService:
    """Privileged operations: balance adjustment, force-expire, delete, stats."""

    def __init__(self, store, ledger, lifecycle, logger=None):
        self.store = store
        self.ledger = ledger
        self.lifecycle = lifecycle
        self.logger = logger

    def adjust_coins(self, account_id, action, amount, description=None):
        if self.store.session.get(Account, account_id) is None:
            raise AccountNotFound(f"Account {account_id} not found")
        previous, new_balance, _ = self.ledger.adjust_by_admin(account_id, action, amount, description)
        return {
            'previousCoins': previous,
            'newCoins': new_balance,
            'difference': new_balance - previous,
        }

    def force_expire(self, server_id):
        server, previous_status = self.lifecycle.force_expire(server_id)
        return {
            'id': server.id,
            'name': server.name,
            'user': server.account.username if server.account else None,
            'previousStatus': previous_status,
            'newStatus': server.status,
        }

    def delete_server(self, server_id, refund=False):
        return self.lifecycle.delete_server(server_id, refund=refund)

    def stats(self):
        session = self.store.session
        count = lambda q: q.scalar() or 0  # noqa: E731
        return {
            'total_users': count(session.query(func.count(Account.id))),
            'admin_count': count(session.query(func.count(Account.id)).filter(Account.role == ROLE_ADMIN)),
            'total_servers': count(session.query(func.count(Server.id))),
            'active_servers': count(session.query(func.count(Server.id)).filter(Server.status == SERVER_ACTIVE)),
            'expired_servers': count(session.query(func.count(Server.id)).filter(Server.status == SERVER_EXPIRED)),
            'total_coins': int(count(session.query(func.sum(Account.coins)))),
            'total_referrals': count(session.query(func.count(Referral.id))),
        }

    def recent_activity(self, now=None, days=7, limit=10):
        since = (now or utcnow()) - timedelta(days=days)
        activity = [
            {'type': 'user', 'name': a.username, 'email': a.email, 'created_at': a.created_at}
            for a in Account.query.filter(Account.created_at >= since).order_by(Account.created_at.desc()).limit(limit)
        ]
        activity += [
            {'type': 'server', 'name': s.name, 'email': s.account.email, 'created_at': s.created_at}
            for s in Server.query.filter(Server.created_at >= since).order_by(Server.created_at.desc()).limit(limit)
        ]
        activity.sort(key=lambda item: item['created_at'], reverse=True)
        for item in activity:
            item['created_at'] = item['created_at'].isoformat()
        return activity[:limit]
