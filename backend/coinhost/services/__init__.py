"""Domain services: coin ledger, server lifecycle, referrals, sweeper.

This package contains the core logic that HTTP routes and CLI commands
import, keeping transport concerns separated from ledger and lifecycle
rules. Services are built once per app and share one LedgerStore.
"""

from collections import namedtuple

from flask import current_app

from coinhost.control import ResourceControlClient
from coinhost.store import LedgerStore
from .accounts import AccountService
from .admin import AdminService
from .ledger import CoinLedger
from .lifecycle import ServerLifecycle
from .sweeper import ExpirationSweeper


Services = namedtuple('Services', ['store', 'ledger', 'accounts', 'lifecycle', 'sweeper', 'admin'])


def build_services(app, db, control=None, clock=None):
    cfg = app.config
    logger = app.logger
    store = LedgerStore(db, logger=logger)
    ledger = CoinLedger(store, logger=logger)
    if control is None:
        control = ResourceControlClient(
            cfg.get('RESOURCE_CONTROL_URL'),
            timeout=float(cfg.get('RESOURCE_CONTROL_TIMEOUT_SEC', 10)),
        )
    lifecycle_kwargs = {'logger': logger}
    if clock is not None:
        lifecycle_kwargs['clock'] = clock
    lifecycle = ServerLifecycle(store, ledger, cfg['SERVER_PLANS'], control, **lifecycle_kwargs)
    accounts = AccountService(
        store,
        ledger,
        signup_bonus=int(cfg.get('SIGNUP_BONUS_COINS', 10)),
        referral_bonus=int(cfg.get('REFERRAL_BONUS_COINS', 5)),
        logger=logger,
    )
    sweeper = ExpirationSweeper(store, lifecycle, retention_days=int(cfg.get('EXPIRED_RETENTION_DAYS', 7)), logger=logger)
    admin = AdminService(store, ledger, lifecycle, logger=logger)
    return Services(store, ledger, accounts, lifecycle, sweeper, admin)


def get_services(app=None) -> Services:
    app = app or current_app
    return app.extensions['coinhost']
