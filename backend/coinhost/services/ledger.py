from sqlalchemy import func, update

from coinhost.errors import AccountNotFound, InsufficientFunds, ValidationError
from coinhost.models import Account, CoinTransaction, TRANSACTION_TYPES, TX_ADMIN_RECHARGE


ADMIN_ACTIONS = ('add', 'subtract', 'set')


def _require_int(value, field):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError('Amount must be integer', field=field)
    return value


class CoinLedger:
    """Applies every balance change as one balance update plus one ledger row."""

    def __init__(self, store, logger=None):
        self.store = store
        self.logger = logger

    def apply_transaction(self, account_id, amount, tx_type, description='') -> CoinTransaction:
        """Add ``amount`` (signed) to the balance and append the matching transaction.

        The balance write is conditional on the result staying non-negative,
        so two concurrent debits can never overdraw the account.
        """
        _require_int(amount, 'amount')
        if tx_type not in TRANSACTION_TYPES:
            raise ValidationError(f"Unknown transaction type: {tx_type}", field='type')

        with self.store.atomic() as session:
            result = session.execute(
                update(Account)
                .where(Account.id == account_id, Account.coins + amount >= 0)
                .values(coins=Account.coins + amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                if session.get(Account, account_id) is None:
                    raise AccountNotFound(f"Account {account_id} not found")
                raise InsufficientFunds('Insufficient coins')
            tx = CoinTransaction(account_id=account_id, amount=amount, type=tx_type, description=description or '')
            session.add(tx)
            session.flush()
            self._refresh_balance(session, account_id)
        return tx

    def adjust_by_admin(self, account_id, action, amount, description=None):
        """Privileged balance change that clamps at zero instead of rejecting.

        The ledger row records the delta actually applied, which differs from
        the requested amount whenever clamping kicks in.
        Returns ``(previous, new, transaction)``.
        """
        if action not in ADMIN_ACTIONS:
            raise ValidationError('Invalid action', field='action')
        _require_int(amount, 'amount')
        if action in ('add', 'subtract') and amount < 0:
            raise ValidationError('Amount must be non-negative', field='amount')

        with self.store.atomic() as session:
            account = (
                session.query(Account)
                .filter(Account.id == account_id)
                .populate_existing()
                .with_for_update()
                .first()
            )
            if account is None:
                raise AccountNotFound(f"Account {account_id} not found")
            previous = account.coins
            if action == 'add':
                new_balance = previous + amount
            elif action == 'subtract':
                new_balance = max(0, previous - amount)
            else:
                new_balance = max(0, amount)
            delta = new_balance - previous
            account.coins = new_balance
            tx = CoinTransaction(
                account_id=account.id,
                amount=delta,
                type=TX_ADMIN_RECHARGE,
                description=description or 'Admin adjustment',
            )
            session.add(tx)
            session.flush()
        if self.logger is not None:
            self.logger.info(f"[admin-coins] account={account_id} action={action} requested={amount} applied={delta}")
        return previous, new_balance, tx

    def balance(self, account_id) -> int:
        account = self.store.session.get(Account, account_id)
        if account is None:
            raise AccountNotFound(f"Account {account_id} not found")
        return account.coins

    def balance_from_history(self, account_id) -> int:
        total = (
            self.store.session.query(func.coalesce(func.sum(CoinTransaction.amount), 0))
            .filter(CoinTransaction.account_id == account_id)
            .scalar()
        )
        return int(total)

    def history(self, account_id, limit=50, offset=0):
        query = CoinTransaction.query.filter_by(account_id=account_id)
        total = query.count()
        entries = (
            query.order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return entries, total

    def _refresh_balance(self, session, account_id):
        # The conditional UPDATE bypasses the identity map
        account = session.get(Account, account_id)
        if account is not None:
            session.refresh(account, attribute_names=['coins'])
