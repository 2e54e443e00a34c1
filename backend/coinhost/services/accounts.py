import re

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from coinhost.errors import DuplicateAccount, StorageError, ValidationError
from coinhost.models import (
    Account,
    Referral,
    ROLE_STANDARD,
    ROLES,
    TX_REFERRAL_BONUS,
    TX_SIGNUP_BONUS,
)


_EMAIL = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def validate_signup(username, email, password):
    if not isinstance(username, str) or not (3 <= len(username.strip()) <= 50):
        raise ValidationError('Username must be between 3-50 characters', field='username')
    if not isinstance(email, str) or not _EMAIL.match(email.strip()):
        raise ValidationError('Valid email is required', field='email')
    if not isinstance(password, str) or len(password) < 6:
        raise ValidationError('Password must be at least 6 characters', field='password')


class AccountService:
    """Account creation with the signup bonus and the one-time referral cascade."""

    def __init__(self, store, ledger, signup_bonus=10, referral_bonus=5, logger=None):
        self.store = store
        self.ledger = ledger
        self.signup_bonus = signup_bonus
        self.referral_bonus = referral_bonus
        self.logger = logger

    def create_account(self, username, email, password, referral_code=None, role=ROLE_STANDARD) -> Account:
        validate_signup(username, email, password)
        if role not in ROLES:
            raise ValidationError('Invalid role', field='role')
        username = username.strip()
        email = email.strip().lower()

        try:
            with self.store.atomic() as session:
                exists = Account.query.filter(or_(Account.email == email, Account.username == username)).first()
                if exists:
                    raise DuplicateAccount('User already exists')

                account = Account(username=username, email=email, role=role, coins=0)
                account.set_password(password)
                session.add(account)
                session.flush()

                if self.signup_bonus:
                    self.ledger.apply_transaction(account.id, self.signup_bonus, TX_SIGNUP_BONUS, 'Signup bonus')
                referrer = self._apply_referral(session, account, referral_code)
        except StorageError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise DuplicateAccount('User already exists') from exc
            raise

        if self.logger is not None:
            self.logger.info(
                f"[signup] account={account.id} referred_by={referrer.id if referrer else None}"
            )
        return account

    def _apply_referral(self, session, account, referral_code):
        """Link ``account`` to the owner of ``referral_code`` and pay the referrer.

        Unknown or blank codes are ignored.
        """
        code = (referral_code or '').strip().upper() if isinstance(referral_code, str) else ''
        if not code:
            return None
        referrer = Account.query.filter_by(referral_code=code).first()
        if referrer is None:
            return None
        if referrer.id == account.id:
            raise ValidationError('Self-referral is not allowed', field='referral_code')

        account.referred_by_id = referrer.id
        session.add(Referral(referrer_id=referrer.id, referred_id=account.id))
        session.flush()
        if self.referral_bonus:
            self.ledger.apply_transaction(referrer.id, self.referral_bonus, TX_REFERRAL_BONUS, 'Referral bonus')
        return referrer

    def authenticate(self, email, password):
        if not isinstance(email, str) or not isinstance(password, str):
            return None
        account = Account.query.filter_by(email=email.strip().lower()).first()
        if account and account.check_password(password):
            return account
        return None

    def get_account(self, account_id):
        return self.store.session.get(Account, account_id)

    def referral_count(self, account) -> int:
        return Referral.query.filter_by(referrer_id=account.id).count()

    def list_accounts(self, page=1, limit=20):
        query = Account.query.order_by(Account.created_at.desc(), Account.id.desc())
        total = query.count()
        return query.offset((page - 1) * limit).limit(limit).all(), total
