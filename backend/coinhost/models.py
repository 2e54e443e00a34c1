from datetime import datetime, timezone
import secrets

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, event
from sqlalchemy.orm import validates

from coinhost import db, bcrypt
from coinhost.errors import ValidationError


ROLE_STANDARD = 'standard'
ROLE_ADMIN = 'admin'
ROLES = (ROLE_STANDARD, ROLE_ADMIN)

SERVER_ACTIVE = 'active'
SERVER_EXPIRED = 'expired'
SERVER_STOPPED = 'stopped'
SERVER_STATUSES = (SERVER_ACTIVE, SERVER_EXPIRED, SERVER_STOPPED)

TX_SIGNUP_BONUS = 'signup_bonus'
TX_REFERRAL_BONUS = 'referral_bonus'
TX_RESOURCE_PURCHASE = 'resource_purchase'
TX_ADMIN_RECHARGE = 'admin_recharge'
TRANSACTION_TYPES = (TX_SIGNUP_BONUS, TX_REFERRAL_BONUS, TX_RESOURCE_PURCHASE, TX_ADMIN_RECHARGE)


def utcnow():
    """Naive UTC timestamp; every column in the store is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


def generate_referral_code():
    """Generate a unique, short referral code."""
    while True:
        code = secrets.token_hex(4).upper()
        if not Account.query.filter_by(referral_code=code).first():
            return code


class Account(UserMixin, db.Model):
    __tablename__ = 'account'
    __table_args__ = (
        CheckConstraint('coins >= 0', name='ck_account_coins_non_negative'),
    )
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    coins = db.Column(db.Integer, nullable=False, default=0)
    role = db.Column(db.String(16), nullable=False, default=ROLE_STANDARD)  # standard, admin
    referral_code = db.Column(db.String(16), unique=True, nullable=False, index=True)
    referred_by_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    servers = db.relationship('Server', back_populates='account', lazy='dynamic')
    transactions = db.relationship('CoinTransaction', back_populates='account', lazy='dynamic')
    referred_by = db.relationship('Account', remote_side=[id])

    def __init__(self, **kwargs):
        super(Account, self).__init__(**kwargs)
        if not self.referral_code:
            self.referral_code = generate_referral_code()

    @validates('referred_by_id')
    def _set_once(self, key, value):
        if self.referred_by_id is not None and value != self.referred_by_id:
            raise ValidationError('Referring account can only be set once', field='referral_code')
        if value is not None and self.id is not None and value == self.id:
            raise ValidationError('Self-referral is not allowed', field='referral_code')
        return value

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'coins': self.coins,
            'role': self.role,
            'referral_code': self.referral_code,
            'referred_by': self.referred_by_id,
            'created_at': _iso(self.created_at),
        }


class Server(db.Model):
    __tablename__ = 'server'
    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    coins_used = db.Column(db.Integer, nullable=False)
    session_id = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=SERVER_ACTIVE, index=True)  # active, expired, stopped
    expires_at = db.Column(db.DateTime, nullable=True, index=True)  # null never expires
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    account = db.relationship('Account', back_populates='servers')

    def to_dict(self, include_owner=False):
        data = {
            'id': self.id,
            'server_name': self.name,
            'session_id': self.session_id,
            'coins_used': self.coins_used,
            'expires_at': _iso(self.expires_at),
            'status': self.status,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if include_owner and self.account is not None:
            data['user_id'] = self.account_id
            data['username'] = self.account.username
            data['email'] = self.account.email
        return data


class CoinTransaction(db.Model):
    __tablename__ = 'coin_transaction'
    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    account = db.relationship('Account', back_populates='transactions')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.account_id,
            'amount': self.amount,
            'type': self.type,
            'description': self.description,
            'created_at': _iso(self.created_at),
        }


class Referral(db.Model):
    __tablename__ = 'referral'
    __table_args__ = (
        CheckConstraint('referrer_id <> referred_id', name='ck_referral_not_self'),
    )
    id = db.Column(db.Integer, primary_key=True)
    referrer_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False, index=True)
    referred_id = db.Column(db.Integer, db.ForeignKey('account.id'), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


@event.listens_for(CoinTransaction, 'before_update')
def _refuse_ledger_update(mapper, connection, target):
    raise ValueError('coin transactions are append-only')


@event.listens_for(CoinTransaction, 'before_delete')
def _refuse_ledger_delete(mapper, connection, target):
    raise ValueError('coin transactions are append-only')
