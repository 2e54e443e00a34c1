import pytest

from coinhost.errors import DuplicateAccount, ValidationError
from coinhost.models import Account, CoinTransaction, Referral, TX_REFERRAL_BONUS, TX_SIGNUP_BONUS


def test_signup_bonus_without_referral(services):
    acct = services.accounts.create_account('alice', 'alice@example.com', 'secret1')
    assert acct.coins == 10
    assert len(acct.referral_code) == 8
    txs = CoinTransaction.query.filter_by(account_id=acct.id).all()
    assert [(t.type, t.amount) for t in txs] == [(TX_SIGNUP_BONUS, 10)]
    assert acct.check_password('secret1')


def test_valid_referral_credits_both_and_links_once(services, make_account):
    referrer = make_account('referrer')
    newbie = services.accounts.create_account('newbie', 'newbie@example.com', 'secret1',
                                              referral_code=referrer.referral_code.lower())
    assert newbie.coins == 10
    assert newbie.referred_by_id == referrer.id
    assert services.ledger.balance(referrer.id) == 15
    edges = Referral.query.all()
    assert len(edges) == 1
    assert (edges[0].referrer_id, edges[0].referred_id) == (referrer.id, newbie.id)
    bonus = CoinTransaction.query.filter_by(account_id=referrer.id, type=TX_REFERRAL_BONUS).one()
    assert bonus.amount == 5
    assert services.accounts.referral_count(referrer) == 1
    for acct_id in (referrer.id, newbie.id):
        assert services.ledger.balance(acct_id) == services.ledger.balance_from_history(acct_id)


def test_invalid_referral_code_only_pays_signup(services, make_account):
    referrer = make_account('referrer')
    newbie = services.accounts.create_account('newbie', 'newbie@example.com', 'secret1', referral_code='NOPE0000')
    assert newbie.coins == 10
    assert newbie.referred_by_id is None
    assert Referral.query.count() == 0
    assert services.ledger.balance(referrer.id) == 10


def test_referred_by_is_set_once_and_never_self(services, make_account):
    a = make_account()
    b = make_account(referral_code=a.referral_code)
    c = make_account()
    with pytest.raises(ValidationError):
        b.referred_by_id = c.id
    with pytest.raises(ValidationError):
        c.referred_by_id = c.id


def test_duplicate_account_rejected_atomically(services, make_account):
    make_account('taken')
    with pytest.raises(DuplicateAccount):
        services.accounts.create_account('taken', 'other@example.com', 'secret1')
    with pytest.raises(DuplicateAccount):
        services.accounts.create_account('fresh', 'TAKEN@example.com', 'secret1')
    assert Account.query.count() == 1
    assert CoinTransaction.query.count() == 1


@pytest.mark.parametrize('username,email,password,field', [
    ('ab', 'ab@example.com', 'secret1', 'username'),
    ('abc', 'not-an-email', 'secret1', 'email'),
    ('abc', 'abc@example.com', '123', 'password'),
])
def test_signup_validation(services, username, email, password, field):
    with pytest.raises(ValidationError) as err:
        services.accounts.create_account(username, email, password)
    assert err.value.field == field
    assert Account.query.count() == 0


def test_authenticate(services, make_account):
    acct = make_account('bob')
    assert services.accounts.authenticate('bob@example.com', 'password').id == acct.id
    assert services.accounts.authenticate('bob@example.com', 'wrong') is None
    assert services.accounts.authenticate('nobody@example.com', 'password') is None
