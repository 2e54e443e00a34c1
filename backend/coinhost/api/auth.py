from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user

from coinhost.api import json_body, pagination_args, pagination_payload
from coinhost.services import get_services

auth = Blueprint('auth', __name__)


@auth.route('/signup', methods=['POST'])
def signup():
    data = json_body()
    account = get_services().accounts.create_account(
        data.get('username'),
        data.get('email'),
        data.get('password'),
        referral_code=data.get('referralCode') or data.get('referral_code'),
    )
    login_user(account)
    return jsonify({'message': 'User created successfully', 'user': account.to_dict()}), 201


@auth.route('/login', methods=['POST'])
def login():
    data = json_body()
    account = get_services().accounts.authenticate(data.get('email'), data.get('password'))
    if account is None:
        return jsonify({'error': 'Invalid credentials'}), 401
    login_user(account, remember=True)
    return jsonify({'message': 'Login successful', 'user': account.to_dict()})


@auth.route('/logout', methods=['POST'])
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully'})


@auth.route('/me', methods=['GET'])
@login_required
def me():
    payload = current_user.to_dict()
    payload['referral_count'] = get_services().accounts.referral_count(current_user)
    return jsonify({'user': payload})


@auth.route('/transactions', methods=['GET'])
@login_required
def transactions():
    page, limit = pagination_args(default_limit=50)
    entries, total = get_services().ledger.history(current_user.id, limit=limit, offset=(page - 1) * limit)
    return jsonify({
        'transactions': [t.to_dict() for t in entries],
        'balance': current_user.coins,
        'pagination': pagination_payload(page, limit, total),
    })
