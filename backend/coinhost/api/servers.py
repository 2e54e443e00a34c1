from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required

from coinhost.api import json_body
from coinhost.models import Account
from coinhost.services import get_services

servers = Blueprint('servers', __name__)


@servers.route('/plans/list', methods=['GET'])
@login_required
def list_plans():
    return jsonify({'plans': get_services().lifecycle.plan_catalog()})


@servers.route('/create', methods=['POST'])
@login_required
def create_server():
    data = json_body()
    services = get_services()
    server = services.lifecycle.create_server(
        current_user.id,
        data.get('serverName', data.get('name')),
        data.get('planIndex', data.get('plan_index')),
    )
    remaining = services.store.session.get(Account, current_user.id).coins
    return jsonify({
        'message': 'Server created successfully',
        'server': server.to_dict(),
        'remainingCoins': remaining,
    }), 201


@servers.route('/my-servers', methods=['GET'])
@login_required
def my_servers():
    rows = get_services().lifecycle.list_servers(current_user.id)
    return jsonify({'servers': [s.to_dict() for s in rows]})


@servers.route('/<int:server_id>', methods=['GET'])
@login_required
def get_server(server_id):
    server = get_services().lifecycle.get_server(server_id, current_user.id, is_admin=current_user.is_admin)
    return jsonify({'server': server.to_dict(include_owner=True)})


@servers.route('/<int:server_id>/pair', methods=['POST'])
@login_required
def pair_server(server_id):
    data = json_body()
    phone = data.get('phoneNumber', data.get('phone_number'))
    result = get_services().lifecycle.request_pairing(server_id, current_user.id, phone)
    current_app.logger.info(f"[pair] server={server_id} account={current_user.id}")
    return jsonify(result)


@servers.route('/<int:server_id>/stop', methods=['POST'])
@login_required
def stop_server(server_id):
    server = get_services().lifecycle.stop_server(server_id, current_user.id)
    return jsonify({'message': 'Server stopped successfully', 'server': server.to_dict()})
