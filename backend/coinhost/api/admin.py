from flask import Blueprint, jsonify, request

from coinhost.api import admin_required, int_field, json_body, pagination_args, pagination_payload
from coinhost.services import get_services

admin = Blueprint('admin', __name__)


@admin.route('/users', methods=['GET'])
@admin_required
def list_users():
    page, limit = pagination_args()
    services = get_services()
    accounts, total = services.accounts.list_accounts(page=page, limit=limit)
    users = []
    for account in accounts:
        row = account.to_dict()
        row['referral_count'] = services.accounts.referral_count(account)
        users.append(row)
    return jsonify({'users': users, 'pagination': pagination_payload(page, limit, total)})


@admin.route('/users/<int:user_id>/coins', methods=['POST'])
@admin_required
def update_coins(user_id):
    data = json_body()
    result = get_services().admin.adjust_coins(
        user_id,
        data.get('action'),
        int_field(data, 'amount'),
        data.get('description'),
    )
    result['message'] = 'Coins updated successfully'
    return jsonify(result)


@admin.route('/servers', methods=['GET'])
@admin_required
def list_servers():
    page, limit = pagination_args()
    rows, total = get_services().lifecycle.list_all_servers(page=page, limit=limit)
    return jsonify({
        'servers': [s.to_dict(include_owner=True) for s in rows],
        'pagination': pagination_payload(page, limit, total),
    })


@admin.route('/servers/<int:server_id>/expire', methods=['POST'])
@admin_required
def force_expire(server_id):
    server = get_services().admin.force_expire(server_id)
    return jsonify({'message': 'Server force expired', 'server': server})


@admin.route('/servers/<int:server_id>', methods=['DELETE'])
@admin_required
def delete_server(server_id):
    refund = request.args.get('refund', '').lower() in ('1', 'true', 'yes')
    deleted = get_services().admin.delete_server(server_id, refund=refund)
    return jsonify({'message': 'Server deleted successfully', 'deletedServer': deleted})


@admin.route('/stats', methods=['GET'])
@admin_required
def stats():
    services = get_services()
    return jsonify({'stats': services.admin.stats(), 'recentActivity': services.admin.recent_activity()})
