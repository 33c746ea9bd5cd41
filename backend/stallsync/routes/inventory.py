from __future__ import annotations
from flask import Blueprint, request
from stallsync import get_store
from stallsync.decorators.auth import require_principal, current_principal
from stallsync.services.errors import InvalidRequest
from stallsync.services.inventory import allocate_to_stall, return_to_master, transfer_between_stalls

inv_bp = Blueprint('inventory', __name__)


def _payload(*required: str) -> dict:
    data = request.get_json(silent=True) or {}
    missing = [k for k in required if data.get(k) in (None, '')]
    if missing:
        raise InvalidRequest(f"{', '.join(missing)} required")
    return data


@inv_bp.post('/allocations')
@require_principal
def allocate():
    data = _payload('masterItemId', 'stallId', 'quantity')
    meta = allocate_to_stall(get_store(), current_principal(), data['masterItemId'], data['stallId'], data['quantity'])
    return meta, 201


@inv_bp.post('/returns')
@require_principal
def return_stock():
    data = _payload('stallItemId', 'quantity')
    meta = return_to_master(get_store(), current_principal(), data['stallItemId'], data['quantity'])
    return meta, 201


@inv_bp.post('/transfers')
@require_principal
def transfer():
    data = _payload('sourceItemId', 'destStallId', 'quantity')
    meta = transfer_between_stalls(get_store(), current_principal(), data['sourceItemId'], data['destStallId'], data['quantity'])
    return meta, 201
