"""Stock movements between a site's master records and its stall mirrors.

Each movement reads the records involved, checks the quantity arithmetic, and commits
all touched records as one batch through DocumentStore.commit, so every write in the
batch is still authorized individually. Writes carry the versions that were read; if
any record moved in between, the whole movement is re-read and re-planned.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional, Tuple

from stallsync.constants.collections import STOCK_ITEMS, STALLS, OP_CREATE, OP_UPDATE
from stallsync.services.audit import add_audit
from stallsync.services.errors import InvalidRequest, NotFound, PreconditionFailed, WriteConflict
from stallsync.services.integrity import is_master
from stallsync.services.principal import Principal
from stallsync.services.resource_loader import Document
from stallsync.services.store import DocumentStore, Write, new_doc_id

log = logging.getLogger(__name__)

# fields that describe a stock position rather than the product
POSITION_FIELDS = {'id', 'stallId', 'originalMasterItemId', 'quantity', 'lastUpdated'}


def _quantity(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidRequest('quantity must be a positive integer')
    return value


def _stock(doc: Optional[Document]) -> int:
    try:
        return int(doc.get('quantity') or 0) if doc is not None else 0
    except (TypeError, ValueError):
        raise InvalidRequest(f'{doc.collection}/{doc.id} has a non-numeric quantity')


def _require(store: DocumentStore, principal: Principal, collection: str, doc_id: Optional[str]) -> Document:
    if not doc_id:
        raise InvalidRequest(f'{collection} id required')
    doc = store.get(principal, collection, str(doc_id))
    if doc is None:
        raise NotFound(f'{collection}/{doc_id} not found')
    return doc


def _find_mirror(store: DocumentStore, principal: Principal, master_id: str, stall_id: str) -> Optional[Document]:
    mirrors = store.list(principal, STOCK_ITEMS, {'originalMasterItemId': master_id, 'stallId': stall_id})
    return mirrors[0] if mirrors else None


def _adjust(doc: Document, delta: int) -> Write:
    return Write(
        op=OP_UPDATE,
        collection=STOCK_ITEMS,
        doc_id=doc.id,
        data={'quantity': _stock(doc) + delta},
        expected_version=doc.version,
    )


def _credit_mirror(master: Document, mirror: Optional[Document], stall_id: str, quantity: int) -> Tuple[Write, str]:
    """Write that adds quantity to the stall's mirror of master, creating the mirror if needed."""
    if mirror is not None:
        return _adjust(mirror, quantity), mirror.id
    data = {k: v for k, v in master.data.items() if k not in POSITION_FIELDS}
    data.update({
        'siteId': master.get('siteId'),
        'stallId': stall_id,
        'originalMasterItemId': master.id,
        'quantity': quantity,
    })
    doc_id = new_doc_id()
    return Write(op=OP_CREATE, collection=STOCK_ITEMS, doc_id=doc_id, data=data), doc_id


def _run(store: DocumentStore, principal: Principal, plan) -> Dict[str, Any]:
    """Plan and commit a movement, re-planning when a record changed under it."""
    attempt = 0
    while True:
        attempt += 1
        writes, action, meta = plan()
        try:
            store.commit(
                principal,
                writes,
                on_commit=lambda session: add_audit(session, principal.uid, action, STOCK_ITEMS, meta.get('sourceId'), meta),
            )
            log.info('%s by %s: %s', action, principal.uid, meta)
            return meta
        except PreconditionFailed as exc:
            if attempt >= store.max_attempts:
                raise WriteConflict('Stock changed during movement; retry later') from exc
            log.warning('%s attempt %d/%d saw a stale record: %s', action, attempt, store.max_attempts, exc)


def allocate_to_stall(store: DocumentStore, principal: Principal, master_id: str, stall_id: str, quantity: int) -> Dict[str, Any]:
    """Move quantity from a master record into the stall's mirror of it."""
    quantity = _quantity(quantity)

    def plan():
        master = _require(store, principal, STOCK_ITEMS, master_id)
        if not is_master(master.data):
            raise InvalidRequest('source item is not a master record')
        stall = _require(store, principal, STALLS, stall_id)
        if stall.get('siteId') != master.get('siteId'):
            raise InvalidRequest('stall belongs to a different site')
        available = _stock(master)
        if quantity > available:
            raise InvalidRequest(f'only {available} available on master')
        mirror = _find_mirror(store, principal, master.id, stall.id)
        credit, mirror_id = _credit_mirror(master, mirror, stall.id, quantity)
        meta = {
            'sourceId': master.id,
            'targetId': mirror_id,
            'stallId': stall.id,
            'quantity': quantity,
            'source': {'before': available, 'after': available - quantity},
            'target': {'before': _stock(mirror), 'after': _stock(mirror) + quantity},
        }
        return [_adjust(master, -quantity), credit], 'STOCK.ALLOCATE', meta

    return _run(store, principal, plan)


def return_to_master(store: DocumentStore, principal: Principal, stall_item_id: str, quantity: int) -> Dict[str, Any]:
    """Move quantity from a stall mirror back to its linked master."""
    quantity = _quantity(quantity)

    def plan():
        mirror = _require(store, principal, STOCK_ITEMS, stall_item_id)
        master_id = mirror.get('originalMasterItemId')
        if is_master(mirror.data) or not master_id:
            raise InvalidRequest('source item is not linked to a master record')
        master = _require(store, principal, STOCK_ITEMS, master_id)
        held = _stock(mirror)
        if quantity > held:
            raise InvalidRequest(f'only {held} held at stall')
        meta = {
            'sourceId': mirror.id,
            'targetId': master.id,
            'stallId': mirror.get('stallId'),
            'quantity': quantity,
            'source': {'before': held, 'after': held - quantity},
            'target': {'before': _stock(master), 'after': _stock(master) + quantity},
        }
        return [_adjust(mirror, -quantity), _adjust(master, quantity)], 'STOCK.RETURN', meta

    return _run(store, principal, plan)


def transfer_between_stalls(store: DocumentStore, principal: Principal, source_item_id: str,
                            dest_stall_id: str, quantity: int) -> Dict[str, Any]:
    """Move quantity from one stall's mirror to another stall of the same site; the master is untouched."""
    quantity = _quantity(quantity)

    def plan():
        source = _require(store, principal, STOCK_ITEMS, source_item_id)
        master_id = source.get('originalMasterItemId')
        if is_master(source.data) or not master_id:
            raise InvalidRequest('source item is not linked to a master record')
        dest_stall = _require(store, principal, STALLS, dest_stall_id)
        if dest_stall.id == source.get('stallId'):
            raise InvalidRequest('destination stall must differ from the source stall')
        if dest_stall.get('siteId') != source.get('siteId'):
            raise InvalidRequest('stalls belong to different sites')
        master = _require(store, principal, STOCK_ITEMS, master_id)
        held = _stock(source)
        if quantity > held:
            raise InvalidRequest(f'only {held} held at stall')
        dest = _find_mirror(store, principal, master.id, dest_stall.id)
        credit, dest_id = _credit_mirror(master, dest, dest_stall.id, quantity)
        meta = {
            'sourceId': source.id,
            'targetId': dest_id,
            'stallId': source.get('stallId'),
            'destStallId': dest_stall.id,
            'quantity': quantity,
            'source': {'before': held, 'after': held - quantity},
            'target': {'before': _stock(dest), 'after': _stock(dest) + quantity},
        }
        return [_adjust(source, -quantity), credit], 'STOCK.TRANSFER', meta

    return _run(store, principal, plan)


__all__ = ['allocate_to_stall', 'return_to_master', 'transfer_between_stalls']
