import pytest
from stallsync import get_db
from stallsync.constants.collections import STOCK_ITEMS
from stallsync.models.audit import AuditLog
from stallsync.services.errors import AccessDenied, ErrorKind, InvalidRequest, NotFound, PreconditionFailed, WriteConflict
from stallsync.services.inventory import allocate_to_stall, return_to_master, transfer_between_stalls
from tests.test_utils_seed import ensure_profile, ensure_site, ensure_stall, seed_stock, principal, jwt_headers

MANAGER = principal('iv-mgr', 'manager', managed=['iv-A'])
STAFF = principal('iv-staff', 'staff', site='iv-A', stall='iv-S1')
ADMIN = principal('iv-admin', 'admin')


@pytest.fixture()
def layout(store):
    ensure_site(store, 'iv-A')
    ensure_site(store, 'iv-B')
    ensure_stall(store, 'iv-S1', 'iv-A')
    ensure_stall(store, 'iv-S2', 'iv-A')
    ensure_stall(store, 'iv-X1', 'iv-B')
    return store


def _qty(store, item_id):
    return store.get(ADMIN, STOCK_ITEMS, item_id).data['quantity']


def _mirrors(store, master_id, stall_id):
    return store.list(ADMIN, STOCK_ITEMS, {'originalMasterItemId': master_id, 'stallId': stall_id})


def test_allocate_creates_then_tops_up_mirror(layout):
    store = layout
    seed_stock(store, 'iv-m1', 'iv-A', quantity=50, name='Lantern', price=12)
    meta = allocate_to_stall(store, MANAGER, 'iv-m1', 'iv-S1', 10)
    assert _qty(store, 'iv-m1') == 40
    mirrors = _mirrors(store, 'iv-m1', 'iv-S1')
    assert len(mirrors) == 1
    mirror = mirrors[0]
    assert mirror.id == meta['targetId']
    assert mirror.data['quantity'] == 10
    assert mirror.data['siteId'] == 'iv-A'
    assert mirror.data['name'] == 'Lantern' and mirror.data['price'] == 12
    assert meta['source'] == {'before': 50, 'after': 40}
    assert meta['target'] == {'before': 0, 'after': 10}

    allocate_to_stall(store, MANAGER, 'iv-m1', 'iv-S1', 5)
    assert _qty(store, 'iv-m1') == 35
    assert [m.data['quantity'] for m in _mirrors(store, 'iv-m1', 'iv-S1')] == [15]

    rows = get_db().query(AuditLog).filter_by(action='STOCK.ALLOCATE', entity_id='iv-m1').all()
    assert len(rows) == 2
    assert rows[0].actor_uid == 'iv-mgr'
    assert rows[0].meta['quantity'] == 10


@pytest.mark.parametrize('quantity', [0, -3, '5', 2.5, True, None])
def test_quantity_must_be_positive_integer(layout, quantity):
    seed_stock(layout, 'iv-m2', 'iv-A', quantity=50)
    with pytest.raises(InvalidRequest):
        allocate_to_stall(layout, MANAGER, 'iv-m2', 'iv-S1', quantity)


def test_allocate_validation(layout):
    store = layout
    seed_stock(store, 'iv-m3', 'iv-A', quantity=5)
    seed_stock(store, 'iv-r3', 'iv-A', stall_id='iv-S1', master_id='iv-m3', quantity=1)
    with pytest.raises(InvalidRequest):
        allocate_to_stall(store, MANAGER, 'iv-m3', 'iv-S1', 6)
    with pytest.raises(InvalidRequest):
        allocate_to_stall(store, MANAGER, 'iv-r3', 'iv-S2', 1)
    with pytest.raises(InvalidRequest):
        allocate_to_stall(store, ADMIN, 'iv-m3', 'iv-X1', 1)
    with pytest.raises(NotFound):
        allocate_to_stall(store, MANAGER, 'iv-missing', 'iv-S1', 1)
    with pytest.raises(NotFound):
        allocate_to_stall(store, MANAGER, 'iv-m3', 'iv-nostall', 1)
    assert _qty(store, 'iv-m3') == 5


def test_staff_cannot_move_stock_through_master(layout):
    seed_stock(layout, 'iv-m4', 'iv-A', quantity=5)
    with pytest.raises(AccessDenied) as exc:
        allocate_to_stall(layout, STAFF, 'iv-m4', 'iv-S1', 1)
    assert exc.value.reason == ErrorKind.SITE_OUT_OF_SCOPE
    assert _qty(layout, 'iv-m4') == 5
    assert _mirrors(layout, 'iv-m4', 'iv-S1') == []


def test_manager_outside_site_is_refused(layout):
    seed_stock(layout, 'iv-mb', 'iv-B', quantity=5)
    with pytest.raises(AccessDenied):
        allocate_to_stall(layout, MANAGER, 'iv-mb', 'iv-X1', 1)


def test_return_to_master(layout):
    store = layout
    seed_stock(store, 'iv-m5', 'iv-A', quantity=20)
    seed_stock(store, 'iv-r5', 'iv-A', stall_id='iv-S1', master_id='iv-m5', quantity=10)
    meta = return_to_master(store, MANAGER, 'iv-r5', 4)
    assert _qty(store, 'iv-r5') == 6
    assert _qty(store, 'iv-m5') == 24
    assert meta['targetId'] == 'iv-m5'
    with pytest.raises(InvalidRequest):
        return_to_master(store, MANAGER, 'iv-r5', 7)
    with pytest.raises(InvalidRequest):
        return_to_master(store, MANAGER, 'iv-m5', 1)
    assert get_db().query(AuditLog).filter_by(action='STOCK.RETURN', entity_id='iv-r5').count() == 1


def test_return_from_unlinked_mirror_is_invalid(layout):
    seed_stock(layout, 'iv-loose', 'iv-A', stall_id='iv-S1', quantity=3)
    with pytest.raises(InvalidRequest):
        return_to_master(layout, MANAGER, 'iv-loose', 1)


def test_transfer_between_stalls_leaves_master_alone(layout):
    store = layout
    seed_stock(store, 'iv-m6', 'iv-A', quantity=100)
    seed_stock(store, 'iv-r6', 'iv-A', stall_id='iv-S1', master_id='iv-m6', quantity=10)
    meta = transfer_between_stalls(store, MANAGER, 'iv-r6', 'iv-S2', 3)
    assert _qty(store, 'iv-r6') == 7
    dest = _mirrors(store, 'iv-m6', 'iv-S2')
    assert [d.data['quantity'] for d in dest] == [3]
    assert dest[0].id == meta['targetId']
    assert _qty(store, 'iv-m6') == 100
    with pytest.raises(InvalidRequest):
        transfer_between_stalls(store, MANAGER, 'iv-r6', 'iv-S1', 1)
    with pytest.raises(InvalidRequest):
        transfer_between_stalls(store, ADMIN, 'iv-r6', 'iv-X1', 1)
    with pytest.raises(InvalidRequest):
        transfer_between_stalls(store, MANAGER, 'iv-r6', 'iv-S2', 8)


def test_staff_transfer_to_other_stall_is_refused(layout):
    seed_stock(layout, 'iv-m7', 'iv-A', quantity=10)
    seed_stock(layout, 'iv-r7', 'iv-A', stall_id='iv-S1', master_id='iv-m7', quantity=5)
    seed_stock(layout, 'iv-r7b', 'iv-A', stall_id='iv-S2', master_id='iv-m7', quantity=0)
    with pytest.raises(AccessDenied) as exc:
        transfer_between_stalls(layout, STAFF, 'iv-r7', 'iv-S2', 1)
    assert exc.value.reason == ErrorKind.SITE_OUT_OF_SCOPE
    assert _qty(layout, 'iv-r7') == 5


def test_stale_read_is_replanned(layout, monkeypatch):
    store = layout
    seed_stock(store, 'iv-m8', 'iv-A', quantity=10)
    original = store.commit
    calls = {'n': 0}

    def flaky(*args, **kwargs):
        calls['n'] += 1
        if calls['n'] == 1:
            raise PreconditionFailed('stockItems/iv-m8 is at version 99')
        return original(*args, **kwargs)

    monkeypatch.setattr(store, 'commit', flaky)
    allocate_to_stall(store, MANAGER, 'iv-m8', 'iv-S2', 2)
    assert calls['n'] == 2
    assert _qty(store, 'iv-m8') == 8


def test_persistent_staleness_gives_up(layout, monkeypatch):
    seed_stock(layout, 'iv-m9', 'iv-A', quantity=10)

    def always_stale(*args, **kwargs):
        raise PreconditionFailed('moved')

    monkeypatch.setattr(layout, 'commit', always_stale)
    with pytest.raises(WriteConflict):
        allocate_to_stall(layout, MANAGER, 'iv-m9', 'iv-S2', 2)


# ---------- HTTP ---------- #

def test_movement_endpoints(client, app_instance, layout):
    store = layout
    ensure_profile(store, 'iv-mgr', 'manager', managed=['iv-A'])
    ensure_profile(store, 'iv-staff', 'staff', site='iv-A', stall='iv-S1')
    mgr = jwt_headers(app_instance, 'iv-mgr')
    staff = jwt_headers(app_instance, 'iv-staff')
    seed_stock(store, 'iv-h1', 'iv-A', quantity=30)

    resp = client.post('/inventory/allocations', json={'masterItemId': 'iv-h1', 'stallId': 'iv-S1', 'quantity': 10}, headers=mgr)
    assert resp.status_code == 201, resp.get_json()
    mirror_id = resp.get_json()['targetId']

    back = client.post('/inventory/returns', json={'stallItemId': mirror_id, 'quantity': 2}, headers=mgr)
    assert back.status_code == 201
    moved = client.post('/inventory/transfers', json={'sourceItemId': mirror_id, 'destStallId': 'iv-S2', 'quantity': 3}, headers=mgr)
    assert moved.status_code == 201
    assert moved.get_json()['source'] == {'before': 8, 'after': 5}
    assert _qty(store, 'iv-h1') == 22

    denied = client.post('/inventory/allocations', json={'masterItemId': 'iv-h1', 'stallId': 'iv-S1', 'quantity': 1}, headers=staff)
    assert denied.status_code == 403
    missing = client.post('/inventory/returns', json={'quantity': 1}, headers=mgr)
    assert missing.status_code == 400
    too_many = client.post('/inventory/returns', json={'stallItemId': mirror_id, 'quantity': 500}, headers=mgr)
    assert too_many.status_code == 400
