from stallsync.constants.collections import SITES
from tests.test_utils_seed import ensure_profile, jwt_headers


def test_audit_logs_admin_only_with_filters_and_etag(client, app_instance, store):
    ensure_profile(store, 'aud-admin', 'admin')
    ensure_profile(store, 'aud-staff', 'staff', site='aud-A', stall='aud-S1')
    admin = jwt_headers(app_instance, 'aud-admin')
    staff = jwt_headers(app_instance, 'aud-staff')
    created = client.post(f'/api/{SITES}', json={'id': 'aud-A', 'name': 'Audited'}, headers=admin)
    assert created.status_code == 201

    denied = client.get('/admin/audit/logs', headers=staff)
    assert denied.status_code == 403
    assert denied.get_json()['error']['reason'] == 'ROLE_INSUFFICIENT'

    resp = client.get('/admin/audit/logs?action=DOC.CREATE&entity_id=aud-A', headers=admin)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['pagination']['total'] == 1
    row = body['data'][0]
    assert row['actor_uid'] == 'aud-admin'
    assert row['entity'] == SITES
    assert row['meta'] == {'changed': ['name']}
    etag = resp.headers['ETag']
    again = client.get('/admin/audit/logs?action=DOC.CREATE&entity_id=aud-A', headers={**admin, 'If-None-Match': etag})
    assert again.status_code == 304


def test_audit_logs_pagination_bounds(client, app_instance, store):
    ensure_profile(store, 'aud-admin', 'admin')
    admin = jwt_headers(app_instance, 'aud-admin')
    resp = client.get('/admin/audit/logs?limit=1000', headers=admin)
    assert resp.get_json()['pagination']['limit'] == 200
    assert client.get('/admin/audit/logs?offset=x', headers=admin).status_code == 400
