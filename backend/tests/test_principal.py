import pytest
from stallsync.services.errors import Unauthenticated, ErrorKind
from stallsync.services.principal import principal_from_profile


def test_principal_from_profile_maps_scope_fields():
    p = principal_from_profile('m1', {
        'role': 'manager', 'managedSiteIds': ['A', 'B'], 'defaultSiteId': 'A', 'defaultStallId': None,
    })
    assert p.is_manager and not p.is_admin and not p.is_staff
    assert p.managed_site_ids == frozenset({'A', 'B'})
    assert p.manages_site('B')
    assert not p.manages_site('C')
    assert not p.manages_site(None)
    assert p.to_dict() == {
        'uid': 'm1', 'role': 'manager', 'managedSiteIds': ['A', 'B'], 'defaultSiteId': 'A', 'defaultStallId': None,
    }


def test_principal_is_immutable():
    p = principal_from_profile('s1', {'role': 'staff', 'defaultStallId': 'S'})
    with pytest.raises(Exception):
        p.role = 'admin'  # type: ignore[misc]


@pytest.mark.parametrize('uid,profile', [
    (None, {'role': 'admin'}),
    ('u', None),
    ('u', {}),
    ('u', {'role': 'superuser'}),
    ('u', {'displayName': 'no role'}),
])
def test_invalid_profiles_are_unauthenticated(uid, profile):
    with pytest.raises(Unauthenticated) as exc:
        principal_from_profile(uid, profile)
    assert exc.value.kind == ErrorKind.UNAUTHENTICATED
    assert exc.value.status == 401
