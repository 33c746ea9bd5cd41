from stallsync.constants.collections import USERS, STOCK_ITEMS, SALES_TRANSACTIONS, SITES
from stallsync.services.field_diff import diff, is_allowed, disallowed, allowed_fields, AllFieldsExcept, ANY_FIELD


def test_diff_reports_changed_added_and_removed_keys():
    before = {'a': 1, 'b': 2, 'c': 3}
    after = {'a': 1, 'b': 5, 'd': 4}
    assert diff(before, after) == {'b', 'c', 'd'}


def test_diff_ignores_unchanged_values_present_in_proposal():
    doc = {'quantity': 3, 'name': 'Mug', 'tags': ['x']}
    assert diff(doc, dict(doc, tags=['x'])) == set()


def test_diff_distinguishes_null_from_missing():
    assert diff({'stallId': None}, {}) == {'stallId'}


def test_diff_against_nothing_is_every_key():
    assert diff(None, {'a': 1, 'b': None}) == {'a', 'b'}


def test_staff_stock_allow_list():
    assert is_allowed('staff', STOCK_ITEMS, {'quantity', 'lastUpdated'})
    assert not is_allowed('staff', STOCK_ITEMS, {'quantity', 'price'})
    assert disallowed('staff', STOCK_ITEMS, {'quantity', 'price', 'name'}) == {'price', 'name'}


def test_profile_allow_list_excludes_privileged_fields():
    assert is_allowed('manager', USERS, {'displayName', 'preferences'})
    for field in ('role', 'managedSiteIds', 'defaultSiteId', 'defaultStallId'):
        assert not is_allowed('staff', USERS, {'displayName', field})


def test_admin_sale_allow_list_is_soft_delete_group():
    assert is_allowed('admin', SALES_TRANSACTIONS, {'isDeleted', 'deletedAt', 'deletedBy', 'deletionJustification'})
    assert not is_allowed('admin', SALES_TRANSACTIONS, {'isDeleted', 'totalAmount'})


def test_unrestricted_and_missing_entries():
    assert allowed_fields('admin', STOCK_ITEMS) is ANY_FIELD
    assert is_allowed('manager', STOCK_ITEMS, {'anything', 'at', 'all'})
    # no grant configured: fail closed, every changed field is reported
    assert not is_allowed('staff', SITES, {'name'})
    assert disallowed('staff', SITES, {'name'}) == {'name'}
    assert not is_allowed('auditor', STOCK_ITEMS, set())


def test_all_fields_except_membership():
    allow = AllFieldsExcept({'role'})
    assert 'displayName' in allow
    assert 'role' not in allow
