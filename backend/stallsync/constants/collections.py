"""Central enum-like definitions for collections, roles and guarded field groups.
Extend cautiously; the rule tables in services.policy key on these exact strings.
"""
from __future__ import annotations
from typing import FrozenSet

# Roles (tier order: admin > manager > staff)
ROLE_ADMIN = 'admin'
ROLE_MANAGER = 'manager'
ROLE_STAFF = 'staff'
ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_STAFF)

# Operations
OP_READ = 'read'
OP_CREATE = 'create'
OP_UPDATE = 'update'
OP_DELETE = 'delete'
OPERATIONS = (OP_READ, OP_CREATE, OP_UPDATE, OP_DELETE)
WRITE_OPERATIONS = (OP_CREATE, OP_UPDATE, OP_DELETE)

# Collections
USERS = 'users'
SITES = 'sites'
STALLS = 'stalls'
STOCK_ITEMS = 'stockItems'
SALES_TRANSACTIONS = 'salesTransactions'
COLLECTIONS = (USERS, SITES, STALLS, STOCK_ITEMS, SALES_TRANSACTIONS)

# Profile fields only an admin may change
PRIVILEGED_USER_FIELDS: FrozenSet[str] = frozenset({'role', 'managedSiteIds', 'defaultSiteId', 'defaultStallId'})

# Stock fields a staff member may change on an item in their own stall
STAFF_STOCK_FIELDS: FrozenSet[str] = frozenset({'quantity', 'lastUpdated'})

# The only mutable group of a recorded sale
SALE_SOFT_DELETE_FIELDS: FrozenSet[str] = frozenset({'isDeleted', 'deletedAt', 'deletedBy', 'deletionJustification'})

# Stock relations understood by the resource loader
REL_MIRRORS = 'mirrors'
REL_MASTER = 'master'
REL_STALLS = 'stalls'
REL_STOCK = 'stockItems'

__all__ = [
    'ROLE_ADMIN', 'ROLE_MANAGER', 'ROLE_STAFF', 'ROLES',
    'OP_READ', 'OP_CREATE', 'OP_UPDATE', 'OP_DELETE', 'OPERATIONS', 'WRITE_OPERATIONS',
    'USERS', 'SITES', 'STALLS', 'STOCK_ITEMS', 'SALES_TRANSACTIONS', 'COLLECTIONS',
    'PRIVILEGED_USER_FIELDS', 'STAFF_STOCK_FIELDS', 'SALE_SOFT_DELETE_FIELDS',
    'REL_MIRRORS', 'REL_MASTER', 'REL_STALLS', 'REL_STOCK',
]
