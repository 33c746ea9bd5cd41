#!/usr/bin/env python
"""Idempotent bootstrap of the first admin account.

Creates the tables if migrations have not been run yet, then an admin credential and its
users/{uid} profile. Later accounts are created through POST /auth/users by that admin.

Usage:
    python backend/scripts/seed_admin.py             # seed normally
    python backend/scripts/seed_admin.py --dry-run   # run logic then rollback (no DB changes)

Environment:
    SEED_ADMIN_EMAIL (default admin@example.com), SEED_ADMIN_PASSWORD (default ChangeMe123!)
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from stallsync import create_app, get_db  # type: ignore
from stallsync.constants.collections import USERS, ROLE_ADMIN
from stallsync.models.authz import Base, Credential
from stallsync.models.documents import DocumentRecord
from stallsync.models import audit  # noqa: F401  register audit_logs on Base.metadata
from stallsync.services.audit import add_audit
from stallsync.services.store import new_doc_id


def ensure_schema(session):
    # lightweight fallback if migrations not run yet; in real env prefer alembic upgrade
    Base.metadata.create_all(session.get_bind())


def ensure_initial_admin(session, email: str, password: str, display_name: str):
    """Return (uid, created)."""
    cred = session.execute(select(Credential).where(Credential.email == email)).scalar_one_or_none()
    if cred:
        uid, created = cred.uid, False
    else:
        uid, created = new_doc_id(), True
        cred = Credential(uid=uid, email=email)
        cred.set_password(password)
        session.add(cred)
    profile = session.execute(
        select(DocumentRecord).where(DocumentRecord.collection == USERS, DocumentRecord.doc_id == uid)
    ).scalar_one_or_none()
    if profile is None:
        session.add(DocumentRecord(
            collection=USERS,
            doc_id=uid,
            data={'email': email, 'displayName': display_name, 'role': ROLE_ADMIN, 'managedSiteIds': []},
        ))
        add_audit(session, '', 'SEED.ADMIN', USERS, uid, {'email': email})
        created = True
    elif (profile.data or {}).get('role') != ROLE_ADMIN:
        print(f"[WARN] {email} exists with role {(profile.data or {}).get('role')!r}; leaving it unchanged")
    return uid, created


def parse_args():
    p = argparse.ArgumentParser(
        description="Seed the initial admin account",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_admin.py\n  dry run: seed_admin.py --dry-run\n""")
    )
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--display-name', default='Administrator', help='displayName for a newly created profile')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com')
    password = os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!')
    with app.app_context():
        session = get_db()
        try:
            ensure_schema(session)
            uid, created = ensure_initial_admin(session, email, password, args.display_name)
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) admin {email} would be {'created' if created else 'unchanged'}")
            else:
                session.commit()
                if created:
                    print(f"[INFO] Created initial admin {email} (uid {uid}) with temporary password.")
                else:
                    print(f"[DONE] Admin {email} already present (uid {uid}).")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


if __name__ == '__main__':
    main()
