from flask import Blueprint, request
from flask_jwt_extended import create_access_token
from sqlalchemy import select
from stallsync import get_db, get_store
from stallsync.constants.collections import USERS, ROLES, OP_CREATE
from stallsync.decorators.audit import audit_log
from stallsync.decorators.auth import require_principal, current_principal
from stallsync.models.authz import Credential
from stallsync.services.errors import AlreadyExists, InvalidRequest, Unauthenticated
from stallsync.services.store import Write, new_doc_id

auth_bp = Blueprint('auth', __name__)

PROFILE_FIELDS = ('displayName', 'role', 'managedSiteIds', 'defaultSiteId', 'defaultStallId')


@auth_bp.post('/login')
@audit_log('AUTH.LOGIN', entity=USERS, entity_id_key='uid', actor_key='uid')
def login():
    data = request.get_json(silent=True) or {}
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        raise InvalidRequest('email & password required')
    session = get_db()
    cred = session.execute(select(Credential).where(Credential.email == email)).scalar_one_or_none()
    if not cred or not cred.is_active or not cred.verify_password(password):
        raise Unauthenticated('invalid credentials')
    # JWT identity must be a string (flask-jwt-extended v4 requirement); role is never put in the token
    token = create_access_token(identity=cred.uid)
    return {'access_token': token, 'uid': cred.uid}


@auth_bp.get('/me')
@require_principal
def me():
    return current_principal().to_dict()


@auth_bp.post('/users')
@require_principal
def create_user():
    """Create a credential and its users/{uid} profile in one transaction.

    The profile write goes through the policy, so only admins succeed.
    """
    data = request.get_json(silent=True) or {}
    email = data.get('email'); password = data.get('password'); role = data.get('role')
    if not email or not password:
        raise InvalidRequest('email & password required')
    if role not in ROLES:
        raise InvalidRequest(f'role must be one of {list(ROLES)}')
    uid = new_doc_id()
    profile = {k: data[k] for k in PROFILE_FIELDS if k in data}
    profile['email'] = email

    def add_credential(session):
        if session.execute(select(Credential).where(Credential.email == email)).scalar_one_or_none():
            raise AlreadyExists('email already registered')
        cred = Credential(uid=uid, email=email)
        cred.set_password(password)
        session.add(cred)

    doc, = get_store().commit(
        current_principal(),
        [Write(op=OP_CREATE, collection=USERS, doc_id=uid, data=profile)],
        on_commit=add_credential,
    )
    return doc.to_dict(), 201
