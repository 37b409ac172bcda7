"""
Pytest fixtures for franchise CRM backend tests.

Provides test database setup, branch/profile fixtures for every role, and
login helpers.
"""

from datetime import timedelta

import pytest

from franchise_crm import create_app
from franchise_crm.extensions import db
from franchise_crm.models import AuthIdentity, Branch, Invitation, Profile
from franchise_crm.services.auth_service import hash_password
from franchise_crm.services.invitation_service import generate_invite_code
from franchise_crm.time_utils import utcnow

DEFAULT_PASSWORD = "secret123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        # Cheapest cost bcrypt accepts
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# FACTORIES
# =============================================================================

def make_branch(code: str, name: str | None = None, **kwargs) -> Branch:
    branch = Branch(code=code, name=name or f"Branch {code}", **kwargs)
    db.session.add(branch)
    db.session.commit()
    return branch


def make_profile(
    email: str,
    role: str,
    *,
    branch: Branch | None = None,
    approved: bool = False,
    password: str = DEFAULT_PASSWORD,
    name: str | None = None,
    phone: str = "010-1234-5678",
) -> Profile:
    """Identity + profile pair, bypassing the signup flow."""
    identity = AuthIdentity(
        email=email,
        password_hash=hash_password(password),
        user_metadata={"role": role},
    )
    db.session.add(identity)
    db.session.flush()

    profile = Profile(
        id=identity.id,
        email=email,
        name=name or email.split("@")[0],
        phone=phone,
        role=role,
        branch_id=branch.id if branch else None,
        approved=approved,
        approved_at=utcnow() if approved else None,
    )
    db.session.add(profile)
    db.session.commit()
    return profile


def make_invitation(
    inviter: Profile,
    email: str,
    *,
    branch: Branch,
    role: str = "STAFF",
    expires_in: timedelta = timedelta(days=7),
    used_by: Profile | None = None,
) -> Invitation:
    now = utcnow()
    invitation = Invitation(
        email=email,
        role=role,
        branch_id=branch.id,
        invite_code=generate_invite_code(),
        invited_by=inviter.id,
        expires_at=now + expires_in,
        used_at=now if used_by else None,
        used_by=used_by.id if used_by else None,
    )
    db.session.add(invitation)
    db.session.commit()
    return invitation


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(scope='function')
def branch_a(db_session):
    """Gangnam branch."""
    return make_branch("GN01", "Gangnam")


@pytest.fixture(scope='function')
def branch_b(db_session):
    """Hongdae branch."""
    return make_branch("HD01", "Hongdae")


@pytest.fixture(scope='function')
def hq(db_session):
    """Approved HQ user."""
    return make_profile("hq@franchise.test", "HQ", approved=True, name="Head Office")


@pytest.fixture(scope='function')
def owner_a(db_session, branch_a):
    return make_profile("owner.a@franchise.test", "OWNER", branch=branch_a, approved=True)


@pytest.fixture(scope='function')
def owner_b(db_session, branch_b):
    return make_profile("owner.b@franchise.test", "OWNER", branch=branch_b, approved=True)


@pytest.fixture(scope='function')
def staff_a(db_session, branch_a):
    return make_profile("staff.a@franchise.test", "STAFF", branch=branch_a, approved=True)


@pytest.fixture(scope='function')
def pending_owner(db_session, branch_a):
    """Registered OWNER still waiting for HQ approval."""
    return make_profile("pending.owner@franchise.test", "OWNER", branch=branch_a, approved=False)


def get_auth_token(app, email: str, password: str = DEFAULT_PASSWORD) -> str:
    """
    Helper to get auth token for a user.

    Uses a throwaway client so the login cookie does not stick to the
    client under test (the cookie would take precedence over headers).
    """
    response = app.test_client().post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def hq_headers(app, hq):
    return auth_headers(get_auth_token(app, hq.email))


@pytest.fixture(scope='function')
def owner_headers(app, owner_a):
    return auth_headers(get_auth_token(app, owner_a.email))


@pytest.fixture(scope='function')
def staff_headers(app, staff_a):
    return auth_headers(get_auth_token(app, staff_a.email))


@pytest.fixture(scope='function')
def pending_headers(app, pending_owner):
    return auth_headers(get_auth_token(app, pending_owner.email))
