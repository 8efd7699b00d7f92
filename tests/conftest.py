"""Shared test fixtures for the lead engagement test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: staff users (admin, two telecallers, counselor, auditor) + a course
"""

import pytest
from werkzeug.security import generate_password_hash

from leadcrm import create_app
from leadcrm.extensions import db as _db
from leadcrm.models.course import Course
from leadcrm.models.user import User


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture(autouse=True)
def reset_flags(app):
    """Tests flip config flags; put them back afterwards."""
    saved = {
        key: app.config[key]
        for key in ("LEAD_STAGE_STRICT", "ENFORCE_CALL_LIMITS", "STATS_TIMEZONE")
    }
    yield
    app.config.update(saved)


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


def _user(email, name, role, password="password123"):
    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        name=name,
        role=role,
    )
    _db.session.add(user)
    _db.session.flush()
    return user


@pytest.fixture
def seed_data(app, db_session):
    """Seed staff users and one course.

    Every user's password is "password123". Returns objects plus plain ids
    so tests can use them across app contexts.
    """
    with app.app_context():
        admin = _user("admin@leadcrm.local", "Admin User", "super_admin")
        telecaller = _user("tc1@leadcrm.local", "Tara Caller", "telecaller")
        telecaller2 = _user("tc2@leadcrm.local", "Theo Caller", "telecaller")
        counselor = _user("counselor@leadcrm.local", "Cora Counselor", "counselor")
        auditor = _user("auditor@leadcrm.local", "Avery Auditor", "auditor")

        course = Course(name="Data Science Bootcamp", code="DSB-101")
        _db.session.add(course)
        _db.session.commit()

        return {
            "admin": admin,
            "admin_id": admin.id,
            "telecaller": telecaller,
            "telecaller_id": telecaller.id,
            "telecaller2_id": telecaller2.id,
            "counselor_id": counselor.id,
            "auditor_id": auditor.id,
            "course_id": course.id,
            "password": "password123",
        }
