"""
Shared pytest fixtures.

Provides:
- Flask app on the in-memory SQLite TestingConfig, tables created per test
- Actors for each role and matching JWT Authorization headers
- Seeded patients assigned to two different doctors
"""
import pytest
from flask_jwt_extended import create_access_token

from carebook import create_app
from carebook.extensions import db
from carebook.models import Patient
from carebook.services import Actor, SqlStorage


DOCTOR_ID = 'doc-1'
OTHER_DOCTOR_ID = 'doc-2'


# ============================================================================
# Application
# ============================================================================

@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def storage(app):
    return SqlStorage(db.session)


# ============================================================================
# Actors
# ============================================================================

@pytest.fixture
def admin():
    return Actor(id='admin-1', role='admin')


@pytest.fixture
def doctor():
    return Actor(id=DOCTOR_ID, role='doctor')


@pytest.fixture
def other_doctor():
    return Actor(id=OTHER_DOCTOR_ID, role='doctor')


def _auth_headers(identity, role):
    token = create_access_token(identity=identity, additional_claims={'role': role})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(app, admin):
    return _auth_headers(admin.id, admin.role)


@pytest.fixture
def doctor_headers(app, doctor):
    return _auth_headers(doctor.id, doctor.role)


@pytest.fixture
def other_doctor_headers(app, other_doctor):
    return _auth_headers(other_doctor.id, other_doctor.role)


# ============================================================================
# Patients
# ============================================================================

@pytest.fixture
def patient(app):
    """Active patient assigned to doc-1"""
    p = Patient(id='P001', first_name='Ana', last_name='Lopez', assigned_doctor_id=DOCTOR_ID)
    db.session.add(p)
    db.session.commit()
    return p


@pytest.fixture
def other_patient(app):
    """Active patient assigned to doc-2"""
    p = Patient(id='P002', first_name='Ben', last_name='Okafor', assigned_doctor_id=OTHER_DOCTOR_ID)
    db.session.add(p)
    db.session.commit()
    return p
