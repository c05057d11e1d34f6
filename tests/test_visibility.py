"""
Tests for the visibility policy: who may see and change what.
"""
from datetime import date
from types import SimpleNamespace

import pytest

from carebook.errors import AccessDenied
from carebook.services.visibility import (
    Actor,
    AppointmentFilter,
    PatientFilter,
    VisitFilter,
    authorize_mutation,
    can_view,
    ensure_can_mutate,
    scope_filter,
)


ADMIN = Actor(id='admin-1', role='admin')
DOCTOR = Actor(id='doc-1', role='doctor')


class TestScopeFilter:
    def test_admin_filter_is_unchanged(self):
        criteria = AppointmentFilter(doctor_id='doc-2', start_date=date(2024, 5, 1))
        assert scope_filter(ADMIN, criteria) == criteria

    def test_doctor_is_narrowed_to_own_appointments(self):
        scoped = scope_filter(DOCTOR, AppointmentFilter())
        assert scoped.scope_doctor_id == 'doc-1'

    def test_doctor_scope_is_added_next_to_requested_doctor(self):
        """Asking for another doctor keeps both filters: the intersection is empty"""
        scoped = scope_filter(DOCTOR, AppointmentFilter(doctor_id='doc-2'))
        assert scoped.doctor_id == 'doc-2'
        assert scoped.scope_doctor_id == 'doc-1'

    def test_doctor_visits_are_scoped_by_doctor(self):
        scoped = scope_filter(DOCTOR, VisitFilter(patient_id='P001'))
        assert scoped.patient_id == 'P001'
        assert scoped.scope_doctor_id == 'doc-1'

    def test_doctor_patients_are_scoped_by_assignment(self):
        scoped = scope_filter(DOCTOR, PatientFilter(status='active'))
        assert scoped.scope_assigned_doctor_id == 'doc-1'
        assert scoped.status == 'active'


class TestAuthorizeMutation:
    def test_admin_may_change_anything(self):
        assert authorize_mutation(ADMIN, SimpleNamespace(doctor_id='doc-9'))

    def test_doctor_may_change_own_appointment(self):
        assert authorize_mutation(DOCTOR, SimpleNamespace(doctor_id='doc-1'))

    def test_doctor_may_not_change_other_doctors_appointment(self):
        assert not authorize_mutation(DOCTOR, SimpleNamespace(doctor_id='doc-2'))

    def test_patient_ownership_uses_assigned_doctor(self):
        assert authorize_mutation(DOCTOR, SimpleNamespace(assigned_doctor_id='doc-1'))
        assert not authorize_mutation(DOCTOR, SimpleNamespace(assigned_doctor_id='doc-2'))

    def test_entity_without_owner_is_admin_only(self):
        assert not authorize_mutation(DOCTOR, SimpleNamespace())

    def test_can_view_follows_ownership(self):
        assert can_view(DOCTOR, SimpleNamespace(doctor_id='doc-1'))
        assert not can_view(DOCTOR, SimpleNamespace(doctor_id='doc-2'))

    def test_ensure_can_mutate_raises_access_denied(self):
        with pytest.raises(AccessDenied) as exc:
            ensure_can_mutate(DOCTOR, SimpleNamespace(doctor_id='doc-2'), 'Not yours')
        assert exc.value.status_code == 403
        assert exc.value.message == 'Not yours'
