"""
Tests for appointment booking, overlap detection and status transitions.
"""
import json
from datetime import date, time

import pytest
from sqlalchemy import insert

from carebook.errors import AccessDenied, Conflict, NotFound, ValidationError
from carebook.extensions import db
from carebook.models import Appointment, AuditLog, ScheduleLock
from carebook.services import use_cases
from carebook.services.scheduling import TimeRange, conflicts_with
from carebook.services.storage import SqlStorage
from carebook.services.visibility import AppointmentFilter


DAY = '2024-05-06'


def slot(start, end):
    return {'start': start, 'end': end}


def book(actor, start, end, day=DAY, patient_id='P001', **extra):
    candidate = {'patient_id': patient_id, 'date': day, 'time': slot(start, end)}
    candidate.update(extra)
    return use_cases.book_appointment(candidate, actor)


# ============================================================================
# Interval rules
# ============================================================================

class TestTimeRange:
    def test_end_must_follow_start(self):
        with pytest.raises(ValidationError):
            TimeRange(time(10, 0), time(10, 0))
        with pytest.raises(ValidationError):
            TimeRange(time(10, 0), time(9, 0))

    def test_touching_intervals_do_not_overlap(self):
        assert not TimeRange(time(9, 0), time(9, 30)).overlaps(TimeRange(time(9, 30), time(10, 0)))

    def test_nested_interval_overlaps(self):
        assert TimeRange(time(9, 0), time(11, 0)).overlaps(TimeRange(time(9, 30), time(10, 0)))

    def test_from_payload_requires_object(self):
        with pytest.raises(ValidationError):
            TimeRange.from_payload('09:00-09:30')

    def test_from_payload_rejects_bad_format(self):
        with pytest.raises(ValidationError):
            TimeRange.from_payload(slot('9am', '10am'))

    def test_cancelled_appointment_never_conflicts(self):
        existing = Appointment(
            doctor_id='doc-1', date=date(2024, 5, 6),
            start_time=time(9, 0), end_time=time(10, 0), status='cancelled',
        )
        assert not conflicts_with(existing, date(2024, 5, 6), TimeRange(time(9, 0), time(10, 0)))

    def test_other_day_never_conflicts(self):
        existing = Appointment(
            doctor_id='doc-1', date=date(2024, 5, 7),
            start_time=time(9, 0), end_time=time(10, 0), status='scheduled',
        )
        assert not conflicts_with(existing, date(2024, 5, 6), TimeRange(time(9, 0), time(10, 0)))


# ============================================================================
# Booking
# ============================================================================

class TestBooking:
    def test_book_appointment(self, patient, doctor):
        appointment = book(doctor, '09:00', '09:30', notes='First session', calendar_event_id='evt-1')

        assert appointment.status == 'scheduled'
        assert appointment.doctor_id == 'doc-1'
        assert appointment.date == date(2024, 5, 6)
        assert appointment.start_time == time(9, 0)
        assert appointment.end_time == time(9, 30)
        assert appointment.calendar_event_id == 'evt-1'
        assert db.session.get(ScheduleLock, ('doc-1', date(2024, 5, 6))) is not None

    def test_touching_bookings_are_accepted(self, patient, doctor):
        book(doctor, '09:00', '09:30')
        book(doctor, '09:30', '10:00')
        book(doctor, '08:30', '09:00')
        assert Appointment.query.count() == 3

    def test_overlap_is_rejected_with_existing_id(self, patient, doctor):
        existing = book(doctor, '09:00', '10:00')

        with pytest.raises(Conflict) as exc:
            book(doctor, '09:30', '10:30')

        assert exc.value.existing_id == existing.id
        assert exc.value.details == {'existing_appointment_id': existing.id}
        assert Appointment.query.count() == 1

    def test_enclosing_interval_is_rejected(self, patient, doctor):
        book(doctor, '09:15', '09:45')
        with pytest.raises(Conflict):
            book(doctor, '09:00', '10:00')

    def test_other_doctor_same_slot_is_fine(self, patient, other_patient, doctor, other_doctor):
        book(doctor, '09:00', '10:00')
        appointment = book(other_doctor, '09:00', '10:00', patient_id='P002')
        assert appointment.doctor_id == 'doc-2'

    def test_same_slot_other_day_is_fine(self, patient, doctor):
        book(doctor, '09:00', '10:00')
        book(doctor, '09:00', '10:00', day='2024-05-07')
        assert Appointment.query.count() == 2

    def test_cancelled_appointment_frees_slot(self, patient, doctor):
        first = book(doctor, '09:00', '10:00')
        use_cases.cancel(first.id, doctor)

        second = book(doctor, '09:00', '10:00')
        assert second.id != first.id

    def test_no_show_frees_slot(self, patient, doctor):
        first = book(doctor, '09:00', '10:00')
        first.status = 'no-show'
        db.session.commit()

        book(doctor, '09:30', '10:30')
        assert Appointment.query.count() == 2

    def test_invalid_interval(self, patient, doctor):
        with pytest.raises(ValidationError):
            book(doctor, '10:00', '09:00')
        assert Appointment.query.count() == 0

    def test_missing_date(self, patient, doctor):
        with pytest.raises(ValidationError):
            use_cases.book_appointment({'patient_id': 'P001', 'time': slot('09:00', '09:30')}, doctor)

    def test_unknown_patient(self, app, doctor):
        with pytest.raises(NotFound):
            book(doctor, '09:00', '09:30', patient_id='NOPE')

    def test_doctor_cannot_book_for_other_doctors_patient(self, other_patient, doctor):
        with pytest.raises(AccessDenied):
            book(doctor, '09:00', '09:30', patient_id='P002')
        assert Appointment.query.count() == 0
        assert ScheduleLock.query.count() == 0

    def test_doctor_books_for_themselves(self, patient, doctor):
        appointment = book(doctor, '09:00', '09:30', doctor_id='doc-2')
        assert appointment.doctor_id == 'doc-1'

    def test_admin_defaults_to_assigned_doctor(self, patient, admin):
        appointment = book(admin, '09:00', '09:30')
        assert appointment.doctor_id == 'doc-1'

    def test_discharged_patient_blocked_when_configured(self, app, patient, doctor):
        app.config['BLOCK_DISCHARGED_PATIENTS'] = True
        use_cases.create_visit('discharge', {'patient_id': 'P001'}, doctor)

        with pytest.raises(ValidationError):
            book(doctor, '09:00', '09:30')

    def test_booking_is_audited(self, patient, doctor):
        appointment = book(doctor, '09:00', '09:30')
        entry = AuditLog.query.filter_by(entity_type='appointment', action='create').one()
        assert entry.entity_id == str(appointment.id)


# ============================================================================
# Updates and rescheduling
# ============================================================================

class TestReschedule:
    def test_reschedule_excludes_itself(self, patient, doctor):
        appointment = book(doctor, '09:00', '10:00')
        moved = use_cases.reschedule_appointment(appointment.id, DAY, slot('09:30', '10:30'), doctor)

        assert moved.start_time == time(9, 30)
        assert moved.end_time == time(10, 30)

    def test_reschedule_into_taken_slot(self, patient, doctor):
        taken = book(doctor, '11:00', '12:00')
        appointment = book(doctor, '09:00', '10:00')

        with pytest.raises(Conflict) as exc:
            use_cases.reschedule_appointment(appointment.id, DAY, slot('11:30', '12:30'), doctor)

        assert exc.value.existing_id == taken.id
        assert db.session.get(Appointment, appointment.id).start_time == time(9, 0)

    def test_reschedule_to_other_day(self, patient, doctor):
        appointment = book(doctor, '09:00', '10:00')
        moved = use_cases.reschedule_appointment(appointment.id, '2024-05-08', slot('09:00', '10:00'), doctor)
        assert moved.date == date(2024, 5, 8)

    def test_update_notes_only(self, patient, doctor):
        appointment = book(doctor, '09:00', '10:00')
        updated = use_cases.update_appointment(appointment.id, {'notes': 'Bring MRI', 'status': 'completed'}, doctor)

        assert updated.notes == 'Bring MRI'
        # status changes only through the transition operations
        assert updated.status == 'scheduled'

    def test_update_audit_lists_applied_fields_only(self, patient, admin):
        appointment = book(admin, '09:00', '10:00')
        use_cases.update_appointment(appointment.id, {'notes': 'x', 'status': 'completed', 'doctor_id': 'doc-2'}, admin)

        entry = AuditLog.query.filter_by(entity_type='appointment', action='update').one()
        assert json.loads(entry.details) == {'fields': ['notes']}
        assert entry.actor_id == 'admin-1'
        assert entry.actor_role == 'admin'

    def test_completed_appointment_cannot_move(self, patient, doctor):
        appointment = book(doctor, '09:00', '10:00')
        use_cases.mark_completed(appointment.id, doctor)

        with pytest.raises(ValidationError):
            use_cases.reschedule_appointment(appointment.id, DAY, slot('13:00', '14:00'), doctor)

    def test_completed_appointment_notes_can_change(self, patient, doctor):
        appointment = book(doctor, '09:00', '10:00')
        use_cases.mark_completed(appointment.id, doctor)

        updated = use_cases.update_appointment(appointment.id, {'notes': 'Follow up in 2 weeks'}, doctor)
        assert updated.notes == 'Follow up in 2 weeks'

    def test_other_doctor_cannot_update(self, patient, doctor, other_doctor):
        appointment = book(doctor, '09:00', '10:00')
        with pytest.raises(AccessDenied):
            use_cases.update_appointment(appointment.id, {'notes': 'x'}, other_doctor)

    def test_update_missing_appointment(self, app, doctor):
        with pytest.raises(NotFound):
            use_cases.update_appointment(404, {'notes': 'x'}, doctor)


# ============================================================================
# Status transitions
# ============================================================================

class TestTransitions:
    def test_mark_completed(self, patient, doctor):
        appointment = book(doctor, '09:00', '10:00')
        completed = use_cases.mark_completed(appointment.id, doctor, notes='Done')

        assert completed.status == 'completed'
        assert completed.notes == 'Done'

    def test_completed_appointment_still_holds_slot(self, patient, doctor):
        appointment = book(doctor, '09:00', '10:00')
        use_cases.mark_completed(appointment.id, doctor)

        with pytest.raises(Conflict):
            book(doctor, '09:00', '10:00')

    @pytest.mark.parametrize('first, second', [
        ('mark_completed', 'cancel'),
        ('cancel', 'mark_completed'),
        ('cancel', 'cancel'),
        ('mark_completed', 'mark_completed'),
    ])
    def test_terminal_states_are_final(self, patient, doctor, first, second):
        appointment = book(doctor, '09:00', '10:00')
        getattr(use_cases, first)(appointment.id, doctor)

        with pytest.raises(ValidationError):
            getattr(use_cases, second)(appointment.id, doctor)

    def test_other_doctor_cannot_cancel(self, patient, doctor, other_doctor):
        appointment = book(doctor, '09:00', '10:00')
        with pytest.raises(AccessDenied):
            use_cases.cancel(appointment.id, other_doctor)
        assert db.session.get(Appointment, appointment.id).status == 'scheduled'

    def test_delete_appointment(self, patient, doctor):
        appointment = book(doctor, '09:00', '10:00')
        appointment_id = appointment.id

        snapshot = use_cases.delete_appointment(appointment_id, doctor)

        assert snapshot['id'] == appointment_id
        assert db.session.get(Appointment, appointment_id) is None
        book(doctor, '09:00', '10:00')

    def test_delete_missing_appointment(self, app, doctor):
        with pytest.raises(NotFound):
            use_cases.delete_appointment(404, doctor)


# ============================================================================
# Listing
# ============================================================================

class TestListing:
    def test_ordered_by_date_then_start(self, patient, doctor):
        book(doctor, '14:00', '15:00', day='2024-05-07')
        book(doctor, '11:00', '12:00')
        book(doctor, '09:00', '10:00')

        appointments = use_cases.list_appointments(AppointmentFilter(), doctor)
        assert [(a.date.isoformat(), a.start_time.strftime('%H:%M')) for a in appointments] == [
            ('2024-05-06', '09:00'),
            ('2024-05-06', '11:00'),
            ('2024-05-07', '14:00'),
        ]

    def test_listing_is_idempotent(self, patient, doctor):
        book(doctor, '11:00', '12:00')
        book(doctor, '09:00', '10:00')

        first = [a.to_dict() for a in use_cases.list_appointments(AppointmentFilter(), doctor)]
        second = [a.to_dict() for a in use_cases.list_appointments(AppointmentFilter(), doctor)]
        assert first == second
        assert len(first) == 2

    def test_date_range_is_inclusive(self, patient, doctor):
        book(doctor, '09:00', '10:00', day='2024-05-05')
        book(doctor, '09:00', '10:00', day='2024-05-06')
        book(doctor, '09:00', '10:00', day='2024-05-07')
        book(doctor, '09:00', '10:00', day='2024-05-08')

        criteria = AppointmentFilter(start_date=date(2024, 5, 6), end_date=date(2024, 5, 7))
        appointments = use_cases.list_appointments(criteria, doctor)
        assert [a.date for a in appointments] == [date(2024, 5, 6), date(2024, 5, 7)]

    def test_doctor_sees_only_own_appointments(self, patient, other_patient, doctor, other_doctor, admin):
        book(doctor, '09:00', '10:00')
        book(other_doctor, '09:00', '10:00', patient_id='P002')

        assert {a.doctor_id for a in use_cases.list_appointments(AppointmentFilter(), doctor)} == {'doc-1'}
        assert len(use_cases.list_appointments(AppointmentFilter(), admin)) == 2

    def test_doctor_asking_for_other_doctor_gets_nothing(self, patient, other_patient, doctor, other_doctor):
        book(doctor, '09:00', '10:00')
        book(other_doctor, '09:00', '10:00', patient_id='P002')

        assert use_cases.list_appointments(AppointmentFilter(doctor_id='doc-2'), doctor) == []

    def test_status_filter(self, patient, doctor):
        first = book(doctor, '09:00', '10:00')
        book(doctor, '10:00', '11:00')
        use_cases.cancel(first.id, doctor)

        cancelled = use_cases.list_appointments(AppointmentFilter(status='cancelled'), doctor)
        assert [a.id for a in cancelled] == [first.id]

    def test_invalid_status_filter(self, app, doctor):
        with pytest.raises(ValidationError):
            use_cases.list_appointments(AppointmentFilter(status='done'), doctor)

    def test_get_appointment_of_other_doctor_is_denied(self, patient, doctor, other_doctor):
        appointment = book(doctor, '09:00', '10:00')
        with pytest.raises(AccessDenied):
            use_cases.get_appointment(appointment.id, other_doctor)


# ============================================================================
# Doctor/day lock
# ============================================================================

class TestScheduleLock:
    def _commit_concurrent_booking(self, start, end):
        """Another request books the same doctor/day and commits first"""
        db.session.execute(insert(ScheduleLock).values(doctor_id='doc-1', day=date(2024, 5, 6)))
        result = db.session.execute(insert(Appointment).values(
            patient_id='P001', doctor_id='doc-1', date=date(2024, 5, 6),
            start_time=start, end_time=end, status='scheduled',
        ))
        db.session.commit()
        return result.inserted_primary_key[0]

    def _race_first_booking(self, monkeypatch, start, end):
        original = SqlStorage.ensure_lock_row
        committed = {}

        def ensure_after_other_booking(storage, doctor_id, day):
            if not committed:
                committed['id'] = self._commit_concurrent_booking(start, end)
            return original(storage, doctor_id, day)

        monkeypatch.setattr(SqlStorage, 'ensure_lock_row', ensure_after_other_booking)
        return committed

    def test_lock_row_creation_is_idempotent(self, storage):
        storage.ensure_lock_row('doc-1', date(2024, 5, 6))
        storage.ensure_lock_row('doc-1', date(2024, 5, 6))
        storage.lock_doctor_day('doc-1', date(2024, 5, 6))
        db.session.commit()

        assert ScheduleLock.query.count() == 1

    def test_concurrent_first_booking_of_day_is_not_a_conflict(self, patient, doctor, monkeypatch):
        committed = self._race_first_booking(monkeypatch, time(9, 0), time(9, 30))

        appointment = book(doctor, '14:00', '15:00')

        assert appointment.id != committed['id']
        assert Appointment.query.count() == 2
        assert ScheduleLock.query.count() == 1

    def test_concurrent_overlapping_booking_reports_existing_id(self, patient, doctor, monkeypatch):
        committed = self._race_first_booking(monkeypatch, time(14, 30), time(15, 30))

        with pytest.raises(Conflict) as exc:
            book(doctor, '14:00', '15:00')

        assert exc.value.existing_id == committed['id']
        assert Appointment.query.count() == 1
