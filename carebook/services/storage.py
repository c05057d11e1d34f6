"""
Storage Port
Read/write access to patients, visits and appointments over one SQLAlchemy
session, plus the transaction boundary the use cases run in.
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime, time
from typing import Iterator, List, Optional

from sqlalchemy import insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, undefer

from carebook.errors import Conflict
from carebook.models import Appointment, Patient, ScheduleLock, Visit
from carebook.models.appointment import FREEING_STATUSES
from carebook.services.visibility import AppointmentFilter, PatientFilter, VisitFilter

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class SqlStorage:
    def __init__(self, session: Session) -> None:
        self.session = session

    # ---------------- Transactions ----------------
    @contextmanager
    def unit_of_work(self) -> Iterator["SqlStorage"]:
        """
        Commit everything done inside the block at once, or nothing.

        A uniqueness violation raised while committing is reported as
        Conflict; any other error is re-raised after rollback.
        """
        try:
            yield self
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning("Integrity violation, transaction rolled back: %s", e.orig)
            raise Conflict('Conflicting record already exists') from e
        except Exception:
            self.session.rollback()
            raise

    def flush(self) -> None:
        try:
            self.session.flush()
        except IntegrityError as e:
            logger.warning("Integrity violation on flush: %s", e.orig)
            raise Conflict('Conflicting record already exists') from e

    # ---------------- Patients ----------------
    def get_patient(self, patient_id: str, for_update: bool = False) -> Optional[Patient]:
        if not patient_id:
            return None
        if for_update:
            return self.session.get(Patient, patient_id, with_for_update=True)
        return self.session.get(Patient, patient_id)

    def set_patient_status(self, patient: Patient, status: str) -> Patient:
        patient.status = status
        self.flush()
        return patient

    def list_patients(self, criteria: PatientFilter) -> List[Patient]:
        q = self.session.query(Patient)
        if criteria.status:
            q = q.filter(Patient.status == criteria.status)
        if criteria.assigned_doctor_id:
            q = q.filter(Patient.assigned_doctor_id == criteria.assigned_doctor_id)
        if criteria.scope_assigned_doctor_id:
            q = q.filter(Patient.assigned_doctor_id == criteria.scope_assigned_doctor_id)
        return q.order_by(Patient.last_name.asc(), Patient.first_name.asc(), Patient.id.asc()).all()

    # ---------------- Visits ----------------
    def get_visit(self, visit_id, with_payload: bool = False) -> Optional[Visit]:
        if visit_id is None:
            return None
        if with_payload:
            return (
                self.session.query(Visit)
                .options(undefer(Visit.exam_data))
                .filter(Visit.id == visit_id)
                .first()
            )
        return self.session.get(Visit, visit_id)

    def add_visit(self, visit: Visit) -> Visit:
        self.session.add(visit)
        self.flush()
        return visit

    def list_visits(self, criteria: VisitFilter) -> List[Visit]:
        # exam_data stays deferred: listings read the discriminant only
        q = self.session.query(Visit)
        if criteria.patient_id:
            q = q.filter(Visit.patient_id == criteria.patient_id)
        if criteria.visit_type:
            q = q.filter(Visit.visit_type == criteria.visit_type)
        if criteria.scope_doctor_id:
            q = q.filter(Visit.doctor_id == criteria.scope_doctor_id)
        return q.order_by(Visit.date.desc(), Visit.id.desc()).all()

    # ---------------- Appointments ----------------
    def get_appointment(self, appointment_id) -> Optional[Appointment]:
        if appointment_id is None:
            return None
        return self.session.get(Appointment, appointment_id)

    def add_appointment(self, appointment: Appointment) -> Appointment:
        self.session.add(appointment)
        self.flush()
        return appointment

    def delete_appointment(self, appointment: Appointment) -> None:
        self.session.delete(appointment)
        self.flush()

    def ensure_lock_row(self, doctor_id: str, day: date) -> None:
        """
        Insert the doctor/day lock row unless it already exists.

        Runs as INSERT ... ON CONFLICT DO NOTHING, so a concurrent first
        booking of the same day waits for the other insert instead of
        failing on the primary key.
        """
        values = {'doctor_id': doctor_id, 'day': day, 'created_at': datetime.utcnow()}
        dialect = self.session.get_bind().dialect.name
        if dialect in _UPSERT_INSERTS:
            stmt = _UPSERT_INSERTS[dialect](ScheduleLock).values(**values)
            self.session.execute(stmt.on_conflict_do_nothing(index_elements=['doctor_id', 'day']))
            return

        try:
            with self.session.begin_nested():
                self.session.execute(insert(ScheduleLock).values(**values))
        except IntegrityError:
            logger.debug("Lock row for %s on %s already exists", doctor_id, day)

    def lock_doctor_day(self, doctor_id: str, day: date) -> ScheduleLock:
        """
        Take the row lock that serializes bookings for one doctor and day.

        The row is created first if needed, then selected FOR UPDATE; the
        overlap scan that follows sees every booking committed before the
        lock was granted.
        """
        self.ensure_lock_row(doctor_id, day)
        return self.session.get(
            ScheduleLock, (doctor_id, day),
            with_for_update=True, populate_existing=True,
        )

    def find_conflict(
        self,
        doctor_id: str,
        day: date,
        start: time,
        end: time,
        exclude_id: Optional[int] = None,
    ) -> Optional[Appointment]:
        """First active appointment overlapping [start, end) for the doctor on that day"""
        q = self.session.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.date == day,
            Appointment.status.notin_(FREEING_STATUSES),
            Appointment.start_time < end,
            Appointment.end_time > start,
        )
        if exclude_id is not None:
            q = q.filter(Appointment.id != exclude_id)
        return q.order_by(Appointment.start_time.asc(), Appointment.id.asc()).first()

    def list_appointments(self, criteria: AppointmentFilter) -> List[Appointment]:
        q = self.session.query(Appointment)
        if criteria.start_date:
            q = q.filter(Appointment.date >= criteria.start_date)
        if criteria.end_date:
            q = q.filter(Appointment.date <= criteria.end_date)
        if criteria.status:
            q = q.filter(Appointment.status == criteria.status)
        if criteria.doctor_id:
            q = q.filter(Appointment.doctor_id == criteria.doctor_id)
        if criteria.scope_doctor_id:
            q = q.filter(Appointment.doctor_id == criteria.scope_doctor_id)
        if criteria.patient_id:
            q = q.filter(Appointment.patient_id == criteria.patient_id)
        return q.order_by(
            Appointment.date.asc(),
            Appointment.start_time.asc(),
            Appointment.id.asc(),
        ).all()
