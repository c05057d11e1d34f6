"""
Use-case Facade
The operations exposed to the HTTP layer and other collaborators.

Each operation binds the storage port to the request session, runs the
visibility/registry/scheduling logic, turns storage failures into an opaque
InternalError (logged with the original exception) and records an audit
entry once the change is committed.
"""
import logging
from functools import wraps
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from carebook.errors import AccessDenied, CareError, InternalError, NotFound
from carebook.extensions import db
from carebook.models import Appointment, Patient, Visit
from carebook.services import scheduling, visit_registry
from carebook.services.storage import SqlStorage
from carebook.services.visibility import Actor, AppointmentFilter, PatientFilter, can_view, scope_filter
from carebook.utils.audit import log_audit

logger = logging.getLogger(__name__)


def _storage(storage: Optional[SqlStorage]) -> SqlStorage:
    return storage if storage is not None else SqlStorage(db.session)


def _block_discharged() -> bool:
    return bool(current_app.config.get('BLOCK_DISCHARGED_PATIENTS', False))


def use_case(f):
    """Translate storage failures into InternalError; typed errors pass through"""
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except CareError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Storage failure in {f.__name__}: {e}", exc_info=True)
            db.session.rollback()
            raise InternalError() from e
    return wrapper


# ---------------- Visits ----------------
@use_case
def create_visit(visit_type: str, payload: Dict[str, Any], actor: Actor, storage: Optional[SqlStorage] = None) -> Visit:
    visit = visit_registry.create_visit(
        _storage(storage), visit_type, payload, actor,
        block_discharged=_block_discharged(),
    )
    log_audit('visit', 'create', actor=actor, entity_id=visit.id,
              details={'visit_type': visit.visit_type, 'patient_id': visit.patient_id})
    return visit


@use_case
def get_visit(visit_id: int, actor: Actor, storage: Optional[SqlStorage] = None) -> Visit:
    return visit_registry.get_visit(_storage(storage), visit_id, actor)


@use_case
def list_visits_for_patient(patient_id: str, actor: Actor, storage: Optional[SqlStorage] = None) -> List[Visit]:
    return visit_registry.list_visits_for_patient(_storage(storage), patient_id, actor)


# ---------------- Appointments ----------------
@use_case
def book_appointment(candidate: Dict[str, Any], actor: Actor, storage: Optional[SqlStorage] = None) -> Appointment:
    appointment = scheduling.book_appointment(
        _storage(storage), candidate, actor,
        block_discharged=_block_discharged(),
    )
    log_audit('appointment', 'create', actor=actor, entity_id=appointment.id,
              details={'patient_id': appointment.patient_id, 'date': appointment.date.isoformat()})
    return appointment


@use_case
def update_appointment(appointment_id: int, changes: Dict[str, Any], actor: Actor,
                       storage: Optional[SqlStorage] = None) -> Appointment:
    appointment = scheduling.update_appointment(_storage(storage), appointment_id, changes, actor)
    log_audit('appointment', 'update', actor=actor, entity_id=appointment.id,
              details={'fields': sorted(k for k in (changes or {}) if k in scheduling.UPDATABLE_FIELDS)})
    return appointment


@use_case
def reschedule_appointment(appointment_id: int, new_date: Any, new_time: Any, actor: Actor,
                           storage: Optional[SqlStorage] = None) -> Appointment:
    appointment = scheduling.reschedule_appointment(_storage(storage), appointment_id, new_date, new_time, actor)
    log_audit('appointment', 'reschedule', actor=actor, entity_id=appointment.id,
              details={'date': appointment.date.isoformat(), 'start': appointment.start_time.strftime('%H:%M')})
    return appointment


@use_case
def mark_completed(appointment_id: int, actor: Actor, notes: Optional[str] = None,
                   storage: Optional[SqlStorage] = None) -> Appointment:
    appointment = scheduling.mark_completed(_storage(storage), appointment_id, actor, notes)
    log_audit('appointment', 'complete', actor=actor, entity_id=appointment.id)
    return appointment


@use_case
def cancel(appointment_id: int, actor: Actor, notes: Optional[str] = None,
           storage: Optional[SqlStorage] = None) -> Appointment:
    appointment = scheduling.cancel_appointment(_storage(storage), appointment_id, actor, notes)
    log_audit('appointment', 'cancel', actor=actor, entity_id=appointment.id)
    return appointment


@use_case
def delete_appointment(appointment_id: int, actor: Actor, storage: Optional[SqlStorage] = None) -> Dict[str, Any]:
    snapshot = scheduling.delete_appointment(_storage(storage), appointment_id, actor)
    log_audit('appointment', 'delete', actor=actor, entity_id=appointment_id,
              details={'patient_id': snapshot['patient_id'], 'date': snapshot['date']})
    return snapshot


@use_case
def get_appointment(appointment_id: int, actor: Actor, storage: Optional[SqlStorage] = None) -> Appointment:
    return scheduling.get_appointment(_storage(storage), appointment_id, actor)


@use_case
def list_appointments(criteria: AppointmentFilter, actor: Actor, storage: Optional[SqlStorage] = None) -> List[Appointment]:
    return scheduling.list_appointments(_storage(storage), criteria, actor)


# ---------------- Patients (read-only lookup) ----------------
@use_case
def get_patient(patient_id: str, actor: Actor, storage: Optional[SqlStorage] = None) -> Patient:
    patient = _storage(storage).get_patient(patient_id)
    if not patient:
        raise NotFound(f'Patient with ID {patient_id} not found')
    if not can_view(actor, patient):
        raise AccessDenied('Access denied: Patient not assigned to you')
    return patient


@use_case
def list_patients(actor: Actor, status: Optional[str] = None, storage: Optional[SqlStorage] = None) -> List[Patient]:
    criteria = scope_filter(actor, PatientFilter(status=status))
    return _storage(storage).list_patients(criteria)
