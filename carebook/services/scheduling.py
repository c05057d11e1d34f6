"""
Appointment Conflict Detector
Half-open interval overlap checks and the booking / reschedule / status
workflows that depend on them.

Two appointments of the same doctor on the same day conflict when neither is
cancelled or no-show and `a.start < b.end and a.end > b.start`. Touching
intervals (one ends exactly when the next starts) do not conflict.
"""
import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Any, Dict, List, Optional

from carebook.errors import AccessDenied, Conflict, NotFound, ValidationError
from carebook.models import Appointment
from carebook.models.appointment import (
    APPOINTMENT_STATUSES,
    FREEING_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_SCHEDULED,
)
from carebook.services.storage import SqlStorage
from carebook.services.visibility import (
    Actor,
    AppointmentFilter,
    can_view,
    ensure_can_mutate,
    scope_filter,
)
from carebook.utils.parsing import parse_date, parse_time

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('date', 'time', 'notes', 'calendar_event_id')


@dataclass(frozen=True)
class TimeRange:
    """Half-open time-of-day interval [start, end)"""
    start: time
    end: time

    def __post_init__(self):
        if self.end <= self.start:
            raise ValidationError(
                'Invalid time range: end must be after start',
                {'start': self.start.strftime('%H:%M'), 'end': self.end.strftime('%H:%M')},
            )

    @classmethod
    def from_payload(cls, value: Any) -> "TimeRange":
        """Build from {'start': 'HH:MM', 'end': 'HH:MM'}"""
        if not isinstance(value, dict):
            raise ValidationError('Field "time" must be an object with "start" and "end"')
        return cls(parse_time(value.get('start'), 'time.start'), parse_time(value.get('end'), 'time.end'))

    @classmethod
    def of(cls, appointment: Appointment) -> "TimeRange":
        return cls(appointment.start_time, appointment.end_time)

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and self.end > other.start


def conflicts_with(existing: Appointment, day: date, candidate: TimeRange) -> bool:
    """Whether `existing` blocks `candidate` on `day` (same doctor assumed)"""
    if existing.status in FREEING_STATUSES or existing.date != day:
        return False
    return TimeRange.of(existing).overlaps(candidate)


def _ensure_slot_free(
    storage: SqlStorage,
    doctor_id: str,
    day: date,
    candidate: TimeRange,
    exclude_id: Optional[int] = None,
) -> None:
    # Lock first so the scan and the write below are not interleaved with another booking
    storage.lock_doctor_day(doctor_id, day)
    existing = storage.find_conflict(doctor_id, day, candidate.start, candidate.end, exclude_id=exclude_id)
    if existing is not None:
        logger.info(
            f"Booking conflict for doctor {doctor_id} on {day}: "
            f"{candidate.start:%H:%M}-{candidate.end:%H:%M} overlaps appointment {existing.id}"
        )
        raise Conflict(
            f'Conflicting appointment exists '
            f'({existing.start_time:%H:%M}-{existing.end_time:%H:%M})',
            existing_id=existing.id,
        )


def _load_for_mutation(storage: SqlStorage, appointment_id: int, actor: Actor) -> Appointment:
    appointment = storage.get_appointment(appointment_id)
    if not appointment:
        raise NotFound('Appointment not found')
    ensure_can_mutate(actor, appointment)
    return appointment


def book_appointment(
    storage: SqlStorage,
    candidate: Dict[str, Any],
    actor: Actor,
    block_discharged: bool = False,
) -> Appointment:
    """
    Book a new appointment if the doctor's slot is free.

    Args:
        storage: Storage port bound to the request session
        candidate: {'patient_id', 'doctor_id'?, 'date', 'time': {'start', 'end'}, 'notes'?, 'calendar_event_id'?}
        actor: Authenticated caller; doctors always book for themselves
        block_discharged: Reject bookings for discharged patients

    Returns:
        Appointment: The new appointment, status 'scheduled'
    """
    candidate = candidate or {}

    with storage.unit_of_work():
        patient = storage.get_patient(candidate.get('patient_id'))
        if not patient:
            raise NotFound(f'Patient with ID {candidate.get("patient_id")} not found')

        ensure_can_mutate(actor, patient, 'Access denied: Patient not assigned to you')
        if actor.is_doctor:
            doctor_id = actor.id
        else:
            doctor_id = candidate.get('doctor_id') or patient.assigned_doctor_id

        if block_discharged and patient.is_discharged:
            raise ValidationError(f'Patient {patient.id} is discharged')

        day = parse_date(candidate.get('date'))
        slot = TimeRange.from_payload(candidate.get('time'))

        _ensure_slot_free(storage, doctor_id, day, slot)

        appointment = storage.add_appointment(Appointment(
            patient_id=patient.id,
            doctor_id=doctor_id,
            date=day,
            start_time=slot.start,
            end_time=slot.end,
            status=STATUS_SCHEDULED,
            notes=candidate.get('notes'),
            calendar_event_id=candidate.get('calendar_event_id'),
        ))

    logger.info(f"Appointment {appointment.id} booked for patient {appointment.patient_id} with doctor {appointment.doctor_id}")
    return appointment


def _apply_changes(storage: SqlStorage, appointment: Appointment, changes: Dict[str, Any]) -> bool:
    """Apply field changes; returns True if the slot moved"""
    new_day = parse_date(changes['date']) if changes.get('date') is not None else appointment.date
    if changes.get('time') is not None:
        new_slot = TimeRange.from_payload(changes['time'])
    else:
        new_slot = TimeRange.of(appointment)

    moved = (new_day, new_slot) != (appointment.date, TimeRange.of(appointment))
    if moved:
        if not appointment.is_scheduled:
            raise ValidationError(f'Cannot reschedule a {appointment.status} appointment')
        _ensure_slot_free(storage, appointment.doctor_id, new_day, new_slot, exclude_id=appointment.id)
        appointment.date = new_day
        appointment.start_time = new_slot.start
        appointment.end_time = new_slot.end

    if 'notes' in changes:
        appointment.notes = changes['notes']
    if 'calendar_event_id' in changes:
        appointment.calendar_event_id = changes['calendar_event_id']
    storage.flush()
    return moved


def update_appointment(
    storage: SqlStorage,
    appointment_id: int,
    changes: Dict[str, Any],
    actor: Actor,
) -> Appointment:
    """
    Edit date, time, notes or calendar_event_id.

    Date/time changes go through the overlap check (ignoring the appointment
    itself); unchanged date/time is a plain field update.
    """
    changes = {k: v for k, v in (changes or {}).items() if k in UPDATABLE_FIELDS}
    with storage.unit_of_work():
        appointment = _load_for_mutation(storage, appointment_id, actor)
        moved = _apply_changes(storage, appointment, changes)

    if moved:
        logger.info(f"Appointment {appointment.id} rescheduled to {appointment.date} {appointment.start_time:%H:%M}")
    return appointment


def reschedule_appointment(
    storage: SqlStorage,
    appointment_id: int,
    new_date: Any,
    new_time: Any,
    actor: Actor,
) -> Appointment:
    return update_appointment(storage, appointment_id, {'date': new_date, 'time': new_time}, actor)


def _transition(
    storage: SqlStorage,
    appointment_id: int,
    actor: Actor,
    new_status: str,
    notes: Optional[str] = None,
) -> Appointment:
    with storage.unit_of_work():
        appointment = _load_for_mutation(storage, appointment_id, actor)
        if not appointment.is_scheduled:
            raise ValidationError(
                f'Only scheduled appointments can be marked {new_status}',
                {'status': appointment.status},
            )
        appointment.status = new_status
        if notes:
            appointment.notes = notes
    logger.info(f"Appointment {appointment.id} marked {new_status} by {actor.role} {actor.id}")
    return appointment


def mark_completed(storage: SqlStorage, appointment_id: int, actor: Actor, notes: Optional[str] = None) -> Appointment:
    return _transition(storage, appointment_id, actor, STATUS_COMPLETED, notes)


def cancel_appointment(storage: SqlStorage, appointment_id: int, actor: Actor, notes: Optional[str] = None) -> Appointment:
    return _transition(storage, appointment_id, actor, STATUS_CANCELLED, notes)


def delete_appointment(storage: SqlStorage, appointment_id: int, actor: Actor) -> Dict[str, Any]:
    """Physically remove an appointment; no conflict re-check is needed"""
    with storage.unit_of_work():
        appointment = _load_for_mutation(storage, appointment_id, actor)
        snapshot = appointment.to_dict()
        storage.delete_appointment(appointment)
    logger.info(f"Appointment {appointment_id} deleted by {actor.role} {actor.id}")
    return snapshot


def get_appointment(storage: SqlStorage, appointment_id: int, actor: Actor) -> Appointment:
    appointment = storage.get_appointment(appointment_id)
    if not appointment:
        raise NotFound('Appointment not found')
    if not can_view(actor, appointment):
        raise AccessDenied('Access denied')
    return appointment


def list_appointments(storage: SqlStorage, criteria: AppointmentFilter, actor: Actor) -> List[Appointment]:
    """Appointments visible to the actor, by date then start time"""
    if criteria.status and criteria.status not in APPOINTMENT_STATUSES:
        raise ValidationError(f'Invalid status. Valid values: {", ".join(APPOINTMENT_STATUSES)}')
    return storage.list_appointments(scope_filter(actor, criteria))
