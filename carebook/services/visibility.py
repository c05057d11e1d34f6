"""
Visibility Policy
One place that decides what an actor may see and change.

Admins see and change everything. Doctors are narrowed to their own
appointments/visits (doctor_id) and their own patients (assigned_doctor_id).
"""
from dataclasses import dataclass, replace
from datetime import date
from typing import Optional, Union

from carebook.errors import AccessDenied

ROLE_ADMIN = 'admin'
ROLE_DOCTOR = 'doctor'
ROLES = (ROLE_ADMIN, ROLE_DOCTOR)


@dataclass(frozen=True)
class Actor:
    """Already authenticated caller, as handed over by the identity layer"""
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_doctor(self) -> bool:
        return self.role == ROLE_DOCTOR


@dataclass(frozen=True)
class AppointmentFilter:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[str] = None
    doctor_id: Optional[str] = None
    patient_id: Optional[str] = None
    # Set by scope_filter; applied in addition to doctor_id
    scope_doctor_id: Optional[str] = None


@dataclass(frozen=True)
class VisitFilter:
    patient_id: Optional[str] = None
    visit_type: Optional[str] = None
    scope_doctor_id: Optional[str] = None


@dataclass(frozen=True)
class PatientFilter:
    status: Optional[str] = None
    assigned_doctor_id: Optional[str] = None
    scope_assigned_doctor_id: Optional[str] = None


QueryFilter = Union[AppointmentFilter, VisitFilter, PatientFilter]


def scope_filter(actor: Actor, query_filter: QueryFilter) -> QueryFilter:
    """
    Narrow a query filter to what the actor may see.

    The scope is added next to whatever the caller asked for, so a doctor
    asking for another doctor's rows gets the (empty) intersection rather
    than an override.
    """
    if actor.is_admin:
        return query_filter
    if isinstance(query_filter, PatientFilter):
        return replace(query_filter, scope_assigned_doctor_id=actor.id)
    return replace(query_filter, scope_doctor_id=actor.id)


def _owner_of(entity) -> Optional[str]:
    owner = getattr(entity, 'doctor_id', None)
    if owner is None:
        owner = getattr(entity, 'assigned_doctor_id', None)
    return owner


def authorize_mutation(actor: Actor, entity) -> bool:
    """True if the actor may change (or act on behalf of) the entity"""
    if actor.is_admin:
        return True
    owner = _owner_of(entity)
    return owner is not None and owner == actor.id


def can_view(actor: Actor, entity) -> bool:
    # Single-entity reads follow the same ownership rule as mutations
    return authorize_mutation(actor, entity)


def ensure_can_mutate(actor: Actor, entity, message: str = 'Access denied') -> None:
    if not authorize_mutation(actor, entity):
        raise AccessDenied(message)
