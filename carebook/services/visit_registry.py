"""
Visit Variant Registry
Validation and construction rules per visit variant, keyed by `visit_type`.

Each variant declares the columns it owns, which of them are required, an
optional reference check and an optional hook that runs inside the same
transaction as the visit insert (discharge uses it to flip the patient).
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from carebook.errors import AccessDenied, NotFound, ValidationError
from carebook.models import Patient, Visit
from carebook.models.patient import PATIENT_DISCHARGED
from carebook.models.visit import VISIT_DISCHARGE, VISIT_FOLLOWUP, VISIT_INITIAL
from carebook.services.storage import SqlStorage
from carebook.services.visibility import Actor, VisitFilter, can_view, ensure_can_mutate, scope_filter
from carebook.utils.parsing import parse_optional_date

logger = logging.getLogger(__name__)

# Keys every variant understands; everything else goes to exam_data
COMMON_FIELDS = ('visit_type', 'patient_id', 'doctor_id', 'date', 'notes')
READ_ONLY_FIELDS = ('id', 'created_at', 'updated_at')


@dataclass(frozen=True)
class VisitVariant:
    name: str
    # Columns on Visit filled from the payload for this variant
    fields: Tuple[str, ...] = ()
    required: Tuple[str, ...] = ()
    # (payload, storage) -> None; raises NotFound/ValidationError
    check: Optional[Callable[[Dict[str, Any], SqlStorage], None]] = None
    # (visit, patient, storage) -> None; runs before commit
    on_created: Optional[Callable[[Visit, Patient, SqlStorage], None]] = None
    # Lock the patient row for the whole transaction
    locks_patient: bool = False

    def missing_fields(self, payload: Dict[str, Any]) -> List[str]:
        missing = []
        for name in self.required:
            value = payload.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing

    def validate(self, payload: Dict[str, Any], storage: SqlStorage) -> None:
        missing = self.missing_fields(payload)
        if missing:
            raise ValidationError(
                f'Missing required fields for {self.name} visit',
                {'required': list(self.required), 'missing': missing},
            )
        if self.check:
            self.check(payload, storage)

    def build(self, payload: Dict[str, Any], patient: Patient, doctor_id: str) -> Visit:
        own = {name: payload.get(name) for name in self.fields}
        if 'previous_visit_id' in own and own['previous_visit_id'] is not None:
            own['previous_visit_id'] = _as_visit_id(own['previous_visit_id'])
        reserved = set(COMMON_FIELDS) | set(READ_ONLY_FIELDS) | set(self.fields)
        exam_data = {k: v for k, v in payload.items() if k not in reserved}
        visit = Visit(
            visit_type=self.name,
            patient_id=patient.id,
            doctor_id=doctor_id,
            notes=payload.get('notes'),
            exam_data=exam_data or None,
            **own
        )
        visit_date = parse_optional_date(payload.get('date'), 'date')
        if visit_date:
            visit.date = visit_date
        return visit


_REGISTRY: Dict[str, VisitVariant] = {}


def register_variant(variant: VisitVariant) -> VisitVariant:
    _REGISTRY[variant.name] = variant
    return variant


def get_variant(name: Optional[str]) -> VisitVariant:
    variant = _REGISTRY.get(name) if name else None
    if variant is None:
        raise ValidationError(
            'Invalid visit type',
            {'visit_type': name, 'allowed': sorted(_REGISTRY)},
        )
    return variant


def registered_variants() -> List[str]:
    return sorted(_REGISTRY)


def _as_visit_id(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _previous_visit_exists(payload: Dict[str, Any], storage: SqlStorage) -> None:
    previous_id = _as_visit_id(payload.get('previous_visit_id'))
    if previous_id is None or storage.get_visit(previous_id) is None:
        raise NotFound(f'Previous visit {payload.get("previous_visit_id")} not found')


def _discharge_patient(visit: Visit, patient: Patient, storage: SqlStorage) -> None:
    storage.set_patient_status(patient, PATIENT_DISCHARGED)
    logger.info(f"Patient {patient.id} discharged by visit {visit.id}")


register_variant(VisitVariant(
    name=VISIT_INITIAL,
    fields=('chief_complaint',),
    required=('chief_complaint',),
))

register_variant(VisitVariant(
    name=VISIT_FOLLOWUP,
    fields=('previous_visit_id',),
    required=('previous_visit_id',),
    check=_previous_visit_exists,
))

register_variant(VisitVariant(
    name=VISIT_DISCHARGE,
    on_created=_discharge_patient,
    locks_patient=True,
))


def create_visit(
    storage: SqlStorage,
    visit_type: Optional[str],
    payload: Dict[str, Any],
    actor: Actor,
    block_discharged: bool = False,
) -> Visit:
    """
    Create a visit of the given variant.

    Checks, in order: patient exists, actor may act for the patient, the
    variant's own fields. The insert and the variant hook (patient discharge)
    share one transaction.

    Args:
        storage: Storage port bound to the request session
        visit_type: 'initial', 'followup' or 'discharge'
        payload: Request body (snake_case keys)
        actor: Authenticated caller
        block_discharged: Reject new visits for discharged patients

    Returns:
        Visit: The persisted visit
    """
    variant = get_variant(visit_type)
    payload = payload or {}

    with storage.unit_of_work():
        patient = storage.get_patient(payload.get('patient_id'), for_update=variant.locks_patient)
        if not patient:
            raise NotFound(f'Patient with ID {payload.get("patient_id")} not found')

        ensure_can_mutate(actor, patient, 'Access denied: Patient not assigned to you')
        if actor.is_doctor:
            doctor_id = actor.id
        else:
            doctor_id = payload.get('doctor_id') or patient.assigned_doctor_id

        if block_discharged and patient.is_discharged:
            raise ValidationError(f'Patient {patient.id} is discharged')

        variant.validate(payload, storage)

        visit = storage.add_visit(variant.build(payload, patient, doctor_id))
        if variant.on_created:
            variant.on_created(visit, patient, storage)

    logger.info(f"{variant.name.title()} visit {visit.id} created for patient {patient.id} by {actor.role} {actor.id}")
    return visit


def list_visits_for_patient(storage: SqlStorage, patient_id: str, actor: Actor) -> List[Visit]:
    """Visits of one patient visible to the actor, newest first"""
    patient = storage.get_patient(patient_id)
    if not patient:
        raise NotFound(f'Patient with ID {patient_id} not found')
    criteria = scope_filter(actor, VisitFilter(patient_id=patient.id))
    return storage.list_visits(criteria)


def get_visit(storage: SqlStorage, visit_id: int, actor: Actor) -> Visit:
    visit = storage.get_visit(visit_id, with_payload=True)
    if not visit:
        raise NotFound(f'Visit {visit_id} not found')
    if not can_view(actor, visit):
        raise AccessDenied('Access denied')
    return visit
