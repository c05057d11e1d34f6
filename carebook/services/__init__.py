from .visibility import (
    Actor,
    AppointmentFilter,
    PatientFilter,
    VisitFilter,
    scope_filter,
    authorize_mutation,
)

from .storage import SqlStorage

from .use_cases import (
    create_visit,
    get_visit,
    list_visits_for_patient,
    book_appointment,
    update_appointment,
    reschedule_appointment,
    mark_completed,
    cancel,
    delete_appointment,
    get_appointment,
    list_appointments,
    get_patient,
    list_patients,
)

__all__ = [
    # Visibility
    "Actor",
    "AppointmentFilter",
    "PatientFilter",
    "VisitFilter",
    "scope_filter",
    "authorize_mutation",
    # Storage
    "SqlStorage",
    # Use cases
    "create_visit",
    "get_visit",
    "list_visits_for_patient",
    "book_appointment",
    "update_appointment",
    "reschedule_appointment",
    "mark_completed",
    "cancel",
    "delete_appointment",
    "get_appointment",
    "list_appointments",
    "get_patient",
    "list_patients",
]
