from .patient import Patient
from .visit import Visit
from .appointment import Appointment
from .schedule_lock import ScheduleLock
from .audit_log import AuditLog

__all__ = ["Patient", "Visit", "Appointment", "ScheduleLock", "AuditLog"]
