from .patient import patient_bp
from .visit import visit_bp
from .appointment import appointment_bp
from .health import health_bp

__all__ = ['patient_bp', 'visit_bp', 'appointment_bp', 'health_bp']
