from carebook.extensions import db
from .base import TimestampMixin, isoformat

PATIENT_ACTIVE = 'active'
PATIENT_DISCHARGED = 'discharged'
PATIENT_STATUSES = (PATIENT_ACTIVE, PATIENT_DISCHARGED)


class Patient(db.Model, TimestampMixin):
    """
    Patient as seen by the visit/scheduling core.

    Rows are created by intake (outside this package); the only change made
    here is the active -> discharged transition.
    """
    __tablename__ = 'patients'

    id = db.Column(db.String(64), primary_key=True)  # e.g., P001

    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))

    # Doctor identifiers come from the identity service, so no FK
    assigned_doctor_id = db.Column(db.String(64), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=PATIENT_ACTIVE, index=True)

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('active', 'discharged')",
            name='ck_patients_status',
        ),
    )

    @property
    def is_discharged(self):
        return self.status == PATIENT_DISCHARGED

    def __repr__(self):
        return f"<Patient {self.id} ({self.status}) doctor={self.assigned_doctor_id}>"

    def to_dict(self):
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'assigned_doctor_id': self.assigned_doctor_id,
            'status': self.status,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
