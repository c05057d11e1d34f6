"""
Visit Model
Structured visit documentation: initial exam, follow-up, discharge.

All variants share one table. `visit_type` is a plain indexed column so
listings can read the discriminant without touching `exam_data`, the opaque
clinical payload, which is deferred and only loaded on detail reads.
"""
import datetime as dt

from sqlalchemy.orm import deferred

from carebook.extensions import db
from .base import TimestampMixin, isoformat

VISIT_INITIAL = 'initial'
VISIT_FOLLOWUP = 'followup'
VISIT_DISCHARGE = 'discharge'
VISIT_TYPES = (VISIT_INITIAL, VISIT_FOLLOWUP, VISIT_DISCHARGE)


class Visit(db.Model, TimestampMixin):
    """Visit record, immutable once created"""
    __tablename__ = 'visits'

    id = db.Column(db.Integer, primary_key=True)
    visit_type = db.Column(db.String(20), nullable=False, index=True)

    patient_id = db.Column(db.String(64), db.ForeignKey('patients.id'), nullable=False, index=True)
    doctor_id = db.Column(db.String(64), nullable=False, index=True)

    date = db.Column(db.Date, nullable=False, default=dt.date.today, index=True)
    notes = db.Column(db.Text)

    # initial
    chief_complaint = db.Column(db.Text)
    # followup
    previous_visit_id = db.Column(db.Integer, db.ForeignKey('visits.id'), nullable=True, index=True)

    # vitals, strength grading, ROM tables, ortho tests... not interpreted here
    exam_data = deferred(db.Column(db.JSON, nullable=True))

    __table_args__ = (
        db.CheckConstraint(
            "visit_type IN ('initial', 'followup', 'discharge')",
            name='ck_visits_visit_type',
        ),
        db.Index('ix_visits_patient_date', 'patient_id', 'date'),
    )

    patient = db.relationship('Patient', backref=db.backref('visits', lazy='dynamic'), lazy=True)
    previous_visit = db.relationship('Visit', remote_side=[id], lazy=True)

    def __repr__(self):
        return f"<Visit {self.id} [{self.visit_type}] - Patient: {self.patient_id} on {self.date}>"

    def to_dict(self, include_payload=False):
        """Convert to dictionary for API responses"""
        data = {
            'id': self.id,
            'visit_type': self.visit_type,
            'patient_id': self.patient_id,
            'doctor_id': self.doctor_id,
            'date': isoformat(self.date),
            'notes': self.notes,
            'chief_complaint': self.chief_complaint,
            'previous_visit_id': self.previous_visit_id,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
        if include_payload:
            data['exam_data'] = self.exam_data or {}
        return data
