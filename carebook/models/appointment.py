from carebook.extensions import db
from .base import TimestampMixin, isoformat

STATUS_SCHEDULED = 'scheduled'
STATUS_COMPLETED = 'completed'
STATUS_CANCELLED = 'cancelled'
STATUS_NO_SHOW = 'no-show'
APPOINTMENT_STATUSES = (STATUS_SCHEDULED, STATUS_COMPLETED, STATUS_CANCELLED, STATUS_NO_SHOW)

# Statuses that no longer hold a slot on the doctor's calendar
FREEING_STATUSES = (STATUS_CANCELLED, STATUS_NO_SHOW)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED, STATUS_NO_SHOW)


class Appointment(db.Model, TimestampMixin):
    __tablename__ = 'appointments'

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.String(64), db.ForeignKey('patients.id'), nullable=False, index=True)
    doctor_id = db.Column(db.String(64), nullable=False)

    # Half-open interval [start_time, end_time) on `date`
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=STATUS_SCHEDULED, index=True)
    notes = db.Column(db.Text)

    # Correlation id owned by the calendar integration; stored, never read
    calendar_event_id = db.Column(db.String(255), nullable=True)

    __table_args__ = (
        db.CheckConstraint('end_time > start_time', name='ck_appointments_interval'),
        db.CheckConstraint(
            "status IN ('scheduled', 'completed', 'cancelled', 'no-show')",
            name='ck_appointments_status',
        ),
        db.Index('ix_appointments_doctor_day', 'doctor_id', 'date', 'start_time'),
    )

    patient = db.relationship('Patient', backref=db.backref('appointments', lazy='dynamic'), lazy=True)

    @property
    def is_scheduled(self):
        return self.status == STATUS_SCHEDULED

    def __repr__(self):
        return f"<Appointment {self.patient_id} - {self.doctor_id} on {self.date} {self.start_time}-{self.end_time}>"

    def to_dict(self):
        return {
            'id': self.id,
            'patient_id': self.patient_id,
            'doctor_id': self.doctor_id,
            'date': isoformat(self.date),
            'time': {
                'start': self.start_time.strftime('%H:%M') if self.start_time else None,
                'end': self.end_time.strftime('%H:%M') if self.end_time else None,
            },
            'status': self.status,
            'notes': self.notes,
            'calendar_event_id': self.calendar_event_id,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
