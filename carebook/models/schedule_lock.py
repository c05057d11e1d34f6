"""
Per doctor/day lock row.

Booking and rescheduling lock this row (SELECT ... FOR UPDATE) before scanning
for overlaps, so two transactions cannot both pass the check for the same
doctor and day. The composite primary key turns a race on the very first
booking of a day into an IntegrityError.
"""
from datetime import datetime
from carebook.extensions import db


class ScheduleLock(db.Model):
    __tablename__ = 'schedule_locks'

    doctor_id = db.Column(db.String(64), primary_key=True)
    day = db.Column(db.Date, primary_key=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ScheduleLock {self.doctor_id} {self.day}>"
