from datetime import datetime
from carebook.extensions import db


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


def isoformat(value):
    """ISO string for date/time/datetime columns, None passthrough"""
    return value.isoformat() if value is not None else None
