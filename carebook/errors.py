"""
Error taxonomy for the visit and scheduling core.

Services raise these; the HTTP layer renders them as
{'success': False, 'error': ...} with the matching status code.
"""
from typing import Any, Dict, Optional


class CareError(Exception):
    """Base class for every error the core reports to its callers"""
    status_code = 500
    code = 'internal'

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            'success': False,
            'error': self.message,
            'code': self.code,
        }
        if self.details:
            payload['details'] = self.details
        return payload


class NotFound(CareError):
    """Referenced patient, visit or appointment does not exist"""
    status_code = 404
    code = 'not_found'


class AccessDenied(CareError):
    """Actor is not allowed to see or change the target"""
    status_code = 403
    code = 'access_denied'


class ValidationError(CareError):
    """Missing variant field, malformed interval or illegal transition"""
    status_code = 400
    code = 'validation_error'


class Conflict(CareError):
    """Requested interval overlaps an active appointment"""
    status_code = 409
    code = 'conflict'

    def __init__(self, message: str, existing_id: Optional[int] = None):
        details = {'existing_appointment_id': existing_id} if existing_id is not None else None
        super().__init__(message, details)
        self.existing_id = existing_id


class InternalError(CareError):
    """Storage or transport failure; the message never carries storage details"""
    status_code = 500
    code = 'internal'

    def __init__(self, message: str = 'Internal server error. Check server logs for details.'):
        super().__init__(message)
