from flask import Blueprint, g, jsonify, request

from carebook.errors import ValidationError
from carebook.services import use_cases
from carebook.services.visibility import AppointmentFilter
from carebook.utils.decorators import actor_required
from carebook.utils.parsing import parse_optional_date

appointment_bp = Blueprint('appointment', __name__, url_prefix='/api/appointments')


def _json_body(required=True):
    data = request.get_json(silent=True)
    if data is None and not required:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be JSON')
    return data


@appointment_bp.route('', methods=['GET'])
@actor_required()
def list_appointments():
    """
    List appointments visible to the caller, ordered by date then start time.
    Query params:
        start_date, end_date: YYYY-MM-DD, inclusive (optional)
        status: scheduled | completed | cancelled | no-show (optional)
        doctor_id: Filter by doctor (optional; doctors only ever see their own)
        patient_id: Filter by patient (optional)
    """
    criteria = AppointmentFilter(
        start_date=parse_optional_date(request.args.get('start_date', type=str), 'start_date'),
        end_date=parse_optional_date(request.args.get('end_date', type=str), 'end_date'),
        status=request.args.get('status', type=str) or None,
        doctor_id=request.args.get('doctor_id', type=str) or None,
        patient_id=request.args.get('patient_id', type=str) or None,
    )
    appointments = use_cases.list_appointments(criteria, g.actor)

    return jsonify({
        'success': True,
        'data': [a.to_dict() for a in appointments],
        'total': len(appointments)
    }), 200


@appointment_bp.route('', methods=['POST'])
@actor_required()
def create_appointment():
    """
    Book a new appointment
    Body:
        patient_id: required
        doctor_id: admins only (defaults to the patient's assigned doctor)
        date: YYYY-MM-DD
        time: {"start": "HH:MM", "end": "HH:MM"}
        notes, calendar_event_id: optional
    Returns 409 with details.existing_appointment_id when the slot is taken.
    """
    appointment = use_cases.book_appointment(_json_body(), g.actor)
    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment created successfully'
    }), 201


@appointment_bp.route('/<int:appointment_id>', methods=['GET'])
@actor_required()
def get_appointment(appointment_id):
    """Get appointment details by ID"""
    appointment = use_cases.get_appointment(appointment_id, g.actor)
    return jsonify({
        'success': True,
        'data': appointment.to_dict()
    }), 200


@appointment_bp.route('/<int:appointment_id>', methods=['PUT'])
@actor_required()
def update_appointment(appointment_id):
    """
    Update appointment
    Body (all optional): date, time, notes, calendar_event_id
    Moving the slot runs the overlap check; the appointment never conflicts with itself.
    """
    appointment = use_cases.update_appointment(appointment_id, _json_body(), g.actor)
    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment updated successfully'
    }), 200


@appointment_bp.route('/<int:appointment_id>/reschedule', methods=['PATCH'])
@actor_required()
def reschedule_appointment(appointment_id):
    """Move an appointment to a new date and time. Body: date, time"""
    data = _json_body()
    if 'date' not in data or 'time' not in data:
        raise ValidationError('Missing required fields: date, time')

    appointment = use_cases.reschedule_appointment(appointment_id, data['date'], data['time'], g.actor)
    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment rescheduled successfully'
    }), 200


@appointment_bp.route('/<int:appointment_id>/complete', methods=['PATCH'])
@actor_required()
def complete_appointment(appointment_id):
    """Mark a scheduled appointment as completed. Body: notes (optional)"""
    data = _json_body(required=False)
    appointment = use_cases.mark_completed(appointment_id, g.actor, notes=data.get('notes'))
    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment marked as completed'
    }), 200


@appointment_bp.route('/<int:appointment_id>/cancel', methods=['PATCH'])
@actor_required()
def cancel_appointment(appointment_id):
    """Cancel a scheduled appointment; the slot becomes free again"""
    data = _json_body(required=False)
    appointment = use_cases.cancel(appointment_id, g.actor, notes=data.get('notes'))
    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment cancelled'
    }), 200


@appointment_bp.route('/<int:appointment_id>', methods=['DELETE'])
@actor_required()
def delete_appointment(appointment_id):
    """Delete appointment permanently"""
    snapshot = use_cases.delete_appointment(appointment_id, g.actor)
    return jsonify({
        'success': True,
        'data': snapshot,
        'message': 'Appointment deleted successfully'
    }), 200
