"""
Visit API Routes
Initial exam, follow-up and discharge documentation
"""
from flask import Blueprint, g, jsonify, request

from carebook.errors import ValidationError
from carebook.services import use_cases
from carebook.utils.decorators import actor_required

visit_bp = Blueprint('visit', __name__, url_prefix='/api/visits')


@visit_bp.route('', methods=['POST'])
@actor_required()
def create_visit():
    """
    Create a visit; `visit_type` selects the variant
    Body:
        visit_type: initial | followup | discharge
        patient_id: required
        doctor_id: admins only (doctors always document as themselves)
        date, notes: optional
        chief_complaint: required for initial
        previous_visit_id: required for followup
        any other keys: stored as the exam payload
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be JSON')

    payload = dict(data)
    visit_type = payload.pop('visit_type', None)
    visit = use_cases.create_visit(visit_type, payload, g.actor)

    return jsonify({
        'success': True,
        'data': visit.to_dict(include_payload=True),
        'message': 'Visit created successfully'
    }), 201


@visit_bp.route('/<int:visit_id>', methods=['GET'])
@actor_required()
def get_visit(visit_id):
    """Get visit details by ID, including the exam payload"""
    visit = use_cases.get_visit(visit_id, g.actor)
    return jsonify({
        'success': True,
        'data': visit.to_dict(include_payload=True)
    }), 200


@visit_bp.route('/patient/<patient_id>', methods=['GET'])
@actor_required()
def list_patient_visits(patient_id):
    """All visits of a patient visible to the caller, newest first"""
    visits = use_cases.list_visits_for_patient(patient_id, g.actor)
    return jsonify({
        'success': True,
        'data': [visit.to_dict() for visit in visits],
        'total': len(visits)
    }), 200
