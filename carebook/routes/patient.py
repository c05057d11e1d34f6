"""
Patient lookup API (read-only)
Patients are created and edited by intake; this core only reads them.
"""
from flask import Blueprint, g, jsonify, request

from carebook.errors import ValidationError
from carebook.models.patient import PATIENT_STATUSES
from carebook.services import use_cases
from carebook.utils.decorators import actor_required

patient_bp = Blueprint('patient', __name__, url_prefix='/api/patients')


@patient_bp.route('', methods=['GET'])
@actor_required()
def list_patients():
    """
    List patients visible to the caller
    Query params:
        status: active | discharged (optional)
    """
    status = request.args.get('status', type=str)
    if status and status not in PATIENT_STATUSES:
        raise ValidationError(f'Invalid status. Valid values: {", ".join(PATIENT_STATUSES)}')

    patients = use_cases.list_patients(g.actor, status=status)
    return jsonify({
        'success': True,
        'data': [p.to_dict() for p in patients],
        'total': len(patients)
    }), 200


@patient_bp.route('/<patient_id>', methods=['GET'])
@actor_required()
def get_patient(patient_id):
    """Get a single patient, including the discharge status"""
    patient = use_cases.get_patient(patient_id, g.actor)
    return jsonify({
        'success': True,
        'data': patient.to_dict()
    }), 200
