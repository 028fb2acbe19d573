"""
Employment API
Employment records, vehicle assignment and release
"""

from flask import Blueprint, request, jsonify
import logging

from auth import company_required, driver_required, login_required, get_current_caller
from forms import (
    validate_payload, UpdateEmploymentForm, AssignVehicleForm, UnassignVehicleForm,
    TerminateEmploymentForm, ResignEmploymentForm, AvailabilityWindowForm
)
from services import get_services

logger = logging.getLogger(__name__)

employment_bp = Blueprint('employments', __name__)


# Company routes

@employment_bp.route('/available', methods=['GET'])
@company_required
def available_drivers():
    """Employed drivers with no trip in the requested window"""
    window = validate_payload(AvailabilityWindowForm, request.args.to_dict())
    data = get_services().employments.get_available_drivers(
        get_current_caller(), window.get('start_date_time'), window.get('end_date_time'))
    return jsonify({'success': True, 'data': data})


@employment_bp.route('/company', methods=['GET'])
@company_required
def company_employees():
    employees = get_services().employments.list_company_employees(
        get_current_caller(), request.args.get('status'), request.args.get('assignmentStatus'))
    return jsonify({'success': True, 'data': {'employments': employees, 'total': len(employees)}})


@employment_bp.route('/<int:employment_id>/assign-vehicle', methods=['POST'])
@company_required
def assign_vehicle(employment_id):
    data = validate_payload(AssignVehicleForm, request.get_json(silent=True))
    employment = get_services().employments.assign_vehicle(
        get_current_caller(), employment_id, data['vehicle_id'], data.get('notes') or None)
    return jsonify({
        'success': True,
        'message': 'Vehicle assigned successfully',
        'data': employment.to_dict()
    })


@employment_bp.route('/<int:employment_id>/unassign-vehicle', methods=['POST'])
@company_required
def unassign_vehicle(employment_id):
    data = validate_payload(UnassignVehicleForm, request.get_json(silent=True))
    employment = get_services().employments.unassign_vehicle(
        get_current_caller(), employment_id, data.get('reason') or None)
    return jsonify({
        'success': True,
        'message': 'Vehicle unassigned successfully',
        'data': employment.to_dict()
    })


@employment_bp.route('/<int:employment_id>/terminate', methods=['POST'])
@company_required
def terminate_employment(employment_id):
    data = validate_payload(TerminateEmploymentForm, request.get_json(silent=True))
    employment = get_services().employments.terminate(
        get_current_caller(), employment_id, data['reason'], data.get('details') or None)
    return jsonify({
        'success': True,
        'message': 'Employment terminated successfully',
        'data': employment.to_dict()
    })


@employment_bp.route('/<int:employment_id>', methods=['PUT'])
@company_required
def update_employment(employment_id):
    data = validate_payload(UpdateEmploymentForm, request.get_json(silent=True))
    employment = get_services().employments.update_employment(get_current_caller(), employment_id, data)
    return jsonify({
        'success': True,
        'message': 'Employment updated successfully',
        'data': employment.to_dict()
    })


# Driver routes

@employment_bp.route('/my-vehicle', methods=['GET'])
@driver_required
def my_vehicle():
    data, message = get_services().employments.get_my_assigned_vehicle(get_current_caller())
    body = {'success': True, 'data': data}
    if message:
        body['message'] = message
    return jsonify(body)


@employment_bp.route('/history', methods=['GET'])
@driver_required
def employment_history():
    employments = get_services().employments.get_driver_history(get_current_caller())
    return jsonify({
        'success': True,
        'data': {
            'employments': [employment.to_dict() for employment in employments],
            'total': len(employments)
        }
    })


@employment_bp.route('/current', methods=['GET'])
@driver_required
def current_employment():
    employment = get_services().employments.get_current_employment(get_current_caller())
    if employment is None:
        return jsonify({'success': True, 'data': None, 'message': 'No active employment'})
    return jsonify({'success': True, 'data': employment.to_dict()})


@employment_bp.route('/<int:employment_id>/resign', methods=['POST'])
@driver_required
def resign(employment_id):
    data = validate_payload(ResignEmploymentForm, request.get_json(silent=True))
    employment = get_services().employments.resign(
        get_current_caller(), employment_id, data.get('reason') or None, data.get('details') or None)
    return jsonify({
        'success': True,
        'message': 'Resignation submitted successfully',
        'data': employment.to_dict()
    })


# Either party

@employment_bp.route('/<int:employment_id>', methods=['GET'])
@login_required
def get_employment(employment_id):
    employment = get_services().employments.get_employment(get_current_caller(), employment_id)
    return jsonify({'success': True, 'data': employment.to_dict()})


# Internal, called by the trip service

@employment_bp.route('/driver/<driver_id>/assignment-status', methods=['PATCH'])
def update_assignment_status(driver_id):
    """Mark a driver busy or free; no end-user authentication"""
    payload = request.get_json(silent=True) or {}
    employment, changed = get_services().propagator.update_driver_assignment_status(
        driver_id, payload.get('assignmentStatus'))
    return jsonify({
        'success': True,
        'message': 'Driver assignment status updated successfully',
        'data': {
            'employmentId': employment.id,
            'driverId': employment.driver_id,
            'assignmentStatus': employment.assignment_status.value,
            'changed': changed
        }
    })
