"""
Job Request API
Offers sent by companies and answered by drivers
"""

from flask import Blueprint, request, jsonify
import logging

from auth import company_required, driver_required, login_required, get_current_caller
from forms import (
    validate_payload, CreateJobRequestForm, RespondJobRequestForm, WithdrawJobRequestForm,
    ScheduleInterviewForm
)
from services import get_services
from utils.payloads import get_pagination_args

logger = logging.getLogger(__name__)

job_request_bp = Blueprint('job_requests', __name__)

RESPONSE_MESSAGES = {
    'accept': 'Job request accepted successfully',
    'reject': 'Job request rejected successfully',
    'counter': 'Job request countered successfully',
}


# Company routes

@job_request_bp.route('/available-drivers', methods=['GET'])
@company_required
def available_drivers():
    """Drivers without an employer"""
    page, limit = get_pagination_args(request.args)
    data = get_services().job_requests.list_free_agents(page, limit)
    return jsonify({'success': True, 'data': data})


@job_request_bp.route('', methods=['POST'])
@company_required
def create_job_request():
    """Send an offer to a driver"""
    data = validate_payload(CreateJobRequestForm, request.get_json(silent=True))
    job_request = get_services().job_requests.create_job_request(get_current_caller(), data)
    return jsonify({
        'success': True,
        'message': 'Job request sent successfully',
        'data': job_request.to_dict()
    }), 201


@job_request_bp.route('/sent', methods=['GET'])
@company_required
def sent_job_requests():
    page, limit = get_pagination_args(request.args)
    items, pagination = get_services().job_requests.list_sent(
        get_current_caller(), request.args.get('status'), page, limit)
    return jsonify({'success': True, 'data': {'jobRequests': items, 'pagination': pagination}})


@job_request_bp.route('/<int:request_id>/withdraw', methods=['POST'])
@company_required
def withdraw_job_request(request_id):
    data = validate_payload(WithdrawJobRequestForm, request.get_json(silent=True))
    job_request = get_services().job_requests.withdraw(get_current_caller(), request_id, data.get('reason'))
    return jsonify({
        'success': True,
        'message': 'Job request withdrawn successfully',
        'data': job_request.to_dict()
    })


@job_request_bp.route('/<int:request_id>/schedule-interview', methods=['POST'])
@company_required
def schedule_interview(request_id):
    data = validate_payload(ScheduleInterviewForm, request.get_json(silent=True))
    job_request = get_services().job_requests.schedule_interview(get_current_caller(), request_id, data)
    return jsonify({
        'success': True,
        'message': 'Interview scheduled successfully',
        'data': job_request.to_dict()
    })


# Driver routes

@job_request_bp.route('/received', methods=['GET'])
@driver_required
def received_job_requests():
    page, limit = get_pagination_args(request.args)
    job_requests, pagination = get_services().job_requests.list_received(
        get_current_caller(), request.args.get('status'), page, limit)
    return jsonify({
        'success': True,
        'data': {
            'jobRequests': [job_request.to_dict() for job_request in job_requests],
            'pagination': pagination
        }
    })


@job_request_bp.route('/<int:request_id>/respond', methods=['POST'])
@driver_required
def respond_to_job_request(request_id):
    """Accept, reject or counter an offer"""
    data = validate_payload(RespondJobRequestForm, request.get_json(silent=True))
    job_request, employment = get_services().job_requests.respond(get_current_caller(), request_id, data)

    body = {
        'success': True,
        'message': RESPONSE_MESSAGES[data['action']],
        'data': {'jobRequest': job_request.to_dict()}
    }
    if employment is not None:
        body['data']['employment'] = employment.to_dict()
    return jsonify(body)


# Either party

@job_request_bp.route('/<int:request_id>', methods=['GET'])
@login_required
def get_job_request(request_id):
    job_request = get_services().job_requests.get_job_request(get_current_caller(), request_id)
    return jsonify({'success': True, 'data': job_request.to_dict()})
