"""
Rating API
Company ratings of drivers, driver replies and public listings
"""

from flask import Blueprint, request, jsonify
import logging

from auth import company_required, driver_required, login_required, get_current_caller
from forms import validate_payload, CreateRatingForm, UpdateRatingForm, RatingResponseForm
from services import get_services
from utils.payloads import get_pagination_args, pagination_meta

logger = logging.getLogger(__name__)

rating_bp = Blueprint('ratings', __name__)


# Company routes

@rating_bp.route('', methods=['POST'])
@company_required
def create_rating():
    data = validate_payload(CreateRatingForm, request.get_json(silent=True))
    rating, aggregate = get_services().ratings.create_rating(get_current_caller(), data)
    return jsonify({
        'success': True,
        'message': 'Rating submitted successfully',
        'data': {
            'rating': rating.to_dict(),
            'driverAggregateRatings': aggregate
        }
    }), 201


@rating_bp.route('/company', methods=['GET'])
@company_required
def company_ratings():
    """Ratings this company has given"""
    page, limit = get_pagination_args(request.args)
    ratings, total = get_services().ratings.list_company_given(get_current_caller(), page, limit)
    return jsonify({
        'success': True,
        'data': {
            'ratings': [rating.to_dict() for rating in ratings],
            'pagination': pagination_meta(page, limit, total)
        }
    })


@rating_bp.route('/<int:rating_id>', methods=['PUT'])
@company_required
def update_rating(rating_id):
    data = validate_payload(UpdateRatingForm, request.get_json(silent=True))
    rating = get_services().ratings.update_rating(get_current_caller(), rating_id, data)
    return jsonify({
        'success': True,
        'message': 'Rating updated successfully',
        'data': rating.to_dict()
    })


@rating_bp.route('/<int:rating_id>', methods=['DELETE'])
@company_required
def delete_rating(rating_id):
    get_services().ratings.delete_rating(get_current_caller(), rating_id)
    return jsonify({'success': True, 'message': 'Rating deleted successfully'})


# Driver routes

@rating_bp.route('/my-ratings', methods=['GET'])
@driver_required
def my_ratings():
    page, limit = get_pagination_args(request.args)
    ratings, total, aggregate = get_services().ratings.list_my_ratings(get_current_caller(), page, limit)
    return jsonify({
        'success': True,
        'data': {
            'ratings': [rating.to_dict(include_moderation=False) for rating in ratings],
            'aggregateRatings': aggregate,
            'pagination': pagination_meta(page, limit, total)
        }
    })


@rating_bp.route('/<int:rating_id>/respond', methods=['POST'])
@driver_required
def respond_to_rating(rating_id):
    data = validate_payload(RatingResponseForm, request.get_json(silent=True))
    rating = get_services().ratings.respond_to_rating(get_current_caller(), rating_id, data['content'])
    return jsonify({
        'success': True,
        'message': 'Response added successfully',
        'data': rating.to_dict(include_moderation=False)
    })


# Public

@rating_bp.route('/driver/<driver_id>', methods=['GET'])
def driver_ratings(driver_id):
    """Approved public ratings of a driver with the aggregate"""
    page, limit = get_pagination_args(request.args, default_limit=10)
    ratings, total, aggregate = get_services().ratings.list_driver_ratings(
        driver_id, page, limit,
        request.args.get('sortBy', 'createdAt'),
        request.args.get('sortOrder', 'desc'))
    return jsonify({
        'success': True,
        'data': {
            'ratings': [rating.to_dict(include_moderation=False) for rating in ratings],
            'aggregateRatings': aggregate,
            'pagination': pagination_meta(page, limit, total)
        }
    })


@rating_bp.route('/<int:rating_id>', methods=['GET'])
@login_required
def get_rating(rating_id):
    rating = get_services().ratings.get_rating(rating_id)
    return jsonify({'success': True, 'data': rating.to_dict(include_moderation=False)})


@rating_bp.route('/<int:rating_id>/helpful', methods=['POST'])
@login_required
def vote_helpful(rating_id):
    helpful_votes = get_services().ratings.vote_helpful(rating_id)
    return jsonify({
        'success': True,
        'message': 'Voted as helpful',
        'data': {'helpfulVotes': helpful_votes}
    })
