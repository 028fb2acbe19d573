"""
Rating Service

Company ratings of drivers and the aggregate derived from them. The
aggregate is always recomputed from approved ratings, never stored.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List, Tuple
import logging
from sqlalchemy import func
from models import db, DriverRating, Employment, RatingEdit, RATING_CATEGORIES
from timezone_utils import get_local_time_naive
from utils.payloads import snake_to_camel
from . import event_bus as events
from . import policies
from .audit_service import AuditService
from .exceptions import NotFoundError, ValidationError
from .transaction_helper import TransactionHelper

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    'createdAt': DriverRating.created_at,
    'overallRating': DriverRating.overall_rating,
    'helpfulVotes': DriverRating.helpful_votes,
}

EDIT_REASON = 'Updated by reviewer'


def round_half_up(value) -> float:
    """One decimal place, halves rounded away from zero"""
    if value is None:
        return 0
    return float(Decimal(str(value)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))


def empty_aggregate() -> Dict[str, Any]:
    return {
        'averageRating': 0,
        'totalRatings': 0,
        'breakdown': {snake_to_camel(name): 0 for name in RATING_CATEGORIES},
    }


class RatingService:
    """Service class for driver ratings"""

    def __init__(self, event_bus):
        self.events = event_bus

    def calculate_aggregate(self, driver_id: str) -> Dict[str, Any]:
        """
        Average overall and per-category scores over approved ratings.
        A category mean only counts ratings that scored that category.
        """
        columns = [getattr(DriverRating, name) for name in RATING_CATEGORIES]
        row = db.session.query(
            func.count(DriverRating.id),
            func.avg(DriverRating.overall_rating),
            *[func.avg(column) for column in columns]
        ).filter(
            DriverRating.driver_id == driver_id,
            DriverRating.is_approved.is_(True)
        ).one()

        total = row[0] or 0
        if not total:
            return empty_aggregate()

        return {
            'averageRating': round_half_up(row[1]),
            'totalRatings': total,
            'breakdown': {
                snake_to_camel(name): round_half_up(mean)
                for name, mean in zip(RATING_CATEGORIES, row[2:])
            },
        }

    # Company side

    def create_rating(self, caller, data: Dict[str, Any]) -> Tuple[DriverRating, Dict[str, Any]]:
        """
        Rate a driver, optionally for one employment.

        Args:
            caller: Company caller
            data: Validated rating fields

        Returns:
            tuple: (rating, driver's updated aggregate)
        """
        driver_id = data['driver_id']
        employment = None
        if data.get('employment_id'):
            employment = db.session.get(Employment, data['employment_id'])
            policies.ensure_rateable_employment(caller, employment, driver_id)
            policies.ensure_not_rated(DriverRating.query.filter_by(
                driver_id=driver_id, rater_company_id=caller.user_id, employment_id=employment.id
            ).first())

        rating = self._persist_rating(caller, data, employment)
        aggregate = self.calculate_aggregate(driver_id)

        self.events.publish(events.DRIVER_RATING_ADDED, {
            'ratingId': rating.id,
            'driverId': driver_id,
            'ratedBy': caller.user_id,
            'rating': rating.overall_rating,
        })
        logger.info(f"Rating {rating.id} for driver {driver_id} by {caller.user_id}")
        return rating, aggregate

    @TransactionHelper.with_transaction(conflict_message='You have already rated this driver for this employment')
    def _persist_rating(self, caller, data, employment) -> DriverRating:
        review = data.get('review') or {}
        context = data.get('context') or {}
        rating = DriverRating(
            driver_id=data['driver_id'],
            rater_user_id=caller.user_id,
            rater_company_id=caller.user_id,
            rater_role=policies.rater_role_for(caller),
            employment_id=employment.id if employment else None,
            overall_rating=data['overall_rating'],
            review_title=review.get('title') or None,
            review_content=review.get('content') or None,
            would_rehire=data.get('would_rehire'),
            context_employment_duration=context.get('employment_duration'),
            context_vehicle_type=context.get('vehicle_type') or None,
            context_route_type=context.get('route_type') or None,
            is_public=data.get('is_public') is not False,
        )
        if rating.context_employment_duration is None and employment is not None:
            rating.context_employment_duration = employment.duration_in_days
        rating.set_category_ratings(_present(data.get('category_ratings')))
        rating.tags = data.get('tags') or []

        db.session.add(rating)
        db.session.flush()
        AuditService.log_action('create_rating', caller.user_id, 'driver_rating', rating.id,
                                {'driverId': rating.driver_id, 'overallRating': rating.overall_rating})
        return rating

    @TransactionHelper.with_transaction
    def update_rating(self, caller, rating_id: int, data: Dict[str, Any]) -> DriverRating:
        """Apply the author's edits; the previous overall score goes to the edit history"""
        rating = self._load(rating_id)
        policies.ensure_rating_author(caller, rating, 'update')

        rating.edit_history.append(RatingEdit(
            edited_at=get_local_time_naive(),
            previous_rating=rating.overall_rating,
            reason=EDIT_REASON,
        ))

        if data.get('overall_rating') is not None:
            rating.overall_rating = data['overall_rating']
        rating.set_category_ratings(_present(data.get('category_ratings')))
        review = data.get('review') or {}
        if review.get('title') is not None:
            rating.review_title = review['title'] or None
        if review.get('content') is not None:
            rating.review_content = review['content'] or None
        if data.get('tags') is not None:
            rating.tags = data['tags']
        if data.get('would_rehire') is not None:
            rating.would_rehire = data['would_rehire']

        AuditService.log_action('update_rating', caller.user_id, 'driver_rating', rating.id,
                                {'overallRating': rating.overall_rating})
        return rating

    @TransactionHelper.with_transaction
    def delete_rating(self, caller, rating_id: int) -> None:
        rating = self._load(rating_id)
        policies.ensure_rating_author(caller, rating, 'delete')
        AuditService.log_action('delete_rating', caller.user_id, 'driver_rating', rating.id,
                                {'driverId': rating.driver_id})
        db.session.delete(rating)
        logger.info(f"Rating {rating_id} deleted by {caller.user_id}")

    def list_company_given(self, caller, page: int = 1, limit: int = 20) -> Tuple[List[DriverRating], int]:
        query = DriverRating.query.filter(DriverRating.rater_company_id == caller.user_id)
        total = query.count()
        ratings = query.order_by(DriverRating.created_at.desc(), DriverRating.id.desc()) \
            .offset((page - 1) * limit).limit(limit).all()
        return ratings, total

    # Driver side

    def list_my_ratings(self, caller, page: int = 1, limit: int = 20) -> Tuple[List[DriverRating], int, Dict[str, Any]]:
        query = DriverRating.query.filter(DriverRating.driver_id == caller.user_id)
        total = query.count()
        ratings = query.order_by(DriverRating.created_at.desc(), DriverRating.id.desc()) \
            .offset((page - 1) * limit).limit(limit).all()
        return ratings, total, self.calculate_aggregate(caller.user_id)

    @TransactionHelper.with_transaction
    def respond_to_rating(self, caller, rating_id: int, content: str) -> DriverRating:
        rating = self._load(rating_id)
        policies.ensure_rating_subject(caller, rating)
        policies.ensure_not_answered(rating)

        rating.driver_response_content = content
        rating.driver_responded_at = get_local_time_naive()
        AuditService.log_action('respond_to_rating', caller.user_id, 'driver_rating', rating.id)
        return rating

    # Public

    def list_driver_ratings(self, driver_id: str, page: int = 1, limit: int = 10,
                            sort_by: str = 'createdAt', sort_order: str = 'desc'
                            ) -> Tuple[List[DriverRating], int, Dict[str, Any]]:
        """Approved public ratings of one driver with the driver's aggregate"""
        column = SORT_COLUMNS.get(sort_by)
        if column is None:
            raise ValidationError(f"Invalid sortBy. Must be one of: {', '.join(SORT_COLUMNS)}")
        ordering = column.asc() if sort_order == 'asc' else column.desc()

        query = DriverRating.query.filter(
            DriverRating.driver_id == driver_id,
            DriverRating.is_public.is_(True),
            DriverRating.is_approved.is_(True)
        )
        total = query.count()
        ratings = query.order_by(ordering, DriverRating.id.desc()) \
            .offset((page - 1) * limit).limit(limit).all()
        return ratings, total, self.calculate_aggregate(driver_id)

    def get_rating(self, rating_id: int) -> DriverRating:
        return self._load(rating_id)

    def vote_helpful(self, rating_id: int) -> int:
        """Increment the helpful counter in one statement"""
        updated = DriverRating.query.filter_by(id=rating_id).update(
            {DriverRating.helpful_votes: DriverRating.helpful_votes + 1},
            synchronize_session=False
        )
        if not updated:
            db.session.rollback()
            raise NotFoundError('Rating')
        db.session.commit()
        return db.session.get(DriverRating, rating_id).helpful_votes

    def _load(self, rating_id: int) -> DriverRating:
        rating = db.session.get(DriverRating, rating_id)
        if rating is None:
            raise NotFoundError('Rating')
        return rating


def _present(values: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {key: value for key, value in (values or {}).items() if value is not None}
