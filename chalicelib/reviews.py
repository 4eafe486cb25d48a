from decimal import Decimal
from typing import Tuple, List, Dict, Any
from uuid import uuid4

from boto3.dynamodb.conditions import Key, Attr
from chalice import Response

from chalicelib.base_class_entity import EntityBase, now_iso
from chalicelib.chefs import Chef, ChefBooking, is_int_in_range
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import REVIEW_TARGET_TYPES, REVIEW_STATUSES, REVIEW_BREAKDOWN_KEYS, \
    REVIEW_SORT_OPTIONS, MAX_REVIEW_LENGTH, MAX_REVIEW_TITLE_LENGTH, DEFAULT_REVIEWS_PAGE_SIZE
from chalicelib.constants.status_codes import http200, http201
from chalicelib.delivery_partners import DeliveryPartner
from chalicelib.orders import Order
from chalicelib.restaurants import Restaurant
from chalicelib.users import User
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, db as utils_db, exceptions
from chalicelib.utils.auth import get_company_id_by_request
from chalicelib.utils.logger import logger, log_exception

# one review per user for these targets, delivery reviews are limited to one per order
PER_USER_TARGET_TYPES = ('restaurant', 'chef', 'order', 'chef_booking')
RATED_ENTITIES = {
    'restaurant': Restaurant.init_get_by_id,
    'chef': Chef.init_by_id,
    'delivery': DeliveryPartner.init_by_id
}


def is_breakdown(x) -> bool:
    return isinstance(x, dict) and all(
        key in REVIEW_BREAKDOWN_KEYS and is_int_in_range(value, 1, 5) for key, value in x.items())


def is_text(max_length: int):
    return lambda x: isinstance(x, str) and len(x) <= max_length


def average(values: List) -> Any:
    return utils_data.to_decimal(sum(values) / len(values), '1.0') if values else None


class Review(EntityBase):
    pk = keys_structure.reviews_pk
    sk = keys_structure.reviews_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'user_id': lambda x: isinstance(x, str),
        'target_type': lambda x: x in REVIEW_TARGET_TYPES,
        'target_id': lambda x: isinstance(x, str) and len(x) > 0,
        'rating': lambda x: is_int_in_range(x, 1, 5),
        'is_verified_purchase': lambda x: isinstance(x, bool),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'status_': lambda x: x in REVIEW_STATUSES,
        'breakdown': is_breakdown,
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'title': is_text(MAX_REVIEW_TITLE_LENGTH),
        'review': is_text(MAX_REVIEW_LENGTH),
        'order_id': lambda x: isinstance(x, str),
        'chef_booking_id': lambda x: isinstance(x, str),
        'context': lambda x: isinstance(x, dict),
        'user_name': lambda x: isinstance(x, str),
        'target_name': lambda x: isinstance(x, str)
    }

    def __init__(self, company_id, id_, **kwargs):
        EntityBase.__init__(self, company_id, id_)
        self.user_id: str = kwargs.get('user_id')
        self.user_name: str = kwargs.get('user_name')
        self.target_type: str = kwargs.get('target_type')
        self.target_id: str = kwargs.get('target_id')
        self.target_name: str = kwargs.get('target_name')
        self.order_id: str = kwargs.get('order_id')
        self.chef_booking_id: str = kwargs.get('chef_booking_id')
        self.rating = kwargs.get('rating')
        self.title: str = kwargs.get('title')
        self.review: str = kwargs.get('review')
        self.breakdown: Dict = kwargs.get('breakdown') or {}
        self.context: Dict = kwargs.get('context') or {}
        self.is_verified_purchase: bool = kwargs.get('is_verified_purchase', False)
        self.status_: str = kwargs.get('status_', 'pending')
        self.date_created: str = kwargs.get('date_created') or now_iso()
        self.date_updated: str = kwargs.get('date_updated') or self.date_created
        self.record_type = 'review'

    @classmethod
    @utils_auth.authenticate_class
    def init_request_create(cls, request):
        logger.info("init_request_create ::: started")
        auth_result = request.auth_result
        request_body = utils_data.parse_raw_body(request)
        missing = [field for field in ('target_type', 'target_id', 'rating') if request_body.get(field) is None]
        if missing:
            raise exceptions.MandatoryFieldsAreNotFilled(f'Missing required review fields: {missing}')
        if request_body['target_type'] not in REVIEW_TARGET_TYPES:
            raise exceptions.ValidationException(f'target_type must be one of {REVIEW_TARGET_TYPES}')
        if not is_int_in_range(request_body['rating'], 1, 5):
            raise exceptions.ValidationException('Rating must be between 1 and 5')
        c = cls(
            company_id=auth_result['company_id'],
            id_=str(uuid4()),
            user_id=auth_result['user_id'],
            target_type=request_body['target_type'],
            target_id=str(request_body['target_id']),
            order_id=request_body.get('order_id'),
            chef_booking_id=request_body.get('chef_booking_id'),
            rating=int(request_body['rating']),
            title=request_body.get('title'),
            review=request_body.get('review'),
            breakdown=request_body.get('breakdown'),
            context=request_body.get('context')
        )
        c.auth_result = auth_result
        return c

    @utils_app.log_start_finish
    def endpoint_create(self) -> Response:
        self.target_name, self.is_verified_purchase = self._check_target()
        self._check_duplicate()
        self.user_name = User.init_by_id(self.company_id, self.user_id).full_name
        # verified purchases are published right away, the rest waits for moderation
        self.status_ = 'approved' if self.is_verified_purchase else 'pending'
        self._create_db_record()
        if self.status_ == 'approved':
            try:
                update_target_rating(self.company_id, self.target_type, self.target_id)
            except Exception as error:
                log_exception(error, status_code=500, msg=f'update_target_rating ::: review_id={self.id_} failed')
        return Response(status_code=http201, body={
            'message': 'Review submitted successfully',
            'review_id': self.id_,
            'status': self.status_,
            'is_verified_purchase': self.is_verified_purchase
        })

    def _check_target(self) -> Tuple[str, bool]:
        """
        Checks that the reviewed target exists and the user has used it
        :return:
        target name, whether the review comes from a verified purchase
        """
        if self.target_type == 'restaurant':
            restaurant = Restaurant.init_get_by_id(self.company_id, self.target_id)
            return restaurant.name_, self.order_id is not None and self._is_delivered_order(
                self.order_id, restaurant_id=self.target_id)
        if self.target_type == 'chef':
            chef = Chef.init_by_id(self.company_id, self.target_id)
            return chef.name_, self.chef_booking_id is not None and self._is_completed_booking(
                self.chef_booking_id, chef_id=self.target_id)
        if self.target_type == 'order':
            if not self._is_delivered_order(self.target_id):
                raise exceptions.OrderNotFound(f'Order {self.target_id} not found or not delivered')
            self.order_id = self.target_id
            return f'Order #{Order.init_by_order_id(self.company_id, self.target_id).order_number}', True
        if self.target_type == 'delivery':
            partner = DeliveryPartner.init_by_id(self.company_id, self.target_id)
            if not self.order_id:
                raise exceptions.MandatoryFieldsAreNotFilled('order_id is required for a delivery review')
            if not self._is_delivered_order(self.order_id, delivery_partner_id=self.target_id):
                raise exceptions.OrderNotFound(f'Order {self.order_id} was not delivered by {self.target_id}')
            return partner.name_, True
        if not self._is_completed_booking(self.target_id):
            raise exceptions.RecordNotFound(f'Chef booking {self.target_id} not found or not completed')
        self.chef_booking_id = self.target_id
        return ChefBooking.init_by_id(self.company_id, self.target_id).chef_name, True

    def _is_delivered_order(self, order_id: str, **expected_fields) -> bool:
        try:
            order = Order.init_by_order_id(self.company_id, order_id)
        except exceptions.RecordNotFound:
            return False
        return order.user_id == self.user_id and order.status_ == 'delivered' and all(
            getattr(order, field) == value for field, value in expected_fields.items())

    def _is_completed_booking(self, booking_id: str, **expected_fields) -> bool:
        try:
            booking = ChefBooking.init_by_id(self.company_id, booking_id)
        except exceptions.RecordNotFound:
            return False
        return booking.customer_id == self.user_id and booking.status_ == 'completed' and all(
            getattr(booking, field) == value for field, value in expected_fields.items())

    def _check_duplicate(self) -> None:
        if self.target_type in PER_USER_TARGET_TYPES:
            filter_expression = Attr('user_id').eq(self.user_id)
        else:
            filter_expression = Attr('order_id').eq(self.order_id)
        pk, _ = self._get_pk_sk()
        if utils_db.query_items_paged(Key('partkey').eq(pk), filter_expression=filter_expression):
            raise exceptions.RecordAlreadyExists(f'You have already reviewed this {self.target_type}')

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id, target_type=self.target_type, target_id=self.target_id), \
            self.sk.format(review_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'user_id': self.user_id,
            'user_name': self.user_name,
            'target_type': self.target_type,
            'target_id': self.target_id,
            'target_name': self.target_name,
            'order_id': self.order_id,
            'chef_booking_id': self.chef_booking_id,
            'rating': self.rating,
            'title': self.title,
            'review': self.review,
            'breakdown': self.breakdown,
            'context': self.context,
            'is_verified_purchase': self.is_verified_purchase,
            'status_': self.status_,
            'date_created': self.date_created,
            'date_updated': self.date_updated
        }


def get_reviews(company_id: str, target_type: str, target_id: str) -> List[Review]:
    records = utils_db.query_items_paged(
        Key('partkey').eq(Review.pk.format(company_id=company_id, target_type=target_type, target_id=target_id)),
        filter_expression=Attr('status_').eq('approved')
    )
    return [Review(**record) for record in records]


def get_review_stats(reviews: List[Review]) -> Dict:
    return {
        'total_reviews': len(reviews),
        'average_rating': average([review.rating for review in reviews]) or Decimal(0),
        'breakdown': {key: average([review.breakdown[key] for review in reviews if key in review.breakdown])
                      for key in REVIEW_BREAKDOWN_KEYS},
        'rating_distribution': {str(rating): len([review for review in reviews if review.rating == rating])
                                for rating in range(5, 0, -1)},
        'verified_reviews': len([review for review in reviews if review.is_verified_purchase])
    }


def sort_reviews(reviews: List[Review], sort_by: str) -> List[Review]:
    reviews = sorted(reviews, key=lambda review: review.date_created, reverse=True)
    if sort_by == 'rating_high':
        return sorted(reviews, key=lambda review: review.rating, reverse=True)
    if sort_by == 'rating_low':
        return sorted(reviews, key=lambda review: review.rating)
    return reviews


def update_target_rating(company_id: str, target_type: str, target_id: str) -> None:
    """ Recalculates the target's rating from its approved reviews """
    if target_type not in RATED_ENTITIES:
        return
    reviews = get_reviews(company_id, target_type, target_id)
    if not reviews:
        return
    target = RATED_ENTITIES[target_type](company_id, target_id)
    target.rating = average([review.rating for review in reviews])
    target.total_ratings = len(reviews)
    target._update_db_record()
    logger.info(f"update_target_rating ::: {target_type=} {target_id=} rating={target.rating} "
                f"total_ratings={target.total_ratings}")


def get_positive_int_param(query_params: Dict, name: str, default: int) -> int:
    value = query_params.get(name)
    if value is None:
        return default
    if not value.isdigit() or int(value) < 1:
        raise exceptions.ValidationException(f'{name} must be a positive integer, got {value}')
    return int(value)


@utils_app.log_start_finish
def endpoint_get_reviews(request, target_type: str = None, target_id: str = None) -> Response:
    company_id = get_company_id_by_request(request)
    query_params = utils_data.get_query_params(request)
    target_type = target_type or query_params.get('target_type')
    target_id = target_id or query_params.get('target_id')
    if not target_type or not target_id:
        raise exceptions.MandatoryFieldsAreNotFilled('target_type and target_id are required')
    if target_type not in REVIEW_TARGET_TYPES:
        raise exceptions.ValidationException(f'target_type must be one of {REVIEW_TARGET_TYPES}')
    sort_by = query_params.get('sort_by', 'recent')
    if sort_by not in REVIEW_SORT_OPTIONS:
        raise exceptions.ValidationException(f'sort_by must be one of {REVIEW_SORT_OPTIONS}')
    page = get_positive_int_param(query_params, 'page', 1)
    limit = get_positive_int_param(query_params, 'limit', DEFAULT_REVIEWS_PAGE_SIZE)

    all_reviews = get_reviews(company_id, target_type, target_id)
    reviews = all_reviews
    if query_params.get('rating'):
        rating = get_positive_int_param(query_params, 'rating', 0)
        reviews = [review for review in reviews if review.rating == rating]
    if utils_data.is_true(query_params.get('verified_only')):
        reviews = [review for review in reviews if review.is_verified_purchase]
    reviews = sort_reviews(reviews, sort_by)
    page_reviews = reviews[(page - 1) * limit:page * limit]
    return Response(status_code=http200, body={
        'reviews': [review.to_ui() for review in page_reviews],
        'pagination': {
            'current': page,
            'total': (len(reviews) + limit - 1) // limit,
            'count': len(page_reviews),
            'total_reviews': len(reviews)
        },
        'stats': get_review_stats(all_reviews)
    })


@utils_app.log_start_finish
def endpoint_get_order_review(request, order_id: str) -> Response:
    reviews = get_reviews(get_company_id_by_request(request), 'order', order_id)
    review = reviews[0].to_ui() if reviews else None
    return Response(status_code=http200, body={'review': review, 'has_review': review is not None})
