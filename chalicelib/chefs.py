import re
from datetime import date
from decimal import Decimal
from typing import Tuple, List, Dict
from uuid import uuid4

from boto3.dynamodb.conditions import Key, Attr
from chalice import Response

from chalicelib.base_class_entity import EntityBase, now_iso
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import CHEF_EVENT_TYPES, CHEF_VENUE_TYPES, CHEF_BUSY_BOOKING_STATUSES, \
    CHEF_BOOKING_STATUS_TRANSITIONS, DEFAULT_CHEF_PRICE_PER_HOUR, EXTRA_GUESTS_THRESHOLD, EXTRA_GUEST_CHARGE, \
    TRAVEL_FEE, EQUIPMENT_RENTAL_GUESTS_THRESHOLD, EQUIPMENT_RENTAL_FEE, MAX_BOOKING_DURATION_HOURS, \
    MAX_BOOKING_GUESTS, BOOKING_CURRENCY, PAYMENT_METHODS
from chalicelib.constants.status_codes import http200, http201
from chalicelib.notifications import create_notification
from chalicelib.users import User
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, db as utils_db, exceptions
from chalicelib.utils.auth import get_company_id_by_request
from chalicelib.utils.logger import logger

EVENT_TIME_RE = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')
BOOKING_REQUIRED_FIELDS = ('chef_id', 'event_type', 'event_date', 'event_time', 'duration', 'guest_count',
                           'cuisine', 'venue')


def is_int_in_range(value, min_value, max_value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, Decimal)) or value != int(value):
        return False
    return min_value <= value <= max_value


def calculate_booking_price(price_per_hour: Decimal, duration: int, guest_count: int, venue_type: str) -> Dict:
    additional_charges = {
        'extra_guests': (guest_count - EXTRA_GUESTS_THRESHOLD) * EXTRA_GUEST_CHARGE
        if guest_count > EXTRA_GUESTS_THRESHOLD else Decimal(0),
        'travel_fee': TRAVEL_FEE if venue_type == 'customer_home' else Decimal(0),
        'equipment_rental': EQUIPMENT_RENTAL_FEE if guest_count > EQUIPMENT_RENTAL_GUESTS_THRESHOLD else Decimal(0)
    }
    base_price = Decimal(price_per_hour) * duration
    return {
        'base_price': base_price,
        'additional_charges': additional_charges,
        'total_amount': base_price + sum(additional_charges.values()),
        'currency': BOOKING_CURRENCY
    }


def validate_booking_request(body: Dict, today: date = None) -> Dict:
    """
    Checks booking request fields
    :return:
    normalized booking fields, ValidationException if something is wrong
    """
    today = today or date.today()
    missing = [field for field in BOOKING_REQUIRED_FIELDS if body.get(field) in (None, '', [], {})]
    if missing:
        raise exceptions.MandatoryFieldsAreNotFilled(f'Missing required booking details: {missing}')
    if body['event_type'] not in CHEF_EVENT_TYPES:
        raise exceptions.ValidationException(f'event_type must be one of {CHEF_EVENT_TYPES}')
    try:
        event_date = date.fromisoformat(str(body['event_date']))
    except ValueError:
        raise exceptions.ValidationException(f"event_date must be YYYY-MM-DD, got {body['event_date']}")
    if event_date <= today:
        raise exceptions.ValidationException('Event date must be in the future')
    if not EVENT_TIME_RE.match(str(body['event_time'])):
        raise exceptions.ValidationException(f"event_time must be HH:MM, got {body['event_time']}")
    if not is_int_in_range(body['duration'], 1, MAX_BOOKING_DURATION_HOURS):
        raise exceptions.ValidationException(f'duration must be from 1 to {MAX_BOOKING_DURATION_HOURS} hours')
    if not is_int_in_range(body['guest_count'], 1, MAX_BOOKING_GUESTS):
        raise exceptions.ValidationException(f'guest_count must be from 1 to {MAX_BOOKING_GUESTS}')
    cuisine = body['cuisine'] if isinstance(body['cuisine'], list) else [body['cuisine']]
    if not cuisine or not all(isinstance(item, str) and item for item in cuisine):
        raise exceptions.ValidationException('cuisine must be a non empty list of strings')
    venue = body['venue']
    if not isinstance(venue, dict) or venue.get('type') not in CHEF_VENUE_TYPES:
        raise exceptions.ValidationException(f'venue.type must be one of {CHEF_VENUE_TYPES}')
    payment_method = body.get('payment_method', 'cod')
    if payment_method not in PAYMENT_METHODS:
        raise exceptions.ValidationException(f'payment_method must be one of {PAYMENT_METHODS}')
    dietary_restrictions = body.get('dietary_restrictions', [])
    if not isinstance(dietary_restrictions, list):
        raise exceptions.ValidationException('dietary_restrictions must be a list')
    return {
        'chef_id': body['chef_id'],
        'event_type': body['event_type'],
        'event_date': event_date.isoformat(),
        'event_time': body['event_time'],
        'duration': int(body['duration']),
        'guest_count': int(body['guest_count']),
        'cuisine': cuisine,
        'venue': venue,
        'special_requests': body.get('special_requests', ''),
        'dietary_restrictions': dietary_restrictions,
        'payment_method': payment_method
    }


class Chef(EntityBase):
    pk = keys_structure.chefs_pk
    sk = keys_structure.chefs_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'name_': lambda x: isinstance(x, str) and len(x) > 0,
        'specialization': lambda x: isinstance(x, list),
        'cuisines': lambda x: isinstance(x, list) and len(x) > 0,
        'experience_years': lambda x: isinstance(x, (int, Decimal)) and x >= 0,
        'price_per_hour': lambda x: isinstance(x, Decimal) and x > 0,
        'rating': lambda x: isinstance(x, Decimal) and 0 <= x <= 5,
        'is_available': lambda x: isinstance(x, bool),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'total_ratings': lambda x: isinstance(x, (int, Decimal)) and x >= 0,
        'phone': lambda x: isinstance(x, str),
        'email': lambda x: isinstance(x, str),
        'description': lambda x: isinstance(x, str)
    }

    def __init__(self, company_id, id_, **kwargs):
        EntityBase.__init__(self, company_id, id_)
        self.name_: str = kwargs.get('name_') or kwargs.get('name')
        self.phone: str = kwargs.get('phone')
        self.email: str = kwargs.get('email')
        self.description: str = kwargs.get('description')
        self.specialization: List[str] = kwargs.get('specialization', [])
        self.cuisines: List[str] = kwargs.get('cuisines', [])
        self.experience_years: int = kwargs.get('experience_years', 0)
        self.price_per_hour: Decimal = utils_data.to_decimal(kwargs.get('price_per_hour', DEFAULT_CHEF_PRICE_PER_HOUR))
        self.rating: Decimal = utils_data.to_decimal(kwargs.get('rating', 5), '1.0')
        self.total_ratings: int = int(kwargs.get('total_ratings', 0))
        self.is_available: bool = kwargs.get('is_available', True)
        self.date_created: str = kwargs.get('date_created') or now_iso()
        self.date_updated: str = kwargs.get('date_updated') or self.date_created
        self.record_type = 'chef'

    @classmethod
    def init_by_id(cls, company_id, chef_id):
        c = cls(company_id, chef_id)
        c.__init__(**c._get_db_item())
        return c

    @classmethod
    def init_request_get_by_id(cls, request, chef_id):
        return cls.init_by_id(get_company_id_by_request(request), chef_id)

    @classmethod
    @utils_auth.authenticate_class
    def init_request_register(cls, request):
        logger.info("init_request_register ::: started")
        auth_result = request.auth_result
        request_body = utils_data.parse_raw_body(request)
        for field in ('id', 'id_', 'company_id', 'rating', 'total_ratings'):
            request_body.pop(field, None)
        c = cls(company_id=auth_result['company_id'], id_=auth_result['user_id'], **request_body)
        c.auth_result = auth_result
        return c

    @staticmethod
    @utils_app.log_start_finish
    def endpoint_get_chefs(request) -> Response:
        company_id = get_company_id_by_request(request)
        cuisine = utils_data.get_query_params(request).get('cuisine')
        filter_expression = Attr('is_available').eq(True)
        if cuisine:
            filter_expression = filter_expression & Attr('cuisines').contains(cuisine)
        records = utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.chefs_pk.format(company_id=company_id)),
            filter_expression=filter_expression
        )
        chefs = sorted([Chef(**record).to_ui() for record in records], key=lambda chef: chef['rating'], reverse=True)
        return Response(status_code=http200, body={'chefs': chefs})

    @utils_app.log_start_finish
    def endpoint_get_by_id(self) -> Response:
        return Response(status_code=http200, body=self.to_ui())

    @utils_app.log_start_finish
    def endpoint_register(self) -> Response:
        try:
            self._get_db_item()
            raise exceptions.RecordAlreadyExists(f'Chef profile for user {self.id_} already exists')
        except exceptions.RecordNotFound:
            pass
        user = User.init_by_id(self.company_id, self.id_)
        self.name_ = self.name_ or user.full_name
        self.email = self.email or user.email
        self._create_db_record()
        if user.role != 'admin':
            user.update_role('chef')
        return Response(status_code=http201, body=self.to_ui())

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk.format(user_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'name_': self.name_,
            'phone': self.phone,
            'email': self.email,
            'description': self.description,
            'specialization': self.specialization,
            'cuisines': self.cuisines,
            'experience_years': self.experience_years,
            'price_per_hour': self.price_per_hour,
            'rating': self.rating,
            'total_ratings': self.total_ratings,
            'is_available': self.is_available,
            'date_created': self.date_created,
            'date_updated': self.date_updated
        }


class ChefBooking(EntityBase):
    pk = keys_structure.chef_bookings_pk
    sk = keys_structure.chef_bookings_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'customer_id': lambda x: isinstance(x, str),
        'chef_id': lambda x: isinstance(x, str),
        'event_type': lambda x: x in CHEF_EVENT_TYPES,
        'event_date': lambda x: isinstance(x, str),
        'event_time': lambda x: isinstance(x, str),
        'duration': lambda x: isinstance(x, (int, Decimal)),
        'guest_count': lambda x: isinstance(x, (int, Decimal)),
        'cuisine': lambda x: isinstance(x, list) and len(x) > 0,
        'venue': lambda x: isinstance(x, dict),
        'pricing': lambda x: isinstance(x, dict),
        'payment_method': lambda x: x in PAYMENT_METHODS,
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'status_': lambda x: x in CHEF_BOOKING_STATUS_TRANSITIONS,
        'status_history': lambda x: isinstance(x, list),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'special_requests': lambda x: isinstance(x, str),
        'dietary_restrictions': lambda x: isinstance(x, list),
        'chef_name': lambda x: isinstance(x, str)
    }

    def __init__(self, company_id, id_, **kwargs):
        EntityBase.__init__(self, company_id, id_)
        self.request_body: Dict = {}

        self.customer_id: str = kwargs.get('customer_id')
        self.chef_id: str = kwargs.get('chef_id')
        self.chef_name: str = kwargs.get('chef_name')
        self.event_type: str = kwargs.get('event_type')
        self.event_date: str = kwargs.get('event_date')
        self.event_time: str = kwargs.get('event_time')
        self.duration: int = kwargs.get('duration')
        self.guest_count: int = kwargs.get('guest_count')
        self.cuisine: List[str] = kwargs.get('cuisine', [])
        self.venue: Dict = kwargs.get('venue', {})
        self.special_requests: str = kwargs.get('special_requests', '')
        self.dietary_restrictions: List[str] = kwargs.get('dietary_restrictions', [])
        self.pricing: Dict = kwargs.get('pricing', {})
        self.payment_method: str = kwargs.get('payment_method', 'cod')
        self.status_: str = kwargs.get('status_', 'pending')
        self.status_history: List[Dict] = kwargs.get('status_history', [])
        self.date_created: str = kwargs.get('date_created') or now_iso()
        self.date_updated: str = kwargs.get('date_updated') or self.date_created
        self.record_type = 'chef_booking'

    @classmethod
    def init_by_id(cls, company_id, booking_id):
        c = cls(company_id, booking_id)
        c.__init__(**c._get_db_item())
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_create(cls, request, today: date = None):
        logger.info("init_request_create ::: started")
        auth_result = request.auth_result
        booking_fields = validate_booking_request(utils_data.parse_raw_body(request), today)
        c = cls(company_id=auth_result['company_id'], id_=str(uuid4()), customer_id=auth_result['user_id'],
                **booking_fields)
        c.auth_result = auth_result
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_by_id(cls, request, booking_id):
        auth_result = request.auth_result
        c = cls.init_by_id(auth_result['company_id'], booking_id)
        if auth_result['user_id'] not in (c.customer_id, c.chef_id) and auth_result['role'] != 'admin':
            raise exceptions.RecordNotFound(f'Booking {booking_id} not found')
        c.auth_result = auth_result
        c.request_body = utils_data.parse_raw_body(request)
        return c

    @utils_app.log_start_finish
    def endpoint_create(self) -> Response:
        chef = Chef.init_by_id(self.company_id, self.chef_id)
        if not chef.is_available:
            raise exceptions.ChefNotAvailable(f'Chef {self.chef_id} is not available')
        if self._chef_is_booked():
            raise exceptions.ChefNotAvailable(f'Chef is already booked for {self.event_date}')
        self.chef_name = chef.name_
        self.pricing = calculate_booking_price(chef.price_per_hour, self.duration, self.guest_count,
                                               self.venue.get('type'))
        self.status_history = [{'status': 'pending', 'timestamp': now_iso(), 'updated_by': self.customer_id}]
        self._create_db_record()
        create_notification(
            company_id=self.company_id,
            user_id=self.chef_id,
            notification_type='booking',
            title='New booking request',
            message=f'New {self.event_type.replace("_", " ")} booking for {self.event_date} '
                    f'at {self.event_time}, {self.guest_count} guests',
            data={'booking_id': self.id_, 'event_date': self.event_date},
            priority='high'
        )
        return Response(status_code=http201, body={'message': 'Booking request sent to chef',
                                                   'booking': self.to_ui()})

    @utils_app.log_start_finish
    def endpoint_update_status(self) -> Response:
        new_status = self.request_body.get('status')
        if new_status not in CHEF_BOOKING_STATUS_TRANSITIONS:
            raise exceptions.ValidationException(f'status must be one of {list(CHEF_BOOKING_STATUS_TRANSITIONS)}')
        user_id = self.auth_result['user_id']
        if user_id != self.chef_id and self.auth_result['role'] != 'admin' and new_status != 'cancelled':
            raise exceptions.AccessDenied('Customers can only cancel their bookings')
        if new_status not in CHEF_BOOKING_STATUS_TRANSITIONS[self.status_]:
            raise exceptions.InvalidStatusTransition(f'Booking status can not be changed from {self.status_} '
                                                     f'to {new_status}')
        self.status_ = new_status
        self.status_history = [*self.status_history, {
            'status': new_status,
            'timestamp': now_iso(),
            'updated_by': user_id,
            'note': self.request_body.get('notes', '')
        }]
        self._update_db_record()
        notify_user_id = self.customer_id if user_id == self.chef_id else self.chef_id
        create_notification(
            company_id=self.company_id,
            user_id=notify_user_id,
            notification_type='booking',
            title=f'Booking {new_status.replace("_", " ")}',
            message=f'Booking for {self.event_date} is now {new_status.replace("_", " ")}',
            data={'booking_id': self.id_, 'status': new_status}
        )
        return Response(status_code=http200, body={'message': 'Booking status updated', 'booking': self.to_ui()})

    def _chef_is_booked(self) -> bool:
        records = utils_db.query_items_paged(
            Key('partkey').eq(self.pk.format(company_id=self.company_id)),
            filter_expression=Attr('chef_id').eq(self.chef_id) & Attr('event_date').eq(self.event_date) &
            Attr('status_').is_in(list(CHEF_BUSY_BOOKING_STATUSES))
        )
        return len(records) > 0

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk.format(booking_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'customer_id': self.customer_id,
            'chef_id': self.chef_id,
            'chef_name': self.chef_name,
            'event_type': self.event_type,
            'event_date': self.event_date,
            'event_time': self.event_time,
            'duration': self.duration,
            'guest_count': self.guest_count,
            'cuisine': self.cuisine,
            'venue': self.venue,
            'special_requests': self.special_requests,
            'dietary_restrictions': self.dietary_restrictions,
            'pricing': self.pricing,
            'payment_method': self.payment_method,
            'status_': self.status_,
            'status_history': self.status_history,
            'date_created': self.date_created,
            'date_updated': self.date_updated
        }


@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_get_bookings(request) -> Response:
    auth_result = request.auth_result
    attr = 'chef_id' if auth_result['role'] == 'chef' else 'customer_id'
    records = utils_db.query_items_paged(
        Key('partkey').eq(ChefBooking.pk.format(company_id=auth_result['company_id'])),
        filter_expression=Attr(attr).eq(auth_result['user_id'])
    )
    bookings = sorted([ChefBooking(**record).to_ui() for record in records],
                      key=lambda booking: booking['date_created'], reverse=True)
    return Response(status_code=http200, body={'bookings': bookings})
