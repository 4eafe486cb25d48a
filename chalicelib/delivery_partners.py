from decimal import Decimal
from typing import Tuple, List, Dict, Any

from boto3.dynamodb.conditions import Key, Attr
from chalice import Response

from chalicelib.base_class_entity import EntityBase, now_iso
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import PARTNER_AVAILABILITY_STATUSES, VEHICLE_TYPES, \
    DEFAULT_AVG_RESPONSE_TIME_SECONDS
from chalicelib.constants.status_codes import http200, http201
from chalicelib.users import User
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, db as utils_db, \
    geo as utils_geo, exceptions
from chalicelib.utils.logger import logger

# fields the partner can not set on registration, they are managed by the service
SERVER_OWNED_FIELDS = ('id', 'id_', 'company_id', 'is_verified', 'is_active', 'availability', 'rating',
                       'total_ratings', 'acceptance_rate', 'avg_response_time', 'total_deliveries',
                       'max_concurrent_orders', 'assigned_order_ids', 'active_order_id', 'location_updated_at',
                       'date_created', 'date_updated')


def non_empty_str(x) -> bool:
    return isinstance(x, str) and len(x.strip()) > 0


class DeliveryPartner(EntityBase):
    pk = keys_structure.delivery_partners_pk
    sk = keys_structure.delivery_partners_sk
    clearable_fields = ('active_order_id',)

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'name_': non_empty_str,
        'phone': non_empty_str,
        'vehicle_type': lambda x: x in VEHICLE_TYPES,
        'vehicle_number': non_empty_str,
        'is_active': lambda x: isinstance(x, bool),
        'is_verified': lambda x: isinstance(x, bool),
        'availability': lambda x: x in PARTNER_AVAILABILITY_STATUSES,
        'rating': lambda x: isinstance(x, Decimal) and 0 <= x <= 5,
        'acceptance_rate': lambda x: isinstance(x, Decimal) and 0 <= x <= 100,
        'avg_response_time': lambda x: isinstance(x, Decimal) and x >= 0,
        'total_deliveries': lambda x: isinstance(x, (int, Decimal)) and x >= 0,
        'assigned_order_ids': lambda x: isinstance(x, list),
        'max_concurrent_orders': lambda x: isinstance(x, (int, Decimal)) and x >= 1,
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'total_ratings': lambda x: isinstance(x, (int, Decimal)) and x >= 0,
        'latitude': lambda x: isinstance(x, Decimal) and -90 <= x <= 90,
        'longitude': lambda x: isinstance(x, Decimal) and -180 <= x <= 180,
        'active_order_id': lambda x: isinstance(x, str),
        'location_updated_at': lambda x: isinstance(x, str)
    }

    def __init__(self, company_id, id_, **kwargs):
        EntityBase.__init__(self, company_id, id_)
        location = utils_geo.normalize_location(
            {'latitude': kwargs.get('latitude'), 'longitude': kwargs.get('longitude')})

        self.name_: str = kwargs.get('name_') or kwargs.get('name')
        self.phone: str = kwargs.get('phone')
        self.vehicle_type: str = kwargs.get('vehicle_type')
        self.vehicle_number: str = kwargs.get('vehicle_number')
        self.is_active: bool = kwargs.get('is_active', True)
        self.is_verified: bool = kwargs.get('is_verified', False)
        self.availability: str = kwargs.get('availability', 'offline')
        self.latitude: Any[Decimal, None] = location.get('latitude')
        self.longitude: Any[Decimal, None] = location.get('longitude')
        self.location_updated_at: str = kwargs.get('location_updated_at')
        self.rating: Decimal = utils_data.to_decimal(kwargs.get('rating', 5), '1.0')
        self.total_ratings: int = int(kwargs.get('total_ratings', 0))
        self.acceptance_rate: Decimal = utils_data.to_decimal(kwargs.get('acceptance_rate', 100), '1.0')
        self.avg_response_time: Decimal = utils_data.to_decimal(
            kwargs.get('avg_response_time', DEFAULT_AVG_RESPONSE_TIME_SECONDS), '1')
        self.total_deliveries: int = int(kwargs.get('total_deliveries', 0))
        self.assigned_order_ids: List[str] = kwargs.get('assigned_order_ids', [])
        self.active_order_id: str = kwargs.get('active_order_id')
        self.max_concurrent_orders: int = int(kwargs.get('max_concurrent_orders', 1))
        self.date_created: str = kwargs.get('date_created') or now_iso()
        self.date_updated: str = kwargs.get('date_updated') or self.date_created
        self.record_type = 'delivery_partner'

    @classmethod
    def init_by_id(cls, company_id, partner_id):
        c = cls(company_id, partner_id)
        c.__init__(**c._get_db_item())
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_register(cls, request):
        logger.info("init_request_register ::: started")
        auth_result = request.auth_result
        request_body = utils_data.parse_raw_body(request)
        for field in SERVER_OWNED_FIELDS:
            request_body.pop(field, None)
        c = cls(company_id=auth_result['company_id'], id_=auth_result['user_id'], **request_body)
        c.auth_result = auth_result
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_partner(cls, request):
        """ Profile of the current user, the user must have the delivery_partner role """
        auth_result = request.auth_result
        utils_auth.check_role(auth_result, 'delivery_partner')
        c = cls.init_by_id(auth_result['company_id'], auth_result['user_id'])
        c.auth_result = auth_result
        c.request_body = utils_data.parse_raw_body(request)
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_admin_update(cls, request, partner_id):
        auth_result = request.auth_result
        utils_auth.check_role(auth_result, 'admin')
        c = cls.init_by_id(auth_result['company_id'], partner_id)
        c.auth_result = auth_result
        c.request_body = utils_data.parse_raw_body(request)
        return c

    @utils_app.log_start_finish
    def endpoint_register(self) -> Response:
        try:
            self._get_db_item()
            raise exceptions.RecordAlreadyExists(f'Delivery partner profile for user {self.id_} already exists')
        except exceptions.RecordNotFound:
            pass
        user = User.init_by_id(self.company_id, self.id_)
        if not self.name_:
            self.name_ = user.full_name
        self._create_db_record()
        if user.role != 'admin':
            user.update_role('delivery_partner')
        return Response(status_code=http201, body=self.to_ui())

    @utils_app.log_start_finish
    def endpoint_get_profile(self) -> Response:
        return Response(status_code=http200, body=self.to_ui())

    @utils_app.log_start_finish
    def endpoint_update_availability(self) -> Response:
        availability = self.request_body.get('availability')
        if availability not in PARTNER_AVAILABILITY_STATUSES:
            raise exceptions.ValidationException(f'availability must be one of {PARTNER_AVAILABILITY_STATUSES}')
        if availability != 'busy' and self.active_order_id:
            raise exceptions.InvalidStatusTransition(
                f'Partner has active order {self.active_order_id}, finish it before going {availability}')
        self.availability = availability
        self._update_db_record()
        return Response(status_code=http200, body=self.to_ui())

    @utils_app.log_start_finish
    def endpoint_update_location(self) -> Response:
        location = utils_geo.normalize_location({
            'latitude': self.request_body.get('latitude'),
            'longitude': self.request_body.get('longitude')
        })
        utils_geo.get_coordinates(location)
        self.latitude, self.longitude = location['latitude'], location['longitude']
        self.location_updated_at = now_iso()
        self._update_db_record()
        return Response(status_code=http200, body=self.to_ui())

    @utils_app.log_start_finish
    def endpoint_admin_update(self) -> Response:
        for field in ('is_verified', 'is_active'):
            value = self.request_body.get(field)
            if value is not None and not isinstance(value, bool):
                raise exceptions.ValidationException(f'{field} must be a boolean')
        if self.request_body.get('is_verified') is not None:
            self.is_verified = self.request_body['is_verified']
        if self.request_body.get('is_active') is not None:
            self.is_active = self.request_body['is_active']
        if not self.is_active:
            self.availability = 'offline'
        self._update_db_record()
        logger.info(f"endpoint_admin_update ::: partner_id={self.id_} is_verified={self.is_verified} "
                    f"is_active={self.is_active}")
        return Response(status_code=http200, body=self.to_ui())

    @property
    def location(self) -> Dict:
        return {'latitude': self.latitude, 'longitude': self.longitude}

    @property
    def current_load(self) -> int:
        return len(self.assigned_order_ids)

    def add_assigned_order(self, order_id: str) -> None:
        if order_id not in self.assigned_order_ids:
            self.assigned_order_ids = [*self.assigned_order_ids, order_id]
            self._update_db_record()

    def remove_assigned_order(self, order_id: str) -> None:
        self.assigned_order_ids = [assigned for assigned in self.assigned_order_ids if assigned != order_id]
        if self.active_order_id == order_id:
            self.active_order_id = None
        self._update_db_record()

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk.format(user_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'name_': self.name_,
            'phone': self.phone,
            'vehicle_type': self.vehicle_type,
            'vehicle_number': self.vehicle_number,
            'is_active': self.is_active,
            'is_verified': self.is_verified,
            'availability': self.availability,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'location_updated_at': self.location_updated_at,
            'rating': self.rating,
            'total_ratings': self.total_ratings,
            'acceptance_rate': self.acceptance_rate,
            'avg_response_time': self.avg_response_time,
            'total_deliveries': self.total_deliveries,
            'assigned_order_ids': self.assigned_order_ids,
            'active_order_id': self.active_order_id,
            'max_concurrent_orders': self.max_concurrent_orders,
            'date_created': self.date_created,
            'date_updated': self.date_updated
        }


def get_delivery_partners(company_id: str, availability: str = None) -> List[DeliveryPartner]:
    records = utils_db.query_items_paged(
        Key('partkey').eq(DeliveryPartner.pk.format(company_id=company_id)),
        filter_expression=Attr('availability').eq(availability) if availability else None
    )
    return [DeliveryPartner(**record) for record in records]


@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_get_delivery_partners(request) -> Response:
    auth_result = request.auth_result
    utils_auth.check_role(auth_result, 'admin')
    availability = utils_data.get_query_params(request).get('availability')
    partners = get_delivery_partners(auth_result['company_id'], availability)
    return Response(status_code=http200, body={'delivery_partners': [partner.to_ui() for partner in partners]})
