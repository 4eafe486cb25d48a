from decimal import Decimal
from typing import Tuple, List, Dict
from uuid import uuid4

from boto3.dynamodb.conditions import Attr, Key
from chalice import Response

from chalicelib.base_class_entity import EntityBase, now_iso
from chalicelib.constants import keys_structure
from chalicelib.constants.status_codes import http200, http201
from chalicelib.utils import auth as utils_auth, data as utils_data, db as utils_db, app as utils_app, \
    geo as utils_geo
from chalicelib.utils.auth import get_company_id_by_request
from chalicelib.utils.exceptions import WrongDeliveryAddress
from chalicelib.utils.logger import logger

ACTIVE_ORDER_STATUSES = ('confirmed', 'preparing', 'ready', 'out_for_delivery')


def is_location(x) -> bool:
    return isinstance(x, dict) and isinstance(x.get('latitude'), Decimal) and isinstance(x.get('longitude'), Decimal)


def is_hour(x) -> bool:
    return isinstance(x, Decimal) and 0 <= x <= 23


class Restaurant(EntityBase):
    pk = keys_structure.restaurants_pk
    sk = keys_structure.restaurants_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'created_by': lambda x: isinstance(x, str),
        "date_created": lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'name_': lambda x: isinstance(x, str) and len(x) > 0,
        'address': lambda x: isinstance(x, str),
        'description': lambda x: isinstance(x, str),
        'cuisine': lambda x: isinstance(x, list),
        'location': is_location,
        'rating': lambda x: isinstance(x, Decimal) and 0 <= x <= 5,
        'is_open': lambda x: isinstance(x, bool),
        "date_updated": lambda x: isinstance(x, str),
        "updated_by": lambda x: isinstance(x, str),
        "archived": lambda x: isinstance(x, bool)
    }

    optional_fields_validation = {
        'opening_time': is_hour,
        'total_ratings': lambda x: isinstance(x, (int, Decimal)) and x >= 0,
        'closing_time': is_hour,
        'image': lambda x: isinstance(x, str),
        'phone': lambda x: isinstance(x, str),
        'settings': lambda x: isinstance(x, dict)
    }

    def __init__(self, company_id, id_, **kwargs):
        EntityBase.__init__(self, company_id, id_)

        self.name_: str = kwargs.get('name_') or kwargs.get('name')
        self.address: str = kwargs.get('address')
        self.description: str = kwargs.get('description', '')
        self.cuisine: list = kwargs.get('cuisine', [])
        self.location: Dict = utils_geo.normalize_location(kwargs.get('location'))
        self.rating: Decimal = utils_data.to_decimal(kwargs.get('rating', 0), '1.0')
        self.total_ratings: int = int(kwargs.get('total_ratings', 0))
        self.is_open: bool = kwargs.get('is_open', True)
        self.opening_time: Decimal = utils_data.to_decimal(kwargs.get('opening_time'), '1')
        self.closing_time: Decimal = utils_data.to_decimal(kwargs.get('closing_time'), '1')
        self.image: str = kwargs.get('image')
        self.phone: str = kwargs.get('phone')
        self.settings: dict = kwargs.get('settings', {})
        self.created_by: str = kwargs.get('created_by')
        self.updated_by: str = kwargs.get('updated_by') or self.created_by
        self.date_created: str = kwargs.get('date_created') or now_iso()
        self.date_updated: str = kwargs.get('date_updated') or now_iso()
        self.archived: bool = kwargs.get('archived', False)
        self.record_type = 'restaurant'

    @classmethod
    @utils_auth.authenticate_class
    def init_request_create(cls, request):
        logger.info("init_request_create ::: started")
        auth_result = request.auth_result
        utils_auth.check_role(auth_result, 'admin')
        request_body = utils_data.parse_raw_body(request)
        for field in ('id', 'id_', 'company_id', 'created_by', 'updated_by', 'total_ratings'):
            request_body.pop(field, None)
        c = cls(company_id=auth_result['company_id'], id_=str(uuid4()), created_by=auth_result['user_id'],
                **request_body)
        c.auth_result = auth_result
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_update(cls, request, restaurant_id, special_body=None):
        logger.info("init_request_update ::: started")
        auth_result = request.auth_result
        utils_auth.check_role(auth_result, 'admin')
        c = cls.init_get_by_id(auth_result['company_id'], restaurant_id)
        c.apply_update(special_body or utils_data.parse_raw_body(request))
        c.auth_result = auth_result
        return c

    @classmethod
    def init_get_by_id(cls, company_id, restaurant_id):
        logger.info("init_get_by_id ::: started")
        c = cls(company_id, restaurant_id)
        c.__init__(**c._get_db_item())
        return c

    @classmethod
    def init_request_get_by_id(cls, request, restaurant_id):
        return cls.init_get_by_id(get_company_id_by_request(request), restaurant_id)

    @staticmethod
    @utils_app.log_start_finish
    def endpoint_get_all(request) -> Response:
        company_id = get_company_id_by_request(request)
        cuisine = utils_data.get_query_params(request).get('cuisine')
        filter_expression = Attr('archived').eq(False)
        if cuisine:
            filter_expression = filter_expression & Attr('cuisine').contains(cuisine)
        restaurant_db_records: List[Dict] = utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.restaurants_pk.format(company_id=company_id)),
            filter_expression=filter_expression
        )
        restaurants: List[Dict] = [Restaurant(**record)._to_ui() for record in restaurant_db_records]
        logger.info(f"endpoint_get_all ::: returning restaurants={[rest['id'] for rest in restaurants]}")
        return Response(status_code=http200, body=restaurants)

    @utils_app.log_start_finish
    def endpoint_get_by_id(self) -> Response:
        restaurant = self._to_ui()
        logger.info(f"endpoint_get_by_id ::: returning restaurant={restaurant['id']}")
        return Response(status_code=http200, body=restaurant)

    @utils_app.log_start_finish
    def endpoint_get_delivery_price(self, address) -> Response:
        delivery_info = self.get_delivery_info(address)
        logger.info(f"endpoint_get_delivery_price ::: restaurant_id={self.id_}, {delivery_info=}")
        return Response(status_code=http200, body=delivery_info)

    @utils_app.log_start_finish
    def endpoint_create(self) -> Response:
        self._create_db_record()
        return Response(status_code=http201, body={'message': 'Restaurant successfully created', 'id': self.id_})

    @utils_app.log_start_finish
    def endpoint_update(self) -> Response:
        self._update_db_record()
        return Response(status_code=http200, body={'message': 'Restaurant was successfully updated', 'id': self.id_})

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk.format(restaurant_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'name_': self.name_,
            'address': self.address,
            'description': self.description,
            'cuisine': self.cuisine,
            'location': self.location,
            'rating': self.rating,
            'total_ratings': self.total_ratings,
            'is_open': self.is_open,
            'opening_time': self.opening_time,
            'closing_time': self.closing_time,
            'image': self.image,
            'phone': self.phone,
            'settings': self.settings,
            "date_created": self.date_created,
            "date_updated": self.date_updated,
            'created_by': self.created_by,
            'updated_by': self.updated_by,
            "archived": self.archived
        }

    def count_active_orders(self) -> int:
        records = utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.orders_pk.format(company_id=self.company_id)) &
            Key('sortkey').begins_with(f'{self.id_}_'),
            filter_expression=Attr('status_').is_in(list(ACTIVE_ORDER_STATUSES))
        )
        return len(records)

    def get_delivery_info(self, delivery_address) -> Dict:
        if not isinstance(delivery_address, dict):
            raise WrongDeliveryAddress('Provided delivery address is wrong')
        if not self.location:
            raise WrongDeliveryAddress(f'Restaurant {self.id_} has no location to calculate delivery price')
        distance = utils_geo.distance_km(self.location, delivery_address)
        return {
            'delivery_price': utils_geo.delivery_fee_by_distance(distance),
            'distance_km': distance,
            'estimated_delivery_minutes': utils_geo.estimated_delivery_minutes(distance, self.count_active_orders())
        }

    def get_delivery_price(self, delivery_address) -> Decimal:
        return self.get_delivery_info(delivery_address)['delivery_price']
