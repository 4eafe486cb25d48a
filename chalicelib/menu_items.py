from datetime import datetime
from decimal import Decimal
from typing import List, Dict, Tuple
from uuid import uuid4

from boto3.dynamodb.conditions import Attr, Key
from chalice import Response

from chalicelib.base_class_entity import EntityBase, now_iso
from chalicelib.constants import keys_structure
from chalicelib.constants.status_codes import http200, http201
from chalicelib.restaurants import Restaurant, is_hour
from chalicelib.utils import auth as utils_auth, data as utils_data, db as utils_db, app as utils_app
from chalicelib.utils.auth import get_company_id_by_request
from chalicelib.utils.logger import logger


class MenuItem(EntityBase):
    pk = keys_structure.menu_items_pk
    sk = keys_structure.menu_items_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'restaurant_id': lambda x: isinstance(x, str),
        'created_by': lambda x: isinstance(x, str),
        "date_created": lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'name_': lambda x: isinstance(x, str) and len(x) > 0,
        'category': lambda x: isinstance(x, str),
        'description': lambda x: isinstance(x, str),
        'price': lambda x: isinstance(x, Decimal) and x > 0,
        'is_available': lambda x: isinstance(x, bool),
        'is_veg': lambda x: isinstance(x, bool),
        "date_updated": lambda x: isinstance(x, str),
        "updated_by": lambda x: isinstance(x, str),
        "archived": lambda x: isinstance(x, bool)
    }

    optional_fields_validation = {
        'cuisine': lambda x: isinstance(x, str),
        'image': lambda x: isinstance(x, str),
        'opening_time': is_hour,
        'closing_time': is_hour,
        'weight': lambda x: isinstance(x, Decimal),
        'options': lambda x: isinstance(x, list)
    }

    def __init__(self, company_id, id_, restaurant_id, **kwargs):
        EntityBase.__init__(self, company_id, id_)

        self.restaurant_id: str = restaurant_id
        self.name_: str = kwargs.get('name_') or kwargs.get('name')
        self.category: str = kwargs.get('category')
        self.cuisine: str = kwargs.get('cuisine')
        self.description: str = kwargs.get('description', '')
        self.image: str = kwargs.get('image')
        self.price: Decimal = utils_data.to_decimal(kwargs.get('price'))
        self.opening_time: Decimal = utils_data.to_decimal(kwargs.get('opening_time'), '1')
        self.closing_time: Decimal = utils_data.to_decimal(kwargs.get('closing_time'), '1')
        self.weight: Decimal = utils_data.to_decimal(kwargs.get('weight'), '1')
        self.options: list = kwargs.get('options', [])
        self.is_available: bool = kwargs.get('is_available', True)
        self.is_veg: bool = kwargs.get('is_veg', True)
        self.created_by: str = kwargs.get('created_by')
        self.updated_by: str = kwargs.get('updated_by') or self.created_by
        self.date_created: str = kwargs.get('date_created') or now_iso()
        self.date_updated: str = kwargs.get('date_updated') or now_iso()
        self.archived: bool = kwargs.get('archived', False)
        self.record_type = 'menu_item'

    @classmethod
    @utils_auth.authenticate_class
    def init_request_create(cls, request, restaurant_id):
        logger.info("init_request_create ::: started")
        auth_result = request.auth_result
        utils_auth.check_restaurant_permission(auth_result, restaurant_id)
        restaurant = Restaurant.init_get_by_id(auth_result['company_id'], restaurant_id)
        request_body = utils_data.parse_raw_body(request)
        for field in ('id', 'id_', 'company_id', 'restaurant_id', 'created_by', 'updated_by'):
            request_body.pop(field, None)
        request_body.setdefault('cuisine', next(iter(restaurant.cuisine), None))
        c = cls(company_id=auth_result['company_id'], id_=str(uuid4()), restaurant_id=restaurant_id,
                created_by=auth_result['user_id'], **request_body)
        c.auth_result = auth_result
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_update(cls, request, restaurant_id, menu_item_id, special_body=None):
        logger.info("init_request_update ::: started")
        auth_result = request.auth_result
        utils_auth.check_restaurant_permission(auth_result, restaurant_id)
        c = cls.init_get_by_id(auth_result['company_id'], menu_item_id, restaurant_id)
        c.apply_update(special_body or utils_data.parse_raw_body(request))
        c.auth_result = auth_result
        return c

    @classmethod
    def init_get_by_id(cls, company_id, menu_item_id, restaurant_id):
        c = cls(company_id=company_id, id_=menu_item_id, restaurant_id=restaurant_id)
        c.__init__(**c._get_db_item())
        return c

    @staticmethod
    @utils_app.log_start_finish
    def endpoint_get_menu_items(request, restaurant_id) -> Response:
        company_id = get_company_id_by_request(request)
        filter_expression = Attr('archived').eq(False)
        menu_item_db_records: List[Dict] = utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.menu_items_pk.format(company_id=company_id, restaurant_id=restaurant_id)),
            filter_expression=filter_expression
        )
        menu_items: List[Dict] = [MenuItem(**record).to_ui() for record in menu_item_db_records]
        logger.info(f"endpoint_get_menu_items ::: returning menu items={[item['id'] for item in menu_items]}")
        return Response(status_code=http200, body=menu_items)

    @utils_app.log_start_finish
    def endpoint_create_menu_item(self) -> Response:
        self._create_db_record()
        return Response(status_code=http201, body={'message': 'Menu item successfully created', 'id': self.id_})

    @utils_app.log_start_finish
    def endpoint_update_menu_item(self) -> Response:
        self._update_db_record()
        return Response(status_code=http200, body={'message': 'Menu item was successfully updated', 'id': self.id_})

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id, restaurant_id=self.restaurant_id), \
            self.sk.format(menu_item_id=self.id_)

    def is_available_right_now(self, hour: int = None) -> bool:
        if not self.is_available or self.archived:
            return False
        if self.opening_time is None or self.closing_time is None:
            return True
        hour = datetime.now().hour if hour is None else hour
        if self.opening_time <= self.closing_time:
            return self.opening_time <= hour < self.closing_time
        # window wraps midnight, e.g. 22 -> 2
        return hour >= self.opening_time or hour < self.closing_time

    def _to_dict(self):
        return {
            'id_': self.id_,
            'restaurant_id': self.restaurant_id,
            'name_': self.name_,
            'category': self.category,
            'cuisine': self.cuisine,
            'description': self.description,
            'image': self.image,
            'price': self.price,
            'opening_time': self.opening_time,
            'closing_time': self.closing_time,
            'is_available': self.is_available,
            'is_veg': self.is_veg,
            "date_created": self.date_created,
            "date_updated": self.date_updated,
            'created_by': self.created_by,
            'updated_by': self.updated_by,
            "archived": self.archived,
            'weight': self.weight,
            'options': self.options
        }

    def to_ui(self):
        item = self._to_ui()
        item['is_available_now'] = self.is_available_right_now()
        return item
