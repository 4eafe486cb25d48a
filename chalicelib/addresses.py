from decimal import Decimal
from typing import Tuple, List, Dict
from uuid import uuid4

from boto3.dynamodb.conditions import Key
from chalice import Response

from chalicelib.base_class_entity import EntityBase, now_iso
from chalicelib.constants import keys_structure
from chalicelib.constants.status_codes import http200, http201
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, db as utils_db, \
    geo as utils_geo
from chalicelib.utils.logger import logger

ADDRESS_LABELS = ('home', 'work', 'other')


def non_empty_str(x) -> bool:
    return isinstance(x, str) and len(x.strip()) > 0


class Address(EntityBase):
    pk = keys_structure.addresses_pk
    sk = keys_structure.addresses_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'user_id': lambda x: isinstance(x, str),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'label': lambda x: x in ADDRESS_LABELS,
        'name_': non_empty_str,
        'phone': non_empty_str,
        'street': non_empty_str,
        'city': non_empty_str,
        'state': non_empty_str,
        'pincode': non_empty_str,
        'is_default': lambda x: isinstance(x, bool),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'landmark': lambda x: isinstance(x, str),
        'latitude': lambda x: isinstance(x, Decimal) and -90 <= x <= 90,
        'longitude': lambda x: isinstance(x, Decimal) and -180 <= x <= 180
    }

    def __init__(self, company_id, id_, user_id, **kwargs):
        EntityBase.__init__(self, company_id, id_)
        location = utils_geo.normalize_location(
            {'latitude': kwargs.get('latitude'), 'longitude': kwargs.get('longitude')})

        self.user_id: str = user_id
        self.label: str = kwargs.get('label', 'home')
        self.name_: str = kwargs.get('name_') or kwargs.get('name')
        self.phone: str = kwargs.get('phone')
        self.street: str = kwargs.get('street')
        self.landmark: str = kwargs.get('landmark', '')
        self.city: str = kwargs.get('city')
        self.state: str = kwargs.get('state')
        self.pincode: str = str(kwargs['pincode']) if kwargs.get('pincode') is not None else None
        self.latitude: Decimal = location.get('latitude')
        self.longitude: Decimal = location.get('longitude')
        self.is_default: bool = kwargs.get('is_default', False)
        self.date_created: str = kwargs.get('date_created') or now_iso()
        self.date_updated: str = kwargs.get('date_updated') or now_iso()
        self.record_type = 'address'

    @classmethod
    def init_by_id(cls, company_id, user_id, address_id):
        c = cls(company_id, address_id, user_id)
        c.__init__(**c._get_db_item())
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_create(cls, request):
        logger.info("init_request_create ::: started")
        auth_result = request.auth_result
        request_body = utils_data.parse_raw_body(request)
        for field in ('id', 'id_', 'company_id', 'user_id'):
            request_body.pop(field, None)
        c = cls(company_id=auth_result['company_id'], id_=str(uuid4()).split('-')[0],
                user_id=auth_result['user_id'], **request_body)
        c.auth_result = auth_result
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_by_id(cls, request, address_id, with_body=False):
        auth_result = request.auth_result
        c = cls.init_by_id(auth_result['company_id'], auth_result['user_id'], address_id)
        if with_body:
            c.apply_update(utils_data.parse_raw_body(request))
        c.auth_result = auth_result
        return c

    @staticmethod
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_addresses(request) -> Response:
        auth_result = request.auth_result
        addresses = get_user_addresses(auth_result['company_id'], auth_result['user_id'])
        return Response(status_code=http200, body={'addresses': [address.to_ui() for address in addresses]})

    @utils_app.log_start_finish
    def endpoint_create(self) -> Response:
        other_addresses = get_user_addresses(self.company_id, self.user_id)
        if not other_addresses:
            self.is_default = True
        self._create_db_record()
        if self.is_default:
            self._unset_other_defaults(other_addresses)
        return Response(status_code=http201, body=self.to_ui())

    @utils_app.log_start_finish
    def endpoint_update(self) -> Response:
        self._update_db_record()
        if self.is_default:
            self._unset_other_defaults(get_user_addresses(self.company_id, self.user_id))
        return Response(status_code=http200, body=self.to_ui())

    @utils_app.log_start_finish
    def endpoint_delete(self) -> Response:
        self._delete_db_record()
        if self.is_default:
            remaining = get_user_addresses(self.company_id, self.user_id)
            if remaining:
                remaining[0].is_default = True
                remaining[0]._update_db_record()
                logger.info(f"endpoint_delete ::: address {remaining[0].id_} became default")
        return Response(status_code=http200, body={'message': 'Address was successfully deleted', 'id': self.id_})

    def _unset_other_defaults(self, addresses: List['Address']) -> None:
        for address in addresses:
            if address.id_ != self.id_ and address.is_default:
                address.is_default = False
                address._update_db_record()

    def as_delivery_address(self) -> Dict:
        item = self.to_ui()
        for field in ('is_default', 'date_created', 'date_updated', 'user_id'):
            item.pop(field, None)
        return item

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id, user_id=self.user_id), \
            self.sk.format(address_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'user_id': self.user_id,
            'label': self.label,
            'name_': self.name_,
            'phone': self.phone,
            'street': self.street,
            'landmark': self.landmark,
            'city': self.city,
            'state': self.state,
            'pincode': self.pincode,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'is_default': self.is_default,
            'date_created': self.date_created,
            'date_updated': self.date_updated
        }


def get_user_addresses(company_id: str, user_id: str) -> List[Address]:
    records: List[Dict] = utils_db.query_items_paged(
        Key('partkey').eq(Address.pk.format(company_id=company_id, user_id=user_id))
    )
    return sorted([Address(**record) for record in records], key=lambda address: address.date_created)
