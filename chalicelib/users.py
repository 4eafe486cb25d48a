from typing import Tuple, List, Dict

from boto3.dynamodb.conditions import Key, Attr
from chalice import Response

from chalicelib.base_class_entity import EntityBase, now_iso
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import USER_ROLES
from chalicelib.constants.status_codes import http200
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, db as utils_db
from chalicelib.utils.logger import logger

NOT_UPDATABLE_FIELDS = ('company_id', 'id', 'id_', 'login', 'email', 'role', 'permissions', 'permissions_')


class User(EntityBase):
    pk = keys_structure.users_pk
    sk = keys_structure.users_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'login': lambda x: isinstance(x, str),  # EMAIL
        'email': lambda x: isinstance(x, str),
        'role': lambda x: x in USER_ROLES,
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'first_name': lambda x: isinstance(x, str),
        'last_name': lambda x: isinstance(x, str),
        'phone': lambda x: isinstance(x, str)
    }

    admin_fields_validation = {
        'role': lambda x: x in USER_ROLES,
        'permissions_': lambda x: isinstance(x, dict)
    }

    def __init__(self, company_id, id_, **kwargs):
        EntityBase.__init__(self, company_id, id_)

        self.login = kwargs.get('login')
        self.phone = kwargs.get('phone')
        self.role = kwargs.get('role')
        self.permissions_ = kwargs.get('permissions_') or kwargs.get('permissions') or {}
        self.first_name = kwargs.get('first_name')
        self.last_name = kwargs.get('last_name')
        self.email = kwargs.get('email')
        self.date_created = kwargs.get('date_created') or now_iso()
        self.date_updated = kwargs.get('date_updated') or now_iso()
        self.record_type = 'user'

    @classmethod
    def init_by_id(cls, company_id, id_):
        logger.info("init_by_id ::: started")
        c = cls(company_id, id_)
        c.__init__(**c._get_db_item())
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_user(cls, request):
        logger.info("init_request_user ::: started")
        auth_result = request.auth_result
        return cls.init_by_id(auth_result['company_id'], auth_result['user_id'])

    @classmethod
    @utils_auth.authenticate_class
    def init_request_update(cls, request):
        logger.info("init_request_update ::: started")
        auth_result = request.auth_result
        request_body = utils_data.parse_raw_body(request)
        for field in NOT_UPDATABLE_FIELDS:
            request_body.pop(field, None)
        c = cls(company_id=auth_result['company_id'], id_=auth_result['user_id'], **request_body)
        c.auth_result = auth_result
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_admin_update(cls, request, user_id):
        logger.info("init_request_admin_update ::: started")
        auth_result = request.auth_result
        utils_auth.check_role(auth_result, 'admin')
        c = cls.init_by_id(auth_result['company_id'], user_id)
        c.auth_result = auth_result
        c.request_body = utils_data.parse_raw_body(request)
        return c

    @utils_app.log_start_finish
    def endpoint_get_user(self) -> Response:
        return Response(status_code=http200, body=self._to_ui())

    @utils_app.log_start_finish
    def endpoint_update_user(self) -> Response:
        self._update_db_record()
        return Response(status_code=http200, body={'message': 'User was successfully updated', 'id': self.id_})

    @utils_app.log_start_finish
    def endpoint_admin_update_user(self) -> Response:
        role = self.request_body.get('role', self.role)
        permissions = self.request_body.get('permissions', self.permissions_)
        self.update_role(role, permissions)
        return Response(status_code=http200, body=self._to_ui())

    @staticmethod
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_users(request) -> Response:
        auth_result = request.auth_result
        utils_auth.check_role(auth_result, 'admin')
        role = utils_data.get_query_params(request).get('role')
        user_db_records: List[Dict] = utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.users_pk.format(company_id=auth_result['company_id'])),
            filter_expression=Attr('role').eq(role) if role else None
        )
        users: List[Dict] = [User(**record)._to_ui() for record in user_db_records]
        return Response(status_code=http200, body={'users': users})

    def update_role(self, role: str, permissions: Dict = None) -> None:
        self.role = role
        if permissions is not None:
            self.permissions_ = permissions
        for key, value in (('role', self.role), ('permissions_', self.permissions_)):
            if self.admin_fields_validation[key](value) is False:
                self.raise_validation_error(key, value)
        self.date_updated = now_iso()
        pk, sk = self._get_pk_sk()
        utils_db.update_db_record(
            key={'partkey': pk, 'sortkey': sk},
            update_body={'role': self.role, 'permissions_': self.permissions_, 'date_updated': self.date_updated},
            allowed_attrs_to_update=['role', 'permissions_', 'date_updated'],
            allowed_attrs_to_delete=[]
        )
        logger.info(f"update_role ::: user_id={self.id_} role={self.role}")

    def create_db_record(self) -> None:
        self._create_db_record()

    @property
    def full_name(self) -> str:
        return ' '.join(part for part in (self.first_name, self.last_name) if part) or self.email

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk.format(user_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'login': self.login,
            'phone': self.phone,
            'role': self.role,
            'permissions_': self.permissions_,
            'date_created': self.date_created,
            'date_updated': self.date_updated,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email
        }

    def _to_ui(self):
        item = super()._to_ui()
        item['permissions'] = item.pop('permissions_', {})
        return item
