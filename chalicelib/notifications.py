from typing import Tuple, Dict, List
from uuid import uuid4

from boto3.dynamodb.conditions import Key, Attr
from chalice import Response

from chalicelib.base_class_entity import EntityBase, now_iso
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import NOTIFICATION_TYPES
from chalicelib.constants.status_codes import http200
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, db as utils_db, exceptions
from chalicelib.utils.logger import logger

NOTIFICATION_PRIORITIES = ('low', 'medium', 'high')


class Notification(EntityBase):
    pk = keys_structure.notifications_pk
    sk = keys_structure.notifications_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'user_id': lambda x: isinstance(x, str),
        'type': lambda x: x in NOTIFICATION_TYPES,
        'title': lambda x: isinstance(x, str),
        'message': lambda x: isinstance(x, str),
        'priority': lambda x: x in NOTIFICATION_PRIORITIES,
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'read': lambda x: isinstance(x, bool),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'data': lambda x: isinstance(x, dict)
    }

    def __init__(self, company_id, id_, user_id, **kwargs):
        EntityBase.__init__(self, company_id, id_)
        self.user_id: str = user_id
        self.type: str = kwargs.get('type')
        self.title: str = kwargs.get('title')
        self.message: str = kwargs.get('message')
        self.priority: str = kwargs.get('priority', 'medium')
        self.read: bool = kwargs.get('read', False)
        self.data: Dict = utils_data.floats_to_decimal(kwargs.get('data', {}))
        self.date_created: str = kwargs.get('date_created') or now_iso()
        self.date_updated: str = kwargs.get('date_updated') or self.date_created
        self.record_type = 'notification'

    @classmethod
    def init_by_id(cls, company_id, user_id, notification_id):
        records = utils_db.query_items_paged(
            Key('partkey').eq(cls.pk.format(company_id=company_id, user_id=user_id)),
            filter_expression=Attr('id_').eq(notification_id)
        )
        if not records:
            raise exceptions.RecordNotFound(f'Notification {notification_id} not found')
        return cls(**records[0])

    @classmethod
    @utils_auth.authenticate_class
    def init_request_by_id(cls, request, notification_id):
        auth_result = request.auth_result
        return cls.init_by_id(auth_result['company_id'], auth_result['user_id'], notification_id)

    @utils_app.log_start_finish
    def endpoint_mark_read(self) -> Response:
        self.mark_read()
        return Response(status_code=http200, body=self._to_ui())

    def mark_read(self) -> None:
        if self.read:
            return
        self.read = True
        self._update_db_record()

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id, user_id=self.user_id), \
            self.sk.format(date_created=self.date_created, notification_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'user_id': self.user_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'priority': self.priority,
            'read': self.read,
            'data': self.data,
            'date_created': self.date_created,
            'date_updated': self.date_updated
        }


def create_notification(company_id: str, user_id: str, notification_type: str, title: str, message: str,
                        data: Dict = None, priority: str = 'medium') -> Notification:
    notification = Notification(
        company_id=company_id,
        id_=str(uuid4()).split('-')[0],
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        data=data or {},
        priority=priority
    )
    notification._create_db_record()
    logger.info(f"create_notification ::: {notification_type=} sent to {user_id=}")
    return notification


def get_user_notifications(company_id: str, user_id: str, unread_only: bool = False) -> List[Notification]:
    records = utils_db.query_items_paged(
        Key('partkey').eq(Notification.pk.format(company_id=company_id, user_id=user_id)),
        filter_expression=Attr('read').eq(False) if unread_only else None,
        scan_index_forward=False
    )
    return [Notification(**record) for record in records]


@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_get_notifications(request) -> Response:
    auth_result = request.auth_result
    unread_only = utils_data.is_true(utils_data.get_query_params(request).get('unread_only'))
    notifications = get_user_notifications(auth_result['company_id'], auth_result['user_id'], unread_only)
    return Response(
        status_code=http200,
        body={
            'notifications': [notification.to_ui() for notification in notifications],
            'unread_count': len([notification for notification in notifications if not notification.read])
        }
    )


@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_mark_all_read(request) -> Response:
    auth_result = request.auth_result
    notifications = get_user_notifications(auth_result['company_id'], auth_result['user_id'], unread_only=True)
    for notification in notifications:
        notification.mark_read()
    return Response(status_code=http200, body={'message': f'{len(notifications)} notifications marked as read'})
