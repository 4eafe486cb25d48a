import os
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple, Any, List, Dict
from uuid import uuid4

from boto3.dynamodb.conditions import Key, Attr
from chalice import Response

from chalicelib.addresses import Address
from chalicelib.base_class_entity import EntityBase, now_iso
from chalicelib.carts import Cart
from chalicelib.companies import get_company_settings_record
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import ORDER_EMAIL_FROM, ORDER_STATUSES, ORDER_STATUS_TRANSITIONS, \
    PAYMENT_METHODS, FREE_DELIVERY_THRESHOLD, ORDER_DELIVERY_FEE, TAX_RATE, ESTIMATED_DELIVERY_MINUTES, \
    ORDERS_LIST_LIMIT
from chalicelib.constants.status_codes import http200, http201
from chalicelib.menu_items import MenuItem
from chalicelib.notifications import create_notification
from chalicelib.recommendations import record_order_items
from chalicelib.users import User
from chalicelib.utils import auth as utils_auth, \
    data as utils_data, \
    db as utils_db, \
    app as utils_app, \
    notifications as utils_notifications, \
    exceptions, \
    email_templates
from chalicelib.utils.exceptions import OrderNotFound
from chalicelib.utils.logger import logger, log_exception

REQUIRED_ADDRESS_FIELDS = ('name', 'phone', 'street', 'city', 'state', 'pincode')
CUSTOMER_CANCELLABLE_STATUSES = ('pending', 'confirmed')


def calculate_totals(items: List[Dict]) -> Dict:
    subtotal = sum((Decimal(item['price']) * item['quantity'] for item in items), Decimal(0)).quantize(Decimal('1.00'))
    delivery_fee = Decimal(0) if subtotal >= FREE_DELIVERY_THRESHOLD else ORDER_DELIVERY_FEE
    taxes = (subtotal * TAX_RATE).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    return {
        'subtotal': subtotal,
        'delivery_fee': delivery_fee.quantize(Decimal('1.00')),
        'taxes': taxes.quantize(Decimal('1.00')),
        'amount': (subtotal + delivery_fee + taxes).quantize(Decimal('1.00'))
    }


def generate_order_number(order_id: str, now: datetime = None) -> str:
    now = now or datetime.now()
    return f'ORD{int(now.timestamp() * 1000)}{order_id[:4].upper()}'


class Order(EntityBase):
    pk = keys_structure.orders_pk
    sk = keys_structure.orders_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'order_number': lambda x: isinstance(x, str),
        'user_id': lambda x: isinstance(x, str),
        'restaurant_id': lambda x: isinstance(x, str),
        'items': lambda x: isinstance(x, list) and len(x) > 0,
        'subtotal': lambda x: isinstance(x, Decimal),
        'delivery_fee': lambda x: isinstance(x, Decimal),
        'taxes': lambda x: isinstance(x, Decimal),
        'amount': lambda x: isinstance(x, Decimal),
        'delivery_address': lambda x: isinstance(x, dict),
        'payment_method': lambda x: x in PAYMENT_METHODS,
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'status_': lambda x: x in ORDER_STATUSES,
        'status_history': lambda x: isinstance(x, list),
        'payment_status': lambda x: isinstance(x, str),
        "date_updated": lambda x: isinstance(x, str),
        "updated_by": lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'user_email': lambda x: isinstance(x, str),
        'restaurant_name': lambda x: isinstance(x, str),
        'special_instructions': lambda x: isinstance(x, str),
        'estimated_delivery_time': lambda x: isinstance(x, str),
        'admin_notes': lambda x: isinstance(x, str),
        'delivery_partner_id': lambda x: isinstance(x, str),
        'delivered_at': lambda x: isinstance(x, str),
        'cancelled_at': lambda x: isinstance(x, str),
        'feedback': lambda x: isinstance(x, str),
        'feedback_rate': lambda x: isinstance(x, (int, Decimal)) and 1 <= x <= 5
    }

    def __init__(self, company_id, id_, user_id, **kwargs):
        EntityBase.__init__(self, company_id, id_)

        self.cart: Any[Cart, None] = None
        self.request_body: Dict = {}

        self.user_id: str = user_id
        self.user_email: str = kwargs.get('user_email')
        self.order_number: str = kwargs.get('order_number')
        self.restaurant_id: str = kwargs.get('restaurant_id')
        self.restaurant_name: str = kwargs.get('restaurant_name')
        self.items: List[Dict] = kwargs.get('items', [])
        self.subtotal: Decimal = utils_data.to_decimal(kwargs.get('subtotal'))
        self.delivery_fee: Decimal = utils_data.to_decimal(kwargs.get('delivery_fee'))
        self.taxes: Decimal = utils_data.to_decimal(kwargs.get('taxes'))
        self.amount: Decimal = utils_data.to_decimal(kwargs.get('amount'))
        self.delivery_address: Dict = kwargs.get('delivery_address')
        self.payment_method: str = kwargs.get('payment_method', 'cod')
        self.payment_status: str = kwargs.get('payment_status', 'pending')
        self.special_instructions: str = kwargs.get('special_instructions', '')
        self.status_: str = kwargs.get('status_') or kwargs.get('status') or 'pending'
        self.status_history: List[Dict] = kwargs.get('status_history', [])
        self.estimated_delivery_time: str = kwargs.get('estimated_delivery_time')
        self.admin_notes: str = kwargs.get('admin_notes')
        self.delivery_partner_id: str = kwargs.get('delivery_partner_id')
        self.delivered_at: str = kwargs.get('delivered_at')
        self.cancelled_at: str = kwargs.get('cancelled_at')
        self.feedback: str = kwargs.get('feedback')
        self.feedback_rate: Any[Decimal, None] = kwargs.get('feedback_rate')
        self.date_created: str = kwargs.get('date_created') or now_iso()
        self.date_updated: str = kwargs.get('date_updated') or self.date_created
        self.updated_by: str = kwargs.get('updated_by') or user_id
        self.record_type = 'order'

    @classmethod
    @utils_auth.authenticate_class
    def init_request_create_order(cls, request):
        logger.info("init_request_create_order ::: started")
        auth_result = request.auth_result
        c = cls(auth_result['company_id'], str(uuid4()).split('-')[0], auth_result['user_id'])
        c.auth_result = auth_result
        c.request_body = utils_data.parse_raw_body(request)
        c.cart = Cart.init_by_user_id(c.company_id, c.user_id)
        return c

    @classmethod
    def init_by_order_id(cls, company_id, order_id):
        records = utils_db.query_items_paged(
            Key('partkey').eq(cls.pk.format(company_id=company_id)),
            filter_expression=Attr('id_').eq(order_id)
        )
        if not records:
            raise OrderNotFound(f'Order {order_id} not found')
        return cls(**records[0])

    @classmethod
    @utils_auth.authenticate_class
    def init_request_get_order(cls, request, order_id):
        logger.info("init_request_get_order ::: started")
        auth_result = request.auth_result
        c = cls.init_by_order_id(auth_result['company_id'], order_id)
        c.auth_result = auth_result
        c.request_body = utils_data.parse_raw_body(request)
        c._check_access()
        return c

    @utils_app.log_start_finish
    def endpoint_create_order(self):
        self._fill_from_cart()
        self.delivery_address = self._get_delivery_address()
        self.payment_method = self.request_body.get('payment_method', 'cod')
        if self.payment_method not in PAYMENT_METHODS:
            raise exceptions.ValidationException(f'Payment method must be one of {PAYMENT_METHODS}')
        self.special_instructions = self.request_body.get('special_instructions', '')
        self.order_number = generate_order_number(self.id_)
        self.estimated_delivery_time = (datetime.now() + timedelta(minutes=ESTIMATED_DELIVERY_MINUTES)) \
            .isoformat(timespec='seconds')
        self.status_history = [self._history_entry('pending', 'Order placed', self.user_id)]
        self._create_db_record()
        self.cart.delete_db_record()
        self._after_create()
        return Response(status_code=http201, body={'message': 'Order placed successfully', 'order': self.to_ui()})

    @utils_app.log_start_finish
    def endpoint_get_by_id(self):
        return Response(status_code=http200, body=self.to_ui())

    @utils_app.log_start_finish
    def endpoint_update_status(self):
        new_status = self.request_body.get('status')
        if not new_status:
            raise exceptions.MandatoryFieldsAreNotFilled('status is required')
        is_owner = self.user_id == self.auth_result['user_id']
        is_staff = utils_auth.has_restaurant_permission(self.auth_result, self.restaurant_id)
        if not is_staff:
            if not is_owner or new_status != 'cancelled':
                raise exceptions.AccessDenied('Customers can only cancel their orders')
            if self.status_ not in CUSTOMER_CANCELLABLE_STATUSES:
                raise exceptions.InvalidStatusTransition(
                    f'Order in status {self.status_} can not be cancelled by customer')
        self.change_status(new_status, notes=self.request_body.get('notes'), updated_by=self.auth_result['user_id'])
        return Response(status_code=http200, body={'message': 'Order status updated successfully',
                                                   'order': self.to_ui()})

    @utils_app.log_start_finish
    def endpoint_add_feedback(self):
        if self.user_id != self.auth_result['user_id']:
            raise exceptions.AccessDenied('Only the customer can leave feedback')
        if self.status_ != 'delivered':
            raise exceptions.InvalidStatusTransition('Feedback can be left only for delivered orders')
        rate = self.request_body.get('feedback_rate')
        if isinstance(rate, bool) or not isinstance(rate, (int, Decimal)) or not 1 <= rate <= 5:
            raise exceptions.ValidationException('feedback_rate must be a number from 1 to 5')
        self.feedback = self.request_body.get('feedback', '')
        self.feedback_rate = Decimal(rate)
        self._update_db_record()
        return Response(status_code=http200, body={'message': 'Thank you for your feedback', 'order': self.to_ui()})

    def change_status(self, new_status: str, notes: str = None, updated_by: str = None) -> None:
        if new_status not in ORDER_STATUSES:
            raise exceptions.ValidationException(f'Status must be one of {ORDER_STATUSES}')
        if new_status not in ORDER_STATUS_TRANSITIONS[self.status_]:
            raise exceptions.InvalidStatusTransition(f'Order status can not be changed from {self.status_} '
                                                     f'to {new_status}')
        logger.info(f"change_status ::: order_id={self.id_} {self.status_} -> {new_status}")
        self.status_ = new_status
        self.status_history = [*self.status_history, self._history_entry(new_status, notes, updated_by)]
        if notes:
            self.admin_notes = notes
        if new_status == 'delivered':
            self.delivered_at = now_iso()
            if self.payment_method == 'cod':
                self.payment_status = 'paid'
        if new_status == 'cancelled':
            self.cancelled_at = now_iso()
        if updated_by:
            self.updated_by = updated_by
        self._update_db_record()
        create_notification(
            company_id=self.company_id,
            user_id=self.user_id,
            notification_type='order_status',
            title=f'Order {self.order_number} is {new_status.replace("_", " ")}',
            message=f'Your order from {self.restaurant_name} is now {new_status.replace("_", " ")}',
            data={'order_id': self.id_, 'order_number': self.order_number, 'status': new_status},
            priority='high' if new_status in ('out_for_delivery', 'delivered', 'cancelled') else 'medium'
        )

    def _check_access(self):
        if self.user_id == self.auth_result['user_id']:
            return
        if utils_auth.has_restaurant_permission(self.auth_result, self.restaurant_id):
            return
        if self.auth_result.get('role') == 'delivery_partner' and \
                self.delivery_partner_id == self.auth_result['user_id']:
            return
        # Other users must not know that the order exists
        raise OrderNotFound(f'Order {self.id_} not found')

    def _fill_from_cart(self):
        if not self.cart.items:
            raise exceptions.ValidationException('Cart is empty, add items before placing an order')
        unavailable = [item['name'] for item in self.cart.items if not self._is_cart_item_available(item)]
        if unavailable:
            raise exceptions.SomeItemsAreNotAvailable(f'Items {unavailable} are currently unavailable, please delete '
                                                      f'them from cart and recreate the order')
        self.restaurant_id = self.cart.restaurant_id
        self.restaurant_name = self.cart.restaurant_name
        self.user_email = self.auth_result.get('claims', {}).get('email') or self._get_user_email()
        self.items = [{
            'menu_item_id': item['menu_item_id'],
            'name': item['name'],
            'description': item.get('description') or '',
            'price': item['price'],
            'quantity': item['quantity'],
            'cuisine': item.get('cuisine'),
            'customizations': item.get('customizations', [])
        } for item in self.cart.items]
        totals = calculate_totals(self.items)
        self.subtotal, self.delivery_fee = totals['subtotal'], totals['delivery_fee']
        self.taxes, self.amount = totals['taxes'], totals['amount']

    def _is_cart_item_available(self, item: Dict) -> bool:
        try:
            return MenuItem.init_get_by_id(self.company_id, item['menu_item_id'], item['restaurant_id']) \
                .is_available_right_now()
        except exceptions.RecordNotFound:
            return False

    def _get_user_email(self):
        return User.init_by_id(self.company_id, self.user_id).email

    def _get_delivery_address(self) -> Dict:
        address_id = self.request_body.get('address_id')
        if address_id:
            return Address.init_by_id(self.company_id, self.user_id, address_id).as_delivery_address()
        delivery_address = self.request_body.get('delivery_address')
        if not isinstance(delivery_address, dict):
            raise exceptions.MandatoryFieldsAreNotFilled('Delivery address is required')
        missing = [field for field in REQUIRED_ADDRESS_FIELDS if not delivery_address.get(field)]
        if missing:
            raise exceptions.WrongDeliveryAddress(f'Delivery address fields {missing} are required')
        return delivery_address

    def _after_create(self):
        create_notification(
            company_id=self.company_id,
            user_id=self.user_id,
            notification_type='order_confirmed',
            title='Order placed successfully!',
            message=f'Your order from {self.restaurant_name} has been placed and will be delivered '
                    f'in 30-45 minutes.',
            data={'order_id': self.id_, 'order_number': self.order_number, 'amount': self.amount,
                  'estimated_delivery_time': self.estimated_delivery_time},
            priority='high'
        )
        record_order_items(self.company_id, self.user_id, self)
        try:
            send_order_email(self.db_record)
        except Exception as error:
            # the order is placed already, email is best effort
            log_exception(error, msg=f'_after_create ::: order email was not sent for order_id={self.id_}')

    @staticmethod
    def _history_entry(status: str, note: str = None, updated_by: str = None) -> Dict:
        return {'status': status, 'timestamp': now_iso(), 'note': note or '', 'updated_by': updated_by}

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), \
            self.sk.format(restaurant_id=self.restaurant_id, order_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'order_number': self.order_number,
            'user_id': self.user_id,
            'user_email': self.user_email,
            'restaurant_id': self.restaurant_id,
            'restaurant_name': self.restaurant_name,
            'items': self.items,
            'subtotal': self.subtotal,
            'delivery_fee': self.delivery_fee,
            'taxes': self.taxes,
            'amount': self.amount,
            'delivery_address': self.delivery_address,
            'payment_method': self.payment_method,
            'payment_status': self.payment_status,
            'special_instructions': self.special_instructions,
            'status_': self.status_,
            'status_history': self.status_history,
            'estimated_delivery_time': self.estimated_delivery_time,
            'admin_notes': self.admin_notes,
            'delivery_partner_id': self.delivery_partner_id,
            'delivered_at': self.delivered_at,
            'cancelled_at': self.cancelled_at,
            'feedback': self.feedback,
            'feedback_rate': self.feedback_rate,
            'date_created': self.date_created,
            "date_updated": self.date_updated,
            'updated_by': self.updated_by
        }


def send_order_email(order_record: Dict):
    settings_record: Dict = get_company_settings_record(order_record.get('company_id'))
    company_emails = settings_record.get('order_notification_emails') or []
    if isinstance(company_emails, str):
        company_emails = [company_emails]
    order_notification_emails: List = [
        *company_emails,
        order_record.get('user_email'),
        os.environ.get("ALL_ORDERS_EMAIL")
    ]
    subject = f'New order has been created, ' \
              f'order number - {order_record.get("order_number")}, ' \
              f'restaurant - {order_record.get("restaurant_name")}'
    email_body = email_templates.get_new_order_notification_message(order_record)
    return utils_notifications.send_email_ses(order_notification_emails, ORDER_EMAIL_FROM, subject, email_body)


def get_restaurant_db_orders_paginated(company_id, restaurant_id, limit, start_key, status=None):
    if start_key:
        start_key = {
            'partkey': Order.pk.format(company_id=company_id),
            'sortkey': Order.sk.format(restaurant_id=restaurant_id, order_id=start_key)
        }
    partkey = Order.pk.format(company_id=company_id)
    return utils_db.query_items_paginated(
        key_condition_expression=Key('partkey').eq(partkey) & Key('sortkey').begins_with(f'{restaurant_id}_'),
        filter_expression=Attr('status_').eq(status) if status else None,
        start_key=start_key,
        limit=limit
    )


def get_user_db_orders(company_id, user_id, status=None, include_cancelled=False):
    filter_expression = Attr('user_id').eq(user_id)
    if status:
        filter_expression = filter_expression & Attr('status_').eq(status)
    elif not include_cancelled:
        filter_expression = filter_expression & Attr('status_').ne('cancelled')
    return utils_db.query_items_paged(
        key_condition_expression=Key('partkey').eq(Order.pk.format(company_id=company_id)),
        filter_expression=filter_expression
    )


def sort_newest_first(records: List[Dict]) -> List[Dict]:
    return sorted(records, key=lambda record: record.get('date_created', ''), reverse=True)


@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_get_orders(request, entity_type=None, entity_id=None):
    auth_result = request.auth_result
    company_id, user_id, user_role = auth_result['company_id'], auth_result['user_id'], auth_result['role']
    qp = utils_data.get_query_params(request)
    status, start_key, limit = qp.get('status'), qp.get('start_key'), qp.get('page_size')
    if status and status not in ORDER_STATUSES:
        raise exceptions.ValidationException(f'Status must be one of {ORDER_STATUSES}')
    new_last_key = None
    if entity_type is None:
        db_records = sort_newest_first(get_user_db_orders(
            company_id, user_id, status, utils_data.is_true(qp.get('include_cancelled'))))[:ORDERS_LIST_LIMIT]
    elif entity_type == 'restaurant':
        utils_auth.check_restaurant_permission(auth_result, entity_id)
        db_records, new_last_key = get_restaurant_db_orders_paginated(company_id, entity_id, limit, start_key, status)
    elif entity_type == 'admin' and user_role == 'admin':
        db_records = sort_newest_first(utils_db.query_items_paged(
            key_condition_expression=Key('partkey').eq(Order.pk.format(company_id=company_id)),
            filter_expression=Attr('status_').eq(status) if status else None
        ))
    else:
        raise exceptions.AccessDenied(f"You don't have permissions to access this resource")

    if new_last_key:
        new_last_key = new_last_key['sortkey'].split('_')[-1]

    return Response(
        status_code=http200,
        body={
            "orders": [Order(**record).to_ui() for record in db_records],
            "last_evaluated_key": new_last_key
        }
    )
