from datetime import datetime, timedelta
from decimal import Decimal
from typing import Tuple, List, Dict, Any, Iterable

from boto3.dynamodb.conditions import Key, Attr
from chalice import Response

from chalicelib.base_class_entity import EntityBase, now_iso
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import ASSIGNMENT_STATUSES, ASSIGNMENT_TIMEOUT_SECONDS, ASSIGNMENT_RADIUS_KM, \
    MAX_ASSIGNMENT_ATTEMPTS, DEFAULT_ASSIGNMENT_PRIORITY, DEFAULT_AVG_RESPONSE_TIME_SECONDS
from chalicelib.constants.status_codes import http200, http201
from chalicelib.delivery_partners import DeliveryPartner, get_delivery_partners
from chalicelib.notifications import create_notification
from chalicelib.orders import Order
from chalicelib.restaurants import Restaurant
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, db as utils_db, \
    geo as utils_geo, exceptions
from chalicelib.utils.logger import logger, log_exception

PARTNER_ASSIGNMENT_STATUSES = ('assigned', 'accepted', 'in_transit')
# history statuses which exclude the partner from further attempts for the same order
EXCLUDING_HISTORY_STATUSES = ('rejected', 'timeout')
DELIVERY_STATUS_TRANSITIONS = {
    'accepted': ('in_transit',),
    'in_transit': ('delivered',)
}
ORDER_STATUS_BY_DELIVERY_STATUS = {
    'in_transit': 'out_for_delivery',
    'delivered': 'delivered'
}


def score_partner(partner: DeliveryPartner, restaurant_location: Dict, radius_km: Decimal) -> Dict:
    """
    Scores partner from 0 to 100:
    distance up to 40, acceptance rate up to 25, response time up to 20, current load up to 15
    """
    result = {'partner_id': partner.id_, 'score': 0, 'distance': None, 'current_load': partner.current_load,
              'is_eligible': False, 'reason': ''}
    if not partner.is_active or not partner.is_verified:
        result['reason'] = 'Not active or not verified'
        return result
    if partner.availability != 'online':
        result['reason'] = 'Not available'
        return result
    if partner.current_load >= partner.max_concurrent_orders:
        result['reason'] = 'At capacity'
        return result
    try:
        distance = utils_geo.distance_km(restaurant_location, partner.location)
    except exceptions.WrongDeliveryAddress:
        result['reason'] = 'Location is unknown'
        return result
    result['distance'] = distance
    if distance > radius_km:
        result['reason'] = 'Out of assignment radius'
        return result

    avg_response_time = float(partner.avg_response_time or DEFAULT_AVG_RESPONSE_TIME_SECONDS)
    distance_score = max(0.0, 40 - float(distance) * 4)
    acceptance_score = float(partner.acceptance_rate) / 100 * 25
    response_score = max(0.0, 20 - avg_response_time / 30 * 20)
    load_score = max(0, 15 - partner.current_load * 5)
    result['score'] = round(distance_score + acceptance_score + response_score + load_score)
    result['is_eligible'] = True
    return result


def find_available_partners(company_id: str, restaurant_location: Dict, radius_km: Decimal,
                            excluded_ids: Iterable[str] = ()) -> List[Dict]:
    scores = [
        score_partner(partner, restaurant_location, radius_km)
        for partner in get_delivery_partners(company_id, availability='online')
        if partner.id_ not in excluded_ids
    ]
    eligible = [score for score in scores if score['is_eligible']]
    return sorted(eligible, key=lambda score: score['score'], reverse=True)


class OrderAssignment(EntityBase):
    pk = keys_structure.order_assignments_pk
    sk = keys_structure.order_assignments_sk
    clearable_fields = ('assigned_to', 'assigned_at', 'timeout_at')

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'customer_id': lambda x: isinstance(x, str),
        'restaurant_id': lambda x: isinstance(x, str),
        'restaurant_location': lambda x: isinstance(x, dict),
        'customer_location': lambda x: isinstance(x, dict),
        'order_summary': lambda x: isinstance(x, dict),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'status_': lambda x: x in ASSIGNMENT_STATUSES,
        'assignment_history': lambda x: isinstance(x, list),
        'priority': lambda x: isinstance(x, (int, Decimal)) and 1 <= x <= 10,
        'max_assignment_attempts': lambda x: isinstance(x, (int, Decimal)) and x >= 1,
        'current_attempt': lambda x: isinstance(x, (int, Decimal)) and x >= 0,
        'assignment_radius': lambda x: isinstance(x, Decimal) and x > 0,
        'eligible_delivery_partners': lambda x: isinstance(x, list),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'assigned_to': lambda x: isinstance(x, str),
        'assigned_at': lambda x: isinstance(x, str),
        'accepted_at': lambda x: isinstance(x, str),
        'timeout_at': lambda x: isinstance(x, str),
        'picked_up_at': lambda x: isinstance(x, str),
        'delivered_at': lambda x: isinstance(x, str),
        'last_assignment_check': lambda x: isinstance(x, str)
    }

    def __init__(self, company_id, id_, **kwargs):
        EntityBase.__init__(self, company_id, id_)
        self.request_body: Dict = {}

        self.customer_id: str = kwargs.get('customer_id')
        self.restaurant_id: str = kwargs.get('restaurant_id')
        self.restaurant_location: Dict = utils_geo.normalize_location(kwargs.get('restaurant_location'))
        self.customer_location: Dict = utils_geo.normalize_location(kwargs.get('customer_location'))
        self.order_summary: Dict = kwargs.get('order_summary', {})
        self.status_: str = kwargs.get('status_', 'pending')
        self.assigned_to: Any[str, None] = kwargs.get('assigned_to')
        self.assignment_history: List[Dict] = kwargs.get('assignment_history', [])
        self.priority: int = int(kwargs.get('priority', DEFAULT_ASSIGNMENT_PRIORITY))
        self.max_assignment_attempts: int = int(kwargs.get('max_assignment_attempts', MAX_ASSIGNMENT_ATTEMPTS))
        self.current_attempt: int = int(kwargs.get('current_attempt', 0))
        self.assignment_radius: Decimal = utils_data.to_decimal(
            kwargs.get('assignment_radius', ASSIGNMENT_RADIUS_KM), '1.0')
        self.eligible_delivery_partners: List[str] = kwargs.get('eligible_delivery_partners', [])
        self.assigned_at: str = kwargs.get('assigned_at')
        self.accepted_at: str = kwargs.get('accepted_at')
        self.timeout_at: str = kwargs.get('timeout_at')
        self.picked_up_at: str = kwargs.get('picked_up_at')
        self.delivered_at: str = kwargs.get('delivered_at')
        self.last_assignment_check: str = kwargs.get('last_assignment_check')
        self.date_created: str = kwargs.get('date_created') or now_iso()
        self.date_updated: str = kwargs.get('date_updated') or self.date_created
        self.record_type = 'order_assignment'

    @classmethod
    def init_by_order_id(cls, company_id, order_id):
        c = cls(company_id, order_id)
        c.__init__(**c._get_db_item())
        return c

    @classmethod
    def init_from_order(cls, order: Order, priority=None, assignment_radius=None):
        restaurant = Restaurant.init_get_by_id(order.company_id, order.restaurant_id)
        delivery_address = order.delivery_address or {}
        customer_location = utils_geo.normalize_location({
            'latitude': delivery_address.get('latitude'),
            'longitude': delivery_address.get('longitude'),
            'address': ', '.join(str(delivery_address[field]) for field in ('street', 'city')
                                 if delivery_address.get(field))
        })
        utils_geo.get_coordinates(customer_location)
        if not restaurant.location:
            raise exceptions.WrongDeliveryAddress(f'Restaurant {restaurant.id_} has no location')
        return cls(
            company_id=order.company_id,
            id_=order.id_,
            customer_id=order.user_id,
            restaurant_id=order.restaurant_id,
            restaurant_location={**restaurant.location, 'address': restaurant.address},
            customer_location=customer_location,
            order_summary={
                'total_amount': order.amount,
                'item_count': int(sum(item['quantity'] for item in order.items)),
                'special_instructions': order.special_instructions or ''
            },
            priority=priority if priority is not None else DEFAULT_ASSIGNMENT_PRIORITY,
            assignment_radius=assignment_radius if assignment_radius is not None else ASSIGNMENT_RADIUS_KM
        )

    @classmethod
    @utils_auth.authenticate_class
    def init_request_create(cls, request):
        logger.info("init_request_create ::: started")
        auth_result = request.auth_result
        utils_auth.check_role(auth_result, 'admin')
        request_body = utils_data.parse_raw_body(request)
        if not request_body.get('order_id'):
            raise exceptions.MandatoryFieldsAreNotFilled('order_id is required')
        order = Order.init_by_order_id(auth_result['company_id'], request_body['order_id'])
        c = cls.init_from_order(order, request_body.get('priority'), request_body.get('assignment_radius'))
        c.auth_result = auth_result
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_partner(cls, request, order_id):
        """ Assignment of the order which belongs to the current delivery partner """
        auth_result = request.auth_result
        utils_auth.check_role(auth_result, 'delivery_partner')
        c = cls.init_by_order_id(auth_result['company_id'], order_id)
        if c.assigned_to != auth_result['user_id']:
            raise exceptions.RecordNotFound(f'Assignment for order {order_id} not found')
        c.auth_result = auth_result
        c.request_body = utils_data.parse_raw_body(request)
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_admin(cls, request, order_id):
        auth_result = request.auth_result
        utils_auth.check_role(auth_result, 'admin')
        c = cls.init_by_order_id(auth_result['company_id'], order_id)
        c.auth_result = auth_result
        return c

    @utils_app.log_start_finish
    def endpoint_create(self) -> Response:
        try:
            self._get_db_item()
            raise exceptions.RecordAlreadyExists(f'Assignment for order {self.id_} already exists')
        except exceptions.RecordNotFound:
            pass
        self._create_db_record()
        self.attempt_assignment()
        return Response(status_code=http201, body=self.to_ui())

    @utils_app.log_start_finish
    def endpoint_accept(self) -> Response:
        self.accept(self.auth_result['user_id'])
        return Response(status_code=http200, body={'message': 'Assignment accepted', 'assignment': self.to_ui()})

    @utils_app.log_start_finish
    def endpoint_reject(self) -> Response:
        self.reject(self.auth_result['user_id'], self.request_body.get('reason'))
        return Response(status_code=http200, body={'message': 'Assignment rejected'})

    @utils_app.log_start_finish
    def endpoint_update_delivery_status(self) -> Response:
        self.update_delivery_status(self.request_body.get('status'))
        return Response(status_code=http200, body={'message': 'Delivery status updated',
                                                   'assignment': self.to_ui()})

    @utils_app.log_start_finish
    def endpoint_cancel(self) -> Response:
        self.cancel()
        return Response(status_code=http200, body={'message': 'Assignment cancelled', 'assignment': self.to_ui()})

    def attempt_assignment(self, now: datetime = None) -> bool:
        """
        Gives the assignment to the best scored partner
        :return:
        True if a partner got the assignment
        """
        if self.status_ != 'pending':
            return False
        now = now or datetime.now()
        if self.current_attempt >= self.max_assignment_attempts:
            logger.info(f"attempt_assignment ::: order_id={self.id_} reached {self.current_attempt} attempts, "
                        f"assignment failed")
            self.status_ = 'failed'
            self._update_db_record()
            return False

        candidates = find_available_partners(self.company_id, self.restaurant_location, self.assignment_radius,
                                             excluded_ids=self.excluded_partner_ids)
        self.last_assignment_check = now.isoformat(timespec='seconds')
        if not candidates:
            logger.info(f"attempt_assignment ::: no available delivery partners for order_id={self.id_}")
            self._update_db_record()
            return False

        best = candidates[0]
        self.eligible_delivery_partners = [candidate['partner_id'] for candidate in candidates]
        self.assigned_to = best['partner_id']
        self.status_ = 'assigned'
        self.assigned_at = now.isoformat(timespec='seconds')
        self.timeout_at = (now + timedelta(seconds=ASSIGNMENT_TIMEOUT_SECONDS)).isoformat(timespec='seconds')
        self.current_attempt += 1
        self.assignment_history = [*self.assignment_history, {
            'delivery_partner_id': best['partner_id'],
            'assigned_at': self.assigned_at,
            'status': 'assigned',
            'score': best['score'],
            'distance': best['distance']
        }]
        self._update_db_record()
        DeliveryPartner.init_by_id(self.company_id, best['partner_id']).add_assigned_order(self.id_)
        create_notification(
            company_id=self.company_id,
            user_id=best['partner_id'],
            notification_type='assignment',
            title='New delivery assignment',
            message=f'New order {self.id_} is waiting for you, accept it in {ASSIGNMENT_TIMEOUT_SECONDS} seconds',
            data={'order_id': self.id_, 'timeout_at': self.timeout_at, 'order_summary': self.order_summary},
            priority='high'
        )
        logger.info(f"attempt_assignment ::: order_id={self.id_} assigned to partner_id={best['partner_id']} "
                    f"score={best['score']} attempt={self.current_attempt}")
        return True

    def accept(self, partner_id: str) -> None:
        self._check_assigned_to(partner_id)
        now = now_iso()
        self.status_ = 'accepted'
        self.accepted_at = now
        self.timeout_at = None
        self._close_history_entry(partner_id, 'accepted', now)
        self._update_db_record()

        partner = DeliveryPartner.init_by_id(self.company_id, partner_id)
        partner.assigned_order_ids = [order_id for order_id in partner.assigned_order_ids if order_id != self.id_]
        partner.active_order_id = self.id_
        partner.availability = 'busy'
        partner._update_db_record()

        order = Order.init_by_order_id(self.company_id, self.id_)
        order.delivery_partner_id = partner_id
        order._update_db_record()

    def reject(self, partner_id: str, reason: str = None) -> None:
        self._check_assigned_to(partner_id)
        self._close_history_entry(partner_id, 'rejected', now_iso(), reason)
        self._release(partner_id)
        self.attempt_assignment()

    def handle_timeout(self, now: datetime) -> bool:
        if self.status_ != 'assigned' or not self.timeout_at or datetime.fromisoformat(self.timeout_at) > now:
            return False
        partner_id = self.assigned_to
        logger.info(f"handle_timeout ::: order_id={self.id_} timed out for partner_id={partner_id}")
        self._close_history_entry(partner_id, 'timeout', now.isoformat(timespec='seconds'))
        self._release(partner_id)
        self.attempt_assignment(now)
        return True

    def update_delivery_status(self, status: str) -> None:
        if status not in ORDER_STATUS_BY_DELIVERY_STATUS:
            raise exceptions.ValidationException(f'status must be one of {list(ORDER_STATUS_BY_DELIVERY_STATUS)}')
        if status not in DELIVERY_STATUS_TRANSITIONS.get(self.status_, ()):
            raise exceptions.InvalidStatusTransition(f'Assignment status can not be changed from {self.status_} '
                                                     f'to {status}')
        order = Order.init_by_order_id(self.company_id, self.id_)
        order.change_status(ORDER_STATUS_BY_DELIVERY_STATUS[status], updated_by=self.assigned_to)
        self.status_ = status
        if status == 'in_transit':
            self.picked_up_at = now_iso()
        else:
            self.delivered_at = now_iso()
            self._free_partner(self.assigned_to, delivered=True)
        self._update_db_record()

    def cancel(self) -> None:
        if self.status_ in ('delivered', 'cancelled', 'failed'):
            raise exceptions.InvalidStatusTransition(f'Assignment in status {self.status_} can not be cancelled')
        if self.assigned_to:
            self._free_partner(self.assigned_to)
        self.status_ = 'cancelled'
        self.timeout_at = None
        self._update_db_record()

    @property
    def excluded_partner_ids(self) -> List[str]:
        return [entry['delivery_partner_id'] for entry in self.assignment_history
                if entry.get('status') in EXCLUDING_HISTORY_STATUSES]

    def _check_assigned_to(self, partner_id: str) -> None:
        if self.status_ != 'assigned' or self.assigned_to != partner_id:
            raise exceptions.InvalidStatusTransition(f'Assignment for order {self.id_} is not waiting for '
                                                     f'partner {partner_id} response')

    def _close_history_entry(self, partner_id: str, status: str, responded_at: str, reason: str = None) -> None:
        if not self.assignment_history:
            return
        last_entry = self.assignment_history[-1]
        if last_entry.get('delivery_partner_id') == partner_id and last_entry.get('status') == 'assigned':
            last_entry.update({'status': status, 'responded_at': responded_at})
            if reason:
                last_entry['reason'] = reason

    def _release(self, partner_id: str) -> None:
        """ Returns the assignment to pending and takes it back from the partner """
        self.status_ = 'pending'
        self.assigned_to = None
        self.assigned_at = None
        self.timeout_at = None
        self._update_db_record()
        try:
            DeliveryPartner.init_by_id(self.company_id, partner_id).remove_assigned_order(self.id_)
        except exceptions.RecordNotFound:
            logger.warning(f"_release ::: partner_id={partner_id} not found, nothing to release")

    def _free_partner(self, partner_id: str, delivered: bool = False) -> None:
        try:
            partner = DeliveryPartner.init_by_id(self.company_id, partner_id)
        except exceptions.RecordNotFound:
            logger.warning(f"_free_partner ::: partner_id={partner_id} not found")
            return
        partner.assigned_order_ids = [order_id for order_id in partner.assigned_order_ids if order_id != self.id_]
        if partner.active_order_id == self.id_:
            partner.active_order_id = None
            partner.availability = 'online'
        if delivered:
            partner.total_deliveries += 1
        partner._update_db_record()

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk.format(order_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'customer_id': self.customer_id,
            'restaurant_id': self.restaurant_id,
            'restaurant_location': self.restaurant_location,
            'customer_location': self.customer_location,
            'order_summary': self.order_summary,
            'status_': self.status_,
            'assigned_to': self.assigned_to,
            'assignment_history': self.assignment_history,
            'priority': self.priority,
            'max_assignment_attempts': self.max_assignment_attempts,
            'current_attempt': self.current_attempt,
            'assignment_radius': self.assignment_radius,
            'eligible_delivery_partners': self.eligible_delivery_partners,
            'assigned_at': self.assigned_at,
            'accepted_at': self.accepted_at,
            'timeout_at': self.timeout_at,
            'picked_up_at': self.picked_up_at,
            'delivered_at': self.delivered_at,
            'last_assignment_check': self.last_assignment_check,
            'date_created': self.date_created,
            'date_updated': self.date_updated
        }

    def to_ui(self):
        item = self._to_ui()
        item['order_id'] = item['id']
        return item


def get_assignments(company_id: str, filter_expression=None) -> List[OrderAssignment]:
    records = utils_db.query_items_paged(
        Key('partkey').eq(OrderAssignment.pk.format(company_id=company_id)),
        filter_expression=filter_expression
    )
    return [OrderAssignment(**record) for record in records]


def process_assignment_timeouts(company_ids: Iterable[str], now: datetime = None) -> int:
    """
    Returns timed out assignments to pending and reassigns them
    :return:
    number of assignments which timed out
    """
    now = now or datetime.now()
    timed_out = 0
    for company_id in company_ids:
        for assignment in get_assignments(company_id, Attr('status_').eq('assigned')):
            try:
                if assignment.handle_timeout(now):
                    timed_out += 1
            except Exception as error:
                log_exception(error, status_code=500,
                              msg=f'process_assignment_timeouts ::: order_id={assignment.id_} failed')
    logger.info(f"process_assignment_timeouts ::: {timed_out} assignments timed out")
    return timed_out


@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_process_timeouts(request) -> Response:
    auth_result = request.auth_result
    utils_auth.check_role(auth_result, 'admin')
    now_param = utils_data.get_query_params(request).get('now')
    try:
        now = datetime.fromisoformat(now_param) if now_param else None
    except ValueError:
        raise exceptions.ValidationException(f'now must be an ISO datetime, got {now_param}')
    if now is not None and now.tzinfo is not None:
        # stored timestamps are naive local time
        now = now.astimezone().replace(tzinfo=None)
    timed_out = process_assignment_timeouts([auth_result['company_id']], now)
    return Response(status_code=http200, body={'timed_out': timed_out})


@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_get_partner_assignments(request) -> Response:
    auth_result = request.auth_result
    utils_auth.check_role(auth_result, 'delivery_partner')
    assignments = get_assignments(
        auth_result['company_id'],
        Attr('assigned_to').eq(auth_result['user_id']) & Attr('status_').is_in(list(PARTNER_ASSIGNMENT_STATUSES))
    )
    assignments = sorted(assignments, key=lambda assignment: assignment.assigned_at or '', reverse=True)
    return Response(status_code=http200, body={'assignments': [assignment.to_ui() for assignment in assignments]})


@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_get_assignments(request) -> Response:
    auth_result = request.auth_result
    utils_auth.check_role(auth_result, 'admin')
    status = utils_data.get_query_params(request).get('status')
    if status and status not in ASSIGNMENT_STATUSES:
        raise exceptions.ValidationException(f'status must be one of {ASSIGNMENT_STATUSES}')
    assignments = get_assignments(auth_result['company_id'], Attr('status_').eq(status) if status else None)
    assignments = sorted(assignments, key=lambda assignment: (-assignment.priority, assignment.date_created))
    return Response(status_code=http200, body={'assignments': [assignment.to_ui() for assignment in assignments]})


def get_assignment_stats(assignments: List[OrderAssignment], now: datetime = None) -> Dict:
    now = now or datetime.now()
    stats = {'total_assignments': len(assignments), **{status: 0 for status in ASSIGNMENT_STATUSES}}
    response_times = []
    timed_out_count = 0
    for assignment in assignments:
        stats[assignment.status_] += 1
        if assignment.assigned_at and assignment.accepted_at:
            response_times.append((datetime.fromisoformat(assignment.accepted_at) -
                                   datetime.fromisoformat(assignment.assigned_at)).total_seconds())
        if assignment.status_ == 'assigned' and assignment.timeout_at and \
                datetime.fromisoformat(assignment.timeout_at) < now:
            timed_out_count += 1
    stats['avg_attempts'] = utils_data.to_decimal(
        sum(assignment.current_attempt for assignment in assignments) / len(assignments), '1.0') \
        if assignments else Decimal(0)
    stats['avg_response_time'] = utils_data.to_decimal(sum(response_times) / len(response_times), '1') \
        if response_times else Decimal(0)
    stats['timed_out_count'] = timed_out_count
    return stats


@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_get_assignment_stats(request) -> Response:
    auth_result = request.auth_result
    utils_auth.check_role(auth_result, 'admin')
    stats = get_assignment_stats(get_assignments(auth_result['company_id']))
    return Response(status_code=http200, body={'stats': stats})
