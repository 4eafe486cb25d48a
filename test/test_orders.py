import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from chalicelib.constants import keys_structure
from chalicelib.constants.status_codes import http200, http201
from chalicelib.orders import Order, calculate_totals, generate_order_number
from chalicelib.utils import db, exceptions, notifications as utils_notifications
from test.utils.fixtures import TEST_COMPANY_ID, DELIVERY_ADDRESS, create_test_user, create_test_order
from test.utils.request_utils import make_request


def place_test_order(chalice_gateway, token, restaurant_id, menu_item_id, quantity=1, **kwargs):
    make_request(chalice_gateway, endpoint='/carts', method='POST', token=token,
                 json_body={'restaurant_id': restaurant_id, 'menu_item_id': menu_item_id, 'quantity': quantity})
    return make_request(chalice_gateway, endpoint='/orders', method='POST', token=token,
                        json_body={'delivery_address': DELIVERY_ADDRESS, **kwargs})


def update_order_status(chalice_gateway, token, order_id, status, notes=None):
    return make_request(chalice_gateway, endpoint=f'/orders/{order_id}/status', method='PUT', token=token,
                        json_body={'status': status, 'notes': notes})


@pytest.mark.parametrize('items,expected', [
    ([{'price': Decimal('250'), 'quantity': 1}],
     {'subtotal': Decimal('250.00'), 'delivery_fee': Decimal('40.00'), 'taxes': Decimal('13.00'),
      'amount': Decimal('303.00')}),
    ([{'price': Decimal('99.90'), 'quantity': 3}],
     {'subtotal': Decimal('299.70'), 'delivery_fee': Decimal('40.00'), 'taxes': Decimal('15.00'),
      'amount': Decimal('354.70')}),
    ([{'price': Decimal('150'), 'quantity': 2}],
     {'subtotal': Decimal('300.00'), 'delivery_fee': Decimal('0.00'), 'taxes': Decimal('15.00'),
      'amount': Decimal('315.00')}),
])
def test_calculate_totals(items, expected):
    assert calculate_totals(items) == expected


def test_generate_order_number():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert generate_order_number('abcd1234', now) == 'ORD1704067200000ABCD'


def test_create_order(chalice_gateway, fake_table, customer, restaurant_id, menu_item_ids):
    response = place_test_order(chalice_gateway, customer['token'], restaurant_id, menu_item_ids[0],
                                special_instructions='Less spicy')

    response_body = json.loads(response['body'])
    assert response['statusCode'] == http201
    order = response_body['order']
    assert order['status'] == 'pending'
    assert order['order_number'].startswith('ORD')
    assert order['restaurant_name'] == 'Spice Garden'
    assert order['user_email'] == customer['email']
    assert order['payment_method'] == 'cod'
    assert order['payment_status'] == 'pending'
    assert order['special_instructions'] == 'Less spicy'
    assert (order['subtotal'], order['delivery_fee'], order['taxes'], order['amount']) == (250, 40, 13, 303)
    assert [entry['status'] for entry in order['status_history']] == ['pending']
    assert order['estimated_delivery_time']

    cart_count = json.loads(make_request(chalice_gateway, endpoint='/carts/count', token=customer['token'])['body'])
    assert cart_count == {'count': 0}

    notifications = fake_table.records(
        keys_structure.notifications_pk.format(company_id=TEST_COMPANY_ID, user_id=customer['id']))
    assert 'order_confirmed' in [notification['type'] for notification in notifications]

    profile = fake_table.records(keys_structure.user_profiles_pk.format(company_id=TEST_COMPANY_ID))[0]
    assert profile['total_orders'] == 1
    assert profile['preferences']['dishes'] == {'Butter Chicken': 1}
    assert profile['order_history'][0]['restaurant']['area'] == 'Bengaluru'


def test_create_order_with_free_delivery(chalice_gateway, customer, restaurant_id, menu_item_ids):
    response = place_test_order(chalice_gateway, customer['token'], restaurant_id, menu_item_ids[0], 2,
                                payment_method='upi')

    order = json.loads(response['body'])['order']
    assert (order['subtotal'], order['delivery_fee'], order['taxes'], order['amount']) == (500, 0, 25, 525)
    assert order['payment_method'] == 'upi'


def test_create_order_from_saved_address(chalice_gateway, customer, restaurant_id, menu_item_ids):
    address_response = make_request(chalice_gateway, endpoint='/users/addresses', method='POST',
                                     token=customer['token'], json_body={**DELIVERY_ADDRESS, 'label': 'work'})
    address_id = json.loads(address_response['body'])['id']
    make_request(chalice_gateway, endpoint='/carts', method='POST', token=customer['token'],
                 json_body={'restaurant_id': restaurant_id, 'menu_item_id': menu_item_ids[0]})

    response = make_request(chalice_gateway, endpoint='/orders', method='POST', token=customer['token'],
                            json_body={'address_id': address_id})

    assert response['statusCode'] == http201
    assert json.loads(response['body'])['order']['delivery_address']['street'] == '12 MG Road'


def test_create_order_with_empty_cart(chalice_gateway, customer):
    response = make_request(chalice_gateway, endpoint='/orders', method='POST', token=customer['token'],
                            json_body={'delivery_address': DELIVERY_ADDRESS})

    assert response['statusCode'] == 400
    assert json.loads(response['body'])['exception'] == 'ValidationException'


@pytest.mark.parametrize('request_body', [
    {},
    {'delivery_address': {**DELIVERY_ADDRESS, 'pincode': ''}},
    {'delivery_address': {key: value for key, value in DELIVERY_ADDRESS.items() if key != 'phone'}},
    {'delivery_address': DELIVERY_ADDRESS, 'payment_method': 'barter'},
])
def test_create_order_validation(chalice_gateway, customer, restaurant_id, menu_item_ids, request_body):
    make_request(chalice_gateway, endpoint='/carts', method='POST', token=customer['token'],
                 json_body={'restaurant_id': restaurant_id, 'menu_item_id': menu_item_ids[0]})

    response = make_request(chalice_gateway, endpoint='/orders', method='POST', token=customer['token'],
                            json_body=request_body)

    assert response['statusCode'] == 400
    cart_count = json.loads(make_request(chalice_gateway, endpoint='/carts/count', token=customer['token'])['body'])
    assert cart_count == {'count': 1}


def test_get_orders(chalice_gateway, customer, restaurant_id):
    other_customer = create_test_user()
    create_test_order(customer['id'], restaurant_id, 'delivered', '2024-05-01T12:00:00')
    create_test_order(customer['id'], restaurant_id, 'pending', '2024-05-03T12:00:00')
    create_test_order(customer['id'], restaurant_id, 'cancelled', '2024-05-02T12:00:00', order_id='cancelled')
    create_test_order(other_customer['id'], restaurant_id, 'pending', '2024-05-04T12:00:00', order_id='foreign')

    response = make_request(chalice_gateway, endpoint='/orders', token=customer['token'])

    response_body = json.loads(response['body'])
    assert response['statusCode'] == http200
    assert [order['date_created'] for order in response_body['orders']] == [
        '2024-05-03T12:00:00', '2024-05-01T12:00:00']

    response = make_request(chalice_gateway, endpoint='/orders', query='include_cancelled=true',
                            token=customer['token'])
    assert [order['status'] for order in json.loads(response['body'])['orders']] == [
        'pending', 'cancelled', 'delivered']

    response = make_request(chalice_gateway, endpoint='/orders', query='status=delivered', token=customer['token'])
    assert [order['status'] for order in json.loads(response['body'])['orders']] == ['delivered']

    response = make_request(chalice_gateway, endpoint='/orders', query='status=lost', token=customer['token'])
    assert response['statusCode'] == 400


def test_get_orders_limit(chalice_gateway, customer, restaurant_id):
    for day in range(1, 29):
        for hour in (10, 20):
            create_test_order(customer['id'], restaurant_id, date_created=f'2024-02-{day:02d}T{hour}:00:00',
                              order_id=f'o{day:02d}{hour}')

    response = make_request(chalice_gateway, endpoint='/orders', token=customer['token'])

    orders = json.loads(response['body'])['orders']
    assert len(orders) == 50
    assert orders[0]['id'] == 'o2820'


def test_get_order_by_id(chalice_gateway, customer, admin, restaurant_manager, restaurant_id):
    order_id = create_test_order(customer['id'], restaurant_id)

    for user in (customer, admin, restaurant_manager):
        response = make_request(chalice_gateway, endpoint=f'/orders/{order_id}', token=user['token'])
        assert response['statusCode'] == http200
        assert json.loads(response['body'])['id'] == order_id

    stranger = create_test_user()
    response = make_request(chalice_gateway, endpoint=f'/orders/{order_id}', token=stranger['token'])
    assert response['statusCode'] == 404

    response = make_request(chalice_gateway, endpoint='/orders/unknown', token=customer['token'])
    assert response['statusCode'] == 404


def test_restaurant_manager_moves_order_forward(chalice_gateway, fake_table, customer, restaurant_manager,
                                                restaurant_id):
    order_id = create_test_order(customer['id'], restaurant_id)

    for status in ('confirmed', 'preparing', 'ready', 'out_for_delivery', 'delivered'):
        response = update_order_status(chalice_gateway, restaurant_manager['token'], order_id, status,
                                       notes=f'now {status}')
        assert response['statusCode'] == http200

    order = json.loads(response['body'])['order']
    assert order['status'] == 'delivered'
    assert order['payment_status'] == 'paid'
    assert order['delivered_at']
    assert order['admin_notes'] == 'now delivered'
    assert order['updated_by'] == restaurant_manager['id']
    assert [entry['status'] for entry in order['status_history']] == [
        'pending', 'confirmed', 'preparing', 'ready', 'out_for_delivery', 'delivered']

    notifications = fake_table.records(
        keys_structure.notifications_pk.format(company_id=TEST_COMPANY_ID, user_id=customer['id']))
    assert len([notification for notification in notifications if notification['type'] == 'order_status']) == 5


@pytest.mark.parametrize('current_status,new_status,status_code', [
    ('pending', 'delivered', 409),
    ('ready', 'cancelled', 409),
    ('delivered', 'cancelled', 409),
    ('pending', 'lost', 400),
])
def test_invalid_status_change(chalice_gateway, customer, admin, restaurant_id, current_status, new_status,
                               status_code):
    order_id = create_test_order(customer['id'], restaurant_id, current_status)

    response = update_order_status(chalice_gateway, admin['token'], order_id, new_status)

    assert response['statusCode'] == status_code


def test_status_is_required(chalice_gateway, customer, admin, restaurant_id):
    order_id = create_test_order(customer['id'], restaurant_id)

    response = make_request(chalice_gateway, endpoint=f'/orders/{order_id}/status', method='PUT',
                            token=admin['token'], json_body={})

    assert response['statusCode'] == 400


def test_customer_cancels_order(chalice_gateway, customer, restaurant_id):
    order_id = create_test_order(customer['id'], restaurant_id, 'confirmed')

    response = update_order_status(chalice_gateway, customer['token'], order_id, 'cancelled')

    order = json.loads(response['body'])['order']
    assert response['statusCode'] == http200
    assert order['status'] == 'cancelled'
    assert order['cancelled_at']


@pytest.mark.parametrize('current_status,new_status,status_code', [
    ('pending', 'confirmed', 403),
    ('preparing', 'cancelled', 409),
])
def test_customer_status_change_limits(chalice_gateway, customer, restaurant_id, current_status, new_status,
                                       status_code):
    order_id = create_test_order(customer['id'], restaurant_id, current_status)

    response = update_order_status(chalice_gateway, customer['token'], order_id, new_status)

    assert response['statusCode'] == status_code
    order = Order.init_by_order_id(TEST_COMPANY_ID, order_id)
    assert order.status_ == current_status


def test_manager_of_another_restaurant_can_not_see_order(chalice_gateway, customer, restaurant_id):
    order_id = create_test_order(customer['id'], restaurant_id)
    other_manager = create_test_user('restaurant_manager', permissions={'restaurants': ['other-restaurant']})

    response = update_order_status(chalice_gateway, other_manager['token'], order_id, 'confirmed')

    assert response['statusCode'] == 404


def test_order_feedback(chalice_gateway, customer, restaurant_id):
    pending_order_id = create_test_order(customer['id'], restaurant_id, order_id='pending1')
    delivered_order_id = create_test_order(customer['id'], restaurant_id, 'delivered', order_id='delivered1')

    response = make_request(chalice_gateway, endpoint=f'/orders/{pending_order_id}/feedback', method='POST',
                            token=customer['token'], json_body={'feedback': 'Great', 'feedback_rate': 5})
    assert response['statusCode'] == 409

    response = make_request(chalice_gateway, endpoint=f'/orders/{delivered_order_id}/feedback', method='POST',
                            token=customer['token'], json_body={'feedback': 'Great', 'feedback_rate': 6})
    assert response['statusCode'] == 400

    response = make_request(chalice_gateway, endpoint=f'/orders/{delivered_order_id}/feedback', method='POST',
                            token=customer['token'], json_body={'feedback': 'Great', 'feedback_rate': 5})
    order = json.loads(response['body'])['order']
    assert response['statusCode'] == http200
    assert (order['feedback'], order['feedback_rate']) == ('Great', 5)


def test_restaurant_orders_pagination(chalice_gateway, customer, restaurant_manager, restaurant_id):
    for order_id in ('a1', 'b2', 'c3'):
        create_test_order(customer['id'], restaurant_id, order_id=order_id)
    create_test_order(customer['id'], 'other-restaurant', order_id='d4')

    response = make_request(chalice_gateway, endpoint=f'/orders/restaurant/{restaurant_id}', query='page_size=2',
                            token=restaurant_manager['token'])
    response_body = json.loads(response['body'])
    assert [order['id'] for order in response_body['orders']] == ['a1', 'b2']
    assert response_body['last_evaluated_key'] == 'b2'

    response = make_request(chalice_gateway, endpoint=f'/orders/restaurant/{restaurant_id}',
                            query='page_size=2&start_key=b2', token=restaurant_manager['token'])
    response_body = json.loads(response['body'])
    assert [order['id'] for order in response_body['orders']] == ['c3']
    assert response_body['last_evaluated_key'] is None


def test_restaurant_orders_access(chalice_gateway, customer, restaurant_id):
    response = make_request(chalice_gateway, endpoint=f'/orders/restaurant/{restaurant_id}',
                            token=customer['token'])

    assert response['statusCode'] == 403


def test_admin_orders(chalice_gateway, customer, admin, restaurant_id):
    create_test_order(customer['id'], restaurant_id, 'pending', '2024-05-01T12:00:00')
    create_test_order(customer['id'], 'other-restaurant', 'cancelled', '2024-05-02T12:00:00')

    response = make_request(chalice_gateway, endpoint='/admin/orders', token=admin['token'])
    assert [order['status'] for order in json.loads(response['body'])['orders']] == ['cancelled', 'pending']

    response = make_request(chalice_gateway, endpoint='/admin/orders', query='status=pending', token=admin['token'])
    assert len(json.loads(response['body'])['orders']) == 1

    response = make_request(chalice_gateway, endpoint='/admin/orders', token=customer['token'])
    assert response['statusCode'] == 403


def test_order_not_found_is_record_not_found():
    assert issubclass(exceptions.OrderNotFound, exceptions.RecordNotFound)


def test_create_order_with_unavailable_item(chalice_gateway, fake_table, customer, restaurant_id, menu_item_ids):
    make_request(chalice_gateway, endpoint='/carts', method='POST', token=customer['token'],
                 json_body={'restaurant_id': restaurant_id, 'menu_item_id': menu_item_ids[0], 'quantity': 1})
    db.get_gen_table().update_item(
        Key={'partkey': keys_structure.menu_items_pk.format(company_id=TEST_COMPANY_ID, restaurant_id=restaurant_id),
             'sortkey': keys_structure.menu_items_sk.format(menu_item_id=menu_item_ids[0])},
        UpdateExpression='SET #is_available=:is_available',
        ExpressionAttributeNames={'#is_available': 'is_available'},
        ExpressionAttributeValues={':is_available': False}
    )

    response = make_request(chalice_gateway, endpoint='/orders', method='POST', token=customer['token'],
                            json_body={'delivery_address': DELIVERY_ADDRESS})

    assert response['statusCode'] == 400
    assert json.loads(response['body'])['exception'] == 'SomeItemsAreNotAvailable'
    assert fake_table.records(keys_structure.orders_pk.format(company_id=TEST_COMPANY_ID)) == []


class FakeSesClient:

    def __init__(self):
        self.sent = []

    def send_email(self, **kwargs):
        self.sent.append(kwargs)
        return {'MessageId': 'message-1'}


def test_order_email(monkeypatch, chalice_gateway, fake_table, customer, restaurant_id, menu_item_ids):
    ses_client = FakeSesClient()
    monkeypatch.setattr(utils_notifications, 'ses_client', ses_client)
    monkeypatch.setattr('chalicelib.orders.ORDER_EMAIL_FROM', 'orders@test-domain.com')
    monkeypatch.setenv('ALL_ORDERS_EMAIL', 'all-orders@test-domain.com')
    fake_table.put_item(Item={
        'partkey': keys_structure.companies_pk,
        'sortkey': keys_structure.companies_sk.format(company_id=TEST_COMPANY_ID),
        'settings': {'order_notification_emails': ['kitchen@test-domain.com', 'manager@test-domain.com']}
    })

    response = place_test_order(chalice_gateway, customer['token'], restaurant_id, menu_item_ids[0])

    assert response['statusCode'] == http201
    order_number = json.loads(response['body'])['order']['order_number']
    assert len(ses_client.sent) == 1
    email = ses_client.sent[0]
    assert email['Source'] == 'orders@test-domain.com'
    assert email['Destination'] == {'ToAddresses': [
        'kitchen@test-domain.com', 'manager@test-domain.com', customer['email'], 'all-orders@test-domain.com']}
    assert order_number in email['Message']['Subject']['Data']
    assert 'Butter Chicken x 1 = 250' in email['Message']['Body']['Text']['Data']


def test_order_email_is_skipped_without_sender(monkeypatch, chalice_gateway, customer, restaurant_id, menu_item_ids):
    ses_client = FakeSesClient()
    monkeypatch.setattr(utils_notifications, 'ses_client', ses_client)
    monkeypatch.setattr('chalicelib.orders.ORDER_EMAIL_FROM', '')

    response = place_test_order(chalice_gateway, customer['token'], restaurant_id, menu_item_ids[0])

    assert response['statusCode'] == http201
    assert ses_client.sent == []
