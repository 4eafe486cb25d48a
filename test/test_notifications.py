import json

from chalicelib.constants.status_codes import http200
from chalicelib.notifications import Notification, create_notification, get_user_notifications
from test.utils.fixtures import TEST_COMPANY_ID
from test.utils.request_utils import make_request


def create_test_notification(user_id, notification_id, date_created, read=False, notification_type='order_status'):
    Notification(
        company_id=TEST_COMPANY_ID,
        id_=notification_id,
        user_id=user_id,
        type=notification_type,
        title=f'Notification {notification_id}',
        message='Your order is on the way',
        read=read,
        date_created=date_created
    )._create_db_record()
    return notification_id


def test_create_notification(fake_table, customer):
    notification = create_notification(TEST_COMPANY_ID, customer['id'], 'booking', 'Booking confirmed',
                                       'Chef is coming', data={'booking_id': 'b1', 'amount': 1.5}, priority='high')

    stored = get_user_notifications(TEST_COMPANY_ID, customer['id'])
    assert [item.id_ for item in stored] == [notification.id_]
    assert stored[0].read is False
    assert stored[0].priority == 'high'
    assert str(stored[0].data['amount']) == '1.5'


def test_get_notifications(chalice_gateway, customer):
    create_test_notification(customer['id'], 'n1', '2024-05-01T10:00:00', read=True)
    create_test_notification(customer['id'], 'n2', '2024-05-02T10:00:00')
    create_test_notification(customer['id'], 'n3', '2024-05-03T10:00:00', notification_type='cart_reminder')

    response = make_request(chalice_gateway, endpoint='/notifications', token=customer['token'])

    response_body = json.loads(response['body'])
    assert response['statusCode'] == http200
    assert [notification['id'] for notification in response_body['notifications']] == ['n3', 'n2', 'n1']
    assert response_body['notifications'][0]['type'] == 'cart_reminder'
    assert response_body['unread_count'] == 2

    response = make_request(chalice_gateway, endpoint='/notifications', query='unread_only=true',
                            token=customer['token'])
    assert [notification['id'] for notification in json.loads(response['body'])['notifications']] == ['n3', 'n2']


def test_notifications_are_private(chalice_gateway, customer, admin):
    create_test_notification(customer['id'], 'n1', '2024-05-01T10:00:00')

    response = make_request(chalice_gateway, endpoint='/notifications', token=admin['token'])
    assert json.loads(response['body'])['notifications'] == []

    response = make_request(chalice_gateway, endpoint='/notifications/n1/read', method='PUT', token=admin['token'])
    assert response['statusCode'] == 404


def test_mark_notification_read(chalice_gateway, customer):
    create_test_notification(customer['id'], 'n1', '2024-05-01T10:00:00')
    create_test_notification(customer['id'], 'n2', '2024-05-02T10:00:00')

    response = make_request(chalice_gateway, endpoint='/notifications/n1/read', method='PUT',
                            token=customer['token'])

    assert response['statusCode'] == http200
    assert json.loads(response['body'])['read'] is True
    assert [item.id_ for item in get_user_notifications(TEST_COMPANY_ID, customer['id'], unread_only=True)] == ['n2']


def test_mark_all_notifications_read(chalice_gateway, customer):
    for number in range(3):
        create_test_notification(customer['id'], f'n{number}', f'2024-05-0{number + 1}T10:00:00')

    response = make_request(chalice_gateway, endpoint='/notifications/read-all', method='PUT',
                            token=customer['token'])

    assert json.loads(response['body']) == {'message': '3 notifications marked as read'}
    assert get_user_notifications(TEST_COMPANY_ID, customer['id'], unread_only=True) == []
    response = make_request(chalice_gateway, endpoint='/notifications', token=customer['token'])
    assert json.loads(response['body'])['unread_count'] == 0
