import json
from decimal import Decimal

import pytest

from chalicelib.constants import keys_structure
from chalicelib.constants.status_codes import http200, http201
from chalicelib.menu_items import MenuItem
from chalicelib.utils import db
from test.utils.fixtures import TEST_COMPANY_ID, create_test_menu_item, create_test_user
from test.utils.request_utils import make_request


def get_menu_item_db_record(restaurant_id, menu_item_id):
    return db.get_gen_table().get_item(Key={
        'partkey': keys_structure.menu_items_pk.format(company_id=TEST_COMPANY_ID, restaurant_id=restaurant_id),
        'sortkey': keys_structure.menu_items_sk.format(menu_item_id=menu_item_id)
    })['Item']


def test_create_menu_item_by_restaurant_manager(chalice_gateway, restaurant_id, restaurant_manager):
    menu_item_to_create = {
        'name': 'Paneer Tikka',
        'category': 'Starters',
        'description': 'Grilled cottage cheese',
        'price': 220.5,
        'is_veg': True,
        'opening_time': 11,
        'closing_time': 23
    }
    response = make_request(chalice_gateway, endpoint=f'/menu-items/{restaurant_id}', method='POST',
                            json_body=menu_item_to_create, token=restaurant_manager['token'])

    response_body = json.loads(response['body'])
    assert response['statusCode'] == http201
    db_record = get_menu_item_db_record(restaurant_id, response_body['id'])
    assert db_record['name_'] == 'Paneer Tikka'
    assert db_record['price'] == Decimal('220.50')
    assert db_record['cuisine'] == 'North Indian'
    assert db_record['restaurant_id'] == restaurant_id
    assert db_record['created_by'] == restaurant_manager['id']


def test_create_menu_item_without_permission(chalice_gateway, restaurant_id, customer):
    other_manager = create_test_user('restaurant_manager', permissions={'restaurants': ['another-restaurant']})
    for token in (customer['token'], other_manager['token']):
        response = make_request(chalice_gateway, endpoint=f'/menu-items/{restaurant_id}', method='POST',
                                json_body={'name': 'Dal', 'category': 'Main', 'price': 100}, token=token)
        assert response['statusCode'] == 403


def test_create_menu_item_with_wrong_price(chalice_gateway, restaurant_id, admin):
    response = make_request(chalice_gateway, endpoint=f'/menu-items/{restaurant_id}', method='POST',
                            json_body={'name': 'Dal', 'category': 'Main', 'price': -5}, token=admin['token'])
    assert response['statusCode'] == 400


def test_get_menu_items_skips_archived(chalice_gateway, restaurant_id, admin, menu_item_ids):
    create_test_menu_item(restaurant_id, admin['id'], name='Old Dish', archived=True)

    response = make_request(chalice_gateway, endpoint=f'/menu-items/{restaurant_id}')

    response_body = json.loads(response['body'])
    assert response['statusCode'] == http200
    assert sorted(item['id'] for item in response_body) == sorted(menu_item_ids)
    assert all(item['is_available_now'] for item in response_body)


def test_update_and_archive_menu_item(chalice_gateway, restaurant_id, restaurant_manager, menu_item_ids):
    menu_item_id = menu_item_ids[0]
    response = make_request(chalice_gateway, endpoint=f'/menu-items/{restaurant_id}/{menu_item_id}', method='PUT',
                            json_body={'price': 275, 'is_available': False, 'restaurant_id': 'moved'},
                            token=restaurant_manager['token'])
    assert response['statusCode'] == http200

    db_record = get_menu_item_db_record(restaurant_id, menu_item_id)
    assert db_record['price'] == Decimal('275.00')
    assert db_record['is_available'] is False
    assert db_record['restaurant_id'] == restaurant_id
    assert db_record['updated_by'] == restaurant_manager['id']

    response = make_request(chalice_gateway, endpoint=f'/menu-items/{restaurant_id}/{menu_item_id}',
                            method='DELETE', token=restaurant_manager['token'])
    assert response['statusCode'] == http200
    assert get_menu_item_db_record(restaurant_id, menu_item_id)['archived'] is True


def test_update_unknown_menu_item(chalice_gateway, restaurant_id, admin):
    response = make_request(chalice_gateway, endpoint=f'/menu-items/{restaurant_id}/unknown', method='PUT',
                            json_body={'price': 10}, token=admin['token'])
    assert response['statusCode'] == 404


@pytest.mark.parametrize('opening_time, closing_time, hour, expected', [
    (None, None, 3, True),
    (10, 22, 9, False),
    (10, 22, 10, True),
    (10, 22, 22, False),
    (22, 2, 23, True),
    (22, 2, 1, True),
    (22, 2, 12, False),
])
def test_menu_item_availability_window(opening_time, closing_time, hour, expected):
    menu_item = MenuItem(company_id=TEST_COMPANY_ID, id_='item', restaurant_id='restaurant', price=100,
                         opening_time=opening_time, closing_time=closing_time)
    assert menu_item.is_available_right_now(hour) is expected


def test_unavailable_menu_item_is_never_available():
    menu_item = MenuItem(company_id=TEST_COMPANY_ID, id_='item', restaurant_id='restaurant', price=100,
                         is_available=False)
    assert menu_item.is_available_right_now(12) is False
