import json
from decimal import Decimal

import pytest

from chalicelib.constants import keys_structure
from chalicelib.constants.status_codes import http200, http201
from chalicelib.utils import db
from test.utils.fixtures import TEST_COMPANY_ID, create_test_restaurant
from test.utils.request_utils import make_request


def get_restaurant_db_record(restaurant_id):
    return db.get_gen_table().get_item(Key={
        'partkey': keys_structure.restaurants_pk.format(company_id=TEST_COMPANY_ID),
        'sortkey': keys_structure.restaurants_sk.format(restaurant_id=restaurant_id)
    })['Item']


def test_create_restaurant(chalice_gateway, admin):
    restaurant_to_create = {
        'name': 'Dragon Wok',
        'address': '5 Brigade Road, Bengaluru',
        'description': 'Chinese and Thai',
        'cuisine': ['Chinese', 'Thai'],
        'location': {'latitude': 12.9722, 'longitude': 77.6074},
        'settings': {'order_notification_emails': 'kitchen@dragonwok.com'},
        'opening_time': 10,
        'closing_time': 23
    }
    response = make_request(chalice_gateway, endpoint='/restaurants', method='POST',
                            json_body=restaurant_to_create, token=admin['token'])

    response_body = json.loads(response['body'])
    assert response['statusCode'] == http201, 'status code not as expected'
    db_record = get_restaurant_db_record(response_body['id'])
    assert db_record['name_'] == 'Dragon Wok'
    assert db_record['cuisine'] == ['Chinese', 'Thai']
    assert db_record['location'] == {'latitude': Decimal('12.972200'), 'longitude': Decimal('77.607400')}
    assert db_record['opening_time'] == 10
    assert db_record['created_by'] == admin['id']
    assert db_record['archived'] is False


def test_create_restaurant_requires_admin(chalice_gateway, customer):
    response = make_request(chalice_gateway, endpoint='/restaurants', method='POST',
                            json_body={'name': 'Nope'}, token=customer['token'])
    assert response['statusCode'] == 403


def test_create_restaurant_without_location_is_rejected(chalice_gateway, admin):
    response = make_request(chalice_gateway, endpoint='/restaurants', method='POST',
                            json_body={'name': 'Nowhere', 'address': 'unknown', 'cuisine': []},
                            token=admin['token'])
    assert response['statusCode'] == 400


def test_get_restaurants_filters_archived_and_cuisine(chalice_gateway, admin, restaurant_id):
    chinese_id = create_test_restaurant(admin['id'], name='Dragon Wok', cuisine=['Chinese'])
    create_test_restaurant(admin['id'], name='Closed Place', archived=True)

    response_body = json.loads(make_request(chalice_gateway, endpoint='/restaurants')['body'])
    assert sorted(restaurant['id'] for restaurant in response_body) == sorted([restaurant_id, chinese_id])

    response = make_request(chalice_gateway, endpoint='/restaurants', query='cuisine=Chinese')
    assert [restaurant['id'] for restaurant in json.loads(response['body'])] == [chinese_id]


def test_get_restaurant_by_id(chalice_gateway, restaurant_id):
    response = make_request(chalice_gateway, endpoint=f'/restaurants/{restaurant_id}')

    response_body = json.loads(response['body'])
    assert response['statusCode'] == http200
    assert response_body['id'] == restaurant_id
    assert response_body['name'] == 'Spice Garden'
    assert 'partkey' not in response_body


def test_get_unknown_restaurant(chalice_gateway):
    assert make_request(chalice_gateway, endpoint='/restaurants/unknown')['statusCode'] == 404


def test_update_restaurant(chalice_gateway, admin, restaurant_id):
    fields_to_update = {
        'name': 'Spice Garden Express',
        'cuisine': ['North Indian', 'Mughlai'],
        'is_open': False
    }
    wrong_fields_to_update = {
        'created_by': 'wrong_string',
        'closing_time': 'asd',
        'new_field': 'new_value'
    }
    response = make_request(chalice_gateway, endpoint=f'/restaurants/{restaurant_id}', method='PUT',
                            json_body={**fields_to_update, **wrong_fields_to_update}, token=admin['token'])
    assert response['statusCode'] == http200

    db_record = get_restaurant_db_record(restaurant_id)
    assert db_record['name_'] == 'Spice Garden Express'
    assert db_record['cuisine'] == ['North Indian', 'Mughlai']
    assert db_record['is_open'] is False
    assert db_record['created_by'] == admin['id']
    assert 'new_field' not in db_record
    assert db_record.get('closing_time') != 'asd'


def test_archive_restaurant(chalice_gateway, admin, restaurant_id):
    response = make_request(chalice_gateway, endpoint=f'/restaurants/{restaurant_id}', method='DELETE',
                            token=admin['token'])

    assert response['statusCode'] == http200
    assert get_restaurant_db_record(restaurant_id)['archived'] is True
    assert json.loads(make_request(chalice_gateway, endpoint='/restaurants')['body']) == []


@pytest.mark.parametrize('delivery_location, expected_price', [
    ({'latitude': 12.9816, 'longitude': 77.5946}, 30),
    ({'latitude': 13.0016, 'longitude': 77.5946}, 40),
    ({'latitude': 13.0416, 'longitude': 77.5946}, 50),
    ({'latitude': 13.1716, 'longitude': 77.5946}, 60),
])
def test_delivery_price_tiers(chalice_gateway, restaurant_id, delivery_location, expected_price):
    response = make_request(chalice_gateway, endpoint=f'/restaurants/{restaurant_id}/delivery-price',
                            method='POST', json_body={'delivery_address': delivery_location})

    response_body = json.loads(response['body'])
    assert response['statusCode'] == http200
    assert response_body['delivery_price'] == expected_price


def test_delivery_price_estimated_time(chalice_gateway, restaurant_id):
    response = make_request(chalice_gateway, endpoint=f'/restaurants/{restaurant_id}/delivery-price',
                            method='POST', json_body={'delivery_address': {'latitude': 12.9816,
                                                                           'longitude': 77.5946}})

    response_body = json.loads(response['body'])
    # 1.11 km at 20 km/h is 4 minutes, no active orders
    assert response_body['distance_km'] == 1.11
    assert response_body['estimated_delivery_minutes'] == 34


def test_delivery_price_without_coordinates(chalice_gateway, restaurant_id):
    response = make_request(chalice_gateway, endpoint=f'/restaurants/{restaurant_id}/delivery-price',
                            method='POST', json_body={'delivery_address': {'street': 'MG Road'}})
    assert response['statusCode'] == 400
