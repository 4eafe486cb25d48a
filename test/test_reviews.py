import json
from decimal import Decimal
from uuid import uuid4

import pytest

from chalicelib.chefs import Chef, ChefBooking
from chalicelib.constants.status_codes import http200, http201
from chalicelib.delivery_partners import DeliveryPartner
from chalicelib.restaurants import Restaurant
from chalicelib.reviews import Review, get_review_stats, sort_reviews
from test.utils.fixtures import TEST_COMPANY_ID, create_test_user, create_test_order, create_test_chef, \
    create_test_delivery_partner
from test.utils.request_utils import make_request


def post_review(chalice_gateway, token, **fields):
    return make_request(chalice_gateway, endpoint='/reviews', method='POST', token=token, json_body=fields)


def create_completed_booking(customer_id, chef_id) -> str:
    booking_id = str(uuid4())
    ChefBooking(
        company_id=TEST_COMPANY_ID,
        id_=booking_id,
        customer_id=customer_id,
        chef_id=chef_id,
        chef_name='Chef Kunal',
        event_type='private_dining',
        event_date='2024-05-01',
        event_time='19:30',
        duration=3,
        guest_count=8,
        cuisine=['North Indian'],
        venue={'type': 'chef_location'},
        pricing={'total_amount': Decimal('6000')},
        status_='completed',
        status_history=[]
    )._create_db_record()
    return booking_id


def review_restaurant(chalice_gateway, restaurant_id, rating, **fields) -> dict:
    """ Reviews the restaurant by a new user with a delivered order """
    user = create_test_user()
    order_id = create_test_order(user['id'], restaurant_id, status='delivered', order_id=str(uuid4())[:8])
    post_review(chalice_gateway, user['token'], target_type='restaurant', target_id=restaurant_id,
                order_id=order_id, rating=rating, **fields)
    return user


def test_review_restaurant_after_delivered_order(chalice_gateway, customer, restaurant_id):
    order_id = create_test_order(customer['id'], restaurant_id, status='delivered', order_id='ord1')

    response = post_review(chalice_gateway, customer['token'], target_type='restaurant', target_id=restaurant_id,
                           order_id=order_id, rating=4, title='Great curry', review='Rich gravy, fast delivery',
                           breakdown={'food': 5, 'delivery': 3})

    response_body = json.loads(response['body'])
    assert response['statusCode'] == http201
    assert (response_body['status'], response_body['is_verified_purchase']) == ('approved', True)
    restaurant = Restaurant.init_get_by_id(TEST_COMPANY_ID, restaurant_id)
    assert (restaurant.rating, restaurant.total_ratings) == (Decimal('4.0'), 1)

    review_restaurant(chalice_gateway, restaurant_id, 5)
    restaurant = Restaurant.init_get_by_id(TEST_COMPANY_ID, restaurant_id)
    assert (restaurant.rating, restaurant.total_ratings) == (Decimal('4.5'), 2)


def test_unverified_review_waits_for_moderation(chalice_gateway, customer, restaurant_id):
    order_id = create_test_order(customer['id'], restaurant_id, status='preparing', order_id='ord1')

    response = post_review(chalice_gateway, customer['token'], target_type='restaurant', target_id=restaurant_id,
                           order_id=order_id, rating=1)

    response_body = json.loads(response['body'])
    assert response['statusCode'] == http201
    assert (response_body['status'], response_body['is_verified_purchase']) == ('pending', False)
    restaurant = Restaurant.init_get_by_id(TEST_COMPANY_ID, restaurant_id)
    assert (restaurant.rating, restaurant.total_ratings) == (Decimal('4.5'), 0)

    response = make_request(chalice_gateway, endpoint=f'/reviews/restaurant/{restaurant_id}')
    assert json.loads(response['body'])['reviews'] == []
    assert json.loads(response['body'])['stats']['total_reviews'] == 0


def test_review_restaurant_twice(chalice_gateway, customer, restaurant_id):
    post_review(chalice_gateway, customer['token'], target_type='restaurant', target_id=restaurant_id, rating=4)

    response = post_review(chalice_gateway, customer['token'], target_type='restaurant', target_id=restaurant_id,
                           rating=5)

    assert response['statusCode'] == 409


@pytest.mark.parametrize('wrong_fields', [
    {'rating': None},
    {'rating': 6},
    {'rating': 4.5},
    {'target_type': 'menu'},
    {'breakdown': {'taste': 5}},
    {'breakdown': {'food': 0}},
    {'title': 'x' * 101},
])
def test_review_validation(chalice_gateway, fake_table, customer, restaurant_id, wrong_fields):
    fields = {'target_type': 'restaurant', 'target_id': restaurant_id, 'rating': 4, **wrong_fields}

    response = post_review(chalice_gateway, customer['token'], **fields)

    assert response['statusCode'] == 400
    assert fake_table.records(Review.pk.format(company_id=TEST_COMPANY_ID, target_type='restaurant',
                                               target_id=restaurant_id)) == []


def test_review_unknown_target(chalice_gateway, customer):
    response = post_review(chalice_gateway, customer['token'], target_type='restaurant', target_id='unknown', rating=4)
    assert response['statusCode'] == 404

    response = post_review(chalice_gateway, customer['token'], target_type='chef', target_id='unknown', rating=4)
    assert response['statusCode'] == 404


def test_review_requires_login(chalice_gateway, restaurant_id):
    response = make_request(chalice_gateway, endpoint='/reviews', method='POST',
                            json_body={'target_type': 'restaurant', 'target_id': restaurant_id, 'rating': 4})

    assert response['statusCode'] == 401


def test_review_order(chalice_gateway, customer, restaurant_id):
    pending_order_id = create_test_order(customer['id'], restaurant_id, status='pending', order_id='ord1')
    order_id = create_test_order(customer['id'], restaurant_id, status='delivered', order_id='ord2')

    response = post_review(chalice_gateway, customer['token'], target_type='order', target_id=pending_order_id,
                           rating=5)
    assert response['statusCode'] == 404

    response = post_review(chalice_gateway, create_test_user()['token'], target_type='order', target_id=order_id,
                           rating=5)
    assert response['statusCode'] == 404

    response = post_review(chalice_gateway, customer['token'], target_type='order', target_id=order_id, rating=5)
    assert response['statusCode'] == http201
    assert json.loads(response['body'])['status'] == 'approved'

    response = make_request(chalice_gateway, endpoint=f'/reviews/order/{order_id}')
    response_body = json.loads(response['body'])
    assert response['statusCode'] == http200
    assert response_body['has_review'] is True
    assert response_body['review']['target_name'] == 'Order #ORDORD2'
    assert response_body['review']['user_name'] == 'Test User'

    response = make_request(chalice_gateway, endpoint=f'/reviews/order/{pending_order_id}')
    assert json.loads(response['body']) == {'review': None, 'has_review': False}


def test_review_delivery_partner(chalice_gateway, customer, restaurant_id):
    partner = create_test_delivery_partner()
    order_id = create_test_order(customer['id'], restaurant_id, status='delivered', order_id='ord1',
                                 delivery_partner_id=partner['id'])
    other_order_id = create_test_order(customer['id'], restaurant_id, status='delivered', order_id='ord2',
                                       delivery_partner_id='someone-else')

    response = post_review(chalice_gateway, customer['token'], target_type='delivery', target_id=partner['id'],
                           rating=3)
    assert response['statusCode'] == 400

    response = post_review(chalice_gateway, customer['token'], target_type='delivery', target_id=partner['id'],
                           order_id=other_order_id, rating=3)
    assert response['statusCode'] == 404

    response = post_review(chalice_gateway, customer['token'], target_type='delivery', target_id=partner['id'],
                           order_id=order_id, rating=3)
    assert response['statusCode'] == http201
    partner_record = DeliveryPartner.init_by_id(TEST_COMPANY_ID, partner['id'])
    assert (partner_record.rating, partner_record.total_ratings) == (Decimal('3.0'), 1)

    response = post_review(chalice_gateway, customer['token'], target_type='delivery', target_id=partner['id'],
                           order_id=order_id, rating=5)
    assert response['statusCode'] == 409


def test_review_chef_after_completed_booking(chalice_gateway, customer):
    chef = create_test_chef()
    booking_id = create_completed_booking(customer['id'], chef['id'])

    response = post_review(chalice_gateway, customer['token'], target_type='chef', target_id=chef['id'],
                           chef_booking_id=booking_id, rating=5)

    assert response['statusCode'] == http201
    assert json.loads(response['body'])['is_verified_purchase'] is True
    chef_record = Chef.init_by_id(TEST_COMPANY_ID, chef['id'])
    assert (chef_record.rating, chef_record.total_ratings) == (Decimal('5.0'), 1)


def test_review_chef_booking(chalice_gateway, customer):
    chef = create_test_chef()
    booking_id = create_completed_booking(customer['id'], chef['id'])

    response = post_review(chalice_gateway, create_test_user()['token'], target_type='chef_booking',
                           target_id=booking_id, rating=4)
    assert response['statusCode'] == 404

    response = post_review(chalice_gateway, customer['token'], target_type='chef_booking', target_id=booking_id,
                           rating=4)
    assert response['statusCode'] == http201

    response = make_request(chalice_gateway, endpoint='/reviews',
                            query=f'target_type=chef_booking&target_id={booking_id}')
    reviews = json.loads(response['body'])['reviews']
    assert [(review['target_name'], review['chef_booking_id']) for review in reviews] == [('Chef Kunal', booking_id)]


def test_get_restaurant_reviews(chalice_gateway, restaurant_id):
    review_restaurant(chalice_gateway, restaurant_id, 5, breakdown={'food': 5})
    review_restaurant(chalice_gateway, restaurant_id, 3, breakdown={'food': 2, 'value': 4})
    review_restaurant(chalice_gateway, restaurant_id, 4)

    response = make_request(chalice_gateway, endpoint=f'/reviews/restaurant/{restaurant_id}',
                            query='sort_by=rating_high')
    response_body = json.loads(response['body'])
    assert response['statusCode'] == http200
    assert [review['rating'] for review in response_body['reviews']] == [5, 4, 3]
    assert response_body['stats']['total_reviews'] == 3
    assert response_body['stats']['average_rating'] == 4
    assert response_body['stats']['breakdown']['food'] == 3.5
    assert response_body['stats']['breakdown']['value'] == 4
    assert response_body['stats']['breakdown']['service'] is None
    assert response_body['stats']['rating_distribution'] == {'5': 1, '4': 1, '3': 1, '2': 0, '1': 0}

    response = make_request(chalice_gateway, endpoint=f'/reviews/restaurant/{restaurant_id}',
                            query='sort_by=rating_low&limit=2')
    response_body = json.loads(response['body'])
    assert [review['rating'] for review in response_body['reviews']] == [3, 4]
    assert response_body['pagination'] == {'current': 1, 'total': 2, 'count': 2, 'total_reviews': 3}

    response = make_request(chalice_gateway, endpoint='/reviews',
                            query=f'target_type=restaurant&target_id={restaurant_id}&rating=4')
    assert [review['rating'] for review in json.loads(response['body'])['reviews']] == [4]


@pytest.mark.parametrize('query', [
    '',
    'target_type=restaurant',
    'target_type=menu&target_id=1',
    'target_type=restaurant&target_id=1&sort_by=helpful',
    'target_type=restaurant&target_id=1&page=0',
])
def test_get_reviews_validation(chalice_gateway, query):
    response = make_request(chalice_gateway, endpoint='/reviews', query=query)

    assert response['statusCode'] == 400


def test_review_stats_and_sorting():
    reviews = [
        Review(TEST_COMPANY_ID, 'r1', rating=2, date_created='2024-05-01T10:00:00', is_verified_purchase=True),
        Review(TEST_COMPANY_ID, 'r2', rating=5, date_created='2024-05-03T10:00:00'),
        Review(TEST_COMPANY_ID, 'r3', rating=5, date_created='2024-05-02T10:00:00', is_verified_purchase=True)
    ]

    assert [review.id_ for review in sort_reviews(reviews, 'recent')] == ['r2', 'r3', 'r1']
    assert [review.id_ for review in sort_reviews(reviews, 'rating_high')] == ['r2', 'r3', 'r1']
    assert [review.id_ for review in sort_reviews(reviews, 'rating_low')] == ['r1', 'r2', 'r3']
    stats = get_review_stats(reviews)
    assert (stats['average_rating'], stats['verified_reviews']) == (Decimal('4.0'), 2)
    assert get_review_stats([])['average_rating'] == 0
