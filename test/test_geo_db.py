from decimal import Decimal

import pytest
from botocore.exceptions import ClientError

from chalicelib.utils import db, exceptions, geo
from test.utils.fixtures import RESTAURANT_LOCATION, NEAR_LOCATION


def client_error(code: str) -> ClientError:
    return ClientError({'Error': {'Code': code, 'Message': code}}, 'PutItem')


def test_distance_km():
    assert geo.distance_km(RESTAURANT_LOCATION, RESTAURANT_LOCATION) == Decimal('0.00')
    assert geo.distance_km(RESTAURANT_LOCATION, NEAR_LOCATION) == Decimal('1.11')
    assert geo.distance_km({'latitude': '12.9716', 'longitude': '77.5946'}, NEAR_LOCATION) == Decimal('1.11')


@pytest.mark.parametrize('location', [
    {'latitude': 12.9},
    {'latitude': 'north', 'longitude': 77.5},
    {'latitude': 91, 'longitude': 77.5},
    {'latitude': 12.9, 'longitude': -181},
])
def test_wrong_coordinates(location):
    with pytest.raises(exceptions.WrongDeliveryAddress):
        geo.distance_km(RESTAURANT_LOCATION, location)


def test_normalize_location():
    assert geo.normalize_location({'latitude': 12.97160049, 'longitude': 77.5946, 'label': 'home'}) == {
        'latitude': Decimal('12.971600'), 'longitude': Decimal('77.594600'), 'label': 'home'}
    assert geo.normalize_location({'latitude': 'north'}) == {'latitude': 'north'}
    assert geo.normalize_location(None) is None


@pytest.mark.parametrize('distance,expected_fee', [
    (Decimal('0'), Decimal('30')),
    (Decimal('2'), Decimal('30')),
    (Decimal('4.5'), Decimal('40')),
    (Decimal('10'), Decimal('50')),
    (Decimal('12.5'), Decimal('60')),
])
def test_delivery_fee_by_distance(distance, expected_fee):
    assert geo.delivery_fee_by_distance(distance) == expected_fee


@pytest.mark.parametrize('distance,active_orders,expected_minutes', [
    (Decimal('1.11'), 0, 34),
    (Decimal('10'), 0, 60),
    (Decimal('1.11'), 3, 49),
    (Decimal('1.11'), 10, 64),
])
def test_estimated_delivery_minutes(distance, active_orders, expected_minutes):
    assert geo.estimated_delivery_minutes(distance, active_orders) == expected_minutes


def test_generate_update_expression():
    set_expr, values, remove_expr, set_names, remove_names = db.generate_update_expression(
        update_body={'name_': 'Spice Garden', 'description': '', 'tags': [], 'price': Decimal('5'), 'other': 1},
        allowed_attrs_to_update=['name_', 'description', 'tags', 'price', 'phone'],
        allowed_attrs_to_delete=['description']
    )

    assert set_expr == 'SET #name_=:name_, #tags=:tags, #price=:price'
    assert values == {':name_': 'Spice Garden', ':tags': [], ':price': Decimal('5')}
    assert set_names == {'#name_': 'name_', '#tags': 'tags', '#price': 'price'}
    assert remove_expr == 'REMOVE #description'
    assert remove_names == {'#description': 'description'}


def test_generate_update_expression_nothing_to_update():
    assert db.generate_update_expression({'phone': None}, ['phone'], ['phone']) == [None, None, None, None, None]


def test_exp_db_backoff_retries_throttling(monkeypatch):
    delays = []
    monkeypatch.setattr(db, 'sleep', delays.append)
    calls = []

    def put_item(**kwargs):
        calls.append(kwargs)
        if len(calls) < 3:
            raise client_error('ProvisionedThroughputExceededException')
        return {'ok': True}

    assert db.exp_db_backoff(put_item)(Item={'partkey': 'a'}) == {'ok': True}
    assert len(calls) == 3
    assert calls[0] == {'Item': {'partkey': 'a'}, 'ReturnConsumedCapacity': 'TOTAL'}
    assert len(delays) == 2
    assert all(delay <= db.MAX_SLEEP_SECONDS for delay in delays)


def test_exp_db_backoff_gives_up(monkeypatch):
    monkeypatch.setattr(db, 'sleep', lambda delay: None)
    monkeypatch.setattr(db, 'MAX_RETRIES', 2)

    def query(**kwargs):
        raise client_error('ThrottlingException')

    with pytest.raises(exceptions.NumberOfRetriesExceeded):
        db.exp_db_backoff(query)()


def test_exp_db_backoff_reraises_other_errors(monkeypatch):
    monkeypatch.setattr(db, 'sleep', lambda delay: pytest.fail('must not retry'))

    def get_item(**kwargs):
        raise client_error('ValidationException')

    with pytest.raises(ClientError):
        db.exp_db_backoff(get_item)()


def test_exp_db_backoff_only_for_dynamodb_methods():
    def scan(**kwargs):
        return {}

    with pytest.raises(RuntimeError):
        db.exp_db_backoff(scan)()
