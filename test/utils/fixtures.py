import os
from decimal import Decimal
from uuid import uuid4

import pytest
from chalice.test import Client

from app import app
from chalicelib.chefs import Chef
from chalicelib.delivery_partners import DeliveryPartner
from chalicelib.menu_items import MenuItem
from chalicelib.orders import Order, calculate_totals
from chalicelib.restaurants import Restaurant
from chalicelib.users import User
from chalicelib.utils import db
from chalicelib.utils.auth import generate_token, host_company_id_map
from test.utils.fake_db import FakeTable

TEST_COMPANY_ID = host_company_id_map['test-domain.com']
PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

RESTAURANT_LOCATION = {'latitude': Decimal('12.971600'), 'longitude': Decimal('77.594600')}
# about 1.1 km north of the restaurant
NEAR_LOCATION = {'latitude': Decimal('12.981600'), 'longitude': Decimal('77.594600')}

DELIVERY_ADDRESS = {
    'name': 'Asha Rao',
    'phone': '9876543210',
    'street': '12 MG Road',
    'city': 'Bengaluru',
    'state': 'Karnataka',
    'pincode': '560001',
    **NEAR_LOCATION
}


def create_test_user(role: str = 'user', permissions: dict = None) -> dict:
    user_id = str(uuid4())
    email = f'{role}-{user_id[:8]}@test-domain.com'
    User(
        company_id=TEST_COMPANY_ID,
        id_=user_id,
        login=email,
        email=email,
        role=role,
        permissions_=permissions or {},
        first_name='Test',
        last_name=role.title()
    ).create_db_record()
    return {'id': user_id, 'email': email, 'token': generate_token(TEST_COMPANY_ID, user_id, role)}


def create_test_restaurant(created_by: str, **kwargs) -> str:
    restaurant_id = str(uuid4())
    Restaurant(
        company_id=TEST_COMPANY_ID,
        id_=restaurant_id,
        created_by=created_by,
        **{
            'name': 'Spice Garden',
            'address': '1 Residency Road, Bengaluru',
            'description': 'North Indian kitchen',
            'cuisine': ['North Indian'],
            'location': RESTAURANT_LOCATION,
            'rating': Decimal('4.5'),
            **kwargs
        }
    )._create_db_record()
    return restaurant_id


def create_test_menu_item(restaurant_id: str, created_by: str, **kwargs) -> str:
    menu_item_id = str(uuid4())
    MenuItem(
        company_id=TEST_COMPANY_ID,
        id_=menu_item_id,
        restaurant_id=restaurant_id,
        created_by=created_by,
        **{
            'name': 'Butter Chicken',
            'category': 'Main Course',
            'cuisine': 'North Indian',
            'description': 'Creamy tomato gravy',
            'price': Decimal('250'),
            'is_veg': False,
            **kwargs
        }
    )._create_db_record()
    return menu_item_id


def create_test_order(user_id, restaurant_id, status='pending', date_created='2024-05-01T12:00:00',
                      order_id=None, **kwargs) -> str:
    order_id = order_id or date_created[-8:].replace(':', '') + status[:2]
    totals = calculate_totals([{'price': Decimal('250'), 'quantity': 1}])
    Order(
        company_id=TEST_COMPANY_ID,
        id_=order_id,
        user_id=user_id,
        order_number=f'ORD{order_id.upper()}',
        restaurant_id=restaurant_id,
        restaurant_name='Spice Garden',
        items=[{'menu_item_id': 'item', 'name': 'Butter Chicken', 'price': Decimal('250'), 'quantity': 1}],
        delivery_address=DELIVERY_ADDRESS,
        status_=status,
        status_history=[{'status': status, 'timestamp': date_created, 'note': '', 'updated_by': user_id}],
        date_created=date_created,
        **totals,
        **kwargs
    )._create_db_record()
    return order_id


def create_test_delivery_partner(location: dict = None, **kwargs) -> dict:
    partner_user = create_test_user('delivery_partner')
    DeliveryPartner(
        company_id=TEST_COMPANY_ID,
        id_=partner_user['id'],
        **{
            'name': 'Ravi Kumar',
            'phone': '9000000001',
            'vehicle_type': 'motorcycle',
            'vehicle_number': 'KA01AB1234',
            'is_verified': True,
            'availability': 'online',
            **(location or NEAR_LOCATION),
            **kwargs
        }
    )._create_db_record()
    return partner_user


def create_test_chef(**kwargs) -> dict:
    chef_user = create_test_user('chef')
    Chef(
        company_id=TEST_COMPANY_ID,
        id_=chef_user['id'],
        **{
            'name': 'Chef Kunal',
            'specialization': ['Tandoor'],
            'cuisines': ['North Indian', 'Mughlai'],
            'experience_years': 12,
            'price_per_hour': Decimal('2000'),
            'rating': Decimal('4.8'),
            **kwargs
        }
    )._create_db_record()
    return chef_user


@pytest.fixture
def fake_table(monkeypatch) -> FakeTable:
    table = FakeTable()
    monkeypatch.setattr(db, '_DB', table)
    monkeypatch.setenv('JWT_SECRET', 'test-secret')
    return table


@pytest.fixture
def chalice_gateway(fake_table) -> Client:
    with Client(app, stage_name='test', project_dir=PROJECT_DIR) as client:
        yield client


@pytest.fixture
def admin(fake_table) -> dict:
    return create_test_user('admin')


@pytest.fixture
def customer(fake_table) -> dict:
    return create_test_user('user')


@pytest.fixture
def restaurant_id(admin) -> str:
    return create_test_restaurant(admin['id'])


@pytest.fixture
def restaurant_manager(restaurant_id) -> dict:
    return create_test_user('restaurant_manager', permissions={'restaurants': [restaurant_id]})


@pytest.fixture
def menu_item_ids(restaurant_id, admin) -> tuple:
    return (
        create_test_menu_item(restaurant_id, admin['id']),
        create_test_menu_item(restaurant_id, admin['id'], name='Garlic Naan', category='Breads',
                              price=Decimal('60'), is_veg=True)
    )
