import hashlib
from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Tuple, Dict, List
from uuid import uuid4

from chalice import Response

from chalicelib.base_class_entity import EntityBase, now_iso
from chalicelib.constants import keys_structure
from chalicelib.constants.recommendations_data import WEATHER_DISHES, TIME_SLOT_DISHES, TIME_SLOTS, \
    DEFAULT_TIME_SLOT, CUISINE_AFFINITY, CUISINE_DISHES, DEFAULT_CUISINE_DISHES, ALSO_ORDERED, DISH_IMAGES, \
    DEFAULT_DISH_IMAGE, DISH_CATEGORIES, DEFAULT_DISH_CATEGORY, DISH_PRICES, DEFAULT_DISH_PRICE, NON_VEG_KEYWORDS, \
    TRENDING_MEALS, ORDER_HISTORY_LIMIT, RECOMMENDATIONS_LIMIT, WEEKDAYS, BEHAVIOR_PATTERN_LIMIT
from chalicelib.constants.status_codes import http200, http201
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, exceptions
from chalicelib.utils.logger import logger


def get_time_slot(hour: int) -> str:
    for first_hour, last_hour, slot in TIME_SLOTS:
        if first_hour <= hour < last_hour:
            return slot
    return DEFAULT_TIME_SLOT


def _lookup(dish: str, table, default):
    dish = dish.lower()
    return next((value for keyword, value in table if keyword in dish), default)


def get_dish_image(dish: str) -> str:
    return _lookup(dish, DISH_IMAGES, DEFAULT_DISH_IMAGE)


def get_dish_category(dish: str) -> str:
    return _lookup(dish, DISH_CATEGORIES, DEFAULT_DISH_CATEGORY)


def get_avg_price(dish: str) -> int:
    return _lookup(dish, DISH_PRICES, DEFAULT_DISH_PRICE)


def is_dish_veg(dish: str) -> bool:
    return not any(keyword in dish.lower() for keyword in NON_VEG_KEYWORDS)


def get_dishes_for_cuisine(cuisine: str) -> List[str]:
    return CUISINE_DISHES.get(cuisine, DEFAULT_CUISINE_DISHES)


def get_mock_restaurants(dish: str) -> List[Dict]:
    price = get_avg_price(dish)
    return [
        {'id': 'rest_001', 'name': f'{dish} House', 'price': price, 'rating': Decimal('4.6'),
         'delivery_time': '25-35 mins', 'delivery_fee': 40},
        {'id': 'rest_002', 'name': f'Royal {dish}', 'price': price + 50, 'rating': Decimal('4.8'),
         'delivery_time': '30-40 mins', 'delivery_fee': 50}
    ]


def pick_dish(dishes: List[str], *seed_parts) -> str:
    """ Stable choice for the same user, cuisine and day """
    seed = ':'.join(str(part) for part in seed_parts)
    return dishes[int(hashlib.sha256(seed.encode()).hexdigest(), 16) % len(dishes)]


def top_keys(counters: Dict, limit: int) -> List[str]:
    return [key for key, _ in sorted(counters.items(), key=lambda pair: pair[1], reverse=True)[:limit]]


def build_recommendation(dish: str, reason: str, confidence: int, tags: List[str], description: str,
                         avg_rating: str, category: str = None, image: str = None, avg_price=None) -> Dict:
    return {
        'dish': {
            'name': dish,
            'image': image or get_dish_image(dish),
            'category': category or get_dish_category(dish),
            'is_veg': is_dish_veg(dish),
            'avg_price': avg_price if avg_price is not None else get_avg_price(dish),
            'avg_rating': Decimal(avg_rating),
            'description': description
        },
        'restaurants': get_mock_restaurants(dish),
        'reason': reason,
        'confidence': confidence,
        'tags': tags
    }


def deduplicate(recommendations: List[Dict]) -> List[Dict]:
    seen, unique = set(), []
    for recommendation in recommendations:
        if recommendation['dish']['name'] not in seen:
            seen.add(recommendation['dish']['name'])
            unique.append(recommendation)
    return unique


class UserProfile(EntityBase):
    pk = keys_structure.user_profiles_pk
    sk = keys_structure.user_profiles_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'preferences': lambda x: isinstance(x, dict),
        'order_history': lambda x: isinstance(x, list) and len(x) <= ORDER_HISTORY_LIMIT,
        'behavior_data': lambda x: isinstance(x, dict),
        'total_orders': lambda x: isinstance(x, (int, Decimal)) and x >= 0,
        'average_order_value': lambda x: isinstance(x, Decimal),
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'last_order_date': lambda x: isinstance(x, str)
    }

    def __init__(self, company_id, id_, **kwargs):
        EntityBase.__init__(self, company_id, id_)
        self.preferences: Dict = kwargs.get('preferences') or {
            'cuisines': {},
            'dishes': {},
            'price_range': {'min': 100, 'max': 1000},
            'dietary': 'all',
            'spice_level': 'medium'
        }
        self.order_history: List[Dict] = kwargs.get('order_history', [])
        self.behavior_data: Dict = kwargs.get('behavior_data') or {
            'time_patterns': {},
            'day_patterns': {},
            'weather_patterns': {},
            'location_preferences': {}
        }
        self.total_orders: int = int(kwargs.get('total_orders', 0))
        self.average_order_value: Decimal = utils_data.to_decimal(kwargs.get('average_order_value', 0))
        self.last_order_date: str = kwargs.get('last_order_date')
        self.date_updated: str = kwargs.get('date_updated') or now_iso()
        self.request_body: Dict = {}
        self.record_type = 'user_profile'

    @classmethod
    def init_by_user_id(cls, company_id, user_id):
        c = cls(company_id, user_id)
        try:
            c.__init__(**c._get_db_item())
        except exceptions.RecordNotFound:
            logger.info(f"init_by_user_id ::: no profile for {user_id=}, starting with an empty one")
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request(cls, request):
        auth_result = request.auth_result
        c = cls.init_by_user_id(auth_result['company_id'], auth_result['user_id'])
        c.auth_result = auth_result
        c.request_body = utils_data.parse_raw_body(request)
        return c

    @utils_app.log_start_finish
    def endpoint_record_order_item(self) -> Response:
        request_body = self.request_body
        dish_name, cuisine, price = request_body.get('dish_name'), request_body.get('cuisine'), \
            utils_data.to_decimal(request_body.get('price'))
        if not dish_name or not cuisine or price is None:
            raise exceptions.MandatoryFieldsAreNotFilled('dish_name, cuisine and price are required')
        if price <= 0:
            raise exceptions.ValidationException(f'price must be positive, got {price}')
        restaurant = request_body.get('restaurant') or {}
        if not isinstance(restaurant, dict):
            raise exceptions.ValidationException('restaurant must be an object')
        self.update_user_profile(dish_name, cuisine, price, restaurant, request_body.get('weather'))
        return Response(status_code=http201, body=self.to_ui())

    @utils_app.log_start_finish
    def endpoint_get_recommendations(self, weather: str = None, time_of_day: str = None) -> Response:
        if time_of_day and time_of_day not in TIME_SLOT_DISHES:
            raise exceptions.ValidationException(f'time_of_day must be one of {list(TIME_SLOT_DISHES)}')
        recommendations = self.get_recommendations(weather, time_of_day)
        return Response(
            status_code=http200,
            body={
                'recommendations': recommendations,
                'is_personalized': self.total_orders > 0,
                'total_orders': self.total_orders
            }
        )

    def update_user_profile(self, dish_name: str, cuisine: str, price: Decimal, restaurant: Dict,
                            weather: str = None, now: datetime = None) -> None:
        now = now or datetime.now()
        day_of_week = WEEKDAYS[now.weekday()]
        area = restaurant.get('area') or 'unknown'
        self.order_history = [{
            'id': str(uuid4()).split('-')[0],
            'dish_name': dish_name,
            'cuisine': cuisine,
            'price': price,
            'restaurant': {'id': restaurant.get('id'), 'name': restaurant.get('name'), 'area': area},
            'order_date': now.date().isoformat(),
            'order_time': now.isoformat(timespec='seconds'),
            'weather': weather,
            'day_of_week': day_of_week
        }, *self.order_history][:ORDER_HISTORY_LIMIT]

        cuisines, dishes = self.preferences['cuisines'], self.preferences['dishes']
        cuisines[cuisine] = cuisines.get(cuisine, 0) + 1
        dishes[dish_name] = dishes.get(dish_name, 0) + 1

        self._add_pattern('time_patterns', get_time_slot(now.hour), cuisine)
        self._add_pattern('day_patterns', day_of_week, cuisine)
        if weather:
            self._add_pattern('weather_patterns', weather, dish_name)
        location_preferences = self.behavior_data['location_preferences']
        location_preferences[area] = location_preferences.get(area, 0) + 1

        self.total_orders += 1
        self.average_order_value = utils_data.to_decimal(
            (self.average_order_value * (self.total_orders - 1) + price) / self.total_orders)
        self.last_order_date = now.date().isoformat()
        self.date_updated = now_iso()
        self._create_db_record()
        logger.info(f"update_user_profile ::: user_id={self.id_} {dish_name=} total_orders={self.total_orders}")

    def _add_pattern(self, pattern: str, key: str, value: str) -> None:
        patterns = self.behavior_data[pattern]
        patterns[key] = [*patterns.get(key, []), value][-BEHAVIOR_PATTERN_LIMIT:]

    def get_recommendations(self, weather: str = None, time_of_day: str = None) -> List[Dict]:
        time_slot = time_of_day or get_time_slot(datetime.now().hour)
        if self.total_orders == 0:
            return self._cold_start(time_slot, weather)
        recommendations = [
            *self._time_based(time_slot),
            *(self._weather_based(weather) if weather else []),
            *self._cuisine_based(),
            *self._collaborative()
        ]
        unique = deduplicate(recommendations)
        # stable sort keeps source order between equal confidences
        return sorted(unique, key=lambda rec: rec['confidence'], reverse=True)[:RECOMMENDATIONS_LIMIT]

    @staticmethod
    def _cold_start(time_slot: str, weather: str = None) -> List[Dict]:
        recommendations = [
            build_recommendation(dish, f'Perfect for {time_slot}', 75, ['popular', time_slot],
                                 f'Popular {dish.lower()} perfect for {time_slot}', '4.2')
            for dish in TIME_SLOT_DISHES.get(time_slot, [])[:3]
        ]
        if weather in WEATHER_DISHES:
            recommendations.extend(
                build_recommendation(dish, f'Perfect for {weather} weather', 70, ['weather-based', weather],
                                     f'Ideal for {weather} weather', '4.3')
                for dish in WEATHER_DISHES[weather][:2]
            )
        recommendations.extend(
            build_recommendation(
                meal['name'], meal['trending_reason'], 80, ['trending', 'popular'], meal['trending_reason'],
                str(meal['avg_rating']), category=meal['cuisine'], image=meal['image'],
                avg_price=(meal['price_range']['min'] + meal['price_range']['max']) // 2
            )
            for meal in TRENDING_MEALS[:3]
        )
        return recommendations

    def _time_based(self, time_slot: str) -> List[Dict]:
        slot_cuisines = Counter(self.behavior_data['time_patterns'].get(time_slot, []))
        return [
            build_recommendation(dish, f'You usually love this for {time_slot}', 85,
                                 ['time-based', 'personal-habit'], f'Your usual {time_slot} choice', '4.4',
                                 category=cuisine)
            for cuisine, _ in slot_cuisines.most_common(2)
            for dish in get_dishes_for_cuisine(cuisine)[:2]
        ]

    def _weather_based(self, weather: str) -> List[Dict]:
        history = self.behavior_data['weather_patterns'].get(weather, [])
        dishes = list(dict.fromkeys([*WEATHER_DISHES.get(weather, []), *history]))[:2]
        recommendations = []
        for dish in dishes:
            is_personal = dish in history
            recommendations.append(build_recommendation(
                dish,
                f'You enjoyed this last {weather} day' if is_personal else f'Perfect for {weather} weather',
                90 if is_personal else 75,
                ['weather-based', weather, *(['personal'] if is_personal else [])],
                f'Perfect comfort food for {weather} weather', '4.3'
            ))
        return recommendations

    def _cuisine_based(self) -> List[Dict]:
        recommendations = []
        today = datetime.now().date().isoformat()
        for cuisine in top_keys(self.preferences['cuisines'], 3):
            for related in [cuisine, *CUISINE_AFFINITY.get(cuisine, [])][:2]:
                dish = pick_dish(get_dishes_for_cuisine(related), self.id_, related, today)
                is_own = related == cuisine
                recommendations.append(build_recommendation(
                    dish,
                    'Your favorite cuisine' if is_own else f'Similar to your favorite {cuisine}',
                    88 if is_own else 75,
                    ['cuisine-based', 'personal-preference'],
                    f'You love {cuisine} cuisine', '4.5', category=related
                ))
        return recommendations

    def _collaborative(self) -> List[Dict]:
        return [
            build_recommendation(ALSO_ORDERED[dish][0], f'People who love {dish} also enjoy this', 82,
                                 ['collaborative', 'similar-users'], f'Popular with people who love {dish}', '4.4')
            for dish in top_keys(self.preferences['dishes'], 3) if ALSO_ORDERED.get(dish)
        ]

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk.format(user_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'preferences': self.preferences,
            'order_history': self.order_history,
            'behavior_data': self.behavior_data,
            'total_orders': self.total_orders,
            'average_order_value': self.average_order_value,
            'last_order_date': self.last_order_date,
            'date_updated': self.date_updated
        }


def record_order_items(company_id: str, user_id: str, order) -> UserProfile:
    """ Every item of a placed order counts as an ordered dish """
    profile = UserProfile.init_by_user_id(company_id, user_id)
    area = (order.delivery_address or {}).get('city')
    for item in order.items:
        profile.update_user_profile(
            dish_name=item['name'],
            cuisine=item.get('cuisine') or DEFAULT_DISH_CATEGORY,
            price=Decimal(item['price']) * item['quantity'],
            restaurant={'id': order.restaurant_id, 'name': order.restaurant_name, 'area': area}
        )
    return profile


@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_get_recommendations(request) -> Response:
    auth_result = request.auth_result
    qp = utils_data.get_query_params(request)
    profile = UserProfile.init_by_user_id(auth_result['company_id'], auth_result['user_id'])
    return profile.endpoint_get_recommendations(qp.get('weather'), qp.get('time_of_day'))


@utils_app.log_start_finish
def endpoint_get_trending(request) -> Response:
    utils_auth.get_company_id_by_request(request)
    return Response(status_code=http200, body={'trending': TRENDING_MEALS})
