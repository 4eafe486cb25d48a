WEATHER_DISHES = {
    'rainy': ['Hot Soup', 'Masala Chai', 'Pakoda', 'Maggi', 'Hot Coffee'],
    'sunny': ['Cold Coffee', 'Ice Cream', 'Fresh Juice', 'Salad', 'Smoothie'],
    'cloudy': ['Pizza', 'Burger', 'Sandwich', 'Pasta', 'Biryani'],
    'cold': ['Hot Chocolate', 'Soup', 'Tea', 'Paratha', 'Dal Rice']
}

TIME_SLOT_DISHES = {
    'breakfast': ['Poha', 'Upma', 'Dosa', 'Idli', 'Paratha', 'Sandwich', 'Omelette'],
    'lunch': ['Biryani', 'Dal Rice', 'Roti Sabzi', 'Thali', 'Fried Rice', 'Curry'],
    'evening': ['Tea', 'Samosa', 'Pakoda', 'Burger', 'Pizza', 'Chat'],
    'dinner': ['Biryani', 'Chicken Curry', 'Dal Tadka', 'Roti', 'Naan', 'Rice']
}

# (first hour, last hour exclusive, slot); hours outside every range are 'dinner'
TIME_SLOTS = (
    (6, 12, 'breakfast'),
    (12, 17, 'lunch'),
    (17, 21, 'evening')
)
DEFAULT_TIME_SLOT = 'dinner'

CUISINE_AFFINITY = {
    'North Indian': ['Mughlai', 'Punjabi', 'Rajasthani'],
    'South Indian': ['Tamil', 'Kerala', 'Andhra'],
    'Chinese': ['Thai', 'Japanese', 'Asian'],
    'Italian': ['Continental', 'Mediterranean'],
    'Fast Food': ['American', 'Continental']
}

CUISINE_DISHES = {
    'North Indian': ['Butter Chicken', 'Paneer Makhani', 'Dal Tadka', 'Garlic Naan', 'Biryani'],
    'South Indian': ['Masala Dosa', 'Idli Sambhar', 'Vada', 'Uttapam', 'Filter Coffee'],
    'Chinese': ['Hakka Noodles', 'Fried Rice', 'Manchurian', 'Spring Rolls', 'Hot & Sour Soup'],
    'Italian': ['Margherita Pizza', 'Pasta Arrabiata', 'Garlic Bread', 'Lasagna', 'Risotto'],
    'Fast Food': ['Burger', 'French Fries', 'Sandwich', 'Wrap', 'Hot Dog'],
    'Continental': ['Grilled Chicken', 'Caesar Salad', 'Mushroom Soup', 'Pasta', 'Steak']
}
DEFAULT_CUISINE_DISHES = ['Mixed Platter', 'Chef Special', 'House Special']

# users who ordered the key also ordered the values
ALSO_ORDERED = {
    'Butter Chicken': ['Garlic Naan', 'Basmati Rice', 'Paneer Makhani'],
    'Margherita Pizza': ['Garlic Bread', 'Pepperoni Pizza', 'Chicken Wings'],
    'Biryani': ['Raita', 'Shorba', 'Kebab'],
    'Masala Dosa': ['Filter Coffee', 'Idli', 'Vada'],
    'Hakka Noodles': ['Manchurian', 'Spring Rolls', 'Fried Rice']
}

# Keyword lookups are matched in order against the lower-cased dish name
DISH_IMAGES = (
    ('butter chicken', '/images/categories/chicken.jpg'),
    ('pizza', '/images/categories/pizza-2.jpeg'),
    ('biryani', '/images/categories/chicken.jpg'),
    ('dosa', '/images/categories/South-indian.jpg'),
    ('noodles', '/images/categories/Chinese.jpg'),
    ('burger', '/images/categories/burger-2.jpg'),
    ('soup', '/images/categories/chicken.jpg'),
    ('tea', '/images/categories/Bevarages.jpg'),
    ('coffee', '/images/categories/Bevarages.jpg')
)
DEFAULT_DISH_IMAGE = '/images/categories/Fast-food.jpg'

DISH_CATEGORIES = (
    ('pizza', 'Italian'),
    ('burger', 'Fast Food'),
    ('biryani', 'Indian'),
    ('dosa', 'South Indian'),
    ('noodles', 'Chinese'),
    ('chicken', 'North Indian'),
    ('paneer', 'North Indian'),
    ('soup', 'Continental')
)
DEFAULT_DISH_CATEGORY = 'Mixed'

DISH_PRICES = (
    ('pizza', 350),
    ('burger', 200),
    ('biryani', 280),
    ('dosa', 120),
    ('noodles', 220),
    ('chicken', 320),
    ('paneer', 280),
    ('soup', 150),
    ('tea', 50),
    ('coffee', 80)
)
DEFAULT_DISH_PRICE = 200

NON_VEG_KEYWORDS = ('chicken', 'mutton', 'beef', 'fish', 'egg', 'meat')

TRENDING_MEALS = [
    {
        'name': 'Butter Chicken',
        'image': '/images/categories/chicken.jpg',
        'order_count': 1247,
        'avg_rating': 4.6,
        'price_range': {'min': 299, 'max': 429},
        'cuisine': 'North Indian',
        'trending_reason': 'Most ordered this week',
        'restaurants': 15
    },
    {
        'name': 'Margherita Pizza',
        'image': '/images/categories/pizza-2.jpeg',
        'order_count': 987,
        'avg_rating': 4.4,
        'price_range': {'min': 299, 'max': 449},
        'cuisine': 'Italian',
        'trending_reason': 'Weekend favorite',
        'restaurants': 12
    },
    {
        'name': 'Chicken Biryani',
        'image': '/images/categories/chicken.jpg',
        'order_count': 856,
        'avg_rating': 4.7,
        'price_range': {'min': 249, 'max': 399},
        'cuisine': 'Hyderabadi',
        'trending_reason': 'Dinner special',
        'restaurants': 18
    },
    {
        'name': 'Masala Dosa',
        'image': '/images/categories/South-indian.jpg',
        'order_count': 743,
        'avg_rating': 4.5,
        'price_range': {'min': 89, 'max': 149},
        'cuisine': 'South Indian',
        'trending_reason': 'Breakfast champion',
        'restaurants': 22
    },
    {
        'name': 'Hakka Noodles',
        'image': '/images/categories/Chinese.jpg',
        'order_count': 692,
        'avg_rating': 4.3,
        'price_range': {'min': 179, 'max': 249},
        'cuisine': 'Chinese',
        'trending_reason': 'Quick bite favorite',
        'restaurants': 16
    }
]

ORDER_HISTORY_LIMIT = 50
# entries kept per time/day/weather pattern list
BEHAVIOR_PATTERN_LIMIT = 100
RECOMMENDATIONS_LIMIT = 8
WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')
