import os
from decimal import Decimal

ORDER_EMAIL_FROM = os.environ.get('ORDER_EMAIL_FROM')

# Users
USER_ROLES = ('user', 'delivery_partner', 'chef', 'restaurant_manager', 'admin')
DEFAULT_USER_ROLE = 'user'
MIN_PASSWORD_LENGTH = 6
PASSWORD_HASH_ITERATIONS = 100_000
DEFAULT_JWT_TTL_MINUTES = 60 * 24 * 7

# Cart
MIN_ITEM_QUANTITY = 1
MAX_ITEM_QUANTITY = 10

# Orders
FREE_DELIVERY_THRESHOLD = Decimal('300')
ORDER_DELIVERY_FEE = Decimal('40')
TAX_RATE = Decimal('0.05')
ESTIMATED_DELIVERY_MINUTES = 45
ORDERS_LIST_LIMIT = 50

ORDER_STATUSES = ('pending', 'confirmed', 'preparing', 'ready', 'out_for_delivery', 'delivered', 'cancelled')
ORDER_STATUS_TRANSITIONS = {
    'pending': ('confirmed', 'cancelled'),
    'confirmed': ('preparing', 'cancelled'),
    'preparing': ('ready', 'cancelled'),
    'ready': ('out_for_delivery',),
    'out_for_delivery': ('delivered',),
    'delivered': (),
    'cancelled': ()
}
PAYMENT_METHODS = ('cod', 'upi', 'card', 'wallet')

# Delivery price by distance
BASE_DELIVERY_FEE = Decimal('30')
DELIVERY_FEE_TIERS = (
    (Decimal('2'), Decimal('0')),
    (Decimal('5'), Decimal('10')),
    (Decimal('10'), Decimal('20'))
)
DELIVERY_FEE_MAX_SURCHARGE = Decimal('30')
BASE_PREPARATION_MINUTES = 30
AVERAGE_DELIVERY_SPEED_KMH = 20
MINUTES_PER_ACTIVE_ORDER = 5
MAX_QUEUE_DELAY_MINUTES = 30
EARTH_RADIUS_KM = 6371

# Order assignments
ASSIGNMENT_STATUSES = ('pending', 'assigned', 'accepted', 'in_transit', 'delivered', 'cancelled', 'failed')
ASSIGNMENT_TIMEOUT_SECONDS = 30
ASSIGNMENT_RADIUS_KM = Decimal('5')
MAX_ASSIGNMENT_ATTEMPTS = 3
DEFAULT_ASSIGNMENT_PRIORITY = 5
DEFAULT_AVG_RESPONSE_TIME_SECONDS = 30
PARTNER_AVAILABILITY_STATUSES = ('online', 'offline', 'busy')
VEHICLE_TYPES = ('bicycle', 'motorcycle', 'scooter', 'car')

# Notifications
NOTIFICATION_TYPES = ('order_confirmed', 'order_status', 'cart_reminder', 'assignment', 'booking')

# Reviews
REVIEW_TARGET_TYPES = ('restaurant', 'chef', 'order', 'delivery', 'chef_booking')
REVIEW_STATUSES = ('pending', 'approved', 'rejected', 'flagged', 'hidden')
REVIEW_BREAKDOWN_KEYS = ('food', 'service', 'delivery', 'value', 'ambiance', 'cleanliness')
REVIEW_SORT_OPTIONS = ('recent', 'rating_high', 'rating_low')
MAX_REVIEW_LENGTH = 1000
MAX_REVIEW_TITLE_LENGTH = 100
DEFAULT_REVIEWS_PAGE_SIZE = 10

# Chef bookings
CHEF_EVENT_TYPES = ('private_dining', 'catering', 'cooking_class', 'meal_prep', 'consultation')
CHEF_VENUE_TYPES = ('customer_home', 'chef_location', 'external_venue')
CHEF_BOOKING_STATUS_TRANSITIONS = {
    'pending': ('confirmed', 'cancelled'),
    'confirmed': ('in_progress', 'cancelled'),
    'in_progress': ('completed',),
    'completed': (),
    'cancelled': ()
}
CHEF_BUSY_BOOKING_STATUSES = ('pending', 'confirmed', 'in_progress')
DEFAULT_CHEF_PRICE_PER_HOUR = Decimal('2000')
EXTRA_GUESTS_THRESHOLD = 10
EXTRA_GUEST_CHARGE = Decimal('200')
TRAVEL_FEE = Decimal('500')
EQUIPMENT_RENTAL_GUESTS_THRESHOLD = 20
EQUIPMENT_RENTAL_FEE = Decimal('1000')
MAX_BOOKING_DURATION_HOURS = 12
MAX_BOOKING_GUESTS = 100
BOOKING_CURRENCY = 'INR'
