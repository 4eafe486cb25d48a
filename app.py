from chalice import Chalice, Rate, Response

from chalicelib import auth, addresses, carts, chefs, delivery_partners, menu_items, notifications, \
    order_assignments, orders, recommendations, restaurants, reviews, users
from chalicelib.constants.status_codes import http200
from chalicelib.utils import app as utils_app, data as utils_data
from chalicelib.utils.auth import host_company_id_map
from chalicelib.utils.logger import set_current_request_id

app = Chalice(app_name='foodfly-delivery')

app.debug = True


@app.middleware('http')
def request_id_middleware(event, get_response):
    set_current_request_id(event)
    return get_response(event)


@app.route('/health-check', methods=['GET'], cors=True)
def health_check():
    return Response(status_code=http200, body={'health': 'check'})


# AUTH
@app.route('/auth/register', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def register():
    return auth.endpoint_register(app.current_request)


@app.route('/auth/login', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def login():
    return auth.endpoint_login(app.current_request)


@app.route('/auth/logout', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def logout():
    return auth.endpoint_logout(app.current_request)


# USERS
@app.route('/users', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_user():
    return users.User.init_request_user(app.current_request).endpoint_get_user()


@app.route('/users', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def update_user():
    return users.User.init_request_update(app.current_request).endpoint_update_user()


@app.route('/admin/users', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_users():
    """
    admin operation
    """
    return users.User.endpoint_get_users(app.current_request)


@app.route('/admin/users/{user_id}', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def admin_update_user(user_id):
    """
    admin operation, changes role and restaurant permissions
    """
    return users.User.init_request_admin_update(app.current_request, user_id).endpoint_admin_update_user()


# ADDRESSES
@app.route('/users/addresses', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_addresses():
    return addresses.Address.endpoint_get_addresses(app.current_request)


@app.route('/users/addresses', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def create_address():
    return addresses.Address.init_request_create(app.current_request).endpoint_create()


@app.route('/users/addresses/{address_id}', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def update_address(address_id):
    return addresses.Address.init_request_by_id(app.current_request, address_id, with_body=True).endpoint_update()


@app.route('/users/addresses/{address_id}', methods=['DELETE'], cors=True)
@utils_app.request_exception_handler
def delete_address(address_id):
    return addresses.Address.init_request_by_id(app.current_request, address_id).endpoint_delete()


# RESTAURANTS
@app.route('/restaurants', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_restaurants():
    return restaurants.Restaurant.endpoint_get_all(app.current_request)


@app.route('/restaurants/{restaurant_id}', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_restaurant_by_id(restaurant_id):
    return restaurants.Restaurant.init_request_get_by_id(app.current_request, restaurant_id).endpoint_get_by_id()


@app.route('/restaurants/{restaurant_id}/delivery-price', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def get_delivery_price(restaurant_id):
    address = utils_data.parse_raw_body(app.current_request).get('delivery_address')
    return restaurants.Restaurant.init_request_get_by_id(app.current_request, restaurant_id).\
        endpoint_get_delivery_price(address)


@app.route('/restaurants', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def create_restaurant():
    """
    admin operation
    """
    return restaurants.Restaurant.init_request_create(app.current_request).endpoint_create()


@app.route('/restaurants/{restaurant_id}', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def update_restaurant(restaurant_id):
    """
    admin operation
    """
    return restaurants.Restaurant.init_request_update(app.current_request, restaurant_id).endpoint_update()


@app.route('/restaurants/{restaurant_id}', methods=['DELETE'], cors=True)
@utils_app.request_exception_handler
def archive_restaurant(restaurant_id):
    """
    admin operation
    """
    return restaurants.Restaurant.init_request_update(
        app.current_request, restaurant_id, special_body={'archived': True}
    ).endpoint_update()


# MENU ITEMS
@app.route('/menu-items/{restaurant_id}', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_restaurant_menu(restaurant_id):
    return menu_items.MenuItem.endpoint_get_menu_items(app.current_request, restaurant_id=restaurant_id)


@app.route('/menu-items/{restaurant_id}', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def create_menu_item(restaurant_id):
    """
    restaurant manager operation
    """
    return menu_items.MenuItem.init_request_create(app.current_request, restaurant_id).endpoint_create_menu_item()


@app.route('/menu-items/{restaurant_id}/{menu_item_id}', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def update_menu_item(restaurant_id, menu_item_id):
    """
    restaurant manager operation
    """
    return menu_items.MenuItem.init_request_update(app.current_request, restaurant_id, menu_item_id).\
        endpoint_update_menu_item()


@app.route('/menu-items/{restaurant_id}/{menu_item_id}', methods=['DELETE'], cors=True)
@utils_app.request_exception_handler
def delete_menu_item(restaurant_id, menu_item_id):
    """
    restaurant manager operation
    """
    return menu_items.MenuItem.init_request_update(
        app.current_request, restaurant_id, menu_item_id, special_body={'archived': True}
    ).endpoint_update_menu_item()


# CART
@app.route('/carts', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_cart():
    return carts.Cart.init_endpoint(app.current_request).endpoint_get_cart()


@app.route('/carts/count', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_cart_count():
    return carts.Cart.init_endpoint(app.current_request).endpoint_get_count()


@app.route('/carts', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def add_item_to_cart():
    return carts.Cart.init_endpoint(app.current_request).endpoint_add_item_to_cart()


@app.route('/carts/items/{item_id}', methods=['PATCH'], cors=True)
@utils_app.request_exception_handler
def update_cart_item_quantity(item_id):
    return carts.Cart.init_endpoint(app.current_request).endpoint_update_item_quantity(item_id)


@app.route('/carts/items/{item_id}', methods=['DELETE'], cors=True)
@utils_app.request_exception_handler
def remove_item_from_cart(item_id):
    return carts.Cart.init_endpoint(app.current_request).endpoint_remove_item_from_cart(item_id)


@app.route('/carts', methods=['DELETE'], cors=True)
@utils_app.request_exception_handler
def clear_cart():
    return carts.Cart.init_endpoint(app.current_request).endpoint_clear_cart()


@app.route('/carts/merge', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def merge_carts():
    """
    guest carts collected before login are merged into the user's cart
    """
    return carts.Cart.init_endpoint(app.current_request).endpoint_merge_carts()


# ORDERS
@app.route('/orders', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_orders():
    """
    user can get his orders
    """
    return orders.endpoint_get_orders(app.current_request)


@app.route('/orders', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def create_order():
    """
    order details will be taken from user's cart
    """
    return orders.Order.init_request_create_order(app.current_request).endpoint_create_order()


@app.route('/orders/restaurant/{restaurant_id}', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_restaurant_orders(restaurant_id):
    """
    restaurant manager can get restaurant's orders (he needs permissions to manage the restaurant)
    admin can get restaurant's orders by restaurant_id
    """
    return orders.endpoint_get_orders(app.current_request, 'restaurant', restaurant_id)


@app.route('/orders/{order_id}', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_order_by_id(order_id):
    """
    user can get details only his orders
    restaurant manager can get details for restaurant's orders
    admin can get details of any order
    """
    return orders.Order.init_request_get_order(app.current_request, order_id).endpoint_get_by_id()


@app.route('/orders/{order_id}/status', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def update_order_status(order_id):
    """
    restaurant manager or admin moves the order through its lifecycle, user can only cancel
    """
    return orders.Order.init_request_get_order(app.current_request, order_id).endpoint_update_status()


@app.route('/orders/{order_id}/feedback', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def add_order_feedback(order_id):
    return orders.Order.init_request_get_order(app.current_request, order_id).endpoint_add_feedback()


@app.route('/admin/orders', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_admin_orders():
    """
    admin operation
    """
    return orders.endpoint_get_orders(app.current_request, 'admin')


# DELIVERY PARTNERS
@app.route('/delivery/register', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def register_delivery_partner():
    return delivery_partners.DeliveryPartner.init_request_register(app.current_request).endpoint_register()


@app.route('/delivery/profile', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_delivery_partner_profile():
    return delivery_partners.DeliveryPartner.init_request_partner(app.current_request).endpoint_get_profile()


@app.route('/delivery/status', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def update_delivery_partner_status():
    return delivery_partners.DeliveryPartner.init_request_partner(app.current_request).\
        endpoint_update_availability()


@app.route('/delivery/location', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def update_delivery_partner_location():
    return delivery_partners.DeliveryPartner.init_request_partner(app.current_request).endpoint_update_location()


@app.route('/admin/delivery-partners', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_delivery_partners():
    """
    admin operation
    """
    return delivery_partners.endpoint_get_delivery_partners(app.current_request)


@app.route('/admin/delivery-partners/{partner_id}', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def admin_update_delivery_partner(partner_id):
    """
    admin operation, verifies and activates partners
    """
    return delivery_partners.DeliveryPartner.init_request_admin_update(app.current_request, partner_id).\
        endpoint_admin_update()


# ORDER ASSIGNMENTS
@app.route('/delivery/assignments', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_partner_assignments():
    return order_assignments.endpoint_get_partner_assignments(app.current_request)


@app.route('/delivery/assignments/{order_id}/accept', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def accept_assignment(order_id):
    return order_assignments.OrderAssignment.init_request_partner(app.current_request, order_id).endpoint_accept()


@app.route('/delivery/assignments/{order_id}/reject', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def reject_assignment(order_id):
    return order_assignments.OrderAssignment.init_request_partner(app.current_request, order_id).endpoint_reject()


@app.route('/delivery/assignments/{order_id}/status', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def update_assignment_delivery_status(order_id):
    return order_assignments.OrderAssignment.init_request_partner(app.current_request, order_id).\
        endpoint_update_delivery_status()


@app.route('/admin/order-assignments', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_order_assignments():
    """
    admin operation
    """
    return order_assignments.endpoint_get_assignments(app.current_request)


@app.route('/admin/order-assignments', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def create_order_assignment():
    """
    admin operation, creates the assignment and gives it to the best delivery partner
    """
    return order_assignments.OrderAssignment.init_request_create(app.current_request).endpoint_create()


@app.route('/admin/order-assignments/stats', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_order_assignment_stats():
    """
    admin operation
    """
    return order_assignments.endpoint_get_assignment_stats(app.current_request)


@app.route('/admin/order-assignments/timeouts', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def process_order_assignment_timeouts():
    """
    admin operation, the same sweep runs on schedule
    """
    return order_assignments.endpoint_process_timeouts(app.current_request)


@app.route('/admin/order-assignments/{order_id}/cancel', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def cancel_order_assignment(order_id):
    """
    admin operation
    """
    return order_assignments.OrderAssignment.init_request_admin(app.current_request, order_id).endpoint_cancel()


@app.schedule(Rate(1, unit=Rate.MINUTES))
def assignment_timeouts_schedule(event):
    set_current_request_id()
    return order_assignments.process_assignment_timeouts(set(host_company_id_map.values()))


# RECOMMENDATIONS
@app.route('/recommendations', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_recommendations():
    return recommendations.endpoint_get_recommendations(app.current_request)


@app.route('/recommendations/trending', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_trending_meals():
    return recommendations.endpoint_get_trending(app.current_request)


@app.route('/recommendations/profile', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def record_recommendation_profile():
    return recommendations.UserProfile.init_request(app.current_request).endpoint_record_order_item()


# NOTIFICATIONS
@app.route('/notifications', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_notifications():
    return notifications.endpoint_get_notifications(app.current_request)


@app.route('/notifications/read-all', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def mark_all_notifications_read():
    return notifications.endpoint_mark_all_read(app.current_request)


@app.route('/notifications/{notification_id}/read', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def mark_notification_read(notification_id):
    return notifications.Notification.init_request_by_id(app.current_request, notification_id).endpoint_mark_read()


# CHEFS
@app.route('/chefs', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_chefs():
    return chefs.Chef.endpoint_get_chefs(app.current_request)


@app.route('/chefs/register', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def register_chef():
    return chefs.Chef.init_request_register(app.current_request).endpoint_register()


@app.route('/chefs/book', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def book_chef():
    return chefs.ChefBooking.init_request_create(app.current_request).endpoint_create()


@app.route('/chefs/bookings', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_chef_bookings():
    return chefs.endpoint_get_bookings(app.current_request)


@app.route('/chefs/bookings/{booking_id}/status', methods=['PUT'], cors=True)
@utils_app.request_exception_handler
def update_chef_booking_status(booking_id):
    return chefs.ChefBooking.init_request_by_id(app.current_request, booking_id).endpoint_update_status()


@app.route('/chefs/{chef_id}', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_chef_by_id(chef_id):
    return chefs.Chef.init_request_get_by_id(app.current_request, chef_id).endpoint_get_by_id()


# REVIEWS
@app.route('/reviews', methods=['POST'], cors=True)
@utils_app.request_exception_handler
def create_review():
    return reviews.Review.init_request_create(app.current_request).endpoint_create()


@app.route('/reviews', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_reviews():
    return reviews.endpoint_get_reviews(app.current_request)


@app.route('/reviews/restaurant/{restaurant_id}', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_restaurant_reviews(restaurant_id):
    return reviews.endpoint_get_reviews(app.current_request, 'restaurant', restaurant_id)


@app.route('/reviews/order/{order_id}', methods=['GET'], cors=True)
@utils_app.request_exception_handler
def get_order_review(order_id):
    return reviews.endpoint_get_order_review(app.current_request, order_id)
