companies_pk = 'companies'
companies_sk = '{company_id}'

users_pk = 'users_{company_id}'
users_sk = '{user_id}'

user_logins_pk = 'user_logins_{company_id}'
user_logins_sk = '{email}'

revoked_tokens_pk = 'revoked_tokens_{company_id}'
revoked_tokens_sk = '{jti}'

restaurants_pk = 'restaurants_{company_id}'
restaurants_sk = '{restaurant_id}'

menu_items_pk = 'menu_items_{company_id}_{restaurant_id}'
menu_items_sk = '{menu_item_id}'

carts_pk = 'carts_{company_id}'
carts_sk = '{user_id}'

orders_pk = 'orders_{company_id}'
orders_sk = '{restaurant_id}_{order_id}'

addresses_pk = 'addresses_{company_id}_{user_id}'
addresses_sk = '{address_id}'

delivery_partners_pk = 'delivery_partners_{company_id}'
delivery_partners_sk = '{user_id}'

order_assignments_pk = 'order_assignments_{company_id}'
order_assignments_sk = '{order_id}'

notifications_pk = 'notifications_{company_id}_{user_id}'
notifications_sk = '{date_created}_{notification_id}'

user_profiles_pk = 'user_profiles_{company_id}'
user_profiles_sk = '{user_id}'

chefs_pk = 'chefs_{company_id}'
chefs_sk = '{user_id}'

chef_bookings_pk = 'chef_bookings_{company_id}'
chef_bookings_sk = '{booking_id}'

reviews_pk = 'reviews_{company_id}_{target_type}_{target_id}'
reviews_sk = '{review_id}'
