from test.utils.fixtures import fake_table, chalice_gateway, admin, customer, restaurant_id, \
    restaurant_manager, menu_item_ids  # noqa: F401
