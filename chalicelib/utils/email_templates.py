def get_new_order_notification_message(order_record):
    items = '\n'.join(
        f"  {item.get('name')} x {item.get('quantity')} = {item.get('price') * item.get('quantity')}"
        for item in order_record.get('items', [])
    )
    return f"""
        Order details: \n
        Order number: {order_record.get('order_number')}\n
        Restaurant: {order_record.get('restaurant_name')}\n
        Items:\n{items}\n
        Subtotal: {order_record.get('subtotal')}\n
        Delivery fee: {order_record.get('delivery_fee')}\n
        Taxes: {order_record.get('taxes')}\n
        Amount: {order_record.get('amount')}\n
        Address: {order_record.get('delivery_address')}\n
        Payment method: {order_record.get('payment_method')}\n
        User ID: {order_record.get('user_id')}\n
        Comment: {order_record.get('special_instructions')}
    """
