import hashlib
import json
from decimal import Decimal
from typing import Tuple, List, Dict, Any, Optional

from chalice import Response

from chalicelib.base_class_entity import EntityBase, now_iso
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import MIN_ITEM_QUANTITY, MAX_ITEM_QUANTITY
from chalicelib.constants.status_codes import http200
from chalicelib.menu_items import MenuItem
from chalicelib.notifications import create_notification
from chalicelib.restaurants import Restaurant
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, exceptions
from chalicelib.utils.logger import logger

UNAVAILABLE_ITEMS_MESSAGE = 'Some items in your cart are not longer available and were deleted from the cart'
RESTAURANT_CHANGED_MESSAGE = 'Your cart contained items from another restaurant, they were removed'


def parse_quantity(value, allow_zero: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, Decimal)) or value != int(value):
        raise exceptions.CartValidationError(f'Quantity must be an integer, got {value}')
    quantity = int(value)
    if allow_zero and quantity <= 0:
        return 0
    if not MIN_ITEM_QUANTITY <= quantity <= MAX_ITEM_QUANTITY:
        raise exceptions.CartValidationError(
            f'Quantity must be between {MIN_ITEM_QUANTITY} and {MAX_ITEM_QUANTITY}, got {quantity}')
    return quantity


def get_line_id(menu_item_id: str, customizations: List) -> str:
    """ Cart line is identified by menu item and its customizations """
    if not customizations:
        return menu_item_id
    digest = hashlib.sha1(json.dumps(customizations, sort_keys=True, default=str).encode()).hexdigest()
    return f'{menu_item_id}_{digest[:8]}'


class Cart(EntityBase):
    pk = keys_structure.carts_pk
    sk = keys_structure.carts_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'restaurant_id': lambda x: isinstance(x, str),
        'restaurant_name': lambda x: isinstance(x, str),
        'items': lambda x: isinstance(x, list),
        'subtotal': lambda x: isinstance(x, Decimal),
        'total_items': lambda x: isinstance(x, (int, Decimal)),
        'date_updated': lambda x: isinstance(x, str)
    }

    def __init__(self, company_id, id_, request_body=None):
        EntityBase.__init__(self, company_id, id_)

        if request_body is None:
            request_body = {}

        self.request_body = request_body
        self.restaurant_id: Any[str, None] = None
        self.restaurant_name: Any[str, None] = None
        self.items: List[Dict] = []
        self.subtotal: Decimal = Decimal(0).quantize(Decimal('1.00'))
        self.total_items: int = 0
        self.date_updated: Any[str, None] = None
        self.is_new: bool = True
        self.record_type: str = 'cart'

    def _fill_db_item(self):
        try:
            self.db_record = self._get_db_item()
            self.restaurant_id = self.db_record.get('restaurant_id')
            self.restaurant_name = self.db_record.get('restaurant_name')
            self.items = self.db_record.get('items', [])
            self.date_updated = self.db_record.get('date_updated')
            self.is_new = False
            self._calculate_totals()
        except exceptions.RecordNotFound:
            self._init_db_record()

    @classmethod
    def init_by_user_id(cls, company_id, user_id):
        c = cls(company_id=company_id, id_=user_id)
        c._fill_db_item()
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_endpoint(cls, request):
        logger.info("init_endpoint ::: started")
        auth_result = request.auth_result
        c = cls(
            company_id=auth_result['company_id'],
            id_=auth_result['user_id'],
            request_body=utils_data.parse_raw_body(request)
        )
        c.auth_result = auth_result
        return c

    @utils_app.log_start_finish
    def endpoint_get_cart(self):
        self._fill_db_item()
        ui_message = None
        if not self._check_and_update_available_items():
            self._save()
            ui_message = UNAVAILABLE_ITEMS_MESSAGE
        return Response(status_code=http200, body={'cart': self._to_ui(), 'message': ui_message})

    @utils_app.log_start_finish
    def endpoint_get_count(self):
        self._fill_db_item()
        return Response(status_code=http200, body={'count': self.total_items})

    @utils_app.log_start_finish
    def endpoint_add_item_to_cart(self):
        self._fill_db_item()
        restaurant_id, menu_item_id = self.request_body.get('restaurant_id'), self.request_body.get('menu_item_id')
        if not restaurant_id or not menu_item_id:
            raise exceptions.MandatoryFieldsAreNotFilled('restaurant_id and menu_item_id are required')
        quantity = parse_quantity(self.request_body.get('quantity', self.request_body.get('qty', 1)))
        was_empty = self.total_items == 0
        all_items_available: bool = self._check_and_update_available_items()
        menu_item = MenuItem.init_get_by_id(self.company_id, menu_item_id, restaurant_id)
        ui_message = self.add_item(menu_item, quantity, self.request_body.get('customizations', []))
        self._save()
        if not all_items_available:
            ui_message = UNAVAILABLE_ITEMS_MESSAGE
        if was_empty:
            self._notify_cart_started()
        return Response(status_code=http200, body={'cart': self._to_ui(), 'message': ui_message})

    @utils_app.log_start_finish
    def endpoint_update_item_quantity(self, item_id):
        self._fill_db_item()
        quantity = parse_quantity(self.request_body.get('quantity'), allow_zero=True)
        line = self._find_line(item_id)
        if quantity == 0:
            self.items.remove(line)
        else:
            line['quantity'] = quantity
        self._save()
        return Response(status_code=http200, body={'cart': self._to_ui()})

    @utils_app.log_start_finish
    def endpoint_remove_item_from_cart(self, item_id):
        self._fill_db_item()
        self.items.remove(self._find_line(item_id))
        self._save()
        return Response(status_code=http200, body={'cart': self._to_ui()})

    @utils_app.log_start_finish
    def endpoint_clear_cart(self):
        self.delete_db_record()
        return Response(status_code=http200, body={'message': 'Cart was successfully cleared'})

    @utils_app.log_start_finish
    def endpoint_merge_carts(self):
        """
        Guest carts collected by the client before login are merged into the user's cart.
        Every item goes through the same rules as a regular add, failing items are skipped and reported.
        """
        self._fill_db_item()
        guest_carts = self.request_body.get('carts')
        if guest_carts is None:
            guest_carts = [{'items': self.request_body.get('items', [])}]
        if not isinstance(guest_carts, list):
            raise exceptions.ValidationException('carts must be a list')
        was_empty = self.total_items == 0
        migrated_items, skipped_items = 0, []
        for guest_cart in guest_carts:
            guest_items = guest_cart.get('items') if isinstance(guest_cart, dict) else None
            if not isinstance(guest_items, list):
                skipped_items.append({'menu_item_id': None, 'reason': 'malformed guest cart'})
                continue
            for guest_item in guest_items:
                if not isinstance(guest_item, dict):
                    skipped_items.append({'menu_item_id': None, 'reason': 'malformed cart item'})
                    continue
                reason = self._merge_guest_item(guest_item)
                if reason:
                    skipped_items.append({'menu_item_id': guest_item.get('menu_item_id', guest_item.get('id')),
                                          'reason': reason})
                else:
                    migrated_items += 1
        if migrated_items:
            self._save()
            if was_empty:
                self._notify_cart_started()
        logger.info(f"endpoint_merge_carts ::: {migrated_items=}, skipped={len(skipped_items)}")
        return Response(
            status_code=http200,
            body={'cart': self._to_ui(), 'migrated_items': migrated_items, 'skipped_items': skipped_items}
        )

    def _merge_guest_item(self, guest_item: Dict) -> Optional[str]:
        menu_item_id = guest_item.get('menu_item_id') or guest_item.get('id')
        restaurant_id = guest_item.get('restaurant_id')
        if not menu_item_id or not restaurant_id:
            return 'menu_item_id and restaurant_id are required'
        if self.items and restaurant_id != self.restaurant_id:
            return 'item belongs to another restaurant'
        try:
            quantity = parse_quantity(guest_item.get('quantity', guest_item.get('qty', 1)))
            menu_item = MenuItem.init_get_by_id(self.company_id, menu_item_id, restaurant_id)
            self.add_item(menu_item, quantity, guest_item.get('customizations', []))
        except exceptions.RecordNotFound:
            return 'menu item not found'
        except exceptions.ValidationException as error:
            return str(error)
        return None

    def add_item(self, menu_item: MenuItem, quantity: int, customizations: List = None) -> Optional[str]:
        """
        Adds quantity of the menu item to the cart, same item with same customizations increments its line
        :return:
        message for UI if the cart was reset because of another restaurant
        """
        customizations = customizations or []
        if not isinstance(customizations, list):
            raise exceptions.CartValidationError('customizations must be a list')
        if not menu_item.is_available_right_now():
            raise exceptions.SomeItemsAreNotAvailable(f'Menu item {menu_item.id_} is not available right now')

        ui_message = None
        if self.items and self.restaurant_id != menu_item.restaurant_id:
            logger.info(f"add_item ::: restaurant changed {self.restaurant_id} -> {menu_item.restaurant_id}")
            self.items = []
            ui_message = RESTAURANT_CHANGED_MESSAGE
        if self.restaurant_id != menu_item.restaurant_id or not self.restaurant_name:
            self.restaurant_id = menu_item.restaurant_id
            self.restaurant_name = Restaurant.init_get_by_id(self.company_id, menu_item.restaurant_id).name_

        line_id = get_line_id(menu_item.id_, customizations)
        line = next((item for item in self.items if item['line_id'] == line_id), None)
        if line is not None:
            new_quantity = line['quantity'] + quantity
            if new_quantity > MAX_ITEM_QUANTITY:
                raise exceptions.CartValidationError(
                    f'Maximum quantity of {MAX_ITEM_QUANTITY} per item exceeded for {menu_item.name_}')
            line['quantity'] = new_quantity
        else:
            self.items.append({
                'line_id': line_id,
                'menu_item_id': menu_item.id_,
                'name': menu_item.name_,
                'description': menu_item.description,
                'price': menu_item.price,
                'quantity': quantity,
                'image': menu_item.image,
                'is_veg': menu_item.is_veg,
                'cuisine': menu_item.cuisine,
                'restaurant_id': menu_item.restaurant_id,
                'restaurant_name': self.restaurant_name,
                'customizations': customizations,
                'added_at': now_iso()
            })
        self._calculate_totals()
        return ui_message

    def _find_line(self, item_id) -> Dict:
        line = next((item for item in self.items if item['line_id'] == item_id), None) or \
            next((item for item in self.items if item['menu_item_id'] == item_id), None)
        if line is None:
            raise exceptions.RecordNotFound(f'Item {item_id} is not in the cart')
        return line

    def _calculate_totals(self):
        self.subtotal = sum(
            (Decimal(item['price']) * item['quantity'] for item in self.items), Decimal(0)
        ).quantize(Decimal('1.00'))
        self.total_items = int(sum(item['quantity'] for item in self.items))

    def _save(self):
        self._calculate_totals()
        if not self.items and self.is_new:
            return
        if self.is_new:
            self.date_updated = now_iso()
            self._create_db_record()
            self.is_new = False
        else:
            self._update_db_record()

    def _notify_cart_started(self):
        create_notification(
            company_id=self.company_id,
            user_id=self.id_,
            notification_type='cart_reminder',
            title='Items added to your cart',
            message=f'You have {self.total_items} item(s) from {self.restaurant_name} waiting in your cart',
            data={'restaurant_id': self.restaurant_id},
            priority='low'
        )

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk.format(user_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'restaurant_id': self.restaurant_id,
            'restaurant_name': self.restaurant_name,
            'items': self.items,
            'subtotal': self.subtotal,
            'total_items': self.total_items,
            'date_updated': self.date_updated
        }

    def _check_and_update_available_items(self) -> bool:
        items_qnt = len(self.items)
        self.items = [item for item in self.items if self._is_item_available(item)]
        self._calculate_totals()
        return items_qnt == len(self.items)

    def _is_item_available(self, item: Dict) -> bool:
        try:
            return MenuItem.init_get_by_id(self.company_id, item['menu_item_id'], item['restaurant_id']) \
                .is_available_right_now()
        except exceptions.RecordNotFound:
            return False

    def delete_db_record(self):
        self._delete_db_record()
        self.items = []
        self._calculate_totals()
        logger.info(f"delete_db_record ::: cart of user_id={self.id_} was successfully cleared")
