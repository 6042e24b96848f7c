"""
Cart aggregate tests.

Verifies:
- Totals are recomputed on every mutation
- Stock checks on add/update, including merged quantities
- Reconciliation against live stock on read
- Lazy TTL expiry and the abandoned-cart sweep
"""

from datetime import timedelta

import pytest

from bilkro.extensions import db
from bilkro.models import Cart, Product
from bilkro.models.cart import CART_STATUS_ABANDONED, CART_STATUS_ACTIVE
from bilkro.errors import (
    CartNotFoundError,
    ItemNotFoundError,
    OutOfStockError,
    ProductNotFoundError,
    ValidationError,
)
from bilkro.services import cart_service
from bilkro.time_utils import utcnow


class TestActiveCart:

    def test_created_lazily_and_reused(self, user):
        cart = cart_service.get_or_create_active_cart(user.id)
        again = cart_service.get_or_create_active_cart(user.id)

        assert cart.id == again.id
        assert cart.status == CART_STATUS_ACTIVE
        assert cart.items == []
        assert db.session.query(Cart).filter_by(user_id=user.id).count() == 1

    def test_carts_are_per_user(self, user, other_user):
        a = cart_service.get_or_create_active_cart(user.id)
        b = cart_service.get_or_create_active_cart(other_user.id)
        assert a.id != b.id


class TestAddItem:

    def test_add_snapshots_product_and_computes_totals(self, user, make_product):
        product = make_product(name="Road Tire", sku="TIRE-1", selling_price_cents=5000, image_url="x.png")

        cart = cart_service.add_item(user.id, product.id, 2)

        assert len(cart.items) == 1
        item = cart.items[0]
        assert item.product_name == "Road Tire"
        assert item.sku == "TIRE-1"
        assert item.image_url == "x.png"
        assert item.unit_price_cents == 5000
        assert cart.subtotal_cents == 10000
        assert cart.item_count == 2
        assert cart.total_cents == 10000

    def test_merge_sums_quantity_and_keeps_first_price(self, user, make_product):
        product = make_product(selling_price_cents=5000, quantity=10)
        cart_service.add_item(user.id, product.id, 2)

        product.selling_price_cents = 7000
        db.session.commit()

        cart = cart_service.add_item(user.id, product.id, 3)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5
        assert cart.items[0].unit_price_cents == 5000
        assert cart.subtotal_cents == 25000

    def test_exceeding_stock_fails_and_leaves_cart_unchanged(self, user, make_product):
        product = make_product(quantity=5)

        with pytest.raises(OutOfStockError) as exc_info:
            cart_service.add_item(user.id, product.id, 10)

        assert exc_info.value.available_quantity == 5
        assert exc_info.value.status_code == 409
        cart = cart_service.get_or_create_active_cart(user.id)
        assert cart.items == []
        assert cart.total_cents == 0

    def test_merged_quantity_is_checked(self, user, make_product):
        product = make_product(quantity=5)
        cart_service.add_item(user.id, product.id, 3)

        with pytest.raises(OutOfStockError):
            cart_service.add_item(user.id, product.id, 3)

        cart = cart_service.get_or_create_active_cart(user.id)
        assert cart.items[0].quantity == 3

    def test_unknown_product(self, user):
        with pytest.raises(ProductNotFoundError):
            cart_service.add_item(user.id, 9999, 1)

    @pytest.mark.parametrize("quantity", [0, -1, True, "2"])
    def test_invalid_quantity(self, user, make_product, quantity):
        product = make_product()
        with pytest.raises(ValidationError):
            cart_service.add_item(user.id, product.id, quantity)


class TestUpdateAndRemove:

    def test_update_quantity(self, user, make_product):
        product = make_product(quantity=5, selling_price_cents=1000)
        cart = cart_service.add_item(user.id, product.id, 1)

        cart = cart_service.update_item_quantity(user.id, cart.items[0].id, 4)

        assert cart.items[0].quantity == 4
        assert cart.subtotal_cents == 4000
        assert cart.item_count == 4

    def test_update_beyond_stock(self, user, make_product):
        product = make_product(quantity=5)
        cart = cart_service.add_item(user.id, product.id, 1)

        with pytest.raises(OutOfStockError) as exc_info:
            cart_service.update_item_quantity(user.id, cart.items[0].id, 6)
        assert exc_info.value.details == {"available_quantity": 5}

    def test_update_missing_item(self, user, make_product):
        cart_service.add_item(user.id, make_product().id, 1)
        with pytest.raises(ItemNotFoundError):
            cart_service.update_item_quantity(user.id, 9999, 1)

    def test_update_without_cart(self, user):
        with pytest.raises(CartNotFoundError):
            cart_service.update_item_quantity(user.id, 1, 1)

    def test_remove_item(self, user, make_product):
        a = make_product(selling_price_cents=1000)
        b = make_product(selling_price_cents=2000)
        cart_service.add_item(user.id, a.id, 1)
        cart = cart_service.add_item(user.id, b.id, 1)

        cart = cart_service.remove_item(user.id, cart.items[0].id)

        assert [i.product_id for i in cart.items] == [b.id]
        assert cart.subtotal_cents == 2000

    def test_clear_resets_discount_and_coupon(self, user, make_product):
        product = make_product(selling_price_cents=5000)
        cart_service.add_item(user.id, product.id, 2)
        cart_service.update_cart_details(user.id, coupon_code="SPRING", discount_cents=1000)

        cart = cart_service.clear_cart(user.id)

        assert cart.items == []
        assert cart.discount_cents == 0
        assert cart.coupon_code is None
        assert cart.total_cents == 0


class TestDiscount:

    def test_total_is_subtotal_minus_discount(self, user, make_product):
        product = make_product(selling_price_cents=5000)
        cart_service.add_item(user.id, product.id, 2)

        cart = cart_service.update_cart_details(user.id, discount_cents=1500, note="gift")

        assert cart.subtotal_cents == 10000
        assert cart.total_cents == 8500
        assert cart.note == "gift"

    @pytest.mark.parametrize("discount", [-1, 10001])
    def test_discount_out_of_range(self, user, make_product, discount):
        product = make_product(selling_price_cents=5000)
        cart_service.add_item(user.id, product.id, 2)

        with pytest.raises(ValidationError):
            cart_service.update_cart_details(user.id, discount_cents=discount)

    def test_removing_a_line_caps_discount_at_subtotal(self, user, make_product):
        a = make_product(selling_price_cents=5000)
        b = make_product(selling_price_cents=1000)
        cart_service.add_item(user.id, a.id, 1)
        cart_service.add_item(user.id, b.id, 1)
        cart = cart_service.update_cart_details(user.id, discount_cents=5500)
        line_a = next(i for i in cart.items if i.product_id == a.id)

        cart = cart_service.remove_item(user.id, line_a.id)

        assert cart.subtotal_cents == 1000
        assert cart.discount_cents == 1000
        assert cart.total_cents == 0

    def test_lowering_quantity_caps_discount_at_subtotal(self, user, make_product):
        product = make_product(selling_price_cents=2000)
        cart = cart_service.add_item(user.id, product.id, 3)
        cart_service.update_cart_details(user.id, discount_cents=5000)

        cart = cart_service.update_item_quantity(user.id, cart.items[0].id, 1)

        assert cart.discount_cents == 2000
        assert cart.total_cents == 0

    def test_reconciliation_caps_discount_at_subtotal(self, user, make_product):
        product = make_product(quantity=5, selling_price_cents=1000)
        cart_service.add_item(user.id, product.id, 5)
        cart_service.update_cart_details(user.id, discount_cents=4000)

        product.quantity = 2
        db.session.commit()

        cart = cart_service.get_or_create_active_cart(user.id)

        assert cart.subtotal_cents == 2000
        assert cart.total_cents == 0


class TestReconciliation:

    def test_clamps_to_available_stock(self, user, make_product):
        product = make_product(quantity=5, selling_price_cents=1000)
        cart_service.add_item(user.id, product.id, 4)

        product.quantity = 2
        db.session.commit()

        cart = cart_service.get_or_create_active_cart(user.id)

        assert cart.items[0].quantity == 2
        assert cart.subtotal_cents == 2000

    def test_drops_out_of_stock_lines(self, user, make_product):
        gone = make_product(quantity=5)
        kept = make_product(quantity=5, selling_price_cents=1000)
        cart_service.add_item(user.id, gone.id, 1)
        cart_service.add_item(user.id, kept.id, 1)

        gone.quantity = 0
        db.session.commit()

        cart = cart_service.get_or_create_active_cart(user.id)

        assert [i.product_id for i in cart.items] == [kept.id]
        assert cart.total_cents == 1000

    def test_drops_lines_for_deleted_products(self, user, make_product):
        product = make_product()
        cart_service.add_item(user.id, product.id, 1)

        db.session.delete(db.session.get(Product, product.id))
        db.session.commit()

        cart = cart_service.get_or_create_active_cart(user.id)
        assert cart.items == []
        assert cart.item_count == 0


class TestExpiry:

    def test_stale_cart_is_abandoned_on_access(self, app, user, make_product):
        cart = cart_service.add_item(user.id, make_product().id, 1)
        stale_id = cart.id
        cart.updated_at = utcnow() - timedelta(days=app.config["CART_TTL_DAYS"] + 1)
        db.session.commit()

        fresh = cart_service.get_or_create_active_cart(user.id)

        assert fresh.id != stale_id
        assert db.session.get(Cart, stale_id).status == CART_STATUS_ABANDONED

    def test_expire_sweep(self, user, other_user):
        stale = cart_service.get_or_create_active_cart(user.id)
        live = cart_service.get_or_create_active_cart(other_user.id)
        stale.updated_at = utcnow() - timedelta(days=30)
        db.session.commit()

        assert cart_service.expire_stale_carts(ttl_days=7) == 1
        assert db.session.get(Cart, stale.id).status == CART_STATUS_ABANDONED
        assert db.session.get(Cart, live.id).status == CART_STATUS_ACTIVE
        assert cart_service.expire_stale_carts(ttl_days=7) == 0
