"""
Unit tests for the cart model.
"""

import pytest
from decimal import Decimal

from pos_checkout.exceptions import InvalidLineError, InvalidQuantityError
from pos_checkout.services.cart_service import Cart, LineItem, make_identity


def rice(**overrides):
    data = dict(name='Basmati Rice 1kg', unit_price='50.00', tax_percent='5', product_id=1, sku='RICE1KG', mrp='55')
    data.update(overrides)
    return LineItem.create(**data)


class TestAddOrIncrement:
    """Tests for adding lines."""

    def test_add_appends_with_identity_as_line_id(self):
        cart = Cart()
        line = cart.add_or_increment(rice())

        assert len(cart) == 1
        assert line.line_id == make_identity(1) == '1:m'
        assert line.qty == Decimal('1')

    def test_same_identity_increments_instead_of_duplicating(self):
        cart = Cart()
        cart.add_or_increment(rice())
        cart.add_or_increment(rice(), qty=2)

        assert len(cart) == 1
        assert cart.get('1:m').qty == Decimal('3')

    def test_variants_are_separate_rows(self):
        cart = Cart()
        cart.add_or_increment(rice())
        cart.add_or_increment(rice(variant_id=7, mrp='60'))

        assert [line.line_id for line in cart] == ['1:m', '1:7']

    def test_adhoc_lines_always_append(self):
        cart = Cart()
        first = cart.add_or_increment(LineItem.create(name='Carry bag', unit_price='5'))
        second = cart.add_or_increment(LineItem.create(name='Carry bag', unit_price='5'))

        assert first.line_id == 'adhoc-1'
        assert second.line_id == 'adhoc-2'
        assert len(cart) == 2

    def test_fractional_quantity(self):
        cart = Cart()
        line = cart.add_or_increment(rice(), qty='1.250')
        assert line.qty == Decimal('1.250')

    @pytest.mark.parametrize('qty', [0, -1, 'abc'])
    def test_rejects_non_positive_quantity(self, qty):
        cart = Cart()
        with pytest.raises(InvalidQuantityError):
            cart.add_or_increment(rice(), qty=qty)
        assert cart.is_empty

    def test_negative_price_is_rejected_at_creation(self):
        with pytest.raises(InvalidLineError):
            LineItem.create(name='Bad', unit_price='-1')

    def test_insertion_order_is_preserved_across_increments(self):
        cart = Cart()
        cart.add_or_increment(rice())
        cart.add_or_increment(LineItem.create(name='Soap', unit_price='30', product_id=2))
        cart.add_or_increment(rice())

        assert [line.name for line in cart] == ['Basmati Rice 1kg', 'Soap']


class TestUpdateAndRemove:
    """Tests for editing lines."""

    def test_update_quantity_and_price(self):
        cart = Cart()
        cart.add_or_increment(rice())
        line = cart.update('1:m', {'qty': '2.5', 'unit_price': '48'})

        assert line.qty == Decimal('2.5')
        assert line.unit_price == Decimal('48')

    def test_update_rejects_unknown_fields(self):
        cart = Cart()
        cart.add_or_increment(rice())
        with pytest.raises(InvalidLineError):
            cart.update('1:m', {'qty': 2, 'tax_percent': 0})
        assert cart.get('1:m').qty == Decimal('1')

    def test_invalid_update_leaves_row_untouched(self):
        cart = Cart()
        cart.add_or_increment(rice())
        with pytest.raises(InvalidQuantityError):
            cart.update('1:m', {'qty': 0, 'unit_price': '10'})
        with pytest.raises(InvalidLineError):
            cart.update('1:m', {'qty': 4, 'unit_price': '-10'})

        line = cart.get('1:m')
        assert line.qty == Decimal('1')
        assert line.unit_price == Decimal('50.00')

    def test_update_unknown_line(self):
        with pytest.raises(InvalidLineError):
            Cart().update('nope', {'qty': 1})

    def test_remove(self):
        cart = Cart()
        cart.add_or_increment(rice())
        assert cart.remove('1:m') is True
        assert cart.remove('1:m') is False
        assert cart.is_empty

    def test_clear_resets_adhoc_numbering(self):
        cart = Cart()
        cart.add_or_increment(LineItem.create(name='Bag', unit_price='5'))
        cart.clear()
        line = cart.add_or_increment(LineItem.create(name='Bag', unit_price='5'))
        assert line.line_id == 'adhoc-1'


class TestSerialization:
    """Tests for session storage."""

    def test_round_trip_keeps_order_and_values(self):
        cart = Cart()
        cart.add_or_increment(rice(), qty='1.5')
        cart.add_or_increment(LineItem.create(name='Bag', unit_price='5'))

        restored = Cart.from_dict(cart.to_dict())

        assert [line.line_id for line in restored] == ['1:m', 'adhoc-1']
        assert restored.get('1:m').qty == Decimal('1.5')
        assert restored.get('1:m').mrp == Decimal('55')
        assert restored.next_adhoc == 2

    def test_from_empty(self):
        assert Cart.from_dict(None).is_empty


class TestStoredPrecision:
    """Tests for line values limited to what a stored sale line can hold."""

    def test_create_rounds_excess_places(self):
        line = LineItem.create(name='Loose dal', qty='1.2345', unit_price='10.12345',
                               tax_percent='5.125', mrp='12.345')

        assert line.qty == Decimal('1.235')
        assert line.unit_price == Decimal('10.1235')
        assert line.tax_percent == Decimal('5.13')
        assert line.mrp == Decimal('12.35')

    def test_values_within_precision_are_unchanged(self):
        line = LineItem.create(name='Bag', qty='2', unit_price='5')

        assert line.to_dict()['qty'] == '2'
        assert line.to_dict()['unit_price'] == '5'

    def test_added_and_updated_quantities_are_rounded(self):
        cart = Cart()
        line = cart.add_or_increment(rice(), qty='0.3334')
        assert line.qty == Decimal('0.333')

        cart.update('1:m', {'qty': '2.0004', 'unit_price': '49.99999'})
        assert line.qty == Decimal('2.000')
        assert line.unit_price == Decimal('50.0000')

    def test_quantity_rounding_to_zero_is_rejected(self):
        with pytest.raises(InvalidQuantityError):
            Cart().add_or_increment(rice(), qty='0.0004')

    def test_exponent_input_serializes_fixed_point(self):
        line = LineItem.create(name='Bulk rice', qty='1E+1', unit_price='5E+2')

        assert line.to_dict()['qty'] == '10'
        assert line.to_dict()['unit_price'] == '500'
