import re
from decimal import Decimal

import pytest

from moaawen.features.order import model


def _order_with(items=(), **collected):
    order = model.create_order("biz-1", "cust-1", "whatsapp", "2025-03-01T12:00:00.000000Z")
    order["items"] = list(items)
    order["order_flow"]["collected_info"].update(collected)
    return order


def _line(pid="P1", vid="V1", price="10.00", qty=1):
    return model.create_order_item(pid, vid, "Shirt", "Blue", Decimal(price), qty)


class TestCreateOrder:

    def test_new_order_defaults(self):
        order = model.create_order("biz-1", "cust-1", "whatsapp", "2025-03-01T12:00:00.000000Z", "EUR")

        assert order["status"] == "pending"
        assert order["payment_status"] == "pending"
        assert order["currency"] == "EUR"
        assert order["version"] == 1
        assert order["total"] == Decimal("0")
        assert order["order_flow"] == {
            "stage": "collecting_items",
            "collected_info": {"has_name": False, "has_phone": False, "has_address": False},
            "last_updated": "2025-03-01T12:00:00.000000Z",
        }

    def test_order_number_format(self):
        number = model.generate_order_number()
        assert re.fullmatch(r"ORD-[0-9A-Z]+-[0-9A-Z]{5}", number)

    def test_order_ids_are_unique(self):
        first = model.create_order("b", "c", "web", "t")
        second = model.create_order("b", "c", "web", "t")
        assert first["order_id"] != second["order_id"]


class TestPricing:

    def test_discounted_price_preferred(self):
        assert model.resolve_unit_price({"discounted_price": "7.5", "original_price": 10}) == Decimal("7.5")

    @pytest.mark.parametrize("discounted", [None, "", 0, -1, "abc", float("nan"), float("inf")])
    def test_falls_back_to_original(self, discounted):
        assert model.resolve_unit_price({"discounted_price": discounted, "original_price": "12"}) == Decimal("12")

    def test_no_valid_price(self):
        assert model.resolve_unit_price({"discounted_price": None, "original_price": "free"}) is None

    def test_totals(self):
        order = _order_with([_line(qty=2), _line("P2", "V2", "2.25", 4)])
        order["shipping"] = Decimal("3")
        order["discount"] = Decimal("1")

        total = model.calculate_totals(order)

        assert order["subtotal"] == Decimal("29.00")
        assert total == Decimal("31.00")


class TestStage:

    def test_no_items(self):
        assert model.derive_stage([], {"has_name": True, "has_phone": True, "has_address": True}) == "collecting_items"

    def test_items_without_info(self):
        assert model.derive_stage([_line()], {"has_name": True}) == "collecting_info"

    def test_items_and_info(self):
        info = {"has_name": True, "has_phone": True, "has_address": True}
        assert model.derive_stage([_line()], info) == "reviewing"

    @pytest.mark.parametrize("status, stage", [("confirmed", "completed"), ("cancelled", "cancelled")])
    def test_terminal_stage_is_sticky(self, status, stage):
        assert model.derive_stage([], {}, status, stage) == stage

    def test_apply_stage_updates_order(self):
        order = _order_with([_line()], has_name=True, has_phone=True, has_address=True)
        assert model.apply_stage(order) == "reviewing"
        assert order["order_flow"]["stage"] == "reviewing"


class TestCompleteness:

    def test_missing_info_order(self):
        order = _order_with([], has_phone=True)
        assert model.get_missing_info(order) == ["name", "address", "items"]
        assert model.is_order_flow_complete(order) is False

    def test_complete(self):
        order = _order_with([_line()], has_name=True, has_phone=True, has_address=True)
        assert model.get_missing_info(order) == []
        assert model.is_order_flow_complete(order) is True


class TestHelpers:

    @pytest.mark.parametrize("value, expected", [
        (1, 1), (3.7, 3), ("4", 4), (" 2 ", 2), (0, 1), (-3, 1), (50, 10),
        ("two", 1), (None, 1), (True, 1), (float("nan"), 1),
    ])
    def test_clamp_quantity(self, value, expected):
        assert model.clamp_quantity(value) == expected

    def test_clamp_quantity_custom_max(self):
        assert model.clamp_quantity(50, max_quantity=25) == 25

    def test_find_line_normalizes_ids(self):
        items = [_line("8057183568061", "45292206129341")]
        assert model.find_line(items, 8057183568061.0, '"45292206129341"') == 0
        assert model.find_line(items, "8057183568061", "other") == -1

    def test_line_summary_uses_call_quantity(self):
        line = _line(qty=5)
        summary = model.line_summary(line, 2)
        assert summary["quantity"] == 2
        assert summary["total_price"] == Decimal("20.00")

    def test_is_terminal(self):
        order = _order_with()
        assert model.is_terminal(order) is False
        order["status"] = "confirmed"
        assert model.is_terminal(order) is True


class TestValidateOrder:

    def test_valid(self):
        ok, errors = model.validate_order(_order_with([_line()]))
        assert ok is True
        assert errors == []

    def test_collects_problems(self):
        order = _order_with([model.create_order_item("P1", "", "", "Blue", Decimal("0"), 0)])
        order["channel"] = ""

        ok, errors = model.validate_order(order)

        assert ok is False
        assert "Channel is required" in errors
        assert "Item 1: Variant ID is required" in errors
        assert "Item 1: Product title is required" in errors
        assert "Item 1: Valid price is required" in errors
        assert "Item 1: Valid quantity is required" in errors

    def test_empty_order(self):
        ok, errors = model.validate_order(_order_with())
        assert ok is False
        assert errors == ["Order must have at least one item"]
