import copy
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from moaawen.errors import VersionConflict
from moaawen.features.catalog.service import CatalogLookup
from moaawen.features.order.cache import SessionCache
from moaawen.features.order.events import OrderEvents
from moaawen.features.order.model import ACTIVE_STAGES
from moaawen.features.order.service import OrderSessionService


class FakeOrderRepo:
    """In-memory order store with the same version check as the DynamoDB repo."""

    def __init__(self):
        self.orders = {}
        self.find_active_calls = 0
        self.update_calls = 0
        # number of upcoming writes that lose to a simulated concurrent writer
        self.conflicts = 0

    def find_active(self, customer_id, business_id, channel, since_iso):
        self.find_active_calls += 1
        candidates = [
            o for o in self.orders.values()
            if o["customer_id"] == customer_id
            and o["business_id"] == business_id
            and o["channel"] == channel
            and o["status"] == "pending"
            and o["order_flow"]["stage"] in ACTIVE_STAGES
            and o["updated_at"] >= since_iso
        ]
        if not candidates:
            return None
        newest = max(candidates, key=lambda o: (o["updated_at"], o["created_at"], o["order_id"]))
        return copy.deepcopy(newest)

    def insert(self, order):
        self.orders[order["order_id"]] = copy.deepcopy(order)
        return order["order_id"]

    def find_by_id(self, business_id, order_id):
        order = self.orders.get(order_id)
        if order is None or order["business_id"] != business_id:
            return None
        return copy.deepcopy(order)

    def update_fields(self, order, fields, remove=()):
        self.update_calls += 1
        stored = self.orders.get(order["order_id"])
        if stored is None:
            raise VersionConflict(order["order_id"], order["version"])
        if self.conflicts > 0:
            self.conflicts -= 1
            stored["version"] += 1
            raise VersionConflict(order["order_id"], order["version"])
        if stored["version"] != order["version"]:
            raise VersionConflict(order["order_id"], order["version"])

        for path, value in fields.items():
            target = stored
            *parents, leaf = path.split(".")
            for key in parents:
                target = target.setdefault(key, {})
            target[leaf] = copy.deepcopy(value)
        for path in remove:
            stored.pop(path, None)
        stored["version"] += 1
        return copy.deepcopy(stored)

    def force_update(self, order_id, **fields):
        """What another process writing the same order looks like from here."""
        stored = self.orders[order_id]
        stored.update(fields)
        stored["version"] += 1


class FakeCatalog(CatalogLookup):
    def __init__(self, variants=None):
        self.variants = variants or {}

    def add(self, product_id, variant_id, **attrs):
        variant = {
            "title": attrs.pop("title", f"Product {product_id}"),
            "variant_label": attrs.pop("variant_label", "Standard"),
            "discounted_price": None,
            "original_price": None,
            "in_stock": True,
            "sku": None,
            "image": None,
            "options": {"option1": None, "option2": None, "option3": None},
        }
        variant.update(attrs)
        self.variants[(str(product_id), str(variant_id))] = variant

    def get_variant(self, business_id, product_id, variant_id):
        variant = self.variants.get((str(product_id), str(variant_id)))
        return copy.deepcopy(variant) if variant else None


class FakeClock:
    def __init__(self, start=None):
        self.current = start or datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, **delta):
        self.current = self.current + timedelta(**delta)


@pytest.fixture
def repo():
    return FakeOrderRepo()


@pytest.fixture
def catalog():
    cat = FakeCatalog()
    cat.add("P1", "V1", title="Linen Shirt", variant_label="Blue / M", original_price=Decimal("10.00"))
    cat.add("P2", "V2", title="Canvas Tote", discounted_price=Decimal("5.00"), original_price=Decimal("8.00"))
    cat.add("P3", "V3", title="Sold Out Cap", original_price=Decimal("12.00"), in_stock=False)
    cat.add("P4", "V4", title="Mystery Box", discounted_price=0, original_price="n/a")
    cat.add("P5", "V5", title="Socks", discounted_price=Decimal("2.50"))
    return cat


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recorded_events():
    return []


@pytest.fixture
def events(recorded_events):
    bus = OrderEvents()
    bus.subscribe(lambda event, order, details: recorded_events.append((event, order["order_id"], details)))
    return bus


@pytest.fixture
def service(repo, catalog, events, clock):
    return OrderSessionService(
        repo=repo,
        catalog=catalog,
        cache=SessionCache(ttl_seconds=60),
        events=events,
        max_quantity=10,
        max_retries=3,
        max_idle_minutes=1440,
        now=clock,
    )
