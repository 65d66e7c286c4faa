"""
Order session service: the per-conversation order lifecycle.

One pending order per (customer, business, channel) collects items and
customer details until it is confirmed or cancelled. Every mutation is a
read-modify-write guarded twice:

* a per-key lock serializes calls for the same session inside this process;
* the store write is conditional on the order's `version`, so a writer in
  another process that got there first makes us re-read and re-apply.

Expected outcomes (unknown product, out of stock, incomplete info...) come
back as `standard_response(False, error=...)`. Store failures raise.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple, Union

from moaawen.config import config
from moaawen.errors import ConcurrentUpdateError, OrderError, VersionConflict
from moaawen.features.catalog.service import CatalogLookup, CatalogService
from moaawen.logging_config import log_operation
from moaawen.utils.coreutil import minutes_ago_iso, now_iso
from moaawen.utils.ids import normalize_channel, normalize_id, session_key
from moaawen.utils.response import failure, standard_response

from . import events as ev
from .cache import KeyedLocks, SessionCache
from .model import (
    CUSTOMER_FIELDS,
    STAGE_CANCELLED,
    STAGE_COMPLETED,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    apply_stage,
    calculate_totals,
    clamp_quantity,
    create_order,
    create_order_item,
    find_line,
    get_missing_info,
    is_order_flow_complete,
    is_terminal,
    line_summary,
    resolve_unit_price,
    validate_order,
)
from .presenter import OrderPresenter
from .repo import OrderRepo

logger = logging.getLogger(__name__)

_INFO_FLAGS = {"name": "has_name", "phone": "has_phone", "address": "has_address"}

# A planned write: fields to SET, attributes to REMOVE, and the data to hand
# back once the write went through.
Plan = Tuple[Dict[str, Any], Tuple[str, ...], Dict[str, Any]]


class OrderSessionService:
    """Service class for order session operations."""

    def __init__(
        self,
        repo: Optional[OrderRepo] = None,
        catalog: Optional[CatalogLookup] = None,
        cache: Optional[SessionCache] = None,
        events: Optional[ev.OrderEvents] = None,
        locks: Optional[KeyedLocks] = None,
        presenter: Optional[OrderPresenter] = None,
        max_quantity: Optional[int] = None,
        max_retries: Optional[int] = None,
        max_idle_minutes: Optional[int] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.repo = repo or OrderRepo()
        self.catalog = catalog or CatalogService()
        self.cache = cache if cache is not None else SessionCache(config.SESSION_CACHE_TTL_SECONDS)
        self.events = events or ev.OrderEvents()
        self.locks = locks or KeyedLocks()
        self.presenter = presenter or OrderPresenter()
        self.max_quantity = max_quantity or config.ORDER_MAX_QUANTITY_PER_CALL
        self.max_retries = max(1, max_retries or config.ORDER_WRITE_MAX_RETRIES)
        self.max_idle_minutes = max_idle_minutes or config.SESSION_MAX_IDLE_MINUTES
        self._now = now or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Session resolution
    # ------------------------------------------------------------------

    def resolve_session(
        self,
        customer_id: Any,
        business_id: Any,
        channel: Any,
        create_if_missing: bool = True,
        max_idle_minutes: Optional[int] = None,
        touch_on_access: bool = True,
    ) -> Optional[Dict[str, Any]]:
        """
        Fetch the active order for a conversation, creating one if allowed.

        Returns None only when nothing is active and `create_if_missing` is
        False. Raises ValueError for blank key parts and StoreUnavailable when
        DynamoDB fails.
        """
        cid, bid, chan = self._key_parts(customer_id, business_id, channel)
        if not (cid and bid and chan):
            raise ValueError("customer_id, business_id and channel are required")
        key = session_key(cid, bid, chan)
        with self.locks.hold(key):
            return self._resolve(cid, bid, chan, create_if_missing, max_idle_minutes, touch_on_access)

    def _resolve(self, cid: str, bid: str, chan: str, create_if_missing: bool,
                 max_idle_minutes: Optional[int], touch_on_access: bool) -> Optional[Dict[str, Any]]:
        key = session_key(cid, bid, chan)
        cached = self.cache.get(key)
        if cached is not None and not is_terminal(cached):
            return cached

        now = self._now()
        idle = self.max_idle_minutes if max_idle_minutes is None else max_idle_minutes
        order = self.repo.find_active(cid, bid, chan, minutes_ago_iso(idle, now))

        if order is None:
            if not create_if_missing:
                return None
            order = create_order(bid, cid, chan, now_iso(now), config.DEFAULT_CURRENCY)
            self.repo.insert(order)
            logger.info("Order session created",
                        extra={"order_id": order["order_id"], "business_id": bid, "channel": chan})
            self.events.emit(ev.SESSION_CREATED, order)
        elif touch_on_access:
            try:
                order = self.repo.update_fields(order, {"updated_at": now_iso(now)})
            except VersionConflict:
                # Someone else wrote (and thereby touched) it in between.
                order = self.repo.find_by_id(bid, order["order_id"])
                if order is None or is_terminal(order):
                    return self._resolve(cid, bid, chan, create_if_missing, max_idle_minutes, False)

        self.cache.put(key, order)
        return order

    def clear_session(self, customer_id: Any, business_id: Any, channel: Any) -> None:
        """Forget the cached copy of a session; the store is untouched."""
        self.cache.evict(session_key(*self._key_parts(customer_id, business_id, channel)))

    # ------------------------------------------------------------------
    # Item mutation
    # ------------------------------------------------------------------

    @log_operation()
    def add_item(self, customer_id: Any, business_id: Any, channel: Any,
                 product_id: Any, variant_id: Any, quantity: Any = 1) -> Dict[str, Any]:
        """
        Add `quantity` of a catalog variant to the session, creating the session if needed.

        Returns success with {order, added_line}, or one of not_found,
        out_of_stock, invalid_price, order_terminal.
        """
        qty = clamp_quantity(quantity, self.max_quantity)
        pid, vid = normalize_id(product_id), normalize_id(variant_id)

        def plan(order: Dict[str, Any], variant: Dict[str, Any], price) -> Plan:
            items = order["items"]
            index = find_line(items, pid, vid)
            if index >= 0:
                line = items[index]
                line["quantity"] = int(line["quantity"]) + qty
                line["price"] = price
                line["total_price"] = price * line["quantity"]
            else:
                line = create_order_item(
                    pid, vid, variant.get("title") or "", variant.get("variant_label") or "Standard",
                    price, qty,
                    {**(variant.get("options") or {}), "sku": variant.get("sku"), "image": variant.get("image")},
                )
                items.append(line)
            return self._items_plan(order), (), {"added_line": line_summary(line, qty)}

        def run(order: Dict[str, Any]) -> Union[Dict[str, Any], Callable[[Dict[str, Any]], Plan]]:
            variant = self.catalog.get_variant(order["business_id"], pid, vid)
            if not variant:
                logger.warning("Catalog variant not found",
                               extra={"order_id": order["order_id"], "product_id": pid, "variant_id": vid})
                return failure(OrderError.NOT_FOUND, {"product_id": pid, "variant_id": vid})
            if variant.get("in_stock") is False:
                return failure(OrderError.OUT_OF_STOCK, {"product_id": pid, "variant_id": vid})
            price = resolve_unit_price(variant)
            if price is None:
                logger.warning("Catalog variant has no usable price",
                               extra={"order_id": order["order_id"], "product_id": pid, "variant_id": vid})
                return failure(OrderError.INVALID_PRICE, {"product_id": pid, "variant_id": vid})
            return lambda o: plan(o, variant, price)

        return self._mutate(customer_id, business_id, channel, run, create_if_missing=True,
                            event=ev.ITEM_ADDED, reread=True)

    @log_operation()
    def remove_item(self, customer_id: Any, business_id: Any, channel: Any,
                    product_id: Any, variant_id: Any) -> Dict[str, Any]:
        """Remove a line from an existing session. Returns {order, removed_line}."""
        pid, vid = normalize_id(product_id), normalize_id(variant_id)

        def plan(order: Dict[str, Any]) -> Union[Dict[str, Any], Plan]:
            index = find_line(order["items"], pid, vid)
            if index < 0:
                return failure(OrderError.ITEM_NOT_FOUND, {"product_id": pid, "variant_id": vid})
            removed = order["items"].pop(index)
            return self._items_plan(order), (), {"removed_line": removed}

        return self._mutate(customer_id, business_id, channel, lambda order: plan, create_if_missing=False,
                            event=ev.ITEM_REMOVED, reread=True)

    def _items_plan(self, order: Dict[str, Any]) -> Dict[str, Any]:
        calculate_totals(order)
        stage = apply_stage(order)
        stamp = now_iso(self._now())
        return {
            "items": order["items"],
            "subtotal": order["subtotal"],
            "total": order["total"],
            "order_flow.stage": stage,
            "order_flow.last_updated": stamp,
            "updated_at": stamp,
        }

    # ------------------------------------------------------------------
    # Customer info
    # ------------------------------------------------------------------

    @log_operation()
    def update_customer_info(self, customer_id: Any, business_id: Any, channel: Any,
                             customer_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge non-blank customer fields into the session.

        Returns {order, is_complete, missing_fields}. Blank or absent fields
        never clear what was collected before.
        """
        data = dict(customer_data or {})
        if not data.get("notes") and data.get("additional_notes"):
            data["notes"] = data["additional_notes"]
        updates = {}
        for field in CUSTOMER_FIELDS:
            value = data.get(field)
            if value is None:
                continue
            value = str(value).strip()
            if value:
                updates[field] = value

        def plan(order: Dict[str, Any]) -> Plan:
            stamp = now_iso(self._now())
            fields: Dict[str, Any] = {}
            collected = order["order_flow"].setdefault("collected_info", {})
            for field, value in updates.items():
                order["customer"][field] = value
                fields[f"customer.{field}"] = value
                flag = _INFO_FLAGS.get(field)
                if flag:
                    collected[flag] = True
                    fields[f"order_flow.collected_info.{flag}"] = True
            fields["order_flow.stage"] = apply_stage(order)
            fields["order_flow.last_updated"] = stamp
            fields["updated_at"] = stamp
            return fields, (), {}

        result = self._mutate(customer_id, business_id, channel, lambda order: plan,
                              create_if_missing=False, event=ev.CUSTOMER_UPDATED)
        if result["success"]:
            order = result["data"]["order"]
            result["data"]["is_complete"] = is_order_flow_complete(order)
            result["data"]["missing_fields"] = get_missing_info(order)
        return result

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    @log_operation()
    def confirm_order(self, customer_id: Any, business_id: Any, channel: Any) -> Dict[str, Any]:
        """
        Confirm the active session. Never creates one.

        Fails with no_active_session, empty_order or incomplete_info
        (data carries missing_fields).
        """
        def plan(order: Dict[str, Any]) -> Union[Dict[str, Any], Plan]:
            if not order["items"]:
                return failure(OrderError.EMPTY_ORDER)
            if not is_order_flow_complete(order):
                return failure(OrderError.INCOMPLETE_INFO, {"missing_fields": get_missing_info(order)})
            valid, problems = validate_order(order)
            if not valid:
                logger.warning("Confirming order with validation warnings",
                               extra={"order_id": order["order_id"], "problems": problems})
            stamp = now_iso(self._now())
            fields = {
                "status": STATUS_CONFIRMED,
                "order_flow.stage": STAGE_COMPLETED,
                "order_flow.last_updated": stamp,
                "confirmed_at": stamp,
                "updated_at": stamp,
            }
            return fields, ("GSI1PK", "GSI1SK"), {"order_id": order["order_id"],
                                                  "order_number": order.get("order_number")}

        return self._mutate(customer_id, business_id, channel, lambda order: plan,
                            create_if_missing=False, event=ev.ORDER_CONFIRMED, closes=True)

    @log_operation()
    def cancel_order(self, customer_id: Any, business_id: Any, channel: Any) -> Dict[str, Any]:
        """Cancel the active session. Never creates one."""
        def plan(order: Dict[str, Any]) -> Plan:
            stamp = now_iso(self._now())
            fields = {
                "status": STATUS_CANCELLED,
                "order_flow.stage": STAGE_CANCELLED,
                "order_flow.last_updated": stamp,
                "updated_at": stamp,
            }
            return fields, ("GSI1PK", "GSI1SK"), {}

        return self._mutate(customer_id, business_id, channel, lambda order: plan,
                            create_if_missing=False, event=ev.ORDER_CANCELLED, closes=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order_summary(self, customer_id: Any, business_id: Any, channel: Any) -> Dict[str, Any]:
        """Rendered summary of the active session, without creating or touching it."""
        cid, bid, chan = self._key_parts(customer_id, business_id, channel)
        if not (cid and bid and chan):
            return failure(OrderError.INVALID_ARGUMENT)
        order = self.resolve_session(cid, bid, chan, create_if_missing=False, touch_on_access=False)
        if order is None:
            return failure(OrderError.NO_ACTIVE_SESSION)
        return standard_response(True, data={"order": order, "text": self.presenter.render_summary(order)})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _key_parts(customer_id: Any, business_id: Any, channel: Any) -> Tuple[str, str, str]:
        return normalize_id(customer_id), normalize_id(business_id), normalize_channel(channel)

    def _mutate(
        self,
        customer_id: Any,
        business_id: Any,
        channel: Any,
        prepare: Callable[[Dict[str, Any]], Any],
        create_if_missing: bool,
        event: str,
        reread: bool = False,
        closes: bool = False,
    ) -> Dict[str, Any]:
        """
        Resolve the session, apply a planned write and commit it conditionally.

        `prepare(order)` runs once per call (catalog checks live there) and
        returns either a failure envelope or `plan(order)`; `plan` runs on a
        private copy of the order for every attempt and returns a failure
        envelope or (fields, remove, extra_data).
        """
        cid, bid, chan = self._key_parts(customer_id, business_id, channel)
        if not (cid and bid and chan):
            return failure(OrderError.INVALID_ARGUMENT)
        key = session_key(cid, bid, chan)

        with self.locks.hold(key):
            order = self._resolve(cid, bid, chan, create_if_missing, None, False)
            if order is None:
                return failure(OrderError.NO_ACTIVE_SESSION)

            plan = prepare(order)
            if isinstance(plan, dict):
                return plan

            for attempt in range(1, self.max_retries + 1):
                if is_terminal(order):
                    self.cache.evict(key)
                    return failure(OrderError.ORDER_TERMINAL, {"order_id": order["order_id"],
                                                                "status": order.get("status")})
                outcome = plan(copy.deepcopy(order))
                if isinstance(outcome, dict):
                    return outcome
                fields, remove, extra = outcome
                try:
                    committed = self.repo.update_fields(order, fields, remove)
                except VersionConflict:
                    logger.warning("Order changed underneath us, retrying",
                                   extra={"order_id": order["order_id"], "attempt": attempt})
                    self.cache.evict(key)
                    order = self.repo.find_by_id(bid, order["order_id"])
                    if order is None:
                        return failure(OrderError.NO_ACTIVE_SESSION)
                    continue

                if reread:
                    committed = self.repo.find_by_id(bid, committed["order_id"]) or committed
                if closes:
                    self.cache.evict(key)
                else:
                    self.cache.put(key, committed)

                logger.info("Order updated", extra={
                    "order_id": committed["order_id"],
                    "event": event,
                    "stage": committed.get("order_flow", {}).get("stage"),
                    "version": committed.get("version"),
                })
                self.events.emit(event, committed, **extra)
                return standard_response(True, data={"order": committed, **extra})

        raise ConcurrentUpdateError(
            f"order session {key} kept changing after {self.max_retries} attempts"
        )
