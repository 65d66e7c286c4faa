from unittest.mock import Mock, call

from moaawen.features.order import events as ev


def test_listeners_receive_details():
    bus = ev.OrderEvents()
    listener = bus.subscribe(Mock())

    bus.emit(ev.ITEM_ADDED, {"order_id": "o-1"}, added_line={"quantity": 2})

    listener.assert_called_once_with(ev.ITEM_ADDED, {"order_id": "o-1"}, {"added_line": {"quantity": 2}})


def test_unsubscribe():
    bus = ev.OrderEvents()
    listener = bus.subscribe(Mock())
    bus.unsubscribe(listener)
    bus.unsubscribe(listener)

    bus.emit(ev.ORDER_CANCELLED, {"order_id": "o-1"})

    listener.assert_not_called()


def test_usage_meter_counts_actions_and_confirmations():
    usage_db = Mock()
    meter = ev.UsageMeter(db=usage_db)

    meter(ev.ITEM_ADDED, {"business_id": "biz-1"}, {})
    meter(ev.ORDER_CONFIRMED, {"business_id": "biz-1"}, {})

    assert usage_db.increment.call_args_list == [
        call("biz-1", "order_actions"),
        call("biz-1", "order_actions"),
        call("biz-1", "orders_confirmed"),
    ]


def test_usage_meter_skips_orders_without_business():
    usage_db = Mock()
    ev.UsageMeter(db=usage_db)(ev.ITEM_ADDED, {}, {})
    usage_db.increment.assert_not_called()
