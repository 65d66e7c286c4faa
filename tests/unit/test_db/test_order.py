import pytest
from unittest.mock import patch, MagicMock
from decimal import Decimal

from botocore.exceptions import ClientError, EndpointConnectionError

from moaawen.db.order import OrderDB, ACTIVE_SESSION_INDEX, build_update, gsi1_pk, gsi1_sk
from moaawen.errors import StoreUnavailable, VersionConflict


@pytest.fixture
def mock_table():
    with patch("boto3.resource") as mock_resource:
        mock_table = MagicMock()
        mock_resource.return_value.Table.return_value = mock_table
        yield mock_table


def _order(**overrides):
    order = {
        "order_id": "o-1",
        "business_id": "biz-1",
        "customer_id": "cust-1",
        "channel": "whatsapp",
        "status": "pending",
        "items": [],
        "subtotal": Decimal("0"),
        "created_at": "2025-03-01T12:00:00.000000Z",
        "updated_at": "2025-03-01T12:00:00.000000Z",
        "version": 1,
    }
    order.update(overrides)
    return order


def _client_error(code, operation="UpdateItem"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def test_key_builders():
    assert gsi1_pk("cust-1", "biz-1", "whatsapp") == "BUSINESS#biz-1#CUSTOMER#cust-1#CHANNEL#whatsapp"
    assert gsi1_sk("2025-03-01T12:00:00.000000Z", "2025-03-01T11:00:00.000000Z", "o-1") == (
        "UPDATED#2025-03-01T12:00:00.000000Z#CREATED#2025-03-01T11:00:00.000000Z#ORDER#o-1"
    )


def test_build_update_sets_fields_and_bumps_version():
    expr, names, values = build_update({"status": "confirmed", "order_flow.stage": "completed"}, 4,
                                       remove=("GSI1PK", "GSI1SK"))

    assert expr == (
        "SET #version = :next_version, #f0_0 = :v0, #f1_0.#f1_1 = :v1"
        " REMOVE #r0_0, #r1_0"
    )
    assert names == {
        "#version": "version",
        "#f0_0": "status",
        "#f1_0": "order_flow",
        "#f1_1": "stage",
        "#r0_0": "GSI1PK",
        "#r1_0": "GSI1SK",
    }
    assert values == {":expected_version": 4, ":next_version": 5, ":v0": "confirmed", ":v1": "completed"}


def test_build_update_converts_floats():
    _, _, values = build_update({"total": 12.5}, 1)
    assert values[":v0"] == Decimal("12.5")


def test_put_new_order_adds_keys(mock_table):
    db = OrderDB()
    item = db.put_new_order(_order(subtotal=9.99))

    assert item["PK"] == "TENANT#biz-1"
    assert item["SK"] == "ORDER#o-1"
    assert item["entity"] == "ORDER"
    assert item["GSI1PK"] == gsi1_pk("cust-1", "biz-1", "whatsapp")
    assert item["GSI1SK"].startswith("UPDATED#2025-03-01T12:00:00.000000Z#")
    assert item["subtotal"] == Decimal("9.99")
    mock_table.put_item.assert_called_once_with(
        Item=item,
        ConditionExpression="attribute_not_exists(PK) AND attribute_not_exists(SK)",
    )


def test_put_new_order_skips_index_keys_for_closed_orders(mock_table):
    item = OrderDB().put_new_order(_order(status="confirmed"))
    assert "GSI1PK" not in item
    assert "GSI1SK" not in item


def test_put_new_order_wraps_errors(mock_table):
    mock_table.put_item.side_effect = _client_error("ProvisionedThroughputExceededException", "PutItem")
    with pytest.raises(StoreUnavailable):
        OrderDB().put_new_order(_order())


def test_get_order_is_consistent(mock_table):
    mock_table.get_item.return_value = {"Item": {"order_id": "o-1"}}

    assert OrderDB().get_order("biz-1", "o-1") == {"order_id": "o-1"}
    mock_table.get_item.assert_called_once_with(
        Key={"PK": "TENANT#biz-1", "SK": "ORDER#o-1"},
        ConsistentRead=True,
    )


def test_get_order_missing(mock_table):
    mock_table.get_item.return_value = {}
    assert OrderDB().get_order("biz-1", "nope") is None


def test_find_active_order_queries_index_newest_first(mock_table):
    mock_table.query.return_value = {"Items": [{"order_id": "o-2"}, {"order_id": "o-1"}]}

    hit = OrderDB().find_active_order("cust-1", "biz-1", "whatsapp", "2025-03-01T00:00:00.000000Z")

    assert hit == {"order_id": "o-2"}
    kwargs = mock_table.query.call_args.kwargs
    assert kwargs["IndexName"] == ACTIVE_SESSION_INDEX
    assert kwargs["ScanIndexForward"] is False
    assert "ExclusiveStartKey" not in kwargs


def test_find_active_order_walks_filtered_pages(mock_table):
    mock_table.query.side_effect = [
        {"Items": [], "LastEvaluatedKey": {"PK": "x"}},
        {"Items": [{"order_id": "o-3"}]},
    ]

    hit = OrderDB().find_active_order("cust-1", "biz-1", "whatsapp", "2025-03-01T00:00:00.000000Z")

    assert hit == {"order_id": "o-3"}
    assert mock_table.query.call_count == 2
    assert mock_table.query.call_args.kwargs["ExclusiveStartKey"] == {"PK": "x"}


def test_find_active_order_none(mock_table):
    mock_table.query.return_value = {"Items": []}
    assert OrderDB().find_active_order("cust-1", "biz-1", "whatsapp", "2025-03-01T00:00:00.000000Z") is None


def test_update_order_is_conditional(mock_table):
    mock_table.update_item.return_value = {"Attributes": {"order_id": "o-1", "version": Decimal("3")}}

    result = OrderDB().update_order("biz-1", "o-1", {"updated_at": "t"}, 2)

    assert result == {"order_id": "o-1", "version": Decimal("3")}
    kwargs = mock_table.update_item.call_args.kwargs
    assert kwargs["Key"] == {"PK": "TENANT#biz-1", "SK": "ORDER#o-1"}
    assert kwargs["ConditionExpression"] == "#version = :expected_version"
    assert kwargs["ExpressionAttributeValues"][":expected_version"] == 2
    assert kwargs["ExpressionAttributeValues"][":next_version"] == 3
    assert kwargs["ReturnValues"] == "ALL_NEW"


def test_update_order_lost_race(mock_table):
    mock_table.update_item.side_effect = _client_error("ConditionalCheckFailedException")

    with pytest.raises(VersionConflict) as exc:
        OrderDB().update_order("biz-1", "o-1", {"updated_at": "t"}, 2)
    assert exc.value.expected_version == 2


def test_update_order_other_client_error(mock_table):
    mock_table.update_item.side_effect = _client_error("ValidationException")
    with pytest.raises(StoreUnavailable):
        OrderDB().update_order("biz-1", "o-1", {"updated_at": "t"}, 2)


def test_update_order_unreachable(mock_table):
    mock_table.update_item.side_effect = EndpointConnectionError(endpoint_url="http://localhost:8000")
    with pytest.raises(StoreUnavailable):
        OrderDB().update_order("biz-1", "o-1", {"updated_at": "t"}, 2)
