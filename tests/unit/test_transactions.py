from __future__ import annotations

import json

import httpx
import pytest

from alternator_py import AlternatorClient, AlternatorConfig, SchemaRegistry
from alternator_py.errors import AwsError, RollbackFailedError, TransactionFailedError, ValidationError
from alternator_py.testkit import FakeAlternator, aws_error_body, make_client, no_sleep
from alternator_py.transaction import TransactDelete, TransactGet, TransactPut, TransactUpdate

TABLES = {"users": {"PK": "id"}, "events": {"PK": "pk", "SK": "ts"}}

U1 = {"id": {"S": "u1"}, "name": {"S": "A"}}


def test_transact_write_success() -> None:
    fake = FakeAlternator()
    fake.expect("GetItem", {"Key": {"id": {"S": "u1"}}}, response={"Item": U1})
    fake.expect("GetItem", {"Key": {"id": {"S": "u3"}}}, response={})
    fake.expect("PutItem", {"Item": {"id": {"S": "u2"}}}, response={})
    fake.expect("UpdateItem", response={"Attributes": {"id": {"S": "u1"}, "name": {"S": "B"}}})
    fake.expect("DeleteItem", response={})
    client = make_client(fake, tables=TABLES)

    result = client.transact_write(
        [
            TransactPut("users", {"id": "u2"}),
            {"table": "users", "action": "update", "key": {"id": "u1"}, "data": {"name": "B"}},
            TransactDelete("users", {"id": "u3"}),
        ]
    )

    assert result.success is True
    assert result.message == "transaction completed successfully"
    assert [r.result for r in result.results] == [True, {"id": "u1", "name": "B"}, False]
    fake.assert_no_pending()


def test_transact_write_rolls_back_updated_item() -> None:
    fake = FakeAlternator()
    fake.expect("GetItem", {"Key": {"id": {"S": "u1"}}}, response={"Item": U1})
    fake.expect(
        "UpdateItem",
        {"Key": {"id": {"S": "u1"}}},
        response={"Attributes": {"id": {"S": "u1"}, "name": {"S": "B"}}},
    )
    fake.expect_error("PutItem", "ValidationException", "item too large")
    fake.expect("PutItem", {"Item": U1}, response={})
    client = make_client(fake, tables=TABLES)

    with pytest.raises(TransactionFailedError) as exc_info:
        client.transact_write(
            [
                TransactUpdate("users", {"id": "u1"}, {"name": "B"}),
                TransactPut("users", {"id": "u2", "blob": "x"}),
            ]
        )

    err = exc_info.value
    assert err.rolled_back is True
    assert "item too large" in str(err)
    assert [r.success for r in err.results] == [True, False]
    assert isinstance(err.__cause__, AwsError)
    assert fake.operations() == ["GetItem", "UpdateItem", "PutItem", "PutItem"]
    fake.assert_no_pending()


def test_transact_write_rollback_puts_deletes_created_items() -> None:
    fake = FakeAlternator()
    fake.expect("GetItem", {"Key": {"id": {"S": "u2"}}}, response={})
    fake.expect("GetItem", {"Key": {"id": {"S": "u1"}}}, response={"Item": U1})
    fake.expect("PutItem", response={})
    fake.expect_error("UpdateItem", "ConditionalCheckFailedException", "nope")
    fake.expect("DeleteItem", {"Key": {"id": {"S": "u2"}}}, response={"Attributes": {"id": {"S": "u2"}}})
    fake.expect("PutItem", {"Item": U1}, response={})
    client = make_client(fake, tables=TABLES)

    with pytest.raises(TransactionFailedError) as exc_info:
        client.transact_write(
            [
                TransactPut("users", {"id": "u2"}),
                TransactUpdate("users", {"id": "u1"}, {"name": "B"}),
            ],
            rollback_puts=True,
        )

    assert exc_info.value.rolled_back is True
    fake.assert_no_pending()


def test_transact_write_reports_rollback_failure() -> None:
    fake = FakeAlternator()
    fake.expect("GetItem", response={"Item": U1})
    fake.expect_error("DeleteItem", "ValidationException", "first failure")
    fake.expect_error("PutItem", "ValidationException", "restore failure")
    client = make_client(fake, tables=TABLES)

    with pytest.raises(RollbackFailedError) as exc_info:
        client.transact_write([TransactDelete("users", {"id": "u1"})])

    err = exc_info.value
    assert "first failure" in str(err.original)
    assert "restore failure" in str(err.rollback_error)
    assert err.rolled_back is False
    assert isinstance(err, TransactionFailedError)


def test_transact_write_without_rollback() -> None:
    fake = FakeAlternator()
    fake.expect("DeleteItem", status=500)
    client = make_client(fake, tables=TABLES, max_attempts=5)

    with pytest.raises(TransactionFailedError) as exc_info:
        client.transact_write(
            [TransactDelete("users", {"id": "u1"})],
            rollback_on_failure=False,
            retry_attempts=1,
        )

    assert exc_info.value.rolled_back is False
    assert fake.operations() == ["DeleteItem"]


def test_transact_write_snapshot_failure_aborts_before_writes() -> None:
    fake = FakeAlternator()
    fake.expect_error("GetItem", "ResourceNotFoundException", "no table")
    client = make_client(fake, tables=TABLES)

    with pytest.raises(TransactionFailedError, match="no table"):
        client.transact_write([TransactUpdate("users", {"id": "u1"}, {"name": "B"})])
    assert fake.operations() == ["GetItem"]


def test_transact_write_validates_everything_up_front() -> None:
    fake = FakeAlternator()
    client = make_client(fake, tables=TABLES)

    with pytest.raises(ValidationError, match="transact_write limit is 25"):
        client.transact_write([TransactDelete("users", {"id": str(i)}) for i in range(26)])
    with pytest.raises(ValidationError, match="missing required key attribute"):
        client.transact_write([TransactDelete("users", {"id": "u1"}), TransactPut("events", {"pk": "a"})])
    with pytest.raises(ValidationError, match="unsupported action: merge"):
        client.transact_write([{"table": "users", "action": "merge", "key": {"id": "u1"}}])
    with pytest.raises(ValidationError, match="table and action"):
        client.transact_write([{"action": "put", "item": {"id": "u1"}}])
    with pytest.raises(ValidationError, match="update operation requires key and data"):
        client.transact_write([TransactUpdate("users", {"id": "u1"}, {})])
    with pytest.raises(ValidationError):
        client.transact_write([TransactDelete("users", {"id": "u1"})], retry_attempts=0)

    assert fake.calls == []


def test_transact_get_preserves_input_order_across_tables() -> None:
    fake = FakeAlternator()
    fake.expect(
        "BatchGetItem",
        {"RequestItems": {"users": {"Keys": [{"id": {"S": "u1"}}, {"id": {"S": "u2"}}]}}},
        response={"Responses": {"users": [{"id": {"S": "u2"}}, {"id": {"S": "u1"}}]}},
    )
    fake.expect(
        "BatchGetItem",
        {"RequestItems": {"events": {"Keys": [{"pk": {"S": "a"}, "ts": {"N": "1"}}]}}},
        response={"Responses": {"events": []}},
    )
    client = make_client(fake, tables=TABLES)

    result = client.transact_get(
        [
            TransactGet("users", {"id": "u1"}),
            {"table": "events", "key": {"pk": "a", "ts": 1}},
            TransactGet("users", {"id": "u2"}),
        ]
    )

    assert result.success is True
    assert [r.result for r in result.results] == [{"id": "u1"}, None, {"id": "u2"}]
    assert result.message == "transaction get completed successfully"


def test_transact_get_validates_and_wraps_errors() -> None:
    fake = FakeAlternator()
    client = make_client(fake, tables=TABLES)

    with pytest.raises(ValidationError, match="table and key"):
        client.transact_get([{"table": "users"}])
    with pytest.raises(ValidationError):
        client.transact_get([TransactGet("events", {"pk": "a"})])
    assert fake.calls == []

    fake.expect_error("BatchGetItem", "ValidationException", "bad")
    with pytest.raises(TransactionFailedError, match="transaction get failed"):
        client.transact_get([TransactGet("users", {"id": "u1"})], consistent_read=True)
    assert fake.calls[0].body["RequestItems"]["users"]["ConsistentRead"] is True


def _in_memory_users(store: dict[str, dict], *, reject: set[str]) -> httpx.MockTransport:
    """Single-table Alternator stand-in keyed on ``id``; updates to ``reject`` ids fail."""

    def handle(request: httpx.Request) -> httpx.Response:
        operation = request.headers["X-Amz-Target"].rsplit(".", 1)[-1]
        body = json.loads(request.content)
        if operation == "PutItem":
            store[body["Item"]["id"]["S"]] = body["Item"]
            return httpx.Response(200, json={})

        item_id = body["Key"]["id"]["S"]
        if operation == "GetItem":
            return httpx.Response(200, json={"Item": store[item_id]} if item_id in store else {})
        if operation == "UpdateItem":
            if item_id in reject:
                return httpx.Response(400, json=aws_error_body("ValidationException", "rejected"))
            updated = dict(store.get(item_id, body["Key"]))
            names = body["ExpressionAttributeNames"]
            for ref, value in body["ExpressionAttributeValues"].items():
                updated[names[ref.replace(":v", "#f")]] = value
            store[item_id] = updated
            return httpx.Response(200, json={"Attributes": updated})
        raise AssertionError(f"unexpected operation: {operation}")

    return httpx.MockTransport(handle)


@pytest.mark.parametrize("enable_cache", [False, True])
def test_failed_transaction_restores_pre_transaction_values(enable_cache: bool) -> None:
    store: dict[str, dict] = {}
    client = AlternatorClient(
        AlternatorConfig(endpoint="http://alternator.test/", enable_cache=enable_cache),
        registry=SchemaRegistry.from_mapping({"users": {"PK": "id"}}),
        http_transport=_in_memory_users(store, reject={"b"}),
        sleep=no_sleep,
    )
    client.put_item("users", {"id": "a", "balance": 100})
    client.put_item("users", {"id": "b", "balance": 0})

    with pytest.raises(TransactionFailedError) as exc_info:
        client.transact_write(
            [
                TransactUpdate("users", {"id": "a"}, {"balance": 50}),
                TransactUpdate("users", {"id": "b"}, {"balance": 50}),
            ]
        )

    assert exc_info.value.rolled_back is True
    assert client.get_item("users", {"id": "a"}) == {"id": "a", "balance": 100}
    assert client.get_item("users", {"id": "b"}) == {"id": "b", "balance": 0}
    assert store["a"] == {"id": {"S": "a"}, "balance": {"N": "100"}}
