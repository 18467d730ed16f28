from decimal import Decimal

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from ugc_reviews.dynamo_client import DynamoBlobStore
from ugc_reviews.errors import UpstreamUnavailableError
from ugc_reviews.store import ConditionFailed, WriteOp


def _client_error(code, operation="PutItem", **extra):
    return ClientError({"Error": {"Code": code, "Message": code}, **extra}, operation)


class FakeTable:
    def __init__(self):
        self.items = {}
        self.puts = []
        self.pages = []
        self.queries = []
        self.error = None

    def get_item(self, Key, ConsistentRead=False):
        if self.error:
            raise self.error
        item = self.items.get((Key["pk"], Key["sk"]))
        return {"Item": item} if item else {}

    def put_item(self, **kwargs):
        if self.error:
            raise self.error
        self.puts.append(kwargs)

    def query(self, **kwargs):
        self.queries.append(dict(kwargs))
        return self.pages.pop(0)


class FakeResource:
    def __init__(self, table):
        self.table = table
        self.table_names = []

    def Table(self, name):
        self.table_names.append(name)
        return self.table


class FakeClient:
    def __init__(self):
        self.calls = []
        self.error = None

    def transact_write_items(self, TransactItems):
        if self.error:
            raise self.error
        self.calls.append(TransactItems)


@pytest.fixture
def table():
    return FakeTable()


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def dynamo(table, client):
    return DynamoBlobStore("UgcReviews", "ugc-reviews", resource=FakeResource(table), client=client)


def test_get_converts_decimals(dynamo, table):
    table.items[("ugc-reviews", "review#1")] = {
        "pk": "ugc-reviews",
        "sk": "review#1",
        "version": Decimal("3"),
        "data": {"rating": Decimal("5"), "score": Decimal("4.5")},
    }

    item = dynamo.get("review#1")

    assert item.key == "review#1"
    assert item.version == 3
    assert item.value == {"rating": 5, "score": 4.5}
    assert isinstance(item.value["rating"], int)


def test_get_missing_returns_none(dynamo):
    assert dynamo.get("review#missing") is None


def test_get_connection_failure_is_upstream_error(dynamo, table):
    table.error = EndpointConnectionError(endpoint_url="https://dynamodb.local")

    with pytest.raises(UpstreamUnavailableError) as exc:
        dynamo.get("review#1")
    assert exc.value.service == "dynamodb"


def test_create_is_conditioned_on_absence(dynamo, table):
    written = dynamo.put("coupon#NU-2610-0001", {"code": "NU-2610-0001"})

    put = table.puts[0]
    assert put["ConditionExpression"] == "attribute_not_exists(sk)"
    assert "ExpressionAttributeValues" not in put
    assert put["Item"]["pk"] == "ugc-reviews"
    assert put["Item"]["sk"] == "coupon#NU-2610-0001"
    assert put["Item"]["version"] == 1
    assert written.version == 1


def test_update_is_conditioned_on_version(dynamo, table):
    dynamo.put("review#1", {"rating": 4.5}, expected_version=2)

    put = table.puts[0]
    assert put["ConditionExpression"] == "#version = :expected"
    assert put["ExpressionAttributeNames"] == {"#version": "version"}
    assert put["ExpressionAttributeValues"] == {":expected": 2}
    assert put["Item"]["version"] == 3
    assert put["Item"]["data"] == {"rating": Decimal("4.5")}


def test_failed_condition_raises_condition_failed(dynamo, table):
    table.error = _client_error("ConditionalCheckFailedException")

    with pytest.raises(ConditionFailed) as exc:
        dynamo.put("review#1", {}, expected_version=1)
    assert exc.value.keys == ("review#1",)


def test_other_put_errors_are_upstream_errors(dynamo, table):
    table.error = _client_error("ProvisionedThroughputExceededException")

    with pytest.raises(UpstreamUnavailableError):
        dynamo.put("review#1", {}, expected_version=1)


def test_scan_follows_pagination(dynamo, table):
    table.pages = [
        {
            "Items": [{"sk": "review#a", "version": Decimal(1), "data": {}}],
            "LastEvaluatedKey": {"pk": "ugc-reviews", "sk": "review#a"},
        },
        {"Items": [{"sk": "review#b", "version": Decimal(2), "data": {"x": 1}}]},
    ]

    items = dynamo.scan("review#")

    assert [(i.key, i.version) for i in items] == [("review#a", 1), ("review#b", 2)]
    assert "ExclusiveStartKey" not in table.queries[0]
    assert table.queries[1]["ExclusiveStartKey"] == {"pk": "ugc-reviews", "sk": "review#a"}


def test_multi_write_uses_one_transaction(dynamo, client):
    written = dynamo.transact(
        [
            WriteOp("coupon#NU-2610-0001", {"code": "NU-2610-0001"}),
            WriteOp("review#1", {"status": "approved"}, expected_version=1),
        ]
    )

    items = client.calls[0]
    assert len(items) == 2
    coupon_put, review_put = items[0]["Put"], items[1]["Put"]
    assert coupon_put["TableName"] == "UgcReviews"
    assert coupon_put["ConditionExpression"] == "attribute_not_exists(sk)"
    assert coupon_put["Item"]["sk"] == {"S": "coupon#NU-2610-0001"}
    assert review_put["ConditionExpression"] == "#version = :expected"
    assert review_put["ExpressionAttributeValues"] == {":expected": {"N": "1"}}
    assert review_put["Item"]["version"] == {"N": "2"}
    assert [w.version for w in written] == [1, 2]


def test_cancelled_transaction_reports_losing_keys(dynamo, client):
    client.error = _client_error(
        "TransactionCanceledException",
        operation="TransactWriteItems",
        CancellationReasons=[{"Code": "None"}, {"Code": "ConditionalCheckFailed"}],
    )

    with pytest.raises(ConditionFailed) as exc:
        dynamo.transact(
            [
                WriteOp("coupon#NU-2610-0001", {}),
                WriteOp("review#1", {}, expected_version=1),
            ]
        )
    assert exc.value.keys == ("review#1",)


def test_cancelled_transaction_without_conflict_is_upstream_error(dynamo, client):
    client.error = _client_error(
        "TransactionCanceledException",
        operation="TransactWriteItems",
        CancellationReasons=[{"Code": "None"}, {"Code": "ValidationError"}],
    )

    with pytest.raises(UpstreamUnavailableError):
        dynamo.transact([WriteOp("a", {}), WriteOp("b", {})])
