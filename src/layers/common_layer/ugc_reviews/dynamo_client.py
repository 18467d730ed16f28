from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import TypeSerializer
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from ugc_reviews.errors import UpstreamUnavailableError
from ugc_reviews.store import (
    MUST_NOT_EXIST,
    BlobStore,
    ConditionFailed,
    VersionedItem,
    WriteOp,
)

# Cancellation reasons that mean "someone else wrote first"; retry the cycle.
_LOST_RACE_CODES = {"ConditionalCheckFailed", "TransactionConflict"}


class DynamoBlobStore(BlobStore):
    """
    Blob store on a single DynamoDB table.

    Items live under partition ``pk = <namespace>`` with the record key as
    sort key ``sk``; the JSON value sits in ``data`` next to ``version``.
    """

    def __init__(
        self,
        table_name: str,
        namespace: str,
        region_name: Optional[str] = None,
        timeout: float = 5.0,
        resource=None,
        client=None,
    ):
        self.table_name = table_name
        self.namespace = namespace

        config = Config(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 3, "mode": "standard"},
        )
        self.resource = resource or boto3.resource(
            "dynamodb", region_name=region_name, config=config
        )
        self.client = client or boto3.client(
            "dynamodb", region_name=region_name, config=config
        )
        self.table = self.resource.Table(self.table_name)
        self.serializer = TypeSerializer()

    def _replace_decimals(self, obj):
        """Recursively converts Decimal to int/float for JSON serialization."""
        if isinstance(obj, list):
            return [self._replace_decimals(i) for i in obj]
        elif isinstance(obj, dict):
            return {k: self._replace_decimals(v) for k, v in obj.items()}
        elif isinstance(obj, Decimal):
            return int(obj) if obj % 1 == 0 else float(obj)
        return obj

    def _sanitize_float(self, obj):
        """Recursively converts float to Decimal for DynamoDB storage."""
        if isinstance(obj, float):
            return Decimal(str(obj))
        elif isinstance(obj, dict):
            return {k: self._sanitize_float(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [self._sanitize_float(i) for i in obj]
        return obj

    def to_dynamo_json(self, data: dict) -> dict:
        """Converts standard Dict to DynamoDB JSON format ({"S": "val"} etc)."""
        clean_data = self._sanitize_float(data)
        return self.serializer.serialize(clean_data)["M"]

    def _to_versioned(self, item: dict) -> VersionedItem:
        clean = self._replace_decimals(item)
        return VersionedItem(clean["sk"], clean.get("data") or {}, int(clean["version"]))

    def _build_item(self, op: WriteOp) -> dict:
        return {
            "pk": self.namespace,
            "sk": op.key,
            "version": op.expected_version + 1,
            "data": op.value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

    @staticmethod
    def _condition(op: WriteOp):
        if op.expected_version == MUST_NOT_EXIST:
            return "attribute_not_exists(sk)", None, None
        return "#version = :expected", {"#version": "version"}, {":expected": op.expected_version}

    def get(self, key: str) -> Optional[VersionedItem]:
        try:
            response = self.table.get_item(
                Key={"pk": self.namespace, "sk": key}, ConsistentRead=True
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error getting item {key}: {e}")
            raise UpstreamUnavailableError("Storage unavailable", service="dynamodb") from e

        item = response.get("Item")
        return self._to_versioned(item) if item else None

    def scan(self, prefix: str) -> List[VersionedItem]:
        key_condition = Key("pk").eq(self.namespace) & Key("sk").begins_with(prefix)
        query_kwargs = {"KeyConditionExpression": key_condition, "ConsistentRead": True}
        items = []

        try:
            while True:
                response = self.table.query(**query_kwargs)
                items.extend(response.get("Items", []))

                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                query_kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error querying prefix {prefix}: {e}")
            raise UpstreamUnavailableError("Storage unavailable", service="dynamodb") from e

        return [self._to_versioned(item) for item in items]

    def transact(self, ops: List[WriteOp]) -> List[VersionedItem]:
        if len(ops) == 1:
            return [self._put_one(ops[0])]

        transact_items = []
        for op in ops:
            expression, names, values = self._condition(op)
            put = {
                "TableName": self.table_name,
                "Item": self.to_dynamo_json(self._build_item(op)),
                "ConditionExpression": expression,
            }
            if names:
                put["ExpressionAttributeNames"] = names
                put["ExpressionAttributeValues"] = self.to_dynamo_json(values)
            transact_items.append({"Put": put})

        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except ClientError as e:
            if e.response["Error"]["Code"] == "TransactionCanceledException":
                reasons = e.response.get("CancellationReasons", [])
                failed = [
                    op.key
                    for op, reason in zip(ops, reasons)
                    if reason.get("Code") in _LOST_RACE_CODES
                ]
                if failed:
                    raise ConditionFailed(failed) from e
            logger.error(f"Transaction failed: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError("Storage unavailable", service="dynamodb") from e
        except BotoCoreError as e:
            logger.error(f"Transaction failed: {e}")
            raise UpstreamUnavailableError("Storage unavailable", service="dynamodb") from e

        return [VersionedItem(op.key, op.value, op.expected_version + 1) for op in ops]

    def _put_one(self, op: WriteOp) -> VersionedItem:
        expression, names, values = self._condition(op)
        put_kwargs = {
            "Item": self._sanitize_float(self._build_item(op)),
            "ConditionExpression": expression,
        }
        if names:
            put_kwargs["ExpressionAttributeNames"] = names
            put_kwargs["ExpressionAttributeValues"] = values

        try:
            self.table.put_item(**put_kwargs)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise ConditionFailed([op.key]) from e
            logger.error(f"Error putting item: {e.response['Error']['Message']}")
            raise UpstreamUnavailableError("Storage unavailable", service="dynamodb") from e
        except BotoCoreError as e:
            logger.error(f"Error putting item {op.key}: {e}")
            raise UpstreamUnavailableError("Storage unavailable", service="dynamodb") from e

        return VersionedItem(op.key, op.value, op.expected_version + 1)
