# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""DynamoDB backed PersistentStore.

Each key is a single item:
    store_key (hash key) | store_value (JSON document) | store_version (random token renewed on each write)

Atomic updates are optimistic: the item is read with a consistent read, transformed, and written back with a
condition on the version that was read (or on the absence of the item). A failed condition means another writer got
in between, so the whole read-transform-write cycle is repeated with the fresh value.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import shortuuid
from botocore.exceptions import ClientError

from pollflow.core.persistence import PersistentStore, StoreUpdateConflictError, Updater
from pollflow.core.platform.definitions.aws.common import get_code_for_exception
from pollflow.core.platform.definitions.aws.ddb.client_wrapper import (
    BillingMode,
    create_table,
    delete_ddb_item,
    get_ddb_item,
    put_ddb_item,
    scan_ddb_table,
)
from pollflow.utils.concurrency import resolve, run_blocking

logger = logging.getLogger(__name__)

STORE_KEY_ATTRIBUTE = "store_key"
STORE_VALUE_ATTRIBUTE = "store_value"
STORE_VERSION_ATTRIBUTE = "store_version"

DEFAULT_MAX_UPDATE_ATTEMPTS = 10


def create_store_table(ddb_resource, table_name: str):
    """Creates a table compatible with DynamoDBPersistentStore (on-demand capacity)."""
    return create_table(
        ddb_resource,
        table_name=table_name,
        key_schema=[{"AttributeName": STORE_KEY_ATTRIBUTE, "KeyType": "HASH"}],
        attribute_def=[{"AttributeName": STORE_KEY_ATTRIBUTE, "AttributeType": "S"}],
        billing_mode=BillingMode.PAY_PER_REQUEST,
    )


def _serialize(value: Any) -> str:
    # service responses might carry datetimes, they are persisted in their string form
    return json.dumps(value, default=str)


def _deserialize(item: Optional[Dict[str, Any]]) -> Optional[Any]:
    if item is None:
        return None
    return json.loads(item[STORE_VALUE_ATTRIBUTE])


class DynamoDBPersistentStore(PersistentStore):
    def __init__(self, table, max_update_attempts: int = DEFAULT_MAX_UPDATE_ATTEMPTS) -> None:
        """
        :param table: boto3 DynamoDB Table resource (see create_store_table for the expected key schema)
        :param max_update_attempts: number of optimistic attempts for an update before StoreUpdateConflictError
        """
        if max_update_attempts < 1:
            raise ValueError(f"max_update_attempts should be at least 1! Got: {max_update_attempts!r}")
        self._table = table
        self._max_update_attempts = max_update_attempts

    @property
    def table(self):
        return self._table

    async def _get_item(self, key: str) -> Optional[Dict[str, Any]]:
        return await run_blocking(get_ddb_item, self._table, {STORE_KEY_ATTRIBUTE: key}, True)

    async def get(self, key: str) -> Optional[Any]:
        return _deserialize(await self._get_item(key))

    async def set(self, key: str, value: Any) -> Any:
        await run_blocking(
            put_ddb_item,
            self._table,
            {STORE_KEY_ATTRIBUTE: key, STORE_VALUE_ATTRIBUTE: _serialize(value), STORE_VERSION_ATTRIBUTE: shortuuid.uuid()},
        )
        return value

    async def delete(self, key: str) -> None:
        await run_blocking(delete_ddb_item, self._table, {STORE_KEY_ATTRIBUTE: key})

    async def list(self) -> List[str]:
        keys: List[str] = []
        scan_kwargs = {"ProjectionExpression": "#k", "ExpressionAttributeNames": {"#k": STORE_KEY_ATTRIBUTE}}
        while True:
            response = await run_blocking(scan_ddb_table, self._table, **scan_kwargs)
            keys.extend(item[STORE_KEY_ATTRIBUTE] for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey", None)
            if not last_key:
                break
            scan_kwargs["ExclusiveStartKey"] = last_key
        return keys

    async def update(self, key: str, updater: Updater, default: Any = None) -> Tuple[Any, Any]:
        for attempt in range(1, self._max_update_attempts + 1):
            item = await self._get_item(key)
            old_value = _deserialize(item)
            # fresh copies for the transform, no aliasing with old_value
            current = _deserialize(item) if item is not None else json.loads(_serialize(default))
            new_value = await resolve(updater(current))

            if item is None:
                condition = {"ConditionExpression": f"attribute_not_exists({STORE_KEY_ATTRIBUTE})"}
            else:
                condition = {
                    "ConditionExpression": f"{STORE_VERSION_ATTRIBUTE} = :expected",
                    "ExpressionAttributeValues": {":expected": item[STORE_VERSION_ATTRIBUTE]},
                }
            try:
                await run_blocking(
                    put_ddb_item,
                    self._table,
                    {STORE_KEY_ATTRIBUTE: key, STORE_VALUE_ATTRIBUTE: _serialize(new_value), STORE_VERSION_ATTRIBUTE: shortuuid.uuid()},
                    **condition,
                )
                return old_value, new_value
            except ClientError as error:
                if get_code_for_exception(error) != "ConditionalCheckFailedException":
                    raise
                logger.warning(f"Concurrent write detected on {key!r} (attempt {attempt}/{self._max_update_attempts}), retrying...")

        raise StoreUpdateConflictError(f"Could not update {key!r} after {self._max_update_attempts} attempts!")
