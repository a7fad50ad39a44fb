# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import json
import logging
from enum import Enum, unique
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from pollflow.core.platform.definitions.aws.common import exponential_retry, get_code_for_exception

logger = logging.getLogger(__name__)

# throttled item operations are retried, a failed write condition never is
DDB_RETRYABLE_ERRORS = ["ProvisionedThroughputExceededException"]


@unique
class BillingMode(str, Enum):
    PAY_PER_REQUEST = "PAY_PER_REQUEST"
    PROVISIONED = "PROVISIONED"


def create_table(
    ddb_resource,
    table_name,
    key_schema,
    attribute_def,
    provisioned_throughput=None,
    billing_mode: BillingMode = BillingMode.PAY_PER_REQUEST,
    **extra_args,
):
    """
    https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb.html#DynamoDB.Client.create_table
    """
    args = {"TableName": table_name, "KeySchema": key_schema, "AttributeDefinitions": attribute_def, "BillingMode": billing_mode.value}
    if billing_mode == BillingMode.PROVISIONED:
        args.update({"ProvisionedThroughput": provisioned_throughput})

    if extra_args:
        # overwrite if any overlap
        args.update(extra_args)

    try:
        table = ddb_resource.create_table(**args)
        table.meta.client.get_waiter("table_exists").wait(TableName=table_name)
        logger.info("Successfully created the table: %s", table_name)
        return table
    except ClientError:
        logger.exception("Couldn't create table %s.", table_name)
        raise


def get_ddb_item(table, key, consistent_read: bool = True) -> Optional[Dict[str, Any]]:
    """
    https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb.html#DynamoDB.Table.get_item
    :return: the item or None if it does not exist
    """
    try:
        response = exponential_retry(table.get_item, DDB_RETRYABLE_ERRORS, Key=key, ConsistentRead=consistent_read)
        logger.debug("Got successful response for Key: %s from Table %s", json.dumps(key), table.table_name)
        return response.get("Item", None)
    except ClientError as error:
        logger.exception("Got exception during get_item operation on key: %s and table: %s", json.dumps(key), table.table_name)
        raise error


def put_ddb_item(table, item, **put_kwargs):
    """
    https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb.html#DynamoDB.Table.put_item
    Extra arguments (e.g ConditionExpression) are passed as is. A failed condition is raised without logging since
    it is an expected outcome for optimistic writers.
    """
    try:
        return exponential_retry(table.put_item, DDB_RETRYABLE_ERRORS, Item=item, **put_kwargs)
    except ClientError as error:
        if get_code_for_exception(error) != "ConditionalCheckFailedException":
            logger.exception("Got exception during put_item operation for table: %s", table.table_name)
        raise


def delete_ddb_item(table, key):
    """
    https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb.html#DynamoDB.Table.delete_item
    """
    try:
        response = exponential_retry(table.delete_item, DDB_RETRYABLE_ERRORS, Key=key)
        logger.info("Successfully deleted item with key: %s from table %s", json.dumps(key), table.table_name)
        return response
    except ClientError:
        logger.exception("Got exception during delete_item operation on table: %s on key: %s", table.table_name, json.dumps(key))
        raise


def scan_ddb_table(table, **scan_kwargs):
    """
    https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb.html#DynamoDB.Table.scan
    """
    try:
        return exponential_retry(table.scan, DDB_RETRYABLE_ERRORS, **scan_kwargs)
    except ClientError:
        logger.exception(
            "Exception occurred during scan operation for table: %s, with scan args: %s", table.table_name, json.dumps(scan_kwargs)
        )
        raise
