# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import Any, Dict, List

from botocore.exceptions import ClientError

from pollflow.core.platform.definitions.aws.common import exponential_retry

logger = logging.getLogger(__name__)


def create_queue(sqs_client, queue_name: str, **attributes) -> str:
    """
    Creates a new SQS queue.
    :param sqs_client: The Boto3 AWS SQS client object.
    :param queue_name: The name of the Queue to be created
    :return: The URL of the newly created queue.
    """
    try:
        response = sqs_client.create_queue(QueueName=queue_name, Attributes={key: str(value) for key, value in attributes.items()})

        queue_url = response["QueueUrl"]
        logger.info("Created queue '%s' with URL: '%s'.", queue_name, queue_url)
    except ClientError:
        logger.exception("Couldn't create queue %s.", queue_name)
        raise
    else:
        return queue_url


def receive_messages(sqs_client, queue_url: str, **kwargs) -> List[Dict[str, Any]]:
    """Single receive call on the queue, returns the received messages (empty list if none)."""
    try:
        response = exponential_retry(sqs_client.receive_message, [], QueueUrl=queue_url, **kwargs)
    except ClientError:
        logger.exception("Couldn't receive messages from queue: %s.", queue_url)
        raise
    return response.get("Messages", None) or []


def delete_messages(sqs_client, queue_url: str, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Batch delete of received messages (by their receipt handles)."""
    entries = [{"Id": message.get("MessageId", ""), "ReceiptHandle": message.get("ReceiptHandle", "")} for message in messages]
    try:
        response = exponential_retry(sqs_client.delete_message_batch, [], QueueUrl=queue_url, Entries=entries)
        failed = response.get("Failed", None)
        if failed:
            logger.error(f"Couldn't delete {len(failed)} message(s) from queue {queue_url!r}: {failed!r}")
    except ClientError:
        logger.exception("Couldn't delete messages from queue: %s.", queue_url)
        raise
    return response


def send_message(sqs_client, **params) -> Dict[str, Any]:
    try:
        response = sqs_client.send_message(**params)
        logger.info("Sent message %s to queue %s.", response.get("MessageId", None), params.get("QueueUrl", None))
    except ClientError:
        logger.exception("Couldn't send message to queue %s.", params.get("QueueUrl", None))
        raise
    return response
