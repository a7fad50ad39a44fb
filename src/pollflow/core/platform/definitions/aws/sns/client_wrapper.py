# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import Any, Dict

from botocore.exceptions import ClientError

from pollflow.core.platform.definitions.aws.common import exponential_retry

logger = logging.getLogger(__name__)


def publish(sns, **params) -> Dict[str, Any]:
    """Thin wrapper around SNS::publish, params are passed to the client as is (TopicArn, Message, ...)."""
    try:
        response = exponential_retry(sns.publish, ["InternalErrorException"], **params)
        logger.info("Published message %s.", response.get("MessageId", None))
    except ClientError:
        logger.exception("Couldn't publish message to %s.", params.get("TopicArn", None) or params.get("TargetArn", None))
        raise
    return response
