# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import Any, Dict, Optional

from overrides import overrides

from pollflow.core.events import EventDeliveryError, EventDescriptor
from pollflow.core.platform.constructs import PollingConnector
from pollflow.core.platform.definitions.aws.sqs.client_wrapper import delete_messages, receive_messages, send_message
from pollflow.core.platform.definitions.common import ConnectorParamsDict
from pollflow.core.platform.drivers.aws_common import AWSConnectorMixin
from pollflow.utils.concurrency import run_blocking
from pollflow.utils.url_validation import validate_url

logger = logging.getLogger(__name__)


class AWSSQSConnector(AWSConnectorMixin, PollingConnector):
    """Receives messages from the queues that have at least one subscription.

    Descriptor: {"queue_url": <url>, "delete_after_receive": True}
    Every received message is fired (as returned by SQS) to the subscriptions of its queue. Messages are deleted
    right after they are received unless 'delete_after_receive' is False.
    """

    SERVICE = "sqs"

    def __init__(self, params: Optional[ConnectorParamsDict] = None) -> None:
        super().__init__(params)

    @overrides
    def validate_event(self, descriptor: EventDescriptor) -> EventDescriptor:
        queue_url = validate_url(descriptor.get("queue_url", None))
        delete_after_receive = descriptor.get("delete_after_receive", True)
        if not isinstance(delete_after_receive, bool):
            raise ValueError(f"'delete_after_receive' should be a bool! Got: {delete_after_receive!r}")
        return {"queue_url": queue_url, "delete_after_receive": delete_after_receive}

    @overrides
    def default_event_id(self, descriptor: EventDescriptor) -> Optional[str]:
        return f"AWS/SQS/message/{descriptor['queue_url']}/{self.id}"

    @property
    def _sqs(self):
        return self._account.client(self.SERVICE)

    def watched_queues(self) -> Dict[str, bool]:
        """queue url -> delete after receive (last subscription of a queue wins)"""
        return {s.descriptor["queue_url"]: s.descriptor.get("delete_after_receive", True) for s in self._registry}

    async def _get_queue_messages(self, queue_url: str, delete_after_receive: bool):
        messages = await run_blocking(receive_messages, self._sqs, queue_url)
        if not messages:
            logger.debug(f"No new message from queue {queue_url!r}")
            return messages

        logger.info(f"{len(messages)} message(s) received from queue {queue_url!r}")
        if delete_after_receive:
            await run_blocking(delete_messages, self._sqs, queue_url, messages)
            logger.info(f"Received messages have been deleted from queue {queue_url!r}")
        return messages

    @overrides
    async def on_poll(self) -> None:
        failures = []
        for queue_url, delete_after_receive in self.watched_queues().items():
            messages = await self._get_queue_messages(queue_url, delete_after_receive)
            if messages:
                try:
                    await self._registry.fire(lambda s, url=queue_url: s.descriptor["queue_url"] == url, messages)
                except EventDeliveryError as error:
                    failures.extend(error.failures)
        if failures:
            raise EventDeliveryError(failures)

    # Actions
    async def send_message(self, **params) -> Dict[str, Any]:
        return await run_blocking(send_message, self._sqs, **params)
