# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from numbers import Number
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from botocore.config import Config
from overrides import overrides

from pollflow.core.dispatcher import QUEUE_COMPLETE_EVENT, QUEUE_CONCURRENCY_LIMIT, QueueDispatcher
from pollflow.core.events import EventDescriptor
from pollflow.core.platform.constructs import BaseConnector
from pollflow.core.platform.definitions.aws.aws_lambda.client_wrapper import (
    DEFAULT_HANDLER_FILE_NAME,
    DEFAULT_HANDLER_NAME,
    DEFAULT_MEMORY_SIZE,
    DEFAULT_RUNTIME,
    DEFAULT_TIMEOUT,
    create_lambda_deployment_package,
    create_lambda_function,
    delete_lambda_function,
    get_lambda_function_details,
    invoke_lambda_function,
    list_functions,
    parse_lambda_response,
    validate_lambda_function_name,
)
from pollflow.core.platform.definitions.aws.common import AWSCommonParams
from pollflow.core.platform.definitions.common import ConnectorParamsDict
from pollflow.core.platform.drivers.aws_common import AWSConnectorMixin
from pollflow.core.scheduler import PollScheduler
from pollflow.utils.concurrency import run_blocking

if TYPE_CHECKING:
    from pollflow.core.platform.platform import Platform

logger = logging.getLogger(__name__)

DEFAULT_ROLE_NAME = "pollflow_AWSLambdaConnector"
SERVICE_PRINCIPAL = "lambda.amazonaws.com"
LOGS_RESOURCE = "arn:aws:logs:*:*:*"
LOGS_ACTIONS = ["logs:CreateLogGroup", "logs:CreateLogStream", "logs:PutLogEvents"]

# a synchronous invocation can take as long as the max function timeout (15 mins)
LAMBDA_READ_TIMEOUT_IN_SECS = 15 * 60 + 10
LAMBDA_CONNECT_TIMEOUT_IN_SECS = 60
# no transparent retries, a retried invocation would run the function twice
LAMBDA_CLIENT_CONFIG = Config(
    read_timeout=LAMBDA_READ_TIMEOUT_IN_SECS, connect_timeout=LAMBDA_CONNECT_TIMEOUT_IN_SECS, retries={"total_max_attempts": 1}
)


class AWSLambdaConnector(AWSConnectorMixin, BaseConnector):
    """Lambda function management, direct invocation and queued bulk invocation.

    Event (descriptor {"type": "QueueComplete"}): fired once per queue created by 'enqueue', after every payload of
    the queue got its resolution:
        {"queue_id": .., "target": <function name>, "payloads": [...], "resolutions": [Resolution, ...]}
    """

    SERVICE = "lambda"
    REGION_REQUIRED = True

    def __init__(self, params: ConnectorParamsDict) -> None:
        super().__init__(params)
        self._role_name = self._params.get(AWSCommonParams.ROLE_NAME, None) or DEFAULT_ROLE_NAME
        self._dispatcher: Optional[QueueDispatcher] = None

    @overrides
    def attach(self, platform: "Platform") -> None:
        super().attach(platform)
        self._dispatcher = QueueDispatcher(self.store, self._registry, self._invoke_function, QUEUE_COMPLETE_EVENT)

    @property
    def dispatcher(self) -> QueueDispatcher:
        if self._dispatcher is None:
            raise RuntimeError(f"{self!r} is not attached to a platform yet!")
        return self._dispatcher

    @overrides
    def validate_event(self, descriptor: EventDescriptor) -> EventDescriptor:
        event_type = descriptor.get("type", None)
        if event_type != QUEUE_COMPLETE_EVENT:
            raise ValueError(f"Invalid event type: {event_type!r}")
        return {"type": QUEUE_COMPLETE_EVENT}

    @property
    def _lambda(self):
        return self._account.client(self.SERVICE, config=LAMBDA_CLIENT_CONFIG)

    @overrides
    async def start(self, scheduler: PollScheduler, default_poll_interval_in_secs: float) -> None:
        if self._dispatcher:
            self._dispatcher.start()

    @overrides
    async def stop(self) -> None:
        if self._dispatcher:
            self._dispatcher.stop()
            await self._dispatcher.wait_idle()

    # Actions
    async def create(
        self,
        function_name: str,
        code: Optional[str] = None,
        file_name: Optional[str] = None,
        buffer: Optional[bytes] = None,
        env: Optional[Dict[str, str]] = None,
        tags: Optional[Dict[str, str]] = None,
        role_name: Optional[str] = None,
        runtime: str = DEFAULT_RUNTIME,
        handler: str = DEFAULT_HANDLER_NAME,
        memory_size: int = DEFAULT_MEMORY_SIZE,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> Dict[str, Any]:
        """Creates the function from a ZIP 'buffer', or from the source 'code' (or the content of 'file_name') packaged
        as the only module of the function. The function runs with a service role that can write its logs."""
        validate_lambda_function_name(function_name)
        if not isinstance(buffer, (bytes, bytearray)):
            if isinstance(file_name, str):
                with open(file_name, "r", encoding="utf-8") as source:
                    code = source.read()
            buffer = create_lambda_deployment_package(code, DEFAULT_HANDLER_FILE_NAME)

        role = await self._identity.get_or_create_service_role(
            role_name if role_name else self._role_name,
            SERVICE_PRINCIPAL,
            self._identity.create_simple_policy(LOGS_RESOURCE, LOGS_ACTIONS),
        )

        return await run_blocking(
            create_lambda_function,
            self._lambda,
            function_name,
            role["Arn"],
            bytes(buffer),
            handler_name=handler,
            runtime=runtime,
            memory_size=memory_size,
            timeout=timeout,
            env=env,
            tags=tags,
        )

    async def create_from_buffer(self, function_name: str, buffer: bytes, **options) -> Dict[str, Any]:
        return await self.create(function_name, buffer=buffer, **options)

    async def create_from_code(self, function_name: str, code: str, **options) -> Dict[str, Any]:
        return await self.create(function_name, code=code, **options)

    async def create_from_file(self, function_name: str, file_name: str, **options) -> Dict[str, Any]:
        return await self.create(function_name, file_name=file_name, **options)

    async def delete(self, function_name: str) -> None:
        validate_lambda_function_name(function_name)
        await run_blocking(delete_lambda_function, self._lambda, function_name)

    async def _invoke_function(self, function_name: str, payload: Any) -> Any:
        response = await run_blocking(invoke_lambda_function, self._lambda, function_name, payload, False)
        return parse_lambda_response(response, function_name)

    async def invoke(self, function_name: str, payload: Any) -> Any:
        """Synchronous invocation, returns the interpreted result or raises LambdaInvocationError."""
        validate_lambda_function_name(function_name)
        return await self._invoke_function(function_name, payload)

    async def enqueue(self, function_name: str, payload: Any, max_concurrent: Number = QUEUE_CONCURRENCY_LIMIT) -> str:
        """Invokes the function once per payload, with at most 'max_concurrent' invocations in flight.

        Returns the queue id right away, the results are delivered with the 'QueueComplete' event.
        """
        validate_lambda_function_name(function_name)
        return await self.dispatcher.enqueue(function_name, payload, max_concurrent)

    async def get_function_info(self, function_name: str) -> Optional[Dict[str, Any]]:
        return await run_blocking(get_lambda_function_details, self._lambda, function_name)

    async def list_functions(self) -> List[Dict[str, Any]]:
        return await run_blocking(list_functions, self._lambda)
