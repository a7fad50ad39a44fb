# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from typing import Any, Dict, Optional

from pollflow.core.platform.constructs import BaseConnector
from pollflow.core.platform.definitions.aws.sns.client_wrapper import publish
from pollflow.core.platform.definitions.common import ConnectorParamsDict
from pollflow.core.platform.drivers.aws_common import AWSConnectorMixin
from pollflow.utils.concurrency import run_blocking


class AWSSNSConnector(AWSConnectorMixin, BaseConnector):
    SERVICE = "sns"

    def __init__(self, params: Optional[ConnectorParamsDict] = None) -> None:
        super().__init__(params)

    async def publish(self, **params) -> Dict[str, Any]:
        return await run_blocking(publish, self._account.client(self.SERVICE), **params)
