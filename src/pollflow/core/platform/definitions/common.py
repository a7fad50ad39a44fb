# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
import os
from enum import Enum, unique
from typing import Any, Dict

logger = logging.getLogger(__name__)

ConnectorParamsDict = Dict[str, Any]

INTERVAL_DELAY_ENV_VAR = "POLLFLOW_INTERVAL_DELAY_MS"
DEFAULT_INTERVAL_DELAY_IN_MS = 30000


@unique
class ConnectorParams(str, Enum):
    CONNECTOR_ID = "CONNECTOR_ID"
    POLL_INTERVAL_IN_SECS = "POLL_INTERVAL_IN_SECS"


def get_default_poll_interval_in_secs() -> float:
    """Poll interval used when neither the connector nor the platform sets one."""
    value = os.environ.get(INTERVAL_DELAY_ENV_VAR, None)
    if not value:
        return DEFAULT_INTERVAL_DELAY_IN_MS / 1000
    try:
        delay_in_ms = float(value)
    except ValueError:
        raise ValueError(f"{INTERVAL_DELAY_ENV_VAR} should be a number of milliseconds! Got: {value!r}")
    if delay_in_ms <= 0:
        raise ValueError(f"{INTERVAL_DELAY_ENV_VAR} should be positive! Got: {value!r}")
    return delay_in_ms / 1000
