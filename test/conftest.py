# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import pytest

from pollflow.core.platform.definitions.common import INTERVAL_DELAY_ENV_VAR


@pytest.fixture(autouse=True)
def default_poll_interval(monkeypatch):
    # keep tests independent of the poll interval configured on the host
    monkeypatch.delenv(INTERVAL_DELAY_ENV_VAR, raising=False)
