# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import base64
import datetime
import hashlib

from pollflow.utils.digest import calculate_bytes_sha256, calculate_object_digest


class TestDigest:
    def test_bytes_sha256(self):
        expected = base64.b64encode(hashlib.sha256(b"data").digest()).decode("ascii")
        assert calculate_bytes_sha256(b"data") == expected

    def test_object_digest_is_order_independent(self):
        assert calculate_object_digest({"a": 1, "b": [1, 2]}) == calculate_object_digest({"b": [1, 2], "a": 1})
        assert calculate_object_digest({"a": 1}) != calculate_object_digest({"a": 2})
        assert calculate_object_digest([1, 2]) != calculate_object_digest([2, 1])

    def test_object_digest_non_json_values(self):
        timestamp = datetime.datetime(2024, 1, 1)
        assert calculate_object_digest({"t": timestamp}) == calculate_object_digest({"t": str(timestamp)})
