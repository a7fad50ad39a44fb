# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import base64
import hashlib
import json
from typing import Any, Optional


def calculate_bytes_sha256(input: bytes) -> Optional[str]:
    """
    Calculate SHA256 of of a byte array as Base64 encoded string.
    :param input: byte array of input
    :return base64 encoded SHA256 hash of the bytes
    """
    hasher = hashlib.sha256()
    hasher.update(input)
    return base64.b64encode(hasher.digest()).decode("ascii")


def calculate_object_digest(obj: Any) -> str:
    """
    Calculate a stable SHA256 (hex) digest of a JSON-like object.

    Mapping keys are sorted before hashing so that two structurally equal descriptors always produce the same digest
    regardless of their insertion order. Values that JSON cannot represent natively are hashed by their str form.
    :param obj: dict, list or scalar to digest
    :return hex encoded SHA256 digest
    """
    canonical = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
