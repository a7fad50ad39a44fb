# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from pollflow.utils.digest import calculate_object_digest


class CoreData:
    """Value semantics for the plain records of the runtime (snapshot diffs, subscriptions, queue records, etc).

    Records commonly carry lists and dicts, so the hash is computed over a canonical digest of the attributes rather
    than over the attribute values themselves.
    """

    def __eq__(self, other) -> bool:
        return type(other) is type(self) and self.__dict__ == other.__dict__

    def __hash__(self) -> int:
        return hash((self.__class__.__name__, calculate_object_digest(self.__dict__)))

    def __repr__(self) -> str:
        attributes = ", ".join(f"{name}={value!r}" for name, value in self.__dict__.items())
        return f"{self.__class__.__name__}({attributes})"

    def __str__(self) -> str:
        return self.__repr__()
