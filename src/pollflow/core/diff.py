# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Snapshot diffing primitives shared by all of the watchers.

A snapshot is a plain mapping of resource id to a JSON-serializable state record, as last observed from the remote
system. Whether two records of the same id stand for "the same" resource is a resource-specific decision, so the
equality predicate is always provided by the caller (see the watcher drivers for concrete predicates).
"""

from typing import Any, Callable, Dict, List, Optional

from pollflow.core.entity import CoreData

Snapshot = Dict[str, Any]
SameFn = Callable[[Any, Any], bool]


class SnapshotDiff(CoreData):
    def __init__(self, additions: List[Any], modifications: List[Any], removals: List[Any]) -> None:
        self.additions = additions
        self.modifications = modifications
        self.removals = removals

    @property
    def change_count(self) -> int:
        return len(self.additions) + len(self.modifications) + len(self.removals)

    def __bool__(self) -> bool:
        return self.change_count > 0


def diff_snapshots(old: Optional[Snapshot], new: Optional[Snapshot], same_fn: SameFn) -> SnapshotDiff:
    """Compare two snapshots of the same resource scope.

    - an id only in 'new' is an addition (new record reported)
    - an id only in 'old' is a removal (old record reported)
    - an id in both is a modification if same_fn(old_record, new_record) is False (new record reported)

    Ids in both for which same_fn holds are unchanged and reported nowhere, so the three sequences never overlap.
    """
    if same_fn is None:
        raise ValueError("An equality predicate is required to diff snapshots!")
    old = old or {}
    new = new or {}

    additions: List[Any] = []
    modifications: List[Any] = []
    removals: List[Any] = []

    for id, new_record in new.items():
        if id in old:
            if not same_fn(old[id], new_record):
                modifications.append(new_record)
        else:
            additions.append(new_record)

    for id, old_record in old.items():
        if id not in new:
            removals.append(old_record)

    return SnapshotDiff(additions, modifications, removals)


def field_equality(*fields: str) -> SameFn:
    """Build an equality predicate that compares records only by 'fields' (missing fields compare as None)."""
    if not fields:
        raise ValueError("At least one field is required to build an equality predicate!")

    def _same(record1: Dict[str, Any], record2: Dict[str, Any]) -> bool:
        return all(record1.get(field) == record2.get(field) for field in fields)

    return _same
