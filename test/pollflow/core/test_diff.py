# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import pytest

from pollflow.core.diff import diff_snapshots, field_equality


class TestSnapshotDiff:
    same_tag = staticmethod(field_equality("tag"))

    def test_diff_categories(self):
        old = {"a": {"id": "a", "tag": 1}, "b": {"id": "b", "tag": 1}, "c": {"id": "c", "tag": 1}}
        new = {"a": {"id": "a", "tag": 1}, "b": {"id": "b", "tag": 2}, "d": {"id": "d", "tag": 1}}

        diff = diff_snapshots(old, new, self.same_tag)

        assert diff.additions == [{"id": "d", "tag": 1}]
        assert diff.modifications == [{"id": "b", "tag": 2}]
        assert diff.removals == [{"id": "c", "tag": 1}]
        assert diff.change_count == 3
        assert diff

    def test_diff_identical_snapshots(self):
        snapshot = {"a": {"tag": 1}}
        diff = diff_snapshots(snapshot, dict(snapshot), self.same_tag)
        assert not diff
        assert diff.change_count == 0

    def test_diff_against_empty(self):
        new = {"a": {"tag": 1}, "b": {"tag": 2}}
        diff = diff_snapshots(None, new, self.same_tag)
        assert diff.additions == [{"tag": 1}, {"tag": 2}]
        assert not diff.modifications and not diff.removals

        diff = diff_snapshots(new, {}, self.same_tag)
        assert diff.removals == [{"tag": 1}, {"tag": 2}]

    def test_diff_uses_predicate_only(self):
        # fields outside of the predicate are ignored
        old = {"a": {"tag": 1, "noise": "x"}}
        new = {"a": {"tag": 1, "noise": "y"}}
        assert not diff_snapshots(old, new, self.same_tag)
        assert diff_snapshots(old, new, lambda r1, r2: r1 == r2).modifications == [{"tag": 1, "noise": "y"}]

    def test_diff_requires_predicate(self):
        with pytest.raises(ValueError):
            diff_snapshots({}, {}, None)

    def test_field_equality(self):
        same = field_equality("etag", "size")
        assert same({"etag": "1", "size": 2, "x": 1}, {"etag": "1", "size": 2, "x": 3})
        assert not same({"etag": "1", "size": 2}, {"etag": "1", "size": 3})
        # missing fields compare as None
        assert same({"etag": "1"}, {"etag": "1", "size": None})
        with pytest.raises(ValueError):
            field_equality()
