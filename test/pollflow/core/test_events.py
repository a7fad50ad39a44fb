# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio

import pytest

from pollflow.core.events import EventDeliveryError, EventRegistry, create_event_id


def _all(subscription):
    return True


class TestEventRegistry:
    def test_add_event_derives_stable_id(self):
        registry = EventRegistry("AWSS3Connector", "c1")
        id1 = registry.add_event({"type": "ObjectAdded"}, lambda e: None)
        assert id1 == create_event_id("AWSS3Connector", None, {"type": "ObjectAdded"}, "c1")
        # same descriptor (any key order) maps to the same id
        assert create_event_id("o", None, {"a": 1, "b": 2}) == create_event_id("o", None, {"b": 2, "a": 1})
        # identity is part of the id
        assert create_event_id("o", {"region": "us-east-1"}, {"a": 1}) != create_event_id("o", {"region": "us-west-2"}, {"a": 1})

    def test_add_event_keeps_existing_handler(self):
        registry = EventRegistry("owner")
        received = []
        first = registry.add_event({"type": "x"}, lambda e: received.append(("first", e)), event_id="sub")
        second = registry.add_event({"type": "x"}, lambda e: received.append(("second", e)), event_id="sub")
        assert first == second == "sub"
        assert len(registry) == 1

        asyncio.run(registry.fire(_all, "e"))
        assert received == [("first", "e")]

    def test_add_event_validation(self):
        registry = EventRegistry("owner")
        with pytest.raises(TypeError):
            registry.add_event({"type": "x"}, "not callable")
        with pytest.raises(ValueError):
            registry.add_event(None, lambda e: None)
        with pytest.raises(ValueError):
            registry.add_event({"type": "x"}, lambda e: None, event_id="")

    def test_remove_and_clear(self):
        registry = EventRegistry("owner")
        id = registry.add_event({"type": "x"}, lambda e: None)
        assert id in registry
        registry.remove_event(id)
        assert id not in registry
        # removing an unknown id is a no-op
        registry.remove_event("unknown")

        registry.add_event({"type": "y"}, lambda e: None)
        registry.clear()
        assert len(registry) == 0

    def test_map_events_distinct_sorted(self):
        registry = EventRegistry("owner")
        registry.add_event({"pipeline_id": "b"}, lambda e: None, event_id="1")
        registry.add_event({"pipeline_id": "a"}, lambda e: None, event_id="2")
        registry.add_event({"pipeline_id": "b"}, lambda e: None, event_id="3")
        assert registry.map_events(lambda d: d["pipeline_id"]) == ["a", "b"]

    def test_fire_in_order_with_filter(self):
        registry = EventRegistry("owner")
        received = []

        async def async_handler(event):
            await asyncio.sleep(0)
            received.append(("async", event))

        registry.add_event({"type": "x"}, async_handler, event_id="async")
        registry.add_event({"type": "x"}, lambda e: received.append(("sync", e)), event_id="sync")
        registry.add_event({"type": "y"}, lambda e: received.append(("other", e)), event_id="other")

        asyncio.run(registry.fire(lambda s: s.descriptor["type"] == "x", [1, 2]))

        assert received == [("async", 1), ("async", 2), ("sync", 1), ("sync", 2)]

    def test_fire_empty_batch(self):
        registry = EventRegistry("owner")
        received = []
        registry.add_event({"type": "x"}, received.append)
        asyncio.run(registry.fire(_all, []))
        assert received == []

    def test_fire_handler_failure_isolated(self):
        registry = EventRegistry("owner")
        received = []

        def failing(event):
            received.append(("failing", event))
            raise RuntimeError("boom")

        registry.add_event({"type": "x"}, failing, event_id="failing")
        registry.add_event({"type": "x"}, lambda e: received.append(("ok", e)), event_id="ok")

        with pytest.raises(EventDeliveryError) as error:
            asyncio.run(registry.fire(_all, [1, 2]))

        # failing handler skips the rest of the batch, the other subscription gets everything
        assert received == [("failing", 1), ("ok", 1), ("ok", 2)]
        assert [subscription_id for subscription_id, _ in error.value.failures] == ["failing"]
        assert isinstance(error.value.failures[0][1], RuntimeError)
