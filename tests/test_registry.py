"""Tests for the connection registry."""

from chronoscribe.config import SOURCE_COLORS
from chronoscribe.models import ConnectionRole
from chronoscribe.registry import ConnectionRegistry


def make_registry():
    events = []
    registry = ConnectionRegistry(palette=SOURCE_COLORS, notify=events.append)
    return registry, events


def test_colliding_names_get_numeric_suffixes():
    registry, _ = make_registry()
    names = [registry.register_source(f"c{i}", "a").name for i in range(3)]

    assert names == ["a", "a-1", "a-2"]
    assert [s.name for s in registry.list_sources()] == ["a", "a-1", "a-2"]


def test_released_name_is_immediately_reusable():
    registry, _ = make_registry()
    for i in range(3):
        registry.register_source(f"c{i}", "a")

    registry.remove_connection("c1")
    assert registry.register_source("c3", "a-1").name == "a-1"

    registry.remove_connection("c0")
    assert registry.register_source("c4", "a").name == "a"


def test_palette_counter_is_shared_and_keeps_advancing():
    registry, _ = make_registry()
    colors = []
    for i in range(len(SOURCE_COLORS) + 2):
        colors.append(registry.register_source(f"c{i}", "same").color)
        registry.remove_connection(f"c{i}")

    assert colors[:len(SOURCE_COLORS)] == SOURCE_COLORS
    assert colors[len(SOURCE_COLORS):] == SOURCE_COLORS[:2]


def test_preferred_color_is_used_without_advancing_the_palette():
    registry, _ = make_registry()
    assert registry.register_source("c0", "db", "#FF6B6B").color == "#FF6B6B"
    assert registry.register_source("c1", "api").color == SOURCE_COLORS[0]
    # not checked for collisions
    assert registry.register_source("c2", "web", SOURCE_COLORS[0]).color == SOURCE_COLORS[0]


def test_register_source_notifies_viewers():
    registry, events = make_registry()
    source = registry.register_source("c0", "api")

    assert len(events) == 1
    assert events[0].type == "SOURCE_CONNECTED"
    assert events[0].payload["source"]["name"] == "api"
    assert events[0].payload["source"]["id"] == source.id


def test_remove_source_releases_name_and_notifies_once():
    registry, events = make_registry()
    source = registry.register_source("c0", "api")
    events.clear()

    removed = registry.remove_connection("c0")
    assert removed.source is source
    assert source.connected is False
    assert registry.list_sources() == []
    assert [e.type for e in events] == ["SOURCE_DISCONNECTED"]
    assert events[0].payload == {"sourceId": "c0", "sourceName": "api"}

    assert registry.remove_connection("c0") is None
    assert len(events) == 1


def test_viewers_are_tracked_separately_from_sources():
    registry, events = make_registry()
    registry.add_connection("v0")
    registry.register_viewer("v0")
    registry.register_viewer("v1")
    registry.register_source("s0", "api")
    registry.add_connection("pending")

    assert [c.id for c in registry.list_viewers()] == ["v0", "v1"]
    assert registry.get("pending").role == ConnectionRole.UNRESOLVED
    assert registry.stats() == {"sources": 1, "viewers": 2, "total": 3}

    events.clear()
    registry.remove_connection("v0")
    registry.remove_connection("pending")
    assert events == []
    assert registry.get("v0") is None


def test_unsafe_preferred_color_falls_back_to_the_palette():
    registry, _ = make_registry()
    assert registry.register_source("c0", "api", '" onmouseover="alert(1)').color == SOURCE_COLORS[0]
    assert registry.register_source("c1", "db", "#12345").color == SOURCE_COLORS[1]
    assert registry.register_source("c2", "web", "red").color == "red"
    assert registry.register_source("c3", "jobs", "#abc").color == "#abc"
