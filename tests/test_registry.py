import pytest

from microsub.registry import Registry

from fakes import FakeAdapter


def test_registry_orders_by_priority():
    registry = Registry(
        [FakeAdapter("c", priority=30), FakeAdapter("a", priority=10), FakeAdapter("b", priority=20)]
    )

    assert [adapter.id for adapter in registry] == ["a", "b", "c"]


def test_registry_keeps_registration_order_on_ties():
    registry = Registry()
    registry.register(FakeAdapter("second", priority=10))
    registry.register(FakeAdapter("first", priority=5))
    registry.register(FakeAdapter("third", priority=10))

    assert [adapter.id for adapter in registry] == ["first", "second", "third"]


def test_registry_rejects_duplicate_ids():
    registry = Registry([FakeAdapter("dup")])

    with pytest.raises(ValueError, match="already registered"):
        registry.register(FakeAdapter("dup", priority=1))
    assert len(registry) == 1


def test_registry_rejects_registration_after_seal():
    registry = Registry([FakeAdapter("a")])
    registry.seal()

    assert registry.sealed
    with pytest.raises(RuntimeError, match="sealed"):
        registry.register(FakeAdapter("b"))


def test_registry_get_and_describe():
    registry = Registry([FakeAdapter("b", priority=2), FakeAdapter("a", priority=1)])

    assert registry.get("b").id == "b"
    assert registry.get("missing") is None
    assert [info.as_dict() for info in registry.describe()] == [
        {"id": "a", "name": "A", "priority": 1},
        {"id": "b", "name": "B", "priority": 2},
    ]
