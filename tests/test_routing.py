import pytest

from microsub.outcomes import PENDING, Failed, Handled
from microsub.routing import OwnershipRouter

from fakes import FakeAdapter


def test_first_responder_wins_and_later_adapters_are_not_called(make_registry):
    a = FakeAdapter("a", priority=1, answers={"follow": Handled({"type": "feed", "url": "u"})})
    b = FakeAdapter("b", priority=2, answers={"follow": Handled("other")})

    outcome = OwnershipRouter(make_registry(a, b)).follow("home", "u", "me")

    assert outcome == Handled({"type": "feed", "url": "u"})
    assert a.called("follow")
    assert not b.called("follow")


def test_pending_falls_through_to_next_adapter(make_registry):
    a = FakeAdapter("a", priority=1)
    b = FakeAdapter("b", priority=2, answers={"unfollow": Handled(None)})

    outcome = OwnershipRouter(make_registry(a, b)).unfollow("home", "u", "me")

    assert outcome == Handled(None)
    assert a.called("unfollow") and b.called("unfollow")


def test_adapters_receive_pending(make_registry):
    seen = []
    a = FakeAdapter("a", answers={"mute": lambda result, *args: seen.append(result) or result})

    outcome = OwnershipRouter(make_registry(a)).mute("home", "u", "me")

    assert seen == [PENDING]
    assert outcome is PENDING


def test_failed_is_final(make_registry):
    a = FakeAdapter("a", priority=1, answers={"delete_channel": Failed("nope")})
    b = FakeAdapter("b", priority=2, answers={"delete_channel": Handled(None)})

    outcome = OwnershipRouter(make_registry(a, b)).delete_channel("list-x", "me")

    assert outcome == Failed("nope")
    assert not b.called("delete_channel")


def test_raising_adapter_becomes_failed(make_registry):
    a = FakeAdapter("a", priority=1, fail_on="block")
    b = FakeAdapter("b", priority=2, answers={"block": Handled(None)})

    outcome = OwnershipRouter(make_registry(a, b)).block("global", "u", "me")

    assert isinstance(outcome, Failed)
    assert "'a'" in outcome.reason
    assert not b.called("block")


def test_loose_return_values_are_normalised(make_registry):
    router = OwnershipRouter(
        make_registry(
            FakeAdapter("a", priority=1, answers={"search": None}),
            FakeAdapter("b", priority=2, answers={"search": {"results": []}}),
        )
    )
    assert router.search("cats", "me") == Handled({"results": []})

    router = OwnershipRouter(make_registry(FakeAdapter("c", answers={"preview": False})))
    assert router.preview("https://example.com", "me") == Failed()


def test_no_adapters_returns_pending(make_registry):
    assert OwnershipRouter(make_registry()).create_channel("News", "me") is PENDING


def test_unknown_operation_is_rejected(make_registry):
    with pytest.raises(ValueError):
        OwnershipRouter(make_registry()).dispatch("get_channels", "me")
