import pytest
from fastapi.testclient import TestClient

from microsub.auth import Principal, TokenAuthorizer
from microsub.endpoint import Endpoint
from microsub.outcomes import Handled
from microsub.server import collect_params, create_app

from fakes import FakeAdapter

ENDPOINT_URL = "https://reader.example/microsub"
FULL = "Bearer full-token"


@pytest.fixture
def adapter():
    return FakeAdapter(
        "fake",
        channels=[{"uid": "home", "name": "Home"}],
        answers={
            "follow": lambda result, channel, url, user_id: Handled({"type": "feed", "url": url}),
            "order_channels": lambda result, channels, user_id: Handled(
                [{"uid": uid, "name": uid} for uid in channels]
            ),
            "timeline_mark_read": Handled(None),
        },
    )


@pytest.fixture
def client(adapter, make_registry):
    authorizer = TokenAuthorizer(
        {
            "full-token": Principal(
                user_id="me", scopes=frozenset({"read", "follow", "channels", "mute", "block"})
            ),
            "read-token": Principal(user_id="reader", scopes=frozenset({"read"})),
        }
    )
    app = create_app(Endpoint(make_registry(adapter)), authorizer, ENDPOINT_URL)
    return TestClient(app)


def test_collect_params_groups_bracket_keys():
    params = collect_params(
        [("action", "timeline"), ("entry[]", "a"), ("entry[]", "b"), ("channels[]", "x")]
    )

    assert params == {"action": "timeline", "entry": ["a", "b"], "channels": ["x"]}


def test_requires_token(client):
    response = client.get("/microsub", params={"action": "channels"})

    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_rejects_unknown_token(client):
    response = client.get(
        "/microsub", params={"action": "channels"}, headers={"Authorization": "Bearer nope"}
    )

    assert response.status_code == 401


def test_insufficient_scope(client, adapter):
    response = client.post(
        "/microsub",
        data={"action": "follow", "channel": "home", "url": "https://x.example/"},
        headers={"Authorization": "Bearer read-token"},
    )

    assert response.status_code == 403
    assert response.json()["error"] == "insufficient_scope"
    assert not adapter.called("follow")


def test_scope_check_uses_normalised_action(client, adapter):
    response = client.post(
        "/microsub",
        data={"action": " follow ", "channel": "home", "url": "https://x.example/"},
        headers={"Authorization": "Bearer read-token"},
    )

    assert response.status_code == 403
    assert response.json()["error"] == "insufficient_scope"
    assert not adapter.called("follow")


def test_padded_action_dispatches_with_scope(client, adapter):
    response = client.post(
        "/microsub",
        data={"action": "follow ", "channel": "home", "url": "https://x.example/feed"},
        headers={"Authorization": FULL},
    )

    assert response.status_code == 200
    assert adapter.calls[-1] == ("follow", ("home", "https://x.example/feed", "me"))


def test_unknown_action_is_rejected_before_dispatch(client, adapter):
    response = client.get(
        "/microsub", params={"action": "explode"}, headers={"Authorization": "Bearer read-token"}
    )

    assert response.status_code == 400
    assert response.json() == {
        "error": "invalid_request",
        "error_description": "Unknown action: explode",
    }
    assert adapter.calls == []


def test_get_channels_with_link_header(client):
    response = client.get(
        "/microsub", params={"action": "channels"}, headers={"Authorization": FULL}
    )

    assert response.status_code == 200
    assert response.json() == {"channels": [{"uid": "home", "name": "Home"}]}
    assert response.headers["Link"] == f'<{ENDPOINT_URL}>; rel="microsub"'


def test_access_token_parameter(client, adapter):
    response = client.get(
        "/microsub", params={"action": "timeline", "channel": "home", "access_token": "read-token"}
    )

    assert response.status_code == 200
    assert response.json() == {"items": []}
    query = adapter.calls[-1][1][1]
    assert query.user_id == "reader"


def test_form_follow(client, adapter):
    response = client.post(
        "/microsub",
        data={"action": "follow", "channel": "home", "url": "https://x.example/feed"},
        headers={"Authorization": FULL},
    )

    assert response.status_code == 200
    assert response.json() == {"type": "feed", "url": "https://x.example/feed"}
    assert adapter.calls[-1] == ("follow", ("home", "https://x.example/feed", "me"))


def test_form_lists_and_null_body(client, adapter):
    response = client.post(
        "/microsub",
        data={
            "action": "timeline",
            "method": "mark_read",
            "channel": "home",
            "entry[]": ["sub-1", "sub-2"],
        },
        headers={"Authorization": FULL},
    )

    assert response.status_code == 200
    assert response.json() is None
    assert adapter.calls[-1] == ("timeline_mark_read", ("home", ["sub-1", "sub-2"], "me"))


def test_json_body(client):
    response = client.post(
        "/microsub",
        json={"action": "channels", "method": "order", "channels": ["list-b", "list-a"]},
        headers={"Authorization": FULL},
    )

    assert response.status_code == 200
    assert response.json() == {
        "channels": [{"uid": "list-b", "name": "list-b"}, {"uid": "list-a", "name": "list-a"}]
    }


def test_invalid_json_body(client):
    response = client.post(
        "/microsub",
        content=b"{not json",
        headers={"Authorization": FULL, "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


def test_validation_errors_are_json(client):
    response = client.get("/microsub", headers={"Authorization": FULL})

    assert response.status_code == 400
    assert response.json() == {
        "error": "invalid_request",
        "error_description": "Missing required parameter: action",
    }
    assert "Link" in response.headers


def test_not_implemented(client):
    response = client.get(
        "/microsub", params={"action": "mute", "channel": "home"}, headers={"Authorization": FULL}
    )

    assert response.status_code == 501


def test_index_page_advertises_endpoint(client):
    response = client.get("/")

    assert response.status_code == 200
    assert f'<link rel="microsub" href="{ENDPOINT_URL}">' in response.text
    assert "fake" in response.text
    assert response.headers["Link"] == f'<{ENDPOINT_URL}>; rel="microsub"'
