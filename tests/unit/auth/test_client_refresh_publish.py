"""Unit tests for the refresh gate and publish retry-on-401.

Coverage:
* refresh_token() performs at most one provider call per client instance
* Refresh rotates the token pair and keeps account metadata
* publish(): 401 + refresh ok -> two publish calls, one refresh call
* publish(): 401 + refresh fails -> one publish call, one refresh call, None
* Shortened link extraction
* Satellite clients refresh through the broker, never the provider
"""

from __future__ import annotations

import pytest

from atweet.auth.broker import ACCESS_PATH, TokenBroker
from atweet.auth.client import TOKEN_ACTION, TWEET_ACTION, USER_ACTION, OAuthClient, extract_shortened_url
from atweet.auth.errors import AuthExpiredError, ProviderTransportError
from atweet.auth.models import TokenSet
from atweet.auth.store import (
    ACCESS_TOKEN,
    EXTERNAL_ENDPOINT,
    EXTERNAL_TOKEN,
    MAIN_WEBSITE,
    REFRESH_TOKEN,
    DiskCredentialStore,
    load_token_set,
    save_token_set,
)

USER_BODY = {"data": {"id": "1", "name": "N", "username": "u"}}
TWEET_BODY = {"data": {"id": "99", "text": "Hello https://t.co/abc123"}}


@pytest.fixture()
def seeded(store):
    save_token_set(store, TokenSet("AT0", "RT0", "1", "N", "u"))
    return store


@pytest.fixture()
def client(config, seeded, transport) -> OAuthClient:
    return OAuthClient(config, seeded, transport)


# --------------------------------------------------------------------------- #
# refresh_token                                                               #
# --------------------------------------------------------------------------- #
def test_refresh_rotates_token_pair(client, store, transport) -> None:
    transport.queue("POST", TOKEN_ACTION, {"access_token": "AT2", "refresh_token": "RT2"})
    transport.queue("GET", USER_ACTION, USER_BODY)

    assert client.refresh_token() is True

    assert transport.calls[0].data == {
        "grant_type": "refresh_token",
        "refresh_token": "RT0",
        "client_id": "abc",
    }
    assert load_token_set(store) == TokenSet("AT2", "RT2", "1", "N", "u")


def test_refresh_keeps_account_when_profile_unavailable(client, store, transport) -> None:
    transport.queue("POST", TOKEN_ACTION, {"access_token": "AT2", "refresh_token": "RT2"})
    transport.queue("GET", USER_ACTION, ProviderTransportError("down", status_code=503))

    assert client.refresh_token() is True
    assert load_token_set(store) == TokenSet("AT2", "RT2", "1", "N", "u")


def test_second_refresh_makes_no_network_call(client, transport) -> None:
    transport.queue("POST", TOKEN_ACTION, ProviderTransportError("invalid_grant", status_code=400))

    assert client.refresh_token() is False
    calls_after_first = len(transport.calls)

    assert client.refresh_token() is False
    assert len(transport.calls) == calls_after_first
    assert transport.count("POST", TOKEN_ACTION) == 1


def test_refresh_failure_leaves_tokens_untouched(client, store, transport) -> None:
    transport.queue("POST", TOKEN_ACTION, ProviderTransportError("invalid_grant", status_code=400))
    assert client.refresh_token() is False
    assert load_token_set(store) == TokenSet("AT0", "RT0", "1", "N", "u")


def test_refresh_without_stored_refresh_token(config, store, transport) -> None:
    store.set(ACCESS_TOKEN, "AT0")
    client = OAuthClient(config, store, transport)
    assert client.refresh_token() is False
    assert transport.calls == []


def test_new_client_gets_a_new_refresh_budget(config, seeded, transport) -> None:
    transport.queue("POST", TOKEN_ACTION, ProviderTransportError("down"))
    first = OAuthClient(config, seeded, transport)
    second = OAuthClient(config, seeded, transport)

    assert first.refresh_token() is False
    assert second.refresh_token() is False
    assert transport.count("POST", TOKEN_ACTION) == 2


# --------------------------------------------------------------------------- #
# publish                                                                     #
# --------------------------------------------------------------------------- #
def test_publish_success_sets_shortened_url(client, transport) -> None:
    transport.queue("POST", TWEET_ACTION, TWEET_BODY)

    result = client.publish("Hello")

    assert result == TWEET_BODY
    assert client.shortened_url == "https://t.co/abc123"
    call = transport.calls[0]
    assert call.json == {"text": "Hello"}
    assert call.headers["Authorization"] == "Bearer AT0"


def test_publish_401_then_refresh_ok_retries_once(client, store, transport) -> None:
    transport.queue("POST", TWEET_ACTION, AuthExpiredError(), TWEET_BODY)
    transport.queue("POST", TOKEN_ACTION, {"access_token": "AT2", "refresh_token": "RT2"})
    transport.queue("GET", USER_ACTION, USER_BODY)

    result = client.publish("Hello")

    assert result == TWEET_BODY
    assert transport.count("POST", TWEET_ACTION) == 2
    assert transport.count("POST", TOKEN_ACTION) == 1
    tweet_calls = [c for c in transport.calls if c.url.endswith(TWEET_ACTION)]
    assert tweet_calls[1].headers["Authorization"] == "Bearer AT2"


def test_publish_401_then_refresh_fails(client, transport) -> None:
    transport.queue("POST", TWEET_ACTION, AuthExpiredError())
    transport.queue("POST", TOKEN_ACTION, ProviderTransportError("invalid_grant", status_code=400))

    assert client.publish("Hello") is None
    assert transport.count("POST", TWEET_ACTION) == 1
    assert transport.count("POST", TOKEN_ACTION) == 1
    assert client.shortened_url is None


def test_publish_repeated_401_stops_after_one_retry(client, transport) -> None:
    transport.queue("POST", TWEET_ACTION, AuthExpiredError())
    transport.queue("POST", TOKEN_ACTION, {"access_token": "AT2", "refresh_token": "RT2"})
    transport.queue("GET", USER_ACTION, USER_BODY)

    assert client.publish("Hello") is None
    assert transport.count("POST", TWEET_ACTION) == 2
    assert transport.count("POST", TOKEN_ACTION) == 1


def test_publish_other_error_does_not_refresh(client, transport) -> None:
    transport.queue("POST", TWEET_ACTION, ProviderTransportError("forbidden", status_code=403))

    assert client.publish("Hello") is None
    assert transport.count("POST", TOKEN_ACTION) == 0


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"data": {"text": "Post http://t.co/x1"}}, "http://t.co/x1"),
        ({"data": {"text": "a https://t.co/1, https://t.co/2"}}, "https://t.co/1"),
        ({"data": {"text": "no link"}}, None),
        ({}, None),
        ([], None),
    ],
)
def test_extract_shortened_url(payload, expected) -> None:
    assert extract_shortened_url(payload) == expected


# --------------------------------------------------------------------------- #
# Satellite role                                                              #
# --------------------------------------------------------------------------- #
@pytest.fixture()
def satellite(config, seeded, transport) -> OAuthClient:
    seeded.update(
        {
            MAIN_WEBSITE: "no",
            EXTERNAL_ENDPOINT: "https://main.example",
            EXTERNAL_TOKEN: "shared-secret",
        }
    )
    broker = TokenBroker(seeded, transport)
    return OAuthClient(config, seeded, transport, broker=broker)


def test_satellite_refresh_pulls_from_broker(satellite, store, transport) -> None:
    transport.queue("GET", ACCESS_PATH, {"access": "AT-MAIN"})

    assert satellite.refresh_token() is True
    assert transport.count("POST", TOKEN_ACTION) == 0
    assert store.get(ACCESS_TOKEN) == "AT-MAIN"
    assert store.get(REFRESH_TOKEN) == "RT0"


def test_satellite_publish_401_pulls_then_retries(satellite, transport) -> None:
    transport.queue("POST", TWEET_ACTION, AuthExpiredError(), TWEET_BODY)
    transport.queue("GET", ACCESS_PATH, {"access": "AT-MAIN"})

    assert satellite.publish("Hello") == TWEET_BODY
    assert transport.count("GET", ACCESS_PATH) == 1
    assert transport.count("POST", TOKEN_ACTION) == 0
    assert transport.calls[-1].headers["Authorization"] == "Bearer AT-MAIN"


def test_satellite_authenticate_pulls_and_updates_account(satellite, store, transport) -> None:
    transport.queue("GET", ACCESS_PATH, {"access": "AT-MAIN"})
    transport.queue("GET", USER_ACTION, {"data": {"id": "7", "name": "Shared", "username": "shared"}})

    assert satellite.authenticate() is None
    assert load_token_set(store) == TokenSet("AT-MAIN", "RT0", "7", "Shared", "shared")


def test_main_authenticate_returns_authorization_url(client) -> None:
    url = client.authenticate()
    assert url is not None and "client_id=abc" in url


def test_refresh_with_locked_store_returns_false(config, seeded, transport) -> None:
    locked = DiskCredentialStore(seeded.base_dir, lock_retries=0)
    locked._lock_path.touch()
    transport.queue("POST", TOKEN_ACTION, {"access_token": "AT2", "refresh_token": "RT2"})
    transport.queue("GET", USER_ACTION, USER_BODY)
    client = OAuthClient(config, locked, transport)

    assert client.refresh_token() is False
    assert load_token_set(locked) == TokenSet("AT0", "RT0", "1", "N", "u")


def test_publish_with_locked_store_after_401(config, seeded, transport) -> None:
    locked = DiskCredentialStore(seeded.base_dir, lock_retries=0)
    locked._lock_path.touch()
    transport.queue("POST", TWEET_ACTION, AuthExpiredError())
    transport.queue("POST", TOKEN_ACTION, {"access_token": "AT2", "refresh_token": "RT2"})
    transport.queue("GET", USER_ACTION, USER_BODY)

    assert OAuthClient(config, locked, transport).publish("Hello") is None
    assert transport.count("POST", TWEET_ACTION) == 1


def test_main_broker_client_authenticates_and_refreshes_locally(config, seeded, transport) -> None:
    seeded.set(MAIN_WEBSITE, "yes")
    client = OAuthClient(config, seeded, transport, broker=TokenBroker(seeded, transport))
    transport.queue("POST", TOKEN_ACTION, {"access_token": "AT2", "refresh_token": "RT2"})
    transport.queue("GET", USER_ACTION, USER_BODY)

    assert client.authenticate() is not None
    assert client.refresh_token() is True
    assert transport.count("GET", ACCESS_PATH) == 0
