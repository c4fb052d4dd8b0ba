from unittest import mock

import pytest
import requests

from page_tracker.errors import RemoteStoreError
from page_tracker.remote import HttpRemoteStore


def _response(status=200, payload=None):
    response = mock.Mock()
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    else:
        response.raise_for_status.return_value = None
    return response


def test_save_puts_snapshot_with_auth():
    session = mock.Mock()
    session.put.return_value = _response()
    store = HttpRemoteStore("https://db.example.com/", auth_token="secret", timeout=3.0, session=session)

    store.save("u1", {"files": {}, "updatedAt": 1, "userId": "u1"})

    session.put.assert_called_once_with(
        "https://db.example.com/users/u1/ledger.json",
        json={"files": {}, "updatedAt": 1, "userId": "u1"},
        params={"auth": "secret"},
        timeout=3.0,
    )


def test_load_returns_payload_or_none():
    session = mock.Mock()
    session.get.return_value = _response(payload={"files": {}, "updatedAt": 5})
    store = HttpRemoteStore("https://db.example.com", session=session)

    assert store.load("u1") == {"files": {}, "updatedAt": 5}
    session.get.assert_called_once_with(
        "https://db.example.com/users/u1/ledger.json", params={}, timeout=10.0
    )

    session.get.return_value = _response(payload=None)
    assert store.load("u1") is None


@pytest.mark.parametrize(
    "configure",
    [
        lambda s: setattr(s.put, "side_effect", requests.Timeout("read timed out")),
        lambda s: setattr(s.put, "return_value", _response(status=503)),
    ],
)
def test_save_failures_become_remote_store_errors(configure):
    session = mock.Mock()
    configure(session)
    store = HttpRemoteStore("https://db.example.com", session=session)

    with pytest.raises(RemoteStoreError):
        store.save("u1", {})


def test_load_rejects_unexpected_payload():
    session = mock.Mock()
    session.get.return_value = _response(payload=["nope"])
    store = HttpRemoteStore("https://db.example.com", session=session)

    with pytest.raises(RemoteStoreError):
        store.load("u1")
