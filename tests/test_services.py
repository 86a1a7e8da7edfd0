from unittest.mock import MagicMock

import pytest
import requests

from seamap.data.services import ServiceClient
from seamap.errors import (
    MalformedResponseError,
    RateLimitedError,
    RemoteServiceError,
    ServiceTimeoutError,
)

URL = "https://example.org/api"


def make_response(status=200, content=b"{}"):
    response = requests.Response()
    response.status_code = status
    response._content = content
    response.encoding = "utf-8"
    response.url = URL
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


def test_get_passes_timeout(session):
    session.get.return_value = make_response()
    client = ServiceClient(service="test", timeout=5, session=session)

    client.get(URL, params={"a": 1})

    session.get.assert_called_once_with(URL, params={"a": 1}, timeout=5)


def test_timeout_is_retried_once(session):
    session.get.side_effect = [requests.Timeout("slow"), make_response(content=b'{"ok": true}')]
    client = ServiceClient(service="test", retries=1, session=session)

    assert client.get_json(URL) == {"ok": True}
    assert session.get.call_count == 2


def test_timeout_after_retry_raises(session):
    session.get.side_effect = requests.Timeout("slow")
    client = ServiceClient(service="test", retries=1, session=session)

    with pytest.raises(ServiceTimeoutError) as excinfo:
        client.get(URL)
    assert session.get.call_count == 2
    assert excinfo.value.retryable
    assert excinfo.value.service == "test"
    assert excinfo.value.url == URL


def test_connection_error_maps_to_timeout(session):
    session.get.side_effect = requests.ConnectionError("refused")
    client = ServiceClient(service="test", retries=0, session=session)

    with pytest.raises(ServiceTimeoutError):
        client.get(URL)
    assert session.get.call_count == 1


def test_rate_limited(session):
    session.get.return_value = make_response(status=429)
    client = ServiceClient(service="test", session=session)

    with pytest.raises(RateLimitedError) as excinfo:
        client.get(URL)
    assert excinfo.value.status == 429


def test_http_error_carries_status(session):
    session.get.return_value = make_response(status=500, content=b"server exploded")
    client = ServiceClient(service="test", session=session)

    with pytest.raises(RemoteServiceError) as excinfo:
        client.get(URL)
    assert excinfo.value.status == 500
    assert "server exploded" in str(excinfo.value)
    assert not isinstance(excinfo.value, ServiceTimeoutError)


def test_invalid_json_is_malformed(session):
    session.get.return_value = make_response(content=b"<html>not json</html>")
    client = ServiceClient(service="test", session=session)

    with pytest.raises(MalformedResponseError):
        client.get_json(URL)


def test_borrowed_session_is_not_closed(session):
    session.get.return_value = make_response()
    with ServiceClient(session=session) as client:
        client.get(URL)
    session.close.assert_not_called()


def test_owned_session_is_closed_on_error(monkeypatch):
    created = MagicMock(spec=requests.Session)
    created.headers = {}
    created.get.side_effect = requests.Timeout("slow")
    monkeypatch.setattr(requests, "Session", lambda: created)

    with pytest.raises(ServiceTimeoutError):
        with ServiceClient(retries=0) as client:
            client.get(URL)

    created.close.assert_called_once()
    assert client.session is None
    assert "User-Agent" in created.headers
