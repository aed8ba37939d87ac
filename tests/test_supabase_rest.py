import pytest
import requests

from uk_tender_loader.config import StoreConfig
from uk_tender_loader.connectors import supabase_rest as sb


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._payload


def _client():
    return sb.SupabaseRestClient(
        config=StoreConfig(url="https://proj.supabase.co/", service_key="secret")
    )


def test_identity_rows_use_projection_and_paging(monkeypatch):
    seen = {}

    def fake_get(url, params=None, headers=None, timeout=None):
        seen.update(url=url, params=params, headers=headers)
        return FakeResponse(payload=[{"title": "A", "buyer_name": "B"}])

    monkeypatch.setattr(sb.requests, "get", fake_get)
    rows = _client().fetch_identity_rows(2000, 1000)

    assert rows == [{"title": "A", "buyer_name": "B"}]
    assert seen["url"] == "https://proj.supabase.co/rest/v1/tenders"
    assert seen["params"]["select"] == "title,buyer_name"
    assert seen["params"]["offset"] == "2000"
    assert seen["params"]["limit"] == "1000"
    assert seen["headers"]["apikey"] == "secret"
    assert seen["headers"]["Authorization"] == "Bearer secret"


def test_identity_read_failure_raises(monkeypatch):
    monkeypatch.setattr(
        sb.requests, "get", lambda *a, **k: FakeResponse(status_code=401, text="bad key")
    )
    with pytest.raises(sb.StoreReadError) as exc_info:
        _client().fetch_identity_rows(0, 1000)
    assert exc_info.value.status_code == 401


def test_insert_requests_minimal_return(monkeypatch):
    seen = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        seen.update(json=json, headers=headers)
        return FakeResponse(status_code=201)

    monkeypatch.setattr(sb.requests, "post", fake_post)
    result = _client().insert_tenders([{"title": "A"}])

    assert result.ok
    assert seen["json"] == [{"title": "A"}]
    assert seen["headers"]["Prefer"] == "return=minimal"


def test_insert_failure_surfaces_body(monkeypatch):
    monkeypatch.setattr(
        sb.requests,
        "post",
        lambda *a, **k: FakeResponse(status_code=400, text='{"message":"bad column"}'),
    )
    result = _client().insert_tenders([{"title": "A"}])
    assert not result.ok
    assert result.status_code == 400
    assert "bad column" in result.error


def test_insert_transport_error_is_a_failed_result(monkeypatch):
    def boom(*a, **k):
        raise requests.ConnectionError("reset")

    monkeypatch.setattr(sb.requests, "post", boom)
    result = _client().insert_tenders([{"title": "A"}])
    assert not result.ok
    assert "reset" in result.error
