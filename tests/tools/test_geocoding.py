"""Tests for city normalization and reverse geocoding."""

from __future__ import annotations

import httpx

from tools import geocoding
from workflows.state import Coordinate


def test_local_spellings_need_no_network(monkeypatch):
    def _fail(*args, **kwargs):
        raise AssertionError("network should not be used")

    monkeypatch.setattr(geocoding, "_request", _fail)
    normalizer = geocoding.CityNormalizer()

    assert normalizer.normalize("barcelone") == "Barcelona"
    assert normalizer.normalize("  MILANO ") == "Milan"
    assert normalizer.normalize("München") == "Munich"
    assert normalizer.coordinates("Paris").lat == 48.8566
    assert normalizer.normalize("") == ""


def test_remote_lookup_is_cached(monkeypatch, fake_response):
    calls = []

    def _fake_request(method, url, **kw):
        calls.append((url, kw["params"], kw["headers"]))
        return fake_response([
            {"lat": "43.3183", "lon": "-1.9812", "display_name": "Donostia, Gipuzkoa, Spain",
             "address": {"city": "San Sebastián"}},
        ])

    monkeypatch.setattr(geocoding, "_request", _fake_request)
    normalizer = geocoding.CityNormalizer()

    assert normalizer.normalize("donostia") == "San Sebastián"
    assert normalizer.lookup("Donostia").confidence == "medium"
    assert len(calls) == 1

    url, params, headers = calls[0]
    assert url.endswith("/search")
    assert params["format"] == "json" and params["limit"] == 1
    assert "User-Agent" in headers


def test_remote_failure_falls_back_to_title_case(monkeypatch):
    def _boom(method, url, **kw):
        raise httpx.ConnectError("offline")

    monkeypatch.setattr(geocoding, "_request", _boom)
    found = geocoding.CityNormalizer().lookup("tossa de mar")
    assert found.display_name == "Tossa De Mar"
    assert found.confidence == "low"
    assert found.coord is None


def test_reverse_geocode_formats_street_address(monkeypatch, fake_response):
    monkeypatch.setattr(
        geocoding,
        "_request",
        lambda method, url, **kw: fake_response(
            {"address": {"road": "Carrer de Montcada", "house_number": "15", "city": "Barcelona"}}
        ),
    )
    assert geocoding.reverse_geocode(Coordinate(lat=41.385, lng=2.181)) == "Carrer de Montcada 15, Barcelona"


def test_reverse_geocode_without_road(monkeypatch, fake_response):
    monkeypatch.setattr(geocoding, "_request", lambda method, url, **kw: fake_response({"address": {"city": "Barcelona"}}))
    assert geocoding.reverse_geocode(Coordinate(lat=41.385, lng=2.181)) is None


def test_geocoder_request_retries_transient_status(monkeypatch):
    statuses = [503, 200]
    real_client = httpx.Client

    def _handler(request):
        return httpx.Response(statuses.pop(0), json=[])

    monkeypatch.setattr(httpx, "Client", lambda **kw: real_client(transport=httpx.MockTransport(_handler), **kw))
    monkeypatch.setattr(geocoding._request.retry, "sleep", lambda seconds: None)

    assert geocoding.search_city("Atlantis") is None
    assert statuses == []
