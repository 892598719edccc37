"""Tests for the batched NOAA feed client."""

import asyncio

import httpx

from app.schemas.weather_alert import ActiveLocation
from app.services.alert_fetcher import AlertFetcher
from conftest import feed_transport, nws_feature


def make_locations(count):
    return [
        ActiveLocation(
            city=f"City{i}",
            state="OK",
            latitude=35.5 + i,
            longitude=-97.5,
            user_count=count - i,
        )
        for i in range(count)
    ]


def point(location):
    return f"{location.latitude},{location.longitude}"


def make_fetcher(responses, batch_size=5, timeout=2.0, requests=None):
    return AlertFetcher(
        base_url="https://api.weather.test/",
        user_agent="WeatherAlertEngine/test (ops@example.com)",
        timeout=timeout,
        batch_size=batch_size,
        transport=feed_transport(responses, requests),
    )


def test_failures_do_not_affect_other_locations():
    locations = make_locations(7)
    responses = {point(loc): [nws_feature(f"alert-{i}")] for i, loc in enumerate(locations)}
    responses[point(locations[1])] = 500
    responses[point(locations[3])] = httpx.ConnectError("connection refused")
    responses[point(locations[5])] = lambda request: httpx.Response(200, text="<html>oops</html>")

    results = asyncio.run(make_fetcher(responses, batch_size=3).fetch_all(locations))

    assert [r.location.city for r in results] == [loc.city for loc in locations]
    failed = [i for i, r in enumerate(results) if not r.ok]
    assert failed == [1, 3, 5]
    for i in failed:
        assert results[i].features == []
    for i in (0, 2, 4, 6):
        assert [f["id"] for f in results[i].features] == [f"alert-{i}"]


def test_request_identifies_itself():
    locations = make_locations(1)
    requests = []

    asyncio.run(make_fetcher({}, requests=requests).fetch_all(locations))

    assert len(requests) == 1
    request = requests[0]
    assert request.url.path == "/alerts/active"
    assert request.url.params["point"] == "35.5,-97.5"
    assert request.headers["User-Agent"] == "WeatherAlertEngine/test (ops@example.com)"
    assert request.headers["Accept"] == "application/geo+json"


def test_concurrency_never_exceeds_batch_size():
    locations = make_locations(7)
    in_flight = 0
    peak = 0

    async def slow(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.02)
        in_flight -= 1
        return httpx.Response(200, json={"features": []})

    responses = {point(loc): slow for loc in locations}
    results = asyncio.run(make_fetcher(responses, batch_size=3).fetch_all(locations))

    assert len(results) == 7
    assert all(r.ok for r in results)
    assert peak == 3


def test_slow_location_times_out_with_empty_result():
    locations = make_locations(2)

    async def hang(request):
        await asyncio.sleep(5)
        return httpx.Response(200, json={"features": []})

    responses = {
        point(locations[0]): hang,
        point(locations[1]): [nws_feature("alert-fast")],
    }
    results = asyncio.run(make_fetcher(responses, timeout=0.1).fetch_all(locations))

    assert results[0].error == "timeout"
    assert results[0].features == []
    assert results[1].ok
    assert len(results[1].features) == 1


def test_body_without_feature_list_is_a_failure():
    locations = make_locations(2)
    responses = {
        point(locations[0]): lambda request: httpx.Response(200, json={"features": "nope"}),
        point(locations[1]): lambda request: httpx.Response(200, json={"type": "FeatureCollection"}),
    }

    results = asyncio.run(make_fetcher(responses).fetch_all(locations))

    assert not results[0].ok
    assert "malformed" in results[0].error
    # a collection with no features key simply has no alerts
    assert results[1].ok
    assert results[1].features == []


def test_no_locations_makes_no_requests():
    requests = []
    assert asyncio.run(make_fetcher({}, requests=requests).fetch_all([])) == []
    assert requests == []
