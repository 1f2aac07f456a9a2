import httpx
import pytest

from app.core.config import Settings
from app.services.external_data import ExternalDataFetcher, GeocoderNotConfigured, extract_google
from app.services.http_client import ProviderHttpClient


POSTAL_OK = [{
    "Message": "Number of pincode(s) found:2",
    "Status": "Success",
    "PostOffice": [
        {
            "Name": "Pune H.O", "BranchType": "Head Post Office", "DeliveryStatus": "Delivery",
            "District": "Pune", "State": "Maharashtra", "Division": "Pune City West", "Region": "Pune",
        },
        {
            "Name": "Camp", "BranchType": "Sub Post Office", "DeliveryStatus": "Non-Delivery",
            "District": "Pune", "State": "Maharashtra", "Division": "Pune City East", "Region": "Pune",
            "Latitude": "18.51", "Longitude": "73.88",
        },
    ],
}]

POSTAL_MISS = [{"Message": "No records found", "Status": "Error", "PostOffice": None}]


def _fetcher(handler, **overrides) -> ExternalDataFetcher:
    cfg = Settings(**overrides)
    http = ProviderHttpClient(timeout_seconds=1.0, transport=httpx.MockTransport(handler))
    return ExternalDataFetcher(http, cfg=cfg)


@pytest.mark.asyncio
async def test_postal_index_success_parses_post_offices():
    seen = []

    def handler(request: httpx.Request):
        seen.append(str(request.url))
        return httpx.Response(200, json=POSTAL_OK)

    fetcher = _fetcher(handler)
    res = await fetcher.fetch_postal_index(411001)
    await fetcher.aclose()

    assert seen == ["https://api.postalpincode.in/pincode/411001"]
    assert [po.name for po in res.post_offices] == ["Pune H.O", "Camp"]
    assert res.post_offices[0].coordinates is None
    assert res.post_offices[1].coordinates == (18.51, 73.88)
    assert res.post_offices[1].branch_type == "Sub Post Office"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json=POSTAL_MISS),
        httpx.Response(200, json=[]),
        httpx.Response(503, text="maintenance"),
        httpx.Response(200, text="<html>not json</html>", headers={"content-type": "text/html"}),
    ],
)
async def test_postal_index_misses_are_none(response):
    fetcher = _fetcher(lambda request: response)
    assert await fetcher.fetch_postal_index(411001) is None
    await fetcher.aclose()


@pytest.mark.asyncio
async def test_postal_index_timeout_is_a_miss_not_an_exception():
    def handler(request: httpx.Request):
        raise httpx.ConnectTimeout("timed out", request=request)

    fetcher = _fetcher(handler)
    assert await fetcher.fetch_postal_index(411001) is None
    await fetcher.aclose()


@pytest.mark.asyncio
async def test_geocode_sends_identity_and_full_query():
    captured = {}

    def handler(request: httpx.Request):
        captured["ua"] = request.headers.get("user-agent")
        captured["q"] = request.url.params.get("q")
        captured["limit"] = request.url.params.get("limit")
        return httpx.Response(200, json=[{"lat": "18.515", "lon": "73.857"}])

    fetcher = _fetcher(handler, geocoder_user_agent="LocalityHubTest/1.0")
    coords = await fetcher.geocode("Budhwar Peth", "Pune")
    await fetcher.aclose()

    assert coords == (18.515, 73.857)
    assert captured == {"ua": "LocalityHubTest/1.0", "q": "Budhwar Peth, Pune, India", "limit": "1"}


@pytest.mark.asyncio
async def test_geocode_without_hits_is_none():
    fetcher = _fetcher(lambda request: httpx.Response(200, json=[]))
    assert await fetcher.geocode("Nowhere", "Pune") is None
    await fetcher.aclose()


@pytest.mark.asyncio
async def test_reverse_geocode_nominatim():
    payload = {
        "display_name": "Camp, Pune, Maharashtra, 411001, India",
        "address": {
            "suburb": "Camp", "city": "Pune", "county": "Pune", "state": "Maharashtra",
            "postcode": "411001", "country": "India",
        },
    }
    fetcher = _fetcher(lambda request: httpx.Response(200, json=payload))
    addr = await fetcher.reverse_geocode(18.51, 73.88)
    await fetcher.aclose()

    assert addr.provider == "nominatim"
    assert addr.pincode == "411001"
    assert addr.area == "Camp"
    assert addr.city == "Pune"
    assert addr.full_address.startswith("Camp, Pune")


@pytest.mark.asyncio
async def test_reverse_geocode_google_uses_key():
    captured = {}

    def handler(request: httpx.Request):
        captured["key"] = request.url.params.get("key")
        captured["latlng"] = request.url.params.get("latlng")
        return httpx.Response(200, json={
            "status": "OK",
            "results": [{
                "formatted_address": "Camp, Pune, Maharashtra 411001, India",
                "address_components": [
                    {"long_name": "411001", "types": ["postal_code"]},
                    {"long_name": "Camp", "types": ["sublocality", "political"]},
                    {"long_name": "Pune", "types": ["locality", "political"]},
                    {"long_name": "Maharashtra", "types": ["administrative_area_level_1"]},
                    {"long_name": "India", "types": ["country"]},
                ],
            }],
        })

    fetcher = _fetcher(handler, google_geocoding_api_key="test-key")
    addr = await fetcher.reverse_geocode(18.51, 73.88, provider="google")
    await fetcher.aclose()

    assert captured == {"key": "test-key", "latlng": "18.51,73.88"}
    assert (addr.pincode, addr.area, addr.city, addr.state) == ("411001", "Camp", "Pune", "Maharashtra")


@pytest.mark.asyncio
async def test_reverse_geocode_rejects_unknown_provider_and_missing_key():
    fetcher = _fetcher(lambda request: httpx.Response(200, json={}))
    with pytest.raises(GeocoderNotConfigured):
        await fetcher.reverse_geocode(18.5, 73.8, provider="mapquest")
    with pytest.raises(GeocoderNotConfigured):
        await fetcher.reverse_geocode(18.5, 73.8, provider="opencage")
    await fetcher.aclose()


def test_extract_google_ignores_non_ok_status():
    assert extract_google({"status": "ZERO_RESULTS", "results": []}) is None


@pytest.mark.asyncio
async def test_http_client_wraps_list_bodies_and_reports_status():
    responses = iter([httpx.Response(200, json=[{"a": 1}]), httpx.Response(503, json={"error": "busy"})])
    http = ProviderHttpClient(transport=httpx.MockTransport(lambda request: next(responses)))

    ok = await http.get_json(url="https://provider.test/ok")
    busy = await http.get_json(url="https://provider.test/busy")
    await http.aclose()

    assert (ok.ok, ok.status_code, ok.detail) == (True, 200, {"data": [{"a": 1}]})
    assert (busy.ok, busy.error_code, busy.retryable) == (False, "HTTP_503", True)
    assert busy.detail == {"error": "busy"}
