"""
Outbound Request Builder Tests

Tests URL construction, both header policies and body rebuilding without
touching the network.
"""

import pytest

from relay_server.app.config import IDENTITY_HEADERS, HeaderMode, Settings
from relay_server.app.proxy.exceptions import MalformedInboundError, MisconfiguredTargetError
from relay_server.app.proxy.outbound import (
    HEADER_BUILDERS,
    InboundRequest,
    build_body,
    build_outbound_request,
    build_target_url,
    synthetic_identity_headers,
    transparent_forward_headers,
)


@pytest.fixture
def settings():
    return Settings(_env_file=None, TARGET_URL="https://api.example.com")


@pytest.fixture
def leaky_request():
    """Inbound request carrying every identity-revealing header"""
    headers = {name.upper(): "10.1.2.3" for name in IDENTITY_HEADERS}
    headers.update({
        "Host": "relay.internal:3000",
        "Content-Length": "17",
        "Content-Type": "application/json",
        "X-MBX-APIKEY": "key-123",
        "X-Request-ID": "req-1",
        "User-Agent": "backend-a/2.0",
    })
    return InboundRequest(
        method="post",
        path="/open/v1/orders",
        headers=headers,
        body=b'{"symbol":"BTC"}',
    )


class TestInboundRequest:
    def test_headers_lowercased(self):
        inbound = InboundRequest(method="get", path="/", headers={"X-MBX-APIKEY": "k"})

        assert inbound.method == "GET"
        assert inbound.headers["x-mbx-apikey"] == "k"

    def test_headers_immutable(self):
        inbound = InboundRequest(method="GET", path="/", headers={"a": "b"})

        with pytest.raises(TypeError):
            inbound.headers["a"] = "c"


class TestBuildTargetUrl:
    def test_path_appended(self):
        assert build_target_url("https://api.example.com", "/open/v1/orders") == (
            "https://api.example.com/open/v1/orders"
        )

    def test_raw_query_not_reencoded(self):
        url = build_target_url("https://api.example.com", "/a%20b", "x=%2F&y=1+2")

        assert url == "https://api.example.com/a%20b?x=%2F&y=1+2"

    def test_trailing_slash_on_base(self):
        assert build_target_url("https://api.example.com/", "/v1") == "https://api.example.com/v1"

    @pytest.mark.parametrize("target", [None, ""])
    def test_missing_target_raises(self, target):
        with pytest.raises(MisconfiguredTargetError):
            build_target_url(target, "/v1")


class TestSyntheticIdentityHeaders:
    def test_baseline_and_allow_list_only(self, leaky_request, settings):
        headers = synthetic_identity_headers(leaky_request, settings)

        assert headers == {
            "User-Agent": settings.USER_AGENT,
            "Accept": "application/json, text/plain, */*",
            "Accept-Language": "en-US,en;q=0.9,id;q=0.8",
            "Accept-Encoding": "gzip, deflate",
            "Connection": "keep-alive",
            "X-MBX-APIKEY": "key-123",
            "Content-Type": "application/json",
        }

    def test_api_key_header_lookup_is_case_insensitive(self, settings):
        inbound = InboundRequest(method="GET", path="/", headers={"x-mbx-apikey": "abc"})

        assert synthetic_identity_headers(inbound, settings)["X-MBX-APIKEY"] == "abc"

    def test_custom_api_key_header(self):
        settings = Settings(_env_file=None, TARGET_URL="https://a.example", API_KEY_HEADER="X-API-Key")
        inbound = InboundRequest(method="GET", path="/", headers={"X-API-Key": "abc", "X-MBX-APIKEY": "no"})

        headers = synthetic_identity_headers(inbound, settings)

        assert headers["X-API-Key"] == "abc"
        assert "X-MBX-APIKEY" not in headers

    def test_absent_optional_headers_not_added(self, settings):
        headers = synthetic_identity_headers(InboundRequest(method="GET", path="/"), settings)

        assert "Content-Type" not in headers
        assert "X-MBX-APIKEY" not in headers


class TestTransparentForwardHeaders:
    def test_identity_and_transport_headers_removed(self, leaky_request, settings):
        headers = transparent_forward_headers(leaky_request, settings)

        for name in IDENTITY_HEADERS:
            assert name not in headers
        assert "host" not in headers
        assert "content-length" not in headers
        assert headers["x-request-id"] == "req-1"
        assert headers["x-mbx-apikey"] == "key-123"

    def test_existing_values_not_overwritten(self, leaky_request, settings):
        headers = transparent_forward_headers(leaky_request, settings)

        assert headers["user-agent"] == "backend-a/2.0"

    def test_defaults_backfilled(self, settings):
        headers = transparent_forward_headers(InboundRequest(method="GET", path="/"), settings)

        assert headers["user-agent"] == settings.USER_AGENT
        assert headers["accept"] == "application/json, text/plain, */*"
        assert headers["origin"] == "https://api.example.com"
        assert headers["referer"] == "https://api.example.com/"

    @pytest.mark.parametrize("encoding", ["br", "gzip, br, zstd", "identity"])
    def test_accept_encoding_pinned_to_decodable(self, settings, encoding):
        inbound = InboundRequest(method="GET", path="/", headers={"Accept-Encoding": encoding})

        headers = transparent_forward_headers(inbound, settings)

        assert headers["accept-encoding"] == "gzip, deflate"

    def test_origin_keeps_explicit_port(self):
        settings = Settings(_env_file=None, TARGET_URL="http://upstream.local:8443/api")

        headers = transparent_forward_headers(InboundRequest(method="GET", path="/"), settings)

        assert headers["origin"] == "http://upstream.local:8443"


class TestBuildBody:
    @pytest.mark.parametrize("method", ["GET", "HEAD"])
    def test_retrieval_methods_have_no_body(self, method):
        inbound = InboundRequest(method=method, path="/", body=b"data")

        assert build_body(inbound) is None

    def test_empty_body_is_none(self):
        assert build_body(InboundRequest(method="POST", path="/")) is None

    def test_raw_body_passed_through(self):
        inbound = InboundRequest(
            method="PUT",
            path="/",
            headers={"Content-Type": "application/octet-stream"},
            body=b"\x00\x01binary",
        )

        assert build_body(inbound) == b"\x00\x01binary"

    def test_form_body_reencoded(self):
        inbound = InboundRequest(
            method="POST",
            path="/",
            headers={"Content-Type": "application/x-www-form-urlencoded; charset=utf-8"},
            body=b"symbol=BTC_IDR&note=hello%20world&empty=",
        )

        assert build_body(inbound) == b"symbol=BTC_IDR&note=hello+world&empty="

    def test_form_body_not_utf8(self):
        inbound = InboundRequest(
            method="POST",
            path="/",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            body=b"\xff",
        )

        with pytest.raises(MalformedInboundError):
            build_body(inbound)


class TestBuildOutboundRequest:
    def test_header_builders_cover_every_mode(self):
        assert set(HEADER_BUILDERS) == set(HeaderMode)

    @pytest.mark.parametrize("mode", list(HeaderMode))
    def test_no_identity_header_in_any_mode(self, leaky_request, mode):
        settings = Settings(_env_file=None, TARGET_URL="https://api.example.com", HEADER_MODE=mode)

        outbound = build_outbound_request(leaky_request, settings)

        assert not {name.lower() for name in outbound.headers} & IDENTITY_HEADERS

    def test_assembles_method_url_and_body(self, leaky_request, settings):
        outbound = build_outbound_request(leaky_request, settings)

        assert outbound.method == "POST"
        assert outbound.url == "https://api.example.com/open/v1/orders"
        assert outbound.content == b'{"symbol":"BTC"}'

    def test_unconfigured_target(self, leaky_request):
        settings = Settings(_env_file=None, TARGET_URL=None)

        with pytest.raises(MisconfiguredTargetError):
            build_outbound_request(leaky_request, settings)
