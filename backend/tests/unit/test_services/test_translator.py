"""
Request translator unit tests
"""

import pytest

from attested_proxy.common.errors import TranslationError
from attested_proxy.services.translator import build_outbound_request, prepare_request_headers

from conftest import BASE_URL, async_chunks


class TestPrepareRequestHeaders:
    """Header sanitization and injection"""

    def test_injects_configured_api_key(self):
        headers = prepare_request_headers({"accept": "*/*"}, api_key="test-api-key")
        assert headers["authorization"] == "Bearer test-api-key"

    def test_no_injection_without_api_key(self):
        headers = prepare_request_headers({"accept": "*/*"}, api_key=None)
        assert "authorization" not in headers

    def test_caller_authorization_is_never_overwritten(self):
        headers = prepare_request_headers(
            {"Authorization": "Bearer custom-token"}, api_key="test-api-key"
        )
        assert headers["authorization"] == "Bearer custom-token"

    def test_blank_caller_authorization_counts_as_absent(self):
        headers = prepare_request_headers({"authorization": ""}, api_key="test-api-key")
        assert headers["authorization"] == "Bearer test-api-key"

    def test_removes_connection_specific_headers(self):
        headers = prepare_request_headers(
            {"host": "malicious.com", "content-length": "100", "connection": "close"},
            api_key="k",
        )
        assert "host" not in headers
        assert "content-length" not in headers
        assert "connection" not in headers

    def test_content_type_defaults_to_json(self):
        assert prepare_request_headers({})["content-type"] == "application/json"

    def test_existing_content_type_kept(self):
        headers = prepare_request_headers({"Content-Type": "multipart/form-data; boundary=x"})
        assert headers["content-type"] == "multipart/form-data; boundary=x"


class TestBuildOutboundRequest:
    """Descriptor construction"""

    def test_post_chat_completions(self):
        body = async_chunks(b'{"model":"gpt-4"}')
        outbound = build_outbound_request(
            "POST",
            "/v1/chat/completions",
            [("content-type", "application/json")],
            body,
            base_url=BASE_URL,
            api_key="test-api-key",
        )

        assert outbound.method == "POST"
        assert outbound.url == "https://api.tinfoil.ai/v1/chat/completions"
        assert outbound.headers["authorization"] == "Bearer test-api-key"
        # Streamed through untouched, never buffered
        assert outbound.body is body

    @pytest.mark.parametrize("method", ["GET", "HEAD", "get"])
    def test_get_and_head_have_no_body(self, method):
        outbound = build_outbound_request(
            method, "/models", {}, async_chunks(b"ignored"), base_url=BASE_URL
        )
        assert outbound.body is None
        assert outbound.method == method.upper()

    @pytest.mark.parametrize("method", ["PUT", "PATCH", "DELETE", "OPTIONS"])
    def test_other_methods_forward_body(self, method):
        body = async_chunks(b"x")
        outbound = build_outbound_request(method, "/x", {}, body, base_url=BASE_URL)
        assert outbound.body is body

    def test_query_preserved(self):
        outbound = build_outbound_request(
            "GET", "/v1/models?limit=5", {}, None, base_url=BASE_URL
        )
        assert outbound.url == "https://api.tinfoil.ai/v1/models?limit=5"

    def test_target_outside_upstream_rejected(self):
        with pytest.raises(TranslationError):
            build_outbound_request("GET", "//evil.example/", {}, None, base_url=BASE_URL)
