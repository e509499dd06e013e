"""
Unit tests for the Calling Service customer client.
"""

import json

import httpx
import pytest
from unittest.mock import AsyncMock

from service_calling.app.adapters.customer_client import CustomerClient
from service_calling.app.token_service import OAuth2TokenService
from shared.errors import AuthorizationError, DownstreamServiceError, ExternalServiceError
from shared.metrics import MetricsCollector


class RecordingTransport(httpx.AsyncBaseTransport):
    """Transport that records requests and answers with a canned response."""

    def __init__(self, status_code=200, body=None, content=None, error=None, headers=None):
        self.status_code = status_code
        self.body = body
        self.content = content
        self.error = error
        self.headers = headers or {}
        self.requests = []

    async def handle_async_request(self, request):
        self.requests.append(request)
        if self.error:
            raise self.error
        if self.content is not None:
            return httpx.Response(self.status_code, content=self.content, headers=self.headers, request=request)
        if self.body is None:
            return httpx.Response(self.status_code, headers=self.headers, request=request)
        return httpx.Response(self.status_code, json=self.body, headers=self.headers, request=request)


class TestCustomerClient:
    """Test cases for CustomerClient."""

    @pytest.fixture
    def token_service(self):
        """Token service returning a fixed token."""
        service = AsyncMock(spec=OAuth2TokenService)
        service.get_access_token.return_value = "test-access-token"
        return service

    def make_client(self, token_service, transport, metrics=None):
        return CustomerClient(
            "http://customers.local/",
            token_service,
            timeout=5.0,
            transport=transport,
            metrics=metrics
        )

    @pytest.mark.asyncio
    async def test_fetch_customer_sends_one_authorized_get(self, token_service):
        """Test fetch issues a single GET with the bearer header."""
        transport = RecordingTransport(body={"id": 7, "name": "Ada"})
        client = self.make_client(token_service, transport)

        result = await client.fetch_customer(7)

        assert result.status_code == 200
        assert result.customer == {"id": 7, "name": "Ada"}
        assert len(transport.requests) == 1
        request = transport.requests[0]
        assert request.method == "GET"
        assert str(request.url) == "http://customers.local/customers/7"
        assert request.headers["Authorization"] == "Bearer test-access-token"
        token_service.get_access_token.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_create_customer_posts_payload(self, token_service):
        """Test create issues a single POST carrying the same payload."""
        payload = {"name": "Grace", "tags": ["navy"], "address": {"city": "Arlington"}}
        transport = RecordingTransport(status_code=201, body={"id": 8, **payload})
        client = self.make_client(token_service, transport)

        result = await client.create_customer(payload)

        assert result.status_code == 201
        assert result.customer["id"] == 8
        assert len(transport.requests) == 1
        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://customers.local/customers"
        assert request.headers["Authorization"] == "Bearer test-access-token"
        assert json.loads(request.content) == payload

    @pytest.mark.asyncio
    async def test_token_fetched_for_every_call(self, token_service):
        """Test a token is requested on each outbound call."""
        transport = RecordingTransport(body={"id": 1})
        client = self.make_client(token_service, transport)

        await client.fetch_customer(1)
        await client.create_customer({"name": "x"})

        assert token_service.get_access_token.await_count == 2

    @pytest.mark.asyncio
    async def test_authorization_failure_sends_nothing(self, token_service):
        """Test no request is issued when the token cannot be obtained."""
        token_service.get_access_token.side_effect = AuthorizationError("Unable to authorize client: x")
        transport = RecordingTransport(body={"id": 1})
        client = self.make_client(token_service, transport)

        with pytest.raises(AuthorizationError):
            await client.fetch_customer(1)
        with pytest.raises(AuthorizationError):
            await client.create_customer({"name": "x"})

        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_non_success_status_raises(self, token_service):
        """Test a downstream error status propagates with its body."""
        transport = RecordingTransport(status_code=404, body={"detail": "Customer not found"})
        client = self.make_client(token_service, transport)

        with pytest.raises(DownstreamServiceError) as exc_info:
            await client.fetch_customer(99)

        assert exc_info.value.status_code == 404
        assert exc_info.value.body == {"detail": "Customer not found"}

    @pytest.mark.asyncio
    async def test_non_json_error_body_kept_as_text(self, token_service):
        """Test a plain text error body is preserved."""
        transport = RecordingTransport(status_code=503, content=b"maintenance")
        client = self.make_client(token_service, transport)

        with pytest.raises(DownstreamServiceError) as exc_info:
            await client.create_customer({"name": "x"})

        assert exc_info.value.status_code == 503
        assert exc_info.value.body == "maintenance"

    @pytest.mark.asyncio
    async def test_transport_error_raises_external_service_error(self, token_service):
        """Test connection failures are not swallowed."""
        transport = RecordingTransport(error=httpx.ConnectError("Connection refused"))
        client = self.make_client(token_service, transport)

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.fetch_customer(1)

        assert exc_info.value.status_code == 502
        assert not isinstance(exc_info.value, DownstreamServiceError)

    @pytest.mark.asyncio
    async def test_timeout_raises_external_service_error(self, token_service):
        """Test timeouts surface as external service errors."""
        transport = RecordingTransport(error=httpx.ReadTimeout("Request timeout"))
        client = self.make_client(token_service, transport)

        with pytest.raises(ExternalServiceError):
            await client.fetch_customer(1)

    @pytest.mark.asyncio
    async def test_invalid_json_success_body(self, token_service):
        """Test an undecodable success body is reported."""
        transport = RecordingTransport(content=b"<html>ok</html>")
        client = self.make_client(token_service, transport)

        with pytest.raises(ExternalServiceError):
            await client.fetch_customer(1)

    @pytest.mark.asyncio
    async def test_empty_success_body(self, token_service):
        """Test an empty success body yields no customer."""
        transport = RecordingTransport(status_code=204)
        client = self.make_client(token_service, transport)

        result = await client.fetch_customer(1)

        assert result.status_code == 204
        assert result.customer is None
        assert not result.has_content

    @pytest.mark.asyncio
    async def test_scalar_json_error_body_keeps_raw_content(self, token_service):
        """Test a scalar JSON error body is kept byte for byte with its content type."""
        transport = RecordingTransport(status_code=404, body=42)
        client = self.make_client(token_service, transport)

        with pytest.raises(DownstreamServiceError) as exc_info:
            await client.fetch_customer(99)

        assert exc_info.value.body == 42
        assert exc_info.value.content == b"42"
        assert exc_info.value.media_type == "application/json"

    @pytest.mark.asyncio
    async def test_null_success_body_has_content(self, token_service):
        """Test a JSON null body is distinguished from an empty one."""
        transport = RecordingTransport(content=b"null", headers={"Content-Type": "application/json"})
        client = self.make_client(token_service, transport)

        result = await client.fetch_customer(1)

        assert result.customer is None
        assert result.has_content
        assert result.content == b"null"

    @pytest.mark.asyncio
    async def test_location_header_is_kept(self, token_service):
        """Test the Location header is carried on successes and failures."""
        created = RecordingTransport(status_code=201, body={"id": 8}, headers={"Location": "/customers/8"})
        result = await self.make_client(token_service, created).create_customer({"name": "Grace"})

        redirected = RecordingTransport(status_code=303, headers={"Location": "/customers/8", "X-Other": "1"})
        with pytest.raises(DownstreamServiceError) as exc_info:
            await self.make_client(token_service, redirected).create_customer({"name": "Grace"})

        assert result.headers == {"location": "/customers/8"}
        assert exc_info.value.headers == {"location": "/customers/8"}

    @pytest.mark.asyncio
    async def test_records_downstream_metrics(self, token_service):
        """Test outbound calls are counted by outcome."""
        metrics = MetricsCollector("calling")
        client = self.make_client(token_service, RecordingTransport(body={"id": 1}), metrics=metrics)

        await client.fetch_customer(1)

        value = metrics.registry.get_sample_value(
            "downstream_requests_total",
            {"operation": "fetch_customer", "outcome": "ok"}
        )
        assert value == 1.0
