"""
Customer service client for the Calling Service.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from shared.logging import get_logger
from shared.errors import DownstreamServiceError, ExternalServiceError
from shared.metrics import MetricsCollector
from service_calling.app.token_service import OAuth2TokenService

Customer = Dict[str, Any]


@dataclass
class CustomerResponse:
    """Downstream status, decoded customer and the raw body it came from."""

    status_code: int
    customer: Optional[Customer]
    content: bytes = b""
    media_type: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def has_content(self) -> bool:
        return bool(self.content)


class CustomerClient:
    """Client for the downstream customer service.

    Every call fetches a token first, so an authorization failure stops the
    call before anything is sent.
    """

    SERVICE_NAME = "customer_service"

    # Response headers passed back to the caller along with the body
    RELAYED_HEADERS = ("location",)

    def __init__(
        self,
        base_url: str,
        token_service: OAuth2TokenService,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_service = token_service
        self.timeout = timeout
        self.transport = transport
        self.metrics = metrics
        self.logger = get_logger("calling.customer_client")

    async def fetch_customer(self, customer_id: int) -> CustomerResponse:
        """Fetch a customer by id."""
        return await self._send("fetch_customer", "GET", f"/customers/{customer_id}")

    async def create_customer(self, customer: Customer) -> CustomerResponse:
        """Create a customer from the given representation."""
        return await self._send("create_customer", "POST", "/customers", json=customer)

    async def _send(self, operation: str, method: str, path: str, json: Optional[Customer] = None) -> CustomerResponse:
        token = await self.token_service.get_access_token()
        headers = {"Authorization": f"Bearer {token}"}
        url = f"{self.base_url}{path}"

        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, json=json, headers=headers)
        except httpx.HTTPError as e:
            self._record(operation, "transport_error", start_time)
            self.logger.error(
                "Customer service HTTP error",
                operation=operation,
                url=url,
                error=str(e)
            )
            raise ExternalServiceError(
                self.SERVICE_NAME,
                "Customer service unavailable",
                details={"http_error": str(e)}
            ) from e

        if not response.is_success:
            self._record(operation, "error_status", start_time)
            raise DownstreamServiceError(
                self.SERVICE_NAME,
                response.status_code,
                self._decode_error_body(response),
                content=response.content,
                media_type=response.headers.get("content-type"),
                headers=self._relayed_headers(response)
            )

        customer = None
        if response.content:
            try:
                customer = response.json()
            except ValueError as e:
                self._record(operation, "invalid_body", start_time)
                raise ExternalServiceError(
                    self.SERVICE_NAME,
                    "Customer service returned a body that is not JSON",
                    details={"status_code": response.status_code}
                ) from e

        self._record(operation, "ok", start_time)
        return CustomerResponse(
            status_code=response.status_code,
            customer=customer,
            content=response.content,
            media_type=response.headers.get("content-type"),
            headers=self._relayed_headers(response)
        )

    @classmethod
    def _relayed_headers(cls, response: httpx.Response) -> Dict[str, str]:
        return {
            name: response.headers[name]
            for name in cls.RELAYED_HEADERS
            if name in response.headers
        }

    @staticmethod
    def _decode_error_body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _record(self, operation: str, outcome: str, start_time: float) -> None:
        if self.metrics:
            self.metrics.record_downstream_request(operation, outcome, time.time() - start_time)
