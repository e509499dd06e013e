"""
Calling service: forwards customer requests to the customer service.
"""

from typing import Any, Dict, Optional

from fastapi import Body
from fastapi.responses import Response

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.oauth2 import (
    ClientAuthenticationMethod,
    ClientRegistration,
    build_authorized_client_manager,
)
from .adapters.customer_client import CustomerClient, CustomerResponse
from .token_service import OAuth2TokenService


class CallingService(BaseService):
    """Calling service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, customer_client: Optional[CustomerClient] = None):
        super().__init__("calling", config=config)
        self.customer_client = customer_client or self._build_customer_client()
        self._setup_customer_routes()

    def _build_customer_client(self) -> CustomerClient:
        """Wire the customer client with an OAuth2 token service from configuration."""
        registration = ClientRegistration(
            registration_id=self.config.oauth2_registration_id,
            client_id=self.config.oauth2_client_id,
            client_secret=self.config.oauth2_client_secret,
            token_uri=self.config.oauth2_token_uri,
            issuer_uri=self.config.oauth2_issuer_uri,
            scopes=tuple(self.config.oauth2_scopes),
            client_authentication_method=ClientAuthenticationMethod(self.config.oauth2_client_auth_method)
        )
        manager = build_authorized_client_manager(
            [registration],
            clock_skew_seconds=self.config.oauth2_clock_skew_seconds,
            timeout=self.config.downstream_timeout_seconds
        )
        token_service = OAuth2TokenService(
            manager,
            registration.registration_id,
            metrics=self.metrics
        )
        return CustomerClient(
            self.config.customer_service_url,
            token_service,
            timeout=self.config.downstream_timeout_seconds,
            metrics=self.metrics
        )

    def _setup_customer_routes(self):
        """Set up customer routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "message": "Calling Service - customer service facade",
                "version": "1.0.0"
            }

        @self.app.get("/customers/{customer_id}")
        async def get_customer(customer_id: int):
            """Fetch a customer from the customer service."""
            result = await self.customer_client.fetch_customer(customer_id)
            return _relay(result)

        @self.app.post("/customers")
        async def create_customer(customer: Dict[str, Any] = Body(...)):
            """Create a customer through the customer service."""
            result = await self.customer_client.create_customer(customer)
            return _relay(result)


def _relay(result: CustomerResponse) -> Response:
    if not result.has_content:
        return Response(status_code=result.status_code, headers=result.headers)
    return Response(
        status_code=result.status_code,
        content=result.content,
        media_type=result.media_type or "application/json",
        headers=result.headers
    )


def create_app(config: Optional[ServiceConfig] = None, customer_client: Optional[CustomerClient] = None):
    """Create FastAPI application."""
    service = CallingService(config=config, customer_client=customer_client)
    return service.app


if __name__ == "__main__":
    service = CallingService(get_config("calling"))
    service.run()
