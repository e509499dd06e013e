"""
Unit tests for the OAuth2 token service.
"""

import pytest
from unittest.mock import AsyncMock

from service_calling.app.token_service import OAuth2TokenService
from shared.errors import AuthorizationError
from shared.metrics import MetricsCollector
from shared.oauth2 import (
    ANONYMOUS_PRINCIPAL,
    AuthorizedClientManager,
    ClientRegistration,
    OAuth2AccessToken,
    OAuth2AuthorizationException,
    OAuth2AuthorizedClient,
)


@pytest.fixture
def registration():
    return ClientRegistration(
        registration_id="customer-service",
        client_id="calling-service",
        client_secret="secret",
        token_uri="http://idp.local/token"
    )


@pytest.fixture
def manager():
    return AsyncMock(spec=AuthorizedClientManager)


@pytest.mark.asyncio
async def test_returns_token_value(manager, registration):
    """Test the access token value is returned."""
    manager.authorize.return_value = OAuth2AuthorizedClient(
        client_registration=registration,
        principal_name=ANONYMOUS_PRINCIPAL.name,
        access_token=OAuth2AccessToken(token_value="abc123", issued_at=0, expires_at=60)
    )
    service = OAuth2TokenService(manager, "customer-service")

    assert await service.get_access_token() == "abc123"


@pytest.mark.asyncio
async def test_authorizes_as_anonymous_principal(manager, registration):
    """Test authorization is requested for the configured registration and anonymous principal."""
    manager.authorize.return_value = OAuth2AuthorizedClient(
        client_registration=registration,
        principal_name=ANONYMOUS_PRINCIPAL.name,
        access_token=OAuth2AccessToken(token_value="abc123", issued_at=0, expires_at=60)
    )
    service = OAuth2TokenService(manager, "customer-service")

    await service.get_access_token()

    request = manager.authorize.await_args.args[0]
    assert request.client_registration_id == "customer-service"
    assert request.principal.name == "anonymousUser"
    assert request.principal.authorities == ("ROLE_ANONYMOUS",)


@pytest.mark.asyncio
async def test_no_authorized_client_raises(manager):
    """Test a missing authorized client is an authorization failure."""
    manager.authorize.return_value = None
    service = OAuth2TokenService(manager, "customer-service")

    with pytest.raises(AuthorizationError) as exc_info:
        await service.get_access_token()

    assert exc_info.value.message == "Unable to authorize client: customer-service"
    assert exc_info.value.code == "AUTHORIZATION_ERROR"


@pytest.mark.asyncio
async def test_token_endpoint_failure_raises(manager):
    """Test token endpoint failures become authorization failures."""
    manager.authorize.side_effect = OAuth2AuthorizationException("invalid_client", "bad secret")
    metrics = MetricsCollector("calling")
    service = OAuth2TokenService(manager, "customer-service", metrics=metrics)

    with pytest.raises(AuthorizationError) as exc_info:
        await service.get_access_token()

    assert exc_info.value.details["error"] == "invalid_client"
    assert metrics.registry.get_sample_value(
        "token_requests_total",
        {"registration_id": "customer-service", "outcome": "error"}
    ) == 1.0
