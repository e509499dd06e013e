"""
Access token provider for outbound customer service calls.
"""

from typing import Optional

from shared.errors import AuthorizationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.oauth2 import (
    ANONYMOUS_PRINCIPAL,
    AuthorizedClientManager,
    OAuth2AuthorizationException,
    OAuth2AuthorizeRequest,
)


class OAuth2TokenService:
    """Obtains access tokens for one client registration.

    The service acts as a machine client, so every authorization is requested
    for the anonymous principal. Token caching and renewal are left to the
    authorized client manager.
    """

    def __init__(
        self,
        authorized_client_manager: AuthorizedClientManager,
        registration_id: str,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.authorized_client_manager = authorized_client_manager
        self.registration_id = registration_id
        self.metrics = metrics
        self.logger = get_logger("calling.token_service")

    async def get_access_token(self) -> str:
        """Return an access token for the configured registration.

        Raises:
            AuthorizationError: if the client cannot be authorized
        """
        request = OAuth2AuthorizeRequest.with_client_registration_id(
            self.registration_id,
            principal=ANONYMOUS_PRINCIPAL
        )

        try:
            authorized_client = await self.authorized_client_manager.authorize(request)
        except OAuth2AuthorizationException as e:
            self._record("error")
            self.logger.error(
                "Token request failed",
                registration_id=self.registration_id,
                error=e.error_code
            )
            raise AuthorizationError(
                f"Unable to authorize client: {self.registration_id}",
                details={"registration_id": self.registration_id, "error": e.error_code}
            ) from e

        if authorized_client is None:
            self._record("unauthorized")
            raise AuthorizationError(
                f"Unable to authorize client: {self.registration_id}",
                details={"registration_id": self.registration_id}
            )

        self._record("ok")
        return authorized_client.access_token.token_value

    def _record(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_token_request(self.registration_id, outcome)
