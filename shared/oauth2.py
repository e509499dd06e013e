"""
OAuth2 client support for outbound service-to-service calls.

The pieces mirror the usual OAuth2 client model:

- ClientRegistration: static description of a client (id, secret, endpoint)
- InMemoryClientRegistrationRepository: lookup of registrations by id
- InMemoryAuthorizedClientService: cache of issued tokens per principal
- ClientCredentialsAuthorizedClientProvider: performs the client-credentials
  grant against the token endpoint and decides when a token must be renewed
- AuthorizedClientManager: entry point tying the above together

Only the client-credentials grant is supported. Everything is constructed
explicitly; there is no module level state.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import httpx

from shared.logging import get_logger


class AuthorizationGrantType(str, Enum):
    """Supported grant types."""

    CLIENT_CREDENTIALS = "client_credentials"


class ClientAuthenticationMethod(str, Enum):
    """How the client authenticates at the token endpoint."""

    CLIENT_SECRET_BASIC = "client_secret_basic"
    CLIENT_SECRET_POST = "client_secret_post"


@dataclass(frozen=True)
class ClientRegistration:
    """A client registered with an authorization server."""

    registration_id: str
    client_id: str
    client_secret: str = ""
    token_uri: Optional[str] = None
    issuer_uri: Optional[str] = None
    scopes: Tuple[str, ...] = ()
    client_authentication_method: ClientAuthenticationMethod = ClientAuthenticationMethod.CLIENT_SECRET_BASIC
    authorization_grant_type: AuthorizationGrantType = AuthorizationGrantType.CLIENT_CREDENTIALS

    def __post_init__(self):
        if not self.registration_id:
            raise ValueError("registration_id cannot be empty")
        if not self.client_id:
            raise ValueError("client_id cannot be empty")
        if not self.token_uri and not self.issuer_uri:
            raise ValueError(
                f"Client registration '{self.registration_id}' needs a token_uri or an issuer_uri"
            )


@dataclass(frozen=True)
class Principal:
    """Identity an authorization is requested for."""

    name: str
    authorities: Tuple[str, ...] = ()


# Machine clients have no end-user; they authorize as this principal.
ANONYMOUS_PRINCIPAL = Principal(name="anonymousUser", authorities=("ROLE_ANONYMOUS",))


@dataclass
class OAuth2AccessToken:
    """Access token issued by the authorization server."""

    token_value: str
    issued_at: float
    expires_at: float
    token_type: str = "Bearer"
    scopes: Tuple[str, ...] = ()

    def is_expired(self, clock_skew: float = 0.0, now: Optional[float] = None) -> bool:
        """Check whether the token is expired, or will be within ``clock_skew`` seconds."""
        current = time.time() if now is None else now
        return current >= self.expires_at - clock_skew


@dataclass
class OAuth2AuthorizedClient:
    """A registration paired with the principal and token it was authorized for."""

    client_registration: ClientRegistration
    principal_name: str
    access_token: OAuth2AccessToken


@dataclass(frozen=True)
class OAuth2AuthorizeRequest:
    """Request to authorize a registration for a principal."""

    client_registration_id: str
    principal: Principal = ANONYMOUS_PRINCIPAL

    @classmethod
    def with_client_registration_id(cls, registration_id: str, principal: Principal = ANONYMOUS_PRINCIPAL) -> "OAuth2AuthorizeRequest":
        return cls(client_registration_id=registration_id, principal=principal)


@dataclass
class OAuth2AuthorizationContext:
    """Everything a provider needs to decide on an authorization."""

    client_registration: ClientRegistration
    principal: Principal
    authorized_client: Optional[OAuth2AuthorizedClient] = None
    attributes: Dict[str, Any] = field(default_factory=dict)


class OAuth2AuthorizationException(Exception):
    """The authorization server refused or failed a token request."""

    def __init__(self, error_code: str, description: str = "", details: Optional[Dict[str, Any]] = None):
        self.error_code = error_code
        self.description = description
        self.details = details or {}
        message = f"[{error_code}] {description}" if description else f"[{error_code}]"
        super().__init__(message)


class InMemoryClientRegistrationRepository:
    """Client registrations keyed by registration id."""

    def __init__(self, registrations: Sequence[ClientRegistration]):
        if not registrations:
            raise ValueError("At least one client registration is required")
        self._registrations: Dict[str, ClientRegistration] = {}
        for registration in registrations:
            if registration.registration_id in self._registrations:
                raise ValueError(f"Duplicate client registration: {registration.registration_id}")
            self._registrations[registration.registration_id] = registration

    def find_by_registration_id(self, registration_id: str) -> Optional[ClientRegistration]:
        return self._registrations.get(registration_id)

    def __iter__(self):
        return iter(self._registrations.values())


class InMemoryAuthorizedClientService:
    """Authorized clients cached per (registration id, principal name)."""

    def __init__(self, registrations: InMemoryClientRegistrationRepository):
        self.registrations = registrations
        self._clients: Dict[Tuple[str, str], OAuth2AuthorizedClient] = {}

    def load(self, registration_id: str, principal_name: str) -> Optional[OAuth2AuthorizedClient]:
        if self.registrations.find_by_registration_id(registration_id) is None:
            return None
        return self._clients.get((registration_id, principal_name))

    def save(self, authorized_client: OAuth2AuthorizedClient, principal: Principal) -> None:
        key = (authorized_client.client_registration.registration_id, principal.name)
        self._clients[key] = authorized_client

    def remove(self, registration_id: str, principal_name: str) -> None:
        self._clients.pop((registration_id, principal_name), None)


class ClientCredentialsAuthorizedClientProvider:
    """Performs the client-credentials grant.

    An existing authorized client is returned as-is until its token is within
    ``clock_skew_seconds`` of expiry. When a registration only names an
    issuer, the token endpoint is looked up from the issuer's metadata once
    and remembered.
    """

    DISCOVERY_PATHS = (
        "/.well-known/openid-configuration",
        "/.well-known/oauth-authorization-server",
    )

    def __init__(
        self,
        clock_skew_seconds: float = 60.0,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.clock_skew_seconds = clock_skew_seconds
        self.timeout = timeout
        self.transport = transport
        self.clock = clock
        self.logger = get_logger("oauth2.client_credentials")
        self._discovered_token_uris: Dict[str, str] = {}

    async def authorize(self, context: OAuth2AuthorizationContext) -> Optional[OAuth2AuthorizedClient]:
        registration = context.client_registration
        if registration.authorization_grant_type != AuthorizationGrantType.CLIENT_CREDENTIALS:
            return None

        authorized_client = context.authorized_client
        if authorized_client is not None and not authorized_client.access_token.is_expired(
            self.clock_skew_seconds, now=self.clock()
        ):
            return authorized_client

        access_token = await self._request_token(registration)
        return OAuth2AuthorizedClient(
            client_registration=registration,
            principal_name=context.principal.name,
            access_token=access_token
        )

    async def resolve_token_uri(self, registration: ClientRegistration) -> str:
        """Token endpoint for a registration, discovering it from the issuer if needed."""
        if registration.token_uri:
            return registration.token_uri

        issuer = registration.issuer_uri.rstrip("/")
        if issuer in self._discovered_token_uris:
            return self._discovered_token_uris[issuer]

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for path in self.DISCOVERY_PATHS:
                try:
                    response = await client.get(f"{issuer}{path}")
                except httpx.HTTPError as e:
                    raise OAuth2AuthorizationException(
                        "invalid_issuer",
                        f"Unable to reach issuer {issuer}",
                        details={"http_error": str(e)}
                    ) from e

                if response.status_code != 200:
                    continue
                try:
                    metadata = response.json()
                except ValueError:
                    continue
                if not isinstance(metadata, dict):
                    continue
                token_endpoint = metadata.get("token_endpoint")
                if isinstance(token_endpoint, str) and token_endpoint:
                    self._discovered_token_uris[issuer] = token_endpoint
                    self.logger.info(
                        "Discovered token endpoint",
                        issuer=issuer,
                        token_endpoint=token_endpoint
                    )
                    return token_endpoint

        raise OAuth2AuthorizationException(
            "invalid_issuer",
            f"No token endpoint published by issuer {issuer}"
        )

    async def _request_token(self, registration: ClientRegistration) -> OAuth2AccessToken:
        """Exchange client credentials for an access token."""
        token_uri = await self.resolve_token_uri(registration)

        data = {"grant_type": AuthorizationGrantType.CLIENT_CREDENTIALS.value}
        if registration.scopes:
            data["scope"] = " ".join(registration.scopes)

        auth = None
        if registration.client_authentication_method == ClientAuthenticationMethod.CLIENT_SECRET_BASIC:
            auth = httpx.BasicAuth(registration.client_id, registration.client_secret)
        else:
            data["client_id"] = registration.client_id
            data["client_secret"] = registration.client_secret

        issued_at = self.clock()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    token_uri,
                    data=data,
                    auth=auth,
                    headers={"Accept": "application/json"}
                )
        except httpx.HTTPError as e:
            self.logger.error(
                "Token endpoint unreachable",
                registration_id=registration.registration_id,
                error=str(e)
            )
            raise OAuth2AuthorizationException(
                "invalid_token_response",
                f"Token endpoint {token_uri} unreachable",
                details={"http_error": str(e)}
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code != 200 or "error" in body:
            error_code = body.get("error", "invalid_token_response")
            self.logger.warning(
                "Token request rejected",
                registration_id=registration.registration_id,
                status_code=response.status_code,
                error=error_code
            )
            raise OAuth2AuthorizationException(
                error_code,
                body.get("error_description", f"Token endpoint responded with status {response.status_code}"),
                details={"status_code": response.status_code}
            )

        token_value = body.get("access_token")
        if not token_value or not isinstance(token_value, str):
            raise OAuth2AuthorizationException(
                "invalid_token_response",
                "Token response did not contain an access_token"
            )

        # Servers that omit expires_in get the shortest possible lifetime.
        try:
            expires_in = int(float(body.get("expires_in", 1)))
        except (TypeError, ValueError, OverflowError) as e:
            raise OAuth2AuthorizationException(
                "invalid_token_response",
                f"Token response carried an invalid expires_in: {body.get('expires_in')!r}"
            ) from e
        scope = body.get("scope")
        scopes = tuple(scope.split()) if isinstance(scope, str) and scope else registration.scopes

        self.logger.debug(
            "Access token issued",
            registration_id=registration.registration_id,
            expires_in=expires_in
        )
        return OAuth2AccessToken(
            token_value=token_value,
            token_type=body.get("token_type", "Bearer"),
            issued_at=issued_at,
            expires_at=issued_at + expires_in,
            scopes=scopes
        )


class AuthorizedClientManager:
    """Authorizes client registrations, reusing cached tokens where possible."""

    def __init__(
        self,
        client_registrations: InMemoryClientRegistrationRepository,
        authorized_client_service: InMemoryAuthorizedClientService,
        provider: Optional[ClientCredentialsAuthorizedClientProvider] = None,
    ):
        self.client_registrations = client_registrations
        self.authorized_client_service = authorized_client_service
        self.provider = provider or ClientCredentialsAuthorizedClientProvider()
        self.logger = get_logger("oauth2.manager")

    async def authorize(self, request: OAuth2AuthorizeRequest) -> Optional[OAuth2AuthorizedClient]:
        """Return an authorized client for the request, or None if it cannot be authorized."""
        registration_id = request.client_registration_id
        registration = self.client_registrations.find_by_registration_id(registration_id)
        if registration is None:
            raise ValueError(f"Could not find ClientRegistration with id '{registration_id}'")

        principal = request.principal
        cached = self.authorized_client_service.load(registration_id, principal.name)
        context = OAuth2AuthorizationContext(
            client_registration=registration,
            principal=principal,
            authorized_client=cached
        )

        try:
            authorized_client = await self.provider.authorize(context)
        except OAuth2AuthorizationException:
            self.authorized_client_service.remove(registration_id, principal.name)
            raise

        if authorized_client is None:
            return cached

        if authorized_client is not cached:
            self.authorized_client_service.save(authorized_client, principal)
        return authorized_client


def build_authorized_client_manager(
    registrations: Sequence[ClientRegistration],
    clock_skew_seconds: float = 60.0,
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AuthorizedClientManager:
    """Wire a manager backed by in-memory registrations and token cache."""
    repository = InMemoryClientRegistrationRepository(registrations)
    return AuthorizedClientManager(
        repository,
        InMemoryAuthorizedClientService(repository),
        ClientCredentialsAuthorizedClientProvider(
            clock_skew_seconds=clock_skew_seconds,
            timeout=timeout,
            transport=transport
        )
    )
