"""
Mock Keycloak server providing OIDC discovery and a client-credentials token endpoint.
"""

import base64
import binascii
from typing import Dict, Any, Optional
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import FastAPI, Form, Header, HTTPException
from fastapi.responses import JSONResponse

from shared.logging import get_logger

DEFAULT_SIGNING_KEY = "mock-signing-key-for-local-development-only"
DEFAULT_AUDIENCE = "customer-service"


class MockKeycloakServer:
    """Mock Keycloak server implementation."""

    def __init__(
        self,
        port: int = 9000,
        realm: str = "customers",
        clients: Optional[Dict[str, str]] = None,
        signing_key: str = DEFAULT_SIGNING_KEY,
        expires_in: int = 300,
    ):
        self.port = port
        self.logger = get_logger("mock.keycloak")
        self.app = FastAPI(title="Mock Keycloak", version="1.0.0")

        self.realm = realm
        self.issuer = f"http://localhost:{port}/realms/{self.realm}"
        self.clients = clients if clients is not None else {"calling-service": "calling-secret"}
        self.signing_key = signing_key
        self.expires_in = expires_in
        self.tokens_issued = 0

        self._setup_routes()

    def _setup_routes(self):
        """Set up mock Keycloak routes."""

        @self.app.get("/realms/{realm}/.well-known/openid-configuration")
        async def openid_configuration(realm: str):
            """OpenID Connect configuration."""
            self._check_realm(realm)
            return {
                "issuer": self.issuer,
                "token_endpoint": f"{self.issuer}/protocol/openid-connect/token",
                "jwks_uri": f"{self.issuer}/protocol/openid-connect/certs",
                "grant_types_supported": ["client_credentials"],
                "token_endpoint_auth_methods_supported": ["client_secret_basic", "client_secret_post"],
                "id_token_signing_alg_values_supported": ["HS256"],
            }

        @self.app.post("/realms/{realm}/protocol/openid-connect/token")
        async def token_endpoint(
            realm: str,
            grant_type: str = Form(...),
            scope: Optional[str] = Form(None),
            client_id: Optional[str] = Form(None),
            client_secret: Optional[str] = Form(None),
            authorization: Optional[str] = Header(None),
        ):
            """Token endpoint for the client-credentials grant."""
            self._check_realm(realm)

            if authorization and authorization.lower().startswith("basic "):
                client_id, client_secret = self._parse_basic(authorization)

            if not client_id or self.clients.get(client_id) != client_secret:
                return self._oauth_error(401, "invalid_client", "Invalid client credentials")

            if grant_type != "client_credentials":
                return self._oauth_error(400, "unsupported_grant_type", f"Grant type {grant_type} not supported")

            return self._issue_token(client_id, scope)

    def _check_realm(self, realm: str) -> None:
        if realm != self.realm:
            raise HTTPException(status_code=404, detail="Realm not found")

    @staticmethod
    def _parse_basic(authorization: str):
        try:
            decoded = base64.b64decode(authorization.split(" ", 1)[1]).decode()
        except (binascii.Error, UnicodeDecodeError):
            return None, None
        client_id, _, client_secret = decoded.partition(":")
        return client_id, client_secret

    @staticmethod
    def _oauth_error(status_code: int, error: str, description: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"error": error, "error_description": description}
        )

    def _issue_token(self, client_id: str, scope: Optional[str]) -> Dict[str, Any]:
        """Issue a service account token."""
        now = datetime.now(timezone.utc)
        payload = {
            "iss": self.issuer,
            "sub": f"service-account-{client_id}",
            "aud": DEFAULT_AUDIENCE,
            "azp": client_id,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.expires_in)).timestamp()),
            "scope": scope or "",
            "realm_access": {"roles": ["service-account"]},
        }
        self.tokens_issued += 1
        self.logger.info("Issued client credentials token", client_id=client_id)

        return {
            "access_token": jwt.encode(payload, self.signing_key, algorithm="HS256"),
            "expires_in": self.expires_in,
            "refresh_expires_in": 0,
            "token_type": "Bearer",
            "not-before-policy": 0,
            "scope": scope or ""
        }


def create_app():
    """Create mock Keycloak application."""
    server = MockKeycloakServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=9000)
