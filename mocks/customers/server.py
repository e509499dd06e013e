"""
Mock customer service. Stores customers in memory and requires a bearer token
signed by the mock Keycloak server.
"""

from typing import Any, Dict, List, Optional

import jwt
from fastapi import Body, FastAPI, Header, HTTPException

from shared.logging import get_logger
from mocks.keycloak.server import DEFAULT_AUDIENCE, DEFAULT_SIGNING_KEY


class MockCustomerServer:
    """Mock downstream customer service."""

    def __init__(self, signing_key: str = DEFAULT_SIGNING_KEY, audience: str = DEFAULT_AUDIENCE):
        self.logger = get_logger("mock.customers")
        self.app = FastAPI(title="Mock Customer Service", version="1.0.0")
        self.signing_key = signing_key
        self.audience = audience
        self.customers: Dict[int, Dict[str, Any]] = {
            7: {"id": 7, "name": "Ada"},
        }
        self.requests: List[Dict[str, Any]] = []
        self._setup_routes()

    def _setup_routes(self):
        """Set up customer routes."""

        @self.app.get("/customers/{customer_id}")
        async def get_customer(customer_id: int, authorization: Optional[str] = Header(None)):
            self._record("GET", f"/customers/{customer_id}", authorization)
            self._verify(authorization)
            customer = self.customers.get(customer_id)
            if customer is None:
                raise HTTPException(status_code=404, detail="Customer not found")
            return customer

        @self.app.post("/customers")
        async def create_customer(customer: Dict[str, Any] = Body(...), authorization: Optional[str] = Header(None)):
            self._record("POST", "/customers", authorization, customer)
            self._verify(authorization)
            customer_id = customer.get("id") or max(self.customers, default=0) + 1
            stored = {**customer, "id": customer_id}
            self.customers[customer_id] = stored
            return stored

    def _record(self, method: str, path: str, authorization: Optional[str], body: Any = None) -> None:
        self.requests.append({
            "method": method,
            "path": path,
            "authorization": authorization,
            "body": body
        })

    def _verify(self, authorization: Optional[str]) -> None:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Missing bearer token")
        try:
            jwt.decode(
                authorization[len("Bearer "):],
                self.signing_key,
                algorithms=["HS256"],
                audience=self.audience
            )
        except jwt.InvalidTokenError as e:
            self.logger.warning("Rejected token", error=str(e))
            raise HTTPException(status_code=401, detail="Invalid bearer token")


def create_app():
    """Create mock customer service application."""
    server = MockCustomerServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8080)
