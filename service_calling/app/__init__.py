"""
Calling Service package.

A thin facade in front of the customer service. Each inbound request is
forwarded as exactly one outbound request carrying an OAuth2 bearer token
obtained with the client-credentials grant.

Structure:
- app.main: FastAPI app, customer routes, and wiring from configuration.
- app.adapters: HTTP client for the downstream customer service.
- app.token_service: Access token provider for the configured registration.

Design notes:
- Module import must not perform network calls. Tokens are fetched lazily,
  on the first outbound call.
- Failures are not translated locally; shared/ error handlers turn them
  into responses.
"""
