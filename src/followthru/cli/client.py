"""HTTP client for ``followthru generate --remote``."""

from __future__ import annotations

import httpx

from followthru.config import load_config

GENERATE_PATH = "/api/v1/actions/generate"


class APIClient:
    """Calls the generate endpoint of a running Followthru server."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        http: httpx.Client | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Server URL (default: daemon host/port from config)
            token: Bearer token (default: from config when auth is enabled)
            http: Pre-built httpx client to send requests with
        """
        if base_url is None and http is None:
            config = load_config()
            base_url = f"http://{config.daemon.host}:{config.daemon.port}"
            if config.api.auth.enabled and token is None:
                token = config.api.auth.token

        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = http or httpx.Client(base_url=base_url, timeout=30.0)
        self._http.headers.update(headers)

    def __enter__(self) -> "APIClient":
        return self

    def __exit__(self, *args) -> None:
        self._http.close()

    def generate(self, payload: dict) -> dict:
        """Invoke the generator with a wire-format context.

        4xx/5xx responses carry ``{success: false, error}`` and are returned
        as-is rather than raised.
        """
        response = self._http.post(GENERATE_PATH, json=payload)
        if response.status_code in (401, 503):
            response.raise_for_status()
        return response.json()
