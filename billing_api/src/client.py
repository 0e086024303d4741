"""
Billing API Client

HTTP client for the telecom e-payment backend.

Features:
- Bounded retry: 3 attempts, linear backoff (attempt × base_delay)
- 30 s timeout per attempt
- Fixed header set expected by the backend
- Response bodies are returned as parsed JSON, uninterpreted
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Union
import httpx
import structlog

from shared.exceptions import ApiError

from .endpoints import BillingEndpoint, DEFAULT_HOST, DEFAULT_USER_AGENT, default_headers

logger = structlog.get_logger(__name__)


class BillingApiClient:
    """
    Client for the billing API

    Usage:
        client = BillingApiClient(host="mobile-pre.at.dz")
        data = await client.call(BillingEndpoint.CHECK_ND_FACT, {"nd": "021000000"})
        await client.close()
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        scheme: str = "https",
        timeout: float = 30.0,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            host: Billing API host
            scheme: URL scheme (https in production)
            timeout: Per-attempt timeout in seconds
            max_attempts: Total attempts before giving up
            base_delay: Backoff unit; attempt N waits N × base_delay before retrying
            user_agent: Client signature sent with every request
            transport: Custom httpx transport (tests)
            sleep: Coroutine used for backoff waits (tests)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self.base_url = f"{scheme}://{host}"
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=default_headers(user_agent),
            transport=transport,
        )

        logger.info(
            "billing_client_initialized",
            base_url=self.base_url,
            max_attempts=max_attempts,
            timeout=timeout
        )

    async def call(
        self,
        endpoint: Union[BillingEndpoint, str],
        payload: Optional[Dict[str, Any]] = None,
        method: str = "post",
        token: Optional[str] = None,
    ) -> Any:
        """
        Call a billing endpoint with retries

        Args:
            endpoint: API route
            payload: JSON body (POST) or query parameters (GET)
            method: HTTP method
            token: Bearer token for authenticated routes

        Returns:
            Parsed JSON response

        Raises:
            ApiError: all attempts failed
        """
        url = endpoint.value if isinstance(endpoint, BillingEndpoint) else endpoint
        method = method.upper()
        headers = {"Authorization": f"Bearer {token}"} if token else None
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=url,
                    json=payload if method != "GET" else None,
                    params=payload if method == "GET" else None,
                    headers=headers,
                )
                response.raise_for_status()
                return response.json()

            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                logger.error(
                    "billing_call_failed",
                    endpoint=url,
                    method=method,
                    attempt=attempt,
                    error=str(e) or type(e).__name__
                )

            if attempt < self.max_attempts:
                await self._sleep(self.base_delay * attempt)

        raise ApiError(url, last_error)

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()
