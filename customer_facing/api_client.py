"""HTTP client for calling customer-management.

Why is this its own module?
- Keeps the FastAPI route handlers small and readable.
- One place owns the timeout and the error mapping for the downstream call.
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

import httpx

from purchase_shared.errors import DownstreamError
from purchase_shared.logger_config import log

from .config import CUSTOMER_MANAGEMENT_URL, DOWNSTREAM_TIMEOUT_SECONDS

SERVICE_NAME = "customer-management"


class CustomerManagementClient:
    """Reads purchases from customer-management.

    Args:
        base_url: e.g. http://customer-management:3001
        timeout: Upper bound for the whole call, in seconds.
        transport: Optional httpx transport (tests pass a MockTransport).
    """

    def __init__(
        self,
        base_url: str = CUSTOMER_MANAGEMENT_URL,
        timeout: float = DOWNSTREAM_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def get_all_user_buys(self, user_id: str) -> list[dict[str, Any]]:
        """Return the purchases of `user_id`, in the order customer-management sent them.

        Raises:
            DownstreamError on timeouts, connection failures, non-2xx statuses
            or a body that is not a JSON array.
        """
        # One path segment: "a/b" must not become a different route.
        url = f"{self.base_url}/purchases/{quote(user_id, safe='')}"

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.get(url)
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as e:
            log.error("Timeout calling customer-management", url=url)
            raise DownstreamError(SERVICE_NAME, "timeout", original_exception=e) from e
        except httpx.HTTPStatusError as e:
            log.error(
                "customer-management returned an error",
                url=url,
                status=e.response.status_code,
            )
            raise DownstreamError(
                SERVICE_NAME, f"status {e.response.status_code}", original_exception=e
            ) from e
        except httpx.HTTPError as e:
            log.error("Failed to reach customer-management", url=url, error=str(e))
            raise DownstreamError(SERVICE_NAME, str(e), original_exception=e) from e
        except ValueError as e:
            log.error("customer-management returned invalid JSON", url=url)
            raise DownstreamError(SERVICE_NAME, "invalid JSON body", original_exception=e) from e

        if not isinstance(data, list):
            raise DownstreamError(SERVICE_NAME, "expected a JSON array")
        return data
