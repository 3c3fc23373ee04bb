"""Shared httpx request helper for the outbound clients."""

import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import RemoteOperationError

logger = logging.getLogger(__name__)


async def send(
    method: str,
    url: str,
    *,
    operation: str,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 30.0,
    json: Any = None,
    params: Optional[Dict[str, Any]] = None,
) -> httpx.Response:
    """Send one request and convert transport/status failures.

    Raises:
        RemoteOperationError: On any httpx error, carrying the upstream
            status code when there is one.
    """
    async with httpx.AsyncClient() as client:
        try:
            response = await client.request(
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                timeout=timeout,
            )
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            logger.error(
                f"{method} {url} -> {e.response.status_code}: {operation}",
                extra={"operation": operation, "body": e.response.text},
            )
            raise RemoteOperationError(
                f"{operation} {e.response.text or e}",
                status_code=e.response.status_code,
                operation=operation,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {operation} {e}")
            raise RemoteOperationError(
                f"{operation} {e}", operation=operation
            ) from e
