from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from ..logging import SpendLogger

UPLOAD_TIMEOUT_SECONDS = 10
MAX_RETRIES = 2
BACKOFF_SECONDS = 1


async def upload_metrics(
    payload: dict,
    endpoint: str,
    token: Optional[str] = None,
    logger: Optional[SpendLogger] = None,
) -> bool:
    """
    Post a metrics snapshot to a collector endpoint.

    Best-effort: failures are logged and reported as False, never raised.
    """
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    for attempt in range(MAX_RETRIES):
        try:
            async with httpx.AsyncClient(timeout=UPLOAD_TIMEOUT_SECONDS) as client:
                response = await client.post(endpoint, json=payload, headers=headers)

            if response.status_code in (200, 202, 204):
                if logger:
                    logger.info("metrics_uploaded", status=response.status_code)
                return True

            if response.status_code == 429:
                if logger:
                    logger.warning("metrics_rate_limited")
                return False

            if logger:
                logger.warning(
                    "metrics_upload_failed",
                    status=response.status_code,
                    attempt=attempt + 1,
                )
        except httpx.TimeoutException:
            if logger:
                logger.warning("metrics_upload_timeout", attempt=attempt + 1)
        except Exception as exc:
            if logger:
                logger.warning("metrics_upload_error", error=str(exc))

        if attempt < MAX_RETRIES - 1:
            await asyncio.sleep(BACKOFF_SECONDS * (attempt + 1))

    return False
