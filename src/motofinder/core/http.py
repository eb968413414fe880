"""
HTTP helpers.

This module centralizes the minimal HTTP client logic used by the position and
geocoding clients.

Design goals:
- Small surface area (GET JSON).
- Deterministic defaults (timeout + identifying User-Agent, which public services
  such as Nominatim require).
- Raise on non-2xx so callers can decide how to fail (usually "fail-open").
"""

from __future__ import annotations

from typing import Any

import httpx


DEFAULT_USER_AGENT = "MotorcycleServiceDirectory/1.0 (motofinder)"


async def get_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 10,
    user_agent: str | None = None,
) -> Any:
    """GET `url` and return the decoded JSON response.

    Raises:
        httpx.HTTPError: On transport errors or non-2xx status codes.
        ValueError: If the response body is not valid JSON.
    """
    request_headers = {"User-Agent": user_agent or DEFAULT_USER_AGENT, "Accept": "application/json"}
    if headers:
        request_headers.update(headers)

    async with httpx.AsyncClient(timeout=timeout_seconds) as client:
        resp = await client.get(url, params=params, headers=request_headers)
        resp.raise_for_status()
        return resp.json()
