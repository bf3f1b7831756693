"""Client for the workflow API that returns the step list.

The API answers a bodiless ``POST`` with ``{"tree": [step, ...]}``. Failures
never raise out of :func:`fetch_steps`; they come back as a tagged
:class:`FetchResult` the diagram state machine consumes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from workflow_diagram.errors import FetchError, FetchTimeout, MalformedInput
from workflow_diagram.graph import parse_tree_payload

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class FetchKind(Enum):
    OK = "ok"
    TIMED_OUT = "timed_out"
    NETWORK_ERROR = "network_error"
    MALFORMED_INPUT = "malformed_input"


@dataclass
class FetchResult:
    kind: FetchKind
    steps: list[Mapping[str, Any]] = field(default_factory=list)
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is FetchKind.OK

    @classmethod
    def success(cls, steps: list[Mapping[str, Any]]) -> FetchResult:
        return cls(kind=FetchKind.OK, steps=steps)

    @classmethod
    def from_error(cls, exc: Exception) -> FetchResult:
        if isinstance(exc, FetchTimeout):
            kind = FetchKind.TIMED_OUT
        elif isinstance(exc, MalformedInput):
            kind = FetchKind.MALFORMED_INPUT
        else:
            kind = FetchKind.NETWORK_ERROR
        return cls(kind=kind, message=str(exc))


async def _post(url: str, timeout: float, transport: httpx.AsyncBaseTransport | None) -> httpx.Response:
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        return await client.post(url, headers={"Accept": "application/json"}, content=b"")


def request_steps(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[Mapping[str, Any]]:
    """Fetch and unwrap the step list, raising on any failure.

    ``timeout`` is one deadline over the whole exchange (connect, headers and
    body), not a per-read limit; the request is cancelled when it expires.

    Raises:
        FetchTimeout: no complete response within ``timeout`` seconds.
        FetchError: connection failure or non-2xx status.
        MalformedInput: body is not JSON or has no ``tree`` list.
    """
    try:
        response = asyncio.run(asyncio.wait_for(_post(url, timeout, transport), timeout))
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise FetchTimeout(f"Request timed out after {timeout:g}s") from exc
    except httpx.RequestError as exc:
        raise FetchError(f"Failed to connect to {url}: {exc}") from exc

    if not response.is_success:
        raise FetchError(f"HTTP error! Status: {response.status_code}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise MalformedInput(f"response is not valid JSON: {exc}") from exc

    return parse_tree_payload(payload)


def fetch_steps(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FetchResult:
    """Fetch the step list and report the outcome as a :class:`FetchResult`."""
    try:
        steps = request_steps(url, timeout=timeout, transport=transport)
    except (FetchError, MalformedInput) as exc:
        logger.error("Failed to fetch workflow from %s: %s", url, exc)
        return FetchResult.from_error(exc)
    logger.info("Fetched %d workflow step(s) from %s", len(steps), url)
    return FetchResult.success(steps)
