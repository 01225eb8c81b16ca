"""HTTP utilities for the source and sink clients.

Provides bounded body reading for HTTP responses so that an oversized or
runaway payload cannot exhaust memory.

Note:
    This module sits in the ``utils`` layer and depends only on stdlib and
    ``aiohttp``. It is importable from ``clients`` without pulling in any
    service code.

See Also:
    [DiasendClient][nightbridge.clients.diasend.DiasendClient]: Token and
        patient-data requests use
        [read_bounded_json][nightbridge.utils.http.read_bounded_json].
    [NightscoutClient][nightbridge.clients.nightscout.NightscoutClient]:
        Every sink response is read the same way.
"""

from __future__ import annotations

import json
from typing import Any

import aiohttp


async def read_bounded(response: aiohttp.ClientResponse, max_size: int) -> bytes:
    """Drain a response body, refusing anything larger than *max_size* bytes.

    Diasend and Nightscout both answer with chunked bodies, so one ``read``
    may return a partial payload; the stream is read until EOF.

    Args:
        response: Unconsumed aiohttp response.
        max_size: Byte limit for the whole body.

    Raises:
        ValueError: The body is larger than *max_size*.
    """
    body = bytearray()
    while chunk := await response.content.read(max_size + 1 - len(body)):
        body += chunk
        if len(body) > max_size:
            raise ValueError(f"Response body too large: >{max_size} bytes")
    return bytes(body)


async def read_bounded_json(response: aiohttp.ClientResponse, max_size: int) -> Any:
    """Read and parse a JSON response body with size enforcement.

    An empty body parses to ``None``.

    Raises:
        ValueError: The body is larger than *max_size*.
        json.JSONDecodeError: The body is not JSON.
    """
    body = await read_bounded(response, max_size)
    if not body.strip():
        return None
    return json.loads(body)
