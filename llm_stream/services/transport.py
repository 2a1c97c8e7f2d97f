"""
HTTP transport for streaming requests.

One call opens exactly one connection and yields the response body as raw
byte chunks. Nothing is retried.
"""

import logging
from typing import AsyncIterator, Optional

import httpx
import orjson

from llm_stream.models.request import Request
from llm_stream.utils.exceptions import TransportError

logger = logging.getLogger(__name__)


async def iter_bytes(
    request: Request, client: Optional[httpx.AsyncClient] = None
) -> AsyncIterator[bytes]:
    """
    Send `request` and yield body chunks as they arrive.

    Args:
        request: Fully resolved request
        client: Optional shared client (connection pool). When omitted, a
            client without timeouts is created for this call and closed when
            the generator finishes or is closed.

    Raises:
        TransportError: connection/TLS failure, non-2xx status (raised before
            any chunk, with the response body attached), or a disconnect in
            the middle of the body.
    """
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=None)

    try:
        async with client.stream(
            request.method,
            request.url,
            headers=request.headers,
            content=request.body,
        ) as response:
            if not response.is_success:
                # Read error response body for the caller
                error_body = await response.aread()
                error_msg = _error_message(error_body)
                logger.error(
                    f"{request.provider} API error: "
                    f"status={response.status_code}, error={error_msg}"
                )
                raise TransportError(
                    error_msg, status_code=response.status_code, body=error_body
                )

            logger.debug(f"{request.provider} stream opened: status={response.status_code}")
            async for chunk in response.aiter_bytes():
                yield chunk
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.debug(f"{request.provider} transport failure: {e!r}")
        raise TransportError(f"{type(e).__name__}: {e}") from e
    finally:
        if owns_client:
            await client.aclose()


def _error_message(body: bytes) -> str:
    """Extract the provider's error message from an error response body."""
    try:
        error_json = orjson.loads(body)
    except orjson.JSONDecodeError:
        return body.decode("utf-8", errors="replace").strip() or "empty response body"

    # Google wraps errors in a one-element array
    if isinstance(error_json, list) and error_json:
        error_json = error_json[0]
    if isinstance(error_json, dict):
        error = error_json.get("error", error_json)
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return body.decode("utf-8", errors="replace").strip()
