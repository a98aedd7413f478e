"""fetch — HTTP GET a URL and return the body as text."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from wright import __version__
from wright.engine.cancellation import CancelToken, guarded
from wright.engine.errors import RunCancelledError, ToolError
from .base import Tool, int_argument, parse_arguments, schema

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30
MAX_BODY_BYTES = 1 << 20
USER_AGENT = f"wright/{__version__}"


class FetchTool(Tool):

    @property
    def name(self) -> str:
        return "fetch"

    @property
    def description(self) -> str:
        return (
            "Fetch content from a URL. Returns the response body as text. "
            "Useful for reading documentation, APIs, or web pages."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return schema(
            {
                "url": {
                    "type": "string",
                    "description": "The URL to fetch content from.",
                },
                "timeout": {
                    "type": "number",
                    "description": "Optional timeout in seconds. Defaults to 30.",
                },
            },
            required=["url"],
        )

    async def execute(self, arguments: str, cancel: CancelToken | None = None) -> str:
        params = parse_arguments(self.name, arguments)
        url = (params.get("url") or "").strip()
        if not url:
            raise ToolError("url is required")
        if not url.startswith(("http://", "https://")):
            url = "https://" + url
        timeout = int_argument(params, "timeout", DEFAULT_TIMEOUT_SECONDS)

        logger.info("fetch %s timeout=%ss", url, timeout)
        try:
            return await guarded(cancel, self._get(url, timeout))
        except RunCancelledError:
            raise ToolError("fetch cancelled") from None
        except asyncio.TimeoutError:
            raise ToolError(f"fetching URL: timed out after {timeout}s") from None
        except aiohttp.ClientError as exc:
            raise ToolError(f"fetching URL: {exc}") from exc

    async def _get(self, url: str, timeout: int) -> str:
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.get(url, headers={"User-Agent": USER_AGENT}) as resp:
                if resp.status != 200:
                    raise ToolError(f"HTTP {resp.status}: {resp.reason}")
                body = b""
                while len(body) < MAX_BODY_BYTES:
                    chunk = await resp.content.read(MAX_BODY_BYTES - len(body))
                    if not chunk:
                        break
                    body += chunk
        if not body:
            return "(empty response)"
        return body.decode("utf-8", errors="replace")
