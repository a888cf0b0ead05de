import json
from typing import Any
from urllib.parse import urlparse

import httpx
from loguru import logger

from swe_agent_loop.tools.web.html_utilities import html_to_text, page_title, parse_html

_DEFAULT_MAX_CHARS = 40_000
_MAX_RESPONSE_BYTES = 5_000_000
_TIMEOUT_SECONDS = 30
_MAX_REDIRECTS = 5

_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


class WebFetchTool:
    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    @property
    def name(self) -> str:
        return "web_fetch"

    @property
    def description(self) -> str:
        return (
            "Fetch a web page or API response and return it as readable text. HTML is converted to "
            "text with links kept, JSON is pretty-printed. Pages answering 403/404/503 usually treat "
            "you as a bot: give up on that domain and find another source. Never guess URLs; use a "
            "search engine such as https://www.bing.com/search?q=QUERY. For github.com prefer the "
            "GitHub CLI through execute_command."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The http(s) URL to fetch",
                },
                "maxChars": {
                    "type": "integer",
                    "minimum": 1,
                    "description": f"Maximum characters of content to return (default {_DEFAULT_MAX_CHARS})",
                },
            },
            "required": ["url"],
        }

    async def execute(self, tool_input: dict[str, Any]) -> str:
        url: str = tool_input["url"]
        max_chars = int(tool_input.get("maxChars", _DEFAULT_MAX_CHARS))

        if urlparse(url).scheme not in ("http", "https"):
            raise ValueError("URL must use the http or https scheme")

        logger.debug(f"Fetching {url}")
        async with httpx.AsyncClient(
            headers=_HEADERS,
            timeout=_TIMEOUT_SECONDS,
            follow_redirects=True,
            max_redirects=_MAX_REDIRECTS,
            transport=self._transport,
        ) as client:
            response = await client.get(url)

        if response.status_code >= 400:
            raise RuntimeError(f"HTTP {response.status_code} fetching {url}")
        if len(response.content) > _MAX_RESPONSE_BYTES:
            raise RuntimeError(f"Response too large ({len(response.content):,} bytes)")

        content_type = response.headers.get("content-type", "")
        title = ""
        if "html" in content_type:
            soup = parse_html(response.text)
            title = page_title(soup)
            body = html_to_text(soup)
        elif "json" in content_type:
            try:
                body = json.dumps(response.json(), indent=2, ensure_ascii=False)
            except ValueError:
                body = response.text
        else:
            body = response.text

        header = [f"URL: {response.url}", f"Status: {response.status_code}"]
        if title:
            header.append(f"Title: {title}")
        if len(body) > max_chars:
            header.append(f"[showing {max_chars:,} of {len(body):,} chars]")
            body = body[:max_chars]
        return "\n".join(header) + "\n\n" + body
