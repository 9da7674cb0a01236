"""
Page source loading for offline reconciliation runs.

Pages come either from local captures (saved HTML) or from a live URL
fetched once with aiohttp. Navigation-level retries belong to the caller;
failures are mapped onto the boundary error codes and passed through.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple

from aiohttp import ClientError, ClientSession, ClientTimeout

from cartguard.config import config
from cartguard.document import SoupDocument
from cartguard.errors import AuthError, FetchTimeoutError, NetworkError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def session(headers: Optional[dict] = None,
                  timeout: Optional[float] = None) -> AsyncIterator[ClientSession]:
    """aiohttp session carrying the shopper's cookie, if configured."""
    base = {"User-Agent": config.user_agent}
    if config.cookie:
        base["Cookie"] = config.cookie
    base.update(headers or {})

    total = timeout or config.http_timeout
    client_timeout = ClientTimeout(total=total, connect=min(10, total), sock_read=total)
    async with ClientSession(headers=base, timeout=client_timeout) as s:
        yield s


async def fetch_html(url: str, headers: Optional[dict] = None,
                     timeout: Optional[float] = None) -> Tuple[str, str]:
    """
    GET ``url`` once. Returns (final_url, html).

    401/403 -> AuthError, other HTTP errors and connection failures ->
    NetworkError, exceeded budget -> FetchTimeoutError.
    """
    logger.info("fetching", extra={"url": url, "step": "fetch"})
    try:
        async with session(headers=headers, timeout=timeout) as s:
            async with s.get(url, allow_redirects=True) as r:
                if r.status in (401, 403):
                    raise AuthError(f"http {r.status} {url}: session not authenticated")
                if r.status >= 400:
                    raise NetworkError(f"http {r.status} {url}", status=r.status)
                return str(r.url), await r.text()
    except asyncio.TimeoutError as e:
        raise FetchTimeoutError(f"timed out fetching {url}", timeout=timeout or config.http_timeout, cause=e) from e
    except ClientError as e:
        raise NetworkError(f"fetch failed for {url}: {e}", cause=e) from e


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


async def load_document(source: str, url: Optional[str] = None) -> Tuple[SoupDocument, str]:
    """
    Open a page source as a SoupDocument. Returns (document, html).

    ``url`` stamps a local capture with the address it was saved from, so
    page-type checks and relative links still work.
    """
    if is_url(source):
        final_url, html = await fetch_html(source)
        return SoupDocument.from_html(html, url=final_url), html

    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"page capture not found: {path}")
    html = path.read_text(encoding="utf-8")
    return SoupDocument.from_html(html, url=url), html
