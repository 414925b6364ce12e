"""Cookie pre-fetch for authenticated scans.

A single plain GET is sent with aiohttp before probing; every ``Set-Cookie``
value it returns is reduced to its ``name=value`` pair and replayed in the
``Cookie`` header of each probe.
"""

import asyncio
from typing import Iterable, List, Optional, Sequence

import aiohttp
from aiohttp import ClientSession, ClientTimeout, TCPConnector

from desync_scanner.utils.logging import get_logger

logger = get_logger(__name__)


def parse_set_cookie_headers(values: Iterable[str]) -> List[str]:
    """Keep the ``name=value`` part of each Set-Cookie header.

    Attributes after the first ``;`` are dropped, as are values without
    a cookie name.
    """
    cookies = []
    for value in values:
        pair = value.split(";", 1)[0].strip()
        name, sep, _ = pair.partition("=")
        if sep and name.strip():
            cookies.append(pair)
    return cookies


async def fetch_cookies(
    url: str,
    headers: Sequence[str] = (),
    timeout: float = 10.0,
    verify_tls: bool = False,
    session: Optional[ClientSession] = None,
) -> List[str]:
    """Fetch ``url`` once and return the cookies it sets.

    Args:
        url: Target URL
        headers: ``Name: value`` headers sent with the request
        timeout: Total request timeout in seconds
        verify_tls: Verify the server certificate
        session: Existing session to reuse (tests inject one)

    Returns:
        Cookie strings in response order; empty if the request failed
    """
    request_headers = {}
    for line in headers:
        name, _, value = line.partition(":")
        request_headers[name.strip()] = value.strip()

    async def _get(active: ClientSession) -> List[str]:
        async with active.get(url, headers=request_headers, allow_redirects=False) as response:
            return parse_set_cookie_headers(response.headers.getall("Set-Cookie", []))

    try:
        if session is not None:
            cookies = await _get(session)
        else:
            async with ClientSession(
                timeout=ClientTimeout(total=timeout),
                connector=TCPConnector(ssl=verify_tls),
            ) as owned:
                cookies = await _get(owned)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning("cookies.fetch_failed", url=url, error=str(e))
        return []

    logger.debug("cookies.fetched", url=url, count=len(cookies))
    return cookies
