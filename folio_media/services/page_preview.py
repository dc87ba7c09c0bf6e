"""
Best-effort extraction of a preview image URL from a remote web page.

Priority order:
1) First image in the page content (`<main>`, then `<article>`, then `<body>`)
2) OpenGraph (`og:image`)
3) Twitter card (`twitter:image`)
"""

from __future__ import annotations

import logging
import re
import time
from typing import Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

import httpx
from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

DEFAULT_REVALIDATE_SECONDS = 60 * 60 * 24
# Pages are cut before parsing so a huge document cannot stall the parser.
PARSE_LIMIT = 500_000
FRAMER_MIN_WIDTH = 1600

REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

_W_DESCRIPTOR_RE = re.compile(r"^(\d+)w$", re.IGNORECASE)
_X_DESCRIPTOR_RE = re.compile(r"^(\d+(?:\.\d+)?)x$", re.IGNORECASE)


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html[:PARSE_LIMIT], "html.parser")


def to_absolute_url(candidate: str, base_url: str) -> Optional[str]:
    try:
        absolute = urljoin(base_url, candidate.strip())
    except ValueError:
        return None
    if not urlsplit(absolute).scheme:
        return None
    return absolute


def extract_meta_content(soup: Tag, *, attr: str, value: str) -> Optional[str]:
    """Content of the first `<meta {attr}="{value}">` with a non-empty `content`."""
    pattern = re.compile(rf"^{re.escape(value)}$", re.IGNORECASE)
    for meta in soup.find_all("meta", attrs={attr: pattern}):
        content = (meta.get("content") or "").strip()
        if content:
            return content
    return None


def _srcset_score(descriptor: str) -> float:
    w_match = _W_DESCRIPTOR_RE.match(descriptor)
    if w_match:
        return float(w_match.group(1))
    x_match = _X_DESCRIPTOR_RE.match(descriptor)
    if x_match:
        return float(x_match.group(1)) * 1000
    return 0.0


def largest_srcset_candidate(srcset: str) -> Optional[str]:
    best: Optional[Tuple[float, str]] = None
    for part in srcset.split(","):
        pieces = part.strip().split()
        if not pieces or pieces[0].startswith("data:"):
            continue
        score = _srcset_score(pieces[1] if len(pieces) > 1 else "")
        if best is None or score > best[0]:
            best = (score, pieces[0])
    return best[1] if best else None


def image_url_of(img: Tag) -> Optional[str]:
    """`src`/`data-src` unless it is a data URI, else the largest `srcset` entry."""
    for attr in ("src", "data-src"):
        src = (img.get(attr) or "").strip()
        if src and not src.startswith("data:"):
            return src
    srcset = (img.get("srcset") or "").strip()
    if srcset:
        # Largest candidate avoids blurry thumbnails.
        return largest_srcset_candidate(srcset)
    return None


def extract_first_image_url(container: Tag) -> Optional[str]:
    for img in container.find_all("img"):
        url = image_url_of(img)
        if url:
            return url
    return None


def extract_top_content_image_url(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    body = soup.body or soup
    containers = [body.find("main"), body.find("article"), body]

    for container in containers:
        if container is None:
            continue
        found = extract_first_image_url(container)
        if not found:
            continue
        absolute = to_absolute_url(found, base_url)
        if absolute:
            return absolute
    return None


def normalize_thumbnail_url(absolute_url: str) -> str:
    """Ask the Framer CDN for a source large enough for high-DPI screens."""
    try:
        parts = urlsplit(absolute_url)
    except ValueError:
        return absolute_url
    if parts.hostname != "framerusercontent.com":
        return absolute_url

    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    try:
        current = float(params.get("width", "0") or 0)
    except ValueError:
        current = 0.0
    params["width"] = str(max(int(current), FRAMER_MIN_WIDTH))
    params.pop("height", None)
    return urlunsplit(parts._replace(query=urlencode(params)))


def pick_preview_image(html: str, page_url: str) -> Optional[str]:
    soup = parse_html(html)
    top_image = extract_top_content_image_url(soup, page_url)
    if top_image:
        return normalize_thumbnail_url(top_image)

    head = soup.head or soup
    candidate = (
        extract_meta_content(head, attr="property", value="og:image")
        or extract_meta_content(head, attr="name", value="og:image")
        or extract_meta_content(head, attr="property", value="twitter:image")
        or extract_meta_content(head, attr="name", value="twitter:image")
    )
    if not candidate:
        return None
    absolute = to_absolute_url(candidate, page_url)
    return normalize_thumbnail_url(absolute) if absolute else None


class PagePreviewFetcher:
    """Fetches pages over HTTP and memoises the chosen image per URL."""

    def __init__(
        self,
        *,
        revalidate_seconds: int = DEFAULT_REVALIDATE_SECONDS,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.revalidate_seconds = revalidate_seconds
        self.timeout = timeout
        self.transport = transport
        self._memo: Dict[str, Tuple[float, Optional[str]]] = {}

    def _remember(self, page_url: str, image_url: Optional[str], now: float) -> None:
        self._memo = {url: entry for url, entry in self._memo.items() if entry[0] > now}
        self._memo[page_url] = (now + self.revalidate_seconds, image_url)

    async def fetch_preview_image(self, page_url: str) -> Optional[str]:
        """Return an absolute image URL for `page_url`, or None. Never raises."""
        now = time.monotonic()
        memo = self._memo.get(page_url)
        if memo and memo[0] > now:
            return memo[1]

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers=REQUEST_HEADERS,
                transport=self.transport,
            ) as client:
                response = await client.get(page_url)
            if not response.is_success:
                logger.info("Preview fetch for %s returned %s", page_url, response.status_code)
                image_url = None
            else:
                image_url = pick_preview_image(response.text, str(response.url))
        except Exception as exc:
            logger.warning("Preview fetch failed for %s: %s", page_url, exc)
            return None

        self._remember(page_url, image_url, now)
        return image_url
