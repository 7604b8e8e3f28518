"""
BeautifulSoup-based extraction of per-page research signals.

``extract_signals`` is pure: the same URL and HTML always produce an equal
``PageSignals``. Each field is extracted on its own so malformed markup only
empties the field it breaks, never the whole page.
"""

from __future__ import annotations

import re
from typing import Callable, Dict, List, Optional, TypeVar
from urllib.parse import urlparse

import structlog
from bs4 import BeautifulSoup

from domainresearch.protocols import PageSignals

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MAX_HEADINGS = 30
MIN_TEXT_LENGTH = 2_000
MAX_TEXT_LENGTH = 5_000

PARSER = "html.parser"

NON_CONTENT_TAGS = [
    "script",
    "style",
    "nav",
    "footer",
    "header",
    "noscript",
    "svg",
    "iframe",
    "frame",
    "frameset",
    "object",
    "embed",
    "template",
]

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}")
# An explicit separator or a parenthesized area code is required so numeric
# IDs and SVG path data do not match.
PHONE_RE = re.compile(r"(?:\+?1[-\s.])?(?:\(\d{3}\)[-\s.]?|\d{3}[-\s])\d{3}[-\s.]\d{4}")

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp")

# Host suffix -> platform. Order only matters for hosts matching several entries.
SOCIAL_DOMAINS: Dict[str, str] = {
    "linkedin.com": "linkedin",
    "twitter.com": "twitter",
    "x.com": "twitter",
    "facebook.com": "facebook",
    "fb.com": "facebook",
    "instagram.com": "instagram",
    "youtube.com": "youtube",
    "youtu.be": "youtube",
}

_WHITESPACE_RE = re.compile(r"\s+")


def _normalize_ws(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def _safe(field_name: str, url: str, default: T, func: Callable[[], T]) -> T:
    """Run one field extractor, falling back to ``default`` on parser errors."""
    try:
        return func()
    except Exception as e:
        logger.debug("Signal field extraction failed", field=field_name, url=url, error=str(e))
        return default


def _parse(html: str) -> Optional[BeautifulSoup]:
    try:
        return BeautifulSoup(html or "", PARSER)
    except Exception as e:
        logger.debug("HTML parsing failed", error=str(e))
        return None


def _extract_title(soup: BeautifulSoup) -> str:
    tag = soup.find("title")
    return tag.get_text().strip() if tag else ""


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return ""
    content = tag.get("content")
    return content.strip() if isinstance(content, str) else ""


def _extract_description(soup: BeautifulSoup) -> str:
    return _meta_content(soup, name="description") or _meta_content(soup, property="og:description")


def _extract_headings(soup: BeautifulSoup) -> List[str]:
    headings: List[str] = []
    seen: set[str] = set()
    for tag in soup.find_all(["h1", "h2", "h3"]):
        text = _normalize_ws(tag.get_text(" "))
        if not text or text in seen:
            continue
        seen.add(text)
        headings.append(text)
        if len(headings) >= MAX_HEADINGS:
            break
    return headings


def _strip_non_content(soup: BeautifulSoup) -> None:
    for tag in soup.find_all(NON_CONTENT_TAGS):
        if tag.decomposed:
            continue
        tag.decompose()


def _visible_root(soup: BeautifulSoup):
    return soup.find("body") or soup


def pad_text(text: str, title: str, description: str, headings: List[str]) -> str:
    """
    Bound ``text`` to ``MAX_TEXT_LENGTH`` and, when it is shorter than
    ``MIN_TEXT_LENGTH``, append title, description and headings in that order
    until the minimum is reached or the material runs out.
    """
    text = text[:MAX_TEXT_LENGTH]
    if len(text) >= MIN_TEXT_LENGTH:
        return text

    for part in [title, description, *headings]:
        if len(text) >= MIN_TEXT_LENGTH:
            break
        if part:
            text = f"{text} {part}" if text else part
    return text[:MAX_TEXT_LENGTH]


def extract_emails(raw_html: str) -> List[str]:
    """Email addresses found anywhere in the raw markup, mailto links included."""
    emails: List[str] = []
    seen: set[str] = set()
    for match in EMAIL_RE.findall(raw_html or ""):
        if match in seen or match.lower().endswith(IMAGE_SUFFIXES):
            continue
        seen.add(match)
        emails.append(match)
    return emails


def extract_phones(visible_text: str) -> List[str]:
    phones: List[str] = []
    seen: set[str] = set()
    for match in PHONE_RE.findall(visible_text or ""):
        phone = match.strip()
        if phone and phone not in seen:
            seen.add(phone)
            phones.append(phone)
    return phones


def social_platform(href: str) -> Optional[str]:
    """Map a link to its social platform by host, or None."""
    href = href.strip()
    try:
        host = (urlparse(href).hostname or "").lower()
        if not host and not href.startswith(("/", "#", "?", "mailto:", "tel:", "javascript:")):
            # Scheme-less links such as "linkedin.com/company/acme"
            host = (urlparse("//" + href).hostname or "").lower()
    except ValueError:
        return None
    if not host:
        return None
    for domain, platform in SOCIAL_DOMAINS.items():
        if host == domain or host.endswith("." + domain):
            return platform
    return None


def _extract_social_links(soup: BeautifulSoup) -> Dict[str, str]:
    links: Dict[str, str] = {}
    for anchor in soup.find_all("a", href=True):
        href = anchor.get("href")
        if not isinstance(href, str) or not href.strip():
            continue
        platform = social_platform(href)
        if platform and platform not in links:
            links[platform] = href.strip()
    return links


def extract_signals(url: str, html: str) -> PageSignals:
    """Extract title, description, headings, cleaned text, contacts and social links.

    Args:
        url: URL the HTML was fetched from
        html: Raw HTML document

    Returns:
        PageSignals with empty defaults for every field that could not be read
    """
    html = html or ""
    emails = _safe("emails", url, [], lambda: extract_emails(html))

    soup = _parse(html)
    if soup is None:
        return PageSignals(url=url, emails=emails)

    title = _safe("title", url, "", lambda: _extract_title(soup))
    description = _safe("meta_description", url, "", lambda: _extract_description(soup))
    headings = _safe("headings", url, [], lambda: _extract_headings(soup))
    social_links = _safe("social_links", url, {}, lambda: _extract_social_links(soup))

    # Everything below reads the document after non-content elements are gone.
    _safe("strip", url, None, lambda: _strip_non_content(soup))
    visible_text = _safe("cleaned_text", url, "", lambda: _visible_root(soup).get_text(" "))
    cleaned_text = pad_text(_normalize_ws(visible_text), title, description, headings)
    phones = _safe("phones", url, [], lambda: extract_phones(_visible_root(soup).get_text()))

    return PageSignals(
        url=url,
        title=title,
        meta_description=description,
        headings=headings,
        cleaned_text=cleaned_text,
        emails=emails,
        phones=phones,
        social_links=social_links,
    )
