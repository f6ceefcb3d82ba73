"""
HTML content extraction utilities.

All page text goes through the same normalization: script/style blocks
removed, entities decoded, whitespace collapsed, fragments shorter than
MIN_FRAGMENT_LEN characters dropped.
"""

from __future__ import annotations

import re
import urllib.parse
from typing import Iterable, List, Tuple

from bs4 import BeautifulSoup, Tag

MIN_FRAGMENT_LEN = 4

NON_CONTENT_TAGS = ["script", "style", "noscript", "iframe", "svg", "canvas", "template"]
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]


def make_soup(html: str, keep_scripts: bool = False) -> BeautifulSoup:
    """Parse HTML with lxml, dropping non-content tags unless asked not to."""
    soup = BeautifulSoup(html or "", "lxml")
    if not keep_scripts:
        for tag in soup(NON_CONTENT_TAGS):
            tag.decompose()
    return soup


def normalize_fragment(text: str) -> str:
    """Collapse whitespace; fragments that end up too short become ""."""
    text = re.sub(r"\s+", " ", text or "").strip()
    return text if len(text) >= MIN_FRAGMENT_LEN else ""


def text_fragments(soup_or_html) -> List[str]:
    """Normalized text fragments of a document, in document order."""
    soup = soup_or_html if isinstance(soup_or_html, (BeautifulSoup, Tag)) else make_soup(soup_or_html)
    fragments = []
    for s in soup.stripped_strings:
        fragment = normalize_fragment(s)
        if fragment:
            fragments.append(fragment)
    return fragments


def strip_html(html: str, max_len: int = 20000) -> str:
    """
    Convert HTML to normalized plain text.
    """
    if not html:
        return ""
    return " ".join(text_fragments(html))[:max_len]


def extract_page_title(soup: BeautifulSoup) -> str:
    """Extract the page title."""
    og_title = soup.find("meta", property="og:title")
    if og_title and og_title.get("content"):
        return normalize_fragment(og_title["content"])

    if soup.title and soup.title.string:
        return normalize_fragment(soup.title.string)

    h1 = soup.find("h1")
    if h1:
        return normalize_fragment(h1.get_text(" ", strip=True))

    return ""


def extract_meta_text(soup: BeautifulSoup) -> List[str]:
    """Content of description-like meta tags (useful on skeleton pages)."""
    values = []
    for meta in soup.find_all("meta"):
        key = (meta.get("name") or meta.get("property") or "").lower()
        if key in ("description", "og:description", "twitter:description", "keywords", "og:title"):
            value = normalize_fragment(meta.get("content", ""))
            if value:
                values.append(value)
    return values


def resolve_url(href: str, base_url: str) -> str:
    """
    Resolve a potentially relative URL against a base URL.
    Returns "" for anchors, javascript: and mailto: links.
    """
    href = (href or "").strip()
    if not href or href.startswith(("#", "javascript:", "mailto:", "tel:", "data:")):
        return ""

    if href.startswith("//"):
        href = "https:" + href
    elif not href.startswith(("http://", "https://")):
        try:
            href = urllib.parse.urljoin(base_url, href)
        except ValueError:
            return ""

    if not href.startswith(("http://", "https://")):
        return ""
    return href


def extract_links(soup: BeautifulSoup, base_url: str) -> List[Tuple[str, str]]:
    """All (absolute_url, anchor_text) pairs in document order, deduplicated."""
    links: List[Tuple[str, str]] = []
    seen = set()
    for a in soup.find_all("a", href=True):
        url = resolve_url(a.get("href", ""), base_url)
        if not url or url in seen:
            continue
        seen.add(url)
        links.append((url, re.sub(r"\s+", " ", a.get_text(" ", strip=True))))
    return links


def _contains_keyword(text: str, keywords: Iterable[str]) -> bool:
    t = text.lower()
    return any(k in t for k in keywords)


def find_remediation_text(soup: BeautifulSoup, keywords: Iterable[str], max_len: int = 600) -> str:
    """
    Remediation-paragraph heuristic.

    1. A heading (or <dt>/<strong>) mentioning a remediation keyword: take the
       text of the elements after it, up to the next heading.
    2. Otherwise the first paragraph or list item mentioning a keyword.
    """
    keywords = [k.lower() for k in keywords]

    for heading in soup.find_all(HEADING_TAGS + ["dt", "strong", "b"]):
        title = heading.get_text(" ", strip=True)
        if not title or len(title) > 80 or not _contains_keyword(title, keywords):
            continue
        parts: List[str] = []
        anchor = heading.parent if heading.name in ("strong", "b") and heading.parent is not None else heading
        for sibling in anchor.find_next_siblings():
            if sibling.name in HEADING_TAGS:
                break
            parts.extend(text_fragments(sibling))
            if sum(len(p) for p in parts) >= max_len:
                break
        text = " ".join(parts).strip()
        if len(text) >= 20:
            return text[:max_len]

    for para in soup.find_all(["p", "li", "dd", "td"]):
        text = " ".join(text_fragments(para))
        if len(text) >= 20 and _contains_keyword(text, keywords):
            return text[:max_len]

    return ""


def find_remediation_in_text(text: str, keywords: Iterable[str], max_len: int = 600) -> str:
    """Sentence-level fallback for plain-text payloads."""
    keywords = [k.lower() for k in keywords]
    for sentence in re.split(r"(?<=[.!?])\s+|\n+", text or ""):
        sentence = normalize_fragment(sentence)
        if len(sentence) >= 20 and _contains_keyword(sentence, keywords):
            return sentence[:max_len]
    return ""

