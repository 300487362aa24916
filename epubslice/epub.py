from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup
from ebooklib import ITEM_DOCUMENT, epub


@dataclass(frozen=True)
class TocEntry:
    title: str
    href: str
    document: str
    anchor: str = ""
    next: Optional["TocEntry"] = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class HtmlResource:
    path: str
    content: bytes = field(repr=False)


def read_epub(path: Path) -> epub.EpubBook:
    return epub.read_epub(str(path))


def _first_dc_meta(book: epub.EpubBook, name: str) -> str:
    items = book.get_metadata("DC", name)
    if not items:
        return ""
    value, _attrs = items[0]
    return value or ""


def _all_dc_meta(book: epub.EpubBook, name: str) -> List[str]:
    items = book.get_metadata("DC", name)
    values: List[str] = []
    for value, _attrs in items:
        if value:
            values.append(value)
    return values


def _item_name(item: object) -> str:
    get_name = getattr(item, "get_name", None)
    if callable(get_name):
        return get_name() or ""
    return getattr(item, "file_name", "") or ""


def extract_metadata(book: epub.EpubBook) -> dict:
    return {
        "title": _first_dc_meta(book, "title"),
        "authors": _all_dc_meta(book, "creator"),
        "language": _first_dc_meta(book, "language"),
        "identifier": _first_dc_meta(book, "identifier"),
    }


def normalize_href(href: str) -> str:
    href = (href or "").strip()
    if not href:
        return ""
    href = href.split("#", 1)[0]
    # Some EPUBs percent-encode filenames in TOC entries.
    return unquote(href)


def href_fragment(href: str) -> str:
    if not href:
        return ""
    parts = href.split("#", 1)
    if len(parts) < 2:
        return ""
    return unquote(parts[1])


def _walk_toc(toc: Iterable) -> List[tuple[str, str]]:
    links: List[tuple[str, str]] = []

    def walk(nodes: Iterable) -> None:
        for node in nodes:
            if isinstance(node, epub.Link):
                if node.href:
                    links.append((node.title or "", node.href))
            elif isinstance(node, epub.Section):
                if node.href:
                    links.append((node.title or "", node.href))
                subitems = getattr(node, "subitems", None)
                if subitems:
                    walk(subitems)
            elif isinstance(node, epub.EpubHtml):
                name = _item_name(node)
                if name:
                    links.append((node.title or "", name))
            elif isinstance(node, (list, tuple)):
                walk(node)

    walk(toc)
    return links


def link_toc_entries(links: Iterable[tuple[str, str]]) -> List[TocEntry]:
    """Build entries whose ``next`` points at the following entry.

    Entries are frozen, so the chain is built back to front.
    """
    entries: List[TocEntry] = []
    following: Optional[TocEntry] = None
    for title, href in reversed(list(links)):
        entry = TocEntry(
            title=title,
            href=href,
            document=normalize_href(href),
            anchor=href_fragment(href),
            next=following,
        )
        entries.append(entry)
        following = entry
    entries.reverse()
    return entries


def build_toc_entries(book: epub.EpubBook) -> List[TocEntry]:
    links = [(title, href) for title, href in _walk_toc(book.toc or []) if href]
    return link_toc_entries(links)


def build_html_resources(book: epub.EpubBook) -> List[HtmlResource]:
    resources: List[HtmlResource] = []
    seen: set[str] = set()
    for idref, _linear in book.spine:
        item = book.get_item_with_id(idref)
        if not item or item.get_type() != ITEM_DOCUMENT:
            continue
        name = normalize_href(_item_name(item))
        if not name or name in seen:
            continue
        seen.add(name)
        resources.append(HtmlResource(path=name, content=item.get_content() or b""))
    return resources


def parse_chapter_html(html: bytes | str) -> BeautifulSoup:
    """Parse a spine document for extraction.

    XHTML is read with the HTML builder too, so empty non-void elements such
    as ``<a id="x"/>`` come out as ``<a id="x"></a>`` in the chapter HTML.
    """
    return BeautifulSoup(html, "lxml")


def slugify(text: str) -> str:
    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")
    return text[:60] or "chapter"
