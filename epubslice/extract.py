from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from bs4 import BeautifulSoup, Comment, Tag
from bs4.element import PageElement

from .epub import HtmlResource, TocEntry, parse_chapter_html

logger = logging.getLogger(__name__)

_UNSAFE_TAGS = ("script", "noscript", "iframe", "form", "button", "object", "embed")

Container = Union[BeautifulSoup, Tag]


class DocumentNotFound(LookupError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Chapter document not found in book: {path}")
        self.path = path


@dataclass(frozen=True)
class CloneResult:
    node: Optional[PageElement]
    stopped: bool = False


def _new_document() -> BeautifulSoup:
    return BeautifulSoup("", "html.parser")


def _shallow_copy(tag: Tag) -> Tag:
    attrs = {
        key: list(value) if isinstance(value, list) else value
        for key, value in tag.attrs.items()
    }
    return Tag(
        name=tag.name,
        namespace=tag.namespace,
        prefix=tag.prefix,
        attrs=attrs,
        is_xml=tag._is_xml,
        can_be_empty_element=tag.can_be_empty_element,
        cdata_list_attributes=tag.cdata_list_attributes,
        preserve_whitespace_tags=tag.preserve_whitespace_tags,
        interesting_string_types=tag.interesting_string_types,
    )


def _container_for(level: Optional[PageElement], root: BeautifulSoup) -> Container:
    if level is None or level is root or not isinstance(level, Tag):
        return _new_document()
    return _shallow_copy(level)


def _node_id(node: PageElement) -> str:
    if isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
        return str(node.get("id") or "")
    return ""


def _body_children(html: bytes) -> List[PageElement]:
    soup = parse_chapter_html(html)
    body = soup.find("body")
    root = body if body is not None else soup
    return list(root.contents)


def slice_book(resources: Sequence[HtmlResource], entry: TocEntry) -> BeautifulSoup:
    """Concatenate the bodies of every resource belonging to ``entry``.

    The span starts at the entry's document and stops before the next entry's
    document. The first document is always included, even when the next
    chapter starts further down in the same file.
    """
    start_index = next(
        (idx for idx, res in enumerate(resources) if res.path == entry.document),
        None,
    )
    if start_index is None:
        raise DocumentNotFound(entry.document)

    stop_document = entry.next.document if entry.next is not None else None
    doc = _new_document()
    for node in _body_children(resources[start_index].content):
        doc.append(node.extract())
    for res in resources[start_index + 1 :]:
        if res.path == stop_document:
            break
        for node in _body_children(res.content):
            doc.append(node.extract())
    return doc


def _clone_node(node: PageElement, stop_id: str) -> CloneResult:
    if stop_id and _node_id(node) == stop_id:
        return CloneResult(None, stopped=True)

    if not isinstance(node, Tag) or not node.contents:
        return CloneResult(copy.copy(node))

    shell = _shallow_copy(node)
    for child in node.contents:
        result = _clone_node(child, stop_id)
        if result.node is not None:
            shell.append(result.node)
        if result.stopped:
            return CloneResult(shell, stopped=True)
    return CloneResult(shell)


def _wrap(layer: Container, level: PageElement, root: BeautifulSoup) -> Container:
    outer = _container_for(level.parent, root)
    if isinstance(layer, BeautifulSoup):
        for child in list(layer.contents):
            outer.append(child.extract())
    else:
        outer.append(layer)
    return outer


def _to_fragment(layer: Container) -> BeautifulSoup:
    if isinstance(layer, BeautifulSoup):
        return layer
    fragment = _new_document()
    fragment.append(layer)
    return fragment


def extract_content(doc: BeautifulSoup, start_id: str = "", stop_id: str = "") -> BeautifulSoup:
    """Copy everything from ``start_id`` up to (not including) ``stop_id``.

    Ancestors of the copied nodes are rebuilt as empty shells, so a chapter
    that starts or ends in the middle of a container keeps that container
    without picking up its siblings from other chapters.
    """
    node: Optional[PageElement] = None
    if start_id:
        node = doc.find(id=start_id)
        if node is None:
            logger.warning("Start anchor #%s not found; extracting from span start", start_id)
    if node is None:
        node = doc.contents[0] if doc.contents else None
    if node is None:
        return _new_document()

    level = node.parent
    layer = _container_for(level, doc)
    stopped = False
    while node is not None:
        result = _clone_node(node, stop_id)
        if result.node is not None:
            layer.append(result.node)
        if result.stopped:
            stopped = True
            break

        while node is not None and node.next_sibling is None:
            if level is doc:
                node = None
            elif level is None:
                logger.warning("Detached node reached while extracting; stopping")
                node = None
            else:
                layer = _wrap(layer, level, doc)
                node = level
                level = level.parent
        if node is not None:
            node = node.next_sibling

    while level is not None and level is not doc:
        layer = _wrap(layer, level, doc)
        level = level.parent

    if stop_id and not stopped:
        logger.debug("Stop anchor #%s not reached inside the span", stop_id)
    return _to_fragment(layer)


def extract_chapter(resources: Sequence[HtmlResource], entry: TocEntry) -> BeautifulSoup:
    doc = slice_book(resources, entry)
    stop_id = entry.next.anchor if entry.next is not None else ""
    fragment = extract_content(doc, entry.anchor, stop_id)
    if (
        stop_id
        and entry.next is not None
        and entry.next.document == entry.document
        and doc.find(id=stop_id) is None
    ):
        logger.warning(
            "Next chapter anchor #%s missing from %s; chapter runs to the end of the span",
            stop_id,
            entry.document,
        )
    return fragment


def sanitize_fragment(fragment: BeautifulSoup) -> BeautifulSoup:
    for tag in fragment.find_all(_UNSAFE_TAGS):
        tag.decompose()
    for comment in fragment.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()
    return fragment
