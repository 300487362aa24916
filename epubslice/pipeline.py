from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterator, List, Sequence

from bs4 import BeautifulSoup

from .config import MediaConfig, SliceOptions
from .epub import HtmlResource, TocEntry
from .extract import extract_chapter, sanitize_fragment
from .images import localize_images
from .storage import LocalizedAsset
from .toc import slice_toc

logger = logging.getLogger(__name__)


@dataclass
class ChapterResult:
    index: int
    entry: TocEntry
    fragment: BeautifulSoup
    assets: List[LocalizedAsset] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.entry.title

    def html(self) -> str:
        return str(self.fragment)


def select_chapters(toc: Sequence[TocEntry], options: SliceOptions) -> List[TocEntry]:
    return slice_toc(
        toc,
        lambda entry: entry.title,
        start=options.start,
        end=options.end,
        start_name=options.start_name,
        end_name=options.end_name,
    )


def iter_chapters(
    toc: Sequence[TocEntry],
    resources: Sequence[HtmlResource],
    options: SliceOptions,
    media: MediaConfig,
    base_uri: str = "",
) -> Iterator[ChapterResult]:
    if options.no_image and not media.no_image:
        media = replace(media, no_image=True)
    positions = {id(entry): idx for idx, entry in enumerate(toc, start=1)}
    for entry in select_chapters(toc, options):
        fragment = sanitize_fragment(extract_chapter(resources, entry))
        assets = localize_images(fragment, base_uri, media)
        logger.info("Chapter %r: %d image(s) localized", entry.title, len(assets))
        yield ChapterResult(
            index=positions.get(id(entry), 0),
            entry=entry,
            fragment=fragment,
            assets=assets,
        )
