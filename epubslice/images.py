from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from .config import MediaConfig
from .storage import LocalizedAsset, TempFolder, image_filename
from .transport import HttpClient

logger = logging.getLogger(__name__)

IMAGE_SELECTOR = "img, image"
_SOURCE_ATTRS = ("src", "data-src", "xlink:href", "href")


@dataclass(frozen=True)
class MediaReference:
    node: Tag
    uri: Optional[str]
    position: int


def resolve_uri(base_uri: str, path: str) -> Optional[str]:
    path = (path or "").strip()
    if not path:
        return None
    try:
        uri = urljoin(base_uri or "", path)
        parsed = urlparse(uri)
    except ValueError:
        return None
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    return uri


def _source_attr(node: Tag) -> str:
    for name in _SOURCE_ATTRS:
        value = node.get(name)
        if isinstance(value, list):
            value = " ".join(value)
        if value and str(value).strip():
            return str(value)
    return ""


def collect_media(
    fragment: BeautifulSoup, base_uri: str, no_image: bool = False
) -> List[MediaReference]:
    refs: List[MediaReference] = []
    for position, node in enumerate(fragment.select(IMAGE_SELECTOR)):
        uri = None
        if not no_image:
            source = _source_attr(node)
            uri = resolve_uri(base_uri, source)
            if uri is None:
                logger.warning("Image source %r is not a fetchable URL; dropping it", source)
        refs.append(MediaReference(node=node, uri=uri, position=position))
    return refs


def fetch_image(uri: str, client: HttpClient, temp_folder: TempFolder) -> Optional[LocalizedAsset]:
    try:
        logger.info("Downloading image %s", uri)
        with client.open(uri) as response:
            status = getattr(response, "status", None)
            if status != 200:
                logger.warning("Image %s returned HTTP %s; dropping it", uri, status)
                return None
            asset = LocalizedAsset.create(uri, temp_folder.path, image_filename(uri), response)
        logger.info("Downloaded image %s -> %s", uri, asset.name)
        return asset
    except Exception as exc:
        logger.warning("Image %s failed: %s; dropping it", uri, exc)
        return None


def localize_images(
    fragment: BeautifulSoup, base_uri: str, config: MediaConfig
) -> List[LocalizedAsset]:
    """Download every image in ``fragment`` and point it at the local copy.

    Images that cannot be resolved or downloaded are removed from the
    fragment. The returned assets follow document order.
    """
    refs = collect_media(fragment, base_uri, no_image=config.no_image)
    pending = [ref for ref in refs if ref.uri is not None]

    outcomes: dict[int, Optional[LocalizedAsset]] = {}
    if pending:
        workers = max(1, min(config.max_workers, len(pending)))
        with ThreadPoolExecutor(max_workers=workers) as ex:
            future_map = {
                ex.submit(fetch_image, ref.uri, config.client, config.temp_folder): ref.position
                for ref in pending
            }
            for future in as_completed(future_map):
                outcomes[future_map[future]] = future.result()

    assets: List[tuple[int, LocalizedAsset]] = []
    for ref in refs:
        asset = outcomes.get(ref.position)
        if asset is None:
            ref.node.extract()
            continue
        ref.node.attrs.clear()
        ref.node["src"] = asset.full_name
        assets.append((ref.position, asset))

    assets.sort(key=lambda item: item[0])
    return [asset for _position, asset in assets]
