from __future__ import annotations

import argparse
import json
import logging
import os
import shutil
import sys
import time
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from . import epub as epub_util
from .config import DEFAULT_JOBS, MediaConfig, SliceOptions, load_settings
from .extract import DocumentNotFound
from .pipeline import ChapterResult, iter_chapters
from .storage import TempFolder
from .toc import BoundaryNotFound
from .transport import DEFAULT_HEADERS, DEFAULT_RETRIES, DEFAULT_TIMEOUT, HttpClient


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


def _load_book(input_path: Path):
    book = epub_util.read_epub(input_path)
    return (
        book,
        epub_util.build_toc_entries(book),
        epub_util.build_html_resources(book),
    )


def _toc(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        sys.stderr.write(f"Input file not found: {input_path}\n")
        return 2
    _book, toc, _resources = _load_book(input_path)
    if not toc:
        sys.stderr.write("No table of contents found in EPUB.\n")
        return 2
    width = len(str(len(toc)))
    for idx, entry in enumerate(toc, start=1):
        print(f"{idx:>{width}}  {entry.title}  ({entry.href})")
    return 0


def _relocate_assets(result: ChapterResult, images_dir: Path) -> list[str]:
    """Copy chapter assets next to the output and point ``src`` at them."""
    by_path = {asset.full_name: asset for asset in result.assets}
    written: list[str] = []
    for img in result.fragment.select("img, image"):
        asset = by_path.get(str(img.get("src") or ""))
        if asset is None:
            continue
        dest = images_dir / asset.name
        shutil.copyfile(asset.path, dest)
        img["src"] = f"../images/{asset.name}"
        written.append(f"images/{asset.name}")
    return written


def _slice(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        sys.stderr.write(f"Input file not found: {input_path}\n")
        return 2

    try:
        settings = load_settings(Path(args.config) if args.config else None)
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"Invalid settings file: {exc}\n")
        return 2

    _setup_logging(args.verbose)

    out_dir = Path(args.out)
    chapters_dir = out_dir / "chapters"
    images_dir = out_dir / "images"
    if chapters_dir.exists():
        existing = [p for p in chapters_dir.iterdir() if p.is_file()]
        if existing and not args.overwrite:
            sys.stderr.write("Chapters already exist. Use --overwrite to regenerate.\n")
            return 2
    chapters_dir.mkdir(parents=True, exist_ok=True)
    images_dir.mkdir(parents=True, exist_ok=True)

    no_image = bool(args.no_image or settings.get("no_image", False))
    options = SliceOptions(
        start=args.start,
        end=args.end,
        start_name=args.start_name,
        end_name=args.end_name,
        no_image=no_image,
    )
    headers = dict(DEFAULT_HEADERS)
    if settings.get("user_agent"):
        headers["User-Agent"] = str(settings["user_agent"])
    client = HttpClient(
        timeout=args.timeout or settings.get("timeout", DEFAULT_TIMEOUT),
        retries=args.retries if args.retries is not None else settings.get("retries", DEFAULT_RETRIES),
        headers=headers,
    )
    base_url = args.base_url or settings.get("base_url", "")
    jobs = args.jobs or int(settings.get("jobs", DEFAULT_JOBS))

    book, toc, resources = _load_book(input_path)
    if not toc:
        sys.stderr.write("No table of contents found in EPUB.\n")
        return 2

    toc_items = []
    progress = Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
    )
    with TempFolder() as temp_folder:
        media = MediaConfig(
            client=client,
            temp_folder=temp_folder,
            max_workers=max(1, jobs),
            no_image=no_image,
        )
        try:
            with progress:
                task = progress.add_task("Chapters", total=None)
                for result in iter_chapters(toc, resources, options, media, base_url):
                    progress.update(task, description=result.title or f"Chapter {result.index}")
                    images = _relocate_assets(result, images_dir)
                    slug = epub_util.slugify(result.title)
                    filename = f"{result.index:04d}-{slug}.html"
                    out_path = chapters_dir / filename
                    out_path.write_text(result.html(), encoding="utf-8")
                    toc_items.append(
                        {
                            "index": result.index,
                            "title": result.title,
                            "href": result.entry.href,
                            "path": out_path.relative_to(out_dir).as_posix(),
                            "images": images,
                        }
                    )
                    progress.advance(task)
        except BoundaryNotFound as exc:
            sys.stderr.write(f"{exc}\n")
            return 2
        except DocumentNotFound as exc:
            sys.stderr.write(f"{exc}\n")
            return 2

    if not toc_items:
        sys.stderr.write("No chapters selected.\n")
        return 2

    toc_data = {
        "created_unix": int(time.time()),
        "source_epub": str(input_path),
        "metadata": epub_util.extract_metadata(book),
        "chapters": toc_items,
    }
    toc_path = out_dir / "toc.json"
    toc_path.write_text(
        json.dumps(toc_data, ensure_ascii=False, indent=2) + "\n",
        encoding="utf-8",
    )
    print(f"Wrote {len(toc_items)} chapters to {chapters_dir}")
    print(f"TOC metadata saved to {toc_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="epubslice")
    subparsers = parser.add_subparsers(dest="command")

    toc = subparsers.add_parser("toc", help="List the table of contents of an EPUB")
    toc.add_argument("--input", required=True, help="Path to input .epub")
    toc.set_defaults(func=_toc)

    slice_cmd = subparsers.add_parser(
        "slice", help="Extract a range of chapters with localized images"
    )
    slice_cmd.add_argument("--input", required=True, help="Path to input .epub")
    slice_cmd.add_argument(
        "--out",
        "--output",
        required=True,
        dest="out",
        help="Output directory (e.g., out/book)",
    )
    slice_cmd.add_argument(
        "--start", type=int, help="First chapter, 1-based (negative counts from the end)"
    )
    slice_cmd.add_argument(
        "--end", type=int, help="Last chapter, inclusive (negative counts from the end)"
    )
    slice_cmd.add_argument(
        "--start-name", dest="start_name", help="Title of the first chapter (overrides --start)"
    )
    slice_cmd.add_argument(
        "--end-name", dest="end_name", help="Title of the last chapter (overrides --end)"
    )
    slice_cmd.add_argument(
        "--no-image", dest="no_image", action="store_true", help="Drop all images"
    )
    slice_cmd.add_argument(
        "--base-url", dest="base_url", help="Base URL for relative image references"
    )
    slice_cmd.add_argument(
        "--jobs",
        type=int,
        help=f"Concurrent image downloads (default: {DEFAULT_JOBS})",
    )
    slice_cmd.add_argument(
        "--retries",
        type=int,
        help=f"Retries per image download (default: {DEFAULT_RETRIES})",
    )
    slice_cmd.add_argument(
        "--timeout",
        type=float,
        help=f"Request timeout in seconds (default: {DEFAULT_TIMEOUT})",
    )
    slice_cmd.add_argument(
        "--config",
        default=os.environ.get("EPUBSLICE_CONFIG"),
        help="JSON settings file (jobs, retries, timeout, user_agent, no_image, base_url)",
    )
    slice_cmd.add_argument(
        "--overwrite", action="store_true", help="Overwrite existing chapters"
    )
    slice_cmd.add_argument(
        "--verbose", "-v", action="store_true", help="Log every download"
    )
    slice_cmd.set_defaults(func=_slice)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
