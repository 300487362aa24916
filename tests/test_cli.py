import argparse
import io
import json
import urllib.error
from pathlib import Path

from ebooklib import epub

from epubslice import cli
from epubslice.transport import HttpClient


def _write_sample_epub(epub_path: Path) -> None:
    book = epub.EpubBook()
    book.set_identifier("cli-book")
    book.set_title("CLI Book")
    book.set_language("en")

    chapters = []
    for idx, title in enumerate(("Prologue", "Chapter 1", "Chapter 2", "Epilogue"), start=1):
        chapter = epub.EpubHtml(title=title, file_name=f"chapter-{idx}.xhtml", lang="en")
        chapter.content = (
            f"<h1>{title}</h1><p>Body {idx}.</p>"
            f"<img src='https://images.example.com/{idx}.png'/>"
        )
        book.add_item(chapter)
        chapters.append(chapter)

    book.toc = tuple(chapters)
    book.spine = ["nav", *chapters]
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    epub.write_epub(str(epub_path), book)


def test_cli_has_expected_commands() -> None:
    parser = cli.build_parser()
    subparsers = [
        action
        for action in parser._actions
        if isinstance(action, argparse._SubParsersAction)
    ]
    assert subparsers
    assert {"toc", "slice"} <= set(subparsers[0].choices.keys())


def test_slice_parser_accepts_range_options() -> None:
    parser = cli.build_parser()
    args = parser.parse_args(
        [
            "slice",
            "--input",
            "book.epub",
            "--out",
            "out",
            "--start-name",
            "Chapter 1",
            "--end",
            "-1",
            "--jobs",
            "4",
            "--no-image",
        ]
    )
    assert args.start_name == "Chapter 1"
    assert args.end == -1
    assert args.jobs == 4
    assert args.no_image is True
    assert args.start is None


def test_toc_command_lists_chapters(tmp_path: Path, capsys) -> None:
    epub_path = tmp_path / "book.epub"
    _write_sample_epub(epub_path)
    assert cli.main(["toc", "--input", str(epub_path)]) == 0
    out = capsys.readouterr().out
    assert "1  Prologue" in out
    assert "4  Epilogue" in out


def test_slice_command_writes_chapters(tmp_path: Path) -> None:
    epub_path = tmp_path / "book.epub"
    _write_sample_epub(epub_path)
    out_dir = tmp_path / "out"

    code = cli.main(
        [
            "slice",
            "--input",
            str(epub_path),
            "--out",
            str(out_dir),
            "--start-name",
            "chapter 1",
            "--end",
            "-1",
            "--no-image",
        ]
    )

    assert code == 0
    toc = json.loads((out_dir / "toc.json").read_text(encoding="utf-8"))
    assert toc["metadata"]["title"] == "CLI Book"
    assert [c["title"] for c in toc["chapters"]] == ["Chapter 1", "Chapter 2", "Epilogue"]
    assert [c["index"] for c in toc["chapters"]] == [2, 3, 4]
    first = out_dir / toc["chapters"][0]["path"]
    assert first.name == "0002-chapter-1.html"
    html = first.read_text(encoding="utf-8")
    assert "Body 2." in html
    assert "<img" not in html
    assert all(chapter["images"] == [] for chapter in toc["chapters"])


def test_slice_command_refuses_to_overwrite(tmp_path: Path) -> None:
    epub_path = tmp_path / "book.epub"
    _write_sample_epub(epub_path)
    out_dir = tmp_path / "out"
    args = ["slice", "--input", str(epub_path), "--out", str(out_dir), "--no-image"]
    assert cli.main(args) == 0
    assert cli.main(args) == 2
    assert cli.main([*args, "--overwrite"]) == 0


def test_slice_command_reports_unknown_chapter(tmp_path: Path, capsys) -> None:
    epub_path = tmp_path / "book.epub"
    _write_sample_epub(epub_path)
    code = cli.main(
        [
            "slice",
            "--input",
            str(epub_path),
            "--out",
            str(tmp_path / "out"),
            "--start-name",
            "Appendix",
        ]
    )
    assert code == 2
    assert "Appendix" in capsys.readouterr().err


def test_slice_command_rejects_bad_settings(tmp_path: Path) -> None:
    settings = tmp_path / "settings.json"
    settings.write_text("[1, 2]", encoding="utf-8")
    epub_path = tmp_path / "book.epub"
    _write_sample_epub(epub_path)
    code = cli.main(
        [
            "slice",
            "--input",
            str(epub_path),
            "--out",
            str(tmp_path / "out"),
            "--config",
            str(settings),
        ]
    )
    assert code == 2


class _Response(io.BytesIO):
    status = 200


class _ImageOpener:
    def open(self, request, timeout=None):
        if request.full_url.endswith("/3.png"):
            raise urllib.error.HTTPError(request.full_url, 404, "Not Found", None, None)
        return _Response(request.full_url.encode("ascii"))


def test_slice_command_copies_images(tmp_path: Path, monkeypatch) -> None:
    epub_path = tmp_path / "book.epub"
    _write_sample_epub(epub_path)
    out_dir = tmp_path / "out"

    def fake_client(**kwargs):
        return HttpClient(opener=_ImageOpener(), sleep=lambda _s: None, **kwargs)

    monkeypatch.setattr(cli, "HttpClient", fake_client)
    code = cli.main(
        ["slice", "--input", str(epub_path), "--out", str(out_dir), "--start", "2", "--end", "3"]
    )

    assert code == 0
    toc = json.loads((out_dir / "toc.json").read_text(encoding="utf-8"))
    first, second = toc["chapters"]
    assert len(first["images"]) == 1
    assert second["images"] == []
    image_path = out_dir / first["images"][0]
    assert image_path.read_bytes() == b"https://images.example.com/2.png"
    html = (out_dir / first["path"]).read_text(encoding="utf-8")
    assert f'src="../{first["images"][0]}"' in html
    assert "<img" not in (out_dir / second["path"]).read_text(encoding="utf-8")
