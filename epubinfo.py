#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from epubsnap.book import decode_epub
from epubsnap.errors import BookError
from epubsnap.models import metadata_to_dict


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Inspect an EPUB: print its metadata as JSON, extract the cover or a page."
    )
    parser.add_argument("input", help="Input EPUB file path")
    parser.add_argument("--cover", help="Write the cover image to this path")
    parser.add_argument("--page", type=int, help="Print the text of the page with this playorder")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log decoding details to stderr")
    return parser.parse_args(argv)


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Input file not found: {input_path}", file=sys.stderr)
        return 1

    try:
        book = decode_epub(input_path.read_bytes())
        metadata = book.get_metadata()
        if args.cover:
            cover = book.get_cover_image(metadata)
            if cover is None:
                print("No cover image declared", file=sys.stderr)
                return 1
            Path(args.cover).write_bytes(cover.bytes)
            print(f"Cover saved to: {args.cover} ({cover.media}, {cover.size} bytes)")
            return 0
        if args.page is not None:
            _, text = book.get_page(metadata, args.page)
            print(text)
            return 0
    except BookError as exc:
        print(f"{exc.code}: {exc.message}", file=sys.stderr)
        return 2

    print(json.dumps(metadata_to_dict(metadata), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
