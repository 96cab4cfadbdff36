from __future__ import annotations

import argparse


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="imgsearch",
        description="Upload images, train the embedding index and run similarity searches",
    )
    p.add_argument(
        "--base-url",
        default=None,
        help="Remote service base URL (default from env IMGSEARCH_API_BASE_URL)",
    )
    p.add_argument("--log-level", default="WARNING", help="Python logging level (INFO, DEBUG, ...)")

    sub = p.add_subparsers(dest="command", required=True)

    upload = sub.add_parser("upload", help="Upload images as one batch")
    upload.add_argument("files", nargs="+", help="Image files (png, jpg, jpeg, bmp, webp)")

    sub.add_parser("train", help="Start a training job and follow it to completion")

    search = sub.add_parser("search", help="Find images similar to one query image")
    search.add_argument("file", help="Query image")
    search.add_argument("--top", type=int, default=0, help="Show only the N best matches (0 = all)")
    search.add_argument(
        "--save-dir",
        default=None,
        help="Download matched images into this directory",
    )

    fetch = sub.add_parser("fetch", help="Download one stored image by its server path")
    fetch.add_argument("path", help="Server-side image path (as returned by search)")
    fetch.add_argument("output", help="Local file to write")
    return p
