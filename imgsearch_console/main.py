from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, TextIO

import httpx

from imgsearch_console.cli import build_parser
from imgsearch_console.config import ConsoleConfig, normalize_base_url
from imgsearch_console.errors import ImageSearchError
from imgsearch_console.intake import read_selection
from imgsearch_console.logging_config import setup_logging
from imgsearch_console.render import (
    render_notification,
    render_search,
    render_training,
    render_upload,
)
from imgsearch_console.session import Console
from imgsearch_console.types import Notification, OperationState

logger = logging.getLogger("imgsearch_console")


class _Printer:
    """Writes rendered frames, skipping a frame identical to the previous one."""

    def __init__(self, out: TextIO) -> None:
        self._out = out
        self._last: str | None = None

    def frame(self, text: str) -> None:
        if text and text != self._last:
            print(text, file=self._out, flush=True)
        self._last = text

    def notification(self, notification: Notification | None) -> None:
        if notification is not None:
            print(render_notification(notification), file=self._out, flush=True)


def _attach(view: Any, printer: _Printer, render: Callable[[Any], str]) -> None:
    view.controller.subscribe(lambda c: printer.frame(render(c)))
    view.notifications.subscribe(printer.notification)


def _exit_code(state: OperationState) -> int:
    return 0 if state is OperationState.SUCCEEDED else 2


async def _cmd_upload(console: Console, args: Any, printer: _Printer) -> int:
    async with console.open_upload() as view:
        _attach(view, printer, render_upload)
        view.controller.add_files(read_selection(args.files))
        op = await view.controller.submit()
        return _exit_code(op.state)


async def _cmd_train(console: Console, args: Any, printer: _Printer) -> int:
    async with console.open_training() as view:
        _attach(view, printer, render_training)
        await view.controller.submit()
        op = await view.controller.wait_until_settled()
        return _exit_code(op.state)


async def _cmd_search(console: Console, args: Any, printer: _Printer) -> int:
    async with console.open_search() as view:
        _attach(view, printer, render_search)
        selection = read_selection([args.file])
        if not selection:
            printer.frame(f"Cannot read {args.file}")
            return 2
        if not view.controller.select_file(selection[0]):
            return 2
        op = await view.controller.submit()
        if op.state is not OperationState.SUCCEEDED:
            return 2

        results = view.controller.results
        if args.top and args.top > 0:
            results = results[: args.top]
        if args.save_dir:
            return await _save_results(console, [r.locator for r in results], Path(args.save_dir), printer)
        return 0


async def _save_results(console: Console, locators: Sequence[str], target: Path, printer: _Printer) -> int:
    target.mkdir(parents=True, exist_ok=True)
    failed = 0
    for i, locator in enumerate(locators, 1):
        name = f"{i:03d}_{Path(locator).name or 'image'}"
        try:
            data = await console.client.fetch_image(locator)
        except ImageSearchError as e:
            failed += 1
            logger.warning("Could not download %s: %s", locator, e.message)
            printer.frame(f"Could not download {locator}: {e.message}")
            continue
        (target / name).write_bytes(data)
        printer.frame(f"Saved {target / name}")
    return 0 if failed == 0 else 2


async def _cmd_fetch(console: Console, args: Any, printer: _Printer) -> int:
    try:
        data = await console.client.fetch_image(args.path)
    except ImageSearchError as e:
        printer.frame(f"Fetch failed: {e.message}")
        return 2
    Path(args.output).write_bytes(data)
    printer.frame(f"Saved {args.output} ({len(data)} bytes)")
    return 0


_COMMANDS = {
    "upload": _cmd_upload,
    "train": _cmd_train,
    "search": _cmd_search,
    "fetch": _cmd_fetch,
}


async def run(
    argv: Sequence[str] | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    out: TextIO | None = None,
    configure_logging: bool = True,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if configure_logging:
        setup_logging(level=args.log_level.upper())

    cfg = ConsoleConfig.from_env()
    if args.base_url is not None:
        cfg = dataclasses.replace(cfg, api_base_url=normalize_base_url(args.base_url))
    cfg.validate()

    printer = _Printer(out or sys.stdout)
    async with Console(cfg, transport=transport) as console:
        return await _COMMANDS[args.command](console, args, printer)


def main() -> None:
    raise SystemExit(asyncio.run(run()))


if __name__ == "__main__":
    main()
