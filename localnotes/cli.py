from __future__ import annotations

import argparse
import json
from pathlib import Path

import uvicorn

from .config import load_settings
from .logger import configure_logging
from .store import open_store


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="localnotes", description="localnotes - local-first sticky notes.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Run the web server")
    run.add_argument("--host", default=None, help="Bind host (override LOCALNOTES_HOST)")
    run.add_argument("--port", type=int, default=None, help="Bind port (override LOCALNOTES_PORT)")

    export = sub.add_parser("export", help="Print stored notes as JSON")
    export.add_argument("-o", "--output", default=None, help="Write to a file instead of stdout")

    args = parser.parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level)

    if args.cmd == "run":
        from .web import create_app

        host = args.host or settings.host
        port = args.port or settings.port
        uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())
        return

    store = open_store(settings)
    data = json.dumps([n.model_dump(by_alias=True) for n in store.notes], ensure_ascii=False, indent=2)
    if args.output:
        Path(args.output).write_text(data + "\n", encoding="utf-8")
    else:
        print(data)
