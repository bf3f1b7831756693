"""Command line entry point: serve the diagram or write an SVG snapshot."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

from workflow_diagram.config import DiagramConfig
from workflow_diagram.errors import DiagramError
from workflow_diagram.layout import Direction

logger = logging.getLogger("workflow_diagram")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="workflow-diagram", description=__doc__)
    parser.add_argument("--api-url", help="workflow API endpoint (env: WORKFLOW_API_URL)")
    parser.add_argument("--timeout", type=float, help="request timeout in seconds")
    parser.add_argument("--direction", choices=["LR", "TB"], help="flow direction")
    parser.add_argument("--host", help="address to serve on")
    parser.add_argument("--port", type=int, help="port to serve on")
    parser.add_argument("--debug", action="store_true", help="run Dash in debug mode")
    parser.add_argument("--svg", type=Path, metavar="PATH", help="write an SVG snapshot instead of serving")
    return parser


def config_from_args(args: argparse.Namespace, base: DiagramConfig) -> DiagramConfig:
    overrides = {}
    if args.api_url:
        overrides["api_url"] = args.api_url
    if args.timeout is not None:
        overrides["timeout"] = args.timeout
    if args.direction:
        overrides["direction"] = Direction.parse(args.direction)
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.debug:
        overrides["debug"] = True
    return replace(base, **overrides)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    config = config_from_args(args, DiagramConfig.from_env())
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.svg is not None:
        from workflow_diagram.api import load_layout
        from workflow_diagram.renderers.svg import render_svg

        try:
            layout = load_layout(config.api_url, config.direction, config.timeout)
        except DiagramError as exc:
            logger.error("Error: %s", exc)
            return 1
        args.svg.write_text(render_svg(layout), encoding="utf-8")
        logger.info("Wrote %s", args.svg)
        return 0

    from workflow_diagram.app import create_app

    app = create_app(config)
    app.run(host=config.host, port=config.port, debug=config.debug)
    return 0


if __name__ == "__main__":
    sys.exit(main())
