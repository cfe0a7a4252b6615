"""CLI entry points for PlayCast.

playcast-server: Runs the Flask REST API
playcast: One-shot classify / resolve / search from the terminal, printing JSON
"""

import argparse
import asyncio
import json
import logging
import sys

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def _configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )


def run_server():
    """Entry point for playcast-server command."""
    parser = argparse.ArgumentParser(
        description="PlayCast server - link resolution and playback queue REST API"
    )
    parser.add_argument(
        "--host", default=None, help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port", type=int, default=None, help="Port to listen on (default: 5050)"
    )
    parser.add_argument(
        "--config", default=None, help="Path to playcast.toml config file"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug mode"
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)"
    )
    parser.add_argument(
        "--quiet", action="store_true",
        help="Suppress per-request werkzeug logs"
    )
    args = parser.parse_args()

    _configure_logging(args.log_level)

    from playcast.config import load_config
    from playcast.server.app import create_app

    config = load_config(args.config)

    # CLI args override config file
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port

    if args.quiet:
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

    app = create_app(config)
    logging.getLogger(__name__).info(
        "PlayCast server on %s:%d", config.server.host, config.server.port,
    )
    app.run(
        host=config.server.host,
        port=config.server.port,
        debug=args.debug,
        threaded=True,
    )


def _print(data):
    print(json.dumps(data, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    """Entry point for the playcast command."""
    parser = argparse.ArgumentParser(
        prog="playcast",
        description="PlayCast - turn pasted links and search terms into playable streams",
    )
    parser.add_argument("--config", default=None, help="Path to playcast.toml config file")
    parser.add_argument(
        "--log-level", default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: WARNING)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("classify", help="Classify a link without any network access")
    p.add_argument("text")

    p = sub.add_parser("resolve", help="Resolve a link or search term to a stream")
    p.add_argument("text")

    p = sub.add_parser("search", help="Search a provider")
    p.add_argument("query")
    p.add_argument("--provider", default=None, choices=["youtube", "soundcloud"])
    p.add_argument("--limit", type=int, default=None)

    sub.add_parser("mirrors", help="Show configured mirror pools")

    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    from playcast.config import load_config
    from playcast.server.sources import Provider, ResolutionError, ResolutionFacade

    config = load_config(args.config)
    facade = ResolutionFacade.from_config(config)

    if args.command == "classify":
        _print(facade.classify(args.text).to_dict())
        return 0

    if args.command == "mirrors":
        _print(facade.mirrors())
        return 0

    if args.command == "search":
        provider = Provider(args.provider) if args.provider else None
        outcome = asyncio.run(facade.search(args.query, provider=provider, limit=args.limit))
        if isinstance(outcome, ResolutionError):
            _print(outcome.to_dict())
            return 1
        _print([m.to_dict() for m in outcome])
        return 0

    outcome = asyncio.run(facade.resolve_from_input(args.text))
    _print(outcome.to_dict())
    return 1 if isinstance(outcome, ResolutionError) else 0


if __name__ == "__main__":
    sys.exit(main())
