"""Command-line interface for the render service"""

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path

import aiofiles
from loguru import logger

from . import __version__
from .config import MISSING_CREDENTIALS_POLICIES, ScraperSettings
from .logging_config import setup_logging
from .session import scrape_url


def build_settings(args: argparse.Namespace) -> ScraperSettings:
    """Environment settings with command-line overrides applied on top"""
    settings = ScraperSettings.from_env(env_file=Path(args.env_file) if args.env_file else None)

    overrides = {}
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    if args.no_headless:
        overrides["headless"] = False
    if args.executable_path:
        overrides["executable_path"] = Path(args.executable_path)
    if args.missing_credentials:
        overrides["missing_credentials_policy"] = args.missing_credentials
    if args.screenshot_dir:
        overrides["screenshot_dir"] = Path(args.screenshot_dir)

    return replace(settings, **overrides) if overrides else settings


async def write_output(html: str, output: str) -> None:
    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(output_path, "w", encoding="utf-8") as f:
        await f.write(html)
    logger.info(f"💾 Saved {len(html)/1024:.1f}KB to {output_path}")


def run_server(settings: ScraperSettings) -> None:
    import uvicorn

    from .server import create_app

    logger.info(f"Starting render service on {settings.host}:{settings.port}")
    # log_config=None keeps uvicorn from replacing the loguru sinks
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


def run_once(settings: ScraperSettings, url: str, output: str = None) -> int:
    async def run() -> int:
        result = await scrape_url(url, settings)

        if not result.ok:
            logger.error(f"Scraping failed ({result.error_kind.value}): {result.message}")
            return 1

        for note in result.notes:
            logger.warning(f"⚠️ {note}")

        if output:
            await write_output(result.html, output)
        else:
            sys.stdout.write(result.html)
            sys.stdout.flush()
        return 0

    return asyncio.run(run())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stealth-scraper",
        description="Render pages behind anti-bot challenges and login walls",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # Shared configuration
    common = argparse.ArgumentParser(add_help=False)
    config_group = common.add_argument_group("Configuration")
    config_group.add_argument("--env-file", type=str, help="dotenv file to load")
    config_group.add_argument(
        "--no-headless", action="store_true", help="Visible browser mode"
    )
    config_group.add_argument(
        "--executable-path", type=str, help="Browser executable to launch"
    )
    config_group.add_argument(
        "--missing-credentials",
        choices=MISSING_CREDENTIALS_POLICIES,
        help="What to do on a login wall when no credentials are configured",
    )
    config_group.add_argument(
        "--screenshot-dir", type=str, help="Write failure screenshots here"
    )
    config_group.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    config_group.add_argument("--log-file", type=str, help="Log file path")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", parents=[common], help="Run the HTTP service")
    serve.add_argument("--host", type=str, help="Bind address (default: $HOST or 0.0.0.0)")
    serve.add_argument("--port", type=int, help="Listen port (default: $PORT or 3000)")

    scrape = subparsers.add_parser("scrape", parents=[common], help="Render one URL and exit")
    scrape.add_argument("url", help="Absolute URL to render")
    scrape.add_argument("--output", "-o", type=str, help="Write HTML here instead of stdout")

    return parser


def main(argv=None) -> None:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    log_file = Path(args.log_file) if args.log_file else None
    # HTML goes to stdout when scraping without --output, so logs move to stderr
    to_stdout = args.command == "scrape" and not args.output
    setup_logging(
        verbose=args.verbose, log_file=log_file, stream=sys.stderr if to_stdout else None
    )

    try:
        settings = build_settings(args)
    except ValueError as e:
        parser.error(str(e))

    if args.command == "serve":
        run_server(settings)
        return

    try:
        exit_code = run_once(settings, args.url, args.output)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
