"""
Command line entry point: parses flags, loads state and runs the server.
"""

import logging

import click
import uvicorn

from redirector import __version__
from redirector.config import Settings, load_settings, setup_logging
from redirector.exceptions import ConfigurationError
from redirector.main import build_app
from redirector.schemas import ReservedPaths

logger = logging.getLogger(__name__)


def public_prefix(settings: Settings) -> str:
    host = settings.host
    if host in ("0.0.0.0", "::"):
        host = "localhost"
    elif ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{settings.port}"


def log_startup_summary(settings: Settings, reserved: ReservedPaths) -> None:
    urls = reserved.urls(public_prefix(settings))
    logger.info(f"Server is running on {settings.listen_addr}")
    logger.info(f"Redirecting to {settings.base_url}")
    keywords = settings.keywords()
    if keywords:
        logger.info(f"Filter keywords: {', '.join(keywords)}")
    logger.info(f"Stats (HTML): {urls['stats']}")
    logger.info(f"Stats (JSON): {urls['stats_json']}")
    logger.info(f"Reset (POST): {urls['reset']}")


@click.command()
@click.version_option(version=__version__)
@click.option("--base", "base_url", help="Base URL to redirect to [default: https://example.com]")
@click.option("--addr", "listen_addr", help="Address and port to listen on [default: :8080]")
@click.option("--filter", "filter_words", help="Comma-separated list of words to filter")
@click.option("--filter-count", type=int, help="Maximum number of filter words (0 for no limit)")
@click.option("--data-dir", help="Directory for stats.json and paths.json [default: data]")
@click.option("--log-level", help="Logging level [default: INFO]")
@click.option("--env-file", type=click.Path(dir_okay=False), help="Path to a .env file")
def main(base_url, listen_addr, filter_words, filter_count, data_dir, log_level, env_file):
    """Redirect every request to a base URL and count redirects per path."""
    try:
        settings = load_settings(
            {
                "base_url": base_url,
                "listen_addr": listen_addr,
                "filter_words": filter_words,
                "filter_count": filter_count,
                "data_dir": data_dir,
                "log_level": log_level,
            },
            env_file=env_file,
        )
    except ConfigurationError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    setup_logging(settings)
    app = build_app(settings)
    log_startup_summary(settings, app.state.reserved)

    try:
        uvicorn.run(
            app,
            host=settings.host,
            port=settings.port,
            log_config=None,
            log_level=settings.log_level.lower(),
        )
    except SystemExit as e:
        if e.code not in (None, 0):
            logger.critical(f"Listener on {settings.listen_addr} failed, shutting down")
        raise
