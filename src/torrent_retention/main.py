#!/usr/bin/env python3
"""Main entry point for the torrent retention daemon."""

import argparse
import logging
import sys
from datetime import datetime
from typing import List, Optional

import uvicorn

from . import __version__
from .api import create_app
from .api.app_state import AppState
from .client import repository_for
from .config import ConfigError, RuntimeConfig, parse_listen_addr
from .metrics import Metrics
from .notifier import Notifier
from .policy import InvalidPolicyError
from .poller import InstancePoller
from .rules import load_instances
from .supervisor import Supervisor, TaskExitedError


# Custom log formatter with colors and symbols
class PrettyFormatter(logging.Formatter):
    """Custom formatter with colors and symbols for prettier output."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m',     # Reset
        'BOLD': '\033[1m',      # Bold
        'DIM': '\033[2m',       # Dim
    }

    # Log level symbols
    SYMBOLS = {
        'DEBUG': '🔍',
        'INFO': '✔',
        'WARNING': '⚠',
        'ERROR': '✗',
        'CRITICAL': '💀',
    }

    def __init__(self, use_colors=True, use_symbols=True):
        """Initialize formatter."""
        self.use_colors = use_colors and sys.stdout.isatty()
        self.use_symbols = use_symbols
        super().__init__()

    def format(self, record):
        """Format log record with colors and symbols."""
        levelname = record.levelname
        color = self.COLORS.get(levelname, '')
        reset = self.COLORS['RESET'] if self.use_colors else ''
        symbol = self.SYMBOLS.get(levelname, '•') if self.use_symbols else ''

        time_str = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        if self.use_colors:
            if levelname in ('ERROR', 'CRITICAL', 'WARNING'):
                formatted = f"{self.COLORS['DIM']}{time_str}{reset} {color}{symbol} {levelname:8}{reset} {record.getMessage()}"
            elif record.name == __name__:
                # Main module messages in bold
                formatted = f"{self.COLORS['DIM']}{time_str}{reset} {color}{symbol}{reset} {self.COLORS['BOLD']}{record.getMessage()}{reset}"
            else:
                formatted = f"{self.COLORS['DIM']}{time_str}{reset} {color}{symbol}{reset} {record.getMessage()}"
        else:
            formatted = f"{time_str} {symbol} {levelname:8} {record.getMessage()}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def setup_logging(debug=False):
    """Set up logging with pretty formatting."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(PrettyFormatter(use_colors=True, use_symbols=True))

    if debug:
        root_logger.setLevel(logging.DEBUG)
        console_handler.setLevel(logging.DEBUG)
    else:
        root_logger.setLevel(logging.INFO)
        console_handler.setLevel(logging.INFO)
        # Suppress some noisy loggers
        for noisy in ('urllib3', 'qbittorrentapi', 'transmission_rpc', 'uvicorn.access'):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.addHandler(console_handler)


# Set up module logger
logger = logging.getLogger(__name__)


def build_parser(defaults: RuntimeConfig) -> argparse.ArgumentParser:
    """Command line flags; defaults come from the environment."""
    parser = argparse.ArgumentParser(
        prog="torrent-retention",
        description="Delete torrents that have seeded long enough from Transmission and qBittorrent.",
    )
    parser.add_argument("config", nargs="?", default=defaults.config_path,
                        help=f"Rules file to load (default: {defaults.config_path})")
    parser.add_argument("-f", "--take-action", action="store_true", default=defaults.take_action,
                        help="Actually remove matched torrents (default: dry run)")
    parser.add_argument("--metrics-listen-addr", "--prometheus-listen-addr",
                        dest="metrics_listen_addr", default=defaults.metrics_listen_addr,
                        metavar="HOST:PORT", help="Serve Prometheus metrics on this address")
    parser.add_argument("--debug", action="store_true", default=defaults.debug,
                        help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def build_metrics_server(addr: str, app_state: AppState, metrics: Metrics) -> uvicorn.Server:
    """Create (but do not start) the HTTP server for metrics and status."""
    host, port = parse_listen_addr(addr)
    app = create_app(app_state, metrics)
    return uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    runtime = RuntimeConfig.from_environment()
    args = build_parser(runtime).parse_args(argv)
    runtime.config_path = args.config
    runtime.take_action = args.take_action
    runtime.metrics_listen_addr = args.metrics_listen_addr
    runtime.debug = args.debug

    setup_logging(debug=runtime.debug)

    try:
        instances = load_instances(runtime.config_path)
    except (ConfigError, InvalidPolicyError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    if not instances:
        logger.error(f"No instances configured in {runtime.config_path}")
        return 2

    logger.info(f"torrent-retention {__version__}")
    logger.info(f"Mode: {'Taking action' if runtime.take_action else 'Dry run'}")

    metrics = Metrics()
    app_state = AppState(take_action=runtime.take_action)
    notifier = Notifier(runtime.notify)

    pollers = [
        InstancePoller(
            instance,
            repository_for(instance.connection),
            metrics,
            take_action=runtime.take_action,
            notifier=notifier,
            app_state=app_state,
        )
        for instance in instances
    ]

    metrics_server = None
    if runtime.metrics_listen_addr:
        try:
            metrics_server = build_metrics_server(runtime.metrics_listen_addr, app_state, metrics)
        except ConfigError as e:
            logger.error(f"Invalid configuration: {e}")
            return 2
        logger.info(f"Serving prometheus metrics on http://{runtime.metrics_listen_addr}/metrics")

    supervisor = Supervisor(pollers, metrics_server)
    try:
        supervisor.run()
    except TaskExitedError as e:
        logger.critical(str(e), exc_info=e.__cause__ is not None)
        return 1
    except KeyboardInterrupt:
        logger.info("Shutdown requested - goodbye! 👋")
        supervisor.stop()
        return 0
    return 0


if __name__ == "__main__":
    sys.exit(main())
