"""Main entry point for the bell service."""

import argparse
import os
import platform
import signal
import sys
import threading

from loguru import logger

from .compiler import ScheduleCompiler
from .config import ConfigError, load_settings
from .logging_config import setup_logging
from .models import ScheduleFileError
from .player import PlaybackEngine
from .scheduler import SchedulerManager


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Scheduled audio announcements")
    parser.add_argument("--dev", action="store_true", help="Human readable, colorized logs")
    parser.add_argument("--config", help="Path to bell.yml")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Run the service until SIGINT/SIGTERM. Returns the exit status."""
    from app import create_app
    from app.server import SHUTDOWN_GRACE, HttpServer

    args = parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        logger.critical("Could not load bell.yml configuration file: {}", e)
        return 1

    setup_logging(settings.log, dev=args.dev)

    logger.bind(
        python=platform.python_version(),
        cpus=os.cpu_count(),
        arch=platform.machine(),
    ).info("Starting bell")

    manager = SchedulerManager()
    player = PlaybackEngine(settings.sounds_dir)
    compiler = ScheduleCompiler(manager, player.play, settings.schedule_file)

    try:
        compiler.compile()
    except ScheduleFileError as e:
        logger.critical("Could not parse schedule: {}", e)
        return 1

    try:
        server = HttpServer(create_app(settings.web_dir), settings.host, settings.port)
    except OSError as e:
        logger.critical("Could not listen on {}: {}", settings.addr, e)
        manager.shutdown()
        return 1

    # Set up signal handlers
    stop = threading.Event()

    def signal_handler(signum, frame):
        """Handle shutdown signals."""
        stop.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    server.start()
    logger.info("bell started on {}", settings.addr)

    while not stop.wait(timeout=1.0):
        pass

    logger.info("Server stopped")
    drained = server.shutdown(SHUTDOWN_GRACE)

    logger.info("Closing")
    manager.shutdown()
    player.close()

    if not drained:
        logger.critical("Server shutdown failed: connections still open after {}s", SHUTDOWN_GRACE)
        return 1

    logger.info("Server shutdown gracefully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
