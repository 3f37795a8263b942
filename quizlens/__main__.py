#!/usr/bin/env python3
"""QuizLens entry point: python -m quizlens"""
import sys
import asyncio
import logging
import argparse

from .core.overlay_service import OverlayService
from .socketio_server.server import OverlayServer
from .utils.config_loader import config as config_manager
from .utils.log_config import set_log_level


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="QuizLens screen quiz answering overlay server")
    parser.add_argument('--host', type=str, default=config_manager.get('server', 'host', default='0.0.0.0'),
                        help='Host IP address to bind the overlay server to.')
    parser.add_argument('--port', type=int, default=config_manager.get('server', 'port', default=5348),
                        help='Port number to bind the overlay server to.')
    parser.add_argument('--no-stream', action='store_true',
                        help='Use single-shot answers instead of streaming.')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    return parser.parse_args(argv)


async def run(args) -> None:
    service = OverlayService(streaming=False if args.no_stream else None)
    server = OverlayServer(service)
    await server.start(args.host, args.port)
    try:
        await server.wait_closed()
    finally:
        await server.stop()


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    set_log_level("DEBUG" if args.debug else config_manager.get('logging', 'level', 'INFO'))
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format=config_manager.get('logging', 'format'))

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logging.info("QuizLens stopped by user (KeyboardInterrupt).")
    except Exception as e:
        logging.critical(f"QuizLens encountered critical error: {e}", exc_info=True)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
