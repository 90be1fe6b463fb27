#!/usr/bin/env python3
"""Main entry point for StackSave."""
import logging

from stacksave.config import SERVER_HOST, SERVER_PORT, LOG_LEVEL

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format='[%(asctime)s.%(msecs)03d] [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger("stacksave")

from stacksave.extensions import create_app  # noqa: E402

app = create_app()


def main():
    logger.info(f"Starting StackSave API on http://{SERVER_HOST}:{SERVER_PORT}")
    app.run(host=SERVER_HOST, port=SERVER_PORT, threaded=True)


if __name__ == '__main__':
    main()
