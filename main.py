import logging

from mediafetch.app import start_api

logger = logging.getLogger("media_fetch")


if __name__ == "__main__":
    logger.info("Starting media fetch API server...")
    start_api()
