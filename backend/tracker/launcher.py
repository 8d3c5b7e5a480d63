from __future__ import annotations

import logging

import uvicorn

from tracker.config import load_config
from tracker.main import CONFIG_PATH, access_urls, guess_lan_ip

logger = logging.getLogger(__name__)


def main() -> None:
    config = load_config(CONFIG_PATH)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    urls = access_urls(guess_lan_ip(), config.port)
    logger.info("D&D Combat Tracker sync server")
    logger.info("DM access (full control): %s", urls["dm"])
    logger.info("Player access: %s", urls["player"])
    logger.info("All devices must be on the same network")
    uvicorn.run("tracker.main:app", host=config.host, port=config.port, reload=False)


if __name__ == "__main__":
    main()
