"""Append-only run log the user can tail while a reboot is in progress."""
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from reroute import config

logger = logging.getLogger('reroute.run')


class RunLog:
    def __init__(self, path: Optional[str] = None):
        self.path = path or os.path.join(config.cache_dir(), 'run.log')
        try:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
            open(self.path, 'a', encoding='utf-8').close()
        except OSError as e:
            logger.warning("Run log unavailable at %s: %s", self.path, e)

    def write(self, line: str):
        stamp = datetime.now(timezone.utc).isoformat(timespec='seconds')
        logger.debug(line)
        try:
            with open(self.path, 'a', encoding='utf-8') as fh:
                fh.write(f"{stamp} {line}\n")
        except OSError as e:
            logger.warning("Failed to write run log: %s", e)
