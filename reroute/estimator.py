"""Learned estimate of how long a full reboot takes."""
import json
import logging
import os
from typing import Optional

from reroute import config

logger = logging.getLogger(__name__)


def clamp_seconds(value: float) -> float:
    return max(config.MIN_ESTIMATE_SECONDS, min(config.MAX_ESTIMATE_SECONDS, value))


class DurationEstimator:
    """Exponential moving average over measured reboot durations.

    The value lives in a small JSON file so the next run starts from what
    the last successful reboots took. Reads and writes are clamped to
    [MIN_ESTIMATE_SECONDS, MAX_ESTIMATE_SECONDS].
    """

    KEY = 'reboot_ema_seconds'

    def __init__(self, path: Optional[str] = None, alpha: float = config.EMA_ALPHA,
                 default: float = config.DEFAULT_ESTIMATE_SECONDS):
        self.path = path or os.path.join(config.cache_dir(), 'estimate.json')
        self.alpha = alpha
        self.default = default
        self._value = self._load()

    @property
    def seconds(self) -> float:
        return clamp_seconds(self._value)

    def _load(self) -> float:
        try:
            with open(self.path, encoding='utf-8') as fh:
                value = float(json.load(fh)[self.KEY])
        except FileNotFoundError:
            return self.default
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable duration estimate at %s: %s", self.path, e)
            return self.default
        return clamp_seconds(value) if value > 0 else self.default

    def _save(self, value: float):
        try:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as fh:
                json.dump({self.KEY: value}, fh)
        except OSError as e:
            logger.warning("Could not persist duration estimate to %s: %s", self.path, e)

    def update(self, measured: float) -> float:
        """Fold one measured duration into the estimate and persist it."""
        previous = self.seconds
        next_value = clamp_seconds(self.alpha * clamp_seconds(measured) + (1.0 - self.alpha) * previous)
        self._value = next_value
        self._save(next_value)
        logger.debug("Duration estimate %.1fs -> %.1fs (measured %.1fs)", previous, next_value, measured)
        return next_value
