"""Internet reachability probing."""
import asyncio
import logging
from typing import Callable, Optional

import requests

from reroute import config
from reroute.state import ConnectivityStatus

logger = logging.getLogger(__name__)


def probe_internet(url: str = config.WAN_PROBE_URL,
                   timeout: float = config.WAN_PROBE_TIMEOUT,
                   expected_status: int = config.WAN_EXPECTED_STATUS) -> bool:
    """True only if the endpoint answers with exactly the expected status.

    A captive portal or an intercepting proxy answers with something else,
    so anything but the expected code counts as offline.
    """
    try:
        response = requests.get(
            url, timeout=timeout, allow_redirects=False, headers={'Cache-Control': 'no-cache'}
        )
    except requests.exceptions.RequestException as e:
        logger.debug("Internet probe failed: %s", e)
        return False
    return response.status_code == expected_status


class ConnectivityMonitor:
    """Polls the internet probe and reports Online/Offline changes only."""

    def __init__(self, on_change: Callable[[ConnectivityStatus], None],
                 interval: float = config.CONNECTIVITY_INTERVAL,
                 probe: Optional[Callable[[], bool]] = None):
        self.on_change = on_change
        self.interval = interval
        self.probe = probe or (lambda: probe_internet(config.CONNECTIVITY_PROBE_URL, config.CONNECTIVITY_TIMEOUT))
        self.status: Optional[ConnectivityStatus] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check_once(self) -> ConnectivityStatus:
        ok = await asyncio.to_thread(self.probe)
        status = ConnectivityStatus.ONLINE if ok else ConnectivityStatus.OFFLINE
        if status != self.status:
            self.status = status
            logger.info("Internet is %s", status.value)
            self.on_change(status)
        return status

    async def _run(self):
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            await self.check_once()
            # Fixed period: a slow check eats into the wait, it does not extend it.
            await asyncio.sleep(max(0.0, self.interval - (loop.time() - started)))

    def start(self):
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None
