from __future__ import annotations

import asyncio
import time
from unittest.mock import MagicMock, patch

import pytest
import requests

from reroute import config
from reroute.connectivity import ConnectivityMonitor, probe_internet
from reroute.state import ConnectivityStatus
from tests.fakes import SequenceProbe


def test_probe_internet_requires_exact_status() -> None:
    with patch("reroute.connectivity.requests.get") as get:
        get.return_value = MagicMock(status_code=204)
        assert probe_internet() is True

        get.return_value = MagicMock(status_code=200)
        assert probe_internet() is False

        get.return_value = MagicMock(status_code=302)
        assert probe_internet() is False

    _, kwargs = get.call_args
    assert kwargs["allow_redirects"] is False


def test_probe_internet_transport_error_is_offline() -> None:
    with patch("reroute.connectivity.requests.get", side_effect=requests.exceptions.ConnectTimeout("slow")):
        assert probe_internet(timeout=0.1) is False


@pytest.mark.asyncio
async def test_check_once_emits_only_on_change() -> None:
    seen: list[ConnectivityStatus] = []
    monitor = ConnectivityMonitor(seen.append, probe=SequenceProbe([True, True, False, False, True]))

    for _ in range(5):
        await monitor.check_once()

    assert seen == [ConnectivityStatus.ONLINE, ConnectivityStatus.OFFLINE, ConnectivityStatus.ONLINE]
    assert monitor.status is ConnectivityStatus.ONLINE


@pytest.mark.asyncio
async def test_monitor_polls_until_stopped() -> None:
    seen: list[ConnectivityStatus] = []
    probe = SequenceProbe([False, False, False, True])
    monitor = ConnectivityMonitor(seen.append, interval=0.01, probe=probe)

    monitor.start()
    assert monitor.running
    for _ in range(200):
        if len(seen) == 2:
            break
        await asyncio.sleep(0.01)
    monitor.stop()

    assert not monitor.running
    assert seen == [ConnectivityStatus.OFFLINE, ConnectivityStatus.ONLINE]


def test_default_monitor_checks_the_connectivity_url() -> None:
    monitor = ConnectivityMonitor(lambda status: None)

    with patch("reroute.connectivity.requests.get") as get:
        get.return_value = MagicMock(status_code=204)
        assert monitor.probe() is True

    args, kwargs = get.call_args
    assert args == (config.CONNECTIVITY_PROBE_URL,)
    assert kwargs["timeout"] == config.CONNECTIVITY_TIMEOUT
    assert monitor.interval == config.CONNECTIVITY_INTERVAL


class _Stop(Exception):
    pass


@pytest.mark.asyncio
@pytest.mark.parametrize(("interval", "longest_wait"), [(0.2, 0.16), (0.01, 0.0)])
async def test_slow_check_does_not_stretch_the_period(monkeypatch, interval, longest_wait) -> None:
    waits: list[float] = []

    async def fake_sleep(delay: float) -> None:
        waits.append(delay)
        raise _Stop()

    def slow_check() -> bool:
        time.sleep(0.05)
        return True

    monitor = ConnectivityMonitor(lambda status: None, interval=interval, probe=slow_check)
    monkeypatch.setattr("reroute.connectivity.asyncio.sleep", fake_sleep)

    with pytest.raises(_Stop):
        await monitor._run()

    assert 0.0 <= waits[0] <= longest_wait
