from __future__ import annotations

import asyncio
import threading
from unittest.mock import MagicMock

import pytest

from reroute import cli
from reroute.config import Settings
from reroute.connectivity import ConnectivityMonitor
from reroute.estimator import DurationEstimator
from reroute.orchestrator import RebootOrchestrator
from reroute.runlog import RunLog
from reroute.state import ConnectivityStatus, Operation
from tests.fakes import FakeClient


def test_build_settings_flags_override_environment(monkeypatch) -> None:
    monkeypatch.setenv("REROUTE_ROUTER_HOST", "10.0.0.1")
    monkeypatch.setenv("REROUTE_USERNAME", "root")
    monkeypatch.setenv("REROUTE_ASK_CONFIRM", "no")

    settings = cli.build_settings(cli.parse_args(["--host", "192.168.1.254", "--no-notify"]))

    assert settings.router_host == "192.168.1.254"
    assert settings.username == "root"
    assert settings.password == "admin"
    assert settings.ask_confirm_before_reboot is False
    assert settings.notify_on_recovery is False


def test_main_stops_when_not_confirmed(monkeypatch, capsys) -> None:
    monkeypatch.delenv("REROUTE_ASK_CONFIRM", raising=False)
    monkeypatch.setattr("builtins.input", lambda prompt: "no")
    run = MagicMock()
    monkeypatch.setattr(cli, "run", run)

    assert cli.main([]) == 0

    run.assert_not_called()
    assert "Reboot cancelled." in capsys.readouterr().out


def test_status_printer_reports_countdown_and_progress(capsys) -> None:
    orchestrator = MagicMock()
    orchestrator.internet_status = ConnectivityStatus.ONLINE
    orchestrator.operation = Operation.starting(3)
    orchestrator.starting_countdown = 3
    orchestrator.progress_fraction = 0.0
    printer = cli.StatusPrinter()

    printer(orchestrator)
    printer(orchestrator)
    orchestrator.operation = Operation.rebooting()
    orchestrator.starting_countdown = 0
    orchestrator.progress_fraction = 0.42
    orchestrator.eta_seconds.return_value = 61.0
    printer(orchestrator)

    out = capsys.readouterr().out
    assert out.count("Rebooting in 3s") == 1
    assert "42%" in out
    assert "~61s left" in out


def _use_fake_router(monkeypatch, tmp_path, client_factory, **options) -> None:
    def build(settings, **kwargs):
        return RebootOrchestrator(
            settings,
            client_factory=client_factory,
            estimator=DurationEstimator(path=str(tmp_path / "estimate.json")),
            run_log=RunLog(path=str(tmp_path / "run.log")),
            connectivity=ConnectivityMonitor(lambda status: None, probe=lambda: True),
            tick_seconds=0.05,
            poll_interval=0,
            **options,
            **kwargs,
        )

    monkeypatch.setattr(cli, "RebootOrchestrator", build)


@pytest.mark.asyncio
async def test_interrupt_during_countdown_cancels_the_reboot(monkeypatch, tmp_path, capsys) -> None:
    created: list[FakeClient] = []

    def factory() -> FakeClient:
        created.append(FakeClient())
        return created[-1]

    _use_fake_router(monkeypatch, tmp_path, factory)

    task = asyncio.create_task(cli.run(Settings(), debug=False))
    await asyncio.sleep(0.1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert created == []
    assert "Reboot cancelled." in capsys.readouterr().out
    log = (tmp_path / "run.log").read_text()
    assert "CANCEL requested by user" in log
    assert "CANCELLED\n" in log


@pytest.mark.asyncio
async def test_interrupt_after_commit_says_the_reboot_was_sent(monkeypatch, tmp_path, capsys) -> None:
    client = FakeClient()
    client.gate = threading.Event()
    _use_fake_router(monkeypatch, tmp_path, lambda: client, grace_seconds=0)

    task = asyncio.create_task(cli.run(Settings(), debug=False))
    try:
        for _ in range(200):
            if client.calls:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
    finally:
        client.gate.set()

    out = capsys.readouterr().out
    assert "Reboot already sent" in out
    assert "Reboot cancelled." not in out
