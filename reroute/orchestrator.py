"""Reboot workflow: grace period, login/reboot commit, recovery monitoring."""
import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional

from reroute import config
from reroute.client import RouterSessionClient
from reroute.connectivity import ConnectivityMonitor, probe_internet
from reroute.errors import MonitorTimeout
from reroute.estimator import DurationEstimator, clamp_seconds
from reroute.runlog import RunLog
from reroute.state import ConnectivityStatus, MonitorResult, Operation, OperationKind, ProgressState

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]


def estimate_progress(elapsed: float, estimate: float,
                      ceiling: float = config.MONITOR_BUDGET_SECONDS) -> float:
    """Map elapsed seconds since the reboot POST to a progress fraction.

    0 -> 0.95 linearly over the estimated duration, then 0.95 -> 0.99 over
    what is left of the ceiling. Never reaches 1.0; only a confirmed
    recovery does that.
    """
    total = clamp_seconds(estimate)
    if elapsed <= total:
        p = min(max(elapsed / total, 0.0), 1.0) * 0.95
    else:
        tail = max(1.0, ceiling - total)
        p = 0.95 + min(max((elapsed - total) / tail, 0.0), 1.0) * 0.04
    return min(max(p, 0.0), 0.99)


class RebootOrchestrator:
    """Owns the reboot state machine and everything observers read.

    All state lives on one asyncio event loop: public methods must be
    called from that loop, and the background tasks (workflow, progress,
    delayed reset, connectivity) only mutate state between awaits.

    States go IDLE -> STARTING -> REBOOTING -> IDLE or FAILED. STARTING
    can be cancelled by the user; REBOOTING cannot.
    """

    def __init__(self, settings: config.Settings,
                 client_factory: Callable[[], RouterSessionClient] = RouterSessionClient,
                 estimator: Optional[DurationEstimator] = None,
                 run_log: Optional[RunLog] = None,
                 notifier: Optional[Notifier] = None,
                 wan_probe: Callable[[], bool] = probe_internet,
                 connectivity: Optional[ConnectivityMonitor] = None,
                 debug_hook: Optional[Callable[[str], None]] = None,
                 grace_seconds: int = config.GRACE_SECONDS,
                 tick_seconds: float = 1.0,
                 poll_interval: float = config.MONITOR_POLL_INTERVAL,
                 monitor_budget: float = config.MONITOR_BUDGET_SECONDS,
                 progress_tick: float = config.PROGRESS_TICK,
                 reset_delay: float = config.PROGRESS_RESET_DELAY,
                 clock: Callable[[], float] = time.monotonic):
        self.settings = settings
        self.client_factory = client_factory
        self.estimator = estimator or DurationEstimator()
        self.run_log = run_log or RunLog()
        self.notifier = notifier
        self.wan_probe = wan_probe
        self.connectivity = connectivity or ConnectivityMonitor(self.set_internet_status)
        self.debug_hook = debug_hook
        self.grace_seconds = grace_seconds
        self.tick_seconds = tick_seconds
        self.poll_interval = poll_interval
        self.monitor_budget = monitor_budget
        self.progress_tick = progress_tick
        self.reset_delay = reset_delay
        self._clock = clock

        # Observable state
        self.internet_status = ConnectivityStatus.ONLINE
        self.operation = Operation.idle()
        self.progress = ProgressState()
        self.starting_countdown = 0
        self.last_update: Optional[datetime] = None
        self.last_reboot: Optional[datetime] = None
        self.last_success_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

        self._listeners: List[Callable[['RebootOrchestrator'], None]] = []
        self._workflow: Optional[asyncio.Task] = None
        self._progress_task: Optional[asyncio.Task] = None
        self._reset_task: Optional[asyncio.Task] = None
        self._submitted_at: Optional[float] = None
        self._cancelled_by_user: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Observers

    @property
    def progress_fraction(self) -> float:
        return self.progress.fraction

    @property
    def estimated_duration_seconds(self) -> float:
        return self.estimator.seconds

    @property
    def workflow(self) -> Optional[asyncio.Task]:
        return self._workflow

    def add_listener(self, callback: Callable[['RebootOrchestrator'], None]):
        self._listeners.append(callback)

    def _touch(self):
        self.last_update = datetime.now()
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:
                logger.exception("State listener failed")

    def set_internet_status(self, status: ConnectivityStatus):
        self.internet_status = status
        self._touch()

    def eta_seconds(self) -> Optional[float]:
        """Seconds left against the current estimate while a reboot is being monitored."""
        if self.operation.kind is not OperationKind.REBOOTING or self._submitted_at is None:
            return None
        return max(0.0, self.estimated_duration_seconds - (self._clock() - self._submitted_at))

    def diagnostics(self) -> str:
        last_reboot = self.last_reboot.isoformat(timespec='seconds') if self.last_reboot else 'n/a'
        return '\n'.join([
            f"Router host: {self.settings.router_host}",
            f"Internet: {self.internet_status.value}",
            f"Operation: {self.operation.label}",
            f"Progress: {round(self.progress.fraction * 100)}%",
            f"Last reboot: {last_reboot}",
            f"Error: {self.last_error or 'n/a'}",
        ])

    # ------------------------------------------------------------------
    # Commands

    def start(self):
        """Start ambient connectivity monitoring."""
        self.connectivity.start()

    def request_reboot(self, debug_mode: bool = False) -> bool:
        """Begin the grace period. Returns False (and does nothing) if already busy."""
        if self.operation.is_busy:
            logger.debug("Reboot request ignored: %s", self.operation.label)
            return False

        self._cancel_task(self._reset_task)
        self._reset_task = None
        self.last_error = None
        self.operation = Operation.starting(self.grace_seconds)
        self.starting_countdown = self.grace_seconds
        self.progress.reset()
        self._touch()

        if debug_mode and self.debug_hook is not None:
            try:
                self.debug_hook(self.run_log.path)
            except Exception as e:
                logger.warning("Debug hook failed: %s", e)

        self._workflow = asyncio.get_running_loop().create_task(self._run_reboot(debug_mode))
        return True

    def cancel(self) -> bool:
        """Abort during the grace period. Once rebooting, this is ignored."""
        if self.operation.kind is not OperationKind.STARTING:
            return False

        self.run_log.write("CANCEL requested by user")
        self._cancelled_by_user = self._workflow
        self._cancel_task(self._workflow)
        self._stop_progress()
        self._reset_to_idle()
        self.last_error = None
        self._touch()
        return True

    async def join(self):
        """Wait for the current workflow, however it ends."""
        if self._workflow is not None:
            await asyncio.wait({self._workflow})

    async def shutdown(self):
        self.connectivity.stop()
        tasks = [t for t in (self._workflow, self._progress_task, self._reset_task)
                 if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)

    # ------------------------------------------------------------------
    # Workflow

    async def _run_reboot(self, debug_mode: bool):
        client = None
        try:
            self.run_log.write(f"START (debug={debug_mode})")
            await self._grace_countdown()

            # Commit phase: from here on the user can no longer cancel.
            self.operation = Operation.rebooting()
            self.starting_countdown = 0
            self.progress.reset()
            self._touch()

            host = self.settings.router_host.strip()
            client = self.client_factory()

            self.run_log.write("GET / (login page)")
            login_token = await asyncio.to_thread(client.fetch_login_token, host)
            self.run_log.write(f"loginKey={login_token}")

            self.run_log.write("POST postlogin.cgi")
            await asyncio.to_thread(
                client.login, host, login_token, self.settings.username, self.settings.password
            )

            self.run_log.write("GET authenticated pages (auth key)")
            auth_token = await asyncio.to_thread(client.fetch_authenticated_token, host)
            self.run_log.write(f"authKey={auth_token}")

            self.run_log.write("POST rebootinfo.cgi")
            triggers = await asyncio.to_thread(client.submit_reboot, host, auth_token)

            # The reboot is under way once rebootinfo.cgi is accepted.
            self._submitted_at = self._clock()
            self.progress.fraction = 0.0
            self.progress.started_at = datetime.now()
            self._touch()
            self._start_progress(self._submitted_at)

            await asyncio.to_thread(client.fire_triggers, host, triggers)

            self.run_log.write("monitoring router+wan")
            result = await self._monitor_recovery(client, host)

            measured = self._clock() - self._submitted_at
            self._stop_progress()
            estimate = self.estimator.update(measured)
            self.run_log.write(f"reboot took {measured:.1f}s, next estimate {estimate:.1f}s")

            now = datetime.now()
            self.progress.fraction = 1.0
            self.progress.started_at = None
            self.operation = Operation.idle()
            self.last_reboot = now
            self.last_success_at = now
            self.last_error = None
            self._touch()
            self._schedule_progress_reset()

            if self.settings.notify_on_recovery:
                self._notify(
                    "Internet is back",
                    f"Router and WAN confirmed up after {measured:.0f}s "
                    f"(routerUp={result.router_came_back}, wanUp={result.wan_came_back}).",
                )

        except asyncio.CancelledError:
            by_user = self._cancelled_by_user is asyncio.current_task()
            self.run_log.write("CANCELLED" if by_user else "CANCELLED (shutdown)")
            # A user cancel may already have started a newer attempt.
            if self._owns_state():
                self._stop_progress()
                self._reset_to_idle()
                self._touch()
            raise

        except Exception as e:
            message = str(e) or type(e).__name__
            self.run_log.write(f"ERROR: {message}")
            logger.error("Reboot failed: %s", message)
            self._stop_progress()
            self.operation = Operation.failed(message)
            self.last_error = message
            self.starting_countdown = 0
            self.progress.reset()
            self._touch()
            self._notify("Router reboot failed", message)

        finally:
            if self._owns_state():
                self._stop_progress()
                self._submitted_at = None
            if client is not None:
                client.close()

    async def _grace_countdown(self):
        for remaining in range(self.grace_seconds, 0, -1):
            await asyncio.sleep(self.tick_seconds)
            self.starting_countdown = remaining - 1
            self.operation = Operation.starting(remaining - 1)
            self._touch()

    async def _monitor_recovery(self, client: RouterSessionClient, host: str) -> MonitorResult:
        result = MonitorResult()
        deadline = self._clock() + self.monitor_budget
        attempt = 0

        while self._clock() < deadline:
            router_ok = await asyncio.to_thread(client.probe_reachable, host)
            wan_ok = await asyncio.to_thread(self.wan_probe)

            for event in result.observe(router_ok, wan_ok):
                self.run_log.write(f"{event} at i={attempt}")

            if result.confirmed:
                self.run_log.write("DONE (confirmed=true) routerDown=true routerUp=true wanUp=true")
                return result

            attempt += 1
            await asyncio.sleep(self.poll_interval)

        self.run_log.write("DONE (confirmed=false)")
        raise MonitorTimeout(self.monitor_budget)

    # ------------------------------------------------------------------
    # Progress

    def _start_progress(self, started: float):
        self._stop_progress()
        estimate = self.estimator.seconds
        self._progress_task = asyncio.get_running_loop().create_task(self._run_progress(started, estimate))

    async def _run_progress(self, started: float, estimate: float):
        while True:
            fraction = estimate_progress(self._clock() - started, estimate, self.monitor_budget)
            if self.operation.is_busy and fraction > self.progress.fraction:
                self.progress.fraction = fraction
                self._touch()
            await asyncio.sleep(self.progress_tick)

    def _stop_progress(self):
        self._cancel_task(self._progress_task)
        self._progress_task = None

    def _schedule_progress_reset(self):
        self._cancel_task(self._reset_task)
        self._reset_task = asyncio.get_running_loop().create_task(self._reset_progress_later())

    async def _reset_progress_later(self):
        await asyncio.sleep(self.reset_delay)
        if not self.operation.is_busy and self.progress.fraction >= 0.999:
            self.progress.reset()
            self._touch()

    # ------------------------------------------------------------------
    # Helpers

    def _owns_state(self) -> bool:
        return self._workflow is asyncio.current_task()

    def _reset_to_idle(self):
        self.operation = Operation.idle()
        self.starting_countdown = 0
        self.progress.reset()

    def _notify(self, title: str, body: str):
        if self.notifier is None:
            return
        try:
            self.notifier(title, body)
        except Exception as e:
            logger.warning("Notification failed: %s", e)

    @staticmethod
    def _cancel_task(task: Optional[asyncio.Task]):
        if task is not None and not task.done():
            task.cancel()
