"""State types shared by the orchestrator and its observers."""
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional


class OperationKind(enum.Enum):
    IDLE = 'idle'
    STARTING = 'starting'
    REBOOTING = 'rebooting'
    FAILED = 'failed'


@dataclass(frozen=True)
class Operation:
    """Current reboot operation: a kind tag plus the data that kind carries."""
    kind: OperationKind = OperationKind.IDLE
    countdown: int = 0
    message: Optional[str] = None

    def __post_init__(self):
        if self.countdown < 0:
            raise ValueError(f"countdown must be >= 0, got {self.countdown}")
        if self.countdown and self.kind is not OperationKind.STARTING:
            raise ValueError(f"{self.kind.name} carries no countdown")
        if self.kind is OperationKind.FAILED:
            if self.message is None:
                raise ValueError("FAILED needs a message")
        elif self.message is not None:
            raise ValueError(f"{self.kind.name} carries no message")

    @classmethod
    def idle(cls) -> 'Operation':
        return cls(OperationKind.IDLE)

    @classmethod
    def starting(cls, countdown: int) -> 'Operation':
        return cls(OperationKind.STARTING, countdown=countdown)

    @classmethod
    def rebooting(cls) -> 'Operation':
        return cls(OperationKind.REBOOTING)

    @classmethod
    def failed(cls, message: str) -> 'Operation':
        return cls(OperationKind.FAILED, message=message)

    @property
    def is_busy(self) -> bool:
        return self.kind in (OperationKind.STARTING, OperationKind.REBOOTING)

    @property
    def label(self) -> str:
        return {
            OperationKind.IDLE: 'Idle',
            OperationKind.STARTING: 'Starting…',
            OperationKind.REBOOTING: 'Rebooting',
            OperationKind.FAILED: 'Failed',
        }[self.kind]


class ConnectivityStatus(enum.Enum):
    ONLINE = 'Online'
    OFFLINE = 'Offline'

    @property
    def is_online(self) -> bool:
        return self is ConnectivityStatus.ONLINE


@dataclass
class ProgressState:
    fraction: float = 0.0
    started_at: Optional[datetime] = None

    def reset(self):
        self.fraction = 0.0
        self.started_at = None


@dataclass
class MonitorResult:
    """Router and WAN transitions seen after the reboot was submitted.

    Flags only go from False to True. A "came back" flag needs the matching
    "went down" flag first.
    """
    router_went_down: bool = False
    router_came_back: bool = False
    wan_went_down: bool = False
    wan_came_back: bool = False

    def observe(self, router_ok: bool, wan_ok: bool) -> List[str]:
        """Fold one pair of probe results in; return the transitions it caused."""
        events = []
        if not self.router_went_down and not router_ok:
            self.router_went_down = True
            events.append('ROUTER_DOWN')
        if self.router_went_down and not self.router_came_back and router_ok:
            self.router_came_back = True
            events.append('ROUTER_UP')
        if not self.wan_went_down and not wan_ok:
            self.wan_went_down = True
            events.append('WAN_DOWN')
        if self.wan_went_down and not self.wan_came_back and wan_ok:
            self.wan_came_back = True
            events.append('WAN_UP')
        return events

    @property
    def confirmed(self) -> bool:
        return self.router_went_down and self.router_came_back and self.wan_came_back
