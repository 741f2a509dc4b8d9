"""ReRoute - reboot a home router through its web UI and wait for the internet to come back."""

from reroute.client import RouterSessionClient
from reroute.config import Settings
from reroute.connectivity import ConnectivityMonitor
from reroute.estimator import DurationEstimator
from reroute.orchestrator import RebootOrchestrator
from reroute.state import ConnectivityStatus, MonitorResult, Operation, OperationKind, ProgressState

__version__ = '0.3.0'

__all__ = [
    'ConnectivityMonitor',
    'ConnectivityStatus',
    'DurationEstimator',
    'MonitorResult',
    'Operation',
    'OperationKind',
    'ProgressState',
    'RebootOrchestrator',
    'RouterSessionClient',
    'Settings',
]
