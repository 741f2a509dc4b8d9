"""Router connection settings and fixed protocol constants."""
import os
from dataclasses import dataclass

# Router Configuration Defaults
DEFAULT_ROUTER_HOST = '192.168.1.1'
DEFAULT_USERNAME = 'admin'
DEFAULT_PASSWORD = 'admin'

# Wire protocol (fixed by the firmware)
LOGIN_PAGE_PATH = '/'
LOGIN_PATH = '/postlogin.cgi'
REBOOT_PATH = '/rebootinfo.cgi'
FALLBACK_TRIGGER_PATH = '/reboot.cgi'
AUTH_CANDIDATE_PAGES = (
    '/securite-pb1-motdepasse.html',
    '/securite.html',
    '/wifi.html',
    '/reseau.html',
    '/telephonie.html',
    '/config.html',
)
USER_AGENT = 'ReRoute'

# Per-call timeouts (seconds)
LOGIN_PAGE_TIMEOUT = 8
LOGIN_TIMEOUT = 12
AUTH_PAGE_TIMEOUT = 8
REBOOT_TIMEOUT = 15
TRIGGER_TIMEOUT = 3
ROUTER_PROBE_TIMEOUT = 1.2

# Internet probe: online only on this exact status
WAN_PROBE_URL = 'http://clients3.google.com/generate_204'
CONNECTIVITY_PROBE_URL = 'https://clients3.google.com/generate_204'
WAN_EXPECTED_STATUS = 204
WAN_PROBE_TIMEOUT = 3
CONNECTIVITY_INTERVAL = 2.0
CONNECTIVITY_TIMEOUT = 2.5

# Workflow timing (seconds)
GRACE_SECONDS = 5
MONITOR_POLL_INTERVAL = 1.5
MONITOR_BUDGET_SECONDS = 240.0
PROGRESS_TICK = 0.25
PROGRESS_RESET_DELAY = 5.0

# Duration model
DEFAULT_ESTIMATE_SECONDS = 107.0
MIN_ESTIMATE_SECONDS = 30.0
MAX_ESTIMATE_SECONDS = 240.0
EMA_ALPHA = 0.20


def cache_dir() -> str:
    """Directory holding the run log and the learned duration estimate."""
    base = os.environ.get('XDG_CACHE_HOME') or os.path.join(os.path.expanduser('~'), '.cache')
    return os.path.join(base, 'reroute')


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ['1', 'true', 'yes', 'y', 'on']


@dataclass
class Settings:
    router_host: str = DEFAULT_ROUTER_HOST
    username: str = DEFAULT_USERNAME
    password: str = DEFAULT_PASSWORD
    ask_confirm_before_reboot: bool = True
    notify_on_recovery: bool = True

    @classmethod
    def from_env(cls) -> 'Settings':
        """Build settings from REROUTE_* environment variables, falling back to defaults."""
        return cls(
            router_host=os.environ.get('REROUTE_ROUTER_HOST', DEFAULT_ROUTER_HOST),
            username=os.environ.get('REROUTE_USERNAME', DEFAULT_USERNAME),
            password=os.environ.get('REROUTE_PASSWORD', DEFAULT_PASSWORD),
            ask_confirm_before_reboot=_env_flag('REROUTE_ASK_CONFIRM', True),
            notify_on_recovery=_env_flag('REROUTE_NOTIFY_ON_RECOVERY', True),
        )
