"""Router web UI client: login, session key discovery and reboot."""
import logging
import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

import requests

from reroute import config
from reroute.errors import (
    AuthTokenNotFound,
    InvalidHost,
    LoginTokenNotFound,
    RebootRejected,
    TransportFailure,
)
from reroute.tokens import extract_from_page, extract_var_session_key

logger = logging.getLogger(__name__)

LOGIN_MARKERS = ('postlogin.cgi', 'loginusername', 'loginpassword', 'value="login"')

# reboot.cgi, /cgi-bin/reboot.cgi?x=1, http://host/reboot.cgi ...
TRIGGER_FRAGMENT = re.compile(r'''(?:https?://[^\s"'<>]+?/|/)?[\w./-]*reboot\.cgi[^\s"'<>]*''', re.IGNORECASE)


def normalize_host(host: str) -> str:
    """Accept "192.168.1.1" or a pasted "http://192.168.1.1/"; reject anything with a path."""
    h = (host or '').strip()
    for scheme in ('http://', 'https://'):
        if h.lower().startswith(scheme):
            h = h[len(scheme):]
            break
    h = h.strip('/')
    if not h or '/' in h or any(c.isspace() for c in h):
        raise InvalidHost(host)
    return h


def describe_request_error(e: Exception) -> str:
    return {
        requests.exceptions.Timeout: "Connection timeout",
        requests.exceptions.ConnectTimeout: "Connection timeout",
        requests.exceptions.ReadTimeout: "Connection timeout",
        requests.exceptions.ConnectionError: "Unable to connect",
    }.get(type(e), str(e))


def is_ok(response: requests.Response) -> bool:
    return 200 <= response.status_code < 400


def looks_like_login_page(html: str) -> bool:
    lower = html.lower()
    return any(marker in lower for marker in LOGIN_MARKERS)


def find_trigger_urls(html: str, base: str, token: str) -> List[str]:
    """Reboot trigger URLs mentioned in a page plus the fallback one, with the key appended.

    Only URLs on the router itself are kept; the key never leaves that host.
    """
    router = urlparse(base).netloc.lower()
    urls = []
    for fragment in TRIGGER_FRAGMENT.findall(html) + [config.FALLBACK_TRIGGER_PATH]:
        url = urljoin(base + '/', fragment)
        if urlparse(url).netloc.lower() != router:
            logger.debug("Ignoring trigger on another host: %s", url)
            continue
        if 'sessionkey=' not in url.lower():
            url += ('&' if '?' in url else '?') + f'sessionKey={token}'
        if url not in urls:
            urls.append(url)
    return urls


class RouterSessionClient:
    """Cookie-bearing session against one router's admin pages.

    One instance serves one reboot attempt; the orchestrator never runs two
    attempts at once so the cookie jar is never shared.
    """

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': config.USER_AGENT,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        })
        self.authenticated_page = config.AUTH_CANDIDATE_PAGES[0]

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise TransportFailure(f"{method} {url}: {describe_request_error(e)}") from e

    def fetch_login_token(self, host: str) -> str:
        host = normalize_host(host)
        response = self._request(
            'GET', f'http://{host}{config.LOGIN_PAGE_PATH}', timeout=config.LOGIN_PAGE_TIMEOUT
        )
        if not is_ok(response):
            raise TransportFailure(f"login page returned HTTP {response.status_code}")

        token = extract_var_session_key(response.text)
        if token is None:
            raise LoginTokenNotFound()
        return token

    def login(self, host: str, token: str, username: str, password: str):
        """Submit credentials. A 200 here does not mean the login worked."""
        host = normalize_host(host)
        base = f'http://{host}'
        response = self._request(
            'POST',
            f'{base}{config.LOGIN_PATH}',
            params={'sessionKey': token},
            data={'sessionKey': token, 'loginUsername': username, 'loginPassword': password},
            headers={'Origin': base, 'Referer': f'{base}/'},
            timeout=config.LOGIN_TIMEOUT,
        )
        if not is_ok(response):
            raise TransportFailure(f"postlogin.cgi returned HTTP {response.status_code}")

    def fetch_authenticated_token(self, host: str) -> str:
        host = normalize_host(host)
        for page in config.AUTH_CANDIDATE_PAGES:
            try:
                response = self.session.get(f'http://{host}{page}', timeout=config.AUTH_PAGE_TIMEOUT)
            except requests.exceptions.RequestException as e:
                logger.debug("Skipping %s: %s", page, describe_request_error(e))
                continue
            if not is_ok(response):
                logger.debug("Skipping %s: HTTP %s", page, response.status_code)
                continue

            token = extract_from_page(response.text, response.url or '')
            if token:
                self.authenticated_page = page
                return token

        raise AuthTokenNotFound()

    def reboot(self, host: str, token: str):
        """Submit the reboot, then fire the best-effort trigger URLs."""
        self.fire_triggers(host, self.submit_reboot(host, token))

    def submit_reboot(self, host: str, token: str) -> List[str]:
        """POST rebootinfo.cgi; returns the trigger URLs to follow up with once accepted."""
        host = normalize_host(host)
        base = f'http://{host}'
        response = self._request(
            'POST',
            f'{base}{config.REBOOT_PATH}',
            params={'sessionKey': token},
            data={'sessionKey': token},
            headers={'Origin': base, 'Referer': f'{base}{self.authenticated_page}'},
            timeout=config.REBOOT_TIMEOUT,
        )

        # An unauthenticated session gets the login form back, still with a 200.
        html = response.text
        if looks_like_login_page(html):
            raise RebootRejected(html[:240])
        if not 200 <= response.status_code < 300:
            raise TransportFailure(f"rebootinfo.cgi returned HTTP {response.status_code}")

        return find_trigger_urls(html, base, token)

    def fire_triggers(self, host: str, urls: List[str]):
        referer = f'http://{normalize_host(host)}{config.REBOOT_PATH}'
        for url in urls:
            for method in ('POST', 'GET'):
                try:
                    response = self.session.request(
                        method, url, headers={'Referer': referer}, timeout=config.TRIGGER_TIMEOUT
                    )
                    logger.debug("Trigger %s %s -> HTTP %s", method, url, response.status_code)
                except requests.exceptions.RequestException as e:
                    logger.debug("Trigger %s %s failed: %s", method, url, describe_request_error(e))

    def probe_reachable(self, host: str, timeout: float = config.ROUTER_PROBE_TIMEOUT) -> bool:
        """True as soon as the router answers anything over HTTP."""
        try:
            host = normalize_host(host)
            self.session.get(f'http://{host}/', timeout=timeout)
        except (InvalidHost, requests.exceptions.RequestException):
            return False
        return True
