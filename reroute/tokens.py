"""Session key extraction from router pages and URLs."""
import re
from typing import Optional

# var sessionkey = '760547835';  (the "var" keyword is optional)
VAR_SESSION_KEY = re.compile(r'''(?:var\s+)?\bsessionkey\s*=\s*['"]([0-9]+)['"]''', re.IGNORECASE)

# sessionKey=2086302005
SESSION_KEY_PARAM = re.compile(r'sessionKey=([0-9]+)(?![0-9A-Za-z_])', re.IGNORECASE)

# <input type="hidden" name="sessionKey" value="123">
HIDDEN_INPUT_SESSION_KEY = re.compile(
    r'''name=["']sessionKey["'][^>]*value=["']?([0-9]+)(?![0-9A-Za-z_])''', re.IGNORECASE
)


def _first_match(pattern: re.Pattern, text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    match = pattern.search(text)
    return match.group(1) if match else None


def extract_var_session_key(html: str) -> Optional[str]:
    return _first_match(VAR_SESSION_KEY, html)


def extract_session_key_param(text: str) -> Optional[str]:
    return _first_match(SESSION_KEY_PARAM, text)


def extract_hidden_input_session_key(html: str) -> Optional[str]:
    return _first_match(HIDDEN_INPUT_SESSION_KEY, html)


def extract_from_page(html: str, final_url: str = '') -> Optional[str]:
    """Try every rule against one fetched page, in priority order.

    The page-scoped variable wins, then a sessionKey on the final
    (post-redirect) URL, then a hidden form field. A bare sessionKey
    parameter inside the body is the last resort.
    """
    return (
        extract_var_session_key(html)
        or extract_session_key_param(final_url)
        or extract_hidden_input_session_key(html)
        or extract_session_key_param(html)
    )
