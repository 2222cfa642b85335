"""
auth/oauth.py -- OAuth provider metadata and post-sign-in redirect helpers.

The handshake itself (authorization redirect, PKCE code exchange) is done by
the hosted identity provider through auth.verifier. This module only decides
which providers to offer and where the browser lands afterwards.

Security notes:
  [C2] Post-sign-in redirect targets. A caller-supplied ?next= value is only
       honored when it is a server-relative path ("/dashboard"). It is
       joined onto DEFAULT_REDIRECT_URL, so the browser can never be sent to
       a foreign origin with fresh tokens attached.

  Tokens travel in the URL fragment (#access_token=...). Fragments are not
  sent to servers or written to access logs; the front end reads them from
  window.location.hash.

Layer rule: no imports from api/ or uploads/. Import from core/ is allowed.
"""

from __future__ import annotations

from urllib.parse import urlencode, urljoin

from auth.models import AuthSession
from core.config import Settings

# Display labels for providers the hosted platform supports. Anything not
# listed falls back to a title-cased provider name.
_PROVIDER_LABELS = {
    "apple": "Apple",
    "azure": "Microsoft",
    "bitbucket": "Bitbucket",
    "discord": "Discord",
    "facebook": "Facebook",
    "github": "GitHub",
    "gitlab": "GitLab",
    "google": "Google",
    "slack": "Slack",
}


def get_enabled_providers(settings: Settings) -> list[dict]:
    """Return [{"name": str, "label": str}] for every configured provider."""
    return [{"name": name, "label": _PROVIDER_LABELS.get(name, name.title())} for name in settings.oauth_providers]


def is_enabled_provider(settings: Settings, provider: str) -> bool:
    return provider in settings.oauth_providers


def safe_redirect_target(settings: Settings, next_path: str | None) -> str:
    """Resolve the post-sign-in landing URL [C2].

    Only relative paths are accepted; "//host" is protocol-relative and
    rejected along with absolute URLs.
    """
    if next_path and next_path.startswith("/") and not next_path.startswith("//"):
        return urljoin(settings.default_redirect_url, next_path)
    return settings.default_redirect_url


def build_session_redirect(target: str, session: AuthSession) -> str:
    """Append the issued tokens to the landing URL as a fragment."""
    fragment = urlencode(
        {
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "expires_in": session.expires_in,
            "token_type": session.token_type,
        }
    )
    base = target.split("#", 1)[0]
    return f"{base}#{fragment}"


def build_error_redirect(settings: Settings, code: str) -> str:
    base = settings.default_redirect_url.split("#", 1)[0]
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urlencode({'error': code})}"
