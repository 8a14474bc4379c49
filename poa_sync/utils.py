"""
Utility functions: .env loading, Google credential resolution, and
HttpError helpers shared by the Gmail and Sheets adapters.
"""

import json
import logging
import os
import tempfile

import google_auth_httplib2
import httplib2
from dotenv import load_dotenv
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials as UserCredentials

from poa_sync.errors import ConfigError

SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
GMAIL_SCOPE = "https://www.googleapis.com/auth/gmail.readonly"

_log = logging.getLogger(__name__)


def load_env():
    """Load .env from project root and return os.environ as a dict."""
    env_path = os.path.join(os.path.dirname(__file__), '..', '.env')
    load_dotenv(env_path)
    return dict(os.environ)


# ---------------------------------------------------------------------------
# HttpError helpers
# ---------------------------------------------------------------------------

def native_message(exc) -> str:
    """The API's own error text for an HttpError."""
    reason = getattr(exc, "reason", None)
    return str(reason) if reason else str(exc)


def http_status(exc):
    resp = getattr(exc, "resp", None)
    return getattr(resp, "status", None)


# ---------------------------------------------------------------------------
# Google credential resolver
# ---------------------------------------------------------------------------

def resolve_google_creds_path(env=None):
    """Return a filesystem path to the Google service-account JSON.

    Checks (in order):
      1. ``GOOGLE_SERVICE_ACCOUNT_JSON_PATH`` / ``GOOGLE_CREDS_PATH`` env var
         pointing to an existing file  →  return that path directly.
      2. ``GOOGLE_SERVICE_ACCOUNT_JSON`` env var containing the raw JSON
         string  →  write it to a temp file and return the temp path.

    Returns ``None`` if no service-account credentials are available.
    """
    if env is None:
        env = os.environ

    for key in ("GOOGLE_SERVICE_ACCOUNT_JSON_PATH", "GOOGLE_CREDS_PATH"):
        path = env.get(key)
        if path and os.path.isfile(path):
            _log.info("Google creds: using file %s (from %s)", path, key)
            return path

    raw_json = env.get("GOOGLE_SERVICE_ACCOUNT_JSON")
    if raw_json:
        try:
            json.loads(raw_json)
        except json.JSONDecodeError:
            _log.warning("GOOGLE_SERVICE_ACCOUNT_JSON is set but is not valid JSON")
            return None
        tmp = tempfile.NamedTemporaryFile(
            mode="w", suffix=".json", prefix="gcp_sa_", delete=False
        )
        tmp.write(raw_json)
        tmp.close()
        _log.info("Google creds: wrote inline JSON to %s", tmp.name)
        return tmp.name

    return None


def build_credentials(env=None):
    """Return ``(sheets_creds, gmail_creds)``.

    A service account covers Sheets directly; Gmail needs domain-wide
    delegation to ``GMAIL_DELEGATED_USER``.  Without a service account an
    authorized-user token file (``GOOGLE_OAUTH_TOKEN_PATH``) is used for
    both.
    """
    if env is None:
        env = os.environ

    sa_path = resolve_google_creds_path(env)
    if sa_path:
        scopes = [SHEETS_SCOPE, GMAIL_SCOPE]
        base = service_account.Credentials.from_service_account_file(sa_path, scopes=scopes)
        delegated = env.get("GMAIL_DELEGATED_USER")
        if not delegated:
            _log.warning("GMAIL_DELEGATED_USER not set; Gmail calls run as the service account")
            return base, base
        return base, base.with_subject(delegated)

    token_path = env.get("GOOGLE_OAUTH_TOKEN_PATH")
    if token_path and os.path.isfile(token_path):
        creds = UserCredentials.from_authorized_user_file(token_path, [SHEETS_SCOPE, GMAIL_SCOPE])
        if creds.expired and creds.refresh_token:
            _log.info("Refreshing expired OAuth token from %s", token_path)
            creds.refresh(google_auth_httplib2.Request(httplib2.Http()))
        return creds, creds

    raise ConfigError(
        "No Google credentials found: set GOOGLE_SERVICE_ACCOUNT_JSON_PATH, "
        "GOOGLE_SERVICE_ACCOUNT_JSON or GOOGLE_OAUTH_TOKEN_PATH"
    )
