"""
Gmail reader – finds candidate approval emails and fetches their bodies.

  * ``discover_message_ids`` pages through ``users.messages.list`` (500 ids
    per page), drops ids already logged, and stops at the hard cap or when
    the continuation token runs out.  Ids come back newest-first, as Gmail
    returns them.
  * ``GmailSource`` is the API-backed mail source; network and auth faults
    surface as SourceFetchError so one bad message never stops a batch.
  * Body helpers locate the text/html part and base64url-decode it in the
    part's declared charset.
"""

import asyncio
import base64
import binascii
import codecs
import logging
from datetime import datetime, timezone
from email.message import Message
from email.utils import parsedate_to_datetime

import google_auth_httplib2
import httplib2
from google.auth import exceptions as auth_exceptions
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from poa_sync.api_shapes import MessageListResponse, MessageResponse, validate
from poa_sync.errors import SourceFetchError
from poa_sync.utils import native_message

log = logging.getLogger(__name__)

PAGE_SIZE = 500
MAX_MESSAGES = 1000

# Raised by the transport below googleapiclient: sockets, DNS, token refresh
TRANSPORT_ERRORS = (
    OSError,
    httplib2.HttpLib2Error,
    auth_exceptions.TransportError,
    auth_exceptions.RefreshError,
)


# ------------------------------------------------------------------
# Mail source
# ------------------------------------------------------------------
class MailSource:
    async def query(self, q: str, page_size: int, page_token: str | None = None) -> MessageListResponse:
        raise NotImplementedError

    async def get(self, message_id: str) -> MessageResponse:
        raise NotImplementedError


class GmailSource(MailSource):
    def __init__(self, service, user_id="me", http_factory=None):
        self.service = service
        self.user_id = user_id
        self._http_factory = http_factory

    @classmethod
    def from_credentials(cls, creds, user_id="me"):
        service = build("gmail", "v1", credentials=creds, cache_discovery=False)
        return cls(
            service, user_id=user_id,
            http_factory=lambda: google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http()),
        )

    def _execute_sync(self, request):
        if self._http_factory is None:
            return request.execute()
        return request.execute(http=self._http_factory())

    async def query(self, q, page_size, page_token=None):
        kwargs = {"userId": self.user_id, "q": q, "maxResults": page_size}
        if page_token:
            kwargs["pageToken"] = page_token
        request = self.service.users().messages().list(**kwargs)
        try:
            raw = await asyncio.to_thread(self._execute_sync, request)
        except HttpError as exc:
            raise SourceFetchError(native_message(exc)) from exc
        except TRANSPORT_ERRORS as exc:
            log.warning("Gmail transport failure: %s", exc)
            raise SourceFetchError(str(exc) or type(exc).__name__) from exc
        return validate(MessageListResponse, raw, "messages.list")

    async def get(self, message_id):
        request = self.service.users().messages().get(userId=self.user_id, id=message_id, format="full")
        try:
            raw = await asyncio.to_thread(self._execute_sync, request)
        except HttpError as exc:
            raise SourceFetchError(native_message(exc)) from exc
        except TRANSPORT_ERRORS as exc:
            log.warning("Gmail transport failure: %s", exc)
            raise SourceFetchError(str(exc) or type(exc).__name__) from exc
        return validate(MessageResponse, raw, "messages.get")


# ------------------------------------------------------------------
# Discovery
# ------------------------------------------------------------------
async def discover_message_ids(source, query, seen_ids=frozenset(), page_size=PAGE_SIZE,
                               max_messages=MAX_MESSAGES, status=None) -> list[str]:
    """Return unseen candidate ids, newest-first, capped at *max_messages*."""
    status = status or (lambda msg: None)
    found: list[str] = []
    page_token = None
    pages = 0
    log.debug("Gmail query: %s", query)
    while True:
        page = await source.query(query, page_size, page_token)
        pages += 1
        fresh = [m.id for m in page.messages if m.id not in seen_ids]
        found.extend(fresh)
        log.debug("Page %d: %d ids, %d unseen", pages, len(page.messages), len(fresh))
        status(f"Fetched {len(found)} candidate emails...")
        if len(found) >= max_messages:
            status(f"Reached max limit of {max_messages} emails; stopping pagination.")
            found = found[:max_messages]
            break
        page_token = page.next_page_token
        if not page_token:
            break
    log.info("Discovered %d candidate emails over %d pages", len(found), pages)
    return found


# ------------------------------------------------------------------
# Body helpers
# ------------------------------------------------------------------
def part_charset(part) -> str:
    """Charset declared in the part's Content-Type header, else utf-8."""
    for h in part.headers:
        if h.name.lower() == "content-type":
            msg = Message()
            msg["Content-Type"] = h.value
            return msg.get_content_charset("utf-8")
    return "utf-8"


def decode_base64url(data: str | None, charset: str = "utf-8") -> str:
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as exc:
        log.debug("Body decode failed: %s", exc)
        return ""
    try:
        codecs.lookup(charset)
    except LookupError:
        log.debug("Unknown charset %r, decoding as utf-8", charset)
        charset = "utf-8"
    return raw.decode(charset, errors="replace")


def find_html_body(payload) -> str:
    """text/html body of *payload*: the top-level part first, then depth-first."""
    if payload.mime_type == "text/html" and payload.body.data:
        return decode_base64url(payload.body.data, part_charset(payload))
    for part in payload.parts:
        found = find_html_body(part)
        if found:
            return found
    return ""


def subject_of(message: MessageResponse) -> str:
    return message.header("subject") or "No Subject"


def sent_date_of(message: MessageResponse) -> datetime | None:
    if message.internal_date and message.internal_date.isdigit():
        return datetime.fromtimestamp(int(message.internal_date) / 1000, tz=timezone.utc)
    raw = message.header("date")
    if raw:
        try:
            return parsedate_to_datetime(raw)
        except (TypeError, ValueError):
            return None
    return None
