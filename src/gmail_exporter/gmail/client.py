"""Gmail API client implementation.

This module provides a client for the handful of Gmail operations the batch
operations need: search, fetch, import, label modification and delete.

Notes:
    The Google API client is synchronous and its ``httplib2`` transport is not
    thread-safe. Worker threads each get their own service object built from
    the shared OAuth credentials.
"""

from __future__ import annotations

import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Protocol

import structlog

from gmail_exporter.config import Settings
from gmail_exporter.exceptions import AuthenticationError, ConfigurationError, GmailAPIError
from gmail_exporter.gmail.parsing import encode_raw
from gmail_exporter.utils import retry_on_failure

logger = structlog.get_logger()

USER_ID = "me"
_TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


class MailClient(Protocol):
    """The subset of the Gmail API used by export, import and cleanup.

    Implementations must be safe to call from several worker threads at once.
    """

    def search(self, query: str, page_token: str | None = None) -> tuple[list[str], str | None]:
        """Return one page of matching message ids and the next page token."""
        ...

    def fetch(self, message_id: str, format: str = "full") -> dict[str, Any]:
        """Return a message resource in the requested Gmail format."""
        ...

    def import_message(self, raw: bytes, *, internal_date_source: str = "dateHeader") -> dict[str, Any]:
        """Insert an RFC 822 message into the mailbox without sending it."""
        ...

    def modify_labels(self, message_id: str, add: list[str], remove: list[str]) -> dict[str, Any]:
        """Add and remove label ids on a message."""
        ...

    def delete_message(self, message_id: str) -> None:
        """Permanently delete a message."""
        ...


def is_transient_error(exc: Exception) -> bool:
    """Whether a failed Gmail call is worth retrying."""

    from googleapiclient.errors import HttpError

    if isinstance(exc, HttpError):
        return exc.resp.status in _TRANSIENT_STATUSES
    return isinstance(exc, (ConnectionError, TimeoutError))


class GmailClient:
    """Gmail API client for export, import and cleanup operations.

    This client handles authentication and exposes the :class:`MailClient`
    operations over ``google-api-python-client``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        credentials_path: Path | None = None,
        token_path: Path | None = None,
        allow_interactive: bool = True,
    ) -> None:
        """Initialize Gmail client.

        Args:
            settings: Application settings. If None, uses default settings.
            credentials_path: Overrides ``settings.gmail_credentials_path``.
            token_path: Overrides ``settings.gmail_token_path``.
            allow_interactive: Start the browser OAuth flow when no valid token exists.
        """
        from gmail_exporter.config import get_settings

        self.settings = settings or get_settings()
        self.credentials_path = Path(credentials_path or self.settings.gmail_credentials_path)
        self.token_path = Path(token_path or self.settings.gmail_token_path)
        self.allow_interactive = allow_interactive
        self._credentials: Any | None = None
        self._local = threading.local()
        self._execute: Callable[[Any], Any] = retry_on_failure(
            max_retries=self.settings.max_retries,
            retry_if=is_transient_error,
        )(self._execute_once)
        logger.info("gmail_client_initialized", token_path=str(self.token_path))

    def authenticate(self) -> None:
        """Authenticate with Gmail API using OAuth2.

        Raises:
            ConfigurationError: If the client secrets file is missing.
            AuthenticationError: If authentication fails.
        """

        if self._credentials is not None:
            return

        if not self.credentials_path.exists():
            raise ConfigurationError(
                f"Gmail credentials file not found: {self.credentials_path}. "
                "Download an OAuth client secrets file from the Google Cloud console."
            )

        logger.info(
            "gmail_authentication_started",
            credentials_path=str(self.credentials_path),
            token_path=str(self.token_path),
            scopes=self.settings.gmail_scopes,
        )

        try:
            self._credentials = self._load_credentials()
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_authentication_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        logger.info("gmail_authentication_completed")

    def credential_status(self) -> dict[str, Any]:
        """Describe the stored token without contacting Google."""

        from google.oauth2.credentials import Credentials

        if not self.token_path.exists():
            return {"status": "missing", "token_path": str(self.token_path)}

        try:
            creds = Credentials.from_authorized_user_file(str(self.token_path), scopes=self.settings.gmail_scopes)
        except ValueError as exc:
            return {"status": "invalid", "token_path": str(self.token_path), "error": str(exc)}

        expiry: datetime | None = creds.expiry
        if expiry is not None and expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)

        if creds.valid:
            status = "valid"
        elif creds.expired and creds.refresh_token:
            status = "expired_refreshable"
        else:
            status = "invalid"

        return {"status": status, "token_path": str(self.token_path), "expiry": expiry}

    def search(self, query: str, page_token: str | None = None) -> tuple[list[str], str | None]:
        """List one page of message ids matching a Gmail query.

        Raises:
            GmailAPIError: If the API request fails.
        """

        service = self._service()
        logger.debug("listing_messages", query=query, page_token=page_token)
        request = service.users().messages().list(
            userId=USER_ID,
            q=query or None,
            pageToken=page_token,
            maxResults=self.settings.page_size,
        )
        response = self._call("list_messages", request)
        ids = [m["id"] for m in response.get("messages", []) or [] if m.get("id")]
        return ids, response.get("nextPageToken") or None

    def fetch(self, message_id: str, format: str = "full") -> dict[str, Any]:
        """Get a specific message by ID.

        Args:
            message_id: The Gmail message ID.
            format: Gmail message format (full, raw, metadata, minimal).

        Raises:
            GmailAPIError: If the API request fails.
        """

        service = self._service()
        logger.debug("getting_message", message_id=message_id, format=format)
        request = service.users().messages().get(userId=USER_ID, id=message_id, format=format)
        return self._call("get_message", request, message_id=message_id)

    def import_message(self, raw: bytes, *, internal_date_source: str = "dateHeader") -> dict[str, Any]:
        """Import a raw RFC 822 message; nothing is sent or delivered.

        Raises:
            GmailAPIError: If Gmail rejects the message.
        """

        service = self._service()
        logger.debug("importing_message", size=len(raw), internal_date_source=internal_date_source)
        request = service.users().messages().import_(
            userId=USER_ID,
            body={"raw": encode_raw(raw)},
            internalDateSource=internal_date_source,
            neverMarkSpam=True,
        )
        return self._call("import_message", request)

    def modify_labels(self, message_id: str, add: list[str], remove: list[str]) -> dict[str, Any]:
        """Add and remove label ids on a single message."""

        service = self._service()
        logger.debug("modifying_labels", message_id=message_id, add=add, remove=remove)
        request = service.users().messages().modify(
            userId=USER_ID,
            id=message_id,
            body={"addLabelIds": add, "removeLabelIds": remove},
        )
        return self._call("modify_labels", request, message_id=message_id)

    def delete_message(self, message_id: str) -> None:
        """Permanently delete a message (bypasses Trash)."""

        service = self._service()
        logger.debug("deleting_message", message_id=message_id)
        request = service.users().messages().delete(userId=USER_ID, id=message_id)
        self._call("delete_message", request, message_id=message_id)

    def _call(self, operation: str, request: Any, **context: Any) -> Any:
        try:
            return self._execute(request)
        except Exception as exc:  # noqa: BLE001
            logger.debug(f"gmail_{operation}_failed", error=str(exc), **context)
            raise GmailAPIError(f"{operation} failed: {exc}") from exc

    @staticmethod
    def _execute_once(request: Any) -> Any:
        return request.execute()

    def _service(self) -> Any:
        if self._credentials is None:
            raise AuthenticationError(
                "Gmail client is not authenticated. Call GmailClient.authenticate() first."
            )

        service = getattr(self._local, "service", None)
        if service is None:
            service = self._build_service(self._credentials)
            self._local.service = service
        return service

    def _build_service(self, credentials: Any) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        import google_auth_httplib2
        import httplib2
        from googleapiclient.discovery import build

        http = google_auth_httplib2.AuthorizedHttp(credentials, http=httplib2.Http())
        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", http=http, cache_discovery=False)

    def _load_credentials(self) -> Any:
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from google_auth_oauthlib.flow import InstalledAppFlow

        scopes = self.settings.gmail_scopes
        creds: Credentials | None = None
        if self.token_path.exists():
            creds = Credentials.from_authorized_user_file(str(self.token_path), scopes=scopes)

        if creds is not None and creds.expired and creds.refresh_token:
            creds.refresh(Request())
            self._write_token(creds)

        if creds is None or not creds.valid:
            if not self.allow_interactive:
                raise AuthenticationError(
                    f"Gmail token {self.token_path} is missing or invalid. Run `gmail-exporter auth` first."
                )
            flow = InstalledAppFlow.from_client_secrets_file(str(self.credentials_path), scopes=scopes)
            creds = flow.run_local_server(port=0)
            self._write_token(creds)

        return creds

    def _write_token(self, creds: Any) -> None:
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.token_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(creds.to_json())
