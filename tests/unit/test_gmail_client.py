"""Unit tests for Gmail client."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from gmail_exporter.exceptions import AuthenticationError, ConfigurationError, GmailAPIError
from gmail_exporter.gmail.client import GmailClient, is_transient_error
from gmail_exporter.gmail.parsing import decode_raw


def _http_error(status: int) -> HttpError:
    resp = MagicMock()
    resp.status = status
    resp.reason = "error"
    return HttpError(resp, b"{}")


@pytest.fixture
def client(mock_settings) -> GmailClient:
    """A client with a mocked service and fake credentials."""
    gmail = GmailClient(mock_settings)
    gmail._credentials = object()
    gmail._local.service = MagicMock()
    return gmail


class TestGmailClient:
    """Test suite for GmailClient class."""

    def test_gmail_client_initialization(self, mock_settings) -> None:
        """Test that Gmail client is properly initialized."""
        client = GmailClient(mock_settings)

        assert client.settings is mock_settings
        assert client.token_path == mock_settings.gmail_token_path
        assert client._credentials is None

    def test_path_overrides(self, mock_settings, tmp_path) -> None:
        """Import runs can point at a second account's files."""
        client = GmailClient(mock_settings, credentials_path=tmp_path / "c2.json", token_path=tmp_path / "t2.json")

        assert client.credentials_path == tmp_path / "c2.json"
        assert client.token_path == tmp_path / "t2.json"

    def test_authenticate_missing_credentials_raises(self, mock_settings) -> None:
        """Test that authenticate fails fast when credentials.json is missing."""
        client = GmailClient(mock_settings)

        with pytest.raises(ConfigurationError):
            client.authenticate()

    def test_authenticate_without_token_non_interactive(self, mock_settings) -> None:
        """Without a token and without a browser flow, authentication fails."""
        mock_settings.gmail_credentials_path.write_text("{}")
        client = GmailClient(mock_settings, allow_interactive=False)

        with pytest.raises(AuthenticationError):
            client.authenticate()

    def test_search_requires_authentication(self, mock_settings) -> None:
        """Test that search requires authenticate() first."""
        client = GmailClient(mock_settings)

        with pytest.raises(AuthenticationError):
            client.search("from:a@example.com")

    def test_credential_status_missing(self, mock_settings) -> None:
        """A missing token is reported, not raised."""
        status = GmailClient(mock_settings).credential_status()

        assert status["status"] == "missing"

    def test_search_returns_ids_and_next_token(self, client) -> None:
        """One page of ids plus the continuation token."""
        messages = client._local.service.users.return_value.messages.return_value
        messages.list.return_value.execute.return_value = {
            "messages": [{"id": "a"}, {"id": "b"}],
            "nextPageToken": "tok",
        }

        ids, token = client.search("subject:Invoice")

        assert ids == ["a", "b"]
        assert token == "tok"
        messages.list.assert_called_once_with(
            userId="me",
            q="subject:Invoice",
            pageToken=None,
            maxResults=client.settings.page_size,
        )

    def test_search_last_page(self, client) -> None:
        """Empty pages have no messages key and no token."""
        messages = client._local.service.users.return_value.messages.return_value
        messages.list.return_value.execute.return_value = {"resultSizeEstimate": 0}

        assert client.search("") == ([], None)

    def test_import_message_encodes_raw(self, client) -> None:
        """Raw bytes are sent base64url-encoded with the date source."""
        messages = client._local.service.users.return_value.messages.return_value
        messages.import_.return_value.execute.return_value = {"id": "new"}

        client.import_message(b"Subject: hi\r\n\r\nbody", internal_date_source="receivedTime")

        kwargs = messages.import_.call_args.kwargs
        assert decode_raw(kwargs["body"]["raw"]) == b"Subject: hi\r\n\r\nbody"
        assert kwargs["internalDateSource"] == "receivedTime"
        assert kwargs["neverMarkSpam"] is True

    def test_modify_labels(self, client) -> None:
        """Label changes go through users.messages.modify."""
        messages = client._local.service.users.return_value.messages.return_value

        client.modify_labels("abc", add=[], remove=["INBOX"])

        messages.modify.assert_called_once_with(
            userId="me", id="abc", body={"addLabelIds": [], "removeLabelIds": ["INBOX"]}
        )

    def test_api_failure_wrapped(self, client) -> None:
        """Non-transient API errors surface as GmailAPIError without retrying."""
        messages = client._local.service.users.return_value.messages.return_value
        messages.delete.return_value.execute.side_effect = _http_error(404)

        with pytest.raises(GmailAPIError, match="delete_message"):
            client.delete_message("abc")

        assert messages.delete.return_value.execute.call_count == 1

    def test_transient_failure_retried(self, mock_settings, monkeypatch) -> None:
        """Rate limits are retried before giving up."""
        monkeypatch.setattr("gmail_exporter.utils.time.sleep", lambda _: None)
        settings = mock_settings.model_copy(update={"max_retries": 2})
        gmail = GmailClient(settings)
        gmail._credentials = object()
        gmail._local.service = MagicMock()
        get = gmail._local.service.users.return_value.messages.return_value.get.return_value
        get.execute.side_effect = [_http_error(429), {"id": "abc"}]

        assert gmail.fetch("abc", format="raw") == {"id": "abc"}
        assert get.execute.call_count == 2


class TestTransientErrors:
    """Test suite for is_transient_error."""

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_retryable_statuses(self, status: int) -> None:
        assert is_transient_error(_http_error(status)) is True

    @pytest.mark.parametrize("status", [400, 403, 404])
    def test_permanent_statuses(self, status: int) -> None:
        assert is_transient_error(_http_error(status)) is False

    def test_network_errors(self) -> None:
        assert is_transient_error(ConnectionResetError()) is True
        assert is_transient_error(TimeoutError()) is True
        assert is_transient_error(ValueError()) is False
