"""Tests for the Telegram client, content transfer and S3 object store."""

import json
import logging
from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from conftest import HTML_BODY
from notevault.errors import FetchError, StorageWriteError
from notevault.replies import Button, Reply
from notevault.telegram import TelegramAPIError, TelegramClient, describe_error
from notevault.transfer.object_store import S3ObjectStore
from notevault.transfer.service import ContentTransfer


def client_error(code: str, op: str = "PutObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


# ---------------------------------------------------------------------------
# TelegramClient
# ---------------------------------------------------------------------------


class TestTelegramClient:
    """TelegramClient against an httpx.MockTransport."""

    def make_client(self, handler) -> TelegramClient:
        return TelegramClient("123:ABC", transport=httpx.MockTransport(handler))

    def test_get_file_url(self):
        """Test resolving a file id to a download URL."""
        def handler(request):
            assert request.url.path.endswith("/getFile")
            assert json.loads(request.content) == {"file_id": "f1"}
            return httpx.Response(200, json={"ok": True, "result": {"file_path": "documents/file_1.html"}})

        url = self.make_client(handler).get_file_url("f1")
        assert url == "https://api.telegram.org/file/bot123:ABC/documents/file_1.html"

    def test_api_error(self):
        """Test that ok=false responses raise TelegramAPIError."""
        def handler(request):
            return httpx.Response(400, json={"ok": False, "description": "Bad Request: wrong file_id"})

        with pytest.raises(TelegramAPIError, match="wrong file_id"):
            self.make_client(handler).get_file_url("bad")

    def test_non_json_body(self):
        """Test that a non-JSON response raises TelegramAPIError."""
        def handler(request):
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        with pytest.raises(TelegramAPIError):
            self.make_client(handler).get_file_url("f1")

    def test_download(self):
        """Test downloading file contents."""
        def handler(request):
            return httpx.Response(200, content=HTML_BODY)

        assert self.make_client(handler).download("https://api.telegram.org/file/x") == HTML_BODY

    def test_download_http_error(self):
        """Test that a failed download raises an HTTP error."""
        def handler(request):
            return httpx.Response(404)

        with pytest.raises(httpx.HTTPStatusError):
            self.make_client(handler).download("https://api.telegram.org/file/x")

    def test_send_message_keyboard(self):
        """Test sending a message with an inline keyboard."""
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"ok": True, "result": {}})

        reply = Reply("Pick one", buttons=[
            [Button("Natural", action="folder_natural")],
            [Button("Open", url="https://objects.test/a.html")],
        ])
        self.make_client(handler).send_message(55, reply)

        assert seen["chat_id"] == 55
        assert seen["text"] == "Pick one"
        assert seen["reply_markup"] == {"inline_keyboard": [
            [{"text": "Natural", "callback_data": "folder_natural"}],
            [{"text": "Open", "url": "https://objects.test/a.html"}],
        ]}

    def test_send_plain_message_has_no_markup(self):
        """Test that plain messages carry no reply markup."""
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"ok": True, "result": {}})

        self.make_client(handler).send_message(55, Reply("hi"))
        assert "reply_markup" not in seen

    def test_set_webhook_with_secret(self):
        """Test registering a webhook with a secret token."""
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"ok": True, "result": True})

        self.make_client(handler).set_webhook("https://x.ngrok.io/telegram/webhook", "tok")
        assert seen["path"].endswith("/setWebhook")
        assert seen["url"] == "https://x.ngrok.io/telegram/webhook"
        assert seen["secret_token"] == "tok"


# ---------------------------------------------------------------------------
# ContentTransfer
# ---------------------------------------------------------------------------


class TestContentTransfer:
    """Fetch from the chat platform, store in the object store."""

    def test_transfer_stores_public_object(self, chat, objects, transfer):
        """Test that a transfer stores a public object."""
        chat.files["f1"] = HTML_BODY

        stored = transfer.transfer("f1")

        assert stored.key.startswith("uploads/") and stored.key.endswith(".html")
        assert stored.size == len(HTML_BODY)
        assert stored.url == objects.public_url(stored.key)
        assert objects.get(stored.key) == HTML_BODY
        assert objects.is_public(stored.key)

    def test_unknown_file_is_fetch_error(self, transfer, objects):
        """Test that an unknown file id raises FetchError."""
        with pytest.raises(FetchError):
            transfer.transfer("missing")
        assert objects.keys() == []

    def test_network_failure_is_fetch_error(self, chat, transfer, objects):
        """Test that network failures raise FetchError."""
        chat.files["f1"] = HTML_BODY
        chat.fail_fetch = True

        with pytest.raises(FetchError):
            transfer.transfer("f1")
        assert objects.keys() == []

    def test_empty_body_is_fetch_error(self, chat, transfer):
        """Test that an empty download raises FetchError."""
        chat.files["f1"] = b""
        with pytest.raises(FetchError):
            transfer.transfer("f1")

    def test_storage_failure_is_storage_error(self, chat):
        """Test that a failed write raises StorageWriteError."""
        chat.files["f1"] = HTML_BODY
        objects = MagicMock()
        objects.put_public.side_effect = StorageWriteError("bucket gone")

        with pytest.raises(StorageWriteError):
            ContentTransfer(chat, objects).transfer("f1")

    def test_content_type_from_extension(self, chat):
        """Test that the content type follows the file extension."""
        chat.files["f1"] = HTML_BODY
        objects = MagicMock()
        objects.put_public.return_value = "https://objects.test/x"

        ContentTransfer(chat, objects, extension=".html").transfer("f1")

        _, body, content_type = objects.put_public.call_args.args
        assert body == HTML_BODY
        assert content_type == "text/html"

    def test_copy_uses_new_key(self, chat, objects, transfer):
        """Test that copying stores under a new key."""
        chat.files["f1"] = HTML_BODY
        original = transfer.transfer("f1")

        copy = transfer.copy(original.key)

        assert copy.key != original.key
        assert copy.size is None
        assert objects.get(copy.key) == HTML_BODY
        assert objects.get(original.key) == HTML_BODY

    def test_discard_swallows_storage_errors(self, chat):
        """Test that discard logs storage errors instead of raising."""
        objects = MagicMock()
        objects.delete.side_effect = StorageWriteError("nope")

        ContentTransfer(chat, objects).discard("uploads/x.html")
        objects.delete.assert_called_once_with("uploads/x.html")

    def test_delete_propagates_storage_errors(self, chat):
        """Test that delete raises storage errors."""
        objects = MagicMock()
        objects.delete.side_effect = StorageWriteError("nope")

        with pytest.raises(StorageWriteError):
            ContentTransfer(chat, objects).delete("uploads/x.html")


# ---------------------------------------------------------------------------
# S3ObjectStore
# ---------------------------------------------------------------------------


@pytest.fixture
def s3_client():
    return MagicMock()


@pytest.fixture
def s3_store(s3_client):
    return S3ObjectStore(bucket="notes", region="eu-west-1", client=s3_client)


class TestS3ObjectStore:
    """S3ObjectStore with a mocked boto3 client."""

    def test_put_public_writes_then_publishes(self, s3_store, s3_client):
        """Test that objects are written privately then made public."""
        url = s3_store.put_public("uploads/a.html", HTML_BODY, "text/html")

        assert url == "https://notes.s3.eu-west-1.amazonaws.com/uploads/a.html"
        s3_client.put_object.assert_called_once()
        kwargs = s3_client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "notes"
        assert kwargs["Key"] == "uploads/a.html"
        assert kwargs["ContentType"] == "text/html"
        assert "ACL" not in kwargs
        s3_client.put_object_acl.assert_called_once_with(Bucket="notes", Key="uploads/a.html", ACL="public-read")

    def test_write_failure(self, s3_store, s3_client):
        """Test that a failed put raises StorageWriteError."""
        s3_client.put_object.side_effect = client_error("AccessDenied")

        with pytest.raises(StorageWriteError):
            s3_store.put_public("uploads/a.html", HTML_BODY, "text/html")
        s3_client.put_object_acl.assert_not_called()

    def test_acl_failure_removes_private_object(self, s3_store, s3_client):
        """Test that a failed ACL removes the private object."""
        s3_client.put_object_acl.side_effect = client_error("AccessControlListNotSupported", "PutObjectAcl")

        with pytest.raises(StorageWriteError):
            s3_store.put_public("uploads/a.html", HTML_BODY, "text/html")
        s3_client.delete_object.assert_called_once_with(Bucket="notes", Key="uploads/a.html")

    def test_connection_failure(self, s3_store, s3_client):
        """Test that connection errors raise StorageWriteError."""
        s3_client.put_object.side_effect = EndpointConnectionError(endpoint_url="https://s3.test")

        with pytest.raises(StorageWriteError):
            s3_store.put_public("uploads/a.html", HTML_BODY, "text/html")

    def test_copy_public(self, s3_store, s3_client):
        """Test copying an object and making it public."""
        url = s3_store.copy_public("uploads/a.html", "uploads/b.html")

        assert url.endswith("/uploads/b.html")
        kwargs = s3_client.copy_object.call_args.kwargs
        assert kwargs["CopySource"] == {"Bucket": "notes", "Key": "uploads/a.html"}
        assert kwargs["Key"] == "uploads/b.html"
        assert "CacheControl" not in kwargs
        assert kwargs["MetadataDirective"] == "COPY"
        s3_client.put_object_acl.assert_called_once_with(Bucket="notes", Key="uploads/b.html", ACL="public-read")

    def test_delete_missing_is_ok(self, s3_store, s3_client):
        """Test that deleting a missing object succeeds."""
        s3_client.delete_object.side_effect = client_error("NoSuchKey", "DeleteObject")
        s3_store.delete("uploads/gone.html")

    def test_delete_failure(self, s3_store, s3_client):
        """Test that a failed delete raises StorageWriteError."""
        s3_client.delete_object.side_effect = client_error("AccessDenied", "DeleteObject")
        with pytest.raises(StorageWriteError):
            s3_store.delete("uploads/a.html")

    def test_check(self, s3_store, s3_client):
        """Test the bucket connectivity check."""
        s3_store.check()
        s3_client.head_bucket.assert_called_once_with(Bucket="notes")

        s3_client.head_bucket.side_effect = client_error("404", "HeadBucket")
        with pytest.raises(StorageWriteError):
            s3_store.check()

    def test_public_url_variants(self, s3_client):
        """Test public URLs for each endpoint style."""
        cdn = S3ObjectStore(bucket="notes", public_base_url="https://cdn.test/", client=s3_client)
        minio = S3ObjectStore(bucket="notes", endpoint_url="http://localhost:9000/", client=s3_client)

        assert cdn.public_url("uploads/a b.html") == "https://cdn.test/uploads/a%20b.html"
        assert minio.public_url("uploads/a.html") == "http://localhost:9000/notes/uploads/a.html"


class TestTokenRedaction:
    """The bot token never reaches logs or error messages."""

    def test_download_failure_hides_token(self, objects, caplog):
        """Test a failed download logs the status code, not the file URL."""
        def handler(request):
            if request.url.path.endswith("/getFile"):
                return httpx.Response(200, json={"ok": True, "result": {"file_path": "documents/a.html"}})
            return httpx.Response(404)

        chat = TelegramClient("123:SECRETTOKEN", transport=httpx.MockTransport(handler))
        transfer = ContentTransfer(chat, objects)

        with caplog.at_level(logging.ERROR, logger="notevault"):
            with pytest.raises(FetchError) as excinfo:
                transfer.transfer("f1")

        assert "SECRETTOKEN" not in caplog.text
        assert "SECRETTOKEN" not in str(excinfo.value)
        assert "HTTP 404" in caplog.text

    def test_connection_failure_hides_token(self, objects, caplog):
        """Test a network error is logged by class name only."""
        def handler(request):
            raise httpx.ConnectError("connect failed", request=request)

        chat = TelegramClient("123:SECRETTOKEN", transport=httpx.MockTransport(handler))

        with caplog.at_level(logging.ERROR, logger="notevault"):
            with pytest.raises(FetchError):
                ContentTransfer(chat, objects).transfer("f1")

        assert "SECRETTOKEN" not in caplog.text
        assert "ConnectError" in caplog.text

    def test_describe_error(self):
        """Test describe_error() summaries for each error type."""
        request = httpx.Request("GET", "https://api.telegram.org/file/bot123:SECRETTOKEN/a.html")
        status_error = httpx.HTTPStatusError("404", request=request, response=httpx.Response(404, request=request))

        assert describe_error(status_error) == "HTTP 404"
        assert describe_error(httpx.ReadTimeout("timed out", request=request)) == "ReadTimeout"
        assert describe_error(TelegramAPIError("getFile: Bad Request")) == "getFile: Bad Request"
