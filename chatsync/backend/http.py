"""HTTP backend — pull queries, mutations, capability probe, and uploads over httpx.

Every call is a JSON POST to ``/api/query`` or ``/api/mutation``:

  request   {"path": "chat:getMessages", "args": {...}, "format": "json"}
  response  {"status": "success", "value": ...}
            {"status": "error", "errorMessage": "..."}
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from chatsync.backend.base import MutationEndpoint, ProbeEndpoint, PullEndpoint
from chatsync.backend.codec import classify_backend_error, draft_to_args, snapshot_from_records
from chatsync.errors import BackendError, ConnectivityError, TransportTimeoutError
from chatsync.feed.message import AttachmentRef, FeedSnapshot, MessageDraft, OutgoingAttachment

logger = logging.getLogger(__name__)


class HttpBackend(PullEndpoint, MutationEndpoint, ProbeEndpoint):
    """Talks to the hosted backend's HTTP API."""

    def __init__(
        self,
        base_url: str,
        topic: str = "chat",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.topic = topic
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ─── Endpoint contracts ──────────────────────────────────────

    async def request(self, topic: str) -> FeedSnapshot:
        """Fetch the whole feed once."""
        value = await self._call("query", f"{topic}:getMessages")
        return snapshot_from_records(value)

    async def submit(self, draft: MessageDraft) -> None:
        await self._call("mutation", f"{self.topic}:sendMessage", draft_to_args(draft))

    async def probe(self) -> None:
        """Generating an upload URL is cheap and only works when storage is deployed."""
        await self._call("mutation", f"{self.topic}:generateUploadUrl")

    async def upload(self, attachment: OutgoingAttachment, uploader_id: str) -> AttachmentRef:
        """Upload via a one-time URL, then register the file record."""
        upload_url = await self._call("mutation", f"{self.topic}:generateUploadUrl")
        if not isinstance(upload_url, str) or not upload_url:
            raise BackendError(f"generateUploadUrl returned {upload_url!r}")

        resp = await self._send(
            "upload",
            upload_url,
            content=attachment.data,
            headers={"Content-Type": attachment.mime_type},
        )
        if resp.status_code >= 400:
            raise BackendError(
                f"upload failed with HTTP {resp.status_code}",
                user_message=f"File upload failed with status {resp.status_code}.",
            )
        try:
            storage_id = str(resp.json()["storageId"])
        except (ValueError, KeyError, TypeError) as e:
            raise BackendError("upload response is missing storageId") from e

        await self._call(
            "mutation",
            f"{self.topic}:saveFileRecord",
            {
                "storageId": storage_id,
                "name": attachment.file_name,
                "type": attachment.mime_type,
                "size": attachment.size,
                "uploaderId": uploader_id,
                "isPublic": True,
            },
        )
        logger.info(f"Uploaded {attachment.file_name} as {storage_id}")
        return AttachmentRef(
            storage_id=storage_id,
            file_name=attachment.file_name,
            mime_type=attachment.mime_type,
            size=attachment.size,
        )

    async def delete(self, message_id: str, sender_id: str) -> None:
        await self._call(
            "mutation",
            f"{self.topic}:deleteMessage",
            {"messageId": message_id, "userId": sender_id},
        )

    # ─── Internals ───────────────────────────────────────────────

    async def _send(self, operation: str, url: str, **kwargs: Any) -> httpx.Response:
        """POST and map transport-level failures to connectivity errors."""
        try:
            resp = await self._client.post(url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportTimeoutError(f"{operation} timed out") from e
        except httpx.TransportError as e:
            raise ConnectivityError(f"{operation} failed: {e}") from e

        if resp.status_code >= 500:
            raise ConnectivityError(f"{operation} failed with HTTP {resp.status_code}")
        return resp

    async def _call(self, kind: str, path: str, args: dict[str, Any] | None = None) -> Any:
        """Run one query or mutation and return its value."""
        resp = await self._send(
            path,
            f"/api/{kind}",
            json={"path": path, "args": args or {}, "format": "json"},
        )

        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            raise classify_backend_error(
                path, f"unexpected response (HTTP {resp.status_code})", resp.status_code
            )

        if data.get("status") == "error" or resp.status_code >= 400:
            message = data.get("errorMessage") or f"HTTP {resp.status_code}"
            logger.debug(f"{kind} {path} failed: {message}")
            raise classify_backend_error(path, message, resp.status_code)

        return data.get("value")
