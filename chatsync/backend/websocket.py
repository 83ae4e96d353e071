"""WebSocket backend — live feed subscription and mutations over websockets.

Frames are JSON:

  client -> {"type": "subscribe", "path": "chat:getMessages"}
  server -> {"type": "snapshot", "messages": [...]}
  server -> {"type": "error", "message": "..."}
  client -> {"type": "mutation", "requestId": 1, "path": "chat:sendMessage", "args": {...}}
  server -> {"type": "mutationResult", "requestId": 1, "success": true}
  server -> {"type": "mutationResult", "requestId": 1, "success": false, "errorMessage": "..."}
  client -> {"type": "unsubscribe"}

Mutations ride the open subscription; uploads carry raw bytes and go
through the ``uploads`` endpoint (the HTTP backend) instead.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from typing import Any, AsyncIterator

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from chatsync.backend.base import MutationEndpoint, ReactiveEndpoint
from chatsync.backend.codec import classify_backend_error, draft_to_args, snapshot_from_records
from chatsync.errors import BackendError, ConnectivityError, TransportTimeoutError
from chatsync.feed.message import AttachmentRef, FeedSnapshot, MessageDraft, OutgoingAttachment

logger = logging.getLogger(__name__)


class WebSocketSubscription(ReactiveEndpoint, MutationEndpoint):
    """Push subscription to the feed, plus the write path, over one WebSocket connection."""

    def __init__(
        self,
        url: str,
        topic: str = "chat",
        open_timeout: float = 10.0,
        mutation_timeout: float = 10.0,
        uploads: MutationEndpoint | None = None,
    ) -> None:
        self.url = url
        self.topic = topic
        self.open_timeout = open_timeout
        self.mutation_timeout = mutation_timeout
        self._uploads = uploads
        self._ws = None
        self._pending: dict[int, tuple[str, asyncio.Future]] = {}
        self._request_ids = itertools.count(1)

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def subscribe(self, topic: str) -> AsyncIterator[FeedSnapshot]:
        path = f"{topic}:getMessages"
        try:
            async with websockets.connect(
                self.url,
                open_timeout=self.open_timeout,
                ping_interval=30,
                close_timeout=10,
            ) as ws:
                self._ws = ws
                await ws.send(json.dumps({"type": "subscribe", "path": path}))
                logger.debug(f"Subscribed to {path} at {self.url}")

                async for raw in ws:
                    try:
                        frame = json.loads(raw)
                    except json.JSONDecodeError as e:
                        raise BackendError(f"Invalid frame from {self.url}") from e
                    if not isinstance(frame, dict):
                        raise BackendError(
                            f"Expected a JSON object frame from {self.url}, got {type(frame).__name__}"
                        )

                    frame_type = frame.get("type")
                    if frame_type == "snapshot":
                        yield snapshot_from_records(frame.get("messages", []))
                    elif frame_type == "mutationResult":
                        self._resolve(frame)
                    elif frame_type == "error":
                        raise classify_backend_error(path, str(frame.get("message", "")))
                    else:
                        logger.debug(f"Ignoring frame of type {frame_type!r}")
        except TimeoutError as e:
            raise TransportTimeoutError(f"connecting to {self.url} timed out") from e
        except (OSError, WebSocketException) as e:
            raise ConnectivityError(f"live subscription to {self.url} failed: {e}") from e
        finally:
            self._ws = None
            self._fail_pending(ConnectivityError("live connection closed before the mutation finished"))

    async def unsubscribe(self) -> None:
        ws = self._ws
        if ws is None:
            return
        with contextlib.suppress(ConnectionClosed):
            await ws.send(json.dumps({"type": "unsubscribe"}))
        await ws.close()
        self._ws = None

    # ─── Mutations ───────────────────────────────────────────────

    async def submit(self, draft: MessageDraft) -> None:
        await self._mutate(f"{self.topic}:sendMessage", draft_to_args(draft))

    async def delete(self, message_id: str, sender_id: str) -> None:
        await self._mutate(
            f"{self.topic}:deleteMessage",
            {"messageId": message_id, "userId": sender_id},
        )

    async def upload(self, attachment: OutgoingAttachment, uploader_id: str) -> AttachmentRef:
        """Bytes don't travel over the socket; hand off to the upload endpoint."""
        if self._uploads is None:
            return await super().upload(attachment, uploader_id)
        return await self._uploads.upload(attachment, uploader_id)

    async def _mutate(self, path: str, args: dict[str, Any]) -> Any:
        ws = self._ws
        if ws is None:
            raise ConnectivityError(f"{path}: live connection is not open")

        request_id = next(self._request_ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = (path, future)
        try:
            await ws.send(
                json.dumps({"type": "mutation", "requestId": request_id, "path": path, "args": args})
            )
            return await asyncio.wait_for(future, timeout=self.mutation_timeout)
        except ConnectionClosed as e:
            raise ConnectivityError(f"{path}: live connection closed") from e
        except TimeoutError:
            raise TransportTimeoutError(f"{path} got no result within {self.mutation_timeout}s") from None
        finally:
            self._pending.pop(request_id, None)

    def _resolve(self, frame: dict[str, Any]) -> None:
        request_id = frame.get("requestId")
        entry = self._pending.get(request_id) if isinstance(request_id, int) else None
        if entry is None:
            logger.debug(f"Dropping result for unknown request {request_id!r}")
            return
        path, future = entry
        if future.done():
            return
        if frame.get("success"):
            future.set_result(frame.get("value"))
        else:
            message = str(frame.get("errorMessage") or "mutation failed")
            logger.debug(f"mutation {path} failed: {message}")
            future.set_exception(classify_backend_error(path, message))

    def _fail_pending(self, error: ConnectivityError) -> None:
        for _, future in self._pending.values():
            if not future.done():
                future.set_exception(error)
