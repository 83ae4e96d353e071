"""Tests for the capability probe and the message dispatcher."""

from __future__ import annotations

import asyncio

import pytest

from chatsync.capability import CapabilityProbe, CapabilityState
from chatsync.dispatcher import MessageDispatcher, Sender
from chatsync.errors import (
    AttachmentValidationError,
    BackendError,
    CapabilityUnsupportedError,
    ConnectivityError,
    TransportNotReadyError,
    TransportTimeoutError,
    ValidationError,
)
from chatsync.feed.message import FeedSnapshot, MessageKind, OutgoingAttachment
from chatsync.transport.base import ChannelStatus
from chatsync.transport.negotiator import TransportNegotiator, TransportState
from chatsync.transport.polling import PollingChannel
from chatsync.transport.reactive import ReactiveChannel

from helpers import FakeBackend, FakePull, FakeReactive

PHOTO = OutgoingAttachment(file_name="cat.png", mime_type="image/png", data=b"\x89PNG....")


# ─── Capability Probe Tests ──────────────────────────────────────

class TestCapabilityProbe:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_probe(self):
        backend = FakeBackend()
        backend.probe_delay = 0.05
        probe = CapabilityProbe(backend)

        results = await asyncio.gather(*(probe.ensure_supported() for _ in range(5)))

        assert results == [CapabilityState.SUPPORTED] * 5
        assert backend.probe_calls == 1

    @pytest.mark.asyncio
    async def test_supported_is_cached(self):
        backend = FakeBackend()
        probe = CapabilityProbe(backend)

        await probe.ensure_supported()
        await probe.ensure_supported()

        assert backend.probe_calls == 1
        assert probe.state is CapabilityState.SUPPORTED

    @pytest.mark.asyncio
    async def test_unsupported_is_cached(self):
        backend = FakeBackend()
        backend.probe_error = CapabilityUnsupportedError("chat:generateUploadUrl not deployed")
        probe = CapabilityProbe(backend)

        with pytest.raises(CapabilityUnsupportedError):
            await probe.ensure_supported()
        with pytest.raises(CapabilityUnsupportedError):
            await probe.ensure_supported()

        assert backend.probe_calls == 1
        assert probe.state is CapabilityState.UNSUPPORTED

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_unsupported_verdict(self):
        backend = FakeBackend()
        backend.probe_delay = 0.05
        backend.probe_error = CapabilityUnsupportedError("missing")
        probe = CapabilityProbe(backend)

        results = await asyncio.gather(
            *(probe.ensure_supported() for _ in range(3)), return_exceptions=True
        )

        assert all(isinstance(r, CapabilityUnsupportedError) for r in results)
        assert backend.probe_calls == 1

    @pytest.mark.asyncio
    async def test_timeout_leaves_state_unknown(self):
        backend = FakeBackend()
        backend.probe_delay = 0.5
        probe = CapabilityProbe(backend, timeout=0.05)

        with pytest.raises(TransportTimeoutError):
            await probe.ensure_supported()
        assert probe.state is CapabilityState.UNKNOWN

        backend.probe_delay = 0.0
        assert await probe.ensure_supported() is CapabilityState.SUPPORTED
        assert backend.probe_calls == 2

    @pytest.mark.asyncio
    async def test_transient_error_is_not_cached(self):
        backend = FakeBackend()
        backend.probe_error = ConnectivityError("reset by peer")
        probe = CapabilityProbe(backend)

        with pytest.raises(ConnectivityError):
            await probe.ensure_supported()
        assert probe.state is CapabilityState.UNKNOWN

        backend.probe_error = None
        await probe.ensure_supported()
        assert probe.state is CapabilityState.SUPPORTED


# ─── Dispatcher Tests ────────────────────────────────────────────

class DispatchRig:
    """Dispatcher wired to in-memory endpoints with a hand-driven negotiator."""

    def __init__(self, separate_live_path: bool = False) -> None:
        self.backend = FakeBackend()
        self.live = FakeBackend() if separate_live_path else self.backend
        self.negotiator = TransportNegotiator()
        self.sender = Sender("user_alice", "Alice")
        self.dispatcher = MessageDispatcher(
            self.sender,
            self.negotiator,
            ReactiveChannel(FakeReactive(), self.live),
            PollingChannel(FakePull(), self.backend),
            CapabilityProbe(self.backend),
        )

    def go_reactive(self) -> DispatchRig:
        self.negotiator.report("reactive", ChannelStatus.ready(FeedSnapshot()))
        return self

    def go_polling(self) -> DispatchRig:
        self.negotiator.report("reactive", ChannelStatus.errored(ConnectivityError("down")))
        self.negotiator.report("polling", ChannelStatus.ready(FeedSnapshot()))
        return self


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_send_while_detecting(self):
        rig = DispatchRig()
        with pytest.raises(TransportNotReadyError):
            await rig.dispatcher.send("hello")
        assert rig.backend.network_calls == 0

    @pytest.mark.asyncio
    async def test_text_over_reactive(self):
        rig = DispatchRig().go_reactive()
        await rig.dispatcher.send("hello")

        draft = rig.backend.submitted[0]
        assert draft.content == "hello"
        assert draft.sender_id == "user_alice"
        assert draft.kind is MessageKind.TEXT

    @pytest.mark.asyncio
    async def test_text_over_polling(self):
        rig = DispatchRig().go_polling()
        await rig.dispatcher.send("hello")
        assert [d.content for d in rig.backend.submitted] == ["hello"]

    @pytest.mark.asyncio
    async def test_attachment_over_polling_rejected(self):
        rig = DispatchRig().go_polling()
        with pytest.raises(AttachmentValidationError):
            await rig.dispatcher.send("look", PHOTO)
        assert rig.backend.network_calls == 0

    @pytest.mark.asyncio
    async def test_attachment_over_reactive(self):
        rig = DispatchRig().go_reactive()
        await rig.dispatcher.send("", PHOTO)

        assert rig.backend.probe_calls == 1
        assert rig.backend.uploads == [(PHOTO, "user_alice")]
        draft = rig.backend.submitted[0]
        assert draft.kind is MessageKind.IMAGE
        assert draft.attachment.storage_id == "storage_1"
        assert draft.content == "Shared image: cat.png"

    @pytest.mark.asyncio
    async def test_unsupported_attachment_surfaces_without_fallback(self):
        rig = DispatchRig().go_reactive()
        rig.backend.probe_error = CapabilityUnsupportedError("not deployed")

        with pytest.raises(CapabilityUnsupportedError) as exc_info:
            await rig.dispatcher.send("look", PHOTO)

        assert "File uploads are not available" in exc_info.value.user_message
        assert rig.backend.uploads == []
        assert rig.backend.submitted == []
        assert rig.negotiator.state is TransportState.REACTIVE

        with pytest.raises(CapabilityUnsupportedError):
            await rig.dispatcher.send("again", PHOTO)
        assert rig.backend.probe_calls == 1

    @pytest.mark.asyncio
    async def test_text_connectivity_failure_falls_back(self):
        rig = DispatchRig().go_reactive()
        rig.backend.submit_error = ConnectivityError("socket closed")

        await rig.dispatcher.send("hello")

        assert rig.negotiator.state is TransportState.POLLING
        assert [d.content for d in rig.backend.submitted] == ["hello"]

    @pytest.mark.asyncio
    async def test_attachment_connectivity_failure_is_reported(self):
        rig = DispatchRig().go_reactive()
        rig.backend.submit_error = ConnectivityError("socket closed")

        with pytest.raises(ConnectivityError) as exc_info:
            await rig.dispatcher.send("look", PHOTO)

        assert "send text only" in exc_info.value.user_message
        assert rig.negotiator.state is TransportState.POLLING
        assert rig.backend.submitted == []

    @pytest.mark.asyncio
    async def test_backend_error_does_not_fail_over(self):
        rig = DispatchRig().go_reactive()
        rig.backend.submit_error = BackendError("content too long")

        with pytest.raises(BackendError):
            await rig.dispatcher.send("hello")
        assert rig.negotiator.state is TransportState.REACTIVE

    @pytest.mark.asyncio
    async def test_delete_over_reactive(self):
        rig = DispatchRig().go_reactive()
        await rig.dispatcher.delete("m1")
        assert rig.backend.deleted == [("m1", "user_alice")]

    @pytest.mark.asyncio
    async def test_delete_over_polling_rejected(self):
        rig = DispatchRig().go_polling()
        with pytest.raises(ValidationError):
            await rig.dispatcher.delete("m1")
        assert rig.backend.deleted == []

    @pytest.mark.asyncio
    async def test_delete_while_detecting(self):
        rig = DispatchRig()
        with pytest.raises(TransportNotReadyError):
            await rig.dispatcher.delete("m1")

    @pytest.mark.asyncio
    async def test_concurrent_attachment_sends_share_one_capability_check(self):
        rig = DispatchRig().go_reactive()
        rig.backend.probe_delay = 0.05

        await asyncio.gather(*(rig.dispatcher.send(f"photo {i}", PHOTO) for i in range(5)))

        assert rig.backend.probe_calls == 1
        assert len(rig.backend.uploads) == 5
        assert sorted(d.content for d in rig.backend.submitted) == [f"photo {i}" for i in range(5)]


class TestMutationPaths:
    @pytest.mark.asyncio
    async def test_reactive_sends_use_live_path(self):
        rig = DispatchRig(separate_live_path=True).go_reactive()
        await rig.dispatcher.send("hello")

        assert [d.content for d in rig.live.submitted] == ["hello"]
        assert rig.backend.submitted == []

    @pytest.mark.asyncio
    async def test_failover_retries_on_pull_path(self):
        rig = DispatchRig(separate_live_path=True).go_reactive()
        rig.live.submit_error = ConnectivityError("socket dropped")

        await rig.dispatcher.send("hello")

        assert rig.live.submitted == []
        assert [d.content for d in rig.backend.submitted] == ["hello"]
        assert rig.negotiator.state is TransportState.POLLING
