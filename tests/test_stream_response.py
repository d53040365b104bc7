import os

import anyio
import pytest

from rangeserve.models import ByteRange, TransferState
from rangeserve.services.concurrency_governor import ConcurrencyGovernor
from rangeserve.services.range_streamer import RangeStreamer
from rangeserve.services.resource_locator import ResourceLocator
from rangeserve.services.response_assembler import ResponseAssembler, ResponseKind
from rangeserve.streaming.response import RangeStreamResponse

from .conftest import ASGIPeer, http_scope


@pytest.fixture
def governor():
    return ConcurrencyGovernor(2)


@pytest.fixture
def build(resource_root, governor):
    assembler = ResponseAssembler()
    streamer = RangeStreamer(chunk_size=64, idle_timeout=5.0)

    def _build(byte_range=None, *, streamer=streamer):
        resource = ResourceLocator(resource_root).resolve("clip.mp4")
        kind = ResponseKind.FULL if byte_range is None else ResponseKind.PARTIAL
        session = governor.try_admit(resource.identifier, byte_range=byte_range)
        response = RangeStreamResponse(
            resource=resource,
            byte_range=byte_range,
            assembled=assembler.assemble(kind, resource, byte_range),
            session=session,
            streamer=streamer,
            assembler=assembler,
        )
        return response, session

    return _build


@pytest.mark.asyncio
async def test_completed_transfer_releases_slot(build, governor, payload):
    response, session = build(ByteRange(0, 99))
    peer = ASGIPeer()
    await response(http_scope("/video/clip.mp4"), peer.receive, peer.send)

    assert peer.status == 206
    assert peer.headers["content-range"] == "bytes 0-99/1000"
    assert bytes(peer.body) == payload[:100]
    assert peer.complete
    assert session.state is TransferState.COMPLETED
    assert session.bytes_sent == 100
    assert governor.active_count == 0


@pytest.mark.asyncio
async def test_disconnect_mid_transfer_aborts_and_releases(build, governor):
    response, session = build()
    peer = ASGIPeer(hold=True)

    async with anyio.create_task_group() as tg:
        tg.start_soon(response, http_scope("/video/clip.mp4"), peer.receive, peer.send)
        await peer.got_body.wait()
        assert session.state is TransferState.STREAMING
        assert governor.active_count == 1
        peer.hang_up()

    assert not peer.complete
    assert len(peer.body) < 1000
    assert session.state is TransferState.ABORTED
    assert session.abort_reason == "client-disconnect"
    assert governor.active_count == 0


@pytest.mark.asyncio
async def test_repeated_aborts_return_to_baseline(build, governor):
    for _ in range(10):
        response, session = build()
        peer = ASGIPeer(hold=True)
        async with anyio.create_task_group() as tg:
            tg.start_soon(response, http_scope("/video/clip.mp4"), peer.receive, peer.send)
            await peer.got_body.wait()
            peer.hang_up()
        assert session.state is TransferState.ABORTED
    assert governor.active_count == 0
    assert governor.snapshot().totals["aborted"] == 10


def _open_fds():
    try:
        return len(os.listdir("/proc/self/fd"))
    except OSError:
        return None


@pytest.mark.asyncio
async def test_repeated_aborts_leave_no_open_handles(build, governor):
    if _open_fds() is None:
        pytest.skip("needs /proc/self/fd")

    async def abort_once():
        response, _ = build()
        peer = ASGIPeer(hold=True)
        async with anyio.create_task_group() as tg:
            tg.start_soon(response, http_scope("/video/clip.mp4"), peer.receive, peer.send)
            await peer.got_body.wait()
            peer.hang_up()

    # first run opens the event loop's and worker thread's own descriptors
    await abort_once()
    baseline = _open_fds()
    for _ in range(20):
        await abort_once()

    assert _open_fds() == baseline
    assert governor.active_count == 0


@pytest.mark.asyncio
async def test_idle_client_is_aborted(build, governor):
    response, session = build(streamer=RangeStreamer(chunk_size=64, idle_timeout=0.05))
    peer = ASGIPeer(hold=True)

    with anyio.fail_after(5):
        await response(http_scope("/video/clip.mp4"), peer.receive, peer.send)

    assert session.state is TransferState.ABORTED
    assert session.abort_reason == "idle-timeout"
    assert governor.active_count == 0


@pytest.mark.asyncio
async def test_io_failure_before_first_byte_is_500(build, governor, resource_root):
    response, session = build()
    (resource_root / "clip.mp4").unlink()
    peer = ASGIPeer()

    await response(http_scope("/video/clip.mp4"), peer.receive, peer.send)

    assert peer.status == 500
    assert bytes(peer.body) == b""
    assert session.state is TransferState.ABORTED
    assert session.abort_reason == "io-failure"
    assert governor.active_count == 0


@pytest.mark.asyncio
async def test_io_failure_after_flush_cuts_response_short(build, governor, resource_root, payload):
    response, session = build()
    (resource_root / "clip.mp4").write_bytes(payload[:200])
    peer = ASGIPeer()

    await response(http_scope("/video/clip.mp4"), peer.receive, peer.send)

    # status already went out; the body just stops
    assert peer.status == 200
    assert bytes(peer.body) == payload[:200]
    assert not peer.complete
    assert session.state is TransferState.ABORTED
    assert governor.active_count == 0


@pytest.mark.asyncio
async def test_swept_session_gets_an_error_not_silence(build, governor):
    response, session = build()
    governor.sweep_stale(0)
    peer = ASGIPeer()

    await response(http_scope("/video/clip.mp4"), peer.receive, peer.send)

    assert peer.status == 500
    assert governor.active_count == 0
