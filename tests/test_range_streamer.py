import anyio
import pytest

from rangeserve.core.errors import SinkClosedError, StreamIOError
from rangeserve.models import ByteRange, TransferSession
from rangeserve.services.range_streamer import RangeStreamer, TransferOutcomeKind
from rangeserve.services.resource_locator import ResourceLocator


class MemorySink:
    def __init__(self):
        self.chunks: list[bytes] = []
        self.closed = False

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)

    async def write(self, chunk: bytes) -> None:
        if self.closed:
            raise SinkClosedError("closed")
        self.chunks.append(chunk)

    async def close(self) -> None:
        self.closed = True


class BrokenAfterSink(MemorySink):
    """Accepts `limit` chunks, then behaves like a reset connection."""

    def __init__(self, limit: int):
        super().__init__()
        self.limit = limit

    async def write(self, chunk: bytes) -> None:
        if len(self.chunks) >= self.limit:
            raise SinkClosedError("connection reset")
        await super().write(chunk)


class GatedSink(MemorySink):
    """Blocks every write until the test opens the gate."""

    def __init__(self):
        super().__init__()
        self.gate = anyio.Event()
        self.waiting = anyio.Event()

    async def write(self, chunk: bytes) -> None:
        self.waiting.set()
        await self.gate.wait()
        await super().write(chunk)


class StalledSink(MemorySink):
    async def write(self, chunk: bytes) -> None:
        await anyio.sleep_forever()


@pytest.fixture
def resource(resource_root):
    return ResourceLocator(resource_root).resolve("clip.mp4")


@pytest.fixture
def streamer():
    return RangeStreamer(chunk_size=64, idle_timeout=5.0)


@pytest.mark.asyncio
@pytest.mark.parametrize("start,end", [(0, 99), (0, 0), (999, 999), (10, 500), (0, 999), (63, 64)])
async def test_streams_exact_interval(streamer, resource, payload, start, end):
    sink = MemorySink()
    outcome = await streamer.stream(resource, ByteRange(start, end), sink)

    assert outcome.kind is TransferOutcomeKind.COMPLETED
    assert outcome.bytes_sent == end - start + 1
    assert sink.data == payload[start : end + 1]
    assert all(len(c) <= 64 for c in sink.chunks)


@pytest.mark.asyncio
async def test_full_body(streamer, resource, payload):
    sink = MemorySink()
    outcome = await streamer.stream(resource, None, sink)
    assert outcome.completed
    assert sink.data == payload
    assert len(sink.chunks) == -(-len(payload) // 64)


@pytest.mark.asyncio
async def test_empty_resource_completes_without_writes(streamer, resource_root):
    resource = ResourceLocator(resource_root).resolve("empty.bin")
    sink = MemorySink()
    outcome = await streamer.stream(resource, None, sink)
    assert outcome.completed
    assert outcome.bytes_sent == 0
    assert sink.chunks == []


@pytest.mark.asyncio
async def test_session_progress_tracks_bytes(streamer, resource):
    session = TransferSession(resource_id=resource.identifier)
    await streamer.stream(resource, ByteRange(0, 199), MemorySink(), session)
    assert session.bytes_sent == 200


@pytest.mark.asyncio
async def test_waits_for_sink_before_reading_on(streamer, resource, payload):
    sink = GatedSink()
    session = TransferSession(resource_id=resource.identifier)

    async with anyio.create_task_group() as tg:
        tg.start_soon(streamer.stream, resource, ByteRange(0, 299), sink, session)
        await sink.waiting.wait()
        await anyio.sleep(0.05)
        # blocked on the first chunk: nothing accepted, nothing counted
        assert sink.chunks == []
        assert session.bytes_sent == 0
        sink.gate.set()

    assert sink.data == payload[:300]
    assert session.bytes_sent == 300


@pytest.mark.asyncio
async def test_closed_sink_aborts_without_reading(streamer, resource):
    sink = MemorySink()
    sink.closed = True
    outcome = await streamer.stream(resource, None, sink)
    assert outcome.kind is TransferOutcomeKind.ABORTED
    assert outcome.reason == "client-disconnect"
    assert outcome.bytes_sent == 0


@pytest.mark.asyncio
async def test_write_failure_aborts(streamer, resource, payload):
    sink = BrokenAfterSink(limit=3)
    outcome = await streamer.stream(resource, None, sink)
    assert outcome.kind is TransferOutcomeKind.ABORTED
    assert outcome.bytes_sent == 3 * 64
    assert sink.data == payload[: 3 * 64]


@pytest.mark.asyncio
async def test_idle_sink_times_out(resource):
    streamer = RangeStreamer(chunk_size=64, idle_timeout=0.05)
    outcome = await streamer.stream(resource, None, StalledSink())
    assert outcome.kind is TransferOutcomeKind.ABORTED
    assert outcome.reason == "idle-timeout"


@pytest.mark.asyncio
async def test_terminal_session_stops_transfer(streamer, resource):
    session = TransferSession(resource_id=resource.identifier)
    session.abort("stale")
    outcome = await streamer.stream(resource, None, MemorySink(), session)
    assert outcome.kind is TransferOutcomeKind.ABORTED
    assert outcome.reason == "stale"


@pytest.mark.asyncio
async def test_missing_file_is_io_failure(streamer, resource, resource_root):
    (resource_root / "clip.mp4").unlink()
    with pytest.raises(StreamIOError) as excinfo:
        await streamer.stream(resource, None, MemorySink())
    assert excinfo.value.bytes_sent == 0


@pytest.mark.asyncio
async def test_truncated_file_is_io_failure(streamer, resource, resource_root, payload):
    (resource_root / "clip.mp4").write_bytes(payload[:100])
    sink = MemorySink()
    with pytest.raises(StreamIOError) as excinfo:
        await streamer.stream(resource, None, sink)
    assert excinfo.value.bytes_sent == 100
    assert sink.data == payload[:100]


@pytest.mark.asyncio
async def test_cancelled_transfer_leaves_streamer_usable(streamer, resource):
    sink = GatedSink()
    with anyio.move_on_after(0.05):
        await streamer.stream(resource, None, sink)
    # nothing left to read from; a second transfer still works
    other = MemorySink()
    assert (await streamer.stream(resource, ByteRange(0, 9), other)).completed


def test_rejects_bad_chunk_size():
    with pytest.raises(ValueError):
        RangeStreamer(chunk_size=0)
