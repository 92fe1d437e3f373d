"""Tests for qrbatch.batch."""

import asyncio
import io
import zipfile

import pytest
from PIL import Image

from qrbatch.batch import (
    EntryFailure,
    GeneratedArtifact,
    LinkEntry,
    Manifest,
    generate_archive,
    generate_batch,
    snapshot_entries,
)
from qrbatch.compositor import CompositeImageRequest
from qrbatch.config import Settings
from qrbatch.errors import (
    EncodingError,
    EntryTimeoutError,
    ImageDecodeError,
    NoValidEntriesError,
)


class RecordingCompositor:
    """Test double: returns the payload as bytes after a per-payload delay."""

    def __init__(self, delays: dict[str, float] | None = None):
        self.delays = delays or {}
        self.requests: list[CompositeImageRequest] = []
        self.completed: list[str] = []

    async def __call__(self, request: CompositeImageRequest) -> bytes:
        self.requests.append(request)
        await asyncio.sleep(self.delays.get(request.payload, 0))
        self.completed.append(request.payload)
        return request.payload.encode()


def run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Entry snapshots
# ---------------------------------------------------------------------------

def test_snapshot_accepts_mixed_inputs():
    entries = snapshot_entries([
        "https://a.com",
        ("https://b.com", b"logo"),
        {"url": "https://c.com", "image": None},
        LinkEntry("https://d.com"),
    ])

    assert entries == (
        LinkEntry("https://a.com"),
        LinkEntry("https://b.com", b"logo"),
        LinkEntry("https://c.com"),
        LinkEntry("https://d.com"),
    )


def test_snapshot_is_detached_from_caller_state():
    logo = bytearray(b"abc")
    entries = [["https://a.com", logo]]
    snap = snapshot_entries(entries)

    logo[:] = b"xyz"
    entries[0][0] = "changed"
    assert snap[0] == LinkEntry("https://a.com", b"abc")


def test_snapshot_rejects_unknown_shapes():
    with pytest.raises(TypeError):
        snapshot_entries([42])


# ---------------------------------------------------------------------------
# Filtering, naming, ordering
# ---------------------------------------------------------------------------

def test_blank_entries_are_dropped():
    manifest = run(generate_batch(["", "  ", "https://x.com"], compositor=RecordingCompositor()))

    assert len(manifest) == 1
    assert manifest[0].file_name == "qrcode_x.com_1"
    assert manifest[0].index == 1


def test_all_blank_raises_and_does_no_work():
    compositor = RecordingCompositor()
    with pytest.raises(NoValidEntriesError):
        run(generate_batch(["", "   "], compositor=compositor))
    assert compositor.requests == []


def test_same_host_names_are_disambiguated_by_index():
    manifest = run(generate_batch(
        ["https://a.com/x", "https://www.a.com/y"], compositor=RecordingCompositor(),
    ))

    assert manifest.file_names == ["qrcode_a.com_1", "qrcode_a.com_2"]
    assert [a.archive_name for a in manifest] == ["qrcode_a.com_1.png", "qrcode_a.com_2.png"]


def test_fallback_name_uses_filtered_position():
    manifest = run(generate_batch(
        ["https://a.com", "", "https://b.com", "not a url"], compositor=RecordingCompositor(),
    ))

    assert manifest.file_names == ["qrcode_a.com_1", "qrcode_b.com_2", "qrcode_3"]


def test_manifest_follows_input_order_not_completion_order():
    compositor = RecordingCompositor({"A": 0.15, "B": 0.0, "C": 0.05})
    manifest = run(generate_batch(["A", "B", "C"], compositor=compositor))

    assert compositor.completed == ["B", "C", "A"]
    assert [a.source_text for a in manifest] == ["A", "B", "C"]
    assert [a.raster_bytes for a in manifest] == [b"A", b"B", b"C"]
    assert manifest.file_names == ["qrcode_1", "qrcode_2", "qrcode_3"]


def test_entries_run_concurrently():
    compositor = RecordingCompositor({"A": 0.2, "B": 0.2, "C": 0.2})

    async def timed():
        loop = asyncio.get_running_loop()
        start = loop.time()
        await generate_batch(["A", "B", "C"], compositor=compositor)
        return loop.time() - start

    assert run(timed()) < 0.5


def test_payload_is_passed_untrimmed_with_settings_geometry():
    compositor = RecordingCompositor()
    settings = Settings(canvas_size=400, quiet_margin=3)
    run(generate_batch([" https://a.com "], settings, compositor=compositor))

    request = compositor.requests[0]
    assert request.payload == " https://a.com "
    assert (request.canvas_size, request.quiet_margin) == (400, 3)
    assert request.center_image is None


def test_logo_is_decoded_before_compositing(red_logo):
    compositor = RecordingCompositor()
    run(generate_batch([LinkEntry("https://a.com", red_logo)], compositor=compositor))

    assert compositor.requests[0].center_image.size == (400, 100)


# ---------------------------------------------------------------------------
# Real pipeline
# ---------------------------------------------------------------------------

def test_generation_is_deterministic(red_logo):
    entries = [LinkEntry("https://a.com", red_logo), LinkEntry("not a url")]

    first = run(generate_batch(entries))
    second = run(generate_batch(entries))

    assert first.file_names == second.file_names == ["qrcode_a.com_1", "qrcode_2"]
    assert [a.raster_bytes for a in first] == [a.raster_bytes for a in second]
    for artifact in first:
        assert Image.open(io.BytesIO(artifact.raster_bytes)).size == (800, 800)


def test_generate_archive_round_trip(red_logo):
    manifest, blob = run(generate_archive([
        LinkEntry("https://www.a.com", red_logo),
        LinkEntry("https://b.com"),
    ]))

    with zipfile.ZipFile(io.BytesIO(blob)) as zf:
        assert zf.namelist() == ["qrcode_a.com_1.png", "qrcode_b.com_2.png"]
        for artifact in manifest:
            assert zf.read(artifact.archive_name) == artifact.raster_bytes


# ---------------------------------------------------------------------------
# Failure policy
# ---------------------------------------------------------------------------

def test_corrupt_logo_aborts_batch_by_default():
    entries = [LinkEntry("https://a.com"), LinkEntry("https://b.com", b"not an image")]

    with pytest.raises(ImageDecodeError) as exc_info:
        run(generate_batch(entries))
    assert exc_info.value.index == 2
    assert exc_info.value.source_text == "https://b.com"


def test_first_failure_by_input_order_is_raised():
    entries = [LinkEntry("x" * 5000), LinkEntry("https://b.com", b"junk")]

    with pytest.raises(EncodingError) as exc_info:
        run(generate_batch(entries))
    assert exc_info.value.index == 1


def test_partial_mode_keeps_successes():
    entries = [
        LinkEntry("https://a.com"),
        LinkEntry("https://b.com", b"not an image"),
        LinkEntry("https://c.com"),
    ]
    manifest = run(generate_batch(entries, allow_partial=True))

    assert manifest.file_names == ["qrcode_a.com_1", "qrcode_c.com_3"]
    assert not manifest.ok
    [failure] = manifest.failures
    assert isinstance(failure, EntryFailure)
    assert failure.index == 2
    assert isinstance(failure.error, ImageDecodeError)
    assert "decode" in failure.reason


def test_partial_mode_from_settings():
    settings = Settings(allow_partial=True)
    manifest = run(generate_batch(["https://a.com", "x" * 5000], settings))

    assert len(manifest) == 1
    assert isinstance(manifest.failures[0].error, EncodingError)


def test_surrogate_text_is_an_encoding_failure():
    with pytest.raises(EncodingError) as exc_info:
        run(generate_batch(["https://x.com/\udcff"]))
    assert exc_info.value.index == 1


def test_surrogate_text_fails_only_its_entry_in_partial_mode():
    manifest = run(generate_batch(["https://a.com", "https://x.com/\udcff"], allow_partial=True))

    assert manifest.file_names == ["qrcode_a.com_1"]
    [failure] = manifest.failures
    assert failure.index == 2
    assert isinstance(failure.error, EncodingError)


def test_slow_entry_times_out():
    compositor = RecordingCompositor({"slow": 5.0})
    settings = Settings(entry_timeout=0.05)

    with pytest.raises(EntryTimeoutError) as exc_info:
        run(generate_batch(["fast", "slow"], settings, compositor=compositor))
    assert exc_info.value.index == 2


def test_timeout_becomes_entry_failure_in_partial_mode():
    compositor = RecordingCompositor({"slow": 5.0})
    settings = Settings(entry_timeout=0.05, allow_partial=True)

    manifest = run(generate_batch(["fast", "slow"], settings, compositor=compositor))
    assert manifest.file_names == ["qrcode_1"]
    assert isinstance(manifest.failures[0].error, EntryTimeoutError)


def test_unexpected_errors_propagate():
    async def broken(request):
        raise RuntimeError("bug")

    with pytest.raises(RuntimeError):
        run(generate_batch(["a"], allow_partial=True, compositor=broken))


def test_manifest_helpers():
    artifact = GeneratedArtifact("t", b"png", "qrcode_1", 1)
    manifest = Manifest(artifacts=(artifact,))

    assert list(manifest) == [artifact]
    assert manifest.ok
    assert artifact.archive_name == "qrcode_1.png"
