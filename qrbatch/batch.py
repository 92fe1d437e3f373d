"""Batch orchestrator: turn a list of link entries into an ordered manifest.

Each kept entry runs as its own asyncio task (logo decode -> composite ->
optional scan check -> naming) under a per-entry timeout. Results are
collected as tagged successes/failures and laid out in input order, so
completion order never leaks into the manifest or the file names.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass

from qrbatch.archive import package_manifest
from qrbatch.compositor import CompositeImageRequest, composite
from qrbatch.config import Settings
from qrbatch.errors import EntryTimeoutError, NoValidEntriesError, QRBatchError
from qrbatch.logging import audit, get_logger, trace
from qrbatch.logo import decode_logo
from qrbatch.naming import FILE_EXTENSION, derive_file_name

log = get_logger("batch")

Compositor = Callable[[CompositeImageRequest], Awaitable[bytes]]


@dataclass(frozen=True)
class LinkEntry:
    """One unit of work: text to encode plus an optional logo."""

    text: str
    logo: bytes | None = None

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()

    @classmethod
    def coerce(cls, item) -> "LinkEntry":
        """Build an entry from a LinkEntry, a string, a (text, logo) pair or a mapping."""
        if isinstance(item, cls):
            return item
        if isinstance(item, str):
            return cls(item)
        if isinstance(item, Mapping):
            text = item.get("text", item.get("url"))
            logo = item.get("logo", item.get("image"))
        elif isinstance(item, (tuple, list)) and len(item) == 2:
            text, logo = item
        else:
            raise TypeError(f"cannot build a LinkEntry from {type(item).__name__}")
        if not isinstance(text, str):
            raise TypeError(f"entry text must be str, got {type(text).__name__}")
        return cls(text, bytes(logo) if logo else None)


def snapshot_entries(entries: Iterable) -> tuple[LinkEntry, ...]:
    """Freeze caller-owned entries so later edits can't reach a running batch."""
    return tuple(LinkEntry.coerce(item) for item in entries)


@dataclass(frozen=True)
class GeneratedArtifact:
    """One finished code."""

    source_text: str
    raster_bytes: bytes
    file_name: str
    index: int

    @property
    def archive_name(self) -> str:
        return f"{self.file_name}{FILE_EXTENSION}"


@dataclass(frozen=True)
class EntryFailure:
    """An entry that didn't produce an artifact."""

    index: int
    source_text: str
    error: QRBatchError

    @property
    def reason(self) -> str:
        return str(self.error) or type(self.error).__name__


@dataclass(frozen=True)
class Manifest:
    """Artifacts (and, in partial mode, failures) in input order."""

    artifacts: tuple[GeneratedArtifact, ...] = ()
    failures: tuple[EntryFailure, ...] = ()

    def __iter__(self) -> Iterator[GeneratedArtifact]:
        return iter(self.artifacts)

    def __len__(self) -> int:
        return len(self.artifacts)

    def __getitem__(self, i: int) -> GeneratedArtifact:
        return self.artifacts[i]

    @property
    def file_names(self) -> list[str]:
        return [a.file_name for a in self.artifacts]

    @property
    def ok(self) -> bool:
        return not self.failures


async def _generate_entry(
    entry: LinkEntry,
    index: int,
    settings: Settings,
    compositor: Compositor,
) -> GeneratedArtifact:
    center_image = await decode_logo(entry.logo) if entry.logo is not None else None
    request = CompositeImageRequest.from_settings(entry.text, center_image, settings)
    raster = await compositor(request)

    if settings.verify_scan:
        from qrbatch.verify import self_check

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self_check, raster, entry.text)

    return GeneratedArtifact(
        source_text=entry.text,
        raster_bytes=raster,
        file_name=derive_file_name(entry.text, index),
        index=index,
    )


async def _run_entry(
    entry: LinkEntry,
    index: int,
    settings: Settings,
    compositor: Compositor,
) -> GeneratedArtifact | EntryFailure:
    timeout = settings.timeout_seconds
    try:
        return await asyncio.wait_for(_generate_entry(entry, index, settings, compositor), timeout)
    except asyncio.TimeoutError:
        error = EntryTimeoutError(f"entry {index} did not finish within {timeout:g}s")
    except QRBatchError as e:
        error = e
    error.attach_entry(index, entry.text)
    audit("batch.entry_failed", logger=log,
          index=index, text=entry.text[:80], error=type(error).__name__, reason=str(error))
    return EntryFailure(index=index, source_text=entry.text, error=error)


@trace
async def generate_batch(
    entries: Iterable,
    settings: Settings | None = None,
    *,
    allow_partial: bool | None = None,
    compositor: Compositor | None = None,
) -> Manifest:
    """Generate one code per non-blank entry, concurrently.

    Args:
        entries: LinkEntry objects, strings, (text, logo) pairs or mappings.
            They are snapshotted before any work starts.
        settings: Pipeline settings; defaults to ``Settings()``.
        allow_partial: Return successes plus ``Manifest.failures`` instead of
            raising. Defaults to ``settings.allow_partial``.
        compositor: Async ``request -> PNG bytes`` callable; defaults to
            :func:`qrbatch.compositor.composite`.

    Returns:
        Manifest ordered like the kept entries.

    Raises:
        NoValidEntriesError: every entry was blank.
        QRBatchError: without partial mode, the error of the first failing
            entry (by input order), with ``index``/``source_text`` attached.
    """
    settings = settings or Settings()
    if allow_partial is None:
        allow_partial = settings.allow_partial
    compositor = compositor or composite

    snapshot = snapshot_entries(entries)
    kept = [entry for entry in snapshot if not entry.is_blank]
    if len(kept) < len(snapshot):
        log.debug("dropped %d blank entries", len(snapshot) - len(kept))
    if not kept:
        raise NoValidEntriesError()

    audit("batch.started", logger=log, entries=len(kept), dropped=len(snapshot) - len(kept),
          timeout=settings.timeout_seconds, verify_scan=settings.verify_scan)

    tasks = [
        asyncio.create_task(_run_entry(entry, i, settings, compositor))
        for i, entry in enumerate(kept, start=1)
    ]
    try:
        outcomes = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise

    artifacts = tuple(o for o in outcomes if isinstance(o, GeneratedArtifact))
    failures = tuple(o for o in outcomes if isinstance(o, EntryFailure))

    audit("batch.completed", logger=log,
          generated=len(artifacts), failed=len(failures), partial=allow_partial)

    if failures and not allow_partial:
        raise failures[0].error
    return Manifest(artifacts=artifacts, failures=failures)


async def generate_archive(
    entries: Iterable,
    settings: Settings | None = None,
    **kwargs,
) -> tuple[Manifest, bytes]:
    """Run :func:`generate_batch` and zip the result."""
    manifest = await generate_batch(entries, settings, **kwargs)
    return manifest, await package_manifest(manifest)
