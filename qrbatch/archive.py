"""Archive packager: manifest -> one reproducible zip blob."""

import asyncio
import io
import zipfile

from qrbatch.errors import ArchiveError
from qrbatch.logging import audit, get_logger, trace

log = get_logger("archive")

# Fixed member metadata so equal manifests zip to equal bytes
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
MEMBER_MODE = 0o644 << 16


class ArchiveWriter:
    """Collects named members and serializes them as a deflated zip."""

    def __init__(self, compression: int = zipfile.ZIP_DEFLATED):
        self.compression = compression
        self._members: dict[str, bytes] = {}

    def __len__(self) -> int:
        return len(self._members)

    @property
    def names(self) -> list[str]:
        return list(self._members)

    def add_entry(self, name: str, data: bytes) -> None:
        if not name:
            raise ArchiveError("archive member name must not be empty")
        if name in self._members:
            raise ArchiveError(f"duplicate archive member {name!r}")
        self._members[name] = bytes(data)

    @trace
    def serialize(self) -> bytes:
        buf = io.BytesIO()
        try:
            with zipfile.ZipFile(buf, "w", self.compression) as zf:
                for name, data in self._members.items():
                    info = zipfile.ZipInfo(name, date_time=ZIP_EPOCH)
                    info.compress_type = self.compression
                    info.external_attr = MEMBER_MODE
                    info.create_system = 3  # unix, regardless of host
                    zf.writestr(info, data)
        except (OSError, ValueError, zipfile.LargeZipFile) as e:
            raise ArchiveError(f"failed to build archive: {e}") from e

        blob = buf.getvalue()
        audit("archive.serialized", logger=log, members=len(self._members), bytes=len(blob))
        return blob


def build_archive(manifest) -> bytes:
    """Zip every artifact of *manifest* under its ``archive_name``, in order."""
    writer = ArchiveWriter()
    for artifact in manifest:
        writer.add_entry(artifact.archive_name, artifact.raster_bytes)
    return writer.serialize()


async def package_manifest(manifest) -> bytes:
    """Async wrapper around :func:`build_archive`, run in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, build_archive, manifest)
