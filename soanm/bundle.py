"""Bundle packing — a directory tree as a single gzip-compressed tar blob.

The sponsor packs its ``enroll/`` directory and ships the result as the first
channel message; the enrollee unpacks it into its work directory.

Archive layout:
  - members are rooted at the archive top level (no enclosing folder entry)
  - members are written in lexicographic relative-path order
  - mode bits (including the executable bit) are kept; ownership is zeroed
  - the gzip header carries no timestamp, so an unchanged tree packs to
    identical bytes
"""

from __future__ import annotations

import errno
import gzip
import io
import logging
import os
import tarfile
import zlib
from pathlib import Path

from soanm.errors import BundleError

logger = logging.getLogger(__name__)


def pack(source_dir: str | Path) -> bytes:
    """Pack every entry under *source_dir* into a gzip tar blob."""
    source = Path(source_dir)
    if not source.is_dir():
        raise FileNotFoundError(errno.ENOENT, "Bundle source is not a directory", str(source))

    buf = io.BytesIO()
    count = 0
    with gzip.GzipFile(fileobj=buf, mode="wb", mtime=0) as gz, \
            tarfile.open(fileobj=gz, mode="w") as tar:
        for path in _sorted_entries(source):
            arcname = path.relative_to(source).as_posix()
            info = tar.gettarinfo(str(path), arcname=arcname)
            if info is None:
                # sockets and other special files have no tar representation
                logger.warning("Skipping unsupported file type: %s", path)
                continue
            info.uid = info.gid = 0
            info.uname = info.gname = ""
            if info.isreg():
                with open(path, "rb") as f:
                    tar.addfile(info, f)
            else:
                tar.addfile(info)
            count += 1

    blob = buf.getvalue()
    logger.info("Packed %d entries from %s (%d bytes)", count, source, len(blob))
    return blob


def unpack(bundle: bytes, dest_dir: str | Path) -> None:
    """Extract *bundle* into *dest_dir*, recreating paths and mode bits.

    Raises:
        BundleError: the blob is not a readable gzip tar, or a member would
            land outside *dest_dir*.
        OSError: writing into *dest_dir* failed.
    """
    dest = Path(dest_dir)
    try:
        with tarfile.open(fileobj=io.BytesIO(bundle), mode="r:gz") as tar:
            logger.debug("Bundle members: %s", tar.getnames())
            _extract_all(tar, dest)
    except (tarfile.TarError, EOFError, zlib.error) as exc:
        raise BundleError(f"Could not unpack bundle: {exc}") from exc
    logger.info("Unpacked bundle (%d bytes) into %s", len(bundle), dest)


def list_members(bundle: bytes) -> list[str]:
    """Return member names in archive order."""
    try:
        with tarfile.open(fileobj=io.BytesIO(bundle), mode="r:gz") as tar:
            return tar.getnames()
    except (tarfile.TarError, EOFError, zlib.error) as exc:
        raise BundleError(f"Could not read bundle: {exc}") from exc


# ── Helpers ───────────────────────────────────────────────────────


def _sorted_entries(source: Path) -> list[Path]:
    entries = []
    # os.walk drops unreadable directories unless onerror re-raises
    for root, dirs, files in os.walk(source, onerror=_reraise):
        base = Path(root)
        entries.extend(base / name for name in dirs + files)
    return sorted(entries, key=lambda p: p.relative_to(source).as_posix())


def _reraise(exc: OSError) -> None:
    raise exc


def _extract_all(tar: tarfile.TarFile, dest: Path) -> None:
    # Use data filter (Python 3.12+) to prevent path traversal attacks
    try:
        tar.extractall(dest, filter="data")  # type: ignore[call-arg]
    except TypeError:
        # Fallback for interpreters without extraction filters
        root = dest.resolve()
        for member in tar.getmembers():
            member_path = (dest / member.name).resolve()
            if member_path != root and root not in member_path.parents:
                raise BundleError(f"Unsafe path in bundle: {member.name}")
        tar.extractall(dest)  # noqa: S202
