"""Stub indirection.

Shortcuts and the auto-launch value point at a version independent stub next to
the payload folders. The stub reads a small JSON pointer (the payload marker) and
replaces itself with the binary it names, so an updater only has to lay down a new
app-M.m.p folder and repoint the marker; entry points never change.

Marker format::

    {"payload": "app-1.2.3/HelloWix.exe", "version": "1.2.3-beta"}

The payload path is relative to the marker's folder (the app root) and must stay
inside it.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import sys
import tempfile
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Optional

from .errors import PayloadResolutionError
from .lib.fs import FilesystemProbe, LocalFilesystemProbe, copy_payload_tree
from .topology import PAYLOAD_MARKER_NAME, InstallTopology

logger = logging.getLogger(__name__)

STUB_FAILURE_EXIT = 2


def _relative_payload(topology: InstallTopology) -> str:
    root = topology.app_root_folder.replace("\\", "/").rstrip("/")
    exe = topology.app_exe.replace("\\", "/")
    if not exe.startswith(root + "/"):
        raise PayloadResolutionError(f"{topology.app_exe} is not below {topology.app_root_folder}")
    return exe[len(root) + 1:]


def marker_document(topology: InstallTopology, version: str) -> Dict[str, Any]:
    return {"payload": _relative_payload(topology), "version": version}


def write_payload_marker(marker_path: str, document: Dict[str, Any]) -> None:
    """Atomically replace the marker so a starting stub never sees a partial write."""

    p = Path(marker_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".marker-", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(document, indent=2, sort_keys=True) + "\n")
        os.replace(tmp, p)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    logger.info("Payload marker %s -> %s", p, document.get("payload"))


def repoint_payload(topology: InstallTopology, version: str) -> None:
    """Point the stub at the payload described by ``topology``.

    Called after an update has laid down ``topology.app_folder``; refuses to point
    at a binary that is not there.
    """

    if not Path(topology.app_exe).is_file():
        raise PayloadResolutionError(f"Refusing to repoint to missing payload {topology.app_exe}")
    write_payload_marker(topology.payload_marker, marker_document(topology, version))


def read_payload_marker(marker_path: str, fs: Optional[FilesystemProbe] = None) -> Dict[str, Any]:
    fs = fs or LocalFilesystemProbe()
    if not fs.exists(marker_path):
        raise PayloadResolutionError(f"Payload marker missing: {marker_path}")
    try:
        data = json.loads(fs.read_text(marker_path))
    except (OSError, ValueError) as e:
        raise PayloadResolutionError(f"Payload marker unreadable: {marker_path}: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("payload"), str) or not data["payload"]:
        raise PayloadResolutionError(f"Payload marker has no payload entry: {marker_path}")
    return data


def resolve_payload(marker_path: str, fs: Optional[FilesystemProbe] = None) -> str:
    """Absolute path of the payload binary the marker currently points at.

    ``fs`` defaults to the local filesystem; the verification steps pass their own
    collaborator so a diagnosis reads the installed tree like every other check.
    """

    fs = fs or LocalFilesystemProbe()
    data = read_payload_marker(marker_path, fs)
    rel = PurePosixPath(data["payload"].replace("\\", "/"))
    if rel.is_absolute() or ".." in rel.parts or (rel.parts and ":" in rel.parts[0]):
        raise PayloadResolutionError(f"Payload path escapes the app root: {data['payload']}")

    root = Path(marker_path).parent
    candidate = str(root.joinpath(*rel.parts))
    if not fs.exists(candidate):
        raise PayloadResolutionError(f"Payload {candidate} does not exist")
    return candidate


def stage_payload(
    topology: InstallTopology,
    *,
    version: str,
    payload_dir: str,
    staging_dir: str,
    stub_source: Optional[str] = None,
    update_source: Optional[str] = None,
) -> Path:
    """Lay out the package source tree mirroring the app root of ``topology``.

    staging/
      <exe>                  stub (copied from stub_source)
      app-M.m.p/...          payload (copied from payload_dir)
      current-payload.json   marker
      Update.exe             only when the topology carries an updater
    """

    root = Path(staging_dir)
    if root.exists():
        shutil.rmtree(root)
    rel_payload = PurePosixPath(_relative_payload(topology))
    copy_payload_tree(payload_dir, str(root.joinpath(*rel_payload.parts[:-1])))

    if stub_source:
        stub_name = Path(topology.stub_exe.replace("\\", "/")).name
        _copy_file(stub_source, root / stub_name)
    if topology.update_exe and update_source:
        _copy_file(update_source, root / Path(topology.update_exe.replace("\\", "/")).name)

    write_payload_marker(str(root / PAYLOAD_MARKER_NAME), marker_document(topology, version))
    return root


def _copy_file(src: str, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dst)


def _stub_location() -> Path:
    # Frozen stubs (PyInstaller) report themselves via sys.executable.
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(sys.argv[0]).resolve().parent


def stub_main(argv: Optional[list[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    marker = _stub_location() / PAYLOAD_MARKER_NAME
    try:
        payload = resolve_payload(str(marker))
    except PayloadResolutionError as e:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        logger.error("Cannot start application: %s", e)
        return STUB_FAILURE_EXIT

    # Replace the stub process so the running image is the payload itself.
    os.execv(payload, [payload, *args])
    return 0  # pragma: no cover


if __name__ == "__main__":
    raise SystemExit(stub_main())
