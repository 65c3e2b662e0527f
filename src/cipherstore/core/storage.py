"""
Local filesystem storage backend

Structure Map for reference:
==============================
 - <storage_root>/
      - <any/relative/path>      (file content, stored as given)
      - <directories>/           (created on demand)
==============================
For reference:
> Paths are always relative to the root; anything that resolves outside it is rejected
> Writes go to a temp sibling first and are moved into place, so readers never see half a file
> Visibility maps onto POSIX permission bits: public = 0644/0755, private = 0600/0700
> This backend knows nothing about encryption; wrap it in EncryptionAdapter for that

"""

import mimetypes
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, List, Optional

from .backend import Config
from .exceptions import (
    StorageError,
    FileNotFoundError,
    FileAlreadyExistsError,
    InvalidPathError,
)

PUBLIC = "public"
PRIVATE = "private"

PERMISSIONS = {
    "file": {PUBLIC: 0o644, PRIVATE: 0o600},
    "dir": {PUBLIC: 0o755, PRIVATE: 0o700},
}


class LocalStorage:
    """Backend that keeps content as plain files under a root directory"""

    def __init__(self, root_path: Optional[str] = None):
        root = Path(root_path).expanduser() if root_path else Path.home() / ".cipherstore"
        root.mkdir(parents=True, exist_ok=True)
        self.root = root.resolve()

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def resolve(self, path: str) -> Path:
        full = (self.root / str(path).lstrip("/")).resolve()
        if full != self.root and self.root not in full.parents:
            raise InvalidPathError(f"{path!r} resolves outside the storage root")
        return full

    def relative(self, full: Path) -> str:
        return full.relative_to(self.root).as_posix()

    def _require_file(self, path: str) -> Path:
        full = self.resolve(path)
        if not full.is_file():
            raise FileNotFoundError(f"File {path} not found in storage")
        return full

    def _require_any(self, path: str) -> Path:
        full = self.resolve(path)
        if not full.exists():
            raise FileNotFoundError(f"Path {path} not found in storage")
        return full

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def _store(self, path: str, fill: Callable[[BinaryIO], None], config: Config) -> Dict[str, Any]:
        target = self.resolve(path)
        if target.is_dir():
            raise FileAlreadyExistsError(f"{path} is a directory")
        visibility = (config or {}).get("visibility", PUBLIC)
        if visibility not in PERMISSIONS["file"]:
            raise StorageError(f"Unknown visibility {visibility!r}")
        target.parent.mkdir(parents=True, exist_ok=True)

        tmp = tempfile.NamedTemporaryFile(
            dir=target.parent, prefix=f".{target.name}.", suffix=".tmp", delete=False
        )
        tmp_path = Path(tmp.name)
        try:
            with tmp:
                fill(tmp)
            os.replace(tmp_path, target)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        self._apply_visibility(target, "file", visibility)
        return self._describe(target)

    def write(self, path: str, contents: bytes, config: Config = None) -> Dict[str, Any]:
        return self._store(path, lambda f: f.write(contents), config)

    def write_stream(self, path: str, stream: BinaryIO, config: Config = None) -> Dict[str, Any]:
        return self._store(path, lambda f: shutil.copyfileobj(stream, f), config)

    def update(self, path: str, contents: bytes, config: Config = None) -> Dict[str, Any]:
        self._require_file(path)
        return self.write(path, contents, config)

    def update_stream(self, path: str, stream: BinaryIO, config: Config = None) -> Dict[str, Any]:
        self._require_file(path)
        return self.write_stream(path, stream, config)

    def read(self, path: str) -> bytes:
        return self._require_file(path).read_bytes()

    def read_stream(self, path: str) -> BinaryIO:
        return open(self._require_file(path), "rb")

    # ------------------------------------------------------------------
    # Tree operations
    # ------------------------------------------------------------------

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    def delete(self, path: str) -> None:
        self._require_file(path).unlink()

    def move(self, source: str, destination: str) -> None:
        src = self._require_file(source)
        dst = self.resolve(destination)
        dst.parent.mkdir(parents=True, exist_ok=True)
        os.replace(src, dst)

    def copy(self, source: str, destination: str) -> None:
        src = self._require_file(source)
        dst = self.resolve(destination)
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)

    def create_dir(self, dirname: str, config: Config = None) -> Dict[str, Any]:
        full = self.resolve(dirname)
        if full.is_file():
            raise FileAlreadyExistsError(f"A file already exists at {dirname}")
        full.mkdir(parents=True, exist_ok=True)
        visibility = (config or {}).get("visibility")
        if visibility:
            self._apply_visibility(full, "dir", visibility)
        return self._describe(full)

    def delete_dir(self, dirname: str) -> None:
        full = self.resolve(dirname)
        if not full.is_dir():
            raise FileNotFoundError(f"Directory {dirname} not found in storage")
        if full == self.root:
            raise InvalidPathError("refusing to delete the storage root")
        shutil.rmtree(full)

    def list_contents(self, directory: str = "", recursive: bool = False) -> List[Dict[str, Any]]:
        base = self.resolve(directory)
        if not base.is_dir():
            return []
        entries = base.rglob("*") if recursive else base.iterdir()
        return sorted((self._describe(p) for p in entries), key=lambda e: e["path"])

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def _apply_visibility(self, full: Path, kind: str, visibility: str) -> None:
        try:
            mode = PERMISSIONS[kind][visibility]
        except KeyError:
            raise StorageError(f"Unknown visibility {visibility!r}") from None
        os.chmod(full, mode)

    def get_visibility(self, path: str) -> str:
        full = self._require_any(path)
        # group/other read bit decides it
        return PUBLIC if full.stat().st_mode & 0o044 else PRIVATE

    def set_visibility(self, path: str, visibility: str) -> None:
        full = self._require_any(path)
        self._apply_visibility(full, "dir" if full.is_dir() else "file", visibility)

    def last_modified(self, path: str) -> int:
        return int(self._require_any(path).stat().st_mtime)

    def size(self, path: str) -> int:
        return self._require_file(path).stat().st_size

    def mimetype(self, path: str) -> str:
        full = self._require_file(path)
        mime_type, _ = mimetypes.guess_type(full.name)
        return mime_type or "application/octet-stream"

    def get_metadata(self, path: str) -> Dict[str, Any]:
        full = self._require_any(path)
        meta = self._describe(full)
        meta["visibility"] = self.get_visibility(path)
        if full.is_file():
            meta["mimetype"] = self.mimetype(path)
        return meta

    def _describe(self, full: Path) -> Dict[str, Any]:
        st = full.stat()
        info: Dict[str, Any] = {
            "type": "dir" if full.is_dir() else "file",
            "path": self.relative(full),
            "timestamp": int(st.st_mtime),
        }
        if info["type"] == "file":
            info["size"] = st.st_size
        return info
