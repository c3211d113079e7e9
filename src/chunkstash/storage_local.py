"""Filesystem backend adapter: one file per object under a root directory."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path, PurePosixPath

from chunkstash.errors import BackendError, ObjectExistsError, ObjectNotFoundError

_TMP_PREFIX = ".tmp-"


class LocalBackend:
    """Object store rooted at a local directory.

    Writes land in a temporary file that is then moved into place, so readers
    never see a half-written object. ``put_if_absent`` hard-links the
    temporary file to the final name, which fails atomically when the name
    already exists.
    """

    supports_conditional_put = True

    def __init__(self, root: str | os.PathLike[str], *, create: bool = True) -> None:
        self.root = Path(root)
        if create and not self.root.exists():
            self.root.mkdir(parents=True, exist_ok=True)
        if not self.root.is_dir():
            raise BackendError("open", f"root is not a directory: {self.root}", transient=False)
        self.cache_namespace = f"file:{self.root.resolve()}"

    def _path(self, name: str) -> Path:
        parts = PurePosixPath(name).parts
        if not parts or any(p in ("..", ".", "") for p in parts) or name.startswith("/"):
            raise BackendError("resolve", f"invalid object name '{name}'", transient=False)
        if parts[-1].startswith(_TMP_PREFIX):
            raise BackendError("resolve", f"reserved object name '{name}'", transient=False)
        return self.root.joinpath(*parts)

    def _write_temp(self, path: Path, data: bytes) -> str:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
        except BaseException:
            os.unlink(tmp)
            raise
        return tmp

    def put(self, name: str, data: bytes) -> None:
        path = self._path(name)
        try:
            tmp = self._write_temp(path, data)
            os.replace(tmp, path)
        except OSError as e:
            raise BackendError("put", f"{name}: {e}") from e

    def put_if_absent(self, name: str, data: bytes) -> None:
        path = self._path(name)
        try:
            tmp = self._write_temp(path, data)
        except OSError as e:
            raise BackendError("put_if_absent", f"{name}: {e}") from e
        try:
            os.link(tmp, path)
        except FileExistsError:
            raise ObjectExistsError(name) from None
        except OSError as e:
            raise BackendError("put_if_absent", f"{name}: {e}") from e
        finally:
            os.unlink(tmp)

    def get(self, name: str) -> bytes:
        path = self._path(name)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise ObjectNotFoundError(name) from None
        except IsADirectoryError:
            raise ObjectNotFoundError(name) from None
        except OSError as e:
            raise BackendError("get", f"{name}: {e}") from e

    def delete(self, name: str) -> None:
        path = self._path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise BackendError("delete", f"{name}: {e}") from e

    def list(self, prefix: str) -> list[str]:
        names: list[str] = []
        # Only walk the directory the prefix can live under.
        start = self.root
        if "/" in prefix:
            head = prefix.rsplit("/", 1)[0]
            start = self._path(head) if head else self.root
            if not start.is_dir():
                return []
        try:
            for dirpath, _dirnames, filenames in os.walk(start):
                rel_dir = Path(dirpath).relative_to(self.root).as_posix()
                for filename in filenames:
                    if filename.startswith(_TMP_PREFIX):
                        continue
                    name = filename if rel_dir == "." else f"{rel_dir}/{filename}"
                    if name.startswith(prefix):
                        names.append(name)
        except OSError as e:
            raise BackendError("list", f"{prefix}: {e}") from e
        return sorted(names)

    def storage_info(self) -> dict[str, object]:
        return {
            "backend": "file",
            "root": str(self.root),
            "conditional_put": self.supports_conditional_put,
        }

    def close(self) -> None:
        pass
