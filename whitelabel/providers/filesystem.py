"""Object store on the local filesystem: one directory per bucket."""

from __future__ import annotations

import asyncio
import hashlib
from datetime import UTC, datetime
from pathlib import Path

from whitelabel.errors import ObjectStoreError
from whitelabel.protocols import ObjectInfo


class FilesystemObjectStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _resolve(self, bucket: str, path: str) -> Path:
        base = (self.root / bucket).resolve()
        target = (base / path).resolve()
        if base != target and base not in target.parents:
            raise ObjectStoreError(f"path escapes bucket: {bucket}/{path}")
        return target

    def _info(self, bucket: str, base: Path, file: Path) -> ObjectInfo:
        stat = file.stat()
        return ObjectInfo(
            bucket=bucket,
            path=file.relative_to(base).as_posix(),
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
            etag=hashlib.md5(file.read_bytes(), usedforsecurity=False).hexdigest(),
        )

    async def get(self, bucket: str, path: str) -> bytes | None:
        target = self._resolve(bucket, path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise ObjectStoreError(f"cannot read {bucket}/{path}: {exc}") from exc

    async def put(
        self, bucket: str, path: str, data: bytes, *, overwrite: bool = False
    ) -> ObjectInfo:
        target = self._resolve(bucket, path)
        if not overwrite and target.exists():
            raise FileExistsError(f"{bucket}/{path}")

        def _write() -> ObjectInfo:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(target.name + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(target)
            return self._info(bucket, (self.root / bucket).resolve(), target)

        try:
            return await asyncio.to_thread(_write)
        except OSError as exc:
            raise ObjectStoreError(f"cannot write {bucket}/{path}: {exc}") from exc

    async def list(self, bucket: str, prefix: str = "") -> list[ObjectInfo]:
        base = (self.root / bucket).resolve()
        if not base.is_dir():
            return []

        def _scan() -> list[ObjectInfo]:
            infos = [
                self._info(bucket, base, file)
                for file in base.rglob("*")
                if file.is_file()
                and not file.name.endswith(".tmp")
                and file.relative_to(base).as_posix().startswith(prefix)
            ]
            return sorted(infos, key=lambda info: info.path)

        return await asyncio.to_thread(_scan)

    async def delete(self, bucket: str, path: str) -> bool:
        target = self._resolve(bucket, path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        return True
