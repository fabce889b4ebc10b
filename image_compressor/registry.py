"""Owned per-pipeline state: the file table and preview view handles.

Nothing in here is module-global so several pipelines can coexist.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from image_compressor.engine.types import Job, Options, Result
from image_compressor.logger import get_logger

_logger = get_logger("registry")

IMAGE_EXTS = {".jpg", ".jpeg", ".jfif", ".png", ".webp", ".bmp", ".gif", ".tif", ".tiff"}
# Converted upstream before they reach the pipeline.
UPSTREAM_EXTS = {".heic", ".heif"}


def new_job_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ImageFile:
    id: str
    filename: str
    data: bytes = field(repr=False)
    selected: bool = True
    result: Result | None = None
    error: str | None = None

    @property
    def original_size(self) -> int:
        return len(self.data)

    @property
    def processed(self) -> bool:
        return self.result is not None and self.result.success

    def to_job(self, options: Options) -> Job:
        return Job(id=self.id, image_bytes=self.data, filename=self.filename, options=options)


class FileRegistry:
    def __init__(self) -> None:
        self._files: dict[str, ImageFile] = {}

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, file_id: object) -> bool:
        return file_id in self._files

    def __iter__(self) -> Iterator[ImageFile]:
        return iter(list(self._files.values()))

    def add_bytes(self, filename: str, data: bytes | bytearray, file_id: str | None = None) -> ImageFile:
        if not data:
            raise ValueError(f"{filename}: empty file")
        fid = file_id or new_job_id()
        if fid in self._files:
            raise ValueError(f"duplicate file id {fid}")
        entry = ImageFile(id=fid, filename=filename, data=bytes(data))
        self._files[fid] = entry
        _logger.debug("registered: id=%s file=%s size=%s", fid, filename, entry.original_size)
        return entry

    def add_path(self, path: str | Path) -> ImageFile:
        p = Path(path)
        suffix = p.suffix.lower()
        if suffix in UPSTREAM_EXTS:
            raise ValueError(f"{p.name}: {suffix} must be converted to a standard format first")
        if suffix not in IMAGE_EXTS:
            raise ValueError(f"{p.name}: not a supported image file")
        return self.add_bytes(p.name, p.read_bytes())

    def get(self, file_id: str) -> ImageFile:
        return self._files[file_id]

    def remove(self, file_id: str) -> ImageFile:
        return self._files.pop(file_id)

    def ids(self) -> list[str]:
        return list(self._files)

    def set_result(self, result: Result) -> ImageFile | None:
        entry = self._files.get(result.id)
        if entry is None:
            return None
        if result.success:
            entry.result = result
            entry.error = None
        else:
            # A failed re-run keeps the last good output.
            entry.error = result.error
        return entry

    def set_selected(self, file_id: str, selected: bool) -> None:
        self._files[file_id].selected = bool(selected)

    def processed(self) -> list[ImageFile]:
        return [f for f in self._files.values() if f.processed]

    def selected_processed(self) -> list[ImageFile]:
        return [f for f in self._files.values() if f.processed and f.selected]

    def clear(self) -> None:
        self._files.clear()


class PreviewHandle:
    """Zero-copy views over one file's original and compressed bytes.

    Views must be released explicitly; after ``release`` any access through
    them raises ``ValueError``.
    """

    def __init__(self, original: bytes, compressed: bytes) -> None:
        self.original = memoryview(original)
        self.compressed = memoryview(compressed)

    @property
    def released(self) -> bool:
        try:
            self.original.nbytes  # noqa: B018
        except ValueError:
            return True
        return False

    def release(self) -> None:
        self.original.release()
        self.compressed.release()


class PreviewViews:
    def __init__(self) -> None:
        self._handles: dict[str, PreviewHandle] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, file_id: object) -> bool:
        return file_id in self._handles

    def acquire(self, entry: ImageFile) -> PreviewHandle:
        """Create views for ``entry``'s latest result, releasing superseded ones."""
        if entry.result is None or entry.result.compressed_bytes is None:
            raise ValueError(f"{entry.filename}: no compressed output to preview")
        self.release(entry.id)
        handle = PreviewHandle(entry.data, entry.result.compressed_bytes)
        self._handles[entry.id] = handle
        return handle

    def get(self, file_id: str) -> PreviewHandle | None:
        return self._handles.get(file_id)

    def release(self, file_id: str) -> bool:
        handle = self._handles.pop(file_id, None)
        if handle is None:
            return False
        handle.release()
        return True

    def release_all(self) -> int:
        count = len(self._handles)
        for handle in self._handles.values():
            handle.release()
        self._handles.clear()
        return count
