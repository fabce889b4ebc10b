"""Batch coordinator: file table, dispatch and result bookkeeping.

Lives on the thread that created it (normally the main thread running a Qt
event loop). Worker results arrive as queued signals from ``WorkerPool`` so
all state changes happen on that one thread.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from PySide6.QtCore import QObject, Signal, Slot

from image_compressor.engine.dispatcher import BatchState, DispatchQueue, WorkerSlot
from image_compressor.engine.types import FORMAT_EXTENSIONS, Options, Result
from image_compressor.engine.worker_pool import WorkerPool
from image_compressor.logger import get_logger
from image_compressor.registry import FileRegistry, ImageFile, PreviewViews

_logger = get_logger("compressor")


def format_file_size(size_bytes: int) -> str:
    if size_bytes == 0:
        return "0 B"
    if size_bytes < 0:
        raise ValueError("size_bytes must be non-negative")
    size_name = ("B", "KB", "MB", "GB")
    value = float(size_bytes)
    i = 0
    while value >= 1024 and i < len(size_name) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 1):g} {size_name[i]}"


def compressed_filename(filename: str, fmt: str) -> str:
    """``photo.heic.jpg`` + webp -> ``photo.heic_compressed.webp``."""
    stem = filename.rsplit(".", 1)[0] if "." in filename.lstrip(".") else filename
    return f"{stem}_compressed.{FORMAT_EXTENSIONS[fmt]}"


def describe_result(result: Result) -> str:
    if not result.success:
        return f"[X] {result.filename}: {result.error or 'unknown error'}"
    return (
        f"[✓] {result.filename} {result.original_dimensions} -> {result.compressed_dimensions} "
        f"{format_file_size(result.original_size)} -> {format_file_size(result.compressed_size)} "
        f"({result.compression_ratio:.1f}%)"
    )


class BatchCompressor(QObject):
    progress = Signal(int, int)  # completed, total
    file_done = Signal(str)  # file id
    file_failed = Signal(str, str)  # filename, error
    batch_finished = Signal(int)  # result count
    notice = Signal(str)

    def __init__(
        self,
        workers: int | None = None,
        pool: WorkerPool | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.registry = FileRegistry()
        self.previews = PreviewViews()
        self._pool = pool if pool is not None else WorkerPool(workers, parent=self)
        self._pool.job_finished.connect(self._on_job_finished)
        self._pool.worker_fault.connect(self._on_worker_fault)
        self._pool.worker_restarted.connect(self._on_worker_restarted)
        self._queue = DispatchQueue(
            self._pool.workers,
            self._send,
            on_result=self._on_result,
            on_finished=self._on_finished,
            name_of=self._filename_of,
        )
        self._options: Options | None = None
        _logger.debug("BatchCompressor init: workers=%s", self._pool.size)

    # ---- state -----------------------------------------------------
    @property
    def state(self) -> BatchState:
        return self._queue.state

    @property
    def running(self) -> bool:
        return self._queue.state is not BatchState.IDLE

    @property
    def dispatch(self) -> DispatchQueue:
        return self._queue

    @property
    def options(self) -> Options | None:
        return self._options

    # ---- input -----------------------------------------------------
    def add_files(self, paths: Iterable[str | Path]) -> list[ImageFile]:
        added: list[ImageFile] = []
        for path in paths:
            try:
                added.append(self.registry.add_path(path))
            except (OSError, ValueError) as e:
                _logger.warning("skip input %s: %s", path, e)
                self.notice.emit(str(e))
        return added

    def add_bytes(self, filename: str, data: bytes) -> ImageFile:
        return self.registry.add_bytes(filename, data)

    # ---- batch control ---------------------------------------------
    def start(self, options: Options) -> int:
        """Compress every registered file with ``options``.

        While a batch is running, only files not yet part of it are appended
        (with the running batch's options). Returns the number queued.
        """
        if not len(self.registry):
            return 0
        if self.running:
            added = self._queue.submit(self.registry.ids())
            if added:
                self.progress.emit(self._queue.completed_count, self._queue.submitted_count)
            return added

        self._options = options
        ids = self.registry.ids()
        _logger.info("compressing %s file(s) as %s q=%s", len(ids), options.format, options.quality)
        self.progress.emit(0, len(ids))
        return self._queue.submit(ids)

    def clear(self) -> None:
        """Forget all files and queued work; in-flight results are dropped on arrival."""
        released = self.previews.release_all()
        dropped = self._queue.clear()
        self.registry.clear()
        _logger.debug("clear: previews=%s dropped=%s", released, len(dropped))

    def shutdown(self) -> None:
        self.previews.release_all()
        self._pool.shutdown()

    # ---- output ----------------------------------------------------
    def write_outputs(self, out_dir: str | Path, selected_only: bool = False) -> list[Path]:
        if self._options is None:
            return []
        folder = Path(out_dir)
        folder.mkdir(parents=True, exist_ok=True)
        entries = self.registry.selected_processed() if selected_only else self.registry.processed()
        written: list[Path] = []
        for entry in entries:
            result = entry.result
            if result is None or result.compressed_bytes is None:
                continue
            # A kept result from an earlier batch may use a different format.
            fmt = result.format or self._options.format
            target = folder / compressed_filename(entry.filename, fmt)
            target.write_bytes(result.compressed_bytes)
            written.append(target)
        return written

    # ---- dispatch plumbing -----------------------------------------
    def _send(self, slot: WorkerSlot, job_id: str) -> None:
        if self._options is None:
            raise RuntimeError("no options for current batch")
        entry = self.registry.get(job_id)
        self._pool.submit(slot.index, entry.to_job(self._options))

    @Slot(int, object)
    def _on_job_finished(self, slot_index: int, result: Result) -> None:
        self._queue.complete(slot_index, result)

    @Slot(int, str, str)
    def _on_worker_fault(self, slot_index: int, job_id: str, message: str) -> None:
        self.notice.emit(f"image worker failed: {message}")
        self._queue.fail_slot(slot_index, message)

    @Slot(int, str)
    def _on_worker_restarted(self, slot_index: int, message: str) -> None:
        self.notice.emit(f"image worker {slot_index} restarted: {message}")

    def _filename_of(self, file_id: str) -> str:
        return self.registry.get(file_id).filename

    def _on_result(self, result: Result) -> None:
        entry = self.registry.set_result(result)
        filename = result.filename or (entry.filename if entry is not None else result.id)
        if result.success and entry is not None:
            self.previews.acquire(entry)
            _logger.debug("%s", describe_result(result))
            self.file_done.emit(result.id)
        else:
            _logger.warning("failed to process %s: %s", filename, result.error)
            self.file_failed.emit(filename, result.error or "unknown error")
        self.progress.emit(self._queue.completed_count, self._queue.submitted_count)

    def _on_finished(self, total: int) -> None:
        _logger.info("batch finished: %s result(s)", total)
        self.batch_finished.emit(total)
