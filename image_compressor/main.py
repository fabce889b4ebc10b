import os
import sys
from pathlib import Path

from PySide6.QtCore import QCoreApplication, QTimer

from image_compressor.compressor import BatchCompressor, describe_result, format_file_size
from image_compressor.engine.types import FORMATS, Result
from image_compressor.logger import get_logger
from image_compressor.registry import IMAGE_EXTS
from image_compressor.settings_manager import SettingsManager

# --- CLI logging options -----------------------------------------------------
# Parsed before anything logs so the env overrides (IMAGE_COMPRESSOR_LOG_LEVEL,
# IMAGE_COMPRESSOR_LOG_CATS) apply to every module logger.


def _apply_cli_logging_options(argv: list[str]) -> None:
    import argparse

    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--log-level", help="Set log level")
    parser.add_argument("--log-cats", help="Set log categories")
    args, _ = parser.parse_known_args(argv)
    if args.log_level:
        os.environ["IMAGE_COMPRESSOR_LOG_LEVEL"] = args.log_level
    if args.log_cats:
        os.environ["IMAGE_COMPRESSOR_LOG_CATS"] = args.log_cats


def _build_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="image-compressor",
        description="Resize, auto-orient and re-encode images in parallel.",
    )
    parser.add_argument("inputs", nargs="+", help="Image files or folders")
    parser.add_argument("-o", "--out", required=True, help="Output folder")
    parser.add_argument("--quality", type=float, help="Quality in [0, 1] (ignored for png)")
    parser.add_argument("--max-width", type=int, help="Maximum output width")
    parser.add_argument("--max-height", type=int, help="Maximum output height")
    parser.add_argument("--format", choices=[*FORMATS, "jpg"], help="Output format")
    parser.add_argument("--workers", type=int, help="Worker processes (default: CPU count)")
    parser.add_argument("--settings", help="JSON settings file with defaults")
    parser.add_argument("--log-level", help="Set log level")
    parser.add_argument("--log-cats", help="Set log categories")
    return parser


def _expand_inputs(inputs: list[str]) -> list[Path]:
    paths: list[Path] = []
    for raw in inputs:
        p = Path(raw)
        if p.is_dir():
            paths.extend(sorted(c for c in p.iterdir() if c.is_file() and c.suffix.lower() in IMAGE_EXTS))
        else:
            paths.append(p)
    return paths


def run(argv: list[str] | None = None) -> int:
    """Console entrypoint. Returns 0 when every file compressed, 1 otherwise."""
    from multiprocessing import freeze_support

    freeze_support()

    if argv is None:
        argv = sys.argv[1:]
    _apply_cli_logging_options(argv)
    logger = get_logger("main")
    args = _build_parser().parse_args(argv)

    settings = SettingsManager(args.settings)
    if args.workers is not None:
        settings.data["workers"] = args.workers
    try:
        options = settings.options(
            quality=args.quality,
            max_width=args.max_width,
            max_height=args.max_height,
            format=args.format,
        )
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    app = QCoreApplication.instance() or QCoreApplication([sys.argv[0]])
    compressor = BatchCompressor(workers=settings.worker_count())
    failures: list[str] = []

    def _on_done(file_id: str) -> None:
        result = compressor.registry.get(file_id).result
        if result is not None:
            print(describe_result(result))

    def _on_failed(name: str, error: str) -> None:
        failures.append(name)
        print(describe_result(Result.failure("", name, error)))

    compressor.notice.connect(lambda msg: print(f"[!] {msg}", file=sys.stderr))
    compressor.file_done.connect(_on_done)
    compressor.file_failed.connect(_on_failed)
    compressor.batch_finished.connect(lambda _total: app.quit())

    compressor.add_files(_expand_inputs(args.inputs))
    total = len(compressor.registry)
    if total == 0:
        print("no images to compress", file=sys.stderr)
        compressor.shutdown()
        return 1

    # Start once the event loop is running so queued worker signals are delivered.
    QTimer.singleShot(0, lambda: compressor.start(options))
    try:
        app.exec()
        written = compressor.write_outputs(args.out)
    finally:
        compressor.shutdown()

    saved = sum(f.result.saved_bytes for f in compressor.registry.processed() if f.result is not None)
    logger.info("wrote %s file(s) to %s", len(written), args.out)
    print(f"{len(written)}/{total} compressed, saved {format_file_size(max(saved, 0))}")
    return 0 if not failures and len(written) == total else 1


if __name__ == "__main__":
    sys.exit(run())
