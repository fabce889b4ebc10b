"""Per-image compression step run inside worker processes.

``compress_job`` must stay a pickleable top-level function: the dispatcher ships
it to a ``ProcessPoolExecutor`` together with a ``Job``.
"""

from __future__ import annotations

import contextlib
from typing import Any

import numpy as np

from image_compressor.logger import get_logger

from .orientation import read_orientation
from .planner import Affine, TransformPlan, plan_transform
from .types import Dimensions, Job, Options, Result

_logger = get_logger("executor")

_SAVE_SUFFIX = {"jpeg": ".jpg", "png": ".png", "webp": ".webp"}
_INTERPRETATION = {1: "b-w", 2: "b-w", 3: "srgb", 4: "srgb"}
_BLACK = [0, 0, 0]


_pyvips: Any | None = None


def _get_pyvips_module() -> Any:
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        # Configure pyvips caches to avoid memory growth in long-lived workers
        with contextlib.suppress(Exception):
            pyvips.cache_set_max(0)
            pyvips.cache_set_max_mem(0)
            pyvips.cache_set_max_files(0)
        _pyvips = pyvips
    return _pyvips


def quality_to_q(quality: float) -> int:
    """Map a [0, 1] quality fraction onto libvips' 1-100 ``Q`` scale."""
    return max(1, min(100, round(quality * 100)))


def apply_matrix(pixels: np.ndarray, matrix: Affine) -> np.ndarray:
    """Apply an axis-aligned orientation matrix to an (H, W, bands) array.

    Only the signs and the placement of the non-zero entries matter; the
    translation terms merely keep the result on the canvas.
    """
    a, b, c, d, _e, _f = matrix
    if a == 0 and d == 0:
        # Quarter turn: output row follows source x, output column follows source y.
        pixels = np.swapaxes(pixels, 0, 1)
        flip_x, flip_y = c < 0, b < 0
    else:
        flip_x, flip_y = a < 0, d < 0
    if flip_x:
        pixels = pixels[:, ::-1]
    if flip_y:
        pixels = pixels[::-1]
    return np.ascontiguousarray(pixels)


def _decode(data: bytes) -> Any:
    pyvips = _get_pyvips_module()
    # No autorotate: orientation is applied explicitly from the parsed EXIF tag.
    return pyvips.Image.new_from_buffer(data, "")


def _prepare_bands(image: Any, fmt: str) -> Any:
    pyvips = _get_pyvips_module()
    with contextlib.suppress(Exception):
        image = image.colourspace("srgb")
    if fmt == "jpeg" and image.hasalpha():
        image = image.flatten(background=_BLACK)
    if image.bands > 4:
        image = image.extract_band(0, n=4 if image.hasalpha() and fmt != "jpeg" else 3)
    if image.bands == 1 and fmt == "jpeg":
        image = pyvips.Image.bandjoin([image] * 3)
    if image.format != "uchar":
        image = image.cast("uchar")
    return image


def _to_array(image: Any) -> np.ndarray:
    mem = image.write_to_memory()
    return np.frombuffer(mem, dtype=np.uint8).reshape(image.height, image.width, image.bands)


def _from_array(pixels: np.ndarray) -> Any:
    pyvips = _get_pyvips_module()
    height, width, bands = pixels.shape
    image = pyvips.Image.new_from_memory(pixels.tobytes(), width, height, bands, "uchar")
    return image.copy(interpretation=_INTERPRETATION.get(bands, "multiband"))


def _render(image: Any, plan: TransformPlan, fmt: str) -> np.ndarray:
    if (plan.scaled_width, plan.scaled_height) != (image.width, image.height):
        # no_rotate: thumbnail_image would otherwise apply the EXIF tag before the matrix does.
        image = image.thumbnail_image(
            plan.scaled_width, height=plan.scaled_height, size="force", no_rotate=True
        )
    image = _prepare_bands(image, fmt)
    pixels = _to_array(image)
    if not plan.is_identity:
        pixels = apply_matrix(pixels, plan.matrix)
    if pixels.shape[1] != plan.canvas_width or pixels.shape[0] != plan.canvas_height:
        raise RuntimeError(
            f"transform produced {pixels.shape[1]}x{pixels.shape[0]}, "
            f"expected {plan.canvas_width}x{plan.canvas_height}"
        )
    return pixels


def _encode(pixels: np.ndarray, options: Options) -> bytes:
    image = _from_array(pixels)
    suffix = _SAVE_SUFFIX[options.format]
    if options.format == "png":
        # Lossless target: quality does not apply.
        return image.write_to_buffer(suffix)
    return image.write_to_buffer(suffix, Q=quality_to_q(options.quality))


def compress_job(job: Job) -> Result:
    """Decode, orient, resize and re-encode one image.

    Never raises: any decode/transform/encode problem is reported through a
    failed ``Result`` so one bad file cannot take the worker down.
    """
    original_size = len(job.image_bytes)
    try:
        image = _decode(job.image_bytes)
        src_w, src_h = image.width, image.height
        orientation = read_orientation(job.image_bytes)
        plan = plan_transform(src_w, src_h, orientation, job.options.max_width, job.options.max_height)
        _logger.debug(
            "compress: id=%s file=%s src=%sx%s orientation=%s canvas=%sx%s",
            job.id,
            job.filename,
            src_w,
            src_h,
            orientation,
            plan.canvas_width,
            plan.canvas_height,
        )
        pixels = _render(image, plan, job.options.format)
        out = _encode(pixels, job.options)
    except Exception as e:
        _logger.debug("compress failed: id=%s file=%s err=%s", job.id, job.filename, e)
        message = str(e).strip() or type(e).__name__
        return Result.failure(job.id, job.filename, message, original_size=original_size)

    return Result(
        id=job.id,
        success=True,
        filename=job.filename,
        original_size=original_size,
        compressed_size=len(out),
        original_dimensions=Dimensions(src_w, src_h),
        compressed_dimensions=Dimensions(plan.canvas_width, plan.canvas_height),
        compressed_bytes=bytes(out),
        format=job.options.format,
    )


def compress_message(message: dict[str, Any]) -> dict[str, Any]:
    """Message-level entry point: Job message in, Result message out."""
    try:
        job = Job.from_message(message)
    except (KeyError, TypeError, ValueError) as e:
        job_id = str(message.get("id", "")) if isinstance(message, dict) else ""
        filename = str(message.get("filename", "")) if isinstance(message, dict) else ""
        return Result.failure(job_id, filename, f"invalid job message: {e}").to_message()
    return compress_job(job).to_message()
