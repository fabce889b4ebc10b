"""Output geometry for a single image: bounding-box scale plus EXIF orientation."""

from __future__ import annotations

from dataclasses import dataclass

# (a, b, c, d, e, f): source (x, y) -> (a*x + c*y + e, b*x + d*y + f)
Affine = tuple[int, int, int, int, int, int]

IDENTITY: Affine = (1, 0, 0, 1, 0, 0)

# Codes 5-8 include a quarter turn and therefore swap the canvas axes.
_SWAPPING_CODES = frozenset({5, 6, 7, 8})


@dataclass(frozen=True)
class TransformPlan:
    orientation: int
    scaled_width: int
    scaled_height: int
    canvas_width: int
    canvas_height: int
    matrix: Affine

    @property
    def swaps_axes(self) -> bool:
        return self.orientation in _SWAPPING_CODES

    @property
    def is_identity(self) -> bool:
        return self.matrix == IDENTITY


def scale_to_fit(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    """Uniformly shrink (width, height) so neither side exceeds its bound.

    Dimensions already inside the box are returned unchanged; images are never
    enlarged.
    """
    if width <= max_width and height <= max_height:
        return width, height
    ratio = min(max_width / width, max_height / height)
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def orientation_matrix(orientation: int, width: int, height: int) -> Affine:
    """Matrix that draws a width x height image upright for ``orientation``."""
    w, h = width, height
    return {
        2: (-1, 0, 0, 1, w, 0),
        3: (-1, 0, 0, -1, w, h),
        4: (1, 0, 0, -1, 0, h),
        5: (0, 1, 1, 0, 0, 0),
        6: (0, 1, -1, 0, h, 0),
        7: (0, -1, -1, 0, h, w),
        8: (0, -1, 1, 0, 0, w),
    }.get(orientation, IDENTITY)


def plan_transform(width: int, height: int, orientation: int, max_width: int, max_height: int) -> TransformPlan:
    if width <= 0 or height <= 0:
        raise ValueError(f"invalid source dimensions: {width}x{height}")
    if max_width <= 0 or max_height <= 0:
        raise ValueError(f"invalid bounds: {max_width}x{max_height}")

    scaled_w, scaled_h = scale_to_fit(width, height, max_width, max_height)
    if orientation not in range(1, 9):
        orientation = 1
    if orientation in _SWAPPING_CODES:
        canvas_w, canvas_h = scaled_h, scaled_w
    else:
        canvas_w, canvas_h = scaled_w, scaled_h

    return TransformPlan(
        orientation=orientation,
        scaled_width=scaled_w,
        scaled_height=scaled_h,
        canvas_width=canvas_w,
        canvas_height=canvas_h,
        matrix=orientation_matrix(orientation, scaled_w, scaled_h),
    )
