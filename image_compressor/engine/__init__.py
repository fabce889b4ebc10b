"""Compression engine - everything that does not need a GUI.

- Orientation parsing (orientation, binary_reader)
- Output geometry (planner)
- Per-image work inside worker processes (executor)
- Slot/queue bookkeeping (dispatcher) and the process pool (worker_pool)

Usage:
    from image_compressor.engine import compress_job, Job, Options

    result = compress_job(Job("id-1", data, "photo.jpg", Options(format="webp")))
"""

from .executor import compress_job, compress_message
from .orientation import read_orientation
from .planner import TransformPlan, plan_transform, scale_to_fit
from .types import Dimensions, Job, Options, Result

__all__ = [
    "Dimensions",
    "Job",
    "Options",
    "Result",
    "TransformPlan",
    "compress_job",
    "compress_message",
    "plan_transform",
    "read_orientation",
    "scale_to_fit",
]
