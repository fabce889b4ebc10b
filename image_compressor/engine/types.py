"""Job/Result payloads exchanged between the coordinator and worker processes.

Everything here is plain data and pickles cleanly, so it can cross the
process boundary unchanged. ``to_message``/``from_message`` convert to the
camelCase dict shape used by external callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

OutputFormat = Literal["jpeg", "png", "webp"]

FORMATS: tuple[str, ...] = ("jpeg", "png", "webp")
FORMAT_EXTENSIONS: dict[str, str] = {"jpeg": "jpg", "png": "png", "webp": "webp"}


@dataclass(frozen=True)
class Dimensions:
    width: int = 0
    height: int = 0

    def to_message(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}

    @classmethod
    def from_message(cls, data: dict[str, Any] | None) -> Dimensions:
        if not data:
            return cls()
        return cls(int(data.get("width", 0)), int(data.get("height", 0)))

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class Options:
    quality: float = 0.8
    max_width: int = 1920
    max_height: int = 1080
    format: OutputFormat = "jpeg"

    def __post_init__(self) -> None:
        if not 0.0 <= float(self.quality) <= 1.0:
            raise ValueError(f"quality must be within [0, 1], got {self.quality}")
        if int(self.max_width) <= 0 or int(self.max_height) <= 0:
            raise ValueError(f"max size must be positive, got {self.max_width}x{self.max_height}")
        if self.format not in FORMATS:
            raise ValueError(f"unsupported format {self.format!r}; expected one of {', '.join(FORMATS)}")

    @property
    def extension(self) -> str:
        return FORMAT_EXTENSIONS[self.format]

    def to_message(self) -> dict[str, Any]:
        return {
            "quality": self.quality,
            "maxWidth": self.max_width,
            "maxHeight": self.max_height,
            "format": self.format,
        }

    @classmethod
    def from_message(cls, data: dict[str, Any]) -> Options:
        return cls(
            quality=float(data["quality"]),
            max_width=int(data["maxWidth"]),
            max_height=int(data["maxHeight"]),
            format=data["format"],
        )


@dataclass(frozen=True)
class Job:
    id: str
    image_bytes: bytes = field(repr=False)
    filename: str
    options: Options

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "imageBytes": self.image_bytes,
            "filename": self.filename,
            "options": self.options.to_message(),
        }

    @classmethod
    def from_message(cls, data: dict[str, Any]) -> Job:
        return cls(
            id=str(data["id"]),
            image_bytes=bytes(data["imageBytes"]),
            filename=str(data.get("filename", "")),
            options=Options.from_message(data["options"]),
        )


@dataclass(frozen=True)
class Result:
    id: str
    success: bool
    filename: str = ""
    original_size: int = 0
    compressed_size: int = 0
    original_dimensions: Dimensions = Dimensions()
    compressed_dimensions: Dimensions = Dimensions()
    compressed_bytes: bytes | None = field(default=None, repr=False)
    error: str | None = None
    # Encoding the compressed bytes were written in.
    format: str | None = None

    @classmethod
    def failure(cls, job_id: str, filename: str, error: str, original_size: int = 0) -> Result:
        return cls(id=job_id, success=False, filename=filename, original_size=original_size, error=error)

    @property
    def saved_bytes(self) -> int:
        return self.original_size - self.compressed_size

    @property
    def compression_ratio(self) -> float:
        """Percentage of the original size removed (negative when the output grew)."""
        if not self.success or self.original_size <= 0:
            return 0.0
        return (1.0 - self.compressed_size / self.original_size) * 100.0

    def to_message(self) -> dict[str, Any]:
        msg: dict[str, Any] = {
            "id": self.id,
            "success": self.success,
            "originalSize": self.original_size,
            "compressedSize": self.compressed_size,
            "originalDimensions": self.original_dimensions.to_message(),
            "compressedDimensions": self.compressed_dimensions.to_message(),
            "filename": self.filename,
        }
        if self.success:
            msg["compressedBytes"] = self.compressed_bytes
            if self.format is not None:
                msg["format"] = self.format
        else:
            msg["error"] = self.error
        return msg

    @classmethod
    def from_message(cls, data: dict[str, Any]) -> Result:
        compressed = data.get("compressedBytes")
        return cls(
            id=str(data["id"]),
            success=bool(data["success"]),
            filename=str(data.get("filename", "")),
            original_size=int(data.get("originalSize", 0)),
            compressed_size=int(data.get("compressedSize", 0)),
            original_dimensions=Dimensions.from_message(data.get("originalDimensions")),
            compressed_dimensions=Dimensions.from_message(data.get("compressedDimensions")),
            compressed_bytes=bytes(compressed) if compressed is not None else None,
            error=data.get("error"),
            format=data.get("format"),
        )
