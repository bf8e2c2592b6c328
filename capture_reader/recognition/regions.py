"""Static region layout and the frame cropper that applies it."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

import numpy as np

from ..capture.frame import CapturedFrame, Rect
from ..core.logging_utils import LoggerLike, ensure_structured_logger
from ..errors import LayoutError


class ReadingField(str, Enum):
    """The digits making up one reading."""

    TENS_DIGIT = "tens_digit"
    PRIMARY_DIGIT = "primary_digit"
    FRACTIONAL_DIGIT = "fractional_digit"


@dataclass(frozen=True, slots=True)
class RegionSpec:
    field: ReadingField
    rect: Rect
    language: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RegionLayout:
    """Named crop rectangles in absolute frame pixels.

    ``reference_size`` is the frame size the rectangles were measured on.
    Rectangles are never rescaled; frames of another size are cropped at the
    same coordinates and the mismatch is logged once per size.
    """

    reference_size: tuple[int, int]
    regions: tuple[RegionSpec, ...]

    def __post_init__(self) -> None:
        fields = [spec.field for spec in self.regions]
        if len(set(fields)) != len(fields):
            raise LayoutError("each field may appear only once in a layout")
        for spec in self.regions:
            if spec.rect.is_empty or spec.rect.x < 0 or spec.rect.y < 0:
                raise LayoutError(f"invalid rectangle for {spec.field.value}: {spec.rect}")

    def __iter__(self) -> Iterator[RegionSpec]:
        return iter(self.regions)

    @property
    def fields(self) -> tuple[ReadingField, ...]:
        return tuple(spec.field for spec in self.regions)

    def spec_for(self, field: ReadingField) -> Optional[RegionSpec]:
        for spec in self.regions:
            if spec.field is field:
                return spec
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RegionLayout":
        """Parse ``{"reference_size": [w, h], "regions": {field: {x, y, width, height, language?}}}``."""
        try:
            width, height = data.get("reference_size", DEFAULT_REFERENCE_SIZE)
            regions = []
            for name, entry in data["regions"].items():
                regions.append(
                    RegionSpec(
                        field=ReadingField(name),
                        rect=Rect.from_value(entry),
                        language=entry.get("language") if isinstance(entry, Mapping) else None,
                    )
                )
        except (KeyError, TypeError, ValueError) as exc:
            if isinstance(exc, LayoutError):
                raise
            raise LayoutError(f"malformed region layout: {exc}") from exc
        return cls(reference_size=(int(width), int(height)), regions=tuple(regions))

    def to_dict(self) -> dict[str, Any]:
        regions: dict[str, Any] = {}
        for spec in self.regions:
            entry: dict[str, Any] = {
                "x": spec.rect.x,
                "y": spec.rect.y,
                "width": spec.rect.width,
                "height": spec.rect.height,
            }
            if spec.language:
                entry["language"] = spec.language
            regions[spec.field.value] = entry
        return {"reference_size": list(self.reference_size), "regions": regions}


DEFAULT_REFERENCE_SIZE = (1920, 1080)

DEFAULT_LAYOUT = RegionLayout(
    reference_size=DEFAULT_REFERENCE_SIZE,
    regions=(
        RegionSpec(ReadingField.TENS_DIGIT, Rect(330, 280, 130, 140)),
        RegionSpec(ReadingField.PRIMARY_DIGIT, Rect(500, 280, 90, 140)),
        RegionSpec(ReadingField.FRACTIONAL_DIGIT, Rect(720, 280, 90, 140), language="ja-JP"),
    ),
)


def load_layout(path: Path) -> RegionLayout:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise LayoutError(f"cannot read region layout {path}: {exc}") from exc
    return RegionLayout.from_dict(data)


class RegionExtractor:
    """Crops every region of a layout out of a frame."""

    def __init__(self, layout: RegionLayout = DEFAULT_LAYOUT, logger: LoggerLike = None) -> None:
        self._layout = layout
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._warned: set[tuple[ReadingField, tuple[int, int]]] = set()
        self._mismatched_sizes: set[tuple[int, int]] = set()

    @property
    def layout(self) -> RegionLayout:
        return self._layout

    def extract(self, frame: CapturedFrame) -> dict[ReadingField, np.ndarray]:
        """Return one sub-image per region that fits inside the frame."""
        if not frame.is_valid:
            return {}

        width, height = frame.image_size
        if (width, height) != self._layout.reference_size:
            self._note_size_mismatch((width, height))
        bounds = Rect(0, 0, width, height)
        crops: dict[ReadingField, np.ndarray] = {}
        for spec in self._layout:
            if not bounds.contains(spec.rect):
                self._warn_out_of_bounds(spec, (width, height))
                continue
            rect = spec.rect
            crops[spec.field] = frame.data[rect.y:rect.bottom, rect.x:rect.right].copy()
        return crops

    def _note_size_mismatch(self, size: tuple[int, int]) -> None:
        if size in self._mismatched_sizes:
            return
        self._mismatched_sizes.add(size)
        self._logger.info(
            "Frame is %dx%d but the region layout was measured on %dx%d; regions are cropped unscaled",
            *size,
            *self._layout.reference_size,
        )

    def _warn_out_of_bounds(self, spec: RegionSpec, size: tuple[int, int]) -> None:
        key = (spec.field, size)
        if key in self._warned:
            self._logger.debug("Region %s outside %dx%d frame", spec.field.value, *size)
            return
        self._warned.add(key)
        self._logger.warning(
            "Region %s %s does not fit in %dx%d frame; field will default",
            spec.field.value,
            spec.rect,
            *size,
        )


__all__ = [
    "DEFAULT_LAYOUT",
    "DEFAULT_REFERENCE_SIZE",
    "ReadingField",
    "RegionExtractor",
    "RegionLayout",
    "RegionSpec",
    "load_layout",
]
