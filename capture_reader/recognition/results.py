"""Recognition results and the composite reading built from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from .regions import ReadingField

DEFAULT_FIELD_VALUE = "0"
REQUIRED_FIELDS = (
    ReadingField.TENS_DIGIT,
    ReadingField.PRIMARY_DIGIT,
    ReadingField.FRACTIONAL_DIGIT,
)


@dataclass(frozen=True, slots=True)
class RecognitionResult:
    """Outcome of one recognition job for one (frame, field) pair."""

    frame_id: int
    field: ReadingField
    value: str
    success: bool

    @classmethod
    def failed(cls, frame_id: int, field: ReadingField) -> "RecognitionResult":
        return cls(frame_id=frame_id, field=field, value=DEFAULT_FIELD_VALUE, success=False)


def normalize_value(value: Optional[str]) -> str:
    """Strip recognizer output; blank becomes the field default."""
    if value is None:
        return DEFAULT_FIELD_VALUE
    text = "".join(value.split())
    return text or DEFAULT_FIELD_VALUE


@dataclass(frozen=True, slots=True)
class Reading:
    """Exactly the required fields, each defaulting to ``"0"``."""

    values: Mapping[ReadingField, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown = set(self.values) - set(REQUIRED_FIELDS)
        if unknown:
            raise ValueError(f"unexpected reading fields: {sorted(map(str, unknown))}")
        complete = {name: self.values.get(name, DEFAULT_FIELD_VALUE) for name in REQUIRED_FIELDS}
        object.__setattr__(self, "values", MappingProxyType(complete))

    def __getitem__(self, name: ReadingField) -> str:
        return self.values[name]

    @property
    def display_string(self) -> str:
        return (
            self.values[ReadingField.TENS_DIGIT]
            + self.values[ReadingField.PRIMARY_DIGIT]
            + "."
            + self.values[ReadingField.FRACTIONAL_DIGIT]
        )


@dataclass(frozen=True, slots=True)
class CompletedReading:
    frame_id: int
    reading: Reading
    timed_out: bool = False

    @property
    def display_string(self) -> str:
        return self.reading.display_string


__all__ = [
    "CompletedReading",
    "DEFAULT_FIELD_VALUE",
    "REQUIRED_FIELDS",
    "Reading",
    "RecognitionResult",
    "normalize_value",
]
