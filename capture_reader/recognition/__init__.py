"""Recognition pipeline: region cropping, OCR jobs and per-frame aggregation."""

from .aggregator import ReadingAggregator
from .recognizer import TesseractRecognizer, TextRecognizer
from .regions import (
    DEFAULT_LAYOUT,
    ReadingField,
    RegionExtractor,
    RegionLayout,
    RegionSpec,
    load_layout,
)
from .results import CompletedReading, Reading, RecognitionResult
from .runner import RecognitionJobRunner

__all__ = [
    "CompletedReading",
    "DEFAULT_LAYOUT",
    "Reading",
    "ReadingAggregator",
    "ReadingField",
    "RecognitionJobRunner",
    "RecognitionResult",
    "RegionExtractor",
    "RegionLayout",
    "RegionSpec",
    "TesseractRecognizer",
    "TextRecognizer",
    "load_layout",
]
