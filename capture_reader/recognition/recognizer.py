"""Text recognition capability and its Tesseract implementation."""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

import cv2
import numpy as np
import pytesseract

# BCP-47 language hints mapped to Tesseract traineddata names.
TESSERACT_LANGUAGES = {
    "en": "eng",
    "en-US": "eng",
    "en-GB": "eng",
    "ja": "jpn",
    "ja-JP": "jpn",
}
DEFAULT_TESSERACT_LANGUAGE = "eng"
DIGIT_WHITELIST = "0123456789"


@runtime_checkable
class TextRecognizer(Protocol):
    """Recognize text in an image region.

    Blocking; called on worker threads. Returns the best candidate string,
    or ``None`` when nothing was recognized.
    """

    def recognize(self, image: np.ndarray, language: Optional[str] = None) -> Optional[str]:
        ...


class TesseractRecognizer:
    """Single-line digit recognition with pytesseract.

    Crops are converted to grayscale, upscaled and binarized with Otsu's
    threshold before being handed to Tesseract.
    """

    def __init__(
        self,
        *,
        tesseract_cmd: Optional[str] = None,
        page_segmentation_mode: int = 7,
        whitelist: Optional[str] = DIGIT_WHITELIST,
        upscale: float = 2.0,
        invert: bool = False,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self._psm = page_segmentation_mode
        self._whitelist = whitelist
        self._upscale = upscale
        self._invert = invert

    def recognize(self, image: np.ndarray, language: Optional[str] = None) -> Optional[str]:
        prepared = self.preprocess(image)
        text = pytesseract.image_to_string(prepared, lang=self.tesseract_language(language), config=self._config())
        for line in text.splitlines():
            candidate = line.strip()
            if candidate:
                return candidate
        return None

    def preprocess(self, image: np.ndarray) -> np.ndarray:
        if image.ndim == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        else:
            gray = image
        if self._upscale and self._upscale != 1.0:
            gray = cv2.resize(gray, None, fx=self._upscale, fy=self._upscale, interpolation=cv2.INTER_CUBIC)
        mode = cv2.THRESH_BINARY_INV if self._invert else cv2.THRESH_BINARY
        _, binary = cv2.threshold(gray, 0, 255, mode | cv2.THRESH_OTSU)
        return binary

    @staticmethod
    def tesseract_language(language: Optional[str]) -> str:
        if not language:
            return DEFAULT_TESSERACT_LANGUAGE
        return TESSERACT_LANGUAGES.get(language, TESSERACT_LANGUAGES.get(language.split("-")[0], DEFAULT_TESSERACT_LANGUAGE))

    def _config(self) -> str:
        parts = [f"--psm {int(self._psm)}"]
        if self._whitelist:
            parts.append(f"-c tessedit_char_whitelist={self._whitelist}")
        return " ".join(parts)


__all__ = ["TextRecognizer", "TesseractRecognizer", "TESSERACT_LANGUAGES"]
