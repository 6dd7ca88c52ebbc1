"""Text detection and removal ahead of structural analysis.

Text recognition itself is delegated to an OCR engine. Without one, dark
connected components with text-like proportions are reported as anonymous
low-confidence text regions.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

import numpy as np
from scipy import ndimage

from .errors import StageFailure
from .models import BoundingBox, TextRegion
from .preprocessing import preprocess_for_ocr
from .raster import RasterBuffer

logger = logging.getLogger(__name__)

DIMENSION_PATTERN = re.compile(r"^\d+[.']?\s*\d*\"?\s*(ft|in|m|cm|mm)?$", re.IGNORECASE)
ANNOTATION_PATTERN = re.compile(r"^(note|label|title|annotation|desc|description)", re.IGNORECASE)
LABEL_PATTERN = re.compile(r"^(room|kitchen|bedroom|bathroom|living|office|hall|entry)", re.IGNORECASE)

DARK_INTENSITY = 100
HEURISTIC_CONFIDENCE = 0.5
MAX_GLYPH_HOLE = 400  # enclosed background pixels; larger holes belong to outlines


@dataclass(frozen=True)
class OCRWord:
    """A recognised word; ``confidence`` is on the OCR engine's 0-100 scale."""

    text: str
    confidence: float
    bbox: BoundingBox


class OCREngine(Protocol):
    def recognize(self, raster: RasterBuffer) -> List[OCRWord]:
        ...


class TesseractOCREngine:
    """OCR through the Tesseract binary via pytesseract.

    Install with the ``ocr`` extra and make sure ``tesseract`` is on PATH.
    """

    def __init__(self, lang: str = "eng"):
        try:
            import pytesseract
        except ImportError as exc:
            raise StageFailure(
                "pytesseract is not installed; install floor-plan-extractor[ocr]",
                stage="text_filtering",
            ) from exc
        self._pytesseract = pytesseract
        self.lang = lang

    def recognize(self, raster: RasterBuffer) -> List[OCRWord]:
        tess = self._pytesseract
        try:
            data = tess.image_to_data(raster.intensity(), lang=self.lang, output_type=tess.Output.DICT)
        except (tess.TesseractError, tess.TesseractNotFoundError, OSError) as exc:
            raise StageFailure(f"OCR failed: {exc}", stage="text_filtering") from exc

        words = []
        for i, text in enumerate(data["text"]):
            confidence = float(data["conf"][i])
            if not text.strip() or confidence < 0:
                continue
            words.append(
                OCRWord(
                    text=text.strip(),
                    confidence=confidence,
                    bbox=BoundingBox(
                        x=int(data["left"][i]),
                        y=int(data["top"][i]),
                        width=int(data["width"][i]),
                        height=int(data["height"][i]),
                    ),
                )
            )
        return words


@dataclass
class TextFilterResult:
    cleaned: RasterBuffer
    text_regions: List[TextRegion]
    mask: np.ndarray  # boolean, True inside text regions
    confidence: float


def is_dimension_text(text: str) -> bool:
    """True for measurements such as ``12'6"``, ``3.5 m`` or ``450mm``."""
    return bool(DIMENSION_PATTERN.match(text.strip()))


def is_annotation_text(text: str) -> bool:
    return bool(ANNOTATION_PATTERN.match(text)) or len(text) > 20


def is_label_text(text: str) -> bool:
    return bool(LABEL_PATTERN.match(text)) and len(text) < 20


def estimate_font_size(height: float) -> float:
    return max(8.0, min(72.0, height * 0.8))


def is_text_shaped(width: int, height: int) -> bool:
    """Plausible proportions for a line of text."""
    if height <= 0:
        return False
    aspect = width / height
    return 5 < width < 500 and 5 < height < 100 and 0.5 < aspect < 20


def regions_from_words(words: Sequence[OCRWord], min_confidence: float = 30) -> List[TextRegion]:
    regions = []
    for word in words:
        if word.confidence < min_confidence:
            continue
        regions.append(
            TextRegion(
                id=f"text_{len(regions)}",
                text=word.text,
                confidence=min(1.0, max(0.0, word.confidence / 100.0)),
                bbox=word.bbox,
                font_size=estimate_font_size(word.bbox.height),
                is_dimension=is_dimension_text(word.text),
                is_annotation=is_annotation_text(word.text),
                is_label=is_label_text(word.text),
            )
        )
    return regions


def detect_text_heuristically(
    raster: RasterBuffer,
    dark_threshold: int = DARK_INTENSITY,
    min_pixels: int = 10,
    max_pixels: int = 5000,
    max_hole_pixels: int = MAX_GLYPH_HOLE,
) -> List[TextRegion]:
    """Find text-like dark blobs without OCR.

    Args:
        raster: Grayscale raster
        dark_threshold: Pixels darker than this may belong to text
        min_pixels: Smallest component considered
        max_pixels: Larger components are structure, not text
        max_hole_pixels: Components enclosing more background than this are
            closed outlines such as rooms or symbols, not glyphs

    Returns:
        Text regions with placeholder text and confidence 0.5
    """
    dark = raster.intensity() < dark_threshold
    labeled, num_features = ndimage.label(dark)
    if num_features == 0:
        return []

    sizes = np.bincount(labeled.ravel())
    regions = []
    for index, slices in enumerate(ndimage.find_objects(labeled), start=1):
        if slices is None or not (min_pixels <= sizes[index] <= max_pixels):
            continue
        rows, cols = slices
        width = cols.stop - cols.start
        height = rows.stop - rows.start
        if not is_text_shaped(width, height):
            continue
        component = labeled[slices] == index
        hole = int(ndimage.binary_fill_holes(component).sum()) - int(sizes[index])
        if hole > max_hole_pixels:
            continue

        regions.append(
            TextRegion(
                id=f"heuristic_{len(regions)}",
                text="[detected]",
                confidence=HEURISTIC_CONFIDENCE,
                bbox=BoundingBox(x=cols.start, y=rows.start, width=width, height=height),
                font_size=max(8.0, float(height)),
                is_annotation=True,
            )
        )

    logger.debug("Heuristic text detection found %d of %d dark components", len(regions), num_features)
    return regions


def create_text_mask(width: int, height: int, regions: Sequence[TextRegion]) -> np.ndarray:
    mask = np.zeros((height, width), dtype=bool)
    for region in regions:
        box = region.bbox
        mask[max(0, box.y):max(0, box.bottom), max(0, box.x):max(0, box.right)] = True
    return mask


def estimate_background(raster: RasterBuffer, bbox: BoundingBox, margin: int = 5) -> int:
    """Mean intensity of the ring of ``margin`` pixels around a box.

    Pixels inside the box are excluded. Returns white when the ring lies
    entirely outside the raster.
    """
    intensity = raster.intensity()
    x1 = max(0, bbox.x - margin)
    y1 = max(0, bbox.y - margin)
    x2 = min(raster.width, bbox.right + margin)
    y2 = min(raster.height, bbox.bottom + margin)
    if x1 >= x2 or y1 >= y2:
        return 255

    window = intensity[y1:y2, x1:x2].astype(np.float64)
    ring = np.ones(window.shape, dtype=bool)
    ring[
        max(0, bbox.y - y1):max(0, bbox.bottom - y1),
        max(0, bbox.x - x1):max(0, bbox.right - x1),
    ] = False
    if not ring.any():
        return 255
    return int(round(window[ring].mean()))


def remove_text_regions(
    raster: RasterBuffer,
    regions: Sequence[TextRegion],
    preserve_dimensions: bool = False,
) -> RasterBuffer:
    """Repaint text regions with their surrounding background intensity.

    Backgrounds are estimated on the input raster, so overlapping regions do
    not pick up each other's repainting.
    """
    cleaned = raster.to_rgba()
    pixels = cleaned.pixels
    for region in regions:
        if preserve_dimensions and region.is_dimension:
            continue
        box = region.bbox
        value = estimate_background(raster, box)
        y1, y2 = max(0, box.y), max(0, box.bottom)
        x1, x2 = max(0, box.x), max(0, box.right)
        pixels[y1:y2, x1:x2, :3] = value
        pixels[y1:y2, x1:x2, 3] = 255
    return cleaned


def overall_confidence(regions: Sequence[TextRegion]) -> float:
    if not regions:
        return 0.0
    return sum(r.confidence for r in regions) / len(regions)


class TextRegionFilter:
    """Finds text on a plan and masks or removes it.

    Args:
        ocr_engine: Object with a ``recognize(raster)`` method returning
            ``OCRWord`` items; the heuristic detector is used when None
    """

    def __init__(self, ocr_engine: Optional[OCREngine] = None):
        self.ocr_engine = ocr_engine

    def detect(self, raster: RasterBuffer, enable_ocr: bool = True, min_confidence: float = 30) -> List[TextRegion]:
        prepared = preprocess_for_ocr(raster)
        if enable_ocr and self.ocr_engine is not None:
            return regions_from_words(self.ocr_engine.recognize(prepared), min_confidence)
        return detect_text_heuristically(prepared)

    def filter_text(
        self,
        raster: RasterBuffer,
        enable_ocr: bool = True,
        remove_text: bool = True,
        preserve_dimensions: bool = False,
        min_confidence: float = 30,
    ) -> TextFilterResult:
        """Detect text regions and optionally paint them out.

        Args:
            raster: Grayscale or RGBA raster
            enable_ocr: Use the OCR engine when one is configured
            remove_text: Repaint detected regions with local background
            preserve_dimensions: Keep dimension text when removing
            min_confidence: OCR words below this confidence (0-100) are ignored

        Returns:
            TextFilterResult with the cleaned raster, regions and mask
        """
        regions = self.detect(raster, enable_ocr, min_confidence)
        mask = create_text_mask(raster.width, raster.height, regions)
        cleaned = remove_text_regions(raster, regions, preserve_dimensions) if remove_text else raster.copy()

        logger.debug("Found %d text regions (remove=%s)", len(regions), remove_text)
        return TextFilterResult(
            cleaned=cleaned,
            text_regions=regions,
            mask=mask,
            confidence=overall_confidence(regions),
        )
