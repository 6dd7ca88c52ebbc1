"""Command line entry point for extracting rooms and walls from a plan image."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .analyzer import PipelineOrchestrator
from .area_calculation import generate_area_report
from .errors import FloorPlanError
from .line_classification import load_line_network
from .models import FallbackMode, PipelineOptions, Unit
from .raster import load_raster
from .text_filter import TesseractOCREngine

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="floor-plan-extract",
        description="Extract rooms and walls from a raster floor plan",
    )
    parser.add_argument("image", type=str, help="Path to floor plan image")
    parser.add_argument(
        "--output",
        type=str,
        help="Write the full result as JSON to this path",
    )
    parser.add_argument(
        "--no-text-filter",
        action="store_true",
        help="Skip text detection and removal",
    )
    parser.add_argument(
        "--no-ocr",
        action="store_true",
        help="Use the heuristic text detector even when Tesseract is available",
    )
    parser.add_argument(
        "--no-line-classification",
        action="store_true",
        help="Skip line type classification",
    )
    parser.add_argument(
        "--no-scale",
        action="store_true",
        help="Skip automatic scale detection",
    )
    parser.add_argument(
        "--expected-unit",
        choices=[u.value for u in Unit],
        help="Preferred unit when several scales are found",
    )
    parser.add_argument(
        "--fallback",
        choices=[m.value for m in FallbackMode],
        default=FallbackMode.LEGACY.value,
        help="What to return when a stage fails (default: legacy)",
    )
    parser.add_argument(
        "--line-model",
        type=str,
        help="Path to trained line classifier weights (.npz)",
    )
    parser.add_argument(
        "--pixel-walls",
        action="store_true",
        help="Report walls in image pixels instead of model coordinates",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every pipeline stage",
    )
    return parser


def options_from_args(args: argparse.Namespace) -> PipelineOptions:
    return PipelineOptions(
        enable_text_filtering=not args.no_text_filter,
        enable_ocr=not args.no_ocr,
        enable_line_classification=not args.no_line_classification,
        auto_detect_scale=not args.no_scale,
        expected_unit=Unit(args.expected_unit) if args.expected_unit else None,
        fallback_mode=FallbackMode(args.fallback),
        pixel_space_walls=args.pixel_walls,
    )


def _ocr_engine(enabled: bool):
    if not enabled:
        return None
    try:
        return TesseractOCREngine()
    except FloorPlanError as exc:
        logger.warning("OCR unavailable, using heuristic text detection: %s", exc)
        return None


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not Path(args.image).exists():
        logger.error("Image file not found: %s", args.image)
        return 1

    try:
        raster = load_raster(args.image)
        line_model = load_line_network(args.line_model) if args.line_model else None
        options = options_from_args(args)
        orchestrator = PipelineOrchestrator(
            ocr_engine=_ocr_engine(options.enable_text_filtering and options.enable_ocr),
            line_model=line_model,
        )

        def report(stage: str, percent: float, detail: Optional[str]) -> None:
            logger.debug("[%s] %3.0f%% %s", stage, percent, detail or "")

        result = orchestrator.run(
            raster,
            options,
            progress=report,
            format_hint=Path(args.image).suffix.lstrip(".").lower() or None,
        )
    except FloorPlanError as exc:
        logger.error("%s", exc)
        return 1

    print(generate_area_report(result))

    if args.output:
        Path(args.output).write_text(result.model_dump_json(indent=2))
        logger.info("Result written to %s", args.output)

    return 0 if not result.errors else 2


if __name__ == "__main__":
    sys.exit(main())
