"""Room segmentation by region growing over light floor areas."""

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

from .models import Room
from .raster import RasterBuffer
from .traversal import FillResult, RegionGrower

logger = logging.getLogger(__name__)


# Pastel fills handed to the 3D viewer, assigned round-robin
ROOM_COLORS = [
    "#e3f2fd",  # blue
    "#f3e5f5",  # purple
    "#e8f5e8",  # green
    "#fff3e0",  # orange
    "#fce4ec",  # pink
    "#f1f8e9",  # lime
    "#e0f2f1",  # teal
    "#fff8e1",  # amber
]

ROOM_CONFIDENCE = 0.8


@dataclass
class RoomDetectionResult:
    rooms: List[Room] = field(default_factory=list)
    truncated_fills: int = 0
    rejected_fills: int = 0


def classify_room(area: float, width: float, height: float) -> str:
    """Guess a room type from its pixel area and bounding-box shape.

    Args:
        area: Filled pixel count
        width: Bounding-box width in pixels
        height: Bounding-box height in pixels

    Returns:
        Room type name
    """
    short_side = min(width, height)
    ratio = max(width, height) / short_side if short_side > 0 else float("inf")

    if area < 2000:
        return "Bathroom"
    if area < 5000 and ratio > 2:
        return "Hallway"
    if area < 5000:
        return "Bedroom"
    if area < 8000:
        return "Kitchen"
    if area < 12000:
        return "Living Room"
    return "Large Room"


def to_model_point(
    x: float,
    y: float,
    image_width: int,
    image_height: int,
    scale: float = 0.5,
) -> Tuple[float, float]:
    """Map a pixel coordinate to model space centred on the image."""
    return ((x - image_width / 2.0) * scale, (y - image_height / 2.0) * scale)


def room_from_fill(
    fill: FillResult,
    room_number: int,
    image_width: int,
    image_height: int,
    coordinate_scale: float = 0.5,
) -> Room:
    """Build a rectangular room from the extent of a filled region."""
    min_x, min_y, max_x, max_y = fill.bounds()

    def model(x, y):
        return to_model_point(x, y, image_width, image_height, coordinate_scale)

    room_type = classify_room(fill.size, max_x - min_x, max_y - min_y)
    return Room(
        id=f"room{room_number}",
        name=room_type,
        type=room_type,
        color=ROOM_COLORS[(room_number - 1) % len(ROOM_COLORS)],
        vertices=[model(min_x, min_y), model(max_x, min_y), model(max_x, max_y), model(min_x, max_y)],
        center=model((min_x + max_x) / 2.0, (min_y + max_y) / 2.0),
        area=float(fill.size),
        confidence=ROOM_CONFIDENCE,
    )


def detect_rooms(
    raster: RasterBuffer,
    threshold: int = 200,
    stride: int = 15,
    min_area: int = 1000,
    max_area: int = 30000,
    max_rooms: int = 20,
    max_queue: int = 15000,
    max_fill: int = 50000,
    coordinate_scale: float = 0.5,
) -> RoomDetectionResult:
    """Find rooms as enclosed light regions of a preprocessed plan.

    Light pixels are grown 4-connected from seeds on a coarse grid. A fill
    that exhausts its budget, or that runs into such a fill, is never a
    room. Completed fills with an area inside ``[min_area, max_area]`` are
    approximated by their bounding box.

    Args:
        raster: Grayscale raster
        threshold: Pixels brighter than this count as floor
        stride: Seed grid spacing in pixels
        min_area: Smallest accepted room, in pixels
        max_area: Largest accepted room, in pixels
        max_rooms: Maximum number of rooms returned
        max_queue: Queue depth budget of a single fill
        max_fill: Pixel budget of a single fill
        coordinate_scale: Factor applied to model-space coordinates

    Returns:
        RoomDetectionResult with rooms in model coordinates
    """
    light = raster.intensity() > threshold
    grower = RegionGrower(light, connectivity=4, max_queue=max_queue, max_pixels=max_fill)
    result = RoomDetectionResult()

    for y in range(0, raster.height, stride):
        if len(result.rooms) >= max_rooms:
            break
        for x in range(0, raster.width, stride):
            if len(result.rooms) >= max_rooms:
                break

            fill = grower.grow(x, y)
            if fill is None or fill.truncated:
                continue
            if not (min_area <= fill.size <= max_area):
                result.rejected_fills += 1
                continue

            result.rooms.append(
                room_from_fill(
                    fill,
                    len(result.rooms) + 1,
                    raster.width,
                    raster.height,
                    coordinate_scale,
                )
            )

    result.truncated_fills = grower.truncated_count
    logger.debug(
        "Detected %d rooms (%d fills truncated, %d outside area window)",
        len(result.rooms), result.truncated_fills, result.rejected_fills,
    )
    return result


def default_rooms() -> List[Room]:
    """Fixed four-room layout used when detection fails."""
    layout = [
        ("Living Room", [(-50, -30), (50, -30), (50, 30), (-50, 30)], (0, 0)),
        ("Kitchen", [(50, -30), (100, -30), (100, 10), (50, 10)], (75, -10)),
        ("Bedroom", [(-50, 30), (20, 30), (20, 70), (-50, 70)], (-15, 50)),
        ("Bathroom", [(20, 30), (50, 30), (50, 70), (20, 70)], (35, 50)),
    ]

    rooms = []
    for number, (name, vertices, center) in enumerate(layout, start=1):
        rooms.append(
            Room(
                id=f"room{number}",
                name=name,
                type=name,
                color=ROOM_COLORS[number - 1],
                vertices=[(float(x), float(y)) for x, y in vertices],
                center=(float(center[0]), float(center[1])),
                confidence=ROOM_CONFIDENCE,
            )
        )
    return rooms
