"""Budgeted region growing shared by contour tracing, room detection and line tracing."""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

import numpy as np

logger = logging.getLogger(__name__)

NEIGHBORS_4 = ((1, 0), (-1, 0), (0, 1), (0, -1))
NEIGHBORS_8 = NEIGHBORS_4 + ((1, 1), (1, -1), (-1, 1), (-1, -1))

# Reasons a fill stopped before exhausting its region
QUEUE_LIMIT = "queue_limit"
PIXEL_LIMIT = "pixel_limit"
MERGED_RUNAWAY = "merged_runaway"


@dataclass(frozen=True)
class FillResult:
    """Outcome of one bounded fill.

    ``points`` holds the visited ``(x, y)`` cells in visiting order. When
    ``truncated`` is true the region was larger than the budget allowed and
    ``points`` is only part of it.
    """

    label: int
    points: List[Tuple[int, int]]
    truncated: bool = False
    stop_reason: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.points)

    def bounds(self) -> Tuple[int, int, int, int]:
        """Return (min_x, min_y, max_x, max_y) of the visited cells."""
        xs = [p[0] for p in self.points]
        ys = [p[1] for p in self.points]
        return min(xs), min(ys), max(xs), max(ys)


def bounded_fill(
    mask: np.ndarray,
    seed: Tuple[int, int],
    labels: np.ndarray,
    label: int,
    connectivity: int = 4,
    max_queue: int = 10000,
    max_pixels: int = 50000,
    runaway_labels: Optional[Set[int]] = None,
) -> FillResult:
    """Grow a region from ``seed`` over cells where ``mask`` is true.

    Uses an explicit FIFO work queue. Every cell that enters the queue is
    written to ``labels`` so no cell is visited by two fills. The fill stops
    early, with ``truncated=True``, when the queue grows beyond ``max_queue``,
    when ``max_pixels`` cells were visited, or when it reaches a cell that
    belongs to a region listed in ``runaway_labels``.

    Args:
        mask: 2D boolean array of fillable cells
        seed: Starting (x, y) cell
        labels: 2D int array, 0 for unclaimed cells; updated in place
        label: Positive label written for this region
        connectivity: 4 or 8
        max_queue: Queue depth budget
        max_pixels: Visited cell budget
        runaway_labels: Labels of earlier truncated fills

    Returns:
        FillResult for the grown region
    """
    if connectivity not in (4, 8):
        raise ValueError(f"connectivity must be 4 or 8, got {connectivity}")
    if label <= 0:
        raise ValueError("fill labels must be positive")

    height, width = mask.shape
    x0, y0 = seed
    if not (0 <= x0 < width and 0 <= y0 < height) or not mask[y0, x0] or labels[y0, x0]:
        return FillResult(label=label, points=[])

    runaway = runaway_labels or set()
    offsets = NEIGHBORS_8 if connectivity == 8 else NEIGHBORS_4

    points: List[Tuple[int, int]] = []
    queue = deque([(x0, y0)])
    labels[y0, x0] = label
    stop_reason = None

    while queue:
        if len(queue) > max_queue:
            stop_reason = QUEUE_LIMIT
            break
        if len(points) >= max_pixels:
            stop_reason = PIXEL_LIMIT
            break

        x, y = queue.popleft()
        points.append((x, y))

        for dx, dy in offsets:
            nx = x + dx
            ny = y + dy
            if nx < 0 or ny < 0 or nx >= width or ny >= height:
                continue
            if not mask[ny, nx]:
                continue
            owner = labels[ny, nx]
            if owner:
                if owner != label and owner in runaway:
                    stop_reason = MERGED_RUNAWAY
                continue
            labels[ny, nx] = label
            queue.append((nx, ny))

        if stop_reason:
            break

    # cells still queued stay claimed by this label
    return FillResult(
        label=label,
        points=points,
        truncated=stop_reason is not None,
        stop_reason=stop_reason,
    )


@dataclass
class RegionGrower:
    """Runs successive bounded fills over one mask.

    Keeps the shared label array and remembers which fills were truncated,
    so a later fill that reaches a runaway region is truncated as well.
    """

    mask: np.ndarray
    connectivity: int = 4
    max_queue: int = 10000
    max_pixels: int = 50000
    labels: np.ndarray = field(init=False)
    runaway_labels: Set[int] = field(init=False, default_factory=set)
    truncated_count: int = field(init=False, default=0)
    _next_label: int = field(init=False, default=1)

    def __post_init__(self):
        self.mask = np.asarray(self.mask, dtype=bool)
        self.labels = np.zeros(self.mask.shape, dtype=np.int32)

    def is_claimed(self, x: int, y: int) -> bool:
        return bool(self.labels[y, x])

    def grow(self, x: int, y: int) -> Optional[FillResult]:
        """Fill from (x, y); None if the cell is not fillable or already claimed."""
        if not self.mask[y, x] or self.labels[y, x]:
            return None

        label = self._next_label
        self._next_label += 1
        result = bounded_fill(
            self.mask,
            (x, y),
            self.labels,
            label,
            connectivity=self.connectivity,
            max_queue=self.max_queue,
            max_pixels=self.max_pixels,
            runaway_labels=self.runaway_labels,
        )
        if result.truncated:
            self.runaway_labels.add(label)
            self.truncated_count += 1
            logger.debug(
                "Fill from (%d, %d) truncated after %d cells: %s",
                x, y, result.size, result.stop_reason,
            )
        return result

    def region_mask(self, label: int) -> np.ndarray:
        return self.labels == label
