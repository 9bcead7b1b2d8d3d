"""
Crop interaction engine: crop rectangle state, drag/resize gestures and
sub-image extraction.

All coordinates stored here are in IMAGE space (raster pixels). Pointer
positions arrive in screen space and are converted with the display scale
(raster width / displayed width) queried at every move.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from raster import Raster


# ============================================================================
# Constants
# ============================================================================

MIN_SIZE = 50                 # Minimum crop width/height in image pixels
INITIAL_CROP_FRACTION = 0.8   # Initial square covers 80% of the shorter side


# ============================================================================
# Data Structures
# ============================================================================

@dataclass(frozen=True)
class CropRegion:
    """
    Axis-aligned crop rectangle in image space.
    Always satisfies 0 <= x, 0 <= y, x + width <= W, y + height <= H and
    width, height >= MIN_SIZE for the raster it belongs to.
    """
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def to_bbox(self):
        """Returns (x1, y1, x2, y2) tuple"""
        return (self.x, self.y, self.right, self.bottom)

    def contains_point(self, px, py):
        """Check if point is inside region (used for move hit-testing)"""
        return self.x <= px <= self.right and self.y <= py <= self.bottom

    def fits(self, raster_width: int, raster_height: int) -> bool:
        """True if the region satisfies all invariants for a raster of this size"""
        return (self.x >= 0 and self.y >= 0
                and self.right <= raster_width and self.bottom <= raster_height
                and self.width >= MIN_SIZE and self.height >= MIN_SIZE)


class Edge(Enum):
    """Rectangle edge moved by a resize handle"""
    NORTH = "n"
    SOUTH = "s"
    EAST = "e"
    WEST = "w"


class Handle(Enum):
    """
    Gesture handles. The value is the tuple of edges the handle drags;
    MOVE drags no edge and translates the whole region instead.
    """
    MOVE = ()
    N = (Edge.NORTH,)
    S = (Edge.SOUTH,)
    E = (Edge.EAST,)
    W = (Edge.WEST,)
    NE = (Edge.NORTH, Edge.EAST)
    NW = (Edge.NORTH, Edge.WEST)
    SE = (Edge.SOUTH, Edge.EAST)
    SW = (Edge.SOUTH, Edge.WEST)

    @property
    def edges(self):
        return self.value

    @property
    def is_corner(self) -> bool:
        return len(self.value) == 2


# Only the corners are offered to the user; edge handles stay in the model
CORNER_HANDLES = (Handle.NW, Handle.NE, Handle.SE, Handle.SW)


@dataclass(frozen=True)
class DragState:
    """Snapshot taken when a gesture starts; discarded when it ends"""
    handle: Handle
    anchor_pointer: tuple
    anchor_region: CropRegion


# ============================================================================
# Geometry
# ============================================================================

def initial_crop_region(raster_width: int, raster_height: int) -> CropRegion:
    """
    Centered square covering 80% of the shorter image side.

    The side never drops below MIN_SIZE, so images between MIN_SIZE and
    MIN_SIZE / 0.8 pixels get a MIN_SIZE square instead.
    """
    shorter = min(raster_width, raster_height)
    if shorter < MIN_SIZE:
        raise ValueError(f"Image {raster_width}x{raster_height} is smaller than the {MIN_SIZE}px minimum crop")

    crop_size = max(MIN_SIZE, int(shorter * INITIAL_CROP_FRACTION))
    return CropRegion(
        x=(raster_width - crop_size) // 2,
        y=(raster_height - crop_size) // 2,
        width=crop_size,
        height=crop_size,
    )


def scale_factor(raster_width: int, displayed_width: float, previous: float = 1.0) -> float:
    """
    Screen-to-image ratio. Keeps the previous value while the display
    surface has no width yet (not laid out, minimized).
    """
    if displayed_width <= 0:
        return previous
    return raster_width / displayed_width


def _clamp(value, low, high):
    return max(low, min(high, value))


def move_region(anchor: CropRegion, dx: int, dy: int,
                raster_width: int, raster_height: int) -> CropRegion:
    """Translate the anchor region, keeping it entirely inside the image"""
    return replace(
        anchor,
        x=_clamp(anchor.x + dx, 0, raster_width - anchor.width),
        y=_clamp(anchor.y + dy, 0, raster_height - anchor.height),
    )


def _resize_west(region, anchor, dx, dy, raster_width, raster_height):
    # Edge stops responding instead of clamping to the border
    width = anchor.width - dx
    x = anchor.x + dx
    if width > MIN_SIZE and x >= 0:
        return replace(region, x=x, width=width)
    return region


def _resize_east(region, anchor, dx, dy, raster_width, raster_height):
    return replace(region, width=_clamp(anchor.width + dx, MIN_SIZE, raster_width - region.x))


def _resize_north(region, anchor, dx, dy, raster_width, raster_height):
    height = anchor.height - dy
    y = anchor.y + dy
    if height > MIN_SIZE and y >= 0:
        return replace(region, y=y, height=height)
    return region


def _resize_south(region, anchor, dx, dy, raster_width, raster_height):
    return replace(region, height=_clamp(anchor.height + dy, MIN_SIZE, raster_height - region.y))


_EDGE_CONSTRAINTS = {
    Edge.WEST: _resize_west,
    Edge.EAST: _resize_east,
    Edge.NORTH: _resize_north,
    Edge.SOUTH: _resize_south,
}


def resize_region(anchor: CropRegion, handle: Handle, dx: int, dy: int,
                  raster_width: int, raster_height: int) -> CropRegion:
    """
    Resize the anchor region by dragging the edges of ``handle``.
    Each edge is constrained independently against the same dx/dy.
    """
    region = anchor
    for edge in handle.edges:
        region = _EDGE_CONSTRAINTS[edge](region, anchor, dx, dy, raster_width, raster_height)
    return region


def apply_drag(handle: Handle, anchor: CropRegion, dx: int, dy: int,
               raster_width: int, raster_height: int) -> CropRegion:
    """Region produced by dragging ``handle`` by (dx, dy) image pixels"""
    if handle is Handle.MOVE:
        return move_region(anchor, dx, dy, raster_width, raster_height)
    return resize_region(anchor, handle, dx, dy, raster_width, raster_height)


# ============================================================================
# Controller
# ============================================================================

class CropController:
    """
    Owns the crop rectangle for one raster and turns pointer gestures into
    rectangle updates.

    States are Idle (``drag_state is None``) and Dragging(handle). The
    display scale is a zero-argument callable returning raster width divided
    by displayed width; it is queried on every pointer move so a window
    resize mid-gesture is honoured.
    """
    def __init__(self, raster_width: int, raster_height: int,
                 display_scale: Optional[Callable[[], float]] = None):
        self.raster_width = raster_width
        self.raster_height = raster_height
        self.display_scale = display_scale or (lambda: 1.0)
        self.region = initial_crop_region(raster_width, raster_height)
        self.drag_state: Optional[DragState] = None

    @property
    def is_dragging(self) -> bool:
        return self.drag_state is not None

    def begin_drag(self, handle: Handle, pointer_x: float, pointer_y: float):
        """Idle -> Dragging(handle). Pointer position is in screen coordinates."""
        self.drag_state = DragState(
            handle=handle,
            anchor_pointer=(pointer_x, pointer_y),
            anchor_region=self.region,
        )
        logging.getLogger(__name__).debug(f"Drag start: {handle.name} at ({pointer_x}, {pointer_y}), region={self.region}")

    def drag_to(self, pointer_x: float, pointer_y: float) -> CropRegion:
        """Recompute the region from the gesture anchor. Ignored while idle."""
        if self.drag_state is None:
            return self.region

        scale = self.display_scale()
        start_x, start_y = self.drag_state.anchor_pointer
        dx = int(round((pointer_x - start_x) * scale))
        dy = int(round((pointer_y - start_y) * scale))

        self.region = apply_drag(self.drag_state.handle, self.drag_state.anchor_region,
                                 dx, dy, self.raster_width, self.raster_height)
        return self.region

    def end_drag(self):
        """Dragging -> Idle, wherever the pointer is"""
        if self.drag_state is not None:
            logging.getLogger(__name__).debug(f"Drag end: {self.drag_state.handle.name}, region={self.region}")
        self.drag_state = None

    def reset(self):
        """Back to the initial centered square, dropping any gesture"""
        self.drag_state = None
        self.region = initial_crop_region(self.raster_width, self.raster_height)


# ============================================================================
# Extraction
# ============================================================================

def extract(raster: Raster, region: CropRegion) -> Raster:
    """
    Copy the region out of the raster 1:1 into a new, independently owned
    raster of region.width x region.height.
    """
    if not region.fits(raster.width, raster.height):
        raise ValueError(f"Crop region {region} does not fit a {raster.width}x{raster.height} raster")

    x1, y1, x2, y2 = region.to_bbox()
    return Raster(raster.pixels[y1:y2, x1:x2].copy())
