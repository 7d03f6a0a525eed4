"""
Freehand stroke smoothing with velocity-driven taper.

A StrokeSmoother is fed pointer samples (canvas coordinates plus a
millisecond timestamp) and answers each accepted sample with the segment a
renderer should draw: a straight line while the stroke is young, then a
cubic Bezier built from neighbour-averaged points. The width of every
segment follows the recent drawing speed according to the taper setting.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Union

logger = logging.getLogger(__name__)

INK_PEN = "ink-pen"
ERASER = "eraser"

MOUSE = "mouse"
TOUCH = "touch"

POINT_BUFFER_SIZE = 12
VELOCITY_HISTORY_SIZE = 8
MAX_VELOCITY = 2.5  # px/ms treated as full speed
SHARP_TURN = math.pi / 3
MAX_UNDO_STATES = 20


@dataclass
class StrokePoint:
    x: float
    y: float
    timestamp: float = 0.0
    velocity: float = 0.0
    acceleration: float = 0.0


@dataclass
class LineSegment:
    start: StrokePoint
    end: StrokePoint
    width: float
    color: str
    erase: bool = False


@dataclass
class BezierSegment:
    start: StrokePoint
    control1: StrokePoint
    control2: StrokePoint
    end: StrokePoint
    width: float
    color: str
    erase: bool = False

    @property
    def alpha(self) -> float:
        # fine lines are drawn slightly transparent
        if self.width < 2:
            return 0.8 + (self.width / 2) * 0.2
        return 1.0

    def point_at(self, t: float) -> StrokePoint:
        u = 1 - t
        x = (u ** 3 * self.start.x + 3 * u * u * t * self.control1.x
             + 3 * u * t * t * self.control2.x + t ** 3 * self.end.x)
        y = (u ** 3 * self.start.y + 3 * u * u * t * self.control1.y
             + 3 * u * t * t * self.control2.y + t ** 3 * self.end.y)
        return StrokePoint(x, y)


Segment = Union[LineSegment, BezierSegment]


@dataclass
class Stroke:
    stroke_id: int
    color: str
    size: float
    brush: str
    points: List[StrokePoint] = field(default_factory=list)
    segments: List[Segment] = field(default_factory=list)


def smoothstep(value: float) -> float:
    return value * value * (3 - 2 * value)


def apply_multi_point_smoothing(points: List[StrokePoint]) -> List[StrokePoint]:
    """Weighted 0.2/0.6/0.2 neighbour average; the endpoints stay put."""
    if len(points) < 3:
        return list(points)
    smoothed = [points[0]]
    for i in range(1, len(points) - 1):
        prev, curr, nxt = points[i - 1], points[i], points[i + 1]
        smoothed.append(StrokePoint(
            x=prev.x * 0.2 + curr.x * 0.6 + nxt.x * 0.2,
            y=prev.y * 0.2 + curr.y * 0.6 + nxt.y * 0.2,
            timestamp=curr.timestamp,
        ))
    smoothed.append(points[-1])
    return smoothed


def adaptive_control_point(
    p1: StrokePoint, p2: StrokePoint, p3: StrokePoint, smoothing: float, is_first: bool
) -> StrokePoint:
    """Control point around p2 along the p1->p3 direction, tightened on sharp turns."""
    factor = smoothing * 0.25
    angle = abs(math.atan2(p2.y - p1.y, p2.x - p1.x) - math.atan2(p3.y - p2.y, p3.x - p2.x))
    if angle > SHARP_TURN:
        factor *= 0.5
    sign = 1 if is_first else -1
    return StrokePoint(
        x=p2.x + sign * (p3.x - p1.x) * factor,
        y=p2.y + sign * (p3.y - p1.y) * factor,
    )


def adaptive_min_distance(min_distance: float, velocity: float, pointer: str = MOUSE) -> float:
    """Jitter threshold that grows with speed; touch input is more sensitive."""
    if pointer == TOUCH:
        low, high, gain = 0.3, 1.5, 0.2
    else:
        low, high, gain = 0.5, 2.0, 0.3
    return max(min_distance * low, min(min_distance * high, min_distance * (1 + velocity * gain)))


def tapered_width(
    base_size: float, velocity_history: List[float], taper: float, brush: str = INK_PEN
) -> float:
    """Stroke width for the current speed.

    Positive taper is the "precision" response (faster is thinner, never
    below 25%); negative taper is the "expression" response (faster is
    thicker, between 25% and 175%). The eraser and a zero taper keep the
    base size.
    """
    if brush != INK_PEN or taper == 0 or not velocity_history:
        return base_size

    weighted = 0.0
    total_weight = 0
    for i, velocity in enumerate(velocity_history):
        weight = i + 1
        weighted += velocity * weight
        total_weight += weight
    normalized = min((weighted / total_weight) / MAX_VELOCITY, 1.0)
    speed = smoothstep(normalized)

    min_size = base_size * 0.25
    if taper > 0:
        return max(base_size * (1.0 - speed * taper * 0.75), min_size)

    strength = abs(taper)
    adjusted = base_size * (0.25 + speed * 1.5)
    final = base_size + (adjusted - base_size) * strength
    return max(min(final, base_size * 1.75), min_size)


class StrokeSmoother:
    def __init__(
        self,
        color: str = "#000000",
        size: float = 5,
        taper: float = 0.5,
        smoothing: float = 1.0,
        min_distance: float = 1.5,
        brush: str = INK_PEN,
    ):
        self.color = color
        self.size = size
        self.taper = taper
        self.smoothing = smoothing
        self.min_distance = min_distance
        self.brush = brush
        self.is_drawing = False
        self.stroke_id = 0
        self.points: Deque[StrokePoint] = deque(maxlen=POINT_BUFFER_SIZE)
        self.velocity_history: Deque[float] = deque(maxlen=VELOCITY_HISTORY_SIZE)
        self.current_stroke: Optional[Stroke] = None
        self.history = StrokeHistory()
        self._last: Optional[StrokePoint] = None

    @property
    def is_eraser(self) -> bool:
        return self.brush == ERASER

    @property
    def response_curve(self) -> str:
        if self.taper > 0:
            return "precision"
        if self.taper < 0:
            return "expression"
        return "constant"

    def set_taper(self, percent: int) -> None:
        """Slider value in -100..100"""
        self.taper = max(-100, min(100, percent)) / 100

    def begin(self, x: float, y: float, timestamp: float) -> None:
        self.is_drawing = True
        self.stroke_id += 1
        start = StrokePoint(x, y, timestamp)
        self.points.clear()
        self.points.append(start)
        self.velocity_history.clear()
        self.velocity_history.append(0.0)
        self._last = start
        self.current_stroke = Stroke(
            stroke_id=self.stroke_id, color=self.color, size=self.size, brush=self.brush, points=[start]
        )

    def add_sample(self, x: float, y: float, timestamp: float, pointer: str = MOUSE) -> Optional[Segment]:
        """Feed one pointer sample; returns the segment to draw, or None when it is filtered out."""
        if not self.is_drawing or self._last is None:
            return None
        last = self._last
        distance = math.hypot(x - last.x, y - last.y)
        elapsed = timestamp - last.timestamp
        velocity = distance / elapsed if elapsed > 0 else 0.0

        if distance < adaptive_min_distance(self.min_distance, velocity, pointer):
            return None

        acceleration = abs(velocity - last.velocity) / max(elapsed, 1)
        self.velocity_history.append(velocity)

        point = StrokePoint(x, y, timestamp, velocity, acceleration)
        self.points.append(point)
        segment = self._segment_to(last, point)

        self.current_stroke.points.append(point)
        self.current_stroke.segments.append(segment)
        self.send_drawing_data("draw", self.current_stroke)
        self._last = point
        return segment

    def _segment_to(self, last: StrokePoint, current: StrokePoint) -> Segment:
        width = tapered_width(self.size, list(self.velocity_history), self.taper, self.brush)
        if len(self.points) < 4:
            return LineSegment(last, current, width, self.color, self.is_eraser)

        pts = list(self.points)
        n = len(pts)
        p0 = pts[n - 6] if n >= 6 else pts[0]
        p1 = pts[n - 5] if n >= 5 else pts[0]
        p2, p3, p4, p5 = pts[n - 4], pts[n - 3], pts[n - 2], pts[n - 1]

        first = apply_multi_point_smoothing([p0, p1, p2, p3, p4])
        second = apply_multi_point_smoothing([p1, p2, p3, p4, p5])
        cp1 = adaptive_control_point(first[1], first[2], first[3], self.smoothing, True)
        cp2 = adaptive_control_point(second[1], second[2], second[3], self.smoothing, False)
        return BezierSegment(first[2], cp1, cp2, second[2], width, self.color, self.is_eraser)

    def end(self) -> Optional[Stroke]:
        if not self.is_drawing:
            return None
        self.is_drawing = False
        stroke = self.current_stroke
        self.current_stroke = None
        self._last = None
        if stroke is not None:
            self.send_drawing_data("strokeComplete", stroke)
            self.history.push(stroke)
        return stroke

    def send_drawing_data(self, kind: str, stroke: Stroke) -> None:
        """Collaboration hook; multi-user sync is not implemented."""
        logger.debug(f"{kind} stroke {stroke.stroke_id} ({len(stroke.points)} points)")


class StrokeHistory:
    """Completed strokes with bounded undo/redo."""

    def __init__(self, max_states: int = MAX_UNDO_STATES):
        self.max_states = max_states
        self._done: Deque[Stroke] = deque(maxlen=max_states)
        self._undone: List[Stroke] = []

    @property
    def strokes(self) -> List[Stroke]:
        return list(self._done)

    def push(self, stroke: Stroke) -> None:
        self._done.append(stroke)
        self._undone.clear()

    def can_undo(self) -> bool:
        return bool(self._done)

    def can_redo(self) -> bool:
        return bool(self._undone)

    def undo(self) -> Optional[Stroke]:
        if not self._done:
            return None
        stroke = self._done.pop()
        self._undone.append(stroke)
        return stroke

    def redo(self) -> Optional[Stroke]:
        if not self._undone:
            return None
        stroke = self._undone.pop()
        self._done.append(stroke)
        return stroke

    def clear(self) -> None:
        self._done.clear()
        self._undone.clear()
