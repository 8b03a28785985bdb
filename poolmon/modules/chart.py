from __future__ import annotations

import io
import re
from typing import Sequence

from PIL import Image, ImageDraw
from pydantic import BaseModel

from ..facade import MonitorError


WIDTH = 300
HEIGHT = 5
GRID_COLOR = "#666666"

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")


class InvalidChartSpec(MonitorError):
    """Chart parameters that cannot be drawn. ``reason`` is a stable code."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


class ChartSegment(BaseModel):
    color: str  # "#rrggbb"
    length: int


class ChartSpec(BaseModel):
    segments: list[ChartSegment]
    divisions: int

    @property
    def background(self) -> ChartSegment:
        return self.segments[0]

    @property
    def foreground(self) -> list[ChartSegment]:
        return self.segments[1:]

    @property
    def full_length(self) -> int:
        return self.segments[0].length


def _parse_color(raw: str) -> str:
    match = _HEX_COLOR.match((raw or "").strip())
    if not match:
        raise InvalidChartSpec("bad_color", f"'{raw}' is not a 6 digit hex color")
    return "#" + match.group(1).lower()


def _parse_int(raw: str, reason: str, what: str) -> int:
    try:
        return int((raw or "").strip())
    except ValueError:
        raise InvalidChartSpec(reason, f"{what} '{raw}' is not an integer") from None


def parse_chart_spec(
    colors: Sequence[str], lengths: Sequence[str], divisions: str | None
) -> ChartSpec:
    """Decode the ``c``, ``l`` and ``d`` request parameters.

    The first color/length pair is the background band and its length is the
    denominator every other length is measured against.
    """
    if not colors:
        raise InvalidChartSpec("missing_segments", "at least one color is required")
    if len(colors) != len(lengths):
        raise InvalidChartSpec(
            "length_mismatch",
            f"{len(colors)} colors but {len(lengths)} lengths",
        )

    segments = []
    for raw_color, raw_length in zip(colors, lengths):
        color = _parse_color(raw_color)
        length = _parse_int(raw_length, "bad_length", "length")
        if length < 0:
            raise InvalidChartSpec("negative_length", f"length {length} is negative")
        segments.append(ChartSegment(color=color, length=length))
    if segments[0].length == 0:
        raise InvalidChartSpec("zero_denominator", "the first length must be greater than zero")

    if divisions is None or not divisions.strip():
        raise InvalidChartSpec("missing_divisions", "a division count is required")
    d = _parse_int(divisions, "bad_divisions", "divisions")
    if d == 0:
        raise InvalidChartSpec("zero_divisions", "divisions must be greater than zero")
    if d < 0:
        raise InvalidChartSpec("negative_divisions", f"divisions {d} is negative")

    return ChartSpec(segments=segments, divisions=d)


def segment_extents(spec: ChartSpec) -> list[tuple[int, int]]:
    """(left, pixels) of each foreground band, stacked left to right.

    Widths are floored and never clamped to the canvas, so an over-full
    chart simply runs off the right edge.
    """
    extents = []
    left = 0
    for segment in spec.foreground:
        pixels = WIDTH * segment.length // spec.full_length
        extents.append((left, pixels))
        left += pixels
    return extents


def gridline_positions(divisions: int) -> list[int]:
    """x of each gridline; from WIDTH divisions up every column is one."""
    if divisions >= WIDTH:
        return list(range(WIDTH))
    return [i * WIDTH // divisions for i in range(divisions)]


def render_bar_chart(spec: ChartSpec) -> bytes:
    """Rasterize ``spec`` into a WIDTH x HEIGHT PNG."""
    image = Image.new("RGB", (WIDTH, HEIGHT), spec.background.color)
    draw = ImageDraw.Draw(image)

    # Bands leave the bottom row to the background and are clipped to the canvas
    for segment, (left, pixels) in zip(spec.foreground, segment_extents(spec)):
        if pixels <= 0 or left >= WIDTH:
            continue
        right = min(left + pixels, WIDTH) - 1
        draw.rectangle([left, 0, right, HEIGHT - 2], fill=segment.color)

    for x in gridline_positions(spec.divisions):
        draw.line([(x, 0), (x, HEIGHT - 1)], fill=GRID_COLOR)

    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()
