"""
Report Page Layout

Places one rendered tree image on a fixed-size report page. All lengths are
PostScript points (72 per inch), matching the units of the EPS bounding box
the renderer writes.

Placement:
1. Truncate the image bounding box to integers.
2. Shift both x and both y coordinates by the page margin (no clamping).
3. If the shifted box overflows the content area in either direction,
   scale all four coordinates by ``min(content_width / x2,
   content_height / y2)`` so the box fits both ways without distortion.

For US Letter with a half-inch margin the content area is 7.5 x 10 inches
(540 x 720 pt).

Example:
    >>> place(BoundingBox(0, 0, 900, 500))
    BoundingBox(x1=20.76..., y1=20.76..., x2=540.0, y2=309.23...)
"""

from dataclasses import dataclass
from typing import NamedTuple, Union
from pathlib import Path
import logging
import os
import re

logger = logging.getLogger(__name__)

POINTS_PER_INCH = 72

BBOX_PATTERN = re.compile(r"^%%BoundingBox:\s+(.+?)\s*$")


class ReportError(RuntimeError):
    """Raised when the report cannot be composed."""


class BoundingBoxError(ReportError):
    """Raised when a rendered image declares no usable bounding box."""


class BoundingBox(NamedTuple):
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1


@dataclass(frozen=True)
class PageGeometry:
    """
    Fixed report page geometry in points.

    Attributes
    ----------
    width, height : float
        Page size (default: US Letter, 612 x 792)
    margin : float
        Offset applied to image coordinates (default: 0.5 inch)
    content_width, content_height : float
        Area the shifted image must fit into (default: 7.5 x 10 inches)
    """
    width: float = 8.5 * POINTS_PER_INCH
    height: float = 11 * POINTS_PER_INCH
    margin: float = 0.5 * POINTS_PER_INCH
    content_width: float = 7.5 * POINTS_PER_INCH
    content_height: float = 10 * POINTS_PER_INCH

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError("page width and height must be positive")
        if self.margin < 0:
            raise ValueError("margin must be non-negative")
        if self.content_width <= 0 or self.content_height <= 0:
            raise ValueError("content width and height must be positive")


LETTER = PageGeometry()


def truncate_bounding_box(bbox: BoundingBox) -> BoundingBox:
    """Drop fractional parts; the page composer only accepts integers."""
    return BoundingBox(*(int(value) for value in bbox))


def place(bbox: BoundingBox, geometry: PageGeometry = LETTER) -> BoundingBox:
    """
    Position an image bounding box on a report page.

    Parameters
    ----------
    bbox : BoundingBox
        Bounding box reported by the renderer
    geometry : PageGeometry
        Page geometry (default: US Letter, half-inch margin)

    Returns
    -------
    BoundingBox
        Box to hand to the image-placement step
    """
    x1, y1, x2, y2 = truncate_bounding_box(bbox)

    x1, x2 = x1 + geometry.margin, x2 + geometry.margin
    y1, y2 = y1 + geometry.margin, y2 + geometry.margin

    if x2 > geometry.content_width or y2 > geometry.content_height:
        scale = min(geometry.content_width / x2, geometry.content_height / y2)
        logger.debug(f"Scaling image by {scale:.3f} to fit the page")
        x1, y1, x2, y2 = (value * scale for value in (x1, y1, x2, y2))

    return BoundingBox(x1, y1, x2, y2)


def read_eps_bounding_box(eps_path: Union[str, Path]) -> BoundingBox:
    """
    Read and normalize the ``%%BoundingBox`` declaration of an EPS file.

    Fractional coordinates are truncated to integers and the file is
    rewritten with the integer declaration.

    Raises
    ------
    BoundingBoxError
        If no parseable ``%%BoundingBox`` line exists
    """
    path = Path(eps_path)
    bbox = None
    lines = []

    with open(path, 'r', encoding='latin-1') as fh:
        for line in fh:
            match = BBOX_PATTERN.match(line)
            if match and bbox is None:
                try:
                    values = [int(float(v)) for v in match.group(1).split()]
                except ValueError:
                    # e.g. "(atend)"; a later declaration may follow
                    lines.append(line)
                    continue
                if len(values) == 4:
                    bbox = BoundingBox(*values)
                    line = "%%BoundingBox: " + " ".join(str(v) for v in values) + "\n"
            lines.append(line)

    if bbox is None:
        raise BoundingBoxError(f"Could not find bounding box dimensions of {path}")

    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, 'w', encoding='latin-1') as fh:
        fh.writelines(lines)
    os.replace(tmp_path, path)

    return bbox
