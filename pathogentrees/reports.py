"""
Tree Report Generation

Builds a paginated PDF report of the trees that passed the filters:

- Page 1: title, dataset and run, active date filters, a color legend and
  the generation timestamp.
- One page per renderable tree: the tree accession as heading, the FTP URL
  of its result directory as caption, and the tree image positioned by
  ``layout.place``.

Trees with zero root height are skipped before rendering.

The ``ReportComposer`` class is the only code that touches matplotlib page
primitives. Coordinates are in points from the bottom-left corner, like
the EPS bounding boxes the layout engine works with.
"""

from typing import List, Optional, Tuple, Union
from pathlib import Path
import logging
import matplotlib
matplotlib.use("Agg")
import matplotlib.image as mpimg
import matplotlib.pyplot as plt
from matplotlib.backends.backend_pdf import PdfPages
from matplotlib.patches import Rectangle

from . import config
from .dates import format_date
from .layout import (
    BoundingBox, BoundingBoxError, PageGeometry, ReportError, place, read_eps_bounding_box,
)
from .metadata import MetadataIndex
from .phylogenetics import (
    CLINICAL_COLOR, ENVIRONMENTAL_COLOR, annotate_tree, read_tree, root_height, tree_accession,
)
from .utils import get_timestamp
from .visualization import raster_twin, render_tree_image

logger = logging.getLogger(__name__)

INCH = 72


# ============================================================================
# Page Composer
# ============================================================================

class ReportComposer:
    """
    Multi-page PDF composer with point-based drawing primitives.

    Each page is written to the PDF when the next one is started, so at
    most one matplotlib figure is open at a time.

    Examples
    --------
    >>> composer = ReportComposer("report.pdf")
    >>> composer.new_page()
    >>> composer.draw_text((288, 720), "Title", align="center", size=32)
    >>> composer.write_output()
    """

    def __init__(self, output_path: Union[str, Path], geometry: PageGeometry = PageGeometry(),
                 font_family: str = "serif"):
        self.output_path = Path(output_path)
        self.geometry = geometry
        self.font_family = font_family
        self.page_count = 0
        self._figure = None
        self._pdf: Optional[PdfPages] = None

    def _fraction(self, x: float, y: float) -> Tuple[float, float]:
        return x / self.geometry.width, y / self.geometry.height

    def _require_page(self):
        if self._figure is None:
            raise ReportError("No page started; call new_page() first")
        return self._figure

    def _flush_page(self) -> None:
        # Only the page being drawn stays open as a figure
        if self._figure is None:
            return
        try:
            self._pdf.savefig(self._figure)
        finally:
            plt.close(self._figure)
            self._figure = None

    def new_page(self) -> int:
        """Finish the current page and start a new blank one; return its number."""
        if self._pdf is None:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self._pdf = PdfPages(self.output_path)
        self._flush_page()
        self._figure = plt.figure(
            figsize=(self.geometry.width / INCH, self.geometry.height / INCH)
        )
        self.page_count += 1
        return self.page_count

    def draw_text(self, pos: Tuple[float, float], text: str, align: str = "left",
                  size: float = 12, color="black") -> None:
        """Draw ``text`` with its baseline starting (or centered) at ``pos``."""
        fig = self._require_page()
        ha = {"centre": "center"}.get(align, align)
        fig.text(*self._fraction(*pos), text, ha=ha, va="baseline", fontsize=size,
                 family=self.font_family, color=color)

    def draw_box(self, corner1: Tuple[float, float], corner2: Tuple[float, float],
                 filled: bool = False, color="black", linewidth: float = 1) -> None:
        """Draw a rectangle between two opposite corners."""
        fig = self._require_page()
        (fx1, fy1), (fx2, fy2) = self._fraction(*corner1), self._fraction(*corner2)
        fig.add_artist(Rectangle(
            (min(fx1, fx2), min(fy1, fy2)), abs(fx2 - fx1), abs(fy2 - fy1),
            transform=fig.transFigure,
            fill=filled, facecolor=color if filled else "none",
            edgecolor=color, linewidth=linewidth,
        ))

    def import_image(self, image_path: Union[str, Path], bbox: BoundingBox) -> BoundingBox:
        """
        Place a raster image so that it fills ``bbox`` on the current page.

        Raises
        ------
        ReportError
            If the image is missing or unreadable, or the box is empty
        """
        fig = self._require_page()
        path = Path(image_path)
        if not path.exists():
            raise ReportError(f"Image not found: {path}")
        if bbox.width <= 0 or bbox.height <= 0:
            raise ReportError(f"Empty bounding box for {path}: {tuple(bbox)}")

        try:
            pixels = mpimg.imread(str(path))
        except (OSError, ValueError, SyntaxError) as e:
            raise ReportError(f"Could not read image {path}: {e}") from e

        x, y = self._fraction(bbox.x1, bbox.y1)
        w = bbox.width / self.geometry.width
        h = bbox.height / self.geometry.height
        ax = fig.add_axes([x, y, w, h])
        ax.imshow(pixels, aspect="auto")
        ax.set_axis_off()
        return bbox

    def write_output(self) -> Path:
        """Finish the last page and close the PDF."""
        if self._pdf is None:
            raise ReportError("No pages to write")
        try:
            self._flush_page()
        except Exception:
            self.close()
            raise
        self._pdf.close()
        self._pdf = None
        return self.output_path

    def close(self) -> None:
        """Abandon the report, removing any incomplete PDF."""
        if self._figure is not None:
            plt.close(self._figure)
            self._figure = None
        if self._pdf is not None:
            self._pdf.close()
            self._pdf = None
            self.output_path.unlink(missing_ok=True)


# ============================================================================
# Report Policy
# ============================================================================

def result_url(cfg: config.PipelineConfig, tree_acc: str) -> str:
    """FTP URL of a tree's directory in the results repository."""
    return (
        f"ftp://{cfg.remote.domain}{cfg.remote.results_root}/"
        f"{cfg.result_set}/{cfg.run_id}/SNP_trees/{tree_acc}"
    )


def add_title_page(composer: ReportComposer, cfg: config.PipelineConfig) -> None:
    """Title, dataset, filters, color legend and timestamp."""
    rc = cfg.report
    composer.new_page()
    composer.draw_text((4 * INCH, 10 * INCH), rc.title, align="center", size=rc.title_font_size)
    composer.draw_text((4 * INCH, 9.5 * INCH), f"NCBI dataset: {cfg.result_set} ({cfg.run_id})",
                       align="center", size=rc.heading_font_size)
    composer.draw_text((0.5 * INCH, 9.0 * INCH), f"Filters: from: {format_date(cfg.filters.date_from)}",
                       size=rc.heading_font_size)
    composer.draw_text((0.5 * INCH, 8.5 * INCH), f"Filters: to: {format_date(cfg.filters.date_to)}",
                       size=rc.heading_font_size)
    if cfg.filters.new_isolates:
        composer.draw_text((0.5 * INCH, 8.2 * INCH), "Filters: trees with new isolates only",
                           size=rc.caption_font_size)

    # Color legend
    composer.draw_box((0.5 * INCH, 6 * INCH), (7.5 * INCH, 8 * INCH))
    composer.draw_box((1 * INCH, 6.5 * INCH), (1.5 * INCH, 7 * INCH), filled=True, color=ENVIRONMENTAL_COLOR)
    composer.draw_text((2 * INCH, 6.5 * INCH), "Environmental or Food", size=rc.heading_font_size)
    composer.draw_box((1 * INCH, 7.2 * INCH), (1.5 * INCH, 7.7 * INCH), filled=True, color=CLINICAL_COLOR)
    composer.draw_text((2 * INCH, 7.2 * INCH), "Clinical", size=rc.heading_font_size)

    composer.draw_text((4 * INCH, 1 * INCH), f"generated {get_timestamp()}",
                       align="center", size=rc.caption_font_size)


def add_tree_page(composer: ReportComposer, cfg: config.PipelineConfig, eps_path: Path, tree_acc: str) -> BoundingBox:
    """One page holding a rendered tree, its accession and source URL."""
    rc = cfg.report
    composer.new_page()
    composer.draw_text((4 * INCH, 10.5 * INCH), tree_acc, align="center", size=rc.caption_font_size)
    composer.draw_text((0.5 * INCH, 10 * INCH), result_url(cfg, tree_acc), size=rc.url_font_size)

    bbox = place(read_eps_bounding_box(eps_path), rc.geometry)
    return composer.import_image(raster_twin(eps_path), bbox)


def render_tree_images(
    tree_files: List[Path],
    metadata: MetadataIndex,
    image_dir: Path,
    cfg: config.PipelineConfig,
) -> List[Tuple[str, Path]]:
    """
    Annotate and render each tree, skipping degenerate ones.

    Returns
    -------
    List[Tuple[str, Path]]
        (tree accession, EPS path) for every rendered tree
    """
    images = []
    for tree_file in tree_files:
        tree = read_tree(tree_file)
        tree_acc = tree_accession(tree_file)
        if root_height(tree) == 0:
            logger.info(f"Skipping {tree_acc}: tree has zero height")
            continue

        annotations = annotate_tree(tree, metadata)
        eps_path = render_tree_image(
            tree, annotations, image_dir / tree_acc,
            font_size=cfg.report.tree_font_size, dpi=cfg.report.image_dpi,
        )
        images.append((tree_acc, eps_path))

    return images


def generate_report(
    tree_files: List[Path],
    metadata: MetadataIndex,
    image_dir: Union[str, Path],
    output_pdf: Union[str, Path],
    cfg: config.PipelineConfig,
) -> Path:
    """
    Render passing trees and compose them into the PDF report.

    Parameters
    ----------
    tree_files : List[Path]
        Trees that passed the filters
    metadata : MetadataIndex
        Aggregated isolate metadata for tip labels and colors
    image_dir : Union[str, Path]
        Directory for the rendered tree images
    output_pdf : Union[str, Path]
        Report path
    cfg : config.PipelineConfig
        Pipeline configuration

    Returns
    -------
    Path
        Path to the written report

    Raises
    ------
    ReportError
        If an image has no bounding box or cannot be placed
    """
    image_dir = Path(image_dir)
    image_dir.mkdir(parents=True, exist_ok=True)

    logger.info("Creating phylogeny images")
    images = render_tree_images(tree_files, metadata, image_dir, cfg)

    composer = ReportComposer(output_pdf, cfg.report.geometry, cfg.report.font_family)
    try:
        add_title_page(composer, cfg)

        logger.info("Adding phylogeny images to larger report")
        for tree_acc, eps_path in images:
            try:
                add_tree_page(composer, cfg, eps_path, tree_acc)
            except BoundingBoxError:
                raise
            except ReportError as e:
                raise ReportError(f"ERROR with {eps_path}: {e}") from e
    except Exception:
        composer.close()
        raise

    path = composer.write_output()
    logger.info(f"Wrote {composer.page_count} pages to {path}")
    return path
