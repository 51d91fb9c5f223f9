"""
Tree Image Rendering

Draws annotated SNP trees with Bio.Phylo on matplotlib figures. Each tree is
written twice with identical extents:

- ``<name>.eps``: vector image whose ``%%BoundingBox`` drives page layout
- ``<name>.png``: raster twin that the PDF report composer embeds

Tip labels and terminal branches carry the category colors assigned by
``phylogenetics.annotate_tree``.

Example Usage:
    >>> from pathogentrees.visualization import render_tree_image
    >>> eps = render_tree_image(tree, annotations, "out/images/PDS000001234.5")
"""

from typing import Dict, List, Optional, Tuple, Union
from pathlib import Path
import logging
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from Bio import Phylo

from .phylogenetics import TipAnnotation, RGB

# Configure logging
logger = logging.getLogger(__name__)


def figure_size(n_tips: int) -> Tuple[float, float]:
    """
    Figure size in inches scaled to the number of tips.

    Height grows 0.25 inches per tip between 4 and 40 inches; width widens
    slowly for large trees. The report rescales oversized images to fit.
    """
    height = max(4.0, min(40.0, n_tips * 0.25))
    width = 7.0 if n_tips <= 30 else min(12.0, 7.0 + (n_tips - 30) * 0.05)
    return width, height


def label_colors(annotations: List[TipAnnotation]) -> Dict[str, RGB]:
    """
    Map displayed tip labels to their category colors.

    Bio.Phylo colors labels by text, so tips sharing a label share one
    label color: the last annotation wins. Branch colors are set per clade
    and keep each tip's own category.
    """
    return {a.label: a.rgb for a in annotations if a.label}


def render_tree_image(
    tree: Phylo.BaseTree.Tree,
    annotations: List[TipAnnotation],
    output_stem: Union[str, Path],
    font_size: int = 12,
    dpi: int = 150,
    figsize: Optional[Tuple[float, float]] = None,
) -> Path:
    """
    Render a tree to EPS and PNG.

    Parameters
    ----------
    tree : Phylo.BaseTree.Tree
        Annotated tree
    annotations : List[TipAnnotation]
        Tip annotations returned by ``annotate_tree``
    output_stem : Union[str, Path]
        Output path without extension
    font_size : int, optional
        Tip label font size in points (default: 12)
    dpi : int, optional
        Resolution of the PNG twin (default: 150)
    figsize : Tuple[float, float], optional
        Figure size in inches. If None, scales with the number of tips.

    Returns
    -------
    Path
        Path to the EPS image
    """
    stem = Path(output_stem)
    stem.parent.mkdir(parents=True, exist_ok=True)
    eps_path = stem.with_name(stem.name + ".eps")
    png_path = stem.with_name(stem.name + ".png")

    if figsize is None:
        figsize = figure_size(len(annotations) or tree.count_terminals())

    colors = label_colors(annotations)

    fig = plt.figure(figsize=figsize)
    try:
        ax = fig.add_subplot(1, 1, 1)
        with plt.rc_context({"font.size": font_size}):
            Phylo.draw(
                tree,
                do_show=False,
                axes=ax,
                show_confidence=False,
                label_colors=lambda label: colors.get(label, "black"),
            )
        ax.set_axis_off()
        fig.tight_layout()
        fig.savefig(eps_path, format="eps", bbox_inches="tight")
        fig.savefig(png_path, format="png", dpi=dpi, bbox_inches="tight")
    finally:
        plt.close(fig)

    logger.debug(f"Rendered tree image: {eps_path}")
    return eps_path


def raster_twin(eps_path: Union[str, Path]) -> Path:
    """PNG written alongside an EPS image by ``render_tree_image``."""
    return Path(eps_path).with_suffix(".png")
