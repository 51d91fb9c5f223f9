"""
Tree Reading and Tip Annotation

This module wraps Bio.Phylo for the SNP trees published by the Pathogen
Detection pipeline. It reads one Newick tree per file, exposes the few
structural facts the filters need (tip accessions, root height), and
decorates tips for the report: tip names are replaced by the isolate label
from the metadata and each tip is colored by isolation source.

Tip Colors:
- Environmental or food isolates: blue   (0.3, 0.3, 0.9)
- Clinical or host isolates:      red    (0.9, 0.3, 0.3)
- Anything else:                  near-black (0.1, 0.1, 0.1)

Tree Accessions:
Tree files are named ``<PDS_acc>.newick_tree.newick``; the result-set
accession is the basename with that suffix removed.

Example Usage:
    >>> from pathogentrees.phylogenetics import read_tree, annotate_tree
    >>> tree = read_tree("PDS000001234.5.newick_tree.newick")
    >>> annotations = annotate_tree(tree, metadata_index)
"""

from typing import List, NamedTuple, Optional, Tuple, Union
from pathlib import Path
import logging
import re
from Bio import Phylo
from Bio.Phylo.BaseTree import BranchColor
from Bio.Phylo.NewickIO import NewickError

from .metadata import MetadataIndex

# Configure logging
logger = logging.getLogger(__name__)

TREE_SUFFIX = ".newick_tree.newick"

ENVIRONMENTAL_PATTERN = re.compile(r"environmental|food", re.IGNORECASE)
CLINICAL_PATTERN = re.compile(r"clinical|host", re.IGNORECASE)

ENVIRONMENTAL_COLOR = (0.3, 0.3, 0.9)
CLINICAL_COLOR = (0.9, 0.3, 0.3)
DEFAULT_COLOR = (0.1, 0.1, 0.1)

RGB = Tuple[float, float, float]


class TipAnnotation(NamedTuple):
    """Display label and color attached to one tip."""
    accession: str
    label: str
    rgb: RGB


def read_tree(tree_file: Union[str, Path]) -> Phylo.BaseTree.Tree:
    """
    Read the single Newick tree stored in ``tree_file``.

    Raises
    ------
    FileNotFoundError
        If the tree file doesn't exist
    ValueError
        If the file is empty or not valid Newick
    """
    path = Path(tree_file)
    if not path.exists():
        raise FileNotFoundError(f"Tree file not found: {path}")
    try:
        # Files hold exactly one tree; take the first
        return next(Phylo.parse(str(path), "newick"))
    except StopIteration:
        raise ValueError(f"No tree in {path}") from None
    except NewickError as e:
        raise ValueError(f"Malformed tree in {path}: {e}") from e


def tree_accession(tree_file: Union[str, Path]) -> str:
    """
    Result-set accession for a tree file.

    Examples
    --------
    >>> tree_accession("SNP_trees/PDS000001234.5.newick_tree.newick")
    'PDS000001234.5'
    """
    name = Path(tree_file).name
    if name.endswith(TREE_SUFFIX):
        return name[:-len(TREE_SUFFIX)]
    return Path(name).stem


def tip_accession(tip_name: Optional[str]) -> str:
    """Isolate accession from a tip name, without surrounding quotes."""
    if not tip_name:
        return ""
    return re.sub(r"^['\"]|['\"]$", "", str(tip_name))


def tip_accessions(tree: Phylo.BaseTree.Tree) -> List[str]:
    """Accessions of all tips, in tree order."""
    return [tip_accession(clade.name) for clade in tree.get_terminals()]


def root_height(tree: Phylo.BaseTree.Tree) -> float:
    """
    Longest root-to-tip path length, not counting the root's own branch.

    A height of zero marks a degenerate tree (all branch lengths zero or
    absent) which cannot be drawn as a cladogram.
    """
    def _height(clade) -> float:
        if not clade.clades:
            return 0.0
        return max((child.branch_length or 0.0) + _height(child) for child in clade.clades)

    return _height(tree.root)


def category_color(attribute_package: Optional[str]) -> RGB:
    """
    Color for an isolate's ``attribute_package`` value.

    Examples
    --------
    >>> category_color("Pathogen.env")
    (0.1, 0.1, 0.1)
    >>> category_color("Pathogen.cl; clinical or host-associated")
    (0.9, 0.3, 0.3)
    """
    value = attribute_package or ""
    if ENVIRONMENTAL_PATTERN.search(value):
        return ENVIRONMENTAL_COLOR
    if CLINICAL_PATTERN.search(value):
        return CLINICAL_COLOR
    return DEFAULT_COLOR


def to_branch_color(rgb: RGB) -> BranchColor:
    """Convert unit-interval RGB channels to a Bio.Phylo BranchColor."""
    red, green, blue = (int(round(channel * 255)) for channel in rgb)
    return BranchColor(red, green, blue)


def annotate_tree(
    tree: Phylo.BaseTree.Tree,
    metadata: MetadataIndex,
) -> List[TipAnnotation]:
    """
    Relabel tips with isolate labels and color them by isolation source.

    Tips are modified in place; the topology is untouched. A tip whose
    accession has no ``label`` in the metadata ends up with an empty name.

    Parameters
    ----------
    tree : Phylo.BaseTree.Tree
        Parsed tree whose tip names are isolate accessions
    metadata : MetadataIndex
        Aggregated isolate metadata

    Returns
    -------
    List[TipAnnotation]
        One annotation per tip, in tree order
    """
    annotations = []
    n_unlabeled = 0

    for clade in tree.get_terminals():
        accession = tip_accession(clade.name)
        label = metadata.field(accession, "label")
        rgb = category_color(metadata.field(accession, "attribute_package"))

        if not label:
            n_unlabeled += 1
        clade.name = label
        clade.color = to_branch_color(rgb)
        annotations.append(TipAnnotation(accession, label, rgb))
        logger.debug(f"Annotated tip {accession} -> {label!r} {rgb}")

    if n_unlabeled:
        logger.debug(f"{n_unlabeled} tips have no label in the metadata")

    return annotations
