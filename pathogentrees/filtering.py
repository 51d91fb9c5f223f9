"""
Tree Filtering by Date Window and New Isolates

A tree is kept when it satisfies every active criterion:

1. Date window: at least one tip's isolate date lies inside
   ``[date_from, date_to]`` (inclusive). The isolate date is the
   ``collection_date``; blank or placeholder values (``missing``, ``null``,
   ``0``) fall back to ``target_creation_date``. Unreadable dates become the
   sentinel 1969-12-31, so undated trees only survive when the window
   reaches back that far.

2. New isolates (optional): the tree's result-set accession appears in the
   new-isolates listing.

Passing trees are copied verbatim into the output directory. Originals are
never removed, and rerunning with the same inputs copies the same set.
"""

from typing import Dict, List, NamedTuple, Optional, Union
from datetime import date
from pathlib import Path
import logging
import re
import shutil
from Bio import Phylo

from .dates import to_date
from .metadata import MetadataIndex, IsolateRecord
from .phylogenetics import read_tree, tip_accessions, tree_accession

logger = logging.getLogger(__name__)

PLACEHOLDER_DATE = re.compile(r"^(|missing|null|0)$", re.IGNORECASE)


class DateWindow(NamedTuple):
    """Inclusive date bounds; the order of the bounds is not checked."""
    date_from: date
    date_to: date

    def contains(self, value: date) -> bool:
        return self.date_from <= value <= self.date_to


class FilterSummary(NamedTuple):
    passed: List[Path]
    failed: List[Path]


def isolate_date(accession: str, metadata: MetadataIndex) -> date:
    """
    Best available date for one isolate.

    Collection date is preferred; the record creation date stands in when
    the collection date is blank or a placeholder.
    """
    raw = metadata.field(accession, "collection_date").strip()
    if PLACEHOLDER_DATE.match(raw):
        raw = metadata.field(accession, "target_creation_date")
    return to_date(raw)


def in_date_window(
    tree: Phylo.BaseTree.Tree,
    metadata: MetadataIndex,
    window: DateWindow,
) -> bool:
    """True as soon as any tip's isolate date falls inside the window."""
    return any(
        window.contains(isolate_date(accession, metadata))
        for accession in tip_accessions(tree)
    )


def passes_filters(
    tree: Phylo.BaseTree.Tree,
    metadata: MetadataIndex,
    window: DateWindow,
    new_isolates: Optional[Dict[str, IsolateRecord]] = None,
    tree_acc: Optional[str] = None,
) -> bool:
    """
    Decide whether a tree is kept.

    Parameters
    ----------
    tree : Phylo.BaseTree.Tree
        Parsed SNP tree
    metadata : MetadataIndex
        Aggregated isolate metadata
    window : DateWindow
        Inclusive date window
    new_isolates : dict, optional
        New-isolates index. When given, the tree must be listed in it.
    tree_acc : str, optional
        Result-set accession of the tree; required with ``new_isolates``

    Returns
    -------
    bool
        True if the tree passes every active filter
    """
    passed = in_date_window(tree, metadata, window)

    if new_isolates is not None and tree_acc not in new_isolates:
        passed = False

    return passed


def filter_trees(
    tree_dir: Union[str, Path],
    output_dir: Union[str, Path],
    metadata: MetadataIndex,
    window: DateWindow,
    new_isolates: Optional[Dict[str, IsolateRecord]] = None,
) -> FilterSummary:
    """
    Copy every tree in ``tree_dir`` that passes the filters to ``output_dir``.

    Parameters
    ----------
    tree_dir : Union[str, Path]
        Directory of downloaded ``*.newick`` files
    output_dir : Union[str, Path]
        Destination for passing trees
    metadata : MetadataIndex
        Aggregated isolate metadata
    window : DateWindow
        Inclusive date window
    new_isolates : dict, optional
        New-isolates index; None disables that filter

    Returns
    -------
    FilterSummary
        Source paths of passing and failing trees
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    passed, failed = [], []
    for tree_file in sorted(Path(tree_dir).glob("*.newick")):
        tree = read_tree(tree_file)
        if passes_filters(tree, metadata, window, new_isolates, tree_accession(tree_file)):
            shutil.copyfile(tree_file, out / tree_file.name)
            passed.append(tree_file)
        else:
            logger.debug(f"Tree did not pass filters: {tree_file.name}")
            failed.append(tree_file)

    logger.info(f"{len(passed)} of {len(passed) + len(failed)} trees passed filters")
    return FilterSummary(passed, failed)
