"""
pathogentrees: SNP Tree Filtering for the NCBI Pathogen Detection Pipeline

pathogentrees downloads one run of a Pathogen Detection result set (isolate
metadata, cluster tables and per-cluster SNP trees), keeps the trees that
contain an isolate dated inside a requested window, optionally restricted to
trees with newly added isolates, and renders the surviving trees into a
paginated PDF report with tips colored by isolation source.

Core functionality includes:
- Tolerant parsing of the heterogeneous isolate date formats
- Metadata aggregation across per-isolate TSV tables
- Date-window and new-isolate tree filtering
- Tree annotation and rendering with Bio.Phylo and matplotlib
- PDF report composition
"""

__version__ = "0.1.0"

# Import main modules for easy access
from . import dates
from . import metadata
from . import phylogenetics
from . import filtering
from . import layout
from . import utils
from . import config
from . import remote
from . import core

__all__ = [
    "dates",
    "metadata",
    "phylogenetics",
    "filtering",
    "layout",
    "utils",
    "config",
    "remote",
    "core",
]
