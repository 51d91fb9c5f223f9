"""
Isolate Metadata Parsing and Aggregation

This module reads the tab-delimited metadata published alongside each
Pathogen Detection result set and builds the read-only lookups the tree
filter and annotator consult.

Key Responsibilities:
1. Parse NCBI metadata TSV files (``*.metadata.tsv``):
   - target_acc: isolate accession used as tip name in SNP trees (REQUIRED)
   - collection_date / target_creation_date: dates used for windowing
   - label: human-readable tip label for reports
   - attribute_package: isolation source category (clinical, environmental, ...)

2. Aggregate across files:
   - Metadata for one result set may be split across several overlapping
     files. Records are merged field by field and the first non-empty value
     wins, in file-processing order. The earliest file is trusted.

3. Index new isolates:
   - ``*.new_isolates.tsv`` in the Clusters directory lists result-set
     accessions (``PDS_acc``) whose trees gained isolates since the last run.
     Only the first such file is consulted.

Example Usage:
    >>> from pathogentrees.metadata import build_metadata_index
    >>> index = build_metadata_index(sorted(Path("Metadata").glob("*.metadata.tsv")))
    >>> index.field("SAMN00000001", "collection_date")
    '2021-06-15'
"""

from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Union
from collections import abc
import csv
from pathlib import Path
import logging
import pandas as pd

logger = logging.getLogger(__name__)

ACCESSION_COLUMN = "target_acc"
NEW_ISOLATE_KEY = "PDS_acc"

IsolateRecord = Dict[str, str]


# ============================================================================
# TSV Parsing
# ============================================================================

def clean_column_name(name: str) -> str:
    """Strip whitespace and a leading comment hash from a header name."""
    return str(name).strip().lstrip('#').strip()


def read_metadata_table(tsv_path: Union[str, Path]) -> pd.DataFrame:
    """
    Read one metadata TSV into a DataFrame of strings.

    All values are kept as strings (no NA conversion) so that literal
    markers such as ``missing`` or ``null`` reach the date logic intact.

    Parameters
    ----------
    tsv_path : Union[str, Path]
        Path to a tab-delimited file with a header row

    Returns
    -------
    pd.DataFrame
        Table with cleaned header names and whitespace-trimmed values

    Raises
    ------
    FileNotFoundError
        If the file doesn't exist
    """
    path = Path(tsv_path)

    if not path.exists():
        raise FileNotFoundError(f"Metadata file not found: {path}")

    try:
        df = pd.read_csv(
            path,
            sep='\t',
            dtype=str,
            keep_default_na=False,
            na_filter=False,
            quoting=csv.QUOTE_NONE,
        )
    except pd.errors.EmptyDataError:
        logger.warning(f"Metadata file is empty: {path}")
        return pd.DataFrame()

    df.columns = [clean_column_name(col) for col in df.columns]
    df = df.fillna("")

    for col in df.columns:
        df[col] = df[col].str.strip()

    logger.debug(f"Read {len(df)} rows and {len(df.columns)} columns from {path}")
    return df


# ============================================================================
# Record Merging
# ============================================================================

def merge_records(records: Iterable[Mapping[str, Optional[str]]]) -> IsolateRecord:
    """
    Fold an ordered sequence of partial records into one.

    For every field the first non-empty value is kept; later values for the
    same field are ignored. Blank and missing values never claim a field, so
    a later record can still fill it in.

    Examples
    --------
    >>> merge_records([{"label": "Foo", "host": ""}, {"label": "Bar", "host": "cow"}])
    {'label': 'Foo', 'host': 'cow'}
    """
    merged: IsolateRecord = {}
    for record in records:
        for key, value in record.items():
            if value is None:
                value = ""
            if not merged.get(key):
                merged[key] = value
    return merged


class MetadataIndex(abc.Mapping):
    """
    Read-only mapping from isolate accession to its merged record.

    Missing accessions and missing fields read as the empty string through
    ``field`` so downstream filters treat them as ordinary blank values.
    """

    def __init__(self, records: Optional[Dict[str, IsolateRecord]] = None, sources: Optional[List[Path]] = None):
        self._records: Dict[str, IsolateRecord] = dict(records or {})
        self.sources: List[Path] = list(sources or [])

    def __getitem__(self, accession: str) -> IsolateRecord:
        return self._records[accession]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def field(self, accession: str, name: str) -> str:
        """Return one field of one record, or '' if either is absent."""
        return self._records.get(accession, {}).get(name, "") or ""


def build_metadata_index(files: Iterable[Union[str, Path]]) -> MetadataIndex:
    """
    Build the accession -> record index from metadata files.

    Parameters
    ----------
    files : Iterable[Union[str, Path]]
        Metadata TSV files in priority order; the first file wins conflicts

    Returns
    -------
    MetadataIndex
        Aggregated, read-only index

    Raises
    ------
    ValueError
        If a file lacks the ``target_acc`` column
    """
    records: Dict[str, IsolateRecord] = {}
    sources: List[Path] = []

    for tsv in files:
        path = Path(tsv)
        df = read_metadata_table(path)
        sources.append(path)
        if df.empty:
            continue

        if ACCESSION_COLUMN not in df.columns:
            raise ValueError(
                f"Metadata file {path} is missing required column '{ACCESSION_COLUMN}'. "
                f"Found {len(df.columns)} columns total."
            )

        n_blank = 0
        for row in df.to_dict(orient='records'):
            accession = row.get(ACCESSION_COLUMN, "")
            if not accession:
                n_blank += 1
                continue
            records[accession] = merge_records([records.get(accession, {}), row])

        if n_blank:
            logger.debug(f"Skipped {n_blank} rows without {ACCESSION_COLUMN} in {path}")
        logger.info(f"Read {len(df)} metadata rows from {path.name}")

    logger.info(f"Metadata index holds {len(records)} isolates from {len(sources)} files")
    return MetadataIndex(records, sources)


# ============================================================================
# New Isolates
# ============================================================================

def find_new_isolates_file(cluster_dir: Union[str, Path]) -> Optional[Path]:
    """
    Pick the new-isolates listing from a Clusters directory.

    Only the first file in sorted order is used; any others are ignored.
    """
    candidates = sorted(Path(cluster_dir).glob("*.new_isolates.tsv"))
    if not candidates:
        return None
    if len(candidates) > 1:
        logger.debug(
            f"Using {candidates[0].name}; ignoring "
            f"{', '.join(c.name for c in candidates[1:])}"
        )
    return candidates[0]


def build_new_isolate_index(tsv_path: Union[str, Path]) -> Dict[str, IsolateRecord]:
    """
    Index result-set accessions that contain newly added isolates.

    Parameters
    ----------
    tsv_path : Union[str, Path]
        A ``*.new_isolates.tsv`` file with a ``PDS_acc`` column

    Returns
    -------
    Dict[str, IsolateRecord]
        ``PDS_acc`` -> raw row. Presence of a key means the tree has new
        isolates.

    Raises
    ------
    FileNotFoundError
        If the file doesn't exist
    ValueError
        If the ``PDS_acc`` column is missing
    """
    path = Path(tsv_path)
    df = read_metadata_table(path)
    if df.empty:
        logger.warning(f"No new isolates listed in {path}")
        return {}

    if NEW_ISOLATE_KEY not in df.columns:
        raise ValueError(f"New isolates file {path} is missing required column '{NEW_ISOLATE_KEY}'")

    index = {}
    for row in df.to_dict(orient='records'):
        key = row.get(NEW_ISOLATE_KEY, "")
        if key:
            index[key] = row

    logger.info(f"{len(index)} trees contain new isolates ({path.name})")
    return index
