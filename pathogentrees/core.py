"""
Core Pipeline Orchestration for pathogentrees

Runs one result-set run end to end:

1. Download metadata, cluster tables and SNP trees into the working directory
2. Index isolate metadata and copy the downloaded tables to the output tree
3. Index new isolates (only when that filter is requested)
4. Filter trees by date window and new isolates into ``<outdir>/SNP_trees``
5. Optionally render the passing trees into ``<outdir>/report.pdf``

Remote and I/O failures propagate to the caller. A report failure is logged
and marks the run unsuccessful; the filtered trees are kept.

Example Usage:
    >>> from pathogentrees.config import get_default_config
    >>> from pathogentrees.core import run_pipeline
    >>> cfg = get_default_config().update(run_id="latest", temp_dir="/tmp/pdt")
    >>> results = run_pipeline(cfg)
"""

from typing import Dict, Any
from pathlib import Path
import logging
import tempfile

from . import config, filtering, metadata, remote, reports, utils

# Configure logging
logger = logging.getLogger(__name__)


def run_pipeline(cfg: config.PipelineConfig) -> Dict[str, Any]:
    """
    Run the complete download, filter and report pipeline.

    Parameters
    ----------
    cfg : config.PipelineConfig
        Resolved configuration; ``run_id`` must be set. When ``temp_dir`` is
        unset a fresh temporary directory is used and left in place.

    Returns
    -------
    Dict[str, Any]
        Dictionary containing:
        - 'success': bool - False only when the report step failed
        - 'output_dir': Path - Output directory path
        - 'n_trees_listed': int - Trees in the remote listing
        - 'n_trees_passed': int - Trees copied to the output
        - 'n_trees_failed': int - Trees rejected by the filters
        - 'report': Optional[Path] - Report path if one was written
        - 'errors': List[str] - Non-fatal errors encountered

    Raises
    ------
    ValueError
        If ``run_id`` is missing
    remote.RemoteError
        If the repository cannot be reached or a transfer fails
    FileNotFoundError
        If new isolates are requested but the run has no listing
    """
    if not cfg.run_id:
        raise ValueError("A run identifier is required (e.g. 'latest')")

    temp_dir = Path(cfg.temp_dir) if cfg.temp_dir else Path(tempfile.mkdtemp(prefix="pathogentrees_"))
    dirs = utils.setup_directories(temp_dir, cfg.output_dir)

    results: Dict[str, Any] = {
        'success': False,
        'output_dir': cfg.output_dir,
        'n_trees_listed': 0,
        'n_trees_passed': 0,
        'n_trees_failed': 0,
        'report': None,
        'errors': [],
    }

    logger.info("=" * 80)
    logger.info(f"NCBI Pathogen Detection trees - {cfg.result_set} ({cfg.run_id})")
    logger.info("=" * 80)
    logger.info(f"Working directory: {temp_dir}")
    logger.info(f"Output: {cfg.output_dir}")
    logger.info(f"Date window: {cfg.filters.date_from} to {cfg.filters.date_to}")
    if cfg.filters.new_isolates:
        logger.info("Only trees with new isolates are kept")
    if cfg.max_trees:
        logger.info(f"Considering at most {cfg.max_trees} trees")
    logger.info("")

    # =====================================================================
    # Phase 1: Download
    # =====================================================================

    logger.info("PHASE 1: Downloading from the results repository")
    logger.info("-" * 80)

    results['n_trees_listed'] = remote.download_all(cfg, dirs)

    # =====================================================================
    # Phase 2: Metadata
    # =====================================================================

    logger.info("")
    logger.info("PHASE 2: Indexing metadata")
    logger.info("-" * 80)

    metadata_files = sorted(dirs['temp_metadata'].glob("*.metadata.tsv"))
    isolates = metadata.build_metadata_index(metadata_files)
    logger.info(f"Indexed {len(isolates)} isolates from {len(metadata_files)} files")

    utils.copy_files(sorted(dirs['temp_metadata'].glob("*.tsv")), dirs['metadata'])
    utils.copy_files(sorted(dirs['temp_clusters'].glob("*.SNP_distances.tsv")), dirs['clusters'])

    new_isolates = None
    if cfg.filters.new_isolates:
        new_isolates_file = metadata.find_new_isolates_file(dirs['temp_clusters'])
        if new_isolates_file is None:
            raise FileNotFoundError(
                f"No *.new_isolates.tsv file in {dirs['temp_clusters']}; "
                "cannot filter on new isolates"
            )
        new_isolates = metadata.build_new_isolate_index(new_isolates_file)
        logger.info(f"Indexed {len(new_isolates)} trees with new isolates")

    # =====================================================================
    # Phase 3: Filtering
    # =====================================================================

    logger.info("")
    logger.info("PHASE 3: Filtering trees")
    logger.info("-" * 80)

    window = filtering.DateWindow(cfg.filters.date_from, cfg.filters.date_to)
    summary = filtering.filter_trees(
        dirs['temp_trees'], dirs['trees'], isolates, window, new_isolates
    )
    results['n_trees_passed'] = len(summary.passed)
    results['n_trees_failed'] = len(summary.failed)

    # =====================================================================
    # Phase 4: Report
    # =====================================================================

    if cfg.report.enabled:
        logger.info("")
        logger.info("PHASE 4: Generating report")
        logger.info("-" * 80)

        passing_copies = [dirs['trees'] / tree_file.name for tree_file in summary.passed]
        try:
            results['report'] = reports.generate_report(
                passing_copies, isolates, dirs['images'],
                dirs['output'] / "report.pdf", cfg,
            )
        except reports.ReportError as e:
            logger.error(f"Report generation failed: {e}")
            results['errors'].append(f"Report generation failed: {e}")
            return results

    # =====================================================================
    # Pipeline Complete
    # =====================================================================

    results['success'] = True

    logger.info("")
    logger.info("=" * 80)
    logger.info(f"Pipeline completed for {cfg.result_set} ({cfg.run_id})")
    logger.info(f"  Trees: {results['n_trees_passed']} passed / "
                f"{results['n_trees_passed'] + results['n_trees_failed']} downloaded")
    if results['report']:
        logger.info(f"  Report: {results['report']}")
    logger.info(f"  Output: {cfg.output_dir}")
    logger.info("=" * 80)

    return results
