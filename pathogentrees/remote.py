"""
Pathogen Detection Results Repository Client

Downloads one run of a result set from the public NCBI FTP repository:

    <results_root>/<set>/<run>/Metadata/*.tsv
    <results_root>/<set>/<run>/Clusters/*.SNP_distances.tsv
    <results_root>/<set>/<run>/Clusters/*.new_isolates.tsv
    <results_root>/<set>/<run>/SNP_trees/*/*.newick

Transfers are synchronous with no retries. Any failure aborts the whole
download; trees already present locally are not fetched again, so a rerun
picks up where the previous one stopped.

Example Usage:
    >>> from pathogentrees.remote import PathogenFTP
    >>> with PathogenFTP("ftp.ncbi.nlm.nih.gov") as ftp:
    ...     ftp.cwd("/pathogen/Results")
    ...     print(ftp.list_files())
"""

from typing import Dict, List, Optional, Union
from pathlib import Path, PurePosixPath
import ftplib
import os
import logging

from . import config
from .utils import ProgressTracker

logger = logging.getLogger(__name__)


# ============================================================================
# Exceptions
# ============================================================================

class RemoteError(RuntimeError):
    """Base class for results repository failures."""


class RemoteConnectionError(RemoteError):
    """Raised when the server cannot be reached or refuses the login."""


class RemoteDirectoryError(RemoteError):
    """Raised when a remote directory does not exist."""


class TransferError(RemoteError):
    """Raised when a single file transfer fails."""


# ============================================================================
# FTP Client
# ============================================================================

class PathogenFTP:
    """
    Thin wrapper over ``ftplib.FTP`` that raises ``RemoteError`` subclasses.

    Parameters
    ----------
    domain : str
        FTP host
    user, password : str
        Login credentials (default: anonymous)
    timeout : float, optional
        Socket timeout in seconds
    """

    def __init__(self, domain: str, user: str = "anonymous", password: str = "-anonymous@",
                 timeout: Optional[float] = None):
        self.domain = domain
        self.user = user
        self.password = password
        self.timeout = timeout
        self._ftp: Optional[ftplib.FTP] = None

    def __enter__(self) -> 'PathogenFTP':
        self.connect()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def _require_connection(self) -> ftplib.FTP:
        if self._ftp is None:
            raise RemoteConnectionError(f"Not connected to {self.domain}")
        return self._ftp

    def connect(self) -> None:
        """Open the control connection and log in."""
        logger.debug(f"Connecting to {self.domain}")
        try:
            if self.timeout is None:
                self._ftp = ftplib.FTP(self.domain)
            else:
                self._ftp = ftplib.FTP(self.domain, timeout=self.timeout)
        except ftplib.all_errors as e:
            raise RemoteConnectionError(f"Cannot connect to {self.domain}: {e}") from e

        try:
            self._ftp.login(self.user, self.password)
        except ftplib.all_errors as e:
            self.close()
            raise RemoteConnectionError(f"Cannot login to {self.domain}: {e}") from e

    def cwd(self, path: str, hint: str = "") -> None:
        """
        Change the remote working directory.

        Raises
        ------
        RemoteDirectoryError
            If the directory does not exist; ``hint`` is appended to the message
        """
        ftp = self._require_connection()
        try:
            ftp.cwd(path)
        except ftplib.all_errors as e:
            message = f"Cannot change working directory to {path}."
            if hint:
                message += f" {hint}"
            raise RemoteDirectoryError(f"{message} {e}") from e

    def list_files(self, pattern: str = "") -> List[str]:
        """
        Names in the working directory matching a server-side glob.

        An empty listing is returned as an empty list; servers report it
        with a 450/550 reply.
        """
        ftp = self._require_connection()
        try:
            return ftp.nlst(pattern) if pattern else ftp.nlst()
        except ftplib.error_perm as e:
            if str(e).startswith(("450", "550")):
                logger.debug(f"No remote files match {pattern!r}")
                return []
            raise RemoteError(f"Cannot list {pattern!r}: {e}") from e
        except ftplib.all_errors as e:
            raise RemoteError(f"Cannot list {pattern!r}: {e}") from e

    def fetch(self, remote: str, local: Union[str, Path], ascii: bool = False) -> Path:
        """
        Download one file.

        Parameters
        ----------
        remote : str
            Path relative to the working directory
        local : Union[str, Path]
            Destination path
        ascii : bool, optional
            Use ASCII mode, which normalizes line endings (default: False)

        Raises
        ------
        TransferError
            If the transfer fails

        Notes
        -----
        Data is written to ``<local>.part`` and moved into place only after
        the transfer completes, so an interrupted download never leaves a
        truncated file under the final name.
        """
        ftp = self._require_connection()
        local = Path(local)
        partial = local.with_name(local.name + ".part")
        try:
            if ascii:
                with open(partial, 'w', encoding=ftp.encoding, newline='\n') as fh:
                    ftp.retrlines(f"RETR {remote}", lambda line: fh.write(line + "\n"))
            else:
                with open(partial, 'wb') as fh:
                    ftp.retrbinary(f"RETR {remote}", fh.write)
            os.replace(partial, local)
        except ftplib.all_errors as e:
            raise TransferError(f"get failed for {remote}: {e}") from e
        finally:
            partial.unlink(missing_ok=True)
        return local

    def close(self) -> None:
        if self._ftp is None:
            return
        try:
            self._ftp.quit()
        except ftplib.all_errors:
            # Server already gone; drop the socket
            self._ftp.close()
        self._ftp = None


def open_repository(cfg: config.PipelineConfig) -> PathogenFTP:
    remote = cfg.remote
    return PathogenFTP(remote.domain, remote.user, remote.password)


# ============================================================================
# Repository Operations
# ============================================================================

def list_result_sets(cfg: config.PipelineConfig) -> List[str]:
    """Names of the result sets available under the results root."""
    with open_repository(cfg) as ftp:
        ftp.cwd(cfg.remote.results_root)
        return ftp.list_files()


def run_directory(cfg: config.PipelineConfig, folder: str) -> str:
    """Remote path of one folder of the configured run."""
    return str(PurePosixPath(cfg.remote.results_root) / cfg.result_set / cfg.run_id / folder)


def fetch_matching(ftp: PathogenFTP, patterns: List[str], destination: Path) -> List[Path]:
    """Download every file in the working directory matching any pattern."""
    fetched = []
    for pattern in patterns:
        for name in ftp.list_files(pattern):
            fetched.append(ftp.fetch(name, destination / PurePosixPath(name).name))
    return fetched


def download_trees(ftp: PathogenFTP, destination: Path, max_trees: int = 0) -> int:
    """
    Download SNP trees newest first.

    The listing is reversed so that the most recent clusters come first.
    With a cap, only the first ``max_trees`` listing entries are
    considered, whether fetched or already present.

    Returns
    -------
    int
        Number of trees in the remote listing
    """
    listing = list(reversed(ftp.list_files("*/*.newick")))
    logger.info(f"{len(listing)} trees to download")

    considered = listing[:max_trees] if max_trees else listing
    tracker = ProgressTracker(len(considered), "Downloading trees")
    n_skipped = 0

    for remote_name in considered:
        local_file = destination / PurePosixPath(remote_name).name
        if local_file.exists():
            n_skipped += 1
        else:
            ftp.fetch(remote_name, local_file, ascii=True)
        tracker.update()

    tracker.finish()
    if n_skipped:
        logger.info(f"{n_skipped} trees were already present locally")
    return len(listing)


def download_all(cfg: config.PipelineConfig, dirs: Dict[str, Path]) -> int:
    """
    Download metadata, cluster tables and SNP trees of one run.

    Parameters
    ----------
    cfg : config.PipelineConfig
        Pipeline configuration; ``result_set`` and ``run_id`` select the run
    dirs : Dict[str, Path]
        Directory map from ``utils.setup_directories``

    Returns
    -------
    int
        Number of trees in the remote listing

    Raises
    ------
    RemoteConnectionError
        If the server cannot be reached
    RemoteDirectoryError
        If the result set or run does not exist
    TransferError
        If any file transfer fails
    """
    if not cfg.run_id:
        raise ValueError("run_id is required to download a run")

    with open_repository(cfg) as ftp:
        logger.info("Retrieving metadata")
        ftp.cwd(
            run_directory(cfg, "Metadata"),
            hint=f"It is possible that '{cfg.result_set}' ({cfg.run_id}) does not exist.",
        )
        metadata_files = fetch_matching(ftp, ["*.tsv"], dirs['temp_metadata'])
        logger.info(f"Downloaded {len(metadata_files)} metadata files")

        logger.info("Retrieving SNP distances and new isolates")
        ftp.cwd(run_directory(cfg, "Clusters"))
        cluster_files = fetch_matching(
            ftp, ["*.SNP_distances.tsv", "*.new_isolates.tsv"], dirs['temp_clusters']
        )
        logger.info(f"Downloaded {len(cluster_files)} cluster files")

        logger.info("Retrieving trees")
        ftp.cwd(run_directory(cfg, "SNP_trees"))
        return download_trees(ftp, dirs['temp_trees'], cfg.max_trees)
