"""
Configuration Management for pathogentrees

This module provides the configuration system using frozen dataclasses. One
``PipelineConfig`` is resolved at startup (defaults, then an optional
YAML/JSON file, then environment overrides, then command-line flags) and is
passed into every pipeline entry point.

Configuration Structure:
- RemoteConfig: FTP host, results root and anonymous credentials
- FilterConfig: inclusive date window and the new-isolates switch
- ReportConfig: PDF report switch, page geometry, fonts and image resolution
- PipelineConfig: master configuration combining all components

Example Usage:
    >>> from pathogentrees.config import get_default_config, load_config_from_file
    >>>
    >>> config = get_default_config()
    >>> print(config.remote.domain)
    ftp.ncbi.nlm.nih.gov
    >>>
    >>> config = load_config_from_file("listeria.yaml")
    >>>
    >>> custom = config.update(
    ...     result_set="Salmonella",
    ...     filters__new_isolates=True,
    ... )
"""

from dataclasses import dataclass, field, asdict, replace
from datetime import date
from pathlib import Path
from typing import Optional, List, Dict, Any, Union
import json
import logging
import os
import yaml

from .dates import SENTINEL_DATE, to_date
from .layout import PageGeometry

logger = logging.getLogger(__name__)

ENV_PREFIX = "PATHOGENTREES_"

# Listings this long take hours to download
LARGE_MAX_TREES = 10000


def _coerce_date(value: Union[str, date]) -> date:
    if isinstance(value, date):
        return value
    return to_date(str(value))


# ============================================================================
# Remote Repository Configuration
# ============================================================================

@dataclass(frozen=True)
class RemoteConfig:
    """
    Location of the public Pathogen Detection results repository.

    Attributes
    ----------
    domain : str
        FTP host (default: "ftp.ncbi.nlm.nih.gov")
    results_root : str
        Absolute directory holding one folder per result set
        (default: "/pathogen/Results")
    user, password : str
        Login credentials; the repository accepts anonymous logins
    """
    domain: str = "ftp.ncbi.nlm.nih.gov"
    results_root: str = "/pathogen/Results"
    user: str = "anonymous"
    password: str = "-anonymous@"

    def __post_init__(self):
        if not self.domain:
            raise ValueError("domain must not be empty")
        if not self.results_root.startswith("/"):
            raise ValueError("results_root must be an absolute path")


# ============================================================================
# Filter Configuration
# ============================================================================

@dataclass(frozen=True)
class FilterConfig:
    """
    Tree filter settings.

    Attributes
    ----------
    date_from : date
        First day of the window, inclusive (default: 1969-12-31, which
        keeps undated trees)
    date_to : date
        Last day of the window, inclusive (default: today)
    new_isolates : bool
        Keep only trees listed in the new-isolates file (default: False)
    """
    date_from: date = SENTINEL_DATE
    date_to: date = field(default_factory=date.today)
    new_isolates: bool = False

    def __post_init__(self):
        # Strings come from config files and environment variables
        object.__setattr__(self, 'date_from', _coerce_date(self.date_from))
        object.__setattr__(self, 'date_to', _coerce_date(self.date_to))


# ============================================================================
# Report Configuration
# ============================================================================

@dataclass(frozen=True)
class ReportConfig:
    """
    PDF report settings.

    Attributes
    ----------
    enabled : bool
        Produce ``report.pdf`` (default: False)
    geometry : PageGeometry
        Page size, margin and content area in points (default: US Letter)
    title : str
        Title page heading
    title_font_size, heading_font_size, caption_font_size, url_font_size : float
        Font sizes in points for the page texts
    tree_font_size : float
        Tip label size in the tree images (default: 12)
    image_dpi : int
        Resolution of the raster tree images (default: 150)
    font_family : str
        Matplotlib font family for page texts (default: "serif")
    """
    enabled: bool = False
    geometry: PageGeometry = field(default_factory=PageGeometry)
    title: str = "Report from NCBI Pathogen Pipeline"
    title_font_size: float = 32
    heading_font_size: float = 24
    caption_font_size: float = 16
    url_font_size: float = 12
    tree_font_size: float = 12
    image_dpi: int = 150
    font_family: str = "serif"

    def __post_init__(self):
        if isinstance(self.geometry, dict):
            object.__setattr__(self, 'geometry', PageGeometry(**self.geometry))

        sizes = [self.title_font_size, self.heading_font_size, self.caption_font_size,
                 self.url_font_size, self.tree_font_size]
        if any(size <= 0 for size in sizes):
            raise ValueError("font sizes must be positive")
        if self.image_dpi < 10:
            raise ValueError("image_dpi must be at least 10")


# ============================================================================
# Master Pipeline Configuration
# ============================================================================

@dataclass(frozen=True)
class PipelineConfig:
    """
    Master configuration for one pipeline run.

    Attributes
    ----------
    result_set : str
        Organism group in the results repository (default: "Listeria")
    run_id : str, optional
        Run directory inside the result set, e.g. "latest" or
        "PDG000000001.1234". Required to run the pipeline.
    temp_dir : Path, optional
        Download directory. The CLI creates a fresh one when unset.
    output_dir : Path
        Output directory (default: "out")
    max_trees : int
        Cap on tree listing entries considered; 0 means no cap (default: 0)
    log_level : str
        Logging level (default: "INFO")
    remote : RemoteConfig
    filters : FilterConfig
    report : ReportConfig
    """
    result_set: str = "Listeria"
    run_id: Optional[str] = None
    temp_dir: Optional[Path] = None
    output_dir: Path = field(default_factory=lambda: Path("out"))
    max_trees: int = 0
    log_level: str = "INFO"
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    def __post_init__(self):
        """Validate and normalize configuration."""
        if isinstance(self.output_dir, str):
            object.__setattr__(self, 'output_dir', Path(self.output_dir))
        if isinstance(self.temp_dir, str):
            object.__setattr__(self, 'temp_dir', Path(self.temp_dir))

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")

        if self.max_trees < 0:
            raise ValueError("max_trees must be 0 (no cap) or positive")

        if not self.result_set:
            raise ValueError("result_set must not be empty")

    def update(self, **kwargs) -> 'PipelineConfig':
        """
        Create a new configuration with updated values.

        Supports nested updates using double underscore notation:
        config.update(filters__new_isolates=True)

        Parameters
        ----------
        **kwargs
            Configuration parameters to update

        Returns
        -------
        PipelineConfig
            New configuration object with updates
        """
        top_level = {}
        nested = {}

        for key, value in kwargs.items():
            if '__' in key:
                component, param = key.split('__', 1)
                nested.setdefault(component, {})[param] = value
            else:
                top_level[key] = value

        for component, updates in nested.items():
            current = top_level.get(component, getattr(self, component))
            top_level[component] = replace(current, **updates)

        return replace(self, **top_level)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a nested dictionary."""
        return asdict(self)

    def to_yaml(self, output_path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        config_dict = _to_serializable(self.to_dict())

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Configuration saved to {path}")

    def to_json(self, output_path: Union[str, Path]) -> None:
        """Save configuration to JSON file."""
        config_dict = _to_serializable(self.to_dict())

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            json.dump(config_dict, f, indent=2)

        logger.info(f"Configuration saved to {path}")


# ============================================================================
# Helper Functions
# ============================================================================

def get_default_config() -> PipelineConfig:
    """Get default pipeline configuration."""
    return PipelineConfig()


def load_config_from_file(config_path: Union[str, Path]) -> PipelineConfig:
    """
    Load configuration from YAML or JSON file.

    Automatically detects file format based on extension. Dates may be
    written as ``YYYY-MM-DD`` or ``MM/DD/YYYY``.

    Parameters
    ----------
    config_path : Union[str, Path]
        Path to configuration file (.yaml, .yml, or .json)

    Returns
    -------
    PipelineConfig
        Loaded configuration

    Raises
    ------
    FileNotFoundError
        If configuration file doesn't exist
    ValueError
        If file format is not supported
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()

    with open(path, 'r') as f:
        if suffix in ['.yaml', '.yml']:
            config_dict = yaml.safe_load(f) or {}
        elif suffix == '.json':
            config_dict = json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {suffix}")

    logger.info(f"Loaded configuration from {path}")
    return _dict_to_config(config_dict)


def _dict_to_config(config_dict: Dict[str, Any]) -> PipelineConfig:
    """Convert a nested dictionary to a PipelineConfig object."""
    config_dict = dict(config_dict)
    nested_configs = {}

    if 'remote' in config_dict:
        nested_configs['remote'] = RemoteConfig(**config_dict.pop('remote'))

    if 'filters' in config_dict:
        nested_configs['filters'] = FilterConfig(**config_dict.pop('filters'))

    if 'report' in config_dict:
        nested_configs['report'] = ReportConfig(**config_dict.pop('report'))

    return PipelineConfig(**nested_configs, **config_dict)


def _to_serializable(obj: Any) -> Any:
    """Recursively convert Path and date values to strings."""
    if isinstance(obj, Path):
        return str(obj)
    elif isinstance(obj, date):
        return obj.isoformat()
    elif isinstance(obj, dict):
        return {k: _to_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_to_serializable(item) for item in obj]
    else:
        return obj


def load_config_from_env() -> Dict[str, Any]:
    """
    Load configuration overrides from environment variables.

    Variables are prefixed with PATHOGENTREES_ and use double underscores
    for nesting:

    PATHOGENTREES_RESULT_SET=Salmonella
    PATHOGENTREES_FILTERS__DATE_FROM=2024-01-01

    Returns
    -------
    Dict[str, Any]
        Overrides suitable for ``PipelineConfig.update``
    """
    overrides = {}

    for key, value in os.environ.items():
        if key.startswith(ENV_PREFIX):
            config_key = key[len(ENV_PREFIX):].lower()
            overrides[config_key] = _parse_env_value(value)

    if overrides:
        logger.debug(f"Loaded {len(overrides)} configuration overrides from environment")

    return overrides


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type."""
    if value.lower() in ['true', 'yes']:
        return True
    if value.lower() in ['false', 'no']:
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def validate_config(config: PipelineConfig) -> List[str]:
    """
    Validate configuration and return list of warnings.

    Parameters
    ----------
    config : PipelineConfig
        Configuration to validate

    Returns
    -------
    List[str]
        List of warning messages (empty if no issues)
    """
    warnings = []

    if config.filters.date_from > config.filters.date_to:
        warnings.append(
            f"Date window is inverted ({config.filters.date_from} > {config.filters.date_to}). "
            "No tree will pass the filters."
        )

    if config.max_trees > LARGE_MAX_TREES:
        warnings.append(
            f"max_trees ({config.max_trees}) is very large; the download may take hours."
        )

    if config.run_id is None:
        warnings.append("No run identifier set; the pipeline cannot run.")

    return warnings
