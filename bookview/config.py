"""
Configuration management for bookview.

Handles loading and saving user configuration from:
- XDG config directory: ~/.config/bookview/config.json
- Fallback: ~/.bookview/config.json
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, asdict, field

from .facets import JOIN_AND, JOIN_OR, SORT_BY_COUNT, SORT_MODES
from .search import DEFAULT_SEARCH_FIELDS, SEARCH_FIELDS
from .sorting import ViewPreferences

logger = logging.getLogger(__name__)


@dataclass
class BrowserConfig:
    """Defaults for a browsing view."""
    series_collapsed: bool = True
    facet_sort_mode: str = SORT_BY_COUNT
    join_mode: str = JOIN_AND
    search_fields: List[str] = field(default_factory=lambda: list(DEFAULT_SEARCH_FIELDS))

    def validate(self) -> None:
        if self.facet_sort_mode not in SORT_MODES:
            raise ValueError(f"facet_sort_mode must be one of: {', '.join(SORT_MODES)}")
        if self.join_mode not in (JOIN_AND, JOIN_OR):
            raise ValueError("join_mode must be 'and' or 'or'")
        unknown = [name for name in self.search_fields if name not in SEARCH_FIELDS]
        if unknown:
            raise ValueError(f"Unknown search fields: {', '.join(unknown)}")


@dataclass
class SortConfig:
    """Stored sort preferences, in the ``ViewPreferences`` dict form."""
    preferences: Dict[str, Any] = field(default_factory=lambda: ViewPreferences().to_dict())

    @property
    def view_preferences(self) -> ViewPreferences:
        return ViewPreferences.from_dict(self.preferences)

    @view_preferences.setter
    def view_preferences(self, value: ViewPreferences) -> None:
        self.preferences = value.to_dict()


@dataclass
class CLIConfig:
    """CLI default options."""
    verbose: bool = False
    color: bool = True
    page_size: int = 50


@dataclass
class LibraryConfig:
    """Library-related settings."""
    default_path: Optional[str] = None


@dataclass
class BookviewConfig:
    """Main bookview configuration."""
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    sort: SortConfig = field(default_factory=SortConfig)
    cli: CLIConfig = field(default_factory=CLIConfig)
    library: LibraryConfig = field(default_factory=LibraryConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "browser": asdict(self.browser),
            "sort": asdict(self.sort),
            "cli": asdict(self.cli),
            "library": asdict(self.library),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BookviewConfig':
        """Create from dictionary."""
        return cls(
            browser=BrowserConfig(**data.get("browser", {})),
            sort=SortConfig(**data.get("sort", {})),
            cli=CLIConfig(**data.get("cli", {})),
            library=LibraryConfig(**data.get("library", {})),
        )


def get_config_path() -> Path:
    """
    Get configuration file path.

    1. ~/.config/bookview/config.json when ~/.config exists
    2. Fallback: ~/.bookview/config.json

    Returns:
        Path to config file
    """
    xdg_config_home = Path.home() / ".config"
    if xdg_config_home.exists():
        config_dir = xdg_config_home / "bookview"
    else:
        config_dir = Path.home() / ".bookview"

    return config_dir / "config.json"


def load_config() -> BookviewConfig:
    """
    Load configuration from file.

    Returns:
        BookviewConfig instance with loaded values or defaults
    """
    config_path = get_config_path()

    if not config_path.exists():
        return BookviewConfig()

    try:
        with open(config_path, 'r') as f:
            data = json.load(f)
        return BookviewConfig.from_dict(data)
    except (json.JSONDecodeError, OSError, TypeError) as e:
        logger.warning(f"Failed to load config from {config_path}: {e}; using defaults")
        return BookviewConfig()


def save_config(config: BookviewConfig) -> Path:
    """
    Save configuration to file.

    Args:
        config: Configuration to save

    Returns:
        Path the configuration was written to
    """
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)

    logger.info(f"Configuration saved to {config_path}")
    return config_path


def update_config(
    # Browser settings
    series_collapsed: Optional[bool] = None,
    facet_sort_mode: Optional[str] = None,
    join_mode: Optional[str] = None,
    search_fields: Optional[List[str]] = None,
    # CLI settings
    cli_verbose: Optional[bool] = None,
    cli_color: Optional[bool] = None,
    cli_page_size: Optional[int] = None,
    # Library settings
    library_default_path: Optional[str] = None,
) -> BookviewConfig:
    """
    Update configuration.

    Only updates provided values, leaving others unchanged.

    Raises:
        ValueError: If a browser setting is not a known mode or field
    """
    config = load_config()

    if series_collapsed is not None:
        config.browser.series_collapsed = series_collapsed
    if facet_sort_mode is not None:
        config.browser.facet_sort_mode = facet_sort_mode
    if join_mode is not None:
        config.browser.join_mode = join_mode
    if search_fields is not None:
        config.browser.search_fields = list(search_fields)
    config.browser.validate()

    if cli_verbose is not None:
        config.cli.verbose = cli_verbose
    if cli_color is not None:
        config.cli.color = cli_color
    if cli_page_size is not None:
        config.cli.page_size = cli_page_size

    if library_default_path is not None:
        config.library.default_path = library_default_path

    save_config(config)
    return config
