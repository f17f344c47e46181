"""
Configuration management for tube-keeper
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "tube-keeper"
    return Path.home() / ".config" / "tube-keeper"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "tube-keeper"
    return Path.home() / ".local" / "share" / "tube-keeper"


@dataclass
class LibraryConfig:
    """Configuration for the local audio library."""

    library_dir: str = field(
        default_factory=lambda: str(Path.home() / "Music" / "tube-keeper")
    )
    data_file: str = field(default_factory=lambda: str(get_data_dir() / "tracks.json"))
    temp_dir: str = field(default_factory=lambda: str(get_data_dir() / "tmp"))
    audio_format: str = "mp3"
    audio_quality: str = "192"  # Passed to ffmpeg as the target bitrate (kbps)

    def validate(self) -> None:
        """Validate library configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        valid_formats = {"mp3", "m4a", "opus", "flac", "wav"}
        if self.audio_format not in valid_formats:
            raise ValueError(
                f"Invalid audio format: {self.audio_format}. "
                f"Valid formats are: {valid_formats}"
            )


@dataclass
class FingerprintConfig:
    """Configuration for Chromaprint fingerprinting."""

    length: int = 60  # Seconds of audio analysed
    raw: bool = False  # Raw integer signature instead of compressed
    use_cache: bool = True
    cache_ttl_seconds: int = 3600


@dataclass
class RetrievalConfig:
    """Configuration for sample and full content downloads."""

    retries: int = 3
    backoff_base_seconds: float = 1.0
    sample_duration: int = 60
    sample_start_offset: int = 0
    min_free_space_mb: int = 200

    def validate(self) -> None:
        """Validate retrieval configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if self.retries < 1:
            raise ValueError(f"retries must be at least 1, got {self.retries}")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds cannot be negative")
        if self.sample_duration <= 0:
            raise ValueError("sample_duration must be positive")


@dataclass
class DedupConfig:
    """Configuration for duplicate handling."""

    quality_margin: float = 10  # kbps a duplicate must beat the stored copy by


@dataclass
class PlaylistConfig:
    """Configuration for playlist export."""

    auto_export: bool = True
    export_dir: Optional[str] = None  # Default: <library_dir>/playlists
    use_relative_paths: bool = True


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = (
        None  # Custom log file path (default: ~/.local/share/tube-keeper/tube-keeper.log)
    )
    max_file_size_mb: int = 10  # Maximum log file size before rotation
    backup_count: int = 5  # Number of backup files to keep
    console_output: bool = False  # Also output to console (for debugging)


@dataclass
class Config:
    """Main configuration object."""

    library: LibraryConfig = field(default_factory=LibraryConfig)
    fingerprint: FingerprintConfig = field(default_factory=FingerprintConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    playlists: PlaylistConfig = field(default_factory=PlaylistConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def playlist_export_dir(self) -> Path:
        """Directory where M3U8 playlists are written."""
        if self.playlists.export_dir:
            return Path(self.playlists.export_dir)
        return Path(self.library.library_dir) / "playlists"


def _find_project_config() -> Optional[Path]:
    """Find config.toml in project root by looking for pyproject.toml.

    This is used during development to automatically find the project's config file
    even when the app is run from a different working directory.

    Returns:
        Path to config.toml in project root, or None if not found
    """
    try:
        current = Path(__file__).resolve().parent
        for parent in [current] + list(current.parents):
            if (parent / "pyproject.toml").exists():
                config_path = parent / "config.toml"
                if config_path.exists():
                    return config_path
                # Found project root but no config.toml there
                return None
    except OSError:
        pass
    return None


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Project root (detected via pyproject.toml) - for development
    2. Current working directory
    3. XDG_CONFIG_HOME/tube-keeper (or ~/.config/tube-keeper)
    """
    project_config = _find_project_config()
    if project_config:
        return project_config

    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# tube-keeper Configuration

[library]
# Where downloaded audio is stored
library_dir = "~/Music/tube-keeper"

# Track database (JSON); a .backup sibling is kept automatically
# data_file = "~/.local/share/tube-keeper/tracks.json"

# Scratch space for samples and partial downloads
# temp_dir = "~/.local/share/tube-keeper/tmp"

# Audio format and target bitrate for stored files
audio_format = "mp3"
audio_quality = "192"

[fingerprint]
# Seconds of audio analysed by Chromaprint
length = 60

# Store raw integer fingerprints instead of the compressed form
raw = false

# Cache fingerprints in memory
use_cache = true
cache_ttl_seconds = 3600

[retrieval]
# Attempts per download (samples and full content)
retries = 3

# First retry delay in seconds; doubles on each attempt
backoff_base_seconds = 1.0

# Sample length and offset (seconds) used for fingerprinting
sample_duration = 60
sample_start_offset = 0

# Refuse full downloads below this much free space
min_free_space_mb = 200

[dedup]
# A duplicate replaces the stored copy only if its bitrate is higher by more than this
quality_margin = 10

[playlists]
# Write M3U8 playlists after each sync
auto_export = true

# Default: <library_dir>/playlists
# export_dir = "~/Music/tube-keeper/playlists"

# Use relative paths in M3U8 files
use_relative_paths = true

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"

# Custom log file path (default: ~/.local/share/tube-keeper/tube-keeper.log)
# log_file = "/path/to/custom/tube-keeper.log"

# Maximum log file size in MB before rotation
max_file_size_mb = 10

# Number of backup log files to keep
backup_count = 5

# Also output logs to console (useful for debugging)
console_output = false
""".strip()


def _expand(path: Optional[str]) -> Optional[str]:
    if not path:
        return path
    return str(Path(path).expanduser())


def parse_config(toml_data: dict) -> Config:
    """Build a Config from parsed TOML data.

    Sections that fail validation fall back to their defaults with a warning.

    Args:
        toml_data: Parsed TOML document

    Returns:
        Config object
    """
    from loguru import logger

    config = Config()

    if "library" in toml_data:
        library_data = toml_data["library"]
        library = LibraryConfig(
            library_dir=_expand(
                library_data.get("library_dir", config.library.library_dir)
            ),
            data_file=_expand(library_data.get("data_file", config.library.data_file)),
            temp_dir=_expand(library_data.get("temp_dir", config.library.temp_dir)),
            audio_format=library_data.get("audio_format", config.library.audio_format),
            audio_quality=str(
                library_data.get("audio_quality", config.library.audio_quality)
            ),
        )
        try:
            library.validate()
            config.library = library
        except ValueError as e:
            logger.warning(f"Invalid library configuration: {e}. Using defaults.")

    if "fingerprint" in toml_data:
        fp_data = toml_data["fingerprint"]
        config.fingerprint = FingerprintConfig(
            length=fp_data.get("length", config.fingerprint.length),
            raw=fp_data.get("raw", config.fingerprint.raw),
            use_cache=fp_data.get("use_cache", config.fingerprint.use_cache),
            cache_ttl_seconds=fp_data.get(
                "cache_ttl_seconds", config.fingerprint.cache_ttl_seconds
            ),
        )

    if "retrieval" in toml_data:
        retrieval_data = toml_data["retrieval"]
        retrieval = RetrievalConfig(
            retries=retrieval_data.get("retries", config.retrieval.retries),
            backoff_base_seconds=retrieval_data.get(
                "backoff_base_seconds", config.retrieval.backoff_base_seconds
            ),
            sample_duration=retrieval_data.get(
                "sample_duration", config.retrieval.sample_duration
            ),
            sample_start_offset=retrieval_data.get(
                "sample_start_offset", config.retrieval.sample_start_offset
            ),
            min_free_space_mb=retrieval_data.get(
                "min_free_space_mb", config.retrieval.min_free_space_mb
            ),
        )
        try:
            retrieval.validate()
            config.retrieval = retrieval
        except ValueError as e:
            logger.warning(f"Invalid retrieval configuration: {e}. Using defaults.")

    if "dedup" in toml_data:
        config.dedup = DedupConfig(
            quality_margin=toml_data["dedup"].get(
                "quality_margin", config.dedup.quality_margin
            ),
        )

    if "playlists" in toml_data:
        playlists_data = toml_data["playlists"]
        config.playlists = PlaylistConfig(
            auto_export=playlists_data.get("auto_export", config.playlists.auto_export),
            export_dir=_expand(playlists_data.get("export_dir")),
            use_relative_paths=playlists_data.get(
                "use_relative_paths", config.playlists.use_relative_paths
            ),
        )

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=_expand(logging_data.get("log_file")),
            max_file_size_mb=logging_data.get(
                "max_file_size_mb", config.logging.max_file_size_mb
            ),
            backup_count=logging_data.get("backup_count", config.logging.backup_count),
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    _apply_env_overrides(config)
    return config


def _apply_env_overrides(config: Config) -> None:
    """Override TOML values with environment variables if present."""
    library_dir = os.environ.get("TUBE_KEEPER_LIBRARY_DIR")
    if library_dir:
        config.library.library_dir = str(Path(library_dir).expanduser())

    log_level = os.environ.get("TUBE_KEEPER_LOG_LEVEL")
    if log_level:
        config.logging.level = log_level.upper()


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default.

    Environment variables override TOML values:
    - TUBE_KEEPER_LIBRARY_DIR
    - TUBE_KEEPER_LOG_LEVEL

    Args:
        config_path: Explicit config file (default: resolved via get_config_path)

    Returns:
        Config object (defaults if the file is missing or unreadable)
    """
    from dotenv import load_dotenv
    from loguru import logger

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = config_path or get_config_path()

    if not config_path.exists():
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            config_path.write_text(create_default_config(), encoding="utf-8")
            logger.info(f"Created default configuration at: {config_path}")
        except OSError as e:
            logger.warning(f"Could not write default configuration to {config_path}: {e}")
        config = Config()
        _apply_env_overrides(config)
        return config

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Error loading configuration from {config_path}: {e}")
        logger.warning("Using default configuration.")
        config = Config()
        _apply_env_overrides(config)
        return config

    return parse_config(toml_data)


def ensure_directories(config: Config) -> None:
    """Ensure all necessary directories exist."""
    get_data_dir().mkdir(parents=True, exist_ok=True)
    Path(config.library.library_dir).mkdir(parents=True, exist_ok=True)
    Path(config.library.temp_dir).mkdir(parents=True, exist_ok=True)
    Path(config.library.data_file).parent.mkdir(parents=True, exist_ok=True)
