"""
Configuration settings for toolrun.
"""

from typing import Optional
from pathlib import Path
from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings

DEFAULT_HOME = Path.home() / ".toolrun"


class ToolsConfig(BaseModel):
    """Tool resolution and execution configuration."""
    install_root: Path = Field(default=DEFAULT_HOME / "tools", description="Directory bootstrapped tools are installed to")
    version_probe_timeout: float = Field(default=30.0, description="Version probe timeout in seconds")
    default_timeout: Optional[float] = Field(None, description="Timeout for tool runs in seconds, None for no limit")

    @validator('version_probe_timeout')
    def validate_probe_timeout(cls, v):
        if v <= 0:
            raise ValueError("version_probe_timeout must be positive")
        return v


class DownloadConfig(BaseModel):
    """Tool archive download configuration."""
    cache_dir: Path = Field(default=DEFAULT_HOME / "cache", description="Local cache of downloaded archives")
    use_cache: bool = Field(default=True, description="Serve repeated downloads from the cache")
    timeout: float = Field(default=60.0, description="HTTP timeout in seconds")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Logging level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format"
    )
    file_path: Optional[Path] = Field(default=None, description="Optional log file")
    max_file_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(default=5, description="Number of log backups to keep")

    @validator('level')
    def validate_level(cls, v):
        if v.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid logging level: {v}")
        return v.upper()


class Settings(BaseSettings):
    """Main application settings."""
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    class Config:
        env_prefix = "TOOLRUN_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_nested_delimiter = "__"
        extra = "ignore"  # Ignore extra fields from environment
