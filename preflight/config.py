"""Configuration system for the pre-deployment validator."""

import logging
from pathlib import Path
from typing import Optional, List
import yaml
from pydantic import BaseModel, Field, field_validator, ConfigDict

from .exceptions import ConfigError
from .models import PatternRule, Severity

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "preflight.yaml"
DEFAULT_LOCAL_CONFIG_NAME = "preflight.local.yaml"


class LayoutConfig(BaseModel):
    """Expected directory layout of the configuration tree."""
    required_dirs: List[str] = Field(default_factory=lambda: [
        "chakras",
        "modules/services",
        "modules/system",
        "scripts",
        "docs",
    ])
    recommended_dirs: List[str] = Field(default_factory=lambda: [
        "hardware",
        "overlays",
        "secrets",
        "docs/runbooks",
    ])

    model_config = ConfigDict(from_attributes=True)


class UserDataConfig(BaseModel):
    """Patterns that indicate user data leaked into the tree."""
    home_dir: str = "home"
    patterns: List[str] = Field(default_factory=lambda: [
        "*.bash_history",
        "*.zsh_history",
        ".ssh/id_*",
        ".gnupg/*",
        "Documents/*",
        "Downloads/*",
        ".config/*/session",
        ".local/share/*/history",
    ])

    model_config = ConfigDict(from_attributes=True)


class BackupConfig(BaseModel):
    """Backup/stale-copy patterns and the root build manifest."""
    manifest: str = "flake.nix"
    patterns: List[str] = Field(default_factory=lambda: [
        "configuration.nix.backup",
        "configuration.nix.old",
        "*.backup",
        "*.bak",
        "*.orig",
    ])

    model_config = ConfigDict(from_attributes=True)


class SecretsConfig(BaseModel):
    """Dedicated secrets directory hygiene."""
    directory: str = "secrets"
    exclusion_file: str = ".gitignore"
    allowed_tracked: List[str] = Field(default_factory=lambda: ["README.md", ".gitignore"])

    model_config = ConfigDict(from_attributes=True)


class SecretScanConfig(BaseModel):
    """Keyword and filename patterns scanned against tracked files."""
    content_patterns: List[str] = Field(default_factory=lambda: [
        "password",
        "passwd",
        "secret",
        "api[_-]?key",
        "token",
        "private[_-]?key",
        "private",
    ])
    filename_patterns: List[str] = Field(default_factory=lambda: [
        "*.key",
        "*.pem",
        "*id_rsa*",
        "*id_ed25519*",
    ])
    extra_rules: List[PatternRule] = Field(default_factory=list)
    excluded_names: List[str] = Field(default_factory=lambda: [".gitignore"])
    excluded_path_fragments: List[str] = Field(default_factory=lambda: ["README"])
    excluded_prefixes: List[str] = Field(default_factory=lambda: ["scripts/"])
    skip_comment_lines: bool = True
    max_matches_shown: int = 3
    max_line_length: int = 100

    model_config = ConfigDict(from_attributes=True)

    @field_validator('max_matches_shown', 'max_line_length')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    def rules(self) -> List[PatternRule]:
        """Build the pattern table consumed by the tracked-file scanner."""
        table = [
            PatternRule(name=p, pattern=p, severity=Severity.WARNING, target="content")
            for p in self.content_patterns
        ]
        table.extend(
            PatternRule(name=p, pattern=p, severity=Severity.CRITICAL, target="filename")
            for p in self.filename_patterns
        )
        table.extend(self.extra_rules)
        return table


class ReproducibilityConfig(BaseModel):
    """Dependency pinning and hardcoded path detection."""
    lock_file: str = "flake.lock"
    config_extensions: List[str] = Field(default_factory=lambda: [".nix"])
    forbidden_path_prefixes: List[str] = Field(default_factory=lambda: ["/home/", "/mnt/"])
    max_files_shown: int = 5

    model_config = ConfigDict(from_attributes=True)

    @field_validator('config_extensions')
    @classmethod
    def validate_extensions(cls, v: List[str]) -> List[str]:
        return [ext if ext.startswith(".") else f".{ext}" for ext in v]


class DocumentationConfig(BaseModel):
    """Required and recommended documentation paths (files or directories)."""
    required: List[str] = Field(default_factory=lambda: ["README.md", "flake.nix"])
    recommended: List[str] = Field(default_factory=lambda: [
        "docs/runbooks",
        "hardware/README.md",
        "secrets/README.md",
    ])

    model_config = ConfigDict(from_attributes=True)


class VcsConfig(BaseModel):
    """Version-control status settings."""
    max_untracked_shown: int = 10

    model_config = ConfigDict(from_attributes=True)


class VerdictConfig(BaseModel):
    """Verdict tunables."""
    caution_threshold: int = 5

    model_config = ConfigDict(from_attributes=True)

    @field_validator('caution_threshold')
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("caution_threshold must be non-negative")
        return v


class ReportConfig(BaseModel):
    """Report rendering settings."""
    format: str = "text"
    show_checklist: bool = True
    checklist: List[str] = Field(default_factory=lambda: [
        "All secrets are encrypted and not in git",
        "No user data in /home or personal files",
        "Configuration is entirely flake-managed",
        "flake.lock exists with pinned dependencies",
        "All changes are committed to git",
        "Hardware configuration will be generated on target",
        "Documentation is complete and up-to-date",
    ])

    model_config = ConfigDict(from_attributes=True)

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        allowed = {'text', 'json', 'markdown'}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"format must be one of {allowed}")
        return v_lower


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "WARNING"
    file_path: Optional[str] = None
    console_enabled: bool = True

    model_config = ConfigDict(from_attributes=True)

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper


class PreflightConfig(BaseModel):
    """Main validator configuration."""
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    user_data: UserDataConfig = Field(default_factory=UserDataConfig)
    backups: BackupConfig = Field(default_factory=BackupConfig)
    secrets: SecretsConfig = Field(default_factory=SecretsConfig)
    secret_scan: SecretScanConfig = Field(default_factory=SecretScanConfig)
    reproducibility: ReproducibilityConfig = Field(default_factory=ReproducibilityConfig)
    documentation: DocumentationConfig = Field(default_factory=DocumentationConfig)
    vcs: VcsConfig = Field(default_factory=VcsConfig)
    verdict: VerdictConfig = Field(default_factory=VerdictConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    skip_dirs: List[str] = Field(default_factory=lambda: [".git"])

    model_config = ConfigDict(from_attributes=True)

    @property
    def caution_threshold(self) -> int:
        return self.verdict.caution_threshold


class ConfigLoader:
    """Load and validate configuration from YAML files."""

    @staticmethod
    def load_config(
        config_path: str,
        local_override_path: Optional[str] = None
    ) -> PreflightConfig:
        """Load configuration with optional local overrides.

        Args:
            config_path: Path to main config file
            local_override_path: Optional path to local override file

        Returns:
            Validated PreflightConfig

        Raises:
            ConfigError: If config loading or validation fails
        """
        try:
            config_dict = ConfigLoader._load_yaml(config_path)

            if local_override_path and Path(local_override_path).exists():
                logger.info(f"Loading local config overrides from {local_override_path}")
                override_dict = ConfigLoader._load_yaml(local_override_path)
                config_dict = ConfigLoader.merge_configs(config_dict, override_dict)

            config = PreflightConfig(**config_dict)

            logger.info("Configuration loaded successfully")
            return config

        except ConfigError:
            raise
        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigError(f"Failed to load configuration: {e}")

    @staticmethod
    def discover(repo_root: Path, config_path: Optional[str] = None) -> PreflightConfig:
        """Resolve the configuration for a repository.

        An explicit path must exist. Otherwise ``preflight.yaml`` in the
        repository root is used when present, and the built-in defaults when
        it is not.
        """
        repo_root = Path(repo_root)
        if config_path:
            return ConfigLoader.load_config(
                config_path,
                str(Path(config_path).with_name(DEFAULT_LOCAL_CONFIG_NAME))
            )

        candidate = repo_root / DEFAULT_CONFIG_NAME
        if candidate.is_file():
            logger.info(f"Using repository config {candidate}")
            return ConfigLoader.load_config(
                str(candidate),
                str(repo_root / DEFAULT_LOCAL_CONFIG_NAME)
            )

        logger.debug("No configuration file found, using defaults")
        return get_default_config()

    @staticmethod
    def _load_yaml(path: str) -> dict:
        """Load YAML file."""
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)
                if data is None:
                    return {}
                if not isinstance(data, dict):
                    raise ConfigError(f"Config root must be a mapping: {path}")
                return data
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")

    @staticmethod
    def merge_configs(base: dict, override: dict) -> dict:
        """Deep merge two configuration dictionaries.

        Args:
            base: Base configuration
            override: Override configuration

        Returns:
            Merged configuration
        """
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigLoader.merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    @staticmethod
    def save_config(config: PreflightConfig, output_path: str):
        """Save configuration to YAML file.

        Args:
            config: Configuration to save
            output_path: Output file path
        """
        try:
            config_dict = config.model_dump(mode="json")

            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'w') as f:
                yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)

            logger.info(f"Configuration saved to {output_path}")
        except Exception as e:
            logger.error(f"Failed to save configuration: {e}")
            raise ConfigError(f"Failed to save configuration: {e}")


def get_default_config() -> PreflightConfig:
    """Get default configuration.

    Returns:
        Default PreflightConfig
    """
    return PreflightConfig()
