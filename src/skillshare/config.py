"""Configuration for skillshare.

Two layers:
- ``Settings``: process-level knobs from environment / .env (paths, timeouts, policies)
- ``SkillshareConfig``: the user's project config (source dir, targets, audit) in YAML
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from skillshare.core.errors import InvalidInputError

logger = logging.getLogger("skillshare.config")

SYNC_MODES = ("merge", "copy", "symlink")
DEFAULT_MODE = "merge"


class Settings(BaseSettings):
    """Skillshare settings loaded from environment and .env file."""

    # Root for config, backups, trash, logs and cache
    home: Path = Path.home() / ".config" / "skillshare"

    config_file: str = "config.yaml"
    audit_rules_file: str = "audit-rules.yaml"
    backups_dir: str = "backups"
    trash_dir: str = "trash"
    logs_dir: str = "logs"
    cache_dir: str = ".cache"

    # Retention
    trash_max_age_days: int = 7
    backup_max_age_days: int = 30
    backup_max_count: int = 10
    backup_max_size_mb: int = 500

    # External processes / network
    git_timeout: float = 120.0
    hub_timeout: float = 15.0
    cache_hub_ttl: int = 900  # 15 minutes for hub indexes

    # HTTP API
    api_host: str = "127.0.0.1"
    api_port: int = 19420

    model_config = {"env_prefix": "SKILLSHARE_", "env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def config_path(self) -> Path:
        return self.home / self.config_file

    @property
    def audit_rules_path(self) -> Path:
        return self.home / self.audit_rules_file

    @property
    def backups_path(self) -> Path:
        return self.home / self.backups_dir

    @property
    def trash_path(self) -> Path:
        return self.home / self.trash_dir

    @property
    def logs_path(self) -> Path:
        return self.home / self.logs_dir

    @property
    def cache_path(self) -> Path:
        return self.home / self.cache_dir

    @property
    def default_source(self) -> Path:
        return self.home / "skills"


settings = Settings()


class TargetConfig(BaseModel):
    """A configured sync destination."""

    path: str
    mode: str = ""  # empty = inherit global mode
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)


class AuditConfig(BaseModel):
    block_threshold: str = "CRITICAL"


class SkillshareConfig(BaseModel):
    """Contents of config.yaml."""

    source: str = ""
    mode: str = DEFAULT_MODE
    targets: dict[str, TargetConfig] = Field(default_factory=dict)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    @property
    def source_path(self) -> Path:
        if not self.source:
            return settings.default_source
        return Path(self.source).expanduser()

    def target_mode(self, name: str) -> str:
        """Effective mode of a target (its own, else the global one)."""
        target = self.targets[name]
        return target.mode or self.mode or DEFAULT_MODE


def parse_config(raw: str) -> SkillshareConfig:
    """Parse and validate YAML config text."""
    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise InvalidInputError(f"invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise InvalidInputError("config must be a YAML mapping")

    try:
        cfg = SkillshareConfig.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(f"invalid config: {e}") from e

    for mode in [cfg.mode] + [t.mode for t in cfg.targets.values() if t.mode]:
        if mode not in SYNC_MODES:
            raise InvalidInputError(f"invalid sync mode '{mode}' (expected one of {', '.join(SYNC_MODES)})")
    return cfg


def load_config(path: Path | None = None) -> SkillshareConfig:
    """Load config.yaml, or a default config when it does not exist yet."""
    path = path or settings.config_path
    if not path.exists():
        return SkillshareConfig()
    return parse_config(path.read_text(encoding="utf-8"))


def save_config(cfg: SkillshareConfig, path: Path | None = None) -> None:
    """Write config.yaml."""
    path = path or settings.config_path
    path.parent.mkdir(parents=True, exist_ok=True)
    data = cfg.model_dump(exclude_defaults=False)
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    logger.debug("Saved config to %s", path)
