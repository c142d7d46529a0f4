"""Shared helpers for the tool layer: config access and operation logging."""

import time
from contextlib import contextmanager
from pathlib import Path

from skillshare.config import SkillshareConfig, load_config, settings
from skillshare.core.audit import DEFAULT_THRESHOLD, Rule, load_rules, normalize_severity
from skillshare.core.errors import SkillshareError
from skillshare.core.oplog import record


def current_config() -> tuple[SkillshareConfig, Path]:
    """Loaded config and its source directory."""
    cfg = load_config()
    return cfg, cfg.source_path


def target_paths(cfg: SkillshareConfig) -> dict[str, Path]:
    return {name: Path(t.path).expanduser() for name, t in cfg.targets.items()}


def audit_settings(cfg: SkillshareConfig) -> tuple[list[Rule], str]:
    """Active rules and the effective block threshold (rules file wins over config)."""
    rules, override = load_rules(settings.audit_rules_path)
    threshold = override or normalize_severity(cfg.audit.block_threshold or DEFAULT_THRESHOLD)
    return rules, threshold


@contextmanager
def logged(cmd: str, args: dict | None = None, log_type: str = "ops"):
    """Record the command in the operations log with its outcome and duration."""
    start = time.monotonic()
    try:
        yield
    except SkillshareError as e:
        record(cmd, "error", args, str(e), int((time.monotonic() - start) * 1000), log_type)
        raise
    record(cmd, "ok", args, "", int((time.monotonic() - start) * 1000), log_type)
