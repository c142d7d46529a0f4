"""Data models for skillshare.

Field names are snake_case in Python and camelCase on the wire
(``model_dump(by_alias=True)``), matching the JSON contract the UI consumes.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# --- Skill store ---


class SkillMeta(_Model):
    """Install metadata persisted beside a skill (.skillshare-meta.json)."""

    source: str = ""
    type: str = ""  # "local", "github", "github-subdir", "git", "collected"
    repo_url: str = ""
    version: str = ""
    installed_at: str = ""


class Skill(_Model):
    """A skill directory under the source tree."""

    name: str
    flat_name: str
    rel_path: str
    source_path: str
    is_in_repo: bool = False
    installed_at: str = ""
    source: str = ""
    type: str = ""
    repo_url: str = ""
    version: str = ""
    description: str = ""
    targets: list[str] | None = None  # frontmatter restriction, None = all


class TrackedRepo(_Model):
    name: str
    skill_count: int = 0
    dirty: bool = False


# --- Targets / sync ---


class TargetInfo(_Model):
    """A target with its on-disk status."""

    name: str
    path: str
    mode: str = "merge"
    status: str = "unknown"
    linked_count: int = 0
    local_count: int = 0
    expected_skill_count: int = 0
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    drift: bool = False


class SyncResult(_Model):
    """Outcome of reconciling one target."""

    target: str
    mode: str = "merge"
    status: str = ""
    linked: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    pruned: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    dry_run: bool = False


class DiffItem(_Model):
    skill: str
    action: str  # link, copy, update, skip, prune, local
    reason: str = ""


class DiffTarget(_Model):
    target: str
    items: list[DiffItem] = Field(default_factory=list)


class CopyManifest(_Model):
    """Entries a copy-mode target received from the source, with checksums."""

    managed: dict[str, str] = Field(default_factory=dict)
    updated_at: str = ""


# --- Collect ---


class LocalSkillInfo(_Model):
    name: str
    path: str
    target_name: str
    size: int = 0
    mod_time: str = ""


class CollectTarget(_Model):
    target_name: str
    skills: list[LocalSkillInfo] = Field(default_factory=list)


class CollectScan(_Model):
    targets: list[CollectTarget] = Field(default_factory=list)
    total_count: int = 0


class CollectResult(_Model):
    pulled: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


# --- Backup / trash ---


class BackupInfo(_Model):
    timestamp: str
    path: str
    targets: list[str] = Field(default_factory=list)
    date: str = ""
    size_mb: float = 0.0


class TrashedSkill(_Model):
    name: str
    timestamp: str
    date: str = ""
    size: int = 0
    path: str = ""


# --- Audit ---


class AuditFinding(_Model):
    severity: str
    pattern: str
    message: str
    file: str = ""
    line: int = 0
    snippet: str = ""


class AuditResult(_Model):
    """Per-skill security scan outcome."""

    skill_name: str
    findings: list[AuditFinding] = Field(default_factory=list)
    risk_score: int = 0
    risk_label: str = "clean"
    threshold: str = "CRITICAL"
    is_blocked: bool = False
    scan_error: str | None = None


class AuditSummary(_Model):
    total: int = 0
    passed: int = 0
    warning: int = 0
    failed: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    info: int = 0
    threshold: str = "CRITICAL"
    risk_score: int = 0
    risk_label: str = "clean"
    scan_errors: int = 0


# --- Install ---


class DiscoveredSkill(_Model):
    name: str
    path: str  # relative to the source root, "." for the root itself


class DiscoveryResult(_Model):
    source: str
    needs_selection: bool = False
    skills: list[DiscoveredSkill] = Field(default_factory=list)


class InstallResult(_Model):
    """Result of installing one skill."""

    skill_name: str
    action: str = ""  # copied, cloned, updated, reinstalled, skipped
    path: str = ""
    warnings: list[str] = Field(default_factory=list)
    audit: AuditResult | None = None


class BatchInstallItem(_Model):
    name: str
    action: str | None = None
    warnings: list[str] | None = None
    error: str | None = None


class BatchInstallResult(_Model):
    results: list[BatchInstallItem] = Field(default_factory=list)
    summary: str = ""


class UpdateItem(_Model):
    name: str
    action: str = ""  # updated, up-to-date, pulled, error
    is_repo: bool = False
    message: str = ""


# --- Ops log / hub ---


class LogEntry(_Model):
    ts: str
    cmd: str
    args: dict = Field(default_factory=dict)
    status: str = "ok"
    msg: str = ""
    ms: int = 0


class HubEntry(_Model):
    name: str
    description: str = ""
    source: str = ""
    tags: list[str] = Field(default_factory=list)


class HubIndex(_Model):
    schema_version: int = 1
    generated_at: str = ""
    skills: list[HubEntry] = Field(default_factory=list)


class SearchResult(_Model):
    """A hub entry ranked against a query."""

    name: str
    description: str = ""
    source: str = ""
    relevance: float = 0.0  # 0.0-1.0
    tags: list[str] = Field(default_factory=list)
