"""Security audit tools."""

import logging
from pathlib import Path

from skillshare.config import settings
from skillshare.core import audit
from skillshare.core.store import discover_skills, get_skill
from skillshare.models import AuditResult
from skillshare.tools.common import audit_settings, current_config, logged

logger = logging.getLogger("skillshare.tools.audit")


def audit_all() -> dict:
    """Scan every skill in the source directory.

    Skills that cannot be scanned are counted in ``scanErrors`` and do not
    stop the rest.

    Returns:
        Dict with "results" (AuditResult per skill) and "summary".
    """
    cfg, source = current_config()
    rules, threshold = audit_settings(cfg)
    results: list[AuditResult] = []
    with logged("audit", {"scope": "all"}, log_type="audit"):
        for skill in discover_skills(source):
            try:
                results.append(audit.scan_skill(Path(skill.source_path), skill.flat_name, rules, threshold))
            except OSError as e:
                logger.warning("Audit of '%s' failed: %s", skill.flat_name, e)
                results.append(AuditResult(skill_name=skill.flat_name, threshold=threshold, scan_error=str(e)))
    summary = audit.summarize(results, threshold)
    return {
        "results": [r.to_json_dict() for r in results],
        "summary": summary.to_json_dict(),
    }


def audit_skill(name: str) -> dict:
    """Scan one skill.

    Args:
        name: Flat name of the skill
    """
    cfg, source = current_config()
    rules, threshold = audit_settings(cfg)
    skill = get_skill(source, name)
    with logged("audit", {"name": name}, log_type="audit"):
        result = audit.scan_skill(Path(skill.source_path), skill.flat_name, rules, threshold)
    return {
        "result": result.to_json_dict(),
        "summary": audit.summarize([result], threshold).to_json_dict(),
    }


def get_rules() -> dict:
    """The user's audit-rules.yaml, or a commented template when it does not exist."""
    path = settings.audit_rules_path
    exists = path.exists()
    return {
        "exists": exists,
        "raw": path.read_text(encoding="utf-8") if exists else audit.DEFAULT_RULES_TEMPLATE,
        "path": str(path),
    }


def put_rules(raw: str) -> dict:
    """Validate and save audit-rules.yaml.

    The new rules are compiled against the built-ins before anything is
    written, so a bad file is rejected without replacing the current one.
    """
    overrides, _ = audit.parse_rules_file(raw)
    for rule in audit.merge_rules(audit.builtin_rules(), overrides):
        if rule.enabled and rule.regex:
            rule.compile()

    path = settings.audit_rules_path
    with logged("audit-rules", {"path": str(path)}):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(raw, encoding="utf-8")
    return {"success": True, **get_rules()}

