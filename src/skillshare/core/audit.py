"""Pattern-based security audit of skill files.

Rules map regexes to severities. Built-in rules can be overridden or
disabled by id from ``audit-rules.yaml``:

    threshold: HIGH
    rules:
      - id: destructive-commands-2
        severity: MEDIUM
      - id: dangling-link
        enabled: false

Risk score: sum of severity weights (CRITICAL 25, HIGH 15, MEDIUM 8, LOW 3,
INFO 1) capped at 100. Label: 0 clean, <=25 low, <=50 medium, <=75 high,
else critical.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import yaml

from skillshare.core.errors import InvalidInputError
from skillshare.core.store import META_FILE
from skillshare.models import AuditFinding, AuditResult, AuditSummary

logger = logging.getLogger("skillshare.audit")

SEVERITIES = ["CRITICAL", "HIGH", "MEDIUM", "LOW", "INFO"]
SEVERITY_WEIGHTS = {"CRITICAL": 25, "HIGH": 15, "MEDIUM": 8, "LOW": 3, "INFO": 1}
DEFAULT_THRESHOLD = "CRITICAL"

# riskLabel read as a severity, for threshold comparison
_LABEL_SEVERITY = {"critical": "CRITICAL", "high": "HIGH", "medium": "MEDIUM", "low": "LOW"}

SCANNABLE_EXTENSIONS = {
    ".md", ".txt", ".yaml", ".yml", ".json", ".toml",
    ".sh", ".bash", ".zsh", ".fish",
    ".py", ".js", ".ts", ".rb", ".go", ".rs",
}
MAX_FILE_SIZE = 1024 * 1024
MAX_DEPTH = 6
SNIPPET_LEN = 80

DANGLING_LINK_ID = "dangling-link"

# (id, severity, pattern, message, regex, exclude)
BUILTIN_RULES: list[tuple[str, str, str, str, str, str]] = [
    ("prompt-injection-0", "CRITICAL", "prompt-injection", "Prompt injection: override previous instructions",
     r"(?i)ignore\s+(all\s+)?(previous|prior|above)\s+instructions", ""),
    ("prompt-injection-1", "CRITICAL", "prompt-injection", "Prompt injection: disregard system prompt",
     r"(?i)disregard\s+(the\s+|your\s+)?(system\s+prompt|rules|guidelines)", ""),
    ("prompt-injection-2", "HIGH", "prompt-injection", "Prompt injection: role hijack",
     r"(?i)you\s+are\s+now\s+(in\s+)?(developer|dan|jailbreak|unrestricted)\s*mode", ""),
    ("data-exfiltration-0", "CRITICAL", "data-exfiltration", "Data exfiltration via curl/wget with secrets",
     r"(?i)(curl|wget)\s+.*(\$\{?[A-Z_]*(KEY|TOKEN|SECRET|PASSWORD)|api[_-]?key|password|secret)", ""),
    ("data-exfiltration-1", "CRITICAL", "data-exfiltration", "Data exfiltration via HTTP POST of credentials",
     r"requests\.(?:post|put)\s*\([^)]*(?:password|api_key|secret|token)", ""),
    ("credential-access-0", "CRITICAL", "credential-access", "Reads SSH private keys",
     r"~?/\.ssh/(id_rsa|id_ed25519|id_ecdsa)(?!\.pub)", ""),
    ("credential-access-1", "HIGH", "credential-access", "Reads credential stores",
     r"(?i)(\.aws/credentials|\.netrc|\.git-credentials|\.docker/config\.json)", ""),
    ("credential-access-2", "HIGH", "credential-access", "Sensitive system file access",
     r"/etc/(passwd|shadow|sudoers)", ""),
    ("destructive-commands-0", "CRITICAL", "destructive-commands", "Recursive deletion of root or home",
     r"rm\s+-[a-zA-Z]*r[a-zA-Z]*f?\s+(/|~|\$HOME)(\s|$)", ""),
    ("destructive-commands-1", "CRITICAL", "destructive-commands", "Root directory deletion",
     r"shutil\.rmtree\s*\(\s*['\"]/['\"]", ""),
    ("destructive-commands-2", "HIGH", "destructive-commands", "Potentially destructive command",
     r"(?i)\b(mkfs(\.\w+)?|dd\s+if=.*\s+of=/dev/|chmod\s+-R\s+777\s+/)", ""),
    ("destructive-commands-3", "MEDIUM", "destructive-commands", "Sudo usage",
     r"(?i)\bsudo\s+", ""),
    ("dynamic-code-exec-0", "HIGH", "dynamic-code-exec", "Code injection via eval/exec of external input",
     r"\b(eval|exec)\s*\(\s*(input|request|os\.environ|compile|sys\.argv)", ""),
    ("dynamic-code-exec-1", "MEDIUM", "dynamic-code-exec", "Dynamic code execution",
     r"\b(eval|exec)\s*\(", r"\.exec\s*\(|regex|re\.compile"),
    ("shell-execution-0", "HIGH", "shell-execution", "Shell injection via subprocess",
     r"subprocess\.(?:run|call|Popen|check_output)\s*\([^)]*shell\s*=\s*True", ""),
    ("shell-execution-1", "MEDIUM", "shell-execution", "Use of os.system()",
     r"os\.system\s*\(", ""),
    ("suspicious-fetch-0", "HIGH", "suspicious-fetch", "Remote script piped to shell",
     r"(curl|wget)\s+[^|]*\|\s*(ba|z)?sh\b", r"(?i)#\s*example"),
    ("obfuscation-0", "HIGH", "obfuscation", "Base64-decoded payload executed",
     r"(?i)base64\s+(-d|--decode)[^|]*\|\s*(ba|z)?sh|b64decode\([^)]*\)\s*\)?\s*\)?.*exec", ""),
    ("escape-obfuscation-0", "MEDIUM", "escape-obfuscation", "Long hex/unicode escape sequence",
     r"(\\x[0-9a-fA-F]{2}){8,}|(\\u[0-9a-fA-F]{4}){6,}", ""),
    ("hidden-unicode-0", "HIGH", "hidden-unicode", "Hidden zero-width or bidi control characters",
     "[\\u200b\\u200c\\u200d\\u2060\\u202a-\\u202e\\u2066-\\u2069\\ufeff]", ""),
    ("hidden-comment-injection-0", "HIGH", "hidden-comment-injection", "Instructions hidden in HTML comment",
     r"(?i)<!--.*\b(ignore|override|system prompt|you must|do not tell)\b.*-->", ""),
    ("env-access-0", "LOW", "env-access", "Reads secret-looking environment variables",
     r"(?i)(os\.environ|process\.env|getenv)\W+\w*(KEY|TOKEN|SECRET|PASSWORD)", r"NODE_ENV"),
    ("insecure-http-0", "LOW", "insecure-http", "Plain HTTP download",
     r"(curl|wget|fetch|requests\.get)\s*\(?\s*['\"]?http://", r"http://(localhost|127\.0\.0\.1|0\.0\.0\.0)"),
    ("shell-chain-0", "INFO", "shell-chain", "Chained shell commands with network access",
     r"(curl|wget)\s+[^;&|]+(&&|;)\s*(chmod|bash|sh)\b", ""),
]

DEFAULT_RULES_TEMPLATE = """\
# Custom audit rules for skillshare, merged on top of the built-in rules by id.
#
# Each new rule needs: id, severity (CRITICAL/HIGH/MEDIUM/LOW/INFO), pattern, message, regex.
# Optional: exclude (suppress a match when the line also matches), enabled (false to disable).
#
# threshold: HIGH   # block installs at or above this severity

rules:
  # - id: flag-todo
  #   severity: INFO
  #   pattern: todo-comment
  #   message: "TODO comment found"
  #   regex: '(?i)\\bTODO\\b'

  # - id: destructive-commands-3
  #   enabled: false
"""

_MD_LINK_RE = re.compile(r"\[[^\]]*\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")


@dataclass
class Rule:
    id: str
    severity: str
    pattern: str
    message: str
    regex: str
    exclude: str = ""
    enabled: bool = True

    def compile(self) -> "Rule":
        try:
            self._re = re.compile(self.regex)
            self._exclude = re.compile(self.exclude) if self.exclude else None
        except re.error as e:
            raise InvalidInputError(f"rule {self.id}: invalid regex: {e}") from e
        return self

    def match(self, line: str) -> bool:
        if not self._re.search(line):
            return False
        return not (self._exclude and self._exclude.search(line))


def normalize_severity(value: str) -> str:
    sev = (value or "").strip().upper()
    if sev not in SEVERITIES:
        raise InvalidInputError(f"invalid severity '{value}' (expected one of {', '.join(SEVERITIES)})")
    return sev


def severity_rank(severity: str) -> int:
    """0 = CRITICAL ... 4 = INFO."""
    return SEVERITIES.index(severity)


def builtin_rules() -> list[Rule]:
    rules = [Rule(*r) for r in BUILTIN_RULES]
    rules.append(Rule(DANGLING_LINK_ID, "LOW", DANGLING_LINK_ID, "Broken local link", ""))
    return rules


def parse_rules_file(raw: str) -> tuple[list[dict], str | None]:
    """Validate audit-rules.yaml text. Returns (rule overrides, threshold)."""
    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise InvalidInputError(f"invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise InvalidInputError("audit rules must be a YAML mapping")

    threshold = data.get("threshold")
    if threshold is not None:
        threshold = normalize_severity(str(threshold))

    overrides = data.get("rules") or []
    if not isinstance(overrides, list):
        raise InvalidInputError("'rules' must be a list")
    for item in overrides:
        if not isinstance(item, dict) or not item.get("id"):
            raise InvalidInputError("every rule needs an 'id'")
        if "severity" in item:
            item["severity"] = normalize_severity(str(item["severity"]))
        for key in ("regex", "exclude"):
            if item.get(key):
                try:
                    re.compile(item[key])
                except re.error as e:
                    raise InvalidInputError(f"rule {item['id']}: invalid {key}: {e}") from e
    return overrides, threshold


def merge_rules(base: list[Rule], overrides: list[dict]) -> list[Rule]:
    """Apply overrides by id: update fields of known rules, append new ones."""
    by_id = {r.id: r for r in base}
    result = list(base)
    for item in overrides:
        rule = by_id.get(item["id"])
        if rule is None:
            if item.get("enabled", True) is False:
                continue
            missing = [k for k in ("severity", "regex") if not item.get(k)]
            if missing:
                raise InvalidInputError(f"rule {item['id']}: missing {', '.join(missing)}")
            rule = Rule(
                id=item["id"],
                severity=item["severity"],
                pattern=item.get("pattern") or item["id"],
                message=item.get("message") or item["id"],
                regex=item["regex"],
                exclude=item.get("exclude", ""),
            )
            by_id[rule.id] = rule
            result.append(rule)
            continue
        for key in ("severity", "pattern", "message", "regex", "exclude"):
            if key in item:
                setattr(rule, key, item[key])
        if "enabled" in item:
            rule.enabled = bool(item["enabled"])
    return result


def load_rules(rules_path: Path | None = None) -> tuple[list[Rule], str | None]:
    """Built-in rules merged with the user's file. Returns (enabled rules, threshold override)."""
    rules = builtin_rules()
    threshold = None
    if rules_path is not None and rules_path.exists():
        overrides, threshold = parse_rules_file(rules_path.read_text(encoding="utf-8"))
        rules = merge_rules(rules, overrides)
    return [r.compile() for r in rules if r.enabled and r.regex] + [
        r for r in rules if r.enabled and r.id == DANGLING_LINK_ID
    ], threshold


# --- Scoring ---


def risk_score(findings: list[AuditFinding]) -> int:
    return min(100, sum(SEVERITY_WEIGHTS.get(f.severity, 0) for f in findings))


def risk_label(score: int) -> str:
    if score <= 0:
        return "clean"
    if score <= 25:
        return "low"
    if score <= 50:
        return "medium"
    if score <= 75:
        return "high"
    return "critical"


def max_severity(findings: list[AuditFinding]) -> str | None:
    if not findings:
        return None
    return min((f.severity for f in findings), key=severity_rank)


def apply_threshold(result: AuditResult, threshold: str) -> AuditResult:
    """Recompute the block decision from stored findings (no rescan).

    Blocked when the worst finding, or the risk label read as a severity,
    ranks at or above the threshold.
    """
    threshold = normalize_severity(threshold)
    limit = severity_rank(threshold)
    worst = max_severity(result.findings)
    label_sev = _LABEL_SEVERITY.get(result.risk_label)

    blocked = worst is not None and severity_rank(worst) <= limit
    if label_sev is not None and severity_rank(label_sev) <= limit:
        blocked = True

    result.threshold = threshold
    result.is_blocked = blocked
    return result


# --- Scanning ---


def _iter_scannable_files(root: Path):
    """Yield files to scan: known text extensions, bounded depth and size."""
    stack = [(root, 0)]
    while stack:
        directory, depth = stack.pop()
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            logger.warning("Audit: cannot read %s: %s", directory, e)
            continue
        for entry in entries:
            if entry.is_symlink():
                continue
            if entry.is_dir():
                if entry.name.startswith(".") or depth + 1 > MAX_DEPTH:
                    continue
                stack.append((entry, depth + 1))
                continue
            if entry.name == META_FILE:
                continue
            if entry.suffix and entry.suffix.lower() not in SCANNABLE_EXTENSIONS:
                continue
            if entry.stat().st_size > MAX_FILE_SIZE:
                continue
            yield entry


def _is_binary(data: bytes) -> bool:
    return b"\0" in data[:512]


def scan_content(text: str, rel: str, rules: list[Rule]) -> list[AuditFinding]:
    """Match every rule against every line of one file."""
    findings = []
    regex_rules = [r for r in rules if r.regex]
    for lineno, line in enumerate(text.splitlines(), start=1):
        for rule in regex_rules:
            if rule.match(line):
                snippet = line.strip()
                if len(snippet) > SNIPPET_LEN:
                    snippet = snippet[: SNIPPET_LEN - 3] + "..."
                findings.append(AuditFinding(
                    severity=rule.severity,
                    pattern=rule.pattern,
                    message=rule.message,
                    file=rel,
                    line=lineno,
                    snippet=snippet,
                ))
    return findings


def _dangling_links(text: str, file_path: Path, rel: str, rule: Rule) -> list[AuditFinding]:
    findings = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        for match in _MD_LINK_RE.finditer(line):
            href = match.group(1)
            if re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*:", href) or href.startswith(("#", "/", "<")):
                continue
            local = href.split("#", 1)[0].split("?", 1)[0]
            if not local or (file_path.parent / local).exists():
                continue
            findings.append(AuditFinding(
                severity=rule.severity,
                pattern=rule.pattern,
                message=f"{rule.message}: {local}",
                file=rel,
                line=lineno,
                snippet=match.group(0)[:SNIPPET_LEN],
            ))
    return findings


def scan_skill(skill_path: Path, skill_name: str, rules: list[Rule] | None = None, threshold: str = DEFAULT_THRESHOLD) -> AuditResult:
    """Scan a skill directory and return findings, risk and block decision."""
    if rules is None:
        rules, _ = load_rules()
    link_rule = next((r for r in rules if r.id == DANGLING_LINK_ID), None)

    findings: list[AuditFinding] = []
    root = skill_path if skill_path.is_dir() else skill_path.parent
    for file_path in _iter_scannable_files(root):
        data = file_path.read_bytes()
        if _is_binary(data):
            continue
        text = data.decode("utf-8", errors="ignore")
        rel = file_path.relative_to(root).as_posix()
        findings.extend(scan_content(text, rel, rules))
        if link_rule is not None and file_path.suffix.lower() == ".md":
            findings.extend(_dangling_links(text, file_path, rel, link_rule))

    findings.sort(key=lambda f: (severity_rank(f.severity), f.file, f.line))
    score = risk_score(findings)
    result = AuditResult(
        skill_name=skill_name,
        findings=findings,
        risk_score=score,
        risk_label=risk_label(score),
    )
    apply_threshold(result, threshold)

    if findings:
        logger.warning(
            "Audit '%s': %d findings, risk %d (%s)%s",
            skill_name, len(findings), score, result.risk_label, " BLOCKED" if result.is_blocked else "",
        )
    else:
        logger.info("Audit '%s': clean", skill_name)
    return result


def summarize(results: list[AuditResult], threshold: str) -> AuditSummary:
    summary = AuditSummary(total=len(results), threshold=threshold)
    for result in results:
        if result.scan_error:
            summary.scan_errors += 1
            continue
        if result.is_blocked:
            summary.failed += 1
        elif result.findings:
            summary.warning += 1
        else:
            summary.passed += 1
        for finding in result.findings:
            key = finding.severity.lower()
            setattr(summary, key, getattr(summary, key) + 1)
        if result.risk_score > summary.risk_score:
            summary.risk_score = result.risk_score
    summary.risk_label = risk_label(summary.risk_score)
    return summary
