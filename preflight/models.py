"""Pydantic models for validator findings and reports."""

import json
import re
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict


def clean_text(text: str) -> str:
    """Replace undecodable bytes smuggled in as lone surrogates.

    Git output and ``os.walk`` names decode invalid UTF-8 with
    ``surrogateescape``; such strings cannot be written to a UTF-8 stream.
    """
    try:
        raw = text.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        raw = text.encode("utf-8", "surrogatepass")
    return raw.decode("utf-8", "replace")


class Severity(str, Enum):
    """Classification of a single rule evaluation.

    ``INFO`` lines are rendered but never counted towards the verdict.
    """
    PASS = "pass"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Verdict(str, Enum):
    """Overall deployment readiness derived from aggregated counts."""
    READY = "READY"
    READY_WITH_CAUTION = "READY_WITH_CAUTION"
    BLOCKED = "BLOCKED"
    DEPLOYMENT_BLOCKED = "DEPLOYMENT_BLOCKED"

    @property
    def exit_code(self) -> int:
        if self is Verdict.DEPLOYMENT_BLOCKED:
            return 2
        if self is Verdict.BLOCKED:
            return 1
        return 0

    @property
    def is_blocking(self) -> bool:
        return self.exit_code != 0


class Finding(BaseModel):
    """One rule evaluation result. Immutable once emitted."""
    rule_id: str
    severity: Severity
    message: str
    file_path: Optional[str] = None
    details: Tuple[str, ...] = ()
    hint: Optional[str] = None

    model_config = ConfigDict(frozen=True, from_attributes=True)

    @field_validator('rule_id', 'message')
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Value must be a non-empty string")
        return v

    @field_validator('message', 'file_path', 'hint')
    @classmethod
    def validate_printable(cls, v: Optional[str]) -> Optional[str]:
        return clean_text(v) if v is not None else v

    @field_validator('details')
    @classmethod
    def validate_printable_details(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(clean_text(d) for d in v)

    @property
    def counted(self) -> bool:
        return self.severity is not Severity.INFO


class PatternRule(BaseModel):
    """A single pattern scanned against tracked files.

    ``target`` selects what the pattern is matched against: ``content``
    searches line contents case-insensitively, ``filename`` matches the
    tracked path's basename as a glob.
    """
    name: str
    pattern: str
    severity: Severity = Severity.WARNING
    target: str = "content"

    model_config = ConfigDict(frozen=True, from_attributes=True)

    @field_validator('target')
    @classmethod
    def validate_target(cls, v: str) -> str:
        allowed = {'content', 'filename'}
        if v not in allowed:
            raise ValueError(f"target must be one of {allowed}")
        return v

    @field_validator('severity')
    @classmethod
    def validate_severity(cls, v: Severity) -> Severity:
        if v in (Severity.PASS, Severity.INFO):
            raise ValueError("Pattern rules must report a warning, error or critical severity")
        return v

    @model_validator(mode="after")
    def validate_pattern(self) -> "PatternRule":
        if self.target == "content":
            self.compile()
        return self

    def compile(self) -> "re.Pattern[str]":
        """Compile a content pattern as a case-insensitive regex."""
        try:
            return re.compile(self.pattern, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"Invalid pattern for rule '{self.name}': {e}")


class ReportSummary(BaseModel):
    """Aggregate counters. ``errors`` includes critical findings."""
    passed: int = 0
    warnings: int = 0
    errors: int = 0
    critical: int = 0

    model_config = ConfigDict(frozen=True, from_attributes=True)


class ValidationReport(BaseModel):
    """Result of one validator invocation."""
    repo_root: str
    findings: List[Finding] = Field(default_factory=list)
    summary: ReportSummary = Field(default_factory=ReportSummary)
    verdict: Verdict
    caution_threshold: int = 5
    checks_run: List[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @property
    def exit_code(self) -> int:
        return self.verdict.exit_code

    def findings_for(self, rule_id: str) -> List[Finding]:
        """Findings emitted by one check, in emission order."""
        return [f for f in self.findings if f.rule_id == rule_id]

    def grouped(self) -> Dict[str, List[Finding]]:
        """Findings grouped by check, preserving battery order."""
        groups: Dict[str, List[Finding]] = {name: [] for name in self.checks_run}
        for finding in self.findings:
            groups.setdefault(finding.rule_id, []).append(finding)
        return groups

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = self.model_dump(mode="json")
        data['exit_code'] = self.exit_code
        return data

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=2)
