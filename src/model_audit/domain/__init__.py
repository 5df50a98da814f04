"""Domain models for model-audit."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

SUITE_CENSORSHIP = "censorship"
SUITE_BIAS = "bias"
SUITE_SIDECHANNEL = "sidechannel"
SUITE_EDGE_CASES = "edge-cases"

VALID_SUITES = [SUITE_CENSORSHIP, SUITE_BIAS, SUITE_SIDECHANNEL, SUITE_EDGE_CASES]

STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"

RISK_SCORES = {RISK_LOW: 1, RISK_MEDIUM: 2, RISK_HIGH: 3}


@dataclass(frozen=True)
class ModelConfig:
    """A stored, audited model endpoint."""

    id: str
    name: str
    provider: str
    version: str
    config: Dict[str, Any]
    created_at: str
    audit_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "version": self.version,
            "config": dict(self.config),
            "created_at": self.created_at,
            "audit_count": self.audit_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], audit_count: int = 0) -> "ModelConfig":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            provider=str(data["provider"]),
            version=str(data["version"]),
            config=dict(data.get("config") or {}),
            created_at=str(data.get("created_at", "")),
            audit_count=audit_count,
        )


@dataclass(frozen=True)
class GenerationRequest:
    """A single completion request sent through an adapter."""

    prompt: str
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stop_sequences: Optional[List[str]] = None


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting reported by a backend."""

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


@dataclass(frozen=True)
class GenerationResponse:
    """Completion returned by an adapter.

    ``latency_ms`` is measured by the adapter itself. ``metadata`` only carries
    provider-specific passthrough fields (response ids, duration breakdowns).
    """

    text: str
    finish_reason: Optional[str] = None
    usage: Optional[TokenUsage] = None
    latency_ms: float = 0.0
    model: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def metadata_view(self) -> Dict[str, Any]:
        """Flatten typed fields and passthrough metadata for persistence."""
        view: Dict[str, Any] = {"latency": self.latency_ms}
        if self.model is not None:
            view["model"] = self.model
        view.update(self.metadata)
        return view


@dataclass(frozen=True)
class TestPrompt:
    """Prompt supplied by the corpus loader."""

    __test__ = False

    id: str
    category: str
    prompt: str
    expected_behavior: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class CensorshipResult:
    prompt_id: str
    prompt: str
    category: str
    response: str
    was_refused: bool
    refusal_indicators: List[str]
    latency: float
    finish_reason: Optional[str] = None
    error: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt_id": self.prompt_id,
            "prompt": self.prompt,
            "category": self.category,
            "response": self.response,
            "finish_reason": self.finish_reason,
            "was_refused": self.was_refused,
            "refusal_indicators": list(self.refusal_indicators),
            "latency": self.latency,
            "error": self.error,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CensorshipResult":
        return cls(
            prompt_id=str(data.get("prompt_id", "")),
            prompt=str(data.get("prompt", "")),
            category=str(data.get("category", "")),
            response=str(data.get("response", "")),
            was_refused=bool(data.get("was_refused", False)),
            refusal_indicators=list(data.get("refusal_indicators") or []),
            latency=float(data.get("latency", 0.0)),
            finish_reason=data.get("finish_reason"),
            error=bool(data.get("error", False)),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class BiasResult:
    prompt_id: str
    prompt: str
    category: str
    response: str
    bias_indicators: List[str]
    neutrality_score: float
    latency: float
    finish_reason: Optional[str] = None
    error: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt_id": self.prompt_id,
            "prompt": self.prompt,
            "category": self.category,
            "response": self.response,
            "finish_reason": self.finish_reason,
            "bias_indicators": list(self.bias_indicators),
            "neutrality_score": self.neutrality_score,
            "latency": self.latency,
            "error": self.error,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BiasResult":
        return cls(
            prompt_id=str(data.get("prompt_id", "")),
            prompt=str(data.get("prompt", "")),
            category=str(data.get("category", "")),
            response=str(data.get("response", "")),
            bias_indicators=list(data.get("bias_indicators") or []),
            neutrality_score=float(data.get("neutrality_score", 0.0)),
            latency=float(data.get("latency", 0.0)),
            finish_reason=data.get("finish_reason"),
            error=bool(data.get("error", False)),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class SideChannelResult:
    test_name: str
    latency: float
    metadata: Dict[str, Any]
    anomalies: List[str]
    risk_level: str = RISK_LOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_name": self.test_name,
            "latency": self.latency,
            "metadata": dict(self.metadata),
            "anomalies": list(self.anomalies),
            "risk_level": self.risk_level,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SideChannelResult":
        return cls(
            test_name=str(data.get("test_name", "")),
            latency=float(data.get("latency", 0.0)),
            metadata=dict(data.get("metadata") or {}),
            anomalies=list(data.get("anomalies") or []),
            risk_level=str(data.get("risk_level", RISK_LOW)),
        )


@dataclass(frozen=True)
class AuditResults:
    """Per-suite result lists; a suite is None when it produced nothing."""

    censorship: Optional[List[CensorshipResult]] = None
    bias: Optional[List[BiasResult]] = None
    sidechannel: Optional[List[SideChannelResult]] = None

    def total(self) -> int:
        return sum(len(items) for items in (self.censorship, self.bias, self.sidechannel) if items is not None)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.censorship is not None:
            data[SUITE_CENSORSHIP] = [r.to_dict() for r in self.censorship]
        if self.bias is not None:
            data[SUITE_BIAS] = [r.to_dict() for r in self.bias]
        if self.sidechannel is not None:
            data[SUITE_SIDECHANNEL] = [r.to_dict() for r in self.sidechannel]
        return data

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "AuditResults":
        data = data or {}
        censorship = data.get(SUITE_CENSORSHIP)
        bias = data.get(SUITE_BIAS)
        sidechannel = data.get(SUITE_SIDECHANNEL)
        return cls(
            censorship=[CensorshipResult.from_dict(r) for r in censorship] if censorship is not None else None,
            bias=[BiasResult.from_dict(r) for r in bias] if bias is not None else None,
            sidechannel=[SideChannelResult.from_dict(r) for r in sidechannel] if sidechannel is not None else None,
        )


@dataclass(frozen=True)
class Summary:
    """Run-level counts derived from every produced result."""

    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    errors: int = 0
    average_latency: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tests": self.total_tests,
            "passed": self.passed,
            "failed": self.failed,
            "errors": self.errors,
            "average_latency": self.average_latency,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Summary":
        if not data:
            return cls()
        return cls(
            total_tests=int(data.get("total_tests", 0)),
            passed=int(data.get("passed", 0)),
            failed=int(data.get("failed", 0)),
            errors=int(data.get("errors", 0)),
            average_latency=float(data.get("average_latency", 0.0)),
        )


@dataclass(frozen=True)
class AuditRecord:
    """Public view of a persisted audit run."""

    id: str
    model_id: str
    test_suites: List[str]
    status: str
    results: AuditResults
    summary: Summary
    created_at: str
    completed_at: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def test_suite(self) -> Optional[str]:
        """Primary (first requested) suite."""
        return self.test_suites[0] if self.test_suites else None

    @property
    def error(self) -> Optional[str]:
        value = self.metadata.get("error")
        return str(value) if value is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "model_id": self.model_id,
            "test_suite": self.test_suite,
            "test_suites": list(self.test_suites),
            "status": self.status,
            "results": self.results.to_dict(),
            "summary": self.summary.to_dict(),
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuditRecord":
        metadata = dict(data.get("metadata") or {})
        return cls(
            id=str(data["id"]),
            model_id=str(data["model_id"]),
            test_suites=list(data.get("test_suites") or []),
            status=str(data.get("status", STATUS_RUNNING)),
            results=AuditResults.from_dict(data.get("results")),
            summary=Summary.from_dict(metadata.get("summary")),
            created_at=str(data.get("created_at", "")),
            completed_at=data.get("completed_at"),
            metadata=metadata,
        )


@dataclass(frozen=True)
class Difference:
    category: str
    metric: str
    model_a_value: Any
    model_b_value: Any
    difference: float
    significance: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "metric": self.metric,
            "model_a_value": self.model_a_value,
            "model_b_value": self.model_b_value,
            "difference": self.difference,
            "significance": self.significance,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Difference":
        return cls(
            category=str(data["category"]),
            metric=str(data["metric"]),
            model_a_value=data.get("model_a_value"),
            model_b_value=data.get("model_b_value"),
            difference=float(data.get("difference", 0.0)),
            significance=str(data.get("significance", RISK_LOW)),
        )


@dataclass(frozen=True)
class ComparisonSummary:
    total_differences: int = 0
    significant_differences: int = 0
    model_a_better: int = 0
    model_b_better: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_differences": self.total_differences,
            "significant_differences": self.significant_differences,
            "model_a_better": self.model_a_better,
            "model_b_better": self.model_b_better,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ComparisonSummary":
        if not data:
            return cls()
        return cls(
            total_differences=int(data.get("total_differences", 0)),
            significant_differences=int(data.get("significant_differences", 0)),
            model_a_better=int(data.get("model_a_better", 0)),
            model_b_better=int(data.get("model_b_better", 0)),
        )


@dataclass(frozen=True)
class ComparisonRecord:
    """Immutable diff between two completed audits."""

    id: str
    audit_a_id: str
    audit_b_id: str
    model_a_id: str
    model_b_id: str
    model_a_name: str
    model_b_name: str
    test_suite: str
    differences: List[Difference]
    summary: ComparisonSummary
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "audit_a_id": self.audit_a_id,
            "audit_b_id": self.audit_b_id,
            "model_a_id": self.model_a_id,
            "model_b_id": self.model_b_id,
            "model_a_name": self.model_a_name,
            "model_b_name": self.model_b_name,
            "test_suite": self.test_suite,
            "differences": [d.to_dict() for d in self.differences],
            "summary": self.summary.to_dict(),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ComparisonRecord":
        return cls(
            id=str(data["id"]),
            audit_a_id=str(data.get("audit_a_id", "")),
            audit_b_id=str(data.get("audit_b_id", "")),
            model_a_id=str(data["model_a_id"]),
            model_b_id=str(data["model_b_id"]),
            model_a_name=str(data.get("model_a_name", "")),
            model_b_name=str(data.get("model_b_name", "")),
            test_suite=str(data.get("test_suite", "")),
            differences=[Difference.from_dict(d) for d in data.get("differences") or []],
            summary=ComparisonSummary.from_dict(data.get("summary")),
            created_at=str(data.get("created_at", "")),
        )


@dataclass(frozen=True)
class EngineSettings:
    """Pacing and concurrency knobs for audit runs."""

    prompt_delay_s: float = 0.1
    sample_delay_s: float = 0.2
    suite_pause_s: float = 0.5
    max_workers: int = 4


__all__ = [
    "SUITE_CENSORSHIP",
    "SUITE_BIAS",
    "SUITE_SIDECHANNEL",
    "SUITE_EDGE_CASES",
    "VALID_SUITES",
    "STATUS_RUNNING",
    "STATUS_COMPLETED",
    "STATUS_FAILED",
    "RISK_LOW",
    "RISK_MEDIUM",
    "RISK_HIGH",
    "RISK_SCORES",
    "ModelConfig",
    "GenerationRequest",
    "TokenUsage",
    "GenerationResponse",
    "TestPrompt",
    "CensorshipResult",
    "BiasResult",
    "SideChannelResult",
    "AuditResults",
    "Summary",
    "AuditRecord",
    "Difference",
    "ComparisonSummary",
    "ComparisonRecord",
    "EngineSettings",
]
