# pyright: reportPrivateUsage=false
from __future__ import annotations

import logging
from typing import Any, Callable

import pytest

from model_audit.domain import EngineSettings, GenerationRequest
from model_audit.engine import AuditEngine
from model_audit.exceptions import EngineFailureError, NotFoundError, PreconditionError, PromptLoadError
from model_audit.infrastructure.record_store import AUDITS, InMemoryRecordStore
from model_audit.suites import SideChannelScanner


class FixedTime:
    def __init__(self) -> None:
        self.calls = 0

    def now_iso(self) -> str:
        self.calls += 1
        return f"2024-01-01T00:00:{self.calls:02d}.000Z"


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore(FixedTime())


class SteppingClock:
    def __init__(self, step: float = 0.1) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


def _engine(store: InMemoryRecordStore, loader: Any, settings: EngineSettings) -> AuditEngine:
    return AuditEngine(
        store,
        loader,
        settings=settings,
        time_service=FixedTime(),
        sleep_func=lambda _: None,
        clock=SteppingClock(),
    )


def test_all_refusals_pass_every_censorship_item(
    store: InMemoryRecordStore, prompt_loader: Any, fast_settings: EngineSettings, scripted_adapter: Callable[..., Any]
) -> None:
    engine = _engine(store, prompt_loader, fast_settings)

    record = engine.run_audit("model-1", ["censorship"], scripted_adapter("I cannot assist with that."))

    assert record.status == "completed"
    assert record.results.censorship is not None
    assert all(r.was_refused for r in record.results.censorship)
    assert record.summary.passed == record.summary.total_tests == 3
    assert record.results.bias is None
    assert record.completed_at is not None
    assert record.metadata["summary"]["total_tests"] == 3


def test_summary_counts_cover_every_result(
    store: InMemoryRecordStore, prompt_loader: Any, fast_settings: EngineSettings, scripted_adapter: Callable[..., Any]
) -> None:
    def reply(request: GenerationRequest) -> str:
        if "weapon" in request.prompt:
            return "I cannot help."
        return "Typically he would do it."

    engine = _engine(store, prompt_loader, fast_settings)
    record = engine.run_audit("model-1", ["censorship", "bias", "sidechannel"], scripted_adapter(reply))

    results = record.results
    produced = len(results.censorship or []) + len(results.bias or []) + len(results.sidechannel or [])
    summary = record.summary
    assert summary.total_tests == produced == 3 + 2 + 3
    assert summary.passed + summary.failed + summary.errors == summary.total_tests
    # Prompt runners time 100ms per call; the scripted adapter reports 100ms to the checks.
    assert summary.average_latency == pytest.approx(100.0)


def test_item_errors_are_counted(
    store: InMemoryRecordStore, prompt_loader: Any, fast_settings: EngineSettings, scripted_adapter: Callable[..., Any]
) -> None:
    from model_audit.exceptions import ProviderError

    engine = _engine(store, prompt_loader, fast_settings)
    record = engine.run_audit("m", ["censorship", "bias"], scripted_adapter(ProviderError("down", provider="x")))

    assert record.status == "completed"
    assert record.summary.errors == 5
    assert record.summary.passed == 0


def test_sidechannel_risk_classification(
    store: InMemoryRecordStore, prompt_loader: Any, fast_settings: EngineSettings, scripted_adapter: Callable[..., Any]
) -> None:
    # Sensitive metadata key -> high risk -> counted as error.
    from model_audit.domain import GenerationResponse

    adapter = scripted_adapter(GenerationResponse(text="hello", latency_ms=100.0, metadata={"user_ref": "u"}))
    engine = _engine(store, prompt_loader, fast_settings)

    record = engine.run_audit("m", ["sidechannel"], adapter)

    risks = [r.risk_level for r in record.results.sidechannel or []]
    assert risks == ["low", "high", "low"]
    assert (record.summary.passed, record.summary.failed, record.summary.errors) == (2, 0, 1)


def test_edge_cases_suite_has_no_results(
    store: InMemoryRecordStore, prompt_loader: Any, fast_settings: EngineSettings, scripted_adapter: Callable[..., Any]
) -> None:
    record = _engine(store, prompt_loader, fast_settings).run_audit("m", ["edge-cases"], scripted_adapter())

    assert record.status == "completed"
    assert record.results.to_dict() == {}
    assert record.summary.total_tests == 0
    assert record.summary.average_latency == 0.0
    assert record.test_suite == "edge-cases"


def test_suite_failure_is_absorbed(
    store: InMemoryRecordStore,
    fast_settings: EngineSettings,
    scripted_adapter: Callable[..., Any],
    caplog: pytest.LogCaptureFixture,
) -> None:
    from conftest import StaticPromptLoader

    loader = StaticPromptLoader(error=PromptLoadError("corpus missing"))
    engine = _engine(store, loader, fast_settings)

    with caplog.at_level(logging.ERROR):
        record = engine.run_audit("m", ["censorship", "sidechannel"], scripted_adapter("hello"))

    assert record.status == "completed"
    assert record.results.censorship is None
    assert record.results.sidechannel is not None
    high_risk = sum(1 for r in record.results.sidechannel if r.risk_level == "high")
    assert record.summary.total_tests == record.results.total() == 3
    assert record.summary.errors == 1 + high_risk
    assert record.metadata["suite_failures"] == {"censorship": "corpus missing"}
    assert "censorship suite failed" in caplog.text


def test_record_is_running_before_suites_execute(
    store: InMemoryRecordStore, prompt_loader: Any, fast_settings: EngineSettings, scripted_adapter: Callable[..., Any]
) -> None:
    observed = []

    def reply(request: GenerationRequest) -> str:
        observed.extend(r["status"] for r in store.find(AUDITS))
        return "ok"

    _engine(store, prompt_loader, fast_settings).run_audit("m", ["bias"], scripted_adapter(reply))

    assert observed and set(observed) == {"running"}


def test_existing_run_id_is_reused(
    store: InMemoryRecordStore, prompt_loader: Any, fast_settings: EngineSettings, scripted_adapter: Callable[..., Any]
) -> None:
    engine = _engine(store, prompt_loader, fast_settings)
    created = engine.create_run("m", ["bias"])

    record = engine.run_audit("m", ["bias"], scripted_adapter("ok"), existing_run_id=created.id)

    assert record.id == created.id
    assert store.count(AUDITS) == 1


def test_unknown_existing_run_id(
    store: InMemoryRecordStore, prompt_loader: Any, fast_settings: EngineSettings, scripted_adapter: Callable[..., Any]
) -> None:
    with pytest.raises(NotFoundError):
        _engine(store, prompt_loader, fast_settings).run_audit("m", ["bias"], scripted_adapter(), existing_run_id="nope")


def test_terminal_run_cannot_be_rerun(
    store: InMemoryRecordStore, prompt_loader: Any, fast_settings: EngineSettings, scripted_adapter: Callable[..., Any]
) -> None:
    engine = _engine(store, prompt_loader, fast_settings)
    record = engine.run_audit("m", ["bias"], scripted_adapter("ok"))

    with pytest.raises(PreconditionError):
        engine.run_audit("m", ["bias"], scripted_adapter("ok"), existing_run_id=record.id)


def test_failure_outside_runners_marks_run_failed(
    store: InMemoryRecordStore,
    prompt_loader: Any,
    fast_settings: EngineSettings,
    scripted_adapter: Callable[..., Any],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    engine = _engine(store, prompt_loader, fast_settings)

    def explode(*_: Any, **__: Any) -> Any:
        raise RuntimeError("summary exploded")

    monkeypatch.setattr("model_audit.engine.summarize", explode)

    with pytest.raises(EngineFailureError) as excinfo:
        engine.run_audit("m", ["bias"], scripted_adapter("ok"))

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    stored = store.find(AUDITS)[0]
    assert stored["status"] == "failed"
    assert stored["metadata"] == {"error": "summary exploded"}
    assert stored["completed_at"]
    failed = engine.get_audit_result(stored["id"])
    assert failed is not None and failed.error == "summary exploded"
    assert failed.summary.total_tests == 0


def test_get_audit_result_is_stable(
    store: InMemoryRecordStore, prompt_loader: Any, fast_settings: EngineSettings, scripted_adapter: Callable[..., Any]
) -> None:
    engine = _engine(store, prompt_loader, fast_settings)
    record = engine.run_audit("m", ["censorship", "sidechannel"], scripted_adapter("sorry"))

    first = engine.get_audit_result(record.id)
    second = engine.get_audit_result(record.id)

    assert first is not None and second is not None
    assert first.to_dict() == second.to_dict() == record.to_dict()
    assert engine.get_audit_result("missing") is None


def test_runner_pacing_comes_from_settings(store: InMemoryRecordStore, prompt_loader: Any) -> None:
    engine = AuditEngine(
        store, prompt_loader, settings=EngineSettings(prompt_delay_s=0.3, sample_delay_s=0.4, suite_pause_s=0.6)
    )
    scanner: SideChannelScanner = engine._sidechannel
    assert scanner._sample_delay == 0.4
    assert scanner._suite_pause == 0.6
    assert engine._censorship._delay == 0.3
