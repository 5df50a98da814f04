# pyright: reportPrivateUsage=false
from __future__ import annotations

import json

import pytest

from model_audit.domain import STATUS_COMPLETED, STATUS_RUNNING
from model_audit.exceptions import ConfigurationError, NotFoundError, UnsupportedFormatError, ValidationError
from model_audit.service import AuditService, validate_suites


def _register(service: AuditService, **config: str) -> str:
    return service.upsert_model("scripted-model", "scripted", "1.0", {"model": "scripted-1", **config}).id


def test_validate_suites_names_every_valid_suite() -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate_suites(["censorship", "telepathy"])

    message = str(excinfo.value)
    assert "telepathy" in message
    for suite in ("censorship", "bias", "sidechannel", "edge-cases"):
        assert suite in message


@pytest.mark.parametrize("suites", [[], "censorship"])
def test_validate_suites_requires_a_list(suites) -> None:
    with pytest.raises(ValidationError):
        validate_suites(suites)


def test_validate_suites_rejects_repeats() -> None:
    with pytest.raises(ValidationError, match="Duplicate test suites: bias") as excinfo:
        validate_suites(["bias", "censorship", "bias"])

    assert excinfo.value.field == "test_suites"
    assert validate_suites(["bias", "censorship"]) == ["bias", "censorship"]


def test_invalid_suite_creates_no_run(audit_service: AuditService) -> None:
    model_id = _register(audit_service)

    with pytest.raises(ValidationError):
        audit_service.start_audit(model_id, ["telepathy"])

    assert audit_service.list_audits() == []


def test_start_audit_runs_in_background(audit_service: AuditService) -> None:
    model_id = _register(audit_service, reply="I cannot help with that.")

    handle = audit_service.start_audit(model_id, ["censorship", "bias"])
    record = handle.future.result(timeout=10)

    assert record.id == handle.run_id
    assert record.status == STATUS_COMPLETED
    assert len(record.results.censorship) == 3
    assert all(r.was_refused for r in record.results.censorship)
    assert record.summary.total_tests == 5

    stored = audit_service.get_audit(handle.run_id)
    assert stored is not None
    assert stored.to_dict() == record.to_dict()
    assert audit_service.get_model(model_id).audit_count == 1  # type: ignore[union-attr]


def test_start_audit_unknown_model(audit_service: AuditService) -> None:
    with pytest.raises(NotFoundError):
        audit_service.start_audit("missing", ["censorship"])


def test_start_audit_invalid_configuration(audit_service: AuditService) -> None:
    model_id = audit_service.upsert_model("broken", "scripted", "1.0", {}).id

    with pytest.raises(ConfigurationError):
        audit_service.start_audit(model_id, ["censorship"])

    assert audit_service.list_audits(model_id=model_id) == []


def test_test_connection(audit_service: AuditService) -> None:
    model_id = _register(audit_service)

    assert audit_service.test_connection(model_id) is True
    with pytest.raises(NotFoundError):
        audit_service.test_connection("missing")


def test_list_audits_filters_and_limits(audit_service: AuditService) -> None:
    model_id = _register(audit_service)
    for _ in range(3):
        audit_service.start_audit(model_id, ["edge-cases"]).future.result(timeout=10)

    assert len(audit_service.list_audits(model_id=model_id)) == 3
    assert len(audit_service.list_audits(model_id=model_id, limit=2)) == 2
    assert len(audit_service.list_audits(status=STATUS_COMPLETED)) == 3
    assert audit_service.list_audits(status=STATUS_RUNNING) == []
    with pytest.raises(ValidationError):
        audit_service.list_audits(limit=0)


def test_export_is_stable_json(audit_service: AuditService) -> None:
    model_id = _register(audit_service)
    run_id = audit_service.start_audit(model_id, ["censorship"]).future.result(timeout=10).id

    first = audit_service.export_audit(run_id)
    second = audit_service.export_audit(run_id, "json")

    assert first == second
    document = json.loads(first)
    assert document["id"] == run_id
    assert document["status"] == STATUS_COMPLETED


def test_export_rejects_unknown_format(audit_service: AuditService) -> None:
    model_id = _register(audit_service)
    run_id = audit_service.start_audit(model_id, ["censorship"]).future.result(timeout=10).id

    with pytest.raises(UnsupportedFormatError, match="Unsupported format: pdf. Supported: json"):
        audit_service.export_audit(run_id, "pdf")


def test_export_missing_audit_is_not_found(audit_service: AuditService) -> None:
    with pytest.raises(NotFoundError):
        audit_service.export_audit("missing", "pdf")


def test_compare_through_service(audit_service: AuditService) -> None:
    refusing = _register(audit_service, reply="I cannot help with that.")
    helpful = audit_service.upsert_model("other", "scripted", "1.0", {"model": "m", "reply": "Sure, here you go."}).id
    run_a = audit_service.start_audit(refusing, ["censorship"]).future.result(timeout=10).id
    run_b = audit_service.start_audit(helpful, ["censorship"]).future.result(timeout=10).id

    comparison = audit_service.compare_audits(run_a, run_b)

    refusal = next(d for d in comparison.differences if d.metric == "refusal_rate")
    assert refusal.model_a_value == pytest.approx(1.0)
    assert refusal.model_b_value == pytest.approx(0.0)
    assert refusal.significance == "high"
    assert audit_service.get_comparison(comparison.id) is not None
    assert [c.id for c in audit_service.list_comparisons_for_model(helpful)] == [comparison.id]


def test_finished_runs_release_their_handles(audit_service: AuditService) -> None:
    model_id = _register(audit_service)
    run_ids = [audit_service.start_audit(model_id, ["edge-cases"]).run_id for _ in range(5)]

    # Shutdown waits for the workers, and with them every done callback.
    audit_service.close()

    assert audit_service._handles == {}
    assert all(audit_service.get_run_handle(run_id) is None for run_id in run_ids)
    assert len(audit_service.list_audits(status=STATUS_COMPLETED)) == 5
