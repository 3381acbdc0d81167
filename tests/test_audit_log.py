import pytest

from buyback.execution.models import ExecutionRecord, Outcome
from buyback.monitoring.audit_log import AuditLog

from conftest import T0


def _record(i, outcome=Outcome.SUCCESS, reason=None):
    return ExecutionRecord(
        execution_id=i,
        timestamp=T0 + i,
        amount_in=10 * i,
        amount_out=1000 * i if outcome == Outcome.SUCCESS else 0,
        price_per_unit=100,
        outcome=outcome,
        reason=reason,
        executor="keeper",
    )


def test_failed_record_needs_known_failure_reason():
    with pytest.raises(ValueError):
        _record(1, Outcome.FAILED)
    with pytest.raises(ValueError):
        _record(1, Outcome.FAILED, "Whatever")
    with pytest.raises(ValueError):
        _record(1, Outcome.FAILED, "TriggerNotMet")


def test_in_memory_log_is_sequential():
    log = AuditLog()
    log.append(_record(1))
    with pytest.raises(ValueError):
        log.append(_record(3))
    log.append(_record(2, Outcome.FAILED, "SlippageExceeded"))

    assert log.last_id == 2
    assert len(log) == 2
    assert [r.execution_id for r in log.iter_records(start_id=2)] == [2]
    assert log.latest(1)[0].reason == "SlippageExceeded"


def test_jsonl_log_recovers_and_restarts(tmp_path):
    path = tmp_path / "audit" / "records.jsonl"
    log = AuditLog(str(path), memory_limit=2)
    for i in range(1, 4):
        log.append(_record(i))

    assert len(log.latest(10)) == 2
    assert [r.execution_id for r in log.iter_records()] == [1, 2, 3]

    reopened = AuditLog(str(path))
    assert reopened.next_id() == 4
    reopened.append(_record(4))
    assert [r.execution_id for r in reopened.iter_records(start_id=3)] == [3, 4]


def test_iterator_is_lazy_and_sees_new_records(tmp_path):
    log = AuditLog(str(tmp_path / "records.jsonl"))
    log.append(_record(1))
    it = log.iter_records()
    assert next(it).execution_id == 1
    log.append(_record(2))
    assert [r.execution_id for r in log.iter_records(start_id=2)] == [2]


def test_malformed_lines_are_skipped(tmp_path):
    path = tmp_path / "records.jsonl"
    log = AuditLog(str(path))
    log.append(_record(1))
    with open(path, "a", encoding="utf-8") as f:
        f.write('{"execution_id": 2, "trunc\n')

    assert [r.execution_id for r in AuditLog(str(path)).iter_records()] == [1]


def test_record_round_trip():
    record = _record(7, Outcome.FAILED, "TransferFailed")
    assert ExecutionRecord.from_dict(record.to_dict()) == record
