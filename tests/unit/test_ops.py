import logging

from ops import health_check, log_report, ready_check
from shared.schema import IngestReport, ItemResult, TargetEntity


def test_health_check():
    assert health_check() == {"status": "ok"}


def test_ready_check(archive_dir, store):
    assert ready_check(archive_dir, store) == {"status": "ready"}


def test_ready_check_reports_unwritable_archive(tmp_path, store):
    result = ready_check(tmp_path / "missing", store)
    assert result["status"] == "not_ready"
    assert "Cannot write" in result["error"]


def test_ready_check_reports_closed_store(archive_dir, store):
    store.close()
    result = ready_check(archive_dir, store)
    assert result["status"] == "not_ready"


def test_log_report(caplog):
    report = IngestReport(
        adapter="Url",
        target=TargetEntity(id=4),
        results=[ItemResult(index=0, source="https://example.com/a.jpg", status="skipped", reason="Server answered 404")],
    )
    with caplog.at_level(logging.INFO, logger="ops"):
        log_report(report)
    assert "adapter=Url | target=item:4 | ingested=0 | skipped=1" in caplog.text
    assert "Server answered 404" in caplog.text
