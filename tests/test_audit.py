"""Tests for the hash-chained audit trail."""

import json

from vcsbridge.audit import AuditEvent, AuditLogger


def test_record_and_verify(tmp_path):
    """Test recording events and verifying the chain."""
    logger = AuditLogger(tmp_path / "audit")
    logger.record(AuditEvent(source="github_webhook", action="delivery_dispatched", status="success", binding_id="b1"))
    logger.record(AuditEvent(source="github_webhook", action="delivery_rejected", status="failed", metadata={"code": "X"}))

    events = list(logger.iter_events())

    assert [event["action"] for event in events] == ["delivery_dispatched", "delivery_rejected"]
    assert events[0]["chain_prev"] is None
    assert events[1]["chain_prev"] == events[0]["chain_hash"]
    assert "binding_id" not in events[1]
    assert logger.verify()


def test_verify_detects_tampering(tmp_path):
    """Test chain verification on a tampered log."""
    logger = AuditLogger(tmp_path / "audit")
    for status in ("success", "failed"):
        logger.record(AuditEvent(source="s", action="a", status=status))

    lines = logger.path.read_text().splitlines()
    entry = json.loads(lines[0])
    entry["status"] = "success-edited"
    lines[0] = json.dumps(entry)
    logger.path.write_text("\n".join(lines) + "\n")

    assert not logger.verify()


def test_empty_log_verifies(tmp_path):
    """Test verification of an empty log."""
    assert AuditLogger(tmp_path / "audit").verify()
