"""Tests for audit records and timing helpers."""
import asyncio
import json
import logging

import pytest

from junos_reconcile.config_engine import ConfigEngine
from junos_reconcile.devices.base import DeviceConfig
from junos_reconcile.exceptions import CommitError
from junos_reconcile.features.lldp import LldpInterface, lldp_interface
from junos_reconcile.utils.audit_log import (
    ChangeRecord,
    ChangeTracker,
    audit_logger,
    get_recent_changes,
    setup_audit_logging,
)
from junos_reconcile.utils.logging_config import timed, timed_section


@pytest.fixture
def audit_file(tmp_path):
    path = setup_audit_logging(str(tmp_path))
    yield path
    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()
    audit_logger.propagate = True


class TestChangeTracker:
    """Tests for ChangeTracker and get_recent_changes."""

    def test_record_written(self, audit_file):
        tracker = ChangeTracker("srx-edge")
        record = tracker.log_change(
            "create",
            "protocols lldp interface all",
            success=True,
            lines=["set protocols lldp interface all "],
        )
        assert record.device_id == "srx-edge"

        data = json.loads(audit_file.read_text().splitlines()[-1])
        assert data["operation"] == "create"
        assert data["lines"] == ["set protocols lldp interface all "]
        assert data["dry_run"] is False

    def test_json_round_trip(self):
        record = ChangeRecord(
            timestamp="2026-01-01T00:00:00+00:00",
            device_id="srx-edge",
            operation="delete",
            path="protocols bgp group G",
            dry_run=True,
            success=False,
            error="commit failed",
        )
        assert ChangeRecord.from_json(record.to_json()) == record

    def test_recent_changes_filtered(self, audit_file):
        ChangeTracker("srx-1").log_change("create", "a", success=True)
        ChangeTracker("srx-2").log_change("create", "b", success=True)
        ChangeTracker("srx-1").log_change("delete", "a", success=True)
        with open(audit_file, "a", encoding="utf-8") as f:
            f.write("not json\n")

        records = get_recent_changes(str(audit_file), device_id="srx-1")
        assert [r.operation for r in records] == ["delete", "create"]
        assert len(get_recent_changes(str(audit_file), operation="create")) == 2
        assert len(get_recent_changes(str(audit_file), limit=1)) == 1

    def test_missing_file(self, tmp_path):
        assert get_recent_changes(str(tmp_path / "none.log")) == []


class TestEngineAudit:
    """Each engine operation writes one audit record."""

    @pytest.mark.asyncio
    async def test_success_and_failure(self, audit_file, device, device_config, link_factory):
        engine = ConfigEngine(device_config, device_id="srx-edge", link_factory=link_factory)
        await engine.create(lldp_interface("all"), LldpInterface(enable=True))
        device.commit_errors = ["commit failed"]
        with pytest.raises(CommitError):
            await engine.delete(lldp_interface("all"))

        records = get_recent_changes(str(audit_file), device_id="srx-edge")
        assert [(r.operation, r.success) for r in records] == [
            ("delete", False),
            ("create", True),
        ]
        assert "commit failed" in records[0].error
        assert records[1].path == "protocols lldp interface all"

    @pytest.mark.asyncio
    async def test_dry_run_flagged(self, audit_file, tmp_path, link_factory):
        config = DeviceConfig(host="192.0.2.10", set_file=str(tmp_path / "c.set"))
        engine = ConfigEngine(config, link_factory=link_factory)
        await engine.create(lldp_interface("all"), LldpInterface(enable=True))

        record = get_recent_changes(str(audit_file))[0]
        assert record.dry_run is True
        assert record.success is True
        assert record.device_id == "192.0.2.10"


class TestTiming:
    """Tests for the perf timing helpers."""

    @pytest.mark.asyncio
    async def test_timed_logs_ok(self, caplog):
        class Worker:
            device_id = "srx-edge"

            @timed("refresh")
            async def run(self):
                return 42

        with caplog.at_level(logging.INFO, logger="junos_reconcile.perf"):
            assert await Worker().run() == 42
        assert "refresh" in caplog.text
        assert "srx-edge" in caplog.text
        assert "OK" in caplog.text

    def test_timed_rejects_sync(self):
        with pytest.raises(TypeError):
            @timed("sync")
            def run():
                pass

    @pytest.mark.asyncio
    async def test_timed_section_failure(self, caplog):
        with caplog.at_level(logging.INFO, logger="junos_reconcile.perf"):
            with pytest.raises(RuntimeError):
                async with timed_section("update", device_id="srx-edge", path="protocols lldp"):
                    raise RuntimeError("boom")
        assert "FAIL: boom" in caplog.text
        assert "path=protocols lldp" in caplog.text

    @pytest.mark.asyncio
    async def test_timed_section_cancelled(self, caplog):
        async def hold():
            async with timed_section("create", device_id="srx-edge"):
                await asyncio.sleep(10)

        with caplog.at_level(logging.INFO, logger="junos_reconcile.perf"):
            task = asyncio.create_task(hold())
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        assert "CANCELLED" in caplog.text
