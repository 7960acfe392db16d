"""Tests for migration models and the record state machine."""

import pytest

from site_mover.core.exceptions import InvalidTransitionError, ValidationInputError
from site_mover.models import (
    CheckName,
    CheckResult,
    MigrationOptions,
    MigrationRecord,
    MigrationStatus,
    Report,
)


def make_record(**overrides) -> MigrationRecord:
    data = {"id": 7, "source_site_id": 10, "source_server_id": 1}
    data.update(overrides)
    return MigrationRecord(**data)


def make_report(*oks: bool) -> Report:
    names = list(CheckName)
    checks = [CheckResult(name=names[i], ok=ok) for i, ok in enumerate(oks)]
    return Report.from_checks(42, checks, generated_at="2024-01-01T00:00:00+00:00")


class TestMigrationOptions:
    def test_defaults(self):
        options = MigrationOptions()
        assert options.db_user_strategy == "clone"
        assert options.include_env is True
        assert options.horizon_mode == "auto"
        assert options.downtime_mode == "test"
        assert options.run_database_migrations is False
        assert options.healthcheck_url == "/"
        assert options.storage_paths == []

    def test_storage_paths_accept_newline_text(self):
        options = MigrationOptions(storage_paths="storage/app/a\n\nstorage/app/b\n")
        assert options.storage_paths == ["storage/app/a", "storage/app/b"]

    def test_for_migration_accepts_valid_options(self):
        options = MigrationOptions.for_migration(
            {"target_server_id": 2, "target_domain": " new.test ", "target_user": None}, 1
        )
        assert options.target_server_id == 2
        assert options.target_domain == "new.test"
        assert options.target_user == ""

    @pytest.mark.parametrize(
        "data,message",
        [
            ({"target_domain": "new.test"}, "Target server is required"),
            ({"target_server_id": 0, "target_domain": "new.test"}, "Target server is required"),
            ({"target_server_id": 1, "target_domain": "new.test"}, "different from source"),
            ({"target_server_id": 2, "target_domain": "  "}, "Target domain is required"),
            ({"target_server_id": 2, "target_domain": "x" * 256}, "Invalid migration options"),
            (
                {"target_server_id": 2, "target_domain": "n.test", "db_user_strategy": "steal"},
                "Invalid migration options",
            ),
            (
                {"target_server_id": 2, "target_domain": "n.test", "target_user": "u" * 33},
                "Invalid migration options",
            ),
            ({"target_server_id": 2, "target_domain": "x/../../tmp"}, "Target domain may not"),
            ({"target_server_id": 2, "target_domain": "shop..test"}, "Target domain may not"),
            ({"target_server_id": 2, "target_domain": "shop test"}, "Target domain may not"),
            (
                {"target_server_id": 2, "target_domain": "n.test", "target_user": "../root"},
                "Target user may not",
            ),
            (
                {"target_server_id": 2, "target_domain": "n.test", "target_user": "de ploy"},
                "Target user may not",
            ),
        ],
    )
    def test_for_migration_rejects_bad_options(self, data, message):
        with pytest.raises(ValidationInputError, match=message):
            MigrationOptions.for_migration(data, source_server_id=1)


class TestMigrationRecord:
    def test_pipeline_transitions_in_order(self):
        record = make_record(status=MigrationStatus.QUEUED)

        record.transition(MigrationStatus.DISCOVERING)
        assert record.started_at is not None
        for status in (
            MigrationStatus.BACKING_UP,
            MigrationStatus.RESTORING,
            MigrationStatus.VALIDATING,
        ):
            record.transition(status)

        record.succeed(make_report(True, True))
        assert record.status == MigrationStatus.SUCCESS
        assert record.finished_at is not None
        assert record.report.summary.passed == 2

    def test_skipping_a_stage_is_rejected(self):
        record = make_record(status=MigrationStatus.QUEUED)
        with pytest.raises(InvalidTransitionError):
            record.transition(MigrationStatus.RESTORING)

    def test_scanned_record_cannot_enter_pipeline(self):
        record = make_record(status=MigrationStatus.SCANNED)
        with pytest.raises(InvalidTransitionError):
            record.transition(MigrationStatus.DISCOVERING)

    def test_fail_from_any_non_terminal_state(self):
        record = make_record(status=MigrationStatus.BACKING_UP)
        record.fail("boom")
        assert record.status == MigrationStatus.FAILED
        assert record.error == "boom"
        assert record.finished_at is not None

    @pytest.mark.parametrize("status", [MigrationStatus.SUCCESS, MigrationStatus.FAILED])
    def test_terminal_states_are_final(self, status):
        record = make_record(status=status)
        with pytest.raises(InvalidTransitionError):
            record.fail("again")

    def test_target_site_is_set_once(self):
        record = make_record()
        record.assign_target(2, 11)
        record.assign_target(2, 11)
        with pytest.raises(InvalidTransitionError):
            record.assign_target(2, 12)
        assert record.target_site_id == 11


class TestReport:
    def test_summary_counts(self):
        report = make_report(True, False, True, False)
        assert report.summary.total == 4
        assert report.summary.passed == 2
        assert report.summary.failed == 2
        assert report.failed_checks() == ["artisan", "redis"]
