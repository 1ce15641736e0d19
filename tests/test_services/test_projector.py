"""Tests for the JobStateProjector and unit/timestamp conversion."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from agent_escrow.domain.enums import JobStatus
from agent_escrow.domain.exceptions import ValidationError
from agent_escrow.domain.models import JobSnapshot
from agent_escrow.services.projector import (
    JobStateProjector,
    format_amount,
    from_timestamp,
    from_wei,
    to_timestamp,
    to_wei,
)

EMPLOYER = "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"
WORKER = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


@pytest.fixture
def projector() -> JobStateProjector:
    return JobStateProjector()


def _snapshot(**overrides) -> JobSnapshot:
    fields = {
        "employer": EMPLOYER,
        "worker": WORKER,
        "amount_wei": 10**16,
        "deadline": 1_767_312_000,
        "status_code": 0,
        "deliverable": "",
        "dispute_time": 0,
    }
    fields.update(overrides)
    return JobSnapshot(**fields)


class TestUnits:
    def test_to_wei(self) -> None:
        assert to_wei("0.01") == 10**16
        assert to_wei(Decimal("1")) == 10**18
        assert to_wei("0.000000000000000001") == 1

    def test_from_wei_is_exact(self) -> None:
        assert from_wei(10**16) == Decimal("0.01")
        assert from_wei(1) == Decimal("1E-18")

    def test_huge_amount_round_trips(self) -> None:
        wei = 2**256 - 1
        assert to_wei(from_wei(wei)) == wei

    def test_format_amount(self) -> None:
        assert format_amount(from_wei(10**16)) == "0.01"
        assert format_amount(from_wei(10**20)) == "100"
        assert format_amount(Decimal("0.0099")) == "0.0099"

    @pytest.mark.parametrize("bad", ["abc", "NaN", "Infinity", "-1"])
    def test_invalid_amounts(self, bad: str) -> None:
        with pytest.raises(ValidationError):
            to_wei(bad)

    def test_too_many_decimals(self) -> None:
        with pytest.raises(ValidationError, match="decimal places"):
            to_wei("0.0000000000000000001")


class TestTimestamps:
    def test_round_trip(self) -> None:
        moment = datetime(2026, 1, 2, 0, 0, tzinfo=UTC)
        assert from_timestamp(to_timestamp(moment)) == moment

    def test_naive_is_utc(self) -> None:
        assert to_timestamp(datetime(1970, 1, 1, 0, 1)) == 60

    def test_other_timezone(self) -> None:
        moment = datetime(1970, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_timestamp(moment) == 0

    def test_sub_second_floored(self) -> None:
        assert to_timestamp(datetime(1970, 1, 1, 0, 0, 1, 999_999, tzinfo=UTC)) == 1


class TestProjector:
    def test_project(self, projector: JobStateProjector) -> None:
        job = projector.project(5, _snapshot())
        assert job.job_id == 5
        assert job.amount == Decimal("0.01")
        assert format_amount(job.amount) == "0.01"
        assert job.status is JobStatus.CREATED
        assert job.deadline == datetime(2026, 1, 2, 0, 0, tzinfo=UTC)
        assert job.dispute_time is None
        assert not job.is_terminal

    @pytest.mark.parametrize(
        ("code", "status"),
        [
            (0, JobStatus.CREATED),
            (1, JobStatus.WORK_SUBMITTED),
            (2, JobStatus.COMPLETED),
            (3, JobStatus.CANCELLED),
            (4, JobStatus.DISPUTED),
        ],
    )
    def test_status_codes(self, projector: JobStateProjector, code: int, status: JobStatus) -> None:
        assert projector.status_for(code) is status
        assert projector.code_for(status) == code

    def test_unknown_status_code_degrades(self, projector: JobStateProjector) -> None:
        job = projector.project(1, _snapshot(status_code=9))
        assert job.status is JobStatus.UNKNOWN
        assert job.status_code == 9

    def test_unknown_status_has_no_encoding(self, projector: JobStateProjector) -> None:
        with pytest.raises(ValueError):
            projector.code_for(JobStatus.UNKNOWN)

    def test_dispute_time_projected(self, projector: JobStateProjector) -> None:
        job = projector.project(1, _snapshot(status_code=4, dispute_time=1_767_225_600))
        assert job.status is JobStatus.DISPUTED
        assert job.dispute_time == datetime(2026, 1, 1, tzinfo=UTC)

    @pytest.mark.parametrize(
        "snapshot",
        [
            _snapshot(),
            _snapshot(amount_wei=123_456_789_012_345_678_901, status_code=1, deliverable="ipfs://abc"),
            _snapshot(amount_wei=1, status_code=4, dispute_time=1_767_225_601),
            _snapshot(status_code=42),
        ],
    )
    def test_round_trip(self, projector: JobStateProjector, snapshot: JobSnapshot) -> None:
        job = projector.project(3, snapshot)
        assert projector.to_snapshot(job) == snapshot
