from __future__ import annotations

import json
import os
import signal
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from payrecon.domain.amount_reconciliation import ReconcileResult
from payrecon.domain.collision_repair import RepairResult
from payrecon.domain.materialization import MaterializeResult
from payrecon.domain.model import QueueCursor
from payrecon.domain.outcomes import Failure, Ok, Stop, StopReason
from payrecon.ui import cli as cli_module

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def restore_sigint_handler() -> Iterator[None]:
    previous = signal.getsignal(signal.SIGINT)
    yield
    signal.signal(signal.SIGINT, previous)


def _capture_materialize(monkeypatch: pytest.MonkeyPatch) -> dict[str, object]:
    captured: dict[str, object] = {}

    def fake_materialize(request: object) -> Ok[MaterializeResult]:
        captured["request"] = request
        return Ok(MaterializeResult(dry_run=True))

    monkeypatch.setattr(cli_module, "materialize_queue", fake_materialize)
    return captured


def test_materialize_defaults_to_dry_run(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture_materialize(monkeypatch)

    cli_module.main(["materialize"])

    request = captured["request"]
    assert isinstance(request, cli_module.MaterializeRequest)
    assert request.dry_run is True
    assert request.limit is None
    assert request.paid_from is None
    assert request.paid_to is None
    assert request.cursor is None


def test_main_loads_dotenv_from_working_directory(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    (tmp_path / ".env").write_text("BEPAID_SHOP_ID=shop-from-dotenv\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("BEPAID_SHOP_ID", "placeholder")
    monkeypatch.delenv("BEPAID_SHOP_ID")
    _capture_materialize(monkeypatch)

    cli_module.main(["materialize"])

    assert os.environ["BEPAID_SHOP_ID"] == "shop-from-dotenv"
    assert signal.getsignal(signal.SIGINT) is cli_module.sigint_handler


def test_materialize_with_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture_materialize(monkeypatch)

    cli_module.main(
        [
            "materialize",
            "--limit",
            "50",
            "--start",
            "2025-01-01T03:00:00+03:00",
            "--end",
            "2025-01-02T00:00:00Z",
            "--lookback-hours",
            "2.5",
            "--cursor-paid-at",
            "2025-01-01T22:00:00Z",
            "--cursor-id",
            "queue-9",
            "--rescan-minutes",
            "15",
            "--execute",
        ]
    )

    request = captured["request"]
    assert isinstance(request, cli_module.MaterializeRequest)
    assert request.limit == 50
    assert request.dry_run is False
    assert request.paid_from == datetime(2025, 1, 1, 21, 30, tzinfo=UTC)
    assert request.paid_to == datetime(2025, 1, 2, 0, 0, tzinfo=UTC)
    assert request.cursor == QueueCursor(
        paid_at=datetime(2025, 1, 1, 22, 0, tzinfo=UTC), id="queue-9"
    )
    assert request.rescan_window == timedelta(minutes=15)


def test_materialize_invalid_timestamp_exits_with_usage_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _capture_materialize(monkeypatch)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["materialize", "--start", "not-a-date"])

    assert excinfo.value.code == 2


def test_materialize_half_cursor_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    _capture_materialize(monkeypatch)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["materialize", "--cursor-id", "queue-9"])

    assert excinfo.value.code == 2


def test_reconcile_builds_date_range(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_reconcile(request: object) -> Ok[ReconcileResult]:
        captured["request"] = request
        return Ok(ReconcileResult(dry_run=True))

    monkeypatch.setattr(cli_module, "reconcile_payment_amounts", fake_reconcile)

    cli_module.main(
        [
            "reconcile-amounts",
            "--from-date",
            "2025-03-01",
            "--to-date",
            "2025-03-31",
            "--only-sentinel-amount",
            "--batch-size",
            "20",
        ]
    )

    request = captured["request"]
    assert isinstance(request, cli_module.ReconcileRequest)
    assert request.period.start == date(2025, 3, 1)
    assert request.period.end == date(2025, 3, 31)
    assert request.only_sentinel_amount is True
    assert request.batch_size == 20
    assert request.dry_run is True


def test_reconcile_rejects_inverted_dates(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_module, "reconcile_payment_amounts", lambda request: Ok(request))

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(
            ["reconcile-amounts", "--from-date", "2025-03-31", "--to-date", "2025-03-01"]
        )

    assert excinfo.value.code == 2


def test_invalid_card_mask_exits_with_usage_error() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(
            ["repair-collision", "--last4", "12", "--brand", "visa", "--target-profile-id", "p"]
        )

    assert excinfo.value.code == 2


def test_repair_stop_is_printed_and_exits_with_stop_code(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    def fake_repair(request: object) -> Stop:
        _ = request
        return Stop(StopReason.MANUAL_MERGE_REQUIRED, "merge first", {"active_profiles_count": 2})

    monkeypatch.setattr(cli_module, "repair_card_collision", fake_repair)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(
            [
                "repair-collision",
                "--last4",
                "4421",
                "--brand",
                "visa",
                "--target-profile-id",
                "p-1",
                "--execute",
            ]
        )

    assert excinfo.value.code == cli_module.EXIT_STOPPED
    payload = json.loads(capsys.readouterr().out)
    assert payload["error"] == "STOP"
    assert payload["code"] == "MANUAL_MERGE_REQUIRED"
    assert payload["active_profiles_count"] == 2


def test_repair_preview_prints_plan(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    captured: dict[str, object] = {}

    def fake_repair(request: object) -> Ok[RepairResult]:
        captured["request"] = request
        return Ok(RepairResult(dry_run=True, last4="4421", brand="visa"))

    monkeypatch.setattr(cli_module, "repair_card_collision", fake_repair)

    cli_module.main(
        ["repair-collision", "--last4", "4421", "--brand", "Visa", "--target-profile-id", "p-1"]
    )

    request = captured["request"]
    assert isinstance(request, cli_module.RepairRequest)
    assert request.dry_run is True
    assert json.loads(capsys.readouterr().out)["links_to_delete_count"] == 0


def test_link_stop_exits_with_stop_code(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    def fake_link(request: object) -> Stop:
        _ = request
        return Stop(StopReason.ORDER_NOT_FOUND, "Order not found: o-1")

    monkeypatch.setattr(cli_module, "link_queue_payment", fake_link)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(
            ["link-payment", "--queue-id", "q-1", "--order-id", "o-1", "--actor-user-id", "a-1"]
        )

    assert excinfo.value.code == cli_module.EXIT_STOPPED
    assert json.loads(capsys.readouterr().out) == {
        "success": False,
        "error": "ORDER_NOT_FOUND",
        "message": "Order not found: o-1",
    }


def test_failure_exits_with_error_code(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_scan(request: object) -> Failure:
        _ = request
        return Failure(message="database unavailable")

    monkeypatch.setattr(cli_module, "scan_profile_duplicates", fake_scan)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["scan-duplicates", "--execute"])

    assert excinfo.value.code == 1


def test_unexpected_exception_exits_with_error_code(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_detect(profile_id: str, **_: object) -> Ok[object]:
        raise RuntimeError(f"boom for {profile_id}")

    monkeypatch.setattr(cli_module, "detect_profile_duplicates", fake_detect)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["detect-duplicates", "--profile-id", "p-1"])

    assert excinfo.value.code == 1
