from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select

from payrecon.domain.amount_reconciliation import (
    CORRECTION_SOURCE,
    RECONCILE_AUDIT_ACTION,
    ReconcileRequest,
    is_refund,
    provider_amount,
    reconcile_amounts,
)
from payrecon.domain.errors import InvalidRequestError
from payrecon.domain.model import ActorType, Payment, UidSource
from payrecon.domain.outcomes import Ok
from payrecon.domain.time_windows import DateRange
from tests.helpers.ledger import (
    BASE_TIME,
    FakeTransactionFetcher,
    audit_records,
    make_payment,
    persist,
    transaction,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session

    from payrecon.adapters.sqlalchemy.unit_of_work import SqlAlchemyLedgerUnitOfWork
    from payrecon.domain.amount_reconciliation import ReconcileResult

type UnitOfWorkFactory = Callable[[], SqlAlchemyLedgerUnitOfWork]

MARCH = DateRange(start=date(2025, 3, 1), end=date(2025, 3, 31))


def _reconcile(
    request: ReconcileRequest,
    fetcher: FakeTransactionFetcher,
    factory: UnitOfWorkFactory,
    *,
    sleep: Callable[[float], None] | None = None,
    call_delay_seconds: float = 0,
) -> ReconcileResult:
    outcome = reconcile_amounts(
        request,
        fetcher=fetcher,
        unit_of_work_factory=factory,
        sleep=sleep or (lambda _: None),
        call_delay_seconds=call_delay_seconds,
    )
    assert isinstance(outcome, Ok)
    return outcome.value


def _stored(session: Session, stable_uid: str) -> Payment:
    session.expire_all()
    stmt = select(Payment).filter_by(stable_uid=stable_uid)
    return session.execute(stmt).scalar_one()


def test_refund_discrepancy_is_reported_then_corrected(
    sqlite_unit_of_work: UnitOfWorkFactory,
    sqlite_session: Session,
) -> None:
    persist(sqlite_unit_of_work, make_payment(stable_uid="tx-refund", amount="10.00"))
    fetcher = FakeTransactionFetcher(
        answers={"tx-refund": transaction("tx-refund", 1050, type_="refund")}
    )

    preview = _reconcile(ReconcileRequest(period=MARCH), fetcher, sqlite_unit_of_work)

    assert preview.checked == 1
    assert preview.discrepancies_found == 1
    assert preview.fixed == 0
    discrepancy = preview.discrepancies[0]
    assert discrepancy.ledger_amount == Decimal("10.00")
    assert discrepancy.provider_amount == Decimal("-10.50")
    assert _stored(sqlite_session, "tx-refund").amount == Decimal("10.00")
    assert audit_records(sqlite_session) == []

    executed = _reconcile(
        ReconcileRequest(period=MARCH, dry_run=False, actor_user_id="admin-1"),
        fetcher,
        sqlite_unit_of_work,
    )

    assert executed.fixed == 1
    corrected = _stored(sqlite_session, "tx-refund")
    assert corrected.amount == Decimal("-10.50")
    assert corrected.meta["original_amount"] == "10.00"
    assert corrected.meta["amount_corrected_source"] == CORRECTION_SOURCE
    assert corrected.meta["provider_raw_amount"] == 1050
    assert corrected.meta["provider_transaction_type"] == "refund"

    records = audit_records(sqlite_session, RECONCILE_AUDIT_ACTION)
    assert len(records) == 1
    assert records[0].actor_type is ActorType.ADMIN
    assert records[0].actor_user_id == "admin-1"
    assert records[0].meta["old_amount"] == "10.00"
    assert records[0].meta["new_amount"] == "-10.50"


def test_second_run_finds_nothing_to_correct(
    sqlite_unit_of_work: UnitOfWorkFactory,
) -> None:
    persist(sqlite_unit_of_work, make_payment(stable_uid="tx-1", amount="1.00"))
    fetcher = FakeTransactionFetcher(answers={"tx-1": transaction("tx-1", 4990)})
    request = ReconcileRequest(period=MARCH, dry_run=False)

    first = _reconcile(request, fetcher, sqlite_unit_of_work)
    second = _reconcile(request, fetcher, sqlite_unit_of_work)

    assert first.fixed == 1
    assert second.discrepancies_found == 0
    assert second.fixed == 0


def test_difference_within_one_cent_is_not_a_discrepancy(
    sqlite_unit_of_work: UnitOfWorkFactory,
    sqlite_session: Session,
) -> None:
    persist(sqlite_unit_of_work, make_payment(stable_uid="tx-close", amount="49.91"))
    fetcher = FakeTransactionFetcher(answers={"tx-close": transaction("tx-close", 4990)})

    result = _reconcile(
        ReconcileRequest(period=MARCH, dry_run=False), fetcher, sqlite_unit_of_work
    )

    assert result.checked == 1
    assert result.discrepancies_found == 0
    assert _stored(sqlite_session, "tx-close").amount == Decimal("49.91")


def test_unknown_transaction_is_skipped(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    persist(sqlite_unit_of_work, make_payment(stable_uid="tx-gone"))

    result = _reconcile(
        ReconcileRequest(period=MARCH, dry_run=False),
        FakeTransactionFetcher(),
        sqlite_unit_of_work,
    )

    assert result.checked == 1
    assert result.skipped == 1
    assert result.errors == 0


def test_provider_error_is_isolated_to_its_payment(
    sqlite_unit_of_work: UnitOfWorkFactory,
    sqlite_session: Session,
) -> None:
    persist(
        sqlite_unit_of_work,
        make_payment(stable_uid="tx-bad", amount="1.00", paid_at=BASE_TIME + timedelta(hours=2)),
        make_payment(stable_uid="tx-good", amount="1.00", paid_at=BASE_TIME),
    )
    fetcher = FakeTransactionFetcher(
        answers={
            "tx-bad": RuntimeError("bePaid error 500"),
            "tx-good": transaction("tx-good", 2500),
        }
    )

    result = _reconcile(
        ReconcileRequest(period=MARCH, dry_run=False), fetcher, sqlite_unit_of_work
    )

    assert fetcher.calls == ["tx-bad", "tx-good"]
    assert result.checked == 2
    assert result.errors == 1
    assert result.error_details[0]["error"] == "bePaid error 500"
    assert result.fixed == 1
    assert _stored(sqlite_session, "tx-good").amount == Decimal("25.00")
    assert _stored(sqlite_session, "tx-bad").amount == Decimal("1.00")


def test_only_provider_sourced_payments_in_range_are_checked(
    sqlite_unit_of_work: UnitOfWorkFactory,
) -> None:
    persist(
        sqlite_unit_of_work,
        make_payment(stable_uid="in-range"),
        make_payment(stable_uid="track-1", uid_source=UidSource.TRACKING_ID),
        make_payment(stable_uid="april", paid_at=BASE_TIME + timedelta(days=40)),
    )
    fetcher = FakeTransactionFetcher()

    result = _reconcile(ReconcileRequest(period=MARCH), fetcher, sqlite_unit_of_work)

    assert result.checked == 1
    assert fetcher.calls == ["in-range"]


def test_last_day_of_range_is_inclusive(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    late_night = BASE_TIME.replace(hour=23, minute=59)
    persist(sqlite_unit_of_work, make_payment(stable_uid="late-night", paid_at=late_night))
    fetcher = FakeTransactionFetcher()
    single_day = DateRange(start=BASE_TIME.date(), end=BASE_TIME.date())

    result = _reconcile(ReconcileRequest(period=single_day), fetcher, sqlite_unit_of_work)

    assert result.checked == 1


def test_sentinel_filter_restricts_to_placeholder_amounts(
    sqlite_unit_of_work: UnitOfWorkFactory,
) -> None:
    persist(
        sqlite_unit_of_work,
        make_payment(stable_uid="placeholder", amount="1.00"),
        make_payment(stable_uid="real", amount="75.00"),
    )
    fetcher = FakeTransactionFetcher()

    result = _reconcile(
        ReconcileRequest(period=MARCH, only_sentinel_amount=True), fetcher, sqlite_unit_of_work
    )

    assert result.checked == 1
    assert fetcher.calls == ["placeholder"]


def test_calls_are_spaced_by_the_configured_delay(
    sqlite_unit_of_work: UnitOfWorkFactory,
) -> None:
    persist(
        sqlite_unit_of_work,
        *[
            make_payment(stable_uid=f"tx-{n}", paid_at=BASE_TIME + timedelta(minutes=n))
            for n in range(3)
        ],
    )
    pauses: list[float] = []

    _reconcile(
        ReconcileRequest(period=MARCH),
        FakeTransactionFetcher(),
        sqlite_unit_of_work,
        sleep=pauses.append,
        call_delay_seconds=0.08,
    )

    assert pauses == [0.08, 0.08]


def test_batch_size_bounds_the_read(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    persist(
        sqlite_unit_of_work,
        *[
            make_payment(stable_uid=f"tx-{n}", paid_at=BASE_TIME + timedelta(minutes=n))
            for n in range(5)
        ],
    )
    fetcher = FakeTransactionFetcher()

    result = _reconcile(ReconcileRequest(period=MARCH, batch_size=2), fetcher, sqlite_unit_of_work)

    assert result.checked == 2
    # newest first
    assert fetcher.calls == ["tx-4", "tx-3"]


def test_negative_delay_is_rejected(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    with pytest.raises(InvalidRequestError):
        reconcile_amounts(
            ReconcileRequest(period=MARCH),
            fetcher=FakeTransactionFetcher(),
            unit_of_work_factory=sqlite_unit_of_work,
            call_delay_seconds=-1,
        )


def test_inverted_period_is_rejected() -> None:
    with pytest.raises(InvalidRequestError):
        DateRange(start=date(2025, 3, 2), end=date(2025, 3, 1))


@pytest.mark.parametrize(
    ("provider_type", "ledger_type", "expected"),
    [
        ("refund", "payment", True),
        ("payment", "refund", True),
        (None, "Возврат средств", True),
        ("payment", "payment", False),
        (None, None, False),
    ],
)
def test_is_refund(provider_type: str | None, ledger_type: str | None, expected: bool) -> None:
    assert is_refund(provider_type, ledger_type) is expected


def test_provider_amount_uses_currency_minor_units() -> None:
    payment = make_payment(amount="1.00")

    assert provider_amount(transaction("t", 4990), payment) == Decimal("49.90")
    assert provider_amount(transaction("t", 1500, currency="JPY"), payment) == Decimal("1500.00")
    assert provider_amount(transaction("t", 1050, type_="refund"), payment) == Decimal("-10.50")


def test_payload_uses_reporting_keys(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    persist(sqlite_unit_of_work, make_payment(stable_uid="tx-1", amount="1.00"))
    fetcher = FakeTransactionFetcher(answers={"tx-1": transaction("tx-1", 990)})

    payload = _reconcile(ReconcileRequest(period=MARCH), fetcher, sqlite_unit_of_work).as_payload()

    assert payload["discrepancies_found"] == 1
    entry = payload["discrepancies"][0]
    assert entry["provider_payment_id"] == "tx-1"
    assert entry["our_amount"] == "1.00"
    assert entry["provider_amount"] == "9.90"
    assert entry["provider_endpoint"] == "beyag"
