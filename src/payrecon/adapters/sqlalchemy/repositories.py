"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, cast

from sqlalchemy import and_, delete, exists, func, or_, select
from sqlalchemy.exc import IntegrityError

from payrecon.adapters.sqlalchemy.mappings import (
    card_profile_link_table,
    duplicate_case_member_table,
    duplicate_case_table,
    payment_table,
    profile_table,
    queue_item_table,
)
from payrecon.domain.duplicate_detection import phone_suffix
from payrecon.domain.model import (
    OPEN_CASE_STATUSES,
    AuditRecord,
    CardProfileLink,
    DuplicateCase,
    DuplicateCaseMember,
    Order,
    Payment,
    Profile,
    Provider,
    QueueItem,
    QueueStatus,
    UidSource,
    normalize_brand,
)
from payrecon.domain.ports.persistence import InsertOutcome, QueueScanEntry

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence
    from datetime import datetime
    from decimal import Decimal

    from sqlalchemy import ColumnElement
    from sqlalchemy.engine import CursorResult
    from sqlalchemy.orm import Session

    from payrecon.domain.model import CaseType, QueueCursor


log = getLogger(__name__)

_UNIQUE_SQLITE_ERRORS = frozenset({"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"})
_UNIQUE_SQLSTATE = "23505"


def is_unique_violation(error: IntegrityError) -> bool:
    """Tell a unique-key collision apart from other integrity failures."""

    orig = error.orig
    if getattr(orig, "sqlite_errorname", None) in _UNIQUE_SQLITE_ERRORS:
        return True
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code == _UNIQUE_SQLSTATE


def _cursor_after(cursor: QueueCursor) -> ColumnElement[bool]:
    paid_at = queue_item_table.c.paid_at
    return or_(
        paid_at > cursor.paid_at,
        and_(paid_at == cursor.paid_at, queue_item_table.c.id > cursor.id),
    )


def _cursor_until(cursor: QueueCursor) -> ColumnElement[bool]:
    paid_at = queue_item_table.c.paid_at
    return or_(
        paid_at < cursor.paid_at,
        and_(paid_at == cursor.paid_at, queue_item_table.c.id <= cursor.id),
    )


class SqlAlchemyQueueItemRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, queue_id: str) -> QueueItem | None:
        return self.session.get(QueueItem, queue_id)

    def scan_completed(
        self,
        *,
        limit: int,
        paid_from: datetime | None = None,
        paid_to: datetime | None = None,
        profile_id: str | None = None,
        after: QueueCursor | None = None,
        until: QueueCursor | None = None,
        include_materialized: bool = True,
    ) -> Sequence[QueueScanEntry]:
        queue = queue_item_table.c
        # blank uids fall through, matching QueueItem.stable_uid
        stable_uid = func.coalesce(
            func.nullif(queue.provider_uid, ""),
            func.nullif(queue.tracking_id, ""),
            queue.id,
        )
        materialized = exists().where(payment_table.c.stable_uid == stable_uid)

        stmt = select(QueueItem, materialized.label("materialized")).where(
            queue.status == QueueStatus.COMPLETED
        )
        if paid_from is not None:
            stmt = stmt.where(queue.paid_at >= paid_from)
        if paid_to is not None:
            stmt = stmt.where(queue.paid_at <= paid_to)
        if profile_id is not None:
            stmt = stmt.where(queue.matched_profile_id == profile_id)
        if after is not None:
            stmt = stmt.where(_cursor_after(after))
        if until is not None:
            stmt = stmt.where(_cursor_until(until))
        if not include_materialized:
            stmt = stmt.where(~materialized)
        stmt = stmt.order_by(queue.paid_at, queue.id).limit(limit)

        rows = self.session.execute(stmt).all()
        return [QueueScanEntry(item=item, materialized=bool(flag)) for item, flag in rows]


class SqlAlchemyPaymentRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add_if_absent(self, payment: Payment) -> InsertOutcome:
        """Insert ``payment`` unless its stable uid is already taken.

        On conflict the session is rolled back, discarding any other pending
        changes in the same transaction.
        """

        self.session.add(payment)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            if not is_unique_violation(exc):
                raise
            log.info("Payment with stable uid %s already exists", payment.stable_uid)
            return InsertOutcome.CONFLICT
        return InsertOutcome.CREATED

    def get_by_stable_uid(self, stable_uid: str) -> Payment | None:
        stmt = select(Payment).where(payment_table.c.stable_uid == stable_uid).limit(1)
        return self.session.execute(stmt).scalar_one_or_none()

    def list_for_reconciliation(
        self,
        *,
        paid_from: datetime,
        paid_to: datetime,
        limit: int,
        only_amount: Decimal | None = None,
    ) -> Sequence[Payment]:
        payments = payment_table.c
        stmt = (
            select(Payment)
            .where(payments.provider == Provider.BEPAID)
            .where(payments.uid_source == UidSource.PROVIDER_UID)
            .where(payments.paid_at >= paid_from)
            .where(payments.paid_at <= paid_to)
        )
        if only_amount is not None:
            stmt = stmt.where(payments.amount == only_amount)
        stmt = stmt.order_by(payments.paid_at.desc(), payments.id).limit(limit)
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyProfileRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Profile) -> None:
        self.session.add(entity)

    def get(self, profile_id: str) -> Profile | None:
        return self.session.get(Profile, profile_id)

    def list_active(self, *, limit: int) -> Sequence[Profile]:
        stmt = (
            select(Profile)
            .where(profile_table.c.is_archived.is_(False))
            .order_by(profile_table.c.created_at, profile_table.c.id)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def find_active_by_email(self, normalized_email: str) -> Sequence[Profile]:
        stmt = (
            select(Profile)
            .where(profile_table.c.is_archived.is_(False))
            .where(func.lower(func.trim(profile_table.c.email)) == normalized_email)
            .order_by(profile_table.c.id)
        )
        return list(self.session.execute(stmt).scalars())

    def find_active_by_phone_suffix(self, suffix: str) -> Sequence[Profile]:
        # stored phones carry arbitrary formatting, so the suffix is compared in Python
        stmt = (
            select(Profile)
            .where(profile_table.c.is_archived.is_(False))
            .where(profile_table.c.phone.is_not(None))
            .order_by(profile_table.c.id)
        )
        return [
            profile
            for profile in self.session.execute(stmt).scalars()
            if phone_suffix(profile.phone) == suffix
        ]


class SqlAlchemyOrderRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Order) -> None:
        self.session.add(entity)

    def get(self, order_id: str) -> Order | None:
        return self.session.get(Order, order_id)


class SqlAlchemyCardLinkRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: CardProfileLink) -> None:
        self.session.add(entity)

    def list_with_profiles(
        self, *, last4: str, brand: str
    ) -> Sequence[tuple[CardProfileLink, Profile]]:
        links = card_profile_link_table.c
        stmt = (
            select(CardProfileLink, Profile)
            .join(Profile, profile_table.c.id == links.profile_id)
            .where(links.last4 == last4)
            .where(func.lower(func.trim(links.brand)) == normalize_brand(brand))
            .order_by(links.created_at, links.id)
        )
        return [(link, profile) for link, profile in self.session.execute(stmt).all()]

    def list_for_profiles(self, profile_ids: Collection[str]) -> Sequence[CardProfileLink]:
        if not profile_ids:
            return []
        links = card_profile_link_table.c
        stmt = (
            select(CardProfileLink)
            .where(links.profile_id.in_(list(profile_ids)))
            .order_by(links.created_at, links.id)
        )
        return list(self.session.execute(stmt).scalars())

    def delete_many(self, link_ids: Collection[str]) -> int:
        if not link_ids:
            return 0
        stmt = (
            delete(CardProfileLink)
            .where(card_profile_link_table.c.id.in_(list(link_ids)))
            .execution_options(synchronize_session="fetch")
        )
        result = cast("CursorResult[object]", self.session.execute(stmt))
        return result.rowcount


class SqlAlchemyDuplicateCaseRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: DuplicateCase) -> None:
        self.session.add(entity)
        # members reference the case row, so it has to exist first
        self.session.flush()

    def find_open(self, case_type: CaseType, identity_key: str) -> DuplicateCase | None:
        cases = duplicate_case_table.c
        stmt = (
            select(DuplicateCase)
            .where(cases.case_type == case_type)
            .where(cases.identity_key == identity_key)
            .where(cases.status.in_(list(OPEN_CASE_STATUSES)))
            .order_by(cases.created_at.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def member_ids(self, case_id: str) -> set[str]:
        stmt = select(duplicate_case_member_table.c.profile_id).where(
            duplicate_case_member_table.c.case_id == case_id
        )
        return set(self.session.execute(stmt).scalars())

    def add_member(self, member: DuplicateCaseMember) -> None:
        self.session.add(member)


class SqlAlchemyAuditLog:
    def __init__(self, session: Session) -> None:
        self.session = session

    def append(self, record: AuditRecord) -> None:
        self.session.add(record)


if TYPE_CHECKING:
    from payrecon.domain.ports.persistence import (
        AuditLog,
        CardLinkRepository,
        DuplicateCaseRepository,
        OrderRepository,
        PaymentRepository,
        ProfileRepository,
        QueueItemRepository,
    )

    _session_stub = cast("Session", object())
    _queue_check: QueueItemRepository = SqlAlchemyQueueItemRepository(_session_stub)
    _payment_check: PaymentRepository = SqlAlchemyPaymentRepository(_session_stub)
    _profile_check: ProfileRepository = SqlAlchemyProfileRepository(_session_stub)
    _order_check: OrderRepository = SqlAlchemyOrderRepository(_session_stub)
    _card_check: CardLinkRepository = SqlAlchemyCardLinkRepository(_session_stub)
    _case_check: DuplicateCaseRepository = SqlAlchemyDuplicateCaseRepository(_session_stub)
    _audit_check: AuditLog = SqlAlchemyAuditLog(_session_stub)
