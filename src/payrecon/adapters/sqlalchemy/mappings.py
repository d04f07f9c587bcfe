"""SQLAlchemy mapping metadata for the payrecon domain model."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import StrEnum
from functools import cache
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    orm,
)
from sqlalchemy.orm import configure_mappers

from payrecon.domain.model import (
    ActorType,
    AuditRecord,
    CardProfileLink,
    CaseStatus,
    CaseType,
    DuplicateCase,
    DuplicateCaseMember,
    Order,
    Payment,
    PaymentStatus,
    Profile,
    Provider,
    QueueItem,
    QueueStatus,
    UidSource,
)

if TYPE_CHECKING:
    from decimal import Decimal

    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

ID_LENGTH = 36


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


def _enum_values(enum_cls: type[StrEnum]) -> list[str]:
    return [member.value for member in enum_cls]


def _enum(enum_cls: type[StrEnum], name: str) -> Enum:
    # store values, not member names, and avoid native enum types
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=_enum_values,
        validate_strings=True,
    )


def _id_column() -> Column[str]:
    return Column("id", String(ID_LENGTH), primary_key=True)


def _amount_type() -> Numeric[Decimal]:
    return Numeric(14, 2, asdecimal=True)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Identity tables -------------------------------------------------------------

profile_table = Table(
    "profiles",
    mapper_registry.metadata,
    _id_column(),
    Column("user_id", String(ID_LENGTH), nullable=True),
    Column("email", String, nullable=True, index=True),
    Column("phone", String, nullable=True),
    Column("full_name", String, nullable=True),
    Column("is_archived", Boolean, nullable=False, default=False),
    Column("duplicate_flag", String(32), nullable=True),
    Column("duplicate_case_id", String(ID_LENGTH), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
)

order_table = Table(
    "orders",
    mapper_registry.metadata,
    _id_column(),
    Column("order_number", String, nullable=False),
    Column("profile_id", String(ID_LENGTH), ForeignKey("profiles.id"), nullable=True),
    Column("user_id", String(ID_LENGTH), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
)

card_profile_link_table = Table(
    "card_profile_links",
    mapper_registry.metadata,
    _id_column(),
    Column("last4", String(4), nullable=False),
    Column("brand", String(32), nullable=False),
    Column("profile_id", String(ID_LENGTH), ForeignKey("profiles.id"), nullable=False),
    Column("card_holder", String, nullable=True),
    Column("source", String(32), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    UniqueConstraint("last4", "brand", "profile_id"),
    Index("ix_card_profile_links_mask", "last4", "brand"),
)

# Ledger tables ---------------------------------------------------------------

queue_item_table = Table(
    "payment_reconcile_queue",
    mapper_registry.metadata,
    _id_column(),
    Column("provider_uid", String, nullable=True, index=True),
    Column("tracking_id", String, nullable=True),
    Column("amount", _amount_type(), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("status", _enum(QueueStatus, "queue_status"), nullable=False),
    Column("transaction_type", String(64), nullable=False),
    Column("provider", _enum(Provider, "payment_provider"), nullable=False),
    Column("card_last4", String(4), nullable=True),
    Column("card_brand", String(32), nullable=True),
    Column("card_holder", String, nullable=True),
    Column("customer_email", String, nullable=True),
    Column("product_name", String, nullable=True),
    Column("paid_at", UTCDateTime(), nullable=False),
    Column("matched_order_id", String(ID_LENGTH), ForeignKey("orders.id"), nullable=True),
    Column("matched_profile_id", String(ID_LENGTH), ForeignKey("profiles.id"), nullable=True),
    Column("linked_at", UTCDateTime(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Index("ix_payment_reconcile_queue_scan", "status", "paid_at", "id"),
)

payment_table = Table(
    "payments",
    mapper_registry.metadata,
    _id_column(),
    Column("stable_uid", String, nullable=False, unique=True),
    Column("uid_source", _enum(UidSource, "uid_source"), nullable=False),
    Column("amount", _amount_type(), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("status", _enum(PaymentStatus, "payment_status"), nullable=False),
    Column("transaction_type", String(64), nullable=False),
    Column("provider", _enum(Provider, "payment_provider"), nullable=False),
    Column("order_id", String(ID_LENGTH), ForeignKey("orders.id"), nullable=True),
    Column("profile_id", String(ID_LENGTH), ForeignKey("profiles.id"), nullable=True),
    Column("user_id", String(ID_LENGTH), nullable=True),
    Column("card_last4", String(4), nullable=True),
    Column("card_brand", String(32), nullable=True),
    Column("paid_at", UTCDateTime(), nullable=False),
    Column("meta", JSON, nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Index("ix_payments_provider_paid_at", "provider", "paid_at"),
)

# Review tables ---------------------------------------------------------------

duplicate_case_table = Table(
    "duplicate_cases",
    mapper_registry.metadata,
    _id_column(),
    Column("case_type", _enum(CaseType, "duplicate_case_type"), nullable=False),
    Column("identity_key", String, nullable=False),
    Column("status", _enum(CaseStatus, "duplicate_case_status"), nullable=False),
    Column("profile_count", Integer, nullable=False, default=0),
    Column("notes", Text, nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=True),
    Index("ix_duplicate_cases_identity", "case_type", "identity_key"),
)

duplicate_case_member_table = Table(
    "duplicate_case_members",
    mapper_registry.metadata,
    _id_column(),
    Column("case_id", String(ID_LENGTH), ForeignKey("duplicate_cases.id"), nullable=False),
    Column("profile_id", String(ID_LENGTH), ForeignKey("profiles.id"), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    UniqueConstraint("case_id", "profile_id"),
)

audit_log_table = Table(
    "audit_logs",
    mapper_registry.metadata,
    _id_column(),
    Column("action", String(64), nullable=False, index=True),
    Column("actor_type", _enum(ActorType, "audit_actor_type"), nullable=False),
    Column("actor_user_id", String(ID_LENGTH), nullable=True),
    Column("actor_label", String, nullable=True),
    Column("target_user_id", String(ID_LENGTH), nullable=True),
    Column("meta", JSON, nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Profile, profile_table)
    mapper_registry.map_imperatively(Order, order_table)
    mapper_registry.map_imperatively(CardProfileLink, card_profile_link_table)
    mapper_registry.map_imperatively(QueueItem, queue_item_table)
    mapper_registry.map_imperatively(Payment, payment_table)
    mapper_registry.map_imperatively(DuplicateCase, duplicate_case_table)
    mapper_registry.map_imperatively(DuplicateCaseMember, duplicate_case_member_table)
    mapper_registry.map_imperatively(AuditRecord, audit_log_table)

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
