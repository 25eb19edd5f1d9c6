from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from nameledger.core.config import DEFAULT_CREATED_BY, DEFAULT_USER


# SQLite has no BIGINT autoincrement; fall back to INTEGER PRIMARY KEY there.
_IdType = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # Naive values are taken to already be UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UtcDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    Postgres keeps the offset natively. SQLite stores naive text, so values are
    normalized to UTC before binding and tagged as UTC again when loaded. Naive
    inputs are taken to already be UTC. Microsecond precision is preserved in
    both directions, which keeps exact-equality lookups on timestamps stable.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        value = as_utc(value)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class GeneratedNameRecord(Base):
    __tablename__ = "generated_names"
    __table_args__ = (
        Index("ix_generated_names_created_on", "created_on"),
        Index("ix_generated_names_user", "user"),
        Index("ix_generated_names_resource_type_name", "resource_type_name"),
        Index("ix_generated_names_resource_name", "resource_name"),
        Index("ix_generated_names_is_deleted", "is_deleted"),
        Index("ix_generated_names_ip_address", "ip_address"),
    )

    id: Mapped[int] = mapped_column(_IdType, primary_key=True, autoincrement=True)
    created_on: Mapped[datetime] = mapped_column(
        UtcDateTime(), default=utcnow, server_default=func.now(), nullable=False
    )
    resource_name: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_type_name: Mapped[str | None] = mapped_column(String(255), nullable=True, default="")
    user: Mapped[str] = mapped_column(
        String(100), nullable=False, default=DEFAULT_USER, server_default=DEFAULT_USER
    )
    message: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    # Sized for the IPv6 text form.
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_by: Mapped[str] = mapped_column(
        String(100), nullable=False, default=DEFAULT_CREATED_BY, server_default=DEFAULT_CREATED_BY
    )
    updated_on: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    # Components are owned by the record: loaded in sort order, removed with it.
    components: Mapped[list[GeneratedNameComponent]] = relationship(
        back_populates="generated_name",
        order_by="GeneratedNameComponent.sort_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"GeneratedNameRecord(id={self.id!r}, resource_name={self.resource_name!r}, user={self.user!r})"


class GeneratedNameComponent(Base):
    __tablename__ = "generated_name_components"
    __table_args__ = (
        Index("ix_generated_name_components_generated_name_id", "generated_name_id"),
        Index("ix_generated_name_components_name_value", "component_name", "component_value"),
    )

    id: Mapped[int] = mapped_column(_IdType, primary_key=True, autoincrement=True)
    generated_name_id: Mapped[int] = mapped_column(
        _IdType, ForeignKey("generated_names.id", ondelete="CASCADE"), nullable=False
    )
    component_name: Mapped[str] = mapped_column(String(100), nullable=False)
    component_value: Mapped[str] = mapped_column(String(200), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))

    generated_name: Mapped[GeneratedNameRecord] = relationship(back_populates="components")
