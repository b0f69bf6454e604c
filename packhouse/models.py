from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import CITEXT, INET
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class PrincipalRole(str, Enum):
    ADMIN = 'ADMIN'
    RECEPTION = 'RECEPTION'
    GRADING = 'GRADING'
    SECRETARY = 'SECRETARY'


class ProductType(str, Enum):
    LOCA_SIZE = 'Loca Tamaño'
    LOCA_PROCESS = 'Loca Proceso'
    NEGRO_SIZE = 'Negro Tamaño'
    NEGRO_PROCESS = 'Negro Proceso'
    AVENTAJADO_SIZE = 'Aventajado Tamaño'
    AVENTAJADO_PROCESS = 'Aventajado Proceso'
    WASTE = 'Desecho'


class SizeCategory(str, Enum):
    EXTRA = 'EXTRA'
    FIRST = '1RA'
    SECOND = '2DA'
    THIRD = '3RA'
    FOURTH = '4TA'
    CLASS_B = 'CLASE B'
    PROCESS = 'PROCESO'
    WASTE = 'DESECHO'
    FOURTH_SCAB = '4TA ROÑA'


NOTE_COUNTER_NAME = 'sales_note'


class Principal(Base):
    __tablename__ = 'principals'

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    username: Mapped[str] = mapped_column(CITEXT(), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[PrincipalRole] = mapped_column(SQLEnum(PrincipalRole, name='principal_role'), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class IntakeRow(Base):
    __tablename__ = 'intake_rows'
    __table_args__ = (Index('ix_intake_rows_transaction_key', 'transaction_key'),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    # Legacy rows predate delivery grouping and carry no key.
    transaction_key: Mapped[str | None] = mapped_column(String(64))
    client_name: Mapped[str] = mapped_column(Text, nullable=False)
    product_type: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    client_phone: Mapped[str | None] = mapped_column(String(10))
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GradingRow(Base):
    __tablename__ = 'grading_rows'
    __table_args__ = (Index('ix_grading_rows_transaction_key', 'transaction_key'),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    transaction_key: Mapped[str | None] = mapped_column(String(64))
    client_name: Mapped[str] = mapped_column(Text, nullable=False)
    graded_on: Mapped[date] = mapped_column(Date, nullable=False)
    size_category: Mapped[str] = mapped_column(Text, nullable=False)
    box_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0'), server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SalesRecord(Base):
    __tablename__ = 'sales_records'
    __table_args__ = (
        UniqueConstraint('note_number', name='sales_records_note_number_key'),
        UniqueConstraint('transaction_key', name='sales_records_transaction_key_key'),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    note_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sold_on: Mapped[date] = mapped_column(Date, nullable=False)
    transaction_key: Mapped[str | None] = mapped_column(String(64))
    client_name: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    city: Mapped[str | None] = mapped_column(Text)
    plates: Mapped[str | None] = mapped_column(Text)
    line_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list, server_default='[]')
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'), server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class NoteCounter(Base):
    __tablename__ = 'note_counters'

    name: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default='0')


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    attempted_username: Mapped[str] = mapped_column(CITEXT(), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    ip: Mapped[str | None] = mapped_column(INET)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    actor_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_key: Mapped[str | None] = mapped_column(String(64))
    ip: Mapped[str | None] = mapped_column(INET)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    principal_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('principals.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(INET)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
