from sqlalchemy import String, Integer, Boolean, Enum, ForeignKey, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from typing import Optional
from .database import Base
import enum

# Enums

class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"

class SlotAvailability(str, enum.Enum):
    HELD = "HELD"          # Owned, not open to exchange
    OFFERED = "OFFERED"    # Open to exchange proposals
    LOCKED = "LOCKED"      # Committed to exactly one pending exchange

# Availabilities an owner may set directly; LOCKED is only ever written by the coordinator
OWNER_SETTABLE_AVAILABILITY = (SlotAvailability.HELD, SlotAvailability.OFFERED)

class ExchangeOutcome(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"

class ExchangeResolution(str, enum.Enum):
    RESPONDED = "RESPONDED"   # Counterparty approved or declined
    WITHDRAWN = "WITHDRAWN"   # Proposer abandoned the request
    EXPIRED = "EXPIRED"       # Pending longer than the configured TTL

# Models

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String, unique=True, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    hashed_password: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), default=UserRole.USER)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    slots = relationship("Slot", back_populates="owner", passive_deletes=True)


class Slot(Base):
    __tablename__ = "slots"
    __table_args__ = (CheckConstraint("start_time < end_time", name="ck_slot_time_range"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    availability: Mapped[SlotAvailability] = mapped_column(
        Enum(SlotAvailability), default=SlotAvailability.HELD, nullable=False, index=True
    )

    # Optimistic concurrency counter; every UPDATE/DELETE is conditioned on it
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    owner = relationship("User", back_populates="slots")


class ExchangeRequest(Base):
    __tablename__ = "exchange_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # Party and slot references survive external deletion as NULL so the audit trail stays
    proposer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    counterparty_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    offered_slot_id: Mapped[Optional[int]] = mapped_column(ForeignKey("slots.id", ondelete="SET NULL"), nullable=True, index=True)
    wanted_slot_id: Mapped[Optional[int]] = mapped_column(ForeignKey("slots.id", ondelete="SET NULL"), nullable=True, index=True)

    outcome: Mapped[ExchangeOutcome] = mapped_column(
        Enum(ExchangeOutcome), default=ExchangeOutcome.PENDING, nullable=False, index=True
    )
    resolution: Mapped[Optional[ExchangeResolution]] = mapped_column(Enum(ExchangeResolution), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    proposer = relationship("User", foreign_keys=[proposer_id])
    counterparty = relationship("User", foreign_keys=[counterparty_id])
    offered_slot = relationship("Slot", foreign_keys=[offered_slot_id])
    wanted_slot = relationship("Slot", foreign_keys=[wanted_slot_id])

    @property
    def is_terminal(self) -> bool:
        return self.outcome != ExchangeOutcome.PENDING

    def references(self, slot_id: int) -> bool:
        return slot_id in (self.offered_slot_id, self.wanted_slot_id)
