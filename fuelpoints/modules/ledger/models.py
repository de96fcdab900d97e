"""
Ledger tables for the SQL completion store.

Schema only. The unique constraint on completion records is the
authoritative gate: one accepted record per
``(player, kind, instance, window)``.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from fuelpoints.core.database.base import Base, IdMixin, PortableJSON, TimestampMixin


class PlayerRow(Base, TimestampMixin):
    """Player progression counters. Locked FOR UPDATE by every write."""

    __tablename__ = "fuel_players"

    player_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    fuel_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    burn_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    days_since_last_fuel_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_fuel_points_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_rollover_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class InstanceRow(Base, TimestampMixin):
    """
    Standard challenge, custom challenge or quest instance.

    `kind` selects which optional columns are meaningful: `actions`,
    `daily_minimum` and `name` for custom challenges, `weekly_progress` for
    quests.
    """

    __tablename__ = "fuel_instances"
    __table_args__ = (
        Index("ix_fuel_instances_player_status", "player_id", "status"),
    )

    instance_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    player_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("fuel_players.player_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[str] = mapped_column(String(40), nullable=False)
    parent_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    progress_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    required_count: Mapped[int] = mapped_column(Integer, nullable=False)
    daily_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    completion_reward: Mapped[int] = mapped_column(Integer, nullable=False)

    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    daily_minimum: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    actions: Mapped[List[Dict[str, Any]]] = mapped_column(PortableJSON, nullable=False, default=list)
    weekly_progress: Mapped[List[Dict[str, Any]]] = mapped_column(
        PortableJSON, nullable=False, default=list
    )

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_completed_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class CompletionRecordRow(Base, IdMixin):
    """Append-only ledger of accepted completions."""

    __tablename__ = "fuel_completion_records"
    __table_args__ = (
        UniqueConstraint(
            "player_id", "kind", "instance_key", "window_key", name="uq_fuel_completion_window"
        ),
        Index("ix_fuel_completion_player_day", "player_id", "occurred_on"),
    )

    record_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    player_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("fuel_players.player_id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(40), nullable=False)
    # "" when the kind has no instance
    instance_key: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    window_key: Mapped[str] = mapped_column(String(32), nullable=False)
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    fp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    parent_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payload: Mapped[Dict[str, Any]] = mapped_column(PortableJSON, nullable=False, default=dict)
