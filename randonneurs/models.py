from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from sqlalchemy import String, Integer, Boolean, Date, DateTime, Text, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship, column_property

from .db import Base
from .utils import utcnow


class Chapter(Base):
    __tablename__ = "chapters"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)  # db slug, e.g. "simcoe"
    name: Mapped[str] = mapped_column(String, nullable=False)

    routes: Mapped[list["Route"]] = relationship(back_populates="chapter")
    events: Mapped[list["Event"]] = relationship(back_populates="chapter")


class Route(Base):
    __tablename__ = "routes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    chapter_id: Mapped[int | None] = mapped_column(ForeignKey("chapters.id", ondelete="SET NULL"), nullable=True)
    distance_km: Mapped[int | None] = mapped_column(Integer, nullable=True)
    collection: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rwgps_id: Mapped[str | None] = mapped_column(String, nullable=True)
    cue_sheet_url: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    chapter: Mapped[Optional["Chapter"]] = relationship(back_populates="routes")
    events: Mapped[list["Event"]] = relationship(back_populates="route")


class Event(Base):
    __tablename__ = "events"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    chapter_id: Mapped[int | None] = mapped_column(ForeignKey("chapters.id", ondelete="SET NULL"), nullable=True)
    route_id: Mapped[int | None] = mapped_column(ForeignKey("routes.id", ondelete="SET NULL"), nullable=True)
    # brevet | populaire | fleche | permanent
    event_type: Mapped[str] = mapped_column(String, nullable=False, default="brevet")
    distance_km: Mapped[int] = mapped_column(Integer, nullable=False)
    event_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str | None] = mapped_column(String, nullable=True)  # HH:MM, local club time
    start_location: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    collection: Mapped[str | None] = mapped_column(String, nullable=True)  # e.g. granite-anvil
    # scheduled | completed | cancelled | submitted
    status: Mapped[str] = mapped_column(String, nullable=False, default="scheduled")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    chapter: Mapped[Optional["Chapter"]] = relationship(back_populates="events")
    route: Mapped[Optional["Route"]] = relationship(back_populates="events")
    registrations: Mapped[list["Registration"]] = relationship(back_populates="event", cascade="all, delete-orphan")
    results: Mapped[list["Result"]] = relationship(back_populates="event", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_events_status_date", "status", "event_date"),
        Index("ix_events_chapter_date", "chapter_id", "event_date"),
    )

    @property
    def season(self) -> int:
        return self.event_date.year


class Rider(Base):
    __tablename__ = "riders"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True, unique=True, index=True)
    gender: Mapped[str | None] = mapped_column(String, nullable=True)  # M | F | X
    emergency_contact_name: Mapped[str | None] = mapped_column(String, nullable=True)
    emergency_contact_phone: Mapped[str | None] = mapped_column(String, nullable=True)
    rider_number: Mapped[int | None] = mapped_column(Integer, nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    full_name: Mapped[str] = column_property(first_name + " " + last_name)

    registrations: Mapped[list["Registration"]] = relationship(back_populates="rider")
    results: Mapped[list["Result"]] = relationship(back_populates="rider")


class Registration(Base):
    __tablename__ = "registrations"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    rider_id: Mapped[int] = mapped_column(ForeignKey("riders.id", ondelete="CASCADE"), nullable=False)
    # registered | cancelled | incomplete: membership
    status: Mapped[str] = mapped_column(String, nullable=False, default="registered")
    share_registration: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    registered_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    event: Mapped["Event"] = relationship(back_populates="registrations")
    rider: Mapped["Rider"] = relationship(back_populates="registrations")

    __table_args__ = (
        UniqueConstraint("event_id", "rider_id", name="uq_registration_event_rider"),
        Index("ix_registrations_rider", "rider_id"),
    )


class Result(Base):
    __tablename__ = "results"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    rider_id: Mapped[int] = mapped_column(ForeignKey("riders.id", ondelete="CASCADE"), nullable=False)
    # pending | finished | dnf | dns | otl | dq
    status: Mapped[str] = mapped_column(String, nullable=False, default="finished")
    finish_time: Mapped[str | None] = mapped_column(String, nullable=True)  # elapsed H:MM
    season: Mapped[int | None] = mapped_column(Integer, nullable=True)
    distance_km: Mapped[int | None] = mapped_column(Integer, nullable=True)
    team_name: Mapped[str | None] = mapped_column(String, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # rider self-submission
    submission_token: Mapped[str | None] = mapped_column(String, nullable=True, unique=True, index=True)
    gpx_url: Mapped[str | None] = mapped_column(String, nullable=True)
    gpx_file_path: Mapped[str | None] = mapped_column(String, nullable=True)
    control_card_front_path: Mapped[str | None] = mapped_column(String, nullable=True)
    control_card_back_path: Mapped[str | None] = mapped_column(String, nullable=True)
    rider_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    event: Mapped["Event"] = relationship(back_populates="results")
    rider: Mapped["Rider"] = relationship(back_populates="results")
    awards: Mapped[list["ResultAward"]] = relationship(back_populates="result", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("event_id", "rider_id", name="uq_result_event_rider"),
        Index("ix_results_rider_season", "rider_id", "season"),
        Index("ix_results_status", "status"),
    )


class Award(Base):
    __tablename__ = "awards"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class ResultAward(Base):
    __tablename__ = "result_awards"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    result_id: Mapped[int] = mapped_column(ForeignKey("results.id", ondelete="CASCADE"), nullable=False)
    award_id: Mapped[int] = mapped_column(ForeignKey("awards.id", ondelete="CASCADE"), nullable=False)

    result: Mapped["Result"] = relationship(back_populates="awards")
    award: Mapped["Award"] = relationship()

    __table_args__ = (UniqueConstraint("result_id", "award_id", name="uq_result_award"),)


class Admin(Base):
    __tablename__ = "admins"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    password_hash: Mapped[str] = mapped_column(String, nullable=False)
    # super_admin | admin | chapter_admin
    role: Mapped[str] = mapped_column(String, nullable=False, default="admin")
    chapter_id: Mapped[int | None] = mapped_column(ForeignKey("chapters.id", ondelete="SET NULL"), nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    chapter: Mapped[Optional["Chapter"]] = relationship()


class Membership(Base):
    __tablename__ = "memberships"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rider_id: Mapped[int] = mapped_column(ForeignKey("riders.id", ondelete="CASCADE"), nullable=False)
    season: Mapped[int] = mapped_column(Integer, nullable=False)
    membership_id: Mapped[int] = mapped_column(Integer, nullable=False)
    membership_type: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("rider_id", "season", name="uq_membership_rider_season"),)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    admin_id: Mapped[int | None] = mapped_column(ForeignKey("admins.id", ondelete="SET NULL"), nullable=True)
    action: Mapped[str] = mapped_column(String, nullable=False)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    admin: Mapped[Optional["Admin"]] = relationship()

    __table_args__ = (Index("ix_audit_logs_created", "created_at"),)


class RiderMerge(Base):
    __tablename__ = "rider_merges"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rider_id: Mapped[int] = mapped_column(ForeignKey("riders.id", ondelete="CASCADE"), nullable=False)
    submitted_first_name: Mapped[str] = mapped_column(String, nullable=False)
    submitted_last_name: Mapped[str] = mapped_column(String, nullable=False)
    submitted_email: Mapped[str | None] = mapped_column(String, nullable=True)
    previous_first_name: Mapped[str] = mapped_column(String, nullable=False)
    previous_last_name: Mapped[str] = mapped_column(String, nullable=False)
    previous_email: Mapped[str | None] = mapped_column(String, nullable=True)
    merge_source: Mapped[str] = mapped_column(String, nullable=False, default="registration")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class NewsItem(Base):
    __tablename__ = "news"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    teaser: Mapped[str | None] = mapped_column(String, nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("admins.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("ix_news_published", "is_published", "created_at"),)
