from typing import Any, Dict, List, Optional
from datetime import datetime
import uuid
from sqlalchemy import (
    String,
    Boolean,
    Integer,
    Float,
    Text,
    ForeignKey,
    Enum,
    Index,
    JSON,
    CheckConstraint,
    text,
    inspect,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import enum

from notifier.db.custom_types import UTCDateTime
from notifier.utils.datetime_utils import utc_now


class Base(DeclarativeBase):
    def detached_copy(self):
        """Transient copy of the loaded column values; a session rollback never expires it."""
        mapper = inspect(self).mapper
        return type(self)(
            **{attr.key: getattr(self, attr.key) for attr in mapper.column_attrs}
        )


def _new_id() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls) -> List[str]:
    return [member.value for member in enum_cls]


def _str_enum(enum_cls, name: str) -> Enum:
    """Enum column stored as its lowercase value, matching the externally owned schema."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=_enum_values,
        validate_strings=True,
    )


# Enums
class TargetType(enum.Enum):
    USER = "user"
    GROUP = "group"


class MessageStatus(enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not MessageStatus.PENDING


# Statuses that block a second row for the same dedup key
DEDUP_ACTIVE_STATUSES = (MessageStatus.PENDING, MessageStatus.SENT)


class MessageSource(enum.Enum):
    MANUAL = "manual"
    CALENDAR_REMINDER = "calendar_reminder"
    DASHBOARD = "dashboard"
    DAILY_DIGEST = "daily_digest"
    WEEKLY_SUMMARY = "weekly_summary"
    MONTHLY_SUMMARY = "monthly_summary"
    REALTIME_ALERT = "realtime_alert"


class Recurrence(enum.Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    WEEKDAYS = "weekdays"


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, onupdate=utc_now
    )


# Read-only business entities
class UserProfile(Base, AuditMixin):
    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    # Auth user id; cards and calendar items reference users by this id
    user_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Optional[str]] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    notification_settings: Mapped[Optional["NotificationSettings"]] = relationship(
        back_populates="profile"
    )
    contacts: Mapped[List["Contact"]] = relationship(back_populates="profile")

    @property
    def first_name(self) -> str:
        return self.full_name.split(" ")[0] if self.full_name else ""


class Contact(Base, AuditMixin):
    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_profile_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("user_profiles.id", ondelete="CASCADE")
    )
    name: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    # Relationships
    profile: Mapped[Optional["UserProfile"]] = relationship(back_populates="contacts")

    __table_args__ = (Index("idx_contacts_user_profile_id", "user_profile_id"),)


class NotificationSettings(Base, AuditMixin):
    __tablename__ = "notification_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    # Calendar reminders
    calendar_reminders_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    calendar_reminder_days: Mapped[Optional[List[int]]] = mapped_column(
        JSON, default=lambda: [3, 1]
    )
    calendar_reminder_time: Mapped[Optional[str]] = mapped_column(
        String(8), default="09:00"
    )

    # Digests
    daily_summary_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    daily_summary_time: Mapped[Optional[str]] = mapped_column(String(8), default="08:00")
    weekly_summary_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    # 0=Sunday, 1=Monday ... 6=Saturday
    weekly_summary_day: Mapped[Optional[int]] = mapped_column(Integer, default=1)
    weekly_summary_time: Mapped[Optional[str]] = mapped_column(
        String(8), default="09:00"
    )
    monthly_summary_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    monthly_summary_day: Mapped[Optional[int]] = mapped_column(Integer, default=1)
    monthly_summary_time: Mapped[Optional[str]] = mapped_column(
        String(8), default="10:00"
    )

    # Alerts
    urgent_alerts_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    deadline_alerts_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    assignment_alerts_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    group_reports_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    reminders_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    # Quiet hours
    quiet_hours_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    quiet_hours_start: Mapped[Optional[str]] = mapped_column(String(8), default="22:00")
    quiet_hours_end: Mapped[Optional[str]] = mapped_column(String(8), default="07:00")

    timezone: Mapped[Optional[str]] = mapped_column(
        String(64), default="America/Sao_Paulo"
    )

    # Relationships
    profile: Mapped["UserProfile"] = relationship(
        back_populates="notification_settings"
    )

    __table_args__ = (
        CheckConstraint(
            "weekly_summary_day IS NULL OR weekly_summary_day BETWEEN 0 AND 6",
            name="ck_notif_settings_weekly_day",
        ),
        CheckConstraint(
            "monthly_summary_day IS NULL OR monthly_summary_day BETWEEN 1 AND 31",
            name="ck_notif_settings_monthly_day",
        ),
    )


class CalendarItem(Base, AuditMixin):
    __tablename__ = "calendar_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    # event, delivery, creation, task, meeting
    type: Mapped[str] = mapped_column(String(32), default="event", nullable=False)
    # scheduled, confirmed, completed, cancelled
    status: Mapped[str] = mapped_column(String(32), default="scheduled", nullable=False)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    all_day: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    responsible_user_id: Mapped[Optional[str]] = mapped_column(String(36))
    location: Mapped[Optional[str]] = mapped_column(String(255))
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (
        Index("idx_calendar_items_start_time", "start_time"),
        Index("idx_calendar_items_status", "status"),
    )


class KanbanColumn(Base, AuditMixin):
    __tablename__ = "kanban_columns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    cards: Mapped[List["KanbanCard"]] = relationship(back_populates="column")


class KanbanCard(Base, AuditMixin):
    __tablename__ = "kanban_cards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    # urgent, high, medium, low
    priority: Mapped[str] = mapped_column(String(16), default="medium", nullable=False)
    due_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    column_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("kanban_columns.id", ondelete="SET NULL")
    )
    content_type: Mapped[Optional[str]] = mapped_column(String(50))
    responsible_user_id: Mapped[Optional[str]] = mapped_column(String(36))
    moved_to_column_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    # Relationships
    column: Mapped[Optional["KanbanColumn"]] = relationship(back_populates="cards")

    __table_args__ = (
        Index("idx_kanban_cards_column_id", "column_id"),
        Index("idx_kanban_cards_priority", "priority"),
        Index("idx_kanban_cards_due_date", "due_date"),
    )

    @property
    def column_name(self) -> str:
        return self.column.name if self.column else "?"


# Agent memory
class MemoryEpisode(Base):
    __tablename__ = "agent_memory_episodes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False
    )
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    entities: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, default=dict)
    outcome: Mapped[Optional[str]] = mapped_column(String(50))
    importance: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )

    __table_args__ = (
        Index("idx_memory_episodes_user_created", "user_id", "created_at"),
    )


class MemoryFact(Base):
    __tablename__ = "agent_memory_facts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False
    )
    # preference, pattern, relationship, ...
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    fact: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Written by the conversational component; maintenance leaves it untouched
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )

    __table_args__ = (
        Index("idx_memory_facts_user_active", "user_id", "is_active"),
    )


# Queue
class ScheduledMessage(Base, AuditMixin):
    __tablename__ = "scheduled_messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    # Target
    target_type: Mapped[TargetType] = mapped_column(
        _str_enum(TargetType, "target_type"), default=TargetType.USER, nullable=False
    )
    target_user_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("user_profiles.id", ondelete="CASCADE")
    )
    target_phone: Mapped[Optional[str]] = mapped_column(String(32))
    target_group_id: Mapped[Optional[str]] = mapped_column(String(64))

    # Payload
    message_type: Mapped[str] = mapped_column(String(16), default="text", nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Timing and state
    scheduled_for: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[MessageStatus] = mapped_column(
        _str_enum(MessageStatus, "message_status"),
        default=MessageStatus.PENDING,
        nullable=False,
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    # Provenance
    source: Mapped[MessageSource] = mapped_column(
        _str_enum(MessageSource, "message_source"),
        default=MessageSource.MANUAL,
        nullable=False,
    )
    source_id: Mapped[Optional[str]] = mapped_column(String(36))
    # Typed dedup key, mirrored into metadata["source_reference"]
    source_reference: Mapped[Optional[str]] = mapped_column(String(255))

    # Recurrence
    recurrence: Mapped[Recurrence] = mapped_column(
        _str_enum(Recurrence, "recurrence"), default=Recurrence.NONE, nullable=False
    )
    recurrence_parent_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("scheduled_messages.id", ondelete="SET NULL")
    )

    # Retry
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    # "metadata" is reserved on declarative classes
    message_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata", JSON, default=dict
    )

    __table_args__ = (
        CheckConstraint("retry_count >= 0", name="ck_sched_msg_retry_count"),
        CheckConstraint("max_retries >= 1", name="ck_sched_msg_max_retries"),
        Index(
            "uq_sched_msg_dedup",
            "target_user_id",
            "source",
            "source_reference",
            unique=True,
            postgresql_where=text("status IN ('pending', 'sent')"),
            sqlite_where=text("status IN ('pending', 'sent')"),
        ),
        Index("idx_sched_msg_status_scheduled_for", "status", "scheduled_for"),
        Index("idx_sched_msg_recurrence_parent", "recurrence_parent_id"),
    )

    @property
    def address(self) -> Optional[str]:
        """Channel address for the target: phone for users, group id for groups."""
        if self.target_type == TargetType.GROUP:
            return self.target_group_id
        return self.target_phone

    def set_source_reference(self, reference) -> None:
        value = str(reference)
        self.source_reference = value
        self.message_metadata = {
            **(self.message_metadata or {}),
            "source_reference": value,
        }
