"""Persistence and SQLModel definitions for the ChoreKeeper web frontend."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence

from sqlalchemy import Column, DateTime, UniqueConstraint, delete, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from ..models import (
    BalanceEntry,
    Child,
    ChoreInstance,
    ChoreParticipant,
    ChoreTemplate,
    InstanceStatus,
    ParticipantStatus,
    QualityRating,
    Recurrence,
    ScheduledChore,
    ScheduleType,
    SessionRecord,
    Settings,
    utc_now,
)
from ..store import ChoreStore
from .config import database_url

SETTINGS_ROW_ID = 1


# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
class ChildRecord(SQLModel, table=True):
    __tablename__ = "child"

    id: str = Field(primary_key=True)
    name: str
    avatar_emoji: str
    access_code: str = Field(index=True)
    balance: int = 0


class ChoreTemplateRecord(SQLModel, table=True):
    __tablename__ = "chore_template"

    id: str = Field(primary_key=True)
    name: str
    description: str = ""
    default_reward: int = 0
    icon: str = ""


class ScheduledChoreRecord(SQLModel, table=True):
    __tablename__ = "scheduled_chore"

    id: str = Field(primary_key=True)
    template_id: str = Field(index=True)
    child_ids: str = ""  # comma separated child ids
    reward: int = 0
    is_joined: bool = False
    is_optional: bool = False
    max_pickups_per_period: Optional[int] = None
    schedule_type: str  # once|daily|weekly|custom
    schedule_days: Optional[str] = None  # comma separated, 0=Sunday
    start_date: str
    end_date: Optional[str] = None
    is_active: bool = Field(default=True, index=True)


class ChoreInstanceRecord(SQLModel, table=True):
    __tablename__ = "chore_instance"
    __table_args__ = (UniqueConstraint("scheduled_chore_id", "due_date", name="uq_instance_schedule_date"),)

    id: str = Field(primary_key=True)
    scheduled_chore_id: str = Field(index=True)
    due_date: str = Field(index=True)
    is_joined: bool = False
    status: str = Field(default=InstanceStatus.PENDING.value, index=True)  # pending|completed|missed
    total_reward: int = 0
    quality: Optional[str] = None
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    notes: Optional[str] = None


class ChoreParticipantRecord(SQLModel, table=True):
    __tablename__ = "chore_participant"

    id: str = Field(primary_key=True)
    instance_id: str = Field(index=True)
    child_id: str = Field(index=True)
    position: int = 0
    status: str = ParticipantStatus.PENDING.value  # pending|done
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    effort_percent: Optional[float] = None
    earned_reward: Optional[int] = None
    quality: Optional[str] = None


class BalanceEntryRecord(SQLModel, table=True):
    __tablename__ = "balance_entry"

    id: str = Field(primary_key=True)
    child_id: str = Field(index=True)
    amount: int
    note: str = ""
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))


class SettingsRecord(SQLModel, table=True):
    __tablename__ = "settings"

    id: int = Field(default=SETTINGS_ROW_ID, primary_key=True)
    pin_hash: Optional[str] = None
    session_duration_days: int = 7
    currency: str = "$"


class SessionTokenRecord(SQLModel, table=True):
    __tablename__ = "session_token"

    token: str = Field(primary_key=True)
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


# ---------------------------------------------------------------------------
# Row <-> domain conversion
# ---------------------------------------------------------------------------
def _join(values: Iterable[Any]) -> str:
    return ",".join(str(value) for value in values)


def _split(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [part for part in raw.split(",") if part]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops the offset on the way back out
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _quality(raw: Optional[str]) -> Optional[QualityRating]:
    return QualityRating(raw) if raw else None


def _child(row: ChildRecord) -> Child:
    return Child(
        id=row.id,
        name=row.name,
        avatar_emoji=row.avatar_emoji,
        access_code=row.access_code,
        balance=row.balance,
    )


def _template(row: ChoreTemplateRecord) -> ChoreTemplate:
    return ChoreTemplate(
        id=row.id,
        name=row.name,
        default_reward=row.default_reward,
        icon=row.icon,
        description=row.description,
    )


def _schedule(row: ScheduledChoreRecord) -> ScheduledChore:
    days = None if row.schedule_days is None else frozenset(int(day) for day in _split(row.schedule_days))
    return ScheduledChore(
        id=row.id,
        template_id=row.template_id,
        child_ids=tuple(_split(row.child_ids)),
        reward=row.reward,
        recurrence=Recurrence(
            type=ScheduleType(row.schedule_type),
            start_date=row.start_date,
            end_date=row.end_date,
            days=days,
        ),
        is_joined=row.is_joined,
        is_optional=row.is_optional,
        max_pickups_per_period=row.max_pickups_per_period,
        is_active=row.is_active,
    )


def _schedule_row(schedule: ScheduledChore, row: ScheduledChoreRecord | None = None) -> ScheduledChoreRecord:
    recurrence = schedule.recurrence
    values = dict(
        template_id=schedule.template_id,
        child_ids=_join(schedule.child_ids),
        reward=schedule.reward,
        is_joined=schedule.is_joined,
        is_optional=schedule.is_optional,
        max_pickups_per_period=schedule.max_pickups_per_period,
        schedule_type=recurrence.type.value,
        schedule_days=_join(sorted(recurrence.days)) if recurrence.days is not None else None,
        start_date=recurrence.start_date,
        end_date=recurrence.end_date,
        is_active=schedule.is_active,
    )
    if row is None:
        return ScheduledChoreRecord(id=schedule.id, **values)
    for key, value in values.items():
        setattr(row, key, value)
    return row


def _instance(row: ChoreInstanceRecord) -> ChoreInstance:
    return ChoreInstance(
        id=row.id,
        scheduled_chore_id=row.scheduled_chore_id,
        due_date=row.due_date,
        is_joined=row.is_joined,
        total_reward=row.total_reward,
        status=InstanceStatus(row.status),
        quality=_quality(row.quality),
        completed_at=_as_utc(row.completed_at),
        notes=row.notes,
    )


def _instance_row(instance: ChoreInstance) -> ChoreInstanceRecord:
    return ChoreInstanceRecord(
        id=instance.id,
        scheduled_chore_id=instance.scheduled_chore_id,
        due_date=instance.due_date,
        is_joined=instance.is_joined,
        status=instance.status.value,
        total_reward=instance.total_reward,
        quality=instance.quality.value if instance.quality else None,
        completed_at=_as_utc(instance.completed_at),
        notes=instance.notes,
    )


def _participant(row: ChoreParticipantRecord) -> ChoreParticipant:
    return ChoreParticipant(
        id=row.id,
        instance_id=row.instance_id,
        child_id=row.child_id,
        status=ParticipantStatus(row.status),
        completed_at=_as_utc(row.completed_at),
        effort_percent=row.effort_percent,
        earned_reward=row.earned_reward,
        quality=_quality(row.quality),
    )


def _participant_values(participant: ChoreParticipant) -> dict:
    return dict(
        instance_id=participant.instance_id,
        child_id=participant.child_id,
        status=participant.status.value,
        completed_at=_as_utc(participant.completed_at),
        effort_percent=participant.effort_percent,
        earned_reward=participant.earned_reward,
        quality=participant.quality.value if participant.quality else None,
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------
def make_engine(url: str | None = None) -> Engine:
    return create_engine(url or database_url(), echo=False, connect_args={"check_same_thread": False})


class SqlChoreStore(ChoreStore):
    """SQLite-backed store; a unique constraint keeps one instance per schedule and day."""

    def __init__(self, engine: Engine | None = None) -> None:
        self.engine = engine or make_engine()
        SQLModel.metadata.create_all(self.engine)

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    # Children ----------------------------------------------------------
    def add_child(self, child: Child) -> None:
        with self._session() as session:
            session.add(
                ChildRecord(
                    id=child.id,
                    name=child.name,
                    avatar_emoji=child.avatar_emoji,
                    access_code=child.access_code,
                    balance=child.balance,
                )
            )
            session.commit()

    def get_child(self, child_id: str) -> Optional[Child]:
        with self._session() as session:
            row = session.get(ChildRecord, child_id)
            return _child(row) if row else None

    def list_children(self) -> List[Child]:
        with self._session() as session:
            return [_child(row) for row in session.exec(select(ChildRecord)).all()]

    def save_child(self, child: Child) -> None:
        with self._session() as session:
            row = session.get(ChildRecord, child.id)
            if row is None:
                return
            row.name = child.name
            row.avatar_emoji = child.avatar_emoji
            row.access_code = child.access_code
            session.add(row)
            session.commit()

    def delete_child(self, child_id: str) -> None:
        with self._session() as session:
            session.exec(delete(ChildRecord).where(ChildRecord.id == child_id))
            session.commit()

    def credit_child(self, child_id: str, amount: int) -> Optional[Child]:
        with self._session() as session:
            session.exec(
                update(ChildRecord)
                .where(ChildRecord.id == child_id)
                .values(balance=ChildRecord.balance + amount)
            )
            session.commit()
            row = session.get(ChildRecord, child_id)
            if row is None:
                return None
            session.refresh(row)
            return _child(row)

    # Templates ---------------------------------------------------------
    def add_template(self, template: ChoreTemplate) -> None:
        with self._session() as session:
            session.add(
                ChoreTemplateRecord(
                    id=template.id,
                    name=template.name,
                    description=template.description,
                    default_reward=template.default_reward,
                    icon=template.icon,
                )
            )
            session.commit()

    def get_template(self, template_id: str) -> Optional[ChoreTemplate]:
        with self._session() as session:
            row = session.get(ChoreTemplateRecord, template_id)
            return _template(row) if row else None

    def list_templates(self) -> List[ChoreTemplate]:
        with self._session() as session:
            return [_template(row) for row in session.exec(select(ChoreTemplateRecord)).all()]

    def save_template(self, template: ChoreTemplate) -> None:
        with self._session() as session:
            row = session.get(ChoreTemplateRecord, template.id)
            if row is None:
                return
            row.name = template.name
            row.description = template.description
            row.default_reward = template.default_reward
            row.icon = template.icon
            session.add(row)
            session.commit()

    def delete_template(self, template_id: str) -> None:
        with self._session() as session:
            session.exec(delete(ChoreTemplateRecord).where(ChoreTemplateRecord.id == template_id))
            session.commit()

    # Schedules ---------------------------------------------------------
    def add_schedule(self, schedule: ScheduledChore) -> None:
        with self._session() as session:
            session.add(_schedule_row(schedule))
            session.commit()

    def get_schedule(self, schedule_id: str) -> Optional[ScheduledChore]:
        with self._session() as session:
            row = session.get(ScheduledChoreRecord, schedule_id)
            return _schedule(row) if row else None

    def list_schedules(
        self, *, active: Optional[bool] = None, optional: Optional[bool] = None
    ) -> List[ScheduledChore]:
        query = select(ScheduledChoreRecord)
        if active is not None:
            query = query.where(ScheduledChoreRecord.is_active == active)
        if optional is not None:
            query = query.where(ScheduledChoreRecord.is_optional == optional)
        with self._session() as session:
            return [_schedule(row) for row in session.exec(query).all()]

    def save_schedule(self, schedule: ScheduledChore) -> None:
        with self._session() as session:
            row = session.get(ScheduledChoreRecord, schedule.id)
            if row is None:
                return
            session.add(_schedule_row(schedule, row))
            session.commit()

    def delete_schedule(self, schedule_id: str) -> None:
        with self._session() as session:
            instance_ids = session.exec(
                select(ChoreInstanceRecord.id).where(ChoreInstanceRecord.scheduled_chore_id == schedule_id)
            ).all()
            if instance_ids:
                session.exec(
                    delete(ChoreParticipantRecord).where(ChoreParticipantRecord.instance_id.in_(instance_ids))
                )
                session.exec(delete(ChoreInstanceRecord).where(ChoreInstanceRecord.id.in_(instance_ids)))
            session.exec(delete(ScheduledChoreRecord).where(ScheduledChoreRecord.id == schedule_id))
            session.commit()

    # Instances ---------------------------------------------------------
    def insert_instance(self, instance: ChoreInstance, participants: Sequence[ChoreParticipant]) -> bool:
        with self._session() as session:
            session.add(_instance_row(instance))
            for position, participant in enumerate(participants):
                session.add(
                    ChoreParticipantRecord(id=participant.id, position=position, **_participant_values(participant))
                )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
        return True

    def get_instance(self, instance_id: str) -> Optional[ChoreInstance]:
        with self._session() as session:
            row = session.get(ChoreInstanceRecord, instance_id)
            return _instance(row) if row else None

    def find_instance(self, scheduled_chore_id: str, due_date: str) -> Optional[ChoreInstance]:
        with self._session() as session:
            row = session.exec(
                select(ChoreInstanceRecord)
                .where(ChoreInstanceRecord.scheduled_chore_id == scheduled_chore_id)
                .where(ChoreInstanceRecord.due_date == due_date)
            ).first()
            return _instance(row) if row else None

    def list_instances(
        self,
        *,
        due_date: Optional[str] = None,
        status: Optional[InstanceStatus] = None,
        scheduled_chore_id: Optional[str] = None,
        due_before: Optional[str] = None,
        due_since: Optional[str] = None,
    ) -> List[ChoreInstance]:
        query = select(ChoreInstanceRecord)
        if due_date is not None:
            query = query.where(ChoreInstanceRecord.due_date == due_date)
        if status is not None:
            query = query.where(ChoreInstanceRecord.status == status.value)
        if scheduled_chore_id is not None:
            query = query.where(ChoreInstanceRecord.scheduled_chore_id == scheduled_chore_id)
        if due_before is not None:
            query = query.where(ChoreInstanceRecord.due_date < due_before)
        if due_since is not None:
            query = query.where(ChoreInstanceRecord.due_date >= due_since)
        query = query.order_by(ChoreInstanceRecord.due_date)
        with self._session() as session:
            return [_instance(row) for row in session.exec(query).all()]

    def save_instance(self, instance: ChoreInstance) -> None:
        with self._session() as session:
            row = session.get(ChoreInstanceRecord, instance.id)
            if row is None:
                return
            row.status = instance.status.value
            row.quality = instance.quality.value if instance.quality else None
            row.completed_at = _as_utc(instance.completed_at)
            row.notes = instance.notes
            row.total_reward = instance.total_reward
            session.add(row)
            session.commit()

    def delete_instance(self, instance_id: str) -> None:
        with self._session() as session:
            session.exec(delete(ChoreParticipantRecord).where(ChoreParticipantRecord.instance_id == instance_id))
            session.exec(delete(ChoreInstanceRecord).where(ChoreInstanceRecord.id == instance_id))
            session.commit()

    # Participants ------------------------------------------------------
    def participants_for(self, instance_id: str) -> List[ChoreParticipant]:
        with self._session() as session:
            rows = session.exec(
                select(ChoreParticipantRecord)
                .where(ChoreParticipantRecord.instance_id == instance_id)
                .order_by(ChoreParticipantRecord.position)
            ).all()
            return [_participant(row) for row in rows]

    def participants_for_child(self, child_id: str) -> List[ChoreParticipant]:
        with self._session() as session:
            rows = session.exec(select(ChoreParticipantRecord).where(ChoreParticipantRecord.child_id == child_id)).all()
            return [_participant(row) for row in rows]

    def add_participant(self, participant: ChoreParticipant) -> None:
        with self._session() as session:
            position = len(
                session.exec(
                    select(ChoreParticipantRecord.id).where(
                        ChoreParticipantRecord.instance_id == participant.instance_id
                    )
                ).all()
            )
            session.add(ChoreParticipantRecord(id=participant.id, position=position, **_participant_values(participant)))
            session.commit()

    def save_participant(self, participant: ChoreParticipant) -> None:
        with self._session() as session:
            row = session.get(ChoreParticipantRecord, participant.id)
            if row is None:
                return
            for key, value in _participant_values(participant).items():
                setattr(row, key, value)
            session.add(row)
            session.commit()

    def delete_participant(self, participant_id: str) -> None:
        with self._session() as session:
            session.exec(delete(ChoreParticipantRecord).where(ChoreParticipantRecord.id == participant_id))
            session.commit()

    # Ledger ------------------------------------------------------------
    def add_balance_entry(self, entry: BalanceEntry) -> None:
        with self._session() as session:
            session.add(
                BalanceEntryRecord(
                    id=entry.id,
                    child_id=entry.child_id,
                    amount=entry.amount,
                    note=entry.note,
                    created_at=_as_utc(entry.created_at),
                )
            )
            session.commit()

    def balance_entries(self, child_id: str) -> List[BalanceEntry]:
        with self._session() as session:
            rows = session.exec(
                select(BalanceEntryRecord)
                .where(BalanceEntryRecord.child_id == child_id)
                .order_by(BalanceEntryRecord.created_at.desc())
            ).all()
            return [
                BalanceEntry(id=row.id, child_id=row.child_id, amount=row.amount, created_at=_as_utc(row.created_at), note=row.note)
                for row in rows
            ]

    def delete_balance_entries(self, child_id: str) -> None:
        with self._session() as session:
            session.exec(delete(BalanceEntryRecord).where(BalanceEntryRecord.child_id == child_id))
            session.commit()

    # Settings & sessions ----------------------------------------------
    def get_settings(self) -> Optional[Settings]:
        with self._session() as session:
            row = session.get(SettingsRecord, SETTINGS_ROW_ID)
            if row is None:
                return None
            return Settings(
                pin_hash=row.pin_hash,
                session_duration_days=row.session_duration_days,
                currency=row.currency,
            )

    def save_settings(self, settings: Settings) -> None:
        with self._session() as session:
            row = session.get(SettingsRecord, SETTINGS_ROW_ID) or SettingsRecord(id=SETTINGS_ROW_ID)
            row.pin_hash = settings.pin_hash
            row.session_duration_days = settings.session_duration_days
            row.currency = settings.currency
            session.add(row)
            session.commit()

    def add_session(self, record: SessionRecord) -> None:
        with self._session() as session:
            session.add(SessionTokenRecord(token=record.token, expires_at=_as_utc(record.expires_at)))
            session.commit()

    def get_session(self, token: str) -> Optional[SessionRecord]:
        with self._session() as session:
            row = session.get(SessionTokenRecord, token)
            return SessionRecord(token=row.token, expires_at=_as_utc(row.expires_at)) if row else None

    def delete_session(self, token: str) -> None:
        with self._session() as session:
            session.exec(delete(SessionTokenRecord).where(SessionTokenRecord.token == token))
            session.commit()

    def delete_expired_sessions(self, at: datetime) -> int:
        with self._session() as session:
            expired = session.exec(select(SessionTokenRecord).where(SessionTokenRecord.expires_at <= _as_utc(at))).all()
            for row in expired:
                session.delete(row)
            session.commit()
            return len(expired)


__all__ = [
    "BalanceEntryRecord",
    "ChildRecord",
    "ChoreInstanceRecord",
    "ChoreParticipantRecord",
    "ChoreTemplateRecord",
    "ScheduledChoreRecord",
    "SessionTokenRecord",
    "SettingsRecord",
    "SqlChoreStore",
    "make_engine",
]
