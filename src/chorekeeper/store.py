"""Storage contract used by :class:`~chorekeeper.service.ChoreKeeper`.

Two implementations exist: :class:`InMemoryChoreStore` below, and
``chorekeeper.webapp.persistence.SqlChoreStore`` backed by SQLModel. Both
guarantee that at most one chore instance exists per
``(scheduled_chore_id, due_date)``; inserting a duplicate is a no-op.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import (
    BalanceEntry,
    Child,
    ChoreInstance,
    ChoreParticipant,
    ChoreTemplate,
    InstanceStatus,
    ScheduledChore,
    SessionRecord,
    Settings,
)


class ChoreStore(ABC):
    """Persistence operations the chore workflows rely on."""

    # Children ----------------------------------------------------------
    @abstractmethod
    def add_child(self, child: Child) -> None: ...

    @abstractmethod
    def get_child(self, child_id: str) -> Optional[Child]: ...

    @abstractmethod
    def list_children(self) -> List[Child]: ...

    @abstractmethod
    def save_child(self, child: Child) -> None: ...

    @abstractmethod
    def delete_child(self, child_id: str) -> None: ...

    @abstractmethod
    def credit_child(self, child_id: str, amount: int) -> Optional[Child]:
        """Atomically add ``amount`` (may be negative) to a child's balance."""

    # Templates ---------------------------------------------------------
    @abstractmethod
    def add_template(self, template: ChoreTemplate) -> None: ...

    @abstractmethod
    def get_template(self, template_id: str) -> Optional[ChoreTemplate]: ...

    @abstractmethod
    def list_templates(self) -> List[ChoreTemplate]: ...

    @abstractmethod
    def save_template(self, template: ChoreTemplate) -> None: ...

    @abstractmethod
    def delete_template(self, template_id: str) -> None: ...

    # Schedules ---------------------------------------------------------
    @abstractmethod
    def add_schedule(self, schedule: ScheduledChore) -> None: ...

    @abstractmethod
    def get_schedule(self, schedule_id: str) -> Optional[ScheduledChore]: ...

    @abstractmethod
    def list_schedules(
        self, *, active: Optional[bool] = None, optional: Optional[bool] = None
    ) -> List[ScheduledChore]: ...

    @abstractmethod
    def save_schedule(self, schedule: ScheduledChore) -> None: ...

    @abstractmethod
    def delete_schedule(self, schedule_id: str) -> None:
        """Delete a schedule together with its instances and their participants."""

    # Instances ---------------------------------------------------------
    @abstractmethod
    def insert_instance(self, instance: ChoreInstance, participants: Sequence[ChoreParticipant]) -> bool:
        """Insert ``instance`` and ``participants`` unless the (schedule, date) pair exists.

        Returns ``True`` when the rows were inserted and ``False`` for a duplicate.
        """

    @abstractmethod
    def get_instance(self, instance_id: str) -> Optional[ChoreInstance]: ...

    @abstractmethod
    def find_instance(self, scheduled_chore_id: str, due_date: str) -> Optional[ChoreInstance]: ...

    @abstractmethod
    def list_instances(
        self,
        *,
        due_date: Optional[str] = None,
        status: Optional[InstanceStatus] = None,
        scheduled_chore_id: Optional[str] = None,
        due_before: Optional[str] = None,
        due_since: Optional[str] = None,
    ) -> List[ChoreInstance]: ...

    @abstractmethod
    def save_instance(self, instance: ChoreInstance) -> None: ...

    @abstractmethod
    def delete_instance(self, instance_id: str) -> None: ...

    # Participants ------------------------------------------------------
    @abstractmethod
    def participants_for(self, instance_id: str) -> List[ChoreParticipant]: ...

    @abstractmethod
    def participants_for_child(self, child_id: str) -> List[ChoreParticipant]: ...

    @abstractmethod
    def add_participant(self, participant: ChoreParticipant) -> None: ...

    @abstractmethod
    def save_participant(self, participant: ChoreParticipant) -> None: ...

    @abstractmethod
    def delete_participant(self, participant_id: str) -> None: ...

    def get_participant(self, instance_id: str, child_id: str) -> Optional[ChoreParticipant]:
        for participant in self.participants_for(instance_id):
            if participant.child_id == child_id:
                return participant
        return None

    # Ledger ------------------------------------------------------------
    @abstractmethod
    def add_balance_entry(self, entry: BalanceEntry) -> None: ...

    @abstractmethod
    def balance_entries(self, child_id: str) -> List[BalanceEntry]: ...

    @abstractmethod
    def delete_balance_entries(self, child_id: str) -> None: ...

    # Settings & sessions ----------------------------------------------
    @abstractmethod
    def get_settings(self) -> Optional[Settings]: ...

    @abstractmethod
    def save_settings(self, settings: Settings) -> None: ...

    @abstractmethod
    def add_session(self, session: SessionRecord) -> None: ...

    @abstractmethod
    def get_session(self, token: str) -> Optional[SessionRecord]: ...

    @abstractmethod
    def delete_session(self, token: str) -> None: ...

    @abstractmethod
    def delete_expired_sessions(self, at: datetime) -> int: ...


class InMemoryChoreStore(ChoreStore):
    """Dictionary backed store; records are copied in and out so callers never share state."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._children: Dict[str, Child] = {}
        self._templates: Dict[str, ChoreTemplate] = {}
        self._schedules: Dict[str, ScheduledChore] = {}
        self._instances: Dict[str, ChoreInstance] = {}
        self._instance_keys: Dict[Tuple[str, str], str] = {}
        self._participants: Dict[str, ChoreParticipant] = {}
        self._entries: Dict[str, BalanceEntry] = {}
        self._settings: Optional[Settings] = None
        self._sessions: Dict[str, SessionRecord] = {}

    # Children ----------------------------------------------------------
    def add_child(self, child: Child) -> None:
        with self._lock:
            self._children[child.id] = replace(child)

    def get_child(self, child_id: str) -> Optional[Child]:
        with self._lock:
            child = self._children.get(child_id)
            return replace(child) if child else None

    def list_children(self) -> List[Child]:
        with self._lock:
            return [replace(child) for child in self._children.values()]

    def save_child(self, child: Child) -> None:
        self.add_child(child)

    def delete_child(self, child_id: str) -> None:
        with self._lock:
            self._children.pop(child_id, None)

    def credit_child(self, child_id: str, amount: int) -> Optional[Child]:
        with self._lock:
            child = self._children.get(child_id)
            if child is None:
                return None
            child.balance += amount
            return replace(child)

    # Templates ---------------------------------------------------------
    def add_template(self, template: ChoreTemplate) -> None:
        with self._lock:
            self._templates[template.id] = replace(template)

    def get_template(self, template_id: str) -> Optional[ChoreTemplate]:
        with self._lock:
            template = self._templates.get(template_id)
            return replace(template) if template else None

    def list_templates(self) -> List[ChoreTemplate]:
        with self._lock:
            return [replace(template) for template in self._templates.values()]

    def save_template(self, template: ChoreTemplate) -> None:
        self.add_template(template)

    def delete_template(self, template_id: str) -> None:
        with self._lock:
            self._templates.pop(template_id, None)

    # Schedules ---------------------------------------------------------
    def _copy_schedule(self, schedule: ScheduledChore) -> ScheduledChore:
        return replace(schedule, recurrence=replace(schedule.recurrence))

    def add_schedule(self, schedule: ScheduledChore) -> None:
        with self._lock:
            self._schedules[schedule.id] = self._copy_schedule(schedule)

    def get_schedule(self, schedule_id: str) -> Optional[ScheduledChore]:
        with self._lock:
            schedule = self._schedules.get(schedule_id)
            return self._copy_schedule(schedule) if schedule else None

    def list_schedules(
        self, *, active: Optional[bool] = None, optional: Optional[bool] = None
    ) -> List[ScheduledChore]:
        with self._lock:
            schedules: Iterable[ScheduledChore] = self._schedules.values()
            if active is not None:
                schedules = [item for item in schedules if item.is_active is active]
            if optional is not None:
                schedules = [item for item in schedules if item.is_optional is optional]
            return [self._copy_schedule(item) for item in schedules]

    def save_schedule(self, schedule: ScheduledChore) -> None:
        self.add_schedule(schedule)

    def delete_schedule(self, schedule_id: str) -> None:
        with self._lock:
            for instance in list(self._instances.values()):
                if instance.scheduled_chore_id == schedule_id:
                    self.delete_instance(instance.id)
            self._schedules.pop(schedule_id, None)

    # Instances ---------------------------------------------------------
    def insert_instance(self, instance: ChoreInstance, participants: Sequence[ChoreParticipant]) -> bool:
        key = (instance.scheduled_chore_id, instance.due_date)
        with self._lock:
            if key in self._instance_keys:
                return False
            self._instance_keys[key] = instance.id
            self._instances[instance.id] = replace(instance)
            for participant in participants:
                self._participants[participant.id] = replace(participant)
            return True

    def get_instance(self, instance_id: str) -> Optional[ChoreInstance]:
        with self._lock:
            instance = self._instances.get(instance_id)
            return replace(instance) if instance else None

    def find_instance(self, scheduled_chore_id: str, due_date: str) -> Optional[ChoreInstance]:
        with self._lock:
            instance_id = self._instance_keys.get((scheduled_chore_id, due_date))
            return self.get_instance(instance_id) if instance_id else None

    def list_instances(
        self,
        *,
        due_date: Optional[str] = None,
        status: Optional[InstanceStatus] = None,
        scheduled_chore_id: Optional[str] = None,
        due_before: Optional[str] = None,
        due_since: Optional[str] = None,
    ) -> List[ChoreInstance]:
        with self._lock:
            instances = [
                instance
                for instance in self._instances.values()
                if (due_date is None or instance.due_date == due_date)
                and (status is None or instance.status is status)
                and (scheduled_chore_id is None or instance.scheduled_chore_id == scheduled_chore_id)
                and (due_before is None or instance.due_date < due_before)
                and (due_since is None or instance.due_date >= due_since)
            ]
            instances.sort(key=lambda item: item.due_date)
            return [replace(instance) for instance in instances]

    def save_instance(self, instance: ChoreInstance) -> None:
        with self._lock:
            self._instances[instance.id] = replace(instance)

    def delete_instance(self, instance_id: str) -> None:
        with self._lock:
            instance = self._instances.pop(instance_id, None)
            if instance is None:
                return
            self._instance_keys.pop((instance.scheduled_chore_id, instance.due_date), None)
            for participant in list(self._participants.values()):
                if participant.instance_id == instance_id:
                    del self._participants[participant.id]

    # Participants ------------------------------------------------------
    def participants_for(self, instance_id: str) -> List[ChoreParticipant]:
        with self._lock:
            return [
                replace(participant)
                for participant in self._participants.values()
                if participant.instance_id == instance_id
            ]

    def participants_for_child(self, child_id: str) -> List[ChoreParticipant]:
        with self._lock:
            return [
                replace(participant)
                for participant in self._participants.values()
                if participant.child_id == child_id
            ]

    def add_participant(self, participant: ChoreParticipant) -> None:
        with self._lock:
            self._participants[participant.id] = replace(participant)

    def save_participant(self, participant: ChoreParticipant) -> None:
        self.add_participant(participant)

    def delete_participant(self, participant_id: str) -> None:
        with self._lock:
            self._participants.pop(participant_id, None)

    # Ledger ------------------------------------------------------------
    def add_balance_entry(self, entry: BalanceEntry) -> None:
        with self._lock:
            self._entries[entry.id] = replace(entry)

    def balance_entries(self, child_id: str) -> List[BalanceEntry]:
        with self._lock:
            entries = [replace(entry) for entry in self._entries.values() if entry.child_id == child_id]
        entries.sort(key=lambda entry: entry.created_at, reverse=True)
        return entries

    def delete_balance_entries(self, child_id: str) -> None:
        with self._lock:
            for entry_id in [key for key, entry in self._entries.items() if entry.child_id == child_id]:
                del self._entries[entry_id]

    # Settings & sessions ----------------------------------------------
    def get_settings(self) -> Optional[Settings]:
        with self._lock:
            return replace(self._settings) if self._settings else None

    def save_settings(self, settings: Settings) -> None:
        with self._lock:
            self._settings = replace(settings)

    def add_session(self, session: SessionRecord) -> None:
        with self._lock:
            self._sessions[session.token] = replace(session)

    def get_session(self, token: str) -> Optional[SessionRecord]:
        with self._lock:
            session = self._sessions.get(token)
            return replace(session) if session else None

    def delete_session(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def delete_expired_sessions(self, at: datetime) -> int:
        with self._lock:
            expired = [token for token, session in self._sessions.items() if session.is_expired(at=at)]
            for token in expired:
                del self._sessions[token]
            return len(expired)


__all__ = ["ChoreStore", "InMemoryChoreStore"]
