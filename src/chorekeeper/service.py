"""High level service coordinating children, schedules, instances and rewards."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from .exceptions import (
    AccessCodeGenerationError,
    ChildNotFoundError,
    ChoreAlreadyDoneError,
    ChoreInstanceNotFoundError,
    ChoreNoLongerAvailableError,
    ChoreNotActiveError,
    ChoreNotDoneError,
    ChoreNotOptionalError,
    ChoreNotPendingError,
    ChoreNotYetAvailableError,
    DailyChoresNotCompleteError,
    EffortPercentTotalError,
    IncorrectPinError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidEffortError,
    JoinedChoreRequiresMultipleChildrenError,
    LockedOutError,
    NegativeBalanceError,
    NoPinSetError,
    NotAllParticipantsDoneError,
    NotJoinedChoreError,
    ParticipantAlreadyRatedError,
    ParticipantNotFoundError,
    PickupLimitReachedError,
    ScheduledChoreNotFoundError,
    SettingsAlreadyInitializedError,
    SettingsNotFoundError,
    TemplateInUseError,
    TemplateNotFoundError,
    ValidationError,
)
from .models import (
    BalanceEntry,
    Child,
    ChoreInstance,
    ChoreParticipant,
    ChoreTemplate,
    InstanceStatus,
    ParticipantRating,
    ParticipantStatus,
    QualityRating,
    RatingResult,
    Recurrence,
    ScheduledChore,
    ScheduleType,
    SessionRecord,
    Settings,
    utc_now,
)
from .ops import StructuredLogger
from .recurrence import (
    DateLike,
    deactivates_after_firing,
    is_within_range,
    parse_iso,
    period_start,
    should_auto_generate,
    should_create_instance,
    to_iso,
)
from .rewards import (
    DEFAULT_EFFORT_TOLERANCE,
    QualityLike,
    earned_reward,
    effort_total,
    initialize_equal_efforts,
    to_quality,
    validate_effort_total,
)
from .security import AuthManager, generate_access_code
from .store import ChoreStore, InMemoryChoreStore

PARENT_USER = "parent"
_ACCESS_CODE_ATTEMPTS = 100
_NEVER = datetime.min.replace(tzinfo=timezone.utc)

_SCHEDULE_FIELDS = frozenset(
    {
        "child_ids",
        "reward",
        "is_joined",
        "is_optional",
        "max_pickups_per_period",
        "schedule_type",
        "days",
        "end_date",
        "is_active",
    }
)


def _new_id() -> str:
    return uuid4().hex


class ChoreKeeper:
    """Manage the household's chores, from scheduling through rating and payout."""

    __slots__ = ("_store", "_auth", "_logger", "_clock", "_default_currency", "_default_session_days", "_lock")

    def __init__(
        self,
        store: ChoreStore | None = None,
        *,
        auth: AuthManager | None = None,
        logger: StructuredLogger | None = None,
        clock: Callable[[], datetime] | None = None,
        default_currency: str = "$",
        default_session_days: int = 7,
    ) -> None:
        self._store = store or InMemoryChoreStore()
        self._auth = auth or AuthManager()
        self._logger = logger or StructuredLogger()
        self._clock = clock or utc_now
        self._default_currency = default_currency
        self._default_session_days = default_session_days
        self._lock = threading.RLock()

    @property
    def store(self) -> ChoreStore:
        return self._store

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> str:
        return self._clock().date().isoformat()

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------
    def create_child(self, name: str, *, avatar_emoji: str = "🙂") -> Child:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Child name is required.")
        with self._lock:
            child = Child(
                id=_new_id(),
                name=clean_name,
                avatar_emoji=avatar_emoji or "🙂",
                access_code=self._unique_access_code(),
            )
            self._store.add_child(child)
        self._logger.log("child_created", child=child.id, name=child.name)
        return child

    def _unique_access_code(self) -> str:
        taken = {child.access_code for child in self._store.list_children()}
        for _ in range(_ACCESS_CODE_ATTEMPTS):
            code = generate_access_code()
            if code not in taken:
                return code
        raise AccessCodeGenerationError()

    def get_child(self, child_id: str) -> Child:
        child = self._store.get_child(child_id)
        if child is None:
            raise ChildNotFoundError(child_id)
        return child

    def list_children(self) -> Tuple[Child, ...]:
        return tuple(sorted(self._store.list_children(), key=lambda child: child.name.lower()))

    def child_by_access_code(self, access_code: str) -> Optional[Child]:
        for child in self._store.list_children():
            if child.access_code == access_code:
                return child
        return None

    def update_child(self, child_id: str, *, name: str | None = None, avatar_emoji: str | None = None) -> Child:
        with self._lock:
            child = self.get_child(child_id)
            if name is not None:
                if not name.strip():
                    raise ValidationError("Child name is required.")
                child.name = name.strip()
            if avatar_emoji is not None:
                child.avatar_emoji = avatar_emoji
            self._store.save_child(child)
        return child

    def regenerate_access_code(self, child_id: str) -> str:
        with self._lock:
            child = self.get_child(child_id)
            child.access_code = self._unique_access_code()
            self._store.save_child(child)
        return child.access_code

    def remove_child(self, child_id: str) -> None:
        """Delete a child with their participation, ledger and schedule references."""

        with self._lock:
            self.get_child(child_id)
            affected = set()
            for participant in self._store.participants_for_child(child_id):
                affected.add(participant.instance_id)
                self._store.delete_participant(participant.id)
            for instance_id in affected:
                if not self._store.participants_for(instance_id):
                    self._store.delete_instance(instance_id)
            self._store.delete_balance_entries(child_id)
            for schedule in self._store.list_schedules():
                if child_id not in schedule.child_ids:
                    continue
                schedule.child_ids = tuple(cid for cid in schedule.child_ids if cid != child_id)
                if not schedule.child_ids and not schedule.is_optional:
                    schedule.is_active = False
                if schedule.is_joined and len(schedule.child_ids) < 2:
                    schedule.is_joined = False
                self._store.save_schedule(schedule)
            self._store.delete_child(child_id)
        self._logger.log("child_removed", child=child_id)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------
    def create_template(
        self,
        name: str,
        *,
        default_reward: int = 0,
        icon: str = "🧹",
        description: str = "",
    ) -> ChoreTemplate:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Chore name is required.")
        if default_reward < 0:
            raise ValidationError("Reward cannot be negative.")
        template = ChoreTemplate(
            id=_new_id(),
            name=clean_name,
            default_reward=int(default_reward),
            icon=icon or "🧹",
            description=description.strip(),
        )
        self._store.add_template(template)
        self._logger.log("template_created", template=template.id, name=template.name)
        return template

    def get_template(self, template_id: str) -> ChoreTemplate:
        template = self._store.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def list_templates(self) -> Tuple[ChoreTemplate, ...]:
        return tuple(sorted(self._store.list_templates(), key=lambda template: template.name.lower()))

    def update_template(
        self,
        template_id: str,
        *,
        name: str | None = None,
        default_reward: int | None = None,
        icon: str | None = None,
        description: str | None = None,
    ) -> ChoreTemplate:
        template = self.get_template(template_id)
        if name is not None:
            if not name.strip():
                raise ValidationError("Chore name is required.")
            template.name = name.strip()
        if default_reward is not None:
            if default_reward < 0:
                raise ValidationError("Reward cannot be negative.")
            template.default_reward = int(default_reward)
        if icon is not None:
            template.icon = icon
        if description is not None:
            template.description = description.strip()
        self._store.save_template(template)
        return template

    def remove_template(self, template_id: str) -> None:
        self.get_template(template_id)
        in_use = [s for s in self._store.list_schedules() if s.template_id == template_id]
        if in_use:
            raise TemplateInUseError(template_id, len(in_use))
        self._store.delete_template(template_id)

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------
    def create_schedule(
        self,
        template_id: str,
        child_ids: Sequence[str],
        *,
        schedule_type: ScheduleType | str,
        start_date: DateLike,
        end_date: DateLike | None = None,
        days: Iterable[int] | None = None,
        reward: int | None = None,
        is_joined: bool = False,
        is_optional: bool = False,
        max_pickups_per_period: int | None = None,
        today: DateLike | None = None,
    ) -> ScheduledChore:
        """Create a schedule and materialise today's instance if the rule fires today."""

        template = self.get_template(template_id)
        ids = tuple(dict.fromkeys(child_ids))
        for child_id in ids:
            self.get_child(child_id)
        # Optional chores belong to whoever picks them up and are never joined.
        if is_optional:
            ids, is_joined = (), False
        if is_joined and len(ids) < 2:
            raise JoinedChoreRequiresMultipleChildrenError()
        amount = template.default_reward if reward is None else int(reward)
        if amount < 0:
            raise ValidationError("Reward cannot be negative.")
        recurrence = Recurrence(
            type=self._schedule_type(schedule_type),
            start_date=self._require_date(start_date, "start_date"),
            end_date=self._require_date(end_date, "end_date") if end_date else None,
            days=self._weekdays(days),
        )
        schedule = ScheduledChore(
            id=_new_id(),
            template_id=template.id,
            child_ids=ids,
            reward=amount,
            recurrence=recurrence,
            is_joined=is_joined,
            is_optional=is_optional,
            max_pickups_per_period=max_pickups_per_period,
        )
        with self._lock:
            self._store.add_schedule(schedule)
            self._logger.log(
                "schedule_created",
                schedule=schedule.id,
                template=template.id,
                type=recurrence.type.value,
                children=list(schedule.child_ids),
            )
            target = to_iso(today) if today is not None else self.today()
            if should_auto_generate(schedule, target) and self._materialize(schedule, target) is not None:
                if deactivates_after_firing(recurrence):
                    schedule.is_active = False
                    self._store.save_schedule(schedule)
                    self._logger.log("schedule_deactivated", schedule=schedule.id)
        return self.get_schedule(schedule.id)

    @staticmethod
    def _require_date(value: DateLike, field_name: str) -> str:
        parsed = parse_iso(value)
        if parsed is None:
            raise ValidationError(f"{field_name} must be an ISO date (YYYY-MM-DD).")
        return parsed.isoformat()

    @staticmethod
    def _schedule_type(value: ScheduleType | str) -> ScheduleType:
        try:
            return ScheduleType(value)
        except ValueError as exc:
            raise ValidationError(f"Unknown schedule type {value!r}; use once, daily, weekly or custom.") from exc

    @staticmethod
    def _weekdays(days: Iterable[int] | None) -> Optional[frozenset[int]]:
        if days is None:
            return None
        try:
            values = frozenset(int(day) for day in days)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Schedule days must be weekday numbers 0 (Sunday) to 6 (Saturday).") from exc
        if any(day < 0 or day > 6 for day in values):
            raise ValidationError("Schedule days must be weekday numbers 0 (Sunday) to 6 (Saturday).")
        return values

    def get_schedule(self, schedule_id: str) -> ScheduledChore:
        schedule = self._store.get_schedule(schedule_id)
        if schedule is None:
            raise ScheduledChoreNotFoundError(schedule_id)
        return schedule

    def list_schedules(self, *, active: bool | None = None) -> Tuple[ScheduledChore, ...]:
        return tuple(self._store.list_schedules(active=active))

    def update_schedule(self, schedule_id: str, **changes: object) -> ScheduledChore:
        unknown = set(changes) - _SCHEDULE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update schedule field(s): {', '.join(sorted(unknown))}.")
        with self._lock:
            schedule = self.get_schedule(schedule_id)
            if changes.get("child_ids") is not None:
                ids = tuple(dict.fromkeys(changes["child_ids"]))  # type: ignore[arg-type]
                for child_id in ids:
                    self.get_child(child_id)
                schedule.child_ids = ids
            if changes.get("reward") is not None:
                amount = int(changes["reward"])  # type: ignore[arg-type]
                if amount < 0:
                    raise ValidationError("Reward cannot be negative.")
                schedule.reward = amount
            for flag in ("is_joined", "is_optional", "is_active"):
                if changes.get(flag) is not None:
                    setattr(schedule, flag, bool(changes[flag]))
            if "max_pickups_per_period" in changes:
                schedule.max_pickups_per_period = changes["max_pickups_per_period"]  # type: ignore[assignment]
            if changes.get("schedule_type") is not None:
                schedule.recurrence.type = self._schedule_type(changes["schedule_type"])  # type: ignore[arg-type]
            if "days" in changes:
                schedule.recurrence.days = self._weekdays(changes["days"])  # type: ignore[arg-type]
            if "end_date" in changes:
                end = changes["end_date"]
                schedule.recurrence.end_date = self._require_date(end, "end_date") if end else None  # type: ignore[arg-type]
            if schedule.is_optional:
                schedule.is_joined = False
            if schedule.is_joined and len(schedule.child_ids) < 2:
                raise JoinedChoreRequiresMultipleChildrenError()
            self._store.save_schedule(schedule)
        return schedule

    def toggle_schedule(self, schedule_id: str) -> bool:
        with self._lock:
            schedule = self.get_schedule(schedule_id)
            schedule.is_active = not schedule.is_active
            self._store.save_schedule(schedule)
        return schedule.is_active

    def remove_schedule(self, schedule_id: str) -> None:
        with self._lock:
            self.get_schedule(schedule_id)
            self._store.delete_schedule(schedule_id)
        self._logger.log("schedule_deleted", schedule=schedule_id)

    # ------------------------------------------------------------------
    # Scheduling driver
    # ------------------------------------------------------------------
    def _materialize(self, schedule: ScheduledChore, due_date: str) -> Optional[ChoreInstance]:
        if self._store.find_instance(schedule.id, due_date) is not None:
            return None
        instance = ChoreInstance(
            id=_new_id(),
            scheduled_chore_id=schedule.id,
            due_date=due_date,
            is_joined=schedule.is_joined,
            total_reward=schedule.reward,
        )
        participants = [
            ChoreParticipant(id=_new_id(), instance_id=instance.id, child_id=child_id)
            for child_id in schedule.child_ids
        ]
        if not self._store.insert_instance(instance, participants):
            return None
        self._logger.log(
            "instance_created",
            schedule=schedule.id,
            instance=instance.id,
            due_date=due_date,
            participants=len(participants),
        )
        return instance

    def generate_instances(self, on: DateLike | None = None) -> int:
        """Materialise every active, non-optional schedule due on ``on``.

        Safe to call repeatedly: a schedule never gets a second instance for the
        same date. One-time schedules are deactivated once they fire.
        """

        target = to_iso(on) if on is not None else self.today()
        created = 0
        with self._lock:
            for schedule in self._store.list_schedules(active=True):
                if not should_auto_generate(schedule, target):
                    continue
                if self._materialize(schedule, target) is None:
                    continue
                created += 1
                if deactivates_after_firing(schedule.recurrence):
                    schedule.is_active = False
                    self._store.save_schedule(schedule)
                    self._logger.log("schedule_deactivated", schedule=schedule.id)
        return created

    def mark_missed_instances(self, before: DateLike | None = None) -> int:
        """Mark pending instances due before ``before`` as missed.

        Instances where somebody already marked their part done are left for review.
        """

        cutoff = to_iso(before) if before is not None else self.today()
        missed = 0
        with self._lock:
            for instance in self._store.list_instances(status=InstanceStatus.PENDING, due_before=cutoff):
                if any(p.is_done for p in self._store.participants_for(instance.id)):
                    continue
                instance.status = InstanceStatus.MISSED
                self._store.save_instance(instance)
                self._logger.log("instance_missed", instance=instance.id, due_date=instance.due_date)
                missed += 1
        return missed

    def run_daily_jobs(self, today: DateLike | None = None) -> Dict[str, int]:
        target = to_iso(today) if today is not None else self.today()
        return {
            "created": self.generate_instances(target),
            "missed": self.mark_missed_instances(target),
        }

    # ------------------------------------------------------------------
    # Optional chores
    # ------------------------------------------------------------------
    def _pickup_count(self, schedule: ScheduledChore, child_id: str, on: str) -> int:
        since = period_start(schedule.recurrence.type, on)
        count = 0
        for instance in self._store.list_instances(scheduled_chore_id=schedule.id, due_since=since):
            if self._store.get_participant(instance.id, child_id) is not None:
                count += 1
        return count

    def available_optional(self, child_id: str, on: DateLike | None = None) -> List[Tuple[ScheduledChore, int]]:
        """Optional schedules the child may pick up on ``on`` with their current pickup count."""

        self.get_child(child_id)
        target = to_iso(on) if on is not None else self.today()
        available = []
        for schedule in self._store.list_schedules(active=True, optional=True):
            if not is_within_range(schedule.recurrence, target):
                continue
            count = self._pickup_count(schedule, child_id, target)
            limit = schedule.max_pickups_per_period
            if limit is not None and count >= limit:
                continue
            if self._store.find_instance(schedule.id, target) is not None and count > 0:
                continue
            available.append((schedule, count))
        return available

    def _ensure_daily_chores_done(self, child_id: str, on: str) -> None:
        for schedule in self._store.list_schedules(active=True, optional=False):
            if child_id not in schedule.child_ids:
                continue
            if not should_create_instance(schedule.recurrence, on):
                continue
            instance = self._store.find_instance(schedule.id, on)
            participant = self._store.get_participant(instance.id, child_id) if instance else None
            if participant is None or not participant.is_done:
                template = self._store.get_template(schedule.template_id)
                raise DailyChoresNotCompleteError(template.name if template else "Unknown chore")

    def pickup_optional(self, child_id: str, schedule_id: str, on: DateLike | None = None) -> ChoreInstance:
        """Let a child take on an optional chore for ``on``.

        Only one instance exists per schedule and day; later pickups join it.
        """

        target = to_iso(on) if on is not None else self.today()
        with self._lock:
            self.get_child(child_id)
            schedule = self.get_schedule(schedule_id)
            self._ensure_daily_chores_done(child_id, target)
            if not schedule.is_optional:
                raise ChoreNotOptionalError(schedule_id)
            if not schedule.is_active:
                raise ChoreNotActiveError(schedule_id)
            recurrence = schedule.recurrence
            if recurrence.start_date > target:
                raise ChoreNotYetAvailableError(schedule_id, recurrence.start_date)
            if recurrence.end_date and recurrence.end_date < target:
                raise ChoreNoLongerAvailableError(schedule_id, recurrence.end_date)
            limit = schedule.max_pickups_per_period
            if limit is not None and self._pickup_count(schedule, child_id, target) >= limit:
                raise PickupLimitReachedError(schedule_id, limit)

            instance = self._store.find_instance(schedule.id, target)
            if instance is None:
                instance = ChoreInstance(
                    id=_new_id(),
                    scheduled_chore_id=schedule.id,
                    due_date=target,
                    is_joined=False,
                    total_reward=schedule.reward,
                )
                participant = ChoreParticipant(id=_new_id(), instance_id=instance.id, child_id=child_id)
                if self._store.insert_instance(instance, [participant]):
                    self._logger.log("optional_picked_up", schedule=schedule.id, instance=instance.id, child=child_id)
                    return instance
                # Another pickup inserted it first.
                instance = self._store.find_instance(schedule.id, target)
                if instance is None:
                    raise ChoreInstanceNotFoundError(f"{schedule.id}@{target}")
            if not instance.is_pending:
                raise ChoreNotPendingError(instance.id, instance.status.value)
            if self._store.get_participant(instance.id, child_id) is not None:
                raise PickupLimitReachedError(schedule_id, 1)
            self._store.add_participant(ChoreParticipant(id=_new_id(), instance_id=instance.id, child_id=child_id))
            self._logger.log("optional_picked_up", schedule=schedule.id, instance=instance.id, child=child_id)
            return instance

    # ------------------------------------------------------------------
    # Instances and participants
    # ------------------------------------------------------------------
    def get_instance(self, instance_id: str) -> ChoreInstance:
        instance = self._store.get_instance(instance_id)
        if instance is None:
            raise ChoreInstanceNotFoundError(instance_id)
        return instance

    def _pending_instance(self, instance_id: str) -> ChoreInstance:
        instance = self.get_instance(instance_id)
        if not instance.is_pending:
            raise ChoreNotPendingError(instance_id, instance.status.value)
        return instance

    def participants(self, instance_id: str) -> List[ChoreParticipant]:
        self.get_instance(instance_id)
        return self._store.participants_for(instance_id)

    def _participant(self, instance_id: str, child_id: str) -> ChoreParticipant:
        participant = self._store.get_participant(instance_id, child_id)
        if participant is None:
            raise ParticipantNotFoundError(child_id, instance_id)
        return participant

    def mark_done(self, instance_id: str, child_id: str) -> ChoreParticipant:
        """Mark one child's part as done. Other participants are untouched."""

        with self._lock:
            self._pending_instance(instance_id)
            participant = self._participant(instance_id, child_id)
            if participant.is_done:
                raise ChoreAlreadyDoneError(child_id, instance_id)
            participant.status = ParticipantStatus.DONE
            participant.completed_at = self.now()
            self._store.save_participant(participant)
        self._logger.log("participant_done", instance=instance_id, child=child_id)
        return participant

    def unmark_done(self, instance_id: str, child_id: str) -> ChoreParticipant:
        with self._lock:
            self._pending_instance(instance_id)
            participant = self._participant(instance_id, child_id)
            if not participant.is_done:
                raise ChoreNotDoneError(child_id, instance_id)
            if participant.is_rated:
                raise ParticipantAlreadyRatedError(child_id, instance_id)
            participant.status = ParticipantStatus.PENDING
            participant.completed_at = None
            self._store.save_participant(participant)
        self._logger.log("participant_undone", instance=instance_id, child=child_id)
        return participant

    def mark_missed(self, instance_id: str) -> ChoreInstance:
        with self._lock:
            instance = self._pending_instance(instance_id)
            instance.status = InstanceStatus.MISSED
            self._store.save_instance(instance)
        self._logger.log("instance_missed", instance=instance_id, due_date=instance.due_date)
        return instance

    # ------------------------------------------------------------------
    # Rating
    # ------------------------------------------------------------------
    def _apply_rating(
        self,
        instance: ChoreInstance,
        participant: ChoreParticipant,
        quality: QualityRating,
        effort_percent: float,
    ) -> int:
        amount = earned_reward(instance.total_reward, effort_percent, quality, instance.is_joined)
        participant.quality = quality
        participant.effort_percent = effort_percent
        participant.earned_reward = amount
        self._store.save_participant(participant)
        self._store.credit_child(participant.child_id, amount)
        self._logger.log(
            "participant_rated",
            instance=instance.id,
            child=participant.child_id,
            quality=quality.value,
            effort=effort_percent,
            earned=amount,
        )
        return amount

    def _complete(
        self,
        instance: ChoreInstance,
        *,
        quality: QualityRating | None = None,
        notes: str | None = None,
    ) -> ChoreInstance:
        instance.status = InstanceStatus.COMPLETED
        instance.completed_at = self.now()
        if quality is not None:
            instance.quality = quality
        if notes is not None:
            instance.notes = notes
        self._store.save_instance(instance)
        self._logger.log("instance_completed", instance=instance.id, quality=quality.value if quality else None)
        return instance

    @staticmethod
    def _require_non_negative(efforts: Mapping[str, float]) -> None:
        for child_id, effort in efforts.items():
            if effort < 0:
                raise InvalidEffortError(child_id, effort)

    def _require_all_done(self, instance: ChoreInstance, participants: Sequence[ChoreParticipant]) -> None:
        done = sum(1 for participant in participants if participant.is_done)
        if done < len(participants):
            raise NotAllParticipantsDoneError(instance.id, done, len(participants))

    def rate_participant(
        self,
        instance_id: str,
        child_id: str,
        quality: QualityLike,
        *,
        effort_percent: float | None = None,
    ) -> RatingResult:
        """Rate one participant and credit their reward.

        The instance completes once every participant has been rated. On joined
        chores the efforts rated so far may never exceed the whole pool.
        """

        rating = to_quality(quality)
        with self._lock:
            instance = self._pending_instance(instance_id)
            participant = self._participant(instance_id, child_id)
            if participant.is_rated:
                raise ParticipantAlreadyRatedError(child_id, instance_id)
            participants = self._store.participants_for(instance_id)
            if instance.is_joined:
                effort = float(effort_percent) if effort_percent is not None else 100 / len(participants)
                self._require_non_negative({child_id: effort})
                rated = sum(p.effort_percent or 0.0 for p in participants if p.is_rated)
                if rated + effort > 100 + DEFAULT_EFFORT_TOLERANCE:
                    raise EffortPercentTotalError(rated + effort)
            else:
                effort = 100.0
            amount = self._apply_rating(instance, participant, rating, effort)
            remaining = [p for p in self._store.participants_for(instance_id) if not p.is_rated]
            if not remaining:
                self._complete(instance)
        return RatingResult(earned_reward=amount, all_rated=not remaining)

    def rate_all_participants(
        self,
        instance_id: str,
        ratings: Sequence[ParticipantRating],
        *,
        notes: str | None = None,
    ) -> Dict[str, int]:
        """Rate several participants in one go and complete the instance.

        Nothing is credited unless every row is valid. Joined chores must rate
        every participant so the effort split covers the whole pool.
        """

        with self._lock:
            instance = self._pending_instance(instance_id)
            if not ratings:
                raise ValidationError("At least one rating is required.")
            participants = self._store.participants_for(instance_id)
            if instance.is_joined:
                missing = {p.child_id for p in participants} - {rating.child_id for rating in ratings}
                if missing:
                    raise ValidationError(
                        f"Joined chores must rate every participant; missing {', '.join(sorted(missing))}."
                    )
            seen = set()
            resolved: List[Tuple[ChoreParticipant, QualityRating, float]] = []
            for rating in ratings:
                if rating.child_id in seen:
                    raise ValidationError(f"Child '{rating.child_id}' is rated more than once.")
                seen.add(rating.child_id)
                participant = self._participant(instance_id, rating.child_id)
                if participant.is_rated:
                    raise ParticipantAlreadyRatedError(rating.child_id, instance_id)
                if instance.is_joined:
                    effort = (
                        float(rating.effort_percent) if rating.effort_percent is not None else 100 / len(ratings)
                    )
                else:
                    effort = 100.0
                resolved.append((participant, to_quality(rating.quality), effort))
            if instance.is_joined:
                efforts = {participant.child_id: effort for participant, _, effort in resolved}
                self._require_non_negative(efforts)
                if not validate_effort_total(efforts):
                    raise EffortPercentTotalError(effort_total(efforts))

            earned = {
                participant.child_id: self._apply_rating(instance, participant, quality, effort)
                for participant, quality, effort in resolved
            }
            self._complete(instance, notes=notes)
        return earned

    def rate_instance(
        self,
        instance_id: str,
        quality: QualityLike,
        *,
        notes: str | None = None,
        force_complete: bool = False,
    ) -> Dict[str, int]:
        """Give every participant the same quality; joined chores split the pool equally."""

        rating = to_quality(quality)
        with self._lock:
            instance = self._pending_instance(instance_id)
            participants = self._store.participants_for(instance_id)
            if not participants:
                raise ParticipantNotFoundError("none", instance_id)
            if not force_complete:
                self._require_all_done(instance, participants)
            for participant in participants:
                if participant.is_rated:
                    raise ParticipantAlreadyRatedError(participant.child_id, instance_id)
            if instance.is_joined:
                efforts = initialize_equal_efforts([p.child_id for p in participants])
            else:
                efforts = {p.child_id: 100.0 for p in participants}
            earned = {
                participant.child_id: self._apply_rating(instance, participant, rating, efforts[participant.child_id])
                for participant in participants
            }
            self._complete(instance, quality=rating, notes=notes)
        return earned

    def rate_joined(
        self,
        instance_id: str,
        quality: QualityLike,
        efforts: Mapping[str, float],
        *,
        notes: str | None = None,
        force_complete: bool = False,
    ) -> Dict[str, int]:
        """Rate a joined chore with a custom effort split that must total 100%.

        Participants left out of ``efforts`` are rated with zero effort.
        """

        rating = to_quality(quality)
        with self._lock:
            instance = self.get_instance(instance_id)
            if not instance.is_joined:
                raise NotJoinedChoreError(instance_id)
            if not instance.is_pending:
                raise ChoreNotPendingError(instance_id, instance.status.value)
            participants = self._store.participants_for(instance_id)
            if not force_complete:
                self._require_all_done(instance, participants)
            self._require_non_negative(efforts)
            if not validate_effort_total(efforts):
                raise EffortPercentTotalError(effort_total(efforts))
            by_child = {participant.child_id: participant for participant in participants}
            for child_id in efforts:
                if child_id not in by_child:
                    raise ParticipantNotFoundError(child_id, instance_id)
            for participant in participants:
                if participant.is_rated:
                    raise ParticipantAlreadyRatedError(participant.child_id, instance_id)
            earned = {
                participant.child_id: self._apply_rating(
                    instance, participant, rating, float(efforts.get(participant.child_id, 0.0))
                )
                for participant in participants
            }
            self._complete(instance, quality=rating, notes=notes)
        return earned

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def instances_for_date(self, on: DateLike | None = None) -> List[ChoreInstance]:
        target = to_iso(on) if on is not None else self.today()
        return self._store.list_instances(due_date=target)

    def instances_for_child(
        self, child_id: str, on: DateLike | None = None
    ) -> List[Tuple[ChoreInstance, ChoreParticipant]]:
        """The child's own instances paired with their participant row."""

        self.get_child(child_id)
        target = to_iso(on) if on is not None else None
        pairs = []
        for participant in self._store.participants_for_child(child_id):
            instance = self._store.get_instance(participant.instance_id)
            if instance is None:
                continue
            if target is not None and instance.due_date != target:
                continue
            pairs.append((instance, participant))
        pairs.sort(key=lambda pair: pair[0].due_date)
        return pairs

    def pending_review(self, limit: int = 20) -> List[ChoreInstance]:
        """Pending instances with at least one finished, unrated participant."""

        ready = []
        for instance in self._store.list_instances(status=InstanceStatus.PENDING):
            participants = self._store.participants_for(instance.id)
            if any(p.is_done and not p.is_rated for p in participants):
                ready.append(instance)
            if len(ready) >= limit:
                break
        return ready

    def history(self, *, child_id: str | None = None, limit: int = 50) -> List[ChoreInstance]:
        completed = self._store.list_instances(status=InstanceStatus.COMPLETED)
        if child_id is not None:
            completed = [
                instance
                for instance in completed
                if self._store.get_participant(instance.id, child_id) is not None
            ]
        completed.sort(key=lambda instance: instance.completed_at or _NEVER, reverse=True)
        return completed[:limit]

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------
    def _record_entry(self, child_id: str, amount: int, note: str) -> BalanceEntry:
        entry = BalanceEntry(id=_new_id(), child_id=child_id, amount=amount, created_at=self.now(), note=note.strip())
        self._store.add_balance_entry(entry)
        self._store.credit_child(child_id, amount)
        self._logger.log("balance_changed", child=child_id, amount=amount, note=entry.note)
        return entry

    def withdraw(self, child_id: str, amount: int, note: str = "") -> BalanceEntry:
        if amount <= 0:
            raise InvalidAmountError(amount)
        with self._lock:
            child = self.get_child(child_id)
            if child.balance < amount:
                raise InsufficientBalanceError(child.balance, amount)
            return self._record_entry(child_id, -amount, note)

    def adjust_balance(self, child_id: str, delta: int, note: str = "") -> BalanceEntry:
        if delta == 0:
            raise InvalidAmountError(delta)
        with self._lock:
            child = self.get_child(child_id)
            if child.balance + delta < 0:
                raise NegativeBalanceError()
            return self._record_entry(child_id, delta, note)

    def set_balance(self, child_id: str, balance: int, note: str = "Balance set") -> Optional[BalanceEntry]:
        if balance < 0:
            raise NegativeBalanceError()
        with self._lock:
            child = self.get_child(child_id)
            delta = balance - child.balance
            if delta == 0:
                return None
            return self._record_entry(child_id, delta, note)

    def balance_history(self, child_id: str) -> List[BalanceEntry]:
        self.get_child(child_id)
        return self._store.balance_entries(child_id)

    # ------------------------------------------------------------------
    # Settings and authentication
    # ------------------------------------------------------------------
    @staticmethod
    def _check_pin_format(pin: str) -> None:
        if not pin or not pin.isdigit() or not 4 <= len(pin) <= 8:
            raise ValidationError("PIN must be 4 to 8 digits.")

    def initialize_settings(self, pin: str, *, currency: str | None = None) -> Settings:
        self._check_pin_format(pin)
        with self._lock:
            if self._store.get_settings() is not None:
                raise SettingsAlreadyInitializedError()
            settings = Settings(
                pin_hash=self._auth.hash(pin),
                session_duration_days=self._default_session_days,
                currency=currency or self._default_currency,
            )
            self._store.save_settings(settings)
        self._logger.log("settings_initialized", currency=settings.currency)
        return settings

    def get_settings(self) -> Settings:
        settings = self._store.get_settings()
        if settings is None:
            raise SettingsNotFoundError()
        return settings

    def update_settings(self, *, currency: str | None = None, session_duration_days: int | None = None) -> Settings:
        with self._lock:
            settings = self.get_settings()
            if currency is not None:
                if not currency.strip():
                    raise ValidationError("Currency symbol is required.")
                settings.currency = currency.strip()
            if session_duration_days is not None:
                if session_duration_days <= 0:
                    raise ValidationError("Session duration must be at least one day.")
                settings.session_duration_days = session_duration_days
            self._store.save_settings(settings)
        return settings

    def change_pin(self, current_pin: str, new_pin: str) -> None:
        with self._lock:
            settings = self._store.get_settings()
            if settings is None or not settings.pin_hash:
                raise NoPinSetError()
            if not self._auth.verify(current_pin, settings.pin_hash):
                raise IncorrectPinError()
            self._check_pin_format(new_pin)
            settings.pin_hash = self._auth.hash(new_pin)
            self._store.save_settings(settings)
        self._logger.log("pin_changed")

    def login(self, pin: str, *, remember_me: bool = False) -> SessionRecord:
        settings = self._store.get_settings()
        if settings is None or not settings.pin_hash:
            raise NoPinSetError()
        now = self.now()
        if self._auth.is_locked(PARENT_USER, at=now):
            raise LockedOutError()
        if not self._auth.verify(pin, settings.pin_hash):
            self._auth.record_pin_attempt(PARENT_USER, success=False, at=now)
            self._logger.log("login_failed")
            raise IncorrectPinError()
        self._auth.record_pin_attempt(PARENT_USER, success=True, at=now)
        session = self._auth.new_session(
            session_duration_days=settings.session_duration_days,
            remember_me=remember_me,
            at=now,
        )
        self._store.add_session(session)
        self._logger.log("login_succeeded", remember_me=remember_me)
        return session

    def verify_session(self, token: str | None) -> bool:
        if not token:
            return False
        session = self._store.get_session(token)
        if session is None:
            return False
        if session.is_expired(at=self.now()):
            self._store.delete_session(token)
            return False
        return True

    def logout(self, token: str) -> None:
        self._store.delete_session(token)

    def cleanup_expired_sessions(self) -> int:
        return self._store.delete_expired_sessions(self.now())


__all__ = ["ChoreKeeper", "PARENT_USER"]
