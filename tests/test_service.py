from datetime import datetime, timezone

import pytest

from chorekeeper.exceptions import (
    ChildNotFoundError,
    ChoreAlreadyDoneError,
    ChoreInstanceNotFoundError,
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
    InvalidQualityError,
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
    TemplateInUseError,
    ValidationError,
)
from chorekeeper.models import InstanceStatus, ParticipantRating, QualityRating, ScheduleType
from chorekeeper.service import ChoreKeeper
from chorekeeper.store import InMemoryChoreStore


def _setup(keeper, *, reward=1000, names=("Ava", "Ben")):
    children = [keeper.create_child(name) for name in names]
    template = keeper.create_template("Dishes", default_reward=reward)
    return children, template


def _only_instance(keeper, on="2024-01-08"):
    instances = keeper.instances_for_date(on)
    assert len(instances) == 1
    return instances[0]


# ---------------------------------------------------------------------------
# Children and templates
# ---------------------------------------------------------------------------
def test_children_get_unique_access_codes(keeper) -> None:
    ava = keeper.create_child("  Ava ")
    ben = keeper.create_child("Ben", avatar_emoji="🦊")

    assert ava.name == "Ava"
    assert ava.access_code != ben.access_code
    assert keeper.child_by_access_code(ben.access_code).id == ben.id
    assert [child.name for child in keeper.list_children()] == ["Ava", "Ben"]

    with pytest.raises(ValidationError):
        keeper.create_child("   ")
    with pytest.raises(ChildNotFoundError):
        keeper.get_child("missing")


def test_update_child_and_regenerate_code(keeper) -> None:
    ava = keeper.create_child("Ava")
    updated = keeper.update_child(ava.id, name="Ava Mae", avatar_emoji="🐱")
    code = keeper.regenerate_access_code(ava.id)

    assert updated.name == "Ava Mae"
    assert keeper.get_child(ava.id).avatar_emoji == "🐱"
    assert keeper.get_child(ava.id).access_code == code


def test_template_in_use_cannot_be_removed(keeper) -> None:
    (ava, _), template = _setup(keeper)
    schedule = keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="2024-01-01")

    with pytest.raises(TemplateInUseError):
        keeper.remove_template(template.id)

    keeper.remove_schedule(schedule.id)
    keeper.remove_template(template.id)
    assert keeper.list_templates() == ()


# ---------------------------------------------------------------------------
# Scheduling driver
# ---------------------------------------------------------------------------
def test_create_schedule_materialises_today(keeper) -> None:
    (ava, ben), template = _setup(keeper)
    schedule = keeper.create_schedule(template.id, [ava.id, ben.id], schedule_type="daily", start_date="2024-01-01")

    instance = _only_instance(keeper)
    assert schedule.reward == 1000
    assert instance.scheduled_chore_id == schedule.id
    assert [p.child_id for p in keeper.participants(instance.id)] == [ava.id, ben.id]


def test_generation_is_idempotent(keeper) -> None:
    (ava, _), template = _setup(keeper)
    keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="2024-01-01")

    assert keeper.generate_instances("2024-01-08") == 0
    assert keeper.generate_instances("2024-01-09") == 1
    assert keeper.generate_instances("2024-01-09") == 0
    assert len(keeper.instances_for_date("2024-01-09")) == 1
    assert len(keeper.logger.events("instance_created")) == 2


def test_once_schedule_deactivates_after_firing(keeper) -> None:
    (ava, _), template = _setup(keeper)
    schedule = keeper.create_schedule(template.id, [ava.id], schedule_type=ScheduleType.ONCE, start_date="2024-01-10")

    assert keeper.get_schedule(schedule.id).is_active
    assert keeper.generate_instances("2024-01-09") == 0
    assert keeper.generate_instances("2024-01-10") == 1
    assert not keeper.get_schedule(schedule.id).is_active
    assert keeper.generate_instances("2024-01-10") == 0
    assert keeper.logger.events("schedule_deactivated")


def test_once_schedule_for_today_deactivates_on_create(keeper) -> None:
    (ava, _), template = _setup(keeper)
    schedule = keeper.create_schedule(template.id, [ava.id], schedule_type="once", start_date="2024-01-08")

    assert not schedule.is_active
    assert len(keeper.instances_for_date("2024-01-08")) == 1


def test_weekly_and_custom_schedules(keeper) -> None:
    (ava, _), template = _setup(keeper)
    keeper.create_schedule(template.id, [ava.id], schedule_type="weekly", start_date="2024-01-03")
    keeper.create_schedule(template.id, [ava.id], schedule_type="custom", start_date="2024-01-01", days=[0, 6])

    assert keeper.generate_instances("2024-01-10") == 1
    assert keeper.generate_instances("2024-01-13") == 1
    assert keeper.generate_instances("2024-01-11") == 0


def test_schedule_validation(keeper) -> None:
    (ava, ben), template = _setup(keeper)

    with pytest.raises(JoinedChoreRequiresMultipleChildrenError):
        keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="2024-01-01", is_joined=True)
    with pytest.raises(ValidationError):
        keeper.create_schedule(template.id, [ava.id], schedule_type="hourly", start_date="2024-01-01")
    with pytest.raises(ValidationError):
        keeper.create_schedule(template.id, [ava.id], schedule_type="custom", start_date="2024-01-01", days=[7])
    with pytest.raises(ValidationError):
        keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="soon")
    with pytest.raises(ChildNotFoundError):
        keeper.create_schedule(template.id, ["ghost"], schedule_type="daily", start_date="2024-01-01")


def test_optional_schedules_are_never_auto_generated(keeper) -> None:
    (ava, _), template = _setup(keeper)
    schedule = keeper.create_schedule(
        template.id, [ava.id], schedule_type="daily", start_date="2024-01-01", is_optional=True
    )

    assert schedule.child_ids == ()
    assert keeper.generate_instances("2024-01-09") == 0
    assert keeper.instances_for_date("2024-01-08") == []


def test_optional_schedules_are_never_joined(keeper) -> None:
    (ava, ben), template = _setup(keeper)
    schedule = keeper.create_schedule(
        template.id, [ava.id, ben.id], schedule_type="daily", start_date="2024-01-01", is_joined=True, is_optional=True
    )

    assert not schedule.is_joined
    updated = keeper.update_schedule(schedule.id, reward=300)
    assert updated.reward == 300 and not updated.is_joined
    assert not keeper.update_schedule(schedule.id, is_joined=True).is_joined


def test_toggle_and_update_schedule(keeper) -> None:
    (ava, ben), template = _setup(keeper)
    schedule = keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="2024-01-01")

    assert keeper.toggle_schedule(schedule.id) is False
    assert keeper.generate_instances("2024-01-09") == 0
    assert keeper.toggle_schedule(schedule.id) is True

    updated = keeper.update_schedule(schedule.id, child_ids=[ava.id, ben.id], is_joined=True, reward=600)
    assert updated.is_joined and updated.reward == 600
    assert keeper.generate_instances("2024-01-09") == 1
    instance = _only_instance(keeper, "2024-01-09")
    assert instance.is_joined and instance.total_reward == 600

    with pytest.raises(ValidationError):
        keeper.update_schedule(schedule.id, template_id="other")


def test_remove_schedule_cascades(keeper) -> None:
    (ava, _), template = _setup(keeper)
    schedule = keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="2024-01-01")
    instance = _only_instance(keeper)

    keeper.remove_schedule(schedule.id)

    assert keeper.instances_for_date("2024-01-08") == []
    assert keeper.store.participants_for(instance.id) == []


def test_mark_missed_instances_skips_started_work(keeper) -> None:
    (ava, ben), template = _setup(keeper)
    first = keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="2024-01-01")
    keeper.create_schedule(template.id, [ben.id], schedule_type="daily", start_date="2024-01-01")
    keeper.mark_done(keeper.store.find_instance(first.id, "2024-01-08").id, ava.id)

    result = keeper.run_daily_jobs("2024-01-09")

    assert result == {"created": 2, "missed": 1}
    statuses = {i.scheduled_chore_id: i.status for i in keeper.instances_for_date("2024-01-08")}
    assert statuses[first.id] is InstanceStatus.PENDING
    assert InstanceStatus.MISSED in statuses.values()


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------
def test_participants_complete_independently(keeper) -> None:
    (ava, ben), template = _setup(keeper)
    keeper.create_schedule(template.id, [ava.id, ben.id], schedule_type="daily", start_date="2024-01-01")
    instance = _only_instance(keeper)

    keeper.mark_done(instance.id, ava.id)
    participants = {p.child_id: p for p in keeper.participants(instance.id)}

    assert participants[ava.id].is_done
    assert participants[ava.id].completed_at is not None
    assert not participants[ben.id].is_done
    with pytest.raises(ChoreAlreadyDoneError):
        keeper.mark_done(instance.id, ava.id)
    with pytest.raises(ChoreNotDoneError):
        keeper.unmark_done(instance.id, ben.id)
    with pytest.raises(ParticipantNotFoundError):
        keeper.mark_done(instance.id, "ghost")

    keeper.unmark_done(instance.id, ava.id)
    assert not keeper.store.get_participant(instance.id, ava.id).is_done


# ---------------------------------------------------------------------------
# Rating
# ---------------------------------------------------------------------------
def test_rate_participant_completes_when_everyone_rated(keeper) -> None:
    (ava, ben), template = _setup(keeper, reward=100)
    keeper.create_schedule(template.id, [ava.id, ben.id], schedule_type="daily", start_date="2024-01-01")
    instance = _only_instance(keeper)
    keeper.mark_done(instance.id, ava.id)

    first = keeper.rate_participant(instance.id, ava.id, "good")

    assert first.earned_reward == 100 and not first.all_rated
    assert keeper.get_instance(instance.id).is_pending
    assert keeper.get_child(ava.id).balance == 100
    with pytest.raises(ParticipantAlreadyRatedError):
        keeper.rate_participant(instance.id, ava.id, "good")
    with pytest.raises(ParticipantAlreadyRatedError):
        keeper.unmark_done(instance.id, ava.id)

    second = keeper.rate_participant(instance.id, ben.id, QualityRating.EXCELLENT)

    assert second.earned_reward == 125 and second.all_rated
    assert keeper.get_instance(instance.id).status is InstanceStatus.COMPLETED
    assert keeper.get_child(ben.id).balance == 125
    with pytest.raises(ChoreNotPendingError):
        keeper.rate_instance(instance.id, "good", force_complete=True)


def test_rate_joined_splits_by_effort(keeper) -> None:
    (ava, ben), template = _setup(keeper)
    keeper.create_schedule(
        template.id, [ava.id, ben.id], schedule_type="daily", start_date="2024-01-01", is_joined=True
    )
    instance = _only_instance(keeper)

    with pytest.raises(NotAllParticipantsDoneError):
        keeper.rate_joined(instance.id, "excellent", {ava.id: 60, ben.id: 40})

    keeper.mark_done(instance.id, ava.id)
    keeper.mark_done(instance.id, ben.id)
    with pytest.raises(EffortPercentTotalError):
        keeper.rate_joined(instance.id, "excellent", {ava.id: 60, ben.id: 30})

    earned = keeper.rate_joined(instance.id, "excellent", {ava.id: 60, ben.id: 40}, notes="Sparkling")

    assert earned == {ava.id: 750, ben.id: 500}
    completed = keeper.get_instance(instance.id)
    assert completed.status is InstanceStatus.COMPLETED
    assert completed.quality is QualityRating.EXCELLENT
    assert completed.notes == "Sparkling"
    assert keeper.get_child(ava.id).balance == 750


def test_rate_joined_rejects_single_chores(keeper) -> None:
    (ava, _), template = _setup(keeper)
    keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="2024-01-01")
    instance = _only_instance(keeper)

    with pytest.raises(NotJoinedChoreError):
        keeper.rate_joined(instance.id, "good", {ava.id: 100})


def test_rate_instance_equal_split_with_force(keeper) -> None:
    (ava, ben, cal), template = _setup(keeper, names=("Ava", "Ben", "Cal"))
    keeper.create_schedule(
        template.id, [ava.id, ben.id, cal.id], schedule_type="daily", start_date="2024-01-01", is_joined=True
    )
    instance = _only_instance(keeper)

    with pytest.raises(NotAllParticipantsDoneError):
        keeper.rate_instance(instance.id, "good")
    with pytest.raises(InvalidQualityError):
        keeper.rate_instance(instance.id, "superb", force_complete=True)

    earned = keeper.rate_instance(instance.id, "good", force_complete=True)

    assert earned == {ava.id: 333, ben.id: 333, cal.id: 333}
    efforts = [p.effort_percent for p in keeper.participants(instance.id)]
    assert sum(efforts) == 100


def test_rate_instance_pays_everyone_in_single_chores(keeper) -> None:
    (ava, ben), template = _setup(keeper, reward=200)
    keeper.create_schedule(template.id, [ava.id, ben.id], schedule_type="daily", start_date="2024-01-01")
    instance = _only_instance(keeper)
    keeper.mark_done(instance.id, ava.id)
    keeper.mark_done(instance.id, ben.id)

    assert keeper.rate_instance(instance.id, "bad") == {ava.id: 100, ben.id: 100}


def test_rate_all_participants_validates_before_crediting(keeper) -> None:
    (ava, ben), template = _setup(keeper)
    keeper.create_schedule(
        template.id, [ava.id, ben.id], schedule_type="daily", start_date="2024-01-01", is_joined=True
    )
    instance = _only_instance(keeper)

    with pytest.raises(EffortPercentTotalError):
        keeper.rate_all_participants(
            instance.id,
            [ParticipantRating(ava.id, "good", 70), ParticipantRating(ben.id, "good", 20)],
        )
    assert keeper.get_child(ava.id).balance == 0

    with pytest.raises(InvalidQualityError):
        keeper.rate_all_participants(
            instance.id,
            [ParticipantRating(ava.id, "good", 70), ParticipantRating(ben.id, "meh", 30)],
        )
    assert keeper.get_child(ava.id).balance == 0

    earned = keeper.rate_all_participants(
        instance.id,
        [ParticipantRating(ava.id, "good", 70), ParticipantRating(ben.id, "bad", 30)],
        notes="Team effort",
    )

    assert earned == {ava.id: 700, ben.id: 150}
    assert keeper.get_instance(instance.id).status is InstanceStatus.COMPLETED
    assert keeper.get_instance(instance.id).notes == "Team effort"


def test_rate_all_participants_defaults_to_equal_effort(keeper) -> None:
    (ava, ben), template = _setup(keeper)
    keeper.create_schedule(
        template.id, [ava.id, ben.id], schedule_type="daily", start_date="2024-01-01", is_joined=True
    )
    instance = _only_instance(keeper)

    earned = keeper.rate_all_participants(
        instance.id, [ParticipantRating(ava.id, "good"), ParticipantRating(ben.id, "good")]
    )

    assert earned == {ava.id: 500, ben.id: 500}


def test_rate_all_participants_requires_every_joined_participant(keeper) -> None:
    (ava, ben), template = _setup(keeper)
    keeper.create_schedule(
        template.id, [ava.id, ben.id], schedule_type="daily", start_date="2024-01-01", is_joined=True
    )
    instance = _only_instance(keeper)

    with pytest.raises(ValidationError):
        keeper.rate_all_participants(instance.id, [ParticipantRating(ava.id, "good", 100)])
    assert keeper.get_child(ava.id).balance == 0
    assert keeper.get_instance(instance.id).is_pending

    keeper.rate_participant(instance.id, ava.id, "good", effort_percent=100)
    with pytest.raises(EffortPercentTotalError):
        keeper.rate_participant(instance.id, ben.id, "good", effort_percent=50)
    assert keeper.get_child(ben.id).balance == 0


def test_rate_all_participants_completes_single_chores(keeper) -> None:
    (ava, ben), template = _setup(keeper, reward=100)
    keeper.create_schedule(template.id, [ava.id, ben.id], schedule_type="daily", start_date="2024-01-01")
    instance = _only_instance(keeper)

    earned = keeper.rate_all_participants(instance.id, [ParticipantRating(ava.id, "good")], notes="Ben was out")

    assert earned == {ava.id: 100}
    completed = keeper.get_instance(instance.id)
    assert completed.status is InstanceStatus.COMPLETED
    assert completed.notes == "Ben was out"
    with pytest.raises(ChoreNotPendingError):
        keeper.rate_participant(instance.id, ben.id, "good")


def test_negative_efforts_are_rejected(keeper) -> None:
    (ava, ben), template = _setup(keeper)
    keeper.create_schedule(
        template.id, [ava.id, ben.id], schedule_type="daily", start_date="2024-01-01", is_joined=True
    )
    instance = _only_instance(keeper)
    keeper.mark_done(instance.id, ava.id)
    keeper.mark_done(instance.id, ben.id)

    with pytest.raises(InvalidEffortError):
        keeper.rate_joined(instance.id, "good", {ava.id: 150, ben.id: -50})
    with pytest.raises(InvalidEffortError):
        keeper.rate_all_participants(
            instance.id,
            [ParticipantRating(ava.id, "good", 150), ParticipantRating(ben.id, "good", -50)],
        )
    with pytest.raises(InvalidEffortError):
        keeper.rate_participant(instance.id, ben.id, "good", effort_percent=-10)

    assert keeper.get_child(ava.id).balance == 0
    assert keeper.get_child(ben.id).balance == 0
    assert keeper.get_instance(instance.id).is_pending


def test_mark_missed_blocks_rating(keeper) -> None:
    (ava, _), template = _setup(keeper)
    keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="2024-01-01")
    instance = _only_instance(keeper)

    keeper.mark_missed(instance.id)

    with pytest.raises(ChoreNotPendingError):
        keeper.mark_done(instance.id, ava.id)
    with pytest.raises(ChoreNotPendingError):
        keeper.rate_participant(instance.id, ava.id, "good")


def test_review_and_history_queries(keeper, clock) -> None:
    (ava, ben), template = _setup(keeper, reward=100)
    keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="2024-01-01")
    keeper.create_schedule(template.id, [ben.id], schedule_type="daily", start_date="2024-01-01")
    instances = keeper.instances_for_date("2024-01-08")
    ava_instance = next(i for i in instances if keeper.store.get_participant(i.id, ava.id))

    assert keeper.pending_review() == []
    keeper.mark_done(ava_instance.id, ava.id)
    assert [i.id for i in keeper.pending_review()] == [ava_instance.id]

    clock.advance(hours=1)
    keeper.rate_instance(ava_instance.id, "good")

    assert keeper.pending_review() == []
    assert [i.id for i in keeper.history(child_id=ava.id)] == [ava_instance.id]
    assert keeper.history(child_id=ben.id) == []
    pairs = keeper.instances_for_child(ava.id, "2024-01-08")
    assert len(pairs) == 1 and pairs[0][1].earned_reward == 100


# ---------------------------------------------------------------------------
# Optional chores
# ---------------------------------------------------------------------------
def test_pickup_optional_chore(keeper) -> None:
    (ava, ben), template = _setup(keeper, reward=50)
    schedule = keeper.create_schedule(
        template.id, [], schedule_type="daily", start_date="2024-01-01", is_optional=True, max_pickups_per_period=1
    )

    assert [s.id for s, count in keeper.available_optional(ava.id)] == [schedule.id]

    instance = keeper.pickup_optional(ava.id, schedule.id)

    assert instance.due_date == "2024-01-08"
    assert keeper.available_optional(ava.id) == []
    with pytest.raises(PickupLimitReachedError):
        keeper.pickup_optional(ava.id, schedule.id)

    joined = keeper.pickup_optional(ben.id, schedule.id)
    assert joined.id == instance.id
    assert {p.child_id for p in keeper.participants(instance.id)} == {ava.id, ben.id}

    keeper.mark_done(instance.id, ava.id)
    result = keeper.rate_participant(instance.id, ava.id, "good")
    assert result.earned_reward == 50 and not result.all_rated


def test_pickup_requires_daily_chores_done(keeper) -> None:
    (ava, _), template = _setup(keeper)
    daily = keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="2024-01-01")
    optional = keeper.create_schedule(
        template.id, [], schedule_type="daily", start_date="2024-01-01", is_optional=True
    )

    with pytest.raises(DailyChoresNotCompleteError):
        keeper.pickup_optional(ava.id, optional.id)

    keeper.mark_done(keeper.store.find_instance(daily.id, "2024-01-08").id, ava.id)
    assert keeper.pickup_optional(ava.id, optional.id).scheduled_chore_id == optional.id


def test_pickup_rejections(keeper) -> None:
    (ava, _), template = _setup(keeper)
    regular = keeper.create_schedule(template.id, [], schedule_type="weekly", start_date="2024-01-02")
    later = keeper.create_schedule(template.id, [], schedule_type="daily", start_date="2024-02-01", is_optional=True)

    with pytest.raises(ChoreNotOptionalError):
        keeper.pickup_optional(ava.id, regular.id)
    with pytest.raises(ChoreNotYetAvailableError):
        keeper.pickup_optional(ava.id, later.id)


def test_pickup_unknown_schedule_is_not_found(keeper) -> None:
    (ava, _), template = _setup(keeper)
    keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="2024-01-01")

    with pytest.raises(ScheduledChoreNotFoundError):
        keeper.pickup_optional(ava.id, "missing")


class _LosingStore(InMemoryChoreStore):
    """Reports every insert as a duplicate without storing anything."""

    def insert_instance(self, instance, participants) -> bool:
        return False


def test_pickup_reports_vanished_instance() -> None:
    keeper = ChoreKeeper(_LosingStore(), clock=lambda: datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc))
    (ava, _), template = _setup(keeper)
    optional = keeper.create_schedule(
        template.id, [], schedule_type="daily", start_date="2024-01-01", is_optional=True
    )

    with pytest.raises(ChoreInstanceNotFoundError):
        keeper.pickup_optional(ava.id, optional.id)


# ---------------------------------------------------------------------------
# Cascades and ledger
# ---------------------------------------------------------------------------
def test_remove_child_cascades(keeper) -> None:
    (ava, ben), template = _setup(keeper)
    solo = keeper.create_schedule(template.id, [ava.id], schedule_type="daily", start_date="2024-01-01")
    shared = keeper.create_schedule(
        template.id, [ava.id, ben.id], schedule_type="daily", start_date="2024-01-01", is_joined=True
    )
    keeper.adjust_balance(ava.id, 500, "Gift")

    keeper.remove_child(ava.id)

    with pytest.raises(ChildNotFoundError):
        keeper.get_child(ava.id)
    assert keeper.store.balance_entries(ava.id) == []
    assert keeper.store.participants_for_child(ava.id) == []
    assert keeper.store.find_instance(solo.id, "2024-01-08") is None
    assert not keeper.get_schedule(solo.id).is_active
    remaining = keeper.get_schedule(shared.id)
    assert remaining.child_ids == (ben.id,)
    assert not remaining.is_joined
    assert keeper.store.find_instance(shared.id, "2024-01-08") is not None


def test_ledger_operations(keeper, clock) -> None:
    ava = keeper.create_child("Ava")

    keeper.adjust_balance(ava.id, 1000, "Birthday")
    clock.advance(minutes=1)
    keeper.withdraw(ava.id, 300, "Toy")
    clock.advance(minutes=1)

    assert keeper.get_child(ava.id).balance == 700
    with pytest.raises(InsufficientBalanceError):
        keeper.withdraw(ava.id, 800)
    with pytest.raises(InvalidAmountError):
        keeper.withdraw(ava.id, 0)
    with pytest.raises(NegativeBalanceError):
        keeper.adjust_balance(ava.id, -701)

    keeper.set_balance(ava.id, 250)
    assert keeper.set_balance(ava.id, 250) is None

    history = keeper.balance_history(ava.id)
    assert [entry.amount for entry in history] == [-450, -300, 1000]
    assert keeper.get_child(ava.id).balance == 250


# ---------------------------------------------------------------------------
# Settings and authentication
# ---------------------------------------------------------------------------
def test_settings_and_pin_change(keeper) -> None:
    with pytest.raises(NoPinSetError):
        keeper.login("1234")
    with pytest.raises(ValidationError):
        keeper.initialize_settings("12")

    settings = keeper.initialize_settings("1234", currency="Kč")
    assert settings.currency == "Kč"
    assert settings.session_duration_days == 7
    with pytest.raises(SettingsAlreadyInitializedError):
        keeper.initialize_settings("5678")

    with pytest.raises(IncorrectPinError):
        keeper.change_pin("0000", "5678")
    keeper.change_pin("1234", "5678")
    keeper.login("5678")

    assert keeper.update_settings(session_duration_days=3).session_duration_days == 3


def test_login_sessions_and_lockout(keeper, clock) -> None:
    keeper.initialize_settings("1234")

    session = keeper.login("1234")
    assert keeper.verify_session(session.token)
    assert not keeper.verify_session("bogus")
    assert not keeper.verify_session(None)

    clock.advance(days=8)
    assert not keeper.verify_session(session.token)

    remembered = keeper.login("1234", remember_me=True)
    clock.advance(days=20)
    assert keeper.verify_session(remembered.token)
    keeper.logout(remembered.token)
    assert not keeper.verify_session(remembered.token)

    for _ in range(5):
        with pytest.raises(IncorrectPinError):
            keeper.login("0000")
    with pytest.raises(LockedOutError):
        keeper.login("1234")
    clock.advance(minutes=16)
    assert keeper.verify_session(keeper.login("1234").token)
    assert keeper.logger.events("login_failed")


def test_cleanup_expired_sessions(keeper, clock) -> None:
    keeper.initialize_settings("1234")
    keeper.login("1234")
    keeper.login("1234", remember_me=True)

    clock.advance(days=10)

    assert keeper.cleanup_expired_sessions() == 1
