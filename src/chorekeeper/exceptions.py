"""Custom exception hierarchy for the ChoreKeeper package."""

from __future__ import annotations


class ChoreKeeperError(Exception):
    """Base class for all ChoreKeeper specific errors."""


class ValidationError(ChoreKeeperError):
    """Raised when an operation is rejected because its inputs break a rule."""


class NotFoundError(ChoreKeeperError):
    """Raised when a referenced record does not exist."""


class AuthenticationError(ChoreKeeperError):
    """Raised when a parent cannot be authenticated."""


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------
class ChildNotFoundError(NotFoundError):
    def __init__(self, child_id: str) -> None:
        super().__init__(f"Child '{child_id}' does not exist.")
        self.child_id = child_id


class TemplateNotFoundError(NotFoundError):
    def __init__(self, template_id: str) -> None:
        super().__init__(f"Chore template '{template_id}' does not exist.")
        self.template_id = template_id


class ScheduledChoreNotFoundError(NotFoundError):
    def __init__(self, schedule_id: str) -> None:
        super().__init__(f"Scheduled chore '{schedule_id}' does not exist.")
        self.schedule_id = schedule_id


class ChoreInstanceNotFoundError(NotFoundError):
    def __init__(self, instance_id: str) -> None:
        super().__init__(f"Chore instance '{instance_id}' does not exist.")
        self.instance_id = instance_id


class ParticipantNotFoundError(NotFoundError):
    def __init__(self, child_id: str, instance_id: str) -> None:
        super().__init__(f"Child '{child_id}' is not a participant of chore instance '{instance_id}'.")
        self.child_id = child_id
        self.instance_id = instance_id


class SettingsNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("Settings have not been initialised yet.")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
class JoinedChoreRequiresMultipleChildrenError(ValidationError):
    def __init__(self) -> None:
        super().__init__("A joined chore needs at least two children.")


class TemplateInUseError(ValidationError):
    def __init__(self, template_id: str, schedule_count: int) -> None:
        super().__init__(
            f"Chore template '{template_id}' is used by {schedule_count} schedule(s) and cannot be removed."
        )
        self.template_id = template_id
        self.schedule_count = schedule_count


class ChoreNotPendingError(ValidationError):
    def __init__(self, instance_id: str, status: str) -> None:
        super().__init__(f"Chore instance '{instance_id}' is {status}; only pending chores can change.")
        self.instance_id = instance_id
        self.status = status


class ChoreAlreadyDoneError(ValidationError):
    def __init__(self, child_id: str, instance_id: str) -> None:
        super().__init__(f"Child '{child_id}' already marked chore instance '{instance_id}' as done.")
        self.child_id = child_id
        self.instance_id = instance_id


class ChoreNotDoneError(ValidationError):
    def __init__(self, child_id: str, instance_id: str) -> None:
        super().__init__(f"Child '{child_id}' has not marked chore instance '{instance_id}' as done.")
        self.child_id = child_id
        self.instance_id = instance_id


class ParticipantAlreadyRatedError(ValidationError):
    def __init__(self, child_id: str, instance_id: str) -> None:
        super().__init__(f"Child '{child_id}' was already rated for chore instance '{instance_id}'.")
        self.child_id = child_id
        self.instance_id = instance_id


class EffortPercentTotalError(ValidationError):
    def __init__(self, total: float) -> None:
        super().__init__(f"Effort percentages must total 100% (got {total:g}%).")
        self.total = total


class InvalidEffortError(ValidationError):
    def __init__(self, child_id: str, effort_percent: float) -> None:
        super().__init__(f"Effort for child '{child_id}' cannot be negative (got {effort_percent:g}%).")
        self.child_id = child_id
        self.effort_percent = effort_percent


class NotJoinedChoreError(ValidationError):
    def __init__(self, instance_id: str) -> None:
        super().__init__(f"Chore instance '{instance_id}' is not a joined chore.")
        self.instance_id = instance_id


class NotAllParticipantsDoneError(ValidationError):
    def __init__(self, instance_id: str, done_count: int, total_count: int) -> None:
        super().__init__(
            f"Only {done_count} of {total_count} participants finished chore instance '{instance_id}'; "
            "force completion to rate it anyway."
        )
        self.instance_id = instance_id
        self.done_count = done_count
        self.total_count = total_count


class InvalidQualityError(ValidationError):
    def __init__(self, quality: object) -> None:
        super().__init__(f"Unknown quality rating {quality!r}; use failed, bad, good or excellent.")
        self.quality = quality


class InvalidAmountError(ValidationError):
    def __init__(self, amount: int) -> None:
        super().__init__(f"Amount must be greater than zero (got {amount}).")
        self.amount = amount


class InsufficientBalanceError(ValidationError):
    def __init__(self, balance: int, requested: int) -> None:
        super().__init__(f"Balance of {balance} is not enough to withdraw {requested}.")
        self.balance = balance
        self.requested = requested


class NegativeBalanceError(ValidationError):
    def __init__(self) -> None:
        super().__init__("Balance cannot go below zero.")


class AccessCodeGenerationError(ValidationError):
    def __init__(self) -> None:
        super().__init__("Could not generate a unique access code.")


class SettingsAlreadyInitializedError(ValidationError):
    def __init__(self) -> None:
        super().__init__("Settings have already been initialised.")


class ChoreNotOptionalError(ValidationError):
    def __init__(self, schedule_id: str) -> None:
        super().__init__(f"Scheduled chore '{schedule_id}' is not optional and cannot be picked up.")
        self.schedule_id = schedule_id


class ChoreNotActiveError(ValidationError):
    def __init__(self, schedule_id: str) -> None:
        super().__init__(f"Scheduled chore '{schedule_id}' is not active.")
        self.schedule_id = schedule_id


class ChoreNotYetAvailableError(ValidationError):
    def __init__(self, schedule_id: str, start_date: str) -> None:
        super().__init__(f"Scheduled chore '{schedule_id}' starts on {start_date}.")
        self.schedule_id = schedule_id
        self.start_date = start_date


class ChoreNoLongerAvailableError(ValidationError):
    def __init__(self, schedule_id: str, end_date: str) -> None:
        super().__init__(f"Scheduled chore '{schedule_id}' ended on {end_date}.")
        self.schedule_id = schedule_id
        self.end_date = end_date


class PickupLimitReachedError(ValidationError):
    def __init__(self, schedule_id: str, limit: int) -> None:
        super().__init__(f"Scheduled chore '{schedule_id}' can only be picked up {limit} time(s) per period.")
        self.schedule_id = schedule_id
        self.limit = limit


class DailyChoresNotCompleteError(ValidationError):
    def __init__(self, chore_name: str) -> None:
        super().__init__(f"Finish '{chore_name}' before picking up extra chores.")
        self.chore_name = chore_name


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
class NoPinSetError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("No parent PIN has been set.")


class IncorrectPinError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("Incorrect PIN.")


class LockedOutError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("Too many failed PIN attempts; try again later.")


class InvalidSessionError(AuthenticationError):
    def __init__(self, message: str = "Authentication required.") -> None:
        super().__init__(message)
