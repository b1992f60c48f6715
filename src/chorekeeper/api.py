"""Convert ChoreKeeper data structures to JSON friendly dictionaries."""

from __future__ import annotations

import json
from typing import Dict, Mapping, Optional, Sequence

from .models import (
    BalanceEntry,
    Child,
    ChoreInstance,
    ChoreParticipant,
    ChoreTemplate,
    QualityRating,
    ScheduledChore,
)
from .money import format_currency


class ApiExporter:
    """Serialise domain records for the web layer."""

    def __init__(self, *, currency: str = "$") -> None:
        self.currency = currency

    def child(self, child: Child, *, include_access_code: bool = True) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "id": child.id,
            "name": child.name,
            "avatar_emoji": child.avatar_emoji,
            "balance": child.balance,
            "balance_display": format_currency(child.balance, self.currency),
        }
        if include_access_code:
            payload["access_code"] = child.access_code
        return payload

    def template(self, template: ChoreTemplate) -> Dict[str, object]:
        return {
            "id": template.id,
            "name": template.name,
            "description": template.description,
            "default_reward": template.default_reward,
            "icon": template.icon,
        }

    def schedule(self, schedule: ScheduledChore) -> Dict[str, object]:
        recurrence = schedule.recurrence
        return {
            "id": schedule.id,
            "template_id": schedule.template_id,
            "child_ids": list(schedule.child_ids),
            "reward": schedule.reward,
            "is_joined": schedule.is_joined,
            "is_optional": schedule.is_optional,
            "max_pickups_per_period": schedule.max_pickups_per_period,
            "is_active": schedule.is_active,
            "schedule_type": recurrence.type.value,
            "days": sorted(recurrence.days) if recurrence.days is not None else None,
            "start_date": recurrence.start_date,
            "end_date": recurrence.end_date,
        }

    def participant(self, participant: ChoreParticipant) -> Dict[str, object]:
        return {
            "child_id": participant.child_id,
            "status": participant.status.value,
            "completed_at": participant.completed_at.isoformat() if participant.completed_at else None,
            "effort_percent": participant.effort_percent,
            "earned_reward": participant.earned_reward,
            "quality": participant.quality.value if participant.quality else None,
        }

    def instance(
        self,
        instance: ChoreInstance,
        participants: Sequence[ChoreParticipant] = (),
        *,
        template: Optional[ChoreTemplate] = None,
    ) -> Dict[str, object]:
        return {
            "id": instance.id,
            "scheduled_chore_id": instance.scheduled_chore_id,
            "due_date": instance.due_date,
            "is_joined": instance.is_joined,
            "status": instance.status.value,
            "total_reward": instance.total_reward,
            "quality": instance.quality.value if instance.quality else None,
            "completed_at": instance.completed_at.isoformat() if instance.completed_at else None,
            "notes": instance.notes,
            "chore": self.template(template) if template else None,
            "participants": [self.participant(participant) for participant in participants],
        }

    def balance_entry(self, entry: BalanceEntry) -> Dict[str, object]:
        return {
            "id": entry.id,
            "child_id": entry.child_id,
            "amount": entry.amount,
            "amount_display": format_currency(entry.amount, self.currency),
            "created_at": entry.created_at.isoformat(),
            "note": entry.note,
        }

    def reward_preview(self, preview: Mapping[QualityRating, int]) -> Dict[str, Dict[str, object]]:
        return {
            quality.value: {"amount": amount, "display": format_currency(amount, self.currency)}
            for quality, amount in preview.items()
        }

    def to_json(self, payload: Mapping[str, object]) -> str:
        return json.dumps(payload, sort_keys=True)


__all__ = ["ApiExporter"]
