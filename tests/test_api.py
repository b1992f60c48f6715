import json
from datetime import datetime, timezone

from chorekeeper.api import ApiExporter
from chorekeeper.models import (
    BalanceEntry,
    Child,
    ChoreInstance,
    ChoreParticipant,
    ChoreTemplate,
    ParticipantStatus,
    QualityRating,
)
from chorekeeper.ops import StructuredLogger


def test_exporter_formats_with_household_currency() -> None:
    exporter = ApiExporter(currency="Kč")
    child = Child(id="a", name="Ava", avatar_emoji="🙂", access_code="0420", balance=1234)
    template = ChoreTemplate(id="t", name="Dishes", default_reward=100, icon="🍽")
    instance = ChoreInstance(id="i", scheduled_chore_id="s", due_date="2024-01-08", is_joined=False, total_reward=100)
    participant = ChoreParticipant(
        id="p", instance_id="i", child_id="a", status=ParticipantStatus.DONE, completed_at=datetime(2024, 1, 8, 10, 0, tzinfo=timezone.utc)
    )

    assert exporter.child(child)["balance_display"] == "12.34 Kč"
    assert "access_code" not in exporter.child(child, include_access_code=False)
    payload = exporter.instance(instance, [participant], template=template)
    assert payload["chore"]["name"] == "Dishes"
    assert payload["participants"][0]["completed_at"] == "2024-01-08T10:00:00+00:00"
    entry = BalanceEntry(id="e", child_id="a", amount=-250, created_at=datetime(2024, 1, 8, tzinfo=timezone.utc))
    assert exporter.balance_entry(entry)["amount_display"] == "-2.50 Kč"
    assert exporter.reward_preview({QualityRating.GOOD: 100})["good"] == {"amount": 100, "display": "1.00 Kč"}
    assert json.loads(exporter.to_json({"b": 1, "a": 2})) == {"a": 2, "b": 1}


def test_structured_logger_writes_json_lines(tmp_path) -> None:
    path = tmp_path / "logs" / "events.jsonl"
    logger = StructuredLogger(path=path, max_entries=2)

    logger.log("child_created", child="a")
    logger.log("instance_created", instance="i", due_date="2024-01-08")
    logger.log("participant_done", instance="i", child="a", at=datetime(2024, 1, 8, tzinfo=timezone.utc))

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["event"] for line in lines] == ["child_created", "instance_created", "participant_done"]
    assert lines[2]["at"] == "2024-01-08 00:00:00+00:00"
    assert [entry["event"] for entry in logger.tail()] == ["instance_created", "participant_done"]
    assert len(logger.events("participant_done")) == 1
