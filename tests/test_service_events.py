import pytest
from pydantic import ValidationError

from intakelog.errors import BatchTooLargeError, InvalidEventError, InvalidQueryError
from intakelog.settings import settings


def event(**overrides):
    e = {
        "timestamp": "2024-01-15T08:30:00Z",
        "item": "oatmeal",
        "amount": 80,
        "unit": "g",
    }
    e.update(overrides)
    return e


def by_id(records):
    return {r.id: r.to_public() for r in records}


class TestIngest:
    def test_round_trip_keeps_all_fields(self, svc):
        batch = [
            event(id="a1", user_id="a", source="app", calories=300, notes="with honey"),
            event(id="a2", user_id="a", source="manual", item="milk", amount=200, unit="ml"),
        ]
        assert svc.ingest_events(batch) == 2
        assert by_id(svc.list_events()) == {"a1": batch[0], "a2": batch[1]}

    def test_fills_defaults(self, svc):
        svc.ingest_events([event()])
        [record] = svc.list_events()
        assert record.id
        assert record.user_id == "u1"
        assert record.source == "manual"
        assert record.calories is None

    def test_generated_ids_are_unique(self, svc):
        svc.ingest_events([event(), event(), event()])
        assert len({r.id for r in svc.list_events()}) == 3

    def test_default_owner_per_call(self, svc):
        svc.ingest_events([event(id="x")], default_owner="someone")
        assert svc.list_events()[0].user_id == "someone"

    def test_empty_batch_is_noop(self, svc, repo):
        assert svc.ingest_events([]) == 0
        assert len(repo) == 0

    def test_same_event_twice_is_idempotent(self, svc):
        e = event(id="same", calories=120)
        assert svc.ingest_events([e]) == 1
        first = by_id(svc.list_events())
        assert svc.ingest_events([e]) == 1
        assert by_id(svc.list_events()) == first

    def test_existing_id_is_replaced(self, svc):
        svc.ingest_events([event(id="r", item="tea", calories=2, notes="green")])
        svc.ingest_events([event(id="r", item="juice", amount=300, unit="ml")])
        [record] = svc.list_events()
        assert record.item == "juice"
        assert record.unit.value == "ml"
        # full replacement: fields missing from the new version are gone
        assert record.calories is None
        assert record.notes is None

    def test_invalid_member_aborts_whole_batch(self, svc):
        svc.ingest_events([event(id="keep", item="bread")])
        before = by_id(svc.list_events())

        bad = event(id="b2")
        del bad["unit"]
        with pytest.raises(InvalidEventError) as exc:
            svc.ingest_events([event(id="b1"), event(id="keep", item="cake"), bad])
        assert exc.value.field == "unit"
        assert by_id(svc.list_events()) == before

    def test_batch_size_limit(self, svc, repo, monkeypatch):
        monkeypatch.setattr(settings, "max_batch_size", 2)
        with pytest.raises(BatchTooLargeError):
            svc.ingest_events([event(), event(), event()])
        assert len(repo) == 0


@pytest.fixture
def january(svc):
    svc.ingest_events(
        [
            event(id="feb", timestamp="2024-02-01T07:00:00Z", calories=50),
            event(id="jan15-late", timestamp="2024-01-15T23:59:59Z"),
            event(id="jan01", timestamp="2024-01-01T00:00:00Z", calories=100),
            event(id="jan15-early", timestamp="2024-01-15T06:00:00Z", calories=50),
            event(id="other", user_id="b", timestamp="2024-01-15T12:00:00Z", calories=999),
        ]
    )
    return svc


class TestList:
    def test_ordered_by_full_timestamp(self, january):
        ids = [r.id for r in january.list_events(owner="u1")]
        assert ids == ["jan01", "jan15-early", "jan15-late", "feb"]

    def test_inclusive_date_range(self, january):
        ids = [r.id for r in january.list_events(owner="u1", from_date="2024-01-10", to_date="2024-01-31")]
        assert ids == ["jan15-early", "jan15-late"]

        ids = [r.id for r in january.list_events(owner="u1", from_date="2024-01-15", to_date="2024-01-15")]
        assert ids == ["jan15-early", "jan15-late"]

    def test_open_ended_ranges(self, january):
        assert [r.id for r in january.list_events(owner="u1", from_date="2024-01-16")] == ["feb"]
        assert [r.id for r in january.list_events(owner="u1", to_date="2024-01-01")] == ["jan01"]

    def test_owner_isolation(self, january):
        assert [r.id for r in january.list_events(owner="b")] == ["other"]
        assert "other" not in {r.id for r in january.list_events(owner="u1")}
        assert january.list_events(owner="nobody") == []

    def test_no_owner_lists_everyone(self, january):
        assert len(january.list_events()) == 5

    def test_empty_strings_mean_no_filter(self, january):
        assert len(january.list_events(owner="", from_date="", to_date="")) == 5

    def test_rejects_malformed_date(self, january):
        with pytest.raises(InvalidQueryError):
            january.list_events(from_date="15/01/2024")

    def test_records_are_read_only(self, january):
        record = january.list_events(owner="b")[0]
        with pytest.raises(ValidationError):
            record.item = "changed"
        assert january.list_events(owner="b")[0].item == "oatmeal"


class TestSummarize:
    def test_absent_calories_count_as_zero(self, svc):
        svc.ingest_events(
            [
                event(user_id="s", calories=100),
                event(user_id="s"),
                event(user_id="s", calories=50),
            ]
        )
        summary = svc.summarize_intake(owner="s")
        assert summary.total_calories == 150
        assert summary.events_count == 3

    def test_uses_same_filter_as_list(self, january):
        summary = january.summarize_intake(owner="u1", from_date="2024-01-10", to_date="2024-01-31")
        assert summary.events_count == 2
        assert summary.total_calories == 50

    def test_empty_result(self, svc):
        summary = svc.summarize_intake(owner="ghost")
        assert summary.model_dump() == {"total_calories": 0, "events_count": 0}
