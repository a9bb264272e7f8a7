"""
Tests for events.py and storage.py.
"""

import csv
import json

from leadcrawler.events import (
    LOG,
    PROGRESS,
    RESULT,
    STATUS_CHANGE,
    CallbackObserver,
    EventBus,
    LoggingObserver,
    Observer,
    RecordingObserver,
)
from leadcrawler.storage import JsonCsvResultStore


class ExplodingObserver(Observer):
    def on_event(self, job_id, kind, payload):
        raise RuntimeError("listener bug")


# ====================================================================
# EventBus
# ====================================================================

class TestEventBus:

    def test_fan_out_in_order(self):
        first, second = RecordingObserver(), RecordingObserver()
        bus = EventBus([first, second])
        bus.emit("j1", LOG, {"message": "a"})
        bus.emit("j1", RESULT, {"name": "x"})
        assert first.events == second.events
        assert [kind for _, kind, _ in first.events] == [LOG, RESULT]

    def test_failing_observer_does_not_stop_delivery(self):
        recorder = RecordingObserver()
        bus = EventBus([ExplodingObserver(), recorder])
        bus.emit("j1", PROGRESS, {})
        assert len(recorder.events) == 1

    def test_subscribe_is_idempotent(self):
        recorder = RecordingObserver()
        bus = EventBus()
        bus.subscribe(recorder)
        bus.subscribe(recorder)
        assert bus.observers == [recorder]
        bus.unsubscribe(recorder)
        bus.emit("j1", LOG, {})
        assert recorder.events == []

    def test_callback_kind_filter(self):
        seen = []
        bus = EventBus([CallbackObserver(lambda j, k, p: seen.append(k), kinds=[RESULT])])
        bus.emit("j1", LOG, {})
        bus.emit("j1", RESULT, {})
        assert seen == [RESULT]

    def test_recording_filters_by_job(self):
        recorder = RecordingObserver()
        bus = EventBus([recorder])
        bus.emit("j1", RESULT, 1)
        bus.emit("j2", RESULT, 2)
        assert recorder.of_kind(RESULT, job_id="j2") == [2]

    def test_logging_observer_accepts_every_kind(self):
        observer = LoggingObserver()
        observer.on_event("j1", PROGRESS, {"success_count": 1, "total": 2, "eta_seconds": 5})
        observer.on_event("j1", STATUS_CHANGE, {"state": "running", "previous": "initializing"})
        observer.on_event("j1", LOG, {"message": "x"})


# ====================================================================
# JsonCsvResultStore
# ====================================================================

class TestJsonCsvResultStore:

    RESULTS = [
        {"name": "Padaria", "phone": "+55 (11) 3333-4444", "phone_list": ["a", "b"]},
        {"name": "Café São João", "email": "ola@cafe.com.br"},
    ]

    def test_json_document(self, tmp_path):
        store = JsonCsvResultStore(str(tmp_path))
        location = store.save_results(
            "job1", {"target": 2}, {"success_count": 2}, [{"timestamp": "t", "message": "m"}], self.RESULTS,
        )
        with open(location, encoding="utf-8") as f:
            data = json.load(f)
        assert data["metadata"]["jobId"] == "job1"
        assert data["metadata"]["totalResults"] == 2
        assert data["config"] == {"target": 2}
        assert data["results"][1]["name"] == "Café São João"

    def test_csv_export(self, tmp_path):
        store = JsonCsvResultStore(str(tmp_path))
        location = store.save_results("job1", {}, {}, [], self.RESULTS)
        csv_path = location[: -len(".json")] + ".csv"
        with open(csv_path, "rb") as f:
            assert f.read(3) == b"\xef\xbb\xbf"
        with open(csv_path, encoding="utf-8-sig", newline="") as f:
            rows = list(csv.DictReader(f, delimiter=";"))
        assert list(rows[0].keys()) == ["name", "phone", "phone_list", "email"]
        assert rows[0]["phone_list"] == "a, b"
        assert rows[1]["phone"] == ""

    def test_no_csv_without_results(self, tmp_path):
        store = JsonCsvResultStore(str(tmp_path))
        store.save_results("job1", {}, {}, [], [])
        assert [p.suffix for p in tmp_path.iterdir()] == [".json"]
