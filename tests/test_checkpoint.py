"""Tests for the resume checkpoint file."""

import json

from product_ingest.worker.checkpoint import Checkpoint, CheckpointStore


def test_save_and_load(tmp_path):
    store = CheckpointStore(tmp_path / "state" / "checkpoint.json")

    assert store.save(Checkpoint(last_successful_page=12, stats={"fetched": 1200}))

    checkpoint = store.load()
    assert checkpoint.last_successful_page == 12
    assert checkpoint.next_page == 13
    assert checkpoint.stats == {"fetched": 1200}
    assert checkpoint.timestamp


def test_missing_file(tmp_path):
    assert CheckpointStore(tmp_path / "checkpoint.json").load() is None


def test_corrupt_file_is_ignored(tmp_path):
    path = tmp_path / "checkpoint.json"
    path.write_text("{not json", encoding="utf-8")
    assert CheckpointStore(path).load() is None

    path.write_text(json.dumps({"stats": {}}), encoding="utf-8")
    assert CheckpointStore(path).load() is None


def test_save_failure_returns_false(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")

    assert CheckpointStore(blocker / "checkpoint.json").save(Checkpoint(last_successful_page=1)) is False
