import json

import pytest

from adapters.local.json_checkpoint_store import JsonCheckpointStore
from adapters.local.memory_checkpoint_store import InMemoryCheckpointStore
from domain.models import (
    Checkpoint, MediaAsset, NormalizedAudio, Segment, Stage, StageStatus,
)


def _checkpoint():
    cp = Checkpoint(
        run_id="run-1",
        asset_name="talk.mp4",
        asset_mime_type="video/mp4",
        asset_size=5,
        asset=MediaAsset(data=b"video", mime_type="video/mp4", name="talk.mp4"),
    )
    cp.converted = NormalizedAudio(data=b"converted-audio", sample_rate=16000)
    cp.segments = [
        Segment(id="seg-000", index=0, start=0.0, end=154.5, audio=b"left"),
        Segment(id="seg-001", index=1, start=148.5, end=303.0, audio=b"right"),
    ]
    cp.pieces = {"seg-000": "hello there"}
    cp.sources = {"seg-000": "groq/whisper-large-v3"}
    cp.record(Stage.CONVERT).start()
    cp.record(Stage.CONVERT).succeed()
    cp.record(Stage.TRANSCRIBE).start()
    cp.record(Stage.TRANSCRIBE).fail(RuntimeError("provider down"))
    return cp


@pytest.fixture(params=["json", "memory"])
def any_store(request, tmp_path):
    if request.param == "json":
        return JsonCheckpointStore(str(tmp_path))
    return InMemoryCheckpointStore()


def test_save_and_load(any_store):
    any_store.save(_checkpoint())

    cp = any_store.load("run-1")

    assert cp.asset.data == b"video"
    assert cp.asset.mime_type == "video/mp4"
    assert cp.converted.data == b"converted-audio"
    assert cp.converted.sample_rate == 16000
    assert [(s.id, s.start, s.end, s.audio) for s in cp.segments] == [
        ("seg-000", 0.0, 154.5, b"left"),
        ("seg-001", 148.5, 303.0, b"right"),
    ]
    assert cp.pieces == {"seg-000": "hello there"}
    assert cp.used_sources() == ["groq/whisper-large-v3"]
    assert cp.record(Stage.CONVERT).status == StageStatus.SUCCESS
    assert cp.record(Stage.TRANSCRIBE).status == StageStatus.ERROR
    assert cp.record(Stage.TRANSCRIBE).error == "provider down"
    assert cp.record(Stage.SPLIT).status == StageStatus.IDLE


def test_load_unknown_run(any_store):
    assert any_store.load("missing") is None


def test_delete(any_store):
    any_store.save(_checkpoint())
    any_store.delete("run-1")
    any_store.delete("run-1")
    assert any_store.load("run-1") is None


def test_saved_copy_is_isolated_from_later_changes(any_store):
    cp = _checkpoint()
    any_store.save(cp)

    cp.pieces["seg-001"] = "later"
    cp.record(Stage.SPLIT).start()

    stored = any_store.load("run-1")
    assert "seg-001" not in stored.pieces
    assert stored.record(Stage.SPLIT).status == StageStatus.IDLE


def test_json_layout(tmp_path):
    store = JsonCheckpointStore(str(tmp_path))
    store.save(_checkpoint())

    run_dir = tmp_path / "run-1"
    manifest = json.loads((run_dir / "checkpoint.json").read_text())
    assert manifest["stages"]["transcribe"]["status"] == "error"
    assert (run_dir / "converted.mp3").read_bytes() == b"converted-audio"
    assert sorted(p.name for p in (run_dir / "segments").iterdir()) == ["seg-000.mp3", "seg-001.mp3"]


def test_json_store_drops_cleared_artifacts(tmp_path):
    store = JsonCheckpointStore(str(tmp_path))
    cp = _checkpoint()
    store.save(cp)

    cp.clear_artifacts_after(Stage.CONVERT)
    store.save(cp)

    run_dir = tmp_path / "run-1"
    assert not (run_dir / "converted.mp3").exists()
    assert not (run_dir / "segments").exists()
    loaded = store.load("run-1")
    assert loaded.converted is None
    assert loaded.segments is None
    assert loaded.pieces == {}


def test_json_store_removes_stale_segment_files(tmp_path):
    store = JsonCheckpointStore(str(tmp_path))
    cp = _checkpoint()
    store.save(cp)

    cp.segments = cp.segments[:1]
    store.save(cp)

    assert [p.name for p in (tmp_path / "run-1" / "segments").iterdir()] == ["seg-000.mp3"]


def test_json_store_survives_restart(tmp_path):
    JsonCheckpointStore(str(tmp_path)).save(_checkpoint())

    cp = JsonCheckpointStore(str(tmp_path)).load("run-1")

    assert cp.missing_prerequisite(Stage.TRANSCRIBE) is None
    assert cp.record(Stage.CONVERT).finished_at is not None


@pytest.mark.parametrize("run_id", ["..", "../outside", "a/b", "", ".hidden"])
def test_json_store_rejects_unsafe_run_ids(tmp_path, run_id):
    store = JsonCheckpointStore(str(tmp_path / "runs"))
    cp = _checkpoint()
    cp.run_id = run_id

    with pytest.raises(ValueError):
        store.save(cp)
    assert store.load(run_id) is None
    assert not (tmp_path / "outside").exists()


def test_json_store_skips_unchanged_blobs(tmp_path):
    store = JsonCheckpointStore(str(tmp_path))
    cp = _checkpoint()
    store.save(cp)
    converted = tmp_path / "run-1" / "converted.mp3"
    converted.write_bytes(b"touched")

    cp.pieces["seg-001"] = "general kenobi"
    store.save(cp)

    assert converted.read_bytes() == b"touched"
    assert store.load("run-1").pieces["seg-001"] == "general kenobi"


def test_json_store_rewrites_replaced_blobs(tmp_path):
    store = JsonCheckpointStore(str(tmp_path))
    cp = _checkpoint()
    store.save(cp)

    cp.converted = NormalizedAudio(data=b"reconverted-audio", sample_rate=16000)
    store.save(cp)

    assert (tmp_path / "run-1" / "converted.mp3").read_bytes() == b"reconverted-audio"


def test_json_store_restores_deleted_blobs(tmp_path):
    store = JsonCheckpointStore(str(tmp_path))
    cp = _checkpoint()
    store.save(cp)
    (tmp_path / "run-1" / "converted.mp3").unlink()

    store.save(cp)

    assert (tmp_path / "run-1" / "converted.mp3").read_bytes() == b"converted-audio"
