from __future__ import annotations

from pathlib import Path

import pytest

from intake_flow.registry import StepRegistry
from intake_flow.schemas import FormState
from intake_flow.storage import JsonFileStorage, MemoryStorage, StateStorage, build_storage
from intake_flow.store import STEP_OFFSETS_FIELD, FormStateStore


REGISTRY = StepRegistry.from_routes(["A", "B", "C"])
KEY = "session-1:test-form-storage"


@pytest.fixture(params=["memory", "file"])
def storage(request: pytest.FixtureRequest, tmp_path: Path) -> StateStorage:
    if request.param == "memory":
        return MemoryStorage()
    return JsonFileStorage(tmp_path)


def test_mark_step_completed_is_idempotent(storage: StateStorage) -> None:
    store = FormStateStore(storage, KEY, REGISTRY)

    store.mark_step_completed("A")
    store.mark_step_completed("A")

    assert store.completed_steps == ("A",)


def test_unknown_steps_are_not_recorded(storage: StateStorage) -> None:
    store = FormStateStore(storage, KEY, REGISTRY)

    store.mark_step_completed("/c/wm/results")

    assert store.completed_steps == ()


def test_state_survives_reload(storage: StateStorage) -> None:
    store = FormStateStore(storage, KEY, REGISTRY)
    store.set_current_step("B")
    store.mark_step_completed("A")
    store.set_field("gender", "yes")
    store.set_fields({"current-weight": 180, "cravings": "sweet"})

    reloaded = FormStateStore(storage, KEY, REGISTRY)

    assert reloaded.current_step == "B"
    assert reloaded.completed_steps == ("A",)
    assert reloaded.form_data == {"gender": "yes", "current-weight": 180, "cravings": "sweet"}


def test_snapshot_uses_camel_case_envelope(storage: StateStorage) -> None:
    store = FormStateStore(storage, KEY, REGISTRY)
    store.mark_step_completed("A")

    assert storage.load(KEY) == {
        "state": {"currentStep": "", "completedSteps": ["A"], "formData": {}},
        "version": 0,
    }


def test_reset_form_empties_everything(storage: StateStorage) -> None:
    store = FormStateStore(storage, KEY, REGISTRY)
    store.set_current_step("C")
    store.mark_step_completed("A")
    store.mark_step_completed("B")
    store.set_field("age-group", "25-34")

    store.reset_form()

    assert store.state == FormState()
    assert storage.load(KEY) is None
    assert FormStateStore(storage, KEY, REGISTRY).state == FormState()


def test_step_offsets(storage: StateStorage) -> None:
    store = FormStateStore(storage, KEY, REGISTRY)

    assert store.get_step_offset("B") is None
    store.set_step_offset("B", 3)

    assert store.get_step_offset("B") == 3
    assert store.form_data[STEP_OFFSETS_FIELD] == {"B": 3}


def test_state_copy_is_detached(storage: StateStorage) -> None:
    store = FormStateStore(storage, KEY, REGISTRY)
    store.set_field("gender", "yes")

    snapshot = store.state
    snapshot.form_data["gender"] = "no"
    snapshot.completed_steps.append("A")

    assert store.form_data == {"gender": "yes"}
    assert store.completed_steps == ()


def test_unknown_completed_steps_are_dropped_on_load() -> None:
    storage = MemoryStorage()
    storage.save(
        KEY,
        {"state": {"currentStep": "B", "completedSteps": ["A", "retired-step"], "formData": {}}, "version": 0},
    )

    store = FormStateStore(storage, KEY, REGISTRY)

    assert store.completed_steps == ("A",)


def test_corrupt_file_snapshot_starts_fresh(tmp_path: Path) -> None:
    storage = JsonFileStorage(tmp_path)
    store = FormStateStore(storage, KEY, REGISTRY)
    store.mark_step_completed("A")
    next(tmp_path.glob("*.json")).write_text("{not json", encoding="utf-8")

    assert FormStateStore(storage, KEY, REGISTRY).state == FormState()


def test_build_storage_selects_backend(tmp_path: Path) -> None:
    assert isinstance(build_storage(None), MemoryStorage)
    assert isinstance(build_storage(str(tmp_path / "state")), JsonFileStorage)
    assert (tmp_path / "state").is_dir()


def test_file_storage_keeps_similar_keys_apart(tmp_path: Path) -> None:
    storage = JsonFileStorage(tmp_path)
    FormStateStore(storage, "alice smith:test-form-storage", REGISTRY).mark_step_completed("A")

    other = FormStateStore(storage, "alice_smith:test-form-storage", REGISTRY)

    assert other.completed_steps == ()
    assert FormStateStore(storage, "alice smith:test-form-storage", REGISTRY).completed_steps == ("A",)
    assert len(list(tmp_path.glob("*.json"))) == 1
