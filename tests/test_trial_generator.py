"""Trial fan-out and the asynchronous generation pool."""

from __future__ import annotations

import asyncio
import time

import pytest

from conftest import TRUSTED_ORIGIN, trusted
from logic.errors import InvalidRequest, NotFound
from logic.trial_generator import GenerationJob, TrialGenerator, TrialWorkerPool
from tools.image_generator import ImageGenerator, MockImageGenerator


class SlowImageGenerator(ImageGenerator):
    def __init__(self, delay: float) -> None:
        self.delay = delay

    def generate(self, user_photo_url: str, model_image_url: str, fabric_description: str) -> str:
        time.sleep(self.delay)
        return "https://images.example.test/slow.png"


class EmptyImageGenerator(ImageGenerator):
    def generate(self, user_photo_url: str, model_image_url: str, fabric_description: str) -> str:
        return ""


def _catalog(store, models: int = 2, fabrics: int = 2):
    model_ids = [
        store.create_model(
            name=f"Model {index}",
            image_url=trusted(f"models/{index}.jpg"),
            category="casual",
            body_shapes=["hourglass"],
        ).id
        for index in range(models)
    ]
    fabric_ids = [
        store.create_fabric(
            name=f"Fabric {index}",
            image_url=trusted(f"fabrics/{index}.jpg"),
            texture="cotton",
            skin_tones=["medium"],
            price=100 + index,
        ).id
        for index in range(fabrics)
    ]
    return model_ids, fabric_ids


def _user(store, photo_url=trusted("users/me.jpg")):
    return store.create_user("subject-1", email="me@example.com", name="Me", photo_url=photo_url)


def _run(store, generator, user_id, model_ids, fabric_ids, timeout=2.0, fail_without_photo=False):
    pool = TrialWorkerPool(store, generator, workers=2, timeout_seconds=timeout)
    trials_service = TrialGenerator(
        store, pool, trusted_image_origin=TRUSTED_ORIGIN, fail_without_photo=fail_without_photo
    )

    async def scenario():
        try:
            created = await trials_service.generate(user_id, model_ids, fabric_ids)
            await pool.drain()
            return created
        finally:
            await pool.shutdown()

    return asyncio.run(scenario())


def test_generate_creates_one_pending_trial_per_pair(store) -> None:
    user = _user(store)
    model_ids, fabric_ids = _catalog(store, models=2, fabrics=3)
    pool = TrialWorkerPool(store, MockImageGenerator(), workers=1)
    service = TrialGenerator(store, pool, trusted_image_origin=TRUSTED_ORIGIN)

    async def scenario():
        try:
            return await service.generate(user.id, model_ids, fabric_ids)
        finally:
            await pool.shutdown()

    trials = asyncio.run(scenario())

    assert len(trials) == 6
    assert len({trial.id for trial in trials}) == 6
    assert all(trial.status == "pending" and trial.image_url == "" for trial in trials)
    assert [(trial.model_id, trial.fabric_id) for trial in trials] == [
        (model_id, fabric_id) for model_id in model_ids for fabric_id in fabric_ids
    ]


def test_generated_trials_complete_with_an_image(store) -> None:
    user = _user(store)
    model_ids, fabric_ids = _catalog(store)
    generator = MockImageGenerator()

    trials = _run(store, generator, user.id, model_ids, fabric_ids)

    stored = [store.get_trial(trial.id) for trial in trials]
    assert all(trial.status == "completed" for trial in stored)
    assert all(trial.image_url.startswith("https://images.example.test/tryon/") for trial in stored)
    assert len(generator.calls) == 4
    assert {call[0] for call in generator.calls} == {user.photo_url}
    assert {call[2] for call in generator.calls} == {"cotton Fabric 0", "cotton Fabric 1"}


def test_generator_failure_marks_trials_failed(store) -> None:
    user = _user(store)
    model_ids, fabric_ids = _catalog(store, models=1, fabrics=2)

    trials = _run(store, MockImageGenerator(fail=True), user.id, model_ids, fabric_ids)

    for trial in trials:
        stored = store.get_trial(trial.id)
        assert stored.status == "failed"
        assert stored.image_url == ""


def test_empty_generator_result_marks_trial_failed(store) -> None:
    user = _user(store)
    model_ids, fabric_ids = _catalog(store, models=1, fabrics=1)

    trials = _run(store, EmptyImageGenerator(), user.id, model_ids, fabric_ids)

    assert store.get_trial(trials[0].id).status == "failed"


def test_generation_timeout_marks_trial_failed(store) -> None:
    user = _user(store)
    model_ids, fabric_ids = _catalog(store, models=1, fabrics=1)

    trials = _run(store, SlowImageGenerator(delay=0.5), user.id, model_ids, fabric_ids, timeout=0.05)

    stored = store.get_trial(trials[0].id)
    assert stored.status == "failed"
    assert stored.image_url == ""


def test_trials_without_photo_stay_pending(store) -> None:
    user = _user(store, photo_url=None)
    model_ids, fabric_ids = _catalog(store, models=1, fabrics=2)
    generator = MockImageGenerator()

    trials = _run(store, generator, user.id, model_ids, fabric_ids)

    assert [store.get_trial(trial.id).status for trial in trials] == ["pending", "pending"]
    assert generator.calls == []


def test_trials_with_untrusted_photo_are_not_generated(store) -> None:
    user = _user(store, photo_url="https://firebasestorage.googleapis.com.attacker.example/me.jpg")
    model_ids, fabric_ids = _catalog(store, models=1, fabrics=1)
    generator = MockImageGenerator()

    trials = _run(store, generator, user.id, model_ids, fabric_ids)

    assert store.get_trial(trials[0].id).status == "pending"
    assert generator.calls == []


def test_trials_without_photo_fail_when_configured(store) -> None:
    user = _user(store, photo_url=None)
    model_ids, fabric_ids = _catalog(store, models=1, fabrics=1)

    trials = _run(store, MockImageGenerator(), user.id, model_ids, fabric_ids, fail_without_photo=True)

    assert trials[0].status == "failed"
    assert store.get_trial(trials[0].id).status == "failed"


def test_missing_catalog_entry_marks_trial_failed(store) -> None:
    user = _user(store)
    model_ids, _ = _catalog(store, models=1, fabrics=0)

    trials = _run(store, MockImageGenerator(), user.id, model_ids, ["no-such-fabric"])

    assert store.get_trial(trials[0].id).status == "failed"


@pytest.mark.parametrize(
    "model_count, fabric_count",
    [(0, 1), (1, 0), (5, 1), (1, 5)],
)
def test_invalid_selection_creates_no_trials(store, model_count, fabric_count) -> None:
    user = _user(store)
    model_ids, fabric_ids = _catalog(store, models=model_count, fabrics=fabric_count)

    with pytest.raises(InvalidRequest):
        _run(store, MockImageGenerator(), user.id, model_ids, fabric_ids)

    assert store.list_trials() == []


def test_duplicate_ids_collapse(store) -> None:
    user = _user(store)
    model_ids, fabric_ids = _catalog(store, models=1, fabrics=1)

    trials = _run(store, MockImageGenerator(), user.id, model_ids * 5, fabric_ids * 2)

    assert len(trials) == 1


def test_unknown_user_is_not_found(store) -> None:
    model_ids, fabric_ids = _catalog(store, models=1, fabrics=1)

    with pytest.raises(NotFound):
        _run(store, MockImageGenerator(), "ghost", model_ids, fabric_ids)

    assert store.list_trials() == []


def test_terminal_trial_is_not_transitioned_again(store) -> None:
    user = _user(store)
    model_ids, fabric_ids = _catalog(store, models=1, fabrics=1)
    trial = store.create_trial(user.id, model_ids[0], fabric_ids[0])
    store.complete_trial(trial.id, "failed")
    pool = TrialWorkerPool(store, MockImageGenerator(), workers=1)

    async def scenario():
        try:
            await pool.submit(
                GenerationJob(
                    trial_id=trial.id,
                    user_photo_url=user.photo_url,
                    model_id=trial.model_id,
                    fabric_id=trial.fabric_id,
                )
            )
            await pool.drain()
        finally:
            await pool.shutdown()

    asyncio.run(scenario())

    stored = store.get_trial(trial.id)
    assert stored.status == "failed"
    assert stored.image_url == ""


def test_trial_lookup_is_owner_scoped(store) -> None:
    user = _user(store)
    other = store.create_user("subject-2", email="o@example.com", name="Other")
    model_ids, fabric_ids = _catalog(store, models=1, fabrics=1)
    trial = store.create_trial(user.id, model_ids[0], fabric_ids[0])
    service = TrialGenerator(store, TrialWorkerPool(store, MockImageGenerator()), "https://x")

    assert service.get_for_user(user.id, trial.id).id == trial.id
    assert service.list_for_user(other.id) == []
    with pytest.raises(NotFound):
        service.get_for_user(other.id, trial.id)


def test_pool_requires_workers(store) -> None:
    with pytest.raises(ValueError):
        TrialWorkerPool(store, MockImageGenerator(), workers=0)


def test_shutdown_fails_jobs_that_did_not_finish(store) -> None:
    user = _user(store)
    model_ids, fabric_ids = _catalog(store, models=1, fabrics=3)
    pool = TrialWorkerPool(
        store, SlowImageGenerator(delay=0.5), workers=1, timeout_seconds=5.0, shutdown_grace_seconds=0.05
    )
    service = TrialGenerator(store, pool, trusted_image_origin=TRUSTED_ORIGIN)

    async def scenario():
        created = await service.generate(user.id, model_ids, fabric_ids)
        await pool.shutdown()
        return created

    trials = asyncio.run(scenario())

    stored = [store.get_trial(trial.id) for trial in trials]
    assert [trial.status for trial in stored] == ["failed", "failed", "failed"]
    assert all(trial.image_url == "" for trial in stored)


def test_shutdown_lets_quick_jobs_finish(store) -> None:
    user = _user(store)
    model_ids, fabric_ids = _catalog(store, models=1, fabrics=2)
    pool = TrialWorkerPool(store, MockImageGenerator(), workers=1, shutdown_grace_seconds=2.0)
    service = TrialGenerator(store, pool, trusted_image_origin=TRUSTED_ORIGIN)

    async def scenario():
        created = await service.generate(user.id, model_ids, fabric_ids)
        await pool.shutdown()
        return created

    trials = asyncio.run(scenario())

    assert [store.get_trial(trial.id).status for trial in trials] == ["completed", "completed"]
