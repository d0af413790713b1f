"""Trial fan-out and asynchronous try-on image generation.

``TrialGenerator.generate`` validates a selection, creates one pending trial
per (model, fabric) pair and returns them straight away. Image generation
happens afterwards in a :class:`TrialWorkerPool`: a fixed number of workers
pull jobs from a queue, run the blocking generator in a thread under a
timeout and publish outcomes onto a completion queue. A single supervisor
drains that queue and applies the terminal transition, so a trial is moved
out of ``pending`` exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from logic.errors import InvalidRequest, NotFound
from logic.validation import is_trusted_image_url
from memory.entity_store import EntityStore
from models.entities import Trial
from models.taxonomy import TRIAL_COMPLETED, TRIAL_FAILED
from tools.image_generator import ImageGenerator
from tryon_app.logging_config import correlation_context, ensure_correlation_id, get_logger, log_event

LOGGER = get_logger(__name__)

MAX_MODELS_PER_REQUEST = 4
MAX_FABRICS_PER_REQUEST = 4


@dataclass
class GenerationJob:
    trial_id: str
    user_photo_url: str
    model_id: str
    fabric_id: str
    correlation_id: Optional[str] = None


@dataclass
class GenerationOutcome:
    trial_id: str
    status: str
    image_url: str = ""
    error: Optional[str] = None
    correlation_id: Optional[str] = None


class TrialWorkerPool:
    """Bounded pool of asyncio workers feeding a completion queue."""

    def __init__(
        self,
        store: EntityStore,
        generator: ImageGenerator,
        workers: int = 4,
        timeout_seconds: float = 60.0,
        shutdown_grace_seconds: float = 5.0,
    ) -> None:
        if workers <= 0:
            raise ValueError("workers must be positive")
        self.store = store
        self.generator = generator
        self.workers = workers
        self.timeout_seconds = timeout_seconds
        self.shutdown_grace_seconds = shutdown_grace_seconds
        # submitted trials whose outcome has not been recorded yet
        self._outstanding: Set[str] = set()
        self._jobs: Optional[asyncio.Queue] = None
        self._completions: Optional[asyncio.Queue] = None
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self.running:
            return
        self._jobs = asyncio.Queue()
        self._completions = asyncio.Queue()
        self._tasks = [
            asyncio.create_task(self._worker(index), name=f"trial-worker-{index}")
            for index in range(self.workers)
        ]
        self._tasks.append(asyncio.create_task(self._supervise(), name="trial-supervisor"))
        log_event(LOGGER, logging.INFO, "trial_pool_started", workers=self.workers)

    async def submit(self, job: GenerationJob) -> None:
        if not self.running:
            await self.start()
        assert self._jobs is not None
        self._outstanding.add(job.trial_id)
        await self._jobs.put(job)

    async def drain(self) -> None:
        """Wait until every submitted job has been generated and recorded."""

        if not self.running:
            return
        assert self._jobs is not None and self._completions is not None
        await self._jobs.join()
        await self._completions.join()

    async def shutdown(self) -> None:
        """Stop the pool, giving queued jobs ``shutdown_grace_seconds`` to finish.

        Trials whose jobs were still queued or running when the grace period
        ran out are marked ``failed`` so none is left ``pending``.
        """

        if self.running and self._outstanding:
            try:
                await asyncio.wait_for(self.drain(), timeout=self.shutdown_grace_seconds)
            except asyncio.TimeoutError:
                log_event(
                    LOGGER,
                    logging.WARNING,
                    "trial_pool_drain_timed_out",
                    outstanding=len(self._outstanding),
                )
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._fail_outstanding()
        if tasks:
            log_event(LOGGER, logging.INFO, "trial_pool_stopped")

    def _fail_outstanding(self) -> None:
        abandoned, self._outstanding = self._outstanding, set()
        for trial_id in sorted(abandoned):
            try:
                self._apply(
                    GenerationOutcome(
                        trial_id=trial_id,
                        status=TRIAL_FAILED,
                        error="generation abandoned at shutdown",
                    )
                )
            except Exception:
                log_event(
                    LOGGER,
                    logging.ERROR,
                    "trial_transition_failed",
                    trial_id=trial_id,
                    exc_info=True,
                )

    async def _worker(self, index: int) -> None:
        assert self._jobs is not None and self._completions is not None
        while True:
            job = await self._jobs.get()
            try:
                with correlation_context(job.correlation_id):
                    outcome = await self._run(job)
                await self._completions.put(outcome)
            finally:
                self._jobs.task_done()

    async def _run(self, job: GenerationJob) -> GenerationOutcome:
        model = self.store.get_model(job.model_id)
        fabric = self.store.get_fabric(job.fabric_id)
        if model is None or fabric is None:
            return GenerationOutcome(
                trial_id=job.trial_id,
                status=TRIAL_FAILED,
                error="model or fabric no longer exists",
                correlation_id=job.correlation_id,
            )

        try:
            image_url = await asyncio.wait_for(
                asyncio.to_thread(
                    self.generator.generate,
                    job.user_photo_url,
                    model.image_url,
                    fabric.generation_description,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return GenerationOutcome(
                trial_id=job.trial_id,
                status=TRIAL_FAILED,
                error=f"timed out after {self.timeout_seconds}s",
                correlation_id=job.correlation_id,
            )
        except Exception as exc:
            return GenerationOutcome(
                trial_id=job.trial_id,
                status=TRIAL_FAILED,
                error=str(exc) or type(exc).__name__,
                correlation_id=job.correlation_id,
            )

        if not image_url:
            return GenerationOutcome(
                trial_id=job.trial_id,
                status=TRIAL_FAILED,
                error="generator returned no image",
                correlation_id=job.correlation_id,
            )
        return GenerationOutcome(
            trial_id=job.trial_id,
            status=TRIAL_COMPLETED,
            image_url=image_url,
            correlation_id=job.correlation_id,
        )

    async def _supervise(self) -> None:
        assert self._completions is not None
        while True:
            outcome = await self._completions.get()
            try:
                with correlation_context(outcome.correlation_id):
                    self._apply(outcome)
            except Exception:
                log_event(
                    LOGGER,
                    logging.ERROR,
                    "trial_transition_failed",
                    trial_id=outcome.trial_id,
                    exc_info=True,
                )
            finally:
                self._completions.task_done()

    def _apply(self, outcome: GenerationOutcome) -> None:
        self._outstanding.discard(outcome.trial_id)
        image_url = outcome.image_url if outcome.status == TRIAL_COMPLETED else ""
        updated = self.store.complete_trial(outcome.trial_id, outcome.status, image_url)
        if updated is None:
            log_event(
                LOGGER,
                logging.WARNING,
                "trial_already_terminal",
                trial_id=outcome.trial_id,
                status=outcome.status,
            )
            return
        level = logging.INFO if outcome.status == TRIAL_COMPLETED else logging.WARNING
        log_event(
            LOGGER,
            level,
            "trial_" + outcome.status,
            trial_id=outcome.trial_id,
            error=outcome.error,
        )


def _unique_ids(values: Iterable[str], field: str) -> List[str]:
    result: List[str] = []
    for value in values:
        key = str(value).strip()
        if not key:
            raise InvalidRequest("Identifiers must be non-empty", field=field)
        if key not in result:
            result.append(key)
    return result


class TrialGenerator:
    """Creates trials for every model/fabric pair and queues their images."""

    def __init__(
        self,
        store: EntityStore,
        pool: TrialWorkerPool,
        trusted_image_origin: str,
        fail_without_photo: bool = False,
    ) -> None:
        self.store = store
        self.pool = pool
        self.trusted_image_origin = trusted_image_origin
        self.fail_without_photo = fail_without_photo

    async def generate(
        self, user_id: str, model_ids: Iterable[str], fabric_ids: Iterable[str]
    ) -> List[Trial]:
        models = _unique_ids(model_ids, "modelIds")
        fabrics = _unique_ids(fabric_ids, "fabricIds")
        if not models or not fabrics:
            raise InvalidRequest(
                "At least one model and one fabric required",
                field="modelIds" if not models else "fabricIds",
            )
        if len(models) > MAX_MODELS_PER_REQUEST or len(fabrics) > MAX_FABRICS_PER_REQUEST:
            raise InvalidRequest(
                f"Maximum {MAX_MODELS_PER_REQUEST} models and {MAX_FABRICS_PER_REQUEST} fabrics allowed",
                field="modelIds" if len(models) > MAX_MODELS_PER_REQUEST else "fabricIds",
            )

        user = self.store.get_user(user_id)
        if user is None:
            raise NotFound("User not found")

        trials = [
            self.store.create_trial(user.id, model_id, fabric_id)
            for model_id in models
            for fabric_id in fabrics
        ]

        correlation_id = ensure_correlation_id()
        usable_photo = is_trusted_image_url(user.photo_url, self.trusted_image_origin)
        if usable_photo:
            for trial in trials:
                await self.pool.submit(
                    GenerationJob(
                        trial_id=trial.id,
                        user_photo_url=user.photo_url or "",
                        model_id=trial.model_id,
                        fabric_id=trial.fabric_id,
                        correlation_id=correlation_id,
                    )
                )
        elif self.fail_without_photo:
            trials = [
                self.store.complete_trial(trial.id, TRIAL_FAILED) or trial for trial in trials
            ]
        else:
            log_event(
                LOGGER,
                logging.WARNING,
                "trial_generation_skipped",
                user_id=user.id,
                reason="no usable photo",
                trial_count=len(trials),
            )

        log_event(
            LOGGER,
            logging.INFO,
            "trials_created",
            user_id=user.id,
            trial_count=len(trials),
            queued=usable_photo,
        )
        return trials

    def list_for_user(self, user_id: str) -> List[Trial]:
        return self.store.list_trials(user_id)

    def get_for_user(self, user_id: str, trial_id: str) -> Trial:
        trial = self.store.get_trial(trial_id)
        if trial is None or trial.user_id != user_id:
            raise NotFound("Trial not found")
        return trial


__all__ = [
    "GenerationJob",
    "GenerationOutcome",
    "TrialWorkerPool",
    "TrialGenerator",
    "MAX_MODELS_PER_REQUEST",
    "MAX_FABRICS_PER_REQUEST",
]
