"""
Batch-by-batch remote validation with bounded gap remediation.

The walk is a small state machine:

- ``validating_batch``: the cumulative manifest for batch *i* (everything in
  batches ``1..i``; only batch *i* when deploying) is written and submitted.
- ``retrieving_gap``: the submission failed with recognizable missing
  field/object errors; each gap is retrieved into the workspace and the same
  manifest is resubmitted, at most ``max_gap_retries`` times per batch.
- ``completed`` / ``failed`` / ``timed_out``: terminal. A failure stops the walk
  at that batch; crossing the time budget reports the batch to resume from.

Remote calls are never interrupted. The budget (and an optional cancellation
token) only decide whether another submission or retry is started. Manifest
artifacts are always kept.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from deploy_sequencer.constants import (
    DEFAULT_API_VERSION,
    DEFAULT_MAX_GAP_RETRIES,
    DEFAULT_SAFETY_MARGIN_SECONDS,
    DEFAULT_TIME_BUDGET_SECONDS,
)
from deploy_sequencer.domain.models import (
    AssetIdentifier,
    CumulativeManifest,
    DeployBatch,
    DeployMode,
    DeployPlan,
    GapDescriptor,
    ValidationOutcome,
    WalkResult,
    WalkState,
)
from deploy_sequencer.executor.base import RemoteExecutor
from deploy_sequencer.executor.gaps import missing_components, parse_gaps
from deploy_sequencer.inventory.workspace import AssetInventory
from deploy_sequencer.manifest.package_xml import write_manifest
from deploy_sequencer.observability.logging import correlation_scope
from deploy_sequencer.utils.concurrency import CancellationToken

Clock = Callable[[], float]


@dataclass(slots=True)
class _WalkProgress:
    state: WalkState = WalkState.PLANNING
    outcomes: list[ValidationOutcome] = field(default_factory=list)
    manifest_paths: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class _BatchAttempt:
    """Result of driving one batch to a verdict."""

    state: WalkState
    outcome: ValidationOutcome | None
    errors: tuple[str, ...] = ()


class DeploymentOrchestrator:
    """Walks a plan against a remote executor, one batch at a time."""

    def __init__(
        self,
        executor: RemoteExecutor,
        inventory: AssetInventory,
        artifact_dir: str | Path,
        *,
        max_gap_retries: int = DEFAULT_MAX_GAP_RETRIES,
        time_budget_seconds: float = DEFAULT_TIME_BUDGET_SECONDS,
        safety_margin_seconds: float = DEFAULT_SAFETY_MARGIN_SECONDS,
        api_version: str = DEFAULT_API_VERSION,
        clock: Clock | None = None,
        cancel_token: CancellationToken | None = None,
        logger: Any | None = None,
    ) -> None:
        if max_gap_retries < 0:
            raise ValueError("max_gap_retries must be >= 0")
        if time_budget_seconds <= 0:
            raise ValueError("time_budget_seconds must be > 0")
        if safety_margin_seconds < 0 or safety_margin_seconds >= time_budget_seconds:
            raise ValueError("safety_margin_seconds must be >= 0 and below the time budget")

        self._executor = executor
        self._inventory = inventory
        self._artifact_dir = Path(artifact_dir)
        self._max_gap_retries = max_gap_retries
        self._time_budget_seconds = time_budget_seconds
        self._safety_margin_seconds = safety_margin_seconds
        self._api_version = api_version
        self._clock = clock if clock is not None else time.monotonic
        self._cancel_token = cancel_token
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def deadline_seconds(self) -> float:
        """Elapsed time after which no further submission is started."""

        return self._time_budget_seconds - self._safety_margin_seconds

    async def run(
        self,
        plan: DeployPlan,
        mode: DeployMode = DeployMode.VALIDATE,
        *,
        start_batch: int = 1,
    ) -> WalkResult:
        total = len(plan.batches)
        if plan.batches and not any(b.batch_number == start_batch for b in plan.batches):
            raise ValueError(f"start_batch {start_batch} is not a batch of this plan (1..{total})")

        started = self._clock()
        progress = _WalkProgress()
        self._transition(progress, WalkState.PLANNING, plan_id=plan.fingerprint, mode=str(mode))

        with correlation_scope(plan_id=plan.fingerprint):
            for batch in plan.batches:
                if batch.batch_number < start_batch:
                    continue
                if self._out_of_time(started):
                    self._transition(progress, WalkState.TIMED_OUT, batch_number=batch.batch_number)
                    return self._result(
                        progress,
                        plan,
                        mode,
                        started,
                        start_batch=start_batch,
                        next_batch=batch.batch_number,
                    )

                with correlation_scope(batch_number=batch.batch_number):
                    attempt = await self._walk_batch(plan, batch, mode, progress, started)

                if attempt.outcome is not None:
                    progress.outcomes.append(attempt.outcome)
                if attempt.state is WalkState.TIMED_OUT:
                    self._transition(progress, WalkState.TIMED_OUT, batch_number=batch.batch_number)
                    return self._result(
                        progress,
                        plan,
                        mode,
                        started,
                        start_batch=start_batch,
                        next_batch=batch.batch_number,
                    )
                if attempt.state is WalkState.FAILED:
                    self._transition(progress, WalkState.FAILED, batch_number=batch.batch_number)
                    missing = self._missing_found_locally(plan, batch, attempt.errors)
                    return self._result(
                        progress,
                        plan,
                        mode,
                        started,
                        start_batch=start_batch,
                        failed_at=batch.batch_number,
                        missing=missing,
                    )

        self._transition(progress, WalkState.COMPLETED, batches=total)
        return self._result(progress, plan, mode, started, start_batch=start_batch)

    async def _walk_batch(
        self,
        plan: DeployPlan,
        batch: DeployBatch,
        mode: DeployMode,
        progress: _WalkProgress,
        started: float,
    ) -> _BatchAttempt:
        if mode is DeployMode.VALIDATE:
            manifest = CumulativeManifest.from_plan(
                plan, batch.batch_number, api_version=self._api_version
            )
        else:
            manifest = CumulativeManifest.for_batch(
                plan, batch.batch_number, api_version=self._api_version
            )
        path = write_manifest(manifest, self._artifact_dir, category=batch.category, mode=mode)
        progress.manifest_paths.append(str(path))

        batch_started = self._clock()
        retries = 0
        gaps_seen: dict[GapDescriptor, None] = {}
        while True:
            self._transition(
                progress,
                WalkState.VALIDATING_BATCH,
                batch_number=batch.batch_number,
                attempt=retries + 1,
                items=manifest.item_count,
            )
            with correlation_scope(attempt=retries + 1):
                result = await self._executor.submit(path, mode)
            if result.success:
                return _BatchAttempt(
                    state=WalkState.VALIDATING_BATCH,
                    outcome=self._outcome(
                        batch, manifest, path, batch_started, success=True, retries=retries
                    ),
                )

            errors = result.error_lines
            gaps = parse_gaps(errors)
            gaps_seen.update(dict.fromkeys(gaps))
            if not gaps or retries >= self._max_gap_retries:
                self._logger.warning(
                    "orchestrator_batch_rejected",
                    batch_number=batch.batch_number,
                    recoverable=bool(gaps),
                    retries=retries,
                    errors=list(errors[:10]),
                )
                return _BatchAttempt(
                    state=WalkState.FAILED,
                    outcome=self._outcome(
                        batch,
                        manifest,
                        path,
                        batch_started,
                        success=False,
                        retries=retries,
                        errors=errors,
                        gaps=tuple(gaps_seen),
                    ),
                    errors=errors,
                )
            if self._out_of_time(started):
                return _BatchAttempt(state=WalkState.TIMED_OUT, outcome=None)

            retries += 1
            self._transition(
                progress,
                WalkState.RETRIEVING_GAP,
                batch_number=batch.batch_number,
                retry=retries,
                gaps=[gap.metadata_spec for gap in gaps],
            )
            retrieval_errors = await self._retrieve_gaps(gaps)
            if len(retrieval_errors) == len(gaps):
                # Nothing could be fetched; resubmitting would fail the same way.
                failed_errors = errors + retrieval_errors
                return _BatchAttempt(
                    state=WalkState.FAILED,
                    outcome=self._outcome(
                        batch,
                        manifest,
                        path,
                        batch_started,
                        success=False,
                        retries=retries,
                        errors=failed_errors,
                        gaps=tuple(gaps_seen),
                    ),
                    errors=failed_errors,
                )

    async def _retrieve_gaps(self, gaps: tuple[GapDescriptor, ...]) -> tuple[str, ...]:
        failures: list[str] = []
        for gap in gaps:
            result = await self._executor.retrieve_gap(gap)
            self._logger.info(
                "orchestrator_gap_retrieved",
                gap=gap.metadata_spec,
                success=result.success,
            )
            if not result.success:
                detail = "; ".join(result.error_lines) or "retrieve failed"
                failures.append(f"Retrieve {gap.metadata_spec} failed: {detail}")
        return tuple(failures)

    def _missing_found_locally(
        self,
        plan: DeployPlan,
        batch: DeployBatch,
        errors: tuple[str, ...],
    ) -> tuple[AssetIdentifier, ...]:
        planned = {item for candidate in plan.batches for item in candidate.items}
        found: list[AssetIdentifier] = []
        for identifier in missing_components(errors):
            if identifier in planned:
                continue
            if self._inventory.exists(identifier):
                found.append(identifier)
        if found:
            self._logger.info(
                "orchestrator_missing_found_locally",
                batch_number=batch.batch_number,
                identifiers=[item.key for item in found],
            )
        return tuple(found)

    def _outcome(
        self,
        batch: DeployBatch,
        manifest: CumulativeManifest,
        path: Path,
        batch_started: float,
        *,
        success: bool,
        retries: int,
        errors: tuple[str, ...] = (),
        gaps: tuple[GapDescriptor, ...] = (),
    ) -> ValidationOutcome:
        return ValidationOutcome(
            batch_number=batch.batch_number,
            category=batch.category,
            success=success,
            errors=errors,
            gaps=gaps,
            items_validated=manifest.item_count,
            manifest_path=str(path),
            retries=retries,
            duration_ms=self._elapsed_ms(batch_started),
        )

    def _out_of_time(self, started: float) -> bool:
        if self._cancel_token is not None and self._cancel_token.is_cancelled:
            return True
        return self._clock() - started >= self.deadline_seconds

    def _elapsed_ms(self, since: float) -> int:
        return max(0, int((self._clock() - since) * 1000))

    def _transition(self, progress: _WalkProgress, state: WalkState, **fields: object) -> None:
        progress.state = state
        self._logger.info("orchestrator_state", state=str(state), **fields)

    def _result(
        self,
        progress: _WalkProgress,
        plan: DeployPlan,
        mode: DeployMode,
        started: float,
        *,
        start_batch: int,
        next_batch: int | None = None,
        failed_at: int | None = None,
        missing: tuple[AssetIdentifier, ...] = (),
    ) -> WalkResult:
        suggestion = None
        if missing:
            suggestion = (
                f"Found {len(missing)} missing dependencies that exist locally. Consider adding "
                f"them to the plan: {', '.join(item.key for item in missing)}"
            )
        elif progress.state is WalkState.TIMED_OUT and next_batch is not None:
            suggestion = f"Time budget reached; resume with --start-batch {next_batch}"
        return WalkResult(
            state=progress.state,
            mode=mode,
            total_batches=len(plan.batches),
            outcomes=tuple(progress.outcomes),
            start_batch=start_batch,
            failed_at_batch=failed_at,
            next_batch_to_validate=next_batch,
            missing_found_locally=missing,
            suggestion=suggestion,
            duration_ms=self._elapsed_ms(started),
            manifest_paths=tuple(progress.manifest_paths),
        )


__all__ = ["Clock", "DeploymentOrchestrator"]
