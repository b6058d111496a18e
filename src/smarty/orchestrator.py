"""Change-request orchestrator connecting all pipeline stages.

Drives one request through the full pipeline:
sync → branch naming → branch creation → agent (with staged
attachments) → safety verification → push and pull request.

Only one run touches the working copy at a time; later requests wait
on the orchestrator's lock. Any stage failure aborts the run, is logged
with its stack trace, emits an ERROR event and propagates to the
caller. A run that produced no commits is reported as REJECTED rather
than as a failure.
"""

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Optional

from src.smarty.attachments.manager import AttachmentManager
from src.smarty.errors import AgentExecutionError, NoChangesError
from src.smarty.events.emitter import EventEmitter, NullEventEmitter
from src.smarty.events.models import EventType, PipelineEvent
from src.smarty.git.client import GitClient
from src.smarty.git.synchronizer import RepositorySynchronizer
from src.smarty.models import (
    BRANCH_PREFIX,
    ChangeRequest,
    PipelineRun,
    PipelineStage,
    PullRequestResult,
)
from src.smarty.naming.branch import BranchNamer
from src.smarty.publisher.publisher import Publisher
from src.smarty.runner.claude import ClaudeRunner, build_agent_prompt
from src.smarty.verifier.safety import SafetyVerifier

logger = logging.getLogger(__name__)


class ChangeRequestOrchestrator:
    """Orchestrates the request-to-pull-request pipeline.

    Accepts all dependencies via constructor injection.

    Attributes:
        git: Git client bound to the working directory.
        synchronizer: Resets the working copy to the remote baseline.
        namer: Derives the branch identifier.
        runner: Executes the coding agent.
        verifier: Checks branch and commits before publishing.
        publisher: Pushes the branch and opens the pull request.
        attachments: Stages request attachments in the working tree.
        event_emitter: Emits pipeline events for observability.
        baseline_branch: Branch every run starts from.
        repository: Label used in events and logs.
    """

    def __init__(
        self,
        git: GitClient,
        synchronizer: RepositorySynchronizer,
        namer: BranchNamer,
        runner: ClaudeRunner,
        verifier: SafetyVerifier,
        publisher: Publisher,
        attachments: AttachmentManager,
        event_emitter: Optional[EventEmitter] = None,
        baseline_branch: str = "master",
        repository: str = "repository",
    ):
        self.git = git
        self.synchronizer = synchronizer
        self.namer = namer
        self.runner = runner
        self.verifier = verifier
        self.publisher = publisher
        self.attachments = attachments
        self.event_emitter = event_emitter or NullEventEmitter()
        self.baseline_branch = baseline_branch
        self.repository = repository
        self._lock = asyncio.Lock()

    @property
    def working_directory(self) -> Path:
        return self.attachments.working_directory

    @property
    def busy(self) -> bool:
        """True while a run holds the working copy."""
        return self._lock.locked()

    async def process(self, change_request: ChangeRequest) -> PullRequestResult:
        """Run the full pipeline for one request.

        Returns:
            The pull request opened for the request.

        Raises:
            NoChangesError: If the agent committed nothing.
            ChangeRequestError: If any stage fails.
        """
        run_id = uuid.uuid4().hex[:12]
        if self._lock.locked():
            logger.info(
                "Waiting for the in-flight run to finish",
                extra={"run_id": run_id},
            )

        async with self._lock:
            return await self._run(run_id, change_request)

    async def _run(
        self, run_id: str, change_request: ChangeRequest
    ) -> PullRequestResult:
        start_time = time.monotonic()
        stage = PipelineStage.SYNC
        logger.info(
            "Starting change request",
            extra={
                "run_id": run_id,
                "attachment_count": len(change_request.attachments),
            },
        )

        try:
            await self._emit_transition_event(run_id, "accepted", stage)
            await self.synchronizer.sync()

            stage = await self._advance(run_id, stage, PipelineStage.NAMING)
            naming = await self.namer.generate(change_request.text)
            run = PipelineRun(
                request_text=change_request.text,
                branch_name=f"{BRANCH_PREFIX}{naming.identifier}",
                baseline_branch=self.baseline_branch,
                working_directory=self.working_directory,
            )

            stage = await self._advance(run_id, stage, PipelineStage.BRANCH)
            await self.git.create_branch(run.branch_name)
            logger.info(
                "Created branch %s",
                run.branch_name,
                extra={"run_id": run_id, "naming_strategy": naming.strategy.value},
            )

            stage = await self._advance(run_id, stage, PipelineStage.AGENT)
            await self._run_agent(run_id, run, change_request)

            stage = await self._advance(run_id, stage, PipelineStage.VERIFY)
            verified = await self.verifier.verify()

            stage = await self._advance(run_id, stage, PipelineStage.PUBLISH)
            result = await self.publisher.publish(verified.name, run.request_text)
        except NoChangesError as exc:
            await self._reject(run_id, stage, exc)
            raise
        except Exception as exc:
            await self._fail(run_id, stage, exc)
            raise

        duration = time.monotonic() - start_time
        await self._advance(run_id, stage, PipelineStage.COMPLETED)
        await self._emit_completion_event(run_id, result, duration)
        logger.info(
            "Change request completed",
            extra={
                "run_id": run_id,
                "pr_url": result.url,
                "duration_seconds": round(duration, 2),
            },
        )
        return result

    async def _run_agent(
        self, run_id: str, run: PipelineRun, change_request: ChangeRequest
    ) -> None:
        """Stage attachments, run the agent, and clean up on every path."""
        with self.attachments.stage(change_request.attachments) as paths:
            run.attachment_paths = paths
            prompt = build_agent_prompt(run.request_text, paths)
            agent_result = await self.runner.run(prompt, run.working_directory)

        if not agent_result.success:
            raise AgentExecutionError(agent_result.exit_code, agent_result.stderr)

        logger.info(
            "Claude Code completed",
            extra={
                "run_id": run_id,
                "duration": agent_result.duration_seconds,
            },
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _advance(
        self,
        run_id: str,
        from_stage: PipelineStage,
        to_stage: PipelineStage,
    ) -> PipelineStage:
        """Emit a state-transition event and return the new stage."""
        await self._emit_transition_event(run_id, from_stage.value, to_stage)
        return to_stage

    async def _fail(
        self, run_id: str, stage: PipelineStage, exc: Exception
    ) -> None:
        """Log the failure with its stack trace and emit an error event."""
        logger.exception(
            "Pipeline stage failed",
            extra={"run_id": run_id, "stage": stage.value},
        )
        await self._safe_emit(
            PipelineEvent(
                event_type=EventType.ERROR,
                run_id=run_id,
                repository=self.repository,
                details={
                    "stage": stage.value,
                    "error_message": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
        )

    async def _reject(
        self, run_id: str, stage: PipelineStage, exc: NoChangesError
    ) -> None:
        logger.warning(
            "Change request produced no commits",
            extra={"run_id": run_id, "branch": exc.branch_name},
        )
        await self._safe_emit(
            PipelineEvent(
                event_type=EventType.REJECTED,
                run_id=run_id,
                repository=self.repository,
                details={"stage": stage.value, "reason": exc.message},
            )
        )

    async def _emit_transition_event(
        self, run_id: str, from_stage: str, to_stage: PipelineStage
    ) -> None:
        """Emit a STATE_TRANSITION event."""
        await self._safe_emit(
            PipelineEvent(
                event_type=EventType.STATE_TRANSITION,
                run_id=run_id,
                repository=self.repository,
                details={"from_stage": from_stage, "to_stage": to_stage.value},
            )
        )

    async def _emit_completion_event(
        self, run_id: str, result: PullRequestResult, duration: float
    ) -> None:
        """Emit a COMPLETION event."""
        await self._safe_emit(
            PipelineEvent(
                event_type=EventType.COMPLETION,
                run_id=run_id,
                repository=self.repository,
                details={
                    "pr_url": result.url,
                    "branch": result.branch_name,
                    "duration_seconds": duration,
                },
            )
        )

    async def _safe_emit(self, event: PipelineEvent) -> None:
        """Emit an event, swallowing exceptions to avoid disrupting the pipeline."""
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit pipeline event",
                extra={
                    "event_type": event.event_type.value,
                    "run_id": event.run_id,
                },
            )
