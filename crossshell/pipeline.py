"""Snapshot-based text pipelines across resolved invocations."""

from __future__ import annotations

import dataclasses
import logging
from typing import Callable, Optional, Sequence

from crossshell.errors import InvalidArgumentsError
from crossshell.invocation import Invocation, Outcome
from crossshell.safety import SafetyGate

logger = logging.getLogger("crossshell.pipeline")


class PipelineExecutor:
    """Run stages left to right, feeding each stage the previous stdout.

    Stages after the first must be filter commands. The whole pipeline is
    authorised by the safety gate before the first stage starts, and the first
    stage with a non-zero exit code ends the run.
    """

    def __init__(
        self,
        dispatch: Callable[[Invocation], Outcome],
        gate: SafetyGate,
        is_filter: Callable[[str], bool],
    ) -> None:
        self._dispatch = dispatch
        self._gate = gate
        self._is_filter = is_filter

    def run(self, stages: Sequence[Invocation]) -> Outcome:
        if not stages:
            raise InvalidArgumentsError("Pipeline requires at least one stage")
        for index, stage in enumerate(stages):
            if stage.is_noop:
                raise InvalidArgumentsError(f"Empty command in pipeline stage {index + 1}")
            if index and not self._is_filter(stage.name):
                raise InvalidArgumentsError(
                    f"Pipeline stage {index + 1} ('{stage.name}') cannot filter piped input"
                )

        preview = self._gate.authorize(stages)
        if preview is not None:
            return preview

        stdin: Optional[str] = None
        outcome = Outcome()
        for index, stage in enumerate(stages):
            if index:
                stage = dataclasses.replace(stage, stdin=stdin)
            outcome = self._dispatch(stage)
            outcome.audit.setdefault("pipeline_stage", index)
            if not outcome.ok:
                logger.info(
                    "Pipeline stopped at stage %d (%s) with exit code %d",
                    index + 1,
                    stage.name,
                    outcome.exit_code,
                )
                return outcome
            stdin = outcome.stdout
        return outcome


__all__ = ["PipelineExecutor"]
