"""Retry-with-feedback state machine around agent invocation and validation."""

from __future__ import annotations

import logging
import threading

from artifact_forge.backend import AgentInvocationError, AgentInvoker, InvocationRequest
from artifact_forge.models import (
    AgentTask,
    AttemptOutcome,
    FailureClass,
    InvocationResult,
    RetryState,
    RetryStatus,
)
from artifact_forge.prompts import build_feedback_prompt
from artifact_forge.validator import OutputValidator

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 2
EMPTY_OUTPUT_ERROR = "Agent returned empty output"


def initial_state(max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> RetryState:
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts!r}")
    return RetryState(max_attempts=max_attempts)


def advance(state: RetryState, outcome: AttemptOutcome | None = None) -> RetryState:
    """Pure transition: ``pending -> attempting(1) -> succeeded | attempting(n+1) | exhausted``."""

    if state.is_terminal:
        raise ValueError(f"Cannot advance terminal retry state: {state.status.value}")

    if state.status == RetryStatus.PENDING:
        if outcome is not None:
            raise ValueError("Pending retry state cannot consume an attempt outcome.")
        return RetryState(
            max_attempts=state.max_attempts,
            attempt=1,
            status=RetryStatus.ATTEMPTING,
        )

    if outcome is None:
        raise ValueError("Attempting retry state requires an attempt outcome.")
    if outcome.succeeded:
        return RetryState(
            max_attempts=state.max_attempts,
            attempt=state.attempt,
            status=RetryStatus.SUCCEEDED,
        )
    if state.attempt >= state.max_attempts:
        return RetryState(
            max_attempts=state.max_attempts,
            attempt=state.attempt,
            last_errors=outcome.errors,
            status=RetryStatus.EXHAUSTED,
        )
    return RetryState(
        max_attempts=state.max_attempts,
        attempt=state.attempt + 1,
        last_errors=outcome.errors,
        status=RetryStatus.ATTEMPTING,
    )


def build_attempt_prompt(user_prompt: str, state: RetryState) -> str:
    """First attempt is verbatim; later attempts carry the previous errors."""

    if state.attempt <= 1:
        return user_prompt
    return build_feedback_prompt(user_prompt, state.last_errors)


class RetryController:
    """Drive one task through invoke -> validate -> retry until success or exhaustion."""

    def __init__(self, invoker: AgentInvoker, *, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        initial_state(max_attempts)
        self.invoker = invoker
        self.max_attempts = max_attempts

    def run(
        self,
        task: AgentTask,
        *,
        validator: OutputValidator | None = None,
        cancel_event: threading.Event | None = None,
    ) -> InvocationResult:
        state = advance(initial_state(self.max_attempts))
        outcome = AttemptOutcome()
        best_effort = ""

        while not state.is_terminal:
            if cancel_event is not None and cancel_event.is_set():
                return _canceled_result(task, attempts=state.attempt - 1)

            logger.info("Task %s: attempt %d/%d", task.task_id, state.attempt, state.max_attempts)
            outcome = self._attempt(
                task=task,
                state=state,
                validator=validator,
                cancel_event=cancel_event,
            )
            if outcome.failure_class == FailureClass.CANCELED:
                return _canceled_result(task, attempts=state.attempt)
            if outcome.output:
                best_effort = outcome.output
            if not outcome.succeeded:
                logger.warning(
                    "Task %s: attempt %d failed: %s",
                    task.task_id,
                    state.attempt,
                    "; ".join(outcome.errors),
                )
            state = advance(state, outcome)

        if state.status == RetryStatus.SUCCEEDED:
            if outcome.was_extracted:
                logger.warning(
                    "Task %s: extracted document from mixed output; review recommended",
                    task.task_id,
                )
            return InvocationResult(
                task_id=task.task_id,
                output=outcome.output,
                attempts=state.attempt,
                was_extracted=outcome.was_extracted,
            )

        logger.error(
            "Task %s: exhausted %d attempts: %s",
            task.task_id,
            state.attempt,
            "; ".join(state.last_errors),
        )
        return InvocationResult(
            task_id=task.task_id,
            output="",
            error="; ".join(state.last_errors),
            failure_class=FailureClass.EXHAUSTED_RETRIES,
            attempts=state.attempt,
            best_effort_output=best_effort,
        )

    def _attempt(
        self,
        *,
        task: AgentTask,
        state: RetryState,
        validator: OutputValidator | None,
        cancel_event: threading.Event | None,
    ) -> AttemptOutcome:
        request = InvocationRequest(
            task_id=task.task_id,
            system_context=task.system_context,
            user_prompt=build_attempt_prompt(task.user_prompt, state),
            options=task.options,
            cancel_event=cancel_event,
        )
        try:
            raw_output = self.invoker.invoke(request)
        except AgentInvocationError as error:
            return AttemptOutcome(errors=(str(error),), failure_class=error.failure_class)

        if not raw_output.strip():
            return AttemptOutcome(
                errors=(EMPTY_OUTPUT_ERROR,),
                failure_class=FailureClass.VALIDATION_FAILURE,
            )
        if validator is None:
            return AttemptOutcome(output=raw_output)

        validation = validator(raw_output)
        if validation.valid:
            return AttemptOutcome(output=validation.content, was_extracted=validation.was_extracted)
        return AttemptOutcome(
            output=validation.content,
            errors=tuple(validation.errors) or ("Output failed validation",),
            failure_class=FailureClass.VALIDATION_FAILURE,
        )


def _canceled_result(task: AgentTask, *, attempts: int) -> InvocationResult:
    logger.warning("Task %s: canceled", task.task_id)
    return InvocationResult(
        task_id=task.task_id,
        error="Canceled before completion",
        failure_class=FailureClass.CANCELED,
        attempts=attempts,
    )
