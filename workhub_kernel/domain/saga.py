"""
Saga -- sequential forward steps with compensating rollbacks.

Responsibility:
    Runs a named sequence of (forward, compensate) pairs. The document store
    only offers single-path atomicity, so every ledger operation that touches
    more than one document is expressed as a saga: if step k does not apply
    or raises, the compensations of steps 1..k-1 run in reverse order.

Architecture position:
    Kernel > Domain. Knows nothing about the store; steps are callables
    supplied by the ledger service.

Step contract:
    - ``forward()`` returns a result; a falsy result means "did not apply"
      (a business rule said no). ``TransactResult`` is falsy when the
      transaction aborted.
    - ``compensate(result)`` receives the result its own forward step
      returned, so it can restore the pre-step value it captured.
    - Steps without a compensation are skipped during rollback.

Failure modes:
    - A forward exception is re-raised after compensation.
    - A compensation exception is logged and recorded on the outcome as a
      ``CompensationFailedError``; it is never retried and never masks the
      original failure. The store is then left partially applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from workhub_kernel.exceptions import CompensationFailedError
from workhub_kernel.logging_config import get_logger

logger = get_logger("domain.saga")


@dataclass(frozen=True)
class SagaStep:
    name: str
    forward: Callable[[], Any]
    compensate: Callable[[Any], None] | None = None


@dataclass(frozen=True)
class SagaOutcome:
    """What happened when a saga ran."""

    saga: str
    completed: bool
    results: dict[str, Any] = field(default_factory=dict)
    failed_step: str | None = None
    compensated: tuple[str, ...] = ()
    compensation_failures: tuple[CompensationFailedError, ...] = ()

    def __bool__(self) -> bool:
        return self.completed


class SagaAborted(Exception):
    """Carries the outcome of a saga whose forward step raised."""

    def __init__(self, outcome: SagaOutcome, error: BaseException):
        self.outcome = outcome
        self.error = error
        super().__init__(f"Saga {outcome.saga} failed at step {outcome.failed_step}")


class Saga:
    """
    Ordered list of steps executed by ``run()``.

    Usage:
        outcome = (
            Saga("deduct_campaign_budget")
            .step("debit_campaign", debit_campaign, restore_campaign)
            .step("debit_wallet", debit_wallet)
            .run()
        )
    """

    def __init__(self, name: str):
        self.name = name
        self._steps: list[SagaStep] = []

    def step(
        self,
        name: str,
        forward: Callable[[], Any],
        compensate: Callable[[Any], None] | None = None,
    ) -> Saga:
        self._steps.append(SagaStep(name, forward, compensate))
        return self

    @property
    def steps(self) -> tuple[SagaStep, ...]:
        return tuple(self._steps)

    def run(self) -> SagaOutcome:
        """
        Execute the steps in order.

        Returns:
            SagaOutcome with ``completed=True`` if every step applied, or
            ``completed=False`` naming the step that did not apply.

        Raises:
            SagaAborted: a forward step raised. ``error`` is the original
                exception (also chained as ``__cause__``) and ``outcome``
                records what was compensated.
        """
        done: list[tuple[SagaStep, Any]] = []
        results: dict[str, Any] = {}

        for step in self._steps:
            try:
                result = step.forward()
            except Exception as exc:
                logger.warning(
                    "saga_step_raised",
                    extra={"saga": self.name, "step": step.name},
                )
                outcome = self._rollback(done, results, step.name)
                raise SagaAborted(outcome, exc) from exc

            results[step.name] = result
            if not result:
                logger.info(
                    "saga_step_not_applied",
                    extra={"saga": self.name, "step": step.name},
                )
                return self._rollback(done, results, step.name)
            done.append((step, result))

        logger.debug("saga_completed", extra={"saga": self.name})
        return SagaOutcome(saga=self.name, completed=True, results=results)

    def _rollback(
        self,
        done: list[tuple[SagaStep, Any]],
        results: dict[str, Any],
        failed_step: str,
    ) -> SagaOutcome:
        compensated: list[str] = []
        failures: list[CompensationFailedError] = []

        for step, result in reversed(done):
            if step.compensate is None:
                continue
            try:
                step.compensate(result)
            except Exception as exc:
                failure = CompensationFailedError(self.name, step.name)
                failure.__cause__ = exc
                failures.append(failure)
                logger.error(
                    "saga_compensation_failed",
                    extra={"saga": self.name, "step": step.name},
                    exc_info=failure,
                )
                continue
            compensated.append(step.name)
            logger.warning(
                "saga_step_compensated",
                extra={"saga": self.name, "step": step.name},
            )

        return SagaOutcome(
            saga=self.name,
            completed=False,
            results=results,
            failed_step=failed_step,
            compensated=tuple(compensated),
            compensation_failures=tuple(failures),
        )
