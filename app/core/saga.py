import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Tuple

from app.core.errors import PartialFailure

logger = logging.getLogger(__name__)

Step = Callable[[], Awaitable[object]]


class Saga:
    """
    Runs named steps in order with no rollback.

    Steps added together with ``parallel`` run concurrently and succeed or fail
    one by one. Steps must be idempotent so a caller can retry the remainder
    after a PartialFailure by passing the completed step names as ``skip``.
    """

    def __init__(self, operation: str):
        self.operation = operation
        self._groups: List[List[Tuple[str, Step]]] = []

    def step(self, name: str, action: Step) -> "Saga":
        self._groups.append([(name, action)])
        return self

    def parallel(self, steps: Iterable[Tuple[str, Step]]) -> "Saga":
        group = list(steps)
        if group:
            self._groups.append(group)
        return self

    @property
    def step_names(self) -> List[str]:
        return [name for group in self._groups for name, _ in group]

    async def run(self, skip: Iterable[str] = ()) -> List[str]:
        skip = set(skip)
        completed = [name for name in self.step_names if name in skip]

        for index, group in enumerate(self._groups):
            pending = [(name, action) for name, action in group if name not in skip]
            if not pending:
                continue

            results = await asyncio.gather(
                *(action() for _, action in pending), return_exceptions=True
            )

            failed = []
            for (name, _), result in zip(pending, results):
                if isinstance(result, Exception):
                    failed.append((name, result))
                elif isinstance(result, BaseException):
                    raise result
                else:
                    completed.append(name)
                    logger.info(f"saga_step_done operation={self.operation} step={name}")

            if not failed:
                continue

            failed_step, error = failed[0]
            remaining = [name for name, _ in failed] + [
                name for later in self._groups[index + 1:] for name, _ in later if name not in skip
            ]
            logger.error(
                f"saga_step_failed operation={self.operation} step={failed_step} "
                f"failed={[name for name, _ in failed]} completed={completed} error={error}"
            )
            if not completed:
                raise error
            raise PartialFailure(self.operation, completed, failed_step, remaining, error) from error

        return completed
