"""Step conditions: typed predicates over the map of completed step outputs."""

from dataclasses import dataclass
from typing import Any, Mapping

from ..errors import ConfigurationError
from ..models import StepPredicate, WorkflowStep


@dataclass(frozen=True)
class StepOutputCondition:
    """Satisfied when ``step_id`` produced an output and ``property`` holds on it.

    ``success`` checks that the output is not None; any other property must be
    truthy on the output. A step with no recorded output never satisfies.
    """

    step_id: str
    property: str

    def __call__(self, outputs: Mapping[str, Any]) -> bool:
        if self.step_id not in outputs:
            return False
        output = outputs[self.step_id]
        if self.property == "success":
            return output is not None
        if output is None:
            return False
        if isinstance(output, Mapping):
            return bool(output.get(self.property))
        return bool(getattr(output, self.property, None))


def parse_condition(expression: str) -> StepOutputCondition:
    """Parse ``"<stepId>.<property>"``.

    Anything else raises ConfigurationError, so a malformed condition fails
    registration instead of being silently treated as satisfied at run time.
    """
    parts = expression.split(".")
    if len(parts) != 2 or not all(parts):
        raise ConfigurationError(
            f"Invalid condition {expression!r}: expected '<stepId>.<property>'"
        )
    return StepOutputCondition(step_id=parts[0], property=parts[1])


def compile_condition(step: WorkflowStep) -> StepPredicate | None:
    condition = step.condition
    if condition is None:
        return None
    if isinstance(condition, str):
        return parse_condition(condition)
    if callable(condition):
        return condition
    raise ConfigurationError(
        f"Step {step.id!r} has an unsupported condition of type {type(condition).__name__}"
    )
