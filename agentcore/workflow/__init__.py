"""Workflow module."""

from .conditions import StepOutputCondition, parse_condition
from .engine import WorkflowEngine, validate_workflow

__all__ = ["StepOutputCondition", "WorkflowEngine", "parse_condition", "validate_workflow"]
