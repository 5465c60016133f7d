"""Workflow state and the state machine that drives it."""

from compliance_workflow.workflow.machine import (
    Clock,
    WorkflowHandle,
    create_workflow,
    restore_workflow,
)
from compliance_workflow.workflow.state import WorkflowState

__all__ = ["Clock", "WorkflowHandle", "WorkflowState", "create_workflow", "restore_workflow"]
