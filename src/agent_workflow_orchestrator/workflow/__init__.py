"""Instruction parsing and the workflow step loop."""

from agent_workflow_orchestrator.workflow.collaborators import (
    ArtifactWriter,
    FileArtifactWriter,
    InputProvider,
    InstructionTaskRunner,
    StaticInputProvider,
    TaskRunner,
)
from agent_workflow_orchestrator.workflow.conditions import ConditionEvaluator
from agent_workflow_orchestrator.workflow.definition import WorkflowDefinition
from agent_workflow_orchestrator.workflow.engine import WorkflowEngine
from agent_workflow_orchestrator.workflow.models import Action, ActionKind, Check, Step
from agent_workflow_orchestrator.workflow.parser import InstructionParser
from agent_workflow_orchestrator.workflow.variables import (
    VariableContext,
    VariableLayer,
    VariableResolver,
)

__all__ = [
    "Action",
    "ActionKind",
    "ArtifactWriter",
    "Check",
    "ConditionEvaluator",
    "FileArtifactWriter",
    "InputProvider",
    "InstructionParser",
    "InstructionTaskRunner",
    "StaticInputProvider",
    "Step",
    "TaskRunner",
    "VariableContext",
    "VariableLayer",
    "VariableResolver",
    "WorkflowDefinition",
    "WorkflowEngine",
]
