"""
Delta CLI core module.

Provides the response-to-action pipeline and the assistant request flow.
"""

from deltacli.core.attribution import InferredFile, extract_files
from deltacli.core.blocks import CodeBlock, extract_code_blocks
from deltacli.core.commands import extract_commands
from deltacli.core.executor import ExecutionResult
from deltacli.core.orchestrator import (
    ActionPipeline,
    ExecutionPolicy,
    Orchestrator,
    PipelineOutcome,
)
from deltacli.core.safety import SafetyVerdict, check_command

__all__ = [
    "ActionPipeline",
    "CodeBlock",
    "ExecutionPolicy",
    "ExecutionResult",
    "InferredFile",
    "Orchestrator",
    "PipelineOutcome",
    "SafetyVerdict",
    "check_command",
    "extract_code_blocks",
    "extract_commands",
    "extract_files",
]
