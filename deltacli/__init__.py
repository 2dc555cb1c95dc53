"""
Delta CLI - AI coding assistant that turns replies into actions.

Send a request to a completion provider, read the reply, and (optionally)
write the files and run the commands it contains.

Architecture:
- Reply text is scanned for fenced code blocks
- Blocks become inferred files and shell command lines
- Commands pass an advisory denylist before they run
- Files are written first, then commands run one at a time
"""

__version__ = "1.0.0"
__author__ = "Delta CLI Team"
__license__ = "MIT"

from deltacli.core.assistant import Assistant, AssistantResult
from deltacli.core.orchestrator import ActionPipeline, PipelineOutcome

__all__ = [
    "ActionPipeline",
    "Assistant",
    "AssistantResult",
    "PipelineOutcome",
    "__version__",
]
