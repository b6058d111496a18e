"""Claude Code subprocess runner.

This module manages Claude Code execution:
- Subprocess invocation inside the working directory
- Capability allow-list (edit, write, git add/commit only)
- stdout/stderr streaming to the operator console and capture
- Exit code handling for success/failure determination
"""

from src.smarty.runner.claude import (
    AGENT_ALLOWED_TOOLS,
    AgentResult,
    ClaudeRunner,
    build_agent_prompt,
)

__all__ = [
    "AGENT_ALLOWED_TOOLS",
    "AgentResult",
    "ClaudeRunner",
    "build_agent_prompt",
]
