"""Terminal tool — runs a shell command with the agent's own permissions."""

import asyncio
import logging
import subprocess

from agent_console.tools.registry import ToolDeclaration, ToolError, ToolParameter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60
MAX_TIMEOUT_SECONDS = 300
# Output beyond this many characters is cut before it reaches the model.
OUTPUT_CHAR_LIMIT = 20_000


def _run(command: str, timeout: int) -> str:
    try:
        result = subprocess.run(
            command,
            shell=True,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise ToolError(f"Command timed out after {timeout}s") from None

    output = result.stdout
    if result.stderr:
        output += f"\n[stderr]: {result.stderr}"
    if result.returncode != 0:
        output += f"\n[exit code]: {result.returncode}"
    output = output.strip()
    if len(output) > OUTPUT_CHAR_LIMIT:
        output = output[:OUTPUT_CHAR_LIMIT] + "\n[… output truncated …]"
    return output or "(no output)"


async def run_command(command: str, timeout: int = DEFAULT_TIMEOUT_SECONDS) -> str:
    """Run ``command`` in a shell and return combined stdout/stderr.

    The timeout is clamped to [1, MAX_TIMEOUT_SECONDS]; the blocking
    subprocess runs in a worker thread so the event loop stays responsive.
    """
    if not command.strip():
        raise ToolError("Command required")
    timeout = max(1, min(timeout, MAX_TIMEOUT_SECONDS))
    logger.info("Running command (timeout=%ds): %s", timeout, command)
    return await asyncio.to_thread(_run, command, timeout)


TERMINAL_TOOL = ToolDeclaration(
    name="RunCommand",
    description="Runs a shell command on the local machine and returns its output.",
    handler=run_command,
    parameters=(
        ToolParameter("command", "string", "The shell command to run."),
        ToolParameter(
            "timeout",
            "integer",
            f"Seconds before the command is killed (max {MAX_TIMEOUT_SECONDS}).",
            required=False,
            default=DEFAULT_TIMEOUT_SECONDS,
        ),
    ),
)
