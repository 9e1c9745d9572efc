# chuk_ai_turn_orchestrator/agent/codeact.py
"""
CodeAct protocol helpers.

The model emits ``<execute>...</execute>`` blocks; the caller runs them in
a Python sandbox and feeds the result back as an ``Observation:`` turn.
The system prompt is the zero-shot prompt from "Executable Code Actions
Elicit Better LLM Agents" (arXiv 2402.01030, Appendix E).
"""

from __future__ import annotations

from chuk_ai_turn_orchestrator.models.run_output import RunOutput

EXECUTE_OPEN = "<execute>"
EXECUTE_CLOSE = "</execute>"

OBSERVATION_PREFIX = "Observation:\n"
NO_OUTPUT = "(no output)"

CODEACT_SYSTEM_PROMPT = (
    "A chat between a curious user and an artificial intelligence assistant. "
    "The assistant gives helpful, detailed, and polite answers to the user's questions.\n"
    "The assistant can interact with an interactive Python (Jupyter Notebook) environment and "
    "receive the corresponding output when needed. The code should be enclosed using \"<execute>\" tag, "
    'for example: <execute> print("Hello World!") </execute>.\n'
    "The assistant should attempt fewer things at a time instead of putting too much code in one "
    "<execute> block. The assistant can install packages through PIP by "
    "<execute> !pip install [package needed] </execute> and should always import packages and "
    "define variables before starting to use them.\n"
    "The assistant should stop <execute> and provide an answer when they have already obtained the "
    "answer from the execution result. Whenever possible, execute the code for the user using "
    "<execute> instead of providing it.\n"
    "The assistant's response should be concise, but do express their thoughts."
)


def parse_execute_block(text: str) -> str | None:
    """Return the trimmed code of the first ``<execute>`` block, or None."""
    start = text.find(EXECUTE_OPEN)
    if start < 0:
        return None
    body_start = start + len(EXECUTE_OPEN)
    end = text.find(EXECUTE_CLOSE, body_start)
    if end < 0:
        return None
    code = text[body_start:end].strip()
    return code or None


def format_observation(output: RunOutput) -> str:
    """Render a sandbox result as the next user turn."""
    parts = []
    stdout = output.stdout.strip("\r\n")
    stderr = output.stderr.strip("\r\n")
    error = (output.error or "").strip("\r\n")
    if stdout:
        parts.append(stdout)
    if stderr:
        parts.append(f"[stderr]\n{stderr}")
    if error:
        parts.append(f"[error]\n{error}")
    if output.figures:
        parts.append(f"[{len(output.figures)} figure(s) generated]")
    body = "\n".join(parts) if parts else NO_OUTPUT
    return f"{OBSERVATION_PREFIX}{body}"
