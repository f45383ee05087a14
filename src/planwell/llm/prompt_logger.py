"""
Planwell - Prompt Logger.

Logs AI generation prompts and raw responses to files for debugging.
Enabled via PLANWELL_LOG_PROMPTS=1 or the --log-prompts CLI flag.
"""

import json
import os
from datetime import datetime
from pathlib import Path

# Configuration
LOG_PROMPTS = os.getenv("PLANWELL_LOG_PROMPTS", "0") == "1"
LOG_DIR = Path("prompt_logs")

# Session tracking
_session_id: str | None = None
_call_counter: int = 0


def enable_prompt_logging(enabled: bool = True) -> None:
    """Enable or disable prompt logging."""
    global LOG_PROMPTS
    LOG_PROMPTS = enabled
    if enabled:
        _ensure_log_dir()


def _ensure_log_dir() -> None:
    LOG_DIR.mkdir(exist_ok=True)


def _get_session_id() -> str:
    """Get or create a session ID for this run."""
    global _session_id
    if _session_id is None:
        _session_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    return _session_id


def _get_session_dir() -> Path:
    session_dir = LOG_DIR / _get_session_id()
    session_dir.mkdir(exist_ok=True)
    return session_dir


def log_prompt(
    *,
    provider: str,
    model: str,
    messages: list[dict],
    attempt_id: str | None = None,
    raw_response: str | None = None,
    error: str | None = None,
    params: dict | None = None,
) -> Path | None:
    """
    Log one chat-completion call to a markdown file.

    Args:
        provider: "primary" or "fallback"
        model: Model identifier sent to the provider
        messages: The chat messages sent
        attempt_id: Plan attempt that made the call
        raw_response: Raw content returned by the model
        error: Error raised by the call, if any
        params: temperature / max_tokens etc.

    Returns:
        Path to the log file, or None if logging is disabled
    """
    if not LOG_PROMPTS:
        return None

    global _call_counter
    _call_counter += 1

    _ensure_log_dir()
    filepath = _get_session_dir() / f"{_call_counter:02d}_{provider}.md"

    params_str = ""
    if params:
        params_str = "\n**Params:** " + ", ".join(f"{k}={v}" for k, v in params.items())

    content = f"""# AI Call: {provider}

**Time:** {datetime.now().isoformat()}
**Model:** {model}
**Attempt:** {attempt_id or "-"}{params_str}

---

"""
    for message in messages:
        content += f"## {message.get('role', '?').capitalize()}\n\n```\n{message.get('content', '')}\n```\n\n"

    content += "---\n\n## Response\n\n"
    if error:
        content += f"**ERROR:** {error}\n"
    elif raw_response is not None:
        try:
            pretty = json.dumps(json.loads(raw_response), indent=2, ensure_ascii=False)
            content += f"```json\n{pretty}\n```\n"
        except ValueError:
            content += f"```\n{raw_response}\n```\n"
    else:
        content += "(No response)\n"

    filepath.write_text(content, encoding="utf-8")
    return filepath


def get_session_log_dir() -> Path | None:
    """Get the current session's log directory, if logging is enabled."""
    if not LOG_PROMPTS:
        return None
    return _get_session_dir()


def reset_session() -> None:
    """Reset the session (for testing or a new run)."""
    global _session_id, _call_counter
    _session_id = None
    _call_counter = 0
