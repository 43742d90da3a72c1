"""Prompt text for chat sessions.

The default system prompt ships as ``system.txt`` next to this module. A
``prompts/system.txt`` file in the working directory replaces it.
"""

from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

_PACKAGE_DIR = Path(__file__).parent


def _candidates(name: str) -> list[Path]:
    filename = f"{name}.txt"
    return [Path.cwd() / "prompts" / filename, _PACKAGE_DIR / filename]


@lru_cache(maxsize=8)
def load_prompt(name: str) -> str:
    """Read a prompt, preferring a working-directory override.

    Raises:
        FileNotFoundError: If no candidate file exists
    """
    candidates = _candidates(name)
    for path in candidates:
        if path.is_file():
            logger.debug("prompt_loaded", name=name, path=str(path))
            return path.read_text(encoding="utf-8").strip()

    searched = "\n".join(f"  - {path}" for path in candidates)
    raise FileNotFoundError(f"Prompt '{name}' not found. Searched:\n{searched}")


def get_system_prompt() -> str:
    return load_prompt("system")


def build_system_prompt(base_prompt: str | None, tool_names: Iterable[str]) -> str:
    """Append the tools offered this turn to the session prompt.

    An empty ``base_prompt`` falls back to the packaged default.
    """
    prompt = (base_prompt or get_system_prompt()).strip()
    names = list(tool_names)
    if not names:
        return prompt
    tool_list = "\n".join(f"- {name}" for name in names)
    return f"{prompt}\n\nYou have access to the following tools:\n{tool_list}"


__all__ = [
    "load_prompt",
    "get_system_prompt",
    "build_system_prompt",
]
