"""Materializing job scripts and locating R script modules on disk."""

import re
import tempfile
import uuid
from pathlib import Path
from typing import Dict, List, Union

from .exceptions import ConfigurationError

SCRIPT_FILE_NAME = "script.R"

# Helper modules shipped next to the scripts, never offered as jobs
RESERVED_MODULES = ("wrapper", "redshift", "RStudioRunner", "wrapperParams")

_MODULE_NAME = re.compile(r"^[a-z0-9_.-]+$", re.IGNORECASE)


def render_script(body: Union[str, List[str]]) -> str:
    """Turn a script body into file content.

    A list of lines gets a newline after every line; a string is stripped.

    Raises:
        ConfigurationError: If the script is empty
    """
    if isinstance(body, list):
        content = "".join(f"{line}\n" for line in body)
    else:
        content = body.strip()
    if not content.strip():
        raise ConfigurationError("Script content is empty.")
    return content


def create_working_dir(base_dir: Union[str, Path, None] = None) -> Path:
    """Create a fresh working directory for a single run."""
    base = Path(base_dir) if base_dir else Path(tempfile.gettempdir())
    working_dir = base / f"run-{uuid.uuid4().hex}"
    working_dir.mkdir(parents=True, exist_ok=False)
    return working_dir


def materialize_script(body: Union[str, List[str]], working_dir: Union[str, Path]) -> Path:
    """Write the job script into the working directory.

    Args:
        body: Script body as a string or list of lines
        working_dir: Directory owned by the current run

    Returns:
        Path of the written script file
    """
    script_path = Path(working_dir) / SCRIPT_FILE_NAME
    script_path.write_text(render_script(body), encoding="utf-8")
    return script_path


def find_script_modules(script_dir: Union[str, Path]) -> Dict[str, Path]:
    """Map module name to path for every runnable *.R file in script_dir."""
    script_dir = Path(script_dir)
    if not script_dir.is_dir():
        raise ConfigurationError(f"Script directory does not exist: {script_dir}")
    return {
        path.stem: path
        for path in sorted(script_dir.glob("*.R"))
        if path.stem not in RESERVED_MODULES
    }


def resolve_named_script(script_dir: Union[str, Path], name: str) -> Path:
    """Return the path of a named R script module.

    Raises:
        ConfigurationError: If the name is invalid or no such module exists
    """
    path = Path(script_dir) / f"{name}.R"
    if not _MODULE_NAME.match(name or "") or not path.is_file():
        raise ConfigurationError(
            f"I cannot find R script {path}, verify that 'script' is an existing R script."
        )
    return path
