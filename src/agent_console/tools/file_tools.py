"""Filesystem tools — thin, stateless wrappers around pathlib."""

import logging
from datetime import datetime
from pathlib import Path

from agent_console.tools.registry import ToolDeclaration, ToolParameter

logger = logging.getLogger(__name__)

# Cap on names returned by ListFiles so a huge directory can't flood the context.
LIST_FILES_LIMIT = 100


def _top_level_files(path: Path) -> list[Path]:
    return sorted(p for p in path.iterdir() if p.is_file())


def list_files(path: str) -> list[str]:
    """Return the names of the files directly inside ``path``."""
    directory = Path(path).expanduser()
    if not directory.is_dir():
        return [f"Directory not found: {path}"]
    return [p.name for p in _top_level_files(directory)[:LIST_FILES_LIMIT]]


def count_files(path: str) -> int:
    """Return the number of files directly inside ``path``, or -1 if it is missing."""
    directory = Path(path).expanduser()
    if not directory.is_dir():
        return -1
    return len(_top_level_files(directory))


def create_folder(path: str) -> str:
    try:
        Path(path).expanduser().mkdir(parents=True, exist_ok=True)
    except PermissionError:
        return f"Access denied: {path}"
    except OSError as exc:
        return f"Error: {exc.strerror or exc}"
    logger.debug("Created folder %s", path)
    return f"Created: {path}"


def get_file_info(file_path: str) -> str:
    path = Path(file_path).expanduser()
    if not path.is_file():
        return f"Not found: {file_path}"
    stat = path.stat()
    modified = datetime.fromtimestamp(stat.st_mtime).strftime("%Y-%m-%d %H:%M")
    return f"{path.name} | {stat.st_size:,} bytes | {modified}"


_PATH = ToolParameter("path", "string", "Directory path.")

FILE_TOOLS: tuple[ToolDeclaration, ...] = (
    ToolDeclaration(
        name="ListFiles",
        description="Lists files in a directory (non-recursive, top-level only).",
        handler=list_files,
        parameters=(_PATH,),
    ),
    ToolDeclaration(
        name="CountFiles",
        description="Counts files in a directory (non-recursive, top-level only). Returns -1 if not found.",
        handler=count_files,
        parameters=(_PATH,),
    ),
    ToolDeclaration(
        name="CreateFolder",
        description="Creates a new folder at the specified path.",
        handler=create_folder,
        parameters=(ToolParameter("path", "string", "Folder path to create."),),
    ),
    ToolDeclaration(
        name="GetFileInfo",
        description="Gets file information (name, size, modified date).",
        handler=lambda filePath: get_file_info(filePath),
        parameters=(ToolParameter("filePath", "string", "Path of the file."),),
    ),
)
