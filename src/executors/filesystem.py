"""Local filesystem executor.

Reads, writes, lists and deletes files below a fixed root directory.
Every path is resolved against the root and rejected when it escapes
it, except for itemExists which answers False instead of failing.
"""

import codecs
import shutil
from pathlib import Path
from typing import Any, Optional

from pydantic import SecretStr

from shared.logging import get_logger
from shared.models import ToolDefinition, ToolErrorCode
from shared.schema import object_schema
from executors.base import BaseExecutor, Handler, ToolExecutionError

logger = get_logger(__name__)

DEFAULT_ENCODING = "utf-8"


class LocalFilesystemExecutor(BaseExecutor):
    """
    Filesystem tools confined to a root directory.

    Provides tools for:
    - Reading and writing text files
    - Listing directory entries, optionally recursively
    - Creating directories and deleting files or trees
    - Existence checks
    """

    kind = "filesystem"

    def __init__(self, root: str | Path) -> None:
        super().__init__()
        self.root = Path(root).resolve()
        self._define_tools()

    def _define_tools(self) -> None:
        """Define all filesystem tools."""
        self._tools["readFile"] = ToolDefinition(
            name="readFile",
            description="Read a text file below the root and return its contents.",
            input_schema=object_schema(
                {"path": "string", "encoding": "string"},
                required=["path"]
            )
        )
        self._tools["writeFile"] = ToolDefinition(
            name="writeFile",
            description="Write text to a file, creating parent directories. Overwrites unless append is true.",
            input_schema=object_schema(
                {"path": "string", "content": "string", "append": "bool", "encoding": "string"},
                required=["path", "content"]
            )
        )
        self._tools["listFiles"] = ToolDefinition(
            name="listFiles",
            description="List directory entries. depth > 0 implies recursive and bounds the descent.",
            input_schema=object_schema(
                {
                    "path": "string",
                    "recursive": "bool",
                    "depth": {"type": "integer", "minimum": 0},
                },
                required=["path"]
            )
        )
        self._tools["createDirectory"] = ToolDefinition(
            name="createDirectory",
            description="Create a directory (and missing parents). Fails if it already exists.",
            input_schema=object_schema({"path": "string"}, required=["path"])
        )
        self._tools["deleteItem"] = ToolDefinition(
            name="deleteItem",
            description="Delete a file, or a directory tree when recursive is true.",
            input_schema=object_schema(
                {"path": "string", "recursive": "bool"},
                required=["path"]
            )
        )
        # itemExists never fails, so its parameters are checked by hand
        self._tools["itemExists"] = ToolDefinition(
            name="itemExists",
            description="Return whether a path exists below the root.",
        )

    def _handlers(self) -> dict[str, Handler]:
        return {
            "readFile": self._read_file,
            "writeFile": self._write_file,
            "listFiles": self._list_files,
            "createDirectory": self._create_directory,
            "deleteItem": self._delete_item,
            "itemExists": self._item_exists,
        }

    def resolve_path(self, path: str) -> Path:
        """
        Resolve a caller-supplied path against the root.

        Raises:
            ToolExecutionError: If the resolved path lies outside the root
        """
        candidate = (self.root / path).resolve()
        if not candidate.is_relative_to(self.root):
            raise ToolExecutionError(
                f"Path '{path}' resolves outside the root directory",
                ToolErrorCode.PATH_OUTSIDE_ROOT
            )
        return candidate

    def _entry_path(self, path: str) -> Path:
        """
        Locate a path below the root without following its last component.

        Raises:
            ToolExecutionError: If the containing directory lies outside the root
        """
        candidate = self.root / path
        if candidate == self.root or candidate.name in ("", ".."):
            return self.resolve_path(path)
        parent = candidate.parent.resolve()
        if not parent.is_relative_to(self.root):
            raise ToolExecutionError(
                f"Path '{path}' resolves outside the root directory",
                ToolErrorCode.PATH_OUTSIDE_ROOT
            )
        return parent / candidate.name

    def _relative(self, path: Path) -> str:
        rel = path.relative_to(self.root).as_posix()
        return rel or "."

    def _read_file(
        self,
        params: dict[str, Any],
        credential: Optional[SecretStr]
    ) -> str:
        target = self.resolve_path(params["path"])
        encoding = _check_encoding(params.get("encoding", DEFAULT_ENCODING))

        if not target.exists():
            raise ToolExecutionError(f"File '{params['path']}' not found", ToolErrorCode.NOT_FOUND)
        if not target.is_file():
            raise ToolExecutionError(f"'{params['path']}' is not a file")

        try:
            return target.read_text(encoding=encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise ToolExecutionError(f"Cannot read '{params['path']}': {e}") from e

    def _write_file(
        self,
        params: dict[str, Any],
        credential: Optional[SecretStr]
    ) -> dict[str, Any]:
        target = self.resolve_path(params["path"])
        encoding = _check_encoding(params.get("encoding", DEFAULT_ENCODING))
        content = params["content"]
        append = params.get("append", False)

        if target.is_dir():
            raise ToolExecutionError(f"'{params['path']}' is a directory")

        try:
            data = content.encode(encoding)
        except UnicodeEncodeError as e:
            raise ToolExecutionError(
                f"Content cannot be encoded as {encoding}: {e}", ToolErrorCode.VALIDATION_ERROR
            ) from e

        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "ab" if append else "wb") as f:
            f.write(data)

        logger.debug("File written", path=self._relative(target), append=append)
        return {
            "path": self._relative(target),
            "characters": len(content),
            "appended": append,
        }

    def _list_files(
        self,
        params: dict[str, Any],
        credential: Optional[SecretStr]
    ) -> list[dict[str, Any]]:
        base = self.resolve_path(params["path"])
        depth = params.get("depth", 0)
        recursive = params.get("recursive", False) or depth > 0

        if not base.exists():
            raise ToolExecutionError(f"Directory '{params['path']}' not found", ToolErrorCode.NOT_FOUND)
        if not base.is_dir():
            raise ToolExecutionError(f"'{params['path']}' is not a directory")

        # depth 0 with recursive means unbounded
        max_depth = depth if depth > 0 else (None if recursive else 1)

        entries: list[dict[str, Any]] = []
        self._collect(base, 1, max_depth, entries)
        return entries

    def _collect(
        self,
        directory: Path,
        level: int,
        max_depth: Optional[int],
        entries: list[dict[str, Any]]
    ) -> None:
        for child in sorted(directory.iterdir(), key=lambda p: p.name):
            is_dir = child.is_dir() and not child.is_symlink()
            entries.append({
                "name": child.name,
                "path": child.relative_to(self.root).as_posix(),
                "type": "directory" if is_dir else "file",
                "size": None if is_dir else child.lstat().st_size,
            })
            if is_dir and (max_depth is None or level < max_depth):
                self._collect(child, level + 1, max_depth, entries)

    def _create_directory(
        self,
        params: dict[str, Any],
        credential: Optional[SecretStr]
    ) -> dict[str, Any]:
        target = self.resolve_path(params["path"])
        if target.exists():
            raise ToolExecutionError(f"'{params['path']}' already exists", ToolErrorCode.ALREADY_EXISTS)

        target.mkdir(parents=True)
        return {"path": self._relative(target), "created": True}

    def _delete_item(
        self,
        params: dict[str, Any],
        credential: Optional[SecretStr]
    ) -> dict[str, Any]:
        recursive = params.get("recursive", False)

        # A symlink is removed itself, never the entry it points to
        link = self._entry_path(params["path"])
        if link.is_symlink():
            link.unlink()
            logger.debug("Link deleted", path=params["path"])
            return {"path": params["path"], "deleted": True}

        target = self.resolve_path(params["path"])
        if target == self.root:
            raise ToolExecutionError("Refusing to delete the root directory", ToolErrorCode.PATH_OUTSIDE_ROOT)
        if not target.exists():
            raise ToolExecutionError(f"'{params['path']}' not found", ToolErrorCode.NOT_FOUND)

        if target.is_dir():
            if recursive:
                shutil.rmtree(target)
            else:
                try:
                    target.rmdir()
                except OSError as e:
                    raise ToolExecutionError(
                        f"Directory '{params['path']}' is not empty; set recursive=true to delete it"
                    ) from e
        else:
            target.unlink()

        logger.debug("Item deleted", path=params["path"], recursive=recursive)
        return {"path": params["path"], "deleted": True}

    def _item_exists(
        self,
        params: dict[str, Any],
        credential: Optional[SecretStr]
    ) -> bool:
        path = params.get("path") if isinstance(params, dict) else None
        if not isinstance(path, str) or not path:
            return False
        try:
            return self.resolve_path(path).exists()
        except (ToolExecutionError, OSError, ValueError):
            return False


def _check_encoding(name: str) -> str:
    try:
        codecs.lookup(name)
    except LookupError as e:
        raise ToolExecutionError(
            f"Unknown encoding '{name}'", ToolErrorCode.VALIDATION_ERROR
        ) from e
    return name
