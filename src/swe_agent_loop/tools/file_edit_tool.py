from pathlib import Path
from typing import Any

_VIEW_MAX_LINES = 2000


class FileEditTool:
    def __init__(self, working_directory: str | None = None):
        self._working_directory = working_directory

    @property
    def name(self) -> str:
        return "file_edit"

    @property
    def description(self) -> str:
        return (
            "View, create and edit text files. For moving or renaming use execute_command with `mv`.\n"
            "- view: show the file with line numbers (optionally `viewRange` [start, end], 1-based).\n"
            "- create: write `fileText` to a new or existing file.\n"
            "- str_replace: replace ONE occurrence of `oldString` with `newString`. `oldString` must "
            "match the file exactly, including whitespace, and must be unique: include 3-5 lines of "
            "context before and after the change.\n"
            "- insert: insert `newString` after line `insertLine` (0 inserts at the top)."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "enum": ["view", "create", "str_replace", "insert"],
                    "description": "The operation to perform",
                },
                "path": {
                    "type": "string",
                    "description": "Absolute path, or a path relative to the working directory",
                },
                "fileText": {"type": "string", "description": "Content for `create`"},
                "oldString": {"type": "string", "description": "Text to replace for `str_replace`"},
                "newString": {"type": "string", "description": "Replacement or inserted text"},
                "insertLine": {"type": "integer", "minimum": 0, "description": "Line to insert after"},
                "viewRange": {
                    "type": "array",
                    "items": {"type": "integer"},
                    "minItems": 2,
                    "maxItems": 2,
                    "description": "1-based inclusive line range for `view`; -1 as end means end of file",
                },
            },
            "required": ["command", "path"],
        }

    async def execute(self, tool_input: dict[str, Any]) -> str:
        command = tool_input["command"]
        path = self._resolve(tool_input["path"])

        if command == "view":
            return self._view(path, tool_input.get("viewRange"))
        if command == "create":
            if "fileText" not in tool_input:
                raise ValueError("`fileText` is required for create")
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(tool_input["fileText"], encoding="utf-8")
            return f"Successfully created {path}"
        if command == "str_replace":
            return self._str_replace(path, tool_input.get("oldString", ""), tool_input.get("newString", ""))
        if command == "insert":
            if "insertLine" not in tool_input or "newString" not in tool_input:
                raise ValueError("`insertLine` and `newString` are required for insert")
            return self._insert(path, int(tool_input["insertLine"]), tool_input["newString"])
        raise ValueError(f"Unknown command: {command}")

    def _resolve(self, raw_path: str) -> Path:
        path = Path(raw_path).expanduser()
        if not path.is_absolute() and self._working_directory:
            path = Path(self._working_directory) / path
        return path

    @staticmethod
    def _view(path: Path, view_range: list[int] | None) -> str:
        if path.is_dir():
            entries = sorted(p.name + ("/" if p.is_dir() else "") for p in path.iterdir())
            return "\n".join(entries)
        lines = path.read_text(encoding="utf-8").splitlines()
        start, end = 1, len(lines)
        if view_range:
            start = max(1, view_range[0])
            end = len(lines) if view_range[1] == -1 else min(len(lines), view_range[1])
        if end - start + 1 > _VIEW_MAX_LINES:
            end = start + _VIEW_MAX_LINES - 1
        numbered = [f"{i:6}\t{lines[i - 1]}" for i in range(start, end + 1)]
        return "\n".join(numbered) if numbered else "(empty file)"

    @staticmethod
    def _str_replace(path: Path, old: str, new: str) -> str:
        if not path.exists():
            if old:
                return "The file does not exist. Please check the path again."
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(new, encoding="utf-8")
            return f"Successfully created {path}"

        contents = path.read_text(encoding="utf-8")
        occurrences = contents.count(old) if old else 0
        if occurrences == 0:
            return "The file does not contain `oldString`. Please check it again."
        if occurrences > 1:
            return (
                f"The file contains {occurrences} occurrences of `oldString`. "
                "Only one occurrence is allowed; add more surrounding context."
            )
        path.write_text(contents.replace(old, new, 1), encoding="utf-8")
        return f"Successfully edited {path}"

    @staticmethod
    def _insert(path: Path, insert_line: int, text: str) -> str:
        lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
        if insert_line > len(lines):
            return f"`insertLine` {insert_line} is beyond the end of the file ({len(lines)} lines)."
        if lines and insert_line == len(lines) and not lines[-1].endswith("\n"):
            lines[-1] += "\n"
        if not text.endswith("\n"):
            text += "\n"
        lines.insert(insert_line, text)
        path.write_text("".join(lines), encoding="utf-8")
        return f"Successfully inserted text after line {insert_line} of {path}"
