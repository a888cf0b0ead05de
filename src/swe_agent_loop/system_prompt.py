from __future__ import annotations

import re
from datetime import date
from pathlib import Path

from loguru import logger

# Files are tried in order and the first one found wins; a directory entry
# contributes every markdown file below it.
KNOWLEDGE_FILES = [
    ".cursorrules",
    ".github/copilot-instructions.md",
    "AGENT.md",
    "AGENTS.md",
    "CLAUDE.md",
    ".cursor/rules/",
]

_THINKING_PATTERN = re.compile(r"<thinking>.*?</thinking>", re.DOTALL)


def build_system_prompt(working_directory: str | None = None, *, today: date | None = None) -> str:
    today = today or date.today()
    prompt = f"""\
You are an SWE agent. Help your user using your software development skill. If you run into an \
error while executing a command and want advice from the user, include the error detail in your \
message. Always reply in the language the user writes in, but do any internal reasoning in English.

Here is some information you should know (DO NOT share it with the user):
- Your current working directory is {working_directory or Path.cwd()}
- Today is {today.strftime("%a %b %d %Y")}.

## User interface
Your text output reaches the user only when you use the report_progress tool or when you end your \
turn. During long operations send progress messages so the user is not left waiting. If your last \
action was report_progress, end your turn with no additional text.
For internal reasoning or planning use the think tool; the user does not see it.

## Communication style
Be brief, clear and precise. Format code and other structured content with GitHub-flavored \
markdown. Never try to talk to the user through command executions or code comments.
When ending your turn, make it explicit that you are waiting for the user's response.

## Respecting conventions
Before modifying files, understand the existing code conventions: match the coding style, use the \
libraries already in use, and follow existing patterns. Verify a library is available before using it. \
Never introduce code that exposes secrets.

## Task execution
1. For anything beyond trivial tasks, present an execution plan and wait for the user's confirmation \
before implementing it. Call out unclear requirements and the assumptions you make.
2. Work on a new git branch, never directly on the default branch.
3. Verify changes with the project's own tests, linters and type checkers where they exist.
4. When done, open a pull request with the gh CLI and share its URL."""

    if working_directory:
        knowledge = find_repository_knowledge(working_directory)
        if knowledge:
            prompt += f"\n\n## Repository Knowledge\n{knowledge}"

    return prompt


def find_repository_knowledge(repo_directory: str) -> str | None:
    root = Path(repo_directory)
    for entry in KNOWLEDGE_FILES:
        path = root / entry
        if entry.endswith("/"):
            if not path.is_dir():
                continue
            sections = []
            for md_file in sorted(path.rglob("*.md")):
                try:
                    sections.append(f"# {md_file.relative_to(root).as_posix()}\n{md_file.read_text(encoding='utf-8')}")
                except OSError as ex:
                    logger.error(f"Error reading knowledge file {md_file}: {ex}")
            if sections:
                logger.info(f"Found knowledge directory {entry} with {len(sections)} markdown file(s)")
                return "\n\n".join(sections)
        elif path.is_file():
            try:
                content = path.read_text(encoding="utf-8")
            except OSError as ex:
                logger.error(f"Error reading knowledge file {path}: {ex}")
                continue
            logger.info(f"Found knowledge file {entry}")
            return content
    return None


def render_tool_result(tool_result: str, *, force_report: bool) -> str:
    command = (
        "Long time has passed since you sent the last message. "
        "Please use the report_progress tool to send a response asap."
        if force_report
        else ""
    )
    return f"<result>\n{tool_result}\n</result>\n<command>\n{command}\n</command>"


def strip_thinking(text: str) -> str:
    return _THINKING_PATTERN.sub("", text)
