"""
Classify assistant text into thinking, plan and narrative sections.

Headers are matched case-insensitively at the start of a line. A thinking
block is recognized only at the very start of the text and runs until the plan
header or the first terminal marker. A plan block is the header line plus the
list-item or indented lines directly below it. Everything else is narrative.
No section crosses a terminal marker (FINAL OUTPUT, a "# " heading or a code
fence).
"""

import re
from collections import OrderedDict
from collections.abc import Sequence

import structlog

from ..models.chat_sections import ChatSection, ChatSectionType
from ..models.messages import ToolResult

logger = structlog.get_logger()

THINKING_HEADER = re.compile(
    r"^(?:Thinking(?: Process)?|Thoughts?)(?=[\s:]|$):?", re.IGNORECASE
)
PLAN_HEADER = re.compile(r"^Plan(?=[\s:]|$):?", re.IGNORECASE | re.MULTILINE)
TERMINAL_MARKER = re.compile(r"\n(?:FINAL OUTPUT|# |```)", re.IGNORECASE)

_TERMINAL_LINE = re.compile(r"(?:FINAL OUTPUT|# |```)", re.IGNORECASE)
_LIST_ITEM = re.compile(r"\s*(?:[-*+]|\d+[.)])\s")

# Streaming floors: shorter blocks stay narrative until more text arrives.
MIN_STREAMING_THINKING = 20
MIN_STREAMING_PLAN = 10

CACHE_KEY_LENGTH = 100
DEFAULT_CACHE_SIZE = 50


def _plan_end(text: str, start: int) -> int:
    """Index where the plan block starting at start ends."""
    pos = text.find("\n", start)
    if pos == -1:
        return len(text)

    while pos < len(text):
        next_break = text.find("\n", pos + 1)
        if next_break == -1:
            next_break = len(text)
        line = text[pos + 1 : next_break]

        if _TERMINAL_LINE.match(line):
            return pos
        is_continuation = line[:1] in (" ", "\t") and line.strip()
        if not (_LIST_ITEM.match(line) or is_continuation):
            return pos
        pos = next_break

    return len(text)


def split_sections(text: str, streaming: bool = False) -> list[ChatSection]:
    """
    Split assistant text into ordered sections.

    Args:
        text: Complete or partial assistant output
        streaming: Apply the minimum-length floors for text still arriving

    Returns:
        Sections in text order; empty only for empty input
    """
    if not text:
        return []

    sections: list[ChatSection] = []
    pos = 0

    header = THINKING_HEADER.match(text)
    if header:
        end = len(text)
        plan = PLAN_HEADER.search(text, header.end())
        terminal = TERMINAL_MARKER.search(text, header.end())
        for marker in (plan, terminal):
            if marker is not None:
                end = min(end, marker.start())

        thinking = text[:end].strip()
        if not streaming or len(thinking) > MIN_STREAMING_THINKING:
            sections.append(ChatSection(type=ChatSectionType.THINKING, content=thinking))
            pos = end

    plan = PLAN_HEADER.search(text, pos)
    if plan:
        end = _plan_end(text, plan.start())
        content = text[plan.start() : end].strip()
        if not streaming or len(content) > MIN_STREAMING_PLAN:
            before = text[pos : plan.start()].strip()
            if before:
                sections.append(ChatSection(type=ChatSectionType.NARRATIVE, content=before))
            sections.append(ChatSection(type=ChatSectionType.PLAN, content=content))
            pos = end

    rest = text[pos:].strip()
    if rest:
        sections.append(ChatSection(type=ChatSectionType.NARRATIVE, content=rest))

    if not sections:
        sections.append(ChatSection(type=ChatSectionType.NARRATIVE, content=text))
    return sections


class ContentSegmenter:
    """split_sections with a bounded cache for complete text."""

    def __init__(self, cache_size: int = DEFAULT_CACHE_SIZE) -> None:
        if cache_size < 1:
            raise ValueError("Cache size must be positive")
        self.cache_size = cache_size
        self._cache: OrderedDict[str, tuple[str, list[ChatSection]]] = OrderedDict()

    def segment(self, text: str, streaming: bool = False) -> list[ChatSection]:
        """
        Segment text, reusing cached results for complete text.

        Entries are keyed by the first 100 characters and checked against the
        full text before reuse; streaming text is never cached.
        """
        if streaming:
            return split_sections(text, streaming=True)

        key = text[:CACHE_KEY_LENGTH]
        cached = self._cache.get(key)
        if cached is not None and cached[0] == text:
            return list(cached[1])

        sections = split_sections(text)
        self._cache[key] = (text, sections)
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return list(sections)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


def summarize_tool_results(results: Sequence[ToolResult]) -> str:
    """
    Build the transcript summary of a round of tool results.

    Tool failures show up here as list entries, never as a failed turn.
    """
    succeeded = [r for r in results if r.success]
    failed = [r for r in results if not r.success]

    lines: list[str] = []
    if succeeded:
        lines.append(f"✓ Completed {len(succeeded)} operation(s):")
        lines.extend(f"  • {_describe(r)}" for r in succeeded)
    if failed:
        if lines:
            lines.append("")
        lines.append(f"⚠ {len(failed)} operation(s) failed:")
        lines.extend(f"  • {r.name}: {r.error}" for r in failed)
    return "\n".join(lines)


def _describe(result: ToolResult) -> str:
    if isinstance(result.result, str) and result.result and len(result.result) <= 80:
        first_line = result.result.splitlines()[0]
        return f"{result.name}: {first_line}"
    return result.name
