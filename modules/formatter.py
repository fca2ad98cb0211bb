"""
Response Formatter — semi-structured analysis text → typed sections.

The model answers in a small Markdown dialect::

    **Futterquellen:**
    * Mischwald mit Ahorn und Linde
    **Risiken:**
    * Maismonokultur im Osten
    **Fazit:**
    Guter Standort für Frühtracht.
    **Bewertung:** 8/10

``format_analysis`` walks the lines top to bottom with a two-state
machine (``NONE`` / ``IN_LIST``). It never raises: any anomaly degrades
to a result that shows the raw text verbatim.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Union

from modules.errors import ParseError

logger = logging.getLogger(__name__)

BOLD = "**"
SCORE_MARKER = "**Bewertung:"
BULLET_MARKERS = ("* ", "- ")
DEFAULT_SCORE_MAX = 10

SOURCES_HEADING = "futterquellen"
RISKS_HEADING = "risiken"
SUMMARY_HEADING = "fazit"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


# ------------------------------------------------------------------ #
#  Result types                                                      #
# ------------------------------------------------------------------ #

@dataclass
class Heading:
    text: str
    kind: str = "heading"


@dataclass
class Paragraph:
    text: str
    kind: str = "paragraph"


@dataclass
class BulletList:
    items: list[str]
    kind: str = "list"


@dataclass
class Score:
    value: int | None
    maximum: int = DEFAULT_SCORE_MAX
    label: str = "neutral"
    kind: str = "score"

    @property
    def display(self) -> str:
        return "?" if self.value is None else str(self.value)


Block = Union[Heading, Paragraph, BulletList, Score]


@dataclass
class Section:
    heading: str | None
    items: list[str] = field(default_factory=list)
    paragraphs: list[str] = field(default_factory=list)


@dataclass
class FormattedAnalysis:
    raw_text: str
    blocks: list[Block] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)
    score: Score | None = None
    fallback: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.raw_text.strip()

    def section(self, name: str) -> Section | None:
        """First section whose heading starts with *name* (case-insensitive)."""
        wanted = name.lower()
        for sec in self.sections:
            if sec.heading is not None and sec.heading.lower().startswith(wanted):
                return sec
        return None

    @property
    def sources(self) -> list[str]:
        sec = self.section(SOURCES_HEADING)
        return list(sec.items) if sec else []

    @property
    def risks(self) -> list[str]:
        sec = self.section(RISKS_HEADING)
        return list(sec.items) if sec else []

    @property
    def summary(self) -> str:
        sec = self.section(SUMMARY_HEADING)
        if sec is None:
            return ""
        return "\n".join(sec.paragraphs + sec.items)


def score_label(value: int | None) -> str:
    if value is None:
        return "neutral"
    if value >= 8:
        return "excellent"
    if value >= 5:
        return "good"
    return "needs improvement"


def _parse_int(text: str) -> int | None:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else None


def parse_score(line: str) -> Score:
    """``**Bewertung:** 8/10`` → ``Score(8, 10, "excellent")``."""
    rating = line.replace("*", "").replace("Bewertung:", "", 1).strip()
    score_text, _, max_text = rating.partition("/")
    value = _parse_int(score_text)
    maximum = _parse_int(max_text)
    return Score(
        value=value,
        maximum=DEFAULT_SCORE_MAX if maximum is None else maximum,
        label=score_label(value),
    )


# ------------------------------------------------------------------ #
#  Line-oriented state machine                                       #
# ------------------------------------------------------------------ #

class _State(enum.Enum):
    NONE = "none"
    IN_LIST = "in_list"


class _Parser:
    def __init__(self) -> None:
        self.state = _State.NONE
        self.blocks: list[Block] = []
        self.sections: list[Section] = [Section(heading=None)]
        self.score: Score | None = None
        self._items: list[str] = []

    @property
    def _section(self) -> Section:
        return self.sections[-1]

    def _flush(self) -> None:
        if self.state is _State.IN_LIST:
            self.blocks.append(BulletList(self._items))
            self._section.items.extend(self._items)
            self._items = []
            self.state = _State.NONE

    def feed(self, line: str) -> None:
        line = line.strip()

        if not line:
            self._flush()
        elif _is_heading(line):
            self._flush()
            text = line[len(BOLD):-len(BOLD)].strip().rstrip(":").strip()
            self.blocks.append(Heading(text))
            self.sections.append(Section(heading=text))
        elif line.startswith(SCORE_MARKER):
            self._flush()
            self.score = parse_score(line)
            self.blocks.append(self.score)
        elif line.startswith(BULLET_MARKERS):
            self._items.append(line[2:].strip())
            self.state = _State.IN_LIST
        else:
            self._flush()
            self.blocks.append(Paragraph(line))
            self._section.paragraphs.append(line)

    def finish(self) -> None:
        self._flush()
        if self.state is not _State.NONE or self._items:
            raise ParseError("list was not flushed")
        if self.sections and self.sections[0].heading is None and not (
            self.sections[0].items or self.sections[0].paragraphs
        ):
            self.sections.pop(0)


def _is_heading(line: str) -> bool:
    if "Bewertung:" in line:
        return False
    return (
        len(line) > 2 * len(BOLD)
        and line.startswith(BOLD)
        and line.endswith(BOLD)
        and bool(line[len(BOLD):-len(BOLD)].strip(" *:"))
    )


def format_analysis(raw_text: str) -> FormattedAnalysis:
    """Decompose analysis text into headings, lists, paragraphs and a score.

    Never raises; on any anomaly the result has ``fallback=True`` and a
    single paragraph holding the raw text.
    """
    try:
        if not isinstance(raw_text, str):
            raise ParseError(f"expected text, got {type(raw_text).__name__}")
        parser = _Parser()
        for line in raw_text.splitlines():
            parser.feed(line)
        parser.finish()
        return FormattedAnalysis(
            raw_text=raw_text,
            blocks=parser.blocks,
            sections=parser.sections,
            score=parser.score,
        )
    except Exception as exc:
        logger.warning("Showing raw analysis text, formatting failed: %s", exc)
        text = raw_text if isinstance(raw_text, str) else ("" if raw_text is None else repr(raw_text))
        return FormattedAnalysis(
            raw_text=text,
            blocks=[Paragraph(text)] if text.strip() else [],
            fallback=True,
        )
