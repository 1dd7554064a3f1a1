"""
Mechanical improvement transforms used by the quality loop.

Each repair is a ``RepairAction`` tagged with a ``RepairKind``; ``apply_repair``
dispatches on the kind through a table that must cover every kind, so adding
a variant without a handler fails at import time.
"""

import itertools
import re
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from ..models import Engine, StoryState
from ..signals import TextSignalExtractor
from ..utils.text import split_paragraphs, words


class RepairKind(str, Enum):
    INJECT_FORWARD_EVENT = "inject_forward_event"
    DEDUPLICATE_PHRASING = "deduplicate_phrasing"
    STRENGTHEN_AGENCY = "strengthen_agency"
    DIVERSIFY_DIALOGUE = "diversify_dialogue"
    ADD_SENSORY_DETAIL = "add_sensory_detail"
    VARY_RHYTHM = "vary_rhythm"
    HEIGHTEN_TENSION = "heighten_tension"
    DEEPEN_EMOTION = "deepen_emotion"


REPAIRS_BY_ENGINE: Dict[Engine, tuple] = {
    Engine.PLOT: (RepairKind.INJECT_FORWARD_EVENT, RepairKind.DEDUPLICATE_PHRASING),
    Engine.CHARACTER: (RepairKind.STRENGTHEN_AGENCY, RepairKind.DIVERSIFY_DIALOGUE),
    Engine.LITERARY: (RepairKind.ADD_SENSORY_DETAIL, RepairKind.VARY_RHYTHM),
    Engine.CHEMISTRY: (RepairKind.HEIGHTEN_TENSION, RepairKind.DEEPEN_EMOTION),
}


class RepairAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: RepairKind
    engine: Engine
    reason: str = ""


class RepairContext(BaseModel):
    """Names the templates may refer to."""

    name: str = "the protagonist"
    conflict: str = "the trouble"
    attempt: int = 1

    @classmethod
    def from_state(cls, state: Optional[StoryState], attempt: int = 1) -> "RepairContext":
        if state is None:
            return cls(attempt=attempt)
        leads = state.protagonists() or list(state.characters.values())
        return cls(
            name=leads[0].name if leads else "the protagonist",
            conflict=state.active_conflicts[0] if state.active_conflicts else "the trouble",
            attempt=attempt,
        )


def choose_repair(engine: Engine, attempt: int, reason: str = "") -> RepairAction:
    options = REPAIRS_BY_ENGINE[engine]
    return RepairAction(kind=options[(attempt - 1) % len(options)], engine=engine, reason=reason)


def _fill(template: Optional[str], ctx: RepairContext) -> Optional[str]:
    if not template:
        return None
    filled = template.format(name=ctx.name, conflict=ctx.conflict)
    return filled[:1].upper() + filled[1:]


def _insert_paragraph(text: str, paragraph: Optional[str], position: float) -> str:
    if not paragraph:
        return text
    paragraphs = split_paragraphs(text)
    index = max(1, min(len(paragraphs), round(len(paragraphs) * position)))
    paragraphs.insert(index, paragraph)
    return "\n\n".join(paragraphs)


def _append_to_paragraph(text: str, sentence: Optional[str], position: float) -> str:
    if not sentence:
        return text
    paragraphs = split_paragraphs(text)
    if not paragraphs:
        return sentence
    index = min(len(paragraphs) - 1, int(len(paragraphs) * position))
    paragraphs[index] = f"{paragraphs[index]} {sentence}"
    return "\n\n".join(paragraphs)


def _inject_forward_event(text, x, ctx):
    return _insert_paragraph(text, _fill(x.template("forward_event", ctx.attempt - 1), ctx), 0.6)


def deduplicate(text: str) -> str:
    """Drop repeated paragraphs and repeated sentences, keeping first occurrences."""
    seen_paragraphs, seen_sentences, kept = set(), set(), []
    for paragraph in split_paragraphs(text):
        key = " ".join(words(paragraph))
        if key in seen_paragraphs:
            continue
        seen_paragraphs.add(key)
        sentences = re.split(r"(?<=[.!?。！？])\s+", paragraph)
        fresh = []
        for sentence in sentences:
            skey = " ".join(words(sentence))
            # very short sentences ("No.") repeat legitimately
            if len(skey.split()) > 3 and skey in seen_sentences:
                continue
            seen_sentences.add(skey)
            fresh.append(sentence)
        if fresh:
            kept.append(" ".join(fresh))
    return "\n\n".join(kept)


def _deduplicate(text, x, ctx):
    return deduplicate(text)


def _strengthen_agency(text, x, ctx):
    return _append_to_paragraph(text, _fill(x.template("agency", ctx.attempt - 1), ctx), 0.5)


_REPEAT_RE = re.compile(
    r'[ \t]?(?:"([^"\n]+)"|“([^”\n]+)”|「([^」\n]+)」)'
    r"(?:[ \t]+(?:he|she|they|[A-Z][\w']*)[ \t]+(?:said|asked|replied)[.!?]?)?"
)


def _diversify_dialogue(text, x, ctx):
    seen = set()

    def drop_repeat(m):
        key = " ".join(words(next(g for g in m.groups() if g is not None)))
        if key in seen:
            return ""
        seen.add(key)
        return m.group(0)

    # later repeats go, together with a plain speech tag
    text = _REPEAT_RE.sub(drop_repeat, text)
    if x.template("speech_tags") is None:
        return text
    said = itertools.count()

    def vary(m):
        n = next(said)
        return x.template("speech_tags", n // 2) if n % 2 else m.group(0)

    return re.sub(r"\bsaid\b", vary, text)


def _add_sensory_detail(text, x, ctx):
    return _insert_paragraph(text, _fill(x.template("sensory", ctx.attempt - 1), ctx), 0.2)


_SHORT_PAIR_RE = re.compile(
    r"(?:^|(?<=[.!?]\s))([A-Z][^.!?;\n]{0,40})\.[ \t]+([A-Z][^.!?;\n]{0,40}[.!?])",
    re.MULTILINE,
)


def _vary_rhythm(text, x, ctx):
    """Join pairs of short sentences so long and short sentences alternate."""
    def join(m):
        second = m.group(2)
        if second[:2] not in ("I ", "I'"):
            second = second[0].lower() + second[1:]
        return f"{m.group(1)}; {second}"

    return _SHORT_PAIR_RE.sub(join, text)


def _heighten_tension(text, x, ctx):
    return _insert_paragraph(text, _fill(x.template("tension", ctx.attempt - 1), ctx), 0.7)


def _deepen_emotion(text, x, ctx):
    return _append_to_paragraph(text, _fill(x.template("emotional_depth", ctx.attempt - 1), ctx), 0.8)


_HANDLERS: Dict[RepairKind, Callable[[str, TextSignalExtractor, RepairContext], str]] = {
    RepairKind.INJECT_FORWARD_EVENT: _inject_forward_event,
    RepairKind.DEDUPLICATE_PHRASING: _deduplicate,
    RepairKind.STRENGTHEN_AGENCY: _strengthen_agency,
    RepairKind.DIVERSIFY_DIALOGUE: _diversify_dialogue,
    RepairKind.ADD_SENSORY_DETAIL: _add_sensory_detail,
    RepairKind.VARY_RHYTHM: _vary_rhythm,
    RepairKind.HEIGHTEN_TENSION: _heighten_tension,
    RepairKind.DEEPEN_EMOTION: _deepen_emotion,
}

_missing = set(RepairKind) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"repair kinds without a handler: {sorted(k.value for k in _missing)}")


def apply_repair(
    action: RepairAction, text: str, extractor: TextSignalExtractor, ctx: RepairContext
) -> str:
    return _HANDLERS[action.kind](text, extractor, ctx)


def apply_repairs(
    actions: List[RepairAction], text: str, extractor: TextSignalExtractor, ctx: RepairContext
) -> str:
    for action in actions:
        text = apply_repair(action, text, extractor, ctx)
    return text
