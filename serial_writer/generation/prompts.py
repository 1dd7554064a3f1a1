"""Prompt composition for chapters and new-work concepts."""

from typing import List, Optional

from ..config import StrategyProfile
from ..context import GenerationContext
from ..pacing import PacingConstraints

CHAPTER_LAYOUT = """Answer in exactly this layout:

## TITLE
<chapter title>
## SUMMARY
<two or three sentences>
## KEY EVENTS
- <event>
## EMOTIONAL TONE
<one word>
## NEW CONFLICTS
- <conflict introduced in this chapter, or leave empty>
## RESOLVED CONFLICTS
- <conflict from the active list that this chapter settles, or leave empty>
## CHARACTER UPDATES
- <name> | <location> | <emotional state> | <relationship status>
## FORESHADOWING
- <hint planted for later chapters, or leave empty>
## BODY
<the chapter prose>"""

CONCEPT_LAYOUT = """Answer in exactly this layout:

## TITLE
<title>
## LOGLINE
<one sentence premise>
## TROPES
- <trope>
## CHARACTERS
- <name> | <protagonist|counterpart|supporting> | <appearance> | <personality traits, comma separated>
## WORLD RULES
- <rule of the setting that never changes>
## CONFLICTS
- <central conflict first, then secondary ones>
## FORESHADOWING
- <mystery or hint to pay off later>"""

STYLE_NOTES = {
    "concise": "Keep scenes tight; favour one strong scene over several thin ones.",
    "detailed": "Develop two or three scenes with concrete sensory detail.",
    "elaborate": "Give every scene texture: setting, body language, subtext in dialogue.",
    "intensive": "This chapter must win readers back: open on a hook, end on a cliffhanger.",
}


def chapter_prompt(
    context: GenerationContext,
    constraints: PacingConstraints,
    profile: StrategyProfile,
    language: str = "en",
    feedback: Optional[List[str]] = None,
    previous_ending: str = "",
) -> str:
    parts = [
        f"# Write chapter {constraints.chapter_number}",
        "",
        context.render(),
        "",
        "# Constraints",
        *(f"- {line}" for line in constraints.prompt_lines()),
        f"- {STYLE_NOTES.get(profile.prompt_style, STYLE_NOTES['concise'])}",
    ]
    if language == "ko":
        parts.append("- Write the chapter in Korean; keep the section headers in English.")
    if previous_ending:
        parts += ["", "# Previous chapter ending", previous_ending]
    if feedback:
        parts += [
            "",
            "# Revision instructions",
            "The previous attempt was rejected. Fix the following:",
            *(f"- {line}" for line in feedback),
        ]
    parts += ["", CHAPTER_LAYOUT]
    return "\n".join(parts)


def concept_prompt(
    existing_titles: List[str],
    target_chapters: int,
    language: str = "en",
    feedback: Optional[List[str]] = None,
) -> str:
    parts = [
        "# Create a new romance fantasy serial",
        f"It will run for about {target_chapters} chapters, so the central conflict must "
        "be big enough to sustain them.",
        "Give it two leads (a protagonist and a counterpart) plus at least one supporting character.",
    ]
    if existing_titles:
        parts.append("Do not repeat these existing works: " + "; ".join(existing_titles) + ".")
    if language == "ko":
        parts.append("Write the content in Korean; keep the section headers in English.")
    if feedback:
        parts += ["", "The previous answer could not be used:", *(f"- {line}" for line in feedback)]
    parts += ["", CONCEPT_LAYOUT]
    return "\n".join(parts)
