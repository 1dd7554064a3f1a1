from .client import (
    GenerationResponse,
    TextGenerator,
    OpenAIGenerator,
    GeminiGenerator,
    build_generator,
    estimate_tokens,
)
from .parser import parse_chapter, parse_concept
from .prompts import chapter_prompt, concept_prompt
from .recovery import recover_candidate
from .orchestrator import GenerationOrchestrator, RunResult

__all__ = [
    "GenerationResponse",
    "TextGenerator",
    "OpenAIGenerator",
    "GeminiGenerator",
    "build_generator",
    "estimate_tokens",
    "parse_chapter",
    "parse_concept",
    "chapter_prompt",
    "concept_prompt",
    "recover_candidate",
    "GenerationOrchestrator",
    "RunResult",
]
