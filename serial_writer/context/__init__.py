from .builder import ContinuityContextBuilder, GenerationContext, RecentChapter, tokens_to_chars

__all__ = ["ContinuityContextBuilder", "GenerationContext", "RecentChapter", "tokens_to_chars"]
