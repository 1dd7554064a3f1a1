from .extractor import (
    SignalType,
    SignalSet,
    TextSignalExtractor,
    KeywordSignalExtractor,
    load_signal_set,
    default_extractor,
)

__all__ = [
    "SignalType",
    "SignalSet",
    "TextSignalExtractor",
    "KeywordSignalExtractor",
    "load_signal_set",
    "default_extractor",
]
