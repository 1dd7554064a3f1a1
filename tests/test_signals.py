import pytest

from serial_writer.signals import (
    KeywordSignalExtractor,
    SignalSet,
    SignalType,
    default_extractor,
    load_signal_set,
)

from serial_writer.config import Config
from serial_writer.errors import ConfigError

from conftest import FLAT_BODY, GOOD_BODY


def test_builtin_sets_cover_every_signal():
    for locale in ("en", "ko"):
        signal_set = load_signal_set(locale)
        assert signal_set.locale == locale
        assert set(signal_set.markers) == set(SignalType)
        assert signal_set.tones


def test_counts_are_case_insensitive(extractor):
    text = "Suddenly she DECIDED. Then, suddenly, the truth."
    assert extractor.count(text, SignalType.FORWARD_MOTION) == 4
    assert extractor.distinct(text, SignalType.FORWARD_MOTION) == 3


def test_word_boundaries(extractor):
    # "heartbeat" is a tension marker; "heart" inside it is not an emotion hit
    assert extractor.count("heartbeat", SignalType.EMOTION) == 0
    assert extractor.count("heartbeat", SignalType.TENSION) == 1


def test_good_prose_has_more_signal_than_flat_prose(extractor):
    for signal in (SignalType.FORWARD_MOTION, SignalType.SENSORY, SignalType.TENSION):
        assert extractor.count(GOOD_BODY, signal) > extractor.count(FLAT_BODY, signal)
    assert extractor.count(FLAT_BODY, SignalType.STAGNATION) >= 3


def test_density_and_dominant_tone(extractor):
    assert extractor.density("", SignalType.EMOTION) == 0.0
    assert extractor.dominant_tone("nothing of note here") == "neutral"
    assert extractor.dominant_tone("danger and threat and fear in the dark") == "tense"


def test_templates_cycle(extractor):
    first = extractor.template("forward_event", 0)
    assert first is not None
    assert extractor.template("forward_event", 2) == first
    assert extractor.template("no_such_kind") is None


def test_markers_expose_table(extractor):
    assert "as usual" in extractor.markers(SignalType.STAGNATION)


def test_custom_signal_set_from_yaml(tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text("""
name: test-set
locale: en
markers:
  forward_motion: [eureka]
tones:
  odd: [eureka]
""")
    extractor = default_extractor(path)
    assert extractor.count("Eureka! eureka.", SignalType.FORWARD_MOTION) == 2
    assert extractor.count("anything", SignalType.STAGNATION) == 0
    assert extractor.dominant_tone("eureka") == "odd"


def test_missing_signal_set():
    with pytest.raises(ConfigError, match="not found"):
        load_signal_set("/no/such/set.yaml")


def test_invalid_signal_set(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("markers: [not, a, mapping]\n")
    with pytest.raises(ConfigError, match="invalid"):
        load_signal_set(path)


@pytest.mark.parametrize("locale", ["en", "ko"])
def test_builtin_locale_selected_through_config(tmp_path, locale):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(f"signal_set: {locale}\n")
    config = Config.from_yaml(config_file)
    extractor = default_extractor(config.signal_set)
    assert extractor.locale == locale
    assert extractor.signal_set.locale == locale


def test_korean_without_word_boundaries():
    extractor = KeywordSignalExtractor(SignalSet(
        name="ko-test", locale="ko", word_boundaries=False,
        markers={SignalType.STAGNATION: ["평소처럼"]},
    ))
    assert extractor.count("그녀는 평소처럼 차를 마셨다.", SignalType.STAGNATION) == 1
