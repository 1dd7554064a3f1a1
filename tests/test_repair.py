import pytest

from serial_writer.models import Engine
from serial_writer.quality import REPAIRS_BY_ENGINE, RepairAction, RepairContext, RepairKind, apply_repair
from serial_writer.quality.repair import choose_repair, deduplicate
from serial_writer.signals import SignalType

from conftest import GOOD_BODY, MAIN_CONFLICT, make_state

SHORT_BODY = """Elena walked into the hall. The guards were asleep.

She waited by the door. Nobody came.

"Go," she said. "Go," she said. "Now," Kael said."""


def test_every_engine_has_repairs():
    assert set(REPAIRS_BY_ENGINE) == set(Engine)
    covered = {kind for kinds in REPAIRS_BY_ENGINE.values() for kind in kinds}
    assert covered == set(RepairKind)


def test_choose_repair_cycles_by_attempt():
    first = choose_repair(Engine.PLOT, 1, "low")
    second = choose_repair(Engine.PLOT, 2)
    third = choose_repair(Engine.PLOT, 3)
    assert first.kind == RepairKind.INJECT_FORWARD_EVENT
    assert second.kind == RepairKind.DEDUPLICATE_PHRASING
    assert third.kind == first.kind
    assert first.reason == "low"


def test_context_from_state():
    ctx = RepairContext.from_state(make_state())
    assert ctx.name == "Elena"
    assert ctx.conflict == MAIN_CONFLICT
    assert RepairContext.from_state(None).name == "the protagonist"


@pytest.mark.parametrize("kind", list(RepairKind))
def test_every_repair_returns_text(kind, extractor):
    engine = next(e for e, kinds in REPAIRS_BY_ENGINE.items() if kind in kinds)
    ctx = RepairContext.from_state(make_state())
    repaired = apply_repair(RepairAction(kind=kind, engine=engine), SHORT_BODY, extractor, ctx)
    assert isinstance(repaired, str)
    assert repaired.strip()
    assert "{name}" not in repaired and "{conflict}" not in repaired


def test_inject_forward_event(extractor):
    ctx = RepairContext.from_state(make_state())
    action = RepairAction(kind=RepairKind.INJECT_FORWARD_EVENT, engine=Engine.PLOT)
    repaired = apply_repair(action, SHORT_BODY, extractor, ctx)
    assert extractor.count(repaired, SignalType.FORWARD_MOTION) > extractor.count(SHORT_BODY, SignalType.FORWARD_MOTION)
    assert MAIN_CONFLICT in repaired


def test_add_sensory_detail(extractor):
    action = RepairAction(kind=RepairKind.ADD_SENSORY_DETAIL, engine=Engine.LITERARY)
    repaired = apply_repair(action, SHORT_BODY, extractor, RepairContext())
    assert extractor.count(repaired, SignalType.SENSORY) > 0
    # inserted as its own paragraph after the opening one
    assert repaired.startswith("Elena walked into the hall.")


def test_heighten_tension_and_agency(extractor):
    ctx = RepairContext(name="Elena")
    tension = apply_repair(RepairAction(kind=RepairKind.HEIGHTEN_TENSION, engine=Engine.CHEMISTRY),
                           SHORT_BODY, extractor, ctx)
    assert extractor.count(tension, SignalType.TENSION) > 0
    agency = apply_repair(RepairAction(kind=RepairKind.STRENGTHEN_AGENCY, engine=Engine.CHARACTER),
                          SHORT_BODY, extractor, ctx)
    assert extractor.count(agency, SignalType.AGENCY) > 0


@pytest.mark.parametrize("attempt", [1, 2])
def test_agency_templates_use_no_gendered_pronouns(extractor, attempt):
    body = "Kael walked into the hall. The guards were asleep.\n\nNobody came."
    action = RepairAction(kind=RepairKind.STRENGTHEN_AGENCY, engine=Engine.CHARACTER)
    repaired = apply_repair(action, body, extractor, RepairContext(name="Kael", attempt=attempt))
    added = repaired.replace("Kael walked into the hall.", "")
    assert "Kael" in added
    for pronoun in ("she", "her", "he", "him", "his"):
        assert pronoun not in added.lower().replace(".", " ").replace(",", " ").split()


def test_default_name_starts_sentences_capitalized(extractor):
    body = "The hall was empty. The guards were asleep.\n\nNobody came."
    action = RepairAction(kind=RepairKind.STRENGTHEN_AGENCY, engine=Engine.CHARACTER)
    repaired = apply_repair(action, body, extractor, RepairContext())
    assert "The protagonist" in repaired


def test_diversify_dialogue_drops_repeated_line(extractor):
    action = RepairAction(kind=RepairKind.DIVERSIFY_DIALOGUE, engine=Engine.CHARACTER)
    repaired = apply_repair(action, SHORT_BODY, extractor, RepairContext())
    assert repaired.count('"Go,"') == 1
    assert '"Now,"' in repaired


def test_vary_rhythm_joins_short_sentences(extractor):
    action = RepairAction(kind=RepairKind.VARY_RHYTHM, engine=Engine.LITERARY)
    repaired = apply_repair(action, SHORT_BODY, extractor, RepairContext())
    assert "Elena walked into the hall; the guards were asleep." in repaired


def test_deduplicate():
    text = "The bell rang over the silent city. She ran.\n\nThe bell rang over the silent city. No.\n\nShe ran."
    result = deduplicate(text)
    assert result.count("The bell rang over the silent city.") == 1
    assert "No." in result


def test_repairs_leave_good_prose_mostly_intact(extractor):
    action = RepairAction(kind=RepairKind.DEDUPLICATE_PHRASING, engine=Engine.PLOT)
    assert apply_repair(action, GOOD_BODY, extractor, RepairContext()) == deduplicate(GOOD_BODY)
