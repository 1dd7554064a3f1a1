"""
One automation run, end to end.

decide -> build context -> pacing constraints -> strategy -> generate ->
parse -> pacing validation -> quality gate -> commit (or recover).

Generation failures and pacing violations are retried with the rejection
reasons added to the next prompt. Quality failures go through the gateway's
repair loop and then the recovery path. Decision and persistence errors end
the run and reach the caller.
"""

import statistics
import time
from datetime import datetime
from typing import Callable, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..automation import ActionKind, AutomationDecisionEngine, Decision
from ..config import Config
from ..context import ContinuityContextBuilder
from ..errors import (
    GenerationError,
    PacingViolationError,
    QualityThresholdError,
    SerialWriterError,
    UnparsableOutputError,
)
from ..models import Chapter, ChapterCandidate, QualityReport, Stage, StateDelta, StoryState
from ..models.work import utcnow
from ..pacing import PacingController, PacingReport
from ..quality import AnalysisContext, DynamicThresholdAgent, QualityAssuranceGateway
from ..signals import TextSignalExtractor, default_extractor
from ..state import StoryStateStore
from ..strategy import CostLedger, StrategyChoice, StrategySelector, StrategySignals
from ..utils.text import slugify, truncate_text, word_count
from .client import TextGenerator, build_generator
from .parser import parse_chapter, parse_concept
from .prompts import chapter_prompt, concept_prompt
from .recovery import recover_candidate

STAGE_IMPORTANCE = {
    Stage.INTRODUCTION: 0.5,
    Stage.DEVELOPMENT: 0.4,
    Stage.CLIMAX: 0.8,
    Stage.RESOLUTION: 0.6,
}


class RunResult(BaseModel):
    decision: Decision
    work_id: Optional[str] = None
    chapter_number: Optional[int] = None
    title: Optional[str] = None
    strategy: Optional[str] = None
    report: Optional[QualityReport] = None
    degraded: bool = False
    completed: bool = False
    dry_run: bool = False
    attempts: int = 0
    cost: float = 0.0
    prompt: Optional[str] = None
    feedback: List[str] = Field(default_factory=list)


class _Accepted(BaseModel):
    candidate: ChapterCandidate
    pacing: PacingReport
    attempts: int
    feedback: List[str]


class GenerationOrchestrator:
    def __init__(
        self,
        config: Optional[Config] = None,
        generator: Optional[TextGenerator] = None,
        store: Optional[StoryStateStore] = None,
        extractor: Optional[TextSignalExtractor] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or Config()
        cfg = self.config
        self.extractor = extractor or default_extractor(cfg.signal_set)
        self.generator = generator or build_generator(cfg.generator)
        self.store = store or StoryStateStore(
            cfg.storage.data_dir,
            history_size=cfg.automation.quality_history_size,
            stage_boundaries=cfg.pacing.stage_boundaries,
        )
        self.clock = clock
        self.sleep = sleep

        self.context_builder = ContinuityContextBuilder(cfg.context.budget_chars, cfg.context.recent_window)
        self.pacing = PacingController(self.extractor, cfg.pacing)
        self.gateway = QualityAssuranceGateway(self.extractor, cfg.quality)
        self.thresholds = DynamicThresholdAgent(
            self.extractor, cfg.quality, cfg.thresholds, target_words=cfg.pacing.target_words
        )
        self.selector = StrategySelector(cfg.strategy)
        self.decisions = AutomationDecisionEngine(cfg.automation, chapter_cost=self.selector.cheapest_cost())

    # ------------------------------------------------------------------
    # ledger
    # ------------------------------------------------------------------

    def load_ledger(self) -> CostLedger:
        with self.store.ledger_lock:
            return CostLedger.load(
                self.store.ledger_path, self.config.strategy,
                session_hours=self.config.storage.session_hours, now=self.clock(),
            )

    def _save_ledger(self, ledger: CostLedger) -> None:
        with self.store.ledger_lock:
            ledger.save(self.store.ledger_path)

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------

    def run_once(
        self,
        force: Optional[ActionKind] = None,
        work_id: Optional[str] = None,
        dry_run: bool = False,
    ) -> RunResult:
        """Decide and execute one action.

        Args:
            force: Override the scheduler with a specific action.
            work_id: Target work for a forced continue/complete.
            dry_run: Decide, build context and constraints, but neither call
                the generator nor commit.
        """
        ledger = self.load_ledger()
        states = self.store.list_states()
        decision = self.decisions.decide(states, ledger.remaining, self.clock(), force, work_id)
        try:
            if decision.action == ActionKind.CREATE:
                return self._create(decision, ledger, states, dry_run)
            state = self.store.load(decision.work_id)
            final = decision.action == ActionKind.COMPLETE
            return self._write_chapter(decision, state, ledger, final=final, dry_run=dry_run)
        except SerialWriterError as e:
            logger.error(
                f"Run failed with {type(e).__name__}: {e} | decision: {decision.describe()}"
            )
            raise

    # ------------------------------------------------------------------
    # actions
    # ------------------------------------------------------------------

    def _create(self, decision: Decision, ledger: CostLedger, states: List[StoryState],
                dry_run: bool) -> RunResult:
        choice = self.selector.select(ledger, StrategySignals(importance=0.8))
        titles = [s.work.title for s in states]
        target = self.config.automation.target_chapters
        language = self.extractor.locale
        if dry_run:
            prompt = concept_prompt(titles, target, language=language)
            return RunResult(decision=decision, strategy=choice.name, dry_run=True, prompt=prompt)

        feedback: List[str] = []
        metadata = None
        last_error: Optional[GenerationError] = None
        spent = 0.0
        for attempt in range(1, self.config.generator.max_attempts + 1):
            if attempt > 1:
                self._backoff(attempt)
            try:
                prompt = concept_prompt(titles, target, language=language, feedback=feedback)
                response = self.generator.generate(prompt, choice.profile)
            except GenerationError as e:
                logger.warning(f"Concept attempt {attempt} failed: {e}")
                last_error = e
                continue
            cost = self.selector.cost_of(choice.name, response.tokens_used)
            spent += cost
            ledger = self.selector.charge(ledger, choice.name, response.tokens_used)
            self._save_ledger(ledger)
            try:
                metadata = parse_concept(response.text, target_chapters=target, language=language)
                break
            except UnparsableOutputError as e:
                logger.warning(f"Concept attempt {attempt} unusable: {e}")
                last_error = e
                feedback.append(f"{e.message}. Use the exact section layout.")
        if metadata is None:
            raise GenerationError(
                f"No usable work concept after {self.config.generator.max_attempts} attempt(s)",
                rationale=str(last_error) if last_error else decision.rationale,
            )

        work_id = slugify(metadata.title)
        state = self.store.create(work_id, metadata)
        result = self._write_chapter(decision, state, ledger, final=False, dry_run=False)
        return result.model_copy(update={"cost": result.cost + spent})

    def _write_chapter(
        self,
        decision: Decision,
        state: StoryState,
        ledger: CostLedger,
        final: bool = False,
        dry_run: bool = False,
    ) -> RunResult:
        number = state.current_chapter + 1
        context = self.context_builder.build(state)
        constraints = self.pacing.constraints(state, final=final)
        choice = self.selector.select(ledger, self.signals(state, final))
        language = state.work.language

        if dry_run:
            prompt = chapter_prompt(context, constraints, choice.profile, language)
            logger.info(
                f"Dry run: would write chapter {number} of '{state.work_id}' with {choice.name} "
                f"({len(prompt)} prompt chars, context {context.size}/{context.budget})"
            )
            return RunResult(
                decision=decision, work_id=state.work_id, chapter_number=number,
                strategy=choice.name, dry_run=True, prompt=prompt,
            )

        previous = self.store.recent_bodies(state.work_id, 3) if state.current_chapter else []
        ending = truncate_text(previous[-1], 600, from_end=True) if previous else ""

        accepted, ledger, cost = self._generate_paced(
            state, context, constraints, choice, ledger, language, ending
        )
        candidate = accepted.candidate

        decision_t = self.thresholds.decide(candidate.body, state.quality_history, state.milestone_index)
        analysis = AnalysisContext(state=state, previous_bodies=previous)
        try:
            gated = self.gateway.review(candidate.body, analysis, decision_t, floor=choice.profile.quality_floor)
            candidate = candidate.model_copy(update={"body": gated.text})
            report = gated.report
        except QualityThresholdError as e:
            candidate, report = recover_candidate(candidate, e.best_text, e.best_report, self.extractor)
            logger.warning(
                f"Quality gate failed for chapter {number} of '{state.work_id}': {e}; "
                f"attempt composites {[r.composite for r in e.reports]}; "
                f"threshold adjustments {decision_t.explain()}"
            )

        ledger = self.selector.observe(ledger, choice.name, cost, report.composite)
        self._save_ledger(ledger)

        chapter = Chapter(
            work_id=state.work_id,
            number=number,
            title=candidate.title,
            body=candidate.body,
            summary=candidate.summary,
            key_events=tuple(candidate.key_events),
            emotional_tone=candidate.emotional_tone,
            word_count=word_count(candidate.body),
            quality=report,
            completion=final,
            degraded=report.degraded,
            created_at=self.clock(),
        )
        delta = self.delta_for(candidate, accepted.pacing, state, final)
        self.store.commit_chapter(state.work_id, chapter, delta)
        if report.degraded:
            logger.warning(
                f"Committed degraded chapter {number} of '{state.work_id}': composite "
                f"{report.composite:.2f} vs threshold {report.threshold:.2f}; "
                f"repairs {report.repairs_applied}; decision: {decision.rationale}"
            )
        if final:
            self.store.mark_complete(state.work_id)

        return RunResult(
            decision=decision,
            work_id=state.work_id,
            chapter_number=number,
            title=chapter.title,
            strategy=choice.name,
            report=report,
            degraded=report.degraded,
            completed=final,
            attempts=accepted.attempts,
            cost=round(cost, 4),
            feedback=accepted.feedback,
        )

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _generate_paced(self, state, context, constraints, choice: StrategyChoice,
                        ledger: CostLedger, language: str, ending: str) -> tuple:
        """Call the generator until a candidate parses and passes pacing."""
        max_attempts = self.config.generator.max_attempts
        feedback: List[str] = []
        last_error: Optional[SerialWriterError] = None
        cost = 0.0

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                self._backoff(attempt)
            prompt = chapter_prompt(context, constraints, choice.profile, language, feedback, ending)
            try:
                response = self.generator.generate(prompt, choice.profile)
            except GenerationError as e:
                logger.warning(f"Generator attempt {attempt}/{max_attempts} failed: {e}")
                last_error = e
                continue
            cost += self.selector.cost_of(choice.name, response.tokens_used)
            ledger = self.selector.charge(ledger, choice.name, response.tokens_used)
            self._save_ledger(ledger)

            try:
                candidate = parse_chapter(
                    response.text, constraints.chapter_number, self.extractor,
                    self.config.generator.min_body_chars,
                )
                report = self.pacing.enforce(candidate, state, constraints)
            except UnparsableOutputError as e:
                last_error = e
                _add(feedback, "Use the exact section layout; the BODY section must hold the full chapter.")
                continue
            except PacingViolationError as e:
                last_error = e
                for line in e.report.feedback():
                    _add(feedback, line)
                continue
            return _Accepted(candidate=candidate, pacing=report, attempts=attempt, feedback=feedback), ledger, cost

        if isinstance(last_error, PacingViolationError):
            raise PacingViolationError(
                f"Chapter {constraints.chapter_number} of '{state.work_id}' broke pacing "
                f"in all {max_attempts} attempts",
                report=last_error.report,
                rationale=last_error.rationale,
            )
        raise GenerationError(
            f"No usable chapter {constraints.chapter_number} for '{state.work_id}' "
            f"after {max_attempts} attempt(s)",
            rationale=str(last_error) if last_error else None,
            attempts=feedback,
        )

    def _backoff(self, attempt: int) -> None:
        delay = self.config.generator.backoff_seconds * (attempt - 1)
        if delay > 0:
            self.sleep(delay)

    def signals(self, state: StoryState, final: bool = False) -> StrategySignals:
        """Derive strategy signals from the continuity record."""
        importance = 1.0 if final else STAGE_IMPORTANCE[self.pacing.stage_for(state)]
        if state.current_chapter == 0:
            importance = max(importance, 0.8)

        history = state.quality_history
        risk = 0.0
        if len(history) >= 3:
            decline = max(0.0, (history[-3] - history[-1]) / 3)
            weak = max(0.0, (self.config.quality.threshold - statistics.fmean(history)) / 4)
            risk = min(1.0, decline + weak)

        idle = (self.clock() - state.last_activity).total_seconds() / 3600
        urgency = min(1.0, max(0.0, idle / self.config.automation.staleness_hours))
        return StrategySignals(dropout_risk=round(risk, 4), importance=importance, urgency=round(urgency, 4))

    @staticmethod
    def delta_for(candidate: ChapterCandidate, pacing: PacingReport, state: StoryState,
                  final: bool) -> StateDelta:
        resolved = list(state.active_conflicts) if final else pacing.resolved_conflicts
        lowered = candidate.body.lower()
        paid_off = [f.hint for f in state.unresolved_foreshadowing if final or f.hint.lower() in lowered]
        return StateDelta(
            character_updates=candidate.character_updates,
            new_conflicts=[] if final else pacing.new_conflicts,
            resolved_conflicts=resolved,
            planted_foreshadowing=[] if final else candidate.foreshadowing,
            resolved_foreshadowing=paid_off,
            progress_increment=pacing.progress_increment,
            milestone_reached=pacing.milestone_reached,
        )


def _add(lines: List[str], line: str) -> None:
    if line not in lines:
        lines.append(line)
