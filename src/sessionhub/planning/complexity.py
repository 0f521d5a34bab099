"""Keyword-driven complexity scoring of work requests."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, fields

from sessionhub.config import ComplexitySettings
from sessionhub.learning.models import (
    SESSION_COMPLEXITY_PATTERN,
    PatternObservation,
    PatternStore,
)
from sessionhub.models import WorkRequest
from sessionhub.planning.models import (
    ComplexityComponents,
    ComplexityRecommendation,
    ComplexityScore,
    ComplexityStatistics,
    MemoryRisk,
    SessionSize,
    SuggestedSplit,
)
from sessionhub.planning.objectives import parse_objectives

logger = logging.getLogger(__name__)

COMPONENT_WEIGHTS: dict[str, float] = {
    "objectives": 0.20,
    "integrations": 0.20,
    "scope": 0.25,
    "dependencies": 0.15,
    "technical_depth": 0.15,
    "memory_requirements": 0.05,
}

BASE_MEMORY_MB = 50
MEMORY_COST_MB: dict[str, int] = {
    "file_operations": 5,
    "api_integrations": 20,
    "database_changes": 10,
    "ui_components": 15,
    "testing_requirements": 8,
    "architectural_changes": 50,
}
MEMORY_SCORE_SCALE_MB = 500
MAX_CROSS_MODULE_IMPACT = 10

LOW_MEMORY_RISK_MB = 200
MEDIUM_MEMORY_RISK_MB = 400
SUCCESS_PROBABILITY: dict[SessionSize, float] = {
    SessionSize.SMALL: 0.95,
    SessionSize.MEDIUM: 0.85,
    SessionSize.LARGE: 0.70,
    SessionSize.SPLIT_REQUIRED: 0.90,
}
HIGH_MEMORY_SUCCESS_PENALTY = 0.8
MAX_CHUNKED_PHASES = 3

_FILE_OPERATION_KEYWORDS: tuple[str, ...] = (
    "create file",
    "modify file",
    "update file",
    "delete file",
    "new component",
    "new service",
    "new module",
)
_API_KEYWORDS: tuple[str, ...] = (
    "api",
    "integration",
    "webhook",
    "endpoint",
    "rest",
    "graphql",
    "external service",
    "third-party",
)
_DATABASE_KEYWORDS: tuple[str, ...] = (
    "database",
    "schema",
    "migration",
    "query",
    "table",
    "index",
    "orm",
    "sql",
    "nosql",
)
_UI_KEYWORDS: tuple[str, ...] = (
    "ui",
    "component",
    "page",
    "screen",
    "interface",
    "ux",
    "layout",
    "design",
    "frontend",
)
_TESTING_KEYWORDS: tuple[str, ...] = (
    "test",
    "testing",
    "unit test",
    "integration test",
    "e2e",
    "coverage",
    "assertion",
    "mock",
)
_CONFIG_KEYWORDS: tuple[str, ...] = (
    "config",
    "configuration",
    "settings",
    "environment",
    "variable",
    "option",
    "preference",
)
_ARCHITECTURE_KEYWORDS: tuple[str, ...] = (
    "architecture",
    "refactor",
    "restructure",
    "pattern",
    "framework",
    "major change",
    "overhaul",
)
_BROAD_IMPACT_KEYWORDS: tuple[str, ...] = (
    "across all",
    "everywhere",
    "all modules",
    "entire system",
    "global",
    "throughout",
    "system-wide",
)

_ARCHITECTURE_THEME: tuple[str, ...] = ("architect", "structure", "restructur", "refactor")
_DATABASE_THEME: tuple[str, ...] = ("database", "schema", "data")
_API_THEME: tuple[str, ...] = ("api", "integration", "service")
_UI_THEME: tuple[str, ...] = ("ui", "component", "interface")
_TESTING_THEME: tuple[str, ...] = ("test", "quality", "validation")


@dataclass(slots=True)
class ComplexityFactors:
    """Raw keyword counts extracted from a request."""

    file_operations: float = 0.0
    api_integrations: float = 0.0
    database_changes: float = 0.0
    ui_components: float = 0.0
    testing_requirements: float = 0.0
    configuration_changes: float = 0.0
    architectural_changes: float = 0.0
    cross_module_impact: float = 0.0

    def scaled(self, multiplier: float) -> ComplexityFactors:
        return ComplexityFactors(
            **{item.name: getattr(self, item.name) * multiplier for item in fields(self)},
        )


@dataclass(slots=True, frozen=True)
class _SplitTheme:
    title: str
    keywords: tuple[str, ...]
    estimated_complexity: int


_IMPLEMENTATION_THEMES: tuple[_SplitTheme, ...] = (
    _SplitTheme("Architecture and Structure Changes", _ARCHITECTURE_THEME, 40),
    _SplitTheme("Database and Data Model Updates", _DATABASE_THEME, 30),
    _SplitTheme("API and Integration Implementation", _API_THEME, 35),
    _SplitTheme("UI Components and Frontend", _UI_THEME, 25),
)
_GENERAL_THEME = _SplitTheme("General Implementation", (), 30)
_TESTING_SPLIT = _SplitTheme("Testing and Quality Assurance", _TESTING_THEME, 20)
_CHUNK_COMPLEXITY = 35


class ComplexityAnalyzer:
    """Score a request, decide whether it needs splitting, and suggest splits."""

    def __init__(
        self,
        *,
        settings: ComplexitySettings | None = None,
        pattern_store: PatternStore | None = None,
    ) -> None:
        self.settings = settings or ComplexitySettings()
        self.pattern_store = pattern_store

    def analyze_complexity(
        self,
        request: WorkRequest,
        *,
        record: bool = True,
    ) -> ComplexityScore:
        """Produce a ComplexityScore; never raises for malformed requests.

        With ``record`` false the analysis is not stored as an observation.
        """

        factors = extract_factors(request)
        factors = self._apply_historical_prior(request, factors)
        memory_mb = estimate_memory_usage(factors)
        components = compute_components(factors, memory_mb=memory_mb)
        overall = weighted_overall(components)
        split_recommended = (
            overall > self.settings.large_threshold
            or memory_mb > self.settings.memory_threshold_mb
        )
        score = ComplexityScore(
            overall=overall,
            components=components,
            estimated_memory_usage=memory_mb,
            split_recommended=split_recommended,
            suggested_splits=(
                generate_split_suggestions(request.content) if split_recommended else None
            ),
        )
        score.recommendation = self.generate_recommendation(score)
        logger.info(
            "Analyzed request %s: overall=%d memory=%dMB split=%s",
            request.request_id or "<anonymous>",
            overall,
            memory_mb,
            split_recommended,
        )
        if record:
            self._record_analysis(request, score)
        return score

    def generate_recommendation(self, score: ComplexityScore) -> ComplexityRecommendation:
        thresholds = self.settings
        reasoning: list[str] = []
        if score.split_recommended:
            size = SessionSize.SPLIT_REQUIRED
            reasoning.append("Session complexity exceeds safe execution limits")
            reasoning.append("Splitting into focused sub-sessions recommended")
        elif score.overall <= thresholds.small_threshold:
            size = SessionSize.SMALL
            reasoning.append("Low complexity - can execute in single session")
        elif score.overall <= thresholds.medium_threshold:
            size = SessionSize.MEDIUM
            reasoning.append("Moderate complexity - standard session handling")
        else:
            size = SessionSize.LARGE
            reasoning.append("High complexity - requires careful execution")

        probability = SUCCESS_PROBABILITY[size]
        memory_mb = score.estimated_memory_usage
        if memory_mb < LOW_MEMORY_RISK_MB:
            risk = MemoryRisk.LOW
            reasoning.append("Memory usage within comfortable limits")
        elif memory_mb < MEDIUM_MEMORY_RISK_MB:
            risk = MemoryRisk.MEDIUM
            reasoning.append("Moderate memory usage - monitor during execution")
        else:
            risk = MemoryRisk.HIGH
            reasoning.append("High memory usage - consider optimization")
            probability *= HIGH_MEMORY_SUCCESS_PENALTY

        return ComplexityRecommendation(
            session_size=size,
            reasoning=reasoning,
            estimated_duration=round_half_up(10 + score.overall * 0.5 + memory_mb * 0.05),
            memory_risk=risk,
            success_probability=round(probability, 2),
        )

    def get_complexity_statistics(
        self,
        *,
        user_id: str,
        project_id: str,
    ) -> ComplexityStatistics:
        """Aggregate the analyses recorded for a user/project."""

        observations = []
        if self.pattern_store is not None:
            observations = self.pattern_store.get_relevant_patterns(
                session_id=None,
                user_id=user_id,
                project_id=project_id,
                pattern_type=SESSION_COMPLEXITY_PATTERN,
            )
        distribution = {risk.value: 0 for risk in MemoryRisk}
        if not observations:
            return ComplexityStatistics(
                total_analyses=0,
                average_complexity=0.0,
                split_rate=0.0,
                memory_distribution=distribution,
            )
        for observation in observations:
            distribution[_memory_risk(observation.memory_usage or 0.0).value] += 1
        total = len(observations)
        return ComplexityStatistics(
            total_analyses=total,
            average_complexity=round(
                sum(observation.complexity or 0.0 for observation in observations) / total,
                2,
            ),
            split_rate=round(
                sum(1 for observation in observations if observation.split_recommended) / total,
                2,
            ),
            memory_distribution=distribution,
        )

    def _apply_historical_prior(
        self,
        request: WorkRequest,
        factors: ComplexityFactors,
    ) -> ComplexityFactors:
        if self.pattern_store is None:
            return factors
        try:
            history = self.pattern_store.get_relevant_patterns(
                session_id=request.session_id or None,
                user_id=request.user_id,
                project_id=request.project_id,
            )
        except Exception as error:  # noqa: BLE001
            logger.warning("Pattern history unavailable, skipping prior: %s", error)
            return factors
        complexities = [item.complexity for item in history if item.complexity is not None]
        if not complexities:
            return factors
        average = sum(complexities) / len(complexities)
        if average <= self.settings.history_complexity_threshold:
            return factors
        logger.debug(
            "Historical complexity %.1f above %.1f, scaling factors by %.2f",
            average,
            self.settings.history_complexity_threshold,
            self.settings.history_factor_multiplier,
        )
        return factors.scaled(self.settings.history_factor_multiplier)

    def _record_analysis(self, request: WorkRequest, score: ComplexityScore) -> None:
        if self.pattern_store is None:
            return
        observation = PatternObservation(
            pattern_type=SESSION_COMPLEXITY_PATTERN,
            pattern=request.content[:100],
            session_id=request.session_id or None,
            user_id=request.user_id,
            project_id=request.project_id,
            complexity=float(score.overall),
            memory_usage=float(score.estimated_memory_usage),
            split_recommended=score.split_recommended,
            metadata={"components": score.components.to_dict()},
        )
        try:
            self.pattern_store.record_pattern(observation)
        except Exception as error:  # noqa: BLE001
            logger.warning("Failed to record complexity analysis: %s", error)


def extract_factors(request: WorkRequest) -> ComplexityFactors:
    """Count keyword mentions per complexity dimension."""

    text = (request.content or "").lower()
    modules = request.context.get("modules") if isinstance(request.context, dict) else None
    module_count = len(modules) if isinstance(modules, list | tuple | set) else 0
    cross_module = 3 * count_keywords(text, _BROAD_IMPACT_KEYWORDS) + module_count
    return ComplexityFactors(
        file_operations=count_keywords(text, _FILE_OPERATION_KEYWORDS),
        api_integrations=count_keywords(text, _API_KEYWORDS),
        database_changes=count_keywords(text, _DATABASE_KEYWORDS),
        ui_components=count_keywords(text, _UI_KEYWORDS),
        testing_requirements=count_keywords(text, _TESTING_KEYWORDS),
        configuration_changes=count_keywords(text, _CONFIG_KEYWORDS),
        architectural_changes=count_keywords(text, _ARCHITECTURE_KEYWORDS),
        cross_module_impact=min(cross_module, MAX_CROSS_MODULE_IMPACT),
    )


def count_keywords(text: str, keywords: Sequence[str]) -> int:
    """Case-insensitive count of keyword occurrences starting at a word boundary."""

    return sum(
        len(re.findall(rf"\b{re.escape(keyword)}", text, flags=re.IGNORECASE))
        for keyword in keywords
    )


def estimate_memory_usage(factors: ComplexityFactors) -> int:
    """Estimated peak memory in MB from the fixed per-factor cost table."""

    total = float(BASE_MEMORY_MB)
    for name, cost in MEMORY_COST_MB.items():
        total += getattr(factors, name) * cost
    return round_half_up(total)


def compute_components(factors: ComplexityFactors, *, memory_mb: int) -> ComplexityComponents:
    return ComplexityComponents(
        objectives=_clamp(factors.file_operations * 10 + factors.ui_components * 5),
        integrations=_clamp(factors.api_integrations * 15 + factors.database_changes * 10),
        scope=_clamp(factors.cross_module_impact * 10 + factors.architectural_changes * 20),
        dependencies=_clamp((factors.api_integrations + factors.database_changes) * 12),
        technical_depth=_clamp(
            factors.architectural_changes * 25 + factors.testing_requirements * 10,
        ),
        memory_requirements=_clamp(memory_mb / MEMORY_SCORE_SCALE_MB * 100),
    )


def weighted_overall(components: ComplexityComponents) -> int:
    values = components.to_dict()
    total = sum(values[name] * weight for name, weight in COMPONENT_WEIGHTS.items())
    return int(_clamp(round_half_up(total)))


def generate_split_suggestions(content: str) -> list[SuggestedSplit]:
    """Bucket objectives by theme, else chunk them into at most three phases."""

    objectives = parse_objectives(content)
    if not objectives:
        return [
            SuggestedSplit(
                title="Implementation Phase 1",
                objectives=[content.strip()] if content.strip() else [],
                estimated_complexity=_CHUNK_COMPLEXITY,
                dependencies=[],
                order=1,
            ),
        ]

    buckets: dict[str, list[str]] = {}
    unmatched: list[str] = []
    for objective in objectives:
        theme = _first_theme(objective, (*_IMPLEMENTATION_THEMES, _TESTING_SPLIT))
        if theme is None:
            unmatched.append(objective)
        else:
            buckets.setdefault(theme.title, []).append(objective)

    if not buckets:
        return _chunk_objectives(objectives)
    if unmatched:
        buckets[_GENERAL_THEME.title] = unmatched

    suggestions: list[SuggestedSplit] = []
    previous_title: str | None = None
    for theme in (*_IMPLEMENTATION_THEMES, _GENERAL_THEME):
        if theme.title not in buckets:
            continue
        suggestions.append(
            SuggestedSplit(
                title=theme.title,
                objectives=buckets[theme.title],
                estimated_complexity=theme.estimated_complexity,
                dependencies=[previous_title] if previous_title else [],
                order=len(suggestions) + 1,
            ),
        )
        previous_title = theme.title

    if _TESTING_SPLIT.title in buckets:
        suggestions.append(
            SuggestedSplit(
                title=_TESTING_SPLIT.title,
                objectives=buckets[_TESTING_SPLIT.title],
                estimated_complexity=_TESTING_SPLIT.estimated_complexity,
                dependencies=[item.title for item in suggestions],
                order=len(suggestions) + 1,
            ),
        )
    return suggestions


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _chunk_objectives(objectives: list[str]) -> list[SuggestedSplit]:
    chunk_size = math.ceil(len(objectives) / MAX_CHUNKED_PHASES)
    suggestions: list[SuggestedSplit] = []
    for start in range(0, len(objectives), chunk_size):
        index = len(suggestions) + 1
        suggestions.append(
            SuggestedSplit(
                title=f"Implementation Phase {index}",
                objectives=objectives[start : start + chunk_size],
                estimated_complexity=_CHUNK_COMPLEXITY,
                dependencies=[suggestions[-1].title] if suggestions else [],
                order=index,
            ),
        )
    return suggestions


def _first_theme(objective: str, themes: Sequence[_SplitTheme]) -> _SplitTheme | None:
    lowered = objective.lower()
    for theme in themes:
        if any(re.search(rf"\b{re.escape(keyword)}", lowered) for keyword in theme.keywords):
            return theme
    return None


def _memory_risk(memory_mb: float) -> MemoryRisk:
    if memory_mb < LOW_MEMORY_RISK_MB:
        return MemoryRisk.LOW
    if memory_mb < MEDIUM_MEMORY_RISK_MB:
        return MemoryRisk.MEDIUM
    return MemoryRisk.HIGH


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, float(value)))
