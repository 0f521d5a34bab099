"""Typed models for complexity scoring and split planning."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sessionhub.config import SplittingSettings
from sessionhub.models import WorkRequest


class SessionSize(str, Enum):
    """Size bucket recommended for a request."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    SPLIT_REQUIRED = "split-required"


class MemoryRisk(str, Enum):
    """Estimated memory pressure bucket."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(slots=True)
class ComplexityComponents:
    """Per-dimension complexity scores, each within 0..100."""

    objectives: float = 0.0
    integrations: float = 0.0
    scope: float = 0.0
    dependencies: float = 0.0
    technical_depth: float = 0.0
    memory_requirements: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "objectives": self.objectives,
            "integrations": self.integrations,
            "scope": self.scope,
            "dependencies": self.dependencies,
            "technical_depth": self.technical_depth,
            "memory_requirements": self.memory_requirements,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ComplexityComponents:
        return cls(
            objectives=float(payload.get("objectives", 0.0)),
            integrations=float(payload.get("integrations", 0.0)),
            scope=float(payload.get("scope", 0.0)),
            dependencies=float(payload.get("dependencies", 0.0)),
            technical_depth=float(payload.get("technical_depth", 0.0)),
            memory_requirements=float(payload.get("memory_requirements", 0.0)),
        )


@dataclass(slots=True)
class SuggestedSplit:
    """Analyzer proposal for one part of a split request."""

    title: str
    objectives: list[str]
    estimated_complexity: int
    dependencies: list[str] = field(default_factory=list)
    order: int = 1


@dataclass(slots=True)
class ComplexityRecommendation:
    """Human-facing sizing advice derived from a score."""

    session_size: SessionSize
    reasoning: list[str]
    estimated_duration: int
    memory_risk: MemoryRisk
    success_probability: float


@dataclass(slots=True)
class ComplexityScore:
    """Result of complexity analysis."""

    overall: int
    components: ComplexityComponents
    estimated_memory_usage: int
    split_recommended: bool
    suggested_splits: list[SuggestedSplit] | None = None
    recommendation: ComplexityRecommendation | None = None


@dataclass(slots=True)
class ComplexityStatistics:
    """Aggregates over recorded analyses for a user/project."""

    total_analyses: int
    average_complexity: float
    split_rate: float
    memory_distribution: dict[str, int]


@dataclass(slots=True)
class SplitOptions:
    """Knobs of the splitting engine."""

    max_complexity_per_split: int = 40
    max_memory_per_split: int = 300
    preserve_logical_grouping: bool = True
    enable_parallel_execution: bool = False
    prioritize_by_dependency: bool = True

    @classmethod
    def from_settings(cls, settings: SplittingSettings) -> SplitOptions:
        return cls(
            max_complexity_per_split=settings.max_complexity_per_split,
            max_memory_per_split=settings.max_memory_per_split,
            preserve_logical_grouping=settings.preserve_logical_grouping,
            enable_parallel_execution=settings.enable_parallel_execution,
            prioritize_by_dependency=settings.prioritize_by_dependency,
        )


@dataclass(slots=True)
class SplitUnit:
    """One executable part of a split session."""

    id: str
    parent_id: str
    name: str
    description: str
    index: int
    total: int
    dependencies: list[str]
    estimated_complexity: int
    focus_area: str
    objectives: list[str]
    order: int
    context: dict[str, Any]
    request: WorkRequest
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class WorkflowPlan:
    """Ordered set of split units for one parent session."""

    parent_id: str
    units: list[SplitUnit]
    execution_order: list[str]
    dependencies: dict[str, list[str]]
    estimated_total_duration: int
    optimization_notes: list[str] = field(default_factory=list)

    def unit(self, unit_id: str) -> SplitUnit:
        for unit in self.units:
            if unit.id == unit_id:
                return unit
        raise KeyError(unit_id)
