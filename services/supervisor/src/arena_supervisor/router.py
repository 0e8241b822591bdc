"""
Task router for the supervisor.

Picks the executor for a task. Resolution order:
1. Declared type, through the explicit alias table, naming a registered
   executor type
2. Weighted keyword scoring over each executor's lexicon
3. Fewest in-flight executions
4. The configured default executor
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from arena_agents import TYPE_ALIASES, AgentTask, ResilientExecutor, keyword_score
from arena_core import ExecutorType, RouterSettings, RoutingMethod, get_logger
from arena_core.metrics import routing_decisions_total

logger = get_logger(__name__)

TYPE_SCORE = 1.0
LOAD_SCORE = 0.5
DEFAULT_SCORE = 0.3
DEFAULT_ESTIMATE_MS = 8000
MAX_MATCHED_KEYWORDS = 5


@dataclass
class RoutingScore:
    """Keyword score of one executor."""
    executor_id: str
    score: float
    matched_keywords: list[str] = field(default_factory=list)


@dataclass
class RoutingDecision:
    """Result of routing analysis."""
    executor_id: str
    method: RoutingMethod
    score: float
    scores: dict[str, RoutingScore] = field(default_factory=dict)
    estimated_ms: int = DEFAULT_ESTIMATE_MS


class TaskRouter:
    """
    Routes tasks to executors based on declared type and content.

    Deterministic for a fixed registry, lexicons and loads: ties go to the
    executor registered first.
    """

    def __init__(
        self,
        executors: Mapping[str, ResilientExecutor],
        settings: RouterSettings | None = None,
        type_aliases: Mapping[str, ExecutorType] | None = None,
    ) -> None:
        self._executors = executors
        self.settings = settings or RouterSettings()
        self._type_aliases = dict(type_aliases if type_aliases is not None else TYPE_ALIASES)
        self._total_routed = 0
        self._by_executor: dict[str, int] = {executor_id: 0 for executor_id in executors}
        self._by_method: dict[str, int] = {method.value: 0 for method in RoutingMethod}

    def add_alias(self, alias: str, executor_type: ExecutorType) -> None:
        """Add a declared-type alias."""
        self._type_aliases[alias.lower()] = executor_type

    def route(self, task: AgentTask) -> RoutingDecision:
        content = task.content or ""
        scores: dict[str, RoutingScore] = {}

        executor_id = self.route_by_type(task.type)
        method = RoutingMethod.TYPE
        score = TYPE_SCORE

        if executor_id is None:
            scores = self.score_keywords(content)
            best = self._best(scores)
            if best is not None and best.score >= self.settings.match_threshold:
                executor_id = best.executor_id
                method = RoutingMethod.KEYWORDS
                score = best.score

        if executor_id is None and self.settings.load_balancing:
            executor_id = self.route_by_load()
            method = RoutingMethod.LOAD
            score = LOAD_SCORE

        if executor_id is None:
            executor_id = self.settings.default_executor
            method = RoutingMethod.DEFAULT
            score = DEFAULT_SCORE

        self._update_stats(executor_id, method)
        decision = RoutingDecision(
            executor_id=executor_id,
            method=method,
            score=round(score, 4),
            scores=scores,
            estimated_ms=self.estimate_time(executor_id, content),
        )
        logger.info(
            "Task routed",
            task_id=task.id,
            executor=executor_id,
            method=method.value,
            score=decision.score,
        )
        return decision

    def route_by_type(self, declared: str | None) -> str | None:
        """Executor id for a declared type, if the type resolves to a registered executor."""
        if not declared:
            return None
        executor_type = self._type_aliases.get(declared.strip().lower())
        if executor_type is None:
            return None
        for executor_id, executor in self._executors.items():
            if executor.type == executor_type:
                return executor_id
        return None

    def score_keywords(self, content: str) -> dict[str, RoutingScore]:
        scores: dict[str, RoutingScore] = {}
        if not content:
            return scores
        for executor_id, executor in self._executors.items():
            score, matched = keyword_score(
                content,
                executor.role.keywords,
                weight=executor.role.routing_weight,
            )
            scores[executor_id] = RoutingScore(
                executor_id=executor_id,
                score=round(score, 4),
                matched_keywords=matched[:MAX_MATCHED_KEYWORDS],
            )
        return scores

    def route_by_load(self) -> str | None:
        """Executor with the fewest in-flight executions."""
        best_id: str | None = None
        lowest = None
        for executor_id, executor in self._executors.items():
            if lowest is None or executor.in_flight < lowest:
                lowest = executor.in_flight
                best_id = executor_id
        return best_id

    def estimate_time(self, executor_id: str, content: str) -> int:
        """Rough duration estimate in milliseconds (display only)."""
        executor = self._executors.get(executor_id)
        estimate = float(executor.role.base_estimate_ms if executor else DEFAULT_ESTIMATE_MS)
        if len(content) > 5000:
            estimate *= 1.6
        elif len(content) > 2000:
            estimate *= 1.3
        return round(estimate)

    def analyze(self, content: str) -> list[RoutingScore]:
        """Keyword ranking for ``content`` without routing or counting it."""
        return sorted(
            self.score_keywords(content).values(),
            key=lambda s: s.score,
            reverse=True,
        )

    def get_stats(self) -> dict[str, Any]:
        distribution: dict[str, dict[str, Any]] = {}
        if self._total_routed:
            for executor_id, count in self._by_executor.items():
                distribution[executor_id] = {
                    "count": count,
                    "percentage": round(count / self._total_routed * 100, 1),
                }
        return {
            "total_routed": self._total_routed,
            "by_executor": dict(self._by_executor),
            "by_method": dict(self._by_method),
            "distribution": distribution,
        }

    def _best(self, scores: dict[str, RoutingScore]) -> RoutingScore | None:
        best: RoutingScore | None = None
        for candidate in scores.values():
            if candidate.score > 0 and (best is None or candidate.score > best.score):
                best = candidate
        return best

    def _update_stats(self, executor_id: str, method: RoutingMethod) -> None:
        self._total_routed += 1
        self._by_executor[executor_id] = self._by_executor.get(executor_id, 0) + 1
        self._by_method[method.value] += 1
        routing_decisions_total.labels(executor=executor_id, method=method.value).inc()
