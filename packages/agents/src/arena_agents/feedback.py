"""
Feedback store and prompt ranking.

Ratings are attributed to the hash of the prompt that produced the rated
result. Once enough ratings exist, the best-rated prompt per task type
(among prompts with at least ``MIN_PROMPT_SAMPLES`` ratings) is recorded.
"""

import time
from dataclasses import dataclass, field

from .history import HistoryEntry

MIN_PROMPT_SAMPLES = 3


@dataclass
class FeedbackRecord:
    task_id: str
    task_type: str
    prompt_hash: str
    rating: float
    comments: str | None = None
    corrections: str | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class PromptPerformance:
    count: int = 0
    total_rating: float = 0.0

    @property
    def avg_rating(self) -> float:
        return self.total_rating / self.count if self.count else 0.0


@dataclass
class OptimalPrompt:
    task_type: str
    prompt_hash: str
    avg_rating: float
    sample_count: int


class FeedbackStore:
    """Ratings, per-prompt performance and the best prompt per task type."""

    def __init__(self, min_samples: int = 10, learning_rate: float = 0.1) -> None:
        self.min_samples = min_samples
        self.learning_rate = learning_rate
        self.ratings: list[FeedbackRecord] = []
        self.prompt_performance: dict[str, PromptPerformance] = {}
        self.optimal_prompts: dict[str, OptimalPrompt] = {}
        # Exponential moving average of ratings per task type
        self.rating_trend: dict[str, float] = {}

    def record(
        self,
        entry: HistoryEntry,
        rating: float,
        comments: str | None = None,
        corrections: str | None = None,
    ) -> list[OptimalPrompt]:
        """
        Store a rating for a finished execution.

        Returns:
            Task types whose best prompt was (re)computed by this rating
        """
        record = FeedbackRecord(
            task_id=entry.id,
            task_type=entry.task_type,
            prompt_hash=entry.prompt_hash,
            rating=rating,
            comments=comments,
            corrections=corrections,
        )
        self.ratings.append(record)

        perf = self.prompt_performance.setdefault(record.prompt_hash, PromptPerformance())
        perf.count += 1
        perf.total_rating += rating

        previous = self.rating_trend.get(record.task_type)
        if previous is None:
            self.rating_trend[record.task_type] = rating
        else:
            self.rating_trend[record.task_type] = previous + self.learning_rate * (rating - previous)

        if len(self.ratings) >= self.min_samples:
            return self.optimize()
        return []

    def optimize(self) -> list[OptimalPrompt]:
        by_type: dict[str, dict[str, PromptPerformance]] = {}
        for record in self.ratings:
            prompts = by_type.setdefault(record.task_type, {})
            perf = prompts.setdefault(record.prompt_hash, PromptPerformance())
            perf.count += 1
            perf.total_rating += record.rating

        optimized: list[OptimalPrompt] = []
        for task_type, prompts in by_type.items():
            best_hash: str | None = None
            best_avg = 0.0
            for prompt_hash, perf in prompts.items():
                if perf.count >= MIN_PROMPT_SAMPLES and perf.avg_rating > best_avg:
                    best_hash = prompt_hash
                    best_avg = perf.avg_rating
            if best_hash is None:
                continue
            optimal = OptimalPrompt(
                task_type=task_type,
                prompt_hash=best_hash,
                avg_rating=best_avg,
                sample_count=prompts[best_hash].count,
            )
            self.optimal_prompts[task_type] = optimal
            optimized.append(optimal)
        return optimized

    @property
    def average_rating(self) -> float | None:
        if not self.ratings:
            return None
        return sum(r.rating for r in self.ratings) / len(self.ratings)

    def clear(self) -> None:
        self.ratings.clear()
        self.prompt_performance.clear()
        self.optimal_prompts.clear()
        self.rating_trend.clear()
