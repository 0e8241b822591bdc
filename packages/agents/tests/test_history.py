"""Tests for task history and feedback ranking."""

from arena_agents import FeedbackStore, HistoryEntry, TaskHistory


def entry(task_id, timestamp=1000.0, prompt_hash="p1", task_type="research", success=True):
    return HistoryEntry(
        id=task_id,
        task_type=task_type,
        success=success,
        timestamp=timestamp,
        prompt_hash=prompt_hash,
    )


class TestTaskHistory:
    """Tests for the bounded history."""

    def test_evicts_oldest_beyond_max_size(self, clock):
        """Test that the history keeps only the newest max_size entries."""
        history = TaskHistory(max_size=3, retention=3600, clock=clock)
        for i in range(5):
            history.add(entry(f"t{i}"))

        assert len(history) == 3
        assert [e.id for e in history.entries()] == ["t2", "t3", "t4"]
        assert history.get("t0") is None

    def test_prunes_past_retention(self, clock):
        """Test that entries older than the retention window disappear."""
        history = TaskHistory(max_size=10, retention=60, clock=clock)
        history.add(entry("old", timestamp=clock() - 120))
        history.add(entry("new", timestamp=clock()))

        assert history.get("old") is None
        assert history.get("new") is not None
        assert len(history) == 1

    def test_re_adding_moves_to_newest(self, clock):
        """Test that re-recording an id refreshes its position."""
        history = TaskHistory(max_size=2, retention=3600, clock=clock)
        history.add(entry("a"))
        history.add(entry("b"))
        history.add(entry("a"))
        history.add(entry("c"))

        assert [e.id for e in history.entries()] == ["a", "c"]


class TestFeedbackStore:
    """Tests for ratings and prompt ranking."""

    def test_no_ranking_before_min_samples(self):
        """Test that prompts are not ranked until min_samples ratings exist."""
        store = FeedbackStore(min_samples=5)
        for i in range(4):
            assert store.record(entry(f"t{i}"), 4.0) == []
        assert store.optimal_prompts == {}

    def test_best_prompt_per_type(self):
        """Test that the best prompt with enough samples is selected."""
        store = FeedbackStore(min_samples=6)
        for i in range(3):
            store.record(entry(f"a{i}", prompt_hash="weak"), 2.0)
        optimized = []
        for i in range(3):
            optimized = store.record(entry(f"b{i}", prompt_hash="strong"), 5.0)

        assert len(optimized) == 1
        assert optimized[0].prompt_hash == "strong"
        assert store.optimal_prompts["research"].avg_rating == 5.0
        assert store.optimal_prompts["research"].sample_count == 3

    def test_prompts_with_few_samples_are_ignored(self):
        """Test that a prompt needs three ratings to be ranked."""
        store = FeedbackStore(min_samples=3)
        store.record(entry("a", prompt_hash="rare"), 5.0)
        store.record(entry("b", prompt_hash="rare"), 5.0)
        store.record(entry("c", prompt_hash="other"), 1.0)

        assert store.optimal_prompts == {}

    def test_average_and_trend(self):
        """Test the running average and the moving trend."""
        store = FeedbackStore(min_samples=100, learning_rate=0.5)
        assert store.average_rating is None

        store.record(entry("a"), 4.0)
        store.record(entry("b"), 2.0)

        assert store.average_rating == 3.0
        assert store.rating_trend["research"] == 3.0
