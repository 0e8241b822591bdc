"""Tests for roles and capability scoring."""

import pytest

from arena_agents import (
    CODING,
    CREATIVE,
    DEFAULT_ROLES,
    RESEARCH,
    AgentTask,
    build_executors,
    keyword_score,
    resolve_type,
    score_capability,
)
from arena_core import ConfigurationError, ExecutorType


class TestKeywordScore:
    """Tests for weighted keyword containment."""

    def test_short_and_long_keywords(self):
        """Test that long keywords weigh 1.5 times as much."""
        score, matched = keyword_score("fix the python bug", ("fix", "python"))
        assert matched == ["fix", "python"]
        assert score == pytest.approx(0.15 + 0.225)

    def test_weight_and_cap(self):
        """Test that the routing weight scales and the score caps at 1.0."""
        score, _ = keyword_score("fix", ("fix",), weight=2.0)
        assert score == pytest.approx(0.3)

        many = ("alpha1", "bravo2", "charlie3", "delta4")
        capped, _ = keyword_score(" ".join(many), many, weight=2.0)
        assert capped == 1.0

    def test_case_insensitive(self):
        """Test that matching ignores case."""
        score, matched = keyword_score("Write A BLOG Post", ("blog",))
        assert matched == ["blog"]
        assert score > 0


class TestRoles:
    """Tests for the closed set of roles."""

    def test_default_roles(self):
        """Test that every executor type has exactly one role."""
        assert {role.type for role in DEFAULT_ROLES} == set(ExecutorType)

    def test_resolve_type_aliases(self):
        """Test the explicit type alias table."""
        assert resolve_type("code") == ExecutorType.CODING
        assert resolve_type("Search") == ExecutorType.RESEARCH
        assert resolve_type("content") == ExecutorType.CREATIVE
        assert resolve_type("unknown") is None
        assert resolve_type(None) is None

    def test_focus_rule_specializes_prompt(self):
        """Test that a matching focus rule is appended to the system prompt."""
        messages = CODING.build_prompt(AgentTask(content="There is a bug in my parser"))
        assert "Focus:" in messages[0].content
        assert messages[1].content == "There is a bug in my parser"

    def test_no_focus_rule(self):
        """Test that the plain system prompt is used without a match."""
        messages = CREATIVE.build_prompt(AgentTask(content="hello"))
        assert messages[0].content == CREATIVE.system_prompt

    def test_score_capability(self):
        """Test declared type, capability and keyword scoring."""
        assert score_capability(RESEARCH, AgentTask(content="x", type="research")) == 1.0
        assert score_capability(RESEARCH, AgentTask(content="hello there")) == 0.0


class TestBuildExecutors:
    """Tests for binding roles to configured providers."""

    def test_binds_primary_and_fallback(self, provider_factory):
        """Test that both providers are bound when available."""
        executors = build_executors({
            "anthropic": provider_factory(name="anthropic"),
            "openai": provider_factory(name="openai"),
        })
        assert set(executors) == {role.id for role in DEFAULT_ROLES}
        research = executors["research"]
        assert research.primary.name == "anthropic"
        assert research.fallback.name == "openai"

    def test_promotes_fallback(self, provider_factory):
        """Test that the fallback becomes primary when the primary is missing."""
        executors = build_executors({"openai": provider_factory(name="openai")})
        research = executors["research"]
        assert research.primary.name == "openai"
        assert research.fallback is None

    def test_no_providers(self):
        """Test that an empty provider map is a configuration error."""
        with pytest.raises(ConfigurationError):
            build_executors({})
