"""
Executor roles.

The set of executors is closed: every executor is a ``ResilientExecutor``
configured with one of the roles below. A role carries the capability
metadata the router scores against, the system prompt, the focus rules that
specialize that prompt per request, and the default provider bindings.
"""

import re
from dataclasses import dataclass, field

from arena_core import CompletionMessage, ExecutorType

from .models import AgentTask


@dataclass(frozen=True)
class ProviderRef:
    """Provider name and model, resolved against configured providers."""
    provider: str
    model: str


@dataclass(frozen=True)
class FocusRule:
    """Narrows the system prompt when the request matches ``pattern``."""
    name: str
    pattern: re.Pattern[str]
    instruction: str


@dataclass(frozen=True)
class ExecutorRole:
    """Static description of an executor."""
    id: str
    name: str
    type: ExecutorType
    description: str
    system_prompt: str
    capabilities: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    routing_weight: float = 1.0
    base_estimate_ms: int = 8000
    focus_rules: tuple[FocusRule, ...] = ()
    primary: ProviderRef = field(default_factory=lambda: ProviderRef("anthropic", "claude-sonnet-4-20250514"))
    fallback: ProviderRef | None = field(default_factory=lambda: ProviderRef("openai", "gpt-4o"))

    def detect_focus(self, content: str) -> FocusRule | None:
        for rule in self.focus_rules:
            if rule.pattern.search(content):
                return rule
        return None

    def build_prompt(
        self,
        task: AgentTask,
        system_override: str | None = None,
    ) -> list[CompletionMessage]:
        """System prompt (specialized by the first matching focus rule) plus the request."""
        system = system_override or self.system_prompt
        focus = self.detect_focus(task.content)
        if focus is not None:
            system = f"{system}\n\nFocus: {focus.instruction}"
        return [
            CompletionMessage(role="system", content=system),
            CompletionMessage(role="user", content=task.content),
        ]


def _rule(name: str, pattern: str, instruction: str) -> FocusRule:
    return FocusRule(name=name, pattern=re.compile(pattern, re.IGNORECASE), instruction=instruction)


RESEARCH = ExecutorRole(
    id="research",
    name="Research",
    type=ExecutorType.RESEARCH,
    description="Research, fact-finding and summarization",
    system_prompt=(
        "You are an expert researcher.\n\n"
        "Guidelines:\n"
        "- Accuracy comes before speed\n"
        "- Cite sources where possible\n"
        "- State uncertainty clearly\n"
        "- Present several perspectives on contested topics\n"
        "- Use clear, structured formatting"
    ),
    capabilities=("research", "fact_check", "summarize", "compare", "explain"),
    keywords=(
        "research", "search", "find", "information", "facts", "explain",
        "what is", "who is", "how does", "why", "definition", "summarize",
        "summary", "compare", "difference", "background", "context", "source",
        "history", "timeline",
    ),
    routing_weight=1.0,
    base_estimate_ms=8000,
    focus_rules=(
        _rule("fact_check", r"verify|fact.?check|accurate", "Verify the claim, find primary sources, rate it true, false or partly true."),
        _rule("summarize", r"summari[sz]e|summary|tl;?dr|overview", "Identify the main points and summarize concisely while keeping context."),
        _rule("compare", r"compare|versus|\bvs\b|difference", "Define comparison criteria and present differences and similarities objectively."),
        _rule("explain", r"explain|what does|how does|why does", "Explain simply, use analogies and define technical terms."),
        _rule("timeline", r"\bwhen\b|history|timeline|chronolog", "Present events chronologically and highlight causes, effects and milestones."),
    ),
)

CODING = ExecutorRole(
    id="coding",
    name="Coding",
    type=ExecutorType.CODING,
    description="Writing, fixing, reviewing and testing code",
    system_prompt=(
        "You are a senior software engineer.\n\n"
        "Guidelines:\n"
        "- Write correct, idiomatic, well-structured code\n"
        "- Explain non-obvious decisions briefly\n"
        "- Point out bugs, edge cases and security issues\n"
        "- Prefer small, testable units"
    ),
    capabilities=("code_generation", "debugging", "refactoring", "code_review", "testing"),
    keywords=(
        "code", "function", "class", "bug", "fix", "javascript", "python",
        "typescript", "react", "api", "algorithm", "debug", "refactor",
        "unit test", "implement", "script", "json", "html", "css", "sql",
        "database", "backend", "frontend", "deploy", "docker", "kubernetes",
        "server", "error", "exception",
    ),
    routing_weight=1.2,
    base_estimate_ms=12000,
    focus_rules=(
        _rule("bug_fix", r"bug|fix|error|exception|crash|broken", "Find the root cause, fix it and explain why the fix works."),
        _rule("refactor", r"refactor|improve|optimi[sz]e|clean", "Improve structure and readability without changing behavior."),
        _rule("review", r"review|audit", "Review for correctness, security, performance and maintainability."),
        _rule("test", r"\btests?\b|spec|coverage", "Write focused tests covering normal paths and edge cases."),
        _rule("docs", r"document|readme|comment", "Write clear documentation with usage examples."),
    ),
)

CREATIVE = ExecutorRole(
    id="creative",
    name="Creative",
    type=ExecutorType.CREATIVE,
    description="Copywriting, content and ideation",
    system_prompt=(
        "You are an experienced copywriter and content creator.\n\n"
        "Guidelines:\n"
        "- Match tone and format to the audience\n"
        "- Be concrete and vivid, avoid filler\n"
        "- Offer alternatives when the brief is open"
    ),
    capabilities=("copywriting", "content", "storytelling", "ideation"),
    keywords=(
        "write", "text", "article", "blog", "story", "marketing", "slogan",
        "headline", "email", "newsletter", "social media", "post", "tweet",
        "creative", "idea", "brainstorm", "content", "copy", "copywriting",
        "description", "bio", "compose", "draft",
    ),
    routing_weight=1.0,
    base_estimate_ms=6000,
    focus_rules=(
        _rule("blog", r"blog|article|post", "Structure the piece with a strong hook, clear sections and a conclusion."),
        _rule("marketing", r"marketing|campaign|slogan|\bad\b", "Lead with the benefit and end with a clear call to action."),
        _rule("email", r"e-?mail|newsletter", "Write a compelling subject line and keep the body scannable."),
        _rule("social", r"social|twitter|linkedin|instagram|tiktok", "Keep it short, platform-native and engaging."),
        _rule("headline", r"headline|title|hook", "Offer several headline variants with different angles."),
    ),
)

ANALYSIS = ExecutorRole(
    id="analysis",
    name="Analysis",
    type=ExecutorType.ANALYSIS,
    description="Data analysis, trends, forecasts and reporting",
    system_prompt=(
        "You are a data analyst.\n\n"
        "Guidelines:\n"
        "- Separate observations from interpretation\n"
        "- Quantify where possible and state assumptions\n"
        "- Call out limitations of the data\n"
        "- End with actionable conclusions"
    ),
    capabilities=("data_analysis", "forecasting", "reporting", "evaluation"),
    keywords=(
        "analyze", "analysis", "data", "statistics", "trend", "chart",
        "graph", "report", "kpi", "metric", "forecast", "prediction",
        "sentiment", "evaluate", "assess", "measure", "benchmark",
        "comparison", "excel", "spreadsheet", "numbers", "percent", "growth",
        "revenue", "cost", "roi", "performance",
    ),
    routing_weight=1.0,
    base_estimate_ms=10000,
    focus_rules=(
        _rule("trend", r"trend|growth|pattern", "Identify trends, their drivers and their likely continuation."),
        _rule("sentiment", r"sentiment|opinion|feeling", "Classify sentiment and support it with evidence."),
        _rule("forecast", r"forecast|predict|projection", "Produce a forecast with explicit assumptions and ranges."),
        _rule("kpi", r"\bkpi\b|metric|performance", "Define the relevant metrics and interpret them against targets."),
        _rule("report", r"report|overview", "Structure findings as an executive summary followed by details."),
    ),
)

RECRUITER = ExecutorRole(
    id="recruiter",
    name="Recruiter",
    type=ExecutorType.RECRUITER,
    description="Job postings, candidate screening and interviews",
    system_prompt=(
        "You are an experienced recruiter.\n\n"
        "Guidelines:\n"
        "- Use inclusive, bias-free language\n"
        "- Be specific about requirements and expectations\n"
        "- Respect candidate privacy"
    ),
    capabilities=("job_posting", "screening", "interviewing", "onboarding"),
    keywords=(
        "job", "position", "job posting", "candidate", "applicant",
        "application", "cv", "resume", "interview", "screening", "talent",
        "recruiting", "hiring", "hire", "onboarding", "employer branding",
        "career", "salary", "benefits", "culture",
    ),
    routing_weight=1.1,
    base_estimate_ms=8000,
    focus_rules=(
        _rule("job_posting", r"job (posting|ad)|vacancy|position", "Write an inclusive posting with clear responsibilities and requirements."),
        _rule("screening", r"cv|resume|screening|candidate", "Assess the candidate against the requirements, citing evidence."),
        _rule("interview", r"interview", "Propose structured, competency-based interview questions."),
        _rule("onboarding", r"onboarding", "Lay out a first-90-days onboarding plan."),
    ),
)

SALES = ExecutorRole(
    id="sales",
    name="Sales",
    type=ExecutorType.SALES,
    description="Pitches, proposals, objection handling and follow-ups",
    system_prompt=(
        "You are a consultative sales professional.\n\n"
        "Guidelines:\n"
        "- Focus on the customer's problem and the value delivered\n"
        "- Be honest, never overpromise\n"
        "- Always propose a concrete next step"
    ),
    capabilities=("pitching", "proposals", "objection_handling", "follow_up"),
    keywords=(
        "sales", "deal", "customer", "pitch", "presentation", "offer",
        "proposal", "quote", "objection", "price", "discount", "closing",
        "lead", "prospect", "cold", "follow-up", "negotiation", "crm",
        "pipeline", "conversion", "upsell", "cross-sell",
    ),
    routing_weight=1.1,
    base_estimate_ms=6000,
    focus_rules=(
        _rule("objection", r"objection|too expensive|concern", "Acknowledge the objection, reframe around value and confirm resolution."),
        _rule("pitch", r"pitch|presentation", "Structure the pitch as problem, solution, proof and call to action."),
        _rule("proposal", r"proposal|quote|offer", "Write a proposal with scope, pricing rationale and next steps."),
        _rule("follow_up", r"follow.?up", "Write a short follow-up that adds value and proposes a next step."),
    ),
)

DEFAULT_ROLES: tuple[ExecutorRole, ...] = (RESEARCH, CODING, CREATIVE, ANALYSIS, RECRUITER, SALES)

# Declared task type -> executor type. The router only honors an alias when
# an executor of that type is registered.
TYPE_ALIASES: dict[str, ExecutorType] = {
    "research": ExecutorType.RESEARCH,
    "search": ExecutorType.RESEARCH,
    "coding": ExecutorType.CODING,
    "code": ExecutorType.CODING,
    "development": ExecutorType.CODING,
    "creative": ExecutorType.CREATIVE,
    "content": ExecutorType.CREATIVE,
    "text": ExecutorType.CREATIVE,
    "analysis": ExecutorType.ANALYSIS,
    "data": ExecutorType.ANALYSIS,
    "recruiter": ExecutorType.RECRUITER,
    "recruiting": ExecutorType.RECRUITER,
    "hr": ExecutorType.RECRUITER,
    "sales": ExecutorType.SALES,
}


def resolve_type(declared: str | None) -> ExecutorType | None:
    if not declared:
        return None
    return TYPE_ALIASES.get(declared.strip().lower())
