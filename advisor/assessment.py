"""AI opportunity assessment: score a business profile against a fixed catalog."""

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass
from typing import Any, Literal, get_args

from .config import config
from .errors import ValidationError
from .llm import LLMClient

logger = config.get_logger(__name__)

Industry = Literal["agriculture", "clean-energy", "medical", "enabling-capabilities"]
BusinessSize = Literal["small", "medium"]
DigitalMaturity = Literal["basic", "developing", "advanced"]
Budget = Literal["low", "medium", "high"]
Timeline = Literal["immediate", "short-term", "long-term"]
TechnicalCapacity = Literal["none", "limited", "strong"]
Level = Literal["low", "medium", "high"]

MAX_SCORE = 5
MAX_OPPORTUNITIES = 5

IMPACT_WEIGHT = 0.4
READINESS_WEIGHT = 0.3
COST_WEIGHT = 0.2
COMPLEXITY_WEIGHT = 0.1

GOAL_KEYWORDS = ("efficiency", "cost", "quality")

# Matched in order against the investment range text; first hit wins.
COST_TIERS: tuple[tuple[tuple[str, ...], int], ...] = (
    (("80,000", "70,000"), 4),
    (("60,000", "50,000"), 3),
    (("40,000", "35,000"), 2),
    (("25,000", "15,000"), 1),
)

RATIONALE_SYSTEM_PROMPT = (
    "You are an AI business consultant. Provide clear, actionable insights."
)
RATIONALE_UNAVAILABLE = "Assessment rationale unavailable."


def _require_choice(name: str, value: Any, allowed: Any) -> str:  # noqa: ANN401
    choices = get_args(allowed)
    if value not in choices:
        msg = f"Invalid {name}: {value!r}. Expected one of: {', '.join(choices)}"
        raise ValidationError(msg, field=name)
    return value


def _string_list(name: str, value: Any) -> tuple[str, ...]:  # noqa: ANN401
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, Iterable):
        msg = f"Invalid {name}: expected a list of strings"
        raise ValidationError(msg, field=name)
    items = tuple(value)
    if not all(isinstance(item, str) for item in items):
        msg = f"Invalid {name}: expected a list of strings"
        raise ValidationError(msg, field=name)
    return items


@dataclass(frozen=True)
class BusinessProfile:
    """Who is asking: the business characteristics used for scoring."""

    industry: Industry
    size: BusinessSize
    digital_maturity: DigitalMaturity
    budget: Budget
    technical_capacity: TechnicalCapacity
    timeline: Timeline = "short-term"
    current_pain_points: tuple[str, ...] = ()
    business_goals: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Validate enumerated fields and freeze list fields.

        Raises:
            ValidationError: If any field is outside its allowed values.
        """
        _require_choice("industry", self.industry, Industry)
        _require_choice("size", self.size, BusinessSize)
        _require_choice("digital_maturity", self.digital_maturity, DigitalMaturity)
        _require_choice("budget", self.budget, Budget)
        _require_choice("timeline", self.timeline, Timeline)
        _require_choice(
            "technical_capacity", self.technical_capacity, TechnicalCapacity
        )
        object.__setattr__(
            self,
            "current_pain_points",
            _string_list("current_pain_points", self.current_pain_points),
        )
        object.__setattr__(
            self, "business_goals", _string_list("business_goals", self.business_goals)
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BusinessProfile":
        """Parse a profile from snake_case or camelCase keys.

        Industry labels are lower-cased and underscores read as hyphens.

        Raises:
            ValidationError: If the input is not a mapping, a required field is
                missing, or a field is outside its allowed values.

        Returns:
            The validated profile.
        """
        if not isinstance(data, Mapping):
            msg = "Business profile must be an object"
            raise ValidationError(msg)

        def pick(snake: str, camel: str | None = None) -> Any:  # noqa: ANN401
            if snake in data:
                return data[snake]
            if camel is not None and camel in data:
                return data[camel]
            return None

        values = {
            "industry": pick("industry"),
            "size": pick("size"),
            "digital_maturity": pick("digital_maturity", "digitalMaturity"),
            "budget": pick("budget"),
            "technical_capacity": pick("technical_capacity", "technicalCapacity"),
        }
        missing = [name for name, value in values.items() if value is None]
        if missing:
            msg = f"Missing required profile fields: {', '.join(missing)}"
            raise ValidationError(msg, fields=missing)
        if isinstance(values["industry"], str):
            values["industry"] = values["industry"].strip().lower().replace("_", "-")

        timeline = pick("timeline")
        return cls(
            **values,
            timeline="short-term" if timeline is None else timeline,
            current_pain_points=pick("current_pain_points", "currentPainPoints"),
            business_goals=pick("business_goals", "businessGoals"),
        )


@dataclass(frozen=True)
class AIOpportunity:
    """A catalog entry describing one AI adoption opportunity."""

    id: str
    title: str
    description: str
    industry: Industry
    implementation_time: str
    required_investment: str
    technical_complexity: Level
    business_impact: Level
    prerequisites: tuple[str, ...]
    potential_roi: str
    eligible_services: tuple[str, ...]


@dataclass(frozen=True)
class OpportunityScore:
    """Axis scores on a 0-5 scale plus the weighted composite.

    Higher readiness and impact are better; lower complexity and cost are
    better.
    """

    readiness: int
    impact: int
    complexity: int
    cost: int
    composite: float


@dataclass(frozen=True)
class AssessedOpportunity:
    """A catalog opportunity scored for one profile."""

    opportunity: AIOpportunity
    score: OpportunityScore
    rationale: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Flatten for JSON output.

        Returns:
            Opportunity fields plus ``score`` and ``rationale``.
        """
        data = asdict(self.opportunity)
        data["score"] = asdict(self.score)
        data["rationale"] = self.rationale
        return data


AI_OPPORTUNITIES: tuple[AIOpportunity, ...] = (
    AIOpportunity(
        id="ag-crop-monitoring",
        title="AI-Powered Crop Monitoring",
        description=(
            "Use satellite imagery and AI to monitor crop health, predict yields, "
            "and optimize irrigation"
        ),
        industry="agriculture",
        implementation_time="3-6 months",
        required_investment="$15,000-$40,000",
        technical_complexity="medium",
        business_impact="high",
        prerequisites=("Internet connectivity", "Basic smartphone/tablet usage"),
        potential_roi="20-35% yield improvement",
        eligible_services=("AI Products & Consultations", "One-on-One Consultations"),
    ),
    AIOpportunity(
        id="ag-precision-farming",
        title="Precision Farming with IoT Sensors",
        description=(
            "Deploy soil sensors and weather stations with AI analytics for "
            "optimized farming decisions"
        ),
        industry="agriculture",
        implementation_time="2-4 months",
        required_investment="$8,000-$25,000",
        technical_complexity="low",
        business_impact="medium",
        prerequisites=("Field access for sensor installation",),
        potential_roi="15-25% input cost reduction",
        eligible_services=("Short Courses", "AI Products & Consultations"),
    ),
    AIOpportunity(
        id="ce-predictive-maintenance",
        title="Predictive Maintenance for Energy Equipment",
        description=(
            "AI-driven maintenance scheduling to prevent equipment failures and "
            "optimize uptime"
        ),
        industry="clean-energy",
        implementation_time="4-8 months",
        required_investment="$20,000-$60,000",
        technical_complexity="high",
        business_impact="high",
        prerequisites=("Equipment sensors", "Historical maintenance data"),
        potential_roi="25-40% maintenance cost reduction",
        eligible_services=("AI Studio Program", "One-on-One Consultations"),
    ),
    AIOpportunity(
        id="ce-energy-forecasting",
        title="AI Energy Demand Forecasting",
        description=(
            "Predict energy consumption patterns to optimize grid operations and "
            "reduce costs"
        ),
        industry="clean-energy",
        implementation_time="3-6 months",
        required_investment="$12,000-$35,000",
        technical_complexity="medium",
        business_impact="medium",
        prerequisites=("Historical energy usage data", "Smart meter integration"),
        potential_roi="10-20% energy cost savings",
        eligible_services=("AI Products & Consultations", "Short Courses"),
    ),
    AIOpportunity(
        id="med-diagnostic-assistance",
        title="AI Diagnostic Assistance",
        description=(
            "AI-powered tools to assist with medical image analysis and diagnostic "
            "decisions"
        ),
        industry="medical",
        implementation_time="6-12 months",
        required_investment="$30,000-$80,000",
        technical_complexity="high",
        business_impact="high",
        prerequisites=("Medical imaging equipment", "Regulatory compliance"),
        potential_roi="30-50% diagnostic accuracy improvement",
        eligible_services=("AI Studio Program", "One-on-One Consultations"),
    ),
    AIOpportunity(
        id="med-patient-flow",
        title="Patient Flow Optimization",
        description=(
            "AI scheduling and resource allocation to reduce wait times and improve "
            "patient experience"
        ),
        industry="medical",
        implementation_time="2-4 months",
        required_investment="$5,000-$15,000",
        technical_complexity="low",
        business_impact="medium",
        prerequisites=("Patient management system", "Historical appointment data"),
        potential_roi="20-30% efficiency improvement",
        eligible_services=("AI Products & Consultations", "Short Courses"),
    ),
    AIOpportunity(
        id="ec-quality-control",
        title="AI-Powered Quality Control",
        description=(
            "Computer vision systems for automated defect detection and quality "
            "assurance"
        ),
        industry="enabling-capabilities",
        implementation_time="4-8 months",
        required_investment="$25,000-$70,000",
        technical_complexity="high",
        business_impact="high",
        prerequisites=("Manufacturing equipment", "Camera systems"),
        potential_roi="40-60% defect reduction",
        eligible_services=("AI Studio Program", "One-on-One Consultations"),
    ),
    AIOpportunity(
        id="ec-process-automation",
        title="Process Automation with AI",
        description="Automate repetitive tasks and workflows using AI-powered tools",
        industry="enabling-capabilities",
        implementation_time="1-3 months",
        required_investment="$3,000-$12,000",
        technical_complexity="low",
        business_impact="medium",
        prerequisites=("Digital workflow systems",),
        potential_roi="25-40% time savings",
        eligible_services=("Short Courses", "AI Products & Consultations"),
    ),
)


def clamp(value: int, low: int = 0, high: int = MAX_SCORE) -> int:
    """Limit ``value`` to ``[low, high]``."""  # noqa: DOC201
    return max(low, min(high, value))


def score_readiness(opportunity: AIOpportunity, profile: BusinessProfile) -> int:
    """How prepared the business is to take this on (higher is better)."""  # noqa: DOC201
    readiness = {"advanced": 2, "developing": 1}.get(profile.digital_maturity, 0)
    readiness += {"strong": 2, "limited": 1}.get(profile.technical_capacity, 0)
    readiness += {"low": 1, "high": -1}.get(opportunity.technical_complexity, 0)
    return clamp(readiness)


def goals_align(opportunity: AIOpportunity, goals: Iterable[str]) -> bool:
    """Check whether any goal matches the opportunity or a generic value driver.

    Blank goals never match.

    Returns:
        True if a goal appears in the description or mentions efficiency, cost
        or quality.
    """
    description = opportunity.description.lower()
    for goal in goals:
        text = goal.strip().lower()
        if not text:
            continue
        if text in description or any(keyword in text for keyword in GOAL_KEYWORDS):
            return True
    return False


def score_impact(opportunity: AIOpportunity, profile: BusinessProfile) -> int:
    """Expected business value (higher is better)."""  # noqa: DOC201
    impact = {"high": 3, "medium": 2}.get(opportunity.business_impact, 1)
    if profile.size == "medium":
        impact += 1
    if goals_align(opportunity, profile.business_goals):
        impact += 1
    return clamp(impact)


def score_complexity(opportunity: AIOpportunity, profile: BusinessProfile) -> int:
    """Delivery difficulty for this business (lower is better)."""  # noqa: DOC201
    complexity = {"high": 3, "medium": 2}.get(opportunity.technical_complexity, 1)
    complexity += {"strong": -1, "none": 1}.get(profile.technical_capacity, 0)
    return clamp(complexity)


def score_cost(opportunity: AIOpportunity, profile: BusinessProfile) -> int:
    """Relative cost burden (lower is better).

    The tier comes from dollar figures appearing in the investment range text,
    not from parsing the range.

    Returns:
        Cost score adjusted for the profile's budget.
    """
    investment = opportunity.required_investment.lower()
    cost = next(
        (tier for markers, tier in COST_TIERS if any(m in investment for m in markers)),
        0,
    )
    cost += {"high": -1, "low": 1}.get(profile.budget, 0)
    return clamp(cost)


def composite_score(readiness: int, impact: int, complexity: int, cost: int) -> float:
    """Weighted combination of the axes, rounded to two decimals."""  # noqa: DOC201
    composite = (
        impact * IMPACT_WEIGHT
        + readiness * READINESS_WEIGHT
        + (MAX_SCORE - cost) * COST_WEIGHT
        + (MAX_SCORE - complexity) * COMPLEXITY_WEIGHT
    )
    return round(composite, 2)


def score_opportunity(
    opportunity: AIOpportunity, profile: BusinessProfile
) -> OpportunityScore:
    """Score one opportunity for one profile.

    Returns:
        The four axis scores and the composite.
    """
    readiness = score_readiness(opportunity, profile)
    impact = score_impact(opportunity, profile)
    complexity = score_complexity(opportunity, profile)
    cost = score_cost(opportunity, profile)
    return OpportunityScore(
        readiness=readiness,
        impact=impact,
        complexity=complexity,
        cost=cost,
        composite=composite_score(readiness, impact, complexity, cost),
    )


def fallback_rationale(score: OpportunityScore) -> str:
    """Templated rationale used when the model is unavailable."""  # noqa: DOC201
    impact = "high" if score.impact >= 3 else "moderate"  # noqa: PLR2004
    readiness = "good" if score.readiness >= 3 else "limited"  # noqa: PLR2004
    return (
        f"Score: {score.composite}/5. This opportunity shows {impact} potential "
        f"impact with {readiness} readiness for your business context."
    )


def build_rationale_prompt(
    opportunity: AIOpportunity, profile: BusinessProfile, score: OpportunityScore
) -> str:
    """Render the rationale request for one scored opportunity.

    Returns:
        The user prompt text.
    """
    if score.composite >= 3.5:  # noqa: PLR2004
        verdict = "highly recommended"
    elif score.composite >= 2.5:  # noqa: PLR2004
        verdict = "moderately suitable"
    else:
        verdict = "challenging"
    employees = "1-19" if profile.size == "small" else "20-199"
    return f"""Explain why this AI opportunity is {verdict} for this business:

Business Context:
- Industry: {profile.industry}
- Size: {profile.size} ({employees} employees)
- Digital Maturity: {profile.digital_maturity}
- Budget: {profile.budget}
- Technical Capacity: {profile.technical_capacity}
- Current Pain Points: {", ".join(profile.current_pain_points)}

AI Opportunity:
- {opportunity.title}: {opportunity.description}
- Investment: {opportunity.required_investment}
- Complexity: {opportunity.technical_complexity}
- Implementation Time: {opportunity.implementation_time}

Scores:
- Readiness: {score.readiness}/5
- Impact: {score.impact}/5
- Complexity: {score.complexity}/5 (lower is better)
- Cost: {score.cost}/5 (lower is better)
- Overall: {score.composite}/5

Provide a concise 2-3 sentence rationale focusing on the key factors."""


class OpportunityAssessor:
    """Ranks catalog opportunities for a business profile."""

    def __init__(
        self,
        llm: LLMClient | None = None,
        catalog: Sequence[AIOpportunity] = AI_OPPORTUNITIES,
    ) -> None:
        """Initialize the assessor.

        Args:
            llm: Model client for rationales. Without one, every rationale uses
                the template.
            catalog: Opportunities to choose from.
        """
        self.llm = llm
        self.catalog = tuple(catalog)

    async def generate_rationale(
        self,
        opportunity: AIOpportunity,
        profile: BusinessProfile,
        score: OpportunityScore,
    ) -> str:
        """Explain a score in two or three sentences.

        Returns:
            Model-written rationale, or the templated sentence if the model
            call fails.
        """
        if self.llm is None:
            return fallback_rationale(score)
        try:
            text = await self.llm.complete(
                [
                    {"role": "system", "content": RATIONALE_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": build_rationale_prompt(opportunity, profile, score),
                    },
                ],
                model=config.RATIONALE_MODEL,
                temperature=0.3,
                max_tokens=config.RATIONALE_MAX_TOKENS,
            )
        except Exception:
            logger.exception("Failed to generate rationale for %s", opportunity.id)
            return fallback_rationale(score)
        return text or RATIONALE_UNAVAILABLE

    def rank(self, profile: BusinessProfile) -> list[AssessedOpportunity]:
        """Score and rank the profile's industry opportunities without rationales.

        Returns:
            At most five opportunities by descending composite score.
        """
        scored = [
            AssessedOpportunity(opportunity, score_opportunity(opportunity, profile))
            for opportunity in self.get_opportunities_by_industry(profile.industry)
        ]
        scored.sort(key=lambda item: item.score.composite, reverse=True)
        return scored[:MAX_OPPORTUNITIES]

    async def assess(
        self, profile: BusinessProfile, *, with_rationale: bool = True
    ) -> list[AssessedOpportunity]:
        """Rank opportunities for a profile, optionally explaining each.

        Rationales are requested concurrently; a failed request falls back to
        the template and never drops an opportunity from the ranking.

        Returns:
            At most five opportunities by descending composite score.
        """
        ranked = self.rank(profile)
        if not with_rationale or not ranked:
            return ranked

        rationales = await asyncio.gather(*(
            self.generate_rationale(item.opportunity, profile, item.score)
            for item in ranked
        ))
        logger.info(
            "Assessed %d opportunities for %s business", len(ranked), profile.industry
        )
        return [
            AssessedOpportunity(item.opportunity, item.score, rationale)
            for item, rationale in zip(ranked, rationales, strict=True)
        ]

    def get_opportunity_by_id(self, opportunity_id: str) -> AIOpportunity | None:
        """Look up a catalog entry."""  # noqa: DOC201
        return next((op for op in self.catalog if op.id == opportunity_id), None)

    def get_all_opportunities(self) -> list[AIOpportunity]:
        """Return a copy of the catalog."""  # noqa: DOC201
        return list(self.catalog)

    def get_opportunities_by_industry(self, industry: str) -> list[AIOpportunity]:
        """Return catalog entries for one industry."""  # noqa: DOC201
        return [op for op in self.catalog if op.industry == industry]
