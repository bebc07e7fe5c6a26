"""SMEC AI service catalog and recommendation matching."""

from collections.abc import Sequence
from dataclasses import asdict, dataclass
from typing import Any, Literal

from .assessment import (
    AssessedOpportunity,
    BusinessProfile,
    BusinessSize,
    DigitalMaturity,
    Industry,
    OpportunityScore,
    TechnicalCapacity,
)
from .config import config

logger = config.get_logger(__name__)

ServiceType = Literal["consultation", "course", "program", "product"]
ServiceCost = Literal["free", "low", "medium", "high"]
DeliveryMode = Literal["online", "in-person", "hybrid"]
Priority = Literal["high", "medium", "low"]

MAX_RECOMMENDATIONS = 5
BASE_MATCH_SCORE = 50
MAX_MATCH_SCORE = 100
HIGH_PRIORITY_SCORE = 80
MEDIUM_PRIORITY_SCORE = 60
INDUSTRY_WORKSHOP_ID = "industry-specific-workshop"

ALL_SIZES: tuple[BusinessSize, ...] = ("small", "medium")
ALL_INDUSTRIES: tuple[Industry, ...] = (
    "agriculture",
    "clean-energy",
    "medical",
    "enabling-capabilities",
)

CTA_TEXT: dict[str, str] = {
    "program": "Apply for AI Studio Program",
    "consultation": "Book Your Free Consultation",
    "course": "Enroll in Course",
    "product": "Explore AI Solutions",
}


@dataclass(frozen=True)
class EligibilityCriteria:
    """Hard requirements a business must meet for a service.

    ``None`` means the criterion is not checked. Score thresholds apply only
    when the top assessed opportunity's scores are known.
    """

    min_impact_score: int | None = None
    min_readiness_score: int | None = None
    max_complexity_score: int | None = None
    business_sizes: tuple[BusinessSize, ...] | None = None
    industries: tuple[Industry, ...] | None = None
    digital_maturity_levels: tuple[DigitalMaturity, ...] | None = None
    technical_capacity_levels: tuple[TechnicalCapacity, ...] | None = None

    def is_met(
        self, profile: BusinessProfile, scores: OpportunityScore | None = None
    ) -> bool:
        """Check a profile, and optionally opportunity scores, against the gate.

        Returns:
            True if every configured criterion is satisfied.
        """
        checks = (
            (self.business_sizes, profile.size),
            (self.industries, profile.industry),
            (self.digital_maturity_levels, profile.digital_maturity),
            (self.technical_capacity_levels, profile.technical_capacity),
        )
        if any(allowed is not None and value not in allowed for allowed, value in checks):
            return False

        if scores is None:
            return True
        if self.min_impact_score and scores.impact < self.min_impact_score:
            return False
        if self.min_readiness_score and scores.readiness < self.min_readiness_score:
            return False
        return not (
            self.max_complexity_score
            and scores.complexity > self.max_complexity_score
        )


@dataclass(frozen=True)
class ServiceOffering:
    """A support service a business can be referred to."""

    id: str
    name: str
    description: str
    type: ServiceType
    category: str
    cost: ServiceCost
    target_audience: tuple[str, ...]
    prerequisites: tuple[str, ...]
    delivery_mode: DeliveryMode
    eligibility: EligibilityCriteria
    tags: tuple[str, ...]
    duration: str | None = None
    booking_url: str | None = None
    info_url: str | None = None


@dataclass(frozen=True)
class ServiceRecommendation:
    """A matched service with its score and call to action."""

    service: ServiceOffering
    match_score: int
    rationale: str
    priority: Priority
    cta_text: str
    cta_url: str

    def to_dict(self) -> dict[str, Any]:
        """Flatten for JSON output."""  # noqa: DOC201
        return asdict(self)


SMEC_SERVICES: tuple[ServiceOffering, ...] = (
    ServiceOffering(
        id="ai-studio-program",
        name="AI Studio Program",
        description=(
            "8-week intensive program for custom AI solution development with "
            "dedicated support"
        ),
        type="program",
        category="Custom Development",
        duration="8 weeks",
        cost="free",
        target_audience=(
            "SMEs ready for custom AI development",
            "Businesses with clear AI use cases",
        ),
        prerequisites=(
            "Dedicated team member",
            "Clear business objectives",
            "Technical readiness",
        ),
        delivery_mode="hybrid",
        booking_url="https://smec.ai/programs/ai-studio/apply",
        info_url="https://smec.ai/programs/ai-studio",
        eligibility=EligibilityCriteria(
            min_impact_score=4,
            min_readiness_score=3,
            business_sizes=ALL_SIZES,
            digital_maturity_levels=("developing", "advanced"),
            technical_capacity_levels=("limited", "strong"),
        ),
        tags=("custom-development", "intensive", "high-impact", "mentorship"),
    ),
    ServiceOffering(
        id="one-on-one-consultation",
        name="One-on-One AI Consultation",
        description=(
            "Personalized guidance session with AI experts to assess your specific "
            "needs"
        ),
        type="consultation",
        category="Assessment & Planning",
        duration="60-90 minutes",
        cost="free",
        target_audience=(
            "All SMEs exploring AI",
            "Businesses needing strategic guidance",
        ),
        prerequisites=("Basic business overview prepared",),
        delivery_mode="online",
        booking_url="https://smec.ai/consultations/book",
        info_url="https://smec.ai/consultations",
        eligibility=EligibilityCriteria(
            business_sizes=ALL_SIZES,
            industries=ALL_INDUSTRIES,
        ),
        tags=("consultation", "assessment", "strategic", "personalized"),
    ),
    ServiceOffering(
        id="ai-fundamentals-course",
        name="AI Fundamentals for SMEs",
        description=(
            "Comprehensive course covering AI basics, business applications, and "
            "implementation strategies"
        ),
        type="course",
        category="Education & Training",
        duration="4 weeks",
        cost="free",
        target_audience=("Business owners", "Managers", "Team leaders"),
        prerequisites=("No technical background required",),
        delivery_mode="online",
        booking_url="https://smec.ai/courses/fundamentals/enroll",
        info_url="https://smec.ai/courses/fundamentals",
        eligibility=EligibilityCriteria(
            business_sizes=ALL_SIZES,
            digital_maturity_levels=("basic", "developing", "advanced"),
        ),
        tags=("education", "fundamentals", "business-focused", "self-paced"),
    ),
    ServiceOffering(
        id=INDUSTRY_WORKSHOP_ID,
        name="Industry-Specific AI Workshop",
        description=(
            "Targeted workshops focusing on AI applications in your specific "
            "industry sector"
        ),
        type="course",
        category="Industry Training",
        duration="1-2 days",
        cost="free",
        target_audience=("Industry professionals", "Sector-specific teams"),
        prerequisites=("Industry experience helpful",),
        delivery_mode="hybrid",
        booking_url="https://smec.ai/workshops/industry/book",
        info_url="https://smec.ai/workshops/industry",
        eligibility=EligibilityCriteria(
            business_sizes=ALL_SIZES,
            industries=ALL_INDUSTRIES,
            digital_maturity_levels=("developing", "advanced"),
        ),
        tags=("workshop", "industry-specific", "practical", "networking"),
    ),
    ServiceOffering(
        id="ai-products-directory",
        name="AI Products & Solutions Directory",
        description=(
            "Curated marketplace of vetted AI solutions ready for SME implementation"
        ),
        type="product",
        category="Solution Discovery",
        cost="free",
        target_audience=(
            "SMEs ready to implement",
            "Businesses seeking immediate solutions",
        ),
        prerequisites=("Clear budget and timeline",),
        delivery_mode="online",
        info_url="https://smec.ai/products",
        eligibility=EligibilityCriteria(
            min_readiness_score=2,
            business_sizes=ALL_SIZES,
            digital_maturity_levels=("developing", "advanced"),
        ),
        tags=("marketplace", "ready-solutions", "vetted", "implementation"),
    ),
    ServiceOffering(
        id="technical-readiness-assessment",
        name="Technical Readiness Assessment",
        description=(
            "Comprehensive evaluation of your technical infrastructure and AI "
            "readiness"
        ),
        type="consultation",
        category="Technical Assessment",
        duration="2-3 hours",
        cost="free",
        target_audience=(
            "SMEs with technical questions",
            "Businesses planning implementation",
        ),
        prerequisites=("Access to current systems documentation",),
        delivery_mode="online",
        booking_url="https://smec.ai/assessments/technical/book",
        info_url="https://smec.ai/assessments/technical",
        eligibility=EligibilityCriteria(
            business_sizes=ALL_SIZES,
            technical_capacity_levels=("none", "limited"),
            digital_maturity_levels=("basic", "developing"),
        ),
        tags=("assessment", "technical", "infrastructure", "readiness"),
    ),
    ServiceOffering(
        id="grant-funding-guidance",
        name="Grant & Funding Guidance",
        description=(
            "Support in identifying and applying for AI implementation grants and "
            "funding opportunities"
        ),
        type="consultation",
        category="Financial Support",
        duration="45 minutes",
        cost="free",
        target_audience=(
            "SMEs seeking funding",
            "Businesses with budget constraints",
        ),
        prerequisites=("Business plan or project outline",),
        delivery_mode="online",
        booking_url="https://smec.ai/funding/guidance/book",
        info_url="https://smec.ai/funding/guidance",
        eligibility=EligibilityCriteria(
            business_sizes=ALL_SIZES,
            min_impact_score=3,
        ),
        tags=("funding", "grants", "financial", "support"),
    ),
)


def determine_priority(match_score: int) -> Priority:
    """Bucket a match score into a display priority."""  # noqa: DOC201
    if match_score >= HIGH_PRIORITY_SCORE:
        return "high"
    if match_score >= MEDIUM_PRIORITY_SCORE:
        return "medium"
    return "low"


def call_to_action(service: ServiceOffering) -> tuple[str, str]:
    """Pick the button text and link for a service.

    Products link to their information page; other services prefer booking.

    Returns:
        Tuple of (text, url).
    """
    text = CTA_TEXT.get(service.type, "Learn More")
    if service.type == "product":
        return text, service.info_url or "#"
    return text, service.booking_url or service.info_url or "#"


class ServiceRecommendationEngine:
    """Matches a business profile to SMEC AI services."""

    def __init__(self, services: Sequence[ServiceOffering] = SMEC_SERVICES) -> None:
        """Initialize the engine with a service catalog."""
        self.services = tuple(services)

    @staticmethod
    def calculate_match_score(
        service: ServiceOffering,
        profile: BusinessProfile,
        scores: OpportunityScore | None = None,
    ) -> int:
        """Score how well a service suits a business.

        Returns:
            0 when the business is not eligible, otherwise a score from 50 to
            100.
        """
        if not service.eligibility.is_met(profile, scores):
            return 0

        score = BASE_MATCH_SCORE
        score += {"advanced": 15, "developing": 10}.get(profile.digital_maturity, 5)
        score += {"strong": 15, "limited": 10}.get(profile.technical_capacity, 5)

        if scores is not None:
            if service.type == "program" and scores.readiness >= 3 and scores.impact >= 4:  # noqa: PLR2004
                score += 20
            if service.type == "consultation" and scores.readiness < 3:  # noqa: PLR2004
                score += 15
            if service.type == "course" and profile.digital_maturity == "basic":
                score += 15
            if service.type == "product" and scores.readiness >= 3:  # noqa: PLR2004
                score += 10

        if service.id == INDUSTRY_WORKSHOP_ID:
            score += 10
        if profile.budget == "low" and service.cost == "free":
            score += 5

        return min(MAX_MATCH_SCORE, score)

    @staticmethod
    def build_rationale(
        service: ServiceOffering,
        profile: BusinessProfile,
        match_score: int,
        *,
        has_opportunity: bool,
    ) -> str:
        """Explain a recommendation in one sentence.

        Returns:
            Comma-separated reasons.
        """
        if match_score >= HIGH_PRIORITY_SCORE:
            reasons = ["Highly recommended based on your profile"]
        elif match_score >= MEDIUM_PRIORITY_SCORE:
            reasons = ["Good fit for your current needs"]
        else:
            reasons = ["Suitable option to consider"]

        if service.type == "program" and has_opportunity:
            reasons.append("ideal for developing custom AI solutions")
        if service.type == "consultation":
            reasons.append("provides personalized guidance for your situation")
        if service.type == "course" and profile.digital_maturity == "basic":
            reasons.append("builds foundational AI knowledge")
        if service.cost == "free":
            reasons.append("fully funded by Australian Government")
        return ", ".join(reasons)

    def recommend(
        self,
        profile: BusinessProfile,
        assessed_opportunities: Sequence[AssessedOpportunity] | None = None,
    ) -> list[ServiceRecommendation]:
        """Recommend services for a business.

        The first assessed opportunity, when given, supplies the scores used
        for score thresholds and type preferences.

        Returns:
            At most five eligible services by descending match score.
        """
        top = assessed_opportunities[0] if assessed_opportunities else None
        scores = top.score if top is not None else None

        recommendations = []
        for service in self.services:
            match_score = self.calculate_match_score(service, profile, scores)
            if match_score <= 0:
                continue
            cta_text, cta_url = call_to_action(service)
            recommendations.append(
                ServiceRecommendation(
                    service=service,
                    match_score=match_score,
                    rationale=self.build_rationale(
                        service, profile, match_score, has_opportunity=top is not None
                    ),
                    priority=determine_priority(match_score),
                    cta_text=cta_text,
                    cta_url=cta_url,
                )
            )

        recommendations.sort(key=lambda rec: rec.match_score, reverse=True)
        logger.debug(
            "%d of %d services eligible", len(recommendations), len(self.services)
        )
        return recommendations[:MAX_RECOMMENDATIONS]

    def get_service_by_id(self, service_id: str) -> ServiceOffering | None:
        """Look up a service."""  # noqa: DOC201
        return next((s for s in self.services if s.id == service_id), None)

    def get_all_services(self) -> list[ServiceOffering]:
        """Return a copy of the catalog."""  # noqa: DOC201
        return list(self.services)

    def get_services_by_type(self, service_type: str) -> list[ServiceOffering]:
        """Return services of one type."""  # noqa: DOC201
        return [s for s in self.services if s.type == service_type]

    def get_services_by_category(self, category: str) -> list[ServiceOffering]:
        """Return services in one category."""  # noqa: DOC201
        return [s for s in self.services if s.category == category]
