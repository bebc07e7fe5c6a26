"""Tests for AI opportunity assessment."""

import itertools
from dataclasses import replace

import pytest

from advisor.assessment import (
    AI_OPPORTUNITIES,
    RATIONALE_SYSTEM_PROMPT,
    RATIONALE_UNAVAILABLE,
    BusinessProfile,
    OpportunityAssessor,
    OpportunityScore,
    build_rationale_prompt,
    composite_score,
    fallback_rationale,
    goals_align,
    score_cost,
    score_opportunity,
)
from advisor.config import config
from advisor.errors import ValidationError


def opportunity(opportunity_id: str):
    return OpportunityAssessor().get_opportunity_by_id(opportunity_id)


def test_agriculture_profile_ranking(business_profile_factory):
    ranked = OpportunityAssessor().rank(business_profile_factory())

    assert [item.opportunity.id for item in ranked] == [
        "ag-precision-farming",
        "ag-crop-monitoring",
    ]
    assert ranked[0].score == OpportunityScore(
        readiness=3, impact=2, complexity=1, cost=1, composite=2.9
    )
    assert ranked[1].score == OpportunityScore(
        readiness=2, impact=3, complexity=2, cost=2, composite=2.7
    )
    assert all(item.rationale is None for item in ranked)


def test_goals_raise_impact(business_profile_factory):
    profile = business_profile_factory(business_goals=["Reduce cost of inputs"])

    score = score_opportunity(opportunity("ag-precision-farming"), profile)

    assert score.impact == 3


@pytest.mark.parametrize(
    ("goals", "expected"),
    [
        (["irrigation"], True),
        (["Improve EFFICIENCY"], True),
        (["quality assurance"], True),
        (["expand exports"], False),
        (["", "   "], False),
        ([], False),
    ],
)
def test_goals_align(goals, expected):
    assert goals_align(opportunity("ag-crop-monitoring"), goals) is expected


def test_medium_advanced_medical_profile(business_profile_factory):
    profile = business_profile_factory(
        industry="medical",
        size="medium",
        digital_maturity="advanced",
        budget="high",
        technical_capacity="strong",
    )

    score = score_opportunity(opportunity("med-diagnostic-assistance"), profile)

    assert score == OpportunityScore(
        readiness=3, impact=4, complexity=2, cost=3, composite=3.2
    )


@pytest.mark.parametrize(
    ("opportunity_id", "budget", "expected"),
    [
        ("med-diagnostic-assistance", "medium", 4),
        ("ce-predictive-maintenance", "medium", 3),
        ("ce-energy-forecasting", "medium", 2),
        ("med-patient-flow", "medium", 1),
        ("ec-process-automation", "medium", 0),
        ("ec-process-automation", "low", 1),
        ("ec-process-automation", "high", 0),
        ("ec-quality-control", "high", 3),
    ],
)
def test_score_cost_tiers(business_profile_factory, opportunity_id, budget, expected):
    profile = business_profile_factory(budget=budget)

    assert score_cost(opportunity(opportunity_id), profile) == expected


def test_scores_stay_in_bounds():
    """Every axis and the composite stay within 0-5 for any profile."""
    for industry, size, maturity, budget, capacity in itertools.product(
        ["agriculture", "clean-energy", "medical", "enabling-capabilities"],
        ["small", "medium"],
        ["basic", "developing", "advanced"],
        ["low", "medium", "high"],
        ["none", "limited", "strong"],
    ):
        profile = BusinessProfile(
            industry=industry,
            size=size,
            digital_maturity=maturity,
            budget=budget,
            technical_capacity=capacity,
            business_goals=("efficiency",),
        )
        for entry in AI_OPPORTUNITIES:
            score = score_opportunity(entry, profile)
            for value in (score.readiness, score.impact, score.complexity, score.cost):
                assert 0 <= value <= 5
            assert 0 <= score.composite <= 5


def test_composite_score_weights():
    assert composite_score(readiness=5, impact=5, complexity=0, cost=0) == 5.0
    assert composite_score(readiness=0, impact=0, complexity=5, cost=5) == 0.0
    assert composite_score(readiness=3, impact=2, complexity=1, cost=1) == 2.9


def test_rank_returns_only_profile_industry(business_profile_factory):
    ranked = OpportunityAssessor().rank(
        business_profile_factory(industry="enabling-capabilities")
    )

    assert {item.opportunity.industry for item in ranked} == {"enabling-capabilities"}
    composites = [item.score.composite for item in ranked]
    assert composites == sorted(composites, reverse=True)


def test_rank_caps_at_five(business_profile_factory):
    catalog = [replace(AI_OPPORTUNITIES[0], id=f"ag-{i}") for i in range(7)]

    ranked = OpportunityAssessor(catalog=catalog).rank(business_profile_factory())

    assert len(ranked) == 5


def test_fallback_rationale_template():
    score = OpportunityScore(readiness=3, impact=2, complexity=1, cost=1, composite=2.9)

    assert fallback_rationale(score) == (
        "Score: 2.9/5. This opportunity shows moderate potential impact with good "
        "readiness for your business context."
    )


@pytest.mark.parametrize(
    ("composite", "verdict"),
    [(3.5, "highly recommended"), (2.5, "moderately suitable"), (2.4, "challenging")],
)
def test_rationale_prompt_verdict(business_profile_factory, composite, verdict):
    score = OpportunityScore(
        readiness=2, impact=2, complexity=2, cost=2, composite=composite
    )

    prompt = build_rationale_prompt(
        opportunity("ag-crop-monitoring"),
        business_profile_factory(current_pain_points=["labour", "water"]),
        score,
    )

    assert prompt.startswith(f"Explain why this AI opportunity is {verdict}")
    assert "- Size: small (1-19 employees)" in prompt
    assert "- Current Pain Points: labour, water" in prompt


@pytest.mark.asyncio
async def test_assess_with_model_rationales(llm_factory, business_profile_factory):
    llm = llm_factory(content="Low cost sensors suit a small farm.")

    assessed = await OpportunityAssessor(llm).assess(business_profile_factory())

    assert [item.rationale for item in assessed] == [
        "Low cost sensors suit a small farm."
    ] * 2
    call = llm.client.chat.completions.create.call_args.kwargs
    assert call["model"] == config.RATIONALE_MODEL
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == config.RATIONALE_MAX_TOKENS
    assert call["messages"][0] == {"role": "system", "content": RATIONALE_SYSTEM_PROMPT}


@pytest.mark.asyncio
async def test_assess_rationale_failure_uses_template(
    llm_factory, business_profile_factory
):
    llm = llm_factory(side_effect=RuntimeError("model down"))

    assessed = await OpportunityAssessor(llm).assess(business_profile_factory())

    assert len(assessed) == 2
    assert assessed[0].rationale == fallback_rationale(assessed[0].score)


@pytest.mark.asyncio
async def test_assess_empty_model_reply(llm_factory, business_profile_factory):
    llm = llm_factory(content="")

    assessed = await OpportunityAssessor(llm).assess(business_profile_factory())

    assert assessed[0].rationale == RATIONALE_UNAVAILABLE


@pytest.mark.asyncio
async def test_assess_without_rationale_skips_model(llm, business_profile_factory):
    assessed = await OpportunityAssessor(llm).assess(
        business_profile_factory(), with_rationale=False
    )

    assert all(item.rationale is None for item in assessed)
    llm.client.chat.completions.create.assert_not_called()


@pytest.mark.asyncio
async def test_assess_without_llm_uses_template(business_profile_factory):
    assessed = await OpportunityAssessor().assess(business_profile_factory())

    assert assessed[1].rationale == (
        "Score: 2.7/5. This opportunity shows high potential impact with limited "
        "readiness for your business context."
    )


def test_assessed_opportunity_to_dict(business_profile_factory):
    item = OpportunityAssessor().rank(business_profile_factory())[0]

    data = item.to_dict()

    assert data["id"] == "ag-precision-farming"
    assert data["score"]["composite"] == 2.9
    assert data["rationale"] is None


def test_catalog_lookups():
    assessor = OpportunityAssessor()

    assert len(assessor.get_all_opportunities()) == 8
    assert assessor.get_opportunity_by_id("missing") is None
    assert [op.id for op in assessor.get_opportunities_by_industry("medical")] == [
        "med-diagnostic-assistance",
        "med-patient-flow",
    ]


def test_profile_from_camel_case_dict():
    profile = BusinessProfile.from_dict({
        "industry": "Clean_Energy",
        "size": "medium",
        "digitalMaturity": "basic",
        "budget": "low",
        "technicalCapacity": "none",
        "currentPainPoints": ["downtime"],
        "businessGoals": ["efficiency"],
    })

    assert profile.industry == "clean-energy"
    assert profile.timeline == "short-term"
    assert profile.current_pain_points == ("downtime",)
    assert profile.business_goals == ("efficiency",)


def test_profile_missing_fields():
    with pytest.raises(ValidationError, match="budget, technical_capacity") as exc_info:
        BusinessProfile.from_dict({
            "industry": "agriculture",
            "size": "small",
            "digital_maturity": "basic",
        })

    assert exc_info.value.public_code == "VALIDATION_FAILED"


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("industry", "aquaculture"),
        ("size", "large"),
        ("digital_maturity", "expert"),
        ("budget", "unlimited"),
        ("technical_capacity", "some"),
        ("timeline", "someday"),
        ("business_goals", "efficiency"),
        ("current_pain_points", [1, 2]),
    ],
)
def test_profile_rejects_invalid_values(business_profile_factory, field, value):
    with pytest.raises(ValidationError, match=f"Invalid {field}"):
        business_profile_factory(**{field: value})


def test_profile_from_dict_rejects_non_mapping():
    with pytest.raises(ValidationError, match="must be an object"):
        BusinessProfile.from_dict(["agriculture"])
