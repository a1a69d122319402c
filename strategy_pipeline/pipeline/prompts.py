"""Prompt templates for every pipeline stage.

Each prompt is self-contained (the service keeps no memory between calls) and:
- Restates the original input and every prior validated stage output it needs
- Names the exact JSON keys the stage output contract requires
- Ends with a JSON skeleton built from the stage's Pydantic output model
"""

import json
import types
from typing import Annotated, Any, Literal, Union, get_args, get_origin

from pydantic import BaseModel

LANGUAGE_NAMES: dict[str, str] = {
    "ja": "Japanese",
    "en": "English",
}

# Input field -> label shown in prompts, per framework
FRAMEWORK_PROMPT_LABELS: dict[str, dict[str, str]] = {
    "3C": {
        "company": "Company",
        "customer": "Customer",
        "competitors": "Competitors",
    },
    "4P": {
        "product": "Product",
        "price": "Price",
        "place": "Place (distribution)",
        "promotion": "Promotion",
    },
    "PEST": {
        "political": "Political factors",
        "economic": "Economic factors",
        "social": "Social factors",
        "technological": "Technological factors",
    },
}

FRAMEWORK_NAMES: dict[str, str] = {
    "3C": "3C analysis (company, customer, competitors)",
    "4P": "4P marketing-mix analysis (product, price, place, promotion)",
    "PEST": "PEST macro-environment analysis (political, economic, social, technological)",
}


def _skeleton(annotation: Any, description: str | None = None) -> Any:
    origin = get_origin(annotation)
    if origin is Annotated:
        return _skeleton(get_args(annotation)[0], description)
    if origin in (Union, types.UnionType):
        inner = [arg for arg in get_args(annotation) if arg is not type(None)]
        return _skeleton(inner[0], description)
    if origin is Literal:
        return " | ".join(str(arg) for arg in get_args(annotation))
    if origin is list:
        return [_skeleton(get_args(annotation)[0], description)]
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return {
            name: _skeleton(field.annotation, field.description)
            for name, field in annotation.model_fields.items()
        }
    if annotation is bool:
        return True
    if annotation in (int, float):
        return 0
    return description or "string"


def describe_shape(model: type[BaseModel]) -> str:
    """Render a JSON skeleton of a Pydantic model for use in prompts."""
    return json.dumps(_skeleton(model), ensure_ascii=False, indent=2)


def to_prompt_json(value: Any) -> str:
    """Serialize validated data for inclusion in a prompt."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", exclude_none=True)
    return json.dumps(value, ensure_ascii=False, indent=2)


def format_framework_input(kind: str, form: BaseModel) -> str:
    labels = FRAMEWORK_PROMPT_LABELS[kind]
    return "\n".join(f"- {label} ({field}): {getattr(form, field)}" for field, label in labels.items())


# ==================== FRAMEWORK ANALYSIS ====================

INITIAL_ANALYSIS_PROMPT = """You are a senior business strategy consultant running the first pass of a {framework_name}.

**Input submitted by the user:**
{framework_input}

**Instructions:**
Analyse the input across all dimensions and produce:
- key_points: the most important observations, one sentence each.
- opportunities: opportunities the situation opens up.
- challenges: challenges and weaknesses we must address.

Write every text value in {language}.

Return ONLY a single JSON object with exactly this structure:
{shape}
"""

DEEP_ANALYSIS_PROMPT = """You are a senior business strategy consultant deepening a {framework_name}.

**Input submitted by the user:**
{framework_input}

**Initial analysis (already validated):**
{initial_analysis}

**Instructions:**
Go deeper than the initial analysis. For each framework dimension produce a list of insights
({insight_keys}), covering long-term impact, interactions between dimensions and fit with market trends.
Then produce recommendations: the improvements these insights call for.

Write every text value in {language}.

Return ONLY a single JSON object with exactly this structure:
{shape}
"""

FINAL_RECOMMENDATIONS_PROMPT = """You are a senior business strategy consultant writing the final recommendations of a {framework_name}.

**Initial analysis:**
{initial_analysis}

**Deep analysis:**
{deep_analysis}

**Instructions:**
Turn the analyses into a concrete plan:
- strategic_moves: medium- to long-term strategic moves.
- action_items: specific short-term actions, each one actionable by a team this quarter.
- risk_factors: risks to monitor while executing the plan.

Write every text value in {language}.

Return ONLY a single JSON object with exactly this structure:
{shape}
"""

# ==================== CONCEPT GENERATION ====================

CONCEPT_SUMMARIZE_PROMPT = """You are a product strategist preparing to design a new product concept.

**Source analyses:**
{analyses}

**Conditions from the user:**
{conditions}

**Instructions:**
Integrate the source analyses and extract what they have in common:
- key_points: the key points shared across the analyses.
- opportunities: market opportunities the analyses reveal.
- challenges: challenges a new product would have to overcome.

Write every text value in {language}.

Return ONLY a single JSON object with exactly this structure:
{shape}
"""

CONCEPT_CORRELATE_PROMPT = """You are a product strategist looking for connections between analysis frameworks.

**Frameworks used:** {frameworks}

**Integrated summary:**
{summary}

**Instructions:**
Find what only becomes visible when the frameworks are read together:
- insights: cross-framework insights.
- opportunities: opportunities created by combining the findings.
- risks: risks that arise from the same combination.

Write every text value in {language}.

Return ONLY a single JSON object with exactly this structure:
{shape}
"""

CONCEPT_PROPOSE_PROMPT = """You are a product strategist proposing new product concepts.

**Integrated summary:**
{summary}

**Cross-framework correlation:**
{correlation}

**Conditions from the user:**
{conditions}

**Instructions:**
Propose between 1 and {max_candidates} product concept candidates, best candidate first. Each candidate has:
- title: a short concept name.
- value_proposition: the value we deliver.
- target_customer: who the concept is for.
- advantage: why we win against alternatives.

Write every text value in {language}.

Return ONLY a single JSON object with exactly this structure:
{shape}
"""

CONCEPT_REFINE_PROMPT = """You are a product strategist adjusting an existing product concept to new conditions.

**Current concept:**
{concept}

**Conditions to satisfy:**
{constraints}

**Instructions:**
Rewrite the concept so it fits the conditions (budget, timeline, team size, technical constraints).
Return the complete concept: title, value_proposition, target_customer and advantage must all be present.

Write every text value in {language}.

Return ONLY a single JSON object with exactly this structure:
{shape}
"""

# ==================== REQUIREMENT DOCUMENT ====================

REQUIREMENT_GENERATE_PROMPT = """You are a senior product manager writing the requirement document for a web application.

**Product concept:**
{concept}

**Conditions to satisfy:**
{constraints}

**Instructions:**
Write a complete requirement document for the concept. It must include a non-empty title, an overview,
the target users, at least one feature (priority is one of high, medium, low, each feature with
acceptance criteria), the tech stack and a phased development schedule. Fill purpose,
non_functional_requirements, api_requirements, screen_list and ui_ux_requirements where they apply.
Keep scope and schedule consistent with the conditions.

Write every text value in {language}.

Return ONLY a single JSON object with exactly this structure:
{shape}
"""

REQUIREMENT_REFINE_PROMPT = """You are a senior product manager updating an existing requirement document.

**Current requirement document:**
{requirement}

**Requested changes and conditions:**
{constraints}

**Instructions:**
Apply the requested changes and return the COMPLETE updated requirement document, not only the
changed parts. Keep every section that the changes do not affect.

Write every text value in {language}.

Return ONLY a single JSON object with exactly this structure:
{shape}
"""
