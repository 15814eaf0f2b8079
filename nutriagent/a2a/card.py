"""Public agent card describing NutriAgent's identity and skills."""
from __future__ import annotations

from nutriagent.a2a.types import (
    AgentCapabilities,
    AgentCard,
    AgentProvider,
    AgentSkill,
    SecurityScheme,
)

AGENT_VERSION = "1.2.0"

SKILLS = (
    AgentSkill(
        id="nutrition-lookup",
        name="Nutrition Lookup",
        description="Look up nutritional facts for any food product by barcode, name, or category",
        tags=["nutrition", "food", "health", "barcode", "search"],
        examples=[
            "What are the nutritional facts for Nutella?",
            "Look up barcode 3017620422003",
            "Search for Greek yogurt products",
        ],
    ),
    AgentSkill(
        id="product-comparison",
        name="Product Comparison",
        description="Compare nutritional profiles, Nutri-Score, and NOVA groups across multiple food products",
        tags=["comparison", "nutri-score", "nutrition"],
        examples=[
            "Compare Nutella vs peanut butter",
            "Which breakfast cereal has less sugar?",
        ],
    ),
    AgentSkill(
        id="allergen-check",
        name="Allergen Check",
        description="Check allergens and traces in food products for dietary restriction verification",
        tags=["allergens", "dietary", "safety", "traces"],
        examples=[
            "Does this product contain gluten?",
            "Check allergens for barcode 3017620422003",
        ],
    ),
)


def build_agent_card(base_url: str, *, auth_enabled: bool, model_label: str = "GLM-4.7-Flash") -> AgentCard:
    base_url = base_url.rstrip("/")
    security_schemes = None
    security = None
    if auth_enabled:
        security_schemes = {
            "bearer": SecurityScheme(
                type="http",
                scheme="bearer",
                description="Bearer token authentication using A2A_API_KEY",
            )
        }
        security = [{"bearer": []}]

    return AgentCard(
        name="NutriAgent",
        description=(
            "An AI-powered nutritional facts agent that helps users explore food products, "
            "check nutritional information, compare items, and verify allergens using the "
            f"OpenFoodFacts database. Powered by {model_label}."
        ),
        url=f"{base_url}/a2a",
        version=AGENT_VERSION,
        provider=AgentProvider(organization="NutriAgent", url=base_url),
        capabilities=AgentCapabilities(),
        security_schemes=security_schemes,
        security=security,
        skills=list(SKILLS),
    )
