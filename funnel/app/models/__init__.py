"""
Lead Funnel Models
"""

from .leads import (
    Lead,
    ChatbotInteraction,
    LeadSource,
    CareerGoal,
    ExperienceLevel,
    LeadStage,
    Intent,
    Touchpoint,
)

__all__ = [
    "Lead",
    "ChatbotInteraction",
    "LeadSource",
    "CareerGoal",
    "ExperienceLevel",
    "LeadStage",
    "Intent",
    "Touchpoint",
]
