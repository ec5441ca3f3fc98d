"""Prompt templates for medication explanations."""

SECTION_TITLES = (
    "What This Medication Does",
    "How It Helps You",
    "Important Things to Know",
)


def get_explanation_prompt(medication_name: str, reference_text: str, limit: int = 1500) -> str:
    """Prompt asking for a three-section plain-language explanation.

    Args:
        medication_name: Medication as the user typed it
        reference_text: Label text from the reference lookup
        limit: Maximum number of reference characters included

    Returns:
        Prompt text
    """
    return f"""You are a kind pharmacist explaining medication to an elderly person.
Medication Name: {medication_name}
Official FDA Information: {reference_text[:limit]}

Create a warm, simple explanation in 3 sections.
Use headings "SECTION 1:", "SECTION 2:", "SECTION 3:" exactly.

SECTION 1: {SECTION_TITLES[0]}
SECTION 2: {SECTION_TITLES[1]}
SECTION 3: {SECTION_TITLES[2]}

Keep it simple, reassuring, and clear. No markdown formatting like **bold** in the headers, just text.
"""
