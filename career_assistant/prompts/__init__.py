"""Static prompt documents for the career assistant."""

from career_assistant.prompts.biography import Biography, load_biography

__all__ = [
    "Biography",
    "load_biography",
]
