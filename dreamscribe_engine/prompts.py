"""
Prompt text shared by every provider transport.

All functions are pure: the same metadata always yields the same text, and
missing metadata fields are rendered with their defaults rather than rejected.
"""
from .domain import StoryMetadata


LENGTH_LABELS = {
    "short": "Flash (500-1,000 words)",
    "medium": "Short story (1,000-3,000 words)",
    "long": "Long form (3,000+ words)",
}


def length_label(target_length: str) -> str:
    return LENGTH_LABELS.get(target_length, "Moderate")


def compose_story_system_prompt(metadata: StoryMetadata) -> str:
    return " ".join([
        "You are Dreamscribe, an AI co-author who crafts immersive fiction while respecting the author's voice.",
        "Write with cinematic detail, grounded emotions, and coherent pacing.",
        f"Tone guidance: {metadata.tone}",
        f"Genre: {metadata.genre}",
        f"Narrative perspective: {metadata.perspective}",
        "Structure scenes with clear beats, rising tension, and satisfying payoff.",
    ])


def compose_story_user_prompt(metadata: StoryMetadata, author_prompt: str) -> str:
    return "\n\n".join([
        f"Title: {metadata.title or 'Untitled'}",
        f"Target length: {length_label(metadata.target_length)}",
        "Author instructions:",
        (author_prompt or "").strip(),
    ])


def compose_feedback_prompt(metadata: StoryMetadata, draft: str, instruction: str) -> str:
    return "\n\n".join([
        "You are a developmental editor critiquing a work in progress.",
        f"Story title: {metadata.title}",
        f"Genre: {metadata.genre}",
        f"Tone: {metadata.tone}",
        "First provide a concise summary of your feedback, then bullet actionable revisions. Quote lines where useful.",
        "Draft:",
        draft or "",
        "Feedback focus:",
        instruction or "",
    ])
