import re

from posted.core.exceptions import UpstreamFailure, ValidationFailed
from posted.services import llm_service

SYSTEM_PROMPT = """You are an expert at creating prompts for AI content generation systems. Your task is to take a basic user prompt and transform it into a well-structured account prompt that will guide AI content generation but not sound like an AI is writing it.

The enhanced prompt should:
1. Maintain the core theme and intent of the original prompt
2. Add clear structure with sections (CONTENT THEME, VARIATION EXAMPLES, STYLE GUIDELINES, etc.) but not too much.
3. Include specific examples of how to vary wording while keeping the core concept
4. Provide clear guidelines for tone, style, and content direction
5. Include instructions for variation to avoid repetitive content

Use simple, natural language. Avoid marketing speak, excessive enthusiasm, or AI-sounding phrases. Keep it concise and straightforward. Reply in the language of the user's prompt.
Return ONLY the enhanced prompt text - no markdown, no code blocks, no explanations, just the prompt itself."""

_CODE_FENCE = re.compile(r"```[\w]*\n?")


def clean_completion(text: str) -> str:
    """Strips markdown code fences and one layer of wrapping quotes."""
    text = _CODE_FENCE.sub("", text).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        text = text[1:-1]
    return text.strip()


async def enhance_prompt(prompt: str) -> str:
    if not prompt or not prompt.strip():
        raise ValidationFailed("Prompt is required")

    user_prompt = (
        f'Transform this basic prompt into a detailed, comprehensive account prompt:\n\n"{prompt}"\n\n'
        "Make it structured, detailed, and include examples of how to vary the wording "
        "while maintaining the core theme."
    )
    completion = await llm_service.get_completion(SYSTEM_PROMPT, user_prompt)
    enhanced = clean_completion(completion)
    if not enhanced:
        raise UpstreamFailure("Failed to enhance prompt")
    return enhanced
