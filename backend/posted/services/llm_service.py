#backend/posted/services/llm_service.py
import logging

from posted.core.async_context import get_async_context

logger = logging.getLogger(__name__)

async def get_completion(system_prompt: str, user_prompt: str, model: str = "google/gemini-2.5-flash",
                         temperature: float = 0.7, max_tokens: int = 2000) -> str:
    """
    Gets a plain text completion from an LLM via OpenRouter.
    Returns an empty string when the call fails; callers decide how to report it.
    """
    client = get_async_context().openrouter_client
    try:
        response = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        content = response.choices[0].message.content
        return content if content else ""
    except Exception as e:
        logger.error("Error getting completion from LLM: %s", e)
        return ""
