"""
Text blocks backed by an LLM gateway.

Every call goes through call_llm(), which talks to an OpenAI-compatible
endpoint (OpenRouter by default) with the async openai client. Catalog
model ids are mapped to gateway model names; unknown ids fall back to
gpt-4o-mini.

Environment variable:
    OPENROUTER_API_KEY
"""
from __future__ import annotations

from typing import Dict
from logging import getLogger

from ..config import settings
from ..core.Errors import OperationError
from ..core.Interface import InputBundle
from .registry import operation
from .upstream import get_upstream_text

logger = getLogger(__name__)

DEFAULT_LLM_MODEL = "gpt-4o-mini"

LLM_MODEL_MAP: Dict[str, str] = {
    "gpt-4o-mini": "openai/gpt-4o-mini",
    "gpt-4o": "openai/gpt-4o",
    "claude-3.5-haiku": "anthropic/claude-3.5-haiku",
    "llama-3.1-70b": "meta-llama/llama-3.1-70b-instruct",
    "gemini-2.0-flash": "google/gemini-2.0-flash-exp:free",
    "deepseek-chat-v3": "deepseek/deepseek-chat",
}


async def call_llm(model: str, system_prompt: str, user_prompt: str) -> str:
    import openai

    if not settings.OPENROUTER_API_KEY:
        raise OperationError("OPENROUTER_API_KEY not set")

    client = openai.AsyncOpenAI(api_key=settings.OPENROUTER_API_KEY, base_url=settings.OPENROUTER_BASE_URL)
    gateway_model = LLM_MODEL_MAP.get(model, LLM_MODEL_MAP[DEFAULT_LLM_MODEL])
    logger.info("LLM call: %s", gateway_model)

    try:
        response = await client.chat.completions.create(
            model=gateway_model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=settings.LLM_MAX_TOKENS,
        )
    except openai.OpenAIError as exc:
        raise OperationError(f"OpenRouter error: {exc}")

    if not response.choices:
        return "No response"
    return response.choices[0].message.content or "No response"


def _text(output_key: str, value: str) -> Dict[str, str]:
    return {output_key: value, "type": "text"}


# ── Spies ─────────────────────────────────────────────────────────────────────

@operation("shop_scraper")
async def scrape_shop(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    count = config.get("count") or "5"
    result = await call_llm(
        DEFAULT_LLM_MODEL,
        "You are a TikTok Shop product researcher. Generate realistic trending product data based on the "
        "search keyword. Include: product name, price, estimated daily sales, rating, and a brief "
        f"description. Format as a numbered list of {count} products.",
        f'Search keyword: "{config.get("keyword") or "trending"}" | Category: {config.get("category") or "All"} '
        f"| Generate {count} trending products.",
    )
    return _text("products", result)


@operation("competitor_spy")
async def spy_competitor(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    result = await call_llm(
        DEFAULT_LLM_MODEL,
        "You are a TikTok competitor analysis expert. Analyze a hypothetical competitor account and generate "
        "performance data. Include: video title, views, likes, engagement rate, posting time, and key "
        "tactics used. Format as a table.",
        f'Analyze @{config.get("username") or "competitor"} | Min views: {config.get("min_views") or "10K"} '
        "| Generate performance report.",
    )
    return _text("videos", result)


@operation("hashtag_analyzer")
async def analyze_hashtag(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    result = await call_llm(
        DEFAULT_LLM_MODEL,
        "You are a TikTok hashtag research expert. Analyze the given hashtag and generate data: total views, "
        "growth rate, top posts summary, related hashtags, and best time to use. Format clearly.",
        f'Analyze hashtag: #{config.get("hashtag") or "trending"} | Show top {config.get("count") or "5"} posts.',
    )
    return _text("hashtag_data", result)


@operation("sound_tracker")
async def track_sounds(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    result = await call_llm(
        DEFAULT_LLM_MODEL,
        "You are a TikTok music/sound trend expert. Find trending sounds for the given niche. Include: sound "
        "name, artist, usage count, growth trend, and best video types to use it with.",
        f'Find trending sounds for niche: "{config.get("niche") or "general"}" | List 5 trending sounds.',
    )
    return _text("sounds", result)


# ── Brains ────────────────────────────────────────────────────────────────────

@operation("hook_generator")
async def generate_hooks(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    context = config.get("context") or get_upstream_text(upstream) or "A trending product"
    result = await call_llm(
        config.get("llm_model") or DEFAULT_LLM_MODEL,
        f'You are a viral TikTok hook creator. Generate {config.get("count") or "5"} hooks in the '
        f'"{config.get("style") or "Curiosity"}" style. Each hook should be 1-2 sentences that STOP the '
        "scroll. Number them.",
        f"Context: {context}",
    )
    return _text("hooks", result)


@operation("persona_filter")
async def rewrite_in_persona(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    source = get_upstream_text(upstream) or config.get("text_in") or "Please provide text to rewrite."
    result = await call_llm(
        config.get("llm_model") or DEFAULT_LLM_MODEL,
        f'Rewrite the following content in the voice/tone of a "{config.get("persona") or "Gen-Z Creator"}". '
        "Keep the core message but change the language, slang, and energy to match this persona perfectly.",
        source,
    )
    return _text("text", result)


@operation("script_writer")
async def write_script(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    style = config.get("script_style") or "Direct Sale"
    selling_points = config.get("selling_points") or get_upstream_text(upstream) or "Great product"
    result = await call_llm(
        config.get("llm_model") or DEFAULT_LLM_MODEL,
        f"You are an expert TikTok ad script writer. Write a {style} style script.\n"
        "Format: HOOK (first 3 seconds), BODY (main content), CTA (call to action).\n"
        "Keep it punchy, viral, and optimized for short-form video.",
        f'Product: {config.get("product_name") or "Product"}\n'
        f'Price: {config.get("price") or "N/A"}\n'
        f"Selling Points: {selling_points}\n"
        f"Style: {style}",
    )
    return {"script": result, "prompt": result, "type": "text"}


@operation("caption_writer")
async def write_caption(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    hashtags = config.get("include_hashtags") or "5"
    hashtag_rule = "No hashtags." if hashtags == "None" else f"Include {hashtags} relevant hashtags."
    result = await call_llm(
        config.get("llm_model") or DEFAULT_LLM_MODEL,
        f'Write a viral TikTok caption in "{config.get("tone") or "Casual"}" tone.\n{hashtag_rule}',
        f"Write a caption based on: {get_upstream_text(upstream) or 'A trending TikTok product video'}",
    )
    return _text("caption", result)


@operation("ab_splitter")
async def split_variations(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    source = get_upstream_text(upstream) or config.get("script_in") or "Please provide a script to split."
    result = await call_llm(
        config.get("llm_model") or DEFAULT_LLM_MODEL,
        f'Generate {config.get("variations") or "2"} variations of the following content. Vary the '
        f'{config.get("vary_what") or "Hook Only"}. Label each variation clearly (A, B, C...).',
        source,
    )
    return _text("variations", result)


# ── Managers ──────────────────────────────────────────────────────────────────

@operation("analytics_check")
async def check_analytics(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    result = await call_llm(
        DEFAULT_LLM_MODEL,
        "You are a TikTok analytics expert. Generate a realistic performance report for a TikTok account.\n"
        "Include: views, likes, shares, comments, follower growth, best performing video, engagement rate, "
        "and recommendations.",
        f'Username: @{config.get("username") or "creator"} | Check after: {config.get("hours_after") or "24h"} '
        "| Generate analytics report.",
    )
    return _text("metrics", result)
