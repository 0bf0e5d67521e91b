"""
Static registry of every block type the editor can place on the canvas.

Pure data: identity, category, ports and configurable fields per block,
plus the provider model lists that the model-choice field kinds draw from.
The graph model, executor, dispatcher and serializers all read from here.
"""
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from ..core.Errors import UnknownBlockError
from ..core.Types import BlockCategory, FieldKind


class PortDef(NamedTuple):
    id: str
    label: str
    color: Optional[str] = None


class FieldDef(NamedTuple):
    key: str
    label: str
    kind: FieldKind
    options: Tuple[str, ...] = ()


class BlockDefinition(NamedTuple):
    id: str
    name: str
    category: BlockCategory
    description: str
    cost: str
    powered_by: str
    inputs: Tuple[PortDef, ...]
    outputs: Tuple[PortDef, ...]
    fields: Tuple[FieldDef, ...]

    def get_input(self, port_name: str) -> Optional[PortDef]:
        for port in self.inputs:
            if port.id == port_name:
                return port
        return None

    def get_output(self, port_name: str) -> Optional[PortDef]:
        for port in self.outputs:
            if port.id == port_name:
                return port
        return None

    def get_field(self, key: str) -> Optional[FieldDef]:
        for field in self.fields:
            if field.key == key:
                return field
        return None


class ModelOption(NamedTuple):
    id: str
    name: str
    provider: str
    cost: str


# ── Provider model lists ─────────────────────────────────────────────────────

VIDEO_MODELS: Tuple[ModelOption, ...] = (
    ModelOption("wan-2.1-i2v", "Wan 2.1", "Replicate", "~$0.05"),
    ModelOption("kling-v1.6-standard", "Kling V1.6", "Replicate", "~$0.10"),
    ModelOption("kling-v2-master", "Kling V2 Master", "Replicate", "~$0.30"),
    ModelOption("luma-ray2-flash", "Luma Ray2 Flash", "Replicate", "~$0.10"),
    ModelOption("minimax-video-01", "Minimax/Hailuo", "Replicate", "~$0.15"),
    ModelOption("google-veo-2", "Google Veo 2", "Replicate", "~$0.50"),
)

LLM_MODELS: Tuple[ModelOption, ...] = (
    ModelOption("gpt-4o-mini", "GPT-4o Mini", "OpenRouter", "$0.00015/1k"),
    ModelOption("gpt-4o", "GPT-4o", "OpenRouter", "$0.0025/1k"),
    ModelOption("claude-3.5-haiku", "Claude 3.5 Haiku", "OpenRouter", "$0.0008/1k"),
    ModelOption("llama-3.1-70b", "Llama 3.1 70B", "OpenRouter", "$0.0004/1k"),
    ModelOption("gemini-2.0-flash", "Gemini 2.0 Flash", "OpenRouter", "$0.0001/1k"),
    ModelOption("deepseek-chat-v3", "DeepSeek V3", "OpenRouter", "$0.00014/1k"),
)

SCRAPER_PROVIDERS: Tuple[ModelOption, ...] = (
    ModelOption("scrape-creators", "Scrape Creators", "Scrape Creators", "100 free credits"),
    ModelOption("rapidapi-tiktok", "RapidAPI TikTok", "RapidAPI", "50 req/mo free"),
    ModelOption("apify-tiktok", "Apify", "Apify", "Free trial"),
)

MODEL_CHOICES: Dict[FieldKind, Tuple[ModelOption, ...]] = {
    FieldKind.MODEL_VIDEO: VIDEO_MODELS,
    FieldKind.MODEL_LLM: LLM_MODELS,
    FieldKind.MODEL_SCRAPER: SCRAPER_PROVIDERS,
}

BLUE = "#60a5fa"
GREEN = "#4ade80"
YELLOW = "#facc15"
PURPLE = "#c084fc"


def _llm_field() -> FieldDef:
    return FieldDef("llm_model", "AI Model", FieldKind.MODEL_LLM)


def _scraper_field(label: str = "Scraper Provider") -> FieldDef:
    return FieldDef("scraper_provider", label, FieldKind.MODEL_SCRAPER)


# ── Block definitions ────────────────────────────────────────────────────────

BLOCK_DEFS: Tuple[BlockDefinition, ...] = (
    # Spies
    BlockDefinition(
        "shop_scraper", "Shop Scraper", BlockCategory.SPY,
        "Find trending TikTok Shop products", "~$0.01", "TikTok Shop API",
        inputs=(),
        outputs=(PortDef("products", "Products", BLUE), PortDef("top_product", "Top Product", BLUE)),
        fields=(
            _scraper_field(),
            FieldDef("keyword", "Search Keyword", FieldKind.TEXT),
            FieldDef("category", "Category", FieldKind.SELECT,
                     ("All", "Beauty", "Fashion", "Home", "Electronics", "Food", "Fitness")),
            FieldDef("count", "Results", FieldKind.SELECT, ("3", "5", "10", "20")),
        ),
    ),
    BlockDefinition(
        "competitor_spy", "Competitor Spy", BlockCategory.SPY,
        "Track competitor videos & performance", "~$0.01", "TikTok Scraper API",
        inputs=(),
        outputs=(PortDef("videos", "Videos", BLUE), PortDef("top_video", "Top Video", BLUE)),
        fields=(
            _scraper_field(),
            FieldDef("username", "TikTok Username", FieldKind.TEXT),
            FieldDef("min_views", "Min Views", FieldKind.SELECT, ("10K", "50K", "100K", "500K", "1M")),
        ),
    ),
    BlockDefinition(
        "asset_extractor", "Asset Extractor", BlockCategory.SPY,
        "Extract frames & transcript from video", "~$0.01", "FFmpeg + Whisper",
        inputs=(PortDef("video_url", "Video URL", BLUE),),
        outputs=(
            PortDef("first_frame", "First Frame", GREEN),
            PortDef("transcript", "Transcript", YELLOW),
            PortDef("all_frames", "All Frames", GREEN),
        ),
        fields=(
            FieldDef("video_url", "Video URL", FieldKind.TEXT),
            FieldDef("extract", "Extract", FieldKind.SELECT,
                     ("Best Frame + Transcript", "All Frames", "Audio Only", "Everything")),
        ),
    ),
    BlockDefinition(
        "hashtag_analyzer", "Hashtag Analyzer", BlockCategory.SPY,
        "Find top posts for hashtags", "~$0.01", "TikTok Scraper API",
        inputs=(),
        outputs=(PortDef("hashtag_data", "Hashtag Data", BLUE),),
        fields=(
            _scraper_field(),
            FieldDef("hashtag", "Hashtag", FieldKind.TEXT),
            FieldDef("count", "Top Posts", FieldKind.SELECT, ("5", "10", "20")),
        ),
    ),
    BlockDefinition(
        "sound_tracker", "Sound Tracker", BlockCategory.SPY,
        "Find trending sounds", "~$0.01", "TikTok Scraper API",
        inputs=(),
        outputs=(PortDef("sounds", "Sounds", BLUE),),
        fields=(
            _scraper_field(),
            FieldDef("niche", "Niche", FieldKind.TEXT),
        ),
    ),
    # Brains
    BlockDefinition(
        "hook_generator", "Hook Generator", BlockCategory.BRAIN,
        "Reverse-engineer viral hooks", "~$0.005", "OpenRouter LLM",
        inputs=(PortDef("context", "Product Info", YELLOW),),
        outputs=(PortDef("hooks", "Hooks", YELLOW),),
        fields=(
            _llm_field(),
            FieldDef("style", "Hook Style", FieldKind.SELECT,
                     ("Aggressive", "Curiosity", "Shock", "FOMO", "Question", "Story")),
            FieldDef("count", "# of Hooks", FieldKind.SELECT, ("3", "5", "10")),
            FieldDef("context", "Product / Context", FieldKind.TEXTAREA),
        ),
    ),
    BlockDefinition(
        "persona_filter", "Persona Filter", BlockCategory.BRAIN,
        "Rewrite in specific creator tone", "~$0.005", "OpenRouter LLM",
        inputs=(PortDef("text_in", "Text Input", YELLOW),),
        outputs=(PortDef("text_out", "Rewritten", YELLOW),),
        fields=(
            _llm_field(),
            FieldDef("persona", "Persona", FieldKind.SELECT,
                     ("Aggressive Gym Bro", "Calm Yoga Mom", "Tech Nerd", "Beauty Guru",
                      "Finance Bro", "Gen-Z Creator")),
        ),
    ),
    BlockDefinition(
        "script_writer", "Script Writer", BlockCategory.BRAIN,
        "Full ad script from product info", "~$0.005", "OpenRouter LLM",
        inputs=(PortDef("product_data", "Product Data", YELLOW),),
        outputs=(PortDef("script", "Script", YELLOW), PortDef("prompt", "Video Prompt", PURPLE)),
        fields=(
            _llm_field(),
            FieldDef("product_name", "Product Name", FieldKind.TEXT),
            FieldDef("price", "Price", FieldKind.TEXT),
            FieldDef("selling_points", "Key Selling Points", FieldKind.TEXTAREA),
            FieldDef("script_style", "Style", FieldKind.SELECT,
                     ("Direct Sale", "Storytelling", "Problem-Solution", "Before/After")),
        ),
    ),
    BlockDefinition(
        "caption_writer", "Caption Writer", BlockCategory.BRAIN,
        "Generate captions + hashtags", "~$0.003", "OpenRouter LLM",
        inputs=(PortDef("script_in", "Script", YELLOW),),
        outputs=(PortDef("caption", "Caption", YELLOW),),
        fields=(
            _llm_field(),
            FieldDef("tone", "Tone", FieldKind.SELECT,
                     ("Casual", "Urgent", "Funny", "Professional", "Clickbait")),
            FieldDef("include_hashtags", "Hashtags", FieldKind.SELECT, ("5", "10", "15", "None")),
        ),
    ),
    BlockDefinition(
        "ab_splitter", "A/B Splitter", BlockCategory.BRAIN,
        "Generate script variations", "~$0.01", "OpenRouter LLM",
        inputs=(PortDef("script_in", "Script", YELLOW),),
        outputs=(PortDef("variation_a", "Variation A", YELLOW), PortDef("variation_b", "Variation B", YELLOW)),
        fields=(
            _llm_field(),
            FieldDef("variations", "# Variations", FieldKind.SELECT, ("2", "3", "5")),
            FieldDef("vary_what", "Vary", FieldKind.SELECT,
                     ("Hook Only", "Full Script", "Tone/Style", "CTA")),
        ),
    ),
    # Factory
    BlockDefinition(
        "media_upload", "Media Upload", BlockCategory.FACTORY,
        "Upload your own images or videos", "Free", "Local",
        inputs=(),
        outputs=(PortDef("media", "Media File", GREEN),),
        fields=(FieldDef("input_image", "Upload File", FieldKind.IMAGE),),
    ),
    BlockDefinition(
        "video_generator", "Video Generator", BlockCategory.FACTORY,
        "Generate full video with AI", "~$0.05-0.50", "Replicate",
        inputs=(
            PortDef("first_frame", "First Frame", GREEN),
            PortDef("ref_image", "Reference Image", GREEN),
            PortDef("prompt", "Prompt / Script", YELLOW),
        ),
        outputs=(PortDef("video", "Generated Video", GREEN), PortDef("thumbnail", "Thumbnail", GREEN)),
        fields=(
            FieldDef("input_image", "Input Image", FieldKind.IMAGE),
            FieldDef("video_model", "Video Model", FieldKind.MODEL_VIDEO),
            FieldDef("prompt", "Prompt", FieldKind.TEXTAREA),
            FieldDef("duration", "Duration", FieldKind.SELECT, ("5s", "10s", "15s", "30s")),
            FieldDef("aspect_ratio", "Aspect Ratio", FieldKind.SELECT,
                     ("9:16 (TikTok)", "1:1 (Instagram)", "16:9 (YouTube)")),
            FieldDef("style", "Style", FieldKind.SELECT,
                     ("Product Showcase", "UGC Style", "Cinematic", "Fast-Paced", "Lifestyle")),
            FieldDef("camera_motion", "Camera", FieldKind.SELECT,
                     ("Auto", "Slow Zoom", "Pan L→R", "Orbit", "Static", "Handheld")),
        ),
    ),
    BlockDefinition(
        "image_generator", "Image Generator", BlockCategory.FACTORY,
        "Generate product photos", "~$0.02", "Replicate (Flux)",
        inputs=(PortDef("product_image", "Product Image", GREEN),),
        outputs=(PortDef("image", "Generated Image", GREEN),),
        fields=(
            FieldDef("input_image", "Product Image", FieldKind.IMAGE),
            FieldDef("scene", "Scene", FieldKind.SELECT,
                     ("White Background", "Kitchen", "Gym", "Living Room", "Outdoor", "Studio")),
            FieldDef("count", "# Images", FieldKind.SELECT, ("1", "2", "4")),
        ),
    ),
    BlockDefinition(
        "add_text", "Add Text to Image", BlockCategory.FACTORY,
        "AI text overlay on images", "~$0.01", "OpenAI / FFmpeg",
        inputs=(PortDef("image_in", "Image", GREEN),),
        outputs=(PortDef("image_out", "Image + Text", GREEN),),
        fields=(
            FieldDef("input_image", "Image", FieldKind.IMAGE),
            FieldDef("text", "Text", FieldKind.TEXTAREA),
            FieldDef("position", "Position", FieldKind.SELECT, ("Top", "Center", "Bottom")),
            FieldDef("font_style", "Font", FieldKind.SELECT,
                     ("Bold Modern", "Handwritten", "Neon Glow", "TikTok Style", "Meme")),
            FieldDef("color", "Color", FieldKind.SELECT, ("White", "Black", "Yellow", "Red")),
        ),
    ),
    BlockDefinition(
        "remove_bg", "Remove Background", BlockCategory.FACTORY,
        "Remove image background", "~$0.01", "Replicate (RMBG)",
        inputs=(PortDef("image_in", "Image", GREEN),),
        outputs=(PortDef("image_out", "No-BG Image", GREEN),),
        fields=(FieldDef("input_image", "Image", FieldKind.IMAGE),),
    ),
    BlockDefinition(
        "image_editor", "Image Editor", BlockCategory.FACTORY,
        "Crop, resize, adjust images", "Free", "FFmpeg",
        inputs=(PortDef("image_in", "Image", GREEN),),
        outputs=(PortDef("image_out", "Edited Image", GREEN),),
        fields=(
            FieldDef("input_image", "Image", FieldKind.IMAGE),
            FieldDef("action", "Action", FieldKind.SELECT,
                     ("Crop", "Resize", "Brightness", "Contrast", "Blur BG", "Add Border")),
            FieldDef("target_size", "Size", FieldKind.SELECT, ("1080x1920", "1080x1080", "1920x1080")),
        ),
    ),
    # Managers
    BlockDefinition(
        "download_export", "Download / Export", BlockCategory.MANAGER,
        "Save final output", "Free", "Local",
        inputs=(PortDef("video_in", "Video", GREEN), PortDef("image_in", "Image", GREEN)),
        outputs=(),
        fields=(
            FieldDef("format", "Format", FieldKind.SELECT, ("MP4 (H.264)", "MOV", "WebM")),
            FieldDef("quality", "Quality", FieldKind.SELECT, ("High (1080p)", "Medium (720p)")),
        ),
    ),
    BlockDefinition(
        "watermark", "Remove Watermark", BlockCategory.MANAGER,
        "Remove watermark from video", "Free", "FFmpeg (delogo)",
        inputs=(PortDef("video_in", "Video", GREEN),),
        outputs=(PortDef("video_out", "Clean Video", GREEN),),
        fields=(
            FieldDef("position", "Watermark Location", FieldKind.SELECT,
                     ("Top-Left", "Top-Right", "Bottom-Left", "Bottom-Right", "Center")),
            FieldDef("size", "Watermark Size", FieldKind.SELECT, ("Small", "Medium", "Large")),
        ),
    ),
    BlockDefinition(
        "resize_crop", "Resize / Crop", BlockCategory.MANAGER,
        "Convert aspect ratios", "Free", "FFmpeg",
        inputs=(PortDef("video_in", "Video", GREEN),),
        outputs=(PortDef("video_out", "Resized", GREEN),),
        fields=(
            FieldDef("target_ratio", "Ratio", FieldKind.SELECT, ("9:16 (TikTok)", "1:1 (IG)", "16:9 (YT)")),
            FieldDef("fill_mode", "Fill", FieldKind.SELECT, ("Crop", "Black Bars", "Blur BG")),
        ),
    ),
    BlockDefinition(
        "analytics_check", "Analytics Check", BlockCategory.MANAGER,
        "Check post performance", "~$0.01", "TikTok Scraper",
        inputs=(),
        outputs=(PortDef("metrics", "Metrics", PURPLE),),
        fields=(
            _scraper_field("Provider"),
            FieldDef("username", "Username", FieldKind.TEXT),
            FieldDef("hours_after", "Check After", FieldKind.SELECT, ("6h", "12h", "24h", "48h", "7d")),
        ),
    ),
)

# Block handled inside the executor rather than by the operation dispatcher
EXPORT_BLOCK_ID = "download_export"


def _validate_catalog(defs: Iterable[BlockDefinition]) -> Dict[str, BlockDefinition]:
    registry: Dict[str, BlockDefinition] = {}
    for block in defs:
        if block.id in registry:
            raise ValueError(f"Block type '{block.id}' is already registered.")
        for direction, ports in (("input", block.inputs), ("output", block.outputs)):
            names = [port.id for port in ports]
            if len(names) != len(set(names)):
                raise ValueError(f"Block '{block.id}' declares duplicate {direction} port names: {names}")
        keys = [field.key for field in block.fields]
        if len(keys) != len(set(keys)):
            raise ValueError(f"Block '{block.id}' declares duplicate field keys: {keys}")
        registry[block.id] = block
    return registry


_block_registry: Dict[str, BlockDefinition] = _validate_catalog(BLOCK_DEFS)


def get_block_def(block_id: str) -> BlockDefinition:
    block = _block_registry.get(block_id)
    if block is None:
        raise UnknownBlockError(block_id)
    return block


def has_block(block_id: str) -> bool:
    return block_id in _block_registry


def get_blocks_by_category(category: BlockCategory) -> List[BlockDefinition]:
    return [block for block in BLOCK_DEFS if block.category == category]


def get_model_options(kind: FieldKind) -> Tuple[ModelOption, ...]:
    return MODEL_CHOICES.get(kind, ())


def parse_cost(cost: str) -> float:
    """Lower bound of an advisory cost label: "~$0.05-0.50" -> 0.05, "Free" -> 0."""
    stripped = cost.replace("~$", "").replace("$", "").replace("Free", "0")
    first = stripped.split("-")[0].strip()
    try:
        return float(first)
    except ValueError:
        return 0.0


def estimate_cost(block_ids: Iterable[str]) -> float:
    # Advisory only, nothing enforces it
    return round(sum(parse_cost(get_block_def(block_id).cost) for block_id in block_ids), 4)
