"""
Media blocks: uploads, and generation through hosted Replicate models.
"""
from __future__ import annotations

from typing import Any, Dict
from logging import getLogger

from ..config import settings
from ..core.Errors import OperationError
from ..core.Interface import InputBundle
from ..core.Types import MediaKind, RESULT_TYPE_IMAGE, RESULT_TYPE_TEXT, RESULT_TYPE_VIDEO
from . import replicate_client
from .registry import operation
from .upstream import get_upstream_text, get_upstream_url, is_usable_url

logger = getLogger(__name__)

UPLOAD_PLACEHOLDER_MESSAGE = "Media uploaded successfully. Connect to downstream blocks."
DEFAULT_VIDEO_PROMPT = "A smooth product showcase video with professional lighting"
DEFAULT_SCENE = "White Background"

VIDEO_MODEL_MAP: Dict[str, str] = {
    "wan-2.1-i2v": "wan-video/wan-2.1-i2v-720p-480p",
    "kling-v1.6-standard": "kwaivgi/kling-v1.6-standard",
    "kling-v2-master": "kwaivgi/kling-v2-master",
    "luma-ray2-flash": "luma/ray-2-flash",
    "minimax-video-01": "minimax/video-01",
    "google-veo-2": "google-deepmind/veo-2",
}

IMAGE_MODEL = "black-forest-labs/flux-1.1-pro"
REMOVE_BG_MODEL = "cjwbw/rembg:fb8af171cfa1616ddcf1242c093f9c46bcada5ad4cf6f2fbe8b81b330ec5c003"


def absolute_url(url: str) -> str:
    """Hosted models cannot see relative paths served by this app."""
    if url.startswith("/"):
        return settings.PUBLIC_BASE_URL.rstrip("/") + url
    return url


@operation("media_upload")
async def upload_media(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    url = config.get("input_image")
    if not is_usable_url(url):
        return {"message": UPLOAD_PLACEHOLDER_MESSAGE, "type": RESULT_TYPE_TEXT}

    if MediaKind.guess(url) == MediaKind.VIDEO:
        return {"video_url": url, "type": RESULT_TYPE_VIDEO}
    return {"image_url": url, "type": RESULT_TYPE_IMAGE}


def build_video_inputs(model: str, prompt: str, image_url: str, duration: str) -> Dict[str, Any]:
    inputs: Dict[str, Any] = {"prompt": prompt}
    if not image_url:
        return inputs

    inputs["image"] = image_url
    if model.startswith("wan"):
        inputs["num_frames"] = 81
    elif model.startswith("kling"):
        inputs["duration"] = 10 if duration == "10s" else 5
    return inputs


@operation("video_generator")
async def generate_video(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    model = config.get("video_model") or "wan-2.1-i2v"
    model_ref = VIDEO_MODEL_MAP.get(model)
    if model_ref is None:
        raise OperationError(f"Unknown model: {model}")

    prompt = config.get("prompt") or get_upstream_text(upstream) or DEFAULT_VIDEO_PROMPT
    image_url = config.get("input_image") or get_upstream_url(upstream)
    if not is_usable_url(image_url):
        image_url = None

    inputs = build_video_inputs(model, prompt, absolute_url(image_url) if image_url else "", config.get("duration") or "5s")
    video_url = await replicate_client.run_model_to_file(model_ref, inputs, "mp4")
    return {"video_url": video_url, "type": RESULT_TYPE_VIDEO}


@operation("image_generator")
async def generate_image(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    scene = config.get("scene") or DEFAULT_SCENE
    prompt = f"Professional product photography, {scene} setting, high quality, studio lighting, 4K"
    image_url = await replicate_client.run_model_to_file(
        IMAGE_MODEL,
        {"prompt": prompt, "aspect_ratio": "9:16", "output_format": "png"},
        "png",
    )
    return {"image_url": image_url, "type": RESULT_TYPE_IMAGE}


@operation("remove_bg")
async def remove_background(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    source = config.get("input_image") or get_upstream_url(upstream)
    if not is_usable_url(source):
        raise OperationError("Remove BG needs an image URL.")

    image_url = await replicate_client.run_model_to_file(REMOVE_BG_MODEL, {"image": absolute_url(source)}, "png")
    return {"image_url": image_url, "type": RESULT_TYPE_IMAGE}
