"""
Blocks that process media locally with ffmpeg.

Inputs addressed by a public path ("/pipeline-output/x.mp4") are read
straight from PUBLIC_DIR; remote URLs are downloaded first. Every result
is written to a fresh file in the output directory.
"""
from __future__ import annotations

import asyncio
from typing import Dict, List, Tuple
from logging import getLogger

from ..config import settings
from ..core.Errors import OperationError
from ..core.Interface import InputBundle
from ..core.Types import RESULT_TYPE_IMAGE, RESULT_TYPE_TEXT, RESULT_TYPE_VIDEO
from .files import fetch_local, new_output_file
from .registry import operation
from .upstream import get_upstream_url, is_usable_url

logger = getLogger(__name__)


async def run_ffmpeg(*args: str):
    cmd = [settings.FFMPEG_BINARY, "-y", *args]
    logger.debug("ffmpeg %s", " ".join(args))
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise OperationError(f"Could not start ffmpeg: {exc}")
    _, stderr = await process.communicate()

    if process.returncode != 0:
        raise OperationError(f"ffmpeg exited with {process.returncode}: {stderr.decode(errors='replace')[-500:]}")


def escape_drawtext(text: str) -> str:
    # backslashes first
    text = text.replace("\\", "\\\\")
    text = text.replace("'", "\\'")
    text = text.replace(":", "\\:")
    text = text.replace("=", "\\=")
    return text


def image_extension(url: str) -> str:
    return "png" if ".png" in url.lower() else "jpg"


# ── Spies ─────────────────────────────────────────────────────────────────────

@operation("asset_extractor")
async def extract_first_frame(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    video_url = config.get("video_url") or get_upstream_url(upstream)
    if is_usable_url(video_url):
        try:
            source = await fetch_local(video_url, "mp4")
            frame_path, frame_url = new_output_file("jpg")
            await run_ffmpeg("-i", source, "-vframes", "1", "-q:v", "2", frame_path)
            return {"image_url": frame_url, "first_frame": frame_url, "type": RESULT_TYPE_IMAGE}
        except OperationError as exc:
            logger.warning("Frame extraction failed for %s: %s", video_url, exc)

    status = "Processing video..." if video_url else "Connect a video source to extract frames."
    return {"message": f"Asset extraction ready. {status}", "type": RESULT_TYPE_TEXT}


# ── Factory ───────────────────────────────────────────────────────────────────

TEXT_POSITIONS = {
    "Top": "y=50",
    "Center": "y=(h-text_h)/2",
    "Bottom": "y=h-th-50",
}


@operation("add_text")
async def add_text(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    image_url = config.get("input_image") or get_upstream_url(upstream)
    if not is_usable_url(image_url):
        raise OperationError("Add Text needs an image. Upload or connect an upstream image block.")

    source = await fetch_local(image_url, image_extension(image_url))
    out_path, out_url = new_output_file("png")

    text = escape_drawtext(config.get("text") or "Your Text Here")
    position = TEXT_POSITIONS.get(config.get("position") or "Bottom", TEXT_POSITIONS["Bottom"])
    color = (config.get("color") or "White").lower()
    drawtext = (
        f"drawtext=text='{text}':fontsize=48:fontcolor={color}:x=(w-text_w)/2:{position}"
        ":shadowcolor=black:shadowx=2:shadowy=2"
    )

    try:
        await run_ffmpeg("-i", source, "-vf", drawtext, out_path)
    except OperationError as exc:
        logger.error("Text overlay failed: %s", exc)
        raise OperationError("Text overlay failed. FFmpeg error.")
    return {"image_url": out_url, "type": RESULT_TYPE_IMAGE}


def image_editor_filter(action: str, width: str, height: str) -> str:
    if action == "Resize":
        return f"scale={width}:{height}:force_original_aspect_ratio=decrease,pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:black"
    if action == "Crop":
        return f"crop={width}:{height}"
    if action == "Brightness":
        return "eq=brightness=0.1"
    if action == "Contrast":
        return "eq=contrast=1.3"
    if action == "Blur BG":
        return "gblur=sigma=10"
    if action == "Add Border":
        return "pad=iw+40:ih+40:20:20:white"
    return f"scale={width}:{height}"


@operation("image_editor")
async def edit_image(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    image_url = config.get("input_image") or get_upstream_url(upstream)
    if not is_usable_url(image_url):
        raise OperationError("Image Editor needs an image.")

    ext = image_extension(image_url)
    source = await fetch_local(image_url, ext)
    out_path, out_url = new_output_file(ext)

    action = config.get("action") or "Resize"
    width, _, height = (config.get("target_size") or "1080x1920").partition("x")

    try:
        await run_ffmpeg("-i", source, "-vf", image_editor_filter(action, width, height), out_path)
    except OperationError as exc:
        logger.error("Image edit (%s) failed: %s", action, exc)
        raise OperationError(f"Image edit ({action}) failed.")
    return {"image_url": out_url, "type": RESULT_TYPE_IMAGE}


# ── Managers ──────────────────────────────────────────────────────────────────

WATERMARK_SIZES: Dict[str, Tuple[int, int]] = {
    "Small": (120, 40),
    "Medium": (200, 60),
    "Large": (320, 90),
}


def delogo_region(position: str, w: int, h: int) -> Tuple[str, str]:
    if position == "Top-Right":
        return f"main_w-{w}-10", "10"
    if position == "Bottom-Left":
        return "10", f"main_h-{h}-10"
    if position == "Bottom-Right":
        return f"main_w-{w}-10", f"main_h-{h}-10"
    if position == "Center":
        return f"(main_w-{w})/2", f"(main_h-{h})/2"
    return "10", "10"


@operation("watermark")
async def remove_watermark(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    video_url = get_upstream_url(upstream)
    if not is_usable_url(video_url):
        raise OperationError("Remove Watermark needs a video. Connect a Video Generator or upstream video block.")

    source = await fetch_local(video_url, "mp4")
    out_path, out_url = new_output_file("mp4")

    w, h = WATERMARK_SIZES.get(config.get("size") or "Medium", WATERMARK_SIZES["Medium"])
    x, y = delogo_region(config.get("position") or "Bottom-Right", w, h)

    try:
        await run_ffmpeg("-i", source, "-vf", f"delogo=x={x}:y={y}:w={w}:h={h}:show=0", "-codec:a", "copy", out_path)
    except OperationError as exc:
        logger.error("delogo failed: %s", exc)
        raise OperationError("Watermark removal failed. FFmpeg error.")
    return {"video_url": out_url, "type": RESULT_TYPE_VIDEO}


def target_dimensions(ratio: str) -> Tuple[str, str]:
    if "1:1" in ratio:
        return "1080", "1080"
    if "16:9" in ratio:
        return "1920", "1080"
    return "1080", "1920"


def resize_filter(fill_mode: str, width: str, height: str) -> str:
    if fill_mode == "Crop":
        return f"scale={width}:-2,crop={width}:{height}"
    if fill_mode == "Black Bars":
        return f"scale={width}:{height}:force_original_aspect_ratio=decrease,pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:black"
    return (
        f"split[original][blur];"
        f"[blur]scale={width}:{height}:force_original_aspect_ratio=increase,crop={width}:{height},gblur=sigma=20[bg];"
        f"[original]scale={width}:{height}:force_original_aspect_ratio=decrease[fg];"
        f"[bg][fg]overlay=(W-w)/2:(H-h)/2"
    )


@operation("resize_crop")
async def resize_video(config: Dict[str, str], upstream: InputBundle) -> Dict[str, str]:
    video_url = get_upstream_url(upstream)
    if not is_usable_url(video_url):
        raise OperationError("Resize needs a video. Connect an upstream video block.")

    source = await fetch_local(video_url, "mp4")
    out_path, out_url = new_output_file("mp4")

    width, height = target_dimensions(config.get("target_ratio") or "9:16 (TikTok)")
    attempts: List[str] = [
        resize_filter(config.get("fill_mode") or "Crop", width, height),
        f"scale={width}:-2",
    ]

    for video_filter in attempts:
        try:
            await run_ffmpeg("-i", source, "-vf", video_filter, "-codec:a", "copy", out_path)
            return {"video_url": out_url, "type": RESULT_TYPE_VIDEO}
        except OperationError as exc:
            logger.warning("Resize with %r failed: %s", video_filter, exc)
    raise OperationError("Resize failed.")
