"""
Files produced by operations live under PUBLIC_DIR/OUTPUT_SUBDIR and are
addressed by public paths such as "/pipeline-output/<id>.png".
"""
from __future__ import annotations

import os
import uuid
from typing import Tuple
from logging import getLogger

import httpx

from ..config import settings
from ..core.Errors import OperationError

logger = getLogger(__name__)


def new_output_file(extension: str) -> Tuple[str, str]:
    """Reserve a fresh output file. Returns (filesystem path, public path)."""
    os.makedirs(settings.OUTPUT_DIR, exist_ok=True)
    filename = f"{uuid.uuid4().hex}.{extension}"
    return os.path.join(settings.OUTPUT_DIR, filename), f"/{settings.OUTPUT_SUBDIR}/{filename}"


def public_to_local(public_path: str) -> str:
    local = os.path.abspath(os.path.join(settings.PUBLIC_DIR, public_path.lstrip("/")))
    if os.path.commonpath([local, settings.PUBLIC_DIR]) != settings.PUBLIC_DIR:
        raise OperationError(f"Path escapes the public directory: {public_path}")
    return local


async def download_to_public(url: str, extension: str) -> str:
    """Fetch url into the output directory and return its public path."""
    path, public_path = new_output_file(extension)

    async with httpx.AsyncClient(timeout=httpx.Timeout(300.0), follow_redirects=True) as client:
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise OperationError(f"Failed to download {url}: {exc}")

    with open(path, "wb") as f:
        f.write(response.content)

    logger.info("Saved %s -> %s", url, path)
    return public_path


async def fetch_local(url: str, extension: str) -> str:
    """Filesystem path for a media URL, downloading remote files first."""
    if url.startswith("/"):
        return public_to_local(url)
    return public_to_local(await download_to_public(url, extension))
