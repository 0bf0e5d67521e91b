"""
Hosted model calls through the Replicate Python client.

Model refs are either "owner/name" (official models) or
"owner/name:version". The client creates the prediction and polls it to
completion; the produced file is then copied into the public output
directory so the rest of the pipeline can address it by a relative
"/pipeline-output/..." URL.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional
from logging import getLogger

import httpx
import replicate
from replicate.exceptions import ReplicateError

from ..config import settings
from ..core.Errors import OperationError
from .files import download_to_public

logger = getLogger(__name__)


def create_client() -> replicate.Client:
    if not settings.REPLICATE_API_TOKEN:
        raise OperationError("REPLICATE_API_TOKEN not set")
    return replicate.Client(api_token=settings.REPLICATE_API_TOKEN)


def extract_output_url(output: Any) -> Optional[str]:
    """Replicate returns a URL string, a list of them, or a file object carrying a url."""
    if isinstance(output, str):
        return output
    if isinstance(output, list) and output:
        return extract_output_url(output[0])
    if isinstance(output, dict):
        url = output.get("url")
        return url if isinstance(url, str) else None
    url = getattr(output, "url", None)
    return url if isinstance(url, str) else None


async def run_model(model_ref: str, inputs: Dict[str, Any]) -> Any:
    """Run model_ref to completion and return its raw output."""
    client = create_client()

    logger.info("Replicate prediction: %s", model_ref)
    try:
        return await asyncio.wait_for(
            client.async_run(model_ref, input=inputs),
            timeout=settings.REPLICATE_TIMEOUT,
        )
    except asyncio.TimeoutError:
        raise OperationError(f"Replicate prediction for {model_ref} timed out")
    except ReplicateError as exc:
        raise OperationError(f"Replicate error: {exc}")
    except httpx.HTTPError as exc:
        raise OperationError(f"Replicate request failed: {exc}")


async def run_model_to_file(model_ref: str, inputs: Dict[str, Any], extension: str) -> str:
    output = await run_model(model_ref, inputs)
    remote_url = extract_output_url(output)
    if not remote_url:
        raise OperationError(f"No output returned from {model_ref}")
    return await download_to_public(remote_url, extension)
