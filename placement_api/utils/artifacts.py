"""
Local storage for rendered plan artifacts
"""
import logging
import os
from typing import Optional

import aiofiles

from placement_api.config import settings

logger = logging.getLogger(__name__)


async def save_artifact(filename: str, content: bytes, directory: Optional[str] = None) -> Optional[str]:
    """
    Write a rendered artifact under PLAN_ARTIFACT_DIR

    Returns:
        The written path, or None when artifact storage is not configured
    """
    directory = directory or settings.PLAN_ARTIFACT_DIR
    if not directory:
        return None

    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, os.path.basename(filename))

    async with aiofiles.open(path, "wb") as f:
        await f.write(content)

    logger.info(f"Saved plan artifact: {path} ({len(content)} bytes)")
    return path
