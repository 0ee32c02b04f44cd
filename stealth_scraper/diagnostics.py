"""Best-effort failure diagnostics with async I/O

Nothing in this module may raise into the pipeline: a diagnostic that
fails is logged and dropped, and the original error keeps propagating.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import orjson
from loguru import logger

from .config import DEFAULT_SCREENSHOT_TIMEOUT


class DiagnosticsWriter:
    """
    Writes failure screenshots and a JSON sidecar describing the page.
    Uses aiofiles so writes never block the event loop.
    """

    def __init__(self, output_dir: Path, screenshot_timeout: float = DEFAULT_SCREENSHOT_TIMEOUT):
        """
        Args:
            output_dir: Directory for diagnostic artifacts (created on demand)
            screenshot_timeout: Seconds allowed for the screenshot itself
        """
        self.output_dir = output_dir
        self.screenshot_timeout = screenshot_timeout

    def base_name(self, request_id: str) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        return f"failure_{timestamp}_{request_id}"

    async def save_screenshot(self, page, base_name: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"{base_name}.png"

        png = await page.screenshot(full_page=True, timeout=self.screenshot_timeout * 1000)
        async with aiofiles.open(path, "wb") as f:
            await f.write(png)

        logger.debug(f"📸 Saved failure screenshot: {path.name} ({len(png)/1024:.1f}KB)")
        return path

    async def save_metadata(self, data: Dict[str, Any], base_name: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"{base_name}.json"

        async with aiofiles.open(path, "wb") as f:
            await f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2))

        return path


async def capture_failure(
    page,
    output_dir: Optional[Path],
    request_id: str,
    error: BaseException,
) -> Optional[Path]:
    """
    Fire-and-forget diagnostic capture for a failed request.

    Never raises. Returns the screenshot path when one was written.
    """
    if output_dir is None or page is None:
        return None

    writer = DiagnosticsWriter(output_dir)
    base_name = writer.base_name(request_id)
    screenshot = None

    try:
        screenshot = await writer.save_screenshot(page, base_name)
    except Exception as e:
        logger.warning(f"Failure screenshot could not be captured: {e}")

    try:
        await writer.save_metadata(
            {
                "request_id": request_id,
                "error_type": type(error).__name__,
                "error": str(error),
                "url": getattr(page, "url", None),
                "screenshot": screenshot.name if screenshot else None,
                "captured_at": datetime.now(timezone.utc).isoformat(),
            },
            base_name,
        )
    except Exception as e:
        logger.warning(f"Failure metadata could not be written: {e}")

    return screenshot
