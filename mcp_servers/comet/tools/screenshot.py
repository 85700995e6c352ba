from __future__ import annotations

import base64
from io import BytesIO
from typing import TYPE_CHECKING

from ..http_client import HttpClientError

if TYPE_CHECKING:
    from ..bridge import CometBridge


def downscale_png(data_b64: str, max_width: int) -> str:
    """Shrink a base64 PNG proportionally to `max_width`; returns input unchanged if already small."""
    if max_width <= 0 or not data_b64:
        return data_b64

    from PIL import Image

    with Image.open(BytesIO(base64.b64decode(data_b64))) as img:
        if img.width <= max_width:
            return data_b64
        height = max(1, round(img.height * max_width / img.width))
        resized = img.resize((max_width, height), Image.LANCZOS)
        buffer = BytesIO()
        resized.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode()


async def capture_screenshot(bridge: CometBridge) -> str:
    connection = bridge.connection
    data = await connection.with_auto_reconnect(lambda: connection.screenshot("png"))
    if not data:
        raise HttpClientError("Screenshot data is empty")
    return downscale_png(data, bridge.config.screenshot_max_width)
