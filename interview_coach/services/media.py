"""In-memory media handles for synthesized question audio and answer playback."""
import logging
import uuid
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

URL_SCHEME = "media://"


class MediaRegistry:
    """Hands out URLs for byte buffers until they are revoked."""

    def __init__(self):
        self._items: Dict[str, Tuple[bytes, str]] = {}

    def create(self, data: bytes, mime_type: str) -> str:
        url = f"{URL_SCHEME}{uuid.uuid4().hex}"
        self._items[url] = (data, mime_type)
        return url

    def get(self, url: str) -> Optional[Tuple[bytes, str]]:
        return self._items.get(url)

    def revoke(self, url: Optional[str]) -> bool:
        if not url:
            return False
        return self._items.pop(url, None) is not None

    def revoke_all(self) -> int:
        count = len(self._items)
        self._items.clear()
        if count:
            logger.debug("Revoked %d media handles", count)
        return count

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, url: str) -> bool:
        return url in self._items
