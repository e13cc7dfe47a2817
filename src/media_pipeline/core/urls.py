"""Public URL derivation for stored media."""

from typing import Dict, Iterable


class MediaUrlResolver:
    """Predicts the public address of every stored size of a media item.

    The result depends only on the arguments and the configured base URL, so
    it can be called before, during or after ingestion.
    """

    def __init__(self, base_url: str, size_ids: Iterable[str]):
        self._base_url = base_url.rstrip("/")
        self._size_ids = list(size_ids)

    def url_for(self, media_id: str, size_id: str) -> str:
        return f"{self._base_url}/{media_id}-{size_id}.jpg"

    def all_urls_for(self, media_id: str) -> Dict[str, str]:
        return {size_id: self.url_for(media_id, size_id) for size_id in self._size_ids}

    def original_url(self, media_id: str) -> str:
        return f"{self._base_url}/{media_id}.jpg"
