# backend/modules/reviews/services/mock_dataset.py

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_MOCK_PATH = Path(__file__).resolve().parent.parent / "data" / "hostaway_mock_reviews.json"


class MockReviewDataset:
    """
    Static fallback dataset in the Hostaway response shape.

    The file is read on first use and kept in memory. A load failure is
    remembered until ``reload()`` so a missing file is not re-read on
    every request.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else DEFAULT_MOCK_PATH
        self._reviews: Optional[List[Dict[str, Any]]] = None
        self._load_error: Optional[str] = None
        self._lock = threading.Lock()

    def _load(self) -> None:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            self._load_error = str(e)
            logger.error(f"Failed to load mock reviews from {self.path}: {e}")
            return

        result = document.get("result") if isinstance(document, dict) else document
        if not isinstance(result, list):
            self._load_error = "mock document has no result list"
            logger.error(f"Mock reviews file {self.path} has no result list")
            return

        self._reviews = result
        logger.info(f"Loaded {len(result)} mock reviews from {self.path}")

    def is_available(self) -> bool:
        with self._lock:
            if self._reviews is None and self._load_error is None:
                self._load()
            return self._reviews is not None

    def reviews(self, listing_id: Optional[str] = None) -> Optional[List[Dict[str, Any]]]:
        """Mock payloads (optionally for one listing), or None if unloadable"""
        if not self.is_available():
            return None
        if listing_id is None:
            return list(self._reviews)
        return [r for r in self._reviews if str(r.get("listingId")) == str(listing_id)]

    def reload(self) -> None:
        with self._lock:
            self._reviews = None
            self._load_error = None

    @property
    def load_error(self) -> Optional[str]:
        return self._load_error
