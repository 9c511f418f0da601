# backend/modules/reviews/tests/conftest.py

from datetime import datetime
from typing import Any, Dict, Generator, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.cache import MemoryCacheBackend, ReviewCache
from core.config import Settings
from core.database import Base
from core.metrics_registry import MetricsRegistry
from modules.reviews.models.review_models import (
    Listing,
    Review,
    ReviewCategory,
    ReviewCategoryName,
    ReviewChannel,
)
from modules.reviews.services.approval_service import ApprovalService
from modules.reviews.services.mock_dataset import MockReviewDataset
from modules.reviews.services.review_service import ReviewService
from modules.reviews.tests.factories import FakeClock, hostaway_review, make_review, write_mock_file


@pytest.fixture
def engine():
    """Fresh in-memory database per test"""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db_session(engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def review_cache(metrics_registry, clock) -> ReviewCache:
    return ReviewCache(
        metrics=metrics_registry,
        backend=MemoryCacheBackend(),
        prefix="reviews",
        ttl=120,
        refresh_threshold=0.8,
        clock=clock,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        hostaway_account_id="61148",
        hostaway_api_key="test-api-key",
        hostaway_base_url="https://api.hostaway.test/v1",
        hostaway_retries=2,
        hostaway_backoff_base=0.5,
        hostaway_mock_mode=False,
        cache_backend="memory",
    )


@pytest.fixture
def mock_reviews() -> List[Dict[str, Any]]:
    return [
        hostaway_review(
            id=1,
            listingId=123,
            rating=None,
            guestName="Guest A",
            reviewCategory=[
                {"category": "cleanliness", "rating": 9},
                {"category": "communication", "rating": 8},
            ],
        ),
        hostaway_review(
            id=2,
            listingId=123,
            rating=None,
            guestName="Guest B",
            submittedAt="2024-02-01T09:00:00Z",
            reviewCategory=[
                {"category": "cleanliness", "rating": 7},
                {"category": "value", "rating": 8},
            ],
        ),
        hostaway_review(id=3, listingId=456, rating=6.0, guestName="Guest C"),
    ]


@pytest.fixture
def mock_dataset(tmp_path, mock_reviews) -> MockReviewDataset:
    return MockReviewDataset(write_mock_file(tmp_path / "mock_reviews.json", mock_reviews))


@pytest.fixture
def review_service(db_session: Session) -> ReviewService:
    return ReviewService(db_session)


@pytest.fixture
def approval_service(db_session: Session, review_cache: ReviewCache) -> ApprovalService:
    return ApprovalService(db_session, cache=review_cache)


@pytest.fixture
def sample_listing(db_session: Session) -> Listing:
    listing = Listing(hostaway_listing_id="123", name="Shoreditch Heights", slug="shoreditch-heights-123")
    db_session.add(listing)
    db_session.commit()
    return listing


@pytest.fixture
def other_listing(db_session: Session) -> Listing:
    listing = Listing(hostaway_listing_id="456", name="Camden Studio", slug="camden-studio-456")
    db_session.add(listing)
    db_session.commit()
    return listing


@pytest.fixture
def sample_reviews(db_session: Session, sample_listing: Listing, other_listing: Listing) -> List[Review]:
    reviews = [
        make_review(
            sample_listing,
            "101",
            rating=9.5,
            guest_name="Alice",
            submitted_at=datetime(2024, 3, 1, 12, 0),
            categories=[ReviewCategory(category=ReviewCategoryName.CLEANLINESS, rating=10.0)],
        ),
        make_review(
            sample_listing,
            "102",
            rating=6.0,
            guest_name="Bob",
            channel=ReviewChannel.BOOKING_COM,
            submitted_at=datetime(2024, 2, 1, 12, 0),
            approved=True,
            response="Thanks Bob",
        ),
        make_review(
            other_listing,
            "103",
            rating=7.4,
            guest_name="Carol",
            channel=ReviewChannel.VRBO,
            submitted_at=datetime(2024, 1, 1, 12, 0),
            approved=False,
            public_review="Noisy street at night",
        ),
    ]
    db_session.add_all(reviews)
    db_session.commit()
    return reviews
