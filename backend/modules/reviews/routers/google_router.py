# backend/modules/reviews/routers/google_router.py

from fastapi import APIRouter, Depends, Path, Query, Body
from fastapi.responses import JSONResponse
from typing import Any, Dict, List, Optional
import logging

from core.response_models import StandardResponse
from modules.reviews.schemas.provider_schemas import GOOGLE
from modules.reviews.schemas.review_schemas import (
    GoogleBusinessImportRequest,
    GooglePlacesImportRequest,
    ImportSummary,
)
from modules.reviews.services.google_client import (
    GoogleReviewsClient,
    business_review_payload,
    places_review_payload,
)
from modules.reviews.services.listing_service import ListingService
from modules.reviews.services.normalizer import review_normalizer
from modules.reviews.services.review_service import ReviewService
from .dependencies import get_google_client, get_listing_service, get_review_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews/google", tags=["Google Reviews"])


def _import_payloads(
    payloads: List[Dict[str, Any]], auto_approve: bool, service: ReviewService
) -> ImportSummary:
    if auto_approve:
        payloads = [{**payload, "approved": True} for payload in payloads]
    batch = review_normalizer.normalize_batch(payloads)
    summary = service.import_reviews(batch.reviews, GOOGLE)
    summary.skipped += batch.skipped
    summary.issues = batch.issues + summary.issues
    return summary


@router.get("/places/search")
async def search_places(
    query: str = Query(..., min_length=3, max_length=200),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius: Optional[int] = Query(None, ge=1, le=50000, description="Meters"),
    client: GoogleReviewsClient = Depends(get_google_client),
):
    places = await client.search_places(query, lat=lat, lng=lng, radius=radius)
    return StandardResponse.success(
        data={"places": places, "count": len(places)}, meta={"source": "upstream"}
    )


@router.get("/places/{place_id}")
async def get_place_details(
    place_id: str = Path(..., min_length=10, max_length=200),
    client: GoogleReviewsClient = Depends(get_google_client),
):
    return StandardResponse.success(
        data=await client.place_details(place_id), meta={"source": "upstream"}
    )


@router.post("/import/places")
async def import_places_reviews(
    request: GooglePlacesImportRequest = Body(...),
    client: GoogleReviewsClient = Depends(get_google_client),
    listings: ListingService = Depends(get_listing_service),
    service: ReviewService = Depends(get_review_service),
):
    """Import a place's Google reviews onto an existing listing"""
    listing = listings.get_listing_by_hostaway_id(request.listing_id)
    place = await client.place_details(request.place_id)

    payloads = [
        places_review_payload(review, request.place_id, listing.hostaway_listing_id)
        for review in place.get("reviews") or []
    ]
    summary = _import_payloads(payloads, request.auto_approve, service)
    logger.info(
        f"Google Places import for {request.place_id}: "
        f"{summary.created} created, {summary.updated} updated, {summary.skipped} skipped"
    )
    return StandardResponse.success(
        data={
            "place": {
                "id": request.place_id,
                "name": place.get("name"),
                "address": place.get("formatted_address"),
            },
            "summary": summary,
        },
        meta={"source": "upstream"},
        message=f"Imported {summary.created + summary.updated} reviews",
    )


@router.get("/business/reviews")
async def list_business_reviews(
    location_name: str = Query(
        ..., alias="locationName", pattern=r"^accounts/[^/]+/locations/[^/]+$"
    ),
    client: GoogleReviewsClient = Depends(get_google_client),
):
    reviews = await client.business_reviews(location_name)
    return StandardResponse.success(
        data={"reviews": reviews, "count": len(reviews)}, meta={"source": "upstream"}
    )


@router.post("/import/business")
async def import_business_reviews(
    request: GoogleBusinessImportRequest = Body(...),
    client: GoogleReviewsClient = Depends(get_google_client),
    listings: ListingService = Depends(get_listing_service),
    service: ReviewService = Depends(get_review_service),
):
    listing = listings.get_listing_by_hostaway_id(request.listing_id)
    reviews = await client.business_reviews(request.location_name)

    payloads = [business_review_payload(review, listing.hostaway_listing_id) for review in reviews]
    summary = _import_payloads(payloads, request.auto_approve, service)
    return StandardResponse.success(
        data=summary,
        meta={"source": "upstream"},
        message=f"Imported {summary.created + summary.updated} reviews",
    )


@router.get("/health")
async def google_health(client: GoogleReviewsClient = Depends(get_google_client)):
    health = client.health()
    body = StandardResponse.success(
        data=health, message="healthy" if health["healthy"] else "not configured"
    )
    return JSONResponse(
        status_code=200 if health["healthy"] else 503, content=body.model_dump(mode="json")
    )


@router.post("/test-connection")
async def test_google_connection(client: GoogleReviewsClient = Depends(get_google_client)):
    return StandardResponse.success(data=await client.test_connection())
