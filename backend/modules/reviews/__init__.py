# backend/modules/reviews/__init__.py

"""
Guest Reviews Module

Ingests guest reviews from the Hostaway channel API (or a bundled mock
dataset), normalizes them to a single schema and serves them through a
cached, filterable query interface. Managers approve or reject reviews for
public display; every decision is written to an append-only audit log.

Key Components:
- Models: Listings, reviews, category ratings and the approval audit log
- Schemas: Canonical review shape, provider payload shapes, query filters
- Services: Normalizer, channel client, query engine, feed, approvals
- Routers: API endpoints for the review feed, management and cache control
"""

__version__ = "1.0.0"
