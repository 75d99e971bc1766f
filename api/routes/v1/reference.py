"""
api/routes/v1/reference.py -- Read-only reference data for sign-up forms.

Routes:
  GET /api/v1/business-types  -- BusinessType values with Swedish display names
  GET /api/v1/regions         -- Region (county) values with display names

Public, unauthenticated, no rate limit: the data is static.
"""

from __future__ import annotations

from fastapi import APIRouter

from api.models import ReferenceItemResponse
from core.models import business_types, regions

router = APIRouter()


@router.get("/business-types", response_model=list[ReferenceItemResponse])
def list_business_types() -> list[ReferenceItemResponse]:
    return [ReferenceItemResponse(value=item.value, display_name=item.display_name) for item in business_types()]


@router.get("/regions", response_model=list[ReferenceItemResponse])
def list_regions() -> list[ReferenceItemResponse]:
    return [ReferenceItemResponse(value=item.value, display_name=item.display_name) for item in regions()]
