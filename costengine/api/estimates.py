"""
API routes for cost and carbon estimation.
"""
from typing import Dict, Any, List, Optional
from datetime import datetime
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field
import logging

from costengine.core.config import config
from costengine.carbon.specs import CarbonDataError
from costengine.domain.cost_models import ResourceDescriptor
from costengine.domain.recommendation_models import RecommendationFilter
from costengine.pricing.offer_catalog import PricingDataError
from costengine.pricing.pricing_client import get_pricing_client
from costengine.services.cost_estimator import CostEstimator, InvalidResourceError
from costengine.services.recommendations import (
    BatchSizeError,
    RecommendationProcessor,
    StrictValidationError,
)
from costengine.services.resource_types import ServiceType


logger = logging.getLogger(__name__)
router = APIRouter()


class ResourceModel(BaseModel):
    """A cloud resource to estimate."""
    provider: str = Field(default="", description="Cloud provider (only 'aws' is supported)")
    resource_type: str = Field(default="", description="Short code ('ec2') or namespaced type ('aws:ec2/instance:Instance')")
    sku: str = Field(default="", description="Instance type, volume type, storage class, memory size, ...")
    region: str = Field(default="", description="AWS region code")
    tags: Dict[str, Any] = Field(default_factory=dict, description="Usage and configuration tags")
    id: str = Field(default="", description="Caller's resource identifier")
    arn: str = Field(default="", description="Provider-native resource locator")
    name: str = Field(default="", description="Human-readable resource name")
    utilization_percentage: Optional[float] = Field(
        None, ge=0.0, le=1.0, description="CPU utilization override for carbon (0-1)"
    )

    def to_descriptor(self) -> ResourceDescriptor:
        return ResourceDescriptor.from_dict(self.model_dump())


class SupportsRequest(BaseModel):
    """Request model for capability checks."""
    resource: Optional[ResourceModel] = Field(None, description="Resource to check")


class EstimateRequest(BaseModel):
    """Request model for projected cost estimation."""
    resource: ResourceModel = Field(..., description="Resource to estimate")
    utilization_percentage: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Request-level CPU utilization for carbon (0 = default 50%)"
    )


class FilterModel(BaseModel):
    """AND-filter for batch recommendations."""
    provider: str = Field(default="")
    region: str = Field(default="")
    resource_type: str = Field(default="")
    sku: str = Field(default="")
    tags: Dict[str, Any] = Field(default_factory=dict)


class RecommendationsRequest(BaseModel):
    """Request model for batch recommendations."""
    target_resources: List[ResourceModel] = Field(default_factory=list, description="Resources to evaluate")
    filter: Optional[FilterModel] = Field(None, description="Optional AND-filter (legacy single-resource mode when alone)")


class ActualCostRequest(BaseModel):
    """Request model for prorated actual cost."""
    resource: ResourceModel = Field(..., description="Resource to estimate")
    start: Optional[datetime] = Field(None, description="Window start (defaults to the pulumi:created tag)")
    end: Optional[datetime] = Field(None, description="Window end (defaults to now)")


def _data_unavailable(error: Exception) -> HTTPException:
    logger.error(f"Embedded data unavailable: {error}")
    return HTTPException(status_code=503, detail=f"Pricing data unavailable: {error}")


@router.post("/api/v1/supports")
def check_support(supports_request: SupportsRequest) -> Dict[str, Any]:
    """
    Report whether a resource can be estimated.

    Unsupported resources are a normal answer (supported=false with a reason),
    never an error.
    """
    resource = supports_request.resource.to_descriptor() if supports_request.resource else None
    try:
        result = CostEstimator().check_capability(resource)
    except (PricingDataError, CarbonDataError) as error:
        raise _data_unavailable(error) from error
    return {"status": "ok", **result.to_dict()}


@router.post("/api/v1/estimate")
def estimate_cost(
    estimate_request: EstimateRequest,
    include_carbon: bool = Query(False, description="Attach the carbon estimate"),
) -> Dict[str, Any]:
    """
    Estimate monthly on-demand cost for one resource.

    Returns:
        JSON response with unit price, monthly cost and billing detail, plus
        the carbon estimate when include_carbon is set

    Raises:
        HTTPException: 400 for invalid input, 503 when embedded data cannot be loaded
    """
    resource = estimate_request.resource.to_descriptor()
    estimator = CostEstimator()
    try:
        if include_carbon:
            result = estimator.estimate_cost_with_carbon(resource, estimate_request.utilization_percentage)
            estimate = result.to_dict()
        else:
            estimate = estimator.estimate_cost(resource).to_dict()
    except InvalidResourceError as error:
        raise HTTPException(status_code=400, detail=f"Invalid resource: {error}") from error
    except (PricingDataError, CarbonDataError) as error:
        raise _data_unavailable(error) from error

    return {"status": "ok", "estimate": estimate}


@router.post("/api/v1/recommendations")
def get_recommendations(recommendations_request: RecommendationsRequest) -> Dict[str, Any]:
    """
    Generate cost recommendations for a batch of resources.

    Raises:
        HTTPException: 400 for an oversized batch or a strict-validation failure
    """
    resources = [model.to_descriptor() for model in recommendations_request.target_resources]
    filter = None
    if recommendations_request.filter is not None:
        filter = RecommendationFilter.from_dict(recommendations_request.filter.model_dump())

    try:
        result = RecommendationProcessor().process(resources, filter)
    except (BatchSizeError, StrictValidationError) as error:
        raise HTTPException(status_code=400, detail=str(error)) from error
    except (PricingDataError, CarbonDataError) as error:
        raise _data_unavailable(error) from error

    return {"status": "ok", **result.to_dict()}


@router.post("/api/v1/actual-cost")
def estimate_actual_cost(actual_request: ActualCostRequest) -> Dict[str, Any]:
    """
    Prorate the projected monthly cost over a runtime window.

    Raises:
        HTTPException: 400 for invalid input or time range
    """
    resource = actual_request.resource.to_descriptor()
    try:
        actual = CostEstimator().estimate_actual_cost(resource, actual_request.start, actual_request.end)
    except InvalidResourceError as error:
        raise HTTPException(status_code=400, detail=f"Invalid request: {error}") from error
    except (PricingDataError, CarbonDataError) as error:
        raise _data_unavailable(error) from error

    return {"status": "ok", "actual_cost": actual.to_dict()}


@router.get("/api/v1/info")
def get_info() -> Dict[str, Any]:
    """Plugin name, version, compiled region, supported services and catalog date."""
    pricing = get_pricing_client()
    try:
        publication_date = pricing.publication_date
    except PricingDataError as error:
        raise _data_unavailable(error) from error

    return {
        "name": config.SERVICE_NAME,
        "version": config.SERVICE_VERSION,
        "region": pricing.region,
        "supported_services": [service.value for service in ServiceType],
        "catalog_publication_date": publication_date,
    }
