"""
Domain models for cost estimation.
Defines resource descriptors and the cost results derived from them.
"""
import copy
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime

from costengine.domain.carbon_models import CarbonEstimate


@dataclass
class ResourceDescriptor:
    """Describes a single cloud resource to be estimated."""
    provider: str = ""
    resource_type: str = ""
    sku: str = ""
    region: str = ""
    tags: Dict[str, str] = field(default_factory=dict)
    id: str = ""
    arn: str = ""
    name: str = ""
    utilization_percentage: Optional[float] = None  # 0.0 - 1.0 override for carbon

    def clone(self) -> "ResourceDescriptor":
        """Deep copy, so callers can normalize without touching the original."""
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceDescriptor":
        """Build a descriptor from a plain dictionary (e.g. a request body)."""
        tags = data.get("tags") or {}
        return cls(
            provider=data.get("provider") or "",
            resource_type=data.get("resource_type") or "",
            sku=data.get("sku") or "",
            region=data.get("region") or "",
            tags={str(key): str(value) for key, value in tags.items()},
            id=data.get("id") or "",
            arn=data.get("arn") or "",
            name=data.get("name") or "",
            utilization_percentage=data.get("utilization_percentage"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "provider": self.provider,
            "resource_type": self.resource_type,
            "sku": self.sku,
            "region": self.region,
            "tags": dict(self.tags or {}),
            "id": self.id,
            "arn": self.arn,
            "name": self.name,
            "utilization_percentage": self.utilization_percentage,
        }


@dataclass
class CostEstimate:
    """Monthly cost for one resource plus the assumptions behind it."""
    unit_price: float
    currency: str
    cost_per_month: float
    billing_detail: str  # every default applied is named here

    @classmethod
    def zero(cls, billing_detail: str, currency: str = "USD") -> "CostEstimate":
        """A $0 estimate that explains why nothing was priced."""
        return cls(unit_price=0.0, currency=currency, cost_per_month=0.0, billing_detail=billing_detail)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "unit_price": self.unit_price,
            "currency": self.currency,
            "cost_per_month": self.cost_per_month,
            "billing_detail": self.billing_detail,
        }


@dataclass
class EstimateResult:
    """Cost estimate with an optional carbon estimate attached."""
    cost: CostEstimate
    carbon: Optional[CarbonEstimate] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = self.cost.to_dict()
        result["carbon"] = self.carbon.to_dict() if self.carbon is not None else None
        return result


@dataclass
class ActualCostEstimate:
    """Projected cost prorated over an observed runtime window."""
    start: datetime
    end: datetime
    runtime_hours: float
    cost: float
    currency: str
    source: str
    confidence: str  # "HIGH" | "MEDIUM" | "LOW"
    billing_detail: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "runtime_hours": round(self.runtime_hours, 4),
            "cost": self.cost,
            "currency": self.currency,
            "source": self.source,
            "confidence": self.confidence,
            "billing_detail": self.billing_detail,
        }
