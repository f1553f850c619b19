"""
Domain models for batch recommendations.
"""
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field

from costengine.domain.cost_models import ResourceDescriptor


@dataclass
class RecommendationFilter:
    """AND-filter applied to every resource in a batch; empty fields match anything."""
    provider: str = ""
    region: str = ""
    resource_type: str = ""
    sku: str = ""
    tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["RecommendationFilter"]:
        """Build a filter from a request body, or None when absent."""
        if data is None:
            return None
        tags = data.get("tags") or {}
        return cls(
            provider=data.get("provider") or "",
            region=data.get("region") or "",
            resource_type=data.get("resource_type") or "",
            sku=data.get("sku") or "",
            tags={str(key): str(value) for key, value in tags.items()},
        )


@dataclass
class RecommendationImpact:
    """Financial impact of applying a recommendation."""
    estimated_savings: float
    current_cost: float
    projected_cost: float
    savings_percentage: float
    currency: str = "USD"
    projection_period: str = "monthly"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "estimated_savings": round(self.estimated_savings, 4),
            "currency": self.currency,
            "projection_period": self.projection_period,
            "current_cost": round(self.current_cost, 4),
            "projected_cost": round(self.projected_cost, 4),
            "savings_percentage": round(self.savings_percentage, 2),
        }


@dataclass
class RecommendedResource:
    """The resource a recommendation applies to."""
    provider: str
    resource_type: str
    region: str
    sku: str
    id: str = ""
    name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "provider": self.provider,
            "resource_type": self.resource_type,
            "region": self.region,
            "sku": self.sku,
            "id": self.id,
            "name": self.name,
        }


@dataclass
class Recommendation:
    """A single modify-in-place cost recommendation."""
    id: str
    category: str
    action_type: str
    modification_type: str
    resource: Optional[RecommendedResource]
    current_config: Dict[str, str]
    recommended_config: Dict[str, str]
    impact: Optional[RecommendationImpact]
    priority: str
    confidence_score: float
    description: str
    reasoning: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)
    source: str = "aws-public"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "category": self.category,
            "action_type": self.action_type,
            "modification_type": self.modification_type,
            "resource": self.resource.to_dict() if self.resource else None,
            "current_config": dict(self.current_config),
            "recommended_config": dict(self.recommended_config),
            "impact": self.impact.to_dict() if self.impact else None,
            "priority": self.priority,
            "confidence_score": self.confidence_score,
            "description": self.description,
            "reasoning": list(self.reasoning),
            "metadata": dict(self.metadata),
            "source": self.source,
        }


@dataclass
class BatchStats:
    """Running aggregates for one batch request."""
    total_resources: int = 0
    matched_resources: int = 0
    skipped_resources: int = 0
    recommendation_count: int = 0
    total_savings: float = 0.0

    def add_impact(self, impact: Optional[RecommendationImpact]) -> bool:
        """
        Add a recommendation's savings to the running total.

        Returns:
            False when the impact is absent and nothing was added
        """
        if impact is None:
            return False
        self.total_savings += impact.estimated_savings
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "total_resources": self.total_resources,
            "matched_resources": self.matched_resources,
            "skipped_resources": self.skipped_resources,
            "recommendation_count": self.recommendation_count,
            "total_estimated_savings": round(self.total_savings, 4),
            "currency": "USD",
            "projection_period": "monthly",
        }


@dataclass
class ProcessingContext:
    """Request-local state for a batch: resolved scope, filter and aggregates."""
    scope: List[ResourceDescriptor] = field(default_factory=list)
    filter: Optional[RecommendationFilter] = None
    stats: BatchStats = field(default_factory=BatchStats)


@dataclass
class BatchResult:
    """Recommendations produced for a batch plus its summary."""
    recommendations: List[Recommendation]
    summary: BatchStats

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "recommendations": [rec.to_dict() for rec in self.recommendations],
            "summary": self.summary.to_dict(),
        }
