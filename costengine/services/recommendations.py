"""
Batch recommendation processor.

A batch runs Normalize -> Validate -> Filter+Estimate -> Aggregate -> Respond.
All state lives in a request-local ProcessingContext; the catalog is only read.
Exactly one INFO summary line is logged per batch.
"""
import logging
import uuid
from typing import Dict, List, Optional, Tuple

from costengine.core.config import config
from costengine.domain.cost_models import ResourceDescriptor
from costengine.domain.recommendation_models import (
    BatchResult,
    ProcessingContext,
    Recommendation,
    RecommendationFilter,
    RecommendationImpact,
    RecommendedResource,
)
from costengine.pricing.pricing_client import PricingClient, get_pricing_client
from costengine.services.cost_estimator import DEFAULT_RDS_ENGINE, RDS_ENGINES, SUPPORTED_PROVIDER
from costengine.services.resource_types import ServiceType, detect_service, normalize_resource_type

logger = logging.getLogger(__name__)

CONFIDENCE_HIGH = 0.9
CONFIDENCE_MEDIUM = 0.7

MOD_GENERATION_UPGRADE = "generation_upgrade"
MOD_GRAVITON_MIGRATION = "graviton_migration"
MOD_VOLUME_TYPE_UPGRADE = "volume_type_upgrade"

DEFAULT_EBS_RECOMMENDATION_SIZE_GB = 100

# Older EC2 family -> newer generation at the same or lower price
GENERATION_UPGRADES: Dict[str, str] = {
    "t2": "t3", "t3": "t3a",
    "m4": "m5", "m5": "m6i", "m5a": "m6a", "m6i": "m7i", "m6a": "m7a",
    "c4": "c5", "c5": "c6i", "c5a": "c6a", "c6i": "c7i", "c6a": "c7a",
    "r4": "r5", "r5": "r6i", "r5a": "r6a", "r6i": "r7i", "r6a": "r7a",
    "i3": "i3en",
    "d2": "d3",
}

# x86 EC2 family -> Graviton (arm64) equivalent
GRAVITON_FAMILIES: Dict[str, str] = {
    "m5": "m6g", "m5a": "m6g", "m5n": "m6g", "m6i": "m6g", "m6a": "m6g", "m7i": "m7g", "m7a": "m7g",
    "c5": "c6g", "c5a": "c6g", "c5n": "c6gn", "c6i": "c6g", "c6a": "c6g", "c7i": "c7g", "c7a": "c7g",
    "r5": "r6g", "r5a": "r6g", "r5n": "r6g", "r6i": "r6g", "r6a": "r6g", "r7i": "r7g", "r7a": "r7g",
    "t3": "t4g", "t3a": "t4g",
}

RDS_GENERATION_UPGRADES: Dict[str, str] = {
    "db.t2": "db.t3", "db.t3": "db.t4g",
    "db.m4": "db.m5", "db.m5": "db.m6i", "db.m6i": "db.m7i",
    "db.r4": "db.r5", "db.r5": "db.r6i", "db.r6i": "db.r7i",
}

RDS_GRAVITON_FAMILIES: Dict[str, str] = {
    "db.m5": "db.m6g",
    "db.m6i": "db.m7g",
    "db.r5": "db.r6g",
    "db.r6i": "db.r7g",
    "db.t3": "db.t4g",
}

# Engines (pricing names) that run on Graviton
RDS_GRAVITON_ENGINES = ("MySQL", "PostgreSQL", "MariaDB")

RECOMMENDATION_SERVICES = (ServiceType.EC2, ServiceType.EBS, ServiceType.RDS)


class BatchSizeError(Exception):
    """Raised when a batch scope exceeds the configured maximum."""
    pass


class StrictValidationError(Exception):
    """Raised under strict validation for resources that would otherwise be skipped."""
    pass


def parse_instance_type(instance_type: str) -> Tuple[str, str]:
    """'t2.medium' -> ('t2', 'medium'); ('', '') when malformed."""
    parts = (instance_type or "").strip().lower().split(".", 1)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return "", ""
    return parts[0], parts[1]


def parse_rds_instance_type(instance_class: str) -> Tuple[str, str]:
    """'db.t3.medium' -> ('db.t3', 'medium'); ('', '') when malformed."""
    value = (instance_class or "").strip().lower()
    if not value.startswith("db."):
        return "", ""
    family, size = parse_instance_type(value[len("db."):])
    if not family:
        return "", ""
    return f"db.{family}", size


def correlation_id(resource: ResourceDescriptor) -> str:
    """First non-empty of id, arn / resource_id tag, name / name tag."""
    tags = resource.tags or {}
    for candidate in (resource.id, resource.arn, tags.get("resource_id"), resource.name, tags.get("name")):
        if candidate and str(candidate).strip():
            return str(candidate).strip()
    return ""


def _impact(current_monthly: float, projected_monthly: float) -> RecommendationImpact:
    savings = current_monthly - projected_monthly
    percentage = (savings / current_monthly) * 100 if current_monthly > 0 else 0.0
    return RecommendationImpact(
        estimated_savings=savings,
        current_cost=current_monthly,
        projected_cost=projected_monthly,
        savings_percentage=percentage,
    )


class RecommendationProcessor:
    """Produces modify-in-place cost recommendations for a batch of resources."""

    def __init__(
        self,
        pricing_client: Optional[PricingClient] = None,
        max_batch_size: Optional[int] = None,
        strict_validation: Optional[bool] = None,
    ):
        self.pricing = pricing_client or get_pricing_client()
        self.max_batch_size = max_batch_size if max_batch_size is not None else config.MAX_BATCH_SIZE
        self.strict_validation = config.STRICT_VALIDATION if strict_validation is None else strict_validation
        self.hours_per_month = float(config.HOURS_PER_MONTH)

    def process(
        self,
        target_resources: Optional[List[ResourceDescriptor]] = None,
        filter: Optional[RecommendationFilter] = None,
    ) -> BatchResult:
        """
        Generate recommendations for a batch.

        Args:
            target_resources: Resources to evaluate (batch mode)
            filter: AND-filter; with no target resources, a filter carrying a sku
                    is evaluated as a single resource (legacy mode)

        Returns:
            BatchResult with the recommendations and the batch summary

        Raises:
            BatchSizeError: If the scope exceeds max_batch_size
            StrictValidationError: Under strict validation, for non-aws or
                                   unsupported resources
        """
        context = self._normalize(target_resources, filter)
        self._validate(context)

        recommendations: List[Recommendation] = []
        for resource in context.scope:
            recommendations.extend(self._process_resource(resource, context))

        stats = context.stats
        stats.recommendation_count = len(recommendations)
        logger.info(
            f"Batch recommendations generated: total={stats.total_resources} "
            f"matched={stats.matched_resources} skipped={stats.skipped_resources} "
            f"recommendations={stats.recommendation_count} total_savings=${stats.total_savings:.4f}"
        )
        return BatchResult(recommendations=recommendations, summary=stats)

    # Pipeline stages

    def _normalize(
        self,
        target_resources: Optional[List[ResourceDescriptor]],
        filter: Optional[RecommendationFilter],
    ) -> ProcessingContext:
        context = ProcessingContext()
        if filter is not None:
            context.filter = RecommendationFilter(
                provider=filter.provider,
                region=filter.region,
                resource_type=normalize_resource_type(filter.resource_type) if filter.resource_type else "",
                sku=filter.sku,
                tags=dict(filter.tags or {}),
            )

        if target_resources:
            for resource in target_resources:
                scoped = resource.clone()
                scoped.resource_type = normalize_resource_type(scoped.resource_type)
                context.scope.append(scoped)
        elif context.filter is not None and context.filter.sku:
            context.scope.append(ResourceDescriptor(
                provider=SUPPORTED_PROVIDER,
                resource_type=context.filter.resource_type,
                sku=context.filter.sku,
                region=context.filter.region,
                tags=dict(context.filter.tags),
            ))

        context.stats.total_resources = len(context.scope)
        return context

    def _validate(self, context: ProcessingContext) -> None:
        if len(context.scope) > self.max_batch_size:
            raise BatchSizeError(
                f"batch size {len(context.scope)} exceeds maximum of {self.max_batch_size}"
            )

    def _matches_filter(self, resource: ResourceDescriptor, filter: Optional[RecommendationFilter]) -> bool:
        if filter is None:
            return True
        if filter.provider and filter.provider.strip().lower() != (resource.provider or "").strip().lower():
            return False
        if filter.region and filter.region != resource.region:
            return False
        if filter.resource_type and filter.resource_type != resource.resource_type:
            return False
        if filter.sku and filter.sku != resource.sku:
            return False
        resource_tags = resource.tags or {}
        for key, value in (filter.tags or {}).items():
            if resource_tags.get(key) != value:
                return False
        return True

    def _skip(self, resource: ResourceDescriptor, context: ProcessingContext, reason: str) -> None:
        context.stats.skipped_resources += 1
        logger.debug(
            f"Skipping resource in recommendations batch: type={resource.resource_type!r} "
            f"sku={resource.sku!r} reason={reason}"
        )

    def _process_resource(self, resource: ResourceDescriptor, context: ProcessingContext) -> List[Recommendation]:
        provider = (resource.provider or "").strip()
        if provider and provider.lower() != SUPPORTED_PROVIDER:
            if self.strict_validation:
                raise StrictValidationError(
                    f"strict validation: unsupported provider '{provider}' (only '{SUPPORTED_PROVIDER}' supported)"
                )
            self._skip(resource, context, "non-AWS provider")
            return []

        if not self._matches_filter(resource, context.filter):
            self._skip(resource, context, "filter mismatch")
            return []

        context.stats.matched_resources += 1
        region = resource.region or self.pricing.region
        service = detect_service(resource.resource_type)

        if service == ServiceType.EC2:
            recommendations = self._ec2_recommendations(resource.sku, region)
        elif service == ServiceType.EBS:
            recommendations = self._ebs_recommendations(resource.sku, region, resource.tags or {})
        elif service == ServiceType.RDS:
            recommendations = self._rds_recommendations(resource.sku, self._rds_engine(resource.tags or {}), region)
        else:
            if self.strict_validation:
                raise StrictValidationError(
                    f"strict validation: service '{service.value if service else 'unknown'}' does not support "
                    f"recommendations (resource_type: {resource.resource_type})"
                )
            logger.debug(
                f"No recommendations for resource type {resource.resource_type!r}: unsupported service"
            )
            return []

        resource_id = correlation_id(resource)
        resource_name = (resource.name or (resource.tags or {}).get("name", "")).strip()
        for recommendation in recommendations:
            if recommendation.resource is not None:
                recommendation.resource.id = resource_id
                recommendation.resource.name = resource_name
            if not context.stats.add_impact(recommendation.impact):
                logger.warning(
                    f"Recommendation {recommendation.id} has no impact data, skipping savings aggregation"
                )
        return recommendations

    # Rules

    @staticmethod
    def _rds_engine(tags: Dict[str, str]) -> str:
        raw = (tags.get("engine") or tags.get("Engine") or "").strip().lower()
        return RDS_ENGINES.get(raw, DEFAULT_RDS_ENGINE)

    def _new_recommendation(
        self,
        resource: RecommendedResource,
        modification_type: str,
        current_config: Dict[str, str],
        recommended_config: Dict[str, str],
        impact: RecommendationImpact,
        priority: str,
        confidence: float,
        description: str,
        reasoning: List[str],
        metadata: Optional[Dict[str, str]] = None,
    ) -> Recommendation:
        return Recommendation(
            id=str(uuid.uuid4()),
            category="COST",
            action_type="MODIFY",
            modification_type=modification_type,
            resource=resource,
            current_config=current_config,
            recommended_config=recommended_config,
            impact=impact,
            priority=priority,
            confidence_score=confidence,
            description=description,
            reasoning=reasoning,
            metadata=metadata or {},
            source=config.SERVICE_NAME,
        )

    def _ec2_monthly(self, instance_type: str) -> Optional[float]:
        hourly, found = self.pricing.ec2_on_demand_price_per_hour(instance_type, "Linux", "Shared")
        return hourly * self.hours_per_month if found else None

    def _ec2_recommendations(self, instance_type: str, region: str) -> List[Recommendation]:
        recommendations = []
        for rule in (self._ec2_generation_upgrade, self._ec2_graviton_migration):
            recommendation = rule(instance_type, region)
            if recommendation is not None:
                recommendations.append(recommendation)
        return recommendations

    def _ec2_generation_upgrade(self, instance_type: str, region: str) -> Optional[Recommendation]:
        family, size = parse_instance_type(instance_type)
        new_family = GENERATION_UPGRADES.get(family)
        if new_family is None:
            return None
        new_type = f"{new_family}.{size}"

        current = self._ec2_monthly(instance_type)
        projected = self._ec2_monthly(new_type)
        if current is None or projected is None or projected > current:
            return None

        impact = _impact(current, projected)
        reasoning = [
            f"Newer {new_family} instances offer better performance",
            "Drop-in replacement with no architecture changes required",
        ]
        graviton_family = GRAVITON_FAMILIES.get(new_family)
        if graviton_family:
            reasoning.append(
                f"Alternative: consider {graviton_family}.{size} for ARM compatibility (~20% additional savings)"
            )
        return self._new_recommendation(
            resource=RecommendedResource(provider=SUPPORTED_PROVIDER, resource_type="ec2", region=region, sku=instance_type),
            modification_type=MOD_GENERATION_UPGRADE,
            current_config={"instance_type": instance_type},
            recommended_config={"instance_type": new_type},
            impact=impact,
            priority="MEDIUM",
            confidence=CONFIDENCE_HIGH,
            description=f"Upgrade from {instance_type} to {new_type} for better performance at same or lower cost",
            reasoning=reasoning,
        )

    def _ec2_graviton_migration(self, instance_type: str, region: str) -> Optional[Recommendation]:
        family, size = parse_instance_type(instance_type)
        graviton_family = GRAVITON_FAMILIES.get(family)
        if graviton_family is None:
            return None
        graviton_type = f"{graviton_family}.{size}"

        current = self._ec2_monthly(instance_type)
        projected = self._ec2_monthly(graviton_type)
        if current is None or projected is None or projected > current:
            return None

        impact = _impact(current, projected)
        return self._new_recommendation(
            resource=RecommendedResource(provider=SUPPORTED_PROVIDER, resource_type="ec2", region=region, sku=instance_type),
            modification_type=MOD_GRAVITON_MIGRATION,
            current_config={"instance_type": instance_type, "architecture": "x86_64"},
            recommended_config={"instance_type": graviton_type, "architecture": "arm64"},
            impact=impact,
            priority="LOW",
            confidence=CONFIDENCE_MEDIUM,
            description=(
                f"Migrate from {instance_type} to {graviton_type} (Graviton) "
                f"for ~{impact.savings_percentage:.0f}% cost savings"
            ),
            reasoning=[
                "Graviton instances are typically ~20% cheaper with comparable performance",
                "Requires validation that application supports ARM architecture",
            ],
            metadata={
                "architecture_change": "x86_64 -> arm64",
                "requires_validation": "Application must support ARM architecture",
            },
        )

    def _ebs_recommendations(self, volume_type: str, region: str, tags: Dict[str, str]) -> List[Recommendation]:
        if (volume_type or "").strip().lower() != "gp2":
            return []

        size_gb = DEFAULT_EBS_RECOMMENDATION_SIZE_GB
        for key in ("size", "volume_size"):
            if key in tags:
                try:
                    parsed = int(str(tags[key]).strip())
                except ValueError:
                    parsed = 0
                if parsed > 0:
                    size_gb = parsed
                break

        gp2_rate, gp2_found = self.pricing.ebs_price_per_gb_month("gp2")
        gp3_rate, gp3_found = self.pricing.ebs_price_per_gb_month("gp3")
        if not (gp2_found and gp3_found) or gp3_rate > gp2_rate:
            return []

        impact = _impact(gp2_rate * size_gb, gp3_rate * size_gb)
        return [self._new_recommendation(
            resource=RecommendedResource(provider=SUPPORTED_PROVIDER, resource_type="ebs", region=region, sku="gp2"),
            modification_type=MOD_VOLUME_TYPE_UPGRADE,
            current_config={"volume_type": "gp2", "size_gb": str(size_gb)},
            recommended_config={"volume_type": "gp3", "size_gb": str(size_gb)},
            impact=impact,
            priority="MEDIUM",
            confidence=CONFIDENCE_HIGH,
            description=f"Upgrade {size_gb}GB gp2 volume to gp3 for ~{impact.savings_percentage:.0f}% cost savings",
            reasoning=[
                "gp3 volumes are ~20% cheaper than gp2",
                "gp3 provides better baseline performance (3000 IOPS, 125 MB/s)",
                "API-compatible change with no data migration required",
            ],
            metadata={
                "baseline_iops": "gp2: 100 IOPS/GB, gp3: 3000 IOPS (included)",
                "baseline_throughput": "gp2: 128-250 MB/s, gp3: 125 MB/s (included)",
            },
        )]

    def _rds_monthly(self, instance_class: str, engine: str) -> Optional[float]:
        hourly, found = self.pricing.rds_on_demand_price_per_hour(instance_class, engine)
        return hourly * self.hours_per_month if found else None

    def _rds_recommendations(self, instance_class: str, engine: str, region: str) -> List[Recommendation]:
        recommendations = []
        upgrade = self._rds_generation_upgrade(instance_class, engine, region)
        if upgrade is not None:
            recommendations.append(upgrade)
        if engine in RDS_GRAVITON_ENGINES:
            migration = self._rds_graviton_migration(instance_class, engine, region)
            if migration is not None:
                recommendations.append(migration)
        return recommendations

    def _rds_generation_upgrade(self, instance_class: str, engine: str, region: str) -> Optional[Recommendation]:
        family, size = parse_rds_instance_type(instance_class)
        new_family = RDS_GENERATION_UPGRADES.get(family)
        if new_family is None:
            return None
        new_type = f"{new_family}.{size}"

        current = self._rds_monthly(instance_class, engine)
        projected = self._rds_monthly(new_type, engine)
        if current is None or projected is None or projected > current:
            return None

        reasoning = [
            f"Newer {new_family} instances offer better performance for {engine}",
            "Drop-in replacement with no architecture changes required",
        ]
        graviton_family = RDS_GRAVITON_FAMILIES.get(new_family)
        if graviton_family and engine in RDS_GRAVITON_ENGINES:
            reasoning.append(
                f"Alternative: consider {graviton_family}.{size} for ARM compatibility (~20% additional savings)"
            )
        return self._new_recommendation(
            resource=RecommendedResource(provider=SUPPORTED_PROVIDER, resource_type="rds", region=region, sku=instance_class),
            modification_type=MOD_GENERATION_UPGRADE,
            current_config={"instance_type": instance_class, "engine": engine},
            recommended_config={"instance_type": new_type, "engine": engine},
            impact=_impact(current, projected),
            priority="MEDIUM",
            confidence=CONFIDENCE_HIGH,
            description=(
                f"Upgrade RDS {engine} from {instance_class} to {new_type} "
                f"for better performance at same or lower cost"
            ),
            reasoning=reasoning,
        )

    def _rds_graviton_migration(self, instance_class: str, engine: str, region: str) -> Optional[Recommendation]:
        family, size = parse_rds_instance_type(instance_class)
        graviton_family = RDS_GRAVITON_FAMILIES.get(family)
        if graviton_family is None:
            return None
        graviton_type = f"{graviton_family}.{size}"

        current = self._rds_monthly(instance_class, engine)
        projected = self._rds_monthly(graviton_type, engine)
        if current is None or projected is None or projected > current:
            return None

        impact = _impact(current, projected)
        return self._new_recommendation(
            resource=RecommendedResource(provider=SUPPORTED_PROVIDER, resource_type="rds", region=region, sku=instance_class),
            modification_type=MOD_GRAVITON_MIGRATION,
            current_config={"instance_type": instance_class, "engine": engine, "architecture": "x86_64"},
            recommended_config={"instance_type": graviton_type, "engine": engine, "architecture": "arm64"},
            impact=impact,
            priority="LOW",
            confidence=CONFIDENCE_MEDIUM,
            description=(
                f"Migrate RDS {engine} from {instance_class} to {graviton_type} (Graviton) "
                f"for ~{impact.savings_percentage:.0f}% cost savings"
            ),
            reasoning=[
                "Graviton RDS instances are typically ~20% cheaper with comparable performance",
                f"Validated: {engine} engine supports Graviton architecture",
            ],
            metadata={"architecture_change": "x86_64 -> arm64", "engine": engine},
        )
