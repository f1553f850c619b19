"""
Cost estimation service.
Validates resource descriptors, dispatches them by service and computes
monthly on-demand cost (and carbon) from the embedded pricing catalog.

Missing prices never raise: the estimate is $0 with a billing detail that says
why. Only structurally invalid input raises InvalidResourceError.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, field

from costengine.carbon.embodied import embodied_detail, estimate_embodied_carbon_kg, months_for_hours
from costengine.carbon.estimators import (
    EKS_CARBON_DETAIL,
    estimate_dynamodb_carbon_grams,
    estimate_ebs_carbon_grams,
    estimate_ec2_carbon_with_breakdown,
    estimate_eks_carbon_grams,
    estimate_elasticache_carbon_grams,
    estimate_lambda_carbon_grams,
    estimate_rds_carbon_with_breakdown,
    estimate_s3_carbon_grams,
    resolve_utilization,
)
from costengine.carbon.grid_factors import get_grid_factor
from costengine.core.config import config
from costengine.domain.carbon_models import CarbonEstimate
from costengine.domain.cost_models import (
    ActualCostEstimate,
    CostEstimate,
    EstimateResult,
    ResourceDescriptor,
)
from costengine.pricing.pricing_client import PricingClient, get_pricing_client
from costengine.pricing.price_index import TierRate
from costengine.services.resource_types import (
    ZERO_COST_DESCRIPTIONS,
    ServiceType,
    extract_sku,
    resolve_service,
)

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDER = "aws"
CARBON_FOOTPRINT_METRIC = "carbon_footprint"

PRICING_NOT_FOUND = "{what} '{value}' not found in pricing data"
PRICING_UNAVAILABLE = "{service} pricing data not available for region {region}"

# Services that may omit the region (global namespaces)
REGIONLESS_SERVICES = (ServiceType.S3, ServiceType.IAM)

# Services with a carbon estimator
CARBON_SERVICES = (
    ServiceType.EC2,
    ServiceType.EBS,
    ServiceType.S3,
    ServiceType.LAMBDA,
    ServiceType.RDS,
    ServiceType.DYNAMODB,
    ServiceType.EKS,
    ServiceType.ELASTICACHE,
)

DEFAULT_EBS_SIZE_GB = 8
DEFAULT_EBS_VOLUME_TYPE = "gp2"
DEFAULT_S3_SIZE_GB = 1.0
DEFAULT_S3_STORAGE_CLASS = "STANDARD"
DEFAULT_LAMBDA_MEMORY_MB = 128
DEFAULT_LAMBDA_DURATION_MS = 100
DEFAULT_RDS_ENGINE = "MySQL"
DEFAULT_RDS_STORAGE_TYPE = "gp2"
DEFAULT_RDS_STORAGE_GB = 20
DEFAULT_ELASTICACHE_ENGINE = "redis"
MAX_ELASTICACHE_NODES = 1000
MAX_CUSTOM_METRICS = 1_000_000
LB_CAPACITY_UNIT_WARN_THRESHOLD = 1000.0

RDS_ENGINES: Dict[str, str] = {
    "mysql": "MySQL",
    "postgres": "PostgreSQL",
    "postgresql": "PostgreSQL",
    "mariadb": "MariaDB",
    "oracle": "Oracle",
    "oracle-se2": "Oracle",
    "sqlserver": "SQL Server",
    "sqlserver-ex": "SQL Server",
    "sql-server": "SQL Server",
}

RDS_STORAGE_TYPES = ("gp2", "gp3", "io1", "io2", "standard")

ELASTICACHE_ENGINES: Dict[str, str] = {
    "redis": "Redis",
    "memcached": "Memcached",
    "valkey": "Valkey",
}

TAG_PULUMI_CREATED = "pulumi:created"
TAG_PULUMI_EXTERNAL = "pulumi:external"


class InvalidResourceError(Exception):
    """Raised when a resource descriptor or one of its required tags is invalid."""
    pass


@dataclass
class CapabilityResult:
    """Whether a resource can be estimated, and which extra metrics it gets."""
    supported: bool
    reason: str = ""
    supported_metrics: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "supported": self.supported,
            "reason": self.reason,
            "supported_metrics": list(self.supported_metrics),
        }


def calculate_tiered_cost(quantity: float, tiers: Tuple[TierRate, ...]) -> float:
    """
    Cost of `quantity` units across ascending tiers.

    Each tier's rate applies to the units between the previous tier's upper
    bound and its own `up_to`.
    """
    total = 0.0
    previous_upper = 0.0
    for tier in tiers:
        if quantity <= previous_upper:
            break
        upper = min(tier.up_to, quantity)
        if upper > previous_upper:
            total += (upper - previous_upper) * tier.rate
        previous_upper = tier.up_to
    return total


def _positive_int_tag(tags: Dict[str, str], *keys: str) -> Optional[int]:
    """First present tag among keys, as a positive int; None when absent or invalid."""
    for key in keys:
        if key in tags:
            try:
                value = int(str(tags[key]).strip())
            except ValueError:
                return None
            return value if value > 0 else None
    return None


def _parse_finite(raw: Any) -> Optional[float]:
    """Tag value as a finite float; None when unparsable, NaN or infinite."""
    try:
        value = float(str(raw).strip())
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _usage_tag(tags: Dict[str, str], key: str) -> Optional[float]:
    """Optional usage tag as a non-negative number; None when absent or invalid (with a warning)."""
    raw = tags.get(key)
    if raw is None:
        return None
    value = _parse_finite(raw)
    if value is None:
        logger.warning(f"Invalid value {raw!r} for tag '{key}', defaulting to 0")
        return None
    if value < 0:
        logger.warning(f"Negative value {value} for tag '{key}', defaulting to 0")
        return None
    return value


def _non_negative_tag(tags: Dict[str, str], key: str) -> float:
    """Optional usage tag: absent, invalid or negative values count as 0."""
    value = _usage_tag(tags, key)
    return 0.0 if value is None else value


def _required_number_tag(tags: Dict[str, str], key: str, maximum: Optional[float] = None) -> Optional[float]:
    """
    Usage tag that must be a valid number when present.

    Returns:
        Parsed value, or None when the tag is absent

    Raises:
        InvalidResourceError: If the value is empty, unparsable, negative or above maximum
    """
    if key not in tags:
        return None
    raw = str(tags[key]).strip()
    if raw == "":
        raise InvalidResourceError(f"invalid value for '{key}': value cannot be empty")
    value = _parse_finite(raw)
    if value is None:
        raise InvalidResourceError(f"invalid value for '{key}': {raw!r} is not a valid number")
    if value < 0:
        raise InvalidResourceError(f"invalid value for '{key}': {value:.2f} cannot be negative")
    if maximum is not None and value > maximum:
        raise InvalidResourceError(f"invalid value for '{key}': {value:g} must be between 0 and {maximum:g}")
    return value


def _parse_timestamp(value: str) -> Optional[datetime]:
    """RFC 3339 timestamp -> aware datetime; None when unparsable."""
    text = (value or "").strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return _as_utc(parsed)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _with_notes(detail: str, notes: List[str]) -> str:
    return f"{detail} ({', '.join(notes)})" if notes else detail


class CostEstimator:
    """
    Estimates monthly cost and carbon for AWS resources in the compiled region.

    Usage:
        estimator = CostEstimator()
        estimate = estimator.estimate_cost(ResourceDescriptor(
            provider="aws", resource_type="ec2", sku="t3.micro", region="us-east-1"))
    """

    def __init__(self, pricing_client: Optional[PricingClient] = None):
        """
        Initialize the estimator.

        Args:
            pricing_client: Pricing facade (defaults to the process-wide client)
        """
        self.pricing = pricing_client or get_pricing_client()
        self.region = self.pricing.region
        self.hours_per_month = float(config.HOURS_PER_MONTH)
        self._handlers: Dict[ServiceType, Callable[[ResourceDescriptor, float], EstimateResult]] = {
            ServiceType.EC2: self._estimate_ec2,
            ServiceType.EBS: self._estimate_ebs,
            ServiceType.S3: self._estimate_s3,
            ServiceType.LAMBDA: self._estimate_lambda,
            ServiceType.RDS: self._estimate_rds,
            ServiceType.DYNAMODB: self._estimate_dynamodb,
            ServiceType.EKS: self._estimate_eks,
            ServiceType.ELB: self._estimate_elb,
            ServiceType.NAT_GATEWAY: self._estimate_nat_gateway,
            ServiceType.ELASTICACHE: self._estimate_elasticache,
            ServiceType.CLOUDWATCH: self._estimate_cloudwatch,
        }

    # Validation and capability

    def validate(self, resource: Optional[ResourceDescriptor]) -> Optional[ServiceType]:
        """
        Validate a descriptor for estimation.

        Returns:
            The detected ServiceType, or None for unrecognized resource types

        Raises:
            InvalidResourceError: Missing provider or type, non-aws provider, or a
                                  region other than the compiled one
        """
        if resource is None:
            raise InvalidResourceError("missing resource descriptor")
        provider = (resource.provider or "").strip()
        if not provider:
            raise InvalidResourceError("provider is required")
        if provider.lower() != SUPPORTED_PROVIDER:
            raise InvalidResourceError(
                f"provider '{provider}' not supported: only \"{SUPPORTED_PROVIDER}\" provider is supported"
            )
        if not (resource.resource_type or "").strip():
            raise InvalidResourceError("resource_type is required")

        service = resolve_service(resource.resource_type)
        region = (resource.region or "").strip().lower()
        if not region and service in REGIONLESS_SERVICES:
            region = self.region
        if not region:
            raise InvalidResourceError("region is required")
        if region != self.region:
            raise InvalidResourceError(
                f"region '{resource.region}' does not match pricing region '{self.region}'"
            )
        return service

    def check_capability(self, resource: Optional[ResourceDescriptor]) -> CapabilityResult:
        """
        Report whether a resource can be estimated. Never raises.

        Returns:
            CapabilityResult with a reason when unsupported
        """
        if resource is None:
            return CapabilityResult(False, "Invalid request: missing resource descriptor")

        provider = (resource.provider or "").strip()
        if provider.lower() != SUPPORTED_PROVIDER:
            return CapabilityResult(
                False, f"Provider \"{provider}\" not supported (only \"{SUPPORTED_PROVIDER}\" is supported)"
            )

        service = resolve_service(resource.resource_type)
        region = (resource.region or "").strip().lower()
        if not region and service in REGIONLESS_SERVICES:
            region = self.region
        if region != self.region:
            return CapabilityResult(
                False,
                f"Region not supported by this binary (plugin region: {self.region}, "
                f"resource region: {resource.region})",
            )

        if service is None:
            return CapabilityResult(False, f"Resource type \"{resource.resource_type}\" not supported")
        if service.is_zero_cost:
            return CapabilityResult(True, ZERO_COST_DESCRIPTIONS[service])

        metrics = [CARBON_FOOTPRINT_METRIC] if service in CARBON_SERVICES else []
        return CapabilityResult(True, "", metrics)

    # Public estimation API

    def estimate_cost(self, resource: ResourceDescriptor) -> CostEstimate:
        """
        Estimate monthly on-demand cost for one resource.

        Raises:
            InvalidResourceError: On structurally invalid input
        """
        return self.estimate_cost_with_carbon(resource).cost

    def estimate_cost_with_carbon(self, resource: ResourceDescriptor, utilization: float = 0.0) -> EstimateResult:
        """
        Estimate monthly cost plus operational and embodied carbon.

        Args:
            resource: Resource descriptor
            utilization: Request-level CPU utilization (0-1); the resource's own
                         utilization_percentage takes precedence, default 0.5

        Returns:
            EstimateResult; carbon is None when the service has no carbon model
            or the instance/storage type is not in the spec tables
        """
        service = self.validate(resource)
        if service is None:
            logger.debug(f"Unsupported resource type {resource.resource_type!r}")
            return EstimateResult(CostEstimate.zero(
                f"Resource type '{resource.resource_type}' not supported for cost estimation"
            ))
        if service.is_zero_cost:
            return EstimateResult(CostEstimate.zero(ZERO_COST_DESCRIPTIONS[service]))

        resolved = resolve_utilization(utilization, resource.utilization_percentage)
        return self._handlers[service](resource, resolved)

    def estimate_actual_cost(
        self,
        resource: ResourceDescriptor,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> ActualCostEstimate:
        """
        Prorate the projected monthly cost over a runtime window.

        The window starts at `start`, else at the resource's pulumi:created tag,
        and ends at `end`, else now (UTC).

        Raises:
            InvalidResourceError: No start available, or end before start
        """
        projected = self.estimate_cost(resource)
        tags = resource.tags or {}

        if start is not None:
            window_start = _as_utc(start)
            source = "explicit"
        else:
            created = _parse_timestamp(tags.get(TAG_PULUMI_CREATED, ""))
            if created is None:
                raise InvalidResourceError(
                    f"start time required: provide an explicit start or a {TAG_PULUMI_CREATED} tag"
                )
            window_start = created
            source = TAG_PULUMI_CREATED

        if end is not None:
            window_end = _as_utc(end)
            if source != "explicit":
                source = "mixed"
        else:
            window_end = _as_utc(now) if now is not None else datetime.now(timezone.utc)
            if source == "explicit":
                source = "mixed"

        if window_end < window_start:
            raise InvalidResourceError(
                f"invalid time range: start ({window_start.isoformat()}) is after end ({window_end.isoformat()})"
            )

        runtime_hours = (window_end - window_start).total_seconds() / 3600.0
        cost = projected.cost_per_month * runtime_hours / self.hours_per_month

        if source == "explicit":
            confidence = "HIGH"
        elif tags.get(TAG_PULUMI_EXTERNAL, "").strip().lower() == "true":
            confidence = "LOW"
        else:
            confidence = "MEDIUM"

        return ActualCostEstimate(
            start=window_start,
            end=window_end,
            runtime_hours=runtime_hours,
            cost=cost,
            currency=projected.currency,
            source=source,
            confidence=confidence,
            billing_detail=(
                f"Fallback estimate: {projected.billing_detail} x {runtime_hours:.2f} hours "
                f"/ {self.hours_per_month:.0f} = ${cost:.4f}"
            ),
        )

    # Helpers

    def _monthly(self, hourly_rate: float) -> float:
        return hourly_rate * self.hours_per_month

    def _not_found(self, what: str, value: str) -> EstimateResult:
        logger.debug(f"{what} {value!r} not found in pricing data for {self.region}")
        return EstimateResult(CostEstimate.zero(PRICING_NOT_FOUND.format(what=what, value=value)))

    def _unavailable(self, service: str) -> EstimateResult:
        logger.debug(f"{service} pricing unavailable for {self.region}")
        return EstimateResult(CostEstimate.zero(PRICING_UNAVAILABLE.format(service=service, region=self.region)))

    def _grid_note(self, region: str) -> str:
        return f"grid {get_grid_factor(region) * 1000:.4f} kgCO2e/kWh"

    # Per-service estimators

    def _estimate_ec2(self, resource: ResourceDescriptor, utilization: float) -> EstimateResult:
        tags = resource.tags or {}
        instance_type = extract_sku(resource.sku, tags)
        operating_system = "Windows" if tags.get("platform", "").strip().lower() == "windows" else "Linux"
        tenancy = {"dedicated": "Dedicated", "host": "Host"}.get(tags.get("tenancy", "").strip().lower(), "Shared")

        hourly, found = self.pricing.ec2_on_demand_price_per_hour(instance_type, operating_system, tenancy)
        if not found:
            return self._not_found("EC2 instance type", instance_type)

        cost = CostEstimate(
            unit_price=hourly,
            currency=self.pricing.currency,
            cost_per_month=self._monthly(hourly),
            billing_detail=f"On-demand {operating_system}, {tenancy} tenancy, {instance_type}, 730 hrs/month",
        )

        region = resource.region or self.region
        cpu_grams, gpu_grams, carbon_found = estimate_ec2_carbon_with_breakdown(
            instance_type, region, utilization, self.hours_per_month
        )
        if not carbon_found:
            logger.debug(f"Carbon estimation skipped: {instance_type} not in instance specs")
            return EstimateResult(cost)

        months = months_for_hours(self.hours_per_month)
        embodied_kg, _ = estimate_embodied_carbon_kg(instance_type, months)
        carbon = CarbonEstimate(
            operational_carbon_grams=cpu_grams + gpu_grams,
            embodied_carbon_kg=embodied_kg,
            breakdown={"cpu": cpu_grams, "gpu": gpu_grams},
            detail=(
                f"EC2 {instance_type}, {utilization * 100:.0f}% utilization, 730 hrs, "
                f"{self._grid_note(region)}; {embodied_detail(instance_type, months)}"
            ),
        )
        return EstimateResult(cost, carbon)

    def _estimate_ebs(self, resource: ResourceDescriptor, utilization: float) -> EstimateResult:
        tags = resource.tags or {}
        notes: List[str] = []
        volume_type = extract_sku(resource.sku, tags).lower()
        if not volume_type:
            volume_type = DEFAULT_EBS_VOLUME_TYPE
            notes.append(f"volume type defaulted to {DEFAULT_EBS_VOLUME_TYPE}")

        size_gb = _positive_int_tag(tags, "size", "volume_size")
        if size_gb is None:
            size_gb = DEFAULT_EBS_SIZE_GB
            notes.append(f"size defaulted to {DEFAULT_EBS_SIZE_GB}GB")

        rate, found = self.pricing.ebs_price_per_gb_month(volume_type)
        if not found:
            return self._not_found("EBS volume type", volume_type)

        cost = CostEstimate(
            unit_price=rate,
            currency=self.pricing.currency,
            cost_per_month=rate * size_gb,
            billing_detail=_with_notes(f"{volume_type} volume, {size_gb} GB, ${rate:.4f}/GB-month", notes),
        )

        region = resource.region or self.region
        grams, carbon_found = estimate_ebs_carbon_grams(volume_type, size_gb, region, self.hours_per_month)
        if not carbon_found:
            return EstimateResult(cost)
        return EstimateResult(cost, CarbonEstimate(
            operational_carbon_grams=grams,
            detail=f"EBS {volume_type}, {size_gb} GB, 730 hrs, {self._grid_note(region)}",
        ))

    def _estimate_s3(self, resource: ResourceDescriptor, utilization: float) -> EstimateResult:
        tags = resource.tags or {}
        notes: List[str] = []
        storage_class = (resource.sku or tags.get("storageClass", "") or tags.get("storage_class", "")).strip().upper()
        if not storage_class:
            storage_class = DEFAULT_S3_STORAGE_CLASS
            notes.append(f"storage class defaulted to {DEFAULT_S3_STORAGE_CLASS}")

        size_gb = DEFAULT_S3_SIZE_GB
        size_defaulted = True
        if "size" in tags:
            parsed = _parse_finite(tags["size"])
            if parsed is not None and parsed > 0:
                size_gb = parsed
                size_defaulted = False
            else:
                logger.debug(f"Ignoring invalid S3 size {tags['size']!r}")
        if size_defaulted:
            notes.append("size defaulted to 1GB")

        rate, found = self.pricing.s3_price_per_gb_month(storage_class)
        if not found:
            return self._not_found("S3 storage class", storage_class)

        cost = CostEstimate(
            unit_price=rate,
            currency=self.pricing.currency,
            cost_per_month=rate * size_gb,
            billing_detail=_with_notes(f"S3 {storage_class} storage, {size_gb:g} GB, ${rate:.4f}/GB-month", notes),
        )

        region = resource.region or self.region
        grams, carbon_found = estimate_s3_carbon_grams(storage_class, size_gb, region, self.hours_per_month)
        if not carbon_found:
            return EstimateResult(cost)
        return EstimateResult(cost, CarbonEstimate(
            operational_carbon_grams=grams,
            detail=f"S3 {storage_class}, {size_gb:g} GB, 730 hrs, {self._grid_note(region)}",
        ))

    def _estimate_lambda(self, resource: ResourceDescriptor, utilization: float) -> EstimateResult:
        tags = resource.tags or {}
        notes: List[str] = []

        memory_mb = DEFAULT_LAMBDA_MEMORY_MB
        try:
            parsed_memory = int((resource.sku or "").strip())
        except ValueError:
            parsed_memory = 0
        if parsed_memory > 0:
            memory_mb = parsed_memory
        else:
            notes.append(f"memory defaulted to {DEFAULT_LAMBDA_MEMORY_MB}MB")

        parsed_requests = _usage_tag(tags, "requests_per_month")
        if parsed_requests is not None:
            requests = parsed_requests
        elif "requests_per_month" in tags:
            requests = 0.0
            notes.append("requests_per_month invalid, 0 requests assumed")
        else:
            requests = 0.0
            notes.append("requests_per_month tag not set, 0 requests assumed")

        duration_ms = _positive_int_tag(tags, "avg_duration_ms")
        if duration_ms is None:
            duration_ms = DEFAULT_LAMBDA_DURATION_MS
            notes.append(f"duration defaulted to {DEFAULT_LAMBDA_DURATION_MS}ms")

        raw_arch = (tags.get("arch") or tags.get("architecture") or "").strip().lower()
        if not raw_arch:
            notes.append("arch defaulted to x86_64")
        architecture = "arm64" if raw_arch in ("arm", "arm64") else "x86_64"

        request_rate, request_found = self.pricing.lambda_price_per_request(architecture)
        gb_second_rate, gb_second_found = self.pricing.lambda_price_per_gb_second(architecture)
        if not (request_found and gb_second_found):
            return self._unavailable("Lambda")

        gb_seconds = (memory_mb / 1024.0) * (duration_ms / 1000.0) * requests
        total = requests * request_rate + gb_seconds * gb_second_rate

        detail = _with_notes(
            f"Lambda {memory_mb}MB ({architecture}), {requests:.0f} requests/month, {duration_ms}ms avg duration",
            notes,
        )
        cost = CostEstimate(
            unit_price=gb_second_rate,
            currency=self.pricing.currency,
            cost_per_month=total,
            billing_detail=f"{detail}, {gb_seconds:.0f} GB-seconds",
        )

        region = resource.region or self.region
        grams, carbon_found = estimate_lambda_carbon_grams(memory_mb, duration_ms, requests, architecture, region)
        if not carbon_found:
            return EstimateResult(cost)
        return EstimateResult(cost, CarbonEstimate(
            operational_carbon_grams=grams,
            detail=(
                f"Lambda {architecture}, {memory_mb} MB ({memory_mb / 1792.0:.2f} vCPU equiv), "
                f"{requests:.0f} invocations x {duration_ms}ms, {self._grid_note(region)}"
            ),
        ))

    def _estimate_rds(self, resource: ResourceDescriptor, utilization: float) -> EstimateResult:
        tags = resource.tags or {}
        notes: List[str] = []
        instance_class = extract_sku(resource.sku, tags)

        raw_engine = (tags.get("engine") or "").strip().lower()
        engine = RDS_ENGINES.get(raw_engine)
        if engine is None:
            engine = DEFAULT_RDS_ENGINE
            notes.append(f"engine defaulted to {DEFAULT_RDS_ENGINE}")

        storage_type = (tags.get("storage_type") or "").strip().lower()
        if storage_type not in RDS_STORAGE_TYPES:
            storage_type = DEFAULT_RDS_STORAGE_TYPE
            notes.append(f"storage type defaulted to {DEFAULT_RDS_STORAGE_TYPE}")

        storage_gb = _positive_int_tag(tags, "storage_size")
        if storage_gb is None:
            storage_gb = DEFAULT_RDS_STORAGE_GB
            notes.append(f"size defaulted to {DEFAULT_RDS_STORAGE_GB}GB")

        multi_az = (tags.get("multi_az") or "").strip().lower() == "true"

        hourly, found = self.pricing.rds_on_demand_price_per_hour(instance_class, engine)
        if not found:
            return self._not_found("RDS instance type", instance_class)

        storage_rate, storage_found = self.pricing.rds_storage_price_per_gb_month(storage_type)
        if not storage_found:
            logger.warning(f"RDS storage pricing for {storage_type} not found, storage cost excluded")
            notes.append(f"{storage_type} storage pricing unavailable")

        instance_monthly = self._monthly(hourly) * (2 if multi_az else 1)
        deployment = " Multi-AZ" if multi_az else ""
        cost = CostEstimate(
            unit_price=hourly,
            currency=self.pricing.currency,
            cost_per_month=instance_monthly + storage_rate * storage_gb,
            billing_detail=_with_notes(
                f"RDS {instance_class} {engine}{deployment}, 730 hrs/month + {storage_gb}GB {storage_type} storage",
                notes,
            ),
        )

        region = resource.region or self.region
        compute_grams, storage_grams, carbon_found = estimate_rds_carbon_with_breakdown(
            instance_class, region, utilization, self.hours_per_month, storage_type, storage_gb, multi_az
        )
        if not carbon_found:
            return EstimateResult(cost)
        return EstimateResult(cost, CarbonEstimate(
            operational_carbon_grams=compute_grams + storage_grams,
            breakdown={"compute": compute_grams, "storage": storage_grams},
            detail=(
                f"RDS {instance_class}{' Multi-AZ (2x)' if multi_az else ''}, {storage_gb} GB {storage_type} storage, "
                f"730 hrs, {utilization * 100:.0f}% utilization, {self._grid_note(region)}"
            ),
        ))

    def _estimate_dynamodb(self, resource: ResourceDescriptor, utilization: float) -> EstimateResult:
        tags = resource.tags or {}
        capacity_mode = (resource.sku or "").strip().lower() or "on-demand"
        storage_gb = _non_negative_tag(tags, "storage_gb")

        unavailable: List[str] = []
        storage_rate, storage_found = self.pricing.dynamodb_storage_price_per_gb_month()
        if not storage_found:
            unavailable.append("Storage")
        storage_cost = storage_gb * storage_rate

        if capacity_mode == "provisioned":
            read_units = _non_negative_tag(tags, "read_capacity_units")
            write_units = _non_negative_tag(tags, "write_capacity_units")
            read_rate, read_found = self.pricing.dynamodb_provisioned_rcu_price()
            write_rate, write_found = self.pricing.dynamodb_provisioned_wcu_price()
            if not read_found:
                unavailable.append("RCU")
            if not write_found:
                unavailable.append("WCU")
            total = (
                read_units * self.hours_per_month * read_rate
                + write_units * self.hours_per_month * write_rate
                + storage_cost
            )
            unit_price = read_rate
            detail = (
                f"DynamoDB provisioned, {read_units:.0f} RCUs, {write_units:.0f} WCUs, "
                f"730 hrs/month, {storage_gb:.0f}GB storage"
            )
        else:
            reads = _non_negative_tag(tags, "read_requests_per_month")
            writes = _non_negative_tag(tags, "write_requests_per_month")
            read_rate, read_found = self.pricing.dynamodb_on_demand_read_price()
            write_rate, write_found = self.pricing.dynamodb_on_demand_write_price()
            if not read_found:
                unavailable.append("Read")
            if not write_found:
                unavailable.append("Write")
            total = reads * read_rate + writes * write_rate + storage_cost
            unit_price = storage_rate
            detail = f"DynamoDB on-demand, {reads:.0f} reads, {writes:.0f} writes, {storage_gb:.0f}GB storage"

        if unavailable:
            logger.warning(f"DynamoDB pricing unavailable for {', '.join(unavailable)} in {self.region}")
            detail += f" (pricing unavailable: {', '.join(unavailable)})"
        if total == 0:
            detail += " (missing or zero usage inputs)"

        cost = CostEstimate(
            unit_price=unit_price,
            currency=self.pricing.currency,
            cost_per_month=total,
            billing_detail=detail,
        )
        if storage_gb <= 0:
            return EstimateResult(cost)

        region = resource.region or self.region
        grams, _ = estimate_dynamodb_carbon_grams(storage_gb, region, self.hours_per_month)
        return EstimateResult(cost, CarbonEstimate(
            operational_carbon_grams=grams,
            detail=f"DynamoDB table, {storage_gb:g} GB storage (SSD, 3x replication), 730 hrs, {self._grid_note(region)}",
        ))

    def _estimate_eks(self, resource: ResourceDescriptor, utilization: float) -> EstimateResult:
        tags = resource.tags or {}
        extended = (
            (resource.sku or "").strip().lower() == "cluster-extended"
            or tags.get("support_type", "").strip().lower() == "extended"
        )
        hourly, found = self.pricing.eks_cluster_price_per_hour(extended)
        if not found:
            return self._unavailable("EKS")

        support = "extended support" if extended else "standard support"
        cost = CostEstimate(
            unit_price=hourly,
            currency=self.pricing.currency,
            cost_per_month=self._monthly(hourly),
            billing_detail=f"EKS cluster ({support}), 730 hrs/month (control plane only, excludes worker nodes)",
        )
        grams, _ = estimate_eks_carbon_grams()
        return EstimateResult(cost, CarbonEstimate(operational_carbon_grams=grams, detail=EKS_CARBON_DETAIL))

    def _lb_capacity_units(self, tags: Dict[str, str], primary_key: str) -> float:
        for key in (primary_key, "capacity_units"):
            if key not in tags:
                continue
            value = _parse_finite(tags[key])
            if value is None:
                logger.warning(f"Ignoring invalid value {tags[key]!r} for tag '{key}'")
                continue
            if value >= 0:
                return value
            logger.warning(f"Ignoring negative value {value} for tag '{key}'")
        return 0.0

    def _estimate_elb(self, resource: ResourceDescriptor, utilization: float) -> EstimateResult:
        tags = resource.tags or {}
        sku = (resource.sku or "").strip().lower()
        lb_type = "nlb" if ("nlb" in sku or "network" in sku) else "alb"
        unit_name = "NLCU" if lb_type == "nlb" else "LCU"
        capacity_units = self._lb_capacity_units(tags, "nlcu_per_hour" if lb_type == "nlb" else "lcu_per_hour")
        if capacity_units > LB_CAPACITY_UNIT_WARN_THRESHOLD:
            logger.warning(
                f"Unusually high {unit_name} count {capacity_units:.1f}/hr for {resource.id or resource.name or lb_type}"
            )

        fixed_rate, fixed_found = self.pricing.load_balancer_price_per_hour(lb_type)
        unit_rate, unit_found = self.pricing.load_balancer_price_per_capacity_unit(lb_type)
        if not (fixed_found and unit_found):
            return self._unavailable(lb_type.upper())

        total = self._monthly(fixed_rate) + self.hours_per_month * capacity_units * unit_rate
        return EstimateResult(CostEstimate(
            unit_price=fixed_rate,
            currency=self.pricing.currency,
            cost_per_month=total,
            billing_detail=f"{lb_type.upper()}, 730 hrs/month, {capacity_units:.1f} {unit_name} avg/hr",
        ))

    def _estimate_nat_gateway(self, resource: ResourceDescriptor, utilization: float) -> EstimateResult:
        tags = resource.tags or {}
        data_gb = _required_number_tag(tags, "data_processed_gb")

        price, found = self.pricing.nat_gateway_price()
        if not found or price is None:
            return self._unavailable("NAT Gateway")

        total = self._monthly(price.hourly_rate)
        detail = f"NAT Gateway, {self.hours_per_month:.0f} hrs/month (${price.hourly_rate:.3f}/hr)"
        if data_gb is None:
            detail += " (data processing cost not included; use 'data_processed_gb' tag to estimate)"
        elif data_gb > 0:
            total += data_gb * price.data_processing_rate
            detail += f" + {data_gb:.2f} GB data processed (${price.data_processing_rate:.3f}/GB)"
        else:
            detail += " (0 GB data processed)"

        return EstimateResult(CostEstimate(
            unit_price=price.hourly_rate,
            currency=price.currency,
            cost_per_month=total,
            billing_detail=detail,
        ))

    def _estimate_elasticache(self, resource: ResourceDescriptor, utilization: float) -> EstimateResult:
        tags = resource.tags or {}
        node_type = (resource.sku or tags.get("instanceType", "") or tags.get("node_type", "")).strip()
        if not node_type:
            raise InvalidResourceError(
                "ElastiCache node type not specified: use 'sku' field or 'instanceType' tag"
            )

        raw_engine = (tags.get("engine") or DEFAULT_ELASTICACHE_ENGINE).strip().lower()
        engine = ELASTICACHE_ENGINES.get(raw_engine, raw_engine)

        nodes = 1
        raw_nodes = tags.get("num_nodes") or tags.get("num_cache_nodes")
        if raw_nodes:
            try:
                nodes = int(str(raw_nodes).strip())
            except ValueError:
                raise InvalidResourceError(
                    f"invalid value for node count: {raw_nodes!r} is not a valid integer"
                )
            if nodes < 1 or nodes > MAX_ELASTICACHE_NODES:
                raise InvalidResourceError(
                    f"invalid value for node count: {nodes} must be between 1 and {MAX_ELASTICACHE_NODES}"
                )

        hourly, found = self.pricing.elasticache_on_demand_price_per_hour(node_type, engine)
        if not found:
            return self._not_found(f"ElastiCache {engine} node", node_type)

        node_label = "1 node" if nodes == 1 else f"{nodes} nodes"
        cost = CostEstimate(
            unit_price=hourly,
            currency=self.pricing.currency,
            cost_per_month=self._monthly(hourly) * nodes,
            billing_detail=f"ElastiCache {node_type} ({engine}), {node_label}, 730 hrs/month",
        )

        region = resource.region or self.region
        grams, carbon_found = estimate_elasticache_carbon_grams(
            node_type, region, utilization, self.hours_per_month, nodes
        )
        if not carbon_found:
            return EstimateResult(cost)
        return EstimateResult(cost, CarbonEstimate(
            operational_carbon_grams=grams,
            detail=(
                f"ElastiCache {node_type} ({engine}), {node_label}, 730 hrs, "
                f"{utilization * 100:.0f}% utilization, {self._grid_note(region)}"
            ),
        ))

    def _estimate_cloudwatch(self, resource: ResourceDescriptor, utilization: float) -> EstimateResult:
        tags = resource.tags or {}
        mode = (resource.sku or "").strip().lower() or "logs"

        # Empty values are treated as absent for CloudWatch usage tags
        usage = {key: value for key, value in tags.items() if str(value).strip() != ""}
        ingestion_gb = _required_number_tag(usage, "log_ingestion_gb") or 0.0
        storage_gb = _required_number_tag(usage, "log_storage_gb") or 0.0
        custom_metrics = _required_number_tag(usage, "custom_metrics", maximum=MAX_CUSTOM_METRICS) or 0.0

        total = 0.0
        details: List[str] = []

        if mode in ("logs", "combined"):
            if ingestion_gb > 0:
                tiers, found = self.pricing.cloudwatch_logs_ingestion_tiers()
                if found:
                    ingestion_cost = calculate_tiered_cost(ingestion_gb, tiers)
                    total += ingestion_cost
                    details.append(f"{ingestion_gb:.2f} GB logs ingested (${ingestion_cost:.2f})")
                else:
                    details.append(PRICING_UNAVAILABLE.format(service="CloudWatch Logs ingestion", region=self.region))
            if storage_gb > 0:
                rate, found = self.pricing.cloudwatch_logs_storage_price()
                if found:
                    storage_cost = storage_gb * rate
                    total += storage_cost
                    details.append(f"{storage_gb:.2f} GB logs stored @ ${rate:.4f}/GB-mo (${storage_cost:.2f})")
                else:
                    details.append(PRICING_UNAVAILABLE.format(service="CloudWatch Logs storage", region=self.region))

        if mode in ("metrics", "combined") and custom_metrics > 0:
            tiers, found = self.pricing.cloudwatch_metrics_tiers()
            if found:
                metrics_cost = calculate_tiered_cost(custom_metrics, tiers)
                total += metrics_cost
                details.append(f"{custom_metrics:.0f} custom metrics (${metrics_cost:.2f})")
            else:
                details.append(PRICING_UNAVAILABLE.format(service="CloudWatch Metrics", region=self.region))

        if details:
            detail = "CloudWatch: " + ", ".join(details)
        else:
            detail = "CloudWatch: No usage specified (use tags: log_ingestion_gb, log_storage_gb, custom_metrics)"

        return EstimateResult(CostEstimate(
            unit_price=0.0,
            currency=self.pricing.currency,
            cost_per_month=total,
            billing_detail=detail,
        ))
