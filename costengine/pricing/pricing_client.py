"""
Pricing client facade over the embedded catalog.

The catalog for the compiled region is parsed and indexed on first use, exactly
once per client, and is read-only afterwards. Every accessor returns
(price, found); (0.0, False) means the variant is not in the catalog, which is
not an error.

Usage:
    client = get_pricing_client()
    hourly, found = client.ec2_on_demand_price_per_hour("t3.micro", "Linux", "Shared")
"""
import time
import logging
import threading
from typing import Callable, Optional, Tuple, TypeVar
from dataclasses import dataclass

from costengine.core.config import config
from costengine.pricing.offer_catalog import (
    SERVICE_CODES,
    EmbeddedCatalogSource,
    PricingDataError,
)
from costengine.pricing.price_index import (
    DynamoDBDimension,
    EC2Key,
    EKSSupport,
    ElastiCacheKey,
    LoadBalancerDimension,
    LoadBalancerKey,
    NATGatewayDimension,
    PricingCatalog,
    RateRecord,
    RDSInstanceKey,
    TierRate,
    build_catalog,
    canonical,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

NOT_FOUND: Tuple[float, bool] = (0.0, False)


@dataclass(frozen=True)
class NATGatewayPrice:
    """NAT Gateway hourly and data processing rates."""
    hourly_rate: float
    data_processing_rate: float
    currency: str = "USD"


class PricingClient:
    """
    Typed, thread-safe access to on-demand prices for one region.

    The catalog is built lazily behind a lock with double-checked construction.
    A build failure is remembered and re-raised to every later caller without
    re-parsing the data.
    """

    def __init__(self, source=None, slow_lookup_threshold_ms: Optional[float] = None):
        """
        Initialize the pricing client.

        Args:
            source: Object with a `region` attribute and `load(service_code)` returning
                    an OfferDocument. Defaults to the embedded data for config.PRICING_REGION.
            slow_lookup_threshold_ms: Lookups slower than this log a warning
        """
        if source is None:
            source = EmbeddedCatalogSource(config.PRICING_DATA_DIR, config.PRICING_REGION)
        self._source = source
        self._region = canonical(source.region)
        self._slow_lookup_threshold_ms = (
            slow_lookup_threshold_ms
            if slow_lookup_threshold_ms is not None
            else config.SLOW_LOOKUP_THRESHOLD_MS
        )
        self._lock = threading.Lock()
        self._catalog: Optional[PricingCatalog] = None
        self._init_error: Optional[PricingDataError] = None

    def _build(self) -> PricingCatalog:
        started = time.perf_counter()
        documents = {code: self._source.load(code) for code in SERVICE_CODES}
        catalog = build_catalog(documents, self._region)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"Pricing catalog for {self._region} ready in {elapsed_ms:.1f}ms")
        return catalog

    def _ensure_catalog(self) -> PricingCatalog:
        catalog = self._catalog
        if catalog is not None:
            return catalog
        with self._lock:
            if self._catalog is None:
                if self._init_error is not None:
                    raise PricingDataError(
                        f"Pricing data unavailable for region {self._region}: {self._init_error}"
                    ) from self._init_error
                try:
                    self._catalog = self._build()
                except PricingDataError as error:
                    logger.error(f"Failed to build pricing catalog for {self._region}: {error}")
                    self._init_error = error
                    raise
            return self._catalog

    def _lookup(self, description: str, fn: Callable[[PricingCatalog], T]) -> T:
        """Run one catalog read, warning when it is unexpectedly slow."""
        catalog = self._ensure_catalog()
        started = time.perf_counter()
        result = fn(catalog)
        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms > self._slow_lookup_threshold_ms:
            logger.warning(f"Slow pricing lookup {description}: {elapsed_ms:.1f}ms")
        return result

    @staticmethod
    def _rate(record: Optional[RateRecord]) -> Tuple[float, bool]:
        if record is None:
            return NOT_FOUND
        return record.price, True

    def warm_up(self) -> None:
        """Build the catalog now instead of on the first lookup."""
        self._ensure_catalog()

    @property
    def region(self) -> str:
        return self._region

    @property
    def currency(self) -> str:
        return "USD"

    @property
    def publication_date(self) -> str:
        return self._ensure_catalog().publication_date

    def is_built(self) -> bool:
        return self._catalog is not None

    # EC2 / EBS / NAT Gateway

    def ec2_on_demand_price_per_hour(
        self,
        instance_type: str,
        operating_system: str = "Linux",
        tenancy: str = "Shared",
    ) -> Tuple[float, bool]:
        key = EC2Key.of(instance_type, operating_system, tenancy)
        return self._lookup(f"ec2 {key}", lambda c: self._rate(c.ec2.get(key)))

    def ebs_price_per_gb_month(self, volume_type: str) -> Tuple[float, bool]:
        key = canonical(volume_type)
        return self._lookup(f"ebs {key}", lambda c: self._rate(c.ebs.get(key)))

    def nat_gateway_price(self) -> Tuple[Optional[NATGatewayPrice], bool]:
        def read(catalog: PricingCatalog) -> Tuple[Optional[NATGatewayPrice], bool]:
            hourly = catalog.nat_gateway.get(NATGatewayDimension.HOURLY)
            data = catalog.nat_gateway.get(NATGatewayDimension.DATA_PROCESSED)
            if hourly is None or data is None:
                return None, False
            return NATGatewayPrice(hourly_rate=hourly.price, data_processing_rate=data.price), True

        return self._lookup("nat gateway", read)

    # RDS

    def rds_on_demand_price_per_hour(self, instance_class: str, engine: str) -> Tuple[float, bool]:
        key = RDSInstanceKey.of(instance_class, engine)
        return self._lookup(f"rds {key}", lambda c: self._rate(c.rds_instances.get(key)))

    def rds_storage_price_per_gb_month(self, storage_type: str) -> Tuple[float, bool]:
        key = canonical(storage_type)
        return self._lookup(f"rds storage {key}", lambda c: self._rate(c.rds_storage.get(key)))

    # S3

    def s3_price_per_gb_month(self, storage_class: str) -> Tuple[float, bool]:
        key = canonical(storage_class)
        return self._lookup(f"s3 {key}", lambda c: self._rate(c.s3.get(key)))

    # Lambda

    def lambda_price_per_request(self, architecture: str = "x86_64") -> Tuple[float, bool]:
        key = canonical(architecture)
        return self._lookup(f"lambda requests {key}", lambda c: self._rate(c.lambda_requests.get(key)))

    def lambda_price_per_gb_second(self, architecture: str = "x86_64") -> Tuple[float, bool]:
        key = canonical(architecture)
        return self._lookup(f"lambda duration {key}", lambda c: self._rate(c.lambda_duration.get(key)))

    # DynamoDB

    def _dynamodb(self, dimension: DynamoDBDimension) -> Tuple[float, bool]:
        return self._lookup(f"dynamodb {dimension.value}", lambda c: self._rate(c.dynamodb.get(dimension)))

    def dynamodb_storage_price_per_gb_month(self) -> Tuple[float, bool]:
        return self._dynamodb(DynamoDBDimension.STORAGE)

    def dynamodb_provisioned_rcu_price(self) -> Tuple[float, bool]:
        return self._dynamodb(DynamoDBDimension.PROVISIONED_READ)

    def dynamodb_provisioned_wcu_price(self) -> Tuple[float, bool]:
        return self._dynamodb(DynamoDBDimension.PROVISIONED_WRITE)

    def dynamodb_on_demand_read_price(self) -> Tuple[float, bool]:
        return self._dynamodb(DynamoDBDimension.ON_DEMAND_READ)

    def dynamodb_on_demand_write_price(self) -> Tuple[float, bool]:
        return self._dynamodb(DynamoDBDimension.ON_DEMAND_WRITE)

    # EKS / ELB / ElastiCache

    def eks_cluster_price_per_hour(self, extended_support: bool = False) -> Tuple[float, bool]:
        support = EKSSupport.EXTENDED if extended_support else EKSSupport.STANDARD
        return self._lookup(f"eks {support.value}", lambda c: self._rate(c.eks.get(support)))

    def load_balancer_price_per_hour(self, lb_type: str) -> Tuple[float, bool]:
        key = LoadBalancerKey.of(lb_type, LoadBalancerDimension.HOURLY)
        return self._lookup(f"elb {key}", lambda c: self._rate(c.load_balancers.get(key)))

    def load_balancer_price_per_capacity_unit(self, lb_type: str) -> Tuple[float, bool]:
        key = LoadBalancerKey.of(lb_type, LoadBalancerDimension.CAPACITY_UNIT)
        return self._lookup(f"elb {key}", lambda c: self._rate(c.load_balancers.get(key)))

    def elasticache_on_demand_price_per_hour(self, node_type: str, engine: str) -> Tuple[float, bool]:
        key = ElastiCacheKey.of(node_type, engine)
        return self._lookup(f"elasticache {key}", lambda c: self._rate(c.elasticache.get(key)))

    # CloudWatch

    def cloudwatch_logs_ingestion_tiers(self) -> Tuple[Tuple[TierRate, ...], bool]:
        tiers = self._lookup("cloudwatch ingestion", lambda c: c.cloudwatch_ingestion_tiers)
        return tiers, bool(tiers)

    def cloudwatch_logs_storage_price(self) -> Tuple[float, bool]:
        return self._lookup("cloudwatch storage", lambda c: self._rate(c.cloudwatch_storage))

    def cloudwatch_metrics_tiers(self) -> Tuple[Tuple[TierRate, ...], bool]:
        tiers = self._lookup("cloudwatch metrics", lambda c: c.cloudwatch_metrics_tiers)
        return tiers, bool(tiers)


_client: Optional[PricingClient] = None
_client_lock = threading.Lock()


def get_pricing_client() -> PricingClient:
    """
    Get the process-wide pricing client for the compiled region.

    Returns:
        Shared PricingClient instance (catalog built on first lookup)
    """
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = PricingClient()
    return _client
