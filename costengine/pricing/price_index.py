"""
Per-service price indices built from offer documents.

Each service gets its own strongly-shaped key so a lookup can never mix up,
say, an RDS engine with an EC2 operating system. Every key part is canonical
(stripped and lower-cased) so callers differing only in case or whitespace
resolve to the same record. Indices are read-only once built.
"""
import logging
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, NamedTuple, Optional, Tuple
from dataclasses import dataclass

from costengine.pricing.offer_catalog import OfferDocument, PriceDimension, PricingDataError

logger = logging.getLogger(__name__)


def canonical(value: Optional[str]) -> str:
    """Canonical form of a lookup key part."""
    return (value or "").strip().lower()


class EC2Key(NamedTuple):
    instance_type: str
    operating_system: str
    tenancy: str

    @classmethod
    def of(cls, instance_type: str, operating_system: str, tenancy: str) -> "EC2Key":
        return cls(canonical(instance_type), canonical(operating_system), canonical(tenancy))


class RDSInstanceKey(NamedTuple):
    instance_class: str
    engine: str

    @classmethod
    def of(cls, instance_class: str, engine: str) -> "RDSInstanceKey":
        return cls(canonical(instance_class), canonical(engine))


class ElastiCacheKey(NamedTuple):
    node_type: str
    engine: str

    @classmethod
    def of(cls, node_type: str, engine: str) -> "ElastiCacheKey":
        return cls(canonical(node_type), canonical(engine))


class LoadBalancerDimension(Enum):
    HOURLY = "hourly"
    CAPACITY_UNIT = "capacity_unit"


class LoadBalancerKey(NamedTuple):
    lb_type: str  # "alb" | "nlb"
    dimension: LoadBalancerDimension

    @classmethod
    def of(cls, lb_type: str, dimension: LoadBalancerDimension) -> "LoadBalancerKey":
        return cls(canonical(lb_type), dimension)


class DynamoDBDimension(Enum):
    STORAGE = "storage"
    PROVISIONED_READ = "provisioned_read"
    PROVISIONED_WRITE = "provisioned_write"
    ON_DEMAND_READ = "on_demand_read"
    ON_DEMAND_WRITE = "on_demand_write"


class EKSSupport(Enum):
    STANDARD = "standard"
    EXTENDED = "extended"


class NATGatewayDimension(Enum):
    HOURLY = "hourly"
    DATA_PROCESSED = "data_processed"


@dataclass(frozen=True)
class RateRecord:
    """A single indexed on-demand rate."""
    price: float
    unit: str
    currency: str = "USD"
    sku: str = ""


@dataclass(frozen=True)
class TierRate:
    """A usage tier: `rate` applies to usage up to `up_to` (math.inf for the last tier)."""
    up_to: float
    rate: float


# Offer document attribute values -> API names
RDS_STORAGE_VOLUME_TYPES: Dict[str, str] = {
    "general purpose": "gp2",
    "general purpose (ssd)": "gp2",
    "general purpose-gp3": "gp3",
    "provisioned iops": "io1",
    "provisioned iops (ssd)": "io1",
    "magnetic": "standard",
}

S3_STORAGE_CLASSES: Dict[str, str] = {
    "standard": "STANDARD",
    "standard - infrequent access": "STANDARD_IA",
    "one zone - infrequent access": "ONEZONE_IA",
    "intelligent-tiering frequent access": "INTELLIGENT_TIERING",
    "glacier instant retrieval": "GLACIER_IR",
    "amazon glacier": "GLACIER",
    "glacier flexible retrieval": "GLACIER",
    "glacier deep archive": "DEEP_ARCHIVE",
}

LAMBDA_GROUPS: Dict[str, Tuple[str, str]] = {
    "aws-lambda-requests": ("requests", "x86_64"),
    "aws-lambda-requests-arm": ("requests", "arm64"),
    "aws-lambda-duration": ("duration", "x86_64"),
    "aws-lambda-duration-arm": ("duration", "arm64"),
}

LOAD_BALANCER_FAMILIES: Dict[str, str] = {
    "load balancer-application": "alb",
    "load balancer-network": "nlb",
}


@dataclass(frozen=True)
class PricingCatalog:
    """All service indices for the compiled region."""
    region: str
    publication_date: str
    ec2: Mapping[EC2Key, RateRecord]
    ebs: Mapping[str, RateRecord]
    nat_gateway: Mapping[NATGatewayDimension, RateRecord]
    rds_instances: Mapping[RDSInstanceKey, RateRecord]
    rds_storage: Mapping[str, RateRecord]
    s3: Mapping[str, RateRecord]
    lambda_requests: Mapping[str, RateRecord]
    lambda_duration: Mapping[str, RateRecord]
    dynamodb: Mapping[DynamoDBDimension, RateRecord]
    eks: Mapping[EKSSupport, RateRecord]
    load_balancers: Mapping[LoadBalancerKey, RateRecord]
    elasticache: Mapping[ElastiCacheKey, RateRecord]
    cloudwatch_ingestion_tiers: Tuple[TierRate, ...]
    cloudwatch_storage: Optional[RateRecord]
    cloudwatch_metrics_tiers: Tuple[TierRate, ...]
    currency: str = "USD"

    def counts(self) -> Dict[str, int]:
        """Number of indexed records per service, for logging."""
        return {
            "ec2": len(self.ec2),
            "ebs": len(self.ebs),
            "nat_gateway": len(self.nat_gateway),
            "rds_instances": len(self.rds_instances),
            "rds_storage": len(self.rds_storage),
            "s3": len(self.s3),
            "lambda": len(self.lambda_requests) + len(self.lambda_duration),
            "dynamodb": len(self.dynamodb),
            "eks": len(self.eks),
            "elb": len(self.load_balancers),
            "elasticache": len(self.elasticache),
            "cloudwatch": (
                len(self.cloudwatch_ingestion_tiers)
                + len(self.cloudwatch_metrics_tiers)
                + (1 if self.cloudwatch_storage else 0)
            ),
        }


def _record(product_sku: str, dimension: PriceDimension) -> RateRecord:
    return RateRecord(price=dimension.price_per_unit, unit=dimension.unit, sku=product_sku)


def _first_dimension(doc: OfferDocument, sku: str) -> Optional[PriceDimension]:
    """Lowest tier for a SKU."""
    dimensions = doc.dimensions_for(sku)
    return dimensions[0] if dimensions else None


def _first_nonzero_dimension(doc: OfferDocument, sku: str) -> Optional[PriceDimension]:
    """First paid tier for a SKU (skips free-tier rows priced at 0)."""
    for dimension in doc.dimensions_for(sku):
        if dimension.price_per_unit > 0:
            return dimension
    return None


def _tiers(doc: OfferDocument, sku: str) -> Tuple[TierRate, ...]:
    return tuple(TierRate(up_to=d.end_range, rate=d.price_per_unit) for d in doc.dimensions_for(sku))


def index_ec2_instances(doc: OfferDocument) -> Dict[EC2Key, RateRecord]:
    """
    Index on-demand EC2 instance rates.

    Only standard images without pre-installed software (e.g. SQL Web) on
    "Used" capacity are indexed, so a capacity reservation or a licensed image
    never answers a plain Linux lookup. The first matching row wins.
    """
    index: Dict[EC2Key, RateRecord] = {}
    for sku, product in doc.products.items():
        if product.product_family != "Compute Instance":
            continue
        if canonical(product.attr("capacitystatus")) != "used":
            continue
        if canonical(product.attr("preInstalledSw")) not in ("na", ""):
            continue

        instance_type = product.attr("instanceType")
        operating_system = product.attr("operatingSystem")
        tenancy = product.attr("tenancy")
        if not (instance_type and operating_system and tenancy):
            continue

        dimension = _first_dimension(doc, sku)
        if dimension is None:
            continue
        key = EC2Key.of(instance_type, operating_system, tenancy)
        if key not in index:
            index[key] = _record(sku, dimension)
    return index


def index_ebs_volumes(doc: OfferDocument) -> Dict[str, RateRecord]:
    """Index EBS volume storage rates (GB-Mo) by volume API name."""
    index: Dict[str, RateRecord] = {}
    for sku, product in doc.products.items():
        if product.product_family != "Storage":
            continue
        volume_type = canonical(product.attr("volumeApiName"))
        if not volume_type or volume_type in index:
            continue
        dimension = _first_dimension(doc, sku)
        if dimension is not None:
            index[volume_type] = _record(sku, dimension)
    return index


def index_nat_gateway(doc: OfferDocument) -> Dict[NATGatewayDimension, RateRecord]:
    """Index the NAT Gateway hourly and per-GB processing rates."""
    index: Dict[NATGatewayDimension, RateRecord] = {}
    for sku, product in doc.products.items():
        if product.product_family != "NAT Gateway":
            continue
        usage_type = canonical(product.attr("usagetype"))
        if usage_type.endswith("natgateway-hours"):
            dimension_key = NATGatewayDimension.HOURLY
        elif usage_type.endswith("natgateway-bytes"):
            dimension_key = NATGatewayDimension.DATA_PROCESSED
        else:
            continue
        dimension = _first_dimension(doc, sku)
        if dimension is not None and dimension_key not in index:
            index[dimension_key] = _record(sku, dimension)
    return index


def index_rds_instances(doc: OfferDocument) -> Dict[RDSInstanceKey, RateRecord]:
    """Index Single-AZ RDS instance rates by (instance class, engine)."""
    index: Dict[RDSInstanceKey, RateRecord] = {}
    for sku, product in doc.products.items():
        if product.product_family != "Database Instance":
            continue
        if canonical(product.attr("deploymentOption")) != "single-az":
            continue
        instance_class = product.attr("instanceType")
        engine = product.attr("databaseEngine")
        if not (instance_class and engine):
            continue
        dimension = _first_dimension(doc, sku)
        if dimension is None:
            continue
        key = RDSInstanceKey.of(instance_class, engine)
        if key not in index:
            index[key] = _record(sku, dimension)
    return index


def _rds_storage_type(volume_type: str, usage_type: str) -> Optional[str]:
    storage_type = RDS_STORAGE_VOLUME_TYPES.get(canonical(volume_type))
    if storage_type == "gp2" and "gp3" in usage_type:
        return "gp3"
    if storage_type == "io1" and "io2" in usage_type:
        return "io2"
    return storage_type


def index_rds_storage(doc: OfferDocument) -> Dict[str, RateRecord]:
    """Index Single-AZ RDS storage rates (GB-Mo) by storage type."""
    index: Dict[str, RateRecord] = {}
    for sku, product in doc.products.items():
        if product.product_family != "Database Storage":
            continue
        if canonical(product.attr("deploymentOption")) not in ("single-az", ""):
            continue
        storage_type = _rds_storage_type(product.attr("volumeType"), canonical(product.attr("usagetype")))
        if storage_type is None or storage_type in index:
            continue
        dimension = _first_dimension(doc, sku)
        if dimension is not None:
            index[storage_type] = _record(sku, dimension)
    return index


def index_s3_storage(doc: OfferDocument) -> Dict[str, RateRecord]:
    """Index S3 first-tier storage rates by storage class (STANDARD, GLACIER, ...)."""
    index: Dict[str, RateRecord] = {}
    for sku, product in doc.products.items():
        if product.product_family != "Storage":
            continue
        storage_class = S3_STORAGE_CLASSES.get(canonical(product.attr("volumeType")))
        if storage_class is None:
            continue
        key = canonical(storage_class)
        if key in index:
            continue
        dimension = _first_dimension(doc, sku)
        if dimension is not None:
            index[key] = _record(sku, dimension)
    return index


def index_lambda(doc: OfferDocument) -> Tuple[Dict[str, RateRecord], Dict[str, RateRecord]]:
    """
    Index Lambda request and GB-second rates by architecture.

    Returns:
        (requests by architecture, duration by architecture)
    """
    requests: Dict[str, RateRecord] = {}
    duration: Dict[str, RateRecord] = {}
    for sku, product in doc.products.items():
        if product.product_family != "Serverless":
            continue
        group = LAMBDA_GROUPS.get(canonical(product.attr("group")))
        if group is None:
            continue
        kind, architecture = group
        target = requests if kind == "requests" else duration
        if architecture in target:
            continue
        dimension = _first_dimension(doc, sku)
        if dimension is not None:
            target[architecture] = _record(sku, dimension)
    return requests, duration


def _dynamodb_dimension(product) -> Optional[DynamoDBDimension]:
    family = product.product_family
    group = canonical(product.attr("group"))
    usage_type = canonical(product.attr("usagetype"))
    if family == "Database Storage":
        if "timedstorage-bytehrs" in usage_type and "ia-timedstorage" not in usage_type:
            return DynamoDBDimension.STORAGE
        return None
    if family == "Provisioned IOPS":
        if group == "ddb-readunits":
            return DynamoDBDimension.PROVISIONED_READ
        if group == "ddb-writeunits":
            return DynamoDBDimension.PROVISIONED_WRITE
        return None
    if family == "Amazon DynamoDB PayPerRequest Throughput":
        if group == "ddb-readunits":
            return DynamoDBDimension.ON_DEMAND_READ
        if group == "ddb-writeunits":
            return DynamoDBDimension.ON_DEMAND_WRITE
    return None


def index_dynamodb(doc: OfferDocument) -> Dict[DynamoDBDimension, RateRecord]:
    """Index DynamoDB storage, provisioned and on-demand throughput rates."""
    index: Dict[DynamoDBDimension, RateRecord] = {}
    for sku, product in doc.products.items():
        dimension_key = _dynamodb_dimension(product)
        if dimension_key is None or dimension_key in index:
            continue
        # Free-tier rows are priced at 0; index the first paid tier
        dimension = _first_nonzero_dimension(doc, sku)
        if dimension is not None:
            index[dimension_key] = _record(sku, dimension)
    return index


def index_eks(doc: OfferDocument) -> Dict[EKSSupport, RateRecord]:
    """Index EKS control plane hourly rates (standard and extended support)."""
    index: Dict[EKSSupport, RateRecord] = {}
    for sku, product in doc.products.items():
        if product.product_family != "Compute":
            continue
        usage_type = canonical(product.attr("usagetype"))
        if usage_type.endswith("percluster"):
            support = EKSSupport.STANDARD
        elif "extendedsupport" in usage_type:
            support = EKSSupport.EXTENDED
        else:
            continue
        dimension = _first_dimension(doc, sku)
        if dimension is not None and support not in index:
            index[support] = _record(sku, dimension)
    return index


def index_load_balancers(doc: OfferDocument) -> Dict[LoadBalancerKey, RateRecord]:
    """Index ALB/NLB hourly and capacity-unit rates. Classic load balancers are skipped."""
    index: Dict[LoadBalancerKey, RateRecord] = {}
    for sku, product in doc.products.items():
        lb_type = LOAD_BALANCER_FAMILIES.get(canonical(product.product_family))
        if lb_type is None:
            continue
        usage_type = canonical(product.attr("usagetype"))
        if usage_type.endswith("loadbalancerusage"):
            key = LoadBalancerKey.of(lb_type, LoadBalancerDimension.HOURLY)
        elif usage_type.endswith("lcuusage"):
            key = LoadBalancerKey.of(lb_type, LoadBalancerDimension.CAPACITY_UNIT)
        else:
            continue
        dimension = _first_dimension(doc, sku)
        if dimension is not None and key not in index:
            index[key] = _record(sku, dimension)
    return index


def index_elasticache(doc: OfferDocument) -> Dict[ElastiCacheKey, RateRecord]:
    """Index ElastiCache node rates by (node type, engine)."""
    index: Dict[ElastiCacheKey, RateRecord] = {}
    for sku, product in doc.products.items():
        if product.product_family != "Cache Instance":
            continue
        node_type = product.attr("instanceType")
        engine = product.attr("cacheEngine")
        if not (node_type and engine):
            continue
        dimension = _first_dimension(doc, sku)
        if dimension is None:
            continue
        key = ElastiCacheKey.of(node_type, engine)
        if key not in index:
            index[key] = _record(sku, dimension)
    return index


def index_cloudwatch(
    doc: OfferDocument,
) -> Tuple[Tuple[TierRate, ...], Optional[RateRecord], Tuple[TierRate, ...]]:
    """
    Index CloudWatch logs and metrics pricing.

    Returns:
        (log ingestion tiers, log storage rate, custom metric tiers)
    """
    ingestion: Tuple[TierRate, ...] = ()
    storage: Optional[RateRecord] = None
    metrics: Tuple[TierRate, ...] = ()
    for sku, product in doc.products.items():
        family = product.product_family
        if family == "Data Payload" and not ingestion:
            ingestion = _tiers(doc, sku)
        elif family == "Storage Snapshot" and storage is None:
            dimension = _first_dimension(doc, sku)
            if dimension is not None:
                storage = _record(sku, dimension)
        elif family == "Metric" and not metrics:
            metrics = _tiers(doc, sku)
    return ingestion, storage, metrics


def _check_region(documents: Dict[str, OfferDocument], region: str) -> None:
    for service_code, doc in documents.items():
        detected = doc.detect_region()
        if detected is not None and detected != region:
            raise PricingDataError(
                f"{service_code}: pricing data is for region {detected}, expected {region}"
            )


def _publication_date(documents: Dict[str, OfferDocument]) -> str:
    dates: List[str] = [doc.publication_date for doc in documents.values() if doc.publication_date]
    return max(dates) if dates else ""


def build_catalog(documents: Dict[str, OfferDocument], region: str) -> PricingCatalog:
    """
    Build every service index for the compiled region.

    Args:
        documents: Parsed offer documents keyed by service code
        region: Compiled region code; every document must agree with it

    Returns:
        Immutable PricingCatalog

    Raises:
        PricingDataError: On a region mismatch, a missing document or malformed data
    """
    region = canonical(region)
    _check_region(documents, region)

    try:
        ec2_doc = documents["AmazonEC2"]
        lambda_requests, lambda_duration = index_lambda(documents["AWSLambda"])
        ingestion, log_storage, metrics = index_cloudwatch(documents["AmazonCloudWatch"])
        catalog = PricingCatalog(
            region=region,
            publication_date=_publication_date(documents),
            ec2=MappingProxyType(index_ec2_instances(ec2_doc)),
            ebs=MappingProxyType(index_ebs_volumes(ec2_doc)),
            nat_gateway=MappingProxyType(index_nat_gateway(ec2_doc)),
            rds_instances=MappingProxyType(index_rds_instances(documents["AmazonRDS"])),
            rds_storage=MappingProxyType(index_rds_storage(documents["AmazonRDS"])),
            s3=MappingProxyType(index_s3_storage(documents["AmazonS3"])),
            lambda_requests=MappingProxyType(lambda_requests),
            lambda_duration=MappingProxyType(lambda_duration),
            dynamodb=MappingProxyType(index_dynamodb(documents["AmazonDynamoDB"])),
            eks=MappingProxyType(index_eks(documents["AmazonEKS"])),
            load_balancers=MappingProxyType(index_load_balancers(documents["AWSELB"])),
            elasticache=MappingProxyType(index_elasticache(documents["AmazonElastiCache"])),
            cloudwatch_ingestion_tiers=ingestion,
            cloudwatch_storage=log_storage,
            cloudwatch_metrics_tiers=metrics,
        )
    except KeyError as e:
        raise PricingDataError(f"Missing pricing document for service {e}") from e
    except (TypeError, ValueError, AttributeError) as e:
        raise PricingDataError(f"Malformed pricing data: {e}") from e

    counts = catalog.counts()
    if not catalog.ec2:
        logger.warning(f"No EC2 instance prices indexed for region {region}")
    logger.info(
        f"Pricing catalog built for {region}: "
        + ", ".join(f"{name}={count}" for name, count in counts.items())
    )
    return catalog
