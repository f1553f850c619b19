"""
Resource type normalization and service detection.

Raw resource types arrive as short codes ("ec2"), Pulumi-style namespaced
types ("aws:ec2/instance:Instance") or Terraform-ish strings. They are
translated once into a ServiceType, and everything downstream dispatches on
that enum instead of comparing strings.
"""
from enum import Enum
from typing import Dict, Optional, Tuple


class ServiceType(Enum):
    EC2 = "ec2"
    EBS = "ebs"
    RDS = "rds"
    S3 = "s3"
    LAMBDA = "lambda"
    DYNAMODB = "dynamodb"
    EKS = "eks"
    ELB = "elb"
    NAT_GATEWAY = "natgw"
    CLOUDWATCH = "cloudwatch"
    ELASTICACHE = "elasticache"
    # Recognized but never priced
    VPC = "vpc"
    SECURITY_GROUP = "securitygroup"
    SUBNET = "subnet"
    IAM = "iam"

    @property
    def is_zero_cost(self) -> bool:
        return self in ZERO_COST_DESCRIPTIONS


ZERO_COST_DESCRIPTIONS: Dict[ServiceType, str] = {
    ServiceType.VPC: (
        "VPC has no direct hourly or monthly charge. "
        "Costs may apply for associated resources (NAT Gateway, VPN, etc.)"
    ),
    ServiceType.SECURITY_GROUP: "Security Groups have no direct charge. They are a free networking feature.",
    ServiceType.SUBNET: "Subnets have no direct charge. Costs may apply for data transfer between AZs.",
    ServiceType.IAM: (
        "IAM resources (users, roles, policies) have no direct charge. They are a free AWS feature."
    ),
}

SHORT_CODES: Dict[str, ServiceType] = {
    "ec2": ServiceType.EC2,
    "ebs": ServiceType.EBS,
    "rds": ServiceType.RDS,
    "s3": ServiceType.S3,
    "lambda": ServiceType.LAMBDA,
    "dynamodb": ServiceType.DYNAMODB,
    "eks": ServiceType.EKS,
    "elb": ServiceType.ELB,
    "alb": ServiceType.ELB,
    "nlb": ServiceType.ELB,
    "natgw": ServiceType.NAT_GATEWAY,
    "cloudwatch": ServiceType.CLOUDWATCH,
    "elasticache": ServiceType.ELASTICACHE,
    "vpc": ServiceType.VPC,
    "securitygroup": ServiceType.SECURITY_GROUP,
    "subnet": ServiceType.SUBNET,
    "iam": ServiceType.IAM,
}

# Namespaced service token (the part after "aws:" and before "/") -> short code
NAMESPACE_SERVICES: Dict[str, str] = {
    "ec2": "ec2",
    "ebs": "ebs",
    "rds": "rds",
    "s3": "s3",
    "lambda": "lambda",
    "dynamodb": "dynamodb",
    "eks": "eks",
    "natgw": "natgw",
    "cloudwatch": "cloudwatch",
    "elasticache": "elasticache",
    "lb": "elb",
    "alb": "elb",
    "nlb": "elb",
    "natgateway": "natgw",
}

# Zero-cost namespaced types, matched only as whole tokens
# ("aws:ec2/vpc:Vpc" matches, "aws:ec2/vpcendpoint:VpcEndpoint" does not)
ZERO_COST_NAMESPACE_PATTERNS: Dict[str, str] = {
    "ec2/vpc": "vpc",
    "ec2/securitygroup": "securitygroup",
    "ec2/subnet": "subnet",
}

# Ordered substring fallbacks for types that are neither short nor aws:-prefixed
SUBSTRING_FALLBACKS: Tuple[Tuple[Tuple[str, ...], ServiceType], ...] = (
    (("ec2/instance",), ServiceType.EC2),
    (("ebs/volume", "ec2/volume"), ServiceType.EBS),
    (("rds/instance",), ServiceType.RDS),
    (("eks/cluster",), ServiceType.EKS),
    (("s3/bucket",), ServiceType.S3),
    (("lambda/function",), ServiceType.LAMBDA),
    (("dynamodb/table",), ServiceType.DYNAMODB),
    (("lb/loadbalancer", "alb/loadbalancer", "nlb/loadbalancer"), ServiceType.ELB),
    (("ec2/natgateway",), ServiceType.NAT_GATEWAY),
    (("cloudwatch/loggroup", "cloudwatch/logstream", "cloudwatch/metricalarm"), ServiceType.CLOUDWATCH),
    (("elasticache/",), ServiceType.ELASTICACHE),
    (("iam/",), ServiceType.IAM),
)

# Tags consulted for the SKU when the descriptor has none, highest priority first
SKU_TAG_KEYS = ("instanceType", "instance_class", "instanceClass", "type", "volumeType", "volume_type")


def normalize_resource_type(resource_type: str) -> str:
    """
    Normalize a raw resource type.

    Namespaced "aws:" types collapse to their short code when the service is
    known ("aws:ec2/volume:Volume" -> "ebs", "aws:ec2/natGateway:NatGateway" ->
    "natgw"); other values are lower-cased.
    Unknown namespaced types are returned unchanged.

    Args:
        resource_type: Raw resource type string

    Returns:
        Short code or the (lower-cased) input
    """
    raw = (resource_type or "").strip()
    lowered = raw.lower()
    if not lowered.startswith("aws:"):
        return lowered

    if "ec2/volume" in lowered:
        return "ebs"
    if "ec2/natgateway" in lowered:
        return "natgw"
    if lowered.startswith("aws:iam/"):
        return "iam"

    suffix = lowered[len("aws:"):]
    for pattern, short_code in ZERO_COST_NAMESPACE_PATTERNS.items():
        if suffix.startswith(pattern):
            remaining = suffix[len(pattern):]
            if remaining == "" or remaining.startswith(":"):
                return short_code

    service_token = suffix.split("/", 1)[0].split(":", 1)[0]
    short_code = NAMESPACE_SERVICES.get(service_token)
    if short_code is not None:
        return short_code
    return raw


def detect_service(resource_type: str) -> Optional[ServiceType]:
    """
    Map a normalized resource type to its ServiceType.

    Returns:
        ServiceType, or None when the type is not recognized
    """
    value = (resource_type or "").strip().lower()
    service = SHORT_CODES.get(value)
    if service is not None:
        return service

    for patterns, fallback in SUBSTRING_FALLBACKS:
        if any(pattern in value for pattern in patterns):
            return fallback
    return None


def resolve_service(resource_type: str) -> Optional[ServiceType]:
    """normalize_resource_type + detect_service."""
    return detect_service(normalize_resource_type(resource_type))


def extract_sku(sku: str, tags: Optional[Dict[str, str]]) -> str:
    """Return the explicit SKU, else the first non-empty SKU-bearing tag."""
    if sku and sku.strip():
        return sku.strip()
    for key in SKU_TAG_KEYS:
        value = (tags or {}).get(key, "")
        if value and value.strip():
            return value.strip()
    return ""
