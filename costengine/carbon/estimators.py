"""
Operational carbon estimators (Cloud Carbon Footprint methodology).

Compute: average watts are interpolated between idle and full-load per-vCPU
power at the given utilization, scaled by vCPU count and hours, then by PUE and
the regional grid factor. Storage: capacity in TB times a per-technology power
coefficient times the replication factor.

Every estimator returns found=False (and 0 grams) for instance types or storage
classes missing from the spec tables, so callers can omit carbon rather than
report a wrong number.
"""
from typing import Optional, Tuple

from costengine.carbon.constants import (
    ARM64_EFFICIENCY_FACTOR,
    AWS_PUE,
    DEFAULT_UTILIZATION,
    GRAMS_PER_METRIC_TON,
    LAMBDA_MAX_WATTS_PER_VCPU,
    LAMBDA_MB_PER_VCPU,
    LAMBDA_MIN_WATTS_PER_VCPU,
    SSD_POWER_COEFFICIENT,
)
from costengine.carbon.grid_factors import get_grid_factor
from costengine.carbon.specs import get_gpu_spec, get_instance_spec, get_storage_spec

EKS_CARBON_DETAIL = (
    "EKS control plane carbon is shared and not allocated to customers. "
    "Estimate worker nodes as EC2 instances for cluster carbon footprint."
)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def resolve_utilization(request_value: float = 0.0, resource_override: Optional[float] = None) -> float:
    """
    Pick the CPU utilization for a carbon estimate.

    A per-resource override wins over the request-level value, which wins over
    DEFAULT_UTILIZATION. Zero or negative values count as unset. Result is in [0, 1].
    """
    if resource_override is not None and resource_override > 0:
        return clamp(resource_override, 0.0, 1.0)
    if request_value and request_value > 0:
        return clamp(request_value, 0.0, 1.0)
    return DEFAULT_UTILIZATION


def energy_to_grams(energy_kwh: float, region: str) -> float:
    """Facility energy (with PUE) times grid intensity, in grams CO2e."""
    return energy_kwh * AWS_PUE * get_grid_factor(region) * GRAMS_PER_METRIC_TON


def cpu_energy_kwh(min_watts: float, max_watts: float, vcpu_count: float, utilization: float, hours: float) -> float:
    average_watts = min_watts + utilization * (max_watts - min_watts)
    return average_watts * vcpu_count * hours / 1000.0


def gpu_power_watts(instance_type: str, utilization: float) -> float:
    """Total GPU draw for an instance at the given utilization (0 without GPUs)."""
    spec = get_gpu_spec(instance_type)
    if spec is None:
        return 0.0
    return spec.tdp_per_gpu_watts * spec.gpu_count * utilization


def estimate_ec2_carbon_with_breakdown(
    instance_type: str,
    region: str,
    utilization: float,
    hours: float,
    include_gpu: bool = True,
) -> Tuple[float, float, bool]:
    """
    Operational carbon of one instance, split into CPU and GPU parts.

    Returns:
        (cpu_grams, gpu_grams, found)
    """
    spec = get_instance_spec(instance_type)
    if spec is None:
        return 0.0, 0.0, False

    cpu_grams = energy_to_grams(
        cpu_energy_kwh(spec.min_watts, spec.max_watts, spec.vcpu_count, utilization, hours),
        region,
    )
    gpu_grams = 0.0
    if include_gpu:
        watts = gpu_power_watts(instance_type, utilization)
        if watts > 0:
            gpu_grams = energy_to_grams(watts * hours / 1000.0, region)
    return cpu_grams, gpu_grams, True


def estimate_ec2_carbon_grams(
    instance_type: str,
    region: str,
    utilization: float,
    hours: float,
    include_gpu: bool = True,
) -> Tuple[float, bool]:
    """Operational carbon of one instance (CPU + GPU)."""
    cpu_grams, gpu_grams, found = estimate_ec2_carbon_with_breakdown(
        instance_type, region, utilization, hours, include_gpu
    )
    if not found:
        return 0.0, False
    return cpu_grams + gpu_grams, True


def storage_energy_kwh(size_gb: float, hours: float, power_coefficient: float, replication_factor: int) -> float:
    size_tb = size_gb / 1024.0
    return size_tb * hours * power_coefficient * replication_factor / 1000.0


def estimate_storage_carbon_grams(
    service_type: str,
    storage_class: str,
    size_gb: float,
    region: str,
    hours: float,
) -> Tuple[float, bool]:
    """
    Operational carbon of stored data for a (service, storage class).

    Returns:
        (grams, found); found is False for unknown classes or negative inputs
    """
    if size_gb < 0 or hours < 0:
        return 0.0, False
    spec = get_storage_spec(service_type, storage_class)
    if spec is None:
        return 0.0, False
    energy = storage_energy_kwh(size_gb, hours, spec.power_coefficient, spec.replication_factor)
    return energy_to_grams(energy, region), True


def estimate_ebs_carbon_grams(volume_type: str, size_gb: float, region: str, hours: float) -> Tuple[float, bool]:
    return estimate_storage_carbon_grams("ebs", volume_type, size_gb, region, hours)


def estimate_s3_carbon_grams(storage_class: str, size_gb: float, region: str, hours: float) -> Tuple[float, bool]:
    return estimate_storage_carbon_grams("s3", storage_class, size_gb, region, hours)


def estimate_dynamodb_carbon_grams(size_gb: float, region: str, hours: float) -> Tuple[float, bool]:
    """DynamoDB table storage: SSD with 3x replication unless the spec table says otherwise."""
    if size_gb < 0 or hours < 0:
        return 0.0, False
    grams, found = estimate_storage_carbon_grams("dynamodb", "DYNAMODB", size_gb, region, hours)
    if found:
        return grams, True
    return energy_to_grams(storage_energy_kwh(size_gb, hours, SSD_POWER_COEFFICIENT, 3), region), True


def rds_to_ec2_instance_type(instance_class: str) -> str:
    """'db.m5.large' -> 'm5.large'."""
    value = (instance_class or "").strip().lower()
    return value[3:] if value.startswith("db.") else value


def estimate_rds_carbon_with_breakdown(
    instance_class: str,
    region: str,
    utilization: float,
    hours: float,
    storage_type: str,
    storage_size_gb: float,
    multi_az: bool = False,
) -> Tuple[float, float, bool]:
    """
    Operational carbon of an RDS instance, split into compute and storage.

    Compute uses the equivalent EC2 instance without GPUs; storage uses the EBS
    volume of the same type. Multi-AZ doubles both parts (standby replica).

    Returns:
        (compute_grams, storage_grams, found)
    """
    compute_grams, found = estimate_ec2_carbon_grams(
        rds_to_ec2_instance_type(instance_class), region, utilization, hours, include_gpu=False
    )
    if not found:
        return 0.0, 0.0, False

    storage_grams, _ = estimate_ebs_carbon_grams(storage_type, storage_size_gb, region, hours)
    if multi_az:
        compute_grams *= 2
        storage_grams *= 2
    return compute_grams, storage_grams, True


def estimate_lambda_carbon_grams(
    memory_mb: int,
    duration_ms: float,
    invocations: int,
    architecture: str,
    region: str,
) -> Tuple[float, bool]:
    """
    Operational carbon of a Lambda function's monthly invocations.

    vCPU equivalent is memory / 1792 MB; compute hours are duration x invocations;
    power is interpolated at the default 50% utilization. arm64 draws 20% less.
    """
    if memory_mb <= 0 or duration_ms < 0 or invocations < 0:
        return 0.0, False

    vcpu_equivalent = memory_mb / LAMBDA_MB_PER_VCPU
    running_hours = duration_ms * invocations / 3_600_000.0
    energy = cpu_energy_kwh(
        LAMBDA_MIN_WATTS_PER_VCPU, LAMBDA_MAX_WATTS_PER_VCPU, vcpu_equivalent, DEFAULT_UTILIZATION, running_hours
    )
    grams = energy_to_grams(energy, region)
    if (architecture or "").strip().lower() == "arm64":
        grams *= ARM64_EFFICIENCY_FACTOR
    return grams, True


def elasticache_to_ec2_instance_type(node_type: str) -> str:
    """'cache.r5.large' -> 'r5.large'."""
    value = (node_type or "").strip().lower()
    return value[len("cache."):] if value.startswith("cache.") else value


def estimate_elasticache_carbon_grams(
    node_type: str,
    region: str,
    utilization: float,
    hours: float,
    nodes: int = 1,
) -> Tuple[float, bool]:
    """Operational carbon of a cache cluster: per-node EC2 equivalent times node count."""
    node_grams, found = estimate_ec2_carbon_grams(
        elasticache_to_ec2_instance_type(node_type), region, utilization, hours, include_gpu=False
    )
    if not found:
        return 0.0, False
    return node_grams * max(nodes, 1), True


def estimate_eks_carbon_grams() -> Tuple[float, bool]:
    """EKS control plane: always exactly 0 (see EKS_CARBON_DETAIL)."""
    return 0.0, True
