"""
Embodied (manufacturing) carbon, amortized over server lifespan and
allocated by the instance's share of the largest server in its family.
"""
from typing import Dict, Optional, Tuple

from costengine.carbon.constants import (
    EMBODIED_CARBON_PER_SERVER_KG,
    HOURS_PER_MONTH,
    SERVER_LIFESPAN_MONTHS,
)
from costengine.carbon.specs import get_instance_spec

# vCPUs of the largest size per family (the whole server)
MAX_FAMILY_VCPUS: Dict[str, int] = {
    "t2": 8, "t3": 8, "t3a": 8,
    "m4": 40, "m5": 96, "m5a": 96, "m5n": 96, "m6i": 128, "m6a": 192,
    "c4": 36, "c5": 96, "c5a": 96, "c5n": 72, "c6i": 128,
    "r4": 64, "r5": 96, "r5a": 96, "r5n": 96, "r6i": 128,
    "i3": 64, "i3en": 96, "d2": 36, "d3": 96,
    "p3": 64, "p4d": 96, "p5": 96, "g4dn": 96, "g5": 96,
    "inf1": 96, "inf2": 192,
    "trn1": 128,
}


def instance_family(instance_type: str) -> str:
    """'m5.large' -> 'm5'."""
    return (instance_type or "").strip().lower().split(".", 1)[0]


def get_max_family_vcpus(instance_type: str) -> Optional[int]:
    return MAX_FAMILY_VCPUS.get(instance_family(instance_type))


def estimate_embodied_carbon_kg(
    instance_type: str,
    months: float,
    per_server_kg: float = EMBODIED_CARBON_PER_SERVER_KG,
    lifespan_months: float = SERVER_LIFESPAN_MONTHS,
) -> Tuple[float, bool]:
    """
    Embodied carbon attributed to one instance over a period.

    kg = (per_server_kg / lifespan_months) * (vCPU / family max vCPU) * months.
    Families without a known max size are treated as whole servers.

    Returns:
        (kgCO2e, found); found is False for unknown instance types or months <= 0
    """
    if months <= 0 or lifespan_months <= 0:
        return 0.0, False
    spec = get_instance_spec(instance_type)
    if spec is None:
        return 0.0, False

    max_vcpus = get_max_family_vcpus(instance_type) or spec.vcpu_count
    vcpu_ratio = spec.vcpu_count / max_vcpus
    return (per_server_kg / lifespan_months) * vcpu_ratio * months, True


def embodied_detail(instance_type: str, months: float) -> str:
    spec = get_instance_spec(instance_type)
    if spec is None:
        return "Unknown instance type for embodied carbon calculation"
    max_vcpus = get_max_family_vcpus(instance_type) or spec.vcpu_count
    monthly = EMBODIED_CARBON_PER_SERVER_KG / SERVER_LIFESPAN_MONTHS
    return (
        f"Embodied carbon: {spec.instance_type} ({spec.vcpu_count}/{max_vcpus} vCPUs of server), "
        f"{monthly:.2f} kgCO2e/month amortized over {SERVER_LIFESPAN_MONTHS:.0f} months "
        f"for {months:.1f} months"
    )


def months_for_hours(hours: float) -> float:
    return hours / HOURS_PER_MONTH
