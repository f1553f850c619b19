"""
Domain models for carbon estimation.
"""
from typing import Dict, Any
from dataclasses import dataclass, field


CARBON_UNIT = "gCO2e"


@dataclass
class CarbonEstimate:
    """Operational and embodied emissions for one resource over a period."""
    operational_carbon_grams: float
    embodied_carbon_kg: float = 0.0
    breakdown: Dict[str, float] = field(default_factory=dict)  # e.g. {"cpu": .., "gpu": ..}
    detail: str = ""
    unit: str = CARBON_UNIT

    @property
    def total_carbon_grams(self) -> float:
        """Operational grams plus embodied carbon converted to grams."""
        return self.operational_carbon_grams + self.embodied_carbon_kg * 1000.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "operational_carbon_grams": self.operational_carbon_grams,
            "embodied_carbon_kg": self.embodied_carbon_kg,
            "total_carbon_grams": self.total_carbon_grams,
            "unit": self.unit,
            "breakdown": dict(self.breakdown),
            "detail": self.detail,
        }
