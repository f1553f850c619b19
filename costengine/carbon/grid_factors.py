"""
Grid carbon intensity per AWS region, in metric tons CO2e per kWh.
"""
from typing import Dict

# Global average, used for any region not listed below
DEFAULT_GRID_FACTOR = 0.00039278

GRID_FACTORS: Dict[str, float] = {
    "us-east-1": 0.000379,       # Virginia (SERC)
    "us-east-2": 0.000411,       # Ohio (RFC)
    "us-west-1": 0.000322,       # N. California (WECC)
    "us-west-2": 0.000322,       # Oregon (WECC)
    "ca-central-1": 0.00012,     # Canada (hydro)
    "eu-west-1": 0.0002786,      # Ireland
    "eu-north-1": 0.0000088,     # Sweden
    "ap-southeast-1": 0.000408,  # Singapore
    "ap-southeast-2": 0.00079,   # Sydney
    "ap-northeast-1": 0.000506,  # Tokyo
    "ap-south-1": 0.000708,      # Mumbai
    "sa-east-1": 0.0000617,      # Sao Paulo
}


def get_grid_factor(region: str) -> float:
    """
    Return the grid intensity for a region.

    Args:
        region: AWS region code (case-insensitive)

    Returns:
        Metric tons CO2e per kWh, DEFAULT_GRID_FACTOR for unknown regions
    """
    return GRID_FACTORS.get((region or "").strip().lower(), DEFAULT_GRID_FACTOR)
