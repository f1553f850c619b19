"""
Carbon estimation constants (Cloud Carbon Footprint methodology).
"""

# AWS data center Power Usage Effectiveness
AWS_PUE = 1.135

# Assumed average CPU utilization when none is given
DEFAULT_UTILIZATION = 0.5

HOURS_PER_MONTH = 730.0

# Storage power coefficients, Wh per TB-hour
SSD_POWER_COEFFICIENT = 1.2

# Graviton (arm64) draws ~20% less power for the same work
ARM64_EFFICIENCY_FACTOR = 0.8

# Embodied (manufacturing) emissions of one server, amortized over its lifespan
EMBODIED_CARBON_PER_SERVER_KG = 1000.0
SERVER_LIFESPAN_MONTHS = 48.0

# Lambda has no published instance spec; 1792 MB of memory buys one vCPU
LAMBDA_MB_PER_VCPU = 1792.0
LAMBDA_MIN_WATTS_PER_VCPU = 2.12
LAMBDA_MAX_WATTS_PER_VCPU = 4.5

GRAMS_PER_METRIC_TON = 1_000_000
