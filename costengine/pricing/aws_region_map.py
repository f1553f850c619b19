"""
AWS region code to Price List location string mapping.
Offer documents name regions by human-readable location as well as regionCode.
"""
from typing import Dict, Optional


AWS_REGION_TO_LOCATION: Dict[str, str] = {
    # US
    "us-east-1": "US East (N. Virginia)",
    "us-east-2": "US East (Ohio)",
    "us-west-1": "US West (N. California)",
    "us-west-2": "US West (Oregon)",

    # Asia Pacific
    "ap-south-1": "Asia Pacific (Mumbai)",
    "ap-southeast-1": "Asia Pacific (Singapore)",
    "ap-southeast-2": "Asia Pacific (Sydney)",
    "ap-northeast-1": "Asia Pacific (Tokyo)",
    "ap-northeast-2": "Asia Pacific (Seoul)",
    "ap-northeast-3": "Asia Pacific (Osaka)",
    "ap-east-1": "Asia Pacific (Hong Kong)",

    # Europe
    "eu-west-1": "Europe (Ireland)",
    "eu-west-2": "Europe (London)",
    "eu-west-3": "Europe (Paris)",
    "eu-central-1": "Europe (Frankfurt)",
    "eu-north-1": "Europe (Stockholm)",
    "eu-south-1": "Europe (Milan)",

    # Other
    "ca-central-1": "Canada (Central)",
    "sa-east-1": "South America (Sao Paulo)",
    "me-south-1": "Middle East (Bahrain)",
    "af-south-1": "Africa (Cape Town)",

    # GovCloud
    "us-gov-west-1": "AWS GovCloud (US-West)",
    "us-gov-east-1": "AWS GovCloud (US-East)",
}

_LOCATION_TO_REGION: Dict[str, str] = {
    location.lower(): region for region, location in AWS_REGION_TO_LOCATION.items()
}


def get_region_code_for_location(location: str) -> Optional[str]:
    """Reverse lookup: 'US East (N. Virginia)' -> 'us-east-1'."""
    return _LOCATION_TO_REGION.get(location.strip().lower())
