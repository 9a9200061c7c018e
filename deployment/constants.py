from pathlib import Path

import deployment

#
# Filesystem
#

DEPLOYMENT_DIR = Path(deployment.__file__).parent
ARTIFACTS_DIR = DEPLOYMENT_DIR / "artifacts"

#
# Networks
#

LOCAL_NETWORKS = ["local"]

# block confirmations to wait for before a write is considered final
DEFAULT_CONFIRMATIONS = 1

#
# Product lines
#

NEURAL = "Neural"
VOYAGE = "Voyage"

PRODUCT_LINES = [NEURAL, VOYAGE]

OPERATING_SYSTEM = "OperatingSystem"

# Voyage curve integrations, deployed as CurveIntegration<Pool>
CURVE_POOLS = ["Frax3Crv", "Mim3Crv", "Pwrd3Crv", "Usdd3Crv"]

#
# Params file constants required by the catalog
#

REQUIRED_ADDRESS_CONSTANTS = ["ORACLE", "STAKING_FUND", "TREASURY"]
REQUIRED_CONSTANTS = [
    *REQUIRED_ADDRESS_CONSTANTS,
    "TOTAL_STAKING_REWARDS",
    "MINIMUM_DISTRIBUTION",
]
