"""
Deployment steps for the Neural and Voyage product lines, the OperatingSystem
whitelist and their staking pools.

Both product lines share the same deployment shape, so their steps are declared
from a single set of templates parameterized by the product name. Steps are
declared in the order their contracts were historically deployed; the resolver
keeps that order wherever the dependency graph allows it.
"""

from typing import Iterable, Mapping, Tuple

from deployment.constants import CURVE_POOLS, OPERATING_SYSTEM, PRODUCT_LINES, VOYAGE
from deployment.steps import StepRegistry
from deployment.store import Artifact

CURVE_TAG = "curve"
OPERATING_SYSTEM_TAG = "operating-system"
STAKING_TAG = "staking"

# historical tags that do not follow deploy<Name>
TAG_ALIASES = {
    "CurveIntegrationMim3Crv": ("deployCurveIntegrationMin3Crv",),
    "NeuralTokenStaking": ("deployNeuralStaking",),
    "VoyageTokenStaking": ("deployVoyageStaking",),
}


def _tags(name: str, *groups: str) -> Tuple[str, ...]:
    """Every step answers to `deploy<Name>`, its historical aliases and the given group tags."""
    return (f"deploy{name}", *TAG_ALIASES.get(name, ()), *groups)


def _product_tag(product: str) -> str:
    return product.lower()


def register_fee_handler(registry: StepRegistry, product: str) -> None:
    name = f"{product}FeeHandler"

    @registry.register(name, tags=_tags(name, _product_tag(product)))
    def deploy_fee_handler(deployer, artifacts: Mapping[str, Artifact]) -> Artifact:
        # constructor: oracle, staking fund, treasury
        fee_handler = deployer.deploy(name)
        return deployer.artifact(name, fee_handler)


def register_curve_integration(registry: StepRegistry, pool: str) -> None:
    name = f"CurveIntegration{pool}"
    fee_handler_name = f"{VOYAGE}FeeHandler"

    @registry.register(
        name,
        prerequisites=[fee_handler_name],
        tags=_tags(name, _product_tag(VOYAGE), CURVE_TAG),
    )
    def deploy_curve_integration(deployer, artifacts: Mapping[str, Artifact]) -> Artifact:
        # constructor: oracle, voyage fee handler
        integration = deployer.deploy(name)
        deployer.transact(integration.enableDepositing)
        return deployer.artifact(name, integration)


def register_token(registry: StepRegistry, product: str) -> None:
    fee_handler_name = f"{product}FeeHandler"

    @registry.register(
        product, prerequisites=[fee_handler_name], tags=_tags(product, _product_tag(product))
    )
    def deploy_token(deployer, artifacts: Mapping[str, Artifact]) -> Artifact:
        token = deployer.deploy(product)
        fee_handler = deployer.get_contract(artifacts[fee_handler_name])
        deployer.transact(getattr(fee_handler, f"set{product}"), token.address)
        return deployer.artifact(product, token)


def register_operating_system(registry: StepRegistry) -> None:
    @registry.register(OPERATING_SYSTEM, tags=_tags(OPERATING_SYSTEM, OPERATING_SYSTEM_TAG))
    def deploy_operating_system(deployer, artifacts: Mapping[str, Artifact]) -> Artifact:
        operating_system = deployer.deploy(OPERATING_SYSTEM)
        return deployer.artifact(OPERATING_SYSTEM, operating_system)


def register_vesting(registry: StepRegistry, product: str) -> None:
    name = f"{product}Vesting"

    @registry.register(name, prerequisites=[product], tags=_tags(name, _product_tag(product)))
    def deploy_vesting(deployer, artifacts: Mapping[str, Artifact]) -> Artifact:
        vesting = deployer.deploy(name)
        return deployer.artifact(name, vesting)


def register_token_staking(registry: StepRegistry, product: str) -> None:
    name = f"{product}TokenStaking"

    @registry.register(
        name,
        prerequisites=[product, OPERATING_SYSTEM],
        tags=_tags(name, _product_tag(product), STAKING_TAG),
    )
    def deploy_token_staking(deployer, artifacts: Mapping[str, Artifact]) -> Artifact:
        # constructor: token, operating system, total rewards, minimum deposit, APRs
        token = deployer.get_contract(artifacts[product])
        operating_system = deployer.get_contract(artifacts[OPERATING_SYSTEM])
        staking = deployer.deploy(name)

        deployer.transact(operating_system.updateWhitelist, staking.address, True)

        # the pool pulls its reward budget from the deployer on initialize
        total_rewards = deployer.constants.TOTAL_STAKING_REWARDS
        deployer.transact(token.approve, staking.address, total_rewards)
        deployer.transact(staking.initialize)

        deployer.transact(staking.enableDepositing)
        return deployer.artifact(name, staking)


def register_operating_system_staking(registry: StepRegistry) -> None:
    name = f"{OPERATING_SYSTEM}Staking"

    @registry.register(
        name,
        prerequisites=[OPERATING_SYSTEM],
        tags=_tags(name, OPERATING_SYSTEM_TAG, STAKING_TAG),
    )
    def deploy_operating_system_staking(deployer, artifacts: Mapping[str, Artifact]) -> Artifact:
        # constructor: oracle, operating system, staking fund
        operating_system = deployer.get_contract(artifacts[OPERATING_SYSTEM])
        staking = deployer.deploy(name)
        deployer.transact(staking.setMinimumDistribution, deployer.constants.MINIMUM_DISTRIBUTION)
        deployer.transact(operating_system.updateWhitelist, staking.address, True)
        deployer.transact(staking.enableDepositing)
        return deployer.artifact(name, staking)


def build_registry(
    product_lines: Iterable[str] = PRODUCT_LINES, curve_pools: Iterable[str] = CURVE_POOLS
) -> StepRegistry:
    product_lines, curve_pools = list(product_lines), list(curve_pools)
    registry = StepRegistry()

    for product in product_lines:
        register_fee_handler(registry, product)
    if VOYAGE in product_lines:
        for pool in curve_pools:
            register_curve_integration(registry, pool)
    for product in product_lines:
        register_token(registry, product)
    register_operating_system(registry)
    for product in product_lines:
        register_vesting(registry, product)
    for product in product_lines:
        register_token_staking(registry, product)
    register_operating_system_staking(registry)

    return registry


REGISTRY = build_registry()
