from collections import namedtuple
from itertools import count

import pytest
from eth_utils import to_checksum_address

from deployment.params import Deployer
from deployment.steps import StepRegistry
from deployment.store import Artifact, ArtifactStore

# Common constants
CHAIN_ID = 11155111
OTHER_CHAIN_ID = 1
TOTAL_STAKING_REWARDS = 20_000_000 * 10**18
MINIMUM_DISTRIBUTION = 10_000_000

CONSTANTS = {
    "ORACLE": "0x0000000000000000000000000000000000000001",
    "STAKING_FUND": "0x0000000000000000000000000000000000000002",
    "TREASURY": "0x0000000000000000000000000000000000000003",
    "TOTAL_STAKING_REWARDS": TOTAL_STAKING_REWARDS,
    "MINIMUM_DISTRIBUTION": MINIMUM_DISTRIBUTION,
}


# Utility functions
def address(n: int) -> str:
    return to_checksum_address(f"0x{n:040x}")


def deploy_action(name):
    """A step action that deploys a single contract and nothing else."""

    def action(deployer, artifacts):
        instance = deployer.deploy(name)
        return deployer.artifact(name, instance)

    return action


def failing_action(name, error=None):
    def action(deployer, artifacts):
        raise error or RuntimeError(f"execution reverted: {name}")

    return action


class FakeMethod:
    def __init__(self, contract, name):
        self.contract = contract
        self.name = name


class FakeContract:
    def __init__(self, name, contract_type, address):
        self.name = name
        self.contract_type = contract_type
        self.address = address

    def __getattr__(self, item):
        if item.startswith("_"):
            raise AttributeError(item)
        return FakeMethod(self, item)


class FakeDeployer(Deployer):
    """
    A `deployment.params.Deployer` without a provider: hands out sequential addresses and
    records every deployment and transaction instead of sending it. Given an artifact
    store, deployments are checkpointed and reused exactly as the real deployer does.
    """

    def __init__(
        self, constants=None, contract_types=None, failures=(), artifacts=None, first_address=1
    ):
        # no provider, account or params file; Deployer.__init__ is skipped
        self.artifacts = artifacts
        self.reused = list()
        constants = constants or CONSTANTS
        self.constants = namedtuple("_Constants", list(constants))(**constants)
        self.contract_types = contract_types or dict()
        self.failures = set(failures)
        self.contracts = dict()
        self.deployed = list()
        self.calls = list()
        self._addresses = count(first_address)

    def deploy(self, name):
        if self.artifacts is None:
            return self._deploy(name)
        if self.artifacts.pending(name) is not None:
            self.reused.append(name)
        return super().deploy(name)

    def _deploy(self, name):
        if name in self.failures:
            raise RuntimeError(f"deployment of {name} reverted")
        contract_type = self.contract_types.get(name, name)
        instance = FakeContract(name, contract_type, address(next(self._addresses)))
        self.contracts[instance.address] = instance
        self.deployed.append(name)
        return instance

    def get_contract(self, artifact):
        instance = self.contracts.get(artifact.address)
        if instance is None:
            instance = FakeContract(artifact.name, artifact.contract_type, artifact.address)
            self.contracts[artifact.address] = instance
        return instance

    def transact(self, method, *args):
        call = (method.contract.name, method.name, args)
        if (method.contract.name, method.name) in self.failures:
            raise RuntimeError(f"{method.contract.name}.{method.name} reverted")
        self.calls.append(call)

    def artifact(self, name, instance):
        return Artifact(name=name, address=instance.address, contract_type=instance.contract_type)

    def calls_to(self, contract_name):
        return [(method, args) for name, method, args in self.calls if name == contract_name]


# Fixtures
@pytest.fixture
def artifacts_filepath(tmp_path):
    return tmp_path / "artifacts" / "sepolia.json"


@pytest.fixture
def store(artifacts_filepath):
    return ArtifactStore(filepath=artifacts_filepath, chain_id=CHAIN_ID)


@pytest.fixture
def fake_deployer():
    return FakeDeployer()


@pytest.fixture
def diamond_registry():
    """A depends on nothing, B and C on A, D on B and C."""
    registry = StepRegistry()
    registry.register("A")(deploy_action("A"))
    registry.register("B", prerequisites=["A"], tags=["left"])(deploy_action("B"))
    registry.register("C", prerequisites=["A"], tags=["right"])(deploy_action("C"))
    registry.register("D", prerequisites=["B", "C"])(deploy_action("D"))
    return registry
