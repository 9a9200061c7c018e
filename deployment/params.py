import typing
from abc import ABC, abstractmethod
from collections import OrderedDict, namedtuple
from pathlib import Path
from typing import Any, List, Optional

from ape import networks
from ape.api import AccountAPI, ReceiptAPI
from ape.cli.choices import select_account
from ape.contracts.base import ContractContainer, ContractInstance, ContractTransactionHandler
from ape.utils import ZERO_ADDRESS
from eth_utils import is_address, to_checksum_address
from ethpm_types import MethodABI
from web3 import Web3

from deployment.confirm import _confirm_resolution, _continue
from deployment.constants import DEFAULT_CONFIRMATIONS
from deployment.store import Artifact, ArtifactStore, artifact_from_instance
from deployment.utils import (
    _load_yaml,
    check_plugins,
    get_contract_container,
    validate_config,
    verify_contracts,
)

CONTRACT_CONSTRUCTOR_PARAMETER_KEY = "constructor"
CONTRACT_TYPE_PARAMETER_KEY = "contract_type"

w3 = Web3()


class VariableContext:
    def __init__(
        self,
        contract_names: List[str],
        contract_name: str,
        constants: typing.Dict[str, Any] = None,
        artifacts: Optional[ArtifactStore] = None,
    ):
        self.contract_names = contract_names or list()
        self.contract_name = contract_name
        self.constants = constants or dict()
        self.artifacts = artifacts


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = "$"

    @abstractmethod
    def resolve(self) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        result = isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)
        return result


class DeployerAccount(Variable):
    DEPLOYER_INDICATOR = "deployer"

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        """Returns True if the variable is a special deployer variable."""
        return value == cls.DEPLOYER_INDICATOR

    def resolve(self) -> Any:
        deployer_account = Deployer.get_account()
        if deployer_account is None:
            return ZERO_ADDRESS
        return deployer_account.address


class Constant(Variable):
    def __init__(self, constant_name: str, context: VariableContext):
        try:
            self.constant_value = context.constants[constant_name]
        except KeyError:
            raise ValueError(f"Constant '{constant_name}' not found in deployment file.")

    @classmethod
    def is_constant(cls, value: str) -> bool:
        """Returns True if the variable is a deployment constant."""
        return value.isupper()

    def resolve(self) -> Any:
        if isinstance(self.constant_value, str) and is_address(self.constant_value):
            return to_checksum_address(self.constant_value)
        return self.constant_value


class ContractName(Variable):
    """The address of a previously deployed step, looked up in the artifact store."""

    def __init__(self, contract_name: str, context: VariableContext):
        if contract_name not in context.contract_names:
            raise ValueError(f"Contract name {contract_name} not found")

        self.contract_name = contract_name
        self.artifacts = context.artifacts

    def resolve(self) -> Any:
        if self.artifacts is None:
            return ZERO_ADDRESS
        artifact = self.artifacts.get(self.contract_name)
        if artifact is None:
            # not deployed yet; eager validation
            return ZERO_ADDRESS
        return artifact.address


def _resolve_param(value: Any) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, list):
        return [_resolve_param(v) for v in value]

    if isinstance(value, Variable):
        return value.resolve()

    return value  # literally a value


def _resolve_params(parameters: OrderedDict) -> OrderedDict:
    resolved_parameters = OrderedDict()
    for name, value in parameters.items():
        resolved_parameters[name] = _resolve_param(value)

    return resolved_parameters


def _variable_from_value(variable: Any, context: VariableContext) -> Variable:
    variable = variable.strip(Variable.VARIABLE_PREFIX)
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount()
    elif Constant.is_constant(variable):
        return Constant(variable, context)
    else:
        return ContractName(variable, context)


def _process_raw_value(value: Any, variable_context: VariableContext) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, variable_context) for v in value]

    if Variable.is_variable(value):
        value = _variable_from_value(value, variable_context)

    return value


def _process_raw_values(values: OrderedDict, variable_context: VariableContext) -> OrderedDict:
    processed_parameters = OrderedDict()
    for name, value in values.items():
        processed_parameters[name] = _process_raw_value(value, variable_context)

    return processed_parameters


def _get_contract_names(config: typing.Dict) -> List[str]:
    contract_names = list()
    for contract_info in config["contracts"]:
        if isinstance(contract_info, str):
            contract_names.append(contract_info)
        elif isinstance(contract_info, dict):
            contract_names.extend(list(contract_info.keys()))
        else:
            raise ValueError("Malformed constructor parameters YAML.")

    return contract_names


def _validate_method_args(
    method_abis: List[MethodABI], args: typing.Sequence[Any]
) -> typing.Dict[str, Any]:
    """Validates the transaction arguments against the function ABI."""
    if len(method_abis) == 0:
        raise ValueError("No method abis provided for validation of args")

    abis_matching_args_length = [abi for abi in method_abis if len(abi.inputs) == len(args)]
    for abi in abis_matching_args_length:
        named_args = {}
        for arg, abi_input in zip(args, abi.inputs):
            if not w3.is_encodable(abi_input.type, arg):
                break
            named_args[abi_input.name] = arg
        else:
            return named_args
    raise ValueError(
        f"Could not find ABI for '{method_abis[0].name}' with {len(args)} arg(s) and given type(s)"
    )


def _validate_constructor_abi_inputs(
    contract_name: str,
    abi_inputs: List[Any],
    resolved_parameters: OrderedDict,
) -> None:
    """Validates the constructor parameters against the constructor ABI."""
    if len(resolved_parameters) != len(abi_inputs):
        raise ConstructorParameters.Invalid(
            f"Constructor parameters length mismatch - "
            f"{contract_name} ABI requires {len(abi_inputs)}, Got {len(resolved_parameters)}."
        )
    if not abi_inputs:
        return  # no constructor parameters

    codex = enumerate(zip(abi_inputs, resolved_parameters.items()), start=0)
    for position, (abi_input, resolved_input) in codex:
        name, value = resolved_input
        if abi_input.name != name:
            raise ConstructorParameters.Invalid(
                f"{contract_name} constructor parameter '{name}' at position {position} does not "
                f"match the expected ABI name '{abi_input.name}'."
            )

        if not w3.is_encodable(abi_input.type, value):
            raise ConstructorParameters.Invalid(
                f"Constructor param name '{name}' at position {position} has a value '{value}' "
                f"whose type does not match expected ABI type '{abi_input.type}'"
            )


class ConstructorParameters:
    """
    Represents the constructor parameters for a set of contracts, keyed by deployment
    name. A deployment name may deploy a contract type of a different name
    (e.g. CurveIntegrationFrax3Crv deploys VoyageFRAX3CRVIntegration).
    """

    class Invalid(Exception):
        """Raised when the constructor parameters are invalid"""

    def __init__(self, parameters: OrderedDict, contract_types: typing.Dict[str, str] = None):
        self.parameters = parameters
        self.contract_types = contract_types or dict()

    @classmethod
    def from_config(
        cls, config: typing.Dict, artifacts: Optional[ArtifactStore] = None
    ) -> "ConstructorParameters":
        """Loads the constructor parameters from a params config."""
        print("Processing contract constructor parameters...")
        parameters, contract_types = OrderedDict(), dict()
        contract_names = _get_contract_names(config)
        constants = config.get("constants")
        for contract_info in config["contracts"]:
            if isinstance(contract_info, str):
                parameters[contract_info] = OrderedDict()
                continue

            if not isinstance(contract_info, dict) or len(contract_info) != 1:
                raise ValueError("Malformed constructor parameters YAML.")

            contract_name = list(contract_info.keys())[0]  # only one entry
            contract_data = contract_info[contract_name] or dict()
            if CONTRACT_TYPE_PARAMETER_KEY in contract_data:
                contract_types[contract_name] = contract_data[CONTRACT_TYPE_PARAMETER_KEY]

            parameters[contract_name] = _process_raw_values(
                contract_data.get(CONTRACT_CONSTRUCTOR_PARAMETER_KEY) or OrderedDict(),
                VariableContext(
                    contract_names=contract_names,
                    contract_name=contract_name,
                    constants=constants,
                    artifacts=artifacts,
                ),
            )

        return cls(parameters=parameters, contract_types=contract_types)

    def __contains__(self, contract_name: str) -> bool:
        return contract_name in self.parameters

    def contract_type(self, contract_name: str) -> str:
        """Returns the contract type deployed under the given name."""
        return self.contract_types.get(contract_name, contract_name)

    def resolve(self, contract_name: str) -> OrderedDict:
        """Resolves the constructor parameters for a single contract."""
        try:
            parameters = self.parameters[contract_name]
        except KeyError:
            raise self.Invalid(f"No constructor parameters for {contract_name} in params file.")
        return _resolve_params(parameters)

    def validate(self) -> None:
        """Validates the constructor parameters of every contract against its ABI."""
        for contract_name in self.parameters:
            container = get_contract_container(self.contract_type(contract_name))
            _validate_constructor_abi_inputs(
                contract_name=contract_name,
                abi_inputs=container.constructor.abi.inputs,
                resolved_parameters=self.resolve(contract_name),
            )


class Transactor:
    """
    Represents an ape account plus validated/annotated transaction execution.
    Every write waits for `confirmations` blocks before returning.
    """

    def __init__(
        self,
        account: typing.Optional[AccountAPI] = None,
        autosign: bool = False,
        confirmations: int = DEFAULT_CONFIRMATIONS,
    ):
        if account is None:
            self._account = select_account()
        else:
            self._account = account
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        self._autosign = autosign
        self._account.set_autosign(autosign)
        self.confirmations = confirmations

    def get_account(self) -> AccountAPI:
        """Returns the transactor account."""
        return self._account

    def transact(self, method: ContractTransactionHandler, *args) -> ReceiptAPI:
        named_args = _validate_method_args(method_abis=method.abis, args=args)
        base_message = (
            f"\nTransacting {method.contract.contract_type.name}"
            f"[{method.contract.address[:10]}].{method}"
        )
        if named_args:
            pretty_args = "\n\t".join(f"{k}={v}" for k, v in named_args.items())
            message = f"{base_message} with arguments:\n\t{pretty_args}"
        else:
            message = f"{base_message} with no arguments"
        print(message)
        if not self._autosign:
            _continue()

        return method(*args, sender=self._account, required_confirmations=self.confirmations)


class Deployer(Transactor):
    """
    Represents an ape account plus the constructor parameters and artifact store
    of a single network deployment. This is the collaborator handed to every
    deployment step.
    """

    __DEPLOYER_ACCOUNT: AccountAPI = None

    def __init__(
        self,
        config: typing.Dict,
        path: Path,
        verify: bool,
        account: typing.Optional[AccountAPI] = None,
        autosign: bool = False,
        confirmations: int = DEFAULT_CONFIRMATIONS,
    ):
        super().__init__(account, autosign, confirmations)

        check_plugins()
        self.path = path
        self.config = config
        self.chain_id = networks.provider.chain_id
        artifacts_filepath = validate_config(config=self.config, chain_id=self.chain_id)
        self.artifacts = ArtifactStore(filepath=artifacts_filepath, chain_id=self.chain_id)
        self._set_account(self._account)
        self.constructor_parameters = ConstructorParameters.from_config(
            self.config, artifacts=self.artifacts
        )
        self.constructor_parameters.validate()

        # Little trick to expose constants as attributes (e.g., deployer.constants.FOO)
        constants = config.get("constants", {})
        _Constants = namedtuple("_Constants", list(constants))
        self.constants = _Constants(**constants)

        self.verify = verify
        self._print_deployment_info()

    @classmethod
    def from_yaml(cls, filepath: Path, *args, **kwargs) -> "Deployer":
        config = _load_yaml(filepath)
        return cls(config=config, path=filepath, *args, **kwargs)

    @classmethod
    def get_account(cls) -> AccountAPI:
        """Returns the deployer account."""
        return cls.__DEPLOYER_ACCOUNT

    @classmethod
    def _set_account(cls, deployer: AccountAPI) -> None:
        """Sets the deployer account."""
        cls.__DEPLOYER_ACCOUNT = deployer

    def deploy(self, name: str) -> ContractInstance:
        """
        Deploys the contract registered under `name` in the params file and checkpoints
        it in the artifact store right away. If an earlier run already deployed it but
        failed before its step finished, that contract is returned instead.
        """
        pending = self.artifacts.pending(name)
        if pending is not None:
            print(f"(i) Reusing {name} already deployed at {pending.address}")
            return self.get_contract(pending)

        instance = self._deploy(name)
        self.artifacts.checkpoint(self.artifact(name, instance))
        return instance

    def _deploy(self, name: str) -> ContractInstance:
        contract_type = self.constructor_parameters.contract_type(name)
        container = get_contract_container(contract_type)
        resolved_params = self.constructor_parameters.resolve(name)
        _validate_constructor_abi_inputs(
            contract_name=name,
            abi_inputs=container.constructor.abi.inputs,
            resolved_parameters=resolved_params,
        )
        return self._deploy_contract(container, name, resolved_params)

    def _deploy_contract(
        self, container: ContractContainer, name: str, resolved_params: OrderedDict
    ) -> ContractInstance:
        if not self._autosign:
            _confirm_resolution(resolved_params, name, container.contract_type.name)

        deployer_account = self.get_account()
        return deployer_account.deploy(
            container,
            *resolved_params.values(),
            required_confirmations=self.confirmations,
        )

    def get_contract(self, artifact: Artifact) -> ContractInstance:
        """Returns the contract instance of a stored artifact."""
        container = get_contract_container(artifact.contract_type or artifact.name)
        return container.at(artifact.address)

    def artifact(self, name: str, instance: ContractInstance) -> Artifact:
        return artifact_from_instance(name=name, instance=instance)

    def publish(self, artifacts: List[Artifact]) -> None:
        """Publishes the source of the given artifacts to the block explorer."""
        if not self.verify or not artifacts:
            return
        verify_contracts(contracts=[self.get_contract(artifact) for artifact in artifacts])

    def _print_deployment_info(self):
        print(
            f"Account: {self.get_account().address}",
            f"Config: {self.path}",
            f"Artifacts: {self.artifacts.filepath}",
            f"Confirmations: {self.confirmations}",
            f"Verify: {self.verify}",
            f"Ecosystem: {networks.provider.network.ecosystem.name}",
            f"Network: {networks.provider.network.name}",
            f"Chain ID: {self.chain_id}",
            f"Gas Price: {networks.provider.gas_price}",
            sep="\n",
        )
