from collections import OrderedDict
from types import SimpleNamespace

import pytest
from ape.utils import ZERO_ADDRESS

from deployment.params import (
    ConstructorParameters,
    Constant,
    ContractName,
    DeployerAccount,
    VariableContext,
    _get_contract_names,
    _process_raw_value,
    _resolve_param,
    _validate_constructor_abi_inputs,
    _validate_method_args,
)
from deployment.store import Artifact
from deployment.utils import get_artifact_filepath, validate_config, validate_constants
from tests.conftest import CONSTANTS, address

CONFIG = {
    "deployment": {"name": "sepolia", "chain_id": 11155111},
    "artifacts": {"dir": "./deployment/artifacts/", "filename": "sepolia.json"},
    "constants": {**CONSTANTS, "MINIMUM_DEPOSIT": 0},
    "contracts": [
        {
            "VoyageFeeHandler": {
                "constructor": {
                    "_oracle": "$ORACLE",
                    "_stakingFund": "$STAKING_FUND",
                    "_treasury": "$TREASURY",
                }
            }
        },
        {
            "CurveIntegrationFrax3Crv": {
                "contract_type": "VoyageFRAX3CRVIntegration",
                "constructor": {"_oracle": "$ORACLE", "_feeHandler": "$VoyageFeeHandler"},
            }
        },
        "OperatingSystem",
        {
            "VoyageTokenStaking": {
                "constructor": {
                    "_operatingSystem": "$OperatingSystem",
                    "_totalRewards": "$TOTAL_STAKING_REWARDS",
                    "_minimumDeposit": "$MINIMUM_DEPOSIT",
                    "_admins": ["$deployer", "$TREASURY"],
                }
            }
        },
    ],
}


@pytest.fixture
def context(store):
    return VariableContext(
        contract_names=_get_contract_names(CONFIG),
        contract_name="CurveIntegrationFrax3Crv",
        constants=CONFIG["constants"],
        artifacts=store,
    )


def test_contract_names():
    assert _get_contract_names(CONFIG) == [
        "VoyageFeeHandler",
        "CurveIntegrationFrax3Crv",
        "OperatingSystem",
        "VoyageTokenStaking",
    ]


def test_malformed_contracts():
    with pytest.raises(ValueError):
        _get_contract_names({"contracts": [42]})


def test_literal_values(context):
    assert _process_raw_value(7, context) == 7
    assert _process_raw_value("plain", context) == "plain"


def test_constant(context):
    variable = _process_raw_value("$TOTAL_STAKING_REWARDS", context)
    assert isinstance(variable, Constant)
    assert variable.resolve() == CONSTANTS["TOTAL_STAKING_REWARDS"]


def test_address_constants_are_checksummed(context):
    lowercase = dict(CONFIG["constants"], ORACLE=address(0xABCDEF).lower())
    context.constants = lowercase
    assert _process_raw_value("$ORACLE", context).resolve() == address(0xABCDEF)


def test_unknown_constant(context):
    with pytest.raises(ValueError):
        _process_raw_value("$NOT_A_CONSTANT", context)


def test_contract_name_resolves_from_artifacts(context, store):
    variable = _process_raw_value("$VoyageFeeHandler", context)
    assert isinstance(variable, ContractName)
    # not deployed yet
    assert variable.resolve() == ZERO_ADDRESS

    store.put(Artifact(name="VoyageFeeHandler", address=address(11), deployed_at=1))
    assert variable.resolve() == address(11)


def test_unknown_contract_name(context):
    with pytest.raises(ValueError):
        _process_raw_value("$Unknown", context)


def test_deployer_variable_without_account(context):
    variable = _process_raw_value("$deployer", context)
    assert isinstance(variable, DeployerAccount)
    assert variable.resolve() == ZERO_ADDRESS


def test_lists(context):
    values = _process_raw_value(["$deployer", "$TREASURY", 3], context)
    assert _resolve_param(values) == [ZERO_ADDRESS, CONSTANTS["TREASURY"], 3]


def test_constructor_parameters_from_config(store):
    parameters = ConstructorParameters.from_config(CONFIG, artifacts=store)

    assert list(parameters.parameters) == _get_contract_names(CONFIG)
    assert "OperatingSystem" in parameters
    assert parameters.resolve("OperatingSystem") == OrderedDict()

    assert parameters.contract_type("CurveIntegrationFrax3Crv") == "VoyageFRAX3CRVIntegration"
    assert parameters.contract_type("VoyageFeeHandler") == "VoyageFeeHandler"

    resolved = parameters.resolve("CurveIntegrationFrax3Crv")
    assert list(resolved) == ["_oracle", "_feeHandler"]
    assert resolved["_oracle"] == CONSTANTS["ORACLE"]
    assert resolved["_feeHandler"] == ZERO_ADDRESS

    store.put(Artifact(name="VoyageFeeHandler", address=address(12), deployed_at=1))
    assert parameters.resolve("CurveIntegrationFrax3Crv")["_feeHandler"] == address(12)


def test_constructor_parameters_for_unknown_contract(store):
    parameters = ConstructorParameters.from_config(CONFIG, artifacts=store)
    with pytest.raises(ConstructorParameters.Invalid):
        parameters.resolve("Neural")


def test_artifact_filepath():
    filepath = get_artifact_filepath(CONFIG)
    assert filepath.name == "sepolia.json"
    with pytest.raises(ValueError):
        get_artifact_filepath({"artifacts": {}})


def test_validate_constants():
    validate_constants(CONSTANTS)

    missing = dict(CONSTANTS)
    del missing["TREASURY"]
    with pytest.raises(ValueError, match="TREASURY"):
        validate_constants(missing)

    invalid = dict(CONSTANTS, ORACLE="not-an-address")
    with pytest.raises(ValueError, match="ORACLE"):
        validate_constants(invalid)


def abi_input(name, type_):
    return SimpleNamespace(name=name, type=type_)


CURVE_CONSTRUCTOR = [abi_input("_oracle", "address"), abi_input("_feeHandler", "address")]


def test_constructor_inputs_match_abi():
    resolved = OrderedDict(_oracle=CONSTANTS["ORACLE"], _feeHandler=ZERO_ADDRESS)
    _validate_constructor_abi_inputs("CurveIntegrationFrax3Crv", CURVE_CONSTRUCTOR, resolved)
    _validate_constructor_abi_inputs("OperatingSystem", [], OrderedDict())


def test_constructor_inputs_length_mismatch():
    resolved = OrderedDict(_oracle=CONSTANTS["ORACLE"])
    with pytest.raises(ConstructorParameters.Invalid, match="length mismatch"):
        _validate_constructor_abi_inputs("CurveIntegrationFrax3Crv", CURVE_CONSTRUCTOR, resolved)


def test_constructor_inputs_out_of_order():
    resolved = OrderedDict(_feeHandler=ZERO_ADDRESS, _oracle=CONSTANTS["ORACLE"])
    with pytest.raises(ConstructorParameters.Invalid, match="position 0"):
        _validate_constructor_abi_inputs("CurveIntegrationFrax3Crv", CURVE_CONSTRUCTOR, resolved)


def test_constructor_inputs_wrong_name():
    resolved = OrderedDict(_oracle=CONSTANTS["ORACLE"], _handler=ZERO_ADDRESS)
    with pytest.raises(ConstructorParameters.Invalid, match="_feeHandler"):
        _validate_constructor_abi_inputs("CurveIntegrationFrax3Crv", CURVE_CONSTRUCTOR, resolved)


def test_constructor_inputs_not_encodable():
    abi_inputs = [abi_input("_token", "address"), abi_input("_totalRewards", "uint256")]

    resolved = OrderedDict(_token="not-an-address", _totalRewards=1)
    with pytest.raises(ConstructorParameters.Invalid, match="_token"):
        _validate_constructor_abi_inputs("NeuralTokenStaking", abi_inputs, resolved)

    resolved = OrderedDict(_token=address(1), _totalRewards=-1)
    with pytest.raises(ConstructorParameters.Invalid, match="_totalRewards"):
        _validate_constructor_abi_inputs("NeuralTokenStaking", abi_inputs, resolved)


def test_method_args():
    approve = SimpleNamespace(
        name="approve", inputs=[abi_input("spender", "address"), abi_input("amount", "uint256")]
    )
    named_args = _validate_method_args([approve], (address(1), 10))
    assert named_args == {"spender": address(1), "amount": 10}

    assert _validate_method_args([SimpleNamespace(name="initialize", inputs=[])], ()) == {}


def test_method_args_select_overload():
    by_amount = SimpleNamespace(name="deposit", inputs=[abi_input("amount", "uint256")])
    by_account = SimpleNamespace(name="deposit", inputs=[abi_input("account", "address")])
    assert _validate_method_args([by_amount, by_account], (address(3),)) == {
        "account": address(3)
    }
    assert _validate_method_args([by_amount, by_account], (3,)) == {"amount": 3}


def test_method_args_mismatch():
    approve = SimpleNamespace(
        name="approve", inputs=[abi_input("spender", "address"), abi_input("amount", "uint256")]
    )
    with pytest.raises(ValueError, match="approve"):
        _validate_method_args([approve], (address(1),))
    with pytest.raises(ValueError, match="approve"):
        _validate_method_args([approve], (10, address(1)))
    with pytest.raises(ValueError):
        _validate_method_args([], ())


@pytest.fixture
def live_network(monkeypatch):
    monkeypatch.setattr("deployment.utils.is_local_network", lambda: False)


@pytest.fixture
def local_network(monkeypatch):
    monkeypatch.setattr("deployment.utils.is_local_network", lambda: True)


def test_validate_config(live_network):
    assert validate_config(CONFIG, chain_id=11155111) == get_artifact_filepath(CONFIG)


def test_validate_config_chain_mismatch(live_network):
    with pytest.raises(ValueError, match="does not match"):
        validate_config(CONFIG, chain_id=1)


def test_validate_config_chain_mismatch_on_local_network(local_network):
    assert validate_config(CONFIG, chain_id=1337) == get_artifact_filepath(CONFIG)


def test_validate_config_missing_sections(live_network):
    without_deployment = {k: v for k, v in CONFIG.items() if k != "deployment"}
    with pytest.raises(ValueError, match="deployment"):
        validate_config(without_deployment, chain_id=11155111)

    without_chain_id = dict(CONFIG, deployment={"name": "sepolia"})
    with pytest.raises(ValueError, match="chain_id"):
        validate_config(without_chain_id, chain_id=11155111)

    without_contracts = dict(CONFIG, contracts=[])
    with pytest.raises(ValueError, match="contracts"):
        validate_config(without_contracts, chain_id=11155111)
