from collections import OrderedDict
from typing import List, Tuple

from ape.utils import ZERO_ADDRESS


def _abort() -> None:
    print("Aborting deployment!")
    exit(-1)


def _continue(prompt: str = "Continue Y/N? ") -> None:
    """Asks the user to continue."""
    answer = input(prompt)
    if answer.lower().strip() == "n":
        _abort()


def _confirm_plan(status: List[Tuple[str, str]]) -> None:
    """Shows the execution plan and asks the user to confirm it."""
    print("\nExecution plan:")
    for position, (name, action) in enumerate(status, start=1):
        print(f"\t{position}. {name} ({action})")
    _continue("Run plan Y/N? ")


def _confirm_resolution(resolved_params: OrderedDict, name: str, contract_type: str) -> None:
    """Asks the user to confirm the resolved constructor parameters for a single contract."""
    label = name if name == contract_type else f"{name} ({contract_type})"
    if len(resolved_params) == 0:
        print(f"\n(i) No constructor parameters for {label}")
        _continue(f"Deploy {label} Y/N? ")
        return

    print(f"\nConstructor parameters for {label}")
    for param_name, resolved_value in resolved_params.items():
        print(f"\t{param_name}={resolved_value}")
    _continue(f"Deploy {label} Y/N? ")
    if ZERO_ADDRESS in resolved_params.values():
        _continue("Zero Address detected for deployment parameter; Continue? Y/N? ")
