#!/usr/bin/python3

from pathlib import Path
from typing import Dict, List, Optional

import click
from ape.cli import ConnectedProviderCommand

from deployment.store import Artifact, ChainId, read_artifacts
from deployment.utils import get_chain_name


def _format_chain_name(chain_name: str) -> str:
    """Format the chain name to capitalize each word and join with slashes."""
    return "/".join(word.capitalize() for word in chain_name.split())


def _display_artifacts(artifacts: Dict[ChainId, List[Artifact]]) -> None:
    """Display artifacts grouped by chain ID, in deployment order."""
    for chain_id, chain_artifacts in sorted(artifacts.items()):
        try:
            chain_name = _format_chain_name(get_chain_name(chain_id))
        except ValueError:
            chain_name = f"Chain {chain_id}"
        click.secho(f"\n{chain_name}", fg="yellow")

        chain_artifacts = sorted(chain_artifacts, key=lambda a: (a.deployed_at, a.name))
        for artifact in chain_artifacts:
            label = artifact.name
            if artifact.contract_type and artifact.contract_type != artifact.name:
                label = f"{artifact.name} ({artifact.contract_type})"
            click.secho(f"    {artifact.deployed_at}. {label} {artifact.address}", fg="cyan")


@click.command(cls=ConnectedProviderCommand, name="list-deployments")
@click.option(
    "--artifacts-filepath",
    "-f",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    help="Artifacts filepath",
    required=True,
)
@click.option(
    "--chain-id",
    "-c",
    help="Only list artifacts of this chain.",
    type=int,
)
def cli(artifacts_filepath, chain_id: Optional[int]):
    """List deployed artifacts. Optionally filter by chain ID."""
    artifacts = read_artifacts(filepath=artifacts_filepath)
    if chain_id is not None:
        artifacts = {chain_id: artifacts.get(chain_id, list())}
    _display_artifacts(artifacts)


if __name__ == "__main__":
    cli()
