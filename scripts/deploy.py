#!/usr/bin/python3

from pathlib import Path

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from deployment.catalog import REGISTRY
from deployment.confirm import _confirm_plan
from deployment.constants import DEFAULT_CONFIRMATIONS
from deployment.executor import SKIP, StepExecutionFailure, StepExecutor
from deployment.params import Deployer
from deployment.resolver import DeploymentPlanError, resolve
from deployment.store import ArtifactConflict
from deployment.types import MinInt, StepSelector


@click.command(cls=ConnectedProviderCommand, name="deploy")
@account_option()
@network_option(required=True)
@click.option(
    "--params-filepath",
    "-f",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    help="Constructor params filepath",
    required=True,
)
@click.option(
    "--tag",
    "-t",
    "tags",
    help="Step name or tag to deploy, together with its prerequisites. Repeatable.",
    type=StepSelector(REGISTRY),
    multiple=True,
)
@click.option(
    "--force",
    help="Redeploy steps even if an artifact already exists.",
    is_flag=True,
)
@click.option(
    "--confirmations",
    "-c",
    help="Number of block confirmations to wait for after each transaction.",
    type=MinInt(1),
    default=DEFAULT_CONFIRMATIONS,
)
@click.option(
    "--autosign",
    help="Automatically sign transactions.",
    is_flag=True,
)
@click.option(
    "--verify",
    help="Publish contract source of new deployments to the block explorer.",
    is_flag=True,
)
@click.option(
    "--dry-run",
    help="Only print the execution plan.",
    is_flag=True,
)
def cli(
    account, network, params_filepath, tags, force, confirmations, autosign, verify, dry_run
):
    """
    Deploys the contract steps selected by tag, in dependency order.

    ape run deploy --network ethereum:sepolia:infura --account deployer
    -f deployment/constructor_params/sepolia.yml -t neural
    """
    try:
        registry = REGISTRY.select(tags) if tags else REGISTRY
        plan = resolve(registry.graph())
    except DeploymentPlanError as e:
        raise click.ClickException(str(e))

    deployer = Deployer.from_yaml(
        filepath=params_filepath,
        verify=verify,
        account=account,
        autosign=autosign,
        confirmations=confirmations,
    )
    executor = StepExecutor(
        registry=registry, store=deployer.artifacts, deployer=deployer, force=force
    )

    status = executor.plan_status(plan)
    if dry_run:
        for position, (name, action) in enumerate(status, start=1):
            color = "yellow" if action == SKIP else "green"
            click.secho(f"{position}. {name} ({action})", fg=color)
        return

    if not autosign:
        _confirm_plan(status)

    try:
        report = executor.run(plan)
    except StepExecutionFailure as e:
        click.secho(f"\n! Deployment stopped at {e.step_name}", fg="red")
        click.secho(
            f"Artifacts of completed steps are kept in {deployer.artifacts.filepath}; "
            "run the same command again to resume.",
            fg="red",
        )
        raise click.ClickException(str(e))
    except ArtifactConflict as e:
        raise click.ClickException(str(e))

    deployer.publish([report.artifacts[name] for name in report.deployed])

    click.secho(
        f"\nDeployed {len(report.deployed)} step(s), skipped {len(report.skipped)}.", fg="green"
    )
    for name in plan:
        click.secho(f"    {name} {report.artifacts[name].address}", fg="cyan")


if __name__ == "__main__":
    cli()
