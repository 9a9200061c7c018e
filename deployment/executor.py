from types import MappingProxyType
from typing import Any, Dict, List, Mapping, NamedTuple, Sequence

from deployment.resolver import StepName
from deployment.steps import Step, StepRegistry
from deployment.store import Artifact, ArtifactStore

DEPLOY = "deploy"
SKIP = "skip"
REDEPLOY = "redeploy"
RESUME = "resume"


class StepExecutionFailure(Exception):
    """Raised when a deployment step fails; artifacts of earlier steps remain stored."""

    def __init__(self, step_name: StepName, cause: BaseException):
        self.step_name = step_name
        self.cause = cause
        super().__init__(f"Deployment step '{step_name}' failed: {cause!r}")


class ExecutionReport(NamedTuple):
    deployed: List[StepName]
    skipped: List[StepName]
    artifacts: Dict[StepName, Artifact]


class StepExecutor:
    """
    Runs the steps of an execution plan one at a time, in order.

    A step whose artifact is already stored is skipped and its artifact reused,
    unless `force` is set. Every new artifact is committed to the store before the
    next step starts, so an interrupted or failed run can be resumed by running
    the same plan again. A step that failed after its contract was deployed resumes
    with that contract (see `ArtifactStore.checkpoint`).
    """

    def __init__(
        self,
        registry: StepRegistry,
        store: ArtifactStore,
        deployer: Any,
        force: bool = False,
    ):
        self.registry = registry
        self.store = store
        self.deployer = deployer
        self.force = force

    def plan_status(self, plan: Sequence[StepName]) -> List[tuple]:
        """Returns (step name, action) pairs describing what `run` would do."""
        status = list()
        for name in plan:
            if name not in self.store:
                status.append((name, RESUME if self.store.pending(name) else DEPLOY))
            else:
                status.append((name, REDEPLOY if self.force else SKIP))
        return status

    def _prerequisite_artifacts(
        self, step: Step, artifacts: Dict[StepName, Artifact]
    ) -> Mapping[StepName, Artifact]:
        available = dict()
        for prerequisite in step.prerequisites:
            artifact = artifacts.get(prerequisite) or self.store.get(prerequisite)
            if artifact is None:
                raise StepExecutionFailure(
                    step.name, LookupError(f"No artifact for prerequisite '{prerequisite}'")
                )
            available[prerequisite] = artifact
        return MappingProxyType(available)

    def _execute(self, step: Step, artifacts: Dict[StepName, Artifact]) -> Artifact:
        prerequisites = self._prerequisite_artifacts(step, artifacts)
        print(f"\n(i) Running deployment step {step.name}")
        try:
            artifact = step.action(self.deployer, prerequisites)
        except Exception as e:
            raise StepExecutionFailure(step.name, e) from e

        if not isinstance(artifact, Artifact):
            raise StepExecutionFailure(
                step.name, TypeError(f"Expected an Artifact, got {type(artifact).__name__}")
            )
        if artifact.name != step.name:
            raise StepExecutionFailure(
                step.name, ValueError(f"Step produced an artifact named '{artifact.name}'")
            )

        artifact = artifact._replace(deployed_at=self.store.next_ordinal())
        if self.force:
            return self.store.replace(artifact)
        return self.store.put(artifact)

    def run(self, plan: Sequence[StepName]) -> ExecutionReport:
        deployed, skipped = list(), list()
        artifacts: Dict[StepName, Artifact] = dict()
        for name in plan:
            step = self.registry.get(name)
            existing = self.store.get(name)
            if existing is not None and not self.force:
                print(f"(i) Skipping {name}; already deployed at {existing.address}")
                artifacts[name] = existing
                skipped.append(name)
                continue

            artifact = self._execute(step, artifacts)
            print(f"(i) {name} deployed at {artifact.address}")
            artifacts[name] = artifact
            deployed.append(name)

        return ExecutionReport(deployed=deployed, skipped=skipped, artifacts=artifacts)
