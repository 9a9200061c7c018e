import typing
from collections import OrderedDict
from typing import Any, Callable, Iterable, Iterator, List, Mapping, NamedTuple, Tuple

from deployment.resolver import DeploymentPlanError, StepName, UnknownDependency
from deployment.store import Artifact

# action(deployer, prerequisite artifacts) -> artifact of the step
StepAction = Callable[[Any, Mapping[StepName, Artifact]], Artifact]


class DuplicateStep(DeploymentPlanError):
    """Raised when two steps are registered under the same name."""


class Step(NamedTuple):
    """A single named deployment action and the steps it must run after."""

    name: StepName
    prerequisites: Tuple[StepName, ...]
    action: StepAction
    tags: Tuple[str, ...] = tuple()

    def matches(self, selector: str) -> bool:
        return selector == self.name or selector in self.tags


class StepRegistry:
    """Deployment steps in declaration order."""

    def __init__(self, steps: Iterable[Step] = None):
        self._steps: typing.OrderedDict[StepName, Step] = OrderedDict()
        for step in steps or list():
            self.add(step)

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, name: StepName) -> bool:
        return name in self._steps

    @property
    def names(self) -> List[StepName]:
        return list(self._steps)

    def add(self, step: Step) -> Step:
        if step.name in self._steps:
            raise DuplicateStep(f"Deployment step '{step.name}' is already registered")
        self._steps[step.name] = step
        return step

    def register(
        self, name: StepName, prerequisites: Iterable[StepName] = (), tags: Iterable[str] = ()
    ) -> Callable[[StepAction], StepAction]:
        """Decorator form of `add`; returns the action unchanged."""

        def decorator(action: StepAction) -> StepAction:
            step = Step(
                name=name, prerequisites=tuple(prerequisites), action=action, tags=tuple(tags)
            )
            self.add(step)
            return action

        return decorator

    def get(self, name: StepName) -> Step:
        try:
            return self._steps[name]
        except KeyError:
            raise UnknownDependency(name=name)

    def graph(self) -> typing.OrderedDict[StepName, Tuple[StepName, ...]]:
        """Returns the dependency graph (step name -> prerequisites) in declaration order."""
        return OrderedDict((step.name, step.prerequisites) for step in self)

    def select(self, selectors: Iterable[str]) -> "StepRegistry":
        """
        Returns a registry with the steps matching the given names or tags, plus all of
        their transitive prerequisites. Declaration order is preserved.
        """
        selected = set()
        pending = list()
        for selector in selectors:
            matches = [step.name for step in self if step.matches(selector)]
            if not matches:
                raise UnknownDependency(name=selector)
            pending.extend(matches)

        while pending:
            name = pending.pop()
            if name in selected:
                continue
            selected.add(name)
            for prerequisite in self.get(name).prerequisites:
                if prerequisite not in self:
                    raise UnknownDependency(name=prerequisite, required_by=name)
                pending.append(prerequisite)

        return StepRegistry(step for step in self if step.name in selected)
