from collections import OrderedDict, deque
from typing import Dict, Iterable, List, Mapping, Optional

StepName = str


class DeploymentPlanError(ValueError):
    """Raised when a set of steps cannot be turned into an execution plan."""


class UnknownDependency(DeploymentPlanError):
    def __init__(self, name: StepName, required_by: Optional[StepName] = None):
        self.name = name
        self.required_by = required_by
        message = f"Unknown deployment step '{name}'"
        if required_by:
            message += f" required by '{required_by}'"
        super().__init__(message)


class CyclicDependency(DeploymentPlanError):
    def __init__(self, name: StepName, cycle: Optional[List[StepName]] = None):
        self.name = name
        self.cycle = cycle or [name]
        super().__init__(
            f"Cyclic dependency detected at step '{name}': {' -> '.join(self.cycle)}"
        )


def _check_references(graph: Mapping[StepName, Iterable[StepName]]) -> None:
    for name, prerequisites in graph.items():
        for prerequisite in prerequisites:
            if prerequisite not in graph:
                raise UnknownDependency(name=prerequisite, required_by=name)


def _find_cycle(
    graph: Mapping[StepName, Iterable[StepName]], candidates: Iterable[StepName]
) -> List[StepName]:
    """Walks prerequisite edges among unresolved steps until a step repeats."""
    candidates = list(candidates)
    remaining = set(candidates)
    path, seen = list(), dict()
    current = candidates[0]
    while current not in seen:
        seen[current] = len(path)
        path.append(current)
        # every unresolved step has at least one unresolved prerequisite
        current = next(p for p in graph[current] if p in remaining)
    return path[seen[current] :] + [current]


def resolve(graph: Mapping[StepName, Iterable[StepName]]) -> List[StepName]:
    """
    Returns an execution plan for the given dependency graph: every step appears
    after all of its prerequisites. When several steps are ready at the same time
    the one declared first (graph insertion order) goes first.
    """
    graph = OrderedDict((name, tuple(prerequisites)) for name, prerequisites in graph.items())
    _check_references(graph)

    position = {name: index for index, name in enumerate(graph)}
    unresolved: Dict[StepName, int] = {name: len(set(deps)) for name, deps in graph.items()}
    dependents: Dict[StepName, List[StepName]] = {name: list() for name in graph}
    for name, prerequisites in graph.items():
        for prerequisite in set(prerequisites):
            dependents[prerequisite].append(name)

    ready = deque(name for name, count in unresolved.items() if count == 0)
    plan = list()
    while ready:
        name = ready.popleft()
        plan.append(name)
        newly_ready = list()
        for dependent in dependents[name]:
            unresolved[dependent] -= 1
            if unresolved[dependent] == 0:
                newly_ready.append(dependent)
        if newly_ready:
            ready = deque(sorted([*ready, *newly_ready], key=position.__getitem__))

    if len(plan) != len(graph):
        stuck = [name for name in graph if unresolved[name] > 0]
        cycle = _find_cycle(graph, stuck)
        raise CyclicDependency(name=cycle[0], cycle=cycle)

    return plan
