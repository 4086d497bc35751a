"""
DocFlow - Step Dependency Graph

The dependency graph of a workflow plan: which steps are ready given a set of
completed steps, how a plan splits into parallel waves, and why a plan cannot
make progress.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set

from docflow.orchestration.types import WorkflowStep


@dataclass(eq=False)
class StepNode:
    """A step plus its edges. Nodes compare by step id."""

    step: WorkflowStep
    dependents: Set[str] = field(default_factory=set)

    @property
    def step_id(self) -> str:
        return self.step.id

    @property
    def dependencies(self) -> FrozenSet[str]:
        return frozenset(self.step.dependencies)

    def __hash__(self) -> int:
        return hash(self.step_id)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, StepNode) and other.step_id == self.step_id


class StepGraph:
    """
    Dependency graph over the steps of one plan.

    Dependencies on ids outside the plan are kept, so a malformed plan shows
    up as a step that never becomes ready rather than as a build error.
    """

    def __init__(self, steps: Sequence[WorkflowStep]):
        self._nodes: Dict[str, StepNode] = {step.id: StepNode(step) for step in steps}
        self._order = [step.id for step in steps]
        for node in self._nodes.values():
            for dep in node.dependencies:
                if dep in self._nodes:
                    self._nodes[dep].dependents.add(node.step_id)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._nodes

    def node(self, step_id: str) -> Optional[StepNode]:
        return self._nodes.get(step_id)

    def dependents_of(self, step_id: str) -> Set[str]:
        node = self._nodes.get(step_id)
        return set(node.dependents) if node else set()

    def downstream_of(self, step_id: str) -> Set[str]:
        """Every step that transitively waits on ``step_id``."""
        seen: Set[str] = set()
        queue = deque(self.dependents_of(step_id))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self._nodes[current].dependents - seen)
        return seen

    def get_ready_steps(self, completed: Set[str]) -> List[WorkflowStep]:
        """Steps not yet completed whose dependencies all are, in plan order."""
        return [
            self._nodes[step_id].step
            for step_id in self._order
            if step_id not in completed and self._nodes[step_id].dependencies <= completed
        ]

    def waves(self) -> List[List[str]]:
        """
        Split the plan into the waves the scheduler would run.

        Steps blocked by a cycle or a dangling dependency appear in no wave.
        """
        pending = {
            step_id: len(node.dependencies) for step_id, node in self._nodes.items()
        }
        wave = [step_id for step_id in self._order if pending[step_id] == 0]
        result: List[List[str]] = []

        while wave:
            result.append(wave)
            unlocked: Set[str] = set()
            for step_id in wave:
                for dependent in self._nodes[step_id].dependents:
                    pending[dependent] -= 1
                    if pending[dependent] == 0:
                        unlocked.add(dependent)
            wave = [step_id for step_id in self._order if step_id in unlocked]

        return result

    def unresolved_dependencies(self) -> List[str]:
        """Dependency ids that name no step of the plan, first seen first."""
        missing: Dict[str, None] = {}
        for step_id in self._order:
            for dep in sorted(self._nodes[step_id].dependencies):
                if dep not in self._nodes:
                    missing.setdefault(dep)
        return list(missing)

    def find_cycle(self, among: Iterable[str]) -> List[str]:
        """
        A dependency cycle restricted to the ``among`` steps.

        Returned as a closed path (first id repeated at the end); empty when
        those steps are acyclic.
        """
        candidates = {step_id for step_id in among if step_id in self._nodes}
        done: Set[str] = set()

        for start in sorted(candidates):
            if start in done:
                continue
            path: List[str] = []
            on_path: Set[str] = set()
            stack = [(start, iter(sorted(self._nodes[start].dependencies & candidates)))]
            path.append(start)
            on_path.add(start)

            while stack:
                current, edges = stack[-1]
                dep = next(edges, None)
                if dep is None:
                    stack.pop()
                    path.pop()
                    on_path.discard(current)
                    done.add(current)
                elif dep in on_path:
                    return path[path.index(dep):] + [dep]
                elif dep not in done:
                    stack.append((dep, iter(sorted(self._nodes[dep].dependencies & candidates))))
                    path.append(dep)
                    on_path.add(dep)

        return []


def build_step_graph(steps: Sequence[WorkflowStep]) -> StepGraph:
    return StepGraph(steps)
