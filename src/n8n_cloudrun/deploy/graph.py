"""Dependency graph of declared resources.

Resources are applied one at a time in topological order. The order is
computed, and every edge validated, before the first API call is issued.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from graphlib import CycleError, TopologicalSorter

from google.api_core.retry import Retry

from n8n_cloudrun.deploy.clients import propagation_retry
from n8n_cloudrun.deploy.resources.base import Resource
from n8n_cloudrun.lib.errors import DeploymentError
from n8n_cloudrun.lib.logging_config import get_logger
from n8n_cloudrun.models.deployment import ApplyResult, Change

logger = get_logger(__name__)

Reporter = Callable[[ApplyResult], None]


class ResourceGraph:
    """Directed acyclic graph of resources keyed by ``Resource.key``."""

    def __init__(self) -> None:
        self._resources: dict[str, Resource] = {}

    def add(self, resource: Resource) -> Resource:
        """Add a resource; its dependencies may be added later."""
        if resource.key in self._resources:
            raise DeploymentError(
                operation="plan",
                message=f"Duplicate resource key '{resource.key}'",
            )
        self._resources[resource.key] = resource
        return resource

    def get(self, key: str) -> Resource:
        """Return the resource registered under ``key``."""
        try:
            return self._resources[key]
        except KeyError:
            raise DeploymentError(
                operation="plan", message=f"Unknown resource '{key}'"
            ) from None

    def __contains__(self, key: object) -> bool:
        return key in self._resources

    def __iter__(self) -> Iterator[Resource]:
        return iter(self._resources.values())

    def __len__(self) -> int:
        return len(self._resources)

    def order(self) -> list[Resource]:
        """Return the resources in dependency order.

        Resources whose dependencies are satisfied at the same time keep
        their insertion order, so the order is stable across runs.

        Raises:
            DeploymentError: On unknown dependencies or dependency cycles
        """
        sorter: TopologicalSorter[str] = TopologicalSorter()
        for resource in self._resources.values():
            for dependency in resource.depends_on:
                if dependency not in self._resources:
                    raise DeploymentError(
                        operation="plan",
                        message=f"depends on unknown resource '{dependency}'",
                        resource=resource.key,
                    )
            sorter.add(resource.key, *resource.depends_on)

        try:
            sorter.prepare()
        except CycleError as exc:
            cycle = " -> ".join(exc.args[1])
            raise DeploymentError(
                operation="plan", message=f"Dependency cycle: {cycle}"
            ) from exc

        position = {key: index for index, key in enumerate(self._resources)}
        ordered: list[Resource] = []
        while sorter.is_active():
            ready = sorted(sorter.get_ready(), key=position.__getitem__)
            for key in ready:
                ordered.append(self._resources[key])
                sorter.done(key)
        return ordered


def apply_graph(
    graph: ResourceGraph,
    reporter: Reporter | None = None,
    *,
    settle: Retry | None = None,
) -> list[ApplyResult]:
    """Apply every resource in dependency order, stopping at the first failure.

    Args:
        graph: Resources to converge
        reporter: Called with each result as soon as it is known
        settle: Retry policy for reading resources whose prerequisites were
            just created (defaults to the IAM propagation policy)

    Returns:
        Results in apply order

    Raises:
        DeploymentError: Naming the resource that failed
    """
    if settle is None:
        settle = propagation_retry()
    return _walk(graph, "apply", reporter, settle)


def plan_graph(
    graph: ResourceGraph, reporter: Reporter | None = None
) -> list[ApplyResult]:
    """Report what ``apply_graph`` would change without mutating anything."""
    return _walk(graph, "plan", reporter)


def _walk(
    graph: ResourceGraph,
    operation: str,
    reporter: Reporter | None,
    settle: Retry | None = None,
) -> list[ApplyResult]:
    results: list[ApplyResult] = []
    # Keys created (or planned for creation) whose dependents cannot be read yet
    missing: set[str] = set()
    for resource in graph.order():
        fresh = any(key in missing for key in resource.depends_on)
        try:
            if operation == "plan":
                result = resource.plan(assume_absent=fresh)
            else:
                result = resource.apply(settle=settle if fresh else None)
        except DeploymentError:
            raise
        except Exception as exc:
            logger.debug(f"{operation} of {resource.describe()} failed", exc_info=True)
            raise DeploymentError(
                operation=operation,
                message=str(exc),
                resource=resource.describe(),
            ) from exc
        if resource.blocks_reads and result.change == Change.CREATED:
            missing.add(resource.key)
        results.append(result)
        if reporter is not None:
            reporter(result)
    return results
