"""
Dependency resolver for rule execution order.

Topologically sorts rules on their prerequisite edges so prerequisites are
probed and repaired before dependents. Ties are broken by declaration order,
which keeps the output identical across runs for the same catalog.
"""

import heapq
from typing import Dict, List, Sequence

from .errors import CatalogError
from .models import Rule


def check_unique_ids(rules: Sequence[Rule]) -> Dict[str, int]:
    """
    Map rule id to declaration index.

    Raises:
        CatalogError: If two rules share an id
    """
    index: Dict[str, int] = {}
    duplicates: List[str] = []
    for i, rule in enumerate(rules):
        if rule.id in index:
            duplicates.append(rule.id)
        else:
            index[rule.id] = i
    if duplicates:
        raise CatalogError(
            CatalogError.DUPLICATE_ID,
            f"duplicate rule id(s): {', '.join(duplicates)}",
            duplicates,
        )
    return index


def check_prerequisites_exist(rules: Sequence[Rule], index: Dict[str, int]):
    """
    Raises:
        CatalogError: If a prerequisite references an unknown rule id
    """
    dangling = []
    for rule in rules:
        for prereq in sorted(rule.prerequisites):
            if prereq not in index:
                dangling.append(f"{rule.id} -> {prereq}")
    if dangling:
        raise CatalogError(
            CatalogError.DANGLING_PREREQUISITE,
            f"unknown prerequisite(s): {', '.join(dangling)}",
            [edge.split(' -> ')[0] for edge in dangling],
        )


def order(rules: Sequence[Rule]) -> List[Rule]:
    """
    Return rules in dependency order.

    Kahn's algorithm with a min-heap keyed on declaration index, so among
    rules whose prerequisites are satisfied the earliest declared goes first.

    Args:
        rules: Rules in declaration order

    Returns:
        New list, prerequisites before dependents

    Raises:
        CatalogError: On duplicate ids, dangling prerequisites or a cycle
    """
    index = check_unique_ids(rules)
    check_prerequisites_exist(rules, index)

    indegree = [len(rule.prerequisites) for rule in rules]
    dependents: Dict[int, List[int]] = {i: [] for i in range(len(rules))}
    for i, rule in enumerate(rules):
        for prereq in rule.prerequisites:
            dependents[index[prereq]].append(i)

    ready = [i for i, degree in enumerate(indegree) if degree == 0]
    heapq.heapify(ready)

    ordered: List[Rule] = []
    while ready:
        i = heapq.heappop(ready)
        ordered.append(rules[i])
        for j in dependents[i]:
            indegree[j] -= 1
            if indegree[j] == 0:
                heapq.heappush(ready, j)

    if len(ordered) != len(rules):
        stuck = [rule.id for i, rule in enumerate(rules) if indegree[i] > 0]
        raise CatalogError(
            CatalogError.CYCLE,
            f"prerequisite cycle among: {', '.join(stuck)}",
            stuck,
        )

    return ordered
