"""
Rule catalog.

Static registry of Rule definitions. The catalog is validated once, lazily,
on first access (unique ids, known prerequisites, acyclic graph) and is never
mutated afterwards. An invalid catalog is fatal: it raises CatalogError and is
never partially usable.
"""

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .errors import CatalogError
from .models import Rule
from .resolver import order


logger = logging.getLogger(__name__)


class RuleCatalog:
    """
    Ordered, immutable collection of rules.

    Usage:
        catalog = RuleCatalog([rule_a, rule_b])
        for rule in catalog.list_rules():
            ...
    """

    def __init__(self, rules: Iterable[Rule]):
        self._rules: Tuple[Rule, ...] = tuple(rules)
        self._validated = False
        self._ordered: Optional[Tuple[Rule, ...]] = None
        self._by_id: Dict[str, Rule] = {}

    def _validate(self):
        if self._validated:
            return
        try:
            # order() checks duplicates, dangling edges and cycles
            self._ordered = tuple(order(self._rules))
        except CatalogError as e:
            logger.error(str(e), extra={'error_code': _ERROR_CODE_BY_KIND.get(e.kind)})
            raise
        self._by_id = {rule.id: rule for rule in self._rules}
        self._validated = True
        logger.debug(f"Catalog validated: {len(self._rules)} rules")

    def list_rules(self) -> Tuple[Rule, ...]:
        """
        Return all rules in declaration order.

        Raises:
            CatalogError: If the catalog is invalid
        """
        self._validate()
        return self._rules

    def ordered_rules(self) -> Tuple[Rule, ...]:
        """Return rules in resolved dependency order."""
        self._validate()
        return self._ordered

    def get(self, rule_id: str) -> Rule:
        self._validate()
        return self._by_id[rule_id]

    def ids(self) -> List[str]:
        return [rule.id for rule in self.list_rules()]

    def dependents(self, rule_id: str) -> Set[str]:
        """
        Return ids of all rules that transitively depend on rule_id.

        Args:
            rule_id: Rule whose dependents are wanted

        Returns:
            Set of dependent rule ids (excluding rule_id itself)
        """
        rules = self.list_rules()
        found: Set[str] = set()
        frontier = [rule_id]
        while frontier:
            current = frontier.pop()
            for rule in rules:
                if current in rule.prerequisites and rule.id not in found:
                    found.add(rule.id)
                    frontier.append(rule.id)
        return found

    def prerequisites_closure(self, rule_ids: Iterable[str]) -> Set[str]:
        """Return rule_ids plus every rule they transitively depend on."""
        self._validate()
        found: Set[str] = set()
        frontier = [rule_id for rule_id in rule_ids if rule_id in self._by_id]
        while frontier:
            current = frontier.pop()
            if current not in found:
                found.add(current)
                frontier.extend(self._by_id[current].prerequisites)
        return found

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.list_rules())

    def __contains__(self, rule_id: object) -> bool:
        self._validate()
        return rule_id in self._by_id


_ERROR_CODE_BY_KIND = {
    CatalogError.CYCLE: "CAT-01",
    CatalogError.DANGLING_PREREQUISITE: "CAT-02",
    CatalogError.DUPLICATE_ID: "CAT-03",
}
