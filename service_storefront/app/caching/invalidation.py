"""
Declarative mapping from mutating routes to the cache families they affect.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from shared.errors import CacheConfigurationError


MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def path_in_family(path: str, prefix: str) -> bool:
    """True when ``path`` is ``prefix`` itself or a sub-path of it."""
    if path == prefix:
        return True
    return path.startswith(prefix.rstrip("/") + "/")


class InvalidationMap:
    """Resolve which cache families a successful write must invalidate.

    Rules map a write family (path prefix such as ``/products``) to every
    cached family whose content it can change. A mutating request under a
    cached family that has no explicit rule still invalidates its own
    family, so new routes cannot skip invalidation.
    """

    def __init__(self, rules: Optional[Mapping[str, Iterable[str]]] = None):
        self._rules: Dict[str, Tuple[str, ...]] = {}
        for write_prefix, affected in (rules or {}).items():
            self.register(write_prefix, affected)

    def register(self, write_prefix: str, affected: Iterable[str]) -> None:
        if not write_prefix or not write_prefix.startswith("/"):
            raise CacheConfigurationError(
                "Write prefix must be an absolute path", {"write_prefix": write_prefix}
            )
        families = tuple(dict.fromkeys(affected))
        for family in families:
            if not family or not family.startswith("/"):
                raise CacheConfigurationError(
                    "Affected family must be an absolute path",
                    {"write_prefix": write_prefix, "family": family},
                )
        self._rules[write_prefix] = families

    @classmethod
    def from_embeddings(cls, embedded_in: Mapping[str, Iterable[str]]) -> "InvalidationMap":
        """Derive rules from which families embed which.

        ``embedded_in`` maps a family to the families whose payloads include
        its data. A write reaches its own family plus every family that
        embeds it, directly or through another embedding family.
        """
        rules: Dict[str, List[str]] = {}
        for family in embedded_in:
            affected = [family]
            # Breadth-first; ``affected`` grows while it is walked.
            for current in affected:
                for parent in embedded_in.get(current, ()):
                    if parent not in affected:
                        affected.append(parent)
            rules[family] = affected
        return cls(rules)

    @property
    def rules(self) -> Dict[str, Tuple[str, ...]]:
        return dict(self._rules)

    def families_for(
        self,
        method: str,
        path: str,
        cached_prefixes: Sequence[str] = (),
    ) -> List[str]:
        """Families to invalidate after a successful ``method`` on ``path``."""
        if method.upper() not in MUTATING_METHODS:
            return []

        families: List[str] = []
        matched = False
        # Longest write prefix wins so nested rules can narrow a parent rule.
        for write_prefix in sorted(self._rules, key=len, reverse=True):
            if path_in_family(path, write_prefix):
                families.extend(self._rules[write_prefix])
                matched = True
                break

        if not matched:
            families.extend(prefix for prefix in cached_prefixes if path_in_family(path, prefix))

        return list(dict.fromkeys(families))

    def validate(self, cached_prefixes: Iterable[str]) -> None:
        """Fail fast when a cached family can never be invalidated."""
        reachable = {family for families in self._rules.values() for family in families}
        orphaned = sorted(prefix for prefix in cached_prefixes if prefix not in reachable)
        if orphaned:
            raise CacheConfigurationError(
                "Cached families without invalidation wiring",
                {"families": orphaned},
            )
