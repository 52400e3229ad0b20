"""
Effective action permission resolution.

A role's effective permissions are its own ``permissions`` plus everything
inherited through ``hierarchical_roles``, minus its ``exclude_permissions``.
Admin roles, and roles inheriting from a valid admin role, hold every
permission; exclusions do not apply to them.

Inheritance is resolved by role name through a resolver callback. Missing
or invalid parents are skipped. A parent chain that loops back on itself
raises ``CycleError`` instead of recursing forever.
"""
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from bizrole.core.exceptions import CycleError
from bizrole.utils import get_logger

if TYPE_CHECKING:
    from bizrole.features.roles.models import Role


log = get_logger(__name__)

WILDCARD = "*"

RoleResolver = Callable[[str], Optional["Role"]]


@dataclass(frozen=True)
class PermissionSet:
    """
    Resolved set of action permission keys.

    ``is_wildcard`` marks the admin set, which contains every key.
    """
    keys: FrozenSet[str] = frozenset()
    is_wildcard: bool = False

    @classmethod
    def everything(cls) -> "PermissionSet":
        return cls(frozenset(), True)

    def __contains__(self, key: object) -> bool:
        return self.is_wildcard or key in self.keys

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.keys))

    def __len__(self) -> int:
        return len(self.keys)

    def __or__(self, other: "PermissionSet") -> "PermissionSet":
        if self.is_wildcard or other.is_wildcard:
            return PermissionSet.everything()
        return PermissionSet(self.keys | other.keys)

    def to_list(self) -> List[str]:
        if self.is_wildcard:
            return [WILDCARD]
        return sorted(self.keys)


def find_hierarchy_cycle(
    start: str,
    parents_of: Callable[[str], Iterable[str]],
) -> Optional[Tuple[str, ...]]:
    """
    Walk the inheritance graph from ``start`` and return the first cycle found.

    Returns the looping path, e.g. ``("a", "b", "a")``, or None.
    """
    path: List[str] = []
    on_path = set()
    finished = set()

    def visit(name: str) -> Optional[Tuple[str, ...]]:
        if name in on_path:
            return tuple(path[path.index(name):]) + (name,)
        if name in finished:
            return None
        path.append(name)
        on_path.add(name)
        for parent in parents_of(name):
            cycle = visit(parent)
            if cycle:
                return cycle
        path.pop()
        on_path.discard(name)
        finished.add(name)
        return None

    return visit(start)


def resolve_effective_permissions(role: "Role", resolver: RoleResolver) -> PermissionSet:
    memo: Dict[str, PermissionSet] = {}

    def resolve(current: "Role", path: Tuple[str, ...]) -> PermissionSet:
        if current.name in path:
            raise CycleError(path + (current.name,))
        if current.name in memo:
            return memo[current.name]

        if current.is_admin:
            result = PermissionSet.everything()
        else:
            granted = set(current.permissions or ())
            wildcard = False
            for parent_name in current.hierarchical_roles or ():
                parent = resolver(parent_name)
                if parent is None or not parent.valid:
                    log.debug(f"Role '{current.name}' inherits from unknown or invalid role '{parent_name}', skipping")
                    continue
                inherited = resolve(parent, path + (current.name,))
                if inherited.is_wildcard:
                    wildcard = True
                granted |= inherited.keys
            if wildcard:
                result = PermissionSet.everything()
            else:
                result = PermissionSet(frozenset(granted - set(current.exclude_permissions or ())))

        memo[current.name] = result
        return result

    return resolve(role, ())
