from dataclasses import dataclass, field
from typing import Iterable, Tuple


@dataclass(frozen=True)
class Principal:
    """
    Authenticated actor as supplied by the identity provider.

    ``role_names`` are matched against ``Role.name``.
    """
    identifier: str
    role_names: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, identifier: str, role_names: Iterable[str] = ()) -> "Principal":
        return cls(identifier, tuple(dict.fromkeys(role_names)))
