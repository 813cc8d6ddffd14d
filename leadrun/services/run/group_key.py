from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union

ALL_COMPANIES = "all"
_SEPARATOR = ","


@dataclass(frozen=True)
class GroupKey:
    """Stable identity of a query group, used to index persisted group progress.

    Derived only from the group's company selector, in input order, so the same
    input maps to the same key after a restart.
    """

    value: str

    @classmethod
    def for_companies(cls, companies: Union[str, Iterable[str], None]) -> "GroupKey":
        if companies is None:
            items = []
        elif isinstance(companies, str):
            items = [companies]
        else:
            items = [c for c in companies if c]
        return cls(_SEPARATOR.join(items) or ALL_COMPANIES)

    def __str__(self) -> str:
        return self.value
