"""Row shapes returned by the result fetcher."""
from collections.abc import Iterator, Sequence
from typing import Any


class Row:
    """One result row readable by column name or by position.

    Unlike a merged mapping, name and position lookups stay separate, so a
    column named `0` or duplicated column names never collide.

        row.by_name('id')  /  row['id']
        row.by_position(0) /  row[0]
    """

    __slots__ = ('_names', '_values')

    def __init__(self, names: Sequence[str], values: Sequence[Any]) -> None:
        self._names = tuple(names)
        self._values = tuple(values)

    def by_name(self, name: str) -> Any:
        """Value of the first column called `name`."""
        try:
            return self._values[self._names.index(name)]
        except ValueError:
            raise KeyError(name) from None

    def by_position(self, position: int) -> Any:
        """Value at the 0-based column position."""
        return self._values[position]

    def __getitem__(self, key: int | str) -> Any:
        if isinstance(key, int):
            return self.by_position(key)
        return self.by_name(key)

    def get(self, name: str, default: Any = None) -> Any:
        try:
            return self.by_name(name)
        except KeyError:
            return default

    def keys(self) -> tuple[str, ...]:
        return self._names

    def values(self) -> tuple[Any, ...]:
        return self._values

    def as_dict(self) -> dict[str, Any]:
        return dict(zip(self._names, self._values))

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Row):
            return self._names == other._names and self._values == other._values
        return NotImplemented

    def __repr__(self) -> str:
        return f'Row({self.as_dict()!r})'


class BoundValue:
    """Target updated with a column's value on each FetchMode.BOUND fetch."""

    __slots__ = ('value',)

    def __init__(self, value: Any = None) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f'BoundValue({self.value!r})'
