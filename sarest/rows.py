# rows.py: query result rows
#
# A query either returns instances of a single model (FlatRow) or joined rows that hold
# one instance per joined model (JoinedRow). Each part of a joined row is tagged with its
# role so the response assembler knows whether to merge it into the record (primary, parent, has_one),
# to side load it (belongs_to) or to skip it (intermediate).
#
from typing import Any, List, NamedTuple, Optional, Sequence, Union

PRIMARY = "primary"
PARENT = "parent"
HAS_ONE = "has_one"
BELONGS_TO = "belongs_to"
INTERMEDIATE = "intermediate"


class RowPart(NamedTuple):
    source: Any  # ResourceType
    record: Any  # model instance, None for an outer joined absence
    role: str
    relation_key: Optional[str] = None


class FlatRow(NamedTuple):
    source: Any
    record: Any


class JoinedRow(NamedTuple):
    parts: List[RowPart]

    def primary(self) -> Optional[RowPart]:
        for part in self.parts:
            if part.role == PRIMARY:
                return part
        return None

    def with_role(self, role: str) -> List[RowPart]:
        return [part for part in self.parts if part.role == role]


Row = Union[FlatRow, JoinedRow]


class RowLayout:
    """
    Describes the entities selected by a query, used to wrap the sqla result rows
    """

    def __init__(self) -> None:
        self.entries: List[tuple] = []

    def __len__(self) -> int:
        return len(self.entries)

    def add(self, source, entity, role: str, relation_key: Optional[str] = None) -> None:
        self.entries.append((source, entity, role, relation_key))

    @property
    def entities(self) -> List[Any]:
        return [entity for _, entity, _, _ in self.entries]

    def wrap(self, result: Any) -> Row:
        """
        :param result: an sqla result row (tuple of instances) or a single instance
        :return: FlatRow or JoinedRow
        """
        if len(self.entries) == 1:
            if isinstance(result, Sequence):
                result = result[0]
            return FlatRow(self.entries[0][0], result)
        parts = []
        for (source, _, role, relation_key), record in zip(self.entries, result):
            parts.append(RowPart(source, record, role, relation_key))
        return JoinedRow(parts)


def row_value(row: Row, field: str) -> Any:
    """
    :return: the value of `field` on the primary record of `row` or on one of its parent records
    """
    if isinstance(row, FlatRow):
        return getattr(row.record, field, None) if row.record is not None else None
    for part in row.parts:
        if part.role not in (PRIMARY, PARENT) or part.record is None:
            continue
        if field in part.source.all_columns():
            return getattr(part.record, field, None)
    return None
