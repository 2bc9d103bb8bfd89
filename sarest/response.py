# response.py: assemble the response payload
#
# The payload is a flat map: table name -> list of records, every record is a flat dict.
# Related records are side loaded under the table name (or alias) of the relationship and
# linked to the base record with a "<singular name>_ids" list, eg.
#
# {
#   "posts": [{"id": 10, "title": "...", "response_ids": [5, 6]}],
#   "responses": [{"id": 5, "post_id": 10, ...}, {"id": 6, "post_id": 10, ...}],
#   "meta": {"total_pages": 1, "total_record_count": 1, "returned_record_count": 1}
# }
#
import math
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple
from .relation import Relation, TO_MANY
from .rows import FlatRow, HAS_ONE, PARENT, PRIMARY, Row, row_value
from .util import records_equal


def ids_name(relation: Relation) -> str:
    """
    :return: name of the linkage list added to the base record, eg. "response_ids"
    """
    return f"{relation.table_name(False)}_ids"


def match_key(value: Any) -> Optional[str]:
    """
    Key used to match a foreign key with the key it references when the batched hasMany
    records are distributed: the database compares both columns even when their types differ
    (eg. a string foreign key referencing an integer primary key), so the string forms are compared here.
    """
    return None if value is None else str(value)


class ResponseAssembler:
    """
    Owns the response payload of one find/find_first call

    :param resource: the primary ResourceType
    """

    def __init__(self, resource) -> None:
        self.resource = resource
        self.payload: Dict[str, Any] = {}

    @staticmethod
    def record_from(source, instance) -> Dict[str, Any]:
        """
        :return: the allowed columns of `instance` as a dict
        """
        return {column: getattr(instance, column, None) for column in source.allowed_columns()}

    def _merge_parts(self, row: Row, roles: Tuple[str, ...]) -> Dict[str, Any]:
        # the primary part comes first: the child values are never overwritten by a parent or hasOne
        record: Dict[str, Any] = {}
        for part in row.parts:
            if part.role not in roles or part.record is None:
                continue
            for key, value in self.record_from(part.source, part.record).items():
                record.setdefault(key, value)
        return record

    def extract_base_row(self, row: Row) -> Dict[str, Any]:
        """
        Build the base record for a row returned by the primary query:
        the primary columns merged with the columns of the parents and the hasOne relationships
        """
        if isinstance(row, FlatRow):
            return self.record_from(row.source, row.record)
        return self._merge_parts(row, (PRIMARY, PARENT, HAS_ONE))

    def normalize_row(self, row: Row) -> Optional[Dict[str, Any]]:
        """
        Build a related record, None when the row doesn't contain a record (outer joined absence).
        Intermediate parts of a hasManyThrough row are skipped.
        """
        if isinstance(row, FlatRow):
            source, record = row.source, row.record
        else:
            primary = row.primary()
            source, record = primary.source, primary.record
        if record is None or source.primary_key_value(record) is None:
            return None
        if isinstance(row, FlatRow):
            return self.record_from(source, record)
        return self._merge_parts(row, (PRIMARY, PARENT, HAS_ONE))

    def normalize_related(self, rows: Iterable[Row], relation: Relation) -> List[Dict[str, Any]]:
        """
        :param rows: rows returned by a relationship query
        :param relation: the relationship that was queried
        :return: the related records, without the empty records
        """
        records = []
        for row in rows:
            record = self.normalize_row(row)
            if record is not None:
                records.append(record)
        return records

    def group_related(self, rows: Iterable[Row], relation: Relation) -> Tuple[List[Dict[str, Any]], Dict[Any, List[Any]]]:
        """
        Normalize the rows of a batched hasMany query and group the related primary keys by foreign key.
        The foreign key is read from the row, it may be a blocked column.

        :return: related records, foreign key (see match_key) -> list of related primary keys
        """
        records = []
        grouped: Dict[Any, List[Any]] = defaultdict(list)
        pk_name = relation.primary_key_name
        for row in rows:
            record = self.normalize_row(row)
            if record is None:
                continue
            records.append(record)
            related_id = record[pk_name] if pk_name in record else row_value(row, pk_name)
            grouped[match_key(row_value(row, relation.referenced_fields))].append(related_id)
        return records, grouped

    def link_into(self, base_record: Dict[str, Any], related_records: List[Dict[str, Any]], relation: Relation) -> None:
        """
        Side load the related records, the base record of a to-many relationship gets a "<singular>_ids" list
        belongsTo and hasOne records aren't linked: the foreign key is a column of the base record
        """
        if relation.kind in TO_MANY:
            pk_name = relation.primary_key_name
            base_record[ids_name(relation)] = [record.get(pk_name) for record in related_records]
        self.update(relation.table_name(), related_records)

    def push(self, table: str, record: Dict[str, Any], skip_duplicate_check: bool = False) -> bool:
        """
        Add a record to the table list of the payload

        :param skip_duplicate_check: used for the primary records, these are unique by primary key
        :return: False if an identical record was present already
        """
        records = self.payload.setdefault(table, [])
        if not skip_duplicate_check:
            for existing in records:
                if records_equal(existing, record):
                    return False
        records.append(record)
        return True

    def update(self, table: str, records: Iterable[Dict[str, Any]]) -> None:
        """
        Add the related records to the payload, the table list is created even when there are no records
        """
        self.payload.setdefault(table, [])
        for record in records:
            self.push(table, record)

    def contains(self, table: str, field: str, value: Any) -> bool:
        """
        :return: whether a record with `field` == `value` is in the table list
        """
        return any(record.get(field) == value for record in self.payload.get(table, []))

    def reconcile_deferred(self, relation: Relation, grouped: Dict[Any, List[Any]], primary_table: str, local_field: str) -> None:
        """
        Attach the "<singular>_ids" list to the base records that were pushed already,
        used after the batched query of a hasMany relationship.

        :param grouped: foreign key (see match_key) -> related primary keys
        :param primary_table: table name of the base records in the payload
        :param local_field: field of the base record matching the foreign key, the primary key is used
            when the base record has no value for the field
        """
        name = ids_name(relation)
        pk_name = self.resource.primary_key_name
        for record in self.payload.get(primary_table, []):
            key = record.get(local_field)
            if key is None:
                key = record.get(pk_name)
            record[name] = list(grouped.get(match_key(key), []))

    def append_meta(self, found: int, record_count: int, page_limit: int, is_pager: bool, stats: Optional[Dict[str, Any]] = None) -> None:
        """
        Add the paging information to the meta of the payload

        :param found: number of records returned
        :param record_count: number of records matching the search
        :param page_limit: page size
        :param is_pager: only add the meta when paging was requested
        :param stats: query statistics (cfr. sarest_init.query_stats), added when not empty
        """
        if not is_pager:
            return
        meta = self.payload.setdefault("meta", {})
        meta["total_pages"] = math.ceil(record_count / page_limit) if page_limit else 0
        meta["total_record_count"] = record_count
        meta["returned_record_count"] = found
        if stats:
            if "count" in stats:
                meta["database_query_count"] = stats["count"]
            if "timer" in stats:
                meta["database_query_timer"] = f"{round(stats['timer'], 3)} ms"
