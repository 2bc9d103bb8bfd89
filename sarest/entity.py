# entity.py: the REST resource backed by one or more tables
#
# An Entity pulls together a resource, its parents and the requested relationships:
# - find() and find_first() build the response payload (cfr. response.py)
# - save() and delete() write the resource and its parent records (cfr. write.py)
#
# One Entity instance is used per request, the active relationships, the payload and
# the deferred hasMany registry all belong to this instance.
# Subclasses customize the behavior by overriding the hooks, eg.
#
#   class PostEntity(Entity):
#       def before_save(self, data, id=None):
#           data["updated"] = datetime.now()
#           return data
#
# pylint: disable=logging-format-interpolation, redefined-builtin, unused-argument
from typing import Any, Dict, List, Optional
from sqlalchemy.exc import SQLAlchemyError
import sarest
from .config import get_flag
from .errors import ConfigurationError, GenericError, NotFoundError, JsonapiError
from .query import QueryBuilder
from .relation import Relation, RelationKind, resolve_active_relations
from .response import ResponseAssembler
from .rows import BELONGS_TO, FlatRow, JoinedRow, Row, row_value
from .sarest_init import query_stats
from .search import SearchHelper
from .util import unique
from .write import SaveMode, build_chain, persist


class Entity:
    """
    Pulls together one or more models to represent the REST resource(s)

    :param resource: the ResourceType (a registry has to be finalized before it's used)
    :param search_helper: the search parameters, an empty SearchHelper is used when none is supplied
    """

    def __init__(self, resource, search_helper: Optional[SearchHelper] = None) -> None:
        self.resource = resource
        self.search_helper = search_helper if search_helper is not None else SearchHelper()
        self.assembler = ResponseAssembler(resource)
        self.query_builder = QueryBuilder(resource, self.search_helper, self)
        # relation key -> Relation, None until loaded
        self.active_relations: Optional[Dict[str, Relation]] = None
        # the current primary record, built per row
        self.base_record: Dict[str, Any] = {}
        self.primary_key_value: Any = None
        # number of records matching the search (before limit)
        self.record_count: Optional[int] = None
        self.save_mode = SaveMode.IDLE
        # relation key -> foreign key values, used to batch the hasMany queries
        self.has_many_registry: Dict[str, List[Any]] = {}

        self.configure_search_helper()
        self.load_active_relationships()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.resource.name}>"

    @property
    def rest_response(self) -> Dict[str, Any]:
        return self.assembler.payload

    @property
    def session(self):
        return sarest.DB.session

    #
    # Hooks
    #
    def configure_search_helper(self) -> None:
        """
        Hook to set entity specific search defaults
        """

    def before_query_builder_hook(self) -> None:
        """
        Hook called before the queries are built
        """

    def after_query_builder_hook(self, query):
        """
        Hook to modify the queries (count and data) built for the primary resource
        :param query: sqla query
        :return: the query to run, False to abort the search
        """
        return query

    def before_process_relationships(self, row: Row) -> Row:
        """
        hook for manipulating the base record before processing relationships
        :param row: the row returned by the primary query, `self.base_record` has been extracted from it
        :return: row
        """
        return row

    def after_process_relationships(self, row: Row) -> None:
        """
        hook for manipulating the base record after processing relationships, the record is in `self.base_record`
        """

    def process_custom_relationship(self, relation: Relation, row: Row) -> None:
        """
        Called for relationships declared with custom_processing=True
        """

    def after_load_active_relationships(self) -> None:
        """
        Hook called after the active relationships were loaded
        """

    def before_save(self, data: Dict[str, Any], id: Any = None) -> Dict[str, Any]:
        """
        :param data: the submitted data
        :param id: primary key of the record to update, None on insert
        :return: the data to save
        """
        return data

    def after_save(self, data: Dict[str, Any], id: Any) -> None:
        pass

    def after_save_relations(self, data: Dict[str, Any], id: Any) -> None:
        pass

    def before_delete(self, model) -> None:
        pass

    def after_delete(self, model) -> None:
        pass

    #
    # Relationship set
    #
    def load_active_relationships(self) -> bool:
        """
        Load the relationships requested in the search helper, this is done once per entity
        :return: False if the relationships had been loaded already
        """
        if self.active_relations is not None:
            return False
        self.active_relations = resolve_active_relations(self.resource, self.search_helper.get_with())
        sarest.log.debug(f"{self.resource.name}: active relationships {list(self.active_relations)}")
        self.after_load_active_relationships()
        return True

    #
    # Read
    #
    def run_search(self) -> Any:
        """
        Count the matching records and query the primary rows

        :return: list of rows, an empty list when only the count was requested, False when the search was aborted
        """
        self.before_query_builder_hook()
        try:
            query, _ = self.query_builder.build("count")
            query = self.after_query_builder_hook(query)
            if query is False:
                return False
            self.record_count = query.order_by(None).count()
            if self.search_helper.is_count:
                return []
            query, layout = self.query_builder.build()
            query = self.after_query_builder_hook(query)
            if query is False:
                return False
            return self.query_builder.execute(query, layout)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise GenericError(f"Failed to query {self.resource.name}: {exc}")

    def _process_rows(self, rows: List[Row], table: str, skip_duplicate_check: bool = False) -> int:
        found = 0
        for row in rows:
            self.base_record = self.assembler.extract_base_row(row)
            row = self.before_process_relationships(row)
            self.process_relationships(row)
            self.after_process_relationships(row)
            self.assembler.push(table, self.base_record, skip_duplicate_check)
            found += 1
        return found

    def find(self) -> Any:
        """
        Search the primary resource and load the related records

        :return: the response payload, False if the search was aborted
        """
        rows = self.run_search()
        if rows is False:
            return False
        table = self.resource.table_name()
        self.rest_response[table] = []
        found = self._process_rows(rows, table, skip_duplicate_check=True)
        if found > 0:
            self.process_delayed_relationships(table)
        self.append_meta(found)
        return self.rest_response

    def find_first(self, id: Any) -> Any:
        """
        Load a single record including its related records, the payload is keyed by the singular table name

        :param id: primary key value
        :return: the response payload, False if there's no such record
        """
        self.primary_key_value = id
        self.search_helper.entity_limit = 1
        self.search_helper.entity_search_fields = {self.resource.primary_key_name: id}
        rows = self.run_search()
        if rows is False:
            return False
        table = self.resource.table_name(False)
        found = self._process_rows(rows, table)
        if found == 0:
            return False
        self.process_delayed_relationships(table)
        self.append_meta(found)
        return self.rest_response

    def append_meta(self, found: int) -> None:
        stats = query_stats() if get_flag("DEBUG_APP") else None
        self.assembler.append_meta(found, self.record_count or 0, self.search_helper.get_limit(), self.search_helper.is_pager, stats)

    def process_relationships(self, row: Row) -> None:
        """
        Load the related records of the current base record
        """
        self.primary_key_value = self.base_record.get(self.resource.primary_key_name)
        for relation in self.active_relations.values():
            if relation.custom_processing:
                self.process_custom_relationship(relation, row)
            else:
                self.process_standard_relationship(relation, row)

    def process_standard_relationship(self, relation: Relation, row: Row) -> None:
        if relation.is_parent:
            # the parent columns are merged into the base record
            return

        kind = relation.kind
        if kind == RelationKind.HAS_ONE:
            # joined into the primary query and merged into the base record
            return
        if kind == RelationKind.BELONGS_TO:
            related_records = self.get_belongs_to_records(relation, row)
        elif kind == RelationKind.HAS_MANY:
            if get_flag("FAST_HAS_MANY"):
                self.register_has_many_request(relation)
                return
            related_records = self.get_has_many_records(relation)
        elif kind == RelationKind.HAS_MANY_THROUGH:
            related_records = self.get_through_records(relation)
        else:
            raise ConfigurationError(f"Unknown relationship submitted: {relation}", api_code="4984846846849494")
        self.assembler.link_into(self.base_record, related_records, relation)

    def local_value(self, relation: Relation) -> Any:
        """
        :return: the base record value matching the referenced field, the primary key when the base record has no such value
        """
        value = self.base_record.get(relation.fields)
        if value is None:
            value = self.primary_key_value
        return value

    def get_belongs_to_records(self, relation: Relation, row: Row) -> List[Dict[str, Any]]:
        value = self.base_record.get(relation.fields)
        if value is None:
            # the foreign key may be a blocked column
            value = row_value(row, relation.fields)
        if value is None:
            return []
        if get_flag("FAST_BELONGS_TO") and relation.pluckable and isinstance(row, JoinedRow):
            for part in row.with_role(BELONGS_TO):
                if part.relation_key == relation.key:
                    return self.assembler.normalize_related([FlatRow(part.source, part.record)], relation)
        return self.get_belongs_to_record(relation, value)

    def get_belongs_to_record(self, relation: Relation, value: Any) -> List[Dict[str, Any]]:
        """
        Query the referenced record, nothing is queried when the record is in the payload already
        """
        table = self.rest_response.get(relation.table_name())
        if table:
            # match on the referenced field, this may be blocked so try the pk and "id" as a last resort
            match_field = "id"
            if relation.referenced_fields in table[0]:
                match_field = relation.referenced_fields
            elif relation.primary_key_name in table[0]:
                match_field = relation.primary_key_name
            if self.assembler.contains(relation.table_name(), match_field, value):
                return []
        rows = self.query_builder.belongs_to_rows(relation, value)
        return self.assembler.normalize_related(rows, relation)

    def get_has_many_records(self, relation: Relation) -> List[Dict[str, Any]]:
        rows = self.query_builder.has_many_rows(relation, [self.local_value(relation)])
        return self.assembler.normalize_related(rows, relation)

    def register_has_many_request(self, relation: Relation) -> None:
        """
        store away a request for the records in a child table, these are queried by process_delayed_relationships
        """
        self.has_many_registry.setdefault(relation.key, []).append(self.local_value(relation))

    def get_through_records(self, relation: Relation) -> List[Dict[str, Any]]:
        rows = self.query_builder.through_rows(relation, self.local_value(relation))
        return self.assembler.normalize_related(rows, relation)

    def process_delayed_relationships(self, primary_table: str) -> None:
        """
        Run one query per batched hasMany relationship and link the results to the base records
        """
        if not get_flag("FAST_HAS_MANY"):
            return
        for relation in self.active_relations.values():
            if relation.kind != RelationKind.HAS_MANY or relation.is_parent or relation.custom_processing:
                continue
            values = unique(self.has_many_registry.get(relation.key, []))
            if not values:
                continue
            rows = self.query_builder.has_many_rows(relation, values)
            related_records, grouped = self.assembler.group_related(rows, relation)
            self.assembler.reconcile_deferred(relation, grouped, primary_table, relation.fields)
            self.assembler.update(relation.table_name(), related_records)
        self.has_many_registry = {}

    #
    # Write
    #
    def load(self, resource, id: Any):
        """
        :return: the model instance with primary key `id`, None if there's no such instance
        """
        if id is None:
            return None
        return self.session.get(resource.model, id)

    def save(self, data: Dict[str, Any], id: Any = None) -> Any:
        """
        Insert (id is None) or update a record, the parent records are saved as well

        :param data: the submitted fields
        :param id: the primary key of the record to update
        :return: the primary key of the saved record
        """
        data = dict(data)
        if id is None:
            self.save_mode = SaveMode.INSERT
            data = self.before_save(data, id)
        else:
            self.save_mode = SaveMode.UPDATE
            data = self.before_save(data, id)
            # make sure that the primary key is always stored in the data
            data[self.resource.primary_key_name] = id
            self.primary_key_value = id

        mode = self.save_mode
        try:
            chain = build_chain(self.resource.registry, self.resource, data, mode, load=self.load)
            self.save_mode = SaveMode.PERSISTING
            result = persist(self.session, chain, mode)
        except JsonapiError:
            self.save_mode = SaveMode.IDLE
            raise

        self.save_mode = SaveMode.DONE
        if id is None:
            self.primary_key_value = id = result

        self.after_save(data, id)
        self.after_save_relations(data, id)
        self.save_mode = SaveMode.IDLE
        return self.primary_key_value

    def delete(self, id: Any) -> bool:
        """
        Delete the record with primary key `id`.
        The parent records are removed by the database cascade rules.
        """
        model = self.load(self.resource, id)
        self.before_delete(model)
        if model is None:
            raise NotFoundError(f"Could not find record #{id} to delete.", api_code="2343467699", detail="No record was found to delete")
        try:
            self.session.delete(model)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise GenericError(f"Error deleting record #{id}.", api_code="66498419846816", detail=str(exc))
        self.after_delete(model)
        return True
