# query.py: sqla queries for the primary resource and its relationships
#
# - the primary query joins the parent chain of the resource (the parent columns are merged into
#   the base record), outer joins the active hasOne relationships and, when FAST_BELONGS_TO is enabled,
#   the active belongsTo relationships so they don't have to be queried for every base record
# - relationship queries select the referenced resource, join its parent chain and outer join the
#   hasOne relationships declared on the referenced resource
#
# Query results are wrapped in FlatRow/JoinedRow instances (cfr. rows.py)
#
# pylint: disable=logging-format-interpolation
import sarest
from typing import Any, Dict, Iterable, List, Tuple
from sqlalchemy.orm import aliased
from .config import get_flag
from .errors import ConfigurationError
from .relation import Relation, RelationKind
from .rows import BELONGS_TO, HAS_ONE, INTERMEDIATE, PARENT, PRIMARY, Row, RowLayout


class QueryBuilder:
    """
    Build the sqla queries used by an entity

    :param resource: the primary ResourceType
    :param search_helper: the SearchHelper with the filter, sort and paging parameters
    :param entity: the Entity that owns the active relationships
    """

    def __init__(self, resource, search_helper, entity) -> None:
        self.resource = resource
        self.search_helper = search_helper
        self.entity = entity

    @property
    def session(self):
        return sarest.DB.session

    @staticmethod
    def find_column_attr(resource, entities: Dict[str, Any], field: str):
        """
        Lookup the sqla attribute for `field`, the field may be a column of one of the parents of `resource`

        :param resource: ResourceType that owns the field
        :param entities: resource name -> sqla entity (model or alias) selected in the query
        :param field: column attribute name
        :return: sqla attribute or None if the field isn't selected in the query
        """
        for candidate in [resource] + resource.registry.parent_chain(resource):
            if field in candidate.all_columns():
                entity = entities.get(candidate.name)
                return getattr(entity, field) if entity is not None else None
        return None

    def column_attr(self, resource, entities: Dict[str, Any], field: str):
        attr = self.find_column_attr(resource, entities, field)
        if attr is None:
            raise ConfigurationError(f"Unknown field {resource.name}.{field}")
        return attr

    def _join_parents(self, joins: list, resource, layout: RowLayout, entities: Dict[str, Any]) -> None:
        """
        join the parent chain of `resource`, a parent record shares the primary key with its child
        """
        child_pk = getattr(entities[resource.name], resource.primary_key_name)
        for parent in resource.registry.parent_chain(resource):
            parent_entity = aliased(parent.model) if parent.name in entities else parent.model
            entities[parent.name] = parent_entity
            layout.add(parent, parent_entity, PARENT)
            joins.append(("join", parent_entity, getattr(parent_entity, parent.primary_key_name) == child_pk))

    def _join_has_ones(self, joins: list, relations: Iterable[Relation], layout: RowLayout, entities: Dict[str, Any]) -> None:
        for relation in relations:
            target = relation.referenced_type
            target_entity = aliased(target.model)
            local = self.column_attr(relation.owner, entities, relation.fields)
            layout.add(target, target_entity, HAS_ONE, relation.key)
            joins.append(("outerjoin", target_entity, getattr(target_entity, relation.referenced_fields) == local))

    def _query(self, layout: RowLayout, joins: list, select_from=None):
        query = self.session.query(*layout.entities)
        if select_from is not None:
            query = query.select_from(select_from)
        for how, target, onclause in joins:
            if how == "outerjoin":
                query = query.outerjoin(target, onclause)
            else:
                query = query.join(target, onclause)
        return query

    def build(self, mode: str = "data") -> Tuple[Any, RowLayout]:
        """
        Build the primary query

        :param mode: "count" returns a query without sorting and paging, used to count the matching records
        :return: sqla query, row layout
        """
        resource = self.resource
        layout = RowLayout()
        entities = {resource.name: resource.model}
        layout.add(resource, resource.model, PRIMARY)
        joins: list = []
        self._join_parents(joins, resource, layout, entities)

        active = self.entity.active_relations.values()
        has_ones = [rel for rel in active if rel.kind == RelationKind.HAS_ONE and not rel.is_parent]
        self._join_has_ones(joins, has_ones, layout, entities)
        if mode != "count" and get_flag("FAST_BELONGS_TO"):
            for relation in active:
                if not relation.pluckable or relation.is_parent or relation.custom_processing:
                    continue
                target = relation.referenced_type
                target_entity = aliased(target.model)
                local = self.column_attr(resource, entities, relation.fields)
                layout.add(target, target_entity, BELONGS_TO, relation.key)
                joins.append(("outerjoin", target_entity, getattr(target_entity, relation.referenced_fields) == local))

        query = self._query(layout, joins)
        query = self._apply_filters(query, entities)
        if mode == "count":
            return query, layout
        query = self._apply_sort(query, entities)
        return self._apply_paging(query), layout

    def _apply_filters(self, query, entities: Dict[str, Any]):
        helper = self.search_helper
        for field, value in helper.entity_search_fields.items():
            query = query.filter(self.column_attr(self.resource, entities, field) == value)
        for field, value in helper.filters.items():
            if field in self.resource.get_block_columns():
                sarest.log.debug(f"{self.resource.name}: blocked column {field} can't be filtered")
                continue
            attr = self.find_column_attr(self.resource, entities, field)
            if attr is None:
                sarest.log.warning(f"Invalid filter {self.resource.name}.{field}")
                continue
            if isinstance(value, str) and "," in value:
                query = query.filter(attr.in_(value.split(",")))
            elif isinstance(value, (list, tuple, set)):
                query = query.filter(attr.in_(list(value)))
            else:
                query = query.filter(attr == value)
        return query

    def _apply_sort(self, query, entities: Dict[str, Any]):
        """
        sort by csv sort= values, a field prefixed with a minus is sorted descending
        """
        sorted_ = False
        for sort_attr in self.search_helper.sort:
            reverse = sort_attr.startswith("-")
            if reverse:
                sort_attr = sort_attr[1:]
            if sort_attr in self.resource.get_block_columns():
                sarest.log.debug(f"{self.resource.name}: blocked column {sort_attr} can't be sorted")
                continue
            attr = self.find_column_attr(self.resource, entities, sort_attr)
            if attr is None:
                sarest.log.debug(f"{self.resource.name} has no attribute {sort_attr}")
                continue
            query = query.order_by(attr.desc() if reverse else attr)
            sorted_ = True
        if not sorted_:
            query = query.order_by(getattr(self.resource.model, self.resource.primary_key_name))
        return query

    def _apply_paging(self, query):
        helper = self.search_helper
        limit = helper.get_limit()
        if limit:
            query = query.limit(limit)
        if helper.offset:
            query = query.offset(helper.offset)
        return query

    def related_query(self, relation: Relation) -> Tuple[Any, RowLayout, Dict[str, Any]]:
        """
        Query the referenced resource of a belongsTo or hasMany relationship
        The parent chain and the hasOne relationships of the referenced resource are joined in
        """
        target = relation.referenced_type
        layout = RowLayout()
        entities = {target.name: target.model}
        layout.add(target, target.model, PRIMARY)
        joins: list = []
        self._join_parents(joins, target, layout, entities)
        self._join_has_ones(joins, relation.has_ones(), layout, entities)
        query = self._query(layout, joins)
        query = query.order_by(getattr(target.model, target.primary_key_name))
        return query, layout, entities

    def execute(self, query, layout: RowLayout) -> List[Row]:
        return [layout.wrap(result) for result in query.all()]

    def belongs_to_rows(self, relation: Relation, value: Any) -> List[Row]:
        query, layout, entities = self.related_query(relation)
        field = self.column_attr(relation.referenced_type, entities, relation.referenced_fields)
        return self.execute(query.filter(field == value), layout)

    def has_many_rows(self, relation: Relation, values: List[Any]) -> List[Row]:
        """
        :param values: a single value (one base record) or the batched values of all base records
        """
        query, layout, entities = self.related_query(relation)
        field = self.column_attr(relation.referenced_type, entities, relation.referenced_fields)
        if len(values) == 1:
            query = query.filter(field == values[0])
        else:
            query = query.filter(field.in_(values))
        return self.execute(query, layout)

    def through_rows(self, relation: Relation, value: Any) -> List[Row]:
        """
        Query a hasManyThrough relationship: the intermediate resource joined to the referenced resource
        """
        target = relation.referenced_type
        intermediate = relation.intermediate_type
        layout = RowLayout()
        entities: Dict[str, Any] = {target.name: target.model}
        layout.add(target, target.model, PRIMARY)
        inter_entity = aliased(intermediate.model)
        referenced_field = self.column_attr(target, entities, relation.referenced_fields)
        joins: list = [("join", target.model, referenced_field == getattr(inter_entity, relation.intermediate_referenced_fields))]
        self._join_parents(joins, target, layout, entities)
        self._join_has_ones(joins, relation.has_ones(), layout, entities)
        layout.add(intermediate, inter_entity, INTERMEDIATE)
        query = self._query(layout, joins, select_from=inter_entity)
        query = query.filter(getattr(inter_entity, relation.intermediate_fields) == value)
        query = query.order_by(getattr(target.model, target.primary_key_name))
        return self.execute(query, layout)
