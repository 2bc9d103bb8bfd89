# relation.py: relationship descriptors
#
# A Relation describes one edge between two resource types. The kind is one of a closed set:
# belongsTo, hasOne, hasMany and hasManyThrough (a many-to-many relationship through an
# intermediate resource type). Relations are declared when registering a resource:
#
#   registry.register(Post, parent="Content", relations=[
#       has_many("id", "Comment", "post_id", alias="responses"),
#       belongs_to("author_id", "User", "id"),
#   ])
#
from enum import Enum
from typing import Dict, Optional, Tuple
import sarest
from .errors import ConfigurationError
from .util import singularize


class RelationKind(Enum):
    BELONGS_TO = 0
    HAS_ONE = 1
    HAS_MANY = 2
    HAS_MANY_THROUGH = 4


TO_MANY = (RelationKind.HAS_MANY, RelationKind.HAS_MANY_THROUGH)


class Relation:
    """
    Relationship between the owning resource and a referenced resource

    :param kind: RelationKind
    :param fields: the field on the owning resource
    :param referenced: name of the referenced resource
    :param referenced_fields: the field on the referenced resource
    :param alias: name used to store and request the relationship, required when the owning resource
        has multiple relationships to the same referenced resource
    :param intermediate: name of the intermediate resource of a hasManyThrough relationship
    :param intermediate_fields: intermediate field matching `fields`
    :param intermediate_referenced_fields: intermediate field matching `referenced_fields`
    :param custom_processing: route this relationship to `Entity.process_custom_relationship`
    :param parent: parent of the referenced resource, this is set by the registry when left empty
    """

    def __init__(
        self,
        kind: RelationKind,
        fields: str,
        referenced: str,
        referenced_fields: str,
        alias: Optional[str] = None,
        intermediate: Optional[str] = None,
        intermediate_fields: Optional[str] = None,
        intermediate_referenced_fields: Optional[str] = None,
        custom_processing: bool = False,
        parent: Optional[str] = None,
    ) -> None:
        if not isinstance(kind, RelationKind):
            raise ConfigurationError(f"Unknown relationship kind {kind!r}", api_code="4984846846849494")
        if kind == RelationKind.HAS_MANY_THROUGH and not (intermediate and intermediate_fields and intermediate_referenced_fields):
            raise ConfigurationError(f"hasManyThrough relationship to {referenced} requires an intermediate resource and fields")
        self.kind = kind
        self.fields = fields
        self.referenced = referenced
        self.referenced_fields = referenced_fields
        self.alias = alias
        self.intermediate = intermediate
        self.intermediate_fields = intermediate_fields
        self.intermediate_referenced_fields = intermediate_referenced_fields
        self.custom_processing = custom_processing
        self.parent = parent
        # filled in by ResourceRegistry.finalize()
        self.owner = None
        self.referenced_type = None
        self.intermediate_type = None

    def __repr__(self) -> str:
        return f"<Relation {getattr(self.kind, 'name', self.kind)} {self.owner.name if self.owner else '?'}.{self.fields} -> {self.key}>"

    @property
    def key(self) -> str:
        """
        :return: the name used to store the active relationship, the alias when present
        """
        return self.alias if self.alias else self.referenced

    @property
    def model_name(self) -> str:
        return self.referenced

    def table_name(self, plural: bool = True) -> str:
        """
        The related records are returned under this name in the response
        :param plural: plural or singular table name
        """
        if self.alias:
            return self.alias if plural else singularize(self.alias)
        return self.referenced_type.table_name(plural)

    @property
    def primary_key_name(self) -> str:
        return self.referenced_type.primary_key_name

    def has_ones(self) -> Tuple["Relation", ...]:
        """
        :return: the hasOne relationships declared on the referenced resource, these are merged into the related records
        """
        return tuple(rel for rel in self.referenced_type.relations if rel.kind == RelationKind.HAS_ONE and not rel.is_parent)

    @property
    def is_parent(self) -> bool:
        """
        :return: whether this relationship points to a resource in the parent chain of the owner
        """
        return self.owner is not None and self.referenced in self.owner.parent_names()

    def get_parent(self) -> Optional[str]:
        """
        :return: the parent of the referenced resource, its columns have to be joined into the related records
        """
        return self.parent

    @property
    def pluckable(self) -> bool:
        """
        :return: whether the referenced record of a belongsTo relationship can be joined into the primary query,
            a referenced resource with a parent or with hasOne relationships is queried separately
        """
        return self.kind == RelationKind.BELONGS_TO and not self.get_parent() and not self.has_ones()


def belongs_to(fields: str, referenced: str, referenced_fields: str, alias: Optional[str] = None, **options) -> Relation:
    return Relation(RelationKind.BELONGS_TO, fields, referenced, referenced_fields, alias=alias, **options)


def has_one(fields: str, referenced: str, referenced_fields: str, alias: Optional[str] = None, **options) -> Relation:
    return Relation(RelationKind.HAS_ONE, fields, referenced, referenced_fields, alias=alias, **options)


def has_many(fields: str, referenced: str, referenced_fields: str, alias: Optional[str] = None, **options) -> Relation:
    return Relation(RelationKind.HAS_MANY, fields, referenced, referenced_fields, alias=alias, **options)


def has_many_through(
    fields: str,
    intermediate: str,
    intermediate_fields: str,
    intermediate_referenced_fields: str,
    referenced: str,
    referenced_fields: str,
    alias: Optional[str] = None,
    **options,
) -> Relation:
    return Relation(
        RelationKind.HAS_MANY_THROUGH,
        fields,
        referenced,
        referenced_fields,
        alias=alias,
        intermediate=intermediate,
        intermediate_fields=intermediate_fields,
        intermediate_referenced_fields=intermediate_referenced_fields,
        **options,
    )


def _match_relation(relations, name: str) -> Optional[Relation]:
    """
    The alias is matched first, the referenced table name and resource name after that
    """
    for relation in relations:
        if relation.alias and relation.alias == name:
            return relation
    for relation in relations:
        if name in (relation.table_name(), relation.referenced_type.table_name(), relation.model_name, relation.model_name.lower()):
            return relation
    return None


def resolve_active_relations(resource, selector: Optional[str]) -> Dict[str, Relation]:
    """
    Determine the relationships that have to be loaded for a response:

    - none: only the relationships to the parents of the resource
    - all: all declared relationships
    - a csv list of relationship names, the parent relationships are always added

    Requested names that don't match a relationship are ignored.

    :param resource: ResourceType
    :param selector: "none", "all" or a csv list of aliases, table names or resource names
    :return: relation key -> Relation, in the order the relationships were requested
    """
    selector = (selector or "none").strip()
    active: Dict[str, Relation] = {}
    if selector == "all":
        for relation in resource.relations:
            active[relation.key] = relation
        return active

    requested = list(resource.parent_names())
    if selector != "none":
        requested += [name.strip() for name in selector.lower().split(",") if name.strip()]

    for name in requested:
        relation = _match_relation(resource.relations, name)
        if relation is None:
            sarest.log.debug(f"{resource.name}: no relationship matches '{name}'")
            continue
        active[relation.key] = relation
    return active
