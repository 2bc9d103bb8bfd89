# resource.py: resource types and the resource registry
#
# A ResourceType wraps an SQLAlchemy model and adds the information needed to expose it:
# - names (plural/singular name and table name)
# - the column access policy (block columns and the derived allowed columns)
# - the parent resource: a table whose primary key is also a foreign key into the parent table.
#   The parent columns are merged into the child records and the parent record is saved together
#   with the child record
# - the declared relationships
#
# Parent declarations are registry data: the registry is built once at startup and
# `finalize()` validates the parent chains and resolves the relationship targets.
#
from typing import Dict, Iterable, List, Optional, Type, Union
from sqlalchemy import inspect as sqla_inspect
import sarest
from .errors import ConfigurationError
from .relation import Relation, has_one
from .util import singularize


class ResourceType:
    """
    Table backed entity exposed as a REST resource

    :param model: SQLAlchemy model class
    :param name: resource name, defaults to the model class name
    :param parent: name of the parent resource
    :param block_columns: columns that may not be published by the api, child resources inherit these
    :param relations: list of `Relation` declarations
    """

    def __init__(
        self,
        model: Type,
        name: Optional[str] = None,
        parent: Optional[str] = None,
        block_columns: Iterable[str] = (),
        relations: Iterable[Relation] = (),
        plural_name: Optional[str] = None,
        singular_name: Optional[str] = None,
        plural_table_name: Optional[str] = None,
        singular_table_name: Optional[str] = None,
    ) -> None:
        self.model = model
        self.name = name or model.__name__
        self.parent = parent
        self.declared_block_columns = list(block_columns)
        self.relations: List[Relation] = list(relations)
        self.plural_name = plural_name or self.name
        self.singular_name = singular_name or singularize(self.plural_name)
        self.plural_table_name = plural_table_name or getattr(model, "__tablename__", self.name)
        self.singular_table_name = singular_table_name or singularize(self.plural_table_name)
        self.registry: Optional["ResourceRegistry"] = None
        # None until loaded, see load_block_columns
        self._block_columns: Optional[List[str]] = None
        self._allowed_columns: Optional[List[str]] = None
        self._parent_names: Optional[List[str]] = None

    def __repr__(self) -> str:
        return f"<ResourceType {self.name}>"

    def model_name(self, plural: bool = True) -> str:
        return self.plural_name if plural else self.singular_name

    def table_name(self, plural: bool = True) -> str:
        """
        default behavior is to expect plural table names in the schema
        """
        return self.plural_table_name if plural else self.singular_table_name

    @property
    def primary_key_name(self) -> str:
        """
        :return: the attribute name of the (first) primary key column
        """
        mapper = sqla_inspect(self.model)
        pk_column = mapper.primary_key[0]
        return mapper.get_property_by_column(pk_column).key

    def primary_key_value(self, instance) -> object:
        return getattr(instance, self.primary_key_name, None)

    def all_columns(self) -> List[str]:
        """
        :return: the column attribute names of the model, in declaration order
        """
        return [attr.key for attr in sqla_inspect(self.model).column_attrs]

    def column(self, name: str):
        """
        :return: the sqla column object for the attribute `name`
        """
        return sqla_inspect(self.model).column_attrs[name].columns[0]

    def get_parent(self) -> Optional["ResourceType"]:
        if not self.parent:
            return None
        return self.registry.get(self.parent)

    def parent_names(self) -> List[str]:
        """
        :return: names of all parents from the resource and up the chain, nearest first
        """
        if self._parent_names is None:
            self._parent_names = [parent.name for parent in self.registry.parent_chain(self)]
        return self._parent_names

    #
    # Column access policy
    #
    def load_block_columns(self) -> None:
        """
        Initialize the block columns: the parent block columns are inherited, the declared
        block columns are added to them. Nothing happens when the columns were loaded already.
        """
        if self._block_columns is not None:
            return
        block_columns: List[str] = []
        parent = self.get_parent() if self.registry else None
        if parent is not None:
            block_columns = list(parent.get_block_columns())
        self.set_block_columns(block_columns, clear=True)
        self.set_block_columns(self.declared_block_columns)

    def set_block_columns(self, column_list: Iterable[str], clear: bool = False) -> None:
        """
        for a given list of column names, add them to the block list
        :param column_list: a list of columns to block for this resource
        :param clear: reset the block list, this has the effect of initializing the list
        """
        if clear:
            self._block_columns = []
        elif self._block_columns is None:
            # the inherited and declared block columns are always part of the list
            self.load_block_columns()
        for column in column_list:
            if column not in self._block_columns:
                self._block_columns.append(column)
        self._allowed_columns = None

    def get_block_columns(self) -> List[str]:
        self.load_block_columns()
        return self._block_columns

    def allowed_columns(self, namespace: bool = False) -> List[str]:
        """
        all columns - block columns = allowed columns

        :param namespace: should the resulting names have a model name prefix?
        :return: list of column names that can be published
        """
        if self._allowed_columns is None:
            block_columns = self.get_block_columns()
            self._allowed_columns = [col for col in self.all_columns() if col not in block_columns]
        if namespace:
            return [f"{self.name}.{col}" for col in self._allowed_columns]
        return list(self._allowed_columns)

    #
    # Relations
    #
    def get_relation(self, name: str) -> Optional[Relation]:
        """
        :return: the relationship with alias (or referenced resource) `name`, None if there's no such relationship
        """
        for relation in self.relations:
            if relation.key == name:
                return relation
        return None


class ResourceRegistry:
    """
    The registry maps resource names to resource types. It's built once at startup:

        registry = ResourceRegistry()
        registry.register(Content, block_columns=["secret"])
        registry.register(Post, parent="Content", relations=[has_many("id", "Comment", "post_id", alias="responses")])
        registry.register(Comment)
        registry.finalize()
    """

    def __init__(self) -> None:
        self._resources: Dict[str, ResourceType] = {}
        self.finalized = False

    def __iter__(self):
        return iter(self._resources.values())

    def __contains__(self, name) -> bool:
        return self.find(name) is not None

    def register(self, model: Type, **kwargs) -> ResourceType:
        """
        Register a model, the keyword arguments are passed to `ResourceType`
        :return: the new resource type
        """
        resource = ResourceType(model, **kwargs)
        if resource.name in self._resources:
            raise ConfigurationError(f"Resource {resource.name} registered twice")
        resource.registry = self
        self._resources[resource.name] = resource
        self.finalized = False
        sarest.log.debug(f"Registered resource {resource.name} ({resource.table_name()})")
        return resource

    def find(self, name: Union[str, Type, ResourceType]) -> Optional[ResourceType]:
        """
        Lookup a resource by name, table name or model class
        """
        if isinstance(name, ResourceType):
            return name
        if isinstance(name, str):
            if name in self._resources:
                return self._resources[name]
            for resource in self._resources.values():
                if name in (resource.plural_table_name, resource.singular_table_name):
                    return resource
            return None
        for resource in self._resources.values():
            if resource.model is name:
                return resource
        return None

    def get(self, name: Union[str, Type, ResourceType]) -> ResourceType:
        resource = self.find(name)
        if resource is None:
            raise ConfigurationError(f"Unknown resource {name}")
        return resource

    def parent_chain(self, resource: Union[str, Type, ResourceType]) -> List[ResourceType]:
        """
        walk the parent declarations up to the root

        :return: the ancestors of `resource`, nearest first
        """
        resource = self.get(resource)
        seen = [resource.name]
        chain = []
        current = resource
        while current.parent:
            if current.parent in seen:
                raise ConfigurationError(f"Cyclic parent chain for {resource.name}: {' -> '.join(seen + [current.parent])}")
            current = self.get(current.parent)
            seen.append(current.name)
            chain.append(current)
        return chain

    def finalize(self) -> "ResourceRegistry":
        """
        Validate the parent chains and resolve the relationship targets
        a hasOne relationship to the parent is added for resources that don't declare one
        """
        for resource in self._resources.values():
            chain = self.parent_chain(resource)
            if resource.parent and not any(rel.referenced == resource.parent for rel in resource.relations):
                parent = chain[0]
                resource.relations.insert(
                    0, has_one(resource.primary_key_name, parent.name, parent.primary_key_name, alias=parent.name)
                )
        for resource in self._resources.values():
            for relation in resource.relations:
                relation.owner = resource
                relation.referenced_type = self.get(relation.referenced)
                if relation.intermediate:
                    relation.intermediate_type = self.get(relation.intermediate)
                if relation.parent is None:
                    relation.parent = relation.referenced_type.parent
        self.finalized = True
        return self
