# flake8: noqa: F401
#
# sarest exposes SQLAlchemy models as REST resources: the relationships and the parent tables
# of a resource are resolved into one flat response, related records are side loaded.
#
from .sarest_init import DB, log, SAREST, query_stats
from .errors import JsonapiError, BadRequestError, ValidationError, GenericError, NotFoundError, ConfigurationError
from .relation import Relation, RelationKind, belongs_to, has_one, has_many, has_many_through, resolve_active_relations
from .resource import ResourceType, ResourceRegistry
from .search import SearchHelper
from .entity import Entity
from .write import SaveMode
from .controller import ResourceView, SarestApi, register_resource
from .__about__ import __version__, __description__

__all__ = (
    "__version__",
    "__description__",
    #
    "SAREST",
    "DB",
    "log",
    # resources:
    "ResourceType",
    "ResourceRegistry",
    "Relation",
    "RelationKind",
    "belongs_to",
    "has_one",
    "has_many",
    "has_many_through",
    "resolve_active_relations",
    # entity:
    "Entity",
    "SearchHelper",
    "SaveMode",
    # http:
    "ResourceView",
    "SarestApi",
    "register_resource",
    # Errors:
    "JsonapiError",
    "BadRequestError",
    "ValidationError",
    "GenericError",
    "NotFoundError",
    "ConfigurationError",
)
