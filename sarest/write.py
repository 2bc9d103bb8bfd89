# write.py: save a record together with its parent records
#
# A resource with a parent is stored in multiple tables: the submitted data is decomposed
# in a chain of model instances, the root ancestor first and the resource itself last.
# The chain is built without touching the database (apart from the injected loader used for updates),
# the instances are persisted afterwards, parent before child:
#
#   chain = build_chain(registry, "Post", {"title": "x", "body": "..."}, SaveMode.INSERT)
#   post_id = persist(sarest.DB.session, chain, SaveMode.INSERT)
#
# pylint: disable=logging-format-interpolation
from enum import Enum
from typing import Any, Callable, Dict, List, NamedTuple, Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import sarest
from .errors import ConfigurationError, GenericError, NotFoundError, ValidationError

SAVE_FAILED_CODE = "7894181864684"


class SaveMode(Enum):
    IDLE = "idle"
    INSERT = "insert"
    UPDATE = "update"
    PERSISTING = "persisting"
    DONE = "done"


class ChainLink(NamedTuple):
    resource: Any  # ResourceType
    instance: Any


def hydrate(resource, instance, data: Dict[str, Any]):
    """
    Copy the submitted values to the model instance:
    every column of the model is taken into account, blocked columns included (these have been
    removed from the submitted data by the controller). Absent fields are left untouched.

    :return: the instance
    """
    for column in resource.all_columns():
        if column in data:
            setattr(instance, column, data[column])
    return instance


def build_chain(
    registry, resource, data: Dict[str, Any], mode: SaveMode, load: Optional[Callable] = None
) -> List[ChainLink]:
    """
    Decompose the submitted data over the resource and its parents

    :param registry: ResourceRegistry
    :param resource: the resource (or resource name) being saved
    :param data: submitted fields, for updates this contains the primary key
    :param mode: SaveMode.INSERT creates new instances, SaveMode.UPDATE loads the existing rows
    :param load: callable(resource, id) -> instance or None, required for updates
    :return: list of ChainLink, root ancestor first
    """
    resource = registry.get(resource)
    if mode == SaveMode.UPDATE:
        if load is None:
            raise ConfigurationError(f"Updating {resource.name} requires a loader")
        id = data.get(resource.primary_key_name)
        instance = load(resource, id)
        if instance is None:
            raise NotFoundError(f"Could not find {resource.name} #{id}", api_code="43758093745021")
    elif mode == SaveMode.INSERT:
        instance = resource.model()
    else:
        raise ConfigurationError(f"Invalid save mode {mode}")

    hydrate(resource, instance, data)
    parent = resource.get_parent()
    if parent is None:
        return [ChainLink(resource, instance)]

    parent_data = dict(data)
    if mode == SaveMode.UPDATE:
        # the parent row shares the primary key of the child row
        parent_data[parent.primary_key_name] = resource.primary_key_value(instance)
    return build_chain(registry, parent, parent_data, mode, load) + [ChainLink(resource, instance)]


def validate(resource, instance, mode: SaveMode) -> Dict[str, List[str]]:
    """
    Check the non-nullable columns of the instance

    :return: column name -> list of messages, empty if the instance is valid
    """
    messages: Dict[str, List[str]] = {}
    for name in resource.all_columns():
        column = resource.column(name)
        if column.nullable or getattr(instance, name, None) is not None:
            continue
        if column.default is not None or column.server_default is not None:
            continue
        if column.primary_key and mode == SaveMode.INSERT:
            # generated by the database or copied from the parent record
            continue
        messages.setdefault(name, []).append(f"{name} is required")
    return messages


def persist(session, chain: List[ChainLink], mode: SaveMode) -> Any:
    """
    Save the instances in the chain, parent first. On insert the child receives the primary key of its parent.
    Everything is committed in one transaction.

    :param session: sqla session
    :param chain: the result of build_chain
    :param mode: SaveMode.INSERT or SaveMode.UPDATE
    :return: the primary key of the saved resource (the last link in the chain)
    """
    messages: Dict[str, List[str]] = {}
    for link in chain:
        for name, errors in validate(link.resource, link.instance, mode).items():
            messages.setdefault(name, []).extend(errors)

    leaf = chain[-1]
    try:
        if messages:
            raise ValidationError("Validation Errors Encountered", messages=messages, api_code=SAVE_FAILED_CODE, detail="failed to save model")
        parent = None
        for link in chain:
            if parent is not None and mode == SaveMode.INSERT:
                setattr(link.instance, link.resource.primary_key_name, parent.resource.primary_key_value(parent.instance))
            session.add(link.instance)
            session.flush()
            parent = link
        result = leaf.resource.primary_key_value(leaf.instance)
        session.commit()
    except ValidationError:
        session.rollback()
        raise
    except IntegrityError as exc:
        session.rollback()
        raise ValidationError(
            "Validation Errors Encountered", messages={leaf.resource.name: [str(exc.orig)]}, api_code=SAVE_FAILED_CODE, detail=str(exc)
        )
    except SQLAlchemyError as exc:
        session.rollback()
        raise GenericError(f"Failed to save {leaf.resource.name}: {exc}", api_code=SAVE_FAILED_CODE)

    sarest.log.debug(f"Saved {leaf.resource.name} #{result} ({mode.value})")
    return result
