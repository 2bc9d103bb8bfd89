# controller.py: expose the entities over http
#
# register_resource() exposes a registered resource through a flask_restful Api:
#
#   GET    /posts          Entity.find()
#   GET    /posts/<id>     Entity.find_first(id)
#   POST   /posts          Entity.save(data), returns the saved record
#   PUT    /posts/<id>     Entity.save(data, id), returns the saved record (PATCH is handled the same way)
#   DELETE /posts/<id>     Entity.delete(id)
#
# Submitted documents have the form {"id": .., "attributes": {..}, "relationships": {"user": {"data": {"id": ..}}}},
# optionally wrapped in a top level "data" member.
#
# pylint: disable=logging-format-interpolation, redefined-builtin, broad-except
import logging
from functools import wraps
from http import HTTPStatus
from typing import Any, Callable, Dict, Optional
from werkzeug.exceptions import HTTPException, NotFound
from flask import jsonify, make_response, request
from flask_restful import Api, Resource
import sarest
from .entity import Entity
from .errors import BadRequestError, GenericError, JsonapiError, NotFoundError, ValidationError
from .relation import RelationKind
from .search import SearchHelper


def http_method_decorator(fun: Callable) -> Callable:
    """Decorator for the http methods (get, post, put, patch, delete)
    - convert all exceptions to a json error document
    - rollback the database session on error

    :param fun:
    :return: wrapped fun
    """

    @wraps(fun)
    def method_wrapper(*args, **kwargs):
        """Wrap the method and perform error handling
        :param *args:
        :param **kwargs:
        :return: result of the wrapped method
        """
        sarest_exception = None
        status_code = 500
        message = ""
        try:
            return fun(*args, **kwargs)

        except NotFound as exc:
            # this also catches sarest.errors.NotFoundError
            status_code = 404
            sarest_exception = exc
            message = HTTPStatus.NOT_FOUND.description

        except JsonapiError as exc:
            sarest.log.exception(exc)
            sarest_exception = exc

        except HTTPException as exc:
            status_code = exc.code
            message = exc.description
            sarest.log.error(message)

        except Exception as exc:
            sarest.log.exception(exc)
            sarest_exception = exc
            if sarest.log.getEffectiveLevel() > logging.DEBUG:
                message = "Logging Disabled"
            else:
                message = str(exc)

        status_code = getattr(sarest_exception, "status_code", status_code)
        api_code = getattr(sarest_exception, "api_code", None) or status_code
        title = getattr(sarest_exception, "message", message)
        detail = getattr(sarest_exception, "detail", None) or title

        sarest.DB.session.rollback()
        document: Dict[str, Any] = {"errors": [dict(title=title, detail=detail, code=str(api_code))]}
        if isinstance(sarest_exception, ValidationError) and sarest_exception.messages:
            document["meta"] = {"messages": sarest_exception.messages}
        return make_response(jsonify(document), status_code)

    return method_wrapper


class ResourceView(Resource):
    """
    http endpoint for a resource, the class attributes are set by register_resource
    """

    # ResourceType
    resource = None
    # Entity (sub)class used to handle the requests
    entity_class = Entity
    method_decorators = [http_method_decorator]

    def get_entity(self) -> Entity:
        """
        :return: a new entity for the current request
        """
        return self.entity_class(self.resource, SearchHelper.from_request())

    def cast_id(self, id: Any) -> Any:
        """
        Convert the id from the url to the type of the primary key column
        """
        column = self.resource.column(self.resource.primary_key_name)
        try:
            python_type = column.type.python_type
        except NotImplementedError:
            return id
        try:
            return python_type(id)
        except (TypeError, ValueError):
            raise NotFoundError(f"Invalid id {id}", api_code="43758093745021")

    def munge_submitted_data(self, payload: Any) -> Dict[str, Any]:
        """
        will disentangle the submitted document down to a flat dict that can be saved

        :param payload: the submitted json
        :return: the submitted attributes, including the id and the belongsTo/hasOne foreign keys
        """
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        if not isinstance(payload, dict) or not isinstance(payload.get("attributes"), dict):
            # all submitted documents require an attributes member
            raise BadRequestError(
                "The API received a malformed API request",
                api_code="894168146168168168161",
                detail="Bad or incomplete attributes property submitted to the api",
            )
        data = dict(payload["attributes"])
        if payload.get("id") is not None:
            data[self.resource.primary_key_name] = payload["id"]

        relationships = payload.get("relationships") or {}
        for relation in self.resource.relations:
            if relation.kind not in (RelationKind.HAS_ONE, RelationKind.BELONGS_TO):
                continue
            related = relationships.get(relation.table_name(False))
            # an empty relationship may be submitted, this isn't an error
            if isinstance(related, dict) and isinstance(related.get("data"), dict) and "id" in related["data"]:
                data[relation.fields] = related["data"]["id"]
        return data

    def submitted_data(self) -> Dict[str, Any]:
        payload = request.get_json(silent=True)
        if not payload:
            raise BadRequestError("Missing submitted data", api_code="568136818916816", detail="Invalid data posted to the server")
        data = self.munge_submitted_data(payload)
        # filter out the block columns from the submitted data
        for column in self.resource.get_block_columns():
            data.pop(column, None)
        return data

    def before_save(self, data: Dict[str, Any], id: Any = None) -> Dict[str, Any]:
        return data

    def after_save(self, data: Dict[str, Any], id: Any) -> None:
        pass

    def before_delete(self, id: Any) -> None:
        pass

    def after_delete(self, id: Any) -> None:
        pass

    def get(self, id: Optional[Any] = None):
        """
        HTTP GET: a collection or a single record
        """
        entity = self.get_entity()
        if id is None:
            result = entity.find()
            if result is False:
                raise NotFoundError(f"{self.resource.name} search returned no results")
            return jsonify(result)

        result = entity.find_first(self.cast_id(id))
        if result is False:
            raise NotFoundError(
                "Resource not available.", api_code="43758093745021", detail="The resource you requested is not available."
            )
        return jsonify(result)

    def _saved_response(self, id: Any, status_code: int):
        result = self.get_entity().find_first(id)
        if result is False:
            raise GenericError(
                "There was an error retrieving the newly created record.",
                api_code="1238510381861",
                detail="The resource you requested is not available after it was just created",
            )
        return make_response(jsonify(result), status_code)

    def post(self, id: Optional[Any] = None):
        """
        HTTP POST: create a new record
        """
        if id is not None:
            raise BadRequestError("POST to a resource id is not supported")
        data = self.before_save(self.submitted_data())
        id = self.get_entity().save(data)
        self.after_save(data, id)
        return self._saved_response(id, HTTPStatus.CREATED.value)

    def put(self, id: Optional[Any] = None):
        """
        HTTP PUT: update an existing record
        """
        if id is None:
            raise BadRequestError("PUT requires a resource id")
        id = self.cast_id(id)
        data = self.before_save(self.submitted_data(), id)
        id = self.get_entity().save(data, id)
        self.after_save(data, id)
        return self._saved_response(id, HTTPStatus.OK.value)

    def patch(self, id: Optional[Any] = None):
        """
        HTTP PATCH: same as PUT
        """
        return self.put(id)

    def delete(self, id: Optional[Any] = None):
        """
        HTTP DELETE: remove a record
        """
        if id is None:
            raise BadRequestError("DELETE requires a resource id")
        id = self.cast_id(id)
        self.before_delete(id)
        self.get_entity().delete(id)
        self.after_delete(id)
        return make_response("", HTTPStatus.NO_CONTENT.value)


class SarestApi(Api):
    """
    flask_restful Api that exposes registered resources under its prefix
    """

    def __init__(self, app, registry, prefix: str = "", **kwargs) -> None:
        self.registry = registry
        super().__init__(app, prefix=prefix.rstrip("/"), **kwargs)

    def expose_resource(self, name: str, entity_cls=Entity, view_cls=ResourceView) -> None:
        """
        Create the collection and instance endpoints of a resource

        :param name: resource name (or table name or model)
        :param entity_cls: the Entity class that handles the requests
        :param view_cls: ResourceView subclass
        """
        resource = self.registry.get(name)
        properties = dict(resource=resource, entity_class=entity_cls)
        api_class_name = f"{resource.name}_API"
        endpoint = f"{self.prefix.strip('/').replace('/', '_')}_{resource.table_name()}".lstrip("_")
        url = f"/{resource.table_name()}"

        sarest.log.info(f"Exposing {resource.name} on {self.prefix}{url}, endpoint: {endpoint}")
        self.add_resource(type(api_class_name, (view_cls,), properties), url, endpoint=endpoint, methods=["GET", "POST"])

        url = f"{url}/<id>"
        self.add_resource(
            type(api_class_name + "_i", (view_cls,), properties),
            url,
            endpoint=f"{endpoint}_instance",
            methods=["GET", "PUT", "PATCH", "DELETE"],
        )


def register_resource(app, registry, name: str, entity_cls=Entity, url_prefix: str = "", view_cls=ResourceView) -> SarestApi:
    """
    Add the collection and instance endpoints of a resource to the app,
    one SarestApi is created per app and url prefix

    :param app: Flask app
    :param registry: a finalized ResourceRegistry
    :param name: resource name (or table name or model)
    :param entity_cls: the Entity class that handles the requests
    :param url_prefix: prefix for the resource urls, the plural table name is appended to it
    :param view_cls: ResourceView subclass
    :return: the api that exposes the resource
    """
    apis = app.extensions.setdefault("sarest_apis", {})
    api = apis.get(url_prefix)
    if api is None or api.registry is not registry:
        api = apis[url_prefix] = SarestApi(app, registry, prefix=url_prefix)
    api.expose_resource(name, entity_cls=entity_cls, view_cls=view_cls)
    return api
