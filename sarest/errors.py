# Exception Handlers
#
# The application loglevel determines the level of detail shown to the user.
# If set to debug, too much sensitive info might be shown !
#
# The exceptions will be caught by the controller and formatted, for example:
# {
#      "title": "Not Found: ",
#      "detail": "Not Found: Could not find record #12 to delete.",
#      "code": "2343467699"
# }
#
import traceback
from flask import has_request_context, request
from werkzeug.exceptions import NotFound
import sarest
from sqlalchemy.exc import DontWrapMixin
from http import HTTPStatus
from .config import is_debug

HIDDEN_LOG = "(debug logging disabled)"


class JsonapiError(Exception, DontWrapMixin):
    """
    Base class for the errors raised by sarest, `api_code` is a stable code that identifies the failure
    and `detail` holds the developer message
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value
    message = ""
    detail = None
    api_code = None

    def __init__(self, message="", status_code=None, api_code=None, detail=None):
        Exception.__init__(self, message)
        if status_code is not None:
            self.status_code = status_code
        self.api_code = api_code
        self.detail = detail


class BadRequestError(JsonapiError):
    """
    This exception is raised when a malformed payload has been submitted
    """

    status_code = HTTPStatus.BAD_REQUEST.value
    message = "Bad Request: "

    def __init__(self, message="", status_code=HTTPStatus.BAD_REQUEST.value, api_code=None, detail=None):
        JsonapiError.__init__(self, message, status_code, api_code, detail)
        sarest.log.warning("BadRequestError: %s", message)
        self.message += message


class NotFoundError(JsonapiError, NotFound):
    """
    This exception is raised when an item was not found
    """

    status_code = HTTPStatus.NOT_FOUND.value
    message = "NotFoundError "

    def __init__(self, message="", status_code=HTTPStatus.NOT_FOUND.value, api_code=None, detail=None):
        """
        :param message: Message to be returned in the (json) body
        :param status_code: HTTP Status code
        :param api_code: API code
        :param detail: developer message
        """
        JsonapiError.__init__(self, message, status_code, api_code, detail)
        sarest.log.error("Not found: %s", message)
        if is_debug():
            self.message += message
        else:
            self.message += HIDDEN_LOG


class ValidationError(JsonapiError):
    """
    This exception is raised when the database layer rejected the submitted fields
    Always send back the message and the field messages to the client in the response
    """

    status_code = HTTPStatus.UNPROCESSABLE_ENTITY.value
    message = "Validation Error: "

    def __init__(self, message="", messages=None, status_code=HTTPStatus.UNPROCESSABLE_ENTITY.value, api_code=None, detail=None):
        """
        :param message: Message to be returned in the (json) body
        :param messages: dict of field name -> list of messages
        """
        JsonapiError.__init__(self, message, status_code, api_code, detail)
        self.messages = messages or {}
        sarest.log.warning("ValidationError: %s %s", message, self.messages)
        self.message += message


class ConfigurationError(JsonapiError):
    """
    This exception is raised when the resource declarations are invalid (unknown relationship kind,
    cyclic parent chain, unknown resource name). This indicates a programming error, not bad input.
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value
    message = "Configuration Error: "

    def __init__(self, message="", status_code=HTTPStatus.INTERNAL_SERVER_ERROR.value, api_code=None, detail=None):
        JsonapiError.__init__(self, message, status_code, api_code, detail)
        sarest.log.error("ConfigurationError: %s", message)
        if is_debug():
            self.message += message
        else:
            self.message += HIDDEN_LOG


class GenericError(JsonapiError):
    """
    This exception is raised when an error has been detected
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value  # 500
    message = "Generic Error: "

    def __init__(self, message, status_code=HTTPStatus.INTERNAL_SERVER_ERROR.value, api_code=None, detail=None):
        JsonapiError.__init__(self, str(message), status_code, api_code, detail)
        sarest.log.error("Generic Error: %s", message)
        if is_debug():
            if has_request_context():
                sarest.log.info(f"Error in {request.url}")
            sarest.log.debug(traceback.format_exc(120))
            self.message += str(message)
        else:
            self.message += HIDDEN_LOG
