from enum import Enum, auto
from typing import Any

from django.utils.translation import gettext as _
from django_stubs_ext import StrPromise
from typing_extensions import override


class ErrorCode(Enum):
    BAD_REQUEST = auto()
    REQUEST_VARIABLE_MISSING = auto()
    REQUEST_VARIABLE_INVALID = auto()
    BAD_EVENT_QUEUE_ID = auto()
    INVALID_API_KEY = auto()
    UNAUTHORIZED = auto()
    USER_DEACTIVATED = auto()
    REACTION_ALREADY_EXISTS = auto()
    REACTION_DOES_NOT_EXIST = auto()
    CANNOT_MUTE_SELF = auto()
    MUTE_STATE_UNAVAILABLE = auto()


class JsonableError(Exception):
    """An error whose message is meant for the API client.

    Raise it (or a subclass) anywhere below a view; JsonErrorHandler
    turns it into a JSON error response carrying `msg`, the name of
    `code`, and anything the subclass adds through `data`.  The message
    is shown to users, so pass it through gettext.

    Subclasses with a fixed message set it in __init__:

        class NoteTooOldError(JsonableError):
            code = ErrorCode.NOTE_TOO_OLD

            def __init__(self) -> None:
                super().__init__(_("Note is too old to edit"))
    """

    code: ErrorCode = ErrorCode.BAD_REQUEST
    http_status_code: int = 400

    def __init__(self, msg: str | StrPromise) -> None:
        super().__init__(str(msg))
        self.msg = str(msg)

    @property
    def data(self) -> dict[str, Any]:
        return {"code": self.code.name}

    @property
    def extra_headers(self) -> dict[str, str]:
        return {}


class UnauthorizedError(JsonableError):
    code = ErrorCode.UNAUTHORIZED
    http_status_code = 401

    def __init__(self, msg: str | StrPromise | None = None) -> None:
        super().__init__(msg or _("Not logged in: API authentication required"))

    @property
    @override
    def extra_headers(self) -> dict[str, str]:
        return {"WWW-Authenticate": 'Basic realm="chirp"'}


class InvalidAPIKeyError(UnauthorizedError):
    code = ErrorCode.INVALID_API_KEY

    def __init__(self, malformed: bool = False) -> None:
        super().__init__(_("Malformed API key") if malformed else _("Invalid API key"))


class UserDeactivatedError(UnauthorizedError):
    code = ErrorCode.USER_DEACTIVATED

    def __init__(self) -> None:
        super().__init__(_("Account is deactivated"))


class AccessDeniedError(JsonableError):
    http_status_code = 403

    def __init__(self) -> None:
        super().__init__(_("Access denied"))


class ResourceNotFoundError(JsonableError):
    http_status_code = 404


class RequestVariableMissingError(JsonableError):
    code = ErrorCode.REQUEST_VARIABLE_MISSING

    def __init__(self, var_name: str) -> None:
        super().__init__(_("Missing '{var_name}' argument").format(var_name=var_name))
        self.var_name = var_name

    @property
    @override
    def data(self) -> dict[str, Any]:
        return {**super().data, "var_name": self.var_name}


class ApiParamValidationError(JsonableError):
    code = ErrorCode.REQUEST_VARIABLE_INVALID


class BadEventQueueIdError(JsonableError):
    code = ErrorCode.BAD_EVENT_QUEUE_ID

    def __init__(self, queue_id: str) -> None:
        super().__init__(_("Bad event queue ID: {queue_id}").format(queue_id=queue_id))
        self.queue_id = queue_id

    @property
    @override
    def data(self) -> dict[str, Any]:
        return {**super().data, "queue_id": self.queue_id}


class ReactionExistsError(JsonableError):
    code = ErrorCode.REACTION_ALREADY_EXISTS

    def __init__(self) -> None:
        super().__init__(_("Reaction already exists."))


class ReactionDoesNotExistError(JsonableError):
    code = ErrorCode.REACTION_DOES_NOT_EXIST

    def __init__(self) -> None:
        super().__init__(_("Reaction doesn't exist."))


class CannotMuteSelfError(JsonableError):
    code = ErrorCode.CANNOT_MUTE_SELF

    def __init__(self) -> None:
        super().__init__(_("Cannot mute self"))


class MuteStateUnavailableError(JsonableError):
    """The mute relation could not be read.

    Callers deciding visibility treat this as "not visible", or fail
    the whole request; content is never shown without the mute state.
    """

    code = ErrorCode.MUTE_STATE_UNAVAILABLE
    http_status_code = 503

    def __init__(self) -> None:
        super().__init__(_("Mute settings are temporarily unavailable; please retry."))
