"""Request-variable parsing for API views.

@typed_endpoint fills in every keyword-only parameter of a view from
the request (request.POST, then request.GET) and validates the value
against the parameter's annotation with pydantic in strict mode.
Request variables are always strings, so other types are declared as
Json[...]:

    @typed_endpoint
    def get_local_timeline(
        request: HttpRequest,
        user_profile: UserProfile,
        *,
        limit: Json[TimelineLimit] = DEFAULT_TIMELINE_LIMIT,
    ) -> HttpResponse: ...

Parameters annotated PathOnly[...] come from the URL route and are
never read from the request.
"""

import inspect
import json
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Annotated, Any, TypeAlias, TypeVar, get_args, get_origin

from django.http import HttpRequest
from django.utils.translation import gettext_lazy as _
from pydantic import TypeAdapter, ValidationError
from typing_extensions import Concatenate, ParamSpec, get_type_hints

from chirp.lib.exceptions import ApiParamValidationError, RequestVariableMissingError

T = TypeVar("T")
ParamT = ParamSpec("ParamT")
ReturnT = TypeVar("ReturnT")


class _FromURL:
    pass


PathOnly: TypeAlias = Annotated[T, _FromURL()]


@dataclass(frozen=True)
class RequestVariable:
    name: str
    # inspect.Parameter.empty when the variable is required.
    default: Any
    # None for path-only parameters.
    adapter: TypeAdapter[Any] | None

    @property
    def required(self) -> bool:
        return self.default is inspect.Parameter.empty


def comes_from_url(annotation: object) -> bool:
    return get_origin(annotation) is Annotated and any(
        isinstance(metadata, _FromURL) for metadata in get_args(annotation)[1:]
    )


def get_request_variables(view_func: Callable[..., object]) -> list[RequestVariable]:
    hints = get_type_hints(view_func, include_extras=True)
    variables = []
    for name, parameter in inspect.signature(view_func).parameters.items():
        if parameter.kind != inspect.Parameter.KEYWORD_ONLY:
            continue
        annotation = hints[name]
        if comes_from_url(annotation):
            assert parameter.default is inspect.Parameter.empty, f"{name} cannot have a default"
            adapter = None
        else:
            adapter = TypeAdapter(annotation)
        variables.append(RequestVariable(name=name, default=parameter.default, adapter=adapter))
    return variables


# Messages for the pydantic error types our annotations can produce.
VALIDATION_ERROR_MESSAGES = {
    "bool_parsing": _("{var_name} is not a boolean"),
    "bool_type": _("{var_name} is not a boolean"),
    "dict_type": _("{var_name} is not a dict"),
    "greater_than_equal": _("{var_name} is too small"),
    "int_parsing": _("{var_name} is not an integer"),
    "int_type": _("{var_name} is not an integer"),
    "json_invalid": _("{var_name} is not valid JSON"),
    "json_type": _("{var_name} is not valid JSON"),
    "less_than_equal": _("{var_name} is too large"),
    "literal_error": _("Invalid {var_name}"),
    "string_too_long": _("{var_name} is too long (limit: {max_length} characters)"),
    "string_too_short": _("{var_name} cannot be blank"),
    "string_type": _("{var_name} is not a string"),
}


def validate_request_variable(variable: RequestVariable, value: str) -> object:
    assert variable.adapter is not None
    try:
        return variable.adapter.validate_python(value, strict=True)
    except ValidationError as exc:
        # Only the first problem is reported to the client.
        error = exc.errors()[0]
        var_name = variable.name + "".join(f"[{json.dumps(loc)}]" for loc in error["loc"])
        template = VALIDATION_ERROR_MESSAGES.get(error["type"], _("Invalid {var_name}"))
        raise ApiParamValidationError(
            str(template).format(var_name=var_name, **error.get("ctx", {}))
        )


def typed_endpoint(
    view_func: Callable[Concatenate[HttpRequest, ParamT], ReturnT],
) -> Callable[Concatenate[HttpRequest, ParamT], ReturnT]:
    variables = get_request_variables(view_func)
    assert variables, f"{view_func.__name__} has no keyword-only parameters"

    @wraps(view_func)
    def _wrapped_view_func(
        request: HttpRequest, /, *args: ParamT.args, **kwargs: ParamT.kwargs
    ) -> ReturnT:
        for variable in variables:
            if variable.adapter is None:
                assert variable.name in kwargs, f"{variable.name} missing from the URL route"
                continue
            if variable.name in request.POST:
                value = request.POST[variable.name]
            elif variable.name in request.GET:
                value = request.GET[variable.name]
            elif variable.required:
                raise RequestVariableMissingError(variable.name)
            else:
                continue
            kwargs[variable.name] = validate_request_variable(variable, value)
        return view_func(request, *args, **kwargs)

    return _wrapped_view_func


def typed_endpoint_without_parameters(
    view_func: Callable[Concatenate[HttpRequest, ParamT], ReturnT],
) -> Callable[Concatenate[HttpRequest, ParamT], ReturnT]:
    assert not get_request_variables(view_func), f"{view_func.__name__} takes request variables"
    return view_func
