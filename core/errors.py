"""
core/errors.py -- The application's fixed error taxonomy.

Every fallible operation in the store and service layers signals failure by
raising exactly one of the AppError subclasses below. Callers branch on the
class (or its ``name``), never on message text.

Each kind carries a fixed numeric code and a default message. ``info`` is
caller-supplied context (a string or a JSON-able dict) describing what went
wrong, e.g. ``BadRequest({"user_id": "required property missing"})``.

Layer rule: core/ is the kernel. No imports from api/, auth/, or social/.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for every taxonomy error.

    Subclasses only set the three class attributes. Instances add ``info``.
    """

    code: int = 1000
    name: str = "FAIL"
    message: str = "An error occurred"

    def __init__(self, info: Any = None) -> None:
        super().__init__(self.message if info is None else f"{self.message}: {info}")
        self.info = info

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "message": self.message,
            "info": self.info,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.info!r})"


class Fail(AppError):
    code = 1000
    name = "FAIL"
    message = "An error occurred"


class BadRequest(AppError):
    code = 1001
    name = "BAD_REQUEST"
    message = "The request is bad"


class NotFound(AppError):
    code = 1002
    name = "NOT_FOUND"
    message = "The item does not exist"


class AlreadyExists(AppError):
    code = 1003
    name = "ALREADY_EXISTS"
    message = "The item already exists"


class ExtSvcFail(AppError):
    """An infrastructure dependency (the database) failed.

    Distinct from NotFound: absence is an answer, this is the lack of one.
    """

    code = 1004
    name = "EXT_SVC_FAIL"
    message = "External service failure"


class Unauthenticated(AppError):
    code = 1005
    name = "UNAUTHENTICATED"
    message = "Invalid or missing token"


class Forbidden(AppError):
    code = 1006
    name = "FORBIDDEN"
    message = "Wrong username and/or password"


# Registry by name, in code order.
ERRORS: dict[str, type[AppError]] = {
    cls.name: cls for cls in (Fail, BadRequest, NotFound, AlreadyExists, ExtSvcFail, Unauthenticated, Forbidden)
}


def make_error(name: str, info: Any = None) -> AppError:
    """Build the taxonomy error registered under ``name``.

    Raises KeyError for names outside the taxonomy -- the set is fixed.
    """
    return ERRORS[name](info)
