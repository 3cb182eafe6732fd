from __future__ import annotations

from http import HTTPStatus
from typing import Any, Callable, List, Mapping, Optional, Protocol, Type, TypeVar, Union

import requests
from requests.auth import HTTPBasicAuth

from ..logging import get_logger
from ..util.errors import RobotClientError
from .models import ApiError

LOG = get_logger(__name__)

DEFAULT_BASE_URL = "https://robot-ws.your-server.de"


class Record(Protocol):
    envelope: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Any:
        ...


T = TypeVar("T", bound=Record)


class RobotRequestError(RobotClientError):
    """
    A request that did not produce a usable response. cause is the decoded
    ApiError when the webservice sent one, otherwise the transport or decode error.
    """

    def __init__(
        self,
        method: str,
        path: str,
        status_code: Optional[int],
        cause: Union[ApiError, BaseException, None],
        reason: Optional[str] = None,
    ) -> None:
        self.method = method
        self.path = path
        self.status_code = status_code
        self.cause = cause
        self.reason = reason or _status_text(status_code)
        super().__init__(str(self))

    @property
    def api_error(self) -> Optional[ApiError]:
        return self.cause if isinstance(self.cause, ApiError) else None

    def __str__(self) -> str:
        status = f"{self.status_code} {self.reason}".strip() if self.status_code else "no response"
        return f"hetzner: {self.method} {self.path} got '{status}' (cause: {self.cause})"


def _status_text(status_code: Optional[int]) -> str:
    if not status_code:
        return ""
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


def unwrap_one(body: Any, record_type: Type[T]) -> T:
    """
    Unwrap a single {"<envelope>": {...}} object into record_type.
    """
    key = record_type.envelope
    if not isinstance(body, Mapping) or not isinstance(body.get(key), Mapping):
        raise ValueError(f"expected a '{key}' envelope")
    return record_type.from_dict(body[key])


def unwrap_many(body: Any, record_type: Type[T]) -> List[T]:
    """
    Unwrap a listing. The webservice returns a JSON array of envelopes; an
    object whose values are envelopes is accepted as well.
    """
    if isinstance(body, Mapping):
        items = list(body.values())
    elif isinstance(body, list):
        items = body
    else:
        raise ValueError(f"expected a list of '{record_type.envelope}' envelopes")
    return [unwrap_one(item, record_type) for item in items]


class RobotClient:
    """
    Minimal client for the Hetzner Robot webservice.
    Reads are GET, writes are form-encoded POST; both use HTTP Basic auth.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        login: str = "",
        password: str = "",
        *,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self._auth = HTTPBasicAuth(login, password)

    def set_basic_auth(self, login: str, password: str) -> None:
        self._auth = HTTPBasicAuth(login, password)

    def get(self, path: str, record_type: Type[T]) -> List[T]:
        return self._call("GET", path, None, lambda body: unwrap_many(body, record_type))

    def get_one(self, path: str, record_type: Type[T]) -> T:
        return self._call("GET", path, None, lambda body: unwrap_one(body, record_type))

    def post(self, path: str, form: Mapping[str, Any], record_type: Type[T]) -> List[T]:
        return self._call("POST", path, form, lambda body: unwrap_many(body, record_type))

    def post_one(self, path: str, form: Mapping[str, Any], record_type: Type[T]) -> T:
        return self._call("POST", path, form, lambda body: unwrap_one(body, record_type))

    def _call(
        self,
        method: str,
        path: str,
        form: Optional[Mapping[str, Any]],
        decode: Callable[[Any], Any],
    ) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            # requests form-encodes a dict passed as data
            resp = self.session.request(
                method,
                url,
                data=dict(form) if form is not None else None,
                auth=self._auth,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RobotRequestError(method, path, None, e) from e

        LOG.debug("Robot request finished", extra={"method": method, "path": path, "status": resp.status_code})

        if resp.status_code != HTTPStatus.OK:
            raise RobotRequestError(method, path, resp.status_code, _decode_error(resp), reason=resp.reason)
        try:
            return decode(resp.json())
        except ValueError as e:
            raise RobotRequestError(method, path, resp.status_code, e, reason=resp.reason) from e


def _decode_error(resp: requests.Response) -> Union[ApiError, BaseException]:
    try:
        return unwrap_one(resp.json(), ApiError)
    except ValueError as e:
        return e


DEFAULT_CLIENT = RobotClient()


def set_basic_auth(login: str, password: str) -> None:
    """Set credentials used by the module-level get/post helpers."""
    DEFAULT_CLIENT.set_basic_auth(login, password)


def get(path: str, record_type: Type[T]) -> List[T]:
    return DEFAULT_CLIENT.get(path, record_type)


def post(path: str, form: Mapping[str, Any], record_type: Type[T]) -> List[T]:
    return DEFAULT_CLIENT.post(path, form, record_type)
