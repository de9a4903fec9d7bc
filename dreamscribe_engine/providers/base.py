import logging
from typing import Any, Dict, Mapping, Optional, Union

import requests

from ..domain import Failure, FailureKind


logger = logging.getLogger(__name__)


def error_detail(payload: Any) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"].strip()
    return ""


def http_failure(label: str, status: int, payload: Any) -> Failure:
    detail = error_detail(payload)
    message = f"{label} error ({status}): {detail}" if detail else f"{label} error ({status})"
    return Failure(message=message, kind=FailureKind.HTTP, status=status, payload=payload)


def empty_failure(label: str, payload: Any, feedback: bool = False) -> Failure:
    noun = "empty feedback response" if feedback else "empty response"
    return Failure(message=f"{label} returned an {noun}", kind=FailureKind.EMPTY_RESPONSE, payload=payload)


def transport_failure(label: str, exc: BaseException) -> Failure:
    env_name = "DREAMSCRIBE_" + "_".join(label.upper().split()) + "_BASE_URL"
    return Failure(
        message=(
            f"{label} request failed before reaching the API. Check your network connection "
            f"or proxy settings, or set {env_name} to a reachable endpoint."
        ),
        kind=FailureKind.TRANSPORT,
        payload={"cause": str(exc)},
    )


def timeout_failure(exc: Optional[BaseException] = None) -> Failure:
    return Failure(
        message="Request timed out",
        kind=FailureKind.TIMEOUT,
        payload={"cause": str(exc)} if exc is not None else None,
    )


def _json_or_none(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def post_json(
    http: Any,
    url: str,
    headers: Mapping[str, str],
    body: Dict[str, Any],
    label: str,
    timeout: float,
) -> Union[Dict[str, Any], Failure]:
    """
    Issue one JSON POST and return the decoded body, or a Failure describing
    why no usable body came back. `http` is the `requests` module or a
    `requests.Session`.
    """
    try:
        resp = http.post(url, headers=dict(headers), json=body, timeout=timeout)
    except requests.Timeout as e:
        logger.warning("http_timeout provider=%s error=%s", label, e)
        return timeout_failure(e)
    except requests.RequestException as e:
        logger.warning("http_transport_error provider=%s error=%s", label, e)
        return transport_failure(label, e)
    payload = _json_or_none(resp)
    if not 200 <= resp.status_code < 300:
        failure = http_failure(label, resp.status_code, payload)
        logger.info("http_error provider=%s status=%s message=%s", label, resp.status_code, failure.message)
        return failure
    if not isinstance(payload, dict):
        return empty_failure(label, payload)
    return payload
