# passkey_auth/api/pipeline.py
"""
Explicit request pipeline for the passkey endpoints.

Every endpoint is a short list of named steps (extract user, extract payload,
run ceremony). A step returns Success(value), stored under its name for the
following steps, or Failure(status_code, detail), which stops the pipeline
and becomes the HTTP error.
"""

import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from fastapi import HTTPException, Request, status

from passkey_auth.core.log_utils import sanitize_for_log
from passkey_auth.exceptions import (
    InfrastructureError,
    PasskeyError,
    PasskeyNotFoundError,
    PasskeyValidationError,
    VerificationFailedError,
)
from passkey_auth.models.identifiers import IdentifierError, UserId
from passkey_auth.services.ceremony import PasskeyCeremonyService

logger = logging.getLogger(__name__)

T = TypeVar("T")

GENERIC_FAILURE = "Something went wrong. Please try again."


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class Failure:
    status_code: int
    detail: str


StepResult = Success[Any] | Failure


@dataclass
class CeremonyCall:
    """State shared by the steps of one pipeline run."""

    request: Request
    service: PasskeyCeremonyService
    values: dict[str, Any] = field(default_factory=dict)


Step = Callable[[CeremonyCall], Awaitable[StepResult]]


@dataclass(frozen=True)
class PasskeyUserMapping:
    """
    How the host application identifies the caller.

    `user_id` returns the authenticated user's id, or None when the request is
    anonymous. `display_name` defaults to the id. Both may be sync or async.
    """

    user_id: Callable[[Request], Any]
    display_name: Callable[[Request, UserId], Any] | None = None


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def failure_from_error(error: Exception) -> Failure:
    """Map a ceremony error to its HTTP failure."""
    if isinstance(error, PasskeyNotFoundError):
        return Failure(status.HTTP_404_NOT_FOUND, error.user_message)
    if isinstance(error, PasskeyValidationError):
        return Failure(status.HTTP_400_BAD_REQUEST, error.user_message)
    if isinstance(error, VerificationFailedError):
        return Failure(status.HTTP_400_BAD_REQUEST, error.user_message)
    if isinstance(error, InfrastructureError):
        return Failure(status.HTTP_500_INTERNAL_SERVER_ERROR, error.user_message)
    return Failure(status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_FAILURE)


class CeremonyPipeline:
    def __init__(self, name: str, steps: list[tuple[str, Step]]):
        if not steps:
            raise ValueError("CeremonyPipeline requires at least one step.")
        self.name = name
        self._steps = steps

    @property
    def step_names(self) -> list[str]:
        return [step_name for step_name, _ in self._steps]

    async def run(self, call: CeremonyCall) -> Any:
        """
        Run the steps in order and return the value of the last one.

        Raises:
            HTTPException: on the first Failure, or on an unexpected error in a step.
        """
        start_time = time.monotonic()
        result: StepResult = Failure(status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_FAILURE)

        for step_name, step in self._steps:
            try:
                result = await step(call)
            except Exception as e:
                logger.error(
                    "Pipeline %s: step '%s' failed with unexpected error: %s",
                    self.name,
                    step_name,
                    e,
                    exc_info=True,
                )
                result = failure_from_error(e)

            if isinstance(result, Failure):
                logger.warning(
                    "Pipeline %s stopped at step '%s': %s %s",
                    self.name,
                    step_name,
                    result.status_code,
                    sanitize_for_log(result.detail),
                )
                raise HTTPException(status_code=result.status_code, detail=result.detail)

            call.values[step_name] = result.value

        logger.debug("Pipeline %s finished in %.3fs", self.name, time.monotonic() - start_time)
        return result.value


# --- Reusable steps ---


def extract_user(mapping: PasskeyUserMapping) -> Step:
    async def step(call: CeremonyCall) -> StepResult:
        raw = await _resolve(mapping.user_id(call.request))
        if raw is None:
            return Failure(status.HTTP_401_UNAUTHORIZED, "Not authenticated.")
        parsed = UserId.parse(str(raw))
        if isinstance(parsed, IdentifierError):
            logger.warning("User mapping returned an unusable id: %s", parsed.message)
            return Failure(status.HTTP_401_UNAUTHORIZED, "Not authenticated.")
        return Success(parsed)

    return step


def extract_display_name(mapping: PasskeyUserMapping) -> Step:
    async def step(call: CeremonyCall) -> StepResult:
        user_id: UserId = call.values["user"]
        if mapping.display_name is None:
            return Success(user_id.value)
        name = await _resolve(mapping.display_name(call.request, user_id))
        return Success(str(name) if name else user_id.value)

    return step


def extract_json_field(field_name: str, *, required: bool = True) -> Step:
    """Read one top-level field from the JSON body."""

    async def step(call: CeremonyCall) -> StepResult:
        try:
            body = await call.request.json()
        except ValueError:
            return Failure(status.HTTP_400_BAD_REQUEST, "Request body must be JSON.")
        if not isinstance(body, dict):
            return Failure(status.HTTP_400_BAD_REQUEST, "Request body must be a JSON object.")
        value = body.get(field_name)
        if value is None and required:
            return Failure(status.HTTP_400_BAD_REQUEST, f"Missing '{field_name}' in request.")
        return Success(value)

    return step


def run_ceremony(action: Callable[[CeremonyCall], Awaitable[Any]]) -> Step:
    """Wrap a service call, turning ceremony errors into Failures."""

    async def step(call: CeremonyCall) -> StepResult:
        try:
            return Success(await action(call))
        except PasskeyError as e:
            if isinstance(e, InfrastructureError):
                logger.error("Ceremony infrastructure failure: %s", e, exc_info=True)
            return failure_from_error(e)

    return step
