from __future__ import annotations


class RegQError(Exception):
    """Base class for failures of a single user action."""


class InputValidationError(RegQError):
    """User input rejected before any model call was made."""


class ModelInvocationError(RegQError):
    """The model provider failed or returned output that does not fit the schema."""

    def __init__(self, flow: str, message: str) -> None:
        super().__init__(f"{flow}: {message}")
        self.flow = flow


class FlowOutputError(RegQError):
    """The model call succeeded but produced no structured output."""


__all__ = [
    "RegQError",
    "InputValidationError",
    "ModelInvocationError",
    "FlowOutputError",
]
