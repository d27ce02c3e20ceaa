# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Exception hierarchy for the survey engine.

Aggregate methods raise these before mutating any state, so a caller that
catches one can discard the in-memory aggregate without partial updates.
"""

from typing import List, Optional


class SurveyDomainException(Exception):
    """Base class for survey engine exceptions."""

    def __init__(self, message: str, error_type: str = "domain-error"):
        super().__init__(message)
        self.message = message
        self.error_type = error_type


class ValidationException(SurveyDomainException, ValueError):
    """Exception for invalid arguments."""

    def __init__(self, message: str, validation_errors: Optional[List[str]] = None):
        super().__init__(message, "validation-error")
        self.validation_errors = validation_errors or []


class InvalidStateException(SurveyDomainException):
    """Exception for operations not allowed in the current state."""

    def __init__(self, message: str):
        super().__init__(message, "invalid-state")


class NotFoundException(SurveyDomainException):
    """Exception for unknown survey, response, question or option ids."""

    def __init__(self, message: str):
        super().__init__(message, "resource-not-found")


class ConcurrencyConflictException(SurveyDomainException):
    """Exception raised when a save finds the stored version has moved."""

    def __init__(self, message: str, expected_version: Optional[int] = None):
        super().__init__(message, "resource-conflict")
        self.expected_version = expected_version


class EventPublishException(SurveyDomainException):
    """Raised when domain events cannot be delivered to the broker."""

    def __init__(self, message: str):
        super().__init__(message, "event-publish-failed")
