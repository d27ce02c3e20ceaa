# SPDX-License-Identifier: Apache-2.0

"""
Application service running survey operations as units of work.

Each unit loads the aggregate, applies an operation, saves it with the
version check and then publishes the events the operation raised. A version
conflict discards the in-memory aggregate and reruns the whole unit.
"""

import logging
import os
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..exceptions import ConcurrencyConflictException, EventPublishException, NotFoundException
from ..models.survey import Survey
from .events import PublishResult, SurveyEventPublisher
from .repository import SurveyRepository

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")


@dataclass
class ServiceConfig:
    """Unit-of-work settings."""
    max_conflict_retries: int = 3
    fail_on_publish_error: bool = False

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        return cls(
            max_conflict_retries=int(os.getenv('SURVEY_MAX_CONFLICT_RETRIES', '3')),
            fail_on_publish_error=os.getenv('SURVEY_FAIL_ON_PUBLISH_ERROR', 'false').lower() == 'true'
        )


class SurveyService:
    """Loads, mutates, saves and dispatches events for survey aggregates."""

    def __init__(
        self,
        repository: SurveyRepository,
        publisher: Optional[SurveyEventPublisher] = None,
        config: Optional[ServiceConfig] = None
    ):
        self.repository = repository
        self.publisher = publisher
        self.config = config or ServiceConfig()

    def load(self, survey_id: str) -> Survey:
        survey = self.repository.get_by_id(survey_id)
        if survey is None:
            raise NotFoundException(f"Survey {survey_id} not found")
        return survey

    def create(self, survey: Survey) -> Survey:
        """Persist a new survey and publish any events it has already raised."""
        self.repository.add(survey)
        self._dispatch(survey, str(uuid.uuid4()))
        return survey

    def execute(self, survey_id: str, operation: Callable[[Survey], T]) -> T:
        """
        Run ``operation`` against a freshly loaded survey and save the result.

        Args:
            survey_id: Survey to load
            operation: Callable receiving the survey; its return value is returned

        Returns:
            Whatever ``operation`` returned on the successful attempt

        Raises:
            NotFoundException: If the survey does not exist
            ConcurrencyConflictException: If every attempt lost a version race
        """
        correlation_id = str(uuid.uuid4())

        with tracer.start_as_current_span("survey.service.execute") as span:
            span.set_attributes({"survey.id": survey_id, "correlation_id": correlation_id})

            for attempt in range(self.config.max_conflict_retries + 1):
                survey = self.load(survey_id)
                result = operation(survey)

                try:
                    self.repository.save(survey)
                except ConcurrencyConflictException as e:
                    if attempt >= self.config.max_conflict_retries:
                        span.record_exception(e)
                        span.set_status(Status(StatusCode.ERROR, str(e)))
                        logger.error(
                            "Survey update failed after all conflict retries",
                            extra={"extra_fields": {"survey_id": survey_id, "attempts": attempt + 1}}
                        )
                        raise

                    logger.info(
                        "Survey version conflict, retrying",
                        extra={"extra_fields": {"survey_id": survey_id, "attempt": attempt + 1}}
                    )
                    continue

                span.set_attribute("survey.version", survey.version)
                self._dispatch(survey, correlation_id)
                return result

        raise ConcurrencyConflictException(f"Survey {survey_id} could not be saved")

    def _dispatch(self, survey: Survey, correlation_id: str) -> List[PublishResult]:
        events = survey.pull_domain_events()
        if not events or self.publisher is None:
            return []

        results = self.publisher.publish_all(events, correlation_id)
        failed = [result for result in results if not result.success]

        if failed:
            logger.error(
                "Some survey events could not be published",
                extra={
                    "extra_fields": {
                        "survey_id": survey.id,
                        "correlation_id": correlation_id,
                        "failed_events": [result.event_id for result in failed]
                    }
                }
            )
            if self.config.fail_on_publish_error:
                raise EventPublishException(f"{len(failed)} survey event(s) could not be published")

        return results
