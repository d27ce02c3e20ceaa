# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB persistence for the survey aggregate.

A survey is stored as one document holding its questions, responses and
answers. Saves replace the whole document and are guarded by the aggregate's
``version`` counter, so a save based on a stale read is rejected.
"""

import os
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError,
    PyMongoError
)
from bson import ObjectId
from bson.errors import InvalidId
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..exceptions import ConcurrencyConflictException, ValidationException
from ..models.enums import SurveyState
from ..models.survey import Survey

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class RepositoryConfig:
    """MongoDB connection settings."""
    uri: str = "mongodb://localhost:27017/surveys_dev"
    database: str = "surveys_dev"
    collection: str = "surveys"
    max_pool_size: int = 10
    min_pool_size: int = 1
    max_idle_time_ms: int = 30000
    server_selection_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> "RepositoryConfig":
        """Load settings from environment variables."""
        return cls(
            uri=os.getenv('MONGODB_URI', 'mongodb://localhost:27017/surveys_dev'),
            database=os.getenv('MONGODB_DATABASE', 'surveys_dev'),
            collection=os.getenv('SURVEY_COLLECTION', 'surveys'),
            max_pool_size=int(os.getenv('MONGODB_MAX_POOL_SIZE', '10')),
            min_pool_size=int(os.getenv('MONGODB_MIN_POOL_SIZE', '1')),
            max_idle_time_ms=int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000')),
            server_selection_timeout_ms=int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))
        )


class SurveyRepository:
    """Loads and saves whole survey aggregates with optimistic concurrency."""

    def __init__(self, config: Optional[RepositoryConfig] = None, client: Optional[MongoClient] = None):
        self.config = config or RepositoryConfig.from_env()
        self._client: Optional[MongoClient] = client
        self._database: Optional[Database] = None

        logger.info(
            "Survey repository initialized",
            extra={"extra_fields": {"database": self.config.database, "collection": self.config.collection}}
        )

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.config.uri,
                    maxPoolSize=self.config.max_pool_size,
                    minPoolSize=self.config.min_pool_size,
                    maxIdleTimeMS=self.config.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise

        return self._client

    @property
    def database(self) -> Database:
        if self._database is None:
            self._database = self.client[self.config.database]
        return self._database

    @property
    def collection(self) -> Collection:
        return self.database[self.config.collection]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.config.database,
                'collection': self.config.collection
            }
        except PyMongoError as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.config.database
            }

    # Mapping

    @staticmethod
    def _validate_object_id(survey_id: str) -> ObjectId:
        """Validate and convert string ID to ObjectId."""
        try:
            return ObjectId(survey_id)
        except (InvalidId, TypeError):
            raise ValidationException(f"Invalid ObjectId format: {survey_id}")

    def _to_document(self, survey: Survey, version: int) -> Dict[str, Any]:
        document = survey.model_dump(mode="json", by_alias=True)
        document.pop("id", None)
        document["_id"] = self._validate_object_id(survey.id)
        document["version"] = version
        return document

    @staticmethod
    def _from_document(document: Dict[str, Any]) -> Survey:
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        return Survey.model_validate(data)

    # Aggregate operations

    def get_by_id(self, survey_id: str) -> Optional[Survey]:
        """Load a survey with all its children, or None if it does not exist."""
        with tracer.start_as_current_span("survey.repository.get_by_id") as span:
            span.set_attribute("survey.id", survey_id)
            object_id = self._validate_object_id(survey_id)

            document = self.collection.find_one({"_id": object_id})
            if document is None:
                logger.debug(f"Survey {survey_id} not found")
                return None

            survey = self._from_document(document)
            span.set_attribute("survey.version", survey.version)
            return survey

    def add(self, survey: Survey) -> str:
        """Insert a new survey."""
        with tracer.start_as_current_span("survey.repository.add") as span:
            span.set_attribute("survey.id", survey.id)
            try:
                self.collection.insert_one(self._to_document(survey, survey.version))
            except DuplicateKeyError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.error(f"Duplicate survey id {survey.id}: {e}")
                raise ValidationException(f"Survey {survey.id} already exists")

            logger.info(
                "Survey created",
                extra={"extra_fields": {"survey_id": survey.id, "version": survey.version}}
            )
            return survey.id

    def save(self, survey: Survey) -> None:
        """
        Replace the stored survey if its version still matches.

        On success the in-memory ``survey.version`` is incremented.

        Raises:
            ConcurrencyConflictException: If the stored version has moved on
                or the survey no longer exists.
        """
        with tracer.start_as_current_span("survey.repository.save") as span:
            expected_version = survey.version
            span.set_attributes({"survey.id": survey.id, "survey.expected_version": expected_version})

            result = self.collection.replace_one(
                {"_id": self._validate_object_id(survey.id), "version": expected_version},
                self._to_document(survey, expected_version + 1)
            )

            if result.matched_count == 0:
                span.set_status(Status(StatusCode.ERROR, "version conflict"))
                logger.warning(
                    "Survey save rejected by version check",
                    extra={"extra_fields": {"survey_id": survey.id, "expected_version": expected_version}}
                )
                raise ConcurrencyConflictException(
                    f"Survey {survey.id} was modified concurrently (expected version {expected_version})",
                    expected_version=expected_version
                )

            survey.version = expected_version + 1
            logger.debug(
                "Survey saved",
                extra={"extra_fields": {"survey_id": survey.id, "version": survey.version}}
            )

    def list_by_state(self, state: SurveyState) -> List[Survey]:
        state_value = SurveyState(state).value
        documents = self.collection.find({"state": state_value}).sort("updated_at", DESCENDING)
        return [self._from_document(document) for document in documents]

    def delete(self, survey_id: str) -> bool:
        result = self.collection.delete_one({"_id": self._validate_object_id(survey_id)})
        if result.deleted_count > 0:
            logger.warning(f"Deleted survey {survey_id}")
            return True
        return False

    def create_indexes(self) -> None:
        """Create the indexes used by survey queries."""
        logger.info("Creating survey indexes...")

        self.collection.create_index([("state", ASCENDING), ("updated_at", DESCENDING)])
        self.collection.create_index([("responses.participant.member_id", ASCENDING)], sparse=True)
        self.collection.create_index([("responses.participant.participant_hash", ASCENDING)], sparse=True)
        self.collection.create_index([("responses.id", ASCENDING)])

        logger.info("Survey indexes created successfully")
