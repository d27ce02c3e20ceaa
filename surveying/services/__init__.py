# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - persistence, event dispatch and units of work.
"""

from .repository import SurveyRepository, RepositoryConfig
from .events import SurveyEventPublisher, AMQPConfig, PublishResult, create_event_publisher
from .survey_service import SurveyService, ServiceConfig

__all__ = [
    "SurveyRepository",
    "RepositoryConfig",
    "SurveyEventPublisher",
    "AMQPConfig",
    "PublishResult",
    "create_event_publisher",
    "SurveyService",
    "ServiceConfig"
]
