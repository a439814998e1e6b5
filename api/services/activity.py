# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Activity log service: append-only record of portal and operator actions
with OpenTelemetry correlation.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Any
from opentelemetry import trace
from pymongo import DESCENDING

from .mongodb import MongoDBService
from models.base import utc_now
from models.enums import ActivityType, ActivitySource

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_ACTIVITY_LIMIT = 100


class ActivityFilters:
    """Filters for activity log queries."""

    def __init__(
        self,
        beneficiary_id: Optional[str] = None,
        source: Optional[ActivitySource] = None,
        activity_type: Optional[ActivityType] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ):
        self.beneficiary_id = beneficiary_id
        self.source = source
        self.activity_type = activity_type
        self.start_date = start_date
        self.end_date = end_date

    def to_mongo_query(self) -> Dict[str, Any]:
        """Convert filters to MongoDB query."""
        query = {}

        if self.beneficiary_id:
            query["beneficiary_id"] = self.beneficiary_id

        if self.source:
            query["source"] = ActivitySource(self.source).value

        if self.activity_type:
            query["type"] = ActivityType(self.activity_type).value

        if self.start_date or self.end_date:
            date_filter = {}
            if self.start_date:
                date_filter["$gte"] = self.start_date
            if self.end_date:
                date_filter["$lte"] = self.end_date
            query["timestamp"] = date_filter

        return query


class ActivityService:
    """Persists and lists activity log entries."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service
        self.collection_name = "activity_log"

    def log_activity(
        self,
        action: str,
        user_name: str,
        role: str,
        activity_type: ActivityType,
        beneficiary_id: Optional[str] = None,
        details: Optional[str] = None,
        source: ActivitySource = ActivitySource.BENEFICIARY
    ) -> Dict[str, Any]:
        """
        Append an activity log entry.

        Args:
            action: Human-readable description of the action
            user_name: Name of the actor
            role: Role of the actor
            activity_type: Category of the action
            beneficiary_id: Beneficiary the action concerns (optional)
            details: Free-form details (optional)
            source: Surface that produced the action

        Returns:
            The stored entry
        """
        with tracer.start_as_current_span("activity.log") as span:
            activity_type = ActivityType(activity_type)
            source = ActivitySource(source)

            entry = {
                "action": action,
                "user_name": user_name,
                "role": role,
                "type": activity_type.value,
                "beneficiary_id": beneficiary_id,
                "details": details,
                "source": source.value,
                "timestamp": utc_now()
            }

            span_context = span.get_span_context()
            if span_context.is_valid:
                entry["trace_id"] = format(span_context.trace_id, "032x")

            span.set_attributes({
                "activity.type": activity_type.value,
                "activity.source": source.value,
                "activity.role": role
            })

            try:
                stored = self.mongo_service.insert(self.collection_name, entry)
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                logger.error(
                    "Failed to write activity log entry",
                    extra={"activity_type": activity_type.value, "source": source.value, "error": str(e)},
                    exc_info=True
                )
                raise

            logger.info(
                "Activity logged",
                extra={
                    "activity_id": stored["id"],
                    "activity_type": activity_type.value,
                    "source": source.value,
                    "beneficiary_id": beneficiary_id
                }
            )
            return stored

    def list_activity(
        self,
        filters: Optional[ActivityFilters] = None,
        limit: int = DEFAULT_ACTIVITY_LIMIT
    ) -> List[Dict[str, Any]]:
        """Newest entries first."""
        query = filters.to_mongo_query() if filters else {}
        return self.mongo_service.find(
            self.collection_name,
            query,
            sort=[("timestamp", DESCENDING)],
            limit=limit
        )

    def get_all(self) -> List[Dict[str, Any]]:
        return self.list_activity()

    def get_by_beneficiary(self, beneficiary_id: str) -> List[Dict[str, Any]]:
        return self.list_activity(ActivityFilters(beneficiary_id=beneficiary_id), limit=0)
