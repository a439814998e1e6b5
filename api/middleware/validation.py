# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request validation middleware using Pydantic models.
Parses request bodies and query strings and formats validation errors.
"""

from flask import request, jsonify
from typing import Type, TypeVar, Dict, Any, List
from pydantic import BaseModel, ValidationError
from opentelemetry import trace
import logging

from services.hal import HalFormatter
from middleware.error_handler import ValidationException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class ValidationMiddleware:
    """Middleware for request validation using Pydantic models."""

    def __init__(self, base_url: str):
        self.hal_formatter = HalFormatter(base_url)

    def format_validation_errors(self, validation_error: ValidationError) -> List[Dict[str, Any]]:
        """
        Format Pydantic validation errors for API response.

        Args:
            validation_error: Pydantic ValidationError

        Returns:
            List of formatted error dictionaries
        """
        errors = []

        for error in validation_error.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            errors.append({
                "field": field_path,
                "message": error["msg"],
                "type": error["type"],
                "input": error.get("input")
            })

        return errors

    def parse_json_body(self, model_class: Type[M]) -> M:
        """
        Validate the JSON request body against a Pydantic model.

        Raises:
            ValidationException: Body missing, not JSON, or invalid for the model
        """
        with tracer.start_as_current_span("validation.parse_json_body") as span:
            span.set_attributes({
                "validation.model": model_class.__name__,
                "http.method": request.method,
                "http.path": request.path
            })

            json_data = request.get_json(silent=True)
            if not isinstance(json_data, dict):
                span.set_attribute("validation.result", "invalid_json")
                raise ValidationException(
                    "Request body must be a JSON object",
                    [{
                        "field": "body",
                        "message": "Expected a JSON object",
                        "type": "json_error",
                        "input": None
                    }]
                )

            try:
                validated_data = model_class.model_validate(json_data)
            except ValidationError as e:
                span.set_attribute("validation.result", "validation_error")
                validation_errors = self.format_validation_errors(e)
                logger.warning(
                    "Request validation failed",
                    extra={
                        "model": model_class.__name__,
                        "path": request.path,
                        "method": request.method,
                        "errors": validation_errors
                    }
                )
                raise ValidationException(
                    f"Request validation failed for {model_class.__name__}",
                    validation_errors
                )

            span.set_attribute("validation.result", "success")
            return validated_data

    def parse_query_params(self, model_class: Type[M]) -> M:
        """Validate query parameters against a Pydantic model."""
        query_data = request.args.to_dict()

        try:
            return model_class.model_validate(query_data)
        except ValidationError as e:
            validation_errors = self.format_validation_errors(e)
            logger.warning(
                "Query parameter validation failed",
                extra={
                    "model": model_class.__name__,
                    "path": request.path,
                    "params": query_data,
                    "errors": validation_errors
                }
            )
            raise ValidationException(
                f"Query parameter validation failed for {model_class.__name__}",
                validation_errors
            )

    def validation_error_response(self, validation_error: ValidationError):
        """Render request model errors raised while flask-openapi3 binds path parameters."""
        error_response = self.hal_formatter.format_validation_error(
            "Request validation failed",
            request.path,
            self.format_validation_errors(validation_error)
        )
        response = jsonify(error_response)
        response.status_code = 400
        return response
