# SPDX-License-Identifier: Apache-2.0

"""
Anonymous lookup endpoint used by the landing page.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from domain import portal as portal_domain
from middleware.rate_limit import rate_limit_public
from models.requests import PublicSearchQuery

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

public_tag = Tag(name="Public", description="Anonymous beneficiary lookup")
public_bp = APIBlueprint(
    'public',
    __name__,
    url_prefix='/api/public',
    abp_tags=[public_tag]
)


@public_bp.get('/search')
@rate_limit_public
def public_search():
    """
    Look up a beneficiary and their packages by national ID.

    Returns the beneficiary summary and package list; every successful lookup
    is recorded in the activity log unless auditing is disabled.
    """
    query = current_app.validation_middleware.parse_query_params(PublicSearchQuery)
    builder = current_app.hal_formatter.builder

    with tracer.start_as_current_span("public.search") as span:
        error = portal_domain.validate_national_id_input(query.national_id)
        if error:
            span.set_attribute("public_search.valid", False)
            return jsonify(builder.build_error_response(
                "validation-error", "Validation Error", 400, error, "/api/public/search"
            )), 400

        national_id = "".join(query.national_id.split())
        result = current_app.beneficiary_auth_service.public_search(national_id)

        links = {
            "self": builder.link_builder.build_link(
                f"/api/public/search?national_id={national_id}", title="Self"
            ),
            "portal": builder.link_builder.build_link(
                "/api/portal/search", method="POST", content_type="application/json", title="Beneficiary portal"
            )
        }
        body = builder.build_resource_response(result.model_dump(mode="json"), links)

        logger.info("Public search", extra={"found": result.found})
        return jsonify(body), 200 if result.found else 404
