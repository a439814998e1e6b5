# SPDX-License-Identifier: Apache-2.0

"""
Beneficiary portal endpoints.

Every response carries the session `step` and the `_links` valid from it, so
a client can drive the search, PIN, OTP and dashboard screens from the API
alone. Failed actions keep the session on their step and report an Arabic
`error` string.
"""

from flask import jsonify, current_app, g
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from functools import wraps
from typing import Dict, Any, Optional
import logging

from domain import messages
from domain import portal as portal_domain
from domain.notifications import validate_phone_number, format_phone_number
from middleware.auth import require_beneficiary
from middleware.error_handler import ERROR_KIND_STATUS
from middleware.rate_limit import rate_limit_auth
from models.base import utc_now
from models.entities import Beneficiary, BeneficiaryContext
from models.enums import PortalStep, PackageFilter, LoginOutcome, OTPPurpose, ActivityType, ErrorKind
from models.requests import (
    SearchRequest, CreatePinRequest, LoginRequest, VerifyOTPRequest,
    RecoverPasswordRequest, ResetPasswordRequest, UpdateProfileRequest,
    ShareLocationRequest, DashboardQuery
)
from services.auth import AuthService
from services.mongodb import DataAccessError
from services.whatsapp import MessageTemplates, generate_whatsapp_link
from utils.retry import get_user_friendly_error_message

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

portal_tag = Tag(name="Beneficiary Portal", description="Beneficiary self-service session")
portal_bp = APIBlueprint(
    'portal',
    __name__,
    url_prefix='/api/portal',
    abp_tags=[portal_tag]
)

LOGIN_FAILURE_STATUS = {
    LoginOutcome.NOT_FOUND: 404,
    LoginOutcome.LOCKED: 423,
    LoginOutcome.LOCKED_NOW: 423,
    LoginOutcome.INVALID_PIN: 401
}


def step_response(
    step: PortalStep,
    data: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
    message: Optional[str] = None,
    status: int = 200
):
    features = g.get('portal_features')
    password_recovery = bool(features and features.password_recovery)
    body = current_app.hal_formatter.format_portal_step(step, data, error, message, password_recovery)
    return jsonify(body), status


def portal_action(step: PortalStep):
    """
    Run a portal action on behalf of the given step.

    Loads the portal features for the request, refuses work while the portal
    is disabled, and turns store failures into a step response.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            with tracer.start_as_current_span(f"portal.{f.__name__}") as span:
                span.set_attribute("portal.step", step.value)
                try:
                    features = current_app.beneficiary_auth_service.get_portal_features()
                    g.portal_features = features
                    if not features.beneficiary_portal:
                        span.set_attribute("portal.enabled", False)
                        return step_response(PortalStep.SEARCH, error=messages.PORTAL_DISABLED, status=503)

                    response = f(*args, **kwargs)
                    span.set_status(Status(StatusCode.OK))
                    return response

                except DataAccessError as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    status = ERROR_KIND_STATUS.get(e.kind, ERROR_KIND_STATUS[ErrorKind.UNKNOWN])[0]
                    logger.error(
                        f"Portal action failed: {f.__name__}",
                        extra={"step": step.value, "error_kind": e.kind.value, "error_message": str(e)}
                    )
                    return step_response(step, error=get_user_friendly_error_message(e), status=status)

        return decorated_function
    return decorator


def _parse(model_class):
    return current_app.validation_middleware.parse_json_body(model_class)


def _deliver(beneficiary: Beneficiary, notification_type: str, message: str) -> bool:
    """Queue a WhatsApp message to the beneficiary's phone on file."""
    if not beneficiary.phone:
        logger.warning(
            "No phone on file for WhatsApp delivery",
            extra={"beneficiary_id": beneficiary.id, "notification_type": notification_type}
        )
        return False
    current_app.whatsapp_service.queue_message(beneficiary.id, notification_type, beneficiary.phone, message)
    return True


def _send_registration_otp(beneficiary: Beneficiary) -> bool:
    otp_code = current_app.beneficiary_auth_service.generate_otp(beneficiary.id, OTPPurpose.REGISTRATION)
    text = MessageTemplates.otp_code(beneficiary.name, otp_code, g.portal_features.support_phone)
    return _deliver(beneficiary, "otp_code", text)


def _dashboard_data(beneficiary: Beneficiary, package_filter: PackageFilter = PackageFilter.ALL) -> Dict[str, Any]:
    packages = current_app.packages_service.get_by_beneficiary(beneficiary.id)
    current_app.beneficiary_auth_service.update_beneficiary_portal_access(beneficiary.id)
    return {
        "beneficiary": beneficiary.to_public_dict(),
        "filter": PackageFilter(package_filter).value,
        "packages": portal_domain.filter_packages(packages, package_filter),
        "package_counts": portal_domain.package_counts(packages)
    }


def _open_session(beneficiary: Beneficiary, status: int = 200):
    """Issue a session token and land on the dashboard."""
    data = _dashboard_data(beneficiary)
    data["session"] = current_app.auth_service.generate_beneficiary_token(beneficiary)
    return step_response(PortalStep.DASHBOARD, data, status=status)


def _load_session_beneficiary(session: BeneficiaryContext) -> Optional[Beneficiary]:
    return Beneficiary.from_document(current_app.beneficiaries_service.get_by_id(session.beneficiary_id))


@portal_bp.post('/search')
@portal_action(PortalStep.SEARCH)
@rate_limit_auth
def search():
    """Look up a national ID and route to registration, PIN creation or login."""
    body = _parse(SearchRequest)
    error = portal_domain.validate_national_id_input(body.national_id)
    if error:
        return step_response(PortalStep.SEARCH, error=error, status=400)

    auth_service = current_app.beneficiary_auth_service
    beneficiary = auth_service.search_by_national_id(body.national_id)
    credential = auth_service.get_auth_by_national_id(body.national_id) if beneficiary else None

    event = portal_domain.search_event(beneficiary is not None, credential is not None)
    next_step = portal_domain.advance(PortalStep.SEARCH, event)

    if beneficiary is None:
        return step_response(
            next_step,
            data={"national_id": body.national_id},
            message=messages.BENEFICIARY_NOT_REGISTERED
        )

    auth_service.log_activity(
        messages.ACTIVITY_SEARCH.format(national_id=body.national_id),
        beneficiary.name,
        messages.BENEFICIARY_ROLE,
        ActivityType.REVIEW,
        beneficiary.id
    )
    return step_response(next_step, data={"beneficiary": beneficiary.summary()})


@portal_bp.post('/pin')
@portal_action(PortalStep.CREATE_PIN)
@rate_limit_auth
def create_pin():
    """Create the PIN of a first-time visitor."""
    body = _parse(CreatePinRequest)
    error = (
        portal_domain.validate_national_id_input(body.national_id)
        or portal_domain.validate_new_pin(body.pin, body.confirm_pin)
    )
    if error:
        return step_response(PortalStep.CREATE_PIN, error=error, status=400)

    auth_service = current_app.beneficiary_auth_service
    beneficiary = auth_service.search_by_national_id(body.national_id)
    if beneficiary is None:
        return step_response(PortalStep.SEARCH, error=messages.NATIONAL_ID_NOT_FOUND, status=404)

    already_registered = step_response(
        PortalStep.LOGIN,
        data={"beneficiary": beneficiary.summary()},
        error=messages.ALREADY_REGISTERED,
        status=409
    )
    if auth_service.get_auth_by_national_id(body.national_id) is not None:
        return already_registered

    try:
        auth_service.create_auth(beneficiary.id, body.national_id, auth_service.hash_pin(body.pin))
    except DataAccessError as e:
        if e.kind != ErrorKind.CONFLICT:
            raise
        return already_registered

    auth_service.log_activity(
        messages.ACTIVITY_PIN_CREATED,
        beneficiary.name,
        messages.BENEFICIARY_ROLE,
        ActivityType.CREATE,
        beneficiary.id
    )

    next_step = portal_domain.advance(
        PortalStep.CREATE_PIN,
        portal_domain.PortalEvent.PIN_CREATED,
        otp_enabled=g.portal_features.otp_verification
    )
    if next_step == PortalStep.VERIFY_OTP:
        delivered = _send_registration_otp(beneficiary)
        return step_response(
            PortalStep.VERIFY_OTP,
            data={"beneficiary": beneficiary.summary()},
            message=messages.OTP_SENT if delivered else messages.NO_PHONE_ON_FILE,
            status=201
        )

    return _open_session(beneficiary, status=201)


@portal_bp.post('/login')
@portal_action(PortalStep.LOGIN)
@rate_limit_auth
def login():
    """PIN login with lockout after repeated failures."""
    body = _parse(LoginRequest)
    error = (
        portal_domain.validate_national_id_input(body.national_id)
        or portal_domain.validate_pin_input(body.pin)
    )
    if error:
        return step_response(PortalStep.LOGIN, error=error, status=400)

    auth_service = current_app.beneficiary_auth_service
    result = auth_service.verify_password(body.national_id, body.pin)
    outcome = portal_domain.login_step(result.outcome, result.message)

    if not outcome.ok:
        return step_response(
            outcome.step,
            data=portal_domain.login_failure_data(result.remaining_attempts, result.locked_until, utc_now()),
            error=outcome.error,
            status=LOGIN_FAILURE_STATUS[LoginOutcome(result.outcome)]
        )

    beneficiary = auth_service.search_by_national_id(body.national_id)
    if beneficiary is None:
        return step_response(PortalStep.SEARCH, error=messages.NATIONAL_ID_NOT_FOUND, status=404)

    if result.auth.is_first_login:
        if g.portal_features.otp_verification:
            delivered = _send_registration_otp(beneficiary)
            return step_response(
                PortalStep.VERIFY_OTP,
                data={"beneficiary": beneficiary.summary()},
                message=messages.OTP_SENT if delivered else messages.NO_PHONE_ON_FILE
            )
        auth_service.complete_first_login(result.auth.id)

    auth_service.log_activity(
        messages.ACTIVITY_LOGIN,
        beneficiary.name,
        messages.BENEFICIARY_ROLE,
        ActivityType.REVIEW,
        beneficiary.id
    )
    return _open_session(beneficiary)


@portal_bp.post('/otp/verify')
@portal_action(PortalStep.VERIFY_OTP)
@rate_limit_auth
def verify_otp():
    """Confirm the registration code and open the session."""
    body = _parse(VerifyOTPRequest)
    error = (
        portal_domain.validate_national_id_input(body.national_id)
        or portal_domain.validate_otp_input(body.code)
    )
    if error:
        return step_response(PortalStep.VERIFY_OTP, error=error, status=400)

    auth_service = current_app.beneficiary_auth_service
    beneficiary = auth_service.search_by_national_id(body.national_id)
    credential = auth_service.get_auth_by_national_id(body.national_id) if beneficiary else None
    if beneficiary is None or credential is None:
        return step_response(PortalStep.SEARCH, error=messages.NATIONAL_ID_NOT_FOUND, status=404)

    if not auth_service.verify_otp(beneficiary.id, body.code, OTPPurpose.REGISTRATION):
        return step_response(PortalStep.VERIFY_OTP, error=messages.OTP_INVALID, status=401)

    auth_service.complete_first_login(credential.id)
    auth_service.log_activity(
        messages.ACTIVITY_LOGIN,
        beneficiary.name,
        messages.BENEFICIARY_ROLE,
        ActivityType.VERIFY,
        beneficiary.id
    )
    return _open_session(beneficiary)


@portal_bp.post('/otp/resend')
@portal_action(PortalStep.VERIFY_OTP)
@rate_limit_auth
def resend_otp():
    """Issue a fresh registration code."""
    body = _parse(SearchRequest)
    error = portal_domain.validate_national_id_input(body.national_id)
    if error:
        return step_response(PortalStep.VERIFY_OTP, error=error, status=400)

    if not g.portal_features.otp_verification:
        return step_response(PortalStep.LOGIN, error=messages.OTP_DISABLED, status=409)

    auth_service = current_app.beneficiary_auth_service
    beneficiary = auth_service.search_by_national_id(body.national_id)
    credential = auth_service.get_auth_by_national_id(body.national_id) if beneficiary else None
    if beneficiary is None or credential is None:
        return step_response(PortalStep.SEARCH, error=messages.NATIONAL_ID_NOT_FOUND, status=404)

    if not credential.is_first_login:
        return step_response(PortalStep.LOGIN, error=messages.ALREADY_REGISTERED, status=409)

    delivered = _send_registration_otp(beneficiary)
    return step_response(
        PortalStep.VERIFY_OTP,
        data={"beneficiary": beneficiary.summary()},
        message=messages.OTP_SENT if delivered else messages.NO_PHONE_ON_FILE
    )


@portal_bp.get('/dashboard')
@require_beneficiary
@portal_action(PortalStep.DASHBOARD)
def dashboard(session: BeneficiaryContext):
    """Profile and packages of the signed-in beneficiary."""
    query = current_app.validation_middleware.parse_query_params(DashboardQuery)

    beneficiary = _load_session_beneficiary(session)
    if beneficiary is None:
        return step_response(PortalStep.SEARCH, error=messages.NATIONAL_ID_NOT_FOUND, status=404)

    return step_response(PortalStep.DASHBOARD, _dashboard_data(beneficiary, query.filter))


@portal_bp.put('/profile')
@require_beneficiary
@portal_action(PortalStep.DASHBOARD)
def update_profile(session: BeneficiaryContext):
    """Edit phone and address."""
    body = _parse(UpdateProfileRequest)
    changes = body.changes()

    if "phone" in changes:
        if not validate_phone_number(changes["phone"]):
            return step_response(PortalStep.DASHBOARD, error=messages.INVALID_PHONE, status=400)
        changes["phone"] = format_phone_number(changes["phone"])

    updated = current_app.beneficiaries_service.update(session.beneficiary_id, changes)
    if updated is None:
        return step_response(PortalStep.SEARCH, error=messages.NATIONAL_ID_NOT_FOUND, status=404)

    beneficiary = Beneficiary.from_document(updated)
    current_app.beneficiary_auth_service.log_activity(
        messages.ACTIVITY_PROFILE_UPDATED,
        beneficiary.name,
        messages.BENEFICIARY_ROLE,
        ActivityType.UPDATE,
        beneficiary.id,
        details=", ".join(sorted(changes))
    )

    return step_response(
        PortalStep.DASHBOARD,
        data={"beneficiary": beneficiary.to_public_dict()},
        message=messages.PROFILE_UPDATED
    )


@portal_bp.post('/location')
@require_beneficiary
@portal_action(PortalStep.DASHBOARD)
def share_location(session: BeneficiaryContext):
    """Record the beneficiary's current coordinates in the activity log."""
    body = _parse(ShareLocationRequest)

    current_app.beneficiary_auth_service.log_activity(
        messages.ACTIVITY_LOCATION_SHARED.format(latitude=body.latitude, longitude=body.longitude),
        session.name or session.national_id,
        messages.BENEFICIARY_ROLE,
        ActivityType.UPDATE,
        session.beneficiary_id
    )

    return step_response(
        PortalStep.DASHBOARD,
        data={"latitude": body.latitude, "longitude": body.longitude},
        message=messages.LOCATION_SHARED
    )


@portal_bp.get('/support')
def support():
    """WhatsApp support contact with a pre-filled help request."""
    features = current_app.beneficiary_auth_service.get_portal_features()
    builder = current_app.hal_formatter.builder

    body = {
        "support_phone": features.support_phone,
        "message": messages.SUPPORT_REQUEST_TEXT,
        "whatsapp_link": generate_whatsapp_link(features.support_phone, messages.SUPPORT_REQUEST_TEXT)
    }
    links = {"self": builder.link_builder.build_self_link("/api/portal/support")}
    return jsonify(builder.build_resource_response(body, links)), 200


@portal_bp.post('/password/recover')
@portal_action(PortalStep.LOGIN)
@rate_limit_auth
def recover_password():
    """Send a temporary password over WhatsApp."""
    body = _parse(RecoverPasswordRequest)
    if not g.portal_features.password_recovery:
        return step_response(PortalStep.LOGIN, error=messages.RECOVERY_DISABLED, status=403)

    error = portal_domain.validate_national_id_input(body.national_id)
    if error:
        return step_response(PortalStep.LOGIN, error=error, status=400)

    auth_service = current_app.beneficiary_auth_service
    beneficiary = auth_service.search_by_national_id(body.national_id)
    credential = auth_service.get_auth_by_national_id(body.national_id) if beneficiary else None
    if beneficiary is None or credential is None:
        return step_response(PortalStep.SEARCH, error=messages.NATIONAL_ID_NOT_FOUND, status=404)

    if not beneficiary.phone:
        return step_response(PortalStep.LOGIN, error=messages.NO_PHONE_ON_FILE, status=400)

    temporary_password = auth_service.issue_temporary_password(credential.id)
    _deliver(
        beneficiary,
        "temporary_password",
        MessageTemplates.temporary_password(beneficiary.name, temporary_password, g.portal_features.support_phone)
    )

    return step_response(PortalStep.LOGIN, message=messages.RECOVERY_SENT)


@portal_bp.post('/password/reset')
@portal_action(PortalStep.LOGIN)
@rate_limit_auth
def reset_password():
    """Replace the PIN using a temporary password."""
    body = _parse(ResetPasswordRequest)
    if not g.portal_features.password_recovery:
        return step_response(PortalStep.LOGIN, error=messages.RECOVERY_DISABLED, status=403)

    error = (
        portal_domain.validate_national_id_input(body.national_id)
        or portal_domain.validate_new_pin(body.new_pin, body.confirm_pin)
    )
    if error:
        return step_response(PortalStep.LOGIN, error=error, status=400)

    auth_service = current_app.beneficiary_auth_service
    credential = auth_service.get_auth_by_national_id(body.national_id)
    if credential is None:
        return step_response(PortalStep.SEARCH, error=messages.NATIONAL_ID_NOT_FOUND, status=404)

    if not auth_service.verify_temporary_password(credential.id, body.temporary_password):
        return step_response(PortalStep.LOGIN, error=messages.TEMPORARY_PASSWORD_INVALID, status=401)

    auth_service.update_password(credential.id, auth_service.hash_pin(body.new_pin))

    beneficiary = auth_service.search_by_national_id(body.national_id)
    auth_service.log_activity(
        messages.ACTIVITY_PASSWORD_RESET,
        beneficiary.name if beneficiary else body.national_id,
        messages.BENEFICIARY_ROLE,
        ActivityType.UPDATE,
        credential.beneficiary_id
    )

    return step_response(PortalStep.LOGIN, message=messages.PASSWORD_RESET_DONE)


@portal_bp.post('/logout')
@require_beneficiary
def logout(session: BeneficiaryContext):
    """Revoke the session token until it would have expired."""
    token_id = session.token_payload.get("jti")
    ttl_seconds = AuthService.remaining_ttl(session.token_payload)

    if token_id and ttl_seconds > 0:
        if not current_app.redis_service.block_token(token_id, ttl_seconds):
            logger.warning(
                "Session token could not be revoked",
                extra={"beneficiary_id": session.beneficiary_id}
            )

    logger.info("Beneficiary logged out", extra={"beneficiary_id": session.beneficiary_id})
    return step_response(PortalStep.SEARCH, message=messages.LOGGED_OUT)
