# payroll_api/common/errors.py
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError
from payroll_api.common.http import fail
from payroll_api.extensions import db


class APIError(Exception):
    """Custom API Error class."""
    def __init__(self, code, message, status_code=400, payload=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.payload = payload


class PayrollError(APIError):
    """Base for engine errors; subclasses pin the code and HTTP status."""
    code = "PAYROLL_ERROR"
    status_code = 400

    def __init__(self, message, payload=None):
        super().__init__(type(self).code, message, type(self).status_code, payload)


class InvalidPeriod(PayrollError):
    code = "INVALID_PERIOD"
    status_code = 422


class InvalidTaxRegime(PayrollError):
    code = "INVALID_TAX_REGIME"
    status_code = 422


class InvalidCompensationInputs(PayrollError):
    code = "INVALID_INPUTS"
    status_code = 422


class PeriodAlreadyProcessed(PayrollError):
    code = "PERIOD_ALREADY_PROCESSED"
    status_code = 409


class EmployeeNotFound(PayrollError):
    code = "EMPLOYEE_NOT_FOUND"
    status_code = 404


class InvalidStatusTransition(PayrollError):
    code = "INVALID_STATUS_TRANSITION"
    status_code = 409


class PartialRunFailure(PayrollError):
    """Raised after a run in which at least one employee failed; payload is the run summary."""
    code = "PARTIAL_RUN_FAILURE"
    status_code = 207


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def _api_error(e: APIError):
        return fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return fail(e.description or e.name, status=e.code or 500)

    @app.errorhandler(IntegrityError)
    def _dup(e: IntegrityError):
        db.session.rollback()
        return fail("Duplicate or FK constraint failed", status=409, code="CONSTRAINT_ERROR",
                    detail=str(e.orig) if getattr(e, "orig", None) else None)

    @app.errorhandler(Exception)
    def _500(e: Exception):
        app.logger.exception(e)
        return fail("Internal server error", status=500)
