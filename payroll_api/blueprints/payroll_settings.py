from flask import Blueprint, request

from payroll_api.extensions import db
from payroll_api.common.errors import APIError
from payroll_api.common.http import ok
from payroll_api.models.master import Company
from payroll_api.services.payroll_config import load_config, save_settings

bp = Blueprint("payroll_settings", __name__, url_prefix="/api/v1/payroll/settings")


def _company(company_id: int) -> Company:
    c = db.session.get(Company, company_id)
    if c is None:
        raise APIError("NOT_FOUND", f"company {company_id} not found", 404)
    return c


@bp.get("/<int:company_id>")
def get_settings(company_id: int):
    _company(company_id)
    return ok(load_config(company_id).as_dict())


@bp.put("/<int:company_id>")
def put_settings(company_id: int):
    _company(company_id)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise APIError("VALIDATION_ERROR", "JSON object body required", 400)
    _, cfg = save_settings(company_id, data, updated_by=data.get("updated_by") or data.get("updatedBy"))
    return ok(cfg.as_dict())
