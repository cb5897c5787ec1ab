# Overview: Flask API routes for the delivery challan workflow; parses input and returns JSON responses.

# backend/edusales/routes/dcs.py
"""
Delivery Challan (DC) workflow API routes.

Each step of the chain is owned by one role:
- POST /api/dc/raise                   - raise (or refresh) a DC for a deal or sale
- POST /api/dc/:id/submit-po           - employee uploads the PO           (created -> po_submitted)
- POST /api/dc/:id/admin-review        - admin approves / rejects the PO   (po_submitted -> sent_to_manager | created)
- POST /api/dc/:id/manager-request     - manager asks the warehouse        (sent_to_manager -> pending_dc)
- POST /api/dc/:id/warehouse-start     - warehouse accepts the request     (pending_dc -> warehouse_processing)
- POST /api/dc/:id/warehouse-process   - warehouse fulfils, stock deducted (-> completed)
- POST /api/dc/:id/hold                - manager stops an in-flight DC    (-> hold)
- POST /api/dc/:id/delivery-submit     - proof of delivery (legacy path)
- POST /api/dc/:id/complete            - legacy completion                 (warehouse_processing -> completed)

SECURITY:
- All routes require authentication
- Acting user IDs are taken from the session (g.current_user), NOT the body

Transition responses carry {"dc": {...}, "warnings": [...]}. Warnings report
secondary bookkeeping (deal/sale sync, stock lines) that did not apply; the
transition itself has been committed.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import dc_workflow_service
from ..services.dc_workflow_service import (
    DcWorkflowError,
    DcNotFoundError,
    DealNotFoundError,
    SaleNotFoundError,
    DcAuthorizationError,
    InvalidTransitionError,
    ConcurrentTransitionError,
)
from ..services.concurrency import commit_unit
from ..validation import ConflictError, optional_int
from ..decorators import require_auth, require_role


dcs_bp = Blueprint("dcs", __name__, url_prefix="/api/dc")

# Field staff who may own the DCs they raise and only see their own queue
FIELD_ROLES = ("Employee", "Sales BDE", "Executive")


def _error_response(e: Exception):
    if isinstance(e, InvalidTransitionError):
        return jsonify({
            "error": str(e),
            "current_status": e.current_status,
            "required_status": e.required_status,
        }), 409
    if isinstance(e, ConcurrentTransitionError):
        return jsonify({"error": str(e)}), 409
    if isinstance(e, DcAuthorizationError):
        return jsonify({"error": str(e)}), 403
    if isinstance(e, (DcNotFoundError, DealNotFoundError, SaleNotFoundError)):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, ConflictError):
        return jsonify({"error": str(e)}), 409
    return jsonify({"error": str(e)}), 400


def _transition_response(result, status_code: int = 200):
    return jsonify({
        "dc": result.dc.to_dict(),
        "warnings": result.warnings,
    }), status_code


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


@dcs_bp.post("/raise")
@require_auth
def raise_dc_route():
    """
    Raise a DC from a deal (dc_order_id) or a sale (sale_id).

    Request body:
    {
        "dc_order_id": int | "sale_id": int,
        "employee_id": int (optional),
        "product_details": [ {product, product_name, category, class, level, quantity, ...} ] (optional),
        "requested_quantity": int (optional),
        "dc_date": "YYYY-MM-DD" (optional),
        "dc_remarks": str, "dc_notes": str, "dc_category": str (optional)
    }

    Raising again for the same deal updates the existing DC in place.

    Returns:
        201: DC raised or refreshed
        400: Invalid request / no employee to own the DC
        404: Deal or sale not found
    """
    data = _json_body()
    user = g.current_user

    try:
        result = commit_unit(lambda: dc_workflow_service.create_dc(
            user,
            dc_order_id=optional_int(data.get("dc_order_id"), "dc_order_id", minimum=1),
            sale_id=optional_int(data.get("sale_id"), "sale_id", minimum=1),
            employee_id=data.get("employee_id"),
            product_details=data.get("product_details"),
            requested_quantity=data.get("requested_quantity"),
            dc_date=data.get("dc_date"),
            dc_remarks=data.get("dc_remarks"),
            dc_notes=data.get("dc_notes"),
            dc_category=data.get("dc_category"),
            allow_actor_fallback=user.role in FIELD_ROLES,
        ))
        return _transition_response(result, 201)

    except (DcWorkflowError, ValueError) as e:
        db.session.rollback()
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to raise DC")
        return jsonify({"error": "Internal server error"}), 500


@dcs_bp.get("/<int:dc_id>")
@require_auth
def get_dc_route(dc_id: int):
    try:
        dc = dc_workflow_service.get_dc(dc_id)
        user = g.current_user
        if user.role in FIELD_ROLES and dc.employee_id != user.id:
            return jsonify({"error": "You are not authorized to view this DC"}), 403
        return jsonify({"dc": dc.to_dict()}), 200

    except DcNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load DC")
        return jsonify({"error": "Internal server error"}), 500


@dcs_bp.get("")
@require_auth
def list_dcs_route():
    """
    Workflow queue.

    Query params:
        status: created | po_submitted | sent_to_manager | pending_dc |
                warehouse_processing | completed | hold (optional)
        employee_id: int (optional; field staff always see their own)
        limit: int (default 50, max 500)
    """
    user = g.current_user

    try:
        employee_id = optional_int(request.args.get("employee_id"), "employee_id", minimum=1)
        if user.role in FIELD_ROLES:
            employee_id = user.id
        limit = min(optional_int(request.args.get("limit"), "limit", minimum=1) or 50, 500)

        dcs = dc_workflow_service.list_dcs(
            status=request.args.get("status") or None,
            employee_id=employee_id,
            limit=limit,
        )
        return jsonify({"dcs": [dc.to_dict() for dc in dcs], "count": len(dcs)}), 200

    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list DCs")
        return jsonify({"error": "Internal server error"}), 500


@dcs_bp.get("/stats/employee")
@require_auth
def employee_stats_route():
    """DC counts per status for one employee (field staff: themselves)."""
    user = g.current_user

    try:
        employee_id = optional_int(request.args.get("employee_id"), "employee_id", minimum=1)
        if user.role in FIELD_ROLES or employee_id is None:
            employee_id = user.id
        return jsonify({
            "employee_id": employee_id,
            **dc_workflow_service.employee_stats(employee_id),
        }), 200

    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to load DC stats")
        return jsonify({"error": "Internal server error"}), 500


@dcs_bp.post("/<int:dc_id>/submit-po")
@require_auth
def submit_po_route(dc_id: int):
    """
    Employee submits the customer's PO.

    Request body:
    {
        "po_photo_url": str,
        "remarks": str (optional)
    }

    Returns:
        200: PO submitted
        400: Missing PO photo
        403: Caller is not the DC's employee
        404: DC not found
        409: DC not in 'created' status
    """
    data = _json_body()

    try:
        result = commit_unit(lambda: dc_workflow_service.submit_purchase_order(
            dc_id,
            data.get("po_photo_url"),
            g.current_user,
            remarks=data.get("remarks"),
        ))
        return _transition_response(result)

    except (DcWorkflowError, ValueError) as e:
        db.session.rollback()
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to submit PO")
        return jsonify({"error": "Internal server error"}), 500


@dcs_bp.post("/<int:dc_id>/admin-review")
@require_auth
@require_role("Admin")
def admin_review_route(dc_id: int):
    """
    Request body:
    {
        "action": "approve" | "reject",
        "remarks": str (optional)
    }
    """
    data = _json_body()

    try:
        result = commit_unit(lambda: dc_workflow_service.review_purchase_order(
            dc_id,
            data.get("action"),
            g.current_user,
            remarks=data.get("remarks"),
        ))
        return _transition_response(result)

    except (DcWorkflowError, ValueError) as e:
        db.session.rollback()
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to review PO")
        return jsonify({"error": "Internal server error"}), 500


@dcs_bp.post("/<int:dc_id>/manager-request")
@require_auth
@require_role("Manager", "Admin")
def manager_request_route(dc_id: int):
    """
    Request body:
    {
        "requested_quantity": int (>= 1),
        "remarks": str (optional)
    }
    """
    data = _json_body()

    try:
        result = commit_unit(lambda: dc_workflow_service.request_from_warehouse(
            dc_id,
            data.get("requested_quantity"),
            g.current_user,
            remarks=data.get("remarks"),
        ))
        return _transition_response(result)

    except (DcWorkflowError, ValueError) as e:
        db.session.rollback()
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to request DC from warehouse")
        return jsonify({"error": "Internal server error"}), 500


@dcs_bp.post("/<int:dc_id>/warehouse-start")
@require_auth
@require_role("Warehouse", "Manager", "Admin")
def warehouse_start_route(dc_id: int):
    try:
        result = commit_unit(lambda: dc_workflow_service.start_warehouse_processing(dc_id, g.current_user))
        return _transition_response(result)

    except (DcWorkflowError, ValueError) as e:
        db.session.rollback()
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to start warehouse processing")
        return jsonify({"error": "Internal server error"}), 500


@dcs_bp.post("/<int:dc_id>/warehouse-process")
@require_auth
@require_role("Warehouse", "Manager", "Admin")
def warehouse_process_route(dc_id: int):
    """
    Complete the DC in the warehouse and deduct stock.

    Request body:
    {
        "available_quantity": int (optional),
        "deliverable_quantity": int (optional, >= 0),
        "line_quantities": [
            {"line_id": int, "available_quantity": int, "deliverable_quantity": int, "remaining_quantity": int}
        ] (optional),
        "remarks": str (optional)
    }

    Stock lines that could not be deducted are listed in "warnings"; they do
    not undo the completion.
    """
    data = _json_body()

    try:
        result = commit_unit(lambda: dc_workflow_service.process_in_warehouse(
            dc_id,
            data.get("available_quantity"),
            data.get("deliverable_quantity"),
            g.current_user,
            line_quantities=data.get("line_quantities"),
            remarks=data.get("remarks"),
        ))

        response = {
            "dc": result.dc.to_dict(),
            "warnings": result.warnings,
        }
        if result.deduction is not None:
            response["stock"] = {
                "applied": len(result.deduction.applied),
                "skipped": len(result.deduction.skipped),
                "failed": len(result.deduction.failed),
            }
        return jsonify(response), 200

    except (DcWorkflowError, ValueError) as e:
        db.session.rollback()
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to process DC in warehouse")
        return jsonify({"error": "Internal server error"}), 500


@dcs_bp.post("/<int:dc_id>/hold")
@require_auth
@require_role("Manager", "Admin")
def hold_route(dc_id: int):
    """Request body: {"reason": str (optional)}"""
    data = _json_body()

    try:
        result = commit_unit(lambda: dc_workflow_service.put_on_hold(dc_id, data.get("reason"), g.current_user))
        return _transition_response(result)

    except (DcWorkflowError, ValueError) as e:
        db.session.rollback()
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to put DC on hold")
        return jsonify({"error": "Internal server error"}), 500


@dcs_bp.post("/<int:dc_id>/delivery-submit")
@require_auth
def delivery_submit_route(dc_id: int):
    """
    Request body:
    {
        "delivery_notes": str (optional),
        "delivery_proof": str (optional),
        "delivered_at": ISO-8601 (optional, defaults to now)
    }
    """
    data = _json_body()

    try:
        result = commit_unit(lambda: dc_workflow_service.submit_delivery(
            dc_id,
            g.current_user,
            delivery_notes=data.get("delivery_notes"),
            delivery_proof=data.get("delivery_proof"),
            delivered_at=data.get("delivered_at"),
        ))
        return _transition_response(result)

    except (DcWorkflowError, ValueError) as e:
        db.session.rollback()
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to submit delivery")
        return jsonify({"error": "Internal server error"}), 500


@dcs_bp.post("/<int:dc_id>/complete")
@require_auth
@require_role("Manager", "Admin")
def complete_route(dc_id: int):
    try:
        result = commit_unit(lambda: dc_workflow_service.complete_delivery(dc_id, g.current_user))
        return _transition_response(result)

    except (DcWorkflowError, ValueError) as e:
        db.session.rollback()
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to complete DC")
        return jsonify({"error": "Internal server error"}), 500
