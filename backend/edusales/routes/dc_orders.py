# Overview: Flask API routes for deals (DcOrder) and their follow-up history.

# backend/edusales/routes/dc_orders.py
"""
Deal API routes.

- POST /api/dc-orders                      - create a deal (raises its DC when assigned)
- GET  /api/dc-orders                      - list deals
- GET  /api/dc-orders/:id                  - deal detail
- PUT  /api/dc-orders/:id                  - update fields; follow-up changes are journaled
- GET  /api/dc-orders/:id/history          - follow-up history, newest first
- PUT  /api/dc-orders/:id/submit           - back to pending
- PUT  /api/dc-orders/:id/mark-in-transit
- PUT  /api/dc-orders/:id/complete         - delivered, with POD proof
- PUT  /api/dc-orders/:id/hold
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import dc_order_service
from ..services.dc_workflow_service import DealNotFoundError, DcWorkflowError
from ..services.concurrency import commit_unit
from ..validation import ConflictError, optional_int
from ..decorators import require_auth, require_role


dc_orders_bp = Blueprint("dc_orders", __name__, url_prefix="/api/dc-orders")


def _error_response(e: Exception):
    if isinstance(e, DealNotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, ConflictError):
        return jsonify({"error": str(e)}), 409
    return jsonify({"error": str(e)}), 400


@dc_orders_bp.post("")
@require_auth
def create_dc_order_route():
    """
    Request body:
    {
        "school_name": str,
        "school_type", "contact_person", "contact_mobile", "email",
        "address", "zone", "location": str (optional),
        "products": [{"product_name": str, "quantity": int, "unit_price": int}] (optional),
        "total_amount": int (optional; defaults to sum of products),
        "priority": "Hot" | "Warm" | "Cold" (optional),
        "follow_up_date": ISO-8601 (optional),
        "remarks": str (optional),
        "assigned_to": int (optional; raises the DC immediately)
    }

    Returns:
        201: {"dc_order": {...}, "dc": {...} | null, "warnings": [...]}
    """
    data = request.get_json(silent=True) or {}

    try:
        result = commit_unit(lambda: dc_order_service.create_dc_order(data, g.current_user))
        return jsonify({
            "dc_order": result.order.to_dict(),
            "dc": result.dc.to_dict() if result.dc else None,
            "warnings": result.warnings,
        }), 201

    except (DcWorkflowError, ValueError) as e:
        db.session.rollback()
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create deal")
        return jsonify({"error": "Internal server error"}), 500


@dc_orders_bp.get("")
@require_auth
def list_dc_orders_route():
    try:
        orders = dc_order_service.list_orders(
            status=request.args.get("status") or None,
            assigned_to=optional_int(request.args.get("assigned_to"), "assigned_to", minimum=1),
        )
        return jsonify({"dc_orders": [o.to_dict() for o in orders], "count": len(orders)}), 200

    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list deals")
        return jsonify({"error": "Internal server error"}), 500


@dc_orders_bp.get("/<int:order_id>")
@require_auth
def get_dc_order_route(order_id: int):
    try:
        order = dc_order_service.get_order(order_id)
        return jsonify({"dc_order": order.to_dict()}), 200
    except DealNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@dc_orders_bp.put("/<int:order_id>")
@require_auth
def update_dc_order_route(order_id: int):
    """
    Partial update. Sending any of follow_up_date, remarks or priority
    appends one history entry.
    """
    data = request.get_json(silent=True) or {}

    try:
        order = commit_unit(lambda: dc_order_service.update_dc_order(order_id, data, g.current_user))
        return jsonify({"dc_order": order.to_dict()}), 200

    except (DcWorkflowError, ValueError) as e:
        db.session.rollback()
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update deal")
        return jsonify({"error": "Internal server error"}), 500


@dc_orders_bp.get("/<int:order_id>/history")
@require_auth
def dc_order_history_route(order_id: int):
    try:
        history = dc_order_service.get_history(order_id)
        return jsonify({"history": history, "count": len(history)}), 200
    except DealNotFoundError as e:
        return jsonify({"error": str(e)}), 404


def _status_change(order_id: int, operation, failure_message: str, **kwargs):
    try:
        order = commit_unit(lambda: operation(order_id, g.current_user, **kwargs))
        return jsonify({"dc_order": order.to_dict()}), 200

    except (DcWorkflowError, ValueError) as e:
        db.session.rollback()
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception(failure_message)
        return jsonify({"error": "Internal server error"}), 500


@dc_orders_bp.put("/<int:order_id>/submit")
@require_auth
def submit_dc_order_route(order_id: int):
    return _status_change(order_id, dc_order_service.submit_order, "Failed to submit deal")


@dc_orders_bp.put("/<int:order_id>/mark-in-transit")
@require_auth
@require_role("Manager", "Admin", "Warehouse")
def mark_in_transit_route(order_id: int):
    return _status_change(order_id, dc_order_service.mark_in_transit, "Failed to mark deal in transit")


@dc_orders_bp.put("/<int:order_id>/complete")
@require_auth
@require_role("Manager", "Admin", "Warehouse")
def complete_dc_order_route(order_id: int):
    """Request body: {"pod_proof_url": str, "actual_delivery_date": ISO-8601} (both optional)"""
    data = request.get_json(silent=True) or {}
    return _status_change(
        order_id,
        dc_order_service.complete_order,
        "Failed to complete deal",
        pod_proof_url=data.get("pod_proof_url"),
        actual_delivery_date=data.get("actual_delivery_date"),
    )


@dc_orders_bp.put("/<int:order_id>/hold")
@require_auth
@require_role("Manager", "Admin")
def hold_dc_order_route(order_id: int):
    """Request body: {"remarks": str (optional)}"""
    data = request.get_json(silent=True) or {}
    return _status_change(
        order_id,
        dc_order_service.hold_order,
        "Failed to put deal on hold",
        remarks=data.get("remarks"),
    )
