# Overview: Flask API routes for warehouse stock; parses input and returns JSON responses.

# backend/edusales/routes/warehouse.py
"""
Warehouse API routes.

Stock levels change in two ways only: manual movements posted here, and
DC completion (see dc_workflow_service.process_in_warehouse). Both leave a
StockMovement row.
"""

from flask import Blueprint, request, jsonify, g, current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..services import stock_service
from ..services.stock_service import WarehouseItemNotFoundError
from ..services.concurrency import commit_unit
from ..validation import coerce_int, optional_int
from ..decorators import require_auth, require_role


warehouse_bp = Blueprint("warehouse", __name__, url_prefix="/api/warehouse")


@warehouse_bp.get("")
@require_auth
def list_items_route():
    """Query params: status, category (optional)"""
    items = stock_service.list_items(
        status=request.args.get("status") or None,
        category=request.args.get("category") or None,
    )
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200


@warehouse_bp.post("")
@require_auth
@require_role("Warehouse", "Manager", "Admin")
def create_item_route():
    """
    Request body:
    {
        "product_name": str,
        "product_code": str (optional, unique),
        "category", "level", "specs", "item_type", "unit", "location", "supplier": str (optional),
        "current_stock", "min_stock", "unit_price": int (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        item = commit_unit(lambda: stock_service.create_item(data))
        return jsonify({"item": item.to_dict()}), 201

    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "Product code already exists"}), 409
    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create warehouse item")
        return jsonify({"error": "Internal server error"}), 500


@warehouse_bp.get("/<int:item_id>")
@require_auth
def get_item_route(item_id: int):
    try:
        return jsonify({"item": stock_service.get_item(item_id).to_dict()}), 200
    except WarehouseItemNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@warehouse_bp.post("/stock")
@require_auth
@require_role("Warehouse", "Manager", "Admin")
def adjust_stock_route():
    """
    Post one manual movement.

    Request body:
    {
        "item_id": int,
        "quantity": int,
        "movement_type": "In" | "Out" | "Return" | "Adjustment",
        "reason": str (optional),
        "related_sale_id": int (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        item = commit_unit(lambda: stock_service.adjust_stock(
            coerce_int(data.get("item_id"), "item_id", minimum=1),
            data.get("quantity"),
            data.get("movement_type"),
            g.current_user.id,
            reason=data.get("reason"),
            related_sale_id=optional_int(data.get("related_sale_id"), "related_sale_id", minimum=1),
        ))
        return jsonify({"item": item.to_dict()}), 200

    except WarehouseItemNotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@warehouse_bp.get("/reports")
@require_auth
def stock_report_route():
    return jsonify(stock_service.stock_report()), 200


@warehouse_bp.get("/<int:item_id>/movements")
@require_auth
def list_movements_route(item_id: int):
    try:
        movements = stock_service.list_movements(item_id)
        return jsonify({"movements": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except WarehouseItemNotFoundError as e:
        return jsonify({"error": str(e)}), 404
