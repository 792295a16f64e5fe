# Overview: Flask API routes for armories and their stock lines; parses input and returns JSON responses.

# backend/armory/routes/armories.py
"""
Armory API Routes

DESIGN:
- Setup creates an armory together with its initial stock lines
- Restock merges into an existing line by key or opens a new one
- Availability and ledger are read-only views

SECURITY:
- Setup and restock are administrative (admin role)
- Reads require any identified actor
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, ROLE_ADMIN
from ..services import inventory_service
from ..services.errors import DistributionError
from ..services.ledger_service import get_armory_events
from ..validation import ValidationError, item_key_from_payload, validate_item_type
from .errors import error_response


armories_bp = Blueprint("armories", __name__, url_prefix="/api/armories")


# =============================================================================
# SETUP
# =============================================================================

@armories_bp.post("")
@require_actor(ROLE_ADMIN)
def create_armory_route():
    """
    Create an armory with its initial stock.

    Request body:
    {
        "reference_id": "ARM-NORTH-01",
        "name": "North Station Armory",
        "code": "NS1",
        "location": "Block C",
        "unit": "Rapid Response",
        "weapons": [{"weapon_type": "Rifle", "serial_or_batch": "B-100", "manufacturer": "X", "quantity": 10}],
        "ammunition": [{"caliber": "9mm", "ammo_type": "FMJ", "quantity": 5000}],
        "equipment": [{"equipment_type": "Vest", "size": "L", "quantity": 20}]
    }

    Returns:
        201: Armory created
        400: Invalid input
    """
    try:
        data = request.get_json(silent=True) or {}

        armory = inventory_service.create_armory(
            reference_id=data.get("reference_id"),
            name=data.get("name"),
            code=data.get("code"),
            location=data.get("location"),
            unit=data.get("unit"),
            status=data.get("status", "active"),
            actor_id=g.actor_id,
            weapons=data.get("weapons"),
            ammunition=data.get("ammunition"),
            equipment=data.get("equipment"),
        )
        return jsonify({"armory": armory.to_dict()}), 201

    except (ValidationError, DistributionError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create armory")
        return jsonify({"error": "Internal server error"}), 500


@armories_bp.get("/<int:armory_id>")
@require_actor()
def get_armory_route(armory_id: int):
    try:
        armory = inventory_service.get_armory(armory_id)
        return jsonify({"armory": armory.to_dict()}), 200

    except DistributionError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get armory")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# STOCK
# =============================================================================

@armories_bp.post("/<int:armory_id>/stock")
@require_actor(ROLE_ADMIN)
def restock_route(armory_id: int):
    """
    Add units to a stock line (administrative).

    Request body:
    {
        "item_type": "ammunition",
        "caliber": "9mm", "ammo_type": "FMJ",   (or "item_key": "9MM|FMJ")
        "quantity": 500,
        "condition": "serviceable"  (optional)
    }

    Returns:
        200: Updated stock line
        400: Invalid input
        404: Armory not found
    """
    try:
        data = request.get_json(silent=True) or {}

        line = inventory_service.restock(
            armory_id=armory_id,
            item_type=data.get("item_type"),
            payload=data,
            quantity=data.get("quantity"),
            actor_id=g.actor_id,
        )
        return jsonify({"stock_line": line.to_dict()}), 200

    except (ValidationError, DistributionError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to restock armory")
        return jsonify({"error": "Internal server error"}), 500


@armories_bp.get("/<int:armory_id>/available")
@require_actor()
def available_quantity_route(armory_id: int):
    """
    Units currently on the shelf for one key.

    Query params:
        item_type: weapon | ammunition | equipment
        item_key: normalized key, or the type's key attributes
                  (weapon_type + serial_or_batch, caliber + ammo_type, equipment_type [+ size])
    """
    try:
        item_type = validate_item_type(request.args.get("item_type"))
        item_key = item_key_from_payload(item_type, request.args.to_dict())

        available = inventory_service.get_available_quantity(armory_id, item_type, item_key)
        return jsonify({
            "armory_id": armory_id,
            "item_type": item_type,
            "item_key": item_key,
            "available_quantity": available,
        }), 200

    except (ValidationError, DistributionError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get available quantity")
        return jsonify({"error": "Internal server error"}), 500


@armories_bp.get("/<int:armory_id>/ledger")
@require_actor()
def armory_ledger_route(armory_id: int):
    """
    Audit events for an armory, newest first.

    Query params:
        distribution_id: int (optional)
        category: inventory | distributions (optional)
        limit: int (optional, default 200, max 1000)
    """
    try:
        inventory_service.get_armory(armory_id)

        limit = max(1, min(request.args.get("limit", 200, type=int), 1000))
        events = get_armory_events(
            armory_id,
            distribution_id=request.args.get("distribution_id", type=int),
            event_category=request.args.get("category"),
            limit=limit,
        )
        return jsonify({"events": [e.to_dict() for e in events], "count": len(events)}), 200

    except DistributionError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get armory ledger")
        return jsonify({"error": "Internal server error"}), 500
