# Overview: Flask API routes for distributions (issue, return, renew, cancel, renewal schedule).

# backend/armory/routes/distributions.py
"""
Distribution API Routes

DESIGN:
- Issue stock to an officer/squad from one armory
- Partial returns by line, or return everything outstanding
- Renewal inspections push the renewal due date forward
- Cancellation (ISSUED only) restores stock
- The renewal schedule classifies open distributions by due date on read

SECURITY:
- Issue, return and renew: admin or armourer
- Cancel: admin only
- Reads: any identified actor
- Every write is attributed to g.actor_id
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, ROLE_ADMIN, ROLE_ARMOURER
from ..services import issuance_service, return_service, renewal_service
from ..services.errors import DistributionError
from ..time_utils import utcnow
from ..validation import ValidationError, parse_datetime
from .errors import error_response


distributions_bp = Blueprint("distributions", __name__, url_prefix="/api/distributions")


def _distribution_payload(dist) -> dict:
    data = dist.to_dict()
    if dist.is_open:
        window = current_app.config["RENEWAL_DUE_WINDOW_DAYS"]
        data["renewal_view"] = renewal_service.renewal_view_for(dist, utcnow(), window).to_dict()
    else:
        data["renewal_view"] = None
    return data


# =============================================================================
# ISSUE
# =============================================================================

@distributions_bp.post("")
@require_actor(ROLE_ADMIN, ROLE_ARMOURER)
def issue_route():
    """
    Issue stock from an armory.

    Request body:
    {
        "armory_id": 1,
        "officer_id": 7,
        "squad_name": "Alpha",
        "items": [
            {"item_type": "weapon", "item_key": "RIFLE|B-100", "quantity": 2},
            {"item_type": "ammunition", "caliber": "9mm", "ammo_type": "FMJ", "quantity": 120}
        ],
        "renewal_due": "2026-12-01T00:00:00Z",  (optional)
        "remarks": "Night patrol"  (optional)
    }

    Returns:
        201: Distribution created (status: issued)
        400: Invalid input
        404: Armory, officer or stock line not found
        409: Insufficient stock, or concurrent modification (retryable)
    """
    try:
        data = request.get_json(silent=True) or {}

        armory_id = data.get("armory_id")
        officer_id = data.get("officer_id")
        if not all([armory_id, officer_id]):
            return jsonify({"error": "armory_id and officer_id required"}), 400

        dist = issuance_service.issue_items(
            armory_id=armory_id,
            officer_id=officer_id,
            squad_name=data.get("squad_name"),
            requested_items=data.get("items"),
            actor_id=g.actor_id,
            renewal_due=data.get("renewal_due"),
            remarks=data.get("remarks"),
        )
        return jsonify({"distribution": _distribution_payload(dist)}), 201

    except (ValidationError, DistributionError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to issue distribution")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@distributions_bp.get("")
@require_actor()
def list_distributions_route():
    """
    List distributions, newest first.

    Query params:
        armory_id, officer_id, status, squad_name (optional filters)
        from, to: ISO-8601 bounds on date_issued (optional)
        page (default 1), per_page (default 20, max 100)
    """
    try:
        result = issuance_service.list_distributions(
            armory_id=request.args.get("armory_id", type=int),
            officer_id=request.args.get("officer_id", type=int),
            status=request.args.get("status"),
            squad_name=request.args.get("squad_name"),
            issued_from=parse_datetime(request.args.get("from"), "from"),
            issued_to=parse_datetime(request.args.get("to"), "to"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
        return jsonify(result), 200

    except (ValidationError, DistributionError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list distributions")
        return jsonify({"error": "Internal server error"}), 500


@distributions_bp.get("/renewals")
@require_actor()
def renewal_schedule_route():
    """
    Renewal schedule of open distributions.

    Query params:
        armory_id: int (optional)
        as_of: ISO-8601 instant to classify against (optional, default now)
        window_days: int (optional, default RENEWAL_DUE_WINDOW_DAYS)
        state: overdue | due | pending (optional filter)
    """
    try:
        schedule = renewal_service.get_renewal_schedule(
            now=parse_datetime(request.args.get("as_of"), "as_of"),
            armory_id=request.args.get("armory_id", type=int),
            window_days=request.args.get("window_days", type=int),
        )
        state = request.args.get("state")
        if state:
            schedule["items"] = [i for i in schedule["items"] if i["renewal_state"] == state]
        return jsonify(schedule), 200

    except (ValidationError, DistributionError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build renewal schedule")
        return jsonify({"error": "Internal server error"}), 500


@distributions_bp.get("/<int:distribution_id>")
@require_actor()
def get_distribution_route(distribution_id: int):
    try:
        dist = issuance_service.get_distribution(distribution_id)
        return jsonify({"distribution": _distribution_payload(dist)}), 200

    except DistributionError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get distribution")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RETURNS
# =============================================================================

@distributions_bp.post("/<int:distribution_id>/returns")
@require_actor(ROLE_ADMIN, ROLE_ARMOURER)
def return_items_route(distribution_id: int):
    """
    Return units of specific issued lines.

    Request body:
    {
        "items": [
            {"item_type": "ammunition", "item_key": "9MM|FMJ", "quantity": 80, "condition_at_return": "serviceable"}
        ]
    }

    Returns:
        200: Updated distribution (status derived from items)
        400: Invalid input
        404: Distribution or issued line not found
        409: Over-return, distribution closed, or concurrent modification
    """
    try:
        data = request.get_json(silent=True) or {}

        dist = return_service.return_items(
            distribution_id=distribution_id,
            returns=data.get("items"),
            actor_id=g.actor_id,
        )
        return jsonify({"distribution": _distribution_payload(dist)}), 200

    except (ValidationError, DistributionError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to return distribution items")
        return jsonify({"error": "Internal server error"}), 500


@distributions_bp.post("/<int:distribution_id>/return-all")
@require_actor(ROLE_ADMIN, ROLE_ARMOURER)
def return_all_route(distribution_id: int):
    """
    Return every outstanding unit.

    Request body (optional):
    {
        "condition": "serviceable"  (default: each line's condition at issue)
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        dist = return_service.return_all(
            distribution_id=distribution_id,
            actor_id=g.actor_id,
            condition=data.get("condition"),
        )
        return jsonify({"distribution": _distribution_payload(dist)}), 200

    except (ValidationError, DistributionError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to return all distribution items")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RENEWAL / CANCELLATION
# =============================================================================

@distributions_bp.post("/<int:distribution_id>/renew")
@require_actor(ROLE_ADMIN, ROLE_ARMOURER)
def renew_route(distribution_id: int):
    """
    Record a renewal inspection.

    Request body:
    {
        "condition": "serviceable",
        "next_renewal_date": "2027-01-15",
        "remarks": "All items sighted"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        dist = renewal_service.renew_distribution(
            distribution_id=distribution_id,
            condition=data.get("condition"),
            remarks=data.get("remarks"),
            next_renewal_date=data.get("next_renewal_date"),
            actor_id=g.actor_id,
        )
        return jsonify({"distribution": _distribution_payload(dist)}), 200

    except (ValidationError, DistributionError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to renew distribution")
        return jsonify({"error": "Internal server error"}), 500


@distributions_bp.post("/<int:distribution_id>/cancel")
@require_actor(ROLE_ADMIN)
def cancel_route(distribution_id: int):
    """
    Cancel an ISSUED distribution and restore its stock.

    Request body (optional):
    {
        "reason": "Issued to wrong squad"
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        dist = issuance_service.cancel_distribution(
            distribution_id=distribution_id,
            actor_id=g.actor_id,
            reason=data.get("reason"),
        )
        return jsonify({"distribution": _distribution_payload(dist)}), 200

    except (ValidationError, DistributionError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel distribution")
        return jsonify({"error": "Internal server error"}), 500
