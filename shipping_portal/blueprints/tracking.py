"""Public tracking pages and the customer's shipment list."""

from __future__ import annotations

from flask import (
    Blueprint,
    Response,
    current_app,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_login import current_user, login_required

from .. import get_shipment_repository, limiter
from ..services.shipments import track
from ..tracking import normalise_tracking_number

tracking_bp = Blueprint("tracking", __name__)


def _tracking_limit() -> str:
    return current_app.config.get("TRACKING_RATE_LIMIT", "30 per minute")


@tracking_bp.get("/track/")
def search() -> Response | str:
    """Render the search form, redirecting when a number was submitted."""

    number = normalise_tracking_number(request.args.get("number"))
    if number:
        return redirect(url_for("tracking.detail", tracking_number=number))
    return render_template("tracking/search.html", number="")


@tracking_bp.get("/track/<tracking_number>")
@limiter.limit(_tracking_limit)
def detail(tracking_number: str) -> tuple[str, int] | str:
    """Show the status, progress and timeline for a shipment."""

    result = track(get_shipment_repository(), tracking_number)
    if result is None:
        return (
            render_template(
                "tracking/search.html",
                number=tracking_number,
                not_found=True,
            ),
            404,
        )
    return render_template("tracking/detail.html", result=result)


@tracking_bp.get("/track/<tracking_number>.json")
@limiter.limit(_tracking_limit)
def detail_json(tracking_number: str) -> tuple[Response, int] | Response:
    """Current state for viewers re-syncing after a missed live update."""

    result = track(get_shipment_repository(), tracking_number)
    if result is None:
        return jsonify({"error": "not_found"}), 404
    return jsonify(result.to_dict())


@tracking_bp.get("/shipments/mine")
@login_required
def my_shipments() -> str:
    shipments = get_shipment_repository().list_for_user(current_user.id)
    return render_template("tracking/mine.html", shipments=shipments)
