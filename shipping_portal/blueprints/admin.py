"""Operator routes for managing shipments and viewing analytics."""

from __future__ import annotations

from flask import (
    Blueprint,
    Response,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    url_for,
)

from .. import get_change_feed, get_saved_quote_repository, get_shipment_repository
from ..errors import StatusTransitionError, ValidationError
from ..forms import parse_event_form
from ..identity import admin_required
from ..services.analytics import PERIOD_CHOICES, resolve_period, summarize
from ..services.shipments import get_timeline, record_event, update_shipment
from ..tracking import parse_status, sort_timeline

admin_bp = Blueprint("admin", __name__)


def _write_options() -> dict:
    return {
        "enforce_transitions": bool(current_app.config.get("ENFORCE_STATUS_TRANSITIONS")),
        "feed": get_change_feed(),
    }


@admin_bp.get("/shipments")
@admin_required
def shipments() -> str:
    """List shipments with search, status filter and sort order."""

    repo = get_shipment_repository()
    search = (request.args.get("q") or "").strip()
    status = (request.args.get("status") or "").strip()
    if status:
        try:
            status = parse_status(status).value
        except ValidationError:
            status = ""
    order = request.args.get("sort", "desc")
    items = repo.list_all(search=search, status=status or None, newest_first=order != "asc")
    return render_template(
        "admin/shipments.html",
        shipments=items,
        counts=repo.status_counts(),
        search=search,
        status_filter=status,
        sort=order,
    )


@admin_bp.get("/shipments/<int:shipment_id>")
@admin_required
def shipment_detail(shipment_id: int) -> str:
    repo = get_shipment_repository()
    shipment = repo.get(shipment_id)
    events = sort_timeline(get_timeline(repo, shipment_id), newest_first=True)
    return render_template(
        "admin/shipment_detail.html", shipment=shipment, events=events, errors=[]
    )


def _render_detail_with_errors(shipment_id: int, errors: list[str]) -> tuple[str, int]:
    repo = get_shipment_repository()
    shipment = repo.get(shipment_id)
    events = sort_timeline(get_timeline(repo, shipment_id), newest_first=True)
    flash("Please correct the highlighted errors.", "danger")
    return (
        render_template(
            "admin/shipment_detail.html", shipment=shipment, events=events, errors=errors
        ),
        400,
    )


@admin_bp.post("/shipments/<int:shipment_id>/status")
@admin_required
def update_status(shipment_id: int) -> Response | tuple[str, int]:
    """Edit a shipment's status and location."""

    form_data, errors = parse_event_form(request.form)
    if form_data is None:
        return _render_detail_with_errors(shipment_id, errors)
    try:
        update_shipment(
            get_shipment_repository(),
            shipment_id,
            form_data.status,
            form_data.location,
            **_write_options(),
        )
    except StatusTransitionError as exc:
        return _render_detail_with_errors(shipment_id, exc.messages)
    flash("Shipment updated.", "success")
    return redirect(url_for("admin.shipment_detail", shipment_id=shipment_id))


@admin_bp.post("/shipments/<int:shipment_id>/events")
@admin_required
def add_event(shipment_id: int) -> Response | tuple[str, int]:
    """Record a tracking event with an optional description."""

    form_data, errors = parse_event_form(request.form)
    if form_data is None:
        return _render_detail_with_errors(shipment_id, errors)
    try:
        record_event(
            get_shipment_repository(),
            shipment_id,
            form_data.status,
            form_data.location,
            form_data.description,
            **_write_options(),
        )
    except StatusTransitionError as exc:
        return _render_detail_with_errors(shipment_id, exc.messages)
    flash("Tracking event added.", "success")
    return redirect(url_for("admin.shipment_detail", shipment_id=shipment_id))


@admin_bp.get("/analytics")
@admin_required
def analytics() -> str:
    period = resolve_period(request.args.get("period"))
    summary = summarize(
        get_shipment_repository().list_all(),
        get_saved_quote_repository().list_all(),
        period_days=period,
    )
    return render_template(
        "admin/analytics.html", summary=summary, periods=PERIOD_CHOICES
    )
