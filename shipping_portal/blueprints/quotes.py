"""Quote calculator and saved-quote dashboard routes."""

from __future__ import annotations

from flask import (
    Blueprint,
    Response,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_login import current_user, login_required

from .. import (
    csrf,
    get_notifier,
    get_profile_repository,
    get_saved_quote_repository,
    get_shipment_repository,
)
from ..errors import ValidationError
from ..forms import parse_quote_form, parse_save_quote_form
from ..quote import compute_quote
from ..services.booking import delete_saved_quote, request_callback, save_quote

quotes_bp = Blueprint("quotes", __name__)


@quotes_bp.get("/")
def calculator() -> str:
    """Render the empty calculator."""

    return render_template("quotes/calculator.html", errors=[], form={}, quote=None)


@quotes_bp.post("/")
def calculate() -> tuple[str, int] | str:
    """Price the submitted package for every service."""

    quote, errors = parse_quote_form(request.form)
    if quote is None:
        return (
            render_template(
                "quotes/calculator.html", errors=errors, form=request.form, quote=None
            ),
            400,
        )
    return render_template("quotes/calculator.html", errors=[], form=request.form, quote=quote)


@quotes_bp.post("/api")
@csrf.exempt
def calculate_api() -> Response:
    """JSON variant of the calculator used by embedded widgets."""

    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError({"body": "Expected a JSON object."})
    quote = compute_quote(
        payload.get("origin"),
        payload.get("destination"),
        payload.get("weight"),
        payload.get("length"),
        payload.get("width"),
        payload.get("height"),
    )
    return jsonify(quote.to_dict())


@quotes_bp.post("/save")
@login_required
def save() -> Response | tuple[str, int]:
    """Save the selected offer for the signed-in customer."""

    form_data, errors = parse_save_quote_form(request.form)
    if form_data is None:
        flash("Please correct the highlighted errors.", "danger")
        return (
            render_template(
                "quotes/calculator.html", errors=errors, form=request.form, quote=None
            ),
            400,
        )
    save_quote(
        get_saved_quote_repository(),
        current_user,
        form_data.quote,
        form_data.offer,
        notifier=get_notifier(),
    )
    flash("Quote saved to your dashboard.", "success")
    return redirect(url_for("quotes.my_quotes"))


@quotes_bp.get("/mine")
@login_required
def my_quotes() -> str:
    """Customer dashboard listing saved quotes and shipments."""

    quotes = get_saved_quote_repository().list_for_user(current_user.id)
    shipments = get_shipment_repository().list_for_user(current_user.id)
    return render_template("quotes/dashboard.html", quotes=quotes, shipments=shipments)


@quotes_bp.post("/<int:quote_id>/callback")
@login_required
def callback(quote_id: int) -> Response:
    """Ask the sales team to call about a saved quote."""

    try:
        request_callback(
            get_saved_quote_repository(),
            quote_id,
            current_user,
            profiles=get_profile_repository(),
            notifier=get_notifier(),
        )
    except ValidationError as exc:
        for message in exc.messages:
            flash(message, "danger")
        return redirect(url_for("quotes.my_quotes"))
    flash("Callback requested. Our team will be in touch shortly.", "success")
    return redirect(url_for("quotes.my_quotes"))


@quotes_bp.post("/<int:quote_id>/delete")
@login_required
def delete(quote_id: int) -> Response:
    delete_saved_quote(get_saved_quote_repository(), quote_id, current_user)
    flash("Quote deleted.", "info")
    return redirect(url_for("quotes.my_quotes"))
