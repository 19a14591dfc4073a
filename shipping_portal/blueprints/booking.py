"""Booking routes that turn a saved quote into a shipment."""

from __future__ import annotations

from flask import Blueprint, Response, abort, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required

from .. import get_notifier, get_saved_quote_repository, get_shipment_repository
from ..forms import parse_booking_form
from ..services.booking import book_saved_quote, booking_total, get_bookable_quote

booking_bp = Blueprint("booking", __name__)


@booking_bp.get("/<int:quote_id>")
@login_required
def booking_form(quote_id: int) -> Response | str:
    """Render the booking form for a saved quote."""

    quote = get_bookable_quote(get_saved_quote_repository(), quote_id, current_user)
    if quote.status == "booked":
        shipment = get_shipment_repository().get_by_saved_quote(quote.id)
        if shipment is not None:
            return redirect(
                url_for("booking.confirmed", tracking_number=shipment.tracking_number)
            )
    return render_template(
        "booking/form.html",
        quote=quote,
        totals=booking_total(quote.price),
        errors=[],
        form={"sender_email": current_user.email},
    )


@booking_bp.post("/<int:quote_id>")
@login_required
def submit_booking(quote_id: int) -> Response | tuple[str, int]:
    """Validate the booking form and create the shipment."""

    quotes = get_saved_quote_repository()
    quote = get_bookable_quote(quotes, quote_id, current_user)
    form_data, errors = parse_booking_form(request.form)
    if form_data is None:
        flash("Please correct the highlighted errors.", "danger")
        return (
            render_template(
                "booking/form.html",
                quote=quote,
                totals=booking_total(quote.price),
                errors=errors,
                form=request.form,
            ),
            400,
        )

    result = book_saved_quote(
        quotes,
        get_shipment_repository(),
        quote_id,
        form_data,
        current_user,
        notifier=get_notifier(),
    )
    if result.created:
        flash("Your shipment has been booked.", "success")
    else:
        flash("This quote was already booked.", "info")
    return redirect(
        url_for("booking.confirmed", tracking_number=result.shipment.tracking_number)
    )


@booking_bp.get("/confirmed/<tracking_number>")
@login_required
def confirmed(tracking_number: str) -> str:
    """Show the confirmation page with the new tracking number."""

    shipment = get_shipment_repository().get_by_tracking_number(tracking_number)
    if shipment is None or shipment.user_id != current_user.id:
        abort(404)
    return render_template("booking/confirmed.html", shipment=shipment)
