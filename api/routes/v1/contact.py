"""
api/routes/v1/contact.py -- Contact form relay.

Route:
  POST /api/v1/contact  -- acknowledge the visitor by email and forward the
                           message to CONTACT_ADMIN_EMAIL

Visitor-supplied text is HTML-escaped before it is placed in either message.
If CONTACT_ADMIN_EMAIL is empty only the acknowledgement is sent.
"""

from __future__ import annotations

import html
import logging

from fastapi import APIRouter, Request

from api.models import ContactRequest, MessageResponse
from auth.errors import DeliveryError
from core.notifier import NotifierError

logger = logging.getLogger("memberdesk.api")

router = APIRouter()


@router.post("/contact", response_model=MessageResponse)
def submit_contact(request: Request, body: ContactRequest) -> MessageResponse:
    notifier = request.app.state.notifier
    admin_email: str = request.app.state.settings.contact_admin_email
    name = html.escape(body.name)
    message = html.escape(body.message)

    try:
        notifier.send(
            body.email,
            "Message Successfully Received",
            f"Dear {body.name},\n\nYour message has been successfully received. "
            "We'll get back to you shortly.\n\nThank you!",
            html=(
                f"<p>Dear {name},</p>"
                "<p>Your message has been successfully received. We'll get back to you shortly.</p>"
                "<p>Thank you!</p>"
            ),
        )
        if admin_email:
            notifier.send(
                admin_email,
                "New Contact Form Submission",
                f"Name: {body.name}\nEmail: {body.email}\nMessage:\n{body.message}",
                html=(
                    "<h3>New Contact Form Submission</h3>"
                    f"<p><strong>Name:</strong> {name}</p>"
                    f"<p><strong>Email:</strong> {html.escape(body.email)}</p>"
                    f"<p><strong>Message:</strong><br/>{message}</p>"
                ),
            )
        else:
            logger.warning("CONTACT_ADMIN_EMAIL not set; contact message from %s not forwarded", body.email)
    except NotifierError as exc:
        raise DeliveryError("Failed to send emails.") from exc

    return MessageResponse(message="Emails sent successfully!")
