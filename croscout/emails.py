"""Subjects and bodies of the emails the service sends."""
from html import escape


def new_booking(owner_name: str) -> dict:
    name = escape(owner_name)
    return {
        "subject": "New Booking Confirmation",
        "text": f"Hello {owner_name}, a new booking has been made for your property.",
        "html": f"<b>Hello {name},</b><br><p>A new booking has been made for your property.</p>",
    }


def booking_status(guest_name: str, booking_id: int, status: str) -> dict:
    return {
        "subject": f"Booking Status Update: {status}",
        "text": f"Hello {guest_name}, your booking has been {status}. Booking id: {booking_id}",
        "html": f"<b>Hello there,</b><br><p>The booking has been {status}. Booking id: {booking_id}</p>",
    }


def payment_requested(guest_name: str, booking_id: int, paypal_email: str, instruction: str) -> dict:
    text = (
        f"Dear {guest_name},\n\n"
        f"Payment details for booking ID {booking_id} are now available:\n\n"
        f"Agent PayPal Email: {paypal_email}\n"
        f"Payment Instruction: {instruction}\n\n"
        "Please complete the payment as instructed and submit your transaction ID.\n\n"
        "Best regards,\nThe Croscout Team"
    )
    html = (
        f"<p>Dear {escape(guest_name)},</p>"
        f"<p>Payment details for booking ID <strong>{booking_id}</strong> are now available:</p>"
        f"<p><strong>Agent PayPal Email:</strong> {escape(paypal_email)}</p>"
        f"<p><strong>Payment Instruction:</strong> {escape(instruction)}</p>"
        "<p>Please complete the payment as instructed and submit your transaction ID.</p>"
        "<p>Best regards,<br>The Croscout Team</p>"
    )
    return {"subject": "Requested to Booking Payment with Details", "text": text, "html": html}


def transaction_submitted(owner_name: str, booking_id: int, transaction_id: str) -> dict:
    text = (
        f"Hello {owner_name},\n\n"
        f"The transaction ID for booking ID {booking_id} has been submitted: {transaction_id}\n\n"
        "Please verify the transaction and update the booking status accordingly."
    )
    html = (
        f"<p>Hello {escape(owner_name)},</p>"
        f"<p>The transaction ID for booking ID <strong>{booking_id}</strong> has been submitted: "
        f"<strong>{escape(transaction_id)}</strong>.</p>"
        "<p>Please verify the transaction and update the booking status accordingly.</p>"
    )
    return {"subject": "Transaction ID Submitted", "text": text, "html": html}


def password_reset(link: str) -> dict:
    text = (
        "You are receiving this because you have requested the reset of the password for your account.\n"
        f"Open the following link to complete the process:\n{link}\n"
        "If you did not request this, please ignore this email and your password will remain unchanged."
    )
    html = (
        "You are receiving this because you have requested the reset of the password for your account.<br/>"
        f'<a href="{escape(link)}">Click here to reset your password</a><br/>'
        "If you did not request this, please ignore this email and your password will remain unchanged."
    )
    return {"subject": "Password Reset", "text": text, "html": html}


def verify_email(link: str) -> dict:
    return {
        "subject": "Email Verification",
        "text": f"Please verify your email by clicking on the following link: \n{link}",
        "html": None,
    }
