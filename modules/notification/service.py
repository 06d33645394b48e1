"""
Mimasa Store - Order Notifier
===============================
Order confirmation email: templated HTML body + PDF invoice attachment,
sent to the customer and bcc'd to the merchant mailbox.

Best-effort: send_order_confirmation() logs failures and returns False,
it never raises to the caller.
"""

import logging

from common.exceptions import NotificationError
from common.templating import render_template
from config.settings import MERCHANT_MAILBOX, STORE_NAME, MAIL_SENDER_EMAIL
from modules.notification.invoice import InvoiceGenerator, invoice_filename
from modules.notification.mailer import BrevoMailer, MailAttachment, MailMessage

logger = logging.getLogger("mimasa.notification")

CONFIRMATION_TEMPLATE = "email/order_confirmation.html"


class OrderNotifier:

    def __init__(self, mailer, invoice_generator: InvoiceGenerator, merchant_mailbox: str = MERCHANT_MAILBOX):
        self.mailer = mailer
        self.invoice_generator = invoice_generator
        self.merchant_mailbox = merchant_mailbox

    def build_confirmation(self, order) -> MailMessage:
        html = render_template(CONFIRMATION_TEMPLATE, order=order, support_email=self.merchant_mailbox)
        pdf = self.invoice_generator.generate_pdf(order)
        return MailMessage(
            to_address=order.customer_email,
            to_name=order.customer_name,
            bcc_addresses=[self.merchant_mailbox] if self.merchant_mailbox else [],
            subject=f"Order Confirmation - {order.order_number}",
            html_body=html,
            attachments=[MailAttachment(filename=invoice_filename(order.order_number), content=pdf)],
        )

    def send_order_confirmation(self, order) -> bool:
        try:
            message = self.build_confirmation(order)
        except NotificationError as e:
            logger.error(f"Confirmation for {order.order_number} not sent: {e}")
            return False
        except Exception:
            logger.exception(f"Confirmation for {order.order_number} could not be built")
            return False

        try:
            sent = self.mailer.send(message)
        except Exception:
            logger.exception(f"Mailer raised while sending confirmation for {order.order_number}")
            return False

        if not sent:
            logger.error(f"Confirmation email for order {order.order_number} failed to send")
        return sent


# Shared instances
invoice_generator = InvoiceGenerator(store_name=STORE_NAME, store_email=MAIL_SENDER_EMAIL)
order_notifier = OrderNotifier(BrevoMailer(), invoice_generator)
