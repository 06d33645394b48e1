"""
Notification Module - Invoice Generator
=========================================
Renders a one-page A4 invoice for an order with Pillow and returns PDF bytes.
Nothing is written to disk.
"""

import io
import logging
import re
from decimal import Decimal

from PIL import Image, ImageDraw, ImageFont

from common.exceptions import NotificationError

logger = logging.getLogger("mimasa.notification")

# A4 at 100 dpi
PAGE_W, PAGE_H = 827, 1169
MARGIN = 60
BRAND_COLOR = (139, 58, 14)

# Column x-positions for the items table
COL_QTY = 470
COL_PRICE = 560
COL_TOTAL = 680


def _rs(value) -> str:
    """Amount label; the rupee glyph is missing from some fallback fonts."""
    return "Rs. {:,.2f}".format(Decimal(str(value or 0)))


def invoice_filename(order_number: str) -> str:
    return f"Invoice_{re.sub(r'[^a-zA-Z0-9]', '_', order_number)}.pdf"


class InvoiceGenerator:

    def __init__(self, store_name: str, store_email: str = ""):
        self.store_name = store_name
        self.store_email = store_email

    def generate_pdf(self, order) -> bytes:
        """PDF bytes for an Order (items loaded). Raises NotificationError on failure."""
        try:
            img = self._render(order)
            buf = io.BytesIO()
            img.save(buf, "PDF", resolution=100.0)
            return buf.getvalue()
        except (OSError, ValueError) as e:
            logger.error(f"Invoice render failed for {order.order_number}: {e}")
            raise NotificationError("Failed to generate PDF invoice") from e

    def _render(self, order) -> Image.Image:
        img = Image.new("RGB", (PAGE_W, PAGE_H), "white")
        draw = ImageDraw.Draw(img)
        title = self._get_font(30, bold=True)
        bold = self._get_font(15, bold=True)
        normal = self._get_font(14)

        # Header band
        draw.rectangle([0, 0, PAGE_W, 110], fill=BRAND_COLOR)
        draw.text((MARGIN, 30), self.store_name, fill="white", font=title)
        if self.store_email:
            draw.text((MARGIN, 72), self.store_email, fill="white", font=normal)

        y = 140
        self._center(draw, y, "INVOICE", title)
        y += 55

        draw.text((MARGIN, y), f"Order Number: {order.order_number}", fill="black", font=bold)
        when = order.paid_at or order.created_at
        if when:
            draw.text((PAGE_W - MARGIN - 220, y), f"Date: {when.strftime('%d %B %Y')}", fill="black", font=normal)
        y += 40

        # Bill to
        draw.text((MARGIN, y), "Bill To:", fill="black", font=bold)
        y += 24
        for line in [order.customer_name, order.customer_email, order.customer_phone]:
            draw.text((MARGIN, y), line, fill="black", font=normal)
            y += 20
        for line in (order.shipping_address or "").splitlines():
            draw.text((MARGIN, y), line.strip(), fill="black", font=normal)
            y += 20
        draw.text((MARGIN, y), f"PIN: {order.pin_code}", fill="black", font=normal)
        y += 40

        # Items table
        draw.text((MARGIN, y), "Order Items", fill="black", font=bold)
        y += 28
        draw.rectangle([MARGIN, y - 4, PAGE_W - MARGIN, y + 22], fill=(245, 245, 245))
        draw.text((MARGIN + 6, y), "Product", fill="black", font=bold)
        draw.text((COL_QTY, y), "Qty", fill="black", font=bold)
        draw.text((COL_PRICE, y), "Price", fill="black", font=bold)
        draw.text((COL_TOTAL, y), "Total", fill="black", font=bold)
        y += 32

        for item in order.items:
            draw.text((MARGIN + 6, y), self._clip(item.product_name, 48), fill="black", font=normal)
            draw.text((COL_QTY, y), str(item.quantity), fill="black", font=normal)
            draw.text((COL_PRICE, y), _rs(item.product_price), fill="black", font=normal)
            draw.text((COL_TOTAL, y), _rs(item.subtotal), fill="black", font=normal)
            y += 24
            if y > PAGE_H - 220:
                draw.text((MARGIN + 6, y), "(continued in order details)", fill="gray", font=normal)
                y += 24
                break

        draw.line([MARGIN, y + 4, PAGE_W - MARGIN, y + 4], fill=(200, 200, 200), width=1)
        y += 20

        # Summary
        shipping = _rs(order.shipping_charge) if order.shipping_charge > 0 else "FREE"
        for label, value, font in [
            ("Subtotal:", _rs(order.subtotal), normal),
            ("Shipping:", shipping, normal),
            ("Total:", _rs(order.total_amount), bold),
        ]:
            draw.text((COL_PRICE - 20, y), label, fill="black", font=font)
            draw.text((COL_TOTAL, y), value, fill="black", font=font)
            y += 24

        if order.gateway_payment_id:
            y += 10
            draw.text((MARGIN, y), f"Payment ID: {order.gateway_payment_id}", fill="black", font=normal)

        self._center(draw, PAGE_H - 70, f"Thank you for choosing {self.store_name}!", normal)
        return img

    def _center(self, draw: ImageDraw.ImageDraw, y: int, text: str, font):
        bbox = draw.textbbox((0, 0), text, font=font)
        draw.text(((PAGE_W - (bbox[2] - bbox[0])) // 2, y), text, fill="black", font=font)

    @staticmethod
    def _clip(text: str, length: int) -> str:
        return text if len(text) <= length else text[: length - 3] + "..."

    def _get_font(self, size: int, bold: bool = False):
        """Try common TrueType fonts, fall back to Pillow's default."""
        candidates = [
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf" if bold else "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
            "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf" if bold else "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
            "arialbd.ttf" if bold else "arial.ttf",
            "DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf",
        ]
        for font_name in candidates:
            try:
                return ImageFont.truetype(font_name, size)
            except (OSError, IOError):
                continue

        try:
            return ImageFont.load_default(size=size)
        except TypeError:
            return ImageFont.load_default()
