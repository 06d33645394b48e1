"""
Mimasa Store - Template Configuration
=======================================
Jinja2 templates setup with custom filters (used for email bodies).
"""

from fastapi.templating import Jinja2Templates

from config.settings import TEMPLATE_DIR, STORE_NAME, BASE_URL
from common.helpers import format_inr

# Initialize templates
templates = Jinja2Templates(directory=TEMPLATE_DIR)


def render_template(name: str, **context) -> str:
    """Render a template to a string outside of a request."""
    return templates.get_template(name).render(**context)


# ==========================================
# Register Filters & Globals
# ==========================================

# Filters (usage in template: {{ value | inr }})
templates.env.filters["inr"] = format_inr
templates.env.filters["date_label"] = lambda v: v.strftime("%d %b %Y") if v else "—"

templates.env.globals["STORE_NAME"] = STORE_NAME
templates.env.globals["BASE_URL"] = BASE_URL
