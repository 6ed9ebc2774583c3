"""
Mimi's Kitchen API - Template Configuration
============================================
Jinja2 environment for transactional email bodies, with custom filters.
"""

import os

from jinja2 import Environment, FileSystemLoader, select_autoescape

from common.helpers import money

# Initialize templates
TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")

templates = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def format_money(value, currency: str = "gbp") -> str:
    symbols = {"gbp": "£", "usd": "$", "eur": "€"}
    return f"{symbols.get(currency.lower(), '')}{money(value)}"


def format_status(value) -> str:
    return str(getattr(value, "value", value)).replace("_", " ").capitalize()


# ==========================================
# Register Filters
# ==========================================

# Filters (usage in template: {{ order.total | money }})
templates.filters["money"] = format_money
templates.filters["status"] = format_status


def render_email(kind: str, context: dict) -> str:
    """Render `email/<kind>.txt` with the given context."""
    return templates.get_template(f"email/{kind}.txt").render(**context)
