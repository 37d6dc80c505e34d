"""
Content injection (internal library).
Validation runs before injection; inject_content itself never performs I/O.
"""
from sitepress.services.injection.engine import css_length, inject_content
from sitepress.services.injection.validation import validate_content

__all__ = [
    "css_length",
    "inject_content",
    "validate_content",
]
