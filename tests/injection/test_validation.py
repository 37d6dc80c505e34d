"""
Unit tests for validate_content: pure checks, no template or I/O.
"""
import unittest

from sitepress.services.generation.errors import UnsafeContentError
from sitepress.services.injection import validate_content


class TestValidateContent(unittest.TestCase):
    def test_plain_content_passes(self):
        validate_content(
            langs={"headline": "Welcome <Home>", "body": "Fresh <b>bread</b> & coffee"},
            images={"hero": "https://cdn.example.com/a.png", "logo": "data:image/png;base64,AAAA"},
            text_colors={"headline": "#ff0000"},
            section_backgrounds={"about": "rgba(0, 0, 0, 0.5)"},
            image_sizes={"hero": {"width": 120, "height": "80px", "left": "10%", "top": 0}},
            image_z_indexes={"hero": "3"},
        )

    def test_script_tag_rejected(self):
        with self.assertRaises(UnsafeContentError) as ctx:
            validate_content(langs={"headline": "Hi <script>alert(1)</script>"})
        self.assertEqual(ctx.exception.detail["key"], "headline")

    def test_script_tag_with_whitespace_and_case(self):
        with self.assertRaises(UnsafeContentError):
            validate_content(langs={"t": "< SCRIPT src=x>"})

    def test_javascript_scheme_in_text_rejected(self):
        with self.assertRaises(UnsafeContentError):
            validate_content(langs={"link": "javascript:alert(1)"})

    def test_inline_event_handler_rejected(self):
        with self.assertRaises(UnsafeContentError):
            validate_content(langs={"t": '<img src=x onerror="steal()">'})

    def test_javascript_image_url_rejected(self):
        with self.assertRaises(UnsafeContentError):
            validate_content(images={"hero": " JavaScript:alert(1)"})

    def test_geometry_must_be_css_length(self):
        with self.assertRaises(UnsafeContentError) as ctx:
            validate_content(image_sizes={"hero": {"width": "10px; position: fixed"}})
        self.assertEqual(ctx.exception.detail["property"], "width")

    def test_color_cannot_break_out_of_style(self):
        with self.assertRaises(UnsafeContentError):
            validate_content(section_backgrounds={"about": 'red" onmouseover="x'})

    def test_unusual_color_is_only_logged(self):
        with self.assertLogs("sitepress.services.injection.validation", level="WARNING"):
            validate_content(text_colors={"t": "color(display-p3 1 0 0)"})

    def test_z_index_must_be_integer(self):
        with self.assertRaises(UnsafeContentError):
            validate_content(image_z_indexes={"hero": "top"})
