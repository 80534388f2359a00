"""
Tests for field rendering: image signatures, typed signatures and text fields.
"""
import base64
import unittest

import pymupdf as fitz
from hypothesis import assume, given, settings, strategies as st

from inksign.adapters.fonts import FontResources
from inksign.render.fields import (
    DRAWN_PLACEHOLDER,
    decode_data_url,
    fit_image,
    placeholder_font_size,
    render_field,
    renderer_for,
    text_field_font_size,
)
from inksign.render.fonts import (
    BUILTIN_SANS,
    BUILTIN_SANS_BOLD,
    BUILTIN_SERIF,
    DocumentFonts,
    signature_tier,
    text_field_fonts,
)
from inksign.render.geometry import convert
from inksign.types import FieldType, SignatureFont

from pdf_helpers import make_field, make_png, make_png_data_url, make_value


dims = st.floats(min_value=1, max_value=5000, allow_nan=False, allow_infinity=False)


class TestDataUrl(unittest.TestCase):

    def test_png(self):
        kind, data = decode_data_url(make_png_data_url())
        self.assertEqual(kind, 'png')
        self.assertEqual(data, make_png())

    def test_jpeg_mime(self):
        kind, data = decode_data_url('data:image/jpeg;base64,' + base64.b64encode(b'\xff\xd8\xffabc').decode())
        self.assertEqual(kind, 'jpeg')
        self.assertEqual(data, b'\xff\xd8\xffabc')

    def test_unknown_mime_defaults_to_png(self):
        kind, _ = decode_data_url('data:image/webp;base64,AAAA')
        self.assertEqual(kind, 'png')

    def test_malformed(self):
        with self.assertRaises(ValueError):
            decode_data_url('data:image/png;base64')
        with self.assertRaises(ValueError):
            decode_data_url('data:image/png;base64,')


class TestFitImage(unittest.TestCase):

    @settings(max_examples=200)
    @given(box_w=dims, box_h=dims, img_w=dims, img_h=dims)
    def test_fits_and_centers(self, box_w, box_h, img_w, img_h):
        dx, dy, w, h = fit_image(box_w, box_h, img_w, img_h)
        self.assertLessEqual(w, box_w * (1 + 1e-9))
        self.assertLessEqual(h, box_h * (1 + 1e-9))
        self.assertLessEqual(w, img_w * (1 + 1e-9))
        self.assertAlmostEqual(dx * 2 + w, box_w, delta=box_w * 1e-9)
        self.assertAlmostEqual(dy * 2 + h, box_h, delta=box_h * 1e-9)

    @given(box_w=dims, box_h=dims, img_w=dims, img_h=dims)
    def test_never_upscales_small_images(self, box_w, box_h, img_w, img_h):
        assume(img_w < box_w and img_h < box_h)
        _, _, w, h = fit_image(box_w, box_h, img_w, img_h)
        self.assertEqual((w, h), (img_w, img_h))

    def test_preserves_aspect_ratio(self):
        dx, dy, w, h = fit_image(100, 100, 400, 200)
        self.assertEqual((w, h), (100, 50))
        self.assertEqual((dx, dy), (0, 25))


class TestFontSelection(unittest.TestCase):

    def test_tier_sizes(self):
        self.assertEqual(signature_tier(SignatureFont.signature)[0].size_for(100), 16)
        self.assertEqual(signature_tier(SignatureFont.signatura)[0].size_for(100), 18)
        self.assertEqual(signature_tier(SignatureFont.signaturia)[0].size_for(100), 22)
        self.assertEqual(signature_tier(SignatureFont.signaturia)[1].size_for(100), 24)
        self.assertAlmostEqual(signature_tier(SignatureFont.signatura)[1].size_for(20), 17.0)

    def test_sizes_floor_at_eight(self):
        for tag in SignatureFont:
            for choice in signature_tier(tag):
                self.assertEqual(choice.size_for(2), 8)
        self.assertEqual(text_field_font_size(5), 8)
        self.assertEqual(placeholder_font_size(5), 8)

    def test_text_field_size_cap(self):
        self.assertEqual(text_field_font_size(100), 12)
        self.assertAlmostEqual(text_field_font_size(15), 9.0)

    def test_absent_tag_uses_plain_tier(self):
        self.assertEqual(signature_tier(None), signature_tier(SignatureFont.signature))

    def test_pick_falls_back_to_builtin(self):
        fonts = DocumentFonts(FontResources())
        self.assertEqual(fonts.pick(signature_tier(SignatureFont.signatura)).source, BUILTIN_SERIF)
        self.assertEqual(fonts.pick(signature_tier(SignatureFont.signature)).source, BUILTIN_SANS)
        self.assertEqual(fonts.pick(signature_tier(SignatureFont.drawn)).source, BUILTIN_SANS_BOLD)

    def test_text_field_font_map(self):
        self.assertEqual(text_field_fonts(FieldType.title), (BUILTIN_SANS_BOLD,))
        self.assertEqual(text_field_fonts(FieldType.initials), (BUILTIN_SANS_BOLD,))
        self.assertEqual(text_field_fonts(FieldType.fullname)[-1], BUILTIN_SERIF)
        self.assertEqual(text_field_fonts(FieldType.unknown)[-1], BUILTIN_SANS)

    def test_fit_truncates(self):
        fonts = DocumentFonts()
        text = 'x' * 400
        fitted = fonts.fit(text, source=BUILTIN_SANS, font_size=10, max_width=100)
        self.assertTrue(fitted.endswith('...'))
        self.assertLessEqual(fonts.measure(fitted, source=BUILTIN_SANS, font_size=10), 100)
        self.assertEqual(fonts.fit('short', source=BUILTIN_SANS, font_size=10, max_width=100), 'short')


class TestRenderField(unittest.TestCase):

    def setUp(self):
        self.doc = fitz.open()
        self.page = self.doc.new_page(width=612, height=792)
        self.fonts = DocumentFonts(FontResources())

    def tearDown(self):
        self.doc.close()

    def _render(self, field, value):
        placement = convert(field, self.page.rect.width, self.page.rect.height)
        return render_field(self.page, field, value, placement, self.fonts), placement

    def test_image_signature_is_centered(self):
        field = make_field('sig', 'SIGNATURE', 100, 100, 200, 80)
        drawn, _ = self._render(field, make_value('sig', make_png_data_url(40, 20)))
        self.assertTrue(drawn)

        images = self.page.get_image_info()
        self.assertEqual(len(images), 1)
        x0, y0, x1, y1 = images[0]['bbox']
        self.assertAlmostEqual(x0, 133.0, places=1)
        self.assertAlmostEqual(y0, 97.1, places=1)
        self.assertAlmostEqual(x1 - x0, 40.0, places=1)
        self.assertAlmostEqual(y1 - y0, 20.0, places=1)

    def test_large_image_is_scaled_into_box(self):
        field = make_field('sig', 'SIGNATURE', 0, 0, 800, 100)
        self._render(field, make_value('sig', make_png_data_url(2000, 400)))
        x0, y0, x1, y1 = self.page.get_image_info()[0]['bbox']
        self.assertLessEqual(x1 - x0, 612 + 0.01)
        self.assertLessEqual(y1 - y0, 76.5 + 0.01)

    def test_broken_image_draws_placeholder(self):
        field = make_field('sig', 'SIGNATURE', 100, 100, 200, 80)
        drawn, _ = self._render(field, make_value('sig', 'data:image/png;base64,bm90IGFuIGltYWdl'))
        self.assertTrue(drawn)
        self.assertEqual(self.page.get_image_info(), [])
        self.assertIn(DRAWN_PLACEHOLDER, self.page.get_text())

    def test_jpeg_label_on_png_bytes_draws_placeholder(self):
        payload = base64.b64encode(make_png()).decode()
        field = make_field('sig', 'SIGNATURE', 100, 100, 200, 80)
        self._render(field, make_value('sig', f'data:image/jpeg;base64,{payload}'))
        self.assertIn(DRAWN_PLACEHOLDER, self.page.get_text())

    def test_typed_signature_is_centered_with_left_bias(self):
        field = make_field('sig', 'SIGNATURE', 100, 100, 300, 60)
        _, placement = self._render(field, make_value('sig', 'Jane', font='signature'))

        size = signature_tier(SignatureFont.signature)[1].size_for(placement.height)
        width = self.fonts.measure('Jane', source=BUILTIN_SANS, font_size=size)
        expected_x = placement.x + (placement.width - width) / 2 - 20

        words = self.page.get_text('words')
        self.assertEqual(words[0][4], 'Jane')
        self.assertAlmostEqual(words[0][0], expected_x, delta=1.0)

    def test_typed_signature_fallback_fonts(self):
        cases = [('signatura', 'Times'), ('signaturia', 'Times'), ('drawn', 'Helvetica-Bold'), ('unknown', 'Helvetica')]
        for tag, expected in cases:
            with self.subTest(tag=tag):
                doc = fitz.open()
                page = doc.new_page(width=612, height=792)
                field = make_field('sig', 'SIGNATURE', 100, 100, 300, 60)
                placement = convert(field, 612, 792)
                render_field(page, field, make_value('sig', 'Jane Doe', font=tag), placement, self.fonts)
                basefonts = [item[3] for item in page.get_fonts()]
                self.assertTrue(any(expected in name for name in basefonts), basefonts)
                doc.close()

    def test_text_field_left_aligned_near_top(self):
        field = make_field('name', 'FULLNAME', 100, 100, 200, 40)
        _, placement = self._render(field, make_value('name', 'Jane Doe'))

        words = self.page.get_text('words')
        self.assertEqual([word[4] for word in words], ['Jane', 'Doe'])
        self.assertAlmostEqual(words[0][0], placement.x + 5, delta=1.0)
        top_in_page_space = 792 - placement.top
        self.assertGreaterEqual(words[0][3], top_in_page_space)
        self.assertLessEqual(words[0][3], 792 - placement.y + 1.0)

    def test_unknown_field_type_renders_as_text(self):
        field = make_field('x', 'CHECKBOX_GROUP', 100, 300, 200, 40)
        self.assertEqual(field.field_type, FieldType.unknown)
        self.assertIs(renderer_for(field.field_type), renderer_for(FieldType.date))
        self._render(field, make_value('x', 'yes'))
        self.assertIn('yes', self.page.get_text())

    def test_blank_value_is_not_drawn(self):
        before = self.page.read_contents()
        field = make_field('name', 'FULLNAME', 100, 100, 200, 40)
        for value in (make_value('name', ''), make_value('name', '   \n'), None):
            drawn, _ = self._render(field, value)
            self.assertFalse(drawn)
        self.assertEqual(self.page.read_contents(), before)


if __name__ == '__main__':
    unittest.main()
