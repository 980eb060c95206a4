"""Tests for the text layer renderer, surfaces and the composite engine."""

import io
import unittest

import numpy as np
from PIL import Image

from textbehind.errors import ImageDecodeError, SurfaceUnavailable
from textbehind.layers import TextLayer
from textbehind.render.compositor import Compositor
from textbehind.render.fonts import FontResolver
from textbehind.render.surface import Surface, encode_image, load_image
from textbehind.render.text import render_text_layer, single_line


def ink_box(array: np.ndarray, background=(0, 0, 0)) -> tuple[int, int, int, int]:
    """Bounding box (x0, y0, x1, y1) of pixels differing from the background colour."""
    ys, xs = np.nonzero(np.any(array[..., :3] != background, axis=-1))
    return int(xs.min()), int(ys.min()), int(xs.max()), int(ys.max())


def alpha_box(array: np.ndarray) -> tuple[int, int, int, int]:
    ys, xs = np.nonzero(array[..., 3])
    return int(xs.min()), int(ys.min()), int(xs.max()), int(ys.max())


def box_center(box: tuple[int, int, int, int]) -> tuple[float, float]:
    return ((box[0] + box[2] + 1) / 2, (box[1] + box[3] + 1) / 2)


def black(width: int, height: int) -> Image.Image:
    return Image.new("RGB", (width, height), (0, 0, 0))


class TestTextLayerRenderer(unittest.TestCase):
    """Test drawing single layers onto a transparent surface."""

    def setUp(self):
        self.fonts = FontResolver()

    def render(self, layer: TextLayer, size=(400, 200)) -> np.ndarray:
        surface = Surface(*size)
        render_text_layer(surface, layer, self.fonts)
        return np.asarray(surface.image)

    def test_text_is_centered_on_anchor(self):
        out = self.render(TextLayer.create(text="H", font_size=60, color="#ffffff"))
        cx, cy = box_center(alpha_box(out))

        self.assertAlmostEqual(cx, 200, delta=3)
        self.assertAlmostEqual(cy, 100, delta=60 * 0.25)

    def test_empty_text_draws_nothing(self):
        out = self.render(TextLayer.create(text="", font_size=60))
        self.assertFalse(np.any(out))

    def test_collapsed_transform_draws_nothing(self):
        surface = Surface(200, 100)
        drawn = render_text_layer(surface, TextLayer.create(text="Gone", scale=0), self.fonts)

        self.assertFalse(drawn)
        self.assertFalse(np.any(np.asarray(surface.image)))

    def test_layer_at_corner_is_clipped(self):
        out = self.render(TextLayer.create(text="HELLO", x=0, y=0, font_size=60, color="#ffffff"))
        box = alpha_box(out)

        self.assertEqual(out.shape, (200, 400, 4))
        self.assertEqual((box[0], box[1]), (0, 0))
        self.assertLess(box[2], 120)

    def test_line_breaks_render_on_one_line(self):
        self.assertEqual(single_line("a\nb\tc\r\nd"), "a b c d")
        one = self.render(TextLayer.create(text="AB CD", font_size=40, color="#ffffff"))
        broken = self.render(TextLayer.create(text="AB\nCD", font_size=40, color="#ffffff"))
        np.testing.assert_array_equal(one, broken)

    def test_scale_enlarges_glyphs(self):
        small = alpha_box(self.render(TextLayer.create(text="Hi", font_size=30)))
        large = alpha_box(self.render(TextLayer.create(text="Hi", font_size=30, scale=2)))

        ratio = (large[3] - large[1]) / (small[3] - small[1])
        self.assertAlmostEqual(ratio, 2.0, delta=0.3)

    def test_rotation_turns_text_vertical(self):
        box = alpha_box(self.render(TextLayer.create(text="HELLO", font_size=30, rotation=90), size=(300, 300)))
        self.assertGreater(box[3] - box[1], 2 * (box[2] - box[0]))

    def test_opacity_scales_alpha(self):
        out = self.render(TextLayer.create(text="HELLO", font_size=60, color="#ffffff", opacity=0.5))
        self.assertIn(int(out[..., 3].max()), range(126, 130))

    def test_gradient_stops_across_glyph_run(self):
        layer = TextLayer.create(
            text="MMMMMMMM",
            font_size=80,
            gradient=True,
            gradient_colors={"start": "#ff0000", "middle": "#00ff00", "end": "#0000ff"},
        )
        out = self.render(layer, size=(800, 200)).astype(int)
        ys, xs = np.nonzero(out[..., 3] == 255)
        colors = out[ys, xs, :3]

        left = colors[np.argmin(xs)]
        right = colors[np.argmax(xs)]
        middle = colors[np.argmin(np.abs(xs + 0.5 - 400))]
        self.assertEqual(int(np.argmax(left)), 0)
        self.assertEqual(int(np.argmax(middle)), 1)
        self.assertEqual(int(np.argmax(right)), 2)
        self.assertGreater(middle[1], 230)

    def test_shadow_is_offset_in_surface_pixels(self):
        layer = TextLayer.create(
            text="HELLO",
            font_size=60,
            color="#ffffff",
            rotation=90,
            shadow=True,
            shadow_color="#ff0000",
            shadow_blur=0,
            shadow_offset={"x": 20, "y": 0},
        )
        out = self.render(layer, size=(300, 400))
        text_box = alpha_box(self.render(layer.merged(shadow=False), size=(300, 400)))
        red = (out[..., 0] > 200) & (out[..., 1] < 50) & (out[..., 3] > 200)
        ys, xs = np.nonzero(red)

        self.assertTrue(red.any())
        # The rotated layer still casts its shadow to the right, not downwards.
        self.assertGreater(xs.max(), text_box[2] + 10)
        self.assertLessEqual(ys.max(), text_box[3] + 2)

    def test_blur_softens_edges(self):
        sharp = self.render(TextLayer.create(text="HELLO", font_size=60, color="#ffffff"))
        blurred = self.render(TextLayer.create(text="HELLO", font_size=60, color="#ffffff", blur=4))

        self.assertLess(int(blurred[..., 3].max()), 255)
        self.assertGreater(int(np.count_nonzero(blurred[..., 3])), int(np.count_nonzero(sharp[..., 3])))

    def test_effects_do_not_bleed_into_later_layers(self):
        styled = TextLayer.create(
            text="A",
            x=15,
            y=20,
            font_size=20,
            opacity=0.3,
            blur=1,
            gradient=True,
            shadow=True,
            shadow_offset={"x": 3, "y": 3},
        )
        plain = TextLayer.create(text="B", x=75, y=70, font_size=40, color="#00ffff")

        surface = Surface(400, 200)
        render_text_layer(surface, styled, self.fonts)
        render_text_layer(surface, plain, self.fonts)
        alone = Surface(400, 200)
        render_text_layer(alone, plain, self.fonts)

        region = np.s_[90:200, 230:400]
        np.testing.assert_array_equal(np.asarray(surface.image)[region], np.asarray(alone.image)[region])

    def test_missing_font_falls_back(self):
        fonts = FontResolver()
        with self.assertLogs("textbehind.render.fonts", level="WARNING"):
            font = fonts.get("No Such Font Family", 32)
        self.assertIs(fonts.get("No Such Font Family", 32), font)

        out = self.render(TextLayer.create(text="Hi", font_family="No Such Font Family", font_size=40))
        self.assertTrue(np.any(out[..., 3]))


class TestSurface(unittest.TestCase):
    """Test surface allocation, decoding and encoding."""

    def test_invalid_surfaces(self):
        for size in [(0, 10), (10, -1), (10.5, 10), (20000, 10)]:
            with self.subTest(size=size):
                with self.assertRaises(SurfaceUnavailable):
                    Surface(*size)

    def test_load_image_from_bytes(self):
        buffer = io.BytesIO()
        Image.new("RGB", (7, 5), (1, 2, 3)).save(buffer, format="PNG")
        image = load_image(buffer.getvalue(), "background")

        self.assertEqual(image.mode, "RGBA")
        self.assertEqual(image.size, (7, 5))
        self.assertEqual(image.getpixel((0, 0)), (1, 2, 3, 255))

    def test_undecodable_input_names_its_role(self):
        with self.assertRaises(ImageDecodeError) as ctx:
            load_image(b"definitely not an image", "foreground")
        self.assertEqual(ctx.exception.role, "foreground")

    def test_png_is_lossless(self):
        image = Image.new("RGBA", (4, 4), (10, 20, 30, 40))
        decoded = Image.open(io.BytesIO(encode_image(image, "png")))
        self.assertEqual(decoded.getpixel((1, 1)), (10, 20, 30, 40))

    def test_jpeg_flattens_onto_black(self):
        image = Image.new("RGBA", (16, 16), (255, 255, 255, 0))
        data = encode_image(image, "jpeg", quality=95)
        decoded = Image.open(io.BytesIO(data))

        self.assertEqual(decoded.format, "JPEG")
        self.assertTrue(all(channel < 8 for channel in decoded.getpixel((8, 8))))

    def test_quality_and_format_validation(self):
        image = Image.new("RGBA", (4, 4))
        with self.assertRaises(ValueError):
            encode_image(image, "jpeg", quality=101)
        with self.assertRaises(ValueError):
            encode_image(image, "gif")
        self.assertTrue(encode_image(image, "jpg", quality=0).startswith(b"\xff\xd8"))


class TestCompositor(unittest.TestCase):
    """Test the composite engine."""

    def setUp(self):
        self.compositor = Compositor()
        self.hello = TextLayer.create(text="HELLO", x=50, y=50, font_size=48, color="#ffffff")

    def test_compose_is_idempotent(self):
        layers = [
            self.hello,
            TextLayer.create(text="again", x=30, y=70, rotation=-20, gradient=True, shadow=True, blur=1.5),
        ]
        first = self.compositor.compose(black(320, 240), layers, None, format="png")
        second = self.compositor.compose(black(320, 240), layers, None, format="png")
        self.assertEqual(first.data, second.data)

    def test_later_layers_draw_on_top(self):
        red = TextLayer.create(text="HH", font_size=80, color="#ff0000")
        blue = red.merged(color="#0000ff")

        both = np.asarray(self.compositor.render(black(300, 200), [red, blue], None))
        reversed_order = np.asarray(self.compositor.render(black(300, 200), [blue, red], None))
        blue_only = np.asarray(self.compositor.render(black(300, 200), [blue], None))

        covered = blue_only[..., 2] == 255
        self.assertTrue(covered.any())
        self.assertTrue(np.all(both[covered] == (0, 0, 255, 255)))
        self.assertTrue(np.all(reversed_order[covered] == (255, 0, 0, 255)))

    def test_centered_layer_at_any_resolution(self):
        for width, height in [(100, 100), (1024, 768), (2560, 1440)]:
            with self.subTest(size=(width, height)):
                layer = TextLayer.create(text="H", font_size=40, color="#ffffff")
                out = np.asarray(self.compositor.render(black(width, height), [layer], None))
                cx, cy = box_center(ink_box(out))

                self.assertAlmostEqual(cx, width / 2, delta=3)
                self.assertAlmostEqual(cy, height / 2, delta=40 * 0.25)

    def test_foreground_is_drawn_over_text(self):
        foreground = np.zeros((600, 800, 4), dtype=np.uint8)
        foreground[:, :400] = (0, 255, 0, 255)

        out = np.asarray(self.compositor.render(black(800, 600), [self.hello], Image.fromarray(foreground)))

        self.assertTrue(np.all(out[:, :400] == (0, 255, 0, 255)))
        self.assertTrue(np.any(out[:, 400:, 0] > 200))

    def test_planes_are_stretched_to_target(self):
        background = Image.new("RGB", (10, 20), (200, 100, 50))
        out = self.compositor.render(background, [], None, 64, 48)

        self.assertEqual(out.size, (64, 48))
        np.testing.assert_allclose(out.getpixel((63, 47)), (200, 100, 50, 255), atol=1)

    def test_hello_scenario(self):
        rendered = self.compositor.compose(black(800, 600), [self.hello], None, 800, 600, format="png")
        image = Image.open(io.BytesIO(rendered.data))

        self.assertEqual(image.format, "PNG")
        self.assertEqual(image.size, (800, 600))
        self.assertEqual((rendered.width, rendered.height, rendered.mime_type), (800, 600, "image/png"))

        box = ink_box(np.asarray(image.convert("RGBA")))
        cx, cy = box_center(box)
        self.assertAlmostEqual(cx, 400, delta=3)
        self.assertAlmostEqual(cy, 300, delta=48 * 0.25)
        # Glyphs stay within a text-sized box around the centre.
        self.assertGreater(box[0], 400 - 200)
        self.assertLess(box[2], 400 + 200)
        self.assertGreater(box[1], 300 - 48)
        self.assertLess(box[3], 300 + 48)

    def test_scaled_font_size_mode(self):
        layer = TextLayer.create(text="H", font_size=30, color="#ffffff")
        scaled = Compositor(font_size_mode="scaled", reference_height=100)

        absolute_box = ink_box(np.asarray(self.compositor.render(black(400, 200), [layer], None)))
        scaled_box = ink_box(np.asarray(scaled.render(black(400, 200), [layer], None)))

        ratio = (scaled_box[3] - scaled_box[1]) / (absolute_box[3] - absolute_box[1])
        self.assertAlmostEqual(ratio, 2.0, delta=0.3)
        with self.assertRaises(ValueError):
            Compositor(font_size_mode="relative")

    def test_decode_failures_name_the_plane(self):
        with self.assertRaises(ImageDecodeError) as ctx:
            self.compositor.compose(b"broken", [self.hello], None)
        self.assertEqual(ctx.exception.role, "background")

        with self.assertRaises(ImageDecodeError) as ctx:
            self.compositor.compose(black(10, 10), [self.hello], b"broken")
        self.assertEqual(ctx.exception.role, "foreground")

    def test_unallocatable_target(self):
        with self.assertRaises(SurfaceUnavailable):
            self.compositor.compose(black(10, 10), [], None, 0, 10)

    def test_compose_result_keeps_planes_and_snapshot(self):
        layers = [self.hello]
        result = self.compositor.compose_result(black(80, 60), layers, None, generation=3)
        layers.append(TextLayer.create())

        self.assertEqual(result.text_layers, (self.hello,))
        self.assertEqual(result.generation, 3)
        self.assertFalse(result.degraded)
        self.assertEqual(result.foreground.size, (80, 60))
        self.assertFalse(np.any(np.asarray(result.foreground)))


if __name__ == "__main__":
    unittest.main()
