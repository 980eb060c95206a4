"""Tests for the text layer model, presets and layer files."""

import dataclasses
import json
import os
import tempfile
import unittest

from textbehind.layers import DEFAULT_GRADIENT_STOPS, GradientColors, ShadowOffset, TextLayer
from textbehind.presets import PLATFORM_PRESETS, get_preset, kebab_case
from textbehind.utils.io import load_layers, save_layers


class TestTextLayerDefaults(unittest.TestCase):
    """Test layer creation."""

    def test_create_applies_default_style(self):
        layer = TextLayer.create()

        self.assertEqual(layer.text, "New Text")
        self.assertEqual(layer.position, (50.0, 50.0))
        self.assertEqual(layer.font_size, 24)
        self.assertEqual(layer.font_family, "Arial")
        self.assertEqual(layer.color, "#000000")
        self.assertEqual(layer.rotation, 0)
        self.assertEqual(layer.scale, 1)
        self.assertEqual(layer.opacity, 1)
        self.assertEqual(layer.blur, 0)
        self.assertFalse(layer.shadow)
        self.assertEqual(layer.shadow_color, "#000000")
        self.assertEqual(layer.shadow_blur, 5)
        self.assertEqual(layer.shadow_offset, ShadowOffset(0, 0))
        self.assertFalse(layer.gradient)
        self.assertEqual(layer.gradient_colors, GradientColors("#ff0000", "#00ff00", "#0000ff"))
        self.assertEqual((layer.transform.skew_x, layer.transform.skew_y), (0, 0))

    def test_create_assigns_unique_ids(self):
        ids = {TextLayer.create().id for _ in range(50)}
        self.assertEqual(len(ids), 50)

    def test_create_ignores_given_id(self):
        layer = TextLayer.create(id="fixed", text="Hi")
        self.assertNotEqual(layer.id, "fixed")
        self.assertEqual(layer.text, "Hi")

    def test_empty_text_is_valid(self):
        self.assertEqual(TextLayer.create(text="").text, "")

    def test_layer_is_immutable(self):
        layer = TextLayer.create()
        with self.assertRaises(dataclasses.FrozenInstanceError):
            layer.text = "changed"


class TestTextLayerMerge(unittest.TestCase):
    """Test full-field merge updates."""

    def setUp(self):
        self.layer = TextLayer.create(text="Hello")

    def test_merge_keeps_id_and_other_fields(self):
        updated = self.layer.merged(color="#ff00ff", x=10)

        self.assertEqual(updated.id, self.layer.id)
        self.assertEqual(updated.color, "#ff00ff")
        self.assertEqual(updated.x, 10)
        self.assertEqual(updated.text, "Hello")
        # The source layer is untouched
        self.assertEqual(self.layer.color, "#000000")

    def test_merge_nested_mapping_field_by_field(self):
        updated = self.layer.merged(shadow_offset={"x": 4})
        self.assertEqual(updated.shadow_offset, ShadowOffset(4, 0))

        updated = updated.merged(transform={"skewY": 15})
        self.assertEqual(updated.transform.skew_y, 15)
        self.assertEqual(updated.transform.skew_x, 0)

    def test_emptied_gradient_stop_falls_back_to_default(self):
        updated = self.layer.merged(gradient_colors={"start": "#123456"})
        updated = updated.merged(gradient_colors={"middle": ""})

        self.assertEqual(updated.gradient_colors.start, "#123456")
        self.assertEqual(updated.gradient_colors.middle, DEFAULT_GRADIENT_STOPS["middle"])

    def test_camel_case_aliases(self):
        updated = self.layer.merged(fontSize=64, fontFamily="Impact", shadowColor="#ffffff", shadowBlur=2)

        self.assertEqual(updated.font_size, 64)
        self.assertEqual(updated.font_family, "Impact")
        self.assertEqual(updated.shadow_color, "#ffffff")
        self.assertEqual(updated.shadow_blur, 2)

    def test_changing_id_is_rejected(self):
        with self.assertRaises(ValueError):
            self.layer.merged(id="other")

    def test_unknown_field_is_rejected(self):
        with self.assertRaises(ValueError):
            self.layer.merged(weight="bold")
        with self.assertRaises(ValueError):
            self.layer.merged(shadow_offset={"z": 1})

    def test_invalid_values_are_rejected(self):
        invalid = [
            {"x": 101},
            {"y": -1},
            {"font_size": 0},
            {"scale": -1},
            {"opacity": 1.5},
            {"blur": -2},
            {"shadow_blur": -1},
            {"color": "not-a-color"},
            {"rotation": float("nan")},
        ]
        for fields in invalid:
            with self.subTest(fields=fields):
                with self.assertRaises(ValueError):
                    self.layer.merged(**fields)


class TestTextLayerSerialization(unittest.TestCase):
    """Test the JSON form of layers."""

    def test_from_dict_accepts_editor_keys(self):
        layer = TextLayer.from_dict(
            {
                "id": "layer-1",
                "text": "HELLO",
                "position": [25, 75],
                "size": 48,
                "font": "Impact",
                "shadowOffset": {"x": 2, "y": 3},
                "gradientColors": {"start": "red", "middle": "lime", "end": "blue"},
                "transform": {"skewX": 10, "skewY": 0},
                "active": True,
            }
        )

        self.assertEqual(layer.id, "layer-1")
        self.assertEqual(layer.position, (25, 75))
        self.assertEqual(layer.font_size, 48)
        self.assertEqual(layer.font_family, "Impact")
        self.assertEqual(layer.shadow_offset, ShadowOffset(2, 3))
        self.assertEqual(layer.gradient_colors.middle, "lime")
        self.assertEqual(layer.transform.skew_x, 10)

    def test_to_dict_round_trip(self):
        layer = TextLayer.create(text="Round", shadow=True, shadow_offset={"x": 5, "y": -5})
        self.assertEqual(TextLayer.from_dict(layer.to_dict()), layer)

    def test_layer_files(self):
        layers = [TextLayer.create(text="one"), TextLayer.create(text="two", color="#ffffff")]
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = os.path.join(tmp_dir, "layers.json")
            save_layers(layers, path)
            self.assertEqual(load_layers(path), layers)

            with open(path, "w") as f:
                json.dump([{"text": "bare list"}], f)
            self.assertEqual(load_layers(path)[0].text, "bare list")

            with open(path, "w") as f:
                json.dump({"layers": "nope"}, f)
            with self.assertRaises(ValueError):
                load_layers(path)


class TestPlatformPresets(unittest.TestCase):
    """Test the preset lookup table."""

    def test_table(self):
        sizes = {p.name: p.size for p in PLATFORM_PRESETS}
        self.assertEqual(
            sizes,
            {
                "Instagram Square": (1080, 1080),
                "Instagram Portrait": (1080, 1350),
                "Instagram Landscape": (1080, 608),
                "YouTube Thumbnail": (1280, 720),
                "YouTube Banner": (2560, 1440),
            },
        )

    def test_lookup_by_id_or_name(self):
        self.assertIs(get_preset("youtube-thumbnail"), get_preset("YouTube Thumbnail"))
        with self.assertRaises(KeyError):
            get_preset("tiktok")

    def test_every_preset_resolves_by_its_slug(self):
        for preset in PLATFORM_PRESETS:
            with self.subTest(preset=preset.id):
                self.assertIs(get_preset(preset.slug), preset)
                self.assertIs(get_preset(preset.name.upper()), preset)

    def test_slug(self):
        self.assertEqual(kebab_case("Instagram  Square"), "instagram-square")
        self.assertEqual(get_preset("youtube-banner").slug, "youtube-banner")


if __name__ == "__main__":
    unittest.main()
