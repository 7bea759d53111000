"""
Unit tests for variant-specific gallery image lookup.
"""

from customizer.variants import generate_variant_key, get_variant_images, parse_variant_images


VARIANTS = {
    'default': ['/default.jpg'],
    'size:16x12': ['/16x12.jpg'],
    'frame:Black': ['/black.jpg'],
    'frame:black,size:16x12': ['/16x12-black.jpg'],
}
BASE = ['/base-1.jpg', '/base-2.jpg']


class TestParseVariantImages:

    def test_json_string(self):
        assert parse_variant_images('{"default": ["/a.jpg"]}') == {'default': ['/a.jpg']}

    def test_malformed_json_is_empty(self):
        assert parse_variant_images('{not json') == {}

    def test_non_mapping_is_empty(self):
        assert parse_variant_images('["/a.jpg"]') == {}
        assert parse_variant_images(None) == {}


class TestVariantKey:

    def test_sorted_combination(self):
        assert generate_variant_key({'size': '16x12', 'frame': 'black'}) == 'frame:black,size:16x12'

    def test_empty_selection_is_default(self):
        assert generate_variant_key({'size': None}) == 'default'


class TestGetVariantImages:

    def test_full_combination_first(self):
        assert get_variant_images(VARIANTS, BASE, {'size': '16x12', 'frame': 'black'}) == ['/16x12-black.jpg']

    def test_single_key_fallback(self):
        assert get_variant_images(VARIANTS, BASE, {'size': '16x12', 'frame': 'white'}) == ['/16x12.jpg']

    def test_case_insensitive(self):
        assert get_variant_images(VARIANTS, BASE, {'size': '20x16', 'frame': 'BLACK'}) == ['/black.jpg']

    def test_default_key(self):
        assert get_variant_images(VARIANTS, BASE, {'size': '20x16'}) == ['/default.jpg']

    def test_base_images_without_variants(self):
        assert get_variant_images({}, BASE, {'size': '16x12'}) == BASE
        assert get_variant_images({'size:8x8': ['/x.jpg']}, BASE, {'size': '16x12'}) == BASE
