"""
Unit tests for image ingestion: validation, quality rating and
last-write-wins ordering of overlapping uploads.
"""

import asyncio

import pytest
from PIL import Image

from customizer.errors import DecodeError, FileTooLargeError, InvalidImageFormatError, StaleResultError
from customizer.ingest import (
    MB, ImageFile, ImageIngestor, QualityRating, UploadedImage,
    decode_dimensions, estimate_dpi, format_file_size, rate_quality, read_dimensions,
    validate_image_file
)


class TestValidation:

    def test_accepts_images(self, sample_photo):
        validate_image_file(sample_photo, 10 * MB)

    def test_rejects_non_image_mime(self):
        pdf = ImageFile('menu.pdf', 'application/pdf', b'%PDF-1.4')

        with pytest.raises(InvalidImageFormatError) as exc_info:
            validate_image_file(pdf, 10 * MB)
        assert str(exc_info.value) == "Please upload an image file"

    def test_rejects_oversized_photo(self):
        big = ImageFile('big.jpg', 'image/jpeg', b'\0' * (10 * MB + 1))

        with pytest.raises(FileTooLargeError) as exc_info:
            validate_image_file(big, 10 * MB)
        assert str(exc_info.value) == "Image size should be less than 10MB"

    def test_logo_limit(self):
        logo = ImageFile('logo.png', 'image/png', b'\0' * (6 * MB))

        with pytest.raises(FileTooLargeError) as exc_info:
            validate_image_file(logo, 5 * MB)
        assert "5MB" in str(exc_info.value)

    def test_exact_limit_allowed(self):
        validate_image_file(ImageFile('edge.jpg', 'image/jpeg', b'\0' * (5 * MB)), 5 * MB)


class TestQuality:

    def test_estimate_dpi_uses_limiting_axis(self):
        assert estimate_dpi(3000, 2400, (10.0, 8.0)) == 300
        assert estimate_dpi(3000, 1200, (10.0, 8.0)) == 150

    @pytest.mark.parametrize('dpi, rating', [
        (300, QualityRating.EXCELLENT),
        (299.9, QualityRating.GOOD),
        (150, QualityRating.GOOD),
        (72, QualityRating.FAIR),
        (71, QualityRating.LOW),
    ])
    def test_rate_quality_thresholds(self, dpi, rating):
        assert rate_quality(dpi) == rating

    def test_uploaded_image_rating_for_size(self, sample_photo):
        image = UploadedImage(sample_photo, 2400, 3000)

        assert image.quality_for((8.0, 10.0)) == QualityRating.EXCELLENT
        assert image.quality_for((16.0, 20.0)) == QualityRating.GOOD
        assert image.quality_for(None) is None

    def test_format_file_size(self):
        assert format_file_size(512) == "512 B"
        assert format_file_size(2048) == "2.0 KB"
        assert format_file_size(3 * MB) == "3.0 MB"


class TestDecode:

    def test_decode_dimensions(self, make_image_file):
        assert asyncio.run(decode_dimensions(make_image_file('wide.png', (640, 480)))) == (640, 480)

    def test_corrupt_data(self, corrupt_file):
        with pytest.raises(DecodeError) as exc_info:
            asyncio.run(decode_dimensions(corrupt_file))

        assert exc_info.value.message == "Failed to load image"
        assert 'cannot identify image file' in exc_info.value.details['error']

    def test_oversized_pixel_count(self, monkeypatch, make_image_file):
        """Pillow's decompression bomb guard is reported as a decode failure."""
        monkeypatch.setattr(Image, 'MAX_IMAGE_PIXELS', 1000)

        with pytest.raises(DecodeError):
            read_dimensions(make_image_file('huge.png', (100, 100)).data)


class TestImageIngestor:

    def test_ingest(self, make_image_file):
        ingestor = ImageIngestor()
        image = asyncio.run(ingestor.ingest(make_image_file('photo.jpg', (1200, 1500)), (8.0, 10.0)))

        assert (image.pixel_width, image.pixel_height) == (1200, 1500)
        assert image.quality_rating == QualityRating.GOOD
        assert image.preview_data_uri.startswith('data:image/jpeg;base64,')
        assert image.to_dict()['width'] == 1200

    def test_source_file_passed_through_untouched(self, sample_photo):
        image = asyncio.run(ImageIngestor().ingest(sample_photo))
        assert image.source_file is sample_photo

    def test_validation_failure_does_not_take_a_token(self):
        ingestor = ImageIngestor()
        with pytest.raises(InvalidImageFormatError):
            asyncio.run(ingestor.ingest(ImageFile('a.txt', 'text/plain', b'hi')))
        assert ingestor.latest_token == 0

    def test_later_request_wins_when_earlier_resolves_last(self, make_image_file, controlled_decoder):
        async def scenario():
            ingestor = ImageIngestor(decoder=controlled_decoder)
            first = asyncio.create_task(ingestor.ingest(make_image_file('a.jpg', (100, 100))))
            second = asyncio.create_task(ingestor.ingest(make_image_file('b.jpg', (200, 200))))
            await asyncio.sleep(0)

            controlled_decoder.release('b.jpg')
            winner = await second
            controlled_decoder.release('a.jpg')
            with pytest.raises(StaleResultError):
                await first
            return winner

        winner = asyncio.run(scenario())
        assert winner.source_file.filename == 'b.jpg'

    def test_superseded_decode_failure_is_stale(self, make_image_file, corrupt_file, controlled_decoder):
        async def scenario():
            ingestor = ImageIngestor(decoder=controlled_decoder)
            first = asyncio.create_task(ingestor.ingest(corrupt_file))
            second = asyncio.create_task(ingestor.ingest(make_image_file('b.jpg')))
            await asyncio.sleep(0)

            controlled_decoder.release('b.jpg')
            await second
            controlled_decoder.release(corrupt_file.filename)
            with pytest.raises(StaleResultError):
                await first

        asyncio.run(scenario())

    def test_latest_decode_failure_is_reported(self, corrupt_file, controlled_decoder):
        async def scenario():
            ingestor = ImageIngestor(decoder=controlled_decoder)
            pending = asyncio.create_task(ingestor.ingest(corrupt_file))
            await asyncio.sleep(0)
            controlled_decoder.release(corrupt_file.filename)
            await pending

        with pytest.raises(DecodeError):
            asyncio.run(scenario())

    def test_later_request_wins_when_earlier_resolves_first(self, make_image_file, controlled_decoder):
        async def scenario():
            ingestor = ImageIngestor(decoder=controlled_decoder)
            first = asyncio.create_task(ingestor.ingest(make_image_file('a.jpg')))
            second = asyncio.create_task(ingestor.ingest(make_image_file('b.jpg')))
            await asyncio.sleep(0)

            controlled_decoder.release('a.jpg')
            with pytest.raises(StaleResultError):
                await first
            controlled_decoder.release('b.jpg')
            return await second

        assert asyncio.run(scenario()).source_file.filename == 'b.jpg'

    def test_invalidate_drops_in_flight(self, sample_photo, controlled_decoder):
        async def scenario():
            ingestor = ImageIngestor(decoder=controlled_decoder)
            pending = asyncio.create_task(ingestor.ingest(sample_photo))
            await asyncio.sleep(0)
            ingestor.invalidate()
            controlled_decoder.release(sample_photo.filename)
            await pending

        with pytest.raises(StaleResultError):
            asyncio.run(scenario())
