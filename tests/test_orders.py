"""
Unit tests for the order intent emitter.
"""

import asyncio

import pytest

from customizer.errors import MissingCustomTextError, MissingImageError, SubmissionError
from customizer.ingest import ImageFile, UploadedImage
from customizer.options import FRAME, SIZE, THICKNESS, build_product_options
from customizer.orders import (
    OrderIntentEmitter, OrderMode, build_order_intent, frame_label, storage_path_for
)
from customizer.steps import (
    continue_to_upload, initial_state, select_choice, set_collage_slots, set_custom_text,
    set_detail, set_quantity, set_uploaded_image
)


@pytest.fixture
def ready_state(acrylic_product, sample_photo):
    state = initial_state(acrylic_product)
    state = select_choice(state, SIZE, 'Medium (12×16)')
    state = select_choice(state, FRAME, 'black-frame')
    state = select_choice(state, THICKNESS, '5mm')
    state = set_quantity(state, 2)
    return set_uploaded_image(continue_to_upload(state), UploadedImage(sample_photo, 800, 800))


class TestBuildOrderIntent:

    def test_intent_fields(self, ready_state, sample_photo):
        intent = build_order_intent(ready_state, OrderMode.CART)

        assert intent.product_id == '1'
        assert intent.unit_price == 2098
        assert intent.total == 4196
        assert intent.selected_size == 'Medium (12×16)'
        assert intent.selected_frame == 'Black Frame | Thickness: 5mm'
        assert intent.selections == {'Size': 'Medium (12×16)', 'Frame': 'Black Frame', 'Thickness': '5mm'}
        assert intent.custom_image == sample_photo

    def test_non_acrylic_frame_label(self, canvas_product):
        state = select_choice(initial_state(canvas_product), FRAME, 'white')
        assert frame_label(state) == 'White Frame'

    def test_payload_uses_storefront_names(self, ready_state):
        payload = build_order_intent(ready_state, OrderMode.BUY_NOW).to_payload()

        assert payload['mode'] == 'buyNow'
        assert payload['productId'] == '1'
        assert payload['selectedFrame'] == 'Black Frame | Thickness: 5mm'
        assert payload['customImage'] == 'photo.jpg'

    def test_missing_photo(self, acrylic_product):
        with pytest.raises(MissingImageError) as exc_info:
            build_order_intent(initial_state(acrylic_product), OrderMode.CART)
        assert str(exc_info.value) == "Please upload a photo first"

    def test_collage_uses_composite(self, collage_product, sample_photo):
        state = set_collage_slots(initial_state(collage_product),
                                  (UploadedImage(sample_photo, 800, 800), None, None, None))
        composite = ImageFile('collage.jpg', 'image/jpeg', b'jpeg-bytes')

        intent = build_order_intent(state, OrderMode.CART, composite)

        assert intent.custom_image == composite

    def test_empty_collage_rejected(self, collage_product):
        with pytest.raises(MissingImageError) as exc_info:
            build_order_intent(initial_state(collage_product), OrderMode.CART)
        assert "collage" in str(exc_info.value)

    def test_required_text(self, sample_photo):
        baby = build_product_options({'id': 'baby-frame', 'name': 'Baby Name Frame', 'category': 'Baby Frames',
                                      'base_price': 899, 'requires_text': True})
        state = set_uploaded_image(initial_state(baby), UploadedImage(sample_photo, 800, 800))

        with pytest.raises(MissingCustomTextError):
            build_order_intent(state, OrderMode.CART)

        state = set_detail(set_detail(state, 'Name', 'Aarav'), 'DOB', '01/02/2024')
        assert build_order_intent(state, OrderMode.CART).custom_text == "Name: Aarav | DOB: 01/02/2024"

    def test_storage_path(self, sample_photo):
        path = storage_path_for(sample_photo, 'Wall Photo Frames')

        assert path.startswith('customize-images/wall-photo-frames/')
        assert path.endswith('.jpg')


class TestOrderIntentEmitter:

    def test_add_to_cart(self, ready_state, collaborator):
        result = asyncio.run(OrderIntentEmitter(collaborator).submit(ready_state, OrderMode.CART))

        assert result.success
        assert result.message == "Added to cart!"
        assert len(collaborator.cart) == 1
        assert collaborator.cart[0]['customImage'].startswith('customize-images/acrylic/')
        assert collaborator.cart[0]['customImage'] in collaborator.stored_files

    def test_buy_now(self, ready_state, collaborator):
        result = asyncio.run(OrderIntentEmitter(collaborator).submit(ready_state, OrderMode.BUY_NOW))

        assert result.message == "Proceeding to checkout"
        assert collaborator.buy_now_item['quantity'] == 2
        assert collaborator.cart == []

    def test_collaborator_failure_surfaces_message(self, ready_state, failing_collaborator):
        emitter = OrderIntentEmitter(failing_collaborator)

        with pytest.raises(SubmissionError) as exc_info:
            asyncio.run(emitter.submit(ready_state, OrderMode.CART))

        assert str(exc_info.value) == "Cart service unavailable"
        assert failing_collaborator.calls == 1

    def test_precondition_failure_never_reaches_collaborator(self, acrylic_product, failing_collaborator):
        with pytest.raises(MissingImageError):
            asyncio.run(OrderIntentEmitter(failing_collaborator).submit(
                initial_state(acrylic_product), OrderMode.CART))
        assert failing_collaborator.calls == 0

    def test_state_untouched_after_failure(self, ready_state, failing_collaborator):
        before = ready_state
        with pytest.raises(SubmissionError):
            asyncio.run(OrderIntentEmitter(failing_collaborator).submit(ready_state, OrderMode.CART))
        assert ready_state == before
        assert set_custom_text(ready_state, '').uploaded_image is not None
