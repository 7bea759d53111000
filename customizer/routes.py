"""
Flask routes for the Print Customizer
JSON endpoints driving one customization session per page
"""

import asyncio
import io

from flask import Blueprint, current_app, jsonify, request, send_file
from loguru import logger

from .errors import CustomizerError, ProcessingError, SessionNotFoundError, ValidationError
from .ingest import ImageFile
from .options import resolve_product
from .session import CustomizationSession, SessionRegistry


bp = Blueprint('customizer', __name__)


def get_registry() -> SessionRegistry:
    return current_app.extensions['customizer_sessions']


def get_session(session_id: str) -> CustomizationSession:
    session = get_registry().get(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return session


def session_response(session: CustomizationSession, status: int = 200, **extra):
    body = session.snapshot()
    body['notifications'] = [
        {'level': n.level, 'message': n.message} for n in session.drain_notifications()
    ]
    body.update(extra)
    return jsonify(body), status


def read_upload(field: str = 'file') -> ImageFile:
    """Wrap the multipart upload as an ImageFile."""
    if field not in request.files:
        raise ValidationError("No file uploaded")

    upload = request.files[field]
    if upload.filename == '':
        raise ValidationError("No file selected")

    return ImageFile(upload.filename, upload.mimetype or '', upload.read())


@bp.errorhandler(CustomizerError)
def handle_customizer_error(error):
    logger.warning(f"Request rejected: {error.message}")
    if isinstance(error, SessionNotFoundError):
        status = 404
    elif isinstance(error, ValidationError):
        status = 400
    elif isinstance(error, ProcessingError):
        status = 422
    else:
        status = 500
    return jsonify(error.to_dict()), status


@bp.route('/sessions', methods=['POST'])
def create_session():
    """Open a customization page for a product"""
    data = request.get_json(silent=True) or {}
    product = resolve_product(data.get('product_id'), data.get('product'))

    session = get_registry().create(
        product,
        collaborator=current_app.extensions['order_collaborator'],
        surface_factory=current_app.extensions.get('surface_factory'),
    )
    return session_response(session, 201)


@bp.route('/sessions/<session_id>', methods=['GET'])
def show_session(session_id):
    return session_response(get_session(session_id))


@bp.route('/sessions/<session_id>', methods=['DELETE'])
def close_session(session_id):
    get_session(session_id)
    get_registry().remove(session_id)
    return '', 204


@bp.route('/sessions/<session_id>/selections', methods=['POST'])
def update_selections(session_id):
    """Apply option choices, quantity and personalisation text"""
    session = get_session(session_id)
    data = request.get_json(silent=True) or {}

    ok = True
    for dimension_id, choice_id in (data.get('selections') or {}).items():
        ok = session.select(dimension_id, choice_id) and ok
    if 'quantity' in data:
        ok = session.set_quantity(data['quantity']) and ok
    if 'custom_text' in data:
        ok = session.set_custom_text(data['custom_text']) and ok
    for key, value in (data.get('details') or {}).items():
        ok = session.set_detail(key, value) and ok

    return session_response(session, 200 if ok else 400)


@bp.route('/sessions/<session_id>/template', methods=['POST'])
def update_template(session_id):
    session = get_session(session_id)
    data = request.get_json(silent=True) or {}
    ok = session.select_template(data.get('template', ''))
    return session_response(session, 200 if ok else 400)


STEP_ACTIONS = {
    'continue-to-upload': CustomizationSession.continue_to_upload,
    'continue-to-preview': CustomizationSession.continue_to_preview,
    'back-to-upload': CustomizationSession.back_to_upload,
    'back-to-design': CustomizationSession.back_to_design,
}


@bp.route('/sessions/<session_id>/step/<action>', methods=['POST'])
def change_step(session_id, action):
    session = get_session(session_id)
    transition = STEP_ACTIONS.get(action)
    if transition is None:
        raise ValidationError(f"Unknown step action: {action}",
                              suggestions=[f"Use one of: {', '.join(STEP_ACTIONS)}"])
    ok = transition(session)
    return session_response(session, 200 if ok else 400)


@bp.route('/sessions/<session_id>/image', methods=['POST'])
def upload_image(session_id):
    session = get_session(session_id)
    image = asyncio.run(session.upload(read_upload()))
    return session_response(session, 200 if image else 400)


@bp.route('/sessions/<session_id>/image', methods=['DELETE'])
def remove_image(session_id):
    session = get_session(session_id)
    session.clear_image()
    return session_response(session)


@bp.route('/sessions/<session_id>/collage/<int:slot>', methods=['POST'])
def upload_collage_photo(session_id, slot):
    session = get_session(session_id)
    image = asyncio.run(session.upload_to_slot(slot, read_upload()))
    return session_response(session, 200 if image else 400)


@bp.route('/sessions/<session_id>/collage/<int:slot>', methods=['DELETE'])
def remove_collage_photo(session_id, slot):
    session = get_session(session_id)
    ok = session.clear_slot(slot)
    return session_response(session, 200 if ok else 400)


CANVAS_OPERATIONS = {
    'zoom-in': CustomizationSession.zoom_in,
    'zoom-out': CustomizationSession.zoom_out,
    'rotate': CustomizationSession.rotate,
}


@bp.route('/sessions/<session_id>/canvas/<op>', methods=['POST'])
def adjust_canvas(session_id, op):
    session = get_session(session_id)
    operation = CANVAS_OPERATIONS.get(op)
    if operation is None:
        raise ValidationError(f"Unknown canvas operation: {op}",
                              suggestions=[f"Use one of: {', '.join(CANVAS_OPERATIONS)}"])
    operation(session)
    return session_response(session)


@bp.route('/sessions/<session_id>/preview.png', methods=['GET'])
def preview(session_id):
    session = get_session(session_id)
    image = session.preview_image()

    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    buffer.seek(0)
    return send_file(buffer, mimetype='image/png')


@bp.route('/sessions/<session_id>/submit', methods=['POST'])
def submit(session_id):
    """Add to cart or buy now"""
    session = get_session(session_id)
    data = request.get_json(silent=True) or {}
    result = asyncio.run(session.submit(data.get('mode', 'cart')))

    order = result.intent.to_payload() if result.intent else None
    return session_response(session, 200 if result.success else 400,
                            success=result.success, message=result.message, order=order)
