import os
import uuid

from flask import (
    Blueprint,
    request,
    jsonify,
    current_app,
    send_from_directory,
    url_for,
    abort,
)
from flask_login import login_required, current_user
from werkzeug.utils import secure_filename

from marketplace.errors import PermissionDeniedError
from marketplace.middleware import role_required
from marketplace.serializers import serialize_design
from marketplace.services import design_service
from marketplace.utils import parse_int, parse_optional_id
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('design_approvals', __name__)


def _upload_dir():
    path = current_app.config['DESIGN_UPLOAD_FOLDER']
    os.makedirs(path, exist_ok=True)
    return path


def _file_size(file_storage) -> int:
    stream = file_storage.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def _check_uploads(file_storages):
    """Validate every uploaded file before anything touches the disk."""
    checked = []
    for f in file_storages:
        filename = secure_filename(f.filename or '')
        size = _file_size(f)
        mime_type = design_service.check_upload(filename, f.mimetype, size)
        checked.append((f, filename, size, mime_type))
    return checked


def _save_design_file(file_storage, filename) -> str:
    ext = (filename.rsplit('.', 1)[-1] if '.' in filename else '').lower()
    new_name = f"{uuid.uuid4().hex}.{ext}"
    file_storage.save(os.path.join(_upload_dir(), new_name))
    return new_name


def _remove_saved(names):
    folder = current_app.config['DESIGN_UPLOAD_FOLDER']
    for name in names:
        try:
            os.remove(os.path.join(folder, name))
        except OSError:
            logger.warning("Could not remove design file %s", name)


def _with_files(create):
    """Run ``create(files)`` with files from multipart or JSON.

    Multipart files are saved only after all of them validate, and are
    removed again if ``create`` fails.
    """
    uploads = request.files.getlist('files')
    if not uploads:
        data = request.get_json(silent=True) or {}
        return create(data.get('design_files') or data.get('files'))

    checked = _check_uploads(uploads)
    saved = []
    files = []
    try:
        for f, filename, size, mime_type in checked:
            name = _save_design_file(f, filename)
            saved.append(name)
            files.append({
                'url': url_for('design_approvals.get_file', name=name),
                'filename': filename,
                'size': size,
                'mime_type': mime_type,
            })
        return create(files)
    except Exception:
        _remove_saved(saved)
        raise


def _form_or_json():
    if request.files:
        return request.form
    return request.get_json(silent=True) or {}


@bp.route('', methods=['POST'])
@role_required('BUYER')
def upload_design():
    data = _form_or_json()
    if not data.get('conversation_id'):
        return jsonify({'error': 'conversation_id is required'}), 400

    conversation_id = parse_int(data.get('conversation_id'), 'conversation_id')
    context = (data.get('context') or 'product').lower()
    variant_id = parse_optional_id(data.get('variant_id'), 'variant_id')
    package_id = parse_optional_id(data.get('package_id'), 'package_id')
    quote_id = parse_optional_id(data.get('quote_id'), 'quote_id')

    design = _with_files(lambda files: design_service.upload_design(
        current_user,
        conversation_id,
        files,
        context=context,
        variant_id=variant_id,
        package_id=package_id,
        quote_id=quote_id,
    ))
    return jsonify({'ok': True, 'design': serialize_design(design)}), 201


@bp.route('', methods=['GET'])
@login_required
def list_designs():
    designs = design_service.list_designs(
        current_user,
        status=(request.args.get('status') or '').strip().lower() or None,
        conversation_id=request.args.get('conversation_id', type=int),
    ).all()
    return jsonify({'items': [serialize_design(d) for d in designs]})


@bp.route('/library', methods=['GET'])
@role_required('BUYER')
def design_library():
    designs = design_service.design_library(current_user).all()
    return jsonify({'items': [serialize_design(d) for d in designs]})


@bp.route('/files/<path:name>', methods=['GET'])
@login_required
def get_file(name):
    if secure_filename(name) != name:
        abort(404)
    return send_from_directory(
        current_app.config['DESIGN_UPLOAD_FOLDER'], name)


@bp.route('/<int:design_id>', methods=['GET'])
@login_required
def get_design(design_id):
    design = design_service.get_design(design_id)
    if not design_service.design_accessible(design, current_user):
        raise PermissionDeniedError('No permission to access this design')
    return jsonify({'design': serialize_design(design)})


@bp.route('/<int:design_id>/approve', methods=['POST'])
@role_required('SELLER')
def approve_design(design_id):
    data = request.get_json(silent=True) or {}
    design = design_service.approve_design(
        current_user, design_id, data.get('notes'))
    return jsonify({'ok': True, 'design': serialize_design(design)})


@bp.route('/<int:design_id>/reject', methods=['POST'])
@role_required('SELLER')
def reject_design(design_id):
    data = request.get_json(silent=True) or {}
    design = design_service.reject_design(
        current_user, design_id, data.get('reason') or data.get('notes'))
    return jsonify({'ok': True, 'design': serialize_design(design)})


@bp.route('/<int:design_id>/request-changes', methods=['POST'])
@role_required('SELLER')
def request_changes(design_id):
    data = request.get_json(silent=True) or {}
    design = design_service.request_changes(
        current_user, design_id, data.get('notes'))
    return jsonify({'ok': True, 'design': serialize_design(design)})


@bp.route('/<int:design_id>/resubmit', methods=['POST'])
@role_required('BUYER')
def resubmit_design(design_id):
    design = _with_files(lambda files: design_service.resubmit_design(
        current_user, design_id, files))
    return jsonify({'ok': True, 'design': serialize_design(design)}), 201


@bp.route('/<int:design_id>/copy-to-variant', methods=['POST'])
@role_required('BUYER')
def copy_to_variant(design_id):
    data = request.get_json(silent=True) or {}
    if not data.get('variant_id'):
        return jsonify({'error': 'variant_id is required'}), 400
    design = design_service.copy_design_to_variant(
        current_user, design_id, parse_int(data.get('variant_id'), 'variant_id'))
    return jsonify({'ok': True, 'design': serialize_design(design)}), 201
