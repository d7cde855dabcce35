#!/usr/bin/env python3
"""
Matrix Image Converter API Server
Single-image conversion, background removal, batch archives and optimization
over HTTP.
"""

import base64
import json
import logging
from io import BytesIO
from typing import Optional, Tuple

from flask import Flask, Response, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.datastructures import FileStorage
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

from . import config
from .models.batch import BatchItem, BatchJob, BatchStatus
from .models.effect_settings import EffectSettings, SegmentationParams
from .models.watermark_settings import WatermarkSettings
from .models.errors import (
    BatchFatal, DecodeFailure, EncodeFailure, ImageProcessingError, InvalidInput, StageFailure,
)
from .pipeline.batch_processor import run_batch
from .pipeline.effect_pipeline import default_pipeline
from .pipeline.image_optimizer import OptimizeOptions, optimize_image
from .services.preset_service import PresetService

app = Flask(__name__)
CORS(app)  # Enable CORS for frontend communication

app.config['MAX_CONTENT_LENGTH'] = config.MAX_UPLOAD_SIZE_MB * 1024 * 1024

pipeline = default_pipeline()
image_service = pipeline.image_service
preset_service = PresetService(geometry_service=pipeline.geometry)

logger = logging.getLogger(__name__)

_STATUS_CODES = (
    (InvalidInput, 400),
    (DecodeFailure, 422),
    (EncodeFailure, 422),
    (StageFailure, 422),
    (BatchFatal, 500),
)


def error_response(err: ImageProcessingError) -> Tuple[Response, int]:
    code = next((c for kind, c in _STATUS_CODES if isinstance(err, kind)), 500)
    return jsonify({'success': False, 'error': type(err).__name__, 'message': str(err)}), code


def read_upload(field: str = 'image') -> Tuple[FileStorage, bytes]:
    if field not in request.files:
        raise InvalidInput(f"No '{field}' file provided")
    upload = request.files[field]
    if upload.filename == '':
        raise InvalidInput("No file selected")
    return upload, upload.read()


def settings_from_form() -> EffectSettings:
    """``settings`` form field (JSON), optionally overlaid with a named ``preset``."""
    raw = request.form.get('settings')
    try:
        data = json.loads(raw) if raw else {}
    except json.JSONDecodeError as err:
        raise InvalidInput(f"settings is not valid JSON: {err}") from err
    if not isinstance(data, dict):
        raise InvalidInput("settings must be a JSON object")
    settings = EffectSettings.from_dict(data)
    preset = request.form.get('preset')
    if preset:
        settings = preset_service.apply_preset(settings, preset)
    return settings


def output_options(default_format: Optional[str] = None) -> Tuple[str, int]:
    fmt = request.form.get('format', default_format or config.DEFAULT_OUTPUT_FORMAT)
    try:
        quality = int(request.form.get('quality', config.DEFAULT_QUALITY))
    except ValueError as err:
        raise InvalidInput("quality must be an integer") from err
    return fmt, quality


def download(data: bytes, mime_type: str, filename: str) -> Response:
    return send_file(BytesIO(data), mimetype=mime_type, as_attachment=True,
                     download_name=filename)


@app.route('/api/process', methods=['POST'])
def process_image():
    """Apply the full effect pipeline to one upload and return the encoded result."""
    try:
        upload, data = read_upload()
        settings = settings_from_form()
        fmt, quality = output_options()
        filename = secure_filename(upload.filename) or 'image'

        logger.info(f"Processing {filename} → {fmt} ({len(settings.active_effects())} active effects)")
        encoded = pipeline.convert(data, filename, settings, fmt, quality, upload.mimetype)
        return download(encoded.data, encoded.mime_type, encoded.filename)

    except ImageProcessingError as e:
        logger.warning(f"Process error: {e}")
        return error_response(e)


@app.route('/api/remove-background', methods=['POST'])
def remove_background():
    """Segment a light background away; always answers with a PNG."""
    try:
        upload, data = read_upload()
        params = SegmentationParams.from_dict(request.form.to_dict())
        result = pipeline.remove_background(data, params, upload.mimetype)
        encoded = image_service.encode(result.buffer, 'png',
                                       filename=image_service.nobg_filename(upload.filename))
        return download(encoded.data, encoded.mime_type, encoded.filename)

    except ImageProcessingError as e:
        logger.warning(f"Background removal error: {e}")
        return error_response(e)


@app.route('/api/batch', methods=['POST'])
def process_batch():
    """Convert every ``image_<n>`` upload with the same settings into one zip."""
    try:
        keys = [key for key in request.files if key.startswith('image_')]
        keys.sort(key=lambda k: (len(k), k))
        uploads = [request.files[key] for key in keys]
        if not uploads:
            raise InvalidInput("No batch images provided")
        settings = settings_from_form()
        fmt, quality = output_options()

        items = [
            BatchItem(id=str(i), filename=secure_filename(f.filename) or f"image-{i + 1}",
                      data=f.read(), mime_type=f.mimetype)
            for i, f in enumerate(uploads)
        ]
        result = run_batch(BatchJob(items=items, settings=settings,
                                    output_format=fmt, quality=quality))

        failures = [{'id': r.id, 'filename': r.filename, 'reason': r.outcome.reason}
                    for r in result.failures]
        if result.status is BatchStatus.FATAL:
            return jsonify({'success': False, 'status': result.status.value,
                            'message': result.message, 'failures': failures}), 500

        response = download(result.archive, 'application/zip', result.archive_name)
        response.headers['X-Batch-Status'] = result.status.value
        response.headers['X-Batch-Failures'] = json.dumps(failures)
        return response

    except ImageProcessingError as e:
        logger.warning(f"Batch error: {e}")
        return error_response(e)


@app.route('/api/optimize', methods=['POST'])
def optimize():
    """Shrink + recompress; returns the image as base64 along with its metadata."""
    try:
        upload, data = read_upload()
        form = request.form
        try:
            options = OptimizeOptions(
                max_width=int(form.get('max_width', 1920)),
                max_height=int(form.get('max_height', 1080)),
                maintain_aspect_ratio=form.get('maintain_aspect_ratio', 'true').lower() != 'false',
                quality=int(form.get('quality', 80)),
                title=form.get('title', ''),
                description=form.get('description', ''),
                copyright=form.get('copyright', ''),
                author=form.get('author', ''),
            )
        except ValueError as err:
            raise InvalidInput(f"Bad optimization option: {err}") from err
        effects = settings_from_form() if form.get('settings') else None

        result = optimize_image(data, upload.filename, effects=effects, options=options,
                                image_service=image_service)
        encoded = result.image
        return jsonify({
            'success': True,
            'filename': encoded.filename,
            'mime_type': encoded.mime_type,
            'image': f"data:{encoded.mime_type};base64,{base64.b64encode(encoded.data).decode('utf-8')}",
            'metadata': result.metadata,
            'stats': result.stats.as_dict(),
        })

    except ImageProcessingError as e:
        logger.warning(f"Optimize error: {e}")
        return error_response(e)


@app.route('/api/smart-filter', methods=['POST'])
def smart_filter():
    """Apply one named smart-filter look."""
    try:
        upload, data = read_upload()
        name = request.form.get('name', '')
        fmt, quality = output_options()
        buffer = image_service.decode(data, upload.mimetype)
        out = preset_service.apply_smart_filter(buffer, name)
        encoded = image_service.encode(out, fmt, quality,
                                       filename=image_service.converted_filename(upload.filename, fmt))
        return download(encoded.data, encoded.mime_type, encoded.filename)

    except ImageProcessingError as e:
        logger.warning(f"Smart filter error: {e}")
        return error_response(e)


def form_number(name: str, default: Optional[float] = None) -> Optional[float]:
    raw = request.form.get(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError as err:
        raise InvalidInput(f"{name} must be a number, got {raw!r}") from err


@app.route('/api/watermark', methods=['POST'])
def watermark():
    """Stamp text, or the ``stamp`` upload, onto the image; answers with a PNG."""
    try:
        upload, data = read_upload()
        fields = {k: v for k, v in request.form.items() if k not in ('format', 'quality')}
        settings = WatermarkSettings.from_dict(fields)
        stamp = read_upload('stamp')[1] if settings.kind == 'image' else None
        result = pipeline.watermark(data, settings, stamp, upload.mimetype)
        encoded = image_service.encode(result.buffer, 'png',
                                       filename=image_service.tagged_filename(upload.filename, 'watermarked'))
        return download(encoded.data, encoded.mime_type, encoded.filename)

    except ImageProcessingError as e:
        logger.warning(f"Watermark error: {e}")
        return error_response(e)


@app.route('/api/crop', methods=['POST'])
def crop():
    """Cut ``x``/``y``/``width``/``height`` (``unit`` px or %) out of the image."""
    try:
        upload, data = read_upload()
        fmt, quality = output_options()
        if form_number('width') is None or form_number('height') is None:
            raise InvalidInput("width and height are required")
        result = pipeline.crop(data, form_number('x', 0), form_number('y', 0),
                               form_number('width'), form_number('height'),
                               request.form.get('unit', 'px'), form_number('aspect'), upload.mimetype)
        encoded = image_service.encode(result.buffer, fmt, quality,
                                       filename=image_service.tagged_filename(upload.filename, 'cropped',
                                                                              image_service.normalise_format(fmt)))
        return download(encoded.data, encoded.mime_type, encoded.filename)

    except ImageProcessingError as e:
        logger.warning(f"Crop error: {e}")
        return error_response(e)


@app.route('/api/social-resize', methods=['POST'])
def social_resize():
    """Resize to a platform's named size (``platform``, ``size``, ``fit``); answers with a PNG."""
    try:
        upload, data = read_upload()
        platform = request.form.get('platform', '')
        size = request.form.get('size', '')
        buffer = image_service.decode(data, upload.mimetype)
        out = preset_service.resize_for_platform(buffer, platform, size,
                                                 fit=request.form.get('fit', 'stretch'))
        preset = preset_service.get_platform_preset(platform, size)
        encoded = image_service.encode(out, 'png', filename=image_service.tagged_filename(
            upload.filename, f"{preset.platform} {preset.name}"))
        return download(encoded.data, encoded.mime_type, encoded.filename)

    except ImageProcessingError as e:
        logger.warning(f"Social resize error: {e}")
        return error_response(e)


@app.route('/api/presets', methods=['GET'])
def list_presets():
    """Effect presets and smart-filter looks."""
    return jsonify({
        'presets': {name: preset_service.get_preset(name).active_effects()
                    for name in preset_service.list_presets()},
        'smart_filters': [{'name': f.name, 'description': f.description}
                          for f in preset_service.list_smart_filters()],
        'platforms': {platform: [{'name': p.name, 'width': p.width, 'height': p.height}
                                 for p in preset_service.get_platform_presets(platform)]
                      for platform in preset_service.list_platforms()},
    })


@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return jsonify({
        'status': 'healthy',
        'message': 'Matrix Image Converter API is running',
        'max_batch_items': config.MAX_BATCH_ITEMS,
    })


@app.errorhandler(RequestEntityTooLarge)
def too_large(e):
    """Handle file too large error."""
    return jsonify({'error': f'File too large. Maximum size is {config.MAX_UPLOAD_SIZE_MB}MB.'}), 413


@app.errorhandler(500)
def internal_error(e):
    """Handle internal server error."""
    logger.error(f"Internal server error: {e}")
    return jsonify({'error': 'Internal server error'}), 500


def main():
    # --- Centralized Logging Configuration ---
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format=config.LOG_FORMAT,
        datefmt=config.LOG_DATEFMT,
    )
    logger.info("Starting Matrix Image Converter API Server...")
    logger.info(f"Max upload size: {config.MAX_UPLOAD_SIZE_MB}MB, max batch items: {config.MAX_BATCH_ITEMS}")
    app.run(host='0.0.0.0', port=config.API_SERVER_PORT, debug=False, threaded=True)


if __name__ == '__main__':
    main()
