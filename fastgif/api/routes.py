from __future__ import annotations

import logging

from flask import Blueprint, Response, current_app, request

from fastgif.config import Settings
from fastgif.pipeline import PipelineError, PipelineOutcome, build_request, convert
from fastgif.services.source import InvalidResourcePath, build_source_url, staged_source

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__)

GIF_HEADERS = {
    "X-Powered-By": "fastgif",
    "Cache-Control": "public, max-age=31536000",
}


def _settings() -> Settings:
    return current_app.config.get("FASTGIF_SETTINGS") or Settings()


def _text(body: str, status: int) -> Response:
    return Response(body, status=status, mimetype="text/plain")


def _error_response(error: PipelineError) -> Response:
    return _text(f"Failed to process video: {error.describe()}", 500)


async def _run_conversion(source: str, label: str, settings: Settings) -> PipelineOutcome:
    pipeline_request = build_request(source, settings, label=label)
    return await convert(pipeline_request, settings=settings)


@api.route("/", methods=["GET"])
def healthcheck() -> str:
    return "fastgif running"


@api.route("/tweet_video/<path>", methods=["GET"])
async def tweet_video(path: str) -> Response:
    """
    Convert one video into a GIF.

    200 with the GIF on success, 400 for an unusable path, 500 with the
    failing stage and captured diagnostics otherwise.
    """
    logger.info("Processing video: %s", path)
    settings = _settings()

    try:
        source_url = build_source_url(path, settings)
    except InvalidResourcePath as e:
        logger.warning("Rejected resource path %r: %s", path, e)
        return _text(str(e), 400)

    logger.info("Processing video from %s", source_url)

    try:
        if settings.prefetch:
            with staged_source(source_url, settings) as local_path:
                outcome = await _run_conversion(local_path, path, settings)
        else:
            outcome = await _run_conversion(source_url, path, settings)
    except PipelineError as e:
        # Staging failures surface here; conversion failures come back in the outcome
        logger.error("Failed to process video: %s", e)
        return _error_response(e)

    if outcome.error is not None:
        logger.error("Failed to process video: %s", outcome.error)
        return _error_response(outcome.error)

    gif_data = outcome.unwrap()
    logger.info("Successfully converted video to GIF (%s bytes)", len(gif_data))
    return Response(gif_data, status=200, mimetype="image/gif", headers=GIF_HEADERS)


@api.app_errorhandler(404)
def handle_not_found(_error) -> Response:
    target = request.full_path.rstrip("?")
    return _text(f"404 Not Found: {target}", 404)
