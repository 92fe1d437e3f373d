"""HTTP front end: submit links (and logos), get back the zip or the print sheet."""

import asyncio
import io

from qrbatch.batch import LinkEntry, Manifest, generate_archive, generate_batch
from qrbatch.config import Settings
from qrbatch.errors import NoValidEntriesError, QRBatchError
from qrbatch.logging import audit, get_logger, trace
from qrbatch.printview import render_print_sheet

log = get_logger("service")


class TooManyEntriesError(QRBatchError):
    """More links were submitted than ``max_entries`` allows."""


def entries_from_form(form, files, max_entries: int = 0) -> list[LinkEntry]:
    """Build entries from repeated ``url`` fields and ``logo_<n>`` uploads.

    ``n`` is the 0-based position of the url in the submitted list; an empty
    file field counts as no logo.
    """
    urls = form.getlist("url")
    if max_entries and len(urls) > max_entries:
        raise TooManyEntriesError(f"at most {max_entries} links per batch, got {len(urls)}")
    entries = []
    for n, url in enumerate(urls):
        upload = files.get(f"logo_{n}")
        logo = upload.read() if upload is not None and upload.filename else None
        entries.append(LinkEntry(url, logo or None))
    return entries


@trace
def create_app(settings: Settings | None = None):
    """Create the Flask app."""
    from flask import Flask, jsonify, request, send_file

    settings = settings or Settings.from_env()
    app = Flask(__name__)

    @app.errorhandler(QRBatchError)
    def handle_batch_error(error: QRBatchError):
        status = 400 if isinstance(error, (NoValidEntriesError, TooManyEntriesError)) else 422
        audit("service.error", logger=log, status=status, error=type(error).__name__,
              entry=error.index, reason=str(error))
        return jsonify(error.to_dict()), status

    @app.route("/api/generate", methods=["POST"])
    def generate():
        entries = entries_from_form(request.form, request.files, settings.max_entries)
        manifest, blob = asyncio.run(generate_archive(entries, settings))
        audit("service.generate", logger=log, entries=len(entries), generated=len(manifest),
              failed=len(manifest.failures), bytes=len(blob))
        response = send_file(
            io.BytesIO(blob),
            mimetype="application/zip",
            as_attachment=True,
            download_name=settings.archive_name,
        )
        if manifest.failures:
            response.headers["X-QRBatch-Failed"] = ",".join(str(f.index) for f in manifest.failures)
        return response

    @app.route("/api/print", methods=["POST"])
    def print_sheet():
        entries = entries_from_form(request.form, request.files, settings.max_entries)
        manifest: Manifest = asyncio.run(generate_batch(entries, settings))
        return render_print_sheet(manifest), 200, {"Content-Type": "text/html; charset=utf-8"}

    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok"})

    return app
