"""Printable HTML sheet listing every generated code."""

import base64

from jinja2 import Environment, select_autoescape

from qrbatch.logging import audit, get_logger

log = get_logger("printview")

_env = Environment(autoescape=select_autoescape(default_for_string=True, default=True))

PRINT_TEMPLATE = _env.from_string("""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <title>{{ title }}</title>
    <style>
      body { font-family: Arial, sans-serif; padding: 20px; margin: 0; }
      h1 { text-align: center; margin-bottom: 20px; }
      .qr-container { display: flex; flex-wrap: wrap; justify-content: center; gap: 24px; }
      .qr-item {
        border: 1px solid #ddd; border-radius: 8px; padding: 16px;
        background: #f9fafb; max-width: 350px; page-break-inside: avoid;
      }
      .qr-filename { font-size: 14px; font-weight: 600; color: #374151; margin-bottom: 8px; text-align: center; }
      .qr-image-container {
        background: white; padding: 16px; border-radius: 8px; margin-bottom: 8px;
        display: flex; align-items: center; justify-content: center;
      }
      .qr-image { max-width: 100%; height: auto; max-height: 300px; }
      .qr-url { font-size: 12px; color: #6b7280; text-align: center; word-break: break-all; }
      @media print {
        body { margin: 0; padding: 10px; }
        .qr-container { gap: 16px; }
      }
    </style>
  </head>
  <body>
    <h1>{{ heading }}</h1>
    <div class="qr-container">
    {%- for item in items %}
      <div class="qr-item">
        <div class="qr-filename">{{ item.name }}</div>
        <div class="qr-image-container">
          <img src="{{ item.src }}" alt="QR Code {{ loop.index }}" class="qr-image">
        </div>
        <div class="qr-url">{{ item.text }}</div>
      </div>
    {%- endfor %}
    </div>
  </body>
</html>
""")


def data_uri(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def render_print_sheet(manifest, title: str | None = None) -> str:
    """Render *manifest* as a self-contained, print-friendly HTML page."""
    items = [
        {"name": a.archive_name, "src": data_uri(a.raster_bytes), "text": a.source_text}
        for a in manifest
    ]
    heading = f"QR Codes ({len(items)})"
    html = PRINT_TEMPLATE.render(title=title or heading, heading=heading, items=items)
    audit("print.rendered", logger=log, items=len(items), bytes=len(html))
    return html
