"""SVG placeholder served when a source image cannot be decoded."""

from __future__ import annotations

_XML_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)


def escape_xml(text: str) -> str:
    for char, entity in _XML_ESCAPES:
        text = text.replace(char, entity)
    return text


def placeholder_svg(filename: str) -> str:
    label = escape_xml(filename)
    return f"""<svg xmlns="http://www.w3.org/2000/svg" width="1200" height="900" viewBox="0 0 1200 900" role="img" aria-label="Image preview unavailable">
  <defs>
    <linearGradient id="bg" x1="0" y1="0" x2="1" y2="1">
      <stop offset="0%" stop-color="rgba(255,255,255,0.06)" />
      <stop offset="100%" stop-color="rgba(255,255,255,0.02)" />
    </linearGradient>
  </defs>
  <rect x="0" y="0" width="1200" height="900" rx="48" fill="url(#bg)" />
  <g fill="rgba(255,255,255,0.82)" font-family="ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial" text-anchor="middle">
    <text x="600" y="420" font-size="44" font-weight="700">Preview unavailable</text>
    <text x="600" y="486" font-size="26" fill="rgba(255,255,255,0.66)">Open to download the original file</text>
    <text x="600" y="560" font-size="22" fill="rgba(255,255,255,0.50)">{label}</text>
  </g>
</svg>"""
