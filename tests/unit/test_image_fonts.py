from __future__ import annotations

from app.images.fonts import apply_font_substitutions, extract_svg_fonts, validate_svg_fonts


def test_extract_svg_fonts_reads_attributes_and_css_in_first_use_order() -> None:
  svg = """<svg xmlns="http://www.w3.org/2000/svg">
  <style>text { font-family: "Comic Sans MS", Arial; }</style>
  <text font-family="Arial, 'Liberation Sans'">a</text>
  <text style="font-family: Courier New; font-size: 4px">b</text>
  </svg>"""

  fonts = extract_svg_fonts(svg)

  assert fonts == ["Arial", "Liberation Sans", "Comic Sans MS", "Courier New"]


def test_available_font_produces_no_warnings() -> None:
  result = validate_svg_fonts('<svg><text font-family="DejaVu Sans">x</text></svg>')

  assert result.valid
  assert result.warnings == []
  assert result.substitutions == {}


def test_mapped_font_produces_exactly_one_warning_naming_substitute() -> None:
  result = validate_svg_fonts('<svg><text font-family="Arial">x</text></svg>')

  assert result.valid
  assert result.warnings == ['Font "Arial" will be substituted with "Liberation Sans"']
  assert result.substitutions == {"Arial": "Liberation Sans"}


def test_vendor_spelling_uses_partial_mapping() -> None:
  result = validate_svg_fonts('<svg><text font-family="ArialMT-Bold">x</text></svg>')

  assert result.valid
  assert len(result.warnings) == 1
  assert "compatible font" in result.warnings[0]
  assert result.substitutions["ArialMT-Bold"] == "Liberation Sans"


def test_unmapped_font_is_reported_missing() -> None:
  result = validate_svg_fonts('<svg><style>.t { font-family: "Comic Sans MS"; }</style></svg>')

  assert not result.valid
  assert result.missing_fonts == ["Comic Sans MS"]


def test_css_keywords_are_not_fonts() -> None:
  assert extract_svg_fonts('<svg><g style="font-family: inherit"/></svg>') == []


def test_apply_font_substitutions_rewrites_declarations_only() -> None:
  svg = '<svg><text font-family="Arial, sans-serif">Arial</text><g style="font-family: Helvetica;"/></svg>'
  substitutions = validate_svg_fonts(svg).substitutions

  rewritten = apply_font_substitutions(svg, substitutions)

  assert 'font-family="Liberation Sans, Liberation Sans"' in rewritten
  assert "font-family: Liberation Sans;" in rewritten
  # Text content is untouched.
  assert ">Arial</text>" in rewritten
