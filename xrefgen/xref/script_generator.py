"""AutoCAD script generation for XREF-based case-study drawings.

The script is executed by accoreconsole on the remote engine. Symbol drawings
are attached by the hub path the end user has synced locally, while the engine
itself receives the files under their bare filename in its working directory.
AutoCAD resolves the attachment by filename and records the full hub path in
the XREF table, so the drawing opens correctly on a designer's machine.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from xrefgen.xref.models import XrefPlacement

SYMBOL_LAYER = "CASE_STUDY_SYMBOLS"
DEFAULT_DWG_VERSION = "2018"
HEADER_RULE = "=" * 76


@dataclass(frozen=True)
class ScriptOptions:
  """Run metadata rendered into the script."""

  output_filename: str
  dwg_version: str = DEFAULT_DWG_VERSION
  area_code: str | None = None
  revision_number: int | None = None
  generated_at: str | None = None


def _format_number(value: float) -> str:
  # 0.1mm precision; collapse negative zero so identical geometry renders identically.
  text = f"{value:.1f}"
  return "0.0" if text == "-0.0" else text


class XrefScriptGenerator:
  """Render the command script that attaches every symbol onto the floor plan."""

  def generate_script(self, placements: Sequence[XrefPlacement], options: ScriptOptions) -> str:
    """Return the complete `.scr` text for the given placements."""
    lines: list[str] = []
    resolved = [placement for placement in placements if placement.foss_pid]

    lines.extend(self._header(resolved, options))
    lines.append("")

    lines.extend(self._automation_variables())
    lines.append("")

    lines.extend(self._symbol_layer())
    lines.append("")

    if resolved:
      lines.append("; Attach XREFs")
      for placement in resolved:
        lines.extend(self._attach(placement))
      lines.append("")

    lines.extend(["; Zoom to extents", '(command "ZOOM" "E")', '(command "REGEN")'])
    lines.append("")

    lines.extend(["; Reset layer", '(setvar "CLAYER" "0")'])
    lines.append("")

    lines.extend(["; Save drawing", f'(command "SAVEAS" "{options.dwg_version}" "{options.output_filename}")'])
    lines.append("")

    lines.extend(self._restore_and_quit())
    return "\n".join(lines)

  def _header(self, placements: Sequence[XrefPlacement], options: ScriptOptions) -> list[str]:
    header = [f"; {HEADER_RULE}", "; FOSSAPP Case Study XREF Generation Script"]
    if options.generated_at:
      header.append(f"; Generated: {options.generated_at}")
    if options.area_code:
      revision = f" v{options.revision_number}" if options.revision_number else ""
      header.append(f"; Area: {options.area_code}{revision}")
    header.append(f"; Placements: {len(placements)}")
    header.append(f"; {HEADER_RULE}")
    return header

  def _automation_variables(self) -> list[str]:
    # Headless runs must never block on prompts or file dialogs.
    return ["; Set automation variables", '(setvar "cmdecho" 0)', '(setvar "filedia" 0)']

  def _symbol_layer(self) -> list[str]:
    return [
      "; Create XREF layer",
      f'(command "layer" "make" "{SYMBOL_LAYER}" "color" "7" "" "d" "Generated symbol placements" "{SYMBOL_LAYER}" "")',
      f'(setvar "CLAYER" "{SYMBOL_LAYER}")',
    ]

  def _attach(self, placement: XrefPlacement) -> list[str]:
    path = placement.local_path.replace("\\", "/")
    x_scale = -1 if placement.mirror_x else 1
    y_scale = -1 if placement.mirror_y else 1
    x = _format_number(placement.world_x)
    y = _format_number(placement.world_y)
    rotation = _format_number(placement.rotation)

    mirrors = [name for name, active in (("mirrorX", placement.mirror_x), ("mirrorY", placement.mirror_y)) if active]
    mirror_note = f" [{', '.join(mirrors)}]" if mirrors else ""
    comment = f"; Symbol: {placement.symbol or '?'} ({placement.foss_pid}) at ({x}, {y}) rotation {rotation} deg{mirror_note}"

    return [comment, f'(command "-XREF" "Attach" "{path}" "{x},{y},0" "{x_scale}" "{y_scale}" "{rotation}")']

  def _restore_and_quit(self) -> list[str]:
    # QUIT has to be plain text, not wrapped in (command ...), for the engine to exit.
    return ["; Restore variables", '(setvar "filedia" 1)', '(setvar "cmdecho" 1)', "", "; Quit (required for Design Automation)", "QUIT"]
