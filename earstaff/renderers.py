"""Rendering collaborators: the staff renderer interface, a reference renderer, and Markdown export."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Hashable, Sequence
from dataclasses import asdict, dataclass, field

from earstaff.geometry import (
    LinearStaffGeometry,
    ScreenToStaffTransform,
    StaffGeometryProvider,
    staff_line_for_key,
)
from earstaff.models import BoundingBox, StaffMetrics, Voice
from earstaff.pitch import parse_key_string


def _escape_html(text: str) -> str:
    """Escape the three characters that are unsafe in HTML text content."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


@dataclass(frozen=True)
class PreviewGlyph:
    """A transient notehead drawn for a drag in progress, one per pointer."""

    pointer_key: Hashable
    voice_index: int
    note_index: int
    key: str
    accidental: str | None
    clef: str = "treble"


@dataclass(frozen=True)
class RenderResult:
    """
    Geometry reported back by one render pass.

    Attributes:
        metrics:    Staff metrics in staff coordinates.
        note_boxes: Per voice, per note notehead box (None when not drawn).
        geometry:   Live line/Y provider for the rendered staff, if the renderer has one.
        transform:  Screen-to-staff transform valid for this render.
    """

    metrics: StaffMetrics
    note_boxes: list[list[BoundingBox | None]]
    geometry: StaffGeometryProvider | None = None
    transform: ScreenToStaffTransform = field(default_factory=ScreenToStaffTransform.identity)


class StaffRenderer(ABC):
    """Interactive staff renderer consumed by the synchronizer and drag sessions."""

    @abstractmethod
    def render_voices(
        self,
        voices: Sequence[Voice],
        key_signature: str | None,
        clef: str,
    ) -> RenderResult:
        """
        Draw ``voices`` and report the resulting geometry.

        Raises:
            RenderError: If the render pass fails.
        """

    @abstractmethod
    def draw_preview(self, preview: PreviewGlyph) -> None:
        """Draw or move the preview glyph owned by ``preview.pointer_key``."""

    @abstractmethod
    def clear_preview(self, pointer_key: Hashable) -> None:
        """Remove the preview glyph of ``pointer_key``, if any."""

    @abstractmethod
    def set_note_visibility(self, voice_index: int, note_index: int, visible: bool) -> None:
        """Show or hide a committed notehead."""


class LinearStaffRenderer(StaffRenderer):
    """
    Deterministic staff renderer with evenly spaced noteheads.

    Noteheads sit at ``x_start + lead_in + i * note_spacing`` and at the Y
    of their staff line; the staff itself is five lines from ``top_y`` at
    ``spacing`` apart. Screen coordinates are staff coordinates scaled by
    ``scale`` and shifted by ``offset``. Preview glyphs live on an overlay
    and survive re-renders until cleared by their pointer.
    """

    def __init__(
        self,
        top_y: float = 40.0,
        spacing: float = 12.0,
        x_start: float = 10.0,
        width: float = 480.0,
        lead_in: float = 60.0,
        note_spacing: float = 40.0,
        notehead_width: float = 12.0,
        scale: tuple[float, float] = (1.0, 1.0),
        offset: tuple[float, float] = (0.0, 0.0),
    ) -> None:
        if spacing <= 0 or note_spacing <= 0:
            raise ValueError("spacing and note_spacing must be positive.")
        self.top_y = top_y
        self.spacing = spacing
        self.x_start = x_start
        self.width = width
        self.lead_in = lead_in
        self.note_spacing = note_spacing
        self.notehead_width = notehead_width
        self.transform = ScreenToStaffTransform(scale[0], scale[1], offset[0], offset[1])
        self.previews: dict[Hashable, PreviewGlyph] = {}
        self.hidden: set[tuple[int, int]] = set()
        self.render_calls = 0

    def note_x(self, note_index: int) -> float:
        return self.x_start + self.lead_in + note_index * self.note_spacing

    def render_voices(
        self,
        voices: Sequence[Voice],
        key_signature: str | None,
        clef: str,
    ) -> RenderResult:
        self.render_calls += 1
        longest = max((len(voice) for voice in voices), default=0)
        x_end = max(self.x_start + self.width, self.note_x(longest))
        metrics = StaffMetrics(
            top_y=self.top_y,
            bottom_y=self.top_y + 4 * self.spacing,
            spacing=self.spacing,
            x_start=self.x_start,
            x_end=x_end,
            clef=clef,
        )
        geometry = LinearStaffGeometry(metrics)
        boxes = [
            [self._notehead_box(geometry, voice, note_index, clef) for note_index in range(len(voice))]
            for voice in voices
        ]
        return RenderResult(metrics=metrics, note_boxes=boxes, geometry=geometry, transform=self.transform)

    def draw_preview(self, preview: PreviewGlyph) -> None:
        self.previews[preview.pointer_key] = preview

    def clear_preview(self, pointer_key: Hashable) -> None:
        self.previews.pop(pointer_key, None)

    def set_note_visibility(self, voice_index: int, note_index: int, visible: bool) -> None:
        if visible:
            self.hidden.discard((voice_index, note_index))
        else:
            self.hidden.add((voice_index, note_index))

    def _notehead_box(self, geometry: LinearStaffGeometry, voice: Voice, note_index: int, clef: str) -> BoundingBox:
        spec = voice.note_specs[note_index]
        note_clef = spec.clef or voice.clef or clef
        lines = []
        for key in spec.keys if not spec.is_rest else []:
            parsed = parse_key_string(key)
            if parsed is not None:
                lines.append(staff_line_for_key(parsed.letter, parsed.octave, note_clef))
        if not lines:
            lines = [2.0]
        top = geometry.y_for_line(min(lines)) - self.spacing / 2
        bottom = geometry.y_for_line(max(lines)) + self.spacing / 2
        center_x = self.note_x(note_index)
        return BoundingBox(
            x=center_x - self.notehead_width / 2,
            y=top,
            width=self.notehead_width,
            height=bottom - top,
        )


class VexflowMarkdownRenderer:
    """Render staff voices into Markdown with an embedded VexFlow script."""

    @property
    def default_extension(self) -> str:
        return ".md"

    def render(
        self,
        *,
        title: str,
        voices: Sequence[Voice],
        key_signature: str | None = None,
        clef: str = "treble",
        time_signature: str = "4/4",
    ) -> str:
        title_safe = _escape_html(title)
        payload = {
            "title": title,
            "key_signature": key_signature or "C",
            "clef": clef,
            "time_signature": time_signature,
            "voices": [
                {"clef": voice.clef, "notes": [asdict(spec) for spec in voice.note_specs]}
                for voice in voices
            ],
        }
        staff_json = json.dumps(payload, separators=(",", ":"))
        staff_json = staff_json.replace("</", "<\\/")

        return f"""# {title_safe}

This Markdown uses embedded JavaScript + VexFlow. Open it in a Markdown viewer that allows script execution.

<style>
  #earstaff-staff {{
    border: 1px solid #d8d8d8;
    border-radius: 8px;
    background: #ffffff;
    padding: 0.5rem;
    margin-top: 1rem;
    overflow-x: auto;
  }}
</style>

<div id="earstaff-staff"></div>
<script id="earstaff-staff-data" type="application/json">{staff_json}</script>
<script type="module">
  import {{
    Accidental,
    Dot,
    Formatter,
    Renderer,
    Stave,
    StaveNote,
    Voice
  }} from "https://cdn.jsdelivr.net/npm/vexflow@4.2.3/build/esm/entry/vexflow.js";

  const host = document.getElementById("earstaff-staff");
  const payloadNode = document.getElementById("earstaff-staff-data");

  if (!host || !payloadNode) {{
    throw new Error("Missing VexFlow staff container.");
  }}

  const payload = JSON.parse(payloadNode.textContent || "{{}}");
  const clef = payload.clef || "treble";
  const voices = Array.isArray(payload.voices) ? payload.voices : [];

  const toStaveNote = (spec) => {{
    const keys = spec.is_rest || !Array.isArray(spec.keys) || spec.keys.length === 0
      ? ["b/4"]
      : spec.keys;
    const duration = (spec.duration || "q") + (spec.is_rest ? "r" : "");
    const staveNote = new StaveNote({{ clef: spec.clef || clef, keys, duration, dots: spec.dots || 0 }});

    if (!spec.is_rest && Array.isArray(spec.accidentals)) {{
      spec.accidentals.forEach((symbol, keyIndex) => {{
        if (symbol) {{
          staveNote.addModifier(new Accidental(symbol), keyIndex);
        }}
      }});
    }}
    for (let dot = 0; dot < (spec.dots || 0); dot += 1) {{
      Dot.buildAndAttach([staveNote], {{ all: true }});
    }}

    return staveNote;
  }};

  const widest = Math.max(1, ...voices.map((voice) => (voice.notes || []).length));
  const width = Math.max(480, 120 + widest * 40);
  const renderer = new Renderer(host, Renderer.Backends.SVG);
  renderer.resize(width + 40, 160);
  const context = renderer.getContext();

  const stave = new Stave(10, 30, width);
  stave
    .addClef(clef)
    .addKeySignature(payload.key_signature || "C")
    .addTimeSignature(payload.time_signature || "4/4");
  stave.setContext(context).draw();

  const vexVoices = voices
    .filter((voice) => Array.isArray(voice.notes) && voice.notes.length > 0)
    .map((voice) => {{
      const vexVoice = new Voice({{ num_beats: 4, beat_value: 4 }});
      vexVoice.setMode(Voice.Mode.SOFT);
      vexVoice.addTickables(voice.notes.map(toStaveNote));
      return vexVoice;
    }});

  if (vexVoices.length > 0) {{
    new Formatter().joinVoices(vexVoices).format(vexVoices, width - 80);
    vexVoices.forEach((vexVoice) => vexVoice.draw(context, stave));
  }}
</script>
"""
