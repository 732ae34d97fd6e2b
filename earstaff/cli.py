"""earstaff CLI entry point."""

import json
import sys
from pathlib import Path
from typing import Any

import click

from earstaff import __version__
from earstaff.config import EditorConfig, load_config
from earstaff.errors import StaffEditError
from earstaff.geometry import CLEF_LINE_SHIFTS
from earstaff.interaction import StaffInteractionController
from earstaff.key_signatures import key_signature_for
from earstaff.logger_config import set_verbose
from earstaff.models import InputMeta, SequenceMode, StaffMetrics, Voice
from earstaff.pitch import format_pitch_label
from earstaff.pitch_resolver import find_closest_pitch_for_y
from earstaff.renderers import LinearStaffRenderer, VexflowMarkdownRenderer
from earstaff.state import RenderState

EVENT_TYPES = ("down", "move", "up", "cancel", "wheel", "delete")


def _load_script(path: str) -> dict[str, Any]:
    """Read a replay script: a JSON object with initial notes and an ``events`` list."""
    try:
        script = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Script '{path}' is not valid JSON: {exc}") from exc
    if not isinstance(script, dict):
        raise ValueError(f"Script '{path}' must contain a JSON object.")
    events = script.get("events", [])
    if not isinstance(events, list):
        raise ValueError("Script 'events' must be a list.")
    for position, event in enumerate(events):
        if not isinstance(event, dict) or event.get("type") not in EVENT_TYPES:
            raise ValueError(f"Event {position} must be an object with type in: {', '.join(EVENT_TYPES)}.")
    return script


def _replay(
    script: dict[str, Any],
    config: EditorConfig,
    on_input: Any = None,
) -> StaffInteractionController:
    """Build a staff from ``script`` and feed it every scripted event."""
    clef = script.get("clef", "treble")
    state = RenderState(
        voices=[Voice(clef=clef)],
        clef=clef,
        mode=SequenceMode(script.get("mode", SequenceMode.MELODIC.value)),
    )
    controller = StaffInteractionController(LinearStaffRenderer(), state=state, config=config)

    scale = script.get("scale")
    key_signature = script.get("key_signature")
    if key_signature is None and isinstance(scale, dict):
        key_signature = key_signature_for(scale.get("tonic", "C"), scale.get("mode", "major"))
    controller.set_key_signature(key_signature)

    duration = script.get("duration")
    controller.set_sequence(script.get("notes", []), quarter_length=float(duration) if duration else None)
    controller.on_input = on_input

    if isinstance(scale, dict):
        controller.set_scale(scale.get("tonic", "C"), scale.get("mode", "major"))
    elif script.get("allowed") is not None:
        controller.set_allowed_pitch_classes(script["allowed"])

    for event in script.get("events", []):
        kind = event["type"]
        pointer = event.get("pointer")
        x = float(event.get("x", 0.0))
        y = float(event.get("y", 0.0))
        if kind == "down":
            controller.pointer_down(x, y, pointer_id=pointer)
        elif kind == "move":
            controller.pointer_move(x, y, pointer_id=pointer)
        elif kind == "up":
            controller.pointer_up(x, y, pointer_id=pointer)
        elif kind == "cancel":
            controller.pointer_cancel(pointer_id=pointer)
        elif kind == "wheel":
            controller.wheel(float(event.get("delta_y", -1.0)))
        else:
            controller.delete_selected()
    return controller


def _format_event(token: str | None, meta: InputMeta) -> str:
    target = f"index {meta.note_index}" if meta.note_index is not None else "no index"
    pitch = token if token is not None else "-"
    return f"{meta.operation.value:<6}  {meta.phase.value:<6}  {target:<9}  {pitch}"


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="earstaff")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, readable=True),
    default=None,
    metavar="PATH",
    help="JSON file overriding interaction defaults.",
)
@click.option("--verbose", "-v", is_flag=True, help="Log resolver and drag details to stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """earstaff — interactive staff note-editing engine."""
    set_verbose(verbose)
    try:
        ctx.obj = load_config(config_path)
    except (OSError, ValueError) as exc:
        click.echo(f"  ERROR: Could not load config — {exc}", err=True)
        sys.exit(1)


# ── resolve subcommand ─────────────────────────────────────────────────────────

@main.command()
@click.argument("y", type=float)
@click.option(
    "--clef",
    type=click.Choice(sorted(CLEF_LINE_SHIFTS), case_sensitive=False),
    default="treble",
    show_default=True,
    help="Clef used to map staff lines to pitches.",
)
@click.option("--top-y", type=float, default=40.0, show_default=True, help="Y of the top staff line.")
@click.option(
    "--spacing",
    type=float,
    default=None,
    help="Distance between staff lines. Defaults to the configured line spacing.",
)
@click.pass_obj
def resolve(config: EditorConfig, y: float, clef: str, top_y: float, spacing: float | None) -> None:
    """
    Print the pitch closest to staff coordinate Y.

    \b
    Examples:
      earstaff resolve 64
      earstaff resolve 40 --clef bass --spacing 10
    """
    line_spacing = spacing if spacing is not None else config.default_line_spacing
    if line_spacing <= 0:
        click.echo("  ERROR: --spacing must be positive.", err=True)
        sys.exit(1)
    metrics = StaffMetrics(
        top_y=top_y,
        bottom_y=top_y + 4 * line_spacing,
        spacing=line_spacing,
        x_start=0.0,
        x_end=0.0,
        clef=clef.lower(),
    )
    candidate = find_closest_pitch_for_y(
        y,
        clef.lower(),
        metrics=metrics,
        midi_min=config.midi_min,
        midi_max=config.midi_max,
        prefer_natural=config.prefer_natural,
        preference=config.spelling_preference,
    )
    if candidate is None:
        click.echo(f"  ERROR: No pitch for y={y}.", err=True)
        sys.exit(1)

    click.echo(f"{format_pitch_label(candidate.pitch.key)}  midi {candidate.midi}  line {candidate.line:g}")


# ── replay subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.pass_obj
def replay(config: EditorConfig, script: str) -> None:
    """
    Replay a scripted pointer session and print every host notification.

    SCRIPT is a JSON object with optional "notes", "duration" (in quarter
    notes), "key_signature", "clef", "mode", "allowed" or "scale" (which also
    sets the key signature when none is given), and an "events" list. Each event has a
    "type" (down, move, up, cancel, wheel, delete), an optional "pointer" id
    and screen "x"/"y".

    \b
    Examples:
      earstaff replay session.json
      earstaff --verbose replay session.json
    """
    click.echo(f"earstaff v{__version__}")
    click.echo(f"  Script : {script}")
    click.echo()

    def on_input(token: str | None, meta: InputMeta) -> None:
        click.echo(f"  {_format_event(token, meta)}")

    try:
        controller = _replay(_load_script(script), config, on_input)
    except (OSError, ValueError, StaffEditError) as exc:
        click.echo(f"  ERROR: Could not replay script — {exc}", err=True)
        sys.exit(1)

    click.echo()
    sequence = controller.current_sequence()
    click.echo(f"Sequence: {' '.join(sequence) if sequence else '(empty)'}")


# ── export subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination Markdown path. Defaults to the script path with a .md suffix.",
)
@click.option(
    "--title",
    default=None,
    metavar="TEXT",
    help="Title shown in the output header. Defaults to the script filename stem.",
)
@click.pass_obj
def export(config: EditorConfig, script: str, output: str | None, title: str | None) -> None:
    """
    Replay SCRIPT and write the resulting staff as Markdown with a VexFlow script.

    \b
    Examples:
      earstaff export session.json
      earstaff export session.json -o staff.md --title "Dictation 1"
    """
    script_path = Path(script)
    renderer = VexflowMarkdownRenderer()
    resolved_title = title if title is not None else script_path.stem.replace("_", " ")
    resolved_output = output if output is not None else str(script_path.with_suffix(renderer.default_extension))

    try:
        controller = _replay(_load_script(script), config)
        state = controller.state
        content = renderer.render(
            title=resolved_title,
            voices=state.voices,
            key_signature=state.key_signature,
            clef=state.clef,
        )
        Path(resolved_output).write_text(content, encoding="utf-8")
    except OSError as exc:
        click.echo(f"  ERROR: Could not write output file — {exc}", err=True)
        sys.exit(1)
    except (ValueError, StaffEditError) as exc:
        click.echo(f"  ERROR: Could not replay script — {exc}", err=True)
        sys.exit(1)

    click.echo(f"Done!  Open '{resolved_output}' in a Markdown viewer that allows embedded JavaScript.")
