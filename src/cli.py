#!/usr/bin/env python3
"""CLI entry point for the lookbook studio batch generator."""

import asyncio
import json
import logging
import re
import shutil
import sys
from pathlib import Path

import click

import reducer
from color_sampler import sample_center_hex
from config import paths, settings
from job_builder import (
    AngleJob,
    BackgroundChangeJob,
    ColorMatchJob,
    CommercialPoseJob,
    CustomReferenceJob,
    DesignTransferJob,
    JobConfig,
    LocationJob,
    PoseChangeJob,
    PresetJob,
    RegionColor,
    RegionEditJob,
)
from models import AspectRatio, OutputConstraints, Resolution, ResultSlot
from orchestrator import BatchOrchestrator, FallbackPolicy
from pipeline import PipelineResult, StudioPipeline, load_manifest
from presets import POSE_PRESETS, PresetFamily, presets_by_family
from prompt_library import (
    ACCESSORY_EDIT_CLAUSES,
    ANGLES,
    COLOR_PALETTE,
    EDIT_REGIONS,
    FRAMINGS,
    GARMENT_LAYER_ORDER,
    LOCATIONS,
    POSE_EDIT_CLAUSES,
    POSE_LIBRARY,
    SHOES_EDIT_CLAUSES,
    TOP_EDIT_CLAUSES,
    VIEW_MODES,
)

_HEX_PATTERN = re.compile(r'^#?[0-9a-fA-F]{6}$')


def clean_generated() -> int:
    """Remove all finished batch directories."""
    count = 0
    if paths.batches_dir.exists():
        for item in paths.batches_dir.iterdir():
            if item.is_dir():
                shutil.rmtree(item)
            else:
                item.unlink()
            count += 1
    return count


def cli_progress(stage: str, current: int = 0, total: int = 0, message: str = "") -> None:
    """Progress callback that echoes to the terminal."""
    if not message:
        return
    if total:
        click.echo(f"  [{current}/{total}] {message}")
    else:
        click.echo(f"  {message}")


def resolve_color(value: str) -> str:
    """Accept a palette name or a hex code; return the hex code."""
    for name, hex_code in COLOR_PALETTE.items():
        if name.lower() == value.strip().lower():
            return hex_code
    if _HEX_PATTERN.match(value.strip()):
        return "#" + value.strip().lstrip("#").upper()
    raise click.BadParameter(
        f"'{value}' is neither a hex code nor one of: {', '.join(COLOR_PALETTE)}"
    )


def format_slot(slot: ResultSlot) -> str:
    """One status line for a slot."""
    line = f"{slot.source_label}: {slot.state.value}"
    if slot.qc:
        line += f" [{slot.qc.status.value} {slot.qc.score}]"
        if slot.qc.reject_reasons:
            line += f" ({', '.join(slot.qc.reject_reasons)})"
    if slot.is_fallback:
        line += " (fallback pose)"
    if slot.failure:
        line += f" - {slot.failure.error_type.value}: {slot.failure.message}"
    return line


def _read_image(path: Path | None) -> bytes | None:
    return path.read_bytes() if path else None


def run_batch(
    config: JobConfig,
    image: Path,
    output: Path | None,
    fallback_policy: FallbackPolicy | None = None,
) -> PipelineResult:
    """Run one batch through the pipeline and print the outcome.

    Exits with status 1 when the batch cannot be built or nothing was kept.
    """
    pipeline = StudioPipeline(on_progress=cli_progress)
    if fallback_policy is not None:
        pipeline.orchestrator = BatchOrchestrator(
            pipeline.gateway, pipeline.classifier, fallback_policy=fallback_policy,
        )

    click.echo(f"Running {type(config).__name__} on {image.name}...")
    result = asyncio.run(pipeline.run(config, image.read_bytes(), output_dir=output))

    if not result.success:
        click.echo(f"Error: {result.error}", err=True)
        sys.exit(1)

    click.echo("\n--- Results ---")
    for slot in result.ranked:
        click.echo(f"  OK   {format_slot(slot)}")
    for slot in reducer.rejected(result.slots):
        tag = "FAIL" if slot.failure else "REJ "
        click.echo(f"  {tag} {format_slot(slot)}")

    counts = result.counts
    click.echo(f"\nTotal: {counts.total}  Valid: {counts.valid}  Discarded: {counts.discarded}")
    if result.output_dir:
        click.echo(f"Saved {len(result.saved_files)} image(s) to: {result.output_dir}")

    if counts.valid == 0:
        sys.exit(1)
    return result


def output_options(func):
    """Options shared by every generation command."""
    func = click.option(
        '-o', '--output',
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help='Output directory (default: generated/batches/{timestamp}_{kind}/)',
    )(func)
    func = click.option(
        '--aspect-ratio',
        type=click.Choice([a.value for a in AspectRatio]),
        default=settings.batch.default_aspect_ratio,
        show_default=True,
        help='Output aspect ratio',
    )(func)
    func = click.option(
        '--resolution',
        type=click.Choice([r.value for r in Resolution]),
        default=settings.batch.default_resolution,
        show_default=True,
        help='Output resolution tier',
    )(func)
    func = click.option(
        '-i', '--image',
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        required=True,
        help='Base product photo',
    )(func)
    return func


def prompt_option(func):
    return click.option(
        '-p', '--prompt',
        default="",
        help='Additional instruction appended to every job',
    )(func)


def _constraints(resolution: str, aspect_ratio: str) -> OutputConstraints:
    return OutputConstraints(resolution=resolution, aspect_ratio=aspect_ratio)


@click.group(name="studio")
@click.option('-v', '--verbose', is_flag=True, help='Enable debug logging')
def main(verbose: bool):
    """
    Generate AI fashion lookbook images in batches.

    Example:
        studio presets-run -i shirt.png --preset POSE_COM_SAFE_001 --preset POSE_CROP_001
        studio angles -i shirt.png -a front -a left35 -a right35
        studio recolor -i outfit.png --upper Navy --lower Beige
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ----------------------------------------------------------------------------
# Catalog commands
# ----------------------------------------------------------------------------

@main.command("presets")
@click.option(
    '--family',
    type=click.Choice([f.value for f in PresetFamily]),
    default=None,
    help='Only list presets in this family',
)
@click.option('--json', 'as_json', is_flag=True, help='Print as JSON')
def list_presets(family: str | None, as_json: bool):
    """List the pose preset catalog."""
    presets = presets_by_family(family) if family else list(POSE_PRESETS)
    if as_json:
        click.echo(json.dumps([p.model_dump(mode="json") for p in presets], indent=2, ensure_ascii=False))
        return
    for preset in presets:
        sig = preset.signature
        click.echo(
            f"{preset.id:<22} {preset.name_en:<22} rot={sig.body_rotation_deg:+g}  "
            f"arms={sig.arm_state}  ctr={preset.ctr_expected:.2f}"
        )


@main.command("locations")
def list_locations():
    """List the UGC location catalog."""
    for location_id, (name, scene) in LOCATIONS.items():
        click.echo(f"{location_id:<22} {name:<18} {scene}")


@main.command("sample-color")
@click.argument('image', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--fraction', default=0.5, type=float, show_default=True,
              help='Side of the sampled center box relative to the image')
def sample_color(image: Path, fraction: float):
    """Print the mean color of the image center as #RRGGBB."""
    try:
        click.echo(sample_center_hex(image.read_bytes(), sample_fraction=fraction))
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command("show")
@click.argument('batch_dir', type=click.Path(exists=True, file_okay=False, path_type=Path))
def show(batch_dir: Path):
    """Print the manifest summary of a finished batch."""
    try:
        manifest = load_manifest(batch_dir)
    except (ValueError, json.JSONDecodeError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    counts = manifest.get("counts", {})
    click.echo(f"Batch {manifest.get('batch_id')} ({manifest.get('label')})")
    click.echo(f"Total: {counts.get('total', 0)}  Valid: {counts.get('valid', 0)}  "
               f"Discarded: {counts.get('discarded', 0)}")
    for slot in manifest.get("slots", []):
        qc = slot.get("qc") or {}
        status = f" [{qc.get('status')} {qc.get('score')}]" if qc else ""
        click.echo(f"  {slot.get('source_label')}: {slot.get('state')}{status}  {slot.get('file') or ''}")


@main.command("clean")
def clean():
    """Remove all finished batches from generated/batches/."""
    removed = clean_generated()
    click.echo(f"Cleaned {removed} items from {paths.batches_dir}")


@main.command("serve")
@click.option('--host', default="127.0.0.1", show_default=True, help='Bind address')
@click.option('--port', default=8000, type=int, show_default=True, help='Port')
def serve(host: str, port: int):
    """Start the web API server."""
    import uvicorn
    from server.app import app

    click.echo(f"Starting web API server at http://{host}:{port}")
    uvicorn.run(app, host=host, port=port)


# ----------------------------------------------------------------------------
# Generation commands
# ----------------------------------------------------------------------------

@main.command("presets-run")
@output_options
@prompt_option
@click.option('--preset', 'preset_ids', multiple=True, help='Preset id (repeatable)')
@click.option('--family', type=click.Choice([f.value for f in PresetFamily]), default=None,
              help='Use every preset in this family')
@click.option('--headless/--with-head', default=True, show_default=True,
              help='Crop the face out of the result')
def presets_run(image, resolution, aspect_ratio, output, prompt, preset_ids, family, headless):
    """Apply catalog pose presets, one image per preset."""
    ids = list(preset_ids)
    if family:
        ids.extend(p.id for p in presets_by_family(family) if p.id not in ids)
    config = PresetJob(
        preset_ids=ids,
        headless=headless,
        free_prompt=prompt,
        constraints=_constraints(resolution, aspect_ratio),
    )
    run_batch(config, image, output)


@main.command("smart-pose")
@output_options
@prompt_option
@click.option('-r', '--reference', 'references', multiple=True, required=True,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='Pose reference image (repeatable)')
@click.option('--headless/--with-head', default=True, show_default=True)
@click.option('--no-fallback', is_flag=True, help='Never swap risky poses for the front pose')
@click.option('--strict', is_flag=True, help='Fall back on WARNING as well as DANGER')
def smart_pose(image, resolution, aspect_ratio, output, prompt, references, headless, no_fallback, strict):
    """Transfer the pose of reference images, one image per reference."""
    config = CustomReferenceJob(
        reference_images=[ref.read_bytes() for ref in references],
        headless=headless,
        free_prompt=prompt,
        constraints=_constraints(resolution, aspect_ratio),
    )
    policy = FallbackPolicy(allow_fallback=not no_fallback, strict_mode=strict)
    run_batch(config, image, output, fallback_policy=policy)


@main.command("angles")
@output_options
@prompt_option
@click.option('-a', '--angle', 'angles', multiple=True, type=click.Choice(list(ANGLES)),
              help='Camera angle (repeatable, default: front, left35, right35)')
@click.option('--view', type=click.Choice(list(VIEW_MODES)), default="full", show_default=True)
@click.option('-r', '--reference', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help='Optional secondary reference image')
def angles(image, resolution, aspect_ratio, output, prompt, angles, view, reference):
    """Fitting variations at several camera angles."""
    config = AngleJob(
        angles=list(angles) or ["front", "left35", "right35"],
        view_mode=view,
        reference_image=_read_image(reference),
        free_prompt=prompt,
        constraints=_constraints(resolution, aspect_ratio),
    )
    run_batch(config, image, output)


@main.command("pose")
@output_options
@click.option('--pose', 'pose_ids', multiple=True, type=click.Choice(list(POSE_LIBRARY)),
              help='Pose from the library (repeatable, default: all)')
@click.option('--framing', type=click.Choice(list(FRAMINGS)), default="full", show_default=True)
@click.option('--gender', type=click.Choice(["Female", "Male"]), default="Female", show_default=True)
@click.option('-r', '--reference', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help='Optional secondary reference image')
def pose(image, resolution, aspect_ratio, output, pose_ids, framing, gender, reference):
    """Repose the model using the pose library."""
    config = PoseChangeJob(
        pose_ids=list(pose_ids) or list(POSE_LIBRARY),
        framing=framing,
        reference_image=_read_image(reference),
        gender=gender,
        constraints=_constraints(resolution, aspect_ratio),
    )
    run_batch(config, image, output)


@main.command("commercial")
@output_options
@prompt_option
@click.option('-n', '--count', default=4, type=int, show_default=True, help='Number of variations')
def commercial(image, resolution, aspect_ratio, output, prompt, count):
    """Free commercial pose variations."""
    config = CommercialPoseJob(
        variation_count=count,
        free_prompt=prompt,
        constraints=_constraints(resolution, aspect_ratio),
    )
    run_batch(config, image, output)


@main.command("region-edit")
@output_options
@prompt_option
@click.option('--lock', 'locked', multiple=True, type=click.Choice(list(EDIT_REGIONS)),
              help='Region to preserve (repeatable, default: bottom, pose, face)')
@click.option('--top-mode', type=click.Choice(list(TOP_EDIT_CLAUSES)), default="design", show_default=True)
@click.option('--fit-lock/--no-fit-lock', default=True, show_default=True)
@click.option('--neck-lock', is_flag=True)
@click.option('--sleeve-lock', is_flag=True)
@click.option('--shoes', type=click.Choice(list(SHOES_EDIT_CLAUSES)), default="change", show_default=True)
@click.option('--pose', 'pose_option', type=click.Choice(list(POSE_EDIT_CLAUSES)), default="maintain",
              show_default=True)
@click.option('--accessories', type=click.Choice(list(ACCESSORY_EDIT_CLAUSES)), default="remove",
              show_default=True)
def region_edit(image, resolution, aspect_ratio, output, prompt, locked, top_mode, fit_lock,
                neck_lock, sleeve_lock, shoes, pose_option, accessories):
    """Edit unlocked regions while preserving locked ones."""
    config = RegionEditJob(
        locked_regions=set(locked) if locked else {"bottom", "pose", "face"},
        top_mode=top_mode,
        fit_lock=fit_lock,
        neck_lock=neck_lock,
        sleeve_lock=sleeve_lock,
        shoes_option=shoes,
        pose_option=pose_option,
        accessory_option=accessories,
        free_prompt=prompt,
        constraints=_constraints(resolution, aspect_ratio),
    )
    run_batch(config, image, output)


def _region_color(color: str | None, ref: Path | None, source: str | None) -> RegionColor | None:
    if ref:
        return RegionColor(mode="reference", reference_image=ref.read_bytes(), source_region=source)
    if color:
        return RegionColor(mode="picker", target_color=resolve_color(color))
    return None


@main.command("recolor")
@output_options
@prompt_option
@click.option('--upper', default=None, help='Upper garment color (palette name or hex)')
@click.option('--lower', default=None, help='Lower garment color (palette name or hex)')
@click.option('--outer', default=None, help='Outerwear color (palette name or hex)')
@click.option('--upper-ref', type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None)
@click.option('--lower-ref', type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None)
@click.option('--outer-ref', type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None)
@click.option('--upper-from', type=click.Choice(GARMENT_LAYER_ORDER), default=None,
              help='Garment region of the upper reference to take the color from')
@click.option('--lower-from', type=click.Choice(GARMENT_LAYER_ORDER), default=None)
@click.option('--outer-from', type=click.Choice(GARMENT_LAYER_ORDER), default=None)
def recolor(image, resolution, aspect_ratio, output, prompt, upper, lower, outer,
            upper_ref, lower_ref, outer_ref, upper_from, lower_from, outer_from):
    """Recolor garment regions from solid colors or reference photos."""
    regions = {
        "upper_garment": _region_color(upper, upper_ref, upper_from),
        "lower_garment": _region_color(lower, lower_ref, lower_from),
        "outerwear": _region_color(outer, outer_ref, outer_from),
    }
    config = ColorMatchJob(
        regions={name: color for name, color in regions.items() if color is not None},
        free_prompt=prompt,
        constraints=_constraints(resolution, aspect_ratio),
    )
    run_batch(config, image, output)


@main.command("background")
@output_options
@prompt_option
@click.option('-b', '--background', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help='Background reference (default: Studio, Urban and Indoor scenarios)')
def background(image, resolution, aspect_ratio, output, prompt, background):
    """Swap the background."""
    config = BackgroundChangeJob(
        background_image=_read_image(background),
        free_prompt=prompt,
        constraints=_constraints(resolution, aspect_ratio),
    )
    run_batch(config, image, output)


@main.command("ugc")
@output_options
@prompt_option
@click.option('-l', '--location', 'location_ids', multiple=True, type=click.Choice(list(LOCATIONS)),
              help='Location from the catalog (repeatable). Without one, --prompt describes the scene.')
@click.option('--gender', type=click.Choice(["Female", "Male"]), default="Female", show_default=True)
def ugc(image, resolution, aspect_ratio, output, prompt, location_ids, gender):
    """UGC-style shots of the outfit at catalog locations."""
    config = LocationJob(
        location_ids=list(location_ids),
        free_prompt=prompt,
        gender=gender,
        constraints=_constraints(resolution, aspect_ratio),
    )
    run_batch(config, image, output)


@main.command("design")
@output_options
@prompt_option
@click.option('-r', '--reference', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              required=True, help='Image with the design to transfer')
@click.option('--force', is_flag=True, help='Run even when the garment structures are incompatible')
def design(image, resolution, aspect_ratio, output, prompt, reference, force):
    """Transfer the upper garment design from a reference image."""
    config = DesignTransferJob(
        reference_image=reference.read_bytes(),
        free_prompt=prompt,
        force=force,
        constraints=_constraints(resolution, aspect_ratio),
    )
    run_batch(config, image, output)


if __name__ == "__main__":
    main()
