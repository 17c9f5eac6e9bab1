# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""
Command-line interface for meshfix.

Provides commands for:
- repair: Clean up a mesh and fill its holes
- benchmark: Time the grid and brute-force self-intersection detectors
- diagnose: Analyze a mesh and show diagnostics
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from meshfix import __version__
from meshfix.core import (
    AdjacencyPolicy,
    HoleFilter,
    MeshRepairError,
    RepairConfig,
    compute_diagnostics,
    format_diagnostics,
    load_mesh,
    load_vertices_faces,
    run_benchmark,
    run_repair,
    validate_geometry,
)


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def fail(message: str, ctx: Optional[click.Context] = None) -> None:
    """Report a fatal error, with usage when a context is given, and exit."""
    click.echo(f"Error: {message}", err=True)
    if ctx is not None:
        click.echo(ctx.get_usage(), err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="meshfix")
def main():
    """
    meshfix - Repair triangle meshes: non-manifold cleanup, self-intersection
    removal and hole filling.

    Use 'meshfix COMMAND --help' for more information on each command.
    """
    pass


@main.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Input mesh (OBJ, PLY or STL)")
@click.option("--output", "-o", "output_path", required=True, type=click.Path(dir_okay=False),
              help="Output mesh; the extension selects OBJ, PLY or STL")
@click.option("--keep-largest", "-k", is_flag=True, help="Keep only the largest connected component")
@click.option("--fix-intersections", "-s", is_flag=True, help="Remove self-intersecting facets")
@click.option("--fill-small", "-f", "hole_filter", type=(int, float), default=None,
              metavar="MAX_EDGES MAX_DIAM", help="Only fill holes within these limits")
@click.option("--refine", "-r", is_flag=True, help="Refine hole patches to match the surrounding density")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False),
              help="Repair configuration (JSON/YAML); flags override its values")
@click.option("--workers", type=int, default=None, help="Threads for non-manifold vertex analysis")
@click.option("--report", "report_path", type=click.Path(dir_okay=False), help="Path for JSON report output")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def repair(
    ctx: click.Context,
    input_path: str,
    output_path: str,
    keep_largest: bool,
    fix_intersections: bool,
    hole_filter: Optional[tuple[int, float]],
    refine: bool,
    config_path: Optional[str],
    workers: Optional[int],
    report_path: Optional[str],
    verbose: bool,
):
    """
    Repair a mesh file.

    Examples:

        meshfix repair -i scan.obj -o fixed.obj

        meshfix repair -i scan.ply -o fixed.stl -k -s -r

        meshfix repair -i scan.obj -o fixed.obj -f 50 2.5
    """
    setup_logging(verbose)

    try:
        config = RepairConfig.load(config_path) if config_path else RepairConfig()
    except (ValueError, ImportError) as e:
        fail(str(e), ctx)

    # Flags override file values
    config.keep_largest_component = config.keep_largest_component or keep_largest
    config.fix_self_intersections = config.fix_self_intersections or fix_intersections
    config.refine = config.refine or refine
    config.verbose = config.verbose or verbose
    if hole_filter is not None:
        config.hole_filter = HoleFilter(max_edges=hole_filter[0], max_diam=hole_filter[1])
    if workers is not None:
        config.workers = workers

    errors = config.validate()
    if errors:
        click.echo("Configuration errors:", err=True)
        for error in errors:
            click.echo(f"  - {error}", err=True)
        sys.exit(1)

    click.echo(f"Loading: {input_path}")
    try:
        mesh, report = run_repair(input_path, output_path, config)
    except (MeshRepairError, FileNotFoundError) as e:
        fail(str(e), ctx)

    nm = report.non_manifold
    click.echo(f"  Vertices: {report.vertices_in:,}")
    click.echo(f"  Faces: {report.faces_in:,}")
    click.echo(f"\nNon-manifold faces removed: {nm.removed_count}")
    if config.fix_self_intersections:
        click.echo(f"Self-intersecting facets erased: {report.facets_erased}")
    if config.keep_largest_component:
        click.echo(f"Components removed: {report.components_removed}")
    click.echo(f"Holes filled: {report.holes_filled} of {report.holes_found}")
    click.echo(f"\nRepair completed in {report.duration_ms:.1f}ms")
    click.echo(f"Saved: {output_path} ({report.vertices_out:,} vertices, {report.faces_out:,} faces)")

    validation = validate_geometry(mesh, config.max_faces_per_edge)

    if report_path:
        report_path = Path(report_path)
        data = {
            "input": str(input_path),
            "output": str(output_path),
            "config": config.to_dict(),
            "repair": report.to_dict(),
            "validation": validation.to_dict(),
        }
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with open(report_path, "w") as f:
            json.dump(data, f, indent=2)
        click.echo(f"Report saved: {report_path}")

    if validation.is_printable:
        click.echo("\n✓ Mesh is closed and manifold")
    else:
        click.echo("\n⚠ Mesh may have issues:")
        for issue in validation.issues:
            click.echo(f"  - {issue}")


@main.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Input mesh (OBJ, PLY or STL)")
@click.option("--policy", type=click.Choice([p.value for p in AdjacencyPolicy]),
              default=AdjacencyPolicy.INCLUDE_ADJACENT.value, show_default=True,
              help="Whether faces sharing a vertex are tested against each other")
@click.option("--json", "-j", "json_output", is_flag=True, help="Output as JSON")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def benchmark(ctx: click.Context, input_path: str, policy: str, json_output: bool, verbose: bool):
    """
    Compare the grid and brute-force self-intersection detectors.

    Non-manifold geometry is removed first; neither detector's result is
    written anywhere.

    Examples:

        meshfix benchmark -i scan.obj

        meshfix benchmark -i scan.obj --policy exclude-adjacent
    """
    setup_logging(verbose)

    config = RepairConfig(adjacency_policy=AdjacencyPolicy(policy), verbose=verbose)
    try:
        vertices, faces = load_vertices_faces(input_path)
        result = run_benchmark(vertices, faces, config)
    except (MeshRepairError, FileNotFoundError) as e:
        fail(str(e), ctx)

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(f"\nBenchmark: {Path(input_path).name} ({result.faces_in:,} faces)")
    click.echo("=" * 50)
    click.echo(f"Grid:        {result.grid_faces_out:,} faces kept in {result.grid_ms:.1f}ms")
    click.echo(f"Brute force: {result.bruteforce_faces_out:,} faces kept in {result.bruteforce_ms:.1f}ms")
    click.echo("=" * 50)
    if result.agree:
        click.echo("✓ Detectors agree")
    else:
        click.echo("✗ Detectors disagree")
        sys.exit(1)


@main.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Path to mesh file")
@click.option("--json", "-j", "json_output", is_flag=True, help="Output as JSON")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def diagnose(input_path: str, json_output: bool, verbose: bool):
    """
    Analyze a mesh and show diagnostics.

    Examples:

        meshfix diagnose --input scan.obj

        meshfix diagnose -i scan.obj --json
    """
    setup_logging(verbose)

    input_path = Path(input_path)

    try:
        mesh = load_mesh(input_path)
    except (MeshRepairError, FileNotFoundError) as e:
        fail(str(e))

    diag = compute_diagnostics(mesh)

    if json_output:
        click.echo(json.dumps(diag.to_dict(), indent=2))
        return

    click.echo(format_diagnostics(diag, f"Diagnostics: {input_path.name}"))

    # Print summary
    click.echo("\nStatus:")
    if diag.is_watertight:
        click.echo("  ✓ Watertight")
    else:
        click.echo(f"  ✗ Not watertight ({diag.hole_count} holes)")

    if diag.non_manifold_edge_count == 0 and diag.non_manifold_vertex_count == 0:
        click.echo("  ✓ Manifold")
    else:
        click.echo("  ✗ Non-manifold geometry")

    if diag.component_count <= 1:
        click.echo("  ✓ Single component")
    else:
        click.echo(f"  ⚠ Multiple components ({diag.component_count})")

    if diag.degenerate_face_count == 0:
        click.echo("  ✓ No degenerate faces")
    else:
        click.echo(f"  ⚠ Degenerate faces ({diag.degenerate_face_count})")


if __name__ == "__main__":
    main()
