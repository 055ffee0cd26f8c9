#!/usr/bin/env python3
"""
Main entry point for mean shift tree crown delineation.

This script provides a command-line interface for running the classical and
voxel mean shift engines on a point cloud file and saving per-point centroids.
"""

import argparse
import logging
import sys
import time

import numpy as np

from crownshift import (CentroidTable, MeanShiftError, PointCloud, classical_mean_shift,
                        setup_logging, voxel_mean_shift)
from crownshift.visualization import plot_centroids, plot_iterations, show_centroids


def print_summary(table, elapsed):
    """Print run statistics for a CentroidTable."""
    stats = table.summary()
    print(f"\n{'='*80}")
    print("RESULTS")
    print("="*80)
    print(f"Points:              {stats['points']:,}")
    print(f"Converged:           {stats['converged']:,}")
    print(f"Iteration cap:       {stats['capped']:,}")
    print(f"Non-finite:          {stats['non_finite']:,}")
    print(f"Mean iterations:     {stats['mean_iterations']:.2f}")
    print(f"Max iterations:      {stats['max_iterations']}")
    if elapsed is not None:
        print(f"Runtime:             {elapsed:.3f}s")
        if elapsed > 0:
            print(f"Points per second:   {stats['points']/elapsed:,.0f}")
    print("="*80)


def load_cloud(path, shift_origin=False):
    """Load a point cloud, optionally moving it to the positive octant."""
    print(f"\nLoading point cloud...")
    print(f"  Source: {path}")
    cloud = PointCloud.from_file(path)
    print(f"  Points: {len(cloud):,}")

    offset = np.zeros(3)
    if shift_origin:
        cloud, offset = cloud.shifted_to_origin()
        print(f"  Shifted by: [{offset[0]:.2f}, {offset[1]:.2f}, {offset[2]:.2f}]")
    return cloud, offset


def finish(table, offset, output=None, plot=False, max_iterations=None):
    """Undo any origin shift, save and plot a result table."""
    if np.any(offset):
        table = CentroidTable(table.points + offset, table.centroids + offset,
                              table.iterations, table.converged)

    if output:
        if output.endswith('.pkl'):
            table.save(output)
        else:
            table.to_csv(output)
        print(f"Centroids saved to {output}")

    if plot:
        plot_centroids(table)
        plot_iterations(table, max_iterations=max_iterations)
    return table


def run_classical(args):
    """Run classical mean shift."""
    print("\n" + "="*80)
    print("Classical Mean Shift")
    print("="*80)

    cloud, offset = load_cloud(args.source, args.shift_origin)
    print(f"\nRunning (h2cw={args.h2cw}, h2cl={args.h2cl}, uniform={args.uniform}, "
          f"max_iter={args.max_iter}, jobs={args.jobs})...")

    start = time.time()
    table = classical_mean_shift(cloud, args.h2cw, args.h2cl,
                                 uniform_kernel=args.uniform,
                                 max_iterations=args.max_iter,
                                 on_empty=args.on_empty,
                                 n_jobs=args.jobs)
    print_summary(table, time.time() - start)
    return finish(table, offset, args.output, args.plot, args.max_iter)


def run_voxel(args):
    """Run voxel mean shift."""
    print("\n" + "="*80)
    print("Voxel Mean Shift")
    print("="*80)

    cloud, offset = load_cloud(args.source, args.shift_origin)
    print(f"\nRunning (h2cw={args.h2cw}, h2cl={args.h2cl}, uniform={args.uniform}, "
          f"max_iter={args.max_iter}, grid={args.max_x}x{args.max_y}x{args.max_z}, "
          f"clip={args.clip}, jobs={args.jobs})...")

    start = time.time()
    table = voxel_mean_shift(cloud, args.h2cw, args.h2cl,
                             uniform_kernel=args.uniform,
                             max_iterations=args.max_iter,
                             max_x=args.max_x, max_y=args.max_y, max_z=args.max_z,
                             clip_policy=args.clip,
                             on_empty=args.on_empty,
                             n_jobs=args.jobs)
    print_summary(table, time.time() - start)
    return finish(table, offset, args.output, args.plot, args.max_iter)


def compare_engines(args):
    """Run both engines on the same cloud and report how far their centroids differ."""
    print("\n" + "="*80)
    print("Comparing Classical and Voxel Mean Shift")
    print("="*80)

    cloud, _ = load_cloud(args.source, args.shift_origin)
    results = []
    for description, func, extra in [
        ('Classical', classical_mean_shift, {}),
        ('Voxel', voxel_mean_shift, {'max_x': args.max_x, 'max_y': args.max_y,
                                     'max_z': args.max_z, 'clip_policy': args.clip}),
    ]:
        print(f"\n{'='*80}")
        print(f"Testing: {description}")
        print("="*80)
        start = time.time()
        table = func(cloud, args.h2cw, args.h2cl, uniform_kernel=args.uniform,
                     max_iterations=args.max_iter, n_jobs=args.jobs, **extra)
        elapsed = time.time() - start
        print_summary(table, elapsed)
        results.append((description, table, elapsed))

    (_, classical, t_classical), (_, voxel, t_voxel) = results
    both = classical.finite & voxel.finite
    diff = np.linalg.norm(classical.centroids[both] - voxel.centroids[both], axis=1)

    print(f"\n{'Engine':<15} {'Runtime (s)':<15} {'Converged':<12}")
    print("-" * 42)
    print(f"{'Classical':<15} {t_classical:<15.3f} {int(classical.converged.sum()):<12}")
    print(f"{'Voxel':<15} {t_voxel:<15.3f} {int(voxel.converged.sum()):<12}")
    if len(diff):
        print(f"\nCentroid distance (classical vs voxel) over {len(diff):,} points:")
        print(f"  mean={diff.mean():.4f}  median={np.median(diff):.4f}  max={diff.max():.4f}")
        print(f"  within 1 voxel: {np.mean(diff <= 1.0)*100:.1f}%")
    else:
        print("\nNo point has a finite centroid in both runs.")


def load_and_summarize(args):
    """Load a saved table and print its summary."""
    print("\n" + "="*80)
    print("Loading Saved Results")
    print("="*80)

    table = CentroidTable.load(args.file)
    print_summary(table, None)
    if args.plot:
        plot_centroids(table)
        plot_iterations(table)
    if args.view:
        show_centroids(table)


def add_kernel_arguments(parser):
    parser.add_argument('source', type=str, help='Path to point cloud (.ply, .pcd, .xyz, .csv, .txt)')
    parser.add_argument('--h2cw', type=float, required=True,
                        help='Height to crown width factor (kernel diameter / height)')
    parser.add_argument('--h2cl', type=float, required=True,
                        help='Height to crown length factor (kernel height / height)')
    parser.add_argument('--uniform', action='store_true',
                        help='Use a uniform kernel without distance weighting')
    parser.add_argument('--max-iter', type=int, default=20,
                        help='Maximum iterations per point (default: 20)')
    parser.add_argument('--jobs', type=int, default=1,
                        help='Parallel workers, -1 for all cores (default: 1)')
    parser.add_argument('--shift-origin', action='store_true',
                        help='Translate the cloud so min X/Y are 0 before processing')


def add_grid_arguments(parser):
    parser.add_argument('--max-x', type=int, default=100, help='Voxel grid max X (default: 100)')
    parser.add_argument('--max-y', type=int, default=100, help='Voxel grid max Y (default: 100)')
    parser.add_argument('--max-z', type=int, default=60, help='Voxel grid max Z (default: 60)')
    parser.add_argument('--clip', type=str, default='inclusive', choices=['inclusive', 'legacy'],
                        help='Bounding box clipping at the upper grid edge')


def add_output_arguments(parser):
    parser.add_argument('--output', type=str, default=None,
                        help='Save centroids (.csv/.txt as text, .pkl with iteration data)')
    parser.add_argument('--on-empty', type=str, default='propagate', choices=['propagate', 'raise'],
                        help='Empty neighborhoods: NaN centroids (default) or abort')
    parser.add_argument('--plot', action='store_true', help='Plot centroids and iterations')


def build_parser():
    parser = argparse.ArgumentParser(
        description='Mean Shift Tree Crown Delineation',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Classical mean shift
  python run_meanshift.py classical plot.csv --h2cw 0.3 --h2cl 0.4

  # Voxel mean shift on a 200 x 200 m tile, all cores
  python run_meanshift.py voxel tile.csv --h2cw 0.3 --h2cl 0.4 --max-x 200 --max-y 200 --jobs -1

  # Compare engines
  python run_meanshift.py compare plot.csv --h2cw 0.3 --h2cl 0.4

  # Load saved results
  python run_meanshift.py load centroids.pkl
        """
    )
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='mode', help='Engine')

    classical_parser = subparsers.add_parser('classical', help='Classical mean shift over raw points')
    add_kernel_arguments(classical_parser)
    add_output_arguments(classical_parser)

    voxel_parser = subparsers.add_parser('voxel', help='Voxel mean shift over a 1-unit grid')
    add_kernel_arguments(voxel_parser)
    add_grid_arguments(voxel_parser)
    add_output_arguments(voxel_parser)

    compare_parser = subparsers.add_parser('compare', help='Compare classical and voxel engines')
    add_kernel_arguments(compare_parser)
    add_grid_arguments(compare_parser)

    load_parser = subparsers.add_parser('load', help='Load and summarize saved results')
    load_parser.add_argument('file', type=str, help='Path to saved results (.pkl)')
    load_parser.add_argument('--plot', action='store_true', help='Plot centroids and iterations')
    load_parser.add_argument('--view', action='store_true', help='Open a 3D view of points and centroids')

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    if args.mode is None:
        parser.print_help()
        return 1

    modes = {
        'classical': run_classical,
        'voxel': run_voxel,
        'compare': compare_engines,
        'load': load_and_summarize,
    }
    try:
        modes[args.mode](args)
    except (MeanShiftError, FileNotFoundError) as e:
        print(f"\nError: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
