"""Visualization utilities for mean shift results."""

import logging

import matplotlib.pyplot as plt
import numpy as np
import open3d as o3d

logger = logging.getLogger(__name__)


def plot_centroids(table, save_path='centroids.png', show=True):
    """
    Top-down view of input points and the centroids they converged to.

    Args:
        table: CentroidTable
        save_path: Path to save the plot (None to skip saving)
        show: Whether to open a window
    """
    fig, ax = plt.subplots(figsize=(10, 10))

    ax.scatter(table.points[:, 0], table.points[:, 1], c=table.points[:, 2],
               cmap='viridis', s=4, alpha=0.6, label='Points')

    finite = table.finite
    ctr = table.centroids[finite]
    if len(ctr):
        ax.scatter(ctr[:, 0], ctr[:, 1], marker='x', s=40, color='red',
                   linewidths=1.5, label='Centroids')

    ax.set_xlabel('X', fontsize=12)
    ax.set_ylabel('Y', fontsize=12)
    ax.set_aspect('equal')

    stats = table.summary()
    ax.set_title(f"Mean Shift Centroids\n{stats['points']:,} points, "
                 f"{stats['converged']:,} converged, {stats['capped']:,} capped",
                 fontsize=14, fontweight='bold')
    ax.grid(True, alpha=0.3)
    ax.legend(loc='best')

    plt.tight_layout()
    if save_path:
        plt.savefig(save_path, dpi=150)
        logger.info("Centroid plot saved to %s", save_path)
    if show:
        plt.show()
    return fig


def plot_iterations(table, max_iterations=None, save_path='iterations.png', show=True):
    """
    Histogram of iterations per point, split by converged and capped points.

    Args:
        table: CentroidTable
        max_iterations: Iteration cap used for the run, drawn as a marker line
        save_path: Path to save the plot (None to skip saving)
        show: Whether to open a window
    """
    fig, ax = plt.subplots(figsize=(12, 7))

    top = int(table.iterations.max()) if len(table) else 1
    bins = np.arange(1, top + 2) - 0.5
    ax.hist([table.iterations[table.converged], table.iterations[~table.converged]],
            bins=bins, stacked=True, color=['#2E86AB', '#E4572E'],
            label=['Converged', 'Iteration cap'])

    if max_iterations is not None:
        ax.axvline(x=max_iterations, color='red', linestyle='--', linewidth=1.5,
                   alpha=0.7, label=f'Max iterations ({max_iterations})')

    ax.set_xlabel('Iterations', fontsize=12)
    ax.set_ylabel('Points', fontsize=12)
    ax.set_title('Mean Shift Iterations per Point', fontsize=14, fontweight='bold')
    ax.grid(True, alpha=0.3)
    ax.legend(loc='best')

    plt.tight_layout()
    if save_path:
        plt.savefig(save_path, dpi=150)
        logger.info("Iteration plot saved to %s", save_path)
    if show:
        plt.show()
    return fig


def show_centroids(table, window_name="Mean Shift Centroids"):
    """Open an Open3D window with the points (grey) and their centroids (red)."""
    points_pcd = o3d.geometry.PointCloud()
    points_pcd.points = o3d.utility.Vector3dVector(table.points)
    points_pcd.paint_uniform_color([0.6, 0.6, 0.6])

    centroids_pcd = o3d.geometry.PointCloud()
    centroids_pcd.points = o3d.utility.Vector3dVector(table.centroids[table.finite])
    centroids_pcd.paint_uniform_color([1, 0, 0])

    o3d.visualization.draw_geometries(
        [points_pcd, centroids_pcd],
        window_name=window_name,
        width=1024,
        height=768
    )
