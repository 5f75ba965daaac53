"""
Goodput Heatmap Visualization

This module generates 2D heatmaps of link goodput and completion rate as a
function of word drop rate and message payload size.
"""

import os
from typing import Dict, List, Optional, Tuple

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from pocketlink.config import PLOTS_DIR


class GoodputHeatmap:
    """
    Generates 2D heatmaps of Goodput(drop rate, payload size).

    Rows are drop rates (highest at the top), columns are payload sizes.
    """

    def __init__(
        self,
        results: Optional[List[Dict]] = None,
        csv_file: Optional[str] = None,
        dataframe: Optional[pd.DataFrame] = None
    ):
        """
        Initialize heatmap generator.

        Args:
            results: List of per-run result dictionaries
            csv_file: Path to CSV file written by BatchRunner.save_results
            dataframe: Results already loaded as a DataFrame
        """
        if dataframe is not None:
            self.df = dataframe.copy()
        elif results:
            self.df = pd.DataFrame(results)
        elif csv_file:
            self.df = pd.read_csv(csv_file)
        else:
            self.df = pd.DataFrame()

    def _pivot(self, column: str, df: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        """Mean of column per (drop_rate, payload_size), highest drop rate first."""
        df = self.df if df is None else df
        if df.empty or column not in df.columns:
            raise ValueError("No results to plot")

        table = df.pivot_table(
            index='drop_rate',
            columns='payload_size',
            values=column,
            aggfunc='mean'
        )
        return table.sort_index(ascending=False)

    def get_optimal_point(self) -> Tuple[float, int, float]:
        """
        Find the cell with the highest mean goodput.

        Returns:
            Tuple of (drop_rate, payload_size, goodput)
        """
        table = self._pivot('goodput')
        values = table.to_numpy()
        i, j = np.unravel_index(np.nanargmax(values), values.shape)
        return table.index[i], table.columns[j], values[i, j]

    def _save(self, fig, output_file: Optional[str], default_name: str) -> str:
        if output_file is None:
            os.makedirs(PLOTS_DIR, exist_ok=True)
            output_file = os.path.join(PLOTS_DIR, default_name)

        fig.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close(fig)

        print(f"Heatmap saved to: {output_file}")
        return output_file

    def plot(
        self,
        output_file: Optional[str] = None,
        title: str = "Goodput vs Drop Rate and Payload Size",
        figsize: Tuple[int, int] = (12, 8),
        cmap: str = "viridis",
        show_values: bool = True,
        highlight_optimal: bool = True,
        unit: str = "KB/s"
    ) -> str:
        """
        Generate and save the goodput heatmap.

        Args:
            output_file: Output file path (auto-generated if None)
            title: Plot title
            figsize: Figure size (width, height)
            cmap: Colormap name
            show_values: Show values in cells
            highlight_optimal: Outline the best cell
            unit: "KB/s" or "B/s"

        Returns:
            Path to saved figure
        """
        table = self._pivot('goodput')

        if unit == "KB/s":
            table = table / 1e3
            unit_label = "Goodput (KB/s)"
        else:
            unit_label = "Goodput (B/s)"

        fig, ax = plt.subplots(figsize=figsize)
        sns.heatmap(
            table,
            annot=show_values,
            fmt='.2f',
            cmap=cmap,
            ax=ax,
            cbar_kws={'label': unit_label}
        )

        if highlight_optimal:
            values = table.to_numpy()
            opt_i, opt_j = np.unravel_index(np.nanargmax(values), values.shape)
            ax.add_patch(plt.Rectangle(
                (opt_j, opt_i), 1, 1,
                fill=False, edgecolor='red', linewidth=3
            ))
            ax.annotate(
                f'Best\np={table.index[opt_i]}, L={table.columns[opt_j]}\n'
                f'{values[opt_i, opt_j]:.2f} {unit}',
                xy=(opt_j + 0.5, opt_i + 0.5),
                xytext=(opt_j + 1.5, opt_i + 0.2),
                fontsize=10,
                color='red',
                arrowprops=dict(arrowstyle='->', color='red'),
                bbox=dict(boxstyle='round', facecolor='white', alpha=0.8)
            )

        ax.set_xlabel('Payload Size (bytes)', fontsize=12)
        ax.set_ylabel('Word Drop Rate', fontsize=12)
        ax.set_title(title, fontsize=14, fontweight='bold')
        fig.tight_layout()

        return self._save(fig, output_file, 'goodput_heatmap.png')

    def plot_completion(
        self,
        output_file: Optional[str] = None,
        title: str = "Completion Rate vs Drop Rate and Payload Size",
        figsize: Tuple[int, int] = (12, 8)
    ) -> str:
        """Heatmap of the fraction of runs that delivered every message."""
        df = self.df.copy()
        if 'complete' in df.columns:
            df['complete'] = df['complete'].astype(float)
        table = self._pivot('complete', df)

        fig, ax = plt.subplots(figsize=figsize)
        sns.heatmap(
            table,
            annot=True,
            fmt='.0%',
            cmap='RdYlGn',
            vmin=0.0,
            vmax=1.0,
            ax=ax,
            cbar_kws={'label': 'Completion rate'}
        )
        ax.set_xlabel('Payload Size (bytes)', fontsize=12)
        ax.set_ylabel('Word Drop Rate', fontsize=12)
        ax.set_title(title, fontsize=14, fontweight='bold')
        fig.tight_layout()

        return self._save(fig, output_file, 'completion_heatmap.png')


if __name__ == "__main__":
    print("=" * 60)
    print("HEATMAP GENERATOR TEST")
    print("=" * 60)

    rng = np.random.default_rng(0)
    rows = []
    for p in [0.0, 0.001, 0.005, 0.01]:
        for size in [16, 64, 256, 1024]:
            for run in range(3):
                goodput = size * 40 * (1 - p) ** (size / 4 + 6) + rng.normal(0, 200)
                rows.append({
                    'drop_rate': p,
                    'payload_size': size,
                    'run_id': run,
                    'goodput': max(0.0, goodput),
                    'complete': rng.random() > p * 20
                })

    heatmap = GoodputHeatmap(results=rows)
    print(f"Optimal point: {heatmap.get_optimal_point()}")
    print(f"Test complete: {heatmap.plot(title='Test Goodput Heatmap')}")
