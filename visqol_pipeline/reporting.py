"""
Reporting and Visualization Module
==================================

Plots and text summaries for similarity results.

Features:
- Per-band NSIM against band center frequency
- Per-patch NSIM over time
- MOS-LQO distribution across a batch
- Text summary report
"""

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns
import pandas as pd
import numpy as np
from pathlib import Path
from typing import Dict, List, Optional
import logging
from datetime import datetime

from .orchestrator import compute_summary, results_dataframe
from .results import SimilarityResult

logger = logging.getLogger(__name__)

# Configure matplotlib for publication quality
plt.rcParams.update({
    'figure.figsize': (12, 8),
    'figure.dpi': 100,
    'savefig.dpi': 150,
    'font.size': 12,
    'axes.labelsize': 14,
    'axes.titlesize': 16,
    'legend.fontsize': 11,
    'axes.grid': True,
    'grid.alpha': 0.3
})


class SimilarityReporter:
    """
    Generate plots and reports for one or many comparisons.
    """

    def __init__(self, results: List[SimilarityResult], output_dir: str = "reports"):
        """
        Initialize reporter.

        Args:
            results: SimilarityResult list
            output_dir: Output directory for reports
        """
        self.results = results
        self.df = results_dataframe(results)
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.colors = sns.color_palette("husl", 8)
        sns.set_style("whitegrid")

    def _label(self, index: int) -> str:
        result = self.results[index]
        if result.degraded_filepath:
            return Path(result.degraded_filepath).name
        return f"pair {index}"

    def _save(self, fig: plt.Figure, name: str) -> str:
        save_path = self.output_dir / name
        fig.savefig(save_path, bbox_inches='tight')
        plt.close(fig)
        logger.info(f"Saved {save_path}")
        return str(save_path)

    def plot_band_similarity(self, save: bool = True) -> Optional[plt.Figure]:
        """
        NSIM per frequency band, one line per comparison.
        """
        if not self.results:
            logger.warning("No results to plot")
            return None

        fig, ax = plt.subplots(figsize=(12, 6))
        for i, result in enumerate(self.results):
            ax.semilogx(result.center_freq_bands, result.fvnsim, marker='o',
                        markersize=3, color=self.colors[i % len(self.colors)],
                        label=self._label(i))

        ax.set_xlabel('Band center frequency (Hz)')
        ax.set_ylabel('Mean NSIM')
        ax.set_title('Similarity per Frequency Band')
        ax.set_ylim(top=1.05)
        if len(self.results) <= 8:
            ax.legend(loc='lower left')
        plt.tight_layout()

        if save:
            self._save(fig, "band_similarity.png")
        return fig

    def plot_patch_similarity(self, save: bool = True) -> Optional[plt.Figure]:
        """
        Per-patch NSIM along the reference timeline.
        """
        if not self.results:
            logger.warning("No results to plot")
            return None

        fig, ax = plt.subplots(figsize=(12, 6))
        for i, result in enumerate(self.results):
            times = [(p.ref_patch_start_time + p.ref_patch_end_time) / 2 for p in result.patch_sims]
            sims = [p.similarity for p in result.patch_sims]
            ax.plot(times, sims, marker='s', markersize=4,
                    color=self.colors[i % len(self.colors)], label=self._label(i))

        ax.set_xlabel('Reference time (s)')
        ax.set_ylabel('Patch NSIM')
        ax.set_title('Similarity per Patch')
        if len(self.results) <= 8:
            ax.legend(loc='lower left')
        plt.tight_layout()

        if save:
            self._save(fig, "patch_similarity.png")
        return fig

    def plot_moslqo_distribution(self, save: bool = True) -> Optional[plt.Figure]:
        """
        Histogram of MOS-LQO across the batch.
        """
        if 'moslqo' not in self.df.columns or self.df['moslqo'].dropna().empty:
            logger.warning("No MOS-LQO values for distribution plot")
            return None

        fig, ax = plt.subplots(figsize=(10, 6))
        data = self.df['moslqo'].dropna()
        sns.histplot(data, kde=len(data) > 1, ax=ax, color=self.colors[0], binrange=(1, 5))
        ax.axvline(data.mean(), color='red', linestyle='--', label=f'Mean: {data.mean():.2f}')
        ax.set_xlabel('MOS-LQO')
        ax.set_title('MOS-LQO Distribution')
        ax.legend()
        plt.tight_layout()

        if save:
            self._save(fig, "moslqo_distribution.png")
        return fig

    def generate_summary_report(self) -> str:
        """
        Write a plain-text summary and return its path.
        """
        summary: Dict = compute_summary(self.df)
        lines = [
            "=" * 70,
            "SIMILARITY SUMMARY",
            "=" * 70,
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            f"Pairs: {summary['total_pairs']}",
        ]
        for metric in ['moslqo', 'vnsim']:
            if f"{metric}_mean" in summary:
                lines.append(
                    f"{metric.upper():<7} mean={summary[f'{metric}_mean']:.4f} "
                    f"std={summary[f'{metric}_std']:.4f} "
                    f"min={summary[f'{metric}_min']:.4f} "
                    f"max={summary[f'{metric}_max']:.4f}"
                )

        if self.results:
            fvnsim = np.mean([r.fvnsim for r in self.results], axis=0)
            worst = int(np.argmin(fvnsim))
            lines.append(
                f"Weakest band: {self.results[0].center_freq_bands[worst]:.1f} Hz "
                f"(mean NSIM {fvnsim[worst]:.4f})"
            )
        lines.append("=" * 70)

        report_path = self.output_dir / "summary_report.txt"
        with open(report_path, 'w', encoding='utf-8') as f:
            f.write("\n".join(lines) + "\n")
        logger.info(f"Summary report saved to {report_path}")
        return str(report_path)

    def generate_full_report(self):
        """
        Generate complete report package.
        """
        logger.info("Generating full report package...")
        self.plot_band_similarity()
        self.plot_patch_similarity()
        self.plot_moslqo_distribution()
        self.generate_summary_report()
        self.df.to_csv(self.output_dir / "results.csv", index=False)
        logger.info(f"Full report package saved to {self.output_dir}")


def generate_report(results_csv: str, output_dir: str = "reports"):
    """
    Plot the MOS-LQO distribution from a previously saved results CSV.

    Per-band and per-patch plots need full results and are only
    available through SimilarityReporter.
    """
    df = pd.read_csv(results_csv)
    reporter = SimilarityReporter([], output_dir)
    reporter.df = df
    reporter.plot_moslqo_distribution()
    reporter.generate_summary_report()
