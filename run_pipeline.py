"""
ViSQOL-style Audio Quality Pipeline Runner
==========================================

Score degraded audio against its reference and predict MOS-LQO.

Usage:
    python run_pipeline.py --reference_file ref.wav --degraded_file deg.wav \\
        --similarity_to_quality_model model.pkl
    python run_pipeline.py --reference_file ref.wav --degraded_file deg.wav --use_speech_mode
    python run_pipeline.py --batch_input_csv pairs.csv --use_speech_mode --workers 4
    python run_pipeline.py --report-only results.csv
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from datetime import datetime

from visqol_pipeline.config import PipelineConfig
from visqol_pipeline.exceptions import CompareError, InitializationError
from visqol_pipeline.orchestrator import (
    VisqolManager, read_batch_csv, results_dataframe, save_results
)
from visqol_pipeline.reporting import SimilarityReporter, generate_report


def setup_logging(output_dir: str, verbose: bool = False):
    """Configure logging for the pipeline."""
    log_dir = Path(output_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"visqol_{timestamp}.log"

    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    # Reduce noise from third-party libraries
    logging.getLogger('matplotlib').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)
    logging.getLogger('numba').setLevel(logging.WARNING)

    return str(log_file)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ViSQOL-style perceptual audio quality pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full-band audio with a trained regression model
  python run_pipeline.py --reference_file ref.wav --degraded_file deg.wav \\
      --similarity_to_quality_model model.pkl

  # Speech mode (no model needed)
  python run_pipeline.py --reference_file ref.wav --degraded_file deg.wav --use_speech_mode

  # Batch of pairs from a CSV with 'reference' and 'degraded' columns
  python run_pipeline.py --batch_input_csv pairs.csv --use_speech_mode --workers 4
        """
    )

    parser.add_argument('--reference_file', type=str, help='Reference audio file')
    parser.add_argument('--degraded_file', type=str, help='Degraded audio file')
    parser.add_argument(
        '--batch_input_csv',
        type=str,
        help="CSV with 'reference' and 'degraded' columns (overrides single-pair flags)"
    )
    parser.add_argument('--results_csv', type=str, help='Write results table to this CSV')
    parser.add_argument('--output_debug', type=str, help='Write full debug results to this JSON')
    parser.add_argument(
        '--similarity_to_quality_model',
        type=str,
        help='Serialized scikit-learn regression model (required unless --use_speech_mode)'
    )
    parser.add_argument('--use_speech_mode', action='store_true', help='Speech mode scoring')
    parser.add_argument(
        '--use_unscaled_speech_mos_mapping',
        action='store_true',
        help='Skip rescaling of the speech MOS mapping (perfect match no longer maps to 5)'
    )
    parser.add_argument(
        '--workers', '-w',
        type=int,
        default=1,
        help='Number of parallel workers for batches (default: 1)'
    )
    parser.add_argument(
        '--output', '-o',
        type=str,
        default='visqol_output',
        help='Output directory for logs, results and reports (default: visqol_output)'
    )
    parser.add_argument('--report', action='store_true', help='Generate plots and summary report')
    parser.add_argument(
        '--report-only',
        type=str,
        metavar='CSV_FILE',
        help='Generate report from existing results CSV (skip processing)'
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    log_file = setup_logging(args.output, args.verbose)
    logger = logging.getLogger(__name__)

    # Report-only mode
    if args.report_only:
        report_dir = Path(args.output) / "reports"
        generate_report(args.report_only, str(report_dir))
        logger.info(f"Report generated in: {report_dir}")
        return 0

    if args.batch_input_csv:
        try:
            pairs = read_batch_csv(args.batch_input_csv)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read batch file: {e}")
            return 1
    elif args.reference_file and args.degraded_file:
        pairs = [(args.reference_file, args.degraded_file)]
    else:
        parser.error("Provide --batch_input_csv or both --reference_file and --degraded_file")

    logger.info(f"Pairs: {len(pairs)}")
    logger.info(f"Log file: {log_file}")

    config = PipelineConfig(
        model_path=args.similarity_to_quality_model,
        use_speech_mode=args.use_speech_mode,
        use_unscaled_speech_mos_mapping=args.use_unscaled_speech_mos_mapping,
        n_workers=args.workers,
        verbose=args.verbose,
        output_dir=args.output
    )

    manager = VisqolManager(config)
    try:
        manager.init()
    except InitializationError as e:
        logger.error(f"Could not initialize: {e}")
        return 1

    if len(pairs) == 1:
        try:
            results = [manager.compare_files(*pairs[0])]
        except CompareError as e:
            logger.error(f"Comparison failed: {e}")
            return 1
    else:
        results = manager.compare_batch(pairs, show_progress=True)

    if not results:
        logger.warning("No results generated!")
        return 1

    if args.results_csv:
        Path(args.results_csv).parent.mkdir(parents=True, exist_ok=True)
        results_dataframe(results).to_csv(args.results_csv, index=False)
        logger.info(f"Saved results CSV: {args.results_csv}")

    if args.output_debug:
        Path(args.output_debug).parent.mkdir(parents=True, exist_ok=True)
        with open(args.output_debug, 'w') as f:
            json.dump([r.to_dict() for r in results], f, indent=2)
        logger.info(f"Saved debug output: {args.output_debug}")

    save_results(results, args.output, config)

    if args.report:
        SimilarityReporter(results, str(Path(args.output) / "reports")).generate_full_report()

    # Print summary
    print("\n" + "=" * 70)
    for result in results:
        print(f"Reference: {result.reference_filepath}")
        print(f"Degraded:  {result.degraded_filepath}")
        print(f"MOS-LQO:   {result.moslqo:.4f}")
        print(f"NSIM:      {result.vnsim:.4f}")
        print("-" * 70)
    print(f"Scored {len(results)}/{len(pairs)} pairs")
    print("=" * 70)

    return 0


if __name__ == "__main__":
    sys.exit(main())
