import asyncio
import argparse
import sys
from pathlib import Path

from featureguard.config import get_config
from featureguard.pipeline import FeatureGuardPipeline
from featureguard.utils.logging_config import setup_logging


def main():
    """Main entry point for the feature sanity pipeline"""
    parser = argparse.ArgumentParser(description="Feature leakage detection and pruning pipeline")
    parser.add_argument("--data-path", required=True, help="Path to the dataset")
    parser.add_argument("--target-column", required=True, help="Name of the label column")
    parser.add_argument("--project-name", help="Name of the project")
    parser.add_argument("--config", help="Path to configuration file")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--check-sample", type=float, help="Fraction of rows used by the sanity checker")
    parser.add_argument("--remove-bad-features", action="store_true",
                        help="Remove flagged columns instead of only reporting them")

    args = parser.parse_args()

    # Load configuration
    config = get_config(args.config)
    if args.check_sample is not None:
        config.sanity_checker.CHECK_SAMPLE = args.check_sample
    if args.remove_bad_features:
        config.sanity_checker.REMOVE_BAD_FEATURES = True

    config.create_directories()

    # Setup logging
    setup_logging(log_level=args.log_level, log_dir=str(config.paths.LOGS_DIR), run_name=args.project_name)

    issues = config.validate_config()
    if issues:
        print(f"Error: invalid configuration: {issues}")
        sys.exit(1)

    # Validate data path exists
    if not Path(args.data_path).exists():
        print(f"Error: Data file not found at {args.data_path}")
        sys.exit(1)

    async def run_pipeline():
        """Run the feature pipeline"""
        pipeline = FeatureGuardPipeline(config)

        result = await pipeline.run_pipeline(
            data_path=args.data_path,
            target_column=args.target_column,
            project_name=args.project_name
        )

        if result.get('status') == 'failed':
            errors = result.get('errors') or [result.get('error')]
            print(f"Pipeline failed: {errors}")
            sys.exit(1)

        report = result.get('sanity_report', {})
        print("Pipeline completed successfully")
        print(f"Project: {result.get('project_name')}")
        print(f"Checked columns: {report.get('checked')}")
        print(f"Dropped columns ({len(report.get('dropped', []))}):")
        for column in report.get('dropped', []):
            reasons = '; '.join(report.get('drop_reasons', {}).get(column, []))
            print(f"  {column}: {reasons}")
        print(f"Model saved to: {result.get('model_path')}")

    asyncio.run(run_pipeline())


if __name__ == "__main__":
    main()
