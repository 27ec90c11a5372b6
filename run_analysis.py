#!/usr/bin/env python3
"""
Watershed Exposure Analysis Runner

Unified command-line interface over the pipeline stages. Each stage runs as
its own script in a subprocess and reads the previous stage's persisted
files, so a failed stage can be re-run alone.
"""

import os
import sys
import argparse
import subprocess
import logging
from typing import List, Optional

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
if SCRIPT_DIR not in sys.path:
    sys.path.insert(0, SCRIPT_DIR)

FACILITY_TABLES = ['carceral', 'school', 'hospital', 'nursing_home']
SOURCE_TABLES = ['pfas_known', 'pfas_suspected']
DEFAULT_THRESHOLDS = [0, 1, 5, 10]


def _execute_analysis_script(
    script_name: str,
    script_args: List[str],
    log_action_description: str,
) -> bool:
    """
    Run a pipeline script as a subprocess.

    Args:
        script_name: The filename of the Python script to run (e.g., 'proximity_analysis.py').
        script_args: A list of arguments to pass to the script.
        log_action_description: A human-readable description of the action for logging.

    Returns:
        True if the script ran successfully, False otherwise.
    """
    full_script_path = os.path.join(SCRIPT_DIR, script_name)
    cmd: List[str] = [sys.executable, full_script_path] + [str(arg) for arg in script_args]

    logger.info("Executing: %s", log_action_description)
    logger.debug("Full command: %s", ' '.join(cmd))

    try:
        subprocess.run(cmd, check=True, text=True, capture_output=False)
        logger.info("%s completed successfully.", log_action_description)
        return True
    except subprocess.CalledProcessError as exc:
        logger.error(
            "%s failed. Subprocess returned non-zero exit status %d.",
            log_action_description, exc.returncode
        )
        return False
    except FileNotFoundError:
        logger.error("Failed to run %s: Script not found at %s.", log_action_description, full_script_path)
        return False


def get_results_directory() -> str:
    """Results directory from Settings (WSX_RESULTS_DIR or data/results), created if missing."""
    from utils.config import Settings

    results_dir = Settings.from_env().results_dir
    os.makedirs(results_dir, exist_ok=True)
    return results_dir


def get_default_output_path(filename: str) -> str:
    return os.path.join(get_results_directory(), filename)


def run_enrichment(sources: Optional[List[str]] = None, batch_size: Optional[int] = None,
                   force: bool = False, verbose: bool = False) -> bool:
    script_args: List[str] = list(sources or [])
    if batch_size is not None:
        script_args.extend(['--batch-size', batch_size])
    if force:
        script_args.append('--force')
    if verbose:
        script_args.append('--verbose')
    return _execute_analysis_script(
        script_name='enrich_datasets.py',
        script_args=script_args,
        log_action_description=f"Enrichment of {', '.join(sources) if sources else 'all point datasets'}",
    )


def run_proximity_analysis(
    target: str,
    sources: List[str],
    thresholds: Optional[List[float]] = None,
    output_file: Optional[str] = None,
    by_category: bool = False,
    open_only: bool = False,
    verbose: bool = False,
) -> bool:
    """Wrapper around proximity_analysis.py respecting its CLI."""
    script_args: List[str] = [target] + list(sources)
    if thresholds:
        script_args.extend(['--thresholds'] + [str(t) for t in thresholds])
    if output_file:
        script_args.extend(['--output', output_file])
    if by_category:
        script_args.append('--by-category')
    if open_only:
        script_args.append('--open-only')
    if verbose:
        script_args.append('--verbose')

    return _execute_analysis_script(
        script_name='proximity_analysis.py',
        script_args=script_args,
        log_action_description=f"Proximity analysis of {target} below {'+'.join(sources)}",
    )


def run_permutation_test(target: str, sources: List[str], threshold: float = 0,
                         n_permutations: int = 1000, seed: Optional[int] = None,
                         output_file: Optional[str] = None, verbose: bool = False) -> bool:
    script_args: List[str] = ['permutation', target] + list(sources)
    script_args.extend(['--threshold', threshold, '--n-permutations', n_permutations])
    if seed is not None:
        script_args.extend(['--seed', seed])
    if output_file:
        script_args.extend(['--output', output_file])
    if verbose:
        script_args.append('--verbose')
    return _execute_analysis_script(
        script_name='statistical_tests.py',
        script_args=script_args,
        log_action_description=f"Permutation test for {target} (urban vs rural)",
    )


def run_full_pipeline(
    *,
    thresholds: Optional[List[float]] = None,
    batch_size: Optional[int] = None,
    skip_enrichment: bool = False,
    seed: Optional[int] = None,
    verbose: bool = False,
) -> bool:
    """Execute every stage in order.

    1. Watershed/elevation/census enrichment of all point datasets.
    2. Proximity summaries for each facility table against all PFAS sources.
    3. Urban/rural permutation tests for the census-enriched facility tables.
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    thresholds = thresholds or DEFAULT_THRESHOLDS

    if not skip_enrichment:
        logger.info("=== PIPELINE STEP 1: Enriching point datasets ===")
        if not run_enrichment(batch_size=batch_size, verbose=verbose):
            logger.error("Pipeline aborted: enrichment failed. Re-run to resume.")
            return False

    logger.info("=== PIPELINE STEP 2: Proximity summaries ===")
    for target in FACILITY_TABLES:
        output = get_default_output_path(f"proximity_{target}.csv")
        if not run_proximity_analysis(target, SOURCE_TABLES, thresholds, output,
                                      by_category=True, verbose=verbose):
            logger.error("Pipeline aborted: proximity analysis for %s failed.", target)
            return False

    logger.info("=== PIPELINE STEP 3: Permutation tests ===")
    from data_pipeline import registry

    census_tables = [registry.get(name).output_name for name in registry.list_by_role('facility')
                     if registry.get(name).census_enrich]
    for target in census_tables:
        output = get_default_output_path(f"permutation_{target}.json")
        if not run_permutation_test(target, SOURCE_TABLES, thresholds[0], seed=seed,
                                    output_file=output, verbose=verbose):
            logger.error("Pipeline aborted: permutation test for %s failed.", target)
            return False

    logger.info("=== PIPELINE COMPLETE ===")
    return True


def main():
    parser = argparse.ArgumentParser(description='Watershed Exposure Analysis Tools')
    subparsers = parser.add_subparsers(dest='command', help='Analysis command to run')

    enrich_parser = subparsers.add_parser('enrich', help='Tag and enrich point datasets (resumable).')
    enrich_parser.add_argument('sources', nargs='*', help='Registered datasets (default: all point datasets)')
    enrich_parser.add_argument('--batch-size', type=int, help='Lookups per persisted batch.')
    enrich_parser.add_argument('--force', action='store_true', help='Start over instead of resuming.')
    enrich_parser.add_argument('--verbose', '-v', action='store_true', help='Enable detailed console output.')

    proximity_parser = subparsers.add_parser('proximity', help='Summarize facilities downhill of sources.')
    proximity_parser.add_argument('target', help='Enriched facility table.')
    proximity_parser.add_argument('sources', nargs='+', help='Enriched source tables.')
    proximity_parser.add_argument('--thresholds', type=float, nargs='+', help='Source-count thresholds.')
    proximity_parser.add_argument('--output', type=str, help='CSV file for the summary rows.')
    proximity_parser.add_argument('--by-category', action='store_true', help='Break results down by source category.')
    proximity_parser.add_argument('--open-only', action='store_true', help="Only facilities with status 'open'.")
    proximity_parser.add_argument('--verbose', '-v', action='store_true', help='Enable detailed console output.')

    stats_parser = subparsers.add_parser('permutation', help='Urban/rural permutation test for a facility table.')
    stats_parser.add_argument('target', help='Census-enriched facility table.')
    stats_parser.add_argument('sources', nargs='+', help='Enriched source tables.')
    stats_parser.add_argument('--threshold', type=float, default=0)
    stats_parser.add_argument('--n-permutations', type=int, default=1000)
    stats_parser.add_argument('--seed', type=int)
    stats_parser.add_argument('--output', type=str, help='JSON file for the result.')
    stats_parser.add_argument('--verbose', '-v', action='store_true', help='Enable detailed console output.')

    pipeline_parser = subparsers.add_parser('pipeline', help='Run enrichment, proximity summaries and tests in order.')
    pipeline_parser.add_argument('--thresholds', type=float, nargs='+', help=f'Thresholds (default: {DEFAULT_THRESHOLDS}).')
    pipeline_parser.add_argument('--batch-size', type=int, help='Lookups per persisted batch.')
    pipeline_parser.add_argument('--skip-enrichment', action='store_true', help='Reuse the enriched tables on disk.')
    pipeline_parser.add_argument('--seed', type=int, help='Seed for the permutation tests.')
    pipeline_parser.add_argument('--verbose', '-v', action='store_true', help='Enable detailed console output.')

    args = parser.parse_args()

    if args.command == 'enrich':
        success = run_enrichment(args.sources, args.batch_size, args.force, args.verbose)
    elif args.command == 'proximity':
        success = run_proximity_analysis(args.target, args.sources, args.thresholds, args.output,
                                         args.by_category, args.open_only, args.verbose)
    elif args.command == 'permutation':
        success = run_permutation_test(args.target, args.sources, args.threshold, args.n_permutations,
                                       args.seed, args.output, args.verbose)
    elif args.command == 'pipeline':
        success = run_full_pipeline(
            thresholds=args.thresholds,
            batch_size=args.batch_size,
            skip_enrichment=args.skip_enrichment,
            seed=args.seed,
            verbose=args.verbose,
        )
    else:
        parser.print_help()
        return 0

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
