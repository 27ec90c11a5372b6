#!/usr/bin/env python3
"""
Proximity Analysis for Watershed Exposure

Counts facilities (prisons, schools, hospitals, nursing homes) that sit in the
same HUC-12 watershed as, and strictly lower than, contamination sources.
A facility qualifies when more than *threshold* such sources exist. Output is
one summary row per threshold (and optionally per source category) with the
qualifying count, its share of all target facilities, and the summed
population of qualifying facilities with a known population.
"""

import sys
import os
import json
import argparse
from typing import Dict, Iterable, List, Optional, Any
import geopandas as gpd
import pandas as pd
import logging

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
if SCRIPT_DIR not in sys.path:
    sys.path.insert(0, SCRIPT_DIR)

from utils import file_utils
from utils.config import POPULATION_SENTINEL, Settings

SUMMARY_COLUMNS = [
    'label', 'source_category', 'threshold',
    'facility_count', 'total_facilities', 'percent', 'population_affected',
]


def proximity_pairs(targets: pd.DataFrame, sources: pd.DataFrame,
                    huc_col: str = 'huc', elev_col: str = 'elevation') -> pd.DataFrame:
    """All (facility, source) pairs sharing a watershed with the facility strictly lower.

    Rows without a watershed identifier never pair up, and rows with a missing
    elevation never satisfy the comparison.
    """
    target_cols = ['facility_id', 'population', huc_col, elev_col]
    source_cols = ['source_id', huc_col, elev_col]
    if 'source_category' in sources.columns:
        source_cols.append('source_category')

    left = pd.DataFrame(targets[target_cols])
    right = pd.DataFrame(sources[source_cols])
    left = left[left[huc_col].fillna('') != '']
    right = right[right[huc_col].fillna('') != '']

    joined = left.merge(right, on=huc_col, how='inner', suffixes=('_target', '_source'))
    lower = joined[f'{elev_col}_target'] < joined[f'{elev_col}_source']
    return joined[lower].reset_index(drop=True)


def qualifying_facilities(pairs: pd.DataFrame, threshold: float) -> pd.DataFrame:
    """Distinct (facility_id, population) of facilities with more than *threshold* pairs."""
    if pairs.empty:
        return pd.DataFrame({'facility_id': pd.Series(dtype=str), 'population': pd.Series(dtype='int64')})
    counts = pairs.groupby('facility_id')['source_id'].transform('size')
    qualifying = pairs.loc[counts > threshold, ['facility_id', 'population']]
    return qualifying.drop_duplicates().reset_index(drop=True)


def known_population(populations: pd.Series) -> int:
    """Sum of populations, skipping the missing-value sentinel and nulls."""
    values = pd.to_numeric(populations, errors='coerce')
    values = values[values.notna() & (values != POPULATION_SENTINEL)]
    return int(values.sum())


def summary_row(targets: pd.DataFrame, pairs: pd.DataFrame, threshold: float,
                label: str, source_category: str = 'all') -> Dict[str, Any]:
    qualifying = qualifying_facilities(pairs, threshold)
    total = len(targets)
    count = len(qualifying)
    return {
        'label': label,
        'source_category': source_category,
        'threshold': threshold,
        'facility_count': count,
        'total_facilities': total,
        'percent': 100.0 * count / total if total else 0.0,
        'population_affected': known_population(qualifying['population']),
    }


def summarize(targets: pd.DataFrame, sources: pd.DataFrame, threshold: float,
              label: str) -> Dict[str, Any]:
    """One summary row for *targets* downhill of *sources* at *threshold*."""
    pairs = proximity_pairs(targets, sources)
    return summary_row(targets, pairs, threshold, label)


def summarize_thresholds(targets: pd.DataFrame, sources: pd.DataFrame,
                         thresholds: Iterable[float], label: str,
                         by_category: bool = False) -> pd.DataFrame:
    """Summary rows for every threshold, plus one per source category if *by_category*."""
    pairs = proximity_pairs(targets, sources)
    groups: List[tuple] = [('all', pairs)]
    if by_category and 'source_category' in pairs.columns:
        for category in sorted(sources['source_category'].dropna().unique()):
            groups.append((category, pairs[pairs['source_category'] == category]))

    rows = []
    for threshold in thresholds:
        for category, category_pairs in groups:
            row = summary_row(targets, category_pairs, threshold, label, category)
            logger.info(
                f"{label} [{category}] threshold>{threshold}: {row['facility_count']}/{row['total_facilities']} "
                f"({row['percent']:.2f}%), population {row['population_affected']}"
            )
            rows.append(row)
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def filter_open(targets: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Keep facilities whose status is 'open'."""
    if 'status' not in targets.columns:
        logger.warning("No status column; keeping all facilities")
        return targets
    return targets[targets['status'] == 'open']


def load_enriched_table(name: str, settings: Settings) -> gpd.GeoDataFrame:
    table = file_utils.read_enriched(name, settings.enriched_dir)
    if table is None:
        raise FileNotFoundError(
            f"No enriched table for '{name}' in {settings.enriched_dir}; run enrich_datasets.py first"
        )
    return table


def combine_sources(tables: List[gpd.GeoDataFrame]) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(pd.concat(tables, ignore_index=True), crs=tables[0].crs)


def run_proximity(target: str, sources: List[str], thresholds: List[float],
                  label: Optional[str] = None, by_category: bool = False,
                  open_only: bool = False, settings: Optional[Settings] = None) -> pd.DataFrame:
    settings = settings or Settings.from_env()
    targets = load_enriched_table(target, settings)
    if open_only:
        targets = filter_open(targets)
    source_table = combine_sources([load_enriched_table(s, settings) for s in sources])
    label = label or f"{target} below {'+'.join(sources)}"
    return summarize_thresholds(targets, source_table, thresholds, label, by_category=by_category)


def main():
    parser = argparse.ArgumentParser(description='Count facilities downhill of contamination sources in the same watershed.')
    parser.add_argument('target', help="Enriched facility table (e.g. 'carceral', 'school')")
    parser.add_argument('sources', nargs='+', help="Enriched source tables (e.g. 'pfas_known pfas_suspected')")
    parser.add_argument('--thresholds', type=float, nargs='+', default=[0],
                        help='Qualify facilities with more than this many upstream sources (default: 0)')
    parser.add_argument('--label', type=str, help='Label for the summary rows')
    parser.add_argument('--by-category', action='store_true', help='Add one row per source category')
    parser.add_argument('--open-only', action='store_true', help="Only count facilities with status 'open'")
    parser.add_argument('--output', type=str, help='CSV file for the summary rows')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose output')

    args = parser.parse_args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        summary = run_proximity(args.target, args.sources, args.thresholds, args.label,
                                by_category=args.by_category, open_only=args.open_only)
    except (FileNotFoundError, ValueError, KeyError) as e:
        logger.error(f"Proximity analysis failed: {e}")
        print(json.dumps({"error": str(e), "target": args.target}))
        sys.exit(1)

    if args.output:
        file_utils.dataframe_to_csv(summary, args.output)

    print(json.dumps(summary.to_dict(orient='records'), indent=2))
    sys.exit(0)


if __name__ == "__main__":
    main()
