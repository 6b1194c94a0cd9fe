#!/usr/bin/env python3
"""
Evacuation Cellular Automaton Simulation

Evacuation of a multi-room building on a floor field cellular automaton
(static potential towards the exits, dynamic potential of the crowd).

Usage:
    evac-ca --config configs/office.yaml [options]

Examples:
    evac-ca --config configs/office.yaml
    evac-ca --config configs/office.yaml --order random --record --out-dir results/
    evac-ca --config configs/office.yaml --no-csv --quiet
    evac-ca --config configs/office.yaml --seed 42 --verbose
"""

import argparse
import logging
import sys
from pathlib import Path

from .config import ORDERS, load_config
from .model.building import build_problem
from .model.engine import EvacuationSimulation, IndividualOrder
from .model.recorder import ActionRecorder
from .export.csv_writer import CSVWriter, write_recording
from .export.reporter import Reporter


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Evacuation Cellular Automaton Simulation',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    evac-ca --config configs/office.yaml
    evac-ca --config configs/office.yaml --order random --record --out-dir results/
    evac-ca --config configs/office.yaml --no-csv --quiet
    evac-ca --config configs/office.yaml --seed 42 --verbose
        """
    )

    # Required arguments
    parser.add_argument('--config', type=Path, required=True,
                        help='Path to YAML configuration file')

    # Optional overrides
    parser.add_argument('--steps', type=int, default=None,
                        help='Override max simulation steps')
    parser.add_argument('--order', choices=ORDERS, default=None,
                        help='Override the order individuals are processed in')
    parser.add_argument('--out-dir', type=Path, default=Path('./output'),
                        help='Output directory for exports (default: ./output)')

    # Export toggles
    parser.add_argument('--csv', dest='csv', action='store_true', default=None,
                        help='Enable CSV export (default)')
    parser.add_argument('--no-csv', dest='csv', action='store_false',
                        help='Disable CSV export')

    parser.add_argument('--record', action='store_true', default=False,
                        help='Record all actions and export them as CSV')

    parser.add_argument('--quiet', action='store_true', default=False,
                        help='Suppress stdout output')
    parser.add_argument('--verbose', action='store_true', default=False,
                        help='Log debug output of the engine')

    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed for reproducibility')

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Load configuration
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        print(f"Error: Configuration file not found: {args.config}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    # Apply CLI overrides
    if args.steps is not None:
        config.max_steps = args.steps
    if args.order is not None:
        config.order = args.order
    if args.csv is not None:
        config.csv_enabled = args.csv
    if args.record:
        config.record_enabled = True
    config.quiet = args.quiet
    if args.seed is not None:
        config.seed = args.seed
    config.out_dir = args.out_dir

    # Build the building
    if not config.quiet:
        print(f"Initializing simulation...")
        print(f"  Floors: {len(config.floors)}, rooms: {len(config.rooms)}")
        print(f"  Max steps: {config.max_steps}")
        print(f"  Order: {config.order}")

    try:
        problem = build_problem(config, ActionRecorder())
    except ValueError as e:
        print(f"Error building scenario: {e}", file=sys.stderr)
        return 1

    automaton = problem.automaton
    if not config.quiet:
        print(f"  Exits: {len(automaton.exits)} cells, {len(automaton.static_potentials)} potentials")
        print(f"  Placed: {automaton.individual_count} individuals")

    # The recording must cover the start of the automaton to be replayable.
    if config.record_enabled:
        automaton.start_recording()

    simulation = EvacuationSimulation(problem, IndividualOrder(config.order), seed=config.seed)
    simulation.initialize()

    # Initialize exporters
    csv_writer = None
    if config.csv_enabled:
        csv_writer = CSVWriter(config.out_dir / 'simulation_log.csv')
        csv_writer.open()

    reporter = Reporter(str(args.config), config.seed)

    # Main simulation loop
    if not config.quiet:
        print(f"\nRunning simulation...")

    try:
        while not simulation.is_finished():
            state = simulation.step()

            # Export CSV
            if csv_writer:
                csv_writer.append(state)

            # Update reporter
            reporter.update(state)

            # Progress indicator
            if not config.quiet and state.step % 100 == 0:
                not_safe = int(state.metrics.get('not_safe', 0))
                evacuated = int(state.metrics.get('evacuated', 0))
                print(f"  Step {state.step}: {not_safe} not safe, {evacuated} evacuated")

    except KeyboardInterrupt:
        if not config.quiet:
            print("\nSimulation interrupted by user.")

    result = simulation.terminate()

    # Cleanup and final exports
    if csv_writer:
        csv_writer.close()
        if not config.quiet:
            print(f"\nCSV saved: {config.out_dir / 'simulation_log.csv'}")

    if config.record_enabled:
        automaton.stop_recording()
        recording_path = config.out_dir / 'recording.csv'
        count = write_recording(automaton.get_recording(), recording_path)
        if not config.quiet:
            print(f"Recording saved: {recording_path} ({count} actions)")

    # Print summary report
    if not config.quiet:
        report = reporter.generate_summary(
            result,
            config.out_dir,
            config.csv_enabled,
            config.record_enabled
        )
        print(report)

    return 0


if __name__ == '__main__':
    sys.exit(main())
