"""
PECUZAL Command Line Interface

Usage:
    python -m pecuzal <command> [args]

Commands:
    embed       Reconstruct the phase space of a time series file
    config      Show the resolved embedding configuration

Examples:
    python -m pecuzal embed signals.parquet -o trajectory.parquet
    python -m pecuzal embed x.csv --columns x,y --delays 0:30 --theiler 5
    python -m pecuzal config --profile fast

SafeCLI:
    Argument parsing with safety checks for commands that write files:
    1. Input file validation (must exist)
    2. Output file protection (can't overwrite inputs)
    3. Overwrite confirmation for non-default outputs
    4. Clear help text with INPUT/OUTPUT labels
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

import numpy as np
import pandas as pd
import polars as pl
import yaml

from pecuzal.config import list_profiles, load_embedding_config
from pecuzal.engine import EmbeddingResult, PecuzalEngine
from pecuzal.validation import EmbeddingInputError

logger = logging.getLogger(__name__)


SUPPORTED_FORMATS = ('.csv', '.parquet', '.npy')

# Embedding options exposed as --flags, with their argparse types
OPTION_TYPES = {
    'sample_fraction': float,
    'theiler': int,
    'alpha': float,
    'p': float,
    'max_neighbors': int,
    'k': int,
    'horizon_factor': int,
    'max_cycles': int,
    'norm': str,
    'random_state': int,
    'n_jobs': int,
}


# ============================================================
# SAFE CLI
# ============================================================

class SafeCLI:
    """
    Command-line interface with input/output validation.

    Prevents accidental data destruction by:
    - Validating input files exist
    - Preventing output from overwriting inputs
    - Confirming overwrites of existing files
    """

    def __init__(
        self,
        description: str,
        allow_overwrite: bool = False,
        parser: Optional[argparse.ArgumentParser] = None,
    ):
        """
        Initialize CLI parser.

        Args:
            description: Program description for --help
            allow_overwrite: If True, skip overwrite confirmation (for scripts)
            parser: Existing (sub)parser to populate instead of a new one
        """
        if parser is None:
            parser = argparse.ArgumentParser(
                description=description,
                formatter_class=argparse.RawDescriptionHelpFormatter,
            )
        self.parser = parser
        self.inputs: List[str] = []
        self.outputs: List[str] = []
        self.derived: Dict[str, Callable[[argparse.Namespace], str]] = {}
        self.companions: Dict[str, Callable[[str], Path]] = {}
        self.allow_overwrite = allow_overwrite

        self.parser.add_argument(
            '-y', '--yes',
            action='store_true',
            help='Skip confirmation prompts (for automated scripts)'
        )
        self.parser.add_argument(
            '-q', '--quiet',
            action='store_true',
            help='Only log warnings and errors'
        )

    def add_input(self, name: str, help: str = '', positional: bool = False):
        """Add an input file argument."""
        self.inputs.append(name)

        if positional:
            self.parser.add_argument(name, metavar=name.upper(), help=f'[INPUT] {help}')
        else:
            self.parser.add_argument(
                f"--{name.replace('_', '-')}",
                required=True,
                metavar='FILE',
                help=f'[INPUT] {help}'
            )

    def add_output(
        self,
        name: str = 'output',
        derive: Optional[Callable[[argparse.Namespace], str]] = None,
        companion: Optional[Callable[[str], Path]] = None,
        help: str = '',
    ):
        """
        Add an output file argument.

        Args:
            name: Argument name
            derive: Builds the default path from the other arguments
            companion: Maps the output path to a second file written with it
            help: Help text
        """
        self.outputs.append(name)
        if derive is not None:
            self.derived[name] = derive
        if companion is not None:
            self.companions[name] = companion

        flags = ['-o', '--output'] if name == 'output' else [f"--{name.replace('_', '-')}"]
        self.parser.add_argument(*flags, dest=name, default=None, metavar='FILE', help=f'[OUTPUT] {help}')

    def add_option(self, name: str, default=None, type=str, help: str = '', choices: Optional[List] = None):
        """Add an option with a value."""
        self.parser.add_argument(
            f"--{name.replace('_', '-')}",
            dest=name,
            default=default,
            type=type,
            choices=choices,
            help=help
        )

    def validate(self, parsed: argparse.Namespace) -> argparse.Namespace:
        """
        Apply the safety checks to already parsed arguments.

        Raises:
            SystemExit: On validation failure
        """
        input_paths: Set[str] = set()
        for input_name in self.inputs:
            path = getattr(parsed, input_name, None)
            if path:
                input_paths.add(str(Path(path).resolve()))
                if not Path(path).exists():
                    self._error(f"Input file not found: {path}")

        for output_name in self.outputs:
            path = getattr(parsed, output_name, None)
            is_default = False
            if path is None and output_name in self.derived:
                path = self.derived[output_name](parsed)
                setattr(parsed, output_name, path)
                is_default = True
            if not path:
                continue

            targets = [str(path)]
            if output_name in self.companions:
                targets.append(str(self.companions[output_name](path)))

            for target in targets:
                if str(Path(target).resolve()) in input_paths:
                    self._error(
                        f"Output '{target}' matches an input file!\n"
                        f"       This would destroy your input data.\n"
                        f"       Use -o/--output to specify a different output path."
                    )

            for target in targets:
                if (
                    Path(target).exists()
                    and not is_default
                    and not self.allow_overwrite
                    and not parsed.yes
                ):
                    self._confirm_overwrite(target)

        return parsed

    def parse(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """Parse arguments with safety validation."""
        return self.validate(self.parser.parse_args(args))

    def _error(self, message: str):
        """Print error and exit."""
        print(f"\nERROR: {message}", file=sys.stderr)
        sys.exit(1)

    def _confirm_overwrite(self, path: str):
        """Ask user to confirm overwrite."""
        print(f"\nWARNING: Output file '{path}' already exists.")
        try:
            response = input("   Overwrite? [y/N]: ")
            if response.lower() != 'y':
                print("   Aborted.")
                sys.exit(0)
        except EOFError:
            self._error(
                f"Output file '{path}' exists and running non-interactively.\n"
                f"       Use -y/--yes to overwrite, or choose a different output path."
            )


# ============================================================
# FILE IO
# ============================================================

def parse_delays(text: str) -> np.ndarray:
    """
    Candidate delays from the command line.

    Accepts 'start:stop' or 'start:stop:step' (stop included) and comma
    separated lists such as '0,5,10'.
    """
    try:
        if ':' in text:
            parts = [int(p) for p in text.split(':')]
            if len(parts) not in (2, 3):
                raise ValueError(text)
            start, stop = parts[0], parts[1]
            step = parts[2] if len(parts) == 3 else 1
            if step <= 0:
                raise ValueError(text)
            return np.arange(start, stop + 1, step)
        return np.array([int(p) for p in text.split(',')])
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid delays '{text}': use start:stop[:step] or a comma list"
        )


def read_series(path, columns: Optional[List[str]] = None):
    """
    Load a time series file.

    .csv/.parquet are read with polars and all numeric columns (or the
    selected ones) become channels; .npy is loaded as a plain array.
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix == '.npy':
        if columns:
            raise EmbeddingInputError("--columns needs a .csv or .parquet input")
        return np.load(path)

    if suffix == '.csv':
        df = pl.read_csv(path)
    elif suffix == '.parquet':
        df = pl.read_parquet(path)
    else:
        raise EmbeddingInputError(f"Unsupported input format '{suffix}', expected one of {SUPPORTED_FORMATS}")

    if columns:
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise EmbeddingInputError(f"Columns not found in {path.name}: {missing}")
    else:
        columns = [name for name, dtype in df.schema.items() if dtype.is_numeric()]
        if not columns:
            raise EmbeddingInputError(f"No numeric columns in {path.name}")

    return pd.DataFrame({c: df[c].to_numpy() for c in columns})


def summary_path(path) -> Path:
    """Per-column summary written next to a trajectory file."""
    return Path(path).with_suffix('.summary.csv')


def write_result(result: EmbeddingResult, path) -> Path:
    """
    Write the trajectory (format from the suffix) and a per-column summary.

    Returns the summary path (<output stem>.summary.csv).
    """
    path = Path(path)
    suffix = path.suffix.lower()
    path.parent.mkdir(parents=True, exist_ok=True)

    if suffix == '.npy':
        np.save(path, result.trajectory)
    else:
        df = pl.DataFrame({
            label: result.trajectory[:, i]
            for i, label in enumerate(result.column_labels)
        })
        if suffix == '.csv':
            df.write_csv(path)
        elif suffix == '.parquet':
            df.write_parquet(path)
        else:
            raise EmbeddingInputError(f"Unsupported output format '{suffix}', expected one of {SUPPORTED_FORMATS}")

    target = summary_path(path)
    summary = result.to_frame()
    pl.DataFrame({c: summary[c].tolist() for c in summary.columns}).write_csv(target)
    return target


def _default_output(args: argparse.Namespace) -> str:
    source = Path(args.input)
    suffix = source.suffix.lower() if source.suffix.lower() in SUPPORTED_FORMATS else '.csv'
    return str(source.with_name(f"{source.stem}_embedding{suffix}"))


# ============================================================
# COMMANDS
# ============================================================

def cmd_embed(args) -> int:
    """Run the embedding search on a file."""
    overrides = {name: getattr(args, name) for name in OPTION_TYPES}
    columns = [c.strip() for c in args.columns.split(',')] if args.columns else None

    try:
        config = load_embedding_config(args.config, args.profile, **overrides)
        series = read_series(args.input, columns)

        logger.info(f"Embedding {args.input}")
        result = PecuzalEngine(config).run(series, args.delays)

        written = write_result(result, args.output)
    except Exception as e:
        logger.error(f"Embedding failed: {e}")
        return 1

    logger.info(f"Trajectory {result.trajectory.shape} -> {args.output}")
    logger.info(f"Summary -> {written}")
    if not args.quiet:
        print(result.summary())
    return 0


def cmd_config(args) -> int:
    """Print the resolved configuration (or the available profiles)."""
    try:
        if args.list_profiles:
            for name, description in list_profiles(args.config).items():
                print(f"{name:<14} {description}")
            return 0

        config = load_embedding_config(args.config, args.profile)
    except Exception as e:
        logger.error(f"Could not load config: {e}")
        return 1

    print(yaml.safe_dump(config.to_dict(), sort_keys=False).rstrip())
    print(f"# horizon = horizon_factor * theiler = {config.horizon}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """PECUZAL CLI entry point."""
    parser = argparse.ArgumentParser(
        prog='pecuzal',
        description='PECUZAL automated phase space reconstruction',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m pecuzal embed signals.parquet -o trajectory.parquet
    python -m pecuzal embed x.npy --delays 0:100 --theiler 10
    python -m pecuzal config --list-profiles
        """,
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # embed command
    embed_parser = subparsers.add_parser(
        'embed',
        help='Reconstruct the phase space of a time series file',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    embed_cli = SafeCLI('Reconstruct the phase space of a time series file', parser=embed_parser)
    embed_cli.add_input('input', positional=True, help='Time series (.csv, .parquet or .npy), samples x channels')
    embed_cli.add_output(
        'output',
        derive=_default_output,
        companion=summary_path,
        help='Trajectory (.csv, .parquet or .npy); default <input>_embedding.<ext>',
    )
    embed_cli.add_option('config', help='YAML config file (default: packaged defaults)')
    embed_cli.add_option('profile', help='Named profile of the config file')
    embed_cli.add_option('columns', help='Comma separated channel columns (default: all numeric)')
    embed_cli.add_option('delays', type=parse_delays, help='Candidate delays, e.g. 0:50 or 0,2,4 (default 0:50)')
    for name, option_type in OPTION_TYPES.items():
        embed_cli.add_option(name, type=option_type, help=f'Override config value {name}')

    # config command
    config_parser = subparsers.add_parser(
        'config',
        help='Show the resolved embedding configuration',
    )
    config_parser.add_argument('--config', help='YAML config file')
    config_parser.add_argument('--profile', help='Named profile')
    config_parser.add_argument(
        '--list-profiles',
        action='store_true',
        help='List profiles and exit',
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.WARNING if getattr(args, 'quiet', False) else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.command == 'embed':
        embed_cli.validate(args)
        return cmd_embed(args)
    elif args.command == 'config':
        return cmd_config(args)

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
