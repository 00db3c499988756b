#!/usr/bin/env python3
"""
Split an LLVM pass-dump log into one IR file per stage.

A log produced with -print-after-all (or -print-after=<pass>) contains one
"*** IR Dump After <pass> ***" banner per snapshot. Every banner starts a new
output file, so each file holds a single snapshot that llvm_cfg.py can read.

Usage:
    python llvm_split.py <passes.ll> [-o output_dir]
"""

import sys
from pathlib import Path
from typing import List, Optional


# Banner that begins a new IR snapshot
STAGE_MARKER = ' Dump After '

DEFAULT_OUTPUT_DIR = 'output'


def stage_file_path(output_dir: Path, stem: str, index: int) -> Path:
    return output_dir / f"{stem}_{index}.ll"


def split_pass_dump(input_path: str, output_dir: str = DEFAULT_OUTPUT_DIR) -> List[Path]:
    """
    Split a pass-dump log into per-stage files.

    Lines before the first banner go to <stem>_0.ll; each banner line starts
    the next file and is written as its first line.

    Args:
        input_path: Path of the log, must end in .ll
        output_dir: Directory for the stage files, created if missing

    Returns:
        The written file paths in order
    """
    path = Path(input_path)
    if path.suffix != '.ll':
        raise ValueError(f"Input file must end with .ll: {input_path}")

    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    with open(path, 'r', encoding='utf-8') as f:
        written = [stage_file_path(out_dir, path.stem, 0)]
        output_file = open(written[0], 'w', encoding='utf-8')
        try:
            for line in f:
                if STAGE_MARKER in line:
                    output_file.close()
                    written.append(stage_file_path(out_dir, path.stem, len(written)))
                    output_file = open(written[-1], 'w', encoding='utf-8')
                output_file.write(line.rstrip('\r\n') + '\n')
        finally:
            output_file.close()

    return written


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description='Split an LLVM pass-dump log into one .ll file per stage'
    )
    parser.add_argument('input', help='Input pass-dump log (.ll)')
    parser.add_argument('--output-dir', '-o', default=DEFAULT_OUTPUT_DIR,
                       help=f'Directory for the stage files (default: {DEFAULT_OUTPUT_DIR})')

    args = parser.parse_args(argv)

    if not Path(args.input).exists():
        print(f"Error: Input file does not exist: {args.input}", file=sys.stderr)
        sys.exit(1)

    try:
        written = split_pass_dump(args.input, args.output_dir)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Wrote {len(written)} stage files to: {args.output_dir}")


if __name__ == '__main__':
    main()
