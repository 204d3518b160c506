"""Run the jest-mock hoister on ESTree JSON files.

Usage:
    python -m jest_hoist.hoist_code <input.json | dir> [-o output.json] [--in-place] [-noback]

The input is the JSON syntax tree of a test file as emitted by an ESTree
parser, e.g. ``acorn --ecma2022 --module --locations foo.test.js > foo.test.json``.
Without ``--in-place`` the result is written next to the input with
``.hoisted.json`` appended to the stem, e.g.
src/foo.test.json -> src/foo.test.hoisted.json

If a source file with the same stem sits beside the JSON file (``foo.test.js``
for ``foo.test.json``), diagnostics include a code frame from it.

Examples (from repo root):
    python -m jest_hoist.hoist_code build/ast/foo.test.json
    python -m jest_hoist.hoist_code build/ast --in-place -noback
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .errors import HoistError
from .hoist_ast import hoist_json

logger = logging.getLogger(__name__)

HOISTED_SUFFIX = '.hoisted.json'
SOURCE_SUFFIXES = ('.js', '.jsx', '.mjs', '.cjs', '.ts', '.tsx', '.mts', '.cts')


def _find_source(json_path: Path) -> Optional[Path]:
    for suffix in SOURCE_SUFFIXES:
        candidate = json_path.with_suffix(suffix)
        if candidate.exists():
            return candidate
    return None


def _output_path(src_path: Path, in_place: bool) -> Path:
    if in_place:
        return src_path
    return src_path.with_name(src_path.stem + HOISTED_SUFFIX)


def _hoist_file(src_path: Path,
                out_path: Path,
                backup_suffix: Optional[str] = None,
                indent: Optional[int] = None) -> bool:
    """Hoist one file; return True when the output differs from the input."""
    # backup only when overwriting the input and no backup exists yet
    if backup_suffix and out_path == src_path:
        suf = backup_suffix if backup_suffix.startswith('.') else f'.{backup_suffix}'
        backup = src_path.with_suffix(suf)
        if backup.exists():
            logger.info("Backup already exists: %s", backup)
        else:
            backup.write_text(src_path.read_text(encoding = "utf-8"), encoding = "utf-8")
            logger.info("Created backup: %s", backup)

    text = src_path.read_text(encoding = "utf-8")
    source_path = _find_source(src_path)
    source = source_path.read_text(encoding = "utf-8") if source_path else None

    new = hoist_json(text,
                     source = source,
                     filename = str(source_path or src_path),
                     indent = indent)
    out_path.write_text(new + '\n', encoding = "utf-8")
    return new.strip() != text.strip()


def hoist_path(input_path: str,
               output: Optional[str] = None,
               in_place: bool = False,
               create_backup: bool = True,
               indent: Optional[int] = None) -> int:
    """Process a file or directory; return a process exit status.

    - `output`: explicit output file (single-file input only).
    - `in_place`: overwrite the inputs, keeping a `.json.back` backup unless `create_backup` is False.
    """
    backup_suffix = 'json.back' if create_backup else None
    inp = Path(input_path)
    if not inp.exists():
        print(f"Input path not found: {inp}", file = sys.stderr)
        return 2

    if inp.is_dir():
        if output:
            print("--output cannot be used with a directory input", file = sys.stderr)
            return 2
        files = [
                    p for p in sorted(inp.rglob('*.json'), key = lambda p: str(p))
                    if not p.name.endswith(HOISTED_SUFFIX) and 'node_modules' not in p.parts
        ]
    else:
        files = [inp]

    total = len(files)
    for idx, p in enumerate(files, start = 1):
        rel = str(p)
        out_path = Path(output) if output else _output_path(p, in_place)
        # Print a 4-letter status (matches 'Done' length) and keep on the same line;
        # after processing overwrite the line with the final status.
        print(f"[ {idx:4d}/{total:4d} ] Work       {rel}", end = '\r', flush = True)
        try:
            changed = _hoist_file(p, out_path, backup_suffix = backup_suffix, indent = indent)
        except HoistError as e:
            print(f"[ {idx:4d}/{total:4d} ] Fail       {rel}" + ' ' * 10)
            print(str(e), file = sys.stderr)
            return 1
        status = 'Done' if changed else 'Same'
        print(f"[ {idx:4d}/{total:4d} ] {status}       {rel}" + ' ' * 10)
    return 0


#python -m jest_hoist.hoist_code .\build\ast
def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description = 'Hoist jest.mock calls in ESTree JSON files')
    parser.add_argument('input_path', help = 'ESTree JSON file or directory to process')
    parser.add_argument('-o', '--output', help = 'output file (single input file only)')
    parser.add_argument('--in-place', action = 'store_true', help = 'overwrite the input files')
    parser.add_argument('-noback',
                        action = 'store_true',
                        dest = 'no_backup',
                        help = 'Do not create backups with --in-place (by default a .json.back backup is created).')
    parser.add_argument('--indent', type = int, default = None, help = 'indent the JSON output')
    parser.add_argument('-v', '--verbose', action = 'store_true', help = 'debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(level = logging.DEBUG if args.verbose else logging.INFO,
                        format = '%(levelname)s %(name)s: %(message)s')

    return hoist_path(args.input_path,
                      output = args.output,
                      in_place = args.in_place,
                      create_backup = not args.no_backup,
                      indent = args.indent)


if __name__ == '__main__':
    sys.exit(main())
