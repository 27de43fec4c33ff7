# src/markform/cli.py
# CLI for inspecting, patching, formatting and exporting form documents.

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from .errors import ParseError
from .export import form_to_dict, validate_export
from .issues import is_complete, list_issues
from .model import Form
from .parser import parse_form
from .patches import apply_patches
from .serialize import serialize
from .settings import DIALECT_COMMENTS, DIALECT_TAGS
from .validate import validate

logger = logging.getLogger("markform")


def _load_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _load_form(path: Path) -> Form:
    return parse_form(_load_text(path))


def _dump(data: Any) -> str:
    # metadata may carry YAML dates
    return json.dumps(data, indent=2, sort_keys=True, default=str)


def _roles(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    return [r.strip() for r in raw.split(",") if r.strip()]


def _cmd_inspect(args: argparse.Namespace) -> int:
    form = _load_form(Path(args.file))
    problems = validate(form)
    issues = list_issues(form, _roles(args.roles))
    complete = is_complete(form, _roles(args.roles))
    if args.json:
        print(_dump({
            "form": form.id,
            "complete": complete,
            "validation": [p.to_dict() for p in problems],
            "issues": [i.to_dict() for i in issues],
        }))
        return 0
    print(f"form: {form.id}" + (f" ({form.title})" if form.title else ""))
    for g in form.groups:
        filled = sum(1 for f in g.fields if f.state != "empty")
        print(f"  group {g.id}: {filled}/{len(g.fields)} fields filled")
    for p in problems:
        print(f"  [{p.severity}] {p.code} {p.ref}: {p.message}")
    for i in issues:
        blocked = f" (blocked by {i.blocked_by})" if i.blocked_by else ""
        print(f"  P{i.priority} {i.severity} {i.ref}: {i.reason}{blocked}")
    print("complete" if complete else "incomplete")
    return 0


def _cmd_apply(args: argparse.Namespace) -> int:
    form = _load_form(Path(args.file))
    patches = json.loads(_load_text(Path(args.patches)))
    if not isinstance(patches, list):
        print("patch file must hold a JSON list of patches")
        return 2
    result = apply_patches(form, patches)
    for o in result.outcomes:
        line = f"#{o.index} {o.op}: {o.status}"
        if o.message:
            line += f" - {o.message}"
        print(line)
    for w in result.warnings:
        print(f"warning: {w}")
    out = serialize(result.form)
    if args.output:
        Path(args.output).write_text(out, encoding="utf-8")
        print(f"Wrote form: {args.output}")
    else:
        print(out, end="")
    return 0 if result.all_applied else 1


def _cmd_format(args: argparse.Namespace) -> int:
    path = Path(args.file)
    text = _load_text(path)
    out = serialize(parse_form(text), dialect=args.dialect)
    if args.check:
        if out != text:
            print(f"would reformat {path}")
            return 1
        return 0
    if args.write:
        path.write_text(out, encoding="utf-8")
        print(f"Wrote form: {path}")
    else:
        print(out, end="")
    return 0


def _cmd_export(args: argparse.Namespace) -> int:
    data = form_to_dict(_load_form(Path(args.file)))
    validate_export(data)
    print(_dump(data))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(
        prog="markform",
        description="Parse, check, patch and re-serialize markform documents.",
    )
    p.add_argument("--log-level", default="WARNING",
                   choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level (default: WARNING).")
    sub = p.add_subparsers(dest="command")

    sp = sub.add_parser("inspect", help="Show validation problems and open issues.")
    sp.add_argument("file")
    sp.add_argument("--roles", default=None, help="Comma separated roles to report on (default: all).")
    sp.add_argument("--json", action="store_true", help="Print a JSON report.")
    sp.set_defaults(func=_cmd_inspect)

    sp = sub.add_parser("apply", help="Apply a JSON list of patches.")
    sp.add_argument("file")
    sp.add_argument("patches", help="Path to a JSON file holding a list of patches.")
    sp.add_argument("-o", "--output", metavar="PATH", help="Write the patched form to PATH.")
    sp.set_defaults(func=_cmd_apply)

    sp = sub.add_parser("format", help="Re-serialize a form canonically.")
    sp.add_argument("file")
    sp.add_argument("--dialect", choices=[DIALECT_TAGS, DIALECT_COMMENTS], default=None,
                    help="Output syntax (default: keep the source dialect).")
    sp.add_argument("--check", action="store_true", help="Exit 1 if the file is not canonical.")
    sp.add_argument("-w", "--write", action="store_true", help="Rewrite the file in place.")
    sp.set_defaults(func=_cmd_format)

    sp = sub.add_parser("export", help="Print the form schema and values as JSON.")
    sp.add_argument("file")
    sp.set_defaults(func=_cmd_export)

    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")
    if not args.command:
        p.error("command required (inspect, apply, format, export)")

    path = Path(args.file)
    if not path.is_file():
        p.error(f"form not found: {path}")
    try:
        return args.func(args)
    except ParseError as e:
        print(f"{path}: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
