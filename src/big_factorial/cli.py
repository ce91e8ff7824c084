# src/big_factorial/cli.py

"""
Big Factorial - exact n! for very large n

Description:
    Computes n! as an arbitrary-precision integer with a balanced product
    tree, split across several worker threads or processes, and prints it
    either as a compact m*2^e approximation or as its full decimal expansion.

usage: see big-factorial -h
"""

from __future__ import annotations

import argparse
import faulthandler
import math
import sys
import textwrap
import threading
import time
import traceback
from importlib.resources import files as pkg_files

from colorama import Fore, Style
from colorama import init as colorama_init

from big_factorial import __version__ as _ver
from big_factorial import config as CONFIG
from big_factorial.expreval import parse_index
from big_factorial.fmt import FORMAT_MODES, format_duration, format_value
from big_factorial.kinds import get_kind, list_kinds
from big_factorial.output_manager import OutputManager, validate_output_setting
from big_factorial.parallel import WORKER_MODES, parallel_factorial, partition
from big_factorial.progress import Progress
from big_factorial.runtime import APPLY, CFG
from big_factorial.runtime import reset as _rt_reset
from big_factorial.utility import (
    InvalidConfigurationError,
    ResourceExhaustedError,
    UserInputError,
    available_parallelism,
    flatten_dotted,
    typename,
)
from big_factorial.workspace import ensure_workspace_seeded, seed_workspace, workspace_dir

COMMANDS = ("init", "where", "kinds", "profiles")

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_INVALID = 2
EXIT_RESOURCES = 3
EXIT_INTERRUPTED = 130


def _install_loud_error_handlers(debug: bool) -> None:
    if not debug:
        return
    # Always show full Python tracebacks
    try:
        faulthandler.enable()
    except (OSError, ValueError):
        pass  # stderr has no file descriptor (captured or in-memory stream)

    def _excepthook(exc_type, exc, tb):
        sys.stderr.write("\n[UNCAUGHT EXCEPTION]\n")
        traceback.print_exception(exc_type, exc, tb, file=sys.stderr)
        sys.stderr.flush()
    sys.excepthook = _excepthook

    # Worker threads report through the result queue; this only fires for bugs in the plumbing
    def _thread_excepthook(args):
        sys.stderr.write("\n[UNCAUGHT THREAD EXCEPTION]\n")
        traceback.print_exception(args.exc_type, args.exc_value, args.exc_traceback, file=sys.stderr)
        sys.stderr.flush()
    threading.excepthook = _thread_excepthook


def _print_user_error(msg: str) -> None:
    """Uniform, one-line friendly error."""
    prefix = f"{Fore.RED}Error:{Style.RESET_ALL}"
    if msg.startswith("Invalid input:"):
        msg = msg.replace("Invalid input:", f"{Fore.RED}Invalid input:{Style.RESET_ALL}", 1)
    elif not msg.startswith("Error:"):
        msg = f"{prefix} {msg}"
    print(msg, file=sys.stderr)


def _debug(msg: str) -> None:
    print(f"{Fore.CYAN}[debug]{Style.RESET_ALL} {msg}", file=sys.stderr)


def _resolve_inputs(items: list[str]) -> tuple[str | None, int | None]:
    """Return (profile_or_command, number) based on the positionals.

    Rules:
      - one item: a command or existing profile name -> (item, None);
                  otherwise it must parse as the factorial argument
      - two items: profile followed by the factorial argument
    """
    if not items:
        return None, None
    if len(items) == 1:
        item = items[0]
        if item in COMMANDS or CONFIG.has_profile(item):
            return item, None
        return None, parse_index(item)
    return items[0], parse_index(items[1])


def _estimated_digits(n: int) -> int:
    """Decimal digits of n! from log-gamma; close enough for a size guard."""
    if n <= 1:
        return 1
    return int(math.lgamma(n + 1) / math.log(10)) + 1


# ---- argparse ----
def _build_parser() -> argparse.ArgumentParser:

    epilog = textwrap.dedent("""\
    commands:
      init       Create the workspace and copy the packaged profiles if missing.
      where      Show the workspace and package paths.
      kinds      List the number kinds the engine can compute with.
      profiles   List profiles with their descriptions.
      <profile>  Make <profile> the active profile for later runs.

    examples:
      big-factorial 1000000
      big-factorial 1e6 -t 8 --workers process
      big-factorial exact 5000
    """)

    p = argparse.ArgumentParser(
        prog="big-factorial",
        description="Big Factorial — exact n! with a parallel balanced product tree",
        usage=(
            "big-factorial [profile] N [-t THREADS] [-f | --abbr] [--kind KIND] [--workers MODE]\n"
            "                     [--output OUTPUT] [--quiet] [--progress] [--debug]\n"
            "       big-factorial init | where | kinds | profiles | <profile>\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=epilog,
    )
    p.add_argument("items", nargs="*", metavar="[profile] N",
                   help="optional profile name followed by the number to calculate the factorial of")
    p.add_argument("-t", "--num-threads", type=int, default=None,
                   help="number of workers to use (default: profile THREADS, 0 = detected CPUs)")
    shape = p.add_mutually_exclusive_group()
    shape.add_argument("-f", "--full-output", action="store_true", help="show the full decimal output")
    shape.add_argument("--abbr", action="store_true", help="show leading and trailing digits only")
    p.add_argument("--kind", default=None, help="number kind: " + ", ".join(k.name for k in list_kinds()))
    p.add_argument("--workers", default=None, choices=WORKER_MODES, help="run workers as threads or processes")
    p.add_argument("--mantissa-digits", type=int, default=None, help="fixed mantissa decimals in compact output")
    p.add_argument("--output", default=None, help="write the result to a file or directory (also prints unless --quiet)")
    p.add_argument("--quiet", action="store_true", help="do not print the result to the screen")
    p.add_argument("--progress", action="store_true", help="show a progress bar while workers finish")
    p.add_argument("--debug", action="store_true", help="show the plan, settings and timings; full tracebacks")
    p.add_argument("--version", action="version", version=f"%(prog)s {_ver}")
    return p


def main(argv=None) -> int:
    """Thin wrapper: map error classes to exit codes, hide tracebacks unless debug."""
    try:
        return _main_impl(argv)
    except UserInputError as e:
        _print_user_error(str(e))
        return EXIT_INVALID
    except OverflowError as e:
        _print_user_error(f"result does not fit the selected number kind ({e}).")
        return EXIT_INVALID
    except (ResourceExhaustedError, MemoryError) as e:
        _print_user_error(f"out of resources: {e.__class__.__name__}: {e}")
        return EXIT_RESOURCES
    except KeyboardInterrupt:
        print("Aborted by user.", file=sys.stderr)
        return EXIT_INTERRUPTED
    except Exception as e:
        debug = "--debug" in (argv if argv is not None else sys.argv)
        if debug:
            raise
        print(f"Unexpected error: {e.__class__.__name__}: {e}", file=sys.stderr)
        print("Run with --debug for a full traceback.", file=sys.stderr)
        return EXIT_UNEXPECTED


def _run_command(command: str) -> int:
    if command == "init":
        ws, copied = seed_workspace(overwrite=False)
        print(f"Workspace ready at: {ws}")
        print(f"Copied -> profiles: {copied.get('profiles', 0)}")
        return EXIT_OK

    if command == "where":
        print(f"Workspace: {workspace_dir()}")
        print(f"Package:   {pkg_files('big_factorial')}")
        return EXIT_OK

    if command == "kinds":
        default = str(CFG("BEHAVIOUR.NUMBER_KIND", "mpz")).lower()
        for k in list_kinds():
            mark = "*" if k.name == default else " "
            print(f"{mark} {Fore.GREEN}{k.name:<6}{Style.RESET_ALL} {k.description}")
        return EXIT_OK

    # profiles
    active = CONFIG.read_current_profile() or "default"
    for name, desc in CONFIG.list_profiles_with_descriptions():
        mark = "*" if name == active else " "
        print(f"{mark} {Fore.GREEN}{name:<12}{Style.RESET_ALL} {desc}")
    return EXIT_OK


def _debug_settings(selected: CONFIG.Settings) -> None:
    _debug(f"active profile: {selected.name}")
    if selected._source:
        _debug(f"profile file: {selected._source}")
    flat = flatten_dotted(selected.as_dict())
    for k in sorted(flat, key=str.lower):
        v = flat[k]
        print(f"        {k:.<40} {v!r} ({typename(v)})", file=sys.stderr)


# ---- main ----
def _main_impl(argv=None) -> int:

    colorama_init(autoreset=True)

    parser = _build_parser()
    args = parser.parse_args(argv)
    if len(args.items) > 2:
        parser.error("expected at most a profile name and one number")

    rt = _rt_reset()
    rt.debug = bool(args.debug)
    _install_loud_error_handlers(args.debug)

    # Ensure a first-run workspace seed silently
    ensure_workspace_seeded()

    selector, n = _resolve_inputs(args.items)

    if selector in COMMANDS:
        if n is not None:
            parser.error(f"the '{selector}' command does not take a number")
        APPLY(CONFIG.default_settings())
        return _run_command(selector)

    # Choose profile: explicit → last-used → default
    profile_name = selector or CONFIG.read_current_profile() or "default"
    if selector and not CONFIG.has_profile(selector):
        raise UserInputError(
            f"Invalid input: '{selector}' is neither a number nor a profile "
            f"(available: {', '.join(CONFIG.list_all_profiles())})."
        )
    selected = CONFIG.load_settings(profile_name) if CONFIG.has_profile(profile_name) else CONFIG.default_settings()
    APPLY(selected)
    rt.debug = rt.debug or bool(args.debug)
    if rt.debug:
        _debug_settings(selected)

    if n is None:
        if selector:
            CONFIG.write_current_profile(selector)
            print(f"Active profile: {selector}")
            return EXIT_OK
        parser.error("the factorial argument N is required")

    # --- effective plan: CLI flags > profile > defaults ---
    if args.num_threads is not None:
        threads = args.num_threads
    else:
        threads = int(CFG("BEHAVIOUR.THREADS", 0))
        if threads == 0:
            threads = available_parallelism()
    kind = get_kind(args.kind or CFG("BEHAVIOUR.NUMBER_KIND", "mpz"))
    workers = str(args.workers or CFG("BEHAVIOUR.WORKERS", "thread")).lower()

    if args.full_output:
        mode = "full"
    elif args.abbr:
        mode = "abbr"
    else:
        mode = str(CFG("FORMATTING.MODE", "compact")).lower()
    if mode not in FORMAT_MODES:
        raise InvalidConfigurationError(f"unknown FORMATTING.MODE '{mode}' (choose from: {', '.join(FORMAT_MODES)})")

    mantissa_digits = args.mantissa_digits
    if mantissa_digits is None:
        mantissa_digits = int(CFG("FORMATTING.MANTISSA_DIGITS", -1))

    max_digits = int(CFG("BEHAVIOUR.MAX_DIGITS", 0))
    if mode == "full" and max_digits > 0 and _estimated_digits(n) > max_digits:
        raise UserInputError(
            f"{n}! has about {_estimated_digits(n)} decimal digits, more than MAX_DIGITS={max_digits}. "
            "Use compact output or raise BEHAVIOUR.MAX_DIGITS in the profile."
        )

    try:
        target = validate_output_setting(args.output if args.output is not None else CFG("OUTPUT.OUTPUT_FILE", ""))
    except ValueError as e:
        raise UserInputError(f"--output: {e}") from None

    if rt.debug:
        _debug(f"plan: n={n} threads={threads} workers={workers} kind={kind.name} mode={mode}")
        if n > 1 and threads >= 1:
            ranges = [r for r in partition(n, threads) if r[1] > r[0]]
            shown = ", ".join(f"[{lo},{hi})" for lo, hi in ranges[:4])
            more = f", … ({len(ranges)} ranges)" if len(ranges) > 4 else ""
            _debug(f"ranges: {shown}{more}")

    progress = Progress(enabled=args.progress and not args.quiet)
    t0 = time.perf_counter()
    try:
        value = parallel_factorial(n, threads, kind, workers=workers, on_progress=progress)
    finally:
        progress.done()
    t1 = time.perf_counter()

    text = format_value(
        value,
        mode,
        mantissa_digits=mantissa_digits,
        head=int(CFG("FORMATTING.NUM_ABBR_HEAD", 10)),
        tail=int(CFG("FORMATTING.NUM_ABBR_TAIL", 10)),
        ellipsis=str(CFG("FORMATTING.ELLIPSIS", "…")),
    )
    t2 = time.perf_counter()

    om = OutputManager(output_file=target, quiet=args.quiet, number=n)
    try:
        om.write(f"{n}! = {text}")
    finally:
        om.close()

    if rt.debug:
        _debug(f"compute: {format_duration(t1 - t0)}, format: {format_duration(t2 - t1)}")
        if om.path:
            _debug(f"written to: {om.path}")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
