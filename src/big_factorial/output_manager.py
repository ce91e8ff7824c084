# output_manager.py

import os
import re

from big_factorial.workspace import workspace_dir

ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(s: str | None) -> str:
    return ANSI_RE.sub("", s or "")


def resolve_output_path(path: str, workspace_root: str) -> str:
    """
    Resolve user-provided output path.

    Rules:
    - '~' expanded to user home
    - Absolute paths unchanged
    - Relative paths are relative to workspace_root
    """
    if not path:
        raise ValueError("Output path is empty")

    path = os.path.expanduser(path)
    if os.path.isabs(path):
        return os.path.normpath(path)
    return os.path.normpath(os.path.join(workspace_root, path))


def validate_output_setting(output_file: str | None) -> str | None:
    """
    Validate output setting.
    - None / "" => ok (screen only)
    - "." / "./" / trailing "/" => ok (per-number directory mode)
    - path/to/file => must not have a source/doc extension
    Returns the output_file, or raises ValueError.
    """
    FORBIDDEN_EXTENSIONS = {".py", ".md", ".toml"}

    if not output_file:
        return output_file
    if output_file in (".", "./") or output_file.endswith("/"):
        return output_file

    ext = os.path.splitext(os.path.basename(output_file))[1].lower()
    if ext in FORBIDDEN_EXTENSIONS:
        raise ValueError(f"Forbidden output file extension: {ext}")
    return output_file


class OutputManager:
    """
    Handles all printing/output, including to screen and/or file.

    Usage:
        # Split mode (one file per factorial argument):
        om = OutputManager(output_file="results/", number=1000)
        om.write("1000! = ...")   # prints and buffers; file written on close()
        om.close()

        # Single file (append all runs to one file):
        om = OutputManager(output_file="results/all.txt")
        om.write("1000! = ...")   # prints and appends
        om.close()
    """

    def __init__(self, output_file: str | None = None, quiet: bool = False, number: int | None = None):
        """
        Parameters:
            output_file:
                None or ""       => screen only
                "." or "./"      => factorial_<n>.txt in the workspace
                endswith "/"     => factorial_<n>.txt in the given directory
                path/to/file.txt => append all runs to this file
            quiet: if True, no output to screen (only to file)
            number: factorial argument, used for the filename in split mode
        """
        self.quiet = quiet
        self.output_file = output_file or ""
        self.number = number
        self._buffer: list[str] = []
        self._mode: str = "none"     # "none" | "split" | "single"
        self._path: str | None = None
        self._flushed = False

        if self.output_file in (".", "./") or self.output_file.endswith("/"):
            if number is None:
                raise ValueError("A number must be provided when outputting to a directory.")
            directory = resolve_output_path(self.output_file, str(workspace_dir()))
            os.makedirs(directory, exist_ok=True)
            self._mode = "split"
            self._path = os.path.join(directory, f"factorial_{number}.txt")

        elif self.output_file:
            path = resolve_output_path(self.output_file, str(workspace_dir()))
            parent = os.path.dirname(path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            self._mode = "single"
            self._path = path

    @property
    def path(self) -> str | None:
        return self._path

    def write(self, *args, sep: str = " ", end: str = "\n") -> None:
        """Write to screen and file (if configured)."""
        text = sep.join(str(a) for a in args) + end
        self._buffer.append(text)

        if not self.quiet:
            print(text, end="")

        if self._mode == "single" and self._path:
            with open(self._path, "a", encoding="utf-8") as fh:
                fh.write(strip_ansi(text))
        # "split" mode writes once on close() so each run replaces the file

    def getvalue(self) -> str:
        """Returns everything written (with color codes)."""
        return "".join(self._buffer)

    def close(self) -> None:
        """Flush buffered output to the per-number file (split mode)."""
        if self._mode == "split" and self._path and self._buffer and not self._flushed:
            with open(self._path, "w", encoding="utf-8") as fh:
                fh.write(strip_ansi("".join(self._buffer)))
            self._flushed = True
