# stackline_repl.py

"""
Interactive front end for stackline.

Reads one line at a time from a `LineSource`, evaluates it with a fresh
`stackline.Session` stack and prints whatever the line wrote. By default the
first error ends the whole session through the `FatalReporter`; with
`--keep-going` errors are printed and the next line is read.

Configuration comes from the environment (a `.env` file is loaded first) and
from command-line flags, which take precedence.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Callable, List, NoReturn, Optional

from dotenv import load_dotenv
from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory, History, InMemoryHistory
from pydantic import BaseModel, ValidationError, field_validator

from stackline import Outcome, Session, StacklineError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# --------------------------
# Configuration
# --------------------------

class Settings(BaseModel):
    """Runtime options for the REPL."""
    prompt: str = "> "
    history_file: Optional[Path] = None
    isolate_errors: bool = False
    show_tokens: bool = False
    log_level: str = "WARNING"

    @field_validator('log_level')
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator('history_file', mode='before')
    @classmethod
    def expand_history_path(cls, v):
        if v is None or not str(v).strip():
            return None
        return Path(v).expanduser()


def _env_flag(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stackline",
        description="Read lines of stackline source and evaluate them one at a time.",
    )
    parser.add_argument(
        "--prompt",
        type=str,
        help="Prompt shown before each line (default: '> ').",
    )
    parser.add_argument(
        "--history-file",
        type=str,
        help="File used to keep line history between sessions.",
    )
    parser.add_argument(
        "--keep-going",
        action="store_true",
        default=None,
        help="Report errors and keep reading instead of ending the session.",
    )
    parser.add_argument(
        "--show-tokens",
        action="store_true",
        default=None,
        help="Print the tokens of each line before evaluating it.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        help="Logging level written to stderr (default: WARNING).",
    )
    return parser


def load_settings(argv: Optional[List[str]] = None) -> Settings:
    """Merge environment variables and command-line flags into `Settings`.

    Raises:
        pydantic.ValidationError: if a value is invalid.
    """
    load_dotenv()
    args = build_arg_parser().parse_args(argv)

    values = {
        "prompt": os.getenv("STACKLINE_PROMPT"),
        "history_file": os.getenv("STACKLINE_HISTORY_FILE"),
        "isolate_errors": _env_flag("STACKLINE_KEEP_GOING"),
        "show_tokens": _env_flag("STACKLINE_SHOW_TOKENS"),
        "log_level": os.getenv("STACKLINE_LOG_LEVEL"),
    }
    overrides = {
        "prompt": args.prompt,
        "history_file": args.history_file,
        "isolate_errors": args.keep_going,
        "show_tokens": args.show_tokens,
        "log_level": args.log_level,
    }
    for key, value in overrides.items():
        if value is not None:
            values[key] = value
    return Settings(**{k: v for k, v in values.items() if v is not None})


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


# --------------------------
# Line source and fatal reporter
# --------------------------

class LineSource:
    """Prints a prompt and reads one line, returned with its trailing newline.

    Terminals get a prompt_toolkit session with history; piped input is read
    with `input()`. Raises EOFError at end of input.
    """

    def __init__(self, prompt: str = "> ", history_file: Optional[Path] = None,
                 interactive: Optional[bool] = None):
        self.prompt = prompt
        if interactive is None:
            interactive = sys.stdin.isatty()
        self.session: Optional[PromptSession] = None
        if interactive:
            history: History = FileHistory(str(history_file)) if history_file else InMemoryHistory()
            self.session = PromptSession(history=history)

    def read_line(self) -> str:
        if self.session is not None:
            line = self.session.prompt(self.prompt)
        else:
            line = input(self.prompt)
        return line + "\n"


class FatalReporter:
    """Prints an error as `name: description` and ends the process."""

    def __init__(self, write: Callable[[str], None] = print):
        self.write = write

    def report(self, error: StacklineError) -> NoReturn:
        logger.error(f"Fatal error, ending session: {error}")
        self.write(str(error))
        raise SystemExit(1)


# --------------------------
# REPL
# --------------------------

class Repl:
    """Read-evaluate-print loop over a line source."""

    def __init__(self, settings: Settings, source: Optional[LineSource] = None,
                 reporter: Optional[FatalReporter] = None,
                 write: Callable[[str], None] = print):
        self.settings = settings
        self.source = source or LineSource(settings.prompt, settings.history_file)
        self.reporter = reporter or FatalReporter(write)
        self.session = Session(show_tokens=settings.show_tokens)
        self.write = write

    def handle(self, outcome: Outcome) -> None:
        for line in outcome.output:
            self.write(line)
        if outcome.error is None:
            return
        if not self.settings.isolate_errors:
            self.reporter.report(outcome.error)
        logger.error(f"Line failed: {outcome.error}")
        self.write(str(outcome.error))

    def run(self) -> None:
        logger.info("stackline session started")
        while True:
            try:
                line = self.source.read_line()
            except KeyboardInterrupt:
                self.write("^C")
                continue
            except EOFError:
                break
            self.handle(self.session.evaluate_line(line))
        logger.info("stackline session finished")


# --------------------------
# Entry point
# --------------------------

def main(argv: Optional[List[str]] = None) -> int:
    try:
        settings = load_settings(argv)
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level)
    if sys.stdin.isatty():
        print("stackline. Ctrl-D to quit.")
    Repl(settings).run()
    return 0


if __name__ == '__main__':
    sys.exit(main())
