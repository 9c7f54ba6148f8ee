import sys
from pathlib import Path

from sonus.sonus_runtime import ScriptRunner
from sonus.sonus_printer import Printer
from sonus.sonus_datatypes import EvalError

USAGE = "usage: sonus.py [SCRIPT [OUT.wav [SECONDS]]]"
DEFAULT_SECONDS = 1.0


# A basic input prompt; returns '' at end of input.
def prompt_input(prompt: str) -> str:
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return sys.stdin.readline()


def report(results, printer: Printer) -> bool:
    """Prints each statement's value to stdout and each error to stderr.
    Returns True when any statement failed."""
    failed = False
    for result in results:
        if result.status == 'error':
            print(result.format_error(), file=sys.stderr)
            failed = True
        elif result.value is not None:
            print(printer.pformat(result.value))
    return failed


def run_script_file(file_path: str, wav_path: str = None, seconds: float = DEFAULT_SECONDS):
    """Run a Sonus script non-interactively; optionally render its last value to a WAV file."""
    runner = ScriptRunner()
    printer = Printer()
    try:
        source = Path(file_path).read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    results = runner.handle_script(source)
    failed = report(results, printer)
    if wav_path is not None:
        last = results[-1] if results else None
        if last is None or last.status != 'success':
            print("Error: nothing to render", file=sys.stderr)
            raise SystemExit(1)
        try:
            count = runner.render_to_wav(wav_path, last.value, seconds)
        except EvalError as e:
            print(f"{type(e).__name__}: {e}", file=sys.stderr)
            raise SystemExit(1)
        print(f"Wrote {count} samples to {wav_path}")
    if failed:
        raise SystemExit(1)


def main(argv=None):
    """Run a script file when provided, otherwise start the interactive REPL."""
    args = sys.argv[1:] if argv is None else list(argv)
    if args:
        if args[0] in ("-h", "--help") or len(args) > 3:
            print(USAGE)
            return
        seconds = DEFAULT_SECONDS
        if len(args) == 3:
            try:
                seconds = float(args[2])
            except ValueError:
                print(USAGE, file=sys.stderr)
                raise SystemExit(2)
        run_script_file(args[0], args[1] if len(args) > 1 else None, seconds)
        return

    print("Sonus REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner()
    printer = Printer()

    while True:
        try:
            raw = prompt_input(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break

            report(runner.handle_script(line), printer)

        except EOFError:
            print("\nExiting.")
            break


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
