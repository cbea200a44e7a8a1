"""Allow ``python -m echobench``; fan-out children are started this way."""

from echobench.cli.app import app

if __name__ == "__main__":
    app(prog_name="echobench")
