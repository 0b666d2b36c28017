"""Entry point for running callvis via ``python main.py PACKAGE [flags]``."""

from dotenv import load_dotenv

load_dotenv()

from callvis.cli import app  # noqa: E402

if __name__ == "__main__":
    app()
