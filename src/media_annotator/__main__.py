"""Run the CLI with ``python -m media_annotator``."""

from media_annotator.main import app


if __name__ == "__main__":
    app()
