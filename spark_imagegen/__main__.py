"""Entry point for ``python -m spark_imagegen``."""

from spark_imagegen.cli import app

if __name__ == "__main__":
    app()
