import pathlib


def version() -> str:
    version_file = pathlib.Path(__file__).resolve().parents[2] / "VERSION"
    if not version_file.is_file():
        return "0.0.0"
    return version_file.read_text().strip()
