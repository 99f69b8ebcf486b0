"""
Launch script for the Support Knowledge Hub.

Checks the environment and starts the web service.

Usage:
    python run.py
"""
import os
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
REQUIRED_PACKAGES = ["openai", "tiktoken", "numpy", "httpx", "docx", "pypdf", "fastapi", "uvicorn", "multipart"]


def _print(msg: str) -> None:
    print(f"[run] {msg}")


def check_python_deps() -> bool:
    """Check that required Python packages are installed."""
    missing = []
    for pkg in REQUIRED_PACKAGES:
        try:
            __import__(pkg)
        except ImportError:
            missing.append(pkg)

    if missing:
        _print(f"Missing Python packages: {', '.join(missing)}")
        _print("Install with: pip install -e .[test]")
        return False
    return True


def check_data_root() -> bool:
    """Create HUB_DATA_ROOT if needed and check it is writable."""
    data_root = Path(os.environ.get("HUB_DATA_ROOT", os.path.join(PROJECT_ROOT, "data")))
    try:
        data_root.mkdir(parents=True, exist_ok=True)
        probe = data_root / ".write-test"
        probe.write_text("ok")
        probe.unlink()
    except OSError as e:
        _print(f"ERROR: data directory {data_root} is not writable: {e}")
        return False
    _print(f"Data directory: {data_root}")
    return True


def report_configuration() -> dict[str, bool]:
    """Print which optional integrations are configured."""
    status = {
        "embeddings": bool(os.environ.get("OPENAI_API_KEY")),
        "jira": all(os.environ.get(v) for v in ("JIRA_BASE_URL", "JIRA_EMAIL", "JIRA_API_TOKEN")),
    }
    if not status["embeddings"]:
        _print("OPENAI_API_KEY not set: search runs on keyword ranking only.")
    if not status["jira"]:
        _print("Jira not configured: the harvester will find no tickets.")
    return status


def launch_app() -> int:
    """Launch the FastAPI web application via uvicorn."""
    _print("Launching Support Knowledge Hub at http://localhost:8000 ...")
    result = subprocess.run(
        [sys.executable, "-m", "src.web.app"],
        cwd=PROJECT_ROOT,
    )
    return result.returncode


def main() -> int:
    _print("=" * 50)
    _print("Support Knowledge Hub - Launcher")
    _print("=" * 50)

    _print("Checking Python dependencies...")
    if not check_python_deps():
        return 1
    _print("Python dependencies OK.")

    if not check_data_root():
        return 1

    report_configuration()
    return launch_app()


if __name__ == "__main__":
    sys.exit(main())
