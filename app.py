"""Process entry point for Todo API."""

import sys
from pathlib import Path

# Add src directory to Python path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

# Import and expose the FastAPI app
from todo_api.api.main import app, run  # noqa: E402, F401

if __name__ == "__main__":
    run()
