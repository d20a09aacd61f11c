import sys
from pathlib import Path

# Project root holds the voyageur and config packages
sys.path.insert(0, str(Path(__file__).parent.parent))

from voyageur.api.app import create_app

# Serverless entry point for the HTTP API
app = create_app()
