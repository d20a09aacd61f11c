#!/usr/bin/env python3
"""
CLI entry point for the Voyageur Nest background jobs.
"""
from voyageur.main import main

if __name__ == "__main__":
    main()
