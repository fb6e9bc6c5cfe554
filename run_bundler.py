#!/usr/bin/env python
"""
Run script for the bundle submitter.

This script sets up logging directories and submits a bundle.
"""

import os
import sys
import asyncio
from pathlib import Path

# Ensure 'bundler' directory is in the Python path
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

# Import the main function after setting up paths
from bundler.main import main

def cli():
    # Create logs directory if it doesn't exist
    Path("logs").mkdir(exist_ok=True)
    sys.exit(asyncio.run(main()))

if __name__ == "__main__":
    cli()
