#!/usr/bin/env python3
"""
Lending Engine Entry Point

Starts the FastAPI server with the lending engine.
"""

import sys
from pathlib import Path

import uvicorn

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from lending_engine.api import create_app
from lending_engine.config import get_config
from lending_engine.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format)
    
    print(f"Starting Lending Engine API at http://{config.api_host}:{config.api_port}")
    print(f"Documentation at: http://{config.api_host}:{config.api_port}/docs")
    
    try:
        uvicorn.run(create_app(), host=config.api_host, port=config.api_port, log_level="info")
    except KeyboardInterrupt:
        print("\nShutting down Lending Engine...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
