#!/usr/bin/env python3
"""
Print Customizer - Development Runner
Run this script to start the development server
"""

import os
import sys
from pathlib import Path

# Set environment defaults
os.environ.setdefault('FLASK_APP', 'customizer')
os.environ.setdefault('FLASK_ENV', 'development')

from customizer import create_app
from customizer.config import CONFIG_DIR


def main():
    """Main entry point"""
    print("=" * 60)
    print("Print Customizer - Development Server")
    print("=" * 60)

    # Create and configure the app
    app = create_app()

    # Print startup info
    print(f"Environment: {app.config.get('FLASK_ENV', 'unknown')}")
    print(f"Debug mode: {app.config.get('DEBUG', False)}")
    print(f"Log level: {app.config.get('LOG_LEVEL', 'INFO')}")
    print(f"Upload limit: {app.config['MAX_UPLOAD_SIZE'] // (1024 * 1024)}MB")

    # Validate configuration files
    missing_configs = [
        name for name in ('settings.yaml', 'products.yaml')
        if not (Path(CONFIG_DIR) / name).exists()
    ]
    if missing_configs:
        print(f"⚠️  Missing config files in {CONFIG_DIR}: {', '.join(missing_configs)}")
        print("   Built-in defaults will be used.")

    print("-" * 60)
    print("Starting development server...")
    print("Open a session with: curl -X POST http://localhost:5000/sessions "
          "-H 'Content-Type: application/json' -d '{\"product_id\": \"1\"}'")
    print("Press Ctrl+C to stop")
    print("-" * 60)

    # Sessions live in process memory; keep one worker thread
    app.run(
        host='0.0.0.0',
        port=5000,
        debug=app.config.get('DEBUG', True),
        use_reloader=True,
        threaded=False
    )


if __name__ == '__main__':
    sys.exit(main())
