#!/usr/bin/env python3
"""
Media Librarian Application Entry Point.

Run the development server:
    python run.py

Or with Flask CLI:
    FLASK_APP=run flask run

For production, use a proper WSGI server like Gunicorn:
    gunicorn -w 4 -b 0.0.0.0:5000 'run:app'
"""
import logging
import os

from librarian import create_app

logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] %(levelname)s:%(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
# Reduce SQLAlchemy noise
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

# Determine config from environment, default to development
config_name = os.environ.get('FLASK_ENV', 'development')
if config_name not in ('development', 'production'):
    config_name = 'development'

app = create_app(config_name)


if __name__ == '__main__':
    import argparse

    parser = argparse.ArgumentParser(description='Media Librarian development server')
    parser.add_argument('--port', type=int, default=5000,
                        help='Port to listen on (default: 5000)')
    parser.add_argument('--host', default='0.0.0.0',
                        help='Host to bind to (default: 0.0.0.0)')
    args = parser.parse_args()

    print(f"Starting Media Librarian in {config_name} mode...")
    print(f"Database: {app.config['SQLALCHEMY_DATABASE_URI']}")
    print(f"Timezone: {app.config['TIMEZONE']}")
    print(f"Queue: {app.config['UPLOAD_FOLDER']}")
    print(f"Library: {app.config['LIBRARY_ROOT']}")

    app.run(
        host=args.host,
        port=args.port,
        debug=app.config.get('DEBUG', False),
        threaded=True,
    )
