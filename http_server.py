#!/usr/bin/env python3
"""
SyncMe HTTP Server Runner
"""

import os

from dotenv import load_dotenv

from syncme.crosscutting.logging import setup_logging
from syncme.interfaces.http import HTTPServer


def main():
    """Run the HTTP server."""
    load_dotenv()
    setup_logging(level=os.getenv('SYNCME_LOG_LEVEL', 'INFO'), structured=False)
    server = HTTPServer(
        host='localhost',
        port=int(os.getenv('PORT', '3001')),
        debug=os.getenv('FLASK_DEBUG') == '1'
    )
    server.run()


if __name__ == '__main__':
    main()
