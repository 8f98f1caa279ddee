"""
LiveTunez - find concerts, read their setlists, export them to Spotify.

Usage:
    from livetunez.app import create_app

    app = create_app()
    app.run()
"""

__version__ = "0.3.0"
