"""
Local runner.

    python run.py                  start the API server and open the browser
    python run.py export <id>      export one setlist from the terminal
"""

import sys
import webbrowser
from threading import Timer

from livetunez.app import build_services, create_app
from livetunez.credentials import browser_redirect_waiter


def open_browser():
    """Opens the status page after a 1.5s delay to allow the server to start."""
    webbrowser.open_new("http://127.0.0.1:5000/api/status")


def export_from_terminal(setlist_id):
    services = build_services(redirect_waiter=browser_redirect_waiter)
    if not services.exporter:
        print('Set SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET and SETLISTFM_API_KEY first.')
        return 1
    # the terminal can prompt, so a failed refresh falls through to the browser login
    if not services.credentials.ensure_token():
        print('Spotify authorization failed.')
        return 1
    result = services.exporter.export_setlist(setlist_id)
    if not result.ok:
        print(f'Export failed: {result.status.value}')
        return 1
    print(f'Playlist created: {result.playlist_url}')
    print(f'Added {len(result.found)} tracks')
    for song in result.missing:
        print(f'  not found: {song}')
    return 0


if __name__ == '__main__':
    if len(sys.argv) == 3 and sys.argv[1] == 'export':
        sys.exit(export_from_terminal(sys.argv[2]))

    print('Starting LiveTunez...')
    app = create_app()

    # 1. Schedule the browser to open in 1.5 seconds
    Timer(1.5, open_browser).start()

    # 2. Start the server (This blocks execution until you press Ctrl+C)
    app.run(host='127.0.0.1', port=5000, debug=False)
