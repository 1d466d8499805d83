# /run.py
"""
Entry point for the development server.

SocketIO runs in threading mode, so no monkey patching is needed and the
same module works for both the server and Flask CLI commands.
"""
import os

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

# Now, import the app factory
from medpractice import create_app
from medpractice.extensions import socketio

# Create the app instance
app = create_app()

if __name__ == '__main__':
    port = app.config['PORT']
    print(f"Starting server on port {port}...")
    socketio.run(app, host=os.environ.get('HOST', '127.0.0.1'), port=port,
                 debug=app.debug, allow_unsafe_werkzeug=True)
