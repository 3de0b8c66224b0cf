"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py --debug run

First admin:

    flask --app run.py create-user --email admin@example.com --password 'Secret123'

"""

from obras_app import create_app

# WSGI application object. `flask run` looks for this `app` variable.
app = create_app()

if __name__ == "__main__":
    # For direct `python run.py` usage (dev only)
    app.run(debug=True)
