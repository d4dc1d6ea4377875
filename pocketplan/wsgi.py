from . import create_app

# expose a module-level app for Gunicorn/Flask
app = create_app()
