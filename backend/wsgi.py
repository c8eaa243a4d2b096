# backend/wsgi.py
from haven import create_app

app = create_app()
