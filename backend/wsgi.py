# backend/wsgi.py
from quickpos import create_app

app = create_app()
