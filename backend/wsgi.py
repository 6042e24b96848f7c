# backend/wsgi.py
from bilkro import create_app

app = create_app()
