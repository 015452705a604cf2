# backend/wsgi.py
from gestock import create_app

app = create_app()
