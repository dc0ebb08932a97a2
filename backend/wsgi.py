# backend/wsgi.py
from thriftpos import create_app

app = create_app()
