# backend/wsgi.py
from subshop import create_app

app = create_app()
