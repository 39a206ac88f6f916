# backend/wsgi.py
from parts_erp import create_app

app = create_app()
