# backend/wsgi.py
from franchise_crm import create_app

app = create_app()
