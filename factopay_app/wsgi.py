# factopay_app/wsgi.py
# -*- coding: utf-8 -*-
from factopay_app import create_app

app = create_app()
